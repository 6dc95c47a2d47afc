from __future__ import annotations

import io
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Mapping, Optional, Tuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from .database import Database
from .filters import (
    Inventory,
    InventorySummary,
    LocationCounts,
    VehicleFilter,
    filter_counts,
    filter_vehicles,
    inventory_summary,
    location_counts,
    resolve_location_type,
    section_progress_counts,
    virtual_locations,
)
from .inspections import InspectionDataService
from .models import (
    InspectionSection,
    Location,
    SectionFilterStatus,
    SectionStatus,
    StatusFilter,
    Vehicle,
    VehicleCategory,
    VehicleInspectionData,
    VirtualLocation,
)
from .sections import active_sections, customer_visible_sections
from .settings import InspectionSettingsService
from .status import VehicleEvaluation, evaluate_vehicle

_logger = logging.getLogger(__name__)

CATEGORY_LABELS: dict[Optional[VehicleCategory], str] = {
    VehicleCategory.COMPLETED: "Ready",
    VehicleCategory.PENDING: "Working",
    VehicleCategory.NEEDS_ATTENTION: "Issues",
    None: "Sold / Pending",
}

STATUS_FILLS: dict[SectionStatus, str] = {
    SectionStatus.COMPLETED: "E6F4EA",
    SectionStatus.PENDING: "FFF4E5",
    SectionStatus.NEEDS_ATTENTION: "FDE8E8",
    SectionStatus.NOT_STARTED: "F3F4F6",
}


@dataclass(frozen=True)
class DashboardSnapshot:
    """Everything the dashboard derives from, fetched once per render."""

    dealership_id: str
    inventory: Inventory
    sections: Tuple[InspectionSection, ...]
    locations: Tuple[Location, ...] = ()
    inspection_data: Mapping[int, VehicleInspectionData] = field(default_factory=dict)
    loaded: bool = True

    @property
    def active_sections(self) -> Tuple[InspectionSection, ...]:
        return active_sections(self.sections)

    def all_vehicles(self) -> Tuple[Vehicle, ...]:
        return self.inventory.active + self.inventory.sold + self.inventory.pending

    def filter(self, criteria: VehicleFilter) -> Tuple[Vehicle, ...]:
        return filter_vehicles(
            self.inventory,
            criteria,
            sections=self.sections,
            inspection_data=self.inspection_data,
            locations=self.locations,
            loaded=self.loaded,
        )

    def counts(self) -> Dict[StatusFilter, int]:
        return filter_counts(
            self.inventory,
            sections=self.sections,
            inspection_data=self.inspection_data,
            loaded=self.loaded,
        )

    def location_counts(self) -> LocationCounts:
        return location_counts(self.inventory.active, self.locations)

    def section_counts(self, section_key: Optional[str]) -> Dict[SectionFilterStatus, int]:
        return section_progress_counts(
            self.inventory.active,
            section_key,
            sections=self.sections,
            inspection_data=self.inspection_data,
            loaded=self.loaded,
        )

    def summary(self) -> InventorySummary:
        return inventory_summary(
            self.inventory,
            sections=self.sections,
            inspection_data=self.inspection_data,
            locations=self.locations,
            loaded=self.loaded,
        )

    def evaluate(self, vehicle: Vehicle) -> VehicleEvaluation:
        return evaluate_vehicle(
            vehicle,
            self.sections,
            self.inspection_data.get(vehicle.id) or {},
            loaded=self.loaded,
        )

    def virtual_locations(self) -> Tuple[VirtualLocation, ...]:
        return virtual_locations(self.all_vehicles(), self.locations)


@dataclass
class DashboardService:
    database: Database
    settings: InspectionSettingsService
    inspections: InspectionDataService

    def snapshot(self, dealership_id: str) -> DashboardSnapshot:
        try:
            vehicles = list(self.database.list_vehicles(dealership_id))
        except sqlite3.Error:
            _logger.exception("Could not load vehicles for dealership %s", dealership_id)
            vehicles = []
        try:
            locations = tuple(self.database.list_locations(dealership_id))
        except sqlite3.Error:
            _logger.exception("Could not load locations for dealership %s", dealership_id)
            locations = ()
        return DashboardSnapshot(
            dealership_id=dealership_id,
            inventory=Inventory.partition(vehicles),
            sections=self.settings.get_sections(dealership_id),
            locations=locations,
            inspection_data=self.inspections.load_for_vehicles(vehicle.id for vehicle in vehicles),
        )

    def export_inventory_workbook(
        self,
        dealership_id: str,
        *,
        generated_by: str,
        criteria: Optional[VehicleFilter] = None,
        customer_view: bool = False,
    ) -> tuple[str, bytes]:
        """Workbook with a Summary sheet and a per-vehicle sheet.

        ``customer_view`` limits the section columns to customer visible
        sections.
        """
        snapshot = self.snapshot(dealership_id)
        vehicles = snapshot.filter(criteria) if criteria else snapshot.all_vehicles()
        sections = (
            customer_visible_sections(snapshot.sections) if customer_view else snapshot.active_sections
        )
        summary = snapshot.summary()

        workbook = Workbook()
        summary_ws = workbook.active
        summary_ws.title = "Summary"

        now = datetime.utcnow()
        title_font = Font(size=16, bold=True, color="1E3A8A")
        header_font = Font(bold=True, color="111827")
        muted_font = Font(color="6B7280")

        summary_ws["A1"] = "Reconditioning snapshot"
        summary_ws["A1"].font = title_font
        summary_ws.merge_cells("A1:D1")
        summary_ws["A2"] = f"Generated for {generated_by}"
        summary_ws["A2"].font = muted_font
        summary_ws.merge_cells("A2:D2")
        summary_ws["A3"] = now.strftime("Created %Y-%m-%d %H:%M UTC")
        summary_ws["A3"].font = muted_font
        summary_ws.merge_cells("A3:D3")

        summary_ws["A5"], summary_ws["B5"] = "Metric", "Value"
        summary_ws["A5"].font = header_font
        summary_ws["B5"].font = header_font
        metrics = [
            ("Active vehicles", summary.total_vehicles),
            ("Ready", summary.completed),
            ("Working", summary.working),
            ("Issues", summary.needs_attention),
            ("Sold", summary.sold),
            ("Pending sale", summary.pending_sale),
            ("On-site", summary.on_site),
            ("Off-site", summary.off_site),
            ("In-transit", summary.in_transit),
        ]
        for index, (label, value) in enumerate(metrics, start=6):
            summary_ws.cell(row=index, column=1, value=label)
            summary_ws.cell(row=index, column=2, value=value)
        for column, width in [(1, 24), (2, 14)]:
            summary_ws.column_dimensions[get_column_letter(column)].width = width

        detail_ws = workbook.create_sheet("Vehicles")
        detail_headers = [
            "Stock #",
            "Vehicle",
            "VIN",
            "Color",
            "Location",
            "Location type",
            "Category",
            "Progress (%)",
            "Ready for sale",
            *[section.label for section in sections],
        ]
        detail_ws.append(detail_headers)
        for cell in detail_ws[1]:
            cell.font = header_font
            cell.alignment = Alignment(horizontal="center")

        first_section_column = len(detail_headers) - len(sections) + 1
        for vehicle in vehicles:
            evaluation = snapshot.evaluate(vehicle)
            statuses = [evaluation.status_for(section.key) for section in sections]
            detail_ws.append(
                [
                    vehicle.stock_number,
                    vehicle.title,
                    vehicle.vin,
                    vehicle.color,
                    vehicle.location,
                    resolve_location_type(vehicle.location, snapshot.locations).value,
                    CATEGORY_LABELS[evaluation.category],
                    evaluation.progress,
                    "Yes" if evaluation.ready_for_sale else "No",
                    *[status.value for status in statuses],
                ]
            )
            row = detail_ws.max_row
            for offset, status in enumerate(statuses):
                fill = STATUS_FILLS[status]
                detail_ws.cell(row=row, column=first_section_column + offset).fill = PatternFill(
                    start_color=fill, end_color=fill, fill_type="solid"
                )

        detail_ws.auto_filter.ref = detail_ws.dimensions
        detail_ws.freeze_panes = "A2"

        for column_index in range(1, len(detail_headers) + 1):
            column_letter = get_column_letter(column_index)
            max_length = max(
                (len(str(detail_ws.cell(row=row, column=column_index).value or "")) for row in range(1, detail_ws.max_row + 1)),
                default=10,
            )
            detail_ws.column_dimensions[column_letter].width = min(max(12, max_length + 2), 42)

        timestamp = now.strftime("%Y%m%d-%H%M%S")
        filename = f"inventory-export-{timestamp}.xlsx"
        buffer = io.BytesIO()
        workbook.save(buffer)
        buffer.seek(0)
        return filename, buffer.getvalue()
