from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .dashboard import DashboardService, DashboardSnapshot
from .database import Database
from .filters import Inventory, VehicleFilter, find_location, virtual_locations
from .inspections import ChecklistSession, InspectionDataService
from .models import (
    ChecklistStatus,
    InspectionItem,
    Location,
    LocationType,
    Rating,
    TeamNote,
    Vehicle,
    VehicleStatus,
    VirtualLocation,
)
from .settings import InspectionSettingsService
from .status import VehicleEvaluation

_logger = logging.getLogger(__name__)

DEFAULT_DATABASE_PATH = Path("recon_tracker.db")
DEFAULT_DEALERSHIP_ID = "main-street-motors"

DEFAULT_LOCATIONS = (
    ("Main Lot", LocationType.ON_SITE, "Front line and customer parking"),
    ("Service Bay", LocationType.ON_SITE, "Mechanical and detail work"),
    ("Off-site Storage", LocationType.OFF_SITE, "Overflow lot on Route 9"),
    ("In Transit", LocationType.IN_TRANSIT, "Inbound from auction or trade"),
)


@dataclass
class ReconTrackerApp:
    database: Database
    settings: InspectionSettingsService
    inspections: InspectionDataService
    dashboard: DashboardService

    @classmethod
    def create(cls, database_path: Path) -> "ReconTrackerApp":
        database = Database(database_path)
        database.initialize()
        settings = InspectionSettingsService(database)
        inspections = InspectionDataService(database)
        dashboard = DashboardService(database=database, settings=settings, inspections=inspections)
        return cls(database=database, settings=settings, inspections=inspections, dashboard=dashboard)

    def seed_defaults(self, dealership_id: str = DEFAULT_DEALERSHIP_ID) -> None:
        self.settings.initialize_defaults(dealership_id)
        existing = {location.name.lower() for location in self.database.list_locations(dealership_id)}
        for name, location_type, description in DEFAULT_LOCATIONS:
            if name.lower() not in existing:
                self.database.add_location(
                    dealership_id=dealership_id,
                    name=name,
                    type=location_type,
                    description=description,
                )

    # Vehicle operations
    def add_vehicle(
        self,
        *,
        dealership_id: str,
        vin: str,
        year: int,
        make: str,
        model: str,
        color: str,
        location: str = "",
        trim: Optional[str] = None,
        mileage: int = 0,
        notes: Optional[str] = None,
    ) -> Vehicle:
        clean_vin = vin.strip().upper()
        if not clean_vin:
            raise ValueError("VIN is required")
        if not make.strip() or not model.strip():
            raise ValueError("Make and model are required")
        if mileage < 0:
            raise ValueError("Mileage cannot be negative")
        if self.database.get_vehicle_by_vin(clean_vin):
            raise ValueError("A vehicle with this VIN already exists")
        vehicle = self.database.add_vehicle(
            dealership_id=dealership_id,
            vin=clean_vin,
            year=year,
            make=make.strip(),
            model=model.strip(),
            color=color.strip(),
            location=location.strip(),
            trim=trim,
            mileage=mileage,
            notes=notes,
        )
        _logger.info("Added vehicle %s (%s)", vehicle.id, vehicle.stock_number)
        return vehicle

    def get_vehicle(self, vehicle_id: int) -> Vehicle:
        vehicle = self.database.get_vehicle(vehicle_id)
        if not vehicle:
            raise LookupError("Vehicle not found")
        return vehicle

    def list_vehicles(self, dealership_id: str) -> List[Vehicle]:
        return list(self.database.list_vehicles(dealership_id))

    def partition_vehicles(self, dealership_id: str) -> Inventory:
        return Inventory.partition(self.database.list_vehicles(dealership_id))

    def mark_sold(self, vehicle_id: int) -> Vehicle:
        return self._set_status(vehicle_id, VehicleStatus.SOLD)

    def mark_pending(self, vehicle_id: int) -> Vehicle:
        return self._set_status(vehicle_id, VehicleStatus.PENDING)

    def reactivate(self, vehicle_id: int) -> Vehicle:
        return self._set_status(vehicle_id, None)

    def update_vehicle_location(self, vehicle_id: int, location: str) -> Vehicle:
        self.get_vehicle(vehicle_id)
        return self.database.update_vehicle(vehicle_id, location_name=location.strip())

    def add_team_note(
        self,
        vehicle_id: int,
        *,
        author: str,
        content: str,
        section: Optional[str] = None,
    ) -> Vehicle:
        clean_content = content.strip()
        if not clean_content:
            raise ValueError("Note cannot be empty")
        note = TeamNote(author=author, content=clean_content, section=section, created_at=datetime.utcnow())
        return self.database.append_team_note(vehicle_id, note)

    def _set_status(self, vehicle_id: int, status: Optional[VehicleStatus]) -> Vehicle:
        self.get_vehicle(vehicle_id)
        vehicle = self.database.set_vehicle_status(vehicle_id, status)
        _logger.info("Vehicle %s status set to %s", vehicle_id, status.value if status else "active")
        return vehicle

    # Location operations
    def add_location(
        self,
        *,
        dealership_id: str,
        name: str,
        type: LocationType,
        description: Optional[str] = None,
        capacity: Optional[int] = None,
        color: str = "#3B82F6",
    ) -> Location:
        clean_name = name.strip()
        if not clean_name:
            raise ValueError("Location name is required")
        if find_location(clean_name, self.database.list_locations(dealership_id)):
            raise ValueError("Location already exists")
        if capacity is not None and capacity < 0:
            raise ValueError("Capacity cannot be negative")
        return self.database.add_location(
            dealership_id=dealership_id,
            name=clean_name,
            type=LocationType(type),
            description=description,
            capacity=capacity,
            color=color,
        )

    def list_locations(self, dealership_id: str, *, active_only: bool = False) -> List[Location]:
        return list(self.database.list_locations(dealership_id, active_only=active_only))

    def update_location(self, location_id: int, **fields: object) -> Location:
        return self.database.update_location(location_id, **fields)

    def delete_location(self, location_id: int) -> None:
        if not self.database.delete_location(location_id):
            raise LookupError("Location not found")

    def list_virtual_locations(self, dealership_id: str) -> List[VirtualLocation]:
        return list(
            virtual_locations(self.database.list_vehicles(dealership_id), self.database.list_locations(dealership_id))
        )

    # Inspection operations
    def open_checklist(self, vehicle_id: int, *, inspector_id: str) -> ChecklistSession:
        vehicle = self.get_vehicle(vehicle_id)
        return ChecklistSession.open(
            self.inspections,
            vehicle_id=vehicle.id,
            inspector_id=inspector_id,
            sections=self.settings.get_sections(vehicle.dealership_id),
        )

    def record_rating(
        self,
        vehicle_id: int,
        *,
        section_key: str,
        item_id: str,
        rating: Rating | str,
        inspector_id: str,
    ) -> InspectionItem:
        session = self.open_checklist(vehicle_id, inspector_id=inspector_id)
        return session.set_rating(section_key, item_id, rating, updated_by=inspector_id)

    def update_inspection_status(
        self,
        vehicle_id: int,
        status: ChecklistStatus,
        notes: Optional[str] = None,
    ) -> bool:
        self.get_vehicle(vehicle_id)
        return self.inspections.update_inspection_status(vehicle_id, ChecklistStatus(status), notes)

    # Dashboard operations
    def dashboard_snapshot(self, dealership_id: str) -> DashboardSnapshot:
        return self.dashboard.snapshot(dealership_id)

    def filter_vehicles(self, dealership_id: str, criteria: VehicleFilter) -> List[Vehicle]:
        return list(self.dashboard_snapshot(dealership_id).filter(criteria))

    def evaluate_vehicle(self, vehicle_id: int) -> VehicleEvaluation:
        vehicle = self.get_vehicle(vehicle_id)
        sections = self.settings.get_sections(vehicle.dealership_id)
        data = self.inspections.load_for_vehicles([vehicle.id]).get(vehicle.id, {})
        snapshot = DashboardSnapshot(
            dealership_id=vehicle.dealership_id,
            inventory=Inventory.partition([vehicle]),
            sections=sections,
            inspection_data={vehicle.id: data},
        )
        return snapshot.evaluate(vehicle)

    def export_inventory(
        self,
        dealership_id: str,
        *,
        generated_by: str,
        criteria: Optional[VehicleFilter] = None,
        customer_view: bool = False,
    ) -> tuple[str, bytes]:
        return self.dashboard.export_inventory_workbook(
            dealership_id,
            generated_by=generated_by,
            criteria=criteria,
            customer_view=customer_view,
        )


if __name__ == "__main__":  # pragma: no cover - manual interaction helper
    logging.basicConfig(level=logging.INFO)
    app = ReconTrackerApp.create(DEFAULT_DATABASE_PATH)
    app.seed_defaults()
    print("Recon tracker ready.")
    print(f"Default dealership: {DEFAULT_DEALERSHIP_ID}")
    print("Run `python -m backend.recon.mock_data` to load a demo inventory.")
