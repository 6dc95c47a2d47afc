from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple

from .database import Database
from .models import (
    ChecklistStatus,
    InspectionItem,
    InspectionSection,
    Rating,
    SectionStatus,
    VehicleInspectionData,
)
from .sections import active_sections, find_section, normalize_inspection_data, serialize_inspection_data
from .status import calculate_progress, is_ready_for_sale, section_statuses

_logger = logging.getLogger(__name__)


class SaveStatus(str, Enum):
    IDLE = "idle"
    SAVED = "saved"
    ERROR = "error"


@dataclass
class InspectionDataService:
    database: Database

    def load_inspection_data(self, vehicle_id: int, inspector_id: str) -> VehicleInspectionData:
        """Recorded items for a vehicle; an empty mapping when nothing is stored."""
        try:
            checklist = self.database.get_checklist(vehicle_id)
        except (sqlite3.Error, json.JSONDecodeError):
            _logger.exception("Could not load inspection data for vehicle %s", vehicle_id)
            return {}
        if checklist is None:
            return {}
        if checklist.inspector_id != inspector_id:
            _logger.debug(
                "Vehicle %s checklist last written by %s, read by %s",
                vehicle_id,
                checklist.inspector_id,
                inspector_id,
            )
        return normalize_inspection_data(checklist.data)

    def load_section_notes(self, vehicle_id: int) -> Dict[str, str]:
        try:
            checklist = self.database.get_checklist(vehicle_id)
        except (sqlite3.Error, json.JSONDecodeError):
            _logger.exception("Could not load section notes for vehicle %s", vehicle_id)
            return {}
        return dict(checklist.section_notes) if checklist else {}

    def load_for_vehicles(self, vehicle_ids: Iterable[int]) -> Dict[int, VehicleInspectionData]:
        try:
            checklists = list(self.database.list_checklists(vehicle_ids))
        except (sqlite3.Error, json.JSONDecodeError):
            _logger.exception("Could not load inspection data for the dashboard")
            return {}
        return {checklist.vehicle_id: normalize_inspection_data(checklist.data) for checklist in checklists}

    def save_inspection_data(
        self,
        vehicle_id: int,
        inspector_id: str,
        data: Mapping[str, Iterable[InspectionItem]],
        section_notes: Optional[Mapping[str, str]] = None,
    ) -> bool:
        try:
            self.database.upsert_checklist(
                vehicle_id=vehicle_id,
                inspector_id=inspector_id,
                checklist_data=serialize_inspection_data(data),
                section_notes=dict(section_notes or {}),
            )
        except sqlite3.Error:
            _logger.exception("Could not save inspection data for vehicle %s", vehicle_id)
            return False
        return True

    def update_inspection_status(
        self,
        vehicle_id: int,
        status: ChecklistStatus,
        notes: Optional[str] = None,
    ) -> bool:
        try:
            return self.database.update_checklist_status(vehicle_id, status, notes)
        except sqlite3.Error:
            _logger.exception("Could not update checklist status for vehicle %s", vehicle_id)
            return False


@dataclass
class ChecklistSession:
    """Local inspection state for one vehicle.

    Rating changes land in ``data`` first and are persisted afterwards. A
    failed write flips ``save_status`` to ``ERROR`` but keeps the local
    change, so every derived value reflects what the inspector entered.
    """

    service: InspectionDataService
    vehicle_id: int
    inspector_id: str
    sections: Tuple[InspectionSection, ...]
    data: VehicleInspectionData = field(default_factory=dict)
    section_notes: Dict[str, str] = field(default_factory=dict)
    save_status: SaveStatus = SaveStatus.IDLE
    loaded: bool = False

    @classmethod
    def open(
        cls,
        service: InspectionDataService,
        *,
        vehicle_id: int,
        inspector_id: str,
        sections: Iterable[InspectionSection],
    ) -> "ChecklistSession":
        session = cls(
            service=service,
            vehicle_id=vehicle_id,
            inspector_id=inspector_id,
            sections=tuple(sections),
        )
        session.data = service.load_inspection_data(vehicle_id, inspector_id)
        session.section_notes = service.load_section_notes(vehicle_id)
        session.loaded = True
        return session

    def set_rating(
        self,
        section_key: str,
        item_id: str,
        rating: Rating | str,
        *,
        updated_by: str,
    ) -> InspectionItem:
        try:
            new_rating = Rating(rating)
        except ValueError as exc:
            raise ValueError(f"Unknown rating '{rating}'") from exc
        section = find_section(active_sections(self.sections), section_key)
        if section is None:
            raise LookupError(f"Section '{section_key}' not found")
        definition = next((item for item in section.active_items if item.id == item_id), None)
        if definition is None:
            raise LookupError(f"Item '{item_id}' not found in section '{section_key}'")

        now = datetime.utcnow()
        existing = self.data.get(section_key, ())
        current = next((item for item in existing if item.id == item_id), None)
        if current is not None:
            updated = replace(current, rating=new_rating, updated_by=updated_by, updated_at=now)
            items = tuple(updated if item.id == item_id else item for item in existing)
        else:
            updated = InspectionItem(
                id=item_id,
                label=definition.label,
                rating=new_rating,
                updated_by=updated_by,
                updated_at=now,
            )
            items = existing + (updated,)

        self.data = {**self.data, section_key: items}
        self._persist()
        return updated

    def set_section_note(self, section_key: str, note: str) -> None:
        notes = dict(self.section_notes)
        if note.strip():
            notes[section_key] = note.strip()
        else:
            notes.pop(section_key, None)
        self.section_notes = notes
        self._persist()

    def section_statuses(self) -> dict[str, SectionStatus]:
        return section_statuses(self.sections, self.data)

    @property
    def progress(self) -> int:
        return calculate_progress(self.sections, self.data, loaded=self.loaded)

    @property
    def ready_for_sale(self) -> bool:
        return self.loaded and is_ready_for_sale(self.sections, self.data)

    def _persist(self) -> None:
        saved = self.service.save_inspection_data(
            self.vehicle_id,
            self.inspector_id,
            self.data,
            self.section_notes,
        )
        self.save_status = SaveStatus.SAVED if saved else SaveStatus.ERROR
