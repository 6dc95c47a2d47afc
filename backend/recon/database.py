from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, Optional

from .models import (
    ChecklistStatus,
    InspectionChecklist,
    Location,
    LocationType,
    TeamNote,
    Vehicle,
    VehicleStatus,
)

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_VEHICLE_COLUMNS = ("vin", "year", "make", "model", "trim", "mileage", "color", "location_name", "notes")
_LOCATION_COLUMNS = ("name", "type", "description", "is_active", "capacity", "color")


class Database:
    """SQLite backed persistence for dealership inventory and inspections."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def initialize(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                PRAGMA foreign_keys = ON;
                CREATE TABLE IF NOT EXISTS vehicles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    dealership_id TEXT NOT NULL,
                    vin TEXT NOT NULL UNIQUE,
                    year INTEGER NOT NULL,
                    make TEXT NOT NULL,
                    model TEXT NOT NULL,
                    trim TEXT,
                    mileage INTEGER NOT NULL DEFAULT 0,
                    color TEXT NOT NULL,
                    location_name TEXT NOT NULL DEFAULT '',
                    status TEXT,
                    notes TEXT,
                    team_notes TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS locations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    dealership_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL,
                    description TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    capacity INTEGER,
                    color TEXT NOT NULL DEFAULT '#3B82F6',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (dealership_id, name)
                );
                CREATE TABLE IF NOT EXISTS inspection_checklists (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    vehicle_id INTEGER NOT NULL UNIQUE REFERENCES vehicles(id) ON DELETE CASCADE,
                    inspector_id TEXT NOT NULL,
                    checklist_data TEXT NOT NULL DEFAULT '{}',
                    section_notes TEXT NOT NULL DEFAULT '{}',
                    status TEXT NOT NULL DEFAULT 'in-progress',
                    notes TEXT,
                    completed_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS inspection_settings (
                    dealership_id TEXT PRIMARY KEY,
                    settings TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_vehicles_dealership
                    ON vehicles(dealership_id);
            """
            )

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def session(self) -> Generator[sqlite3.Connection, None, None]:
        with self._connect() as conn:
            yield conn

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
        location: str,
        trim: Optional[str] = None,
        mileage: int = 0,
        notes: Optional[str] = None,
    ) -> Vehicle:
        now = _format_datetime(_utcnow())
        with self.session() as conn:
            cursor = conn.execute(
                """
                INSERT INTO vehicles (
                    dealership_id, vin, year, make, model, trim, mileage, color,
                    location_name, notes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (dealership_id, vin, year, make, model, trim, mileage, color, location, notes, now, now),
            )
            vehicle_id = cursor.lastrowid
        vehicle = self.get_vehicle(vehicle_id)
        assert vehicle is not None
        return vehicle

    def get_vehicle(self, vehicle_id: int) -> Optional[Vehicle]:
        with self.session() as conn:
            row = conn.execute("SELECT * FROM vehicles WHERE id = ?", (vehicle_id,)).fetchone()
        return _row_to_vehicle(row) if row else None

    def get_vehicle_by_vin(self, vin: str) -> Optional[Vehicle]:
        with self.session() as conn:
            row = conn.execute("SELECT * FROM vehicles WHERE vin = ?", (vin,)).fetchone()
        return _row_to_vehicle(row) if row else None

    def list_vehicles(self, dealership_id: str) -> Iterable[Vehicle]:
        with self.session() as conn:
            rows = conn.execute(
                "SELECT * FROM vehicles WHERE dealership_id = ? ORDER BY created_at DESC, id DESC",
                (dealership_id,),
            ).fetchall()
        for row in rows:
            yield _row_to_vehicle(row)

    def update_vehicle(self, vehicle_id: int, **fields: Any) -> Vehicle:
        unknown = set(fields) - set(_VEHICLE_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown vehicle fields: {', '.join(sorted(unknown))}")
        if fields:
            assignments = ", ".join(f"{column} = ?" for column in fields)
            with self.session() as conn:
                conn.execute(
                    f"UPDATE vehicles SET {assignments}, updated_at = ? WHERE id = ?",
                    (*fields.values(), _format_datetime(_utcnow()), vehicle_id),
                )
        vehicle = self.get_vehicle(vehicle_id)
        if vehicle is None:
            raise LookupError("Vehicle not found")
        return vehicle

    def set_vehicle_status(self, vehicle_id: int, status: Optional[VehicleStatus]) -> Vehicle:
        with self.session() as conn:
            conn.execute(
                "UPDATE vehicles SET status = ?, updated_at = ? WHERE id = ?",
                (status.value if status else None, _format_datetime(_utcnow()), vehicle_id),
            )
        vehicle = self.get_vehicle(vehicle_id)
        if vehicle is None:
            raise LookupError("Vehicle not found")
        return vehicle

    def append_team_note(self, vehicle_id: int, note: TeamNote) -> Vehicle:
        vehicle = self.get_vehicle(vehicle_id)
        if vehicle is None:
            raise LookupError("Vehicle not found")
        notes = [_team_note_to_dict(existing) for existing in vehicle.team_notes]
        notes.append(_team_note_to_dict(note))
        with self.session() as conn:
            conn.execute(
                "UPDATE vehicles SET team_notes = ?, updated_at = ? WHERE id = ?",
                (json.dumps(notes), _format_datetime(_utcnow()), vehicle_id),
            )
        updated = self.get_vehicle(vehicle_id)
        assert updated is not None
        return updated

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
        now = _format_datetime(_utcnow())
        with self.session() as conn:
            cursor = conn.execute(
                """
                INSERT INTO locations (
                    dealership_id, name, type, description, is_active, capacity, color, created_at, updated_at
                ) VALUES (?, ?, ?, ?, 1, ?, ?, ?, ?)
                """,
                (dealership_id, name, type.value, description, capacity, color, now, now),
            )
            location_id = cursor.lastrowid
        location = self.get_location(location_id)
        assert location is not None
        return location

    def get_location(self, location_id: int) -> Optional[Location]:
        with self.session() as conn:
            row = conn.execute("SELECT * FROM locations WHERE id = ?", (location_id,)).fetchone()
        return _row_to_location(row) if row else None

    def list_locations(self, dealership_id: str, *, active_only: bool = False) -> Iterable[Location]:
        query = "SELECT * FROM locations WHERE dealership_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY name"
        with self.session() as conn:
            rows = conn.execute(query, (dealership_id,)).fetchall()
        for row in rows:
            yield _row_to_location(row)

    def update_location(self, location_id: int, **fields: Any) -> Location:
        unknown = set(fields) - set(_LOCATION_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown location fields: {', '.join(sorted(unknown))}")
        values = [
            value.value if isinstance(value, LocationType) else (1 if value is True else 0 if value is False else value)
            for value in fields.values()
        ]
        if fields:
            assignments = ", ".join(f"{column} = ?" for column in fields)
            with self.session() as conn:
                conn.execute(
                    f"UPDATE locations SET {assignments}, updated_at = ? WHERE id = ?",
                    (*values, _format_datetime(_utcnow()), location_id),
                )
        location = self.get_location(location_id)
        if location is None:
            raise LookupError("Location not found")
        return location

    def delete_location(self, location_id: int) -> bool:
        with self.session() as conn:
            cursor = conn.execute("DELETE FROM locations WHERE id = ?", (location_id,))
        return cursor.rowcount > 0

    # Inspection checklist operations
    def upsert_checklist(
        self,
        *,
        vehicle_id: int,
        inspector_id: str,
        checklist_data: Dict[str, Any],
        section_notes: Optional[Dict[str, str]] = None,
    ) -> InspectionChecklist:
        now = _format_datetime(_utcnow())
        with self.session() as conn:
            conn.execute(
                """
                INSERT INTO inspection_checklists (
                    vehicle_id, inspector_id, checklist_data, section_notes, status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(vehicle_id) DO UPDATE SET
                    inspector_id = excluded.inspector_id,
                    checklist_data = excluded.checklist_data,
                    section_notes = excluded.section_notes,
                    status = excluded.status,
                    updated_at = excluded.updated_at
                """,
                (
                    vehicle_id,
                    inspector_id,
                    json.dumps(checklist_data),
                    json.dumps(section_notes or {}),
                    ChecklistStatus.IN_PROGRESS.value,
                    now,
                    now,
                ),
            )
        checklist = self.get_checklist(vehicle_id)
        assert checklist is not None
        return checklist

    def get_checklist(self, vehicle_id: int) -> Optional[InspectionChecklist]:
        with self.session() as conn:
            row = conn.execute(
                "SELECT * FROM inspection_checklists WHERE vehicle_id = ?",
                (vehicle_id,),
            ).fetchone()
        return _row_to_checklist(row) if row else None

    def list_checklists(self, vehicle_ids: Iterable[int]) -> Iterable[InspectionChecklist]:
        id_list = list(vehicle_ids)
        if not id_list:
            return []
        placeholders = ",".join("?" for _ in id_list)
        with self.session() as conn:
            rows = conn.execute(
                f"SELECT * FROM inspection_checklists WHERE vehicle_id IN ({placeholders})",
                tuple(id_list),
            ).fetchall()
        return [_row_to_checklist(row) for row in rows]

    def update_checklist_status(
        self,
        vehicle_id: int,
        status: ChecklistStatus,
        notes: Optional[str] = None,
    ) -> bool:
        now = _utcnow()
        completed_at = _format_datetime(now) if status is ChecklistStatus.COMPLETED else None
        with self.session() as conn:
            cursor = conn.execute(
                """
                UPDATE inspection_checklists
                SET status = ?, notes = COALESCE(?, notes),
                    completed_at = COALESCE(?, completed_at), updated_at = ?
                WHERE vehicle_id = ?
                """,
                (status.value, notes, completed_at, _format_datetime(now), vehicle_id),
            )
        return cursor.rowcount > 0

    # Settings operations
    def get_settings_document(self, dealership_id: str) -> Optional[Dict[str, Any]]:
        with self.session() as conn:
            row = conn.execute(
                "SELECT settings FROM inspection_settings WHERE dealership_id = ?",
                (dealership_id,),
            ).fetchone()
        return json.loads(row["settings"]) if row else None

    def save_settings_document(self, dealership_id: str, document: Dict[str, Any]) -> None:
        with self.session() as conn:
            conn.execute(
                """
                INSERT INTO inspection_settings (dealership_id, settings, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(dealership_id) DO UPDATE SET
                    settings = excluded.settings,
                    updated_at = excluded.updated_at
                """,
                (dealership_id, json.dumps(document), _format_datetime(_utcnow())),
            )


def _row_to_vehicle(row: sqlite3.Row) -> Vehicle:
    return Vehicle(
        id=row["id"],
        dealership_id=row["dealership_id"],
        vin=row["vin"],
        year=row["year"],
        make=row["make"],
        model=row["model"],
        trim=row["trim"],
        mileage=row["mileage"],
        color=row["color"],
        location=row["location_name"] or "",
        status=VehicleStatus(row["status"]) if row["status"] else None,
        notes=row["notes"],
        team_notes=tuple(_team_note_from_dict(entry) for entry in json.loads(row["team_notes"] or "[]")),
        created_at=_parse_datetime(row["created_at"]),
    )


def _row_to_location(row: sqlite3.Row) -> Location:
    return Location(
        id=row["id"],
        dealership_id=row["dealership_id"],
        name=row["name"],
        type=LocationType(row["type"]),
        description=row["description"],
        is_active=bool(row["is_active"]),
        capacity=row["capacity"],
        color=row["color"],
    )


def _row_to_checklist(row: sqlite3.Row) -> InspectionChecklist:
    return InspectionChecklist(
        id=row["id"],
        vehicle_id=row["vehicle_id"],
        inspector_id=row["inspector_id"],
        data=json.loads(row["checklist_data"]),
        status=ChecklistStatus(row["status"]),
        notes=row["notes"],
        section_notes=json.loads(row["section_notes"] or "{}"),
        completed_at=_parse_datetime(row["completed_at"]) if row["completed_at"] else None,
        updated_at=_parse_datetime(row["updated_at"]),
    )


def _team_note_to_dict(note: TeamNote) -> Dict[str, Any]:
    return {
        "author": note.author,
        "content": note.content,
        "section": note.section,
        "created_at": _format_datetime(note.created_at),
    }


def _team_note_from_dict(entry: Dict[str, Any]) -> TeamNote:
    return TeamNote(
        author=entry.get("author", ""),
        content=entry.get("content", ""),
        section=entry.get("section"),
        created_at=_parse_datetime(entry["created_at"]),
    )


def _utcnow() -> datetime:
    return datetime.utcnow()


def _format_datetime(value: datetime) -> str:
    return value.strftime(ISO_FORMAT)


def _parse_datetime(value: str) -> datetime:
    return datetime.strptime(value, ISO_FORMAT)
