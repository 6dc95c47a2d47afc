from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Rating(str, Enum):
    NOT_CHECKED = "not-checked"
    GREAT = "G"
    FAIR = "F"
    NEEDS_ATTENTION = "N"

    @classmethod
    def coerce(cls, value: object) -> "Rating":
        if isinstance(value, Rating):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.NOT_CHECKED


class SectionStatus(str, Enum):
    NOT_STARTED = "not-started"
    PENDING = "pending"
    NEEDS_ATTENTION = "needs-attention"
    COMPLETED = "completed"


class VehicleCategory(str, Enum):
    NEEDS_ATTENTION = "needs-attention"
    COMPLETED = "completed"
    PENDING = "pending"


class VehicleStatus(str, Enum):
    SOLD = "sold"
    PENDING = "pending"


class LocationType(str, Enum):
    ON_SITE = "on-site"
    OFF_SITE = "off-site"
    IN_TRANSIT = "in-transit"


class StatusFilter(str, Enum):
    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"
    NEEDS_ATTENTION = "needs-attention"
    SOLD = "sold"
    VEHICLE_PENDING = "vehicle-pending"


class SectionFilterStatus(str, Enum):
    READY = "ready"
    WORKING = "working"
    ISSUES = "issues"
    UNCHECKED = "unchecked"


class ChecklistStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class InspectionItem:
    id: str
    label: str
    rating: Rating = Rating.NOT_CHECKED
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class InspectionItemDefinition:
    id: str
    label: str
    is_active: bool = True
    order: int = 0


@dataclass(frozen=True)
class InspectionSection:
    key: str
    label: str
    order: int = 0
    is_active: bool = True
    is_customer_visible: bool = True
    color: str = "#3B82F6"
    items: Tuple[InspectionItemDefinition, ...] = ()

    @property
    def active_items(self) -> Tuple[InspectionItemDefinition, ...]:
        return tuple(sorted((item for item in self.items if item.is_active), key=lambda item: item.order))


# section key -> recorded items
VehicleInspectionData = Dict[str, Tuple[InspectionItem, ...]]


@dataclass(frozen=True)
class RatingLabel:
    key: str
    label: str
    color: str


@dataclass(frozen=True)
class InspectionSettings:
    dealership_id: str
    sections: Tuple[InspectionSection, ...]
    rating_labels: Tuple[RatingLabel, ...]
    section_notes_enabled: bool = True
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class TeamNote:
    author: str
    content: str
    created_at: datetime
    section: Optional[str] = None


@dataclass(frozen=True)
class Vehicle:
    id: int
    vin: str
    year: int
    make: str
    model: str
    color: str
    location: str
    dealership_id: str
    trim: Optional[str] = None
    mileage: int = 0
    status: Optional[VehicleStatus] = None
    notes: Optional[str] = None
    team_notes: Tuple[TeamNote, ...] = ()
    created_at: Optional[datetime] = None

    @property
    def stock_number(self) -> str:
        return self.vin[-6:].upper()

    @property
    def title(self) -> str:
        return f"{self.year} {self.make} {self.model}"


@dataclass(frozen=True)
class Location:
    id: int
    dealership_id: str
    name: str
    type: LocationType
    description: Optional[str] = None
    is_active: bool = True
    capacity: Optional[int] = None
    color: str = "#3B82F6"


@dataclass(frozen=True)
class VirtualLocation:
    name: str
    type: LocationType
    vehicle_count: int


@dataclass
class InspectionChecklist:
    id: int
    vehicle_id: int
    inspector_id: str
    data: Dict[str, List[dict]]
    status: ChecklistStatus
    notes: Optional[str]
    section_notes: Dict[str, str] = field(default_factory=dict)
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
