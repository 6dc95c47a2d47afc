"""Status and progress derivation for vehicle inspections.

Every function here is pure: inputs are never mutated, nothing is logged and
nothing raises for malformed data. They run on each dashboard render and on
every keystroke of the search box.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple

from .models import (
    InspectionItem,
    InspectionSection,
    Rating,
    SectionStatus,
    Vehicle,
    VehicleCategory,
    VehicleStatus,
)
from .sections import active_sections, normalize_item

EXCLUDED_VEHICLE_STATUSES = frozenset({VehicleStatus.SOLD, VehicleStatus.PENDING})

# Statuses that count toward the progress bar: the section has been fully rated.
RATED_SECTION_STATUSES = frozenset(
    {SectionStatus.COMPLETED, SectionStatus.PENDING, SectionStatus.NEEDS_ATTENTION}
)


@dataclass(frozen=True)
class VehicleEvaluation:
    vehicle_id: int
    section_statuses: Tuple[Tuple[str, SectionStatus], ...]
    category: Optional[VehicleCategory]
    progress: int
    ready_for_sale: bool

    def status_for(self, section_key: str) -> SectionStatus:
        return dict(self.section_statuses).get(section_key, SectionStatus.NOT_STARTED)


def _clean_items(items: Optional[Iterable[object]]) -> Tuple[InspectionItem, ...]:
    if not items:
        return ()
    cleaned = (normalize_item(item) for item in items)
    return tuple(item for item in cleaned if item is not None)


def _section_items(data: Optional[Mapping[str, Iterable[object]]], key: str) -> Tuple[InspectionItem, ...]:
    if not data:
        return ()
    raw = data.get(key)
    if not isinstance(raw, (list, tuple)):
        return ()
    return _clean_items(raw)


def evaluate_section_status(
    items: Optional[Iterable[object]],
    section: Optional[InspectionSection],
) -> SectionStatus:
    recorded = _clean_items(items)
    if not recorded or section is None:
        return SectionStatus.NOT_STARTED

    inspected = [item for item in recorded if item.rating is not Rating.NOT_CHECKED]
    if len(inspected) < len(section.active_items):
        return SectionStatus.NOT_STARTED
    if any(item.rating is Rating.NOT_CHECKED for item in recorded):
        return SectionStatus.NOT_STARTED

    ratings = {item.rating for item in recorded}
    if Rating.NEEDS_ATTENTION in ratings:
        return SectionStatus.NEEDS_ATTENTION
    if Rating.FAIR in ratings:
        return SectionStatus.PENDING
    if ratings == {Rating.GREAT}:
        return SectionStatus.COMPLETED
    return SectionStatus.NOT_STARTED


def section_statuses(
    sections: Iterable[InspectionSection],
    data: Optional[Mapping[str, Iterable[object]]],
) -> dict[str, SectionStatus]:
    """Status of every active section, in section order."""
    return {
        section.key: evaluate_section_status(_section_items(data, section.key), section)
        for section in active_sections(sections)
    }


def categorize_statuses(statuses: Iterable[SectionStatus]) -> VehicleCategory:
    status_list = list(statuses)
    if SectionStatus.NEEDS_ATTENTION in status_list:
        return VehicleCategory.NEEDS_ATTENTION
    if status_list and all(status is SectionStatus.COMPLETED for status in status_list):
        return VehicleCategory.COMPLETED
    return VehicleCategory.PENDING


def is_excluded(vehicle: Vehicle) -> bool:
    return vehicle.status in EXCLUDED_VEHICLE_STATUSES


def categorize_vehicle(
    vehicle: Vehicle,
    sections: Iterable[InspectionSection],
    data: Optional[Mapping[str, Iterable[object]]],
) -> Optional[VehicleCategory]:
    """Dashboard bucket for an active vehicle; ``None`` for sold/pending ones."""
    if is_excluded(vehicle):
        return None
    return categorize_statuses(section_statuses(sections, data).values())


def calculate_progress(
    sections: Iterable[InspectionSection],
    data: Optional[Mapping[str, Iterable[object]]],
    *,
    loaded: bool = True,
) -> int:
    if not loaded:
        return 0
    statuses = section_statuses(sections, data)
    if not statuses:
        return 0
    rated = sum(1 for status in statuses.values() if status in RATED_SECTION_STATUSES)
    # Half-up, so 1 of 8 sections reads 13% rather than 12%.
    return int(rated * 100 / len(statuses) + 0.5)


def is_ready_for_sale(
    sections: Iterable[InspectionSection],
    data: Optional[Mapping[str, Iterable[object]]],
) -> bool:
    active = active_sections(sections)
    if not active:
        return False
    for section in active:
        definitions = section.active_items
        if not definitions:
            return False
        recorded = _section_items(data, section.key)
        if len(recorded) != len(definitions):
            return False
        if any(item.rating is not Rating.GREAT for item in recorded):
            return False
    return True


def evaluate_vehicle(
    vehicle: Vehicle,
    sections: Iterable[InspectionSection],
    data: Optional[Mapping[str, Iterable[object]]],
    *,
    loaded: bool = True,
) -> VehicleEvaluation:
    section_list = tuple(sections)
    statuses = section_statuses(section_list, data)
    category = None if is_excluded(vehicle) else categorize_statuses(statuses.values())
    return VehicleEvaluation(
        vehicle_id=vehicle.id,
        section_statuses=tuple(statuses.items()),
        category=category,
        progress=calculate_progress(section_list, data, loaded=loaded),
        ready_for_sale=loaded and is_ready_for_sale(section_list, data),
    )
