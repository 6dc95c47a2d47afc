"""Dashboard filtering and the counts shown on its summary tiles.

Counts and filters share the same predicates, so the number on a tile always
equals the length of the list produced by clicking it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Tuple

from .models import (
    InspectionSection,
    Location,
    LocationType,
    SectionFilterStatus,
    SectionStatus,
    StatusFilter,
    Vehicle,
    VehicleCategory,
    VehicleInspectionData,
    VehicleStatus,
    VirtualLocation,
)
from .sections import active_sections, find_section
from .status import categorize_vehicle, evaluate_section_status, is_excluded

IN_TRANSIT_KEYWORDS = ("transit", "transport")
OFF_SITE_KEYWORDS = ("off-site", "storage", "external")
# Formal rows named like the in-transit bucket are not counted twice.
BUCKET_ALIASES = frozenset({"in transit", "in-transit"})

INSPECTION_FILTERS: dict[StatusFilter, VehicleCategory] = {
    StatusFilter.ACTIVE: VehicleCategory.PENDING,
    StatusFilter.COMPLETED: VehicleCategory.COMPLETED,
    StatusFilter.NEEDS_ATTENTION: VehicleCategory.NEEDS_ATTENTION,
}

SECTION_FILTER_STATUSES: dict[SectionFilterStatus, SectionStatus] = {
    SectionFilterStatus.READY: SectionStatus.COMPLETED,
    SectionFilterStatus.WORKING: SectionStatus.PENDING,
    SectionFilterStatus.ISSUES: SectionStatus.NEEDS_ATTENTION,
    SectionFilterStatus.UNCHECKED: SectionStatus.NOT_STARTED,
}

InspectionDataByVehicle = Mapping[int, VehicleInspectionData]


@dataclass(frozen=True)
class Inventory:
    active: Tuple[Vehicle, ...] = ()
    sold: Tuple[Vehicle, ...] = ()
    pending: Tuple[Vehicle, ...] = ()

    @classmethod
    def partition(cls, vehicles: Iterable[Vehicle]) -> "Inventory":
        active: list[Vehicle] = []
        sold: list[Vehicle] = []
        pending: list[Vehicle] = []
        for vehicle in vehicles:
            if vehicle.status is VehicleStatus.SOLD:
                sold.append(vehicle)
            elif vehicle.status is VehicleStatus.PENDING:
                pending.append(vehicle)
            else:
                active.append(vehicle)
        return cls(active=tuple(active), sold=tuple(sold), pending=tuple(pending))


@dataclass(frozen=True)
class VehicleFilter:
    statuses: FrozenSet[StatusFilter] = frozenset()
    locations: FrozenSet[str] = frozenset()
    search: str = ""
    section_key: Optional[str] = None
    section_status: Optional[SectionFilterStatus] = None

    @property
    def has_location_filter(self) -> bool:
        return bool(self.locations) and "all" not in self.locations

    @property
    def has_section_filter(self) -> bool:
        return bool(self.section_key) and self.section_status is not None


@dataclass(frozen=True)
class LocationCounts:
    all: int
    buckets: Dict[LocationType, int] = field(default_factory=dict)
    by_name: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class InventorySummary:
    total_vehicles: int
    working: int
    completed: int
    needs_attention: int
    sold: int
    pending_sale: int
    on_site: int
    off_site: int
    in_transit: int


# Locations -------------------------------------------------------------------

def classify_location_name(name: Optional[str]) -> LocationType:
    lowered = (name or "").lower()
    if any(keyword in lowered for keyword in IN_TRANSIT_KEYWORDS):
        return LocationType.IN_TRANSIT
    if any(keyword in lowered for keyword in OFF_SITE_KEYWORDS):
        return LocationType.OFF_SITE
    return LocationType.ON_SITE


def find_location(name: Optional[str], locations: Iterable[Location]) -> Optional[Location]:
    lowered = (name or "").strip().lower()
    if not lowered:
        return None
    return next((location for location in locations if location.name.lower() == lowered), None)


def resolve_location_type(name: Optional[str], locations: Iterable[Location]) -> LocationType:
    """Formal location type when a row matches the name, keyword heuristics otherwise."""
    location = find_location(name, locations)
    if location is not None:
        return location.type
    return classify_location_name(name)


def virtual_locations(vehicles: Iterable[Vehicle], locations: Iterable[Location]) -> Tuple[VirtualLocation, ...]:
    formal = {location.name.lower() for location in locations}
    counts: dict[str, int] = {}
    names: dict[str, str] = {}
    for vehicle in vehicles:
        name = (vehicle.location or "").strip()
        if not name or name.lower() in formal:
            continue
        key = name.lower()
        names.setdefault(key, name)
        counts[key] = counts.get(key, 0) + 1
    return tuple(
        VirtualLocation(name=names[key], type=classify_location_name(names[key]), vehicle_count=counts[key])
        for key in sorted(names)
    )


# Predicates ------------------------------------------------------------------

def _data_for(inspection_data: InspectionDataByVehicle, vehicle: Vehicle) -> VehicleInspectionData:
    return inspection_data.get(vehicle.id) or {}


def matches_search(vehicle: Vehicle, search: str) -> bool:
    term = search.strip().lower()
    if not term:
        return True
    fields = (vehicle.make, vehicle.model, str(vehicle.year), vehicle.vin, vehicle.color, vehicle.location)
    return any(term in (value or "").lower() for value in fields)


def matches_location(vehicle: Vehicle, selected: Iterable[str], locations: Sequence[Location]) -> bool:
    bucket_values = {bucket.value for bucket in LocationType}
    vehicle_name = (vehicle.location or "").strip().lower()
    for value in selected:
        if value in bucket_values:
            if resolve_location_type(vehicle.location, locations).value == value:
                return True
        elif vehicle_name and vehicle_name == value.strip().lower():
            return True
    return False


def section_filter_status(
    vehicle: Vehicle,
    section_key: str,
    sections: Sequence[InspectionSection],
    inspection_data: InspectionDataByVehicle,
) -> SectionFilterStatus:
    section = find_section(active_sections(sections), section_key)
    items = _data_for(inspection_data, vehicle).get(section_key, ())
    status = evaluate_section_status(items, section)
    return next(key for key, value in SECTION_FILTER_STATUSES.items() if value is status)


# Filtering -------------------------------------------------------------------

def _select_buckets(inventory: Inventory, statuses: FrozenSet[StatusFilter]) -> list[Vehicle]:
    selected: list[Vehicle] = []
    if StatusFilter.SOLD in statuses:
        selected.extend(inventory.sold)
    if StatusFilter.VEHICLE_PENDING in statuses:
        selected.extend(inventory.pending)
    if statuses & {StatusFilter.ALL, *INSPECTION_FILTERS}:
        selected.extend(inventory.active)
    if not statuses:
        selected = list(inventory.active)
    return selected


def _apply(vehicles: list[Vehicle], predicate: Callable[[Vehicle], bool]) -> list[Vehicle]:
    return [vehicle for vehicle in vehicles if predicate(vehicle)]


def filter_vehicles(
    inventory: Inventory,
    criteria: VehicleFilter,
    *,
    sections: Sequence[InspectionSection],
    inspection_data: InspectionDataByVehicle,
    locations: Sequence[Location] = (),
    loaded: bool = True,
) -> Tuple[Vehicle, ...]:
    statuses = frozenset(criteria.statuses)
    vehicles = _select_buckets(inventory, statuses)

    wanted = {INSPECTION_FILTERS[status] for status in statuses if status in INSPECTION_FILTERS}
    if wanted and StatusFilter.ALL not in statuses:
        categorized = [
            vehicle
            for vehicle in vehicles
            if not is_excluded(vehicle)
            and loaded
            and categorize_vehicle(vehicle, sections, _data_for(inspection_data, vehicle)) in wanted
        ]
        if statuses & {StatusFilter.SOLD, StatusFilter.VEHICLE_PENDING}:
            categorized = [vehicle for vehicle in vehicles if is_excluded(vehicle)] + categorized
        vehicles = categorized

    if criteria.has_location_filter:
        vehicles = _apply(vehicles, lambda vehicle: matches_location(vehicle, criteria.locations, locations))

    if criteria.search.strip():
        vehicles = _apply(vehicles, lambda vehicle: matches_search(vehicle, criteria.search))

    if criteria.has_section_filter:
        if not loaded:
            return ()
        section_key = criteria.section_key or ""
        vehicles = _apply(
            vehicles,
            lambda vehicle: section_filter_status(vehicle, section_key, sections, inspection_data)
            is criteria.section_status,
        )

    return tuple(vehicles)


# Counts ----------------------------------------------------------------------

def filter_counts(
    inventory: Inventory,
    *,
    sections: Sequence[InspectionSection],
    inspection_data: InspectionDataByVehicle,
    loaded: bool = True,
) -> dict[StatusFilter, int]:
    counts = {status: 0 for status in StatusFilter}
    counts[StatusFilter.ALL] = len(inventory.active)
    counts[StatusFilter.SOLD] = len(inventory.sold)
    counts[StatusFilter.VEHICLE_PENDING] = len(inventory.pending)
    if not loaded:
        return counts
    by_category = {category: status for status, category in INSPECTION_FILTERS.items()}
    for vehicle in inventory.active:
        category = categorize_vehicle(vehicle, sections, _data_for(inspection_data, vehicle))
        if category is not None:
            counts[by_category[category]] += 1
    return counts


def location_counts(vehicles: Iterable[Vehicle], locations: Sequence[Location]) -> LocationCounts:
    vehicle_list = list(vehicles)
    buckets = {bucket: 0 for bucket in LocationType}
    by_name: dict[str, int] = {}
    for vehicle in vehicle_list:
        buckets[resolve_location_type(vehicle.location, locations)] += 1
        location = find_location(vehicle.location, locations)
        if location is not None and location.name.lower() not in BUCKET_ALIASES:
            by_name[location.name] = by_name.get(location.name, 0) + 1
    return LocationCounts(all=len(vehicle_list), buckets=buckets, by_name=by_name)


def section_progress_counts(
    vehicles: Iterable[Vehicle],
    section_key: Optional[str],
    *,
    sections: Sequence[InspectionSection],
    inspection_data: InspectionDataByVehicle,
    loaded: bool = True,
) -> dict[SectionFilterStatus, int]:
    counts = {status: 0 for status in SectionFilterStatus}
    if not section_key or not loaded:
        return counts
    for vehicle in vehicles:
        counts[section_filter_status(vehicle, section_key, sections, inspection_data)] += 1
    return counts


def inventory_summary(
    inventory: Inventory,
    *,
    sections: Sequence[InspectionSection],
    inspection_data: InspectionDataByVehicle,
    locations: Sequence[Location] = (),
    loaded: bool = True,
) -> InventorySummary:
    counts = filter_counts(inventory, sections=sections, inspection_data=inspection_data, loaded=loaded)
    by_location = location_counts(inventory.active, locations)
    return InventorySummary(
        total_vehicles=counts[StatusFilter.ALL],
        working=counts[StatusFilter.ACTIVE],
        completed=counts[StatusFilter.COMPLETED],
        needs_attention=counts[StatusFilter.NEEDS_ATTENTION],
        sold=counts[StatusFilter.SOLD],
        pending_sale=counts[StatusFilter.VEHICLE_PENDING],
        on_site=by_location.buckets[LocationType.ON_SITE],
        off_site=by_location.buckets[LocationType.OFF_SITE],
        in_transit=by_location.buckets[LocationType.IN_TRANSIT],
    )
