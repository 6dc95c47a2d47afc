from __future__ import annotations

import pytest

from backend.recon.filters import (
    Inventory,
    VehicleFilter,
    classify_location_name,
    filter_counts,
    filter_vehicles,
    inventory_summary,
    location_counts,
    matches_search,
    resolve_location_type,
    section_progress_counts,
    virtual_locations,
)
from backend.recon.models import (
    InspectionItem,
    InspectionItemDefinition,
    InspectionSection,
    Location,
    LocationType,
    Rating,
    SectionFilterStatus,
    StatusFilter,
    Vehicle,
    VehicleStatus,
)

G, F, N = Rating.GREAT, Rating.FAIR, Rating.NEEDS_ATTENTION

SECTIONS = (
    InspectionSection(
        key="emissions",
        label="Emissions",
        order=1,
        items=(
            InspectionItemDefinition(id="e1", label="Test", order=1),
            InspectionItemDefinition(id="e2", label="Light", order=2),
        ),
    ),
    InspectionSection(
        key="cosmetic",
        label="Cosmetic",
        order=2,
        items=(InspectionItemDefinition(id="c1", label="Paint", order=1),),
    ),
)

LOCATIONS = (
    Location(id=1, dealership_id="test", name="Main Lot", type=LocationType.ON_SITE),
    Location(id=2, dealership_id="test", name="Body Partner", type=LocationType.OFF_SITE),
    Location(id=3, dealership_id="test", name="In Transit", type=LocationType.IN_TRANSIT),
)


def _vehicle(vehicle_id: int, *, year: int = 2020, location: str = "Main Lot", status=None, **fields) -> Vehicle:
    values = {
        "make": "Toyota",
        "model": "Camry",
        "color": "White",
        "vin": f"4T1BF1FK5CU{vehicle_id:06d}",
    }
    values.update(fields)
    return Vehicle(id=vehicle_id, year=year, location=location, dealership_id="test", status=status, **values)


def _rated(emissions: tuple[Rating, ...], cosmetic: tuple[Rating, ...] = ()) -> dict[str, tuple[InspectionItem, ...]]:
    data: dict[str, tuple[InspectionItem, ...]] = {}
    if emissions:
        data["emissions"] = tuple(
            InspectionItem(id=f"e{index}", label="", rating=rating) for index, rating in enumerate(emissions, start=1)
        )
    if cosmetic:
        data["cosmetic"] = tuple(
            InspectionItem(id=f"c{index}", label="", rating=rating) for index, rating in enumerate(cosmetic, start=1)
        )
    return data


@pytest.fixture()
def fleet():
    vehicles = [
        _vehicle(1, make="Honda", model="Accord", location="Main Lot"),
        _vehicle(2, year=2019, location="Body Partner"),
        _vehicle(3, location="Off-Site Storage B", color="Red"),
        _vehicle(4, location="Auction transport"),
        _vehicle(5, location=""),
        _vehicle(6, location="in transit"),
        _vehicle(7, status=VehicleStatus.SOLD),
        _vehicle(8, status=VehicleStatus.PENDING, location="External lot"),
    ]
    data = {
        1: _rated((G, G), (G,)),
        2: _rated((G, N), (G,)),
        3: _rated((G, F)),
        4: _rated((G,)),
        7: _rated((G, G), (G,)),
        8: _rated((N, N), (N,)),
    }
    return Inventory.partition(vehicles), data


def _ids(vehicles) -> list[int]:
    return sorted(vehicle.id for vehicle in vehicles)


def _filter(inventory, data, **criteria):
    return filter_vehicles(
        inventory,
        VehicleFilter(**criteria),
        sections=SECTIONS,
        inspection_data=data,
        locations=LOCATIONS,
    )


def test_partition_splits_by_vehicle_status(fleet) -> None:
    inventory, _ = fleet
    assert _ids(inventory.active) == [1, 2, 3, 4, 5, 6]
    assert _ids(inventory.sold) == [7]
    assert _ids(inventory.pending) == [8]


def test_no_selection_defaults_to_active_list(fleet) -> None:
    inventory, data = fleet
    assert _ids(_filter(inventory, data)) == [1, 2, 3, 4, 5, 6]


def test_selected_bucket_that_is_empty_stays_empty() -> None:
    inventory = Inventory.partition([_vehicle(1)])
    result = filter_vehicles(
        inventory,
        VehicleFilter(statuses=frozenset({StatusFilter.SOLD})),
        sections=SECTIONS,
        inspection_data={},
    )
    assert result == ()


def test_inspection_filters_use_the_categorizer(fleet) -> None:
    inventory, data = fleet
    assert _ids(_filter(inventory, data, statuses=frozenset({StatusFilter.COMPLETED}))) == [1]
    assert _ids(_filter(inventory, data, statuses=frozenset({StatusFilter.NEEDS_ATTENTION}))) == [2]
    assert _ids(_filter(inventory, data, statuses=frozenset({StatusFilter.ACTIVE}))) == [3, 4, 5, 6]


def test_inspection_filters_combine_as_union(fleet) -> None:
    inventory, data = fleet
    selected = frozenset({StatusFilter.COMPLETED, StatusFilter.NEEDS_ATTENTION})
    assert _ids(_filter(inventory, data, statuses=selected)) == [1, 2]


def test_all_overrides_inspection_filters(fleet) -> None:
    inventory, data = fleet
    selected = frozenset({StatusFilter.ALL, StatusFilter.COMPLETED})
    assert _ids(_filter(inventory, data, statuses=selected)) == [1, 2, 3, 4, 5, 6]


def test_issues_and_sold_can_be_viewed_together(fleet) -> None:
    inventory, data = fleet
    selected = frozenset({StatusFilter.NEEDS_ATTENTION, StatusFilter.SOLD})
    assert _ids(_filter(inventory, data, statuses=selected)) == [2, 7]


def test_sold_vehicle_counts_as_sold_not_ready(fleet) -> None:
    inventory, data = fleet
    counts = filter_counts(inventory, sections=SECTIONS, inspection_data=data)
    assert counts[StatusFilter.COMPLETED] == 1
    assert counts[StatusFilter.SOLD] == 1
    assert 7 not in _ids(_filter(inventory, data, statuses=frozenset({StatusFilter.COMPLETED})))
    assert _ids(_filter(inventory, data, statuses=frozenset({StatusFilter.SOLD}))) == [7]


def test_pending_vehicle_red_data_is_not_an_issue(fleet) -> None:
    inventory, data = fleet
    counts = filter_counts(inventory, sections=SECTIONS, inspection_data=data)
    assert counts[StatusFilter.NEEDS_ATTENTION] == 1
    assert counts[StatusFilter.VEHICLE_PENDING] == 1


@pytest.mark.parametrize("status", list(StatusFilter))
def test_status_counts_match_filtered_lists(fleet, status: StatusFilter) -> None:
    inventory, data = fleet
    counts = filter_counts(inventory, sections=SECTIONS, inspection_data=data)
    assert len(_filter(inventory, data, statuses=frozenset({status}))) == counts[status]


def test_location_counts_match_filtered_lists(fleet) -> None:
    inventory, data = fleet
    counts = location_counts(inventory.active, LOCATIONS)
    assert counts.all == len(inventory.active)
    for bucket, count in counts.buckets.items():
        assert len(_filter(inventory, data, locations=frozenset({bucket.value}))) == count
    for name, count in counts.by_name.items():
        assert len(_filter(inventory, data, locations=frozenset({name}))) == count


def test_location_buckets_resolve_formal_rows_then_keywords(fleet) -> None:
    inventory, _ = fleet
    counts = location_counts(inventory.active, LOCATIONS)
    assert counts.buckets == {
        LocationType.ON_SITE: 2,
        LocationType.OFF_SITE: 2,
        LocationType.IN_TRANSIT: 2,
    }
    assert counts.by_name == {"Main Lot": 1, "Body Partner": 1}


@pytest.mark.parametrize("key", list(SectionFilterStatus))
def test_section_counts_match_filtered_lists(fleet, key: SectionFilterStatus) -> None:
    inventory, data = fleet
    counts = section_progress_counts(inventory.active, "emissions", sections=SECTIONS, inspection_data=data)
    filtered = _filter(inventory, data, section_key="emissions", section_status=key)
    assert len(filtered) == counts[key]


def test_section_filter_maps_to_section_status(fleet) -> None:
    inventory, data = fleet
    assert _ids(_filter(inventory, data, section_key="emissions", section_status=SectionFilterStatus.READY)) == [1]
    assert _ids(_filter(inventory, data, section_key="emissions", section_status=SectionFilterStatus.ISSUES)) == [2]
    assert _ids(_filter(inventory, data, section_key="emissions", section_status=SectionFilterStatus.WORKING)) == [3]
    assert _ids(_filter(inventory, data, section_key="emissions", section_status=SectionFilterStatus.UNCHECKED)) == [4, 5, 6]


def test_search_matches_year_as_text(fleet) -> None:
    inventory, data = fleet
    assert _ids(_filter(inventory, data, search="2019")) == [2]
    assert matches_search(_vehicle(10, year=2019), "2019")


def test_search_is_case_insensitive_across_fields(fleet) -> None:
    inventory, data = fleet
    assert _ids(_filter(inventory, data, search="ACCORD")) == [1]
    assert _ids(_filter(inventory, data, search="red")) == [3]
    assert _ids(_filter(inventory, data, search="storage b")) == [3]
    assert _ids(_filter(inventory, data, search="   ")) == [1, 2, 3, 4, 5, 6]


def test_filters_apply_in_sequence(fleet) -> None:
    inventory, data = fleet
    result = _filter(
        inventory,
        data,
        statuses=frozenset({StatusFilter.ACTIVE}),
        locations=frozenset({LocationType.OFF_SITE.value}),
        search="red",
    )
    assert _ids(result) == [3]


def test_location_all_disables_location_filter(fleet) -> None:
    inventory, data = fleet
    assert len(_filter(inventory, data, locations=frozenset({"all", "in-transit"}))) == 6


def test_unrecognized_free_text_location_uses_keywords() -> None:
    assert classify_location_name("Off-Site Storage B") is LocationType.OFF_SITE
    assert resolve_location_type("Off-Site Storage B", LOCATIONS) is LocationType.OFF_SITE
    assert classify_location_name("Transport truck 4") is LocationType.IN_TRANSIT
    assert classify_location_name("External detailer") is LocationType.OFF_SITE
    assert classify_location_name("Showroom") is LocationType.ON_SITE
    assert classify_location_name(None) is LocationType.ON_SITE


def test_formal_location_type_wins_over_keywords() -> None:
    locations = (Location(id=9, dealership_id="test", name="Storage Annex", type=LocationType.ON_SITE),)
    assert resolve_location_type("storage annex", locations) is LocationType.ON_SITE


def test_virtual_locations_skip_formal_rows(fleet) -> None:
    inventory, _ = fleet
    names = {
        location.name: location.type
        for location in virtual_locations(inventory.active + inventory.pending, LOCATIONS)
    }
    assert names == {
        "Off-Site Storage B": LocationType.OFF_SITE,
        "Auction transport": LocationType.IN_TRANSIT,
        "External lot": LocationType.OFF_SITE,
    }


def test_unloaded_data_counts_nothing_per_category(fleet) -> None:
    inventory, data = fleet
    counts = filter_counts(inventory, sections=SECTIONS, inspection_data=data, loaded=False)
    assert counts[StatusFilter.ALL] == 6
    assert counts[StatusFilter.COMPLETED] == counts[StatusFilter.ACTIVE] == counts[StatusFilter.NEEDS_ATTENTION] == 0
    result = filter_vehicles(
        inventory,
        VehicleFilter(statuses=frozenset({StatusFilter.COMPLETED})),
        sections=SECTIONS,
        inspection_data=data,
        loaded=False,
    )
    assert result == ()


def test_inventory_summary_tiles(fleet) -> None:
    inventory, data = fleet
    summary = inventory_summary(inventory, sections=SECTIONS, inspection_data=data, locations=LOCATIONS)
    assert summary.total_vehicles == 6
    assert (summary.completed, summary.needs_attention, summary.working) == (1, 1, 4)
    assert (summary.sold, summary.pending_sale) == (1, 1)
    assert (summary.on_site, summary.off_site, summary.in_transit) == (2, 2, 2)
