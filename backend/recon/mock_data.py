"""Utility helpers for seeding a demo dealership inventory."""

from __future__ import annotations

import argparse
import logging
import random
import textwrap
from pathlib import Path

from .app import DEFAULT_DATABASE_PATH, DEFAULT_DEALERSHIP_ID, DEFAULT_LOCATIONS, ReconTrackerApp
from .models import Rating, StatusFilter, Vehicle

_VIN_ALPHABET = "ABCDEFGHJKLMNPRSTUVWXYZ0123456789"

_MODELS = [
    ("Toyota", "Camry", ["SE", "XLE"]),
    ("Honda", "Accord", ["Sport", "EX-L"]),
    ("Ford", "F-150", ["XLT", "Lariat"]),
    ("Chevrolet", "Equinox", ["LT", "Premier"]),
    ("Subaru", "Outback", ["Premium", "Limited"]),
    ("Mazda", "CX-5", ["Touring", "Grand Touring"]),
    ("Hyundai", "Tucson", ["SEL", "Limited"]),
]
_COLORS = ["Black", "White", "Silver", "Gray", "Blue", "Red"]
_INSPECTORS = ["tech.jordan", "tech.riley", "tech.morgan"]
_EXTRA_LOCATIONS = ["Body Shop (external)", "Auction transport", "Overflow storage"]

# Rating weights per item: mostly great, some fair, occasional issue.
_RATING_WEIGHTS = [
    (Rating.GREAT, 70),
    (Rating.FAIR, 15),
    (Rating.NEEDS_ATTENTION, 5),
    (Rating.NOT_CHECKED, 10),
]


def _random_vin(rng: random.Random) -> str:
    return "".join(rng.choice(_VIN_ALPHABET) for _ in range(17))


def _random_rating(rng: random.Random) -> Rating:
    ratings, weights = zip(*_RATING_WEIGHTS)
    return rng.choices(ratings, weights=weights, k=1)[0]


def _rate_vehicle(app: ReconTrackerApp, vehicle: Vehicle, *, rng: random.Random) -> None:
    inspector = rng.choice(_INSPECTORS)
    session = app.open_checklist(vehicle.id, inspector_id=inspector)
    # Walk sections in order and stop partway through for some vehicles.
    sections_to_rate = rng.randint(0, len(session.sections))
    for section in session.sections[:sections_to_rate]:
        if not section.is_active:
            continue
        for item in section.active_items:
            session.set_rating(section.key, item.id, _random_rating(rng), updated_by=inspector)


def generate_mock_data(
    app: ReconTrackerApp,
    *,
    dealership_id: str = DEFAULT_DEALERSHIP_ID,
    total_vehicles: int = 40,
    seed: int = 42,
) -> list[Vehicle]:
    rng = random.Random(seed)
    locations = [name for name, _type, _description in DEFAULT_LOCATIONS] + _EXTRA_LOCATIONS
    vehicles: list[Vehicle] = []

    for index in range(total_vehicles):
        make, model, trims = _MODELS[index % len(_MODELS)]
        vin = _random_vin(rng)
        while app.database.get_vehicle_by_vin(vin):
            vin = _random_vin(rng)
        vehicle = app.add_vehicle(
            dealership_id=dealership_id,
            vin=vin,
            year=rng.randint(2015, 2024),
            make=make,
            model=model,
            trim=rng.choice(trims),
            color=rng.choice(_COLORS),
            mileage=rng.randint(5_000, 120_000),
            location=rng.choice(locations),
        )
        _rate_vehicle(app, vehicle, rng=rng)

        roll = rng.random()
        if roll < 0.1:
            vehicle = app.mark_sold(vehicle.id)
        elif roll < 0.18:
            vehicle = app.mark_pending(vehicle.id)

        if rng.random() < 0.25:
            vehicle = app.add_team_note(
                vehicle.id,
                author=rng.choice(_INSPECTORS),
                content=rng.choice(
                    [
                        "Waiting on brake pads.",
                        "Customer interested, hold for test drive.",
                        "Touch-up paint on rear bumper.",
                    ]
                ),
            )
        vehicles.append(vehicle)
    return vehicles


def _summarize(app: ReconTrackerApp, dealership_id: str) -> str:
    counts = app.dashboard_snapshot(dealership_id).counts()
    return textwrap.dedent(
        f"""
        Inventory for {dealership_id}: {counts[StatusFilter.ALL]} active vehicles.
        Ready {counts[StatusFilter.COMPLETED]}, working {counts[StatusFilter.ACTIVE]}, issues {counts[StatusFilter.NEEDS_ATTENTION]}.
        Sold {counts[StatusFilter.SOLD]}, pending sale {counts[StatusFilter.VEHICLE_PENDING]}.
        """
    ).strip()


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a mock reconditioning inventory.")
    parser.add_argument(
        "--database",
        default=str(DEFAULT_DATABASE_PATH),
        help="Path to the SQLite database file (default: %(default)s)",
    )
    parser.add_argument(
        "--dealership",
        default=DEFAULT_DEALERSHIP_ID,
        help="Dealership identifier to seed (default: %(default)s)",
    )
    parser.add_argument(
        "--vehicles",
        type=int,
        default=40,
        help="Number of vehicles to generate (default: %(default)s)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed for reproducible data (default: %(default)s)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)
    app = ReconTrackerApp.create(Path(args.database))
    app.seed_defaults(args.dealership)
    generate_mock_data(app, dealership_id=args.dealership, total_vehicles=args.vehicles, seed=args.seed)
    print(_summarize(app, args.dealership))


if __name__ == "__main__":  # pragma: no cover - script entry point
    main()
