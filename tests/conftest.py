from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.recon import ReconTrackerApp
from backend.recon.app import DEFAULT_DEALERSHIP_ID
from backend.recon.models import Vehicle


@pytest.fixture()
def app(tmp_path: Path) -> ReconTrackerApp:
    app = ReconTrackerApp.create(tmp_path / "test_recon.db")
    return app


@pytest.fixture()
def seeded_app(app: ReconTrackerApp) -> ReconTrackerApp:
    app.seed_defaults()
    return app


@pytest.fixture()
def dealership_id() -> str:
    return DEFAULT_DEALERSHIP_ID


@pytest.fixture()
def vehicle(seeded_app: ReconTrackerApp, dealership_id: str) -> Vehicle:
    return seeded_app.add_vehicle(
        dealership_id=dealership_id,
        vin="1HGCM82633A004352",
        year=2019,
        make="Honda",
        model="Accord",
        color="Silver",
        location="Main Lot",
    )
