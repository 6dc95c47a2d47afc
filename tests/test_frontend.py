from __future__ import annotations

import io
import json
from http import HTTPStatus
from pathlib import Path
from urllib.parse import urlencode

import pytest

from openpyxl import load_workbook

from backend.recon.app import DEFAULT_DEALERSHIP_ID
from frontend.app import Request, create_app


class FrontendClient:
    def __init__(self, app):
        self.app = app

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, object] | None = None,
        payload: dict[str, object] | None = None,
    ):
        headers: dict[str, str] = {}
        target = path
        if params:
            target = f"{path}?{urlencode(params, doseq=True)}"
        body = b""
        if payload is not None:
            body = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        request = Request(method=method, target=target, headers=headers, body=body)
        return self.app.handle(request)

    def get(self, path: str, **params: object):
        return self.request("GET", path, params=params or None)

    def post(self, path: str, payload: dict[str, object]):
        return self.request("POST", path, payload=payload)


@pytest.fixture
def app(tmp_path: Path):
    db_path = tmp_path / "frontend_test.db"
    return create_app(db_path)


@pytest.fixture
def client(app):
    return FrontendClient(app)


def _create_vehicle(client: FrontendClient, vin: str, **fields: object) -> dict:
    payload = {"vin": vin, "year": 2020, "make": "Subaru", "model": "Outback", "color": "Green", "location": "Main Lot"}
    payload.update(fields)
    response = client.post("/api/vehicles", payload)
    assert response.status == HTTPStatus.CREATED
    return response.json()


def _rate_everything(client: FrontendClient, vehicle_id: int, rating: str = "G") -> dict:
    sections = client.get("/api/sections").json()["sections"]
    body: dict = {}
    for section in sections:
        for item in section["items"]:
            response = client.post(
                f"/api/vehicles/{vehicle_id}/ratings",
                {"section": section["key"], "item": item["id"], "rating": rating, "inspector": "tech.morgan"},
            )
            assert response.status == HTTPStatus.OK
            body = response.json()
    return body


def test_sections_endpoint_lists_defaults(client: FrontendClient):
    response = client.get("/api/sections")
    assert response.status == HTTPStatus.OK
    assert ("Content-Type", "application/json") in response.headers
    body = response.json()
    assert [section["key"] for section in body["sections"]] == ["emissions", "cosmetic", "mechanical", "cleaning", "photos"]
    assert body["sections"][4]["isCustomerVisible"] is False


def test_create_and_fetch_vehicle(client: FrontendClient):
    created = _create_vehicle(client, "4S4BSANC5K3200001")
    assert created["stockNumber"] == "200001"
    assert created["category"] == "pending"
    assert created["progress"] == 0
    assert created["locationType"] == "on-site"

    detail = client.get(f"/api/vehicles/{created['id']}").json()
    assert detail["vin"] == "4S4BSANC5K3200001"
    assert detail["inspection"] == {}
    assert len(detail["sections"]) == 5


def test_create_vehicle_validation(client: FrontendClient):
    _create_vehicle(client, "4S4BSANC5K3200002")
    duplicate = client.post("/api/vehicles", {"vin": "4S4BSANC5K3200002", "year": 2020, "make": "A", "model": "B"})
    assert duplicate.status == HTTPStatus.BAD_REQUEST
    missing = client.post("/api/vehicles", {"vin": "4S4BSANC5K3200003"})
    assert missing.status == HTTPStatus.BAD_REQUEST
    assert "year" in missing.json()["error"]


def test_record_rating_returns_derived_state(client: FrontendClient):
    vehicle = _create_vehicle(client, "4S4BSANC5K3200004")
    response = client.post(
        f"/api/vehicles/{vehicle['id']}/ratings",
        {"section": "emissions", "item": "emissions-1", "rating": "F", "inspector": "tech.morgan"},
    )
    body = response.json()
    assert body["item"]["rating"] == "F"
    assert body["item"]["updatedBy"] == "tech.morgan"
    assert body["saveStatus"] == "saved"
    assert body["sectionStatuses"]["emissions"] == "not-started"
    assert body["progress"] == 0

    detail = client.get(f"/api/vehicles/{vehicle['id']}").json()
    assert detail["inspection"]["emissions"][0]["ratingLabel"] == "Fair"


def test_rating_errors_map_to_status_codes(client: FrontendClient):
    vehicle = _create_vehicle(client, "4S4BSANC5K3200005")
    path = f"/api/vehicles/{vehicle['id']}/ratings"
    bad_rating = client.post(path, {"section": "emissions", "item": "emissions-1", "rating": "A+", "inspector": "x"})
    assert bad_rating.status == HTTPStatus.BAD_REQUEST
    no_section = client.post(path, {"section": "bogus", "item": "emissions-1", "rating": "G", "inspector": "x"})
    assert no_section.status == HTTPStatus.NOT_FOUND
    no_inspector = client.post(path, {"section": "emissions", "item": "emissions-1", "rating": "G"})
    assert no_inspector.status == HTTPStatus.BAD_REQUEST
    missing_vehicle = client.post("/api/vehicles/999/ratings", {"section": "emissions", "item": "x", "rating": "G", "inspector": "x"})
    assert missing_vehicle.status == HTTPStatus.NOT_FOUND


def test_full_green_inspection_is_ready_for_sale(client: FrontendClient):
    vehicle = _create_vehicle(client, "4S4BSANC5K3200006")
    body = _rate_everything(client, vehicle["id"])
    assert body["progress"] == 100
    assert body["readyForSale"] is True

    detail = client.get(f"/api/vehicles/{vehicle['id']}").json()
    assert detail["category"] == "completed"
    assert set(detail["sectionStatuses"].values()) == {"completed"}


def test_dashboard_counts_match_vehicle_filters(client: FrontendClient):
    ready = _create_vehicle(client, "4S4BSANC5K3200007")
    _create_vehicle(client, "4S4BSANC5K3200008", location="Auction transport")
    sold = _create_vehicle(client, "4S4BSANC5K3200009", year=2019)
    _rate_everything(client, ready["id"])
    status_response = client.post(f"/api/vehicles/{sold['id']}/status", {"status": "sold"})
    assert status_response.json()["status"] == "sold"

    dashboard = client.get("/api/dashboard", section="emissions").json()
    assert dashboard["counts"]["all"] == 2
    assert dashboard["counts"]["completed"] == 1
    assert dashboard["counts"]["sold"] == 1
    assert dashboard["summary"]["inTransit"] == 1
    assert dashboard["sectionCounts"]["ready"] == 1
    assert dashboard["sectionCounts"]["unchecked"] == 1

    for status, count in dashboard["counts"].items():
        listing = client.get("/api/vehicles", status=status).json()
        assert listing["count"] == count

    ready_list = client.get("/api/vehicles", status="completed").json()
    assert [vehicle["id"] for vehicle in ready_list["vehicles"]] == [ready["id"]]
    combined = client.get("/api/vehicles", status="completed,sold").json()
    assert {vehicle["id"] for vehicle in combined["vehicles"]} == {ready["id"], sold["id"]}


def test_vehicle_search_and_location_filters(client: FrontendClient):
    _create_vehicle(client, "4S4BSANC5K3200010", year=2019)
    _create_vehicle(client, "4S4BSANC5K3200011", location="Off-Site Storage B")

    by_year = client.get("/api/vehicles", q="2019").json()
    assert [vehicle["vin"] for vehicle in by_year["vehicles"]] == ["4S4BSANC5K3200010"]

    off_site = client.get("/api/vehicles", location="off-site").json()
    assert [vehicle["vin"] for vehicle in off_site["vehicles"]] == ["4S4BSANC5K3200011"]
    assert off_site["vehicles"][0]["locationType"] == "off-site"

    by_section = client.get("/api/vehicles", section="emissions", section_status="unchecked").json()
    assert by_section["count"] == 2


def test_invalid_filters_are_rejected(client: FrontendClient):
    assert client.get("/api/vehicles", status="archived").status == HTTPStatus.BAD_REQUEST
    response = client.get("/api/vehicles", section="emissions", section_status="done")
    assert response.status == HTTPStatus.BAD_REQUEST


def test_vehicle_status_transitions(client: FrontendClient):
    vehicle = _create_vehicle(client, "4S4BSANC5K3200012")
    path = f"/api/vehicles/{vehicle['id']}/status"
    assert client.post(path, {"status": "pending"}).json()["category"] is None
    reactivated = client.post(path, {"status": "active"}).json()
    assert reactivated["status"] is None
    assert reactivated["category"] == "pending"
    assert client.post(path, {"status": "archived"}).status == HTTPStatus.BAD_REQUEST


def test_locations_endpoint_includes_virtual_locations(client: FrontendClient):
    _create_vehicle(client, "4S4BSANC5K3200013", location="Transport carrier")
    body = client.get("/api/locations").json()
    assert {location["name"] for location in body["locations"]} >= {"Main Lot", "In Transit"}
    assert body["virtualLocations"] == [{"name": "Transport carrier", "type": "in-transit", "vehicleCount": 1}]


def test_export_returns_workbook(client: FrontendClient):
    vehicle = _create_vehicle(client, "4S4BSANC5K3200014")
    _rate_everything(client, vehicle["id"])
    response = client.get("/api/export", customer="1")
    assert response.status == HTTPStatus.OK
    headers = dict(response.headers)
    assert headers["Content-Type"].startswith("application/vnd.openxmlformats")
    assert "attachment" in headers["Content-Disposition"]

    workbook = load_workbook(io.BytesIO(response.body))
    sheet = workbook["Vehicles"]
    header_row = [cell.value for cell in sheet[1]]
    assert "Photos" not in header_row
    assert sheet.max_row == 2


def test_unknown_routes_return_not_found(client: FrontendClient):
    assert client.get("/api/nothing").status == HTTPStatus.NOT_FOUND
    assert client.get("/api/vehicles/abc").status == HTTPStatus.NOT_FOUND
    assert client.get(f"/api/dashboard?dealership={DEFAULT_DEALERSHIP_ID}").status == HTTPStatus.OK


def test_wsgi_entry_point(app):
    captured: dict[str, object] = {}

    def start_response(status, headers):
        captured["status"] = status
        captured["headers"] = headers

    environ = {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": "/api/sections",
        "QUERY_STRING": "",
        "wsgi.input": io.BytesIO(b""),
    }
    body = b"".join(app.wsgi_app(environ, start_response))
    assert captured["status"] == "200 OK"
    assert json.loads(body)["sections"]
