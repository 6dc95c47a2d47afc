from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from pathlib import Path
from typing import Any, Callable, Iterable, Optional
from urllib.parse import parse_qs, urlparse

from backend.recon.app import DEFAULT_DATABASE_PATH, DEFAULT_DEALERSHIP_ID, ReconTrackerApp
from backend.recon.dashboard import DashboardSnapshot
from backend.recon.filters import VehicleFilter, resolve_location_type
from backend.recon.models import (
    Location,
    SectionFilterStatus,
    StatusFilter,
    Vehicle,
    VirtualLocation,
)
from backend.recon.sections import RATING_LABEL_KEYS, section_to_dict, serialize_inspection_data, serialize_item
from backend.recon.status import VehicleEvaluation

_logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass
class Request:
    method: str
    target: str
    headers: dict[str, str]
    body: bytes = b""

    def __post_init__(self) -> None:
        parsed = urlparse(self.target)
        self.path = parsed.path or "/"
        self.query = parse_qs(parsed.query)

    def query_value(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self.query.get(name)
        return values[0] if values else default

    def query_values(self, name: str) -> list[str]:
        # Accept both repeated parameters and comma separated lists.
        values: list[str] = []
        for entry in self.query.get(name, []):
            values.extend(part.strip() for part in entry.split(",") if part.strip())
        return values

    def json(self) -> dict[str, Any]:
        if not self.body:
            return {}
        try:
            payload = json.loads(self.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValueError("Request body must be valid JSON") from exc
        if not isinstance(payload, dict):
            raise ValueError("Request body must be a JSON object")
        return payload


@dataclass
class Response:
    status: HTTPStatus = HTTPStatus.OK
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes | str = ""

    def add_header(self, name: str, value: str) -> None:
        self.headers.append((name, value))

    def json(self) -> Any:
        raw = self.body.decode("utf-8") if isinstance(self.body, bytes) else self.body
        return json.loads(raw)


class ReconTrackerWebApp:
    def __init__(self, database_path: Path) -> None:
        self.service = ReconTrackerApp.create(database_path)
        self.service.seed_defaults()

    # Public API -----------------------------------------------------------------
    def wsgi_app(self, environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        method = environ["REQUEST_METHOD"]
        target = environ.get("RAW_URI") or environ.get("PATH_INFO", "/")
        if environ.get("QUERY_STRING") and "?" not in target:
            target = f"{target}?{environ['QUERY_STRING']}"
        length = int(environ.get("CONTENT_LENGTH") or 0)
        body = environ["wsgi.input"].read(length) if length else b""
        headers = {key: value for key, value in environ.items() if key.startswith("HTTP_")}
        if "CONTENT_TYPE" in environ:
            headers["Content-Type"] = environ["CONTENT_TYPE"]
        request = Request(method=method, target=target, headers=headers, body=body)
        response = self.handle(request)
        start_response(f"{response.status.value} {response.status.phrase}", response.headers)
        body = response.body if isinstance(response.body, bytes) else response.body.encode("utf-8")
        return [body]

    def handle(self, request: Request) -> Response:
        route = self._match_route(request)
        if not route:
            return self._error(HTTPStatus.NOT_FOUND, "Not found")
        handler, params = route
        try:
            response = handler(request, **params)
        except LookupError as exc:
            return self._error(HTTPStatus.NOT_FOUND, str(exc))
        except ValueError as exc:
            _logger.info("Rejected %s %s: %s", request.method, request.path, exc)
            return self._error(HTTPStatus.BAD_REQUEST, str(exc))
        if not any(name.lower() == "content-type" for name, _ in response.headers):
            response.add_header("Content-Type", "application/json")
        return response

    def run(self, host: str = "127.0.0.1", port: int = 8000) -> None:
        from wsgiref.simple_server import make_server

        with make_server(host, port, self.wsgi_app) as httpd:
            print(f"Serving on http://{host}:{port}")
            httpd.serve_forever()

    # Routing --------------------------------------------------------------------
    def _match_route(self, request: Request) -> Optional[tuple[Callable, dict[str, Any]]]:
        simple_routes: dict[tuple[str, str], Callable[[Request], Response]] = {
            ("GET", "/api/dashboard"): self._dashboard,
            ("GET", "/api/vehicles"): self._vehicle_list,
            ("POST", "/api/vehicles"): self._vehicle_create,
            ("GET", "/api/sections"): self._sections,
            ("GET", "/api/locations"): self._locations,
            ("GET", "/api/export"): self._export,
        }
        handler = simple_routes.get((request.method, request.path))
        if handler:
            return handler, {}

        if request.path.startswith("/api/vehicles/"):
            parts = request.path.strip("/").split("/")
            if len(parts) == 3 and request.method == "GET":
                return self._vehicle_detail, {"vehicle_id": parts[2]}
            if len(parts) == 4 and parts[3] == "ratings" and request.method == "POST":
                return self._record_rating, {"vehicle_id": parts[2]}
            if len(parts) == 4 and parts[3] == "status" and request.method == "POST":
                return self._vehicle_status, {"vehicle_id": parts[2]}
        return None

    # Handlers -------------------------------------------------------------------
    def _dashboard(self, request: Request) -> Response:
        snapshot = self.service.dashboard_snapshot(self._dealership(request))
        summary = snapshot.summary()
        locations = snapshot.location_counts()
        payload: dict[str, Any] = {
            "counts": {status.value: count for status, count in snapshot.counts().items()},
            "summary": {
                "totalVehicles": summary.total_vehicles,
                "working": summary.working,
                "completed": summary.completed,
                "needsAttention": summary.needs_attention,
                "sold": summary.sold,
                "pendingSale": summary.pending_sale,
                "onSite": summary.on_site,
                "offSite": summary.off_site,
                "inTransit": summary.in_transit,
            },
            "locations": {
                "all": locations.all,
                "buckets": {bucket.value: count for bucket, count in locations.buckets.items()},
                "byName": dict(locations.by_name),
            },
        }
        section_key = request.query_value("section")
        if section_key:
            payload["sectionCounts"] = {
                status.value: count for status, count in snapshot.section_counts(section_key).items()
            }
        return self._json(payload)

    def _vehicle_list(self, request: Request) -> Response:
        snapshot = self.service.dashboard_snapshot(self._dealership(request))
        criteria = self._parse_filter(request)
        vehicles = snapshot.filter(criteria)
        return self._json(
            {
                "count": len(vehicles),
                "vehicles": [self._vehicle_view(vehicle, snapshot) for vehicle in vehicles],
            }
        )

    def _vehicle_create(self, request: Request) -> Response:
        payload = request.json()
        try:
            year = int(payload["year"])
            mileage = int(payload.get("mileage") or 0)
            vehicle = self.service.add_vehicle(
                dealership_id=str(payload.get("dealershipId") or self._dealership(request)),
                vin=str(payload["vin"]),
                year=year,
                make=str(payload["make"]),
                model=str(payload["model"]),
                color=str(payload.get("color") or ""),
                location=str(payload.get("location") or ""),
                trim=payload.get("trim"),
                mileage=mileage,
                notes=payload.get("notes"),
            )
        except KeyError as exc:
            raise ValueError(f"Missing field: {exc.args[0]}") from exc
        except TypeError as exc:
            raise ValueError("Invalid vehicle payload") from exc
        snapshot = self.service.dashboard_snapshot(vehicle.dealership_id)
        return self._json(self._vehicle_view(vehicle, snapshot), status=HTTPStatus.CREATED)

    def _vehicle_detail(self, request: Request, *, vehicle_id: str) -> Response:
        vehicle = self.service.get_vehicle(self._parse_id(vehicle_id))
        snapshot = self.service.dashboard_snapshot(vehicle.dealership_id)
        settings = self.service.settings.get_settings(vehicle.dealership_id)
        labels = {entry.key: entry.label for entry in settings.rating_labels}
        data = snapshot.inspection_data.get(vehicle.id) or {}
        view = self._vehicle_view(vehicle, snapshot)
        view["inspection"] = {
            key: [
                {**serialize_item(item), "ratingLabel": labels.get(RATING_LABEL_KEYS[item.rating], item.rating.value)}
                for item in items
            ]
            for key, items in data.items()
        }
        view["sectionNotes"] = self.service.inspections.load_section_notes(vehicle.id)
        view["teamNotes"] = [
            {
                "author": note.author,
                "content": note.content,
                "section": note.section,
                "createdAt": note.created_at.isoformat(),
            }
            for note in vehicle.team_notes
        ]
        view["sections"] = [section_to_dict(section) for section in snapshot.active_sections]
        return self._json(view)

    def _record_rating(self, request: Request, *, vehicle_id: str) -> Response:
        payload = request.json()
        inspector = str(payload.get("inspector") or "").strip()
        if not inspector:
            raise ValueError("Inspector is required")
        session = self.service.open_checklist(self._parse_id(vehicle_id), inspector_id=inspector)
        item = session.set_rating(
            str(payload.get("section") or ""),
            str(payload.get("item") or ""),
            str(payload.get("rating") or ""),
            updated_by=inspector,
        )
        return self._json(
            {
                "item": serialize_item(item),
                "saveStatus": session.save_status.value,
                "sectionStatuses": {key: status.value for key, status in session.section_statuses().items()},
                "progress": session.progress,
                "readyForSale": session.ready_for_sale,
                "inspection": serialize_inspection_data(session.data),
            }
        )

    def _vehicle_status(self, request: Request, *, vehicle_id: str) -> Response:
        identifier = self._parse_id(vehicle_id)
        status = str(request.json().get("status") or "").strip().lower()
        actions = {
            "sold": self.service.mark_sold,
            "pending": self.service.mark_pending,
            "active": self.service.reactivate,
        }
        if status not in actions:
            raise ValueError("Status must be one of: sold, pending, active")
        vehicle = actions[status](identifier)
        snapshot = self.service.dashboard_snapshot(vehicle.dealership_id)
        return self._json(self._vehicle_view(vehicle, snapshot))

    def _sections(self, request: Request) -> Response:
        settings = self.service.settings.get_settings(self._dealership(request))
        return self._json(
            {
                "sections": [section_to_dict(section) for section in settings.sections],
                "ratingLabels": [
                    {"key": entry.key, "label": entry.label, "color": entry.color} for entry in settings.rating_labels
                ],
            }
        )

    def _locations(self, request: Request) -> Response:
        dealership_id = self._dealership(request)
        formal = self.service.list_locations(dealership_id)
        virtual = self.service.list_virtual_locations(dealership_id)
        return self._json(
            {
                "locations": [self._location_view(location) for location in formal],
                "virtualLocations": [self._virtual_location_view(location) for location in virtual],
            }
        )

    def _export(self, request: Request) -> Response:
        criteria = self._parse_filter(request)
        has_criteria = criteria != VehicleFilter()
        filename, payload = self.service.export_inventory(
            self._dealership(request),
            generated_by=request.query_value("requested_by") or "dashboard",
            criteria=criteria if has_criteria else None,
            customer_view=request.query_value("customer") in {"1", "true", "yes"},
        )
        headers = [
            ("Content-Type", XLSX_CONTENT_TYPE),
            ("Content-Disposition", f'attachment; filename="{filename}"'),
        ]
        return Response(headers=headers, body=payload)

    # Helpers --------------------------------------------------------------------
    def _dealership(self, request: Request) -> str:
        return request.query_value("dealership") or DEFAULT_DEALERSHIP_ID

    def _parse_id(self, raw: str) -> int:
        try:
            return int(raw)
        except ValueError as exc:
            raise LookupError("Vehicle not found") from exc

    def _parse_filter(self, request: Request) -> VehicleFilter:
        try:
            statuses = frozenset(StatusFilter(value) for value in request.query_values("status"))
        except ValueError as exc:
            raise ValueError("Unknown status filter") from exc
        section_status_raw = request.query_value("section_status")
        try:
            section_status = SectionFilterStatus(section_status_raw) if section_status_raw else None
        except ValueError as exc:
            raise ValueError("Unknown section status filter") from exc
        return VehicleFilter(
            statuses=statuses,
            locations=frozenset(request.query_values("location")),
            search=request.query_value("q") or "",
            section_key=request.query_value("section") or None,
            section_status=section_status,
        )

    def _vehicle_view(self, vehicle: Vehicle, snapshot: DashboardSnapshot) -> dict[str, Any]:
        evaluation: VehicleEvaluation = snapshot.evaluate(vehicle)
        return {
            "id": vehicle.id,
            "stockNumber": vehicle.stock_number,
            "vin": vehicle.vin,
            "year": vehicle.year,
            "make": vehicle.make,
            "model": vehicle.model,
            "trim": vehicle.trim,
            "color": vehicle.color,
            "mileage": vehicle.mileage,
            "location": vehicle.location,
            "locationType": resolve_location_type(vehicle.location, snapshot.locations).value,
            "status": vehicle.status.value if vehicle.status else None,
            "category": evaluation.category.value if evaluation.category else None,
            "progress": evaluation.progress,
            "readyForSale": evaluation.ready_for_sale,
            "sectionStatuses": {key: status.value for key, status in evaluation.section_statuses},
        }

    def _location_view(self, location: Location) -> dict[str, Any]:
        return {
            "id": location.id,
            "name": location.name,
            "type": location.type.value,
            "description": location.description,
            "isActive": location.is_active,
            "capacity": location.capacity,
            "color": location.color,
        }

    def _virtual_location_view(self, location: VirtualLocation) -> dict[str, Any]:
        return {"name": location.name, "type": location.type.value, "vehicleCount": location.vehicle_count}

    def _json(self, payload: Any, *, status: HTTPStatus = HTTPStatus.OK) -> Response:
        return Response(
            status=status,
            headers=[("Content-Type", "application/json")],
            body=json.dumps(payload),
        )

    def _error(self, status: HTTPStatus, message: str) -> Response:
        return self._json({"error": message}, status=status)


def create_app(database_path: Optional[Path | str] = None) -> ReconTrackerWebApp:
    path = Path(database_path) if database_path else DEFAULT_DATABASE_PATH
    return ReconTrackerWebApp(path)


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    logging.basicConfig(level=logging.INFO)
    create_app().run()
