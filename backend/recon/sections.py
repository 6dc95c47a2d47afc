from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Tuple

from .models import (
    InspectionItem,
    InspectionItemDefinition,
    InspectionSection,
    InspectionSettings,
    Rating,
    RatingLabel,
    VehicleInspectionData,
)

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _items(*labels: str, prefix: str) -> Tuple[InspectionItemDefinition, ...]:
    return tuple(
        InspectionItemDefinition(id=f"{prefix}-{index}", label=label, order=index)
        for index, label in enumerate(labels, start=1)
    )


DEFAULT_SECTIONS: Tuple[InspectionSection, ...] = (
    InspectionSection(
        key="emissions",
        label="Emissions",
        order=1,
        color="#3B82F6",
        items=_items(
            "Emissions test passed",
            "Check engine light off",
            "OBD readiness monitors set",
            prefix="emissions",
        ),
    ),
    InspectionSection(
        key="cosmetic",
        label="Cosmetic",
        order=2,
        color="#8B5CF6",
        items=_items(
            "Paint and body panels",
            "Windshield and glass",
            "Wheels and trim",
            "Interior upholstery",
            prefix="cosmetic",
        ),
    ),
    InspectionSection(
        key="mechanical",
        label="Mechanical",
        order=3,
        color="#F59E0B",
        items=_items(
            "Engine oil and filter",
            "Brakes and rotors",
            "Tires and tread depth",
            "Battery and charging system",
            "Suspension and steering",
            prefix="mechanical",
        ),
    ),
    InspectionSection(
        key="cleaning",
        label="Cleaning",
        order=4,
        color="#10B981",
        items=_items(
            "Exterior wash and wax",
            "Interior detail",
            "Engine bay cleaned",
            prefix="cleaning",
        ),
    ),
    InspectionSection(
        key="photos",
        label="Photos",
        order=5,
        color="#EC4899",
        is_customer_visible=False,
        items=_items(
            "Exterior photos uploaded",
            "Interior photos uploaded",
            prefix="photos",
        ),
    ),
)

DEFAULT_RATING_LABELS: Tuple[RatingLabel, ...] = (
    RatingLabel(key="great", label="Great", color="#10B981"),
    RatingLabel(key="fair", label="Fair", color="#F59E0B"),
    RatingLabel(key="needs-attention", label="Needs Attention", color="#EF4444"),
    RatingLabel(key="not-checked", label="Not Checked", color="#9CA3AF"),
)

RATING_LABEL_KEYS: dict[Rating, str] = {
    Rating.GREAT: "great",
    Rating.FAIR: "fair",
    Rating.NEEDS_ATTENTION: "needs-attention",
    Rating.NOT_CHECKED: "not-checked",
}


def default_settings(dealership_id: str) -> InspectionSettings:
    return InspectionSettings(
        dealership_id=dealership_id,
        sections=DEFAULT_SECTIONS,
        rating_labels=DEFAULT_RATING_LABELS,
    )


def active_sections(sections: Iterable[InspectionSection]) -> Tuple[InspectionSection, ...]:
    return tuple(sorted((section for section in sections if section.is_active), key=lambda section: section.order))


def customer_visible_sections(sections: Iterable[InspectionSection]) -> Tuple[InspectionSection, ...]:
    return tuple(section for section in active_sections(sections) if section.is_customer_visible)


def find_section(sections: Iterable[InspectionSection], key: str) -> Optional[InspectionSection]:
    return next((section for section in sections if section.key == key), None)


# Raw inspection data ---------------------------------------------------------

def normalize_item(raw: Any) -> Optional[InspectionItem]:
    """Build an item from a stored payload; unknown ratings read as not-checked."""
    if isinstance(raw, InspectionItem):
        if isinstance(raw.rating, Rating):
            return raw
        return replace(raw, rating=Rating.coerce(raw.rating))
    if not isinstance(raw, Mapping):
        return None
    item_id = raw.get("id")
    if item_id is None:
        return None
    return InspectionItem(
        id=str(item_id),
        label=str(raw.get("label") or ""),
        rating=Rating.coerce(raw.get("rating")),
        updated_by=raw.get("updatedBy") or raw.get("updated_by"),
        updated_at=_parse_timestamp(raw.get("updatedAt") or raw.get("updated_at")),
    )


def normalize_inspection_data(raw: Optional[Mapping[str, Any]]) -> VehicleInspectionData:
    """Coerce a stored checklist payload into ``section key -> items``.

    Non-list entries (``sectionNotes`` and similar bookkeeping keys) are
    skipped, as are entries that are not item mappings.
    """
    if not raw:
        return {}
    data: VehicleInspectionData = {}
    for key, value in raw.items():
        if not isinstance(value, (list, tuple)):
            continue
        items = tuple(item for item in (normalize_item(entry) for entry in value) if item is not None)
        data[str(key)] = items
    return data


def serialize_item(item: InspectionItem) -> dict[str, Any]:
    payload: dict[str, Any] = {"id": item.id, "label": item.label, "rating": item.rating.value}
    if item.updated_by:
        payload["updatedBy"] = item.updated_by
    if item.updated_at:
        payload["updatedAt"] = item.updated_at.strftime(ISO_FORMAT)
    return payload


def serialize_inspection_data(data: Mapping[str, Iterable[InspectionItem]]) -> dict[str, list[dict[str, Any]]]:
    return {key: [serialize_item(item) for item in items] for key, items in data.items()}


# Settings documents ----------------------------------------------------------

def section_to_dict(section: InspectionSection) -> dict[str, Any]:
    return {
        "key": section.key,
        "label": section.label,
        "order": section.order,
        "isActive": section.is_active,
        "isCustomerVisible": section.is_customer_visible,
        "color": section.color,
        "items": [
            {"id": item.id, "label": item.label, "isActive": item.is_active, "order": item.order}
            for item in section.items
        ],
    }


def section_from_dict(raw: Mapping[str, Any]) -> InspectionSection:
    if not isinstance(raw, Mapping):
        raise ValueError("Section entry must be an object")
    key = str(raw.get("key") or "").strip()
    if not key:
        raise ValueError("Section key is required")
    items = tuple(
        InspectionItemDefinition(
            id=str(item["id"]),
            label=str(item.get("label") or ""),
            is_active=bool(item.get("isActive", True)),
            order=int(item.get("order", index)),
        )
        for index, item in enumerate(raw.get("items") or [], start=1)
    )
    return InspectionSection(
        key=key,
        label=str(raw.get("label") or key.title()),
        order=int(raw.get("order", 0)),
        is_active=bool(raw.get("isActive", True)),
        is_customer_visible=bool(raw.get("isCustomerVisible", True)),
        color=str(raw.get("color") or "#3B82F6"),
        items=tuple(sorted(items, key=lambda item: item.order)),
    )


def settings_to_dict(settings: InspectionSettings) -> dict[str, Any]:
    return {
        "dealershipId": settings.dealership_id,
        "sections": [section_to_dict(section) for section in settings.sections],
        "ratingLabels": [
            {"key": label.key, "label": label.label, "color": label.color} for label in settings.rating_labels
        ],
        "globalSettings": {"sectionNotesEnabled": settings.section_notes_enabled},
        "updatedAt": settings.updated_at.strftime(ISO_FORMAT) if settings.updated_at else None,
    }


def settings_from_dict(dealership_id: str, raw: Mapping[str, Any]) -> InspectionSettings:
    """Merge a stored settings document over the defaults."""
    sections_raw = raw.get("sections")
    if sections_raw is not None and not isinstance(sections_raw, (list, tuple)):
        raise ValueError("Sections must be a list")
    sections = (
        tuple(sorted((section_from_dict(entry) for entry in sections_raw), key=lambda section: section.order))
        if sections_raw is not None
        else DEFAULT_SECTIONS
    )
    labels_raw = raw.get("ratingLabels") or []
    rating_labels = (
        tuple(RatingLabel(key=str(entry["key"]), label=str(entry["label"]), color=str(entry.get("color") or "")) for entry in labels_raw)
        if labels_raw
        else DEFAULT_RATING_LABELS
    )
    global_settings = raw.get("globalSettings") or {}
    if not isinstance(global_settings, Mapping):
        raise ValueError("Global settings must be an object")
    return InspectionSettings(
        dealership_id=dealership_id,
        sections=sections,
        rating_labels=rating_labels,
        section_notes_enabled=bool(global_settings.get("sectionNotesEnabled", True)),
        updated_at=_parse_timestamp(raw.get("updatedAt")),
    )


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.strptime(value, ISO_FORMAT)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.rstrip("Z"))
    except ValueError:
        return None
