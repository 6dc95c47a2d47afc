from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, Optional, Tuple

from .database import Database
from .models import InspectionItemDefinition, InspectionSection, InspectionSettings, RatingLabel
from .sections import (
    active_sections,
    default_settings,
    find_section,
    settings_from_dict,
    settings_to_dict,
)

_logger = logging.getLogger(__name__)

REQUIRED_IMPORT_KEYS = ("sections", "ratingLabels", "globalSettings")
SECTION_FIELDS = frozenset({"label", "order", "is_active", "is_customer_visible", "color"})
ITEM_FIELDS = frozenset({"label", "is_active", "order"})


@dataclass
class InspectionSettingsService:
    database: Database

    def get_settings(self, dealership_id: str) -> InspectionSettings:
        try:
            document = self.database.get_settings_document(dealership_id)
        except (sqlite3.Error, json.JSONDecodeError):
            _logger.exception("Could not load inspection settings for dealership %s", dealership_id)
            return default_settings(dealership_id)
        if document is None:
            return default_settings(dealership_id)
        try:
            return settings_from_dict(dealership_id, document)
        except (AttributeError, KeyError, TypeError, ValueError):
            _logger.warning("Stored inspection settings for %s are malformed; using defaults", dealership_id)
            return default_settings(dealership_id)

    def get_sections(self, dealership_id: str) -> Tuple[InspectionSection, ...]:
        return self.get_settings(dealership_id).sections

    def get_active_sections(self, dealership_id: str) -> Tuple[InspectionSection, ...]:
        return active_sections(self.get_sections(dealership_id))

    def initialize_defaults(self, dealership_id: str) -> InspectionSettings:
        if self.database.get_settings_document(dealership_id) is not None:
            return self.get_settings(dealership_id)
        return self.save_settings(default_settings(dealership_id))

    def save_settings(self, settings: InspectionSettings) -> InspectionSettings:
        updated = replace(settings, updated_at=datetime.utcnow())
        self.database.save_settings_document(settings.dealership_id, settings_to_dict(updated))
        return updated

    def reset_to_defaults(self, dealership_id: str) -> InspectionSettings:
        return self.save_settings(default_settings(dealership_id))

    # Section management
    def add_section(
        self,
        dealership_id: str,
        *,
        key: str,
        label: str,
        order: Optional[int] = None,
        color: str = "#3B82F6",
        is_customer_visible: bool = True,
        item_labels: Iterable[str] = (),
    ) -> InspectionSection:
        settings = self.get_settings(dealership_id)
        clean_key = key.strip().lower().replace(" ", "-")
        if not clean_key:
            raise ValueError("Section key is required")
        if find_section(settings.sections, clean_key):
            raise ValueError(f"Section '{clean_key}' already exists")
        if order is None:
            order = max((section.order for section in settings.sections), default=0) + 1
        items = tuple(
            InspectionItemDefinition(id=_new_item_id(), label=item_label.strip(), order=index)
            for index, item_label in enumerate(item_labels, start=1)
        )
        section = InspectionSection(
            key=clean_key,
            label=label.strip() or clean_key.title(),
            order=order,
            color=color,
            is_customer_visible=is_customer_visible,
            items=items,
        )
        self._store_sections(settings, settings.sections + (section,))
        return section

    def update_section(self, dealership_id: str, key: str, **changes: object) -> InspectionSection:
        unknown = set(changes) - SECTION_FIELDS
        if unknown:
            raise ValueError(f"Unknown section fields: {', '.join(sorted(unknown))}")
        settings = self.get_settings(dealership_id)
        section = self._require_section(settings, key)
        updated = replace(section, **changes)
        self._store_sections(settings, _swap(settings.sections, section, updated))
        return updated

    def delete_section(self, dealership_id: str, key: str) -> bool:
        settings = self.get_settings(dealership_id)
        remaining = tuple(section for section in settings.sections if section.key != key)
        if len(remaining) == len(settings.sections):
            return False
        self._store_sections(settings, remaining)
        return True

    # Item management
    def add_item(
        self,
        dealership_id: str,
        section_key: str,
        *,
        label: str,
        order: Optional[int] = None,
        is_active: bool = True,
    ) -> InspectionItemDefinition:
        if not label.strip():
            raise ValueError("Item label is required")
        settings = self.get_settings(dealership_id)
        section = self._require_section(settings, section_key)
        if order is None:
            order = max((item.order for item in section.items), default=0) + 1
        item = InspectionItemDefinition(id=_new_item_id(), label=label.strip(), is_active=is_active, order=order)
        updated = replace(section, items=_sorted_items(section.items + (item,)))
        self._store_sections(settings, _swap(settings.sections, section, updated))
        return item

    def update_item(
        self,
        dealership_id: str,
        section_key: str,
        item_id: str,
        **changes: object,
    ) -> InspectionItemDefinition:
        unknown = set(changes) - ITEM_FIELDS
        if unknown:
            raise ValueError(f"Unknown item fields: {', '.join(sorted(unknown))}")
        settings = self.get_settings(dealership_id)
        section = self._require_section(settings, section_key)
        item = next((entry for entry in section.items if entry.id == item_id), None)
        if item is None:
            raise LookupError("Inspection item not found")
        updated_item = replace(item, **changes)
        items = tuple(updated_item if entry.id == item_id else entry for entry in section.items)
        updated = replace(section, items=_sorted_items(items))
        self._store_sections(settings, _swap(settings.sections, section, updated))
        return updated_item

    def delete_item(self, dealership_id: str, section_key: str, item_id: str) -> bool:
        settings = self.get_settings(dealership_id)
        section = self._require_section(settings, section_key)
        items = tuple(item for item in section.items if item.id != item_id)
        if len(items) == len(section.items):
            return False
        self._store_sections(settings, _swap(settings.sections, section, replace(section, items=items)))
        return True

    def reorder_items(self, dealership_id: str, section_key: str, item_ids: Iterable[str]) -> InspectionSection:
        settings = self.get_settings(dealership_id)
        section = self._require_section(settings, section_key)
        positions = {item_id: index for index, item_id in enumerate(item_ids, start=1)}
        items = tuple(
            replace(item, order=positions[item.id]) if item.id in positions else item for item in section.items
        )
        updated = replace(section, items=_sorted_items(items))
        self._store_sections(settings, _swap(settings.sections, section, updated))
        return updated

    # Rating labels
    def update_rating_label(
        self,
        dealership_id: str,
        key: str,
        *,
        label: Optional[str] = None,
        color: Optional[str] = None,
    ) -> RatingLabel:
        settings = self.get_settings(dealership_id)
        current = next((entry for entry in settings.rating_labels if entry.key == key), None)
        if current is None:
            raise LookupError(f"Rating label '{key}' not found")
        updated = replace(current, label=label or current.label, color=color or current.color)
        labels = tuple(updated if entry.key == key else entry for entry in settings.rating_labels)
        self.save_settings(replace(settings, rating_labels=labels))
        return updated

    # Export / import
    def export_settings(self, dealership_id: str) -> str:
        return json.dumps(settings_to_dict(self.get_settings(dealership_id)), indent=2)

    def import_settings(self, dealership_id: str, payload: str) -> InspectionSettings:
        try:
            document = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValueError("Settings import is not valid JSON") from exc
        if not isinstance(document, dict) or any(key not in document for key in REQUIRED_IMPORT_KEYS):
            raise ValueError("Invalid settings format")
        try:
            settings = settings_from_dict(dealership_id, document)
        except (AttributeError, KeyError, TypeError) as exc:
            raise ValueError("Invalid settings format") from exc
        keys = [section.key for section in settings.sections]
        if len(keys) != len(set(keys)):
            raise ValueError("Section keys must be unique")
        return self.save_settings(settings)

    def _require_section(self, settings: InspectionSettings, key: str) -> InspectionSection:
        section = find_section(settings.sections, key)
        if section is None:
            raise LookupError(f"Section '{key}' not found")
        return section

    def _store_sections(self, settings: InspectionSettings, sections: Iterable[InspectionSection]) -> None:
        ordered = tuple(sorted(sections, key=lambda section: section.order))
        self.save_settings(replace(settings, sections=ordered))


def _swap(
    sections: Tuple[InspectionSection, ...],
    current: InspectionSection,
    updated: InspectionSection,
) -> Tuple[InspectionSection, ...]:
    return tuple(updated if section.key == current.key else section for section in sections)


def _sorted_items(items: Iterable[InspectionItemDefinition]) -> Tuple[InspectionItemDefinition, ...]:
    return tuple(sorted(items, key=lambda item: item.order))


def _new_item_id() -> str:
    return f"item-{uuid.uuid4().hex[:12]}"
