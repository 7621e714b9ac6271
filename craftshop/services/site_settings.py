from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Mapping

from craftshop.constants import DEFAULT_SITE_SETTINGS, STORAGE_SITE_SETTINGS
from craftshop.db.sqlite import LocalStorage
from craftshop.services.backend import BackendClient, BackendError

logger = logging.getLogger(__name__)


def merge_with_defaults(values: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(DEFAULT_SITE_SETTINGS)
    for key, value in values.items():
        if key not in merged:
            continue
        if isinstance(merged[key], dict):
            if isinstance(value, dict):
                merged[key].update({k: str(v) for k, v in value.items() if k in merged[key]})
        elif value is not None:
            merged[key] = str(value)
    return merged


def settings_from_form(form: Mapping[str, str]) -> Dict[str, Any]:
    """Folds ``socialLinks.facebook``-style keys into the nested object."""
    values: Dict[str, Any] = {}
    for name, value in form.items():
        if "." in name:
            parent, child = name.split(".", 1)
            values.setdefault(parent, {})[child] = value.strip()
        else:
            values[name] = value.strip()
    return merge_with_defaults(values)


class SiteSettingsService:
    def __init__(self, storage: LocalStorage, backend: BackendClient):
        self.storage = storage
        self.backend = backend

    def get_site_settings(self) -> Dict[str, Any]:
        try:
            row = self.backend.select("settings", filters={"key": STORAGE_SITE_SETTINGS}, single=True)
            if isinstance(row, dict) and isinstance(row.get("value"), dict):
                return merge_with_defaults(row["value"])
        except BackendError as e:
            logger.info("Site settings not loaded from backend: %s", e)

        stored = self.storage.get_dict(STORAGE_SITE_SETTINGS)
        if not stored:
            self.storage.set_json(STORAGE_SITE_SETTINGS, DEFAULT_SITE_SETTINGS)
        return merge_with_defaults(stored)

    def save_site_settings(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        merged = merge_with_defaults(values)
        self.storage.set_json(STORAGE_SITE_SETTINGS, merged)
        try:
            self.backend.upsert(
                "settings",
                {"key": STORAGE_SITE_SETTINGS, "value": merged},
                on_conflict="key",
            )
        except BackendError as e:
            logger.warning("Site settings saved locally only: %s", e)
        return merged
