from __future__ import annotations

import json
import logging
import os
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from craftshop.constants import STORAGE_CART

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class LocalStorage:
    """
    Key-value fallback cache. Values are strings, JSON helpers on top.
    One connection per call, closed right away.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._ready = False

    def _connect(self) -> sqlite3.Connection:
        folder = os.path.dirname(self.db_path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        if not self._ready:
            conn.executescript(SCHEMA)
            conn.commit()
            self._ready = True
        return conn

    def init_db(self) -> None:
        conn = self._connect()
        conn.close()

    def get_item(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None
        finally:
            conn.close()

    def set_item(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO kv(key, value, updated_at) VALUES(?,?,?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                (key, value, datetime.now().strftime("%Y-%m-%d %H:%M:%S")),
            )
            conn.commit()
        finally:
            conn.close()

    def remove_item(self, key: str) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()

    def keys(self, prefix: str = "") -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
            return [r["key"] for r in rows]
        finally:
            conn.close()

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Corrupted JSON under %r, using default", key)
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, ensure_ascii=False))

    def get_list(self, key: str) -> List[Any]:
        data = self.get_json(key, [])
        return data if isinstance(data, list) else []

    def get_dict(self, key: str) -> Dict[str, Any]:
        data = self.get_json(key, {})
        return data if isinstance(data, dict) else {}


def session_key(base: str, session_id: str) -> str:
    return f"{base}:{session_id}"


class SessionCartPersistence:
    """Cart items of one visitor session, stored as a JSON array."""

    def __init__(self, storage: LocalStorage, session_id: str):
        self.storage = storage
        self.key = session_key(STORAGE_CART, session_id)

    def load(self) -> Optional[List[Dict[str, Any]]]:
        data = self.storage.get_json(self.key, None)
        return data if isinstance(data, list) else None

    def save(self, items: List[Dict[str, Any]]) -> None:
        # empty carts leave no row behind
        if not items:
            self.storage.remove_item(self.key)
            return
        self.storage.set_json(self.key, items)


def saved_cart_count(storage: LocalStorage) -> int:
    return len(storage.keys(session_key(STORAGE_CART, "")))
