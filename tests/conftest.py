"""Shared pytest fixtures: local storage on tmp_path and an in-memory backend."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from craftshop.db.sqlite import LocalStorage
from craftshop.services.backend import BackendClient

BACKEND_URL = "http://backend.test"
ADMIN_EMAIL = "admin@shop.test"
ADMIN_PASSWORD = "secret"
ADMIN_TOKEN = "token-admin"

INT_ID_TABLES = {"orders", "order_items", "categories", "settings"}


def _matches(row: dict[str, Any], filters: list[tuple[str, str]]) -> bool:
    for column, expected in filters:
        value = row.get(column)
        if isinstance(value, bool):
            value = str(value).lower()
        if str(value) != expected:
            return False
    return True


@dataclass
class FakeBackend:
    """Tiny PostgREST + auth emulator served through httpx.MockTransport."""

    tables: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    down: bool = False
    fail_tables: set[str] = field(default_factory=set)
    requests: list[httpx.Request] = field(default_factory=list)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def _next_id(self, table: str) -> int:
        ids = [r["id"] for r in self.rows(table) if isinstance(r.get("id"), int)]
        return max(ids, default=0) + 1

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("backend is down", request=request)

        path = request.url.path
        if path.startswith("/auth/v1/"):
            return self._auth(request, path[len("/auth/v1/"):])

        table = path[len("/rest/v1/"):]
        if table in self.fail_tables:
            return httpx.Response(500, json={"message": f"{table} is broken"})

        params = request.url.params
        filters = [
            (k, v[3:]) for k, v in params.multi_items()
            if k not in ("select", "order", "on_conflict") and v.startswith("eq.")
        ]
        body = json.loads(request.content) if request.content else None

        if request.method == "GET":
            found = [dict(r) for r in self.rows(table) if _matches(r, filters)]
            if "order" in params:
                column, direction = params["order"].split(".")
                found.sort(key=lambda r: str(r.get(column) or ""), reverse=direction == "desc")
            if "vnd.pgrst.object" in request.headers.get("accept", ""):
                if len(found) != 1:
                    return httpx.Response(
                        406, json={"message": "JSON object requested, multiple (or no) rows returned"}
                    )
                return httpx.Response(200, json=found[0])
            return httpx.Response(200, json=found)

        if request.method == "POST":
            new_rows = body if isinstance(body, list) else [body]
            conflict = params.get("on_conflict")
            saved = []
            for row in new_rows:
                row = dict(row)
                if table in INT_ID_TABLES and "id" not in row:
                    row["id"] = self._next_id(table)
                if conflict:
                    existing = [r for r in self.rows(table) if r.get(conflict) == row.get(conflict)]
                    for r in existing:
                        row.setdefault("id", r.get("id"))
                        self.rows(table).remove(r)
                self.rows(table).append(row)
                saved.append(row)
            return httpx.Response(201, json=saved)

        if request.method == "PATCH":
            updated = []
            for r in self.rows(table):
                if _matches(r, filters):
                    r.update(body)
                    updated.append(dict(r))
            return httpx.Response(200, json=updated)

        if request.method == "DELETE":
            removed = [r for r in self.rows(table) if _matches(r, filters)]
            self.tables[table] = [r for r in self.rows(table) if not _matches(r, filters)]
            return httpx.Response(200, json=removed)

        return httpx.Response(405, json={"message": "method not allowed"})

    def _auth(self, request: httpx.Request, endpoint: str) -> httpx.Response:
        if endpoint == "token":
            creds = json.loads(request.content)
            if creds.get("email") == ADMIN_EMAIL and creds.get("password") == ADMIN_PASSWORD:
                return httpx.Response(
                    200,
                    json={"access_token": ADMIN_TOKEN, "expires_in": 3600, "user": {"email": ADMIN_EMAIL}},
                )
            return httpx.Response(400, json={"error_description": "Invalid login credentials"})
        if endpoint == "user":
            if request.headers.get("authorization") == f"Bearer {ADMIN_TOKEN}":
                return httpx.Response(200, json={"id": "u1", "email": ADMIN_EMAIL})
            return httpx.Response(401, json={"msg": "invalid JWT"})
        return httpx.Response(404, json={"message": "not found"})


@pytest.fixture()
def storage(tmp_path) -> LocalStorage:
    s = LocalStorage(str(tmp_path / "shop.db"))
    s.init_db()
    return s


@pytest.fixture()
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def backend(fake_backend: FakeBackend) -> BackendClient:
    return BackendClient(BACKEND_URL, "anon-key", transport=httpx.MockTransport(fake_backend.handler))


@pytest.fixture()
def offline_backend() -> BackendClient:
    """Backend without a URL: every call raises BackendUnavailable."""
    return BackendClient("", "")


def make_product(product_id: str, **overrides: Any) -> dict[str, Any]:
    product = {
        "id": product_id,
        "name": f"Bag {product_id}",
        "price": 50.0,
        "image": f"https://img.test/{product_id}.jpg",
        "category": "Tote",
        "tags": [],
        "is_new": False,
        "is_sold_out": False,
        "description": "",
        "features": [],
        "care_instructions": [],
        "additional_images": [],
        "created_at": "2025-01-01T00:00:00+00:00",
    }
    product.update(overrides)
    return product
