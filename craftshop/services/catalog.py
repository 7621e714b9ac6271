from __future__ import annotations

import logging
import re
import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from craftshop.constants import (
    AVAILABILITY_AVAILABLE,
    AVAILABILITY_SOLD_OUT,
    CATEGORY_ALL,
    DEFAULT_CATEGORIES,
    STORAGE_PRODUCTS,
)
from craftshop.db.sqlite import LocalStorage
from craftshop.services.backend import BackendClient, BackendError

logger = logging.getLogger(__name__)

LIST_FIELDS = ("tags", "features", "care_instructions", "additional_images")

# camelCase keys written by older cache entries
_LEGACY_KEYS = {
    "isNew": "is_new",
    "isSoldOut": "is_sold_out",
    "careInstructions": "care_instructions",
    "additionalImages": "additional_images",
}


def normalize_product(row: Dict[str, Any]) -> Dict[str, Any]:
    p = dict(row)
    for old, new in _LEGACY_KEYS.items():
        if old in p:
            p.setdefault(new, p.pop(old))
    p["id"] = str(p.get("id", ""))
    p["name"] = str(p.get("name") or "")
    p["price"] = float(p.get("price") or 0)
    p["image"] = str(p.get("image") or "")
    p["category"] = str(p.get("category") or "")
    p["description"] = p.get("description") or ""
    p["is_new"] = bool(p.get("is_new"))
    p["is_sold_out"] = bool(p.get("is_sold_out"))
    for f in LIST_FIELDS:
        p[f] = [str(v) for v in (p.get(f) or []) if str(v).strip()]
    return p


def filter_products(
    products: Iterable[Dict[str, Any]],
    category: str = CATEGORY_ALL,
    tags: Iterable[str] = (),
    query: str = "",
    availability: str = "all",
) -> List[Dict[str, Any]]:
    result = list(products)

    if category and category != CATEGORY_ALL:
        result = [p for p in result if p.get("category") == category]

    selected = [t for t in tags if t]
    if selected:
        result = [p for p in result if any(t in (p.get("tags") or []) for t in selected)]

    if query:
        q = query.lower()
        result = [
            p for p in result
            if q in (p.get("name") or "").lower()
            or q in (p.get("category") or "").lower()
            or any(q in t.lower() for t in (p.get("tags") or []))
        ]

    if availability == AVAILABILITY_AVAILABLE:
        result = [p for p in result if not p.get("is_sold_out")]
    elif availability == AVAILABILITY_SOLD_OUT:
        result = [p for p in result if p.get("is_sold_out")]

    return result


def all_tags(products: Iterable[Dict[str, Any]]) -> List[str]:
    tags = set()
    for p in products:
        tags.update(p.get("tags") or [])
    return sorted(tags)


def slugify(name: str) -> str:
    t = re.sub(r"\s+", "-", name.strip().lower())
    return re.sub(r"[^a-z0-9-]", "", t)


def split_list(text: str, sep: str = ",") -> List[str]:
    return [part.strip() for part in (text or "").split(sep) if part.strip()]


class CatalogService:
    def __init__(self, storage: LocalStorage, backend: BackendClient):
        self.storage = storage
        self.backend = backend
        # guards every read-modify-write of the products cache
        self._lock = threading.Lock()

    # ---------------- products ----------------

    def _cached_products(self) -> List[Dict[str, Any]]:
        return [normalize_product(p) for p in self.storage.get_list(STORAGE_PRODUCTS) if isinstance(p, dict)]

    def _cache_products(self, products: List[Dict[str, Any]]) -> None:
        self.storage.set_json(STORAGE_PRODUCTS, products)

    def get_products(self) -> List[Dict[str, Any]]:
        """Backend rows plus products that were only saved locally (``synced: False``)."""
        try:
            rows = self.backend.select("products", order=("created_at", True))
        except BackendError as e:
            logger.warning("Error fetching products, using cache: %s", e)
            return self._cached_products()

        products = [normalize_product(r) for r in rows or []]
        with self._lock:
            known = {p["id"] for p in products}
            pending = [p for p in self._cached_products() if p.get("synced") is False and p["id"] not in known]
            products = pending + products
            self._cache_products(products)
        return products

    def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        try:
            row = self.backend.select("products", filters={"id": product_id}, single=True)
            if row:
                return normalize_product(row)
        except BackendError as e:
            logger.warning("Error fetching product %s, using cache: %s", product_id, e)

        for p in self._cached_products():
            if p["id"] == str(product_id):
                return p
        return None

    def _apply_local(self, product_id: str, changes: Optional[Dict[str, Any]]) -> bool:
        """Apply ``changes`` to the cached product; ``None`` deletes it."""
        with self._lock:
            found = False
            updated = []
            for p in self._cached_products():
                if p["id"] == product_id:
                    found = True
                    if changes is None:
                        continue
                    p = normalize_product({**p, **changes, "id": product_id})
                updated.append(p)
            if found:
                self._cache_products(updated)
        return found

    def create_product(self, data: Dict[str, Any]) -> Tuple[bool, Any]:
        if not str(data.get("name") or "").strip():
            return False, "Name is required"
        if not str(data.get("category") or "").strip():
            return False, "Category is required"

        product = normalize_product(data)
        if not product["id"]:
            product["id"] = str(int(time.time() * 1000))

        try:
            rows = self.backend.insert("products", product)
            if rows:
                product = normalize_product(rows[0])
        except BackendError as e:
            logger.warning("Error saving product to backend, keeping it locally: %s", e)
            product["synced"] = False

        with self._lock:
            products = [p for p in self._cached_products() if p["id"] != product["id"]]
            products.insert(0, product)
            self._cache_products(products)
        logger.info("Product created: %s (%s)", product["name"], product["id"])
        return True, product

    def pending_products(self) -> int:
        return sum(1 for p in self._cached_products() if p.get("synced") is False)

    def sync_pending_products(self) -> int:
        """Push products that were only saved locally. Returns how many made it."""
        with self._lock:
            pending = [p for p in self._cached_products() if p.get("synced") is False]

        done = set()
        for p in pending:
            payload = {k: v for k, v in p.items() if k != "synced"}
            try:
                self.backend.upsert("products", payload, on_conflict="id")
                done.add(p["id"])
            except BackendError as e:
                logger.warning("Product %s still not synced: %s", p["id"], e)

        if done:
            with self._lock:
                products = self._cached_products()
                for p in products:
                    if p["id"] in done:
                        p.pop("synced", None)
                self._cache_products(products)
            logger.info("Synced %s pending products", len(done))
        return len(done)

    def update_product(self, product_id: str, data: Dict[str, Any]) -> Tuple[bool, str]:
        product_id = str(product_id)
        changes = {k: v for k, v in data.items() if k != "id"}

        remote_ok = False
        try:
            rows = self.backend.update("products", changes, {"id": product_id})
            remote_ok = bool(rows)
        except BackendError as e:
            logger.warning("Error updating product %s in backend: %s", product_id, e)

        local_ok = self._apply_local(product_id, changes)
        if not (remote_ok or local_ok):
            return False, "Product not found"
        return True, "ok"

    def delete_product(self, product_id: str) -> Tuple[bool, str]:
        product_id = str(product_id)

        remote_ok = False
        try:
            rows = self.backend.delete("products", {"id": product_id})
            remote_ok = bool(rows)
        except BackendError as e:
            logger.warning("Error deleting product %s in backend: %s", product_id, e)

        local_ok = self._apply_local(product_id, None)
        if not (remote_ok or local_ok):
            return False, "Product not found"
        logger.info("Product deleted: %s", product_id)
        return True, "ok"

    def set_sold_out(self, product_id: str, sold_out: bool) -> Tuple[bool, str]:
        return self.update_product(product_id, {"is_sold_out": bool(sold_out)})

    # ---------------- categories ----------------

    def list_categories(self) -> List[Dict[str, Any]]:
        try:
            rows = self.backend.select("categories", order=("name", False))
        except BackendError as e:
            logger.warning("Error fetching categories, using defaults: %s", e)
            return [dict(c) for c in DEFAULT_CATEGORIES]
        if rows:
            return rows

        # empty table: seed the defaults so they can be edited
        defaults = [dict(c) for c in DEFAULT_CATEGORIES]
        try:
            seeded = self.backend.upsert("categories", defaults, on_conflict="id")
        except BackendError as e:
            logger.warning("Error seeding default categories: %s", e)
            return defaults
        logger.info("Seeded %s default categories", len(defaults))
        return sorted(seeded, key=lambda c: c["name"]) if seeded else defaults

    def category_names(self) -> List[str]:
        return [c["name"] for c in self.list_categories()]

    def create_category(self, name: str, description: str = "", slug: str | None = None) -> Tuple[bool, Any]:
        name = (name or "").strip()
        slug = (slug or "").strip() or slugify(name)
        if not name or not slug:
            return False, "Name and slug are required"

        try:
            rows = self.backend.insert(
                "categories", {"name": name, "slug": slug, "description": description or None}
            )
        except BackendError as e:
            logger.warning("Error saving category to backend: %s", e)
            return False, f"Could not save category: {e.message}"
        return True, rows[0] if rows else {"name": name, "slug": slug, "description": description}

    def update_category(
        self, category_id: int, name: str, description: str = "", slug: str | None = None
    ) -> Tuple[bool, str]:
        name = (name or "").strip()
        slug = (slug or "").strip() or slugify(name)
        if not name or not slug:
            return False, "Name and slug are required"

        try:
            rows = self.backend.update(
                "categories",
                {"name": name, "slug": slug, "description": description or None},
                {"id": category_id},
            )
        except BackendError as e:
            logger.warning("Error updating category %s: %s", category_id, e)
            return False, f"Could not update category: {e.message}"
        if not rows:
            return False, "Category not found"
        return True, "ok"

    def delete_category(self, category_id: int) -> Tuple[bool, str]:
        try:
            rows = self.backend.delete("categories", {"id": category_id})
        except BackendError as e:
            logger.warning("Error deleting category %s: %s", category_id, e)
            return False, f"Could not delete category: {e.message}"
        if not rows:
            return False, "Category not found"
        return True, "ok"
