from __future__ import annotations

import logging
import random
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from craftshop.cart.store import CartStore
from craftshop.constants import (
    ORDER_DELIVERED,
    ORDER_PROCESSING,
    ORDER_SHIPPED,
    ORDER_STATUS_STEPS,
    ORDER_STATUSES,
    REQUIRED_CHECKOUT_FIELDS,
    STORAGE_LATEST_ORDER,
    STORAGE_ORDERS,
)
from craftshop.db.sqlite import LocalStorage, session_key
from craftshop.services.backend import BackendClient, BackendError
from craftshop.services.pricing import checkout_total
from craftshop.utils.formatters import format_date, money
from craftshop.utils.validators import is_email, required_field_errors

logger = logging.getLogger(__name__)

ORDER_FIELDS = ("order_number", "email", "name", "address", "phone", "city", "notes", "total", "status", "date")


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{random.randint(0, 999)}".upper()


def status_step(status: str) -> int:
    return ORDER_STATUS_STEPS.get(status, 0)


def validate_checkout(form: Mapping[str, str]) -> Dict[str, str]:
    errors = required_field_errors(form, REQUIRED_CHECKOUT_FIELDS)
    if "email" not in errors and not is_email(str(form.get("email", ""))):
        errors["email"] = "Enter a valid email address"
    return errors


def compose_status_email(order: Dict[str, Any], company_name: str) -> Tuple[str, str]:
    """Subject and body for an order update email. Nothing is sent."""
    number = order["order_number"]
    details = (
        "Order Details:\n"
        f"- Date: {format_date(order.get('date'))}\n"
        f"- Total: {money(order.get('total', 0))}\n\n"
    )
    sign_off = f"Best regards,\n{company_name} Team"
    greeting = f"Dear {order.get('name', '')},\n\n"
    status = order.get("status")

    if status == ORDER_PROCESSING:
        subject = f"Your Order {number} is Being Processed"
        intro = (
            f"Thank you for your order! We're currently processing your order #{number} "
            "and will notify you once it's shipped.\n\n"
        )
        outro = "If you have any questions, please don't hesitate to contact us.\n\n"
    elif status == ORDER_SHIPPED:
        subject = f"Your Order {number} Has Been Shipped"
        intro = f"Great news! Your order #{number} has been shipped and is on its way to you.\n\n"
        outro = "You can track your order on our order tracking page.\n\n"
    elif status == ORDER_DELIVERED:
        subject = f"Your Order {number} Has Been Delivered"
        intro = f"Your order #{number} has been delivered! We hope you love your new items.\n\n"
        outro = "If you have any feedback, we'd love to hear from you.\n\n"
    else:
        subject = f"Update on Your Order {number}"
        intro = f"We're writing to provide an update on your order #{number}.\n\n"
        outro = "If you have any questions, please don't hesitate to contact us.\n\n"

    return subject, greeting + intro + details + outro + sign_off


class OrderService:
    def __init__(self, storage: LocalStorage, backend: BackendClient):
        self.storage = storage
        self.backend = backend
        # guards every read-modify-write of the local orders list
        self._lock = threading.Lock()

    # ---------------- local fallback ----------------

    def _local_orders(self) -> List[Dict[str, Any]]:
        orders = []
        for o in self.storage.get_list(STORAGE_ORDERS):
            if not isinstance(o, dict):
                continue
            # older entries stored the order number under "id"
            if "order_number" not in o and "id" in o:
                o = {**o, "order_number": o["id"]}
            orders.append(o)
        return orders

    def _save_local_orders(self, orders: List[Dict[str, Any]]) -> None:
        self.storage.set_json(STORAGE_ORDERS, orders)

    def latest_order_number(self, session_id: str) -> str:
        return self.storage.get_item(session_key(STORAGE_LATEST_ORDER, session_id)) or ""

    # ---------------- backend ----------------

    def _insert_items(self, created: Dict[str, Any], items: List[Dict[str, Any]]) -> None:
        rows = [{**it, "order_id": created["id"]} for it in items]
        if rows:
            self.backend.insert("order_items", rows)

    def _submit(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """Insert the order and its lines. A half-written order is deleted again."""
        rows = self.backend.insert("orders", {k: order.get(k) for k in ORDER_FIELDS})
        if not rows:
            raise BackendError("Order insert returned no rows")
        created = rows[0]

        try:
            self._insert_items(created, order["items"])
        except BackendError:
            try:
                self.backend.delete("orders", {"id": created["id"]})
            except BackendError as e:
                logger.warning("Could not roll back order %s: %s", order["order_number"], e)
            raise
        return {**created, "items": order["items"]}

    def _resubmit(self, order: Dict[str, Any]) -> None:
        """Push a locally kept order, completing it if a previous attempt left the row behind."""
        rows = self.backend.select("orders", filters={"order_number": order["order_number"]})
        if not rows:
            self._submit(order)
            return
        existing = rows[0]
        if not self.backend.select("order_items", filters={"order_id": existing["id"]}):
            self._insert_items(existing, order["items"])

    # ---------------- checkout ----------------

    def place_order(
        self, cart: CartStore, form: Mapping[str, str], session_id: str
    ) -> Tuple[bool, Any]:
        """
        Returns (True, order) or (False, {field: message}).
        The cart is cleared only when the order was recorded somewhere.
        """
        if not cart.items:
            return False, {"cart": "Your cart is empty"}

        errors = validate_checkout(form)
        if errors:
            return False, errors

        order = {
            "order_number": generate_order_number(),
            "email": form["email"].strip(),
            "name": form["name"].strip(),
            "address": form["address"].strip(),
            "phone": form["phone"].strip(),
            "city": (form.get("city") or "").strip() or None,
            "notes": (form.get("notes") or "").strip() or None,
            "total": checkout_total(cart.get_cart_total()),
            "status": ORDER_PROCESSING,
            "date": datetime.now(timezone.utc).isoformat(),
            "items": [
                {
                    "product_id": it.id,
                    "name": it.name,
                    "price": it.price,
                    "image": it.image,
                    "quantity": it.quantity,
                }
                for it in cart.items
            ],
        }

        try:
            order = self._submit(order)
            logger.info("Order %s created in backend", order["order_number"])
        except BackendError as e:
            logger.warning("Error creating order in backend, saving locally: %s", e)
            order["synced"] = False
            with self._lock:
                orders = self._local_orders()
                orders.append(order)
                self._save_local_orders(orders)

        self.storage.set_item(session_key(STORAGE_LATEST_ORDER, session_id), order["order_number"])
        cart.clear_cart()
        return True, order

    # ---------------- lookup ----------------

    def get_order(self, order_number: str) -> Optional[Dict[str, Any]]:
        order_number = (order_number or "").strip()
        if not order_number:
            return None

        try:
            order = self.backend.select("orders", filters={"order_number": order_number}, single=True)
            items = self.backend.select("order_items", filters={"order_id": order["id"]})
            return {**order, "items": items or []}
        except BackendError as e:
            logger.info("Order %s not in backend (%s), checking local orders", order_number, e)

        for o in self._local_orders():
            if o.get("order_number") == order_number:
                return o
        return None

    def list_orders(self, query: str = "") -> List[Dict[str, Any]]:
        try:
            orders = self.backend.select("orders", order=("date", True)) or []
        except BackendError as e:
            logger.warning("Error fetching orders, using local orders: %s", e)
            orders = []

        known = {o.get("order_number") for o in orders}
        orders = orders + [o for o in self._local_orders() if o.get("order_number") not in known]
        orders.sort(key=lambda o: o.get("date") or "", reverse=True)

        if query:
            q = query.lower()
            orders = [
                o for o in orders
                if q in str(o.get("order_number", "")).lower()
                or q in str(o.get("name", "")).lower()
                or q in str(o.get("email", "")).lower()
            ]
        return orders

    # ---------------- admin ----------------

    def update_order_status(self, order_number: str, status: str) -> Tuple[bool, str]:
        if status not in ORDER_STATUSES:
            return False, f"Unknown status: {status}"

        remote_ok = False
        try:
            rows = self.backend.update("orders", {"status": status}, {"order_number": order_number})
            remote_ok = bool(rows)
        except BackendError as e:
            logger.warning("Error updating order %s in backend: %s", order_number, e)

        local_ok = False
        with self._lock:
            orders = self._local_orders()
            for o in orders:
                if o.get("order_number") == order_number:
                    o["status"] = status
                    local_ok = True
            if local_ok:
                self._save_local_orders(orders)

        if not (remote_ok or local_ok):
            return False, "Order not found"
        logger.info("Order %s -> %s", order_number, status)
        return True, "ok"

    def sync_pending_orders(self) -> int:
        """Push locally kept orders to the backend. Returns how many made it."""
        with self._lock:
            pending = [o for o in self._local_orders() if not o.get("synced", True)]

        done = set()
        for o in pending:
            try:
                self._resubmit(o)
                done.add(o["order_number"])
            except BackendError as e:
                logger.warning("Order %s still not synced: %s", o.get("order_number"), e)

        if done:
            # re-read: orders placed while syncing must survive
            with self._lock:
                remaining = [o for o in self._local_orders() if o.get("order_number") not in done]
                self._save_local_orders(remaining)
            logger.info("Synced %s pending orders", len(done))
        return len(done)

    def pending_count(self) -> int:
        return sum(1 for o in self._local_orders() if not o.get("synced", True))
