"""Shopping cart state shared by the header badge, cart panel and checkout."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class CartPersistence(Protocol):
    def load(self) -> Optional[List[Dict[str, Any]]]:
        ...

    def save(self, items: List[Dict[str, Any]]) -> None:
        ...


class MemoryCartPersistence:
    """Keeps the serialized items in memory. Used by tests and one-off carts."""

    def __init__(self, items: Optional[List[Dict[str, Any]]] = None):
        self.items = items
        self.saves = 0

    def load(self) -> Optional[List[Dict[str, Any]]]:
        return self.items

    def save(self, items: List[Dict[str, Any]]) -> None:
        self.saves += 1
        self.items = [dict(it) for it in items]


@dataclass
class CartLineItem:
    id: str
    name: str
    price: float
    image: str
    quantity: int = 1

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLineItem":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            price=float(data.get("price", 0)),
            image=str(data.get("image", "")),
            quantity=max(1, int(data.get("quantity", 1))),
        )


class CartStore:
    def __init__(self, persistence: Optional[CartPersistence] = None, decimals: int = 2):
        self._persistence = persistence
        self._decimals = decimals
        self.items: List[CartLineItem] = self._rehydrate()
        self.is_open = False

    def _rehydrate(self) -> List[CartLineItem]:
        if self._persistence is None:
            return []
        try:
            raw = self._persistence.load()
        except Exception:
            logger.exception("Cart load failed, starting with an empty cart")
            return []
        if not isinstance(raw, list):
            return []

        items: List[CartLineItem] = []
        seen: set[str] = set()
        for entry in raw:
            try:
                item = CartLineItem.from_dict(entry)
            except (KeyError, TypeError, ValueError):
                logger.warning("Dropping malformed cart entry: %r", entry)
                continue
            # stored data may predate the one-line-per-id rule
            if item.id in seen:
                self._find(item.id, items).quantity += item.quantity
                continue
            seen.add(item.id)
            items.append(item)
        return items

    @staticmethod
    def _find(item_id: str, items: List[CartLineItem]) -> Optional[CartLineItem]:
        for it in items:
            if it.id == item_id:
                return it
        return None

    def _persist(self) -> None:
        if self._persistence is None:
            return
        try:
            self._persistence.save([it.to_dict() for it in self.items])
        except Exception as e:
            # in-memory state stays authoritative
            logger.warning("Cart persistence failed: %s", e)

    def get_item(self, item_id: str) -> Optional[CartLineItem]:
        return self._find(str(item_id), self.items)

    def add_item(self, item: Dict[str, Any], quantity: int = 1) -> CartLineItem:
        qty = max(1, int(quantity or 1))
        item_id = str(item["id"])

        existing = self._find(item_id, self.items)
        if existing is not None:
            existing.quantity += qty
            line = existing
        else:
            line = CartLineItem(
                id=item_id,
                name=str(item.get("name", "")),
                price=float(item.get("price", 0)),
                image=str(item.get("image", "")),
                quantity=qty,
            )
            self.items.append(line)

        self._persist()
        return line

    def remove_item(self, item_id: str) -> None:
        item_id = str(item_id)
        self.items = [it for it in self.items if it.id != item_id]
        self._persist()

    def update_quantity(self, item_id: str, quantity: int) -> None:
        # quantity <= 0 never removes a line, remove_item does that
        line = self._find(str(item_id), self.items)
        if line is not None and int(quantity) > 0:
            line.quantity = int(quantity)
        self._persist()

    def clear_cart(self) -> None:
        self.items = []
        self._persist()

    def get_cart_total(self) -> float:
        total = 0.0
        for it in self.items:
            total = round(total + it.line_total, self._decimals)
        return total

    def get_cart_count(self) -> int:
        return sum(it.quantity for it in self.items)

    def open_cart(self) -> None:
        self.is_open = True

    def close_cart(self) -> None:
        self.is_open = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [it.to_dict() for it in self.items],
            "isOpen": self.is_open,
            "count": self.get_cart_count(),
            "total": self.get_cart_total(),
        }
