"""One CartStore per visitor session, owned by the application root."""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict

from craftshop.cart.store import CartStore
from craftshop.db.sqlite import LocalStorage, SessionCartPersistence

logger = logging.getLogger(__name__)


class CartProvider:
    """
    LRU map of session id -> CartStore.
    An evicted cart comes back from SQLite on the next request (closed).
    """

    def __init__(self, storage: LocalStorage, decimals: int = 2, max_size: int = 1000):
        self.storage = storage
        self.decimals = decimals
        self._max_size = max_size
        self._carts: OrderedDict[str, CartStore] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._carts)

    def get(self, session_id: str) -> CartStore:
        with self._lock:
            cart = self._carts.get(session_id)
            if cart is not None:
                self._carts.move_to_end(session_id)
                return cart

            while len(self._carts) >= self._max_size:
                evicted, _ = self._carts.popitem(last=False)
                logger.debug("Cart for session %s evicted", evicted)

            cart = CartStore(SessionCartPersistence(self.storage, session_id), decimals=self.decimals)
            self._carts[session_id] = cart
            logger.debug("Cart rehydrated for session %s (%s items)", session_id, len(cart.items))
            return cart

    def reset(self) -> None:
        with self._lock:
            self._carts.clear()
