from collections.abc import Awaitable, Callable
from typing import Any

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from craftshop.services.catalog import CatalogService
from craftshop.services.orders import OrderService


class ServicesMiddleware(BaseMiddleware):
    """Puts the shop services into handler kwargs (``catalog``, ``orders``)."""

    def __init__(self, catalog: CatalogService, orders: OrderService):
        self.catalog = catalog
        self.orders = orders

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        data["catalog"] = self.catalog
        data["orders"] = self.orders
        return await handler(event, data)
