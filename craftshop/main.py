import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from craftshop.bot.handlers import router
from craftshop.bot.middlewares import ServicesMiddleware
from craftshop.config import settings
from craftshop.db.sqlite import LocalStorage
from craftshop.services.backend import create_backend
from craftshop.services.catalog import CatalogService
from craftshop.services.orders import OrderService


async def main() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    if not settings.bot_token:
        raise RuntimeError("BOT_TOKEN is empty. Set BOT_TOKEN in .env")
    if not settings.admin_id:
        raise RuntimeError("ADMIN_ID is empty. Set ADMIN_ID (or ADMIN_TG_ID) in .env")

    storage = LocalStorage(settings.db_path)
    storage.init_db()
    backend = create_backend(settings)

    bot = Bot(token=settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = Dispatcher()
    dp.update.middleware(ServicesMiddleware(CatalogService(storage, backend), OrderService(storage, backend)))
    dp.include_router(router)

    await dp.start_polling(bot)


if __name__ == "__main__":
    asyncio.run(main())
