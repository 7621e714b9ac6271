import asyncio
import html
import logging

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.types import Message, ReplyKeyboardRemove

from craftshop.bot.keyboards import categories_kb, main_kb, statuses_kb
from craftshop.bot.states import ProductAdd
from craftshop.config import settings
from craftshop.constants import ORDER_STATUSES
from craftshop.services.catalog import CatalogService
from craftshop.services.dashboard import dashboard_stats
from craftshop.services.orders import OrderService
from craftshop.utils.formatters import format_date, money
from craftshop.utils.validators import parse_price

logger = logging.getLogger(__name__)

router = Router()

ORDERS_PAGE = 10


def _is_admin(message: Message) -> bool:
    try:
        return int(message.from_user.id) == int(settings.admin_id)
    except Exception:
        return False


def order_line(o: dict) -> str:
    local = " (local)" if o.get("synced") is False else ""
    return (
        f"• <code>{html.escape(str(o['order_number']))}</code>{local} | "
        f"{html.escape(str(o.get('name', '')))} | {money(o.get('total', 0))} | {o.get('status', '')}"
    )


def order_text(o: dict) -> str:
    lines = [
        f"<b>Order {html.escape(str(o['order_number']))}</b>",
        f"Status: {o.get('status', '')}",
        f"Date: {format_date(o.get('date'))}",
        f"Customer: {html.escape(str(o.get('name', '')))} ({html.escape(str(o.get('email', '')))})",
        f"Phone: {html.escape(str(o.get('phone') or '-'))}",
        f"Address: {html.escape(str(o.get('address') or ''))} {html.escape(str(o.get('city') or ''))}".rstrip(),
        "",
    ]
    for it in o.get("items") or []:
        lines.append(f"  • {html.escape(str(it.get('name', '')))} × {it.get('quantity', 1)} — {money(it.get('price', 0))}")
    lines.append("")
    lines.append(f"<b>Total: {money(o.get('total', 0))}</b>")
    if o.get("notes"):
        lines.append(f"Notes: {html.escape(str(o['notes']))}")
    return "\n".join(lines)


@router.message(Command("start"))
async def cmd_start(message: Message):
    if not _is_admin(message):
        return
    await message.answer("✅ Shop admin bot is running", reply_markup=main_kb())


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    await state.clear()
    await message.answer("❎ Cancelled.", reply_markup=ReplyKeyboardRemove())


@router.message(Command("help"))
async def cmd_help(message: Message):
    if not _is_admin(message):
        return

    text = (
        "<b>Shop admin bot</b>\n\n"
        "/start — start\n"
        "/cancel — cancel input\n"
        "/ping — check\n\n"
        "<b>Orders</b>\n"
        "/orders [query] — latest orders\n"
        "/order NUMBER — order details\n"
        "/status NUMBER STATUS — " + "|".join(ORDER_STATUSES) + "\n"
        "/sync — push locally stored orders to the backend\n"
        "/stats — dashboard\n\n"
        "<b>Products</b>\n"
        "/products — list\n"
        "/soldout ID on|off — availability\n"
        "/product_add — add product wizard\n"
    )
    await message.answer(text)


@router.message(Command("ping"))
async def cmd_ping(message: Message):
    if not _is_admin(message):
        return
    await message.answer("pong ✅")


# ---------------- orders ----------------

@router.message(Command("orders"))
async def cmd_orders(message: Message, command: CommandObject, orders: OrderService):
    if not _is_admin(message):
        return
    rows = await asyncio.to_thread(orders.list_orders, (command.args or "").strip())
    if not rows:
        await message.answer("No orders found.")
        return
    lines = ["<b>Orders:</b>"] + [order_line(o) for o in rows[:ORDERS_PAGE]]
    if len(rows) > ORDERS_PAGE:
        lines.append(f"… and {len(rows) - ORDERS_PAGE} more")
    await message.answer("\n".join(lines))


@router.message(Command("order"))
async def cmd_order(message: Message, command: CommandObject, orders: OrderService):
    if not _is_admin(message):
        return
    number = (command.args or "").strip()
    if not number:
        await message.answer("Usage: /order NUMBER")
        return
    order = await asyncio.to_thread(orders.get_order, number)
    if not order:
        await message.answer("❌ Order not found")
        return
    await message.answer(order_text(order), reply_markup=statuses_kb(order["order_number"]))


@router.message(Command("status"))
async def cmd_status(message: Message, command: CommandObject, orders: OrderService):
    if not _is_admin(message):
        return
    parts = (command.args or "").split()
    if len(parts) != 2:
        await message.answer("Usage: /status NUMBER " + "|".join(ORDER_STATUSES))
        return
    number, status = parts
    ok, err = await asyncio.to_thread(orders.update_order_status, number, status.capitalize())
    if ok:
        await message.answer(f"✅ {number}: {status.capitalize()}", reply_markup=ReplyKeyboardRemove())
    else:
        await message.answer(f"❌ {err}")


@router.message(Command("sync"))
async def cmd_sync(message: Message, orders: OrderService):
    if not _is_admin(message):
        return
    synced = await asyncio.to_thread(orders.sync_pending_orders)
    left = await asyncio.to_thread(orders.pending_count)
    await message.answer(f"Synced: {synced}. Still local: {left}.")


@router.message(Command("stats"))
async def cmd_stats(message: Message, orders: OrderService, catalog: CatalogService):
    if not _is_admin(message):
        return
    order_rows = await asyncio.to_thread(orders.list_orders)
    products = await asyncio.to_thread(catalog.get_products)
    stats = dashboard_stats(order_rows, products)
    await message.answer(
        "<b>Dashboard</b>\n"
        f"Total orders: {stats['total_orders']}\n"
        f"Pending orders: {stats['pending_orders']}\n"
        f"Total products: {stats['total_products']}\n"
        f"Revenue: {money(stats['total_revenue'])}"
    )


# ---------------- products ----------------

@router.message(Command("products"))
async def cmd_products(message: Message, catalog: CatalogService):
    if not _is_admin(message):
        return
    rows = await asyncio.to_thread(catalog.get_products)
    if not rows:
        await message.answer("No products yet. Add one: /product_add")
        return
    lines = ["<b>Products:</b>"]
    for p in rows:
        flag = " ⛔ sold out" if p["is_sold_out"] else ""
        lines.append(f"• <code>{p['id']}</code> {html.escape(p['name'])} — {money(p['price'])}{flag}")
    await message.answer("\n".join(lines))


@router.message(Command("soldout"))
async def cmd_soldout(message: Message, command: CommandObject, catalog: CatalogService):
    if not _is_admin(message):
        return
    parts = (command.args or "").split()
    if len(parts) != 2 or parts[1].lower() not in ("on", "off"):
        await message.answer("Usage: /soldout ID on|off")
        return
    ok, err = await asyncio.to_thread(catalog.set_sold_out, parts[0], parts[1].lower() == "on")
    await message.answer("✅ Updated" if ok else f"❌ {err}")


@router.message(Command("product_add"))
async def cmd_product_add(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    await state.clear()
    await state.set_state(ProductAdd.waiting_name)
    await message.answer(
        "Adding a product.\n\n1/4) Enter the NAME\nCancel: /cancel",
        reply_markup=ReplyKeyboardRemove(),
    )


@router.message(ProductAdd.waiting_name)
async def product_add_name(message: Message, state: FSMContext, catalog: CatalogService):
    if not _is_admin(message):
        return
    name = (message.text or "").strip()
    if not name or name.startswith("/"):
        await message.answer("Enter the name as text. Cancel: /cancel")
        return
    await state.update_data(name=name)
    await state.set_state(ProductAdd.waiting_category)
    names = await asyncio.to_thread(catalog.category_names)
    await message.answer("2/4) Choose the CATEGORY", reply_markup=categories_kb(names))


@router.message(ProductAdd.waiting_category)
async def product_add_category(message: Message, state: FSMContext, catalog: CatalogService):
    if not _is_admin(message):
        return
    text = (message.text or "").strip().lower()
    names = await asyncio.to_thread(catalog.category_names)
    category = next((n for n in names if n.lower() == text), None)
    if category is None:
        await message.answer("Choose one of the categories below. Cancel: /cancel", reply_markup=categories_kb(names))
        return
    await state.update_data(category=category)
    await state.set_state(ProductAdd.waiting_price)
    await message.answer("3/4) Enter the PRICE.\nExample: 89.99", reply_markup=ReplyKeyboardRemove())


@router.message(ProductAdd.waiting_price)
async def product_add_price(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    try:
        price = parse_price(message.text or "")
    except ValueError:
        await message.answer("❌ Price must be a number, e.g. 89.99. Cancel: /cancel")
        return
    await state.update_data(price=price)
    await state.set_state(ProductAdd.waiting_image)
    await message.answer("4/4) Send the IMAGE URL, or '-' to skip.")


@router.message(ProductAdd.waiting_image)
async def product_add_image(message: Message, state: FSMContext, catalog: CatalogService):
    if not _is_admin(message):
        return
    image = (message.text or "").strip()
    if image == "-":
        image = ""

    data = await state.get_data()
    try:
        ok, result = await asyncio.to_thread(catalog.create_product, {**data, "image": image})
    finally:
        await state.clear()

    if ok:
        await message.answer(f"✅ Product added: {html.escape(result['name'])} (<code>{result['id']}</code>)")
    else:
        await message.answer(f"❌ {result}")
