from typing import Iterable

from aiogram.types import KeyboardButton, ReplyKeyboardMarkup

from craftshop.constants import ORDER_STATUSES


def main_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="/orders"), KeyboardButton(text="/stats")],
            [KeyboardButton(text="/products"), KeyboardButton(text="/product_add")],
            [KeyboardButton(text="/sync"), KeyboardButton(text="/ping")],
        ],
        resize_keyboard=True,
    )


def categories_kb(names: Iterable[str]) -> ReplyKeyboardMarkup:
    names = list(names)
    rows = [[KeyboardButton(text=n) for n in names[i:i + 3]] for i in range(0, len(names), 3)]
    rows.append([KeyboardButton(text="/cancel")])
    return ReplyKeyboardMarkup(keyboard=rows, resize_keyboard=True, one_time_keyboard=True)


def statuses_kb(order_number: str) -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=f"/status {order_number} {s}")] for s in ORDER_STATUSES],
        resize_keyboard=True,
        one_time_keyboard=True,
    )
