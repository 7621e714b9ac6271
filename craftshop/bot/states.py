from aiogram.fsm.state import State, StatesGroup


class ProductAdd(StatesGroup):
    waiting_name = State()
    waiting_category = State()
    waiting_price = State()
    waiting_image = State()
