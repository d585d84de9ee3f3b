"""FSM states for the bot."""

from aiogram.fsm.state import State, StatesGroup


class BillingClose(StatesGroup):
    """States for closing a billing year."""

    select_meter = State()
    enter_end_reading = State()
    confirm_close = State()
