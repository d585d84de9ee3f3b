"""Inline keyboard builders."""

from collections.abc import Iterable

from aiogram.filters.callback_data import CallbackData
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from utility_monitor.core.meter_config import MeterConfig


class SelectMeterCallback(CallbackData, prefix="mtr"):
    """Callback data for selecting a meter."""

    action: str  # e.g., 'close'
    utility: str
    name: str


class ConfirmCallback(CallbackData, prefix="cnf"):
    """Callback data for yes/no confirmations."""

    action: str
    confirmed: bool


def meters_keyboard(meters: Iterable[MeterConfig], action: str) -> InlineKeyboardMarkup:
    """One button per meter, labelled ``Type / display name``."""
    builder = InlineKeyboardBuilder()
    for meter in meters:
        builder.row(
            InlineKeyboardButton(
                text=f"{meter.utility_type.value.capitalize()} / {meter.display_name}",
                callback_data=SelectMeterCallback(
                    action=action, utility=meter.utility_type.value, name=meter.name
                ).pack(),
            )
        )
    return builder.as_markup()


def confirm_keyboard(action: str) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text="✅ Confirm",
            callback_data=ConfirmCallback(action=action, confirmed=True).pack(),
        ),
        InlineKeyboardButton(
            text="❌ Cancel",
            callback_data=ConfirmCallback(action=action, confirmed=False).pack(),
        ),
    )
    return builder.as_markup()
