"""Handlers for closing a billing year (FSM)."""

from __future__ import annotations

import logging

from aiogram import Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from utility_monitor.bots.tg.handlers.utils import resolve_meter
from utility_monitor.bots.tg.keyboards.inline import (
    ConfirmCallback,
    SelectMeterCallback,
    confirm_keyboard,
    meters_keyboard,
)
from utility_monitor.bots.tg.states import BillingClose
from utility_monitor.core.units import to_decimal
from utility_monitor.services.billing import BillingError
from utility_monitor.services.monitor import UtilityMonitor

router = Router(name=__name__)
logger = logging.getLogger(__name__)


@router.message(Command("close"))
async def handle_close_command(
    message: Message, state: FSMContext, monitor: UtilityMonitor
) -> None:
    """Starts the close flow by listing meters with a contract date."""
    meters = [
        meter
        for utility_type in monitor.config.active_types
        for meter in monitor.config.meters_for(utility_type)
        if meter.contract_start is not None
    ]
    if not meters:
        await message.answer("No meter with a contract start date is configured.")
        return

    await state.set_state(BillingClose.select_meter)
    await message.answer(
        "Select the meter whose billing year should be closed:",
        reply_markup=meters_keyboard(meters, "close"),
    )


@router.callback_query(BillingClose.select_meter, SelectMeterCallback.filter())
async def handle_meter_selection(
    query: CallbackQuery,
    callback_data: SelectMeterCallback,
    state: FSMContext,
    monitor: UtilityMonitor,
) -> None:
    if not isinstance(query.message, Message):
        return

    meter = resolve_meter(monitor, callback_data.utility, callback_data.name)
    if meter is None:
        await query.message.edit_text("This meter is no longer configured.")
        await state.clear()
        return

    reading = await monitor.state.get_number(meter.reading_path, None)
    await state.update_data(utility=meter.utility_type.value, name=meter.name)
    await state.set_state(BillingClose.enter_end_reading)

    hint = f"\nCurrent reading: <b>{reading}</b>" if reading is not None else ""
    unit = "m³" if meter.utility_type.is_volumetric else meter.utility_type.unit
    await query.message.edit_text(
        f"<b>{meter.display_name}</b>{hint}\n\nEnter the end reading ({unit}):"
    )


@router.message(BillingClose.enter_end_reading)
async def handle_end_reading(message: Message, state: FSMContext) -> None:
    value = to_decimal(message.text, None)
    if value is None or value <= 0:
        await message.answer("Please enter a positive number, e.g. 12345,6")
        return

    await state.update_data(end_reading=str(value))
    await state.set_state(BillingClose.confirm_close)
    await message.answer(
        f"Close the billing year with end reading <b>{value}</b>?",
        reply_markup=confirm_keyboard("close"),
    )


@router.callback_query(BillingClose.confirm_close, ConfirmCallback.filter())
async def handle_confirmation(
    query: CallbackQuery,
    callback_data: ConfirmCallback,
    state: FSMContext,
    monitor: UtilityMonitor,
) -> None:
    if not isinstance(query.message, Message):
        return

    data = await state.get_data()
    await state.clear()
    if not callback_data.confirmed:
        await query.message.edit_text("Cancelled.")
        return

    meter = resolve_meter(monitor, data.get("utility"), data.get("name"))
    if meter is None:
        await query.message.edit_text("This meter is no longer configured.")
        return

    try:
        record = await monitor.request_close(
            meter.utility_type, meter.name, data["end_reading"]
        )
    except BillingError as e:
        logger.warning(f"Billing close rejected: {e}")
        await query.message.edit_text(f"❌ {e}")
        return

    await query.message.edit_text(
        f"✅ Year {record.year} of <b>{meter.display_name}</b> archived: "
        f"{record.consumption} {meter.utility_type.unit}, {record.total_yearly} €, "
        f"balance {record.balance} €."
    )
