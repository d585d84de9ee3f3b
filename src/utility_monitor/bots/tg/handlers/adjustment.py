"""Handlers for manual consumption corrections."""

from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from utility_monitor.bots.tg.handlers.utils import command_args, resolve_meter
from utility_monitor.core.units import to_decimal
from utility_monitor.services.monitor import UtilityMonitor

router = Router(name=__name__)

USAGE = "Usage: /adjust &lt;type&gt; [meter] &lt;value&gt; [note]"


@router.message(Command("adjust"))
async def handle_adjust(message: Message, monitor: UtilityMonitor) -> None:
    """Handles /adjust gas [meter] -12,5 [note]."""
    args = command_args(message.text)
    if len(args) < 2:
        await message.answer(USAGE)
        return

    utility, rest = args[0], args[1:]
    name = None
    if to_decimal(rest[0], None) is None:
        name, rest = rest[0], rest[1:]
    value = to_decimal(rest[0], None) if rest else None
    if value is None:
        await message.answer(USAGE)
        return

    meter = resolve_meter(monitor, utility, name)
    if meter is None:
        await message.answer("Unknown meter.")
        return

    note = " ".join(rest[1:])
    await monitor.set_adjustment(meter.utility_type, meter.name, value, note)
    total = await monitor.state.get_number(f"{meter.path}.costs.totalYearly")
    await message.answer(
        f"Adjustment of <b>{meter.display_name}</b> set to {value}. "
        f"Yearly total is now {total} €."
    )
