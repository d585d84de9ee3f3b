"""Handlers for submitting sensor values."""

from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from utility_monitor.bots.tg.handlers.utils import command_args
from utility_monitor.services.monitor import UtilityMonitor
from utility_monitor.services.tracker import ReadingStatus

router = Router(name=__name__)

STATUS_TEXT = {
    ReadingStatus.INVALID: "ignored (invalid value)",
    ReadingStatus.BASELINE: "stored as new baseline",
    ReadingStatus.UNCHANGED: "unchanged",
    ReadingStatus.ACCEPTED: "accepted",
    ReadingStatus.DECREASED: "counter decreased, sums kept (meter replaced?)",
    ReadingStatus.SPIKE: "rejected as spike, re-baselined",
    ReadingStatus.SPIKE_ACCEPTED: "accepted after repeated jumps",
}


@router.message(Command("reading"))
async def handle_reading(message: Message, monitor: UtilityMonitor) -> None:
    """Handles /reading <sensor> <value>."""
    args = command_args(message.text)
    if len(args) != 2:
        await message.answer("Usage: /reading &lt;sensor&gt; &lt;value&gt;")
        return

    sensor_id, value = args
    updates = await monitor.handle_sensor_value(sensor_id, value)
    if not updates:
        await message.answer(f"No meter is fed by sensor <code>{sensor_id}</code>.")
        return

    lines = []
    for update in updates:
        result = update.result
        text = f"<b>{update.meter}</b>: {STATUS_TEXT[result.status]}"
        if result.accepted:
            text += f" (+{result.delta} {update.meter.utility_type.unit})"
        lines.append(text)
    await message.answer("\n".join(lines))
