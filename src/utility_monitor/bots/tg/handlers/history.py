"""Handlers for archived billing years and CSV imports."""

from __future__ import annotations

import logging

from aiogram import Bot, F, Router
from aiogram.filters import Command
from aiogram.types import Message

from utility_monitor.bots.tg.handlers.utils import command_args, resolve_meter
from utility_monitor.services.importer import CsvHistoryImporter, HistoryImportError
from utility_monitor.services.monitor import UtilityMonitor

router = Router(name=__name__)
logger = logging.getLogger(__name__)


@router.message(Command("history"))
async def handle_history(message: Message, monitor: UtilityMonitor) -> None:
    """Lists the archived years of a meter."""
    args = command_args(message.text)
    meter = resolve_meter(monitor, *args[:2]) if args else None
    if meter is None:
        await message.answer("Usage: /history &lt;type&gt; [meter]")
        return

    records = await monitor.history.list_for_meter(meter.utility_type, meter.name)
    if not records:
        await message.answer(f"No archived years for <b>{meter.display_name}</b>.")
        return

    unit = meter.utility_type.unit
    lines = [f"<b>{meter.display_name}</b>"]
    for record in records:
        lines.append(
            f"{record.year}: {record.consumption} {unit}, {record.total_yearly} €, "
            f"balance {record.balance} € ({record.source.value})"
        )
    await message.answer("\n".join(lines))


@router.message(F.document, F.caption.startswith("/import"))
async def handle_import(
    message: Message, bot: Bot, monitor: UtilityMonitor, importer: CsvHistoryImporter
) -> None:
    """Imports a CSV document sent with caption /import <type> [meter]."""
    args = command_args(message.caption)
    meter = resolve_meter(monitor, *args[:2]) if args else None
    if meter is None or message.document is None:
        await message.answer("Caption must be /import &lt;type&gt; [meter]")
        return

    buffer = await bot.download(message.document)
    content = buffer.read().decode("utf-8-sig", errors="replace")
    try:
        result = await importer.import_csv(meter, content)
    except HistoryImportError as e:
        logger.warning(f"[{meter.path}] CSV import failed: {e}")
        await message.answer(f"❌ {e}")
        return

    text = (
        f"Imported {result.count} rows ({result.first} to {result.last}).\n"
        f"Created years: {', '.join(map(str, result.created_years)) or 'none'}"
    )
    if result.skipped_years:
        text += f"\nAlready archived: {', '.join(map(str, result.skipped_years))}"
    await message.answer(text)
