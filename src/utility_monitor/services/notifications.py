"""Reminders and monthly reports sent to the operator."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Protocol

from aiogram import Bot
from jinja2 import Environment, FileSystemLoader

from utility_monitor.core.dates import format_german_date
from utility_monitor.core.meter_config import MeterConfig, MonitorConfig
from utility_monitor.core.models import UtilityType
from utility_monitor.core.repositories.state import StateRepository
from utility_monitor.core.units import round_to_decimals

logger = logging.getLogger(__name__)

LAST_REPORT_PATH = "system.lastMonthlyReport"


class Notifier(Protocol):
    """Delivers a rendered message."""

    async def send(self, text: str) -> None: ...


class TelegramNotifier:
    """Sends messages to the configured Telegram chats."""

    def __init__(self, bot: Bot, chat_ids: Sequence[int]):
        self._bot = bot
        self._chat_ids = list(chat_ids)

    async def send(self, text: str) -> None:
        if not self._chat_ids:
            logger.warning("No chat ids configured, notification dropped")
            return
        for chat_id in self._chat_ids:
            await self._bot.send_message(chat_id, text)


class NotificationService:
    """Checks reminder thresholds and sends the monthly report."""

    def __init__(
        self,
        state: StateRepository,
        config: MonitorConfig,
        notifier: Notifier,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._state = state
        self._config = config
        self._notifier = notifier
        self._clock = clock
        template_dir = Path(__file__).parent.parent / "templates"
        self._env = Environment(loader=FileSystemLoader(template_dir))

    def render(self, template_name: str, **context: Any) -> str:
        return self._env.get_template(template_name).render(**context)

    async def _send(self, template_name: str, **context: Any) -> bool:
        try:
            await self._notifier.send(self.render(template_name, **context))
        except Exception as e:
            logger.error(f"Failed to send {template_name}: {e}", exc_info=True)
            return False
        return True

    async def check_notifications(self) -> None:
        settings = self._config.notifications
        if not settings.enabled:
            return

        for utility_type in self._config.active_types:
            if utility_type not in settings.utility_types:
                continue
            for meter in self._config.meters_for(utility_type):
                await self._check_meter(meter)

        await self.check_monthly_report()

    async def _check_meter(self, meter: MeterConfig) -> None:
        settings = self._config.notifications
        billing = f"{meter.path}.billing"
        days = await self._state.get_number(f"{billing}.daysRemaining", None)
        if days is None:
            return

        context = {
            "type_label": meter.utility_type.value.capitalize(),
            "meter_label": meter.display_name,
            "days_remaining": int(days),
            "period_end": (
                await self._state.get_value(f"{billing}.periodEnd") or "--.--.----"
            ),
        }

        reminders = (
            (
                settings.billing_enabled,
                settings.billing_days,
                "notificationSent",
                "billing_reminder.j2",
            ),
            (
                settings.change_enabled,
                settings.change_days,
                "notificationChangeSent",
                "change_reminder.j2",
            ),
        )
        for enabled, threshold, flag, template_name in reminders:
            if not enabled or days > threshold:
                continue
            if await self._state.get_flag(f"{billing}.{flag}"):
                continue
            if await self._send(template_name, **context):
                await self._state.set_value(f"{billing}.{flag}", True)
                logger.info(f"[{meter.path}] Sent {template_name} ({int(days)} days left)")

    async def check_monthly_report(self) -> bool:
        """Sends the report on the configured day, at most once per day."""
        settings = self._config.notifications
        if not settings.monthly_enabled:
            return False

        today = self._clock().date()
        if today.day != settings.monthly_day:
            return False
        if await self._state.get_value(LAST_REPORT_PATH) == today.isoformat():
            return False

        sections = [await self._report_section(t) for t in self._config.active_types]
        if not sections:
            return False

        sent = await self._send(
            "monthly_report.j2", report_date=format_german_date(today), sections=sections
        )
        if sent:
            await self._state.set_value(LAST_REPORT_PATH, today.isoformat())
            logger.info("Monthly report sent")
        return sent

    async def _report_section(self, utility_type: UtilityType) -> dict[str, Any]:
        meters = self._config.meters_for(utility_type)
        totals = f"{utility_type.value}.totals"
        if len(meters) > 1 and await self._state.exists(totals):
            consumption = await self._state.get_number(f"{totals}.consumption.yearly")
            total_yearly = await self._state.get_number(f"{totals}.costs.totalYearly")
        else:
            main = meters[0].path
            consumption = await self._state.get_number(f"{main}.consumption.yearly")
            total_yearly = await self._state.get_number(f"{main}.costs.totalYearly")

        paid_total = Decimal("0")
        balance = Decimal("0")
        for meter in meters:
            paid_total += await self._state.get_number(f"{meter.path}.costs.paidTotal")
            balance += await self._state.get_number(f"{meter.path}.costs.balance")

        return {
            "label": utility_type.value.capitalize(),
            "meter_count": len(meters),
            "unit": utility_type.unit,
            "consumption": round_to_decimals(consumption),
            "total_yearly": round_to_decimals(total_yearly),
            "paid_total": round_to_decimals(paid_total),
            "balance": round_to_decimals(balance),
        }
