"""Closing of billing years: archive the yearly figures and start a new year."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, time, timedelta
from decimal import Decimal

from tortoise.transactions import in_transaction

from utility_monitor.core.dates import next_anniversary
from utility_monitor.core.meter_config import MeterConfig
from utility_monitor.core.models import HistoryRecord, HistorySource, UtilityType
from utility_monitor.core.periods import PeriodKind, initial_anchor
from utility_monitor.core.repositories.history import HistoryRepository
from utility_monitor.core.repositories.state import StateRepository
from utility_monitor.core.units import round_to_decimals
from utility_monitor.services.billing import BillingError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

YEARLY_COST_KEYS = ("yearly", "totalYearly", "balance", "paidTotal")


class BillingCloseError(BillingError):
    """Raised when a billing year cannot be closed."""


class BillingPeriodCloser:
    """
    Archives a meter's billing year into a ``HistoryRecord`` and resets it.

    The archive and the reset are written in one transaction, so a failed
    close never leaves a partial archive behind.
    """

    def __init__(
        self,
        state: StateRepository,
        history: HistoryRepository,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._state = state
        self._history = history
        self._clock = clock

    async def _year_anchor(self, meter: MeterConfig) -> datetime:
        anchor = await self._state.get_datetime(f"{meter.path}.statistics.lastYearStart")
        if anchor is None:
            anchor = initial_anchor(PeriodKind.YEARLY, self._clock(), meter.contract_start)
        return anchor

    @staticmethod
    def following_anchor(meter: MeterConfig, anchor: datetime) -> datetime:
        """Start of the billing year after the one starting at ``anchor``."""
        if meter.contract_start is None:
            following = anchor.date().replace(year=anchor.year + 1, month=1, day=1)
        else:
            following = next_anniversary(
                meter.contract_start, anchor.date() + timedelta(days=1)
            )
        return datetime.combine(following, time())

    async def close_period(self, meter: MeterConfig) -> HistoryRecord:
        """
        Manual close, driven by ``billing.closePeriod``.

        Requires a positive ``billing.endReading`` and a contract start date.
        The command flag is cleared whether the close succeeds or not.

        Raises:
            BillingCloseError: if a precondition is missing or the year is
                already archived.
        """
        base = meter.path
        try:
            end_reading = await self._state.get_number(f"{base}.billing.endReading", None)
            if end_reading is None or end_reading <= 0:
                raise BillingCloseError(
                    f"[{base}] Cannot close billing period: no valid end reading"
                )
            if meter.contract_start is None:
                raise BillingCloseError(
                    f"[{base}] Cannot close billing period: no contract start date"
                )

            anchor = await self._year_anchor(meter)
            if await self._history.has_year(meter.utility_type, meter.name, anchor.year):
                raise BillingCloseError(
                    f"[{base}] Billing year {anchor.year} is already archived"
                )

            async with in_transaction():
                record = await self._archive(
                    meter, anchor.year, end_reading, HistorySource.CLOSE
                )
                await self._reset_year(meter, anchor, end_reading)

            logger.info(
                f"[{base}] Billing year {anchor.year} closed at reading {end_reading}"
            )
            return record
        finally:
            await self._state.set_value(f"{base}.billing.closePeriod", False)

    async def close_year_automatically(
        self, meter: MeterConfig, now: datetime | None = None
    ) -> HistoryRecord | None:
        """
        Yearly rollover without an operator supplied end reading.

        An existing archive for the year is kept and only the reset runs.
        """
        base = meter.path
        anchor = await self._year_anchor(meter)
        end_reading = await self._state.get_number(meter.reading_path, None)

        record = None
        async with in_transaction():
            if await self._history.has_year(meter.utility_type, meter.name, anchor.year):
                logger.info(f"[{base}] Year {anchor.year} already archived, keeping it")
            else:
                record = await self._archive(
                    meter, anchor.year, end_reading, HistorySource.ROLLOVER
                )
            await self._reset_year(meter, anchor, end_reading)

        logger.info(f"[{base}] Billing year {anchor.year} rolled over")
        return record

    async def _archive(
        self,
        meter: MeterConfig,
        year: int,
        end_reading: Decimal | None,
        source: HistorySource,
    ) -> HistoryRecord:
        base = meter.path
        gas = meter.utility_type is UtilityType.GAS

        async def number(path: str) -> Decimal:
            return await self._state.get_number(f"{base}.{path}")

        return await self._history.create(
            utility_type=meter.utility_type,
            meter_name=meter.name,
            year=year,
            consumption=round_to_decimals(await number("consumption.yearly"), 3),
            consumption_volume=(
                round_to_decimals(await number("consumption.yearlyVolume"), 3)
                if gas
                else None
            ),
            consumption_ht=(
                await number("consumption.yearlyHT") if meter.ht_nt_enabled else None
            ),
            consumption_nt=(
                await number("consumption.yearlyNT") if meter.ht_nt_enabled else None
            ),
            total_yearly=round_to_decimals(await number("costs.totalYearly")),
            balance=round_to_decimals(await number("costs.balance")),
            end_reading=end_reading,
            source=source,
        )

    async def _reset_year(
        self, meter: MeterConfig, anchor: datetime, end_reading: Decimal | None
    ) -> None:
        base = meter.path
        consumption_keys = ["yearly"]
        cost_keys = list(YEARLY_COST_KEYS)
        if meter.utility_type is UtilityType.GAS:
            consumption_keys.append("yearlyVolume")
        if meter.ht_nt_enabled:
            consumption_keys.extend(["yearlyHT", "yearlyNT"])
            cost_keys.extend(["yearlyHT", "yearlyNT"])

        for key in consumption_keys:
            await self._state.set_value(f"{base}.consumption.{key}", ZERO, strict=True)
        for key in cost_keys:
            await self._state.set_value(f"{base}.costs.{key}", ZERO, strict=True)

        await self._state.set_values(
            f"{base}.adjustment", {"value": ZERO, "applied": ZERO, "note": ""}, strict=True
        )
        await self._state.set_values(
            f"{base}.billing",
            {"notificationSent": False, "notificationChangeSent": False},
            strict=True,
        )
        if end_reading is not None:
            await self._state.set_value(
                f"{base}.billing.newInitialReading", end_reading, strict=True
            )

        following = self.following_anchor(meter, anchor)
        await self._state.set_value(
            f"{base}.statistics.lastYearStart", following, strict=True
        )
        logger.info(f"[{base}] New billing year starts {following:%d.%m.%Y}")
