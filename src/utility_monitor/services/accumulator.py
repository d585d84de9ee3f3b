"""Daily, weekly, monthly and yearly consumption windows of a meter."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from decimal import Decimal

from utility_monitor.core.meter_config import MeterConfig, MonitorConfig
from utility_monitor.core.models import UtilityType
from utility_monitor.core.periods import (
    PeriodKind,
    days_elapsed,
    initial_anchor,
    is_due,
    next_boundary,
    reset_anchor,
)
from utility_monitor.core.repositories.state import StateRepository
from utility_monitor.core.units import round_to_decimals

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ROLLING_KINDS = (PeriodKind.DAILY, PeriodKind.WEEKLY, PeriodKind.MONTHLY)

YearEndCallback = Callable[[MeterConfig, datetime], Awaitable[object]]


class PeriodAccumulator:
    """Owns the running sums of a meter and their reset policy."""

    def __init__(
        self,
        state: StateRepository,
        config: MonitorConfig,
        on_year_end: YearEndCallback,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._state = state
        self._config = config
        self._on_year_end = on_year_end
        self._clock = clock

    @staticmethod
    def _variants(meter: MeterConfig, period: str) -> list[str]:
        """Consumption keys that make up one window."""
        keys = [period]
        if meter.utility_type is UtilityType.GAS:
            keys.append(f"{period}Volume")
        if meter.ht_nt_enabled:
            keys.extend([f"{period}HT", f"{period}NT"])
        return keys

    async def _add(self, path: str, amount: Decimal, decimals: int = 2) -> None:
        current = await self._state.get_number(path)
        await self._state.set_value(path, round_to_decimals(current + amount, decimals))

    async def apply_delta(
        self,
        meter: MeterConfig,
        delta: Decimal,
        volumetric_delta: Decimal = ZERO,
        at: datetime | None = None,
    ) -> None:
        """Adds an accepted delta to every window of the meter."""
        at = at or self._clock()
        base = f"{meter.path}.consumption"
        tariff = None
        if meter.ht_nt_enabled and meter.ht_window is not None:
            tariff = "HT" if meter.ht_window.contains(at) else "NT"

        for kind in PeriodKind:
            period = kind.value
            await self._add(f"{base}.{period}", delta)
            if meter.utility_type is UtilityType.GAS:
                decimals = 3 if kind is PeriodKind.YEARLY else 2
                await self._add(f"{base}.{period}Volume", volumetric_delta, decimals)
            if tariff:
                await self._add(f"{base}.{period}{tariff}", delta)

        await self._state.set_value(f"{base}.lastUpdate", at)
        logger.debug(f"[{meter.path}] Added {delta} ({tariff or 'flat'})")

    async def _anchor(self, meter: MeterConfig, kind: PeriodKind) -> datetime | None:
        return await self._state.get_datetime(
            f"{meter.path}.statistics.{kind.anchor_key}"
        )

    async def ensure_anchors(self, meter: MeterConfig, now: datetime | None = None) -> None:
        """Initializes window starts that were never written."""
        now = now or self._clock()
        for kind in PeriodKind:
            if await self._anchor(meter, kind) is None:
                anchor = initial_anchor(kind, now, meter.contract_start)
                await self._state.set_value(
                    f"{meter.path}.statistics.{kind.anchor_key}", anchor
                )
                logger.info(f"[{meter.path}] {kind.value} window starts {anchor}")

    async def check_boundaries(
        self, meter: MeterConfig, now: datetime | None = None
    ) -> list[PeriodKind]:
        """Closes every window whose boundary has passed. Returns the closed kinds."""
        now = now or self._clock()
        await self.ensure_anchors(meter, now)

        closed = []
        for kind in ROLLING_KINDS:
            anchor = await self._anchor(meter, kind)
            if is_due(kind, anchor, now, meter.contract_start):
                await self._close_window(meter, kind, anchor, now)
                closed.append(kind)

        anchor = await self._anchor(meter, PeriodKind.YEARLY)
        if is_due(PeriodKind.YEARLY, anchor, now, meter.contract_start):
            logger.info(
                f"[{meter.path}] Billing year starting {anchor:%Y-%m-%d} has ended"
            )
            await self._on_year_end(meter, now)
            closed.append(PeriodKind.YEARLY)
        return closed

    async def _close_window(
        self, meter: MeterConfig, kind: PeriodKind, anchor: datetime, now: datetime
    ) -> None:
        base = meter.path
        period = kind.value
        for key in self._variants(meter, period):
            value = await self._state.get_number(f"{base}.consumption.{key}")
            suffix = key[len(period):]
            await self._state.set_value(f"{base}.statistics.{kind.last_key}{suffix}", value)
            await self._state.set_value(f"{base}.consumption.{key}", ZERO)

        if kind.average_key:
            last = await self._state.get_number(f"{base}.statistics.{kind.last_key}")
            await self._state.set_value(f"{base}.statistics.{kind.average_key}", last)

        await self._state.set_value(f"{base}.costs.{period}", ZERO)
        if meter.ht_nt_enabled:
            await self._state.set_value(f"{base}.costs.{period}HT", ZERO)
            await self._state.set_value(f"{base}.costs.{period}NT", ZERO)

        new_anchor = reset_anchor(kind, anchor, now, meter.contract_start)
        await self._state.set_value(f"{base}.statistics.{kind.anchor_key}", new_anchor)

        boundary = next_boundary(kind, anchor, meter.contract_start)
        mode = "scheduled" if new_anchor == now else f"catch-up, due {boundary}"
        logger.info(f"[{meter.path}] {period} window reset ({mode})")

    async def reconcile_after_restart(self, meter: MeterConfig) -> bool:
        """
        Adds the last closed day back into weekly and monthly sums that are
        smaller than it although the day closed after those windows began.
        Each daily window is reconciled at most once.
        """
        stats = f"{meter.path}.statistics"
        day_start = await self._anchor(meter, PeriodKind.DAILY)
        last_day = await self._state.get_number(f"{stats}.lastDay")
        if day_start is None or last_day <= 0:
            return False

        reconciled = await self._state.get_datetime(f"{stats}.reconciledDayStart")
        if reconciled is not None and reconciled >= day_start:
            return False

        gas = meter.utility_type is UtilityType.GAS
        last_volume = await self._state.get_number(f"{stats}.lastDayVolume") if gas else ZERO

        changed = False
        for kind in (PeriodKind.WEEKLY, PeriodKind.MONTHLY):
            anchor = await self._anchor(meter, kind)
            if anchor is None or day_start <= anchor:
                continue
            path = f"{meter.path}.consumption.{kind.value}"
            current = await self._state.get_number(path)
            if current >= last_day:
                continue
            await self._state.set_value(path, round_to_decimals(current + last_day))
            if gas:
                await self._add(f"{path}Volume", last_volume)
            logger.info(
                f"[{meter.path}] Restored last day ({last_day}) into {kind.value} sum"
            )
            changed = True

        await self._state.set_value(f"{stats}.reconciledDayStart", day_start)
        return changed

    async def validate_sums(self, meter: MeterConfig, now: datetime | None = None) -> list[str]:
        """Resets sums that cannot be reached within their window. Returns the reset keys."""
        now = now or self._clock()
        reset = []
        for kind in PeriodKind:
            anchor = await self._anchor(meter, kind) or now
            limit = self._config.spike_threshold * days_elapsed(anchor, now) * 2
            value = await self._state.get_number(f"{meter.path}.consumption.{kind.value}")
            if value <= limit:
                continue
            logger.warning(
                f"[{meter.path}] {kind.value} sum {value} exceeds plausible "
                f"maximum {limit}, resetting"
            )
            for key in self._variants(meter, kind.value):
                await self._state.set_value(f"{meter.path}.consumption.{key}", ZERO)
                reset.append(key)
        return reset
