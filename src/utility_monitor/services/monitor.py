"""Orchestration of the consumption and billing engine."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from utility_monitor.core.config_parser import MAIN_METER
from utility_monitor.core.dates import format_german_date, next_anniversary
from utility_monitor.core.locks import KeyedLock
from utility_monitor.core.meter_config import MeterConfig, MonitorConfig
from utility_monitor.core.models import HistoryRecord, UtilityType
from utility_monitor.core.registry import MeterRef, MeterRegistry
from utility_monitor.core.repositories.history import HistoryRepository
from utility_monitor.core.repositories.state import StateRepository
from utility_monitor.core.schema import (
    meter_schema,
    system_schema,
    totals_schema,
    type_schema,
)
from utility_monitor.core.units import to_decimal
from utility_monitor.services.accumulator import PeriodAccumulator
from utility_monitor.services.billing import BillingService
from utility_monitor.services.closer import BillingCloseError, BillingPeriodCloser
from utility_monitor.services.totals import TotalsService
from utility_monitor.services.tracker import (
    MeterSession,
    ReadingResult,
    ReadingStatus,
    SensorDeltaTracker,
)

logger = logging.getLogger(__name__)

COUNTED_STATUSES = {
    ReadingStatus.ACCEPTED,
    ReadingStatus.SPIKE_ACCEPTED,
}


@dataclass(frozen=True)
class MeterUpdate:
    """Result of routing one sensor value to one meter."""

    meter: MeterRef
    result: ReadingResult


class UtilityMonitor:
    """
    Wires tracker, accumulator, billing, totals and closer together.

    Every mutation of a meter's state runs under that meter's lock, every
    totals update under the utility type's lock.
    """

    def __init__(
        self,
        config: MonitorConfig,
        state: StateRepository | None = None,
        history: HistoryRepository | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.state = state or StateRepository()
        self.history = history or HistoryRepository()
        self._clock = clock

        self.registry = MeterRegistry()
        self.locks = KeyedLock()
        self.sessions: dict[MeterRef, MeterSession] = {}

        self.closer = BillingPeriodCloser(self.state, self.history, clock)
        self.accumulator = PeriodAccumulator(
            self.state, config, self._on_year_end, clock
        )
        self.tracker = SensorDeltaTracker(self.state, self.accumulator, config, clock)
        self.billing = BillingService(self.state, config, clock)
        self.totals = TotalsService(self.state)

    def get_meter(self, utility_type: UtilityType, name: str = MAIN_METER) -> MeterConfig:
        meter = self.config.get_meter(utility_type, name)
        if meter is None:
            raise KeyError(f"Unknown meter {utility_type.value}.{name}")
        return meter

    def session_for(self, meter: MeterConfig) -> MeterSession:
        return self.sessions.setdefault(meter.ref, MeterSession())

    async def initialize(self) -> None:
        """Creates state, registers sensors and brings every meter up to date."""
        await self.state.ensure_nodes("system", system_schema())
        for utility_type in UtilityType:
            meters = self.config.meters_for(utility_type)
            if meters:
                await self.initialize_type(utility_type)
            else:
                logger.debug(f"No meters configured for {utility_type.value}")
        logger.info(
            f"Monitoring {len(self.registry.all_sensors())} sensor(s) for "
            f"{', '.join(t.value for t in self.config.active_types) or 'no utilities'}"
        )

    async def initialize_type(self, utility_type: UtilityType) -> None:
        meters = self.config.meters_for(utility_type)
        logger.info(f"Initializing {len(meters)} meter(s) for {utility_type.value}")
        await self.state.ensure_nodes(utility_type.value, type_schema(utility_type))

        for meter in meters:
            try:
                await self.initialize_meter(meter)
            except Exception as e:
                logger.error(f"[{meter.path}] Initialization failed: {e}", exc_info=True)

        if len(meters) > 1:
            await self.state.ensure_nodes(
                f"{utility_type.value}.totals", totals_schema(utility_type)
            )
            await self.update_totals(utility_type)

        await self.cleanup_removed_meters(utility_type)

    async def initialize_meter(self, meter: MeterConfig) -> None:
        async with self.locks.hold(meter.path):
            created = await self.state.ensure_nodes(meter.path, meter_schema(meter))
            if created:
                logger.debug(f"[{meter.path}] Created {created} state node(s)")

            if meter.sensor_id:
                self.registry.register(meter.sensor_id, meter.ref)
                await self.state.set_value(f"{meter.path}.info.sensorActive", True)
            else:
                logger.warning(f"[{meter.path}] No sensor configured")
                await self.state.set_value(f"{meter.path}.info.sensorActive", False)

            now = self._clock()
            await self.accumulator.ensure_anchors(meter, now)
            await self.accumulator.reconcile_after_restart(meter)
            await self.billing.update_current_price(meter, now)
            await self.update_billing_countdown(meter, now)
            await self.billing.update_costs(meter, now)

    async def cleanup_removed_meters(self, utility_type: UtilityType) -> list[str]:
        """Deletes the state of meters that are no longer configured."""
        configured = {meter.name for meter in self.config.meters_for(utility_type)}
        if len(configured) > 1:
            configured.add("totals")

        removed = []
        for name in await self.state.child_names(utility_type.value):
            if name in configured:
                continue
            ref = MeterRef(utility_type, name)
            await self.state.delete_subtree(ref.path)
            self.registry.unregister_meter(ref)
            self.sessions.pop(ref, None)
            self.locks.discard(ref.path)
            removed.append(name)
            logger.info(f"[{ref.path}] Removed state of unconfigured meter")
        return removed

    async def handle_sensor_value(self, sensor_id: str, value: Any) -> list[MeterUpdate]:
        """Feeds a sensor value to every meter registered for the sensor."""
        refs = self.registry.find_by_sensor(sensor_id)
        if not refs:
            logger.debug(f"Sensor {sensor_id} is not registered")
            return []

        updates = []
        touched_types = set()
        for ref in refs:
            meter = self.config.get_meter(ref.utility_type, ref.name)
            if meter is None:
                continue
            try:
                async with self.locks.hold(meter.path):
                    result = await self._process(meter, value)
            except Exception as e:
                logger.error(
                    f"[{meter.path}] Failed to process value {value!r}: {e}", exc_info=True
                )
                continue
            updates.append(MeterUpdate(ref, result))
            touched_types.add(ref.utility_type)

        for utility_type in touched_types:
            await self.update_totals(utility_type)
        return updates

    async def _process(self, meter: MeterConfig, value: Any) -> ReadingResult:
        result = await self.tracker.process_reading(meter, self.session_for(meter), value)
        if result.status in COUNTED_STATUSES:
            await self.accumulator.apply_delta(
                meter, result.delta, result.volumetric_delta, self._clock()
            )
        if result.status is not ReadingStatus.INVALID:
            await self.billing.update_costs(meter)
        return result

    async def update_totals(self, utility_type: UtilityType) -> dict[str, Decimal] | None:
        async with self.locks.hold(f"{utility_type.value}.totals"):
            return await self.totals.update_totals(
                utility_type, self.config.meters_for(utility_type)
            )

    async def check_period_resets(self) -> None:
        """Periodic sweep over all meters."""
        now = self._clock()
        for utility_type in self.config.active_types:
            for meter in self.config.meters_for(utility_type):
                try:
                    async with self.locks.hold(meter.path):
                        await self.billing.update_current_price(meter, now)
                        if await self.accumulator.check_boundaries(meter, now):
                            await self.billing.update_costs(meter, now)
                        await self.update_billing_countdown(meter, now)
                except Exception as e:
                    logger.error(
                        f"[{meter.path}] Period check failed: {e}", exc_info=True
                    )
            await self.update_totals(utility_type)

    async def _on_year_end(self, meter: MeterConfig, now: datetime) -> None:
        await self.closer.close_year_automatically(meter, now)

    async def update_billing_countdown(
        self, meter: MeterConfig, now: datetime | None = None
    ) -> int | None:
        """Stores days until the end of the billing year and its last day."""
        if meter.contract_start is None:
            return None
        today = (now or self._clock()).date()
        period_end = next_anniversary(meter.contract_start, today + timedelta(days=1))
        period_end -= timedelta(days=1)
        days_remaining = (period_end - today).days
        await self.state.set_value(f"{meter.path}.billing.daysRemaining", days_remaining)
        await self.state.set_value(
            f"{meter.path}.billing.periodEnd", format_german_date(period_end)
        )
        return days_remaining

    async def request_close(
        self, utility_type: UtilityType, name: str, end_reading: Any
    ) -> HistoryRecord:
        """
        Closes the billing year of a meter with an operator supplied reading.

        Raises:
            BillingCloseError: if the meter is unknown or a precondition fails.
        """
        meter = self.config.get_meter(utility_type, name)
        if meter is None:
            raise BillingCloseError(f"Unknown meter {utility_type.value}.{name}")

        async with self.locks.hold(meter.path):
            await self.state.set_value(
                f"{meter.path}.billing.endReading", to_decimal(end_reading, None)
            )
            await self.state.set_value(f"{meter.path}.billing.closePeriod", True)
            record = await self.closer.close_period(meter)
            await self.billing.update_costs(meter)
            await self.update_billing_countdown(meter)

        await self.update_totals(utility_type)
        return record

    async def set_adjustment(
        self, utility_type: UtilityType, name: str, value: Any, note: str = ""
    ) -> None:
        """Stores a manual correction of the yearly consumption."""
        meter = self.get_meter(utility_type, name)
        async with self.locks.hold(meter.path):
            await self.state.set_value(
                f"{meter.path}.adjustment.value", to_decimal(value)
            )
            await self.state.set_value(f"{meter.path}.adjustment.note", note)
            await self.billing.update_costs(meter)
        await self.update_totals(utility_type)
        logger.info(f"[{meter.path}] Manual adjustment set to {value} ({note})")
