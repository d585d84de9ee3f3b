"""Turns raw counter readings into calibrated consumption deltas."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from utility_monitor.core.meter_config import MeterConfig, MonitorConfig
from utility_monitor.core.models import UtilityType
from utility_monitor.core.repositories.state import StateRepository
from utility_monitor.core.units import (
    convert_gas_volume_to_energy,
    round_to_decimals,
    to_decimal,
)
from utility_monitor.services.accumulator import PeriodAccumulator

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class MeterSession:
    """Process-lifetime baseline of one meter."""

    last_reading: Decimal | None = None
    last_volume: Decimal | None = None
    spike_count: int = 0

    @property
    def has_baseline(self) -> bool:
        return self.last_reading is not None


class ReadingStatus(str, enum.Enum):
    INVALID = "invalid"
    BASELINE = "baseline"
    UNCHANGED = "unchanged"
    ACCEPTED = "accepted"
    DECREASED = "decreased"
    SPIKE = "spike"
    SPIKE_ACCEPTED = "spike_accepted"


@dataclass(frozen=True)
class ReadingResult:
    """Outcome of processing a single raw reading."""

    accepted: bool
    status: ReadingStatus
    delta: Decimal = ZERO
    calibrated: Decimal | None = None
    volumetric: Decimal | None = None
    volumetric_delta: Decimal = ZERO


class SensorDeltaTracker:
    """
    Computes non-negative deltas between consecutive readings of a meter.

    Oversized jumps are treated as noise: the reading becomes the new
    baseline and the yearly sum is recomputed from the starting reading
    instead of accumulating the jump.
    """

    def __init__(
        self,
        state: StateRepository,
        accumulator: PeriodAccumulator,
        config: MonitorConfig,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._state = state
        self._accumulator = accumulator
        self._config = config
        self._clock = clock

    def calibrate(
        self, meter: MeterConfig, raw: Decimal
    ) -> tuple[Decimal, Decimal | None]:
        """
        Applies the offset and, for gas, converts the volume into kWh.

        Returns ``(calibrated, volumetric)``.
        """
        calibrated = raw - meter.offset
        if meter.utility_type is not UtilityType.GAS:
            return calibrated, None
        volume = calibrated
        energy = convert_gas_volume_to_energy(
            volume, self._config.calorific_value, self._config.correction_factor
        )
        return round_to_decimals(energy), volume

    async def effective_starting_reading(self, meter: MeterConfig) -> Decimal | None:
        """Starting reading written by the last close, else the configured one."""
        stored = await self._state.get_number(
            f"{meter.path}.billing.newInitialReading", None
        )
        return stored if stored is not None else meter.initial_reading

    async def process_reading(
        self, meter: MeterConfig, session: MeterSession, raw_value: Any
    ) -> ReadingResult:
        raw = to_decimal(raw_value, None)
        if raw is None or raw < 0:
            logger.warning(f"[{meter.path}] Ignoring invalid reading {raw_value!r}")
            return ReadingResult(accepted=False, status=ReadingStatus.INVALID)

        if raw < meter.offset:
            logger.warning(
                f"[{meter.path}] Reading {raw} is below the offset {meter.offset}, ignored"
            )
            return ReadingResult(accepted=False, status=ReadingStatus.INVALID)

        calibrated, volumetric = self.calibrate(meter, raw)
        now = self._clock()

        if not session.has_baseline and not await self._restore_baseline(
            meter, session, calibrated, volumetric
        ):
            return await self._adopt_baseline(meter, session, calibrated, volumetric, now)

        delta = calibrated - session.last_reading
        volumetric_delta = ZERO
        if volumetric is not None and session.last_volume is not None:
            volumetric_delta = volumetric - session.last_volume

        result = await self._classify(
            meter, session, delta, volumetric_delta, calibrated, volumetric
        )

        session.last_reading = calibrated
        session.last_volume = volumetric
        await self._persist_snapshot(meter, calibrated, volumetric, now)
        return result

    async def _classify(
        self,
        meter: MeterConfig,
        session: MeterSession,
        delta: Decimal,
        volumetric_delta: Decimal,
        calibrated: Decimal,
        volumetric: Decimal | None,
    ) -> ReadingResult:
        def result(accepted: bool, status: ReadingStatus) -> ReadingResult:
            return ReadingResult(
                accepted=accepted,
                status=status,
                delta=delta if accepted else ZERO,
                calibrated=calibrated,
                volumetric=volumetric,
                volumetric_delta=volumetric_delta if accepted else ZERO,
            )

        if delta < 0:
            session.spike_count = 0
            logger.warning(
                f"[{meter.path}] Counter decreased from {session.last_reading} to "
                f"{calibrated}. Meter replaced? Keeping period sums unchanged."
            )
            return result(False, ReadingStatus.DECREASED)

        if delta == 0:
            return result(False, ReadingStatus.UNCHANGED)

        if delta <= self._config.spike_threshold:
            session.spike_count = 0
            return result(True, ReadingStatus.ACCEPTED)

        accept_after = self._config.spike_accept_after
        if accept_after and session.spike_count >= accept_after:
            logger.warning(
                f"[{meter.path}] Accepting delta {delta} after "
                f"{session.spike_count} consecutive spikes"
            )
            session.spike_count = 0
            return result(True, ReadingStatus.SPIKE_ACCEPTED)

        session.spike_count += 1
        logger.warning(
            f"[{meter.path}] Spike detected: delta {delta} exceeds "
            f"{self._config.spike_threshold}. Re-baselining at {calibrated}."
        )
        await self._set_absolute_yearly(meter, calibrated, volumetric)
        return result(False, ReadingStatus.SPIKE)

    async def _restore_baseline(
        self,
        meter: MeterConfig,
        session: MeterSession,
        calibrated: Decimal,
        volumetric: Decimal | None,
    ) -> bool:
        """Trusts the persisted snapshot if it is close to the live reading."""
        snapshot = await self._state.get_number(f"{meter.path}.info.meterReading", None)
        if snapshot is None:
            return False
        if abs(calibrated - snapshot) >= self._config.restart_tolerance:
            logger.info(
                f"[{meter.path}] Snapshot {snapshot} differs from live reading "
                f"{calibrated}, adopting a fresh baseline"
            )
            return False

        session.last_reading = snapshot
        if volumetric is not None:
            stored_volume = await self._state.get_number(
                f"{meter.path}.info.meterReadingVolume", None
            )
            session.last_volume = stored_volume if stored_volume is not None else volumetric
        logger.info(f"[{meter.path}] Restored baseline {snapshot} from snapshot")
        return True

    async def _adopt_baseline(
        self,
        meter: MeterConfig,
        session: MeterSession,
        calibrated: Decimal,
        volumetric: Decimal | None,
        now: datetime,
    ) -> ReadingResult:
        session.last_reading = calibrated
        session.last_volume = volumetric
        session.spike_count = 0

        await self._accumulator.validate_sums(meter, now)
        await self._set_absolute_yearly(meter, calibrated, volumetric)
        await self._persist_snapshot(meter, calibrated, volumetric, now)
        logger.info(f"[{meter.path}] Baseline set to {calibrated}")
        return ReadingResult(
            accepted=False,
            status=ReadingStatus.BASELINE,
            calibrated=calibrated,
            volumetric=volumetric,
        )

    async def _set_absolute_yearly(
        self, meter: MeterConfig, calibrated: Decimal, volumetric: Decimal | None
    ) -> None:
        starting = await self.effective_starting_reading(meter)
        if starting is None:
            return

        base = f"{meter.path}.consumption"
        if volumetric is not None:
            volume = max(ZERO, volumetric - starting)
            energy = convert_gas_volume_to_energy(
                volume, self._config.calorific_value, self._config.correction_factor
            )
            await self._state.set_value(
                f"{base}.yearlyVolume", round_to_decimals(volume, 3)
            )
            yearly = round_to_decimals(energy)
        else:
            yearly = round_to_decimals(max(ZERO, calibrated - starting))

        await self._state.set_value(f"{base}.yearly", yearly)
        logger.info(
            f"[{meter.path}] Yearly consumption set to {yearly} from starting reading {starting}"
        )

    async def _persist_snapshot(
        self,
        meter: MeterConfig,
        calibrated: Decimal,
        volumetric: Decimal | None,
        now: datetime,
    ) -> None:
        await self._state.set_value(f"{meter.path}.info.meterReading", calibrated)
        if volumetric is not None:
            await self._state.set_value(f"{meter.path}.info.meterReadingVolume", volumetric)
        await self._state.set_value(f"{meter.path}.info.lastSync", now)
