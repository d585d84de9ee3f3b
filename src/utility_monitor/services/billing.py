"""Service turning accumulated consumption into costs and a prepayment balance."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from utility_monitor.core import calculations
from utility_monitor.core.calculations import ChargeLedger
from utility_monitor.core.exceptions import MonitorError
from utility_monitor.core.meter_config import MeterConfig, MonitorConfig
from utility_monitor.core.models import UtilityType
from utility_monitor.core.periods import PeriodKind, initial_anchor
from utility_monitor.core.repositories.state import StateRepository
from utility_monitor.core.units import convert_gas_volume_to_energy, round_to_decimals

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class BillingError(MonitorError):
    """Custom exception for billing errors."""


@dataclass(frozen=True)
class ActivePrice:
    """Price in effect at a given moment."""

    price: Decimal
    tariff: str


class BillingService:
    """Computes period costs, fixed charges and the balance of a meter."""

    def __init__(
        self,
        state: StateRepository,
        config: MonitorConfig,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._state = state
        self._config = config
        self._clock = clock

    def active_price(self, meter: MeterConfig, at: datetime) -> ActivePrice:
        if meter.ht_nt_enabled and meter.ht_window is not None:
            if meter.ht_window.contains(at):
                return ActivePrice(meter.ht_price, "HT")
            return ActivePrice(meter.nt_price, "NT")
        return ActivePrice(meter.price, "Standard")

    async def update_current_price(
        self, meter: MeterConfig, now: datetime | None = None
    ) -> ActivePrice:
        active = self.active_price(meter, now or self._clock())
        await self._state.set_value(f"{meter.path}.info.currentPrice", active.price)
        await self._state.set_value(f"{meter.path}.info.currentTariff", active.tariff)
        return active

    async def adjustment_energy(self, meter: MeterConfig) -> Decimal:
        """Manual adjustment in billing units; gas adjustments are entered in m³."""
        value = await self._state.get_number(f"{meter.path}.adjustment.value")
        if value == 0 or meter.utility_type is not UtilityType.GAS:
            return value
        energy = convert_gas_volume_to_energy(
            abs(value), self._config.calorific_value, self._config.correction_factor
        )
        return round_to_decimals(energy if value > 0 else -energy)

    async def _period_cost(
        self, meter: MeterConfig, period: str, consumption: Decimal
    ) -> Decimal:
        base = meter.path
        if not meter.ht_nt_enabled:
            return calculations.calculate_cost(consumption, meter.price)

        ht = await self._state.get_number(f"{base}.consumption.{period}HT")
        nt = await self._state.get_number(f"{base}.consumption.{period}NT")
        # Sums beyond the HT/NT split (starting reading, adjustment) are billed at HT.
        ht += max(ZERO, consumption - ht - nt)
        ht_cost, nt_cost, total = calculations.calculate_htnt_costs(
            ht, nt, meter.ht_price, meter.nt_price
        )
        await self._state.set_value(f"{base}.costs.{period}HT", round_to_decimals(ht_cost))
        await self._state.set_value(f"{base}.costs.{period}NT", round_to_decimals(nt_cost))
        return total

    async def update_costs(
        self, meter: MeterConfig, now: datetime | None = None
    ) -> ChargeLedger | None:
        """
        Recomputes all period costs and the charge ledger from stored sums.

        Returns None when the meter has no price to bill with.
        """
        if not meter.has_price:
            logger.debug(f"[{meter.path}] No price configured, skipping cost update")
            return None

        now = now or self._clock()
        base = meter.path

        adjustment = await self.adjustment_energy(meter)
        await self._state.set_value(f"{base}.adjustment.applied", adjustment)

        yearly_cost = ZERO
        for kind in PeriodKind:
            consumption = await self._state.get_number(f"{base}.consumption.{kind.value}")
            if kind is PeriodKind.YEARLY:
                consumption += adjustment
            consumption = max(ZERO, consumption)
            cost = await self._period_cost(meter, kind.value, consumption)
            await self._state.set_value(f"{base}.costs.{kind.value}", round_to_decimals(cost))
            if kind is PeriodKind.YEARLY:
                yearly_cost = cost

        anchor = await self._state.get_datetime(f"{base}.statistics.lastYearStart")
        if anchor is None:
            anchor = initial_anchor(PeriodKind.YEARLY, now, meter.contract_start)
        months = calculations.elapsed_months(anchor.date(), now.date())

        ledger = calculations.compute_ledger(
            yearly_cost=yearly_cost,
            monthly_fee=meter.basic_charge,
            annual_fee=meter.annual_fee,
            prepayment=meter.prepayment,
            months=months,
        )
        await self._state.set_values(
            f"{base}.costs",
            {
                "basicCharge": ledger.basic_charge,
                "annualFee": ledger.annual_fee,
                "totalYearly": ledger.total_yearly,
                "paidTotal": ledger.paid_total,
                "balance": ledger.balance,
            },
        )
        logger.debug(
            f"[{base}] total {ledger.total_yearly}, paid {ledger.paid_total}, "
            f"balance {ledger.balance} after {months} month(s)"
        )
        return ledger
