"""Sums of all meters of a utility type."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from decimal import Decimal

from utility_monitor.core.meter_config import MeterConfig
from utility_monitor.core.models import UtilityType
from utility_monitor.core.repositories.state import StateRepository
from utility_monitor.core.units import round_to_decimals

logger = logging.getLogger(__name__)

CONSUMPTION_KEYS = ("daily", "weekly", "monthly", "yearly")
COST_KEYS = ("daily", "weekly", "monthly", "totalYearly")


class TotalsService:
    """Maintains ``{type}.totals`` when a type has more than one meter."""

    def __init__(self, state: StateRepository):
        self._state = state

    async def update_totals(
        self, utility_type: UtilityType, meters: Sequence[MeterConfig]
    ) -> dict[str, Decimal] | None:
        """
        Recomputes the totals of a utility type.

        Returns the written values, or None if there was nothing to total.
        """
        if len(meters) < 2:
            return None
        base = f"{utility_type.value}.totals"
        if not await self._state.exists(base):
            logger.debug(f"[{utility_type.value}] Totals not created yet, skipping")
            return None

        totals: dict[str, Decimal] = {}
        for section, keys in (("consumption", CONSUMPTION_KEYS), ("costs", COST_KEYS)):
            for key in keys:
                total = Decimal("0")
                for meter in meters:
                    total += await self._state.get_number(f"{meter.path}.{section}.{key}")
                totals[f"{section}.{key}"] = round_to_decimals(total)

        await self._state.set_values(base, totals)
        logger.debug(f"[{utility_type.value}] Totals updated for {len(meters)} meters")
        return totals
