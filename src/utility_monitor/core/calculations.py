"""Core business logic for cost and charge calculations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from utility_monitor.core.dates import months_difference
from utility_monitor.core.exceptions import InvalidConsumptionError
from utility_monitor.core.units import round_to_decimals

ZERO = Decimal("0")
BALANCE_EPSILON = Decimal("0.01")


def calculate_cost(consumption: Decimal, rate: Decimal) -> Decimal:
    """
    Calculates the monetary cost based on consumption and a tariff rate.

    Args:
        consumption: The amount of resource consumed.
        rate: The monetary rate per unit of consumption.

    Returns:
        The calculated cost.

    Raises:
        InvalidConsumptionError: if consumption is negative.
    """
    if consumption < 0:
        raise InvalidConsumptionError(
            f"Consumption must not be negative, got {consumption}"
        )
    return consumption * rate


def calculate_htnt_costs(
    ht_consumption: Decimal,
    nt_consumption: Decimal,
    ht_rate: Decimal,
    nt_rate: Decimal,
) -> tuple[Decimal, Decimal, Decimal]:
    """Returns ``(ht_cost, nt_cost, total)`` for a split tariff."""
    ht_cost = calculate_cost(ht_consumption, ht_rate)
    nt_cost = calculate_cost(nt_consumption, nt_rate)
    return ht_cost, nt_cost, ht_cost + nt_cost


def elapsed_months(anchor: date, today: date) -> int:
    """
    Number of billing months charged since the anchor, counting the current
    month as started. Never less than one.
    """
    return max(1, months_difference(anchor, today) + 1)


@dataclass(frozen=True)
class ChargeLedger:
    """Derived charges of one billing year."""

    consumption_cost: Decimal
    basic_charge: Decimal
    annual_fee: Decimal
    total_yearly: Decimal
    paid_total: Decimal
    balance: Decimal
    months: int


def compute_ledger(
    yearly_cost: Decimal,
    monthly_fee: Decimal,
    annual_fee: Decimal,
    prepayment: Decimal,
    months: int,
) -> ChargeLedger:
    """
    Combines consumption cost, fixed charges and prepayments into a ledger.

    Every component is rounded to cents before it is summed, so the totals
    match what a bill would show. A positive balance means money is owed.
    """
    consumption_cost = round_to_decimals(yearly_cost)
    basic_charge = round_to_decimals(monthly_fee * months)
    annual = round_to_decimals(annual_fee)
    total_yearly = max(ZERO, consumption_cost + basic_charge + annual)
    paid_total = round_to_decimals(prepayment * months)

    balance = total_yearly - paid_total
    if total_yearly <= BALANCE_EPSILON and paid_total <= BALANCE_EPSILON:
        balance = ZERO

    return ChargeLedger(
        consumption_cost=consumption_cost,
        basic_charge=basic_charge,
        annual_fee=annual,
        total_yearly=round_to_decimals(total_yearly),
        paid_total=paid_total,
        balance=round_to_decimals(balance),
        months=months,
    )
