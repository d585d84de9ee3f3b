"""Tests for the billing service."""

from datetime import datetime, time
from decimal import Decimal

import pytest

from utility_monitor.core.dates import HtWindow
from utility_monitor.core.models import UtilityType
from utility_monitor.services.billing import BillingService
from conftest import make_config, make_meter

pytestmark = pytest.mark.usefixtures("db_session")

COSTS = "electricity.main.costs"


def split_meter(**overrides):
    return make_meter(
        price=Decimal("0"),
        ht_nt_enabled=True,
        ht_price=Decimal("0.35"),
        nt_price=Decimal("0.25"),
        ht_window=HtWindow(time(6, 0), time(22, 0)),
        **overrides,
    )


@pytest.mark.asyncio
async def test_update_costs_flat_tariff(state, clock):
    # --- Arrange ---
    meter = make_meter(
        price=Decimal("0.1885"),
        basic_charge=Decimal("15.03"),
        annual_fee=Decimal("60"),
    )
    billing = BillingService(state, make_config(meter), clock)
    await state.set_value("electricity.main.consumption.yearly", Decimal("730.01"))
    await state.set_value("electricity.main.consumption.daily", Decimal("2.5"))

    # --- Act ---
    ledger = await billing.update_costs(meter)

    # --- Assert ---
    assert ledger.months == 7
    assert ledger.total_yearly == Decimal("302.82")
    assert await state.get_number(f"{COSTS}.yearly") == Decimal("137.61")
    assert await state.get_number(f"{COSTS}.daily") == Decimal("0.47")
    assert await state.get_number(f"{COSTS}.basicCharge") == Decimal("105.21")
    assert await state.get_number(f"{COSTS}.annualFee") == Decimal("60")
    assert await state.get_number(f"{COSTS}.totalYearly") == Decimal("302.82")
    assert await state.get_number(f"{COSTS}.balance") == Decimal("302.82")


@pytest.mark.asyncio
async def test_update_costs_prepayment_credit(state, clock):
    meter = make_meter(
        price=Decimal("0.1885"),
        basic_charge=Decimal("15.03"),
        annual_fee=Decimal("60"),
        prepayment=Decimal("150"),
    )
    billing = BillingService(state, make_config(meter), clock)
    await state.set_value("electricity.main.consumption.yearly", Decimal("730.01"))

    ledger = await billing.update_costs(meter)

    assert ledger.paid_total == Decimal("1050.00")
    assert ledger.balance == Decimal("-747.18")
    assert await state.get_number(f"{COSTS}.balance") == Decimal("-747.18")


@pytest.mark.asyncio
async def test_months_follow_the_stored_year_anchor(state, clock):
    meter = make_meter(basic_charge=Decimal("10"))
    billing = BillingService(state, make_config(meter), clock)
    await state.set_value(
        "electricity.main.statistics.lastYearStart", datetime(2025, 6, 1)
    )

    ledger = await billing.update_costs(meter)

    assert ledger.months == 2
    assert ledger.basic_charge == Decimal("20.00")


@pytest.mark.asyncio
async def test_meter_without_price_is_not_billed(state, clock):
    meter = make_meter(price=Decimal("0"))
    billing = BillingService(state, make_config(meter), clock)

    assert await billing.update_costs(meter) is None
    assert not await state.exists(f"{COSTS}.totalYearly")


@pytest.mark.asyncio
async def test_split_tariff_bills_unsplit_remainder_at_ht(state, clock):
    # --- Arrange ---
    meter = split_meter()
    billing = BillingService(state, make_config(meter), clock)
    await state.set_values(
        "electricity.main.consumption",
        {"yearly": Decimal("10"), "yearlyHT": Decimal("6"), "yearlyNT": Decimal("2")},
    )

    # --- Act ---
    await billing.update_costs(meter)

    # --- Assert ---
    assert await state.get_number(f"{COSTS}.yearlyHT") == Decimal("2.80")
    assert await state.get_number(f"{COSTS}.yearlyNT") == Decimal("0.50")
    assert await state.get_number(f"{COSTS}.yearly") == Decimal("3.30")


@pytest.mark.asyncio
async def test_gas_adjustment_is_converted_from_volume(state, clock):
    meter = make_meter(UtilityType.GAS, price=Decimal("0.10"))
    billing = BillingService(state, make_config(meter), clock)
    await state.set_value("gas.main.consumption.yearly", Decimal("1092.5"))
    await state.set_value("gas.main.adjustment.value", Decimal("-10"))

    await billing.update_costs(meter)

    assert await billing.adjustment_energy(meter) == Decimal("-109.25")
    assert await state.get_number("gas.main.adjustment.applied") == Decimal("-109.25")
    assert await state.get_number("gas.main.costs.yearly") == Decimal("98.33")


@pytest.mark.asyncio
async def test_negative_adjustment_never_bills_below_zero(state, clock):
    meter = make_meter()
    billing = BillingService(state, make_config(meter), clock)
    await state.set_value("electricity.main.consumption.yearly", Decimal("5"))
    await state.set_value("electricity.main.adjustment.value", Decimal("-50"))

    ledger = await billing.update_costs(meter)

    assert ledger.consumption_cost == Decimal("0")
    assert ledger.balance == Decimal("0")


@pytest.mark.parametrize(
    "moment, price, tariff",
    [
        (datetime(2025, 7, 20, 12, 0), Decimal("0.35"), "HT"),
        (datetime(2025, 7, 20, 22, 30), Decimal("0.25"), "NT"),
    ],
)
@pytest.mark.asyncio
async def test_update_current_price(state, clock, moment, price, tariff):
    meter = split_meter()
    billing = BillingService(state, make_config(meter), clock)

    active = await billing.update_current_price(meter, moment)

    assert (active.price, active.tariff) == (price, tariff)
    assert await state.get_number("electricity.main.info.currentPrice") == price
    assert await state.get_value("electricity.main.info.currentTariff") == tariff


@pytest.mark.asyncio
async def test_flat_price_is_standard_tariff(state, clock):
    meter = make_meter()
    billing = BillingService(state, make_config(meter), clock)

    active = billing.active_price(meter, clock.now)

    assert active.tariff == "Standard"
    assert active.price == Decimal("0.30")
