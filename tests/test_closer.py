"""Tests for closing billing years."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from utility_monitor.core.models import HistorySource, UtilityType
from utility_monitor.services.closer import BillingCloseError, BillingPeriodCloser
from conftest import make_meter

pytestmark = pytest.mark.usefixtures("db_session")

BASE = "electricity.main"


@pytest.fixture
def closer(state, history, clock) -> BillingPeriodCloser:
    return BillingPeriodCloser(state, history, clock)


async def prepare_year(state, base: str = BASE):
    await state.set_values(
        base,
        {
            "consumption.yearly": Decimal("730.01"),
            "costs.yearly": Decimal("137.61"),
            "costs.totalYearly": Decimal("302.82"),
            "costs.paidTotal": Decimal("1050"),
            "costs.balance": Decimal("-747.18"),
            "adjustment.value": Decimal("12"),
            "adjustment.note": "estimated",
            "billing.notificationSent": True,
            "statistics.lastYearStart": datetime(2025, 1, 15),
        },
    )


@pytest.mark.asyncio
async def test_close_period_archives_and_resets(state, history, closer):
    # --- Arrange ---
    meter = make_meter()
    await prepare_year(state)
    await state.set_value(f"{BASE}.billing.endReading", Decimal("1730.01"))
    await state.set_value(f"{BASE}.billing.closePeriod", True)

    # --- Act ---
    record = await closer.close_period(meter)

    # --- Assert ---
    assert record.year == 2025
    assert record.source is HistorySource.CLOSE
    assert record.consumption == Decimal("730.01")
    assert record.total_yearly == Decimal("302.82")
    assert record.balance == Decimal("-747.18")
    assert record.end_reading == Decimal("1730.01")
    assert await history.has_year(UtilityType.ELECTRICITY, "main", 2025)

    assert await state.get_number(f"{BASE}.consumption.yearly") == Decimal("0")
    assert await state.get_number(f"{BASE}.costs.totalYearly") == Decimal("0")
    assert await state.get_number(f"{BASE}.costs.balance") == Decimal("0")
    assert await state.get_number(f"{BASE}.adjustment.value") == Decimal("0")
    assert await state.get_value(f"{BASE}.adjustment.note") == ""
    assert await state.get_flag(f"{BASE}.billing.notificationSent") is False
    assert await state.get_flag(f"{BASE}.billing.closePeriod") is False
    assert await state.get_number(f"{BASE}.billing.newInitialReading") == Decimal(
        "1730.01"
    )
    assert await state.get_datetime(f"{BASE}.statistics.lastYearStart") == datetime(
        2026, 1, 15
    )


@pytest.mark.asyncio
async def test_close_without_end_reading_fails_and_clears_flag(state, closer):
    meter = make_meter()
    await prepare_year(state)
    await state.set_value(f"{BASE}.billing.closePeriod", True)

    with pytest.raises(BillingCloseError, match="end reading"):
        await closer.close_period(meter)

    assert await state.get_flag(f"{BASE}.billing.closePeriod") is False
    assert await state.get_number(f"{BASE}.consumption.yearly") == Decimal("730.01")


@pytest.mark.asyncio
async def test_close_without_contract_start_fails(state, history, closer):
    meter = make_meter(contract_start=None)
    await state.set_value(f"{BASE}.billing.endReading", Decimal("100"))

    with pytest.raises(BillingCloseError, match="contract start"):
        await closer.close_period(meter)

    assert await history.list_for_meter(UtilityType.ELECTRICITY, "main") == []


@pytest.mark.asyncio
async def test_archived_year_is_never_overwritten(state, history, closer):
    # --- Arrange ---
    meter = make_meter()
    await prepare_year(state)
    await state.set_value(f"{BASE}.billing.endReading", Decimal("1730.01"))
    await closer.close_period(meter)

    # --- Act ---
    await state.set_value(f"{BASE}.consumption.yearly", Decimal("99"))
    await state.set_value(f"{BASE}.billing.endReading", Decimal("1829.01"))
    second = await closer.close_period(meter)

    # --- Assert ---
    assert second.year == 2026
    first = await history.get_year(UtilityType.ELECTRICITY, "main", 2025)
    assert first.consumption == Decimal("730.01")


@pytest.mark.asyncio
async def test_close_of_archived_year_is_rejected(state, history, closer):
    meter = make_meter()
    await prepare_year(state)
    await history.create(
        utility_type=UtilityType.ELECTRICITY,
        meter_name="main",
        year=2025,
        consumption=Decimal("1"),
        total_yearly=Decimal("1"),
        source=HistorySource.IMPORT,
    )
    await state.set_value(f"{BASE}.billing.endReading", Decimal("1730.01"))

    with pytest.raises(BillingCloseError, match="already archived"):
        await closer.close_period(meter)

    record = await history.get_year(UtilityType.ELECTRICITY, "main", 2025)
    assert record.consumption == Decimal("1")
    assert await state.get_number(f"{BASE}.consumption.yearly") == Decimal("730.01")


@pytest.mark.asyncio
async def test_automatic_rollover_uses_current_reading(state, closer):
    meter = make_meter()
    await prepare_year(state)
    await state.set_value(f"{BASE}.info.meterReading", Decimal("1500"))

    record = await closer.close_year_automatically(meter)

    assert record.source is HistorySource.ROLLOVER
    assert record.end_reading == Decimal("1500")
    assert await state.get_number(f"{BASE}.billing.newInitialReading") == Decimal("1500")
    assert await state.get_datetime(f"{BASE}.statistics.lastYearStart") == datetime(
        2026, 1, 15
    )


@pytest.mark.asyncio
async def test_automatic_rollover_of_gas_uses_volume(state, closer):
    meter = make_meter(UtilityType.GAS)
    await prepare_year(state, "gas.main")
    await state.set_value("gas.main.consumption.yearlyVolume", Decimal("66.8"))
    await state.set_value("gas.main.info.meterReading", Decimal("13000"))
    await state.set_value("gas.main.info.meterReadingVolume", Decimal("1189.3"))

    record = await closer.close_year_automatically(meter)

    assert record.consumption_volume == Decimal("66.8")
    assert record.end_reading == Decimal("1189.3")
    assert await state.get_number("gas.main.consumption.yearlyVolume") == Decimal("0")
    assert await state.get_number("gas.main.billing.newInitialReading") == Decimal(
        "1189.3"
    )


@pytest.mark.asyncio
async def test_automatic_rollover_keeps_existing_archive(state, history, closer):
    meter = make_meter()
    await prepare_year(state)
    await history.create(
        utility_type=UtilityType.ELECTRICITY,
        meter_name="main",
        year=2025,
        consumption=Decimal("700"),
        total_yearly=Decimal("290"),
        source=HistorySource.CLOSE,
    )

    record = await closer.close_year_automatically(meter)

    assert record is None
    kept = await history.get_year(UtilityType.ELECTRICITY, "main", 2025)
    assert kept.consumption == Decimal("700")
    assert await state.get_number(f"{BASE}.consumption.yearly") == Decimal("0")


@pytest.mark.parametrize(
    "contract_start, anchor, expected",
    [
        (date(2025, 1, 15), datetime(2025, 1, 15), datetime(2026, 1, 15)),
        (date(2024, 2, 29), datetime(2025, 2, 28), datetime(2026, 2, 28)),
        (None, datetime(2025, 1, 1), datetime(2026, 1, 1)),
    ],
)
@pytest.mark.asyncio
async def test_following_anchor(contract_start, anchor, expected):
    meter = make_meter(contract_start=contract_start)
    assert BillingPeriodCloser.following_anchor(meter, anchor) == expected
