"""Tests for the orchestrating utility monitor."""

from datetime import datetime
from decimal import Decimal

import pytest

from utility_monitor.core.models import HistorySource, UtilityType
from utility_monitor.services.closer import BillingCloseError
from utility_monitor.services.monitor import UtilityMonitor
from utility_monitor.services.tracker import ReadingStatus
from conftest import make_config, make_meter

pytestmark = pytest.mark.usefixtures("db_session")


def build_monitor(state, history, clock, *meters, **config_overrides):
    return UtilityMonitor(make_config(*meters, **config_overrides), state, history, clock)


@pytest.mark.asyncio
async def test_initialize_creates_state_and_registers_sensors(state, history, clock):
    # --- Arrange ---
    monitor = build_monitor(
        state, history, clock, make_meter(name="main"), make_meter(name="workshop")
    )

    # --- Act ---
    await monitor.initialize()

    # --- Assert ---
    assert monitor.registry.has_sensor("sensor.electricity.main")
    assert monitor.registry.has_sensor("sensor.electricity.workshop")
    assert await state.exists("system.lastMonthlyReport")
    assert await state.exists("electricity.totals.consumption.yearly")
    assert await state.get_flag("electricity.main.info.sensorActive") is True
    assert await state.get_number("electricity.main.billing.daysRemaining") == 178
    assert await state.get_value("electricity.main.billing.periodEnd") == "14.01.2026"
    assert await state.get_datetime(
        "electricity.main.statistics.lastYearStart"
    ) == datetime(2025, 1, 15)
    assert await state.get_value("electricity.main.info.currentTariff") == "Standard"


@pytest.mark.asyncio
async def test_meter_without_sensor_is_inactive(state, history, clock):
    monitor = build_monitor(state, history, clock, make_meter(sensor_id=None))

    await monitor.initialize()

    assert monitor.registry.all_sensors() == []
    assert await state.get_flag("electricity.main.info.sensorActive") is False


@pytest.mark.asyncio
async def test_single_meter_type_has_no_totals(state, history, clock):
    monitor = build_monitor(state, history, clock, make_meter(UtilityType.WATER))

    await monitor.initialize()

    assert not await state.exists("water.totals")
    assert await monitor.update_totals(UtilityType.WATER) is None


@pytest.mark.asyncio
async def test_gas_readings_end_to_end(state, history, clock):
    # --- Arrange ---
    meter = make_meter(UtilityType.GAS, initial_reading=Decimal("0"))
    monitor = build_monitor(state, history, clock, meter)
    await monitor.initialize()

    # --- Act ---
    for raw in ("0", "50", "100"):
        await monitor.handle_sensor_value("sensor.gas.main", raw)

    # --- Assert ---
    assert await state.get_number("gas.main.consumption.yearlyVolume") == Decimal("100")
    assert await state.get_number("gas.main.consumption.yearly") == Decimal("1092.5")
    assert await state.get_number("gas.main.costs.yearly") == Decimal("327.75")


@pytest.mark.asyncio
async def test_shared_sensor_feeds_every_registered_meter(state, history, clock):
    shared = "sensor.shared"
    monitor = build_monitor(
        state,
        history,
        clock,
        make_meter(UtilityType.ELECTRICITY, sensor_id=shared),
        make_meter(UtilityType.GENERATION, sensor_id=shared),
    )
    await monitor.initialize()

    await monitor.handle_sensor_value(shared, "100")
    updates = await monitor.handle_sensor_value(shared, "104")

    assert [str(update.meter) for update in updates] == [
        "electricity.main",
        "generation.main",
    ]
    assert all(update.result.status is ReadingStatus.ACCEPTED for update in updates)
    assert await state.get_number("generation.main.consumption.daily") == Decimal("4")


@pytest.mark.asyncio
async def test_unknown_sensor_is_ignored(state, history, clock):
    monitor = build_monitor(state, history, clock, make_meter())
    await monitor.initialize()

    assert await monitor.handle_sensor_value("sensor.unknown", "5") == []


@pytest.mark.asyncio
async def test_totals_follow_meter_updates(state, history, clock):
    # --- Arrange ---
    monitor = build_monitor(
        state, history, clock, make_meter(name="main"), make_meter(name="workshop")
    )
    await monitor.initialize()

    # --- Act ---
    for sensor, raw in (
        ("sensor.electricity.main", "100"),
        ("sensor.electricity.main", "110"),
        ("sensor.electricity.workshop", "50"),
        ("sensor.electricity.workshop", "55"),
    ):
        await monitor.handle_sensor_value(sensor, raw)

    # --- Assert ---
    assert await state.get_number("electricity.totals.consumption.daily") == Decimal("15")
    assert await state.get_number("electricity.totals.costs.daily") == Decimal("4.50")


@pytest.mark.asyncio
async def test_removed_meter_state_is_deleted(state, history, clock):
    # --- Arrange ---
    await state.set_value("electricity.garage.consumption.yearly", Decimal("42"))
    await history.create(
        utility_type=UtilityType.ELECTRICITY,
        meter_name="garage",
        year=2024,
        consumption=Decimal("42"),
        total_yearly=Decimal("12.6"),
    )
    monitor = build_monitor(state, history, clock, make_meter())

    # --- Act ---
    await monitor.initialize()

    # --- Assert ---
    assert not await state.exists("electricity.garage.consumption.yearly")
    assert await state.child_names("electricity") == ["main"]
    assert await history.has_year(UtilityType.ELECTRICITY, "garage", 2024)


@pytest.mark.asyncio
async def test_request_close_archives_year(state, history, clock):
    # --- Arrange ---
    meter = make_meter(initial_reading=Decimal("1000"))
    monitor = build_monitor(state, history, clock, meter)
    await monitor.initialize()
    await monitor.handle_sensor_value("sensor.electricity.main", "1000")
    await monitor.handle_sensor_value("sensor.electricity.main", "1100")

    # --- Act ---
    record = await monitor.request_close(UtilityType.ELECTRICITY, "main", "1100,5")

    # --- Assert ---
    assert record.year == 2025
    assert record.consumption == Decimal("100")
    assert record.total_yearly == Decimal("30")
    assert record.end_reading == Decimal("1100.5")
    assert await state.get_number("electricity.main.costs.yearly") == Decimal("0")
    assert await state.get_number("electricity.main.billing.daysRemaining") == 178


@pytest.mark.asyncio
async def test_request_close_rejects_bad_input(state, history, clock):
    monitor = build_monitor(state, history, clock, make_meter())
    await monitor.initialize()

    with pytest.raises(BillingCloseError):
        await monitor.request_close(UtilityType.WATER, "main", "10")
    with pytest.raises(BillingCloseError):
        await monitor.request_close(UtilityType.ELECTRICITY, "main", "abc")

    assert await state.get_flag("electricity.main.billing.closePeriod") is False


@pytest.mark.asyncio
async def test_set_adjustment_changes_yearly_costs(state, history, clock):
    monitor = build_monitor(state, history, clock, make_meter())
    await monitor.initialize()

    await monitor.set_adjustment(UtilityType.ELECTRICITY, "main", "20", "estimated")

    assert await state.get_value("electricity.main.adjustment.note") == "estimated"
    assert await state.get_number("electricity.main.adjustment.applied") == Decimal("20")
    assert await state.get_number("electricity.main.costs.yearly") == Decimal("6")


@pytest.mark.asyncio
async def test_sweep_rolls_over_the_billing_year(state, history, clock):
    # --- Arrange ---
    meter = make_meter(initial_reading=Decimal("1000"))
    monitor = build_monitor(state, history, clock, meter)
    await monitor.initialize()
    await monitor.handle_sensor_value("sensor.electricity.main", "1000")
    await monitor.handle_sensor_value("sensor.electricity.main", "1010")
    clock.now = datetime(2026, 1, 14, 23, 59, 20)

    # --- Act ---
    await monitor.check_period_resets()
    await monitor.check_period_resets()

    # --- Assert ---
    records = await history.list_for_meter(UtilityType.ELECTRICITY, "main")
    assert [record.year for record in records] == [2025]
    assert records[0].source is HistorySource.ROLLOVER
    assert records[0].consumption == Decimal("10")
    assert await state.get_number("electricity.main.consumption.yearly") == Decimal("0")
    assert await state.get_number("electricity.main.billing.newInitialReading") == Decimal(
        "1010"
    )
    assert await state.get_datetime(
        "electricity.main.statistics.lastYearStart"
    ) == datetime(2026, 1, 15)
    assert await state.get_number("electricity.main.billing.daysRemaining") == 0


@pytest.mark.asyncio
async def test_get_meter_unknown_raises(state, history, clock):
    monitor = build_monitor(state, history, clock, make_meter())

    assert monitor.get_meter(UtilityType.ELECTRICITY).name == "main"
    with pytest.raises(KeyError):
        monitor.get_meter(UtilityType.GAS)
