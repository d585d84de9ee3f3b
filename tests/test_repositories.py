"""Tests for the state and history repositories."""

from datetime import datetime
from decimal import Decimal

import pytest

from utility_monitor.core.models import HistorySource, UtilityType, ValueKind
from utility_monitor.core.schema import NodeSpec, meter_schema
from conftest import make_meter

pytestmark = pytest.mark.usefixtures("db_session")


@pytest.mark.asyncio
async def test_set_value_creates_missing_node(state):
    # --- Act ---
    await state.set_value("gas.main.consumption.daily", Decimal("1.25"))

    # --- Assert ---
    assert await state.get_number("gas.main.consumption.daily") == Decimal("1.25")
    assert await state.exists("gas.main.consumption.daily")


@pytest.mark.asyncio
async def test_values_keep_their_kind(state):
    moment = datetime(2025, 7, 19, 23, 59)
    await state.set_value("gas.main.statistics.lastDayStart", moment)
    await state.set_value("gas.main.info.currentTariff", "HT")
    await state.set_value("gas.main.info.sensorActive", True)

    assert await state.get_datetime("gas.main.statistics.lastDayStart") == moment
    assert await state.get_value("gas.main.info.currentTariff") == "HT"
    assert await state.get_flag("gas.main.info.sensorActive") is True


@pytest.mark.asyncio
async def test_get_number_defaults(state):
    assert await state.get_number("nowhere") == Decimal("0")
    assert await state.get_number("nowhere", None) is None

    await state.set_value("gas.main.info.currentTariff", "NT")
    assert await state.get_number("gas.main.info.currentTariff", None) is None


@pytest.mark.asyncio
async def test_ensure_node_does_not_overwrite(state):
    node_spec = NodeSpec("daily", ValueKind.NUMBER, "daily consumption", "kWh", 0)

    created = await state.ensure_node("electricity.main.consumption.daily", node_spec)
    await state.set_value("electricity.main.consumption.daily", Decimal("4.2"))
    created_again = await state.ensure_node("electricity.main.consumption.daily", node_spec)

    assert created is True
    assert created_again is False
    assert await state.get_number("electricity.main.consumption.daily") == Decimal("4.2")


@pytest.mark.asyncio
async def test_ensure_nodes_builds_meter_subtree(state):
    meter = make_meter(UtilityType.GAS)

    created = await state.ensure_nodes(meter.path, meter_schema(meter))

    assert created == len(meter_schema(meter))
    assert await state.exists("gas.main.consumption.yearlyVolume")
    assert await state.get_number("gas.main.info.meterReading", None) is None
    assert await state.get_value("gas.main.info.currentTariff") == "Standard"
    assert await state.get_flag("gas.main.billing.closePeriod") is False
    assert await state.ensure_nodes(meter.path, meter_schema(meter)) == 0


@pytest.mark.asyncio
async def test_delete_subtree_and_child_names(state):
    await state.set_value("water.main.consumption.daily", 1)
    await state.set_value("water.garden.consumption.daily", 2)
    await state.set_value("water.gardenhouse.consumption.daily", 3)

    assert await state.child_names("water") == ["garden", "gardenhouse", "main"]

    await state.delete_subtree("water.garden")

    assert await state.child_names("water") == ["gardenhouse", "main"]
    assert await state.get_number("water.gardenhouse.consumption.daily") == Decimal("3")


@pytest.mark.asyncio
async def test_history_listing_is_newest_first(history):
    for year in (2023, 2025, 2024):
        await history.create(
            utility_type=UtilityType.WATER,
            meter_name="main",
            year=year,
            consumption=Decimal("80"),
            total_yearly=Decimal("200"),
            source=HistorySource.IMPORT,
        )

    records = await history.list_for_meter(UtilityType.WATER, "main")

    assert [record.year for record in records] == [2025, 2024, 2023]
    assert await history.has_year(UtilityType.WATER, "main", 2024)
    assert not await history.has_year(UtilityType.WATER, "garden", 2024)
    record = await history.get_year(UtilityType.WATER, "main", 2023)
    assert record.consumption == Decimal("80")


@pytest.mark.asyncio
async def test_history_get_and_delete_by_primary_key(history):
    record = await history.create(
        utility_type=UtilityType.GAS,
        meter_name="main",
        year=2024,
        consumption=Decimal("9000"),
        consumption_volume=Decimal("823.8"),
        total_yearly=Decimal("1100"),
    )

    fetched = await history.get(record.id)
    deleted = await history.delete(record.id)

    assert fetched.consumption_volume == Decimal("823.8")
    assert fetched.source is HistorySource.CLOSE
    assert deleted == 1
    assert await history.get(record.id) is None
