"""Pytest configuration and fixtures."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from tortoise import Tortoise

from utility_monitor.core.db import MODEL_MODULES
from utility_monitor.core.meter_config import MeterConfig, MonitorConfig
from utility_monitor.core.models import UtilityType
from utility_monitor.core.repositories.history import HistoryRepository
from utility_monitor.core.repositories.state import StateRepository


class FakeClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_meter(
    utility_type: UtilityType = UtilityType.ELECTRICITY,
    name: str = "main",
    **overrides,
) -> MeterConfig:
    """Builds a meter config with sensible test defaults."""
    values = {
        "display_name": name,
        "sensor_id": f"sensor.{utility_type.value}.{name}",
        "contract_start": date(2025, 1, 15),
        "price": Decimal("0.30"),
    }
    values.update(overrides)
    return MeterConfig(utility_type=utility_type, name=name, **values)


def make_config(*meters: MeterConfig, **overrides) -> MonitorConfig:
    grouped: dict[UtilityType, tuple[MeterConfig, ...]] = {}
    for meter in meters:
        grouped[meter.utility_type] = grouped.get(meter.utility_type, ()) + (meter,)
    return MonitorConfig(meters=grouped, **overrides)


@pytest_asyncio.fixture(scope="function")
async def db_session():
    """
    Provides a clean in-memory SQLite database for each test function.
    """
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": MODEL_MODULES},
    )
    await Tortoise.generate_schemas()

    yield

    await Tortoise.close_connections()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 7, 20, 12, 0))


@pytest.fixture
def state() -> StateRepository:
    return StateRepository()


@pytest.fixture
def history() -> HistoryRepository:
    return HistoryRepository()
