"""Index of sensors and the meters they feed."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from utility_monitor.core.models import UtilityType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MeterRef:
    """Identity of a meter within the monitor."""

    utility_type: UtilityType
    name: str

    @property
    def path(self) -> str:
        """Root of the meter's state subtree."""
        return f"{self.utility_type.value}.{self.name}"

    def __str__(self) -> str:
        return self.path


class MeterRegistry:
    """Maps external sensor ids to every meter that sensor feeds."""

    def __init__(self) -> None:
        self._by_sensor: dict[str, list[MeterRef]] = {}

    def register(self, sensor_id: str, ref: MeterRef) -> None:
        """Adds a meter to a sensor; registering twice has no effect."""
        refs = self._by_sensor.setdefault(sensor_id, [])
        if ref not in refs:
            refs.append(ref)
            logger.debug(f"Registered {ref} for sensor {sensor_id}")

    def unregister(self, sensor_id: str, ref: MeterRef) -> None:
        refs = self._by_sensor.get(sensor_id)
        if not refs or ref not in refs:
            return
        refs.remove(ref)
        if not refs:
            del self._by_sensor[sensor_id]

    def unregister_meter(self, ref: MeterRef) -> None:
        """Removes a meter from every sensor it is registered for."""
        for sensor_id in list(self._by_sensor):
            self.unregister(sensor_id, ref)

    def find_by_sensor(self, sensor_id: str) -> list[MeterRef]:
        return list(self._by_sensor.get(sensor_id, ()))

    def has_sensor(self, sensor_id: str) -> bool:
        return sensor_id in self._by_sensor

    def all_sensors(self) -> list[str]:
        return list(self._by_sensor)

    def clear(self) -> None:
        self._by_sensor.clear()
