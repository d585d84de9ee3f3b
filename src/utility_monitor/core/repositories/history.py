"""Repository for archived billing years."""

from __future__ import annotations

from utility_monitor.core.models import HistoryRecord, UtilityType
from utility_monitor.core.repositories.base import BaseRepository


class HistoryRepository(BaseRepository[HistoryRecord]):
    """History-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(HistoryRecord)

    async def get_year(
        self, utility_type: UtilityType, meter_name: str, year: int
    ) -> HistoryRecord | None:
        return await self.model.get_or_none(
            utility_type=utility_type, meter_name=meter_name, year=year
        )

    async def has_year(self, utility_type: UtilityType, meter_name: str, year: int) -> bool:
        return await self.model.exists(
            utility_type=utility_type, meter_name=meter_name, year=year
        )

    async def list_for_meter(
        self, utility_type: UtilityType, meter_name: str
    ) -> list[HistoryRecord]:
        """All archived years of a meter, newest first."""
        return (
            await self.model.filter(utility_type=utility_type, meter_name=meter_name)
            .order_by("-year")
            .all()
        )

