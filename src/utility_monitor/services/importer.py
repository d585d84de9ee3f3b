"""Import of past yearly consumption from CSV exports."""

from __future__ import annotations

import base64
import binascii
import csv
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from utility_monitor.core.dates import parse_contract_date
from utility_monitor.core.exceptions import MonitorError
from utility_monitor.core.meter_config import MeterConfig, MonitorConfig
from utility_monitor.core.models import HistorySource, UtilityType
from utility_monitor.core.repositories.history import HistoryRepository
from utility_monitor.core.units import round_to_decimals, to_decimal

logger = logging.getLogger(__name__)

SEPARATORS = (";", ",", "|", "\t")
DATE_HEADERS = ("date", "datum", "zeit", "timestamp", "zeitstempel", "day", "tag", "ablesedatum")
VALUE_HEADERS = (
    "value",
    "wert",
    "reading",
    "zählerstand",
    "stand",
    "verbrauch",
    "amount",
    "kwh",
    "m³",
    "m3",
    "ablesewert",
    "energie",
)
TYPE_HEADERS = {
    UtilityType.GAS: "gas",
    UtilityType.WATER: "wasser",
    UtilityType.ELECTRICITY: "strom",
    UtilityType.GENERATION: "pv",
}


class HistoryImportError(MonitorError):
    """Raised when a CSV file yields no usable data."""


@dataclass
class ImportResult:
    count: int
    first: date
    last: date
    created_years: list[int] = field(default_factory=list)
    skipped_years: list[int] = field(default_factory=list)


@dataclass
class _YearStats:
    consumption: Decimal = Decimal("0")
    count: int = 0


def decode_content(content: str) -> str:
    """Accepts plain CSV text or a base64 ``data:`` URL."""
    if content.startswith("data:") and "base64," in content:
        payload = content.split("base64,", 1)[1]
        try:
            return base64.b64decode(payload, validate=True).decode("utf-8-sig")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise HistoryImportError(f"Invalid base64 payload: {e}") from e
    return content


def detect_separator(lines: list[str]) -> str:
    """The separator producing the most columns in the first lines."""
    sample = lines[:5]

    def columns(sep: str) -> int:
        return sum(len(row) for row in csv.reader(sample, delimiter=sep))

    return max(SEPARATORS, key=columns)


def parse_timestamp(text: str) -> date | None:
    """Parses ISO and ``DD.MM.YYYY`` dates (with optional time) and epoch milliseconds."""
    text = text.strip()
    if not text:
        return None
    if text.isdigit() and len(text) > 10:
        return datetime.fromtimestamp(int(text) / 1000).date()
    day_part = text.replace("T", " ").split(" ", 1)[0]
    return parse_contract_date(day_part)


def _find_column(headers: list[str], terms: tuple[str, ...]) -> int:
    for index, header in enumerate(headers):
        if any(term in header for term in terms):
            return index
    return -1


class CsvHistoryImporter:
    """Turns per-reading consumption rows into yearly ``HistoryRecord``s."""

    def __init__(
        self,
        history: HistoryRepository,
        config: MonitorConfig,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._history = history
        self._config = config
        self._clock = clock

    def parse(self, utility_type: UtilityType, content: str) -> list[tuple[date, Decimal]]:
        """Extracts ``(date, value)`` rows with positive values, sorted by date."""
        text = decode_content(content)
        lines = [line for line in text.splitlines() if line.strip()]
        if len(lines) < 2:
            raise HistoryImportError("The file is empty or contains too little data")

        separator = detect_separator(lines)
        rows = [[cell.strip() for cell in row] for row in csv.reader(lines, delimiter=separator)]
        headers = [cell.lower() for cell in rows[0]]

        date_idx = _find_column(headers, DATE_HEADERS)
        value_idx = _find_column(headers, VALUE_HEADERS)
        if value_idx == -1:
            value_idx = _find_column(headers, (TYPE_HEADERS[utility_type],))
        has_header = date_idx != -1 or value_idx != -1
        date_idx = 0 if date_idx == -1 else date_idx
        value_idx = 1 if value_idx == -1 else value_idx

        logger.info(
            f"CSV columns: date={date_idx}, value={value_idx}, "
            f"separator={separator!r}, header={has_header}"
        )

        points = []
        for row in rows[1 if has_header else 0:]:
            if len(row) <= max(date_idx, value_idx):
                continue
            day = parse_timestamp(row[date_idx])
            value = to_decimal(row[value_idx], None)
            if day is not None and value is not None and value > 0:
                points.append((day, value))

        if not points:
            raise HistoryImportError(
                "No valid data points found. The file needs a date and a value column."
            )
        return sorted(points)

    def _price(self, meter: MeterConfig) -> Decimal:
        if meter.price > 0 or not meter.ht_nt_enabled:
            return meter.price
        return meter.ht_price

    async def import_csv(
        self, meter: MeterConfig, content: str
    ) -> ImportResult:
        """
        Imports all complete past years from the CSV content.

        Raises:
            HistoryImportError: if the content yields no usable rows.
        """
        points = self.parse(meter.utility_type, content)
        current_year = self._clock().year

        years: dict[int, _YearStats] = defaultdict(_YearStats)
        for day, value in points:
            if day.year < current_year:
                stats = years[day.year]
                stats.consumption += value
                stats.count += 1

        result = ImportResult(count=len(points), first=points[0][0], last=points[-1][0])
        factor = self._config.calorific_value * self._config.correction_factor
        for year in sorted(years):
            if await self._history.has_year(meter.utility_type, meter.name, year):
                logger.info(f"[{meter.path}] History for {year} exists, not overwriting")
                result.skipped_years.append(year)
                continue

            stats = years[year]
            volume = None
            if meter.utility_type is UtilityType.GAS:
                volume = round_to_decimals(stats.consumption / factor, 3)
            await self._history.create(
                utility_type=meter.utility_type,
                meter_name=meter.name,
                year=year,
                consumption=round_to_decimals(stats.consumption, 3),
                consumption_volume=volume,
                total_yearly=round_to_decimals(stats.consumption * self._price(meter)),
                source=HistorySource.IMPORT,
            )
            result.created_years.append(year)

        logger.info(
            f"[{meter.path}] Imported {result.count} rows from {result.first} to "
            f"{result.last}, created years {result.created_years}"
        )
        return result
