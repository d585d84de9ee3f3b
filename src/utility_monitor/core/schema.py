"""Layout of the state tree kept per meter and per utility type."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from utility_monitor.core.meter_config import MeterConfig
from utility_monitor.core.models import UtilityType, ValueKind

CURRENCY = "€"
VOLUME_UNIT = "m³"
PERIODS = ("daily", "weekly", "monthly", "yearly")
CLOSED_PERIODS = ("lastDay", "lastWeek", "lastMonth")


@dataclass(frozen=True)
class NodeSpec:
    """Definition of a single state node, relative to its parent path."""

    key: str
    kind: ValueKind = ValueKind.NUMBER
    name: str = ""
    unit: str | None = None
    default: Any = None

    def at(self, base: str) -> str:
        if not self.key:
            return base
        return f"{base}.{self.key}" if base else self.key


def _number(key: str, name: str, unit: str | None, default: Any = 0) -> NodeSpec:
    return NodeSpec(key, ValueKind.NUMBER, name, unit, default)


def _channel(key: str, name: str) -> NodeSpec:
    return NodeSpec(key, ValueKind.CHANNEL, name)


def meter_schema(meter: MeterConfig) -> list[NodeSpec]:
    """All nodes below ``{type}.{meter}``."""
    unit = meter.utility_type.unit
    gas = meter.utility_type is UtilityType.GAS
    split = meter.ht_nt_enabled

    nodes = [_channel("", f"Meter: {meter.display_name}")]

    nodes.append(_channel("consumption", "Consumption"))
    for period in PERIODS:
        nodes.append(_number(f"consumption.{period}", f"{period} consumption", unit))
        if gas:
            nodes.append(
                _number(f"consumption.{period}Volume", f"{period} volume", VOLUME_UNIT)
            )
        if split:
            for tariff in ("HT", "NT"):
                nodes.append(
                    _number(
                        f"consumption.{period}{tariff}",
                        f"{period} consumption {tariff}",
                        unit,
                    )
                )
    nodes.append(NodeSpec("consumption.lastUpdate", ValueKind.DATETIME, "Last update"))

    nodes.append(_channel("costs", "Costs"))
    for key in (*PERIODS, "totalYearly", "basicCharge", "annualFee", "paidTotal", "balance"):
        nodes.append(_number(f"costs.{key}", f"{key} cost", CURRENCY))
    if split:
        for period in PERIODS:
            for tariff in ("HT", "NT"):
                nodes.append(
                    _number(f"costs.{period}{tariff}", f"{period} cost {tariff}", CURRENCY)
                )

    nodes.extend(
        [
            _channel("info", "Information"),
            _number("info.meterReading", "Meter reading", unit, None),
            _number("info.currentPrice", "Current price", f"{CURRENCY}/{unit}"),
            NodeSpec("info.currentTariff", ValueKind.STRING, "Current tariff", None, "Standard"),
            NodeSpec("info.lastSync", ValueKind.DATETIME, "Last sensor value"),
            NodeSpec("info.sensorActive", ValueKind.BOOLEAN, "Sensor active", None, False),
        ]
    )
    if gas:
        nodes.append(
            _number("info.meterReadingVolume", "Meter reading volume", VOLUME_UNIT, None)
        )

    nodes.append(_channel("statistics", "Statistics"))
    for anchor in ("lastDayStart", "lastWeekStart", "lastMonthStart", "lastYearStart"):
        nodes.append(NodeSpec(f"statistics.{anchor}", ValueKind.DATETIME, anchor))
    for closed in CLOSED_PERIODS:
        nodes.append(_number(f"statistics.{closed}", closed, unit))
        if gas:
            nodes.append(_number(f"statistics.{closed}Volume", closed, VOLUME_UNIT))
        if split:
            nodes.append(_number(f"statistics.{closed}HT", closed, unit))
            nodes.append(_number(f"statistics.{closed}NT", closed, unit))
    nodes.extend(
        [
            _number("statistics.averageDaily", "Average per day", unit),
            _number("statistics.averageMonthly", "Average per month", unit),
            NodeSpec(
                "statistics.reconciledDayStart",
                ValueKind.DATETIME,
                "Daily window already added back after restart",
            ),
        ]
    )

    nodes.extend(
        [
            _channel("billing", "Billing"),
            _number("billing.endReading", "End reading", unit, None),
            NodeSpec("billing.closePeriod", ValueKind.BOOLEAN, "Close period", None, False),
            _number("billing.newInitialReading", "Starting reading", unit, None),
            _number("billing.daysRemaining", "Days remaining", "days", None),
            NodeSpec("billing.periodEnd", ValueKind.STRING, "Period end"),
            NodeSpec(
                "billing.notificationSent", ValueKind.BOOLEAN, "Reminder sent", None, False
            ),
            NodeSpec(
                "billing.notificationChangeSent",
                ValueKind.BOOLEAN,
                "Change reminder sent",
                None,
                False,
            ),
        ]
    )

    nodes.extend(
        [
            _channel("adjustment", "Manual adjustment"),
            _number("adjustment.value", "Adjustment", VOLUME_UNIT if gas else unit),
            NodeSpec("adjustment.note", ValueKind.STRING, "Note", None, ""),
            _number("adjustment.applied", "Applied adjustment", unit),
        ]
    )
    return nodes


def totals_schema(utility_type: UtilityType) -> list[NodeSpec]:
    """Nodes below ``{type}.totals``."""
    unit = utility_type.unit
    nodes = [
        _channel("", "Totals"),
        _channel("consumption", "Total consumption"),
        _channel("costs", "Total costs"),
    ]
    for period in PERIODS:
        nodes.append(_number(f"consumption.{period}", f"Total {period}", unit))
    for key in ("daily", "weekly", "monthly", "totalYearly"):
        nodes.append(_number(f"costs.{key}", f"Total {key} cost", CURRENCY))
    return nodes


def type_schema(utility_type: UtilityType) -> list[NodeSpec]:
    return [_channel("", utility_type.value.capitalize())]


def system_schema() -> list[NodeSpec]:
    return [
        _channel("", "System"),
        NodeSpec("lastMonthlyReport", ValueKind.STRING, "Last monthly report"),
    ]
