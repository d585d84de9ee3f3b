"""Typed configuration records resolved from the flat settings map."""

from __future__ import annotations

import logging
from datetime import date, time
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from utility_monitor.core.config_parser import MAIN_METER, unique_meter_names
from utility_monitor.core.dates import HtWindow, parse_contract_date, parse_time_of_day
from utility_monitor.core.exceptions import ConfigurationError
from utility_monitor.core.models import UtilityType
from utility_monitor.core.registry import MeterRef
from utility_monitor.core.units import (
    DEFAULT_CALORIFIC_VALUE,
    DEFAULT_CORRECTION_FACTOR,
    to_decimal,
)

logger = logging.getLogger(__name__)

DEFAULT_SPIKE_THRESHOLD = Decimal("500")
DEFAULT_RESTART_TOLERANCE = Decimal("10")
DEFAULT_HT_START = time(6, 0)
DEFAULT_HT_END = time(22, 0)

METER_KEYS = (
    "sensor_id",
    "offset",
    "initial_reading",
    "contract_start",
    "price",
    "basic_charge",
    "annual_fee",
    "prepayment",
)
SPLIT_TARIFF_KEYS = ("ht_nt_enabled", "ht_price", "nt_price")
NOTIFICATION_KEYS = (
    "enabled",
    "billing_enabled",
    "billing_days",
    "change_enabled",
    "change_days",
    "monthly_enabled",
    "monthly_day",
)

_FLAG = TypeAdapter(bool)


def parse_flag(value: Any, default: bool = False) -> bool:
    """Boolean config value; empty or unreadable values yield ``default``."""
    if value is None or value == "":
        return default
    try:
        return _FLAG.validate_python(value)
    except ValidationError:
        return default


def _time_of_day(value: Any, default: time) -> time:
    if isinstance(value, time):
        return value
    parsed = parse_time_of_day(value) if isinstance(value, str) else None
    return parsed or default


class _ConfigModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    @classmethod
    def _field_default(cls, info: ValidationInfo) -> Any:
        return cls.model_fields[info.field_name].default


class MeterConfig(_ConfigModel):
    """Everything the engine needs to know about one meter."""

    utility_type: UtilityType
    name: str
    display_name: str
    sensor_id: str | None = None
    offset: Decimal = Decimal("0")
    initial_reading: Decimal | None = None
    contract_start: date | None = None
    price: Decimal = Decimal("0")
    basic_charge: Decimal = Decimal("0")
    annual_fee: Decimal = Decimal("0")
    prepayment: Decimal = Decimal("0")
    ht_nt_enabled: bool = False
    ht_price: Decimal = Decimal("0")
    nt_price: Decimal = Decimal("0")
    ht_window: HtWindow | None = None

    @field_validator("sensor_id", mode="before")
    @classmethod
    def _blank_sensor_is_none(cls, value: Any) -> str | None:
        return str(value) if value else None

    @field_validator("offset", "initial_reading", mode="before")
    @classmethod
    def _parse_number(cls, value: Any, info: ValidationInfo) -> Decimal | None:
        return to_decimal(value, cls._field_default(info))

    @field_validator(
        "price", "basic_charge", "annual_fee", "prepayment", "ht_price", "nt_price", mode="before"
    )
    @classmethod
    def _parse_price(cls, value: Any, info: ValidationInfo) -> Decimal:
        # Prices and fees must not be negative
        default = cls._field_default(info)
        number = to_decimal(value, default)
        return default if number < 0 else number

    @field_validator("contract_start", mode="before")
    @classmethod
    def _parse_contract_start(cls, value: Any) -> date | None:
        return parse_contract_date(value)

    @field_validator("ht_nt_enabled", mode="before")
    @classmethod
    def _parse_split_flag(cls, value: Any) -> bool:
        return parse_flag(value)

    @field_validator("ht_window", mode="before")
    @classmethod
    def _parse_ht_window(cls, value: Any) -> HtWindow | None:
        if isinstance(value, dict):
            return HtWindow(
                start=_time_of_day(value.get("start"), DEFAULT_HT_START),
                end=_time_of_day(value.get("end"), DEFAULT_HT_END),
            )
        return value

    @property
    def ref(self) -> MeterRef:
        return MeterRef(self.utility_type, self.name)

    @property
    def path(self) -> str:
        return self.ref.path

    @property
    def reading_path(self) -> str:
        """State node holding the latest reading in the unit the meter counts in."""
        key = "meterReadingVolume" if self.utility_type.is_volumetric else "meterReading"
        return f"{self.path}.info.{key}"

    @property
    def is_main(self) -> bool:
        return self.name == MAIN_METER

    @property
    def has_price(self) -> bool:
        return self.ht_nt_enabled or self.price > 0


class NotificationConfig(_ConfigModel):
    enabled: bool = False
    billing_enabled: bool = True
    billing_days: int = 7
    change_enabled: bool = True
    change_days: int = 60
    monthly_enabled: bool = False
    monthly_day: int = 1
    utility_types: frozenset[UtilityType] = frozenset(UtilityType)

    @field_validator(
        "enabled", "billing_enabled", "change_enabled", "monthly_enabled", mode="before"
    )
    @classmethod
    def _parse_flag(cls, value: Any, info: ValidationInfo) -> bool:
        return parse_flag(value, cls._field_default(info))

    @field_validator("billing_days", "change_days", "monthly_day", mode="before")
    @classmethod
    def _parse_days(cls, value: Any, info: ValidationInfo) -> int:
        number = to_decimal(value, None)
        return cls._field_default(info) if number is None else int(number)

    @field_validator("utility_types", mode="before")
    @classmethod
    def _select_utility_types(cls, value: Any) -> Any:
        # {utility_type: flag} as found in the flat map
        if isinstance(value, dict):
            return frozenset(utility for utility, flag in value.items() if parse_flag(flag, True))
        return value


class MonitorConfig(_ConfigModel):
    """Resolved configuration of all utility types."""

    meters: dict[UtilityType, tuple[MeterConfig, ...]] = Field(default_factory=dict)
    calorific_value: Decimal = DEFAULT_CALORIFIC_VALUE
    correction_factor: Decimal = DEFAULT_CORRECTION_FACTOR
    spike_threshold: Decimal = DEFAULT_SPIKE_THRESHOLD
    spike_accept_after: int = 0
    restart_tolerance: Decimal = DEFAULT_RESTART_TOLERANCE
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    @model_validator(mode="before")
    @classmethod
    def _from_flat_settings(cls, data: Any) -> Any:
        if isinstance(data, dict) and "meters" not in data:
            return _nest_flat_settings(data)
        return data

    @field_validator(
        "calorific_value", "correction_factor", "spike_threshold", "restart_tolerance", mode="before"
    )
    @classmethod
    def _parse_number(cls, value: Any, info: ValidationInfo) -> Decimal:
        return to_decimal(value, cls._field_default(info))

    @field_validator("spike_accept_after", mode="before")
    @classmethod
    def _parse_spike_accept_after(cls, value: Any) -> int:
        number = to_decimal(value, None)
        return 0 if number is None else max(0, int(number))

    @property
    def active_types(self) -> list[UtilityType]:
        return [utility for utility in UtilityType if self.meters.get(utility)]

    def meters_for(self, utility_type: UtilityType) -> tuple[MeterConfig, ...]:
        return self.meters.get(utility_type, ())

    def get_meter(self, utility_type: UtilityType, name: str) -> MeterConfig | None:
        for meter in self.meters_for(utility_type):
            if meter.name == name:
                return meter
        return None


def _main_meter_fields(utility_type: UtilityType, raw: dict[str, Any]) -> dict[str, Any]:
    prefix = utility_type.value
    fields = {key: raw.get(f"{prefix}_{key}") for key in (*METER_KEYS, *SPLIT_TARIFF_KEYS)}
    fields.update(
        utility_type=utility_type,
        name=MAIN_METER,
        display_name=raw.get(f"{prefix}_display_name") or MAIN_METER,
    )
    if parse_flag(fields["ht_nt_enabled"]):
        fields["ht_window"] = {
            "start": raw.get(f"{prefix}_ht_start"),
            "end": raw.get(f"{prefix}_ht_end"),
        }
    return fields


def _additional_meter_fields(utility_type: UtilityType, entries: Any) -> list[dict[str, Any]]:
    if not isinstance(entries, list):
        return []

    usable = []
    for entry in entries:
        if isinstance(entry, dict) and entry.get("name") and entry.get("sensor_id"):
            usable.append(entry)
        else:
            logger.warning(
                f"[{utility_type.value}] Ignoring additional meter without "
                f"name or sensor: {entry!r}"
            )

    names = unique_meter_names(entry["name"] for entry in usable)
    return [
        {
            **{key: entry.get(key) for key in METER_KEYS},
            "utility_type": utility_type,
            "name": name,
            "display_name": str(entry["name"]),
        }
        for name, entry in zip(names, usable)
    ]


def _nest_flat_settings(raw: dict[str, Any]) -> dict[str, Any]:
    """Regroups the flat ``<type>_<key>`` map into the shape of ``MonitorConfig``."""
    meters = {}
    for utility_type in UtilityType:
        if not parse_flag(raw.get(f"{utility_type.value}_active")):
            continue
        meters[utility_type] = [
            _main_meter_fields(utility_type, raw),
            *_additional_meter_fields(
                utility_type, raw.get(f"{utility_type.value}_additional_meters")
            ),
        ]

    notifications = {key: raw.get(f"notification_{key}") for key in NOTIFICATION_KEYS}
    notifications["utility_types"] = {
        utility: raw.get(f"notification_{utility.value}") for utility in UtilityType
    }
    return {
        "meters": meters,
        "calorific_value": raw.get("gas_calorific_value"),
        "correction_factor": raw.get("gas_correction_factor"),
        "spike_threshold": raw.get("spike_threshold"),
        "spike_accept_after": raw.get("spike_accept_after"),
        "restart_tolerance": raw.get("restart_tolerance"),
        "notifications": notifications,
    }


def resolve_monitor_config(raw: dict[str, Any]) -> MonitorConfig:
    """
    Resolves the flat settings map into typed records, once.

    Raises:
        ConfigurationError: if a value cannot be validated.
    """
    try:
        return MonitorConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_monitor_config(path: str | Path) -> MonitorConfig:
    """
    Reads the JSON settings file and resolves it.

    Raises:
        ConfigurationError: if the file is missing, is not a JSON object or
            holds values that cannot be validated.
    """
    config_path = Path(path)
    try:
        content = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file {config_path} not found") from e

    try:
        config = MonitorConfig.model_validate_json(content)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e

    logger.info(
        f"Loaded configuration for {', '.join(t.value for t in config.active_types) or 'no'} "
        f"utility types from {config_path}"
    )
    return config
