"""Conversion of counter readings into billing units."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from utility_monitor.core.exceptions import UnitConversionError

DEFAULT_CALORIFIC_VALUE = Decimal("11.5")  # kWh/m³
DEFAULT_CORRECTION_FACTOR = Decimal("0.95")
ROUNDING_DECIMALS = 2


def to_decimal(value: Any, default: Decimal | None = Decimal("0")) -> Decimal | None:
    """
    Converts a number-like value into a Decimal.

    Strings may use a decimal comma ("15,03"). Empty, non-finite or
    unparseable values yield ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # Go through str() so 0.1885 stays 0.1885
        parsed = Decimal(str(value))
        return parsed if parsed.is_finite() else default
    if isinstance(value, str):
        normalized = value.strip().replace(",", ".", 1)
        if not normalized:
            return default
        try:
            parsed = Decimal(normalized)
        except InvalidOperation:
            return default
        return parsed if parsed.is_finite() else default
    return default


def round_to_decimals(value: Any, decimals: int = ROUNDING_DECIMALS) -> Decimal:
    """Rounds half-up to a fixed number of decimal places."""
    number = to_decimal(value)
    return number.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


def convert_gas_volume_to_energy(
    volume: Decimal,
    calorific_value: Decimal = DEFAULT_CALORIFIC_VALUE,
    correction_factor: Decimal = DEFAULT_CORRECTION_FACTOR,
) -> Decimal:
    """
    Converts a gas volume in m³ into energy in kWh.

    energy = volume x calorific value x correction factor

    Raises:
        UnitConversionError: if the volume is negative, the calorific value is
            not positive or the correction factor lies outside (0, 1].
    """
    if volume < 0:
        raise UnitConversionError(f"Gas volume must not be negative, got {volume}")
    if calorific_value <= 0:
        raise UnitConversionError(
            f"Calorific value must be positive, got {calorific_value}"
        )
    if correction_factor <= 0 or correction_factor > 1:
        raise UnitConversionError(
            f"Correction factor must be in (0, 1], got {correction_factor}"
        )
    return volume * calorific_value * correction_factor
