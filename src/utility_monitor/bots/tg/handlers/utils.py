from __future__ import annotations

from utility_monitor.core.config_parser import MAIN_METER
from utility_monitor.core.meter_config import MeterConfig
from utility_monitor.core.models import UtilityType
from utility_monitor.services.monitor import UtilityMonitor


def resolve_meter(
    monitor: UtilityMonitor, utility: str | None, name: str | None = None
) -> MeterConfig | None:
    """
    Looks up a configured meter from command arguments.

    Args:
        utility: Utility type value, e.g. 'gas'.
        name: Meter slug; the main meter when omitted.
    """
    if not utility:
        return None
    try:
        utility_type = UtilityType(utility.lower())
    except ValueError:
        return None
    return monitor.config.get_meter(utility_type, (name or MAIN_METER).lower())


def command_args(text: str | None) -> list[str]:
    """Arguments of a command message, without the command itself."""
    if not text:
        return []
    return text.split()[1:]
