"""Exception hierarchy shared by the core modules."""


class MonitorError(Exception):
    """Base class for all utility monitor errors."""


class UnitConversionError(MonitorError, ValueError):
    """Raised when a conversion parameter or input is out of range."""


class InvalidConsumptionError(MonitorError, ValueError):
    """Raised when a cost formula receives negative consumption."""


class ConfigurationError(MonitorError):
    """Raised when the utility configuration cannot be loaded."""
