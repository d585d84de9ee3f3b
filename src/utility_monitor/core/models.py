"""Domain models for the utility monitor."""

from __future__ import annotations

import enum
import uuid

from tortoise import fields, models


class UtilityType(str, enum.Enum):
    """Enum for metered utilities."""

    GAS = "gas"
    WATER = "water"
    ELECTRICITY = "electricity"
    GENERATION = "generation"

    @property
    def unit(self) -> str:
        """Billing unit of the utility."""
        return "m³" if self is UtilityType.WATER else "kWh"

    @property
    def is_volumetric(self) -> bool:
        """Whether readings arrive as volume and are converted to energy."""
        return self is UtilityType.GAS


class ValueKind(str, enum.Enum):
    """Type of the value held by a state node."""

    CHANNEL = "channel"
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    DATETIME = "datetime"


class HistorySource(str, enum.Enum):
    """How a history record came into existence."""

    CLOSE = "close"
    ROLLOVER = "rollover"
    IMPORT = "import"


class BaseModel(models.Model):
    """Abstract base model with common fields."""

    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        abstract = True


class StateNode(BaseModel):
    """One node of the hierarchical state tree, addressed by a dotted path."""

    path = fields.CharField(max_length=255, unique=True)  # e.g. "gas.main.consumption.daily"
    kind = fields.CharEnumField(ValueKind, default=ValueKind.NUMBER)
    name = fields.CharField(max_length=255, default="")
    unit = fields.CharField(max_length=16, null=True)
    number = fields.DecimalField(max_digits=20, decimal_places=6, null=True)
    text = fields.TextField(null=True)
    flag = fields.BooleanField(null=True)

    def __str__(self) -> str:
        return f"{self.path} ({self.kind.value})"


class HistoryRecord(BaseModel):
    """Archived figures of one closed billing year of a meter."""

    utility_type = fields.CharEnumField(UtilityType)
    meter_name = fields.CharField(max_length=32)
    year = fields.IntField()
    consumption = fields.DecimalField(max_digits=14, decimal_places=3)
    consumption_volume = fields.DecimalField(
        max_digits=14, decimal_places=3, null=True, description="Gas volume in m³"
    )
    consumption_ht = fields.DecimalField(max_digits=14, decimal_places=3, null=True)
    consumption_nt = fields.DecimalField(max_digits=14, decimal_places=3, null=True)
    total_yearly = fields.DecimalField(max_digits=12, decimal_places=2)
    balance = fields.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        description="Positive means owed, negative means credit",
    )
    end_reading = fields.DecimalField(max_digits=14, decimal_places=3, null=True)
    source = fields.CharEnumField(HistorySource, default=HistorySource.CLOSE)

    class Meta:
        unique_together = ("utility_type", "meter_name", "year")

    def __str__(self) -> str:
        return (
            f"History {self.utility_type.value}.{self.meter_name} {self.year}: "
            f"{self.consumption} / {self.total_yearly}"
        )
