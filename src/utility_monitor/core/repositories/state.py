"""Repository for the hierarchical state tree."""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Union

from tortoise.exceptions import BaseORMException, DBConnectionError
from tortoise.exceptions import ConfigurationError as ORMConfigurationError
from tortoise.expressions import Q

from utility_monitor.core.models import StateNode, ValueKind
from utility_monitor.core.repositories.base import BaseRepository
from utility_monitor.core.schema import NodeSpec
from utility_monitor.core.units import to_decimal

logger = logging.getLogger(__name__)

StateValue = Union[Decimal, str, bool, datetime, None]

ZERO = Decimal("0")


def _kind_for(value: Any) -> ValueKind | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return ValueKind.NUMBER
    if isinstance(value, datetime):
        return ValueKind.DATETIME
    return ValueKind.STRING


def _assign(node: StateNode, value: Any) -> None:
    node.number = node.text = node.flag = None
    kind = _kind_for(value)
    if kind is None:
        return
    node.kind = kind
    if kind is ValueKind.BOOLEAN:
        node.flag = value
    elif kind is ValueKind.NUMBER:
        node.number = to_decimal(value)
    elif kind is ValueKind.DATETIME:
        node.text = value.isoformat()
    elif isinstance(value, date):
        node.text = value.isoformat()
    else:
        node.text = str(value)


def _read(node: StateNode) -> StateValue:
    if node.kind is ValueKind.NUMBER:
        return node.number
    if node.kind is ValueKind.BOOLEAN:
        return node.flag
    if node.kind is ValueKind.DATETIME:
        return datetime.fromisoformat(node.text) if node.text else None
    if node.kind is ValueKind.STRING:
        return node.text
    return None


class StateRepository(BaseRepository[StateNode]):
    """
    Key-value access to the state tree addressed by dotted paths.

    Writes never assume that a node exists. Connection and configuration
    faults of the ORM are re-raised, any other write failure is logged and
    skipped unless the write is ``strict``.
    """

    def __init__(self) -> None:
        super().__init__(StateNode)

    async def get_value(self, path: str) -> StateValue:
        node = await self.model.get_or_none(path=path)
        return _read(node) if node else None

    async def get_number(self, path: str, default: Decimal | None = ZERO) -> Decimal | None:
        value = await self.get_value(path)
        if value is None or isinstance(value, (bool, datetime)):
            return default
        return to_decimal(value, default)

    async def get_datetime(self, path: str) -> datetime | None:
        value = await self.get_value(path)
        return value if isinstance(value, datetime) else None

    async def get_flag(self, path: str) -> bool:
        return (await self.get_value(path)) is True

    async def set_value(self, path: str, value: Any, *, strict: bool = False) -> None:
        """Upserts the value of a node."""
        try:
            node = await self.model.get_or_none(path=path)
            if node is None:
                node = self.model(path=path, name=path.rsplit(".", 1)[-1])
            _assign(node, value)
            await node.save()
        except (DBConnectionError, ORMConfigurationError):
            raise
        except BaseORMException as e:
            if strict:
                raise
            logger.error(f"Failed to write state {path}: {e}")

    async def set_values(
        self, base: str, values: dict[str, Any], *, strict: bool = False
    ) -> None:
        for key, value in values.items():
            await self.set_value(f"{base}.{key}", value, strict=strict)

    async def ensure_node(self, path: str, node_spec: NodeSpec) -> bool:
        """
        Creates the node with its default value unless it exists already.

        Returns True if the node was created.
        """
        if await self.model.exists(path=path):
            return False
        node = self.model(path=path, kind=node_spec.kind, name=node_spec.name, unit=node_spec.unit)
        if node_spec.default is not None:
            _assign(node, node_spec.default)
        try:
            await node.save()
        except (DBConnectionError, ORMConfigurationError):
            raise
        except BaseORMException as e:
            logger.error(f"Failed to create state {path}: {e}")
            return False
        return True

    async def ensure_nodes(self, base: str, node_specs: list[NodeSpec]) -> int:
        created = 0
        for node_spec in node_specs:
            created += await self.ensure_node(node_spec.at(base), node_spec)
        return created

    async def exists(self, path: str) -> bool:
        return await self.model.exists(path=path)

    async def delete_subtree(self, path: str) -> int:
        """Deletes a node and everything below it."""
        deleted = await self.model.filter(Q(path=path) | Q(path__startswith=f"{path}.")).delete()
        logger.info(f"Deleted {deleted} state node(s) under {path}")
        return deleted

    async def child_names(self, path: str) -> list[str]:
        """Names of the direct children of a node."""
        prefix = f"{path}."
        paths = await self.model.filter(path__startswith=prefix).values_list(
            "path", flat=True
        )
        return sorted({p[len(prefix):].split(".", 1)[0] for p in paths})
