"""Meter name handling for the flat configuration map."""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

MAIN_METER = "main"
UNNAMED_METER = "unnamed"
MAX_METER_NAME_LENGTH = 20

# Names that collide with containers of the state tree.
RESERVED_METER_NAMES = frozenset(
    {
        MAIN_METER,
        "totals",
        "consumption",
        "costs",
        "billing",
        "info",
        "statistics",
        "adjustment",
        "history",
    }
)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_meter_name(name: Any) -> str:
    """
    Turns a user supplied name into a state tree slug.

    Lowercase ASCII letters and digits only, at most 20 characters.
    """
    if not name or not isinstance(name, str):
        return UNNAMED_METER
    slug = _NON_ALNUM_RE.sub("", name.lower())[:MAX_METER_NAME_LENGTH]
    return slug or UNNAMED_METER


def unique_meter_names(names: Iterable[Any], taken: Iterable[str] = ()) -> list[str]:
    """
    Normalizes a list of auxiliary meter names so that none of them collides
    with another one or with a reserved name.

    Collisions get a numeric suffix: ``garage``, ``garage2``, ``garage3``.
    """
    used = set(RESERVED_METER_NAMES) | set(taken)
    result = []
    for name in names:
        base = normalize_meter_name(name)
        candidate = base
        counter = 2
        while candidate in used:
            suffix = str(counter)
            candidate = base[: MAX_METER_NAME_LENGTH - len(suffix)] + suffix
            counter += 1
        used.add(candidate)
        result.append(candidate)
    return result
