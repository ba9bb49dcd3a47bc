"""
Data levels (sensitivity tiers) and permission scopes, with their orderings.

Both are closed vocabularies, ordered narrowest/least-restricted first:

    data levels: basic < personal < company < sensitive
    scopes:      self < direct_reports < department < lob < division < company
"""

from __future__ import annotations

from enum import StrEnum


class DataLevel(StrEnum):
    BASIC = "basic"
    PERSONAL = "personal"
    COMPANY = "company"
    SENSITIVE = "sensitive"


class Scope(StrEnum):
    SELF = "self"
    DIRECT_REPORTS = "direct_reports"
    DEPARTMENT = "department"
    LOB = "lob"
    DIVISION = "division"
    COMPANY = "company"


DATA_LEVEL_ORDER: tuple[DataLevel, ...] = (
    DataLevel.BASIC,
    DataLevel.PERSONAL,
    DataLevel.COMPANY,
    DataLevel.SENSITIVE,
)

SCOPE_ORDER: tuple[Scope, ...] = (
    Scope.SELF,
    Scope.DIRECT_REPORTS,
    Scope.DEPARTMENT,
    Scope.LOB,
    Scope.DIVISION,
    Scope.COMPANY,
)

_DATA_LEVEL_VALUES = frozenset(level.value for level in DATA_LEVEL_ORDER)
_SCOPE_VALUES = frozenset(scope.value for scope in SCOPE_ORDER)


def is_data_level(value: str) -> bool:
    return value in _DATA_LEVEL_VALUES


def is_scope(value: str) -> bool:
    return value in _SCOPE_VALUES


def coerce_data_level(value: str | None, default: DataLevel | None = None) -> DataLevel | None:
    """Return the DataLevel for ``value``, or ``default`` when it is not a known tier."""
    if value is None:
        return default
    normalized = str(value).strip().lower()
    if normalized in _DATA_LEVEL_VALUES:
        return DataLevel(normalized)
    return default


def data_level_rank(level: DataLevel | str) -> int:
    return DATA_LEVEL_ORDER.index(DataLevel(level))


def scope_rank(scope: Scope | str) -> int:
    return SCOPE_ORDER.index(Scope(scope))


def data_level_includes(level_a: DataLevel | str, level_b: DataLevel | str) -> bool:
    """True if ``level_a`` is at least as restricted as ``level_b``."""
    return data_level_rank(level_a) >= data_level_rank(level_b)


def scope_includes(scope_a: Scope | str, scope_b: Scope | str) -> bool:
    """True if ``scope_a`` is at least as broad as ``scope_b``."""
    return scope_rank(scope_a) >= scope_rank(scope_b)


def data_levels_from(level: DataLevel | None) -> tuple[DataLevel, ...]:
    """Data levels from ``level`` (or the lowest) up to ``sensitive``."""
    start = data_level_rank(level) if level is not None else 0
    return DATA_LEVEL_ORDER[start:]


def scopes_from(scope: Scope | None) -> tuple[Scope, ...]:
    """Scopes from ``scope`` (or the narrowest) up to ``company``."""
    start = scope_rank(scope) if scope is not None else 0
    return SCOPE_ORDER[start:]
