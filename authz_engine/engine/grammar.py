"""
Permission code grammar and candidate permutations.

A permission code is ``resource.action[.data_level][.scope]``:

    users.view
    users.view.personal
    users.view.department
    users.view.personal.department

Requested codes are parsed strictly into a ``ParsedPermission``. Stored codes
(the ones granted to roles) are plain strings and may contain ``*`` segments;
those are matched through ``WildcardSet``, a code path kept apart from exact
set membership.
"""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Iterable, Iterator

from .levels import DataLevel, Scope, data_levels_from, is_data_level, is_scope, scopes_from

WILDCARD = "*"


class PermissionCodeError(ValueError):
    """Raised for a malformed permission code. This is a programming error, not a denial."""


@dataclass(frozen=True)
class ParsedPermission:
    resource: str
    action: str
    data_level: DataLevel | None = None
    scope: Scope | None = None

    @property
    def code(self) -> str:
        return build_permission(self.resource, self.action, self.data_level, self.scope)

    def __str__(self) -> str:
        return self.code


@dataclass(frozen=True)
class Candidate:
    """One stored-permission code that would satisfy a request."""

    code: str
    data_level: DataLevel | None = None
    scope: Scope | None = None


def build_permission(
    resource: str,
    action: str,
    data_level: DataLevel | str | None = None,
    scope: Scope | str | None = None,
) -> str:
    code = f"{resource}.{action}"
    if data_level:
        code += f".{DataLevel(data_level).value}"
    if scope:
        code += f".{Scope(scope).value}"
    return code


def parse_permission(code: str) -> ParsedPermission:
    """
    Parse and validate a requested permission code.

    The third segment is read as a data level first and as a scope otherwise,
    so ``users.view.company`` is the ``company`` data level. A fourth segment
    is only valid after a data level and must be a scope.
    """

    if not isinstance(code, str):
        raise PermissionCodeError(f"Invalid permission code: {code!r}")

    parts = code.strip().split(".")
    if len(parts) < 2:
        raise PermissionCodeError(f"Invalid permission code: {code!r}")
    if len(parts) > 4:
        raise PermissionCodeError(f"Invalid permission code {code!r}: too many segments")
    if any(not part for part in parts):
        raise PermissionCodeError(f"Invalid permission code {code!r}: empty segment")
    if WILDCARD in parts:
        raise PermissionCodeError(f"Invalid permission code {code!r}: wildcards are only valid in grants")

    resource, action, *qualifiers = parts
    data_level: DataLevel | None = None
    scope: Scope | None = None

    if qualifiers:
        third = qualifiers[0]
        if is_data_level(third):
            data_level = DataLevel(third)
            if len(qualifiers) == 2:
                fourth = qualifiers[1]
                if not is_scope(fourth):
                    raise PermissionCodeError(f"Invalid permission code {code!r}: unknown scope {fourth!r}")
                scope = Scope(fourth)
        elif is_scope(third):
            if len(qualifiers) == 2:
                raise PermissionCodeError(
                    f"Invalid permission code {code!r}: data level must precede scope"
                )
            scope = Scope(third)
        else:
            raise PermissionCodeError(f"Invalid permission code {code!r}: unknown qualifier {third!r}")

    return ParsedPermission(resource=resource, action=action, data_level=data_level, scope=scope)


def build_permutations(parsed: ParsedPermission) -> list[Candidate]:
    """
    Enumerate stored codes that satisfy ``parsed``, most specific first.

    A broader scope satisfies a narrower request and a more restricted data
    level satisfies a less restricted one. For every scope from the requested
    one up to ``company`` we emit each data level from the requested one up to
    ``sensitive`` and then the scope-only code; then the data-level-only codes;
    then the bare ``resource.action``.
    """

    scopes = scopes_from(parsed.scope)
    levels = data_levels_from(parsed.data_level)
    r, a = parsed.resource, parsed.action

    candidates: list[Candidate] = []
    for scope in scopes:
        for level in levels:
            candidates.append(Candidate(build_permission(r, a, level, scope), data_level=level, scope=scope))
        candidates.append(Candidate(build_permission(r, a, None, scope), scope=scope))

    for level in levels:
        candidates.append(Candidate(build_permission(r, a, level, None), data_level=level))

    candidates.append(Candidate(build_permission(r, a)))

    # "x.y.company" is both a scope-only and a level-only code; keep the first.
    seen: set[str] = set()
    unique: list[Candidate] = []
    for candidate in candidates:
        if candidate.code in seen:
            continue
        seen.add(candidate.code)
        unique.append(candidate)
    return unique


def matches_permission(pattern: str, permission: str) -> bool:
    """Exact or glob match of a rule pattern against a requested code (``*`` spans segments)."""
    if pattern == permission:
        return True
    if WILDCARD in pattern:
        return fnmatchcase(permission, pattern)
    return False


def covers_permission(pattern: str, permission: str) -> bool:
    """
    True if ``pattern`` matches ``permission`` or a less qualified prefix of it.

    ``users.edit.sensitive`` covers ``users.edit.sensitive.company``.
    """

    if matches_permission(pattern, permission):
        return True
    parts = permission.split(".")
    for end in range(len(parts) - 1, 1, -1):
        if matches_permission(pattern, ".".join(parts[:end])):
            return True
    return False


class WildcardSet:
    """
    Stored permission codes containing ``*`` segments.

    A candidate matches a pattern with the same number of segments where
    every segment is equal or ``*``. ``users.view.personal.*`` and
    ``users.view.*.company`` both match ``users.view.personal.company``.
    """

    def __init__(self, codes: Iterable[str]) -> None:
        patterns: dict[int, list[tuple[str, tuple[str, ...]]]] = {}
        for code in codes:
            if WILDCARD not in code:
                continue
            parts = tuple(code.split("."))
            patterns.setdefault(len(parts), []).append((code, parts))
        for bucket in patterns.values():
            bucket.sort()
        self._patterns = patterns

    def __bool__(self) -> bool:
        return bool(self._patterns)

    def __iter__(self) -> Iterator[str]:
        for bucket in self._patterns.values():
            for code, _parts in bucket:
                yield code

    def match(self, code: str) -> str | None:
        """Return the first stored pattern matching ``code``, or None."""
        parts = code.split(".")
        for pattern, pattern_parts in self._patterns.get(len(parts), ()):
            if all(p == WILDCARD or p == c for p, c in zip(pattern_parts, parts)):
                return pattern
        return None
