"""
Immutable value types shared by the loader, resolver and masking engine.

A ``PermissionCache`` is a per-user snapshot. It is never mutated after it is
built; when it expires or is invalidated a new one is loaded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

from .levels import DataLevel, Scope

TagEffect = Literal["grant", "deny"]


@dataclass(frozen=True)
class OrgContext:
    """Organizational memberships of the cache owner, used for scope checks."""

    user_id: str
    department_ids: frozenset[str] = frozenset()
    lob_ids: frozenset[str] = frozenset()
    division_ids: frozenset[str] = frozenset()
    location_ids: frozenset[str] = frozenset()
    direct_report_ids: frozenset[str] = frozenset()
    supervisor_ids: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        for name in (
            "department_ids",
            "lob_ids",
            "division_ids",
            "location_ids",
            "direct_report_ids",
            "supervisor_ids",
        ):
            object.__setattr__(self, name, frozen_ids(getattr(self, name)))

    @classmethod
    def empty(cls, user_id: str) -> OrgContext:
        return cls(user_id=user_id)

    def to_dict(self) -> dict[str, object]:
        return {
            "user_id": self.user_id,
            "department_ids": sorted(self.department_ids),
            "lob_ids": sorted(self.lob_ids),
            "division_ids": sorted(self.division_ids),
            "location_ids": sorted(self.location_ids),
            "direct_report_ids": sorted(self.direct_report_ids),
            "supervisor_ids": sorted(self.supervisor_ids),
        }


@dataclass(frozen=True)
class Role:
    """An active role assignment held by the cache owner."""

    code: str
    name: str
    scope_type: str = "global"
    scope_id: str | None = None
    hierarchy_level: int = 5
    sensitivity_access: DataLevel = DataLevel.BASIC
    expires_at: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "sensitivity_access", DataLevel(self.sensitivity_access))

    def to_dict(self) -> dict[str, object]:
        return {
            "code": self.code,
            "name": self.name,
            "scope_type": self.scope_type,
            "scope_id": self.scope_id,
            "hierarchy_level": self.hierarchy_level,
            "sensitivity_access": self.sensitivity_access.value,
        }


@dataclass(frozen=True)
class TagRule:
    """
    Tag-activated override of a permission.

    ``target_tags`` of None means the rule applies to every subject; otherwise
    the check context must carry at least one of the tags.
    """

    tag: str
    permission_code: str
    effect: TagEffect = "grant"
    target_tags: frozenset[str] | None = None
    priority: int = 0

    def __post_init__(self) -> None:
        if self.target_tags is not None and not isinstance(self.target_tags, frozenset):
            object.__setattr__(self, "target_tags", frozenset(self.target_tags))


@dataclass(frozen=True)
class PermissionCache:
    user_id: str
    loaded_at: float
    expires_at: float
    permissions: frozenset[str] = frozenset()
    roles: tuple[Role, ...] = ()
    tags: frozenset[str] = frozenset()
    tag_grants: tuple[TagRule, ...] = ()
    tag_denies: tuple[TagRule, ...] = ()
    org_context: OrgContext | None = None

    def __post_init__(self) -> None:
        if self.org_context is None:
            object.__setattr__(self, "org_context", OrgContext.empty(self.user_id))
        object.__setattr__(self, "permissions", frozenset(self.permissions))
        object.__setattr__(self, "tags", frozenset(self.tags))
        object.__setattr__(self, "roles", tuple(self.roles))
        object.__setattr__(self, "tag_grants", tuple(self.tag_grants))
        object.__setattr__(self, "tag_denies", tuple(self.tag_denies))

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    @property
    def role_codes(self) -> frozenset[str]:
        return frozenset(role.code for role in self.roles)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable view for clients (no tag rule internals)."""
        return {
            "user_id": self.user_id,
            "permissions": sorted(self.permissions),
            "roles": [role.to_dict() for role in self.roles],
            "tags": sorted(self.tags),
            "org_context": self.org_context.to_dict(),
            "loaded_at": self.loaded_at,
            "expires_at": self.expires_at,
        }


@dataclass(frozen=True)
class PermissionCheckContext:
    """The target of a check. Supplied per call, never cached."""

    target_user_id: str | None = None
    target_department_id: str | None = None
    target_lob_id: str | None = None
    target_division_id: str | None = None
    target_location_id: str | None = None
    target_tags: frozenset[str] | None = None

    def __post_init__(self) -> None:
        if self.target_tags is not None and not isinstance(self.target_tags, frozenset):
            object.__setattr__(self, "target_tags", frozenset(self.target_tags))

    @property
    def has_target(self) -> bool:
        return any(
            (
                self.target_user_id,
                self.target_department_id,
                self.target_lob_id,
                self.target_division_id,
                self.target_location_id,
            )
        )


EMPTY_CONTEXT = PermissionCheckContext()


@dataclass(frozen=True)
class PermissionCheckResult:
    allowed: bool
    reason: str | None = None
    matched_permission: str | None = None
    effective_scope: Scope | None = None
    effective_data_level: DataLevel | None = None

    def __bool__(self) -> bool:
        return self.allowed


def frozen_ids(values: Iterable[str | None]) -> frozenset[str]:
    """Drop empty values and de-duplicate."""
    return frozenset(str(v) for v in values if v)
