"""
Permission cache loader.

Builds a ``PermissionCache`` for one user from a read-only data-access port.

Relations that may not be provisioned yet (tags, tag rules, org assignments,
supervisor links, field sensitivity) are announced by the port through
``PortCapabilities``, resolved once when the port is created. A missing
capability yields an empty collection; it is never an error. An unknown user
yields an empty cache, and the resolver denies by default.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol

from .context import OrgContext, PermissionCache, Role, TagRule, frozen_ids
from .sensitivity import FieldSensitivityConfig
from .store import DEFAULT_TTL_SECONDS
from .tag_rules import PriorityOrder, split_rules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortCapabilities:
    """Which optional relations exist in the backing store."""

    tags: bool = True
    tag_rules: bool = True
    org_assignments: bool = True
    supervisors: bool = True
    field_sensitivity: bool = True

    @classmethod
    def none(cls) -> PortCapabilities:
        return cls(tags=False, tag_rules=False, org_assignments=False, supervisors=False, field_sensitivity=False)


@dataclass(frozen=True)
class RoleGrant:
    """An active role assignment together with the permission codes the role carries."""

    role: Role
    permissions: frozenset[str]


@dataclass(frozen=True)
class OrgAssignment:
    department_id: str | None = None
    lob_id: str | None = None
    division_id: str | None = None
    location_id: str | None = None


class PermissionDataPort(Protocol):
    @property
    def capabilities(self) -> PortCapabilities: ...

    def fetch_role_grants(self, user_id: str) -> list[RoleGrant]: ...

    def fetch_user_tags(self, user_id: str) -> list[str]: ...

    def fetch_tag_rules(self, tags: Iterable[str]) -> list[TagRule]: ...

    def fetch_org_assignments(self, user_id: str) -> list[OrgAssignment]: ...

    def fetch_direct_reports(self, user_id: str) -> list[str]: ...

    def fetch_supervisors(self, user_id: str) -> list[str]: ...

    def fetch_field_sensitivity(self, table_name: str | None = None) -> list[FieldSensitivityConfig]: ...


class PermissionCacheLoader:
    """
    Turns port facts into an immutable ``PermissionCache``.

    The loader itself does not store anything; ``PermissionCacheManager``
    owns the store and decides when to call ``load``.
    """

    def __init__(
        self,
        port: PermissionDataPort,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        priority_order: PriorityOrder = "descending",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._port = port
        self._ttl = ttl_seconds
        self._priority_order = priority_order
        self._clock = clock

    @property
    def port(self) -> PermissionDataPort:
        return self._port

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def load(self, user_id: str) -> PermissionCache:
        now = self._clock()
        caps = self._port.capabilities

        grants = [g for g in self._port.fetch_role_grants(user_id) if _is_active(g.role, now)]
        permissions: set[str] = set()
        for grant in grants:
            permissions.update(grant.permissions)

        tags = frozenset(self._port.fetch_user_tags(user_id)) if caps.tags else frozenset()

        rules: list[TagRule] = []
        if tags and caps.tag_rules:
            rules = [r for r in self._port.fetch_tag_rules(sorted(tags)) if r.tag in tags]
        tag_grants, tag_denies = split_rules(rules, self._priority_order)

        cache = PermissionCache(
            user_id=user_id,
            loaded_at=now,
            expires_at=now + self._ttl,
            permissions=frozenset(permissions),
            roles=tuple(g.role for g in grants),
            tags=tags,
            tag_grants=tag_grants,
            tag_denies=tag_denies,
            org_context=self._load_org_context(user_id, caps),
        )

        if not grants:
            logger.info("permission cache loaded with no active roles user=%s", user_id)
        logger.debug(
            "permission cache loaded user=%s roles=%s permissions=%s tags=%s grants=%s denies=%s",
            user_id,
            sorted(cache.role_codes),
            len(cache.permissions),
            sorted(tags),
            len(tag_grants),
            len(tag_denies),
        )
        return cache

    def _load_org_context(self, user_id: str, caps: PortCapabilities) -> OrgContext:
        assignments = self._port.fetch_org_assignments(user_id) if caps.org_assignments else []
        direct_reports: list[str] = []
        supervisors: list[str] = []
        if caps.supervisors:
            direct_reports = self._port.fetch_direct_reports(user_id)
            supervisors = self._port.fetch_supervisors(user_id)

        return OrgContext(
            user_id=user_id,
            department_ids=frozen_ids(a.department_id for a in assignments),
            lob_ids=frozen_ids(a.lob_id for a in assignments),
            division_ids=frozen_ids(a.division_id for a in assignments),
            location_ids=frozen_ids(a.location_id for a in assignments),
            direct_report_ids=frozen_ids(direct_reports),
            supervisor_ids=frozen_ids(supervisors),
        )


def _is_active(role: Role, now: float) -> bool:
    return role.expires_at is None or role.expires_at >= now
