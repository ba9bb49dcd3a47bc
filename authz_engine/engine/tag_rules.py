"""
Tag-based grant/deny overrides layered on top of role permissions.

Denies are consulted before role resolution and short-circuit the check.
Grants are consulted only when role resolution found nothing.

Rules are evaluated in priority order. The default order is descending
(highest priority first); ``ascending`` keeps the lowest-first order for
deployments that depend on it.
"""

from __future__ import annotations

import logging
from typing import Iterable, Literal

from .context import PermissionCheckContext, TagRule
from .grammar import covers_permission, matches_permission

logger = logging.getLogger(__name__)

PriorityOrder = Literal["descending", "ascending"]


def sort_rules(rules: Iterable[TagRule], order: PriorityOrder = "descending") -> tuple[TagRule, ...]:
    """Stable sort by priority; ties keep their input order."""
    if order not in ("descending", "ascending"):
        raise ValueError(f"unknown tag rule priority order: {order!r}")
    return tuple(sorted(rules, key=lambda r: r.priority, reverse=order == "descending"))


def split_rules(rules: Iterable[TagRule], order: PriorityOrder = "descending") -> tuple[tuple[TagRule, ...], tuple[TagRule, ...]]:
    """Split rules into (grants, denies), each sorted by priority."""
    grants: list[TagRule] = []
    denies: list[TagRule] = []
    for rule in rules:
        if rule.effect == "deny":
            denies.append(rule)
        else:
            grants.append(rule)
    return sort_rules(grants, order), sort_rules(denies, order)


def _targets_match(rule: TagRule, context: PermissionCheckContext | None) -> bool:
    if rule.target_tags is None:
        return True
    if context is None or not context.target_tags:
        return False
    return bool(rule.target_tags & context.target_tags)


def find_deny(
    denies: Iterable[TagRule],
    permission: str,
    context: PermissionCheckContext | None,
) -> TagRule | None:
    """
    First deny rule that applies to ``permission``.

    A deny on a less qualified code also applies to its qualified forms, so
    ``users.edit.sensitive`` denies ``users.edit.sensitive.company`` too.
    """

    for rule in denies:
        if covers_permission(rule.permission_code, permission) and _targets_match(rule, context):
            logger.debug("tag deny matched tag=%s rule=%s permission=%s", rule.tag, rule.permission_code, permission)
            return rule
    return None


def find_grant(
    grants: Iterable[TagRule],
    permission: str,
    context: PermissionCheckContext | None,
) -> TagRule | None:
    for rule in grants:
        if matches_permission(rule.permission_code, permission) and _targets_match(rule, context):
            logger.debug("tag grant matched tag=%s rule=%s permission=%s", rule.tag, rule.permission_code, permission)
            return rule
    return None
