"""
Permission resolver.

Answers "is action X permitted against target Y" from a ``PermissionCache``
snapshot. Everything here is a pure function of (cache, code, context): no
I/O and no mutation.

Algorithm for ``check_permission``:
1. Parse the requested code (malformed codes raise ``PermissionCodeError``).
2. A matching tag deny denies immediately.
3. Role permissions: walk the candidate permutations, most specific first;
   each candidate is tried exactly and then against wildcard grants. A scoped
   candidate is accepted only if its scope covers the target.
4. If roles found nothing, a matching tag grant allows.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Iterable

from .context import EMPTY_CONTEXT, PermissionCache, PermissionCheckContext, PermissionCheckResult
from .grammar import ParsedPermission, WildcardSet, build_permission, build_permutations, parse_permission
from .levels import DATA_LEVEL_ORDER, DataLevel
from .scope import validate_scope
from .tag_rules import find_deny, find_grant

logger = logging.getLogger(__name__)

ADMIN_HIERARCHY_LEVEL = 2

REASON_NO_MATCH = "No matching permission found"
REASON_NO_TARGET = "Permission scope requires a target but none was supplied"
REASON_OUT_OF_SCOPE = "Permission scope does not cover the target"


@lru_cache(maxsize=1024)
def _wildcards_for(permissions: frozenset[str]) -> WildcardSet:
    return WildcardSet(permissions)


def _as_parsed(permission: str | ParsedPermission) -> ParsedPermission:
    if isinstance(permission, ParsedPermission):
        return permission
    return parse_permission(permission)


def _check_role_permission(
    cache: PermissionCache,
    parsed: ParsedPermission,
    context: PermissionCheckContext,
) -> PermissionCheckResult:
    wildcards = _wildcards_for(cache.permissions)
    scope_rejected = False

    for candidate in build_permutations(parsed):
        matched = candidate.code if candidate.code in cache.permissions else None
        if matched is None and wildcards:
            matched = wildcards.match(candidate.code)
        if matched is None:
            continue

        if candidate.scope is not None and not validate_scope(cache, candidate.scope, context):
            scope_rejected = True
            continue

        return PermissionCheckResult(
            allowed=True,
            matched_permission=matched,
            effective_scope=candidate.scope,
            effective_data_level=candidate.data_level,
        )

    if scope_rejected:
        reason = REASON_OUT_OF_SCOPE if context.has_target else REASON_NO_TARGET
    else:
        reason = REASON_NO_MATCH
    return PermissionCheckResult(allowed=False, reason=reason)


def check_permission(
    cache: PermissionCache,
    permission: str | ParsedPermission,
    context: PermissionCheckContext | None = None,
) -> PermissionCheckResult:
    parsed = _as_parsed(permission)
    code = parsed.code
    ctx = context or EMPTY_CONTEXT

    deny = find_deny(cache.tag_denies, code, ctx)
    if deny is not None:
        return PermissionCheckResult(allowed=False, reason=f"Denied by tag rule: {deny.tag}")

    result = _check_role_permission(cache, parsed, ctx)
    if result.allowed:
        logger.debug(
            "permission allowed user=%s permission=%s matched=%s scope=%s",
            cache.user_id,
            code,
            result.matched_permission,
            result.effective_scope,
        )
        return result

    grant = find_grant(cache.tag_grants, code, ctx)
    if grant is not None:
        return PermissionCheckResult(
            allowed=True,
            reason=f"Granted by tag rule: {grant.tag}",
            matched_permission=grant.permission_code,
            effective_scope=parsed.scope,
            effective_data_level=parsed.data_level,
        )

    logger.debug("permission denied user=%s permission=%s reason=%s", cache.user_id, code, result.reason)
    return result


def can_access_data_level(
    cache: PermissionCache,
    resource: str,
    action: str,
    data_level: DataLevel | str,
    context: PermissionCheckContext | None = None,
) -> bool:
    return check_permission(cache, build_permission(resource, action, data_level), context).allowed


def get_max_data_level(
    cache: PermissionCache,
    resource: str,
    action: str,
    context: PermissionCheckContext | None = None,
) -> DataLevel | None:
    """Highest data level the user may access, probing from ``sensitive`` down; None if not even ``basic``."""
    for level in reversed(DATA_LEVEL_ORDER):
        if can_access_data_level(cache, resource, action, level, context):
            return level
    return None


def can_all(
    cache: PermissionCache,
    permissions: Iterable[str],
    context: PermissionCheckContext | None = None,
) -> bool:
    return all(check_permission(cache, p, context).allowed for p in permissions)


def can_any(
    cache: PermissionCache,
    permissions: Iterable[str],
    context: PermissionCheckContext | None = None,
) -> bool:
    return any(check_permission(cache, p, context).allowed for p in permissions)


def missing_permissions(
    cache: PermissionCache,
    permissions: Iterable[str],
    context: PermissionCheckContext | None = None,
) -> list[str]:
    return [p for p in permissions if not check_permission(cache, p, context).allowed]


def has_role(cache: PermissionCache, role_code: str) -> bool:
    return role_code in cache.role_codes


def is_admin(cache: PermissionCache) -> bool:
    """Admin means any role at hierarchy level 2 or above (1 = super admin)."""
    return any(role.hierarchy_level <= ADMIN_HIERARCHY_LEVEL for role in cache.roles)


def is_self_access(cache: PermissionCache, target_user_id: str | None) -> bool:
    return target_user_id is not None and cache.org_context.user_id == target_user_id
