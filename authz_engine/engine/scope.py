"""
Scope validation: does a claimed scope cover the target of a check?

Broader scopes include the self and direct-report relationships, so a
department grant is never blocked because the target also happens to be a
direct report. Missing target fields fail their membership test.
"""

from __future__ import annotations

from .context import OrgContext, PermissionCheckContext, PermissionCache
from .levels import Scope


def _is_self(org: OrgContext, ctx: PermissionCheckContext) -> bool:
    return ctx.target_user_id is not None and ctx.target_user_id == org.user_id


def _is_direct_report(org: OrgContext, ctx: PermissionCheckContext) -> bool:
    return ctx.target_user_id is not None and ctx.target_user_id in org.direct_report_ids


def _in(value: str | None, members: frozenset[str]) -> bool:
    return value is not None and value in members


def validate_scope(cache: PermissionCache, scope: Scope, context: PermissionCheckContext) -> bool:
    org = cache.org_context

    if scope == Scope.COMPANY:
        return True

    if scope == Scope.SELF:
        return _is_self(org, context)

    if _is_self(org, context) or _is_direct_report(org, context):
        return True

    if scope == Scope.DIRECT_REPORTS:
        return False

    if scope == Scope.DEPARTMENT:
        return _in(context.target_department_id, org.department_ids)

    if scope == Scope.LOB:
        if context.target_lob_id is not None:
            return _in(context.target_lob_id, org.lob_ids)
        return _in(context.target_department_id, org.department_ids)

    if scope == Scope.DIVISION:
        if context.target_division_id is not None:
            return _in(context.target_division_id, org.division_ids)
        if context.target_lob_id is not None:
            return _in(context.target_lob_id, org.lob_ids)
        return _in(context.target_department_id, org.department_ids)

    return False
