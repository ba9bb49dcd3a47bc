"""
Permission resolution against hand-built caches. No database involved.
"""
from __future__ import annotations

import pytest

from authz_engine.engine.context import PermissionCheckContext, Role, TagRule
from authz_engine.engine.grammar import PermissionCodeError
from authz_engine.engine.levels import DataLevel, Scope
from authz_engine.engine.resolver import (
    REASON_NO_MATCH,
    REASON_NO_TARGET,
    REASON_OUT_OF_SCOPE,
    can_access_data_level,
    can_all,
    can_any,
    check_permission,
    get_max_data_level,
    has_role,
    is_admin,
    is_self_access,
    missing_permissions,
)


# ---- Concrete scenarios ----


def test_department_grant_allows_same_department_target(make_cache):
    cache = make_cache(permissions=("users.view.personal.department",), departments=("D",))
    result = check_permission(cache, "users.view.personal", PermissionCheckContext(target_department_id="D"))
    assert result.allowed
    assert result.effective_scope == Scope.DEPARTMENT
    assert result.effective_data_level == DataLevel.PERSONAL
    assert result.matched_permission == "users.view.personal.department"


def test_department_grant_denies_other_department(make_cache):
    cache = make_cache(permissions=("users.view.personal.department",), departments=("D",))
    result = check_permission(cache, "users.view.personal", PermissionCheckContext(target_department_id="OTHER"))
    assert not result.allowed
    assert result.reason == REASON_OUT_OF_SCOPE


def test_contractor_deny_beats_role_grant(make_cache):
    cache = make_cache(
        permissions=("users.edit.sensitive", "users.edit.sensitive.company"),
        tags=("contractor",),
        rules=(TagRule("contractor", "users.edit.sensitive", "deny"),),
    )
    result = check_permission(cache, "users.edit.sensitive")
    assert not result.allowed
    assert result.reason == "Denied by tag rule: contractor"
    assert not check_permission(cache, "users.edit.sensitive.company").allowed


# ---- Properties ----


@pytest.mark.parametrize("target", ["u-owner", "stranger", "report", None])
def test_company_scope_allows_any_target(make_cache, target):
    cache = make_cache(permissions=("users.view.company",))
    ctx = PermissionCheckContext(target_user_id=target, target_department_id="anywhere")
    assert check_permission(cache, "users.view", ctx).allowed
    assert check_permission(cache, "users.view.company", ctx).allowed


@pytest.mark.parametrize("user_id", ["alice", "bob"])
def test_self_scope_always_allows_own_record(make_cache, user_id):
    cache = make_cache(user_id=user_id, permissions=("users.view.sensitive.self",))
    result = check_permission(cache, "users.view.sensitive", PermissionCheckContext(target_user_id=user_id))
    assert result.allowed
    assert result.effective_scope == Scope.SELF


def test_deny_precedence_over_tag_grant(make_cache):
    cache = make_cache(
        tags=("contractor", "auditor"),
        rules=(
            TagRule("auditor", "audit.export", "grant", priority=100),
            TagRule("contractor", "audit.export", "deny", priority=0),
        ),
    )
    assert not check_permission(cache, "audit.export").allowed


def test_max_level_consistent_with_can_access(make_cache):
    cache = make_cache(permissions=("users.view.personal.company",))
    level = get_max_data_level(cache, "users", "view")
    assert level == DataLevel.PERSONAL
    assert can_access_data_level(cache, "users", "view", level)
    assert not can_access_data_level(cache, "users", "view", DataLevel.COMPANY)


def test_max_level_none_when_basic_denied(make_cache):
    cache = make_cache(permissions=("reports.view",))
    assert get_max_data_level(cache, "users", "view") is None


# ---- Resolution details ----


def test_empty_cache_denies(make_cache):
    result = check_permission(make_cache(), "users.view")
    assert not result.allowed
    assert result.reason == REASON_NO_MATCH


def test_more_restricted_grant_satisfies_lower_request(make_cache):
    cache = make_cache(permissions=("users.view.sensitive",))
    result = check_permission(cache, "users.view.basic")
    assert result.allowed
    assert result.matched_permission == "users.view.sensitive"


def test_bare_grant_satisfies_qualified_request(make_cache):
    cache = make_cache(permissions=("settings.manage",))
    assert check_permission(cache, "settings.manage.company").allowed


def test_scoped_grant_without_target_is_denied_with_reason(make_cache):
    cache = make_cache(permissions=("users.view.basic.department",), departments=("D",))
    result = check_permission(cache, "users.view.basic")
    assert not result.allowed
    assert result.reason == REASON_NO_TARGET


def test_wildcard_grant(make_cache):
    cache = make_cache(permissions=("users.view.*.company",))
    result = check_permission(cache, "users.view.sensitive")
    assert result.allowed
    assert result.matched_permission == "users.view.*.company"
    assert result.effective_scope == Scope.COMPANY


def test_super_admin_wildcards(make_cache):
    cache = make_cache(permissions=("users.*.*.company", "reports.*"))
    assert check_permission(cache, "users.edit.sensitive.department", PermissionCheckContext(target_user_id="x")).allowed
    assert check_permission(cache, "reports.export").allowed


def test_narrow_scope_preferred_over_company(make_cache):
    cache = make_cache(
        user_id="me",
        permissions=("users.edit.basic.self", "users.edit.basic.company"),
    )
    result = check_permission(cache, "users.edit.basic", PermissionCheckContext(target_user_id="me"))
    assert result.effective_scope == Scope.SELF


def test_out_of_scope_candidate_falls_through_to_broader_grant(make_cache):
    cache = make_cache(
        permissions=("users.view.personal.department", "users.view.personal.division"),
        departments=("D1",),
        divisions=("V1",),
    )
    ctx = PermissionCheckContext(target_department_id="D2", target_division_id="V1")
    result = check_permission(cache, "users.view.personal", ctx)
    assert result.allowed
    assert result.effective_scope == Scope.DIVISION


def test_tag_grant_applies_when_roles_find_nothing(make_cache):
    cache = make_cache(tags=("auditor",), rules=(TagRule("auditor", "audit.*", "grant"),))
    result = check_permission(cache, "audit.view")
    assert result.allowed
    assert result.reason == "Granted by tag rule: auditor"
    assert result.matched_permission == "audit.*"


def test_role_grant_wins_before_tag_grant(make_cache):
    cache = make_cache(
        permissions=("audit.view",),
        tags=("auditor",),
        rules=(TagRule("auditor", "audit.view", "grant"),),
    )
    result = check_permission(cache, "audit.view")
    assert result.allowed
    assert result.reason is None


def test_targeted_deny_only_for_tagged_subjects(make_cache):
    cache = make_cache(
        permissions=("users.view.sensitive.company",),
        tags=("contractor",),
        rules=(TagRule("contractor", "users.view.sensitive", "deny", target_tags=frozenset({"executive"})),),
    )
    assert check_permission(cache, "users.view.sensitive", PermissionCheckContext(target_tags={"staff"})).allowed
    assert not check_permission(cache, "users.view.sensitive", PermissionCheckContext(target_tags={"executive"})).allowed


def test_malformed_code_raises(make_cache):
    with pytest.raises(PermissionCodeError):
        check_permission(make_cache(permissions=("users.view",)), "users")


def test_resolution_is_deterministic(make_cache):
    cache = make_cache(permissions=("users.view.personal.department", "users.view.basic.company"), departments=("D",))
    ctx = PermissionCheckContext(target_department_id="D")
    first = check_permission(cache, "users.view", ctx)
    assert all(check_permission(cache, "users.view", ctx) == first for _ in range(5))


def test_batch_helpers(make_cache):
    cache = make_cache(permissions=("users.view", "reports.view"))
    assert can_all(cache, ["users.view", "reports.view"])
    assert not can_all(cache, ["users.view", "reports.export"])
    assert can_any(cache, ["reports.export", "reports.view"])
    assert missing_permissions(cache, ["users.view", "reports.export"]) == ["reports.export"]


def test_roles_and_admin(make_cache):
    hr = make_cache(roles=(Role("hr_manager", "HR Manager", hierarchy_level=3),))
    admin = make_cache(roles=(Role("admin", "Admin", hierarchy_level=2, sensitivity_access="company"),))
    assert has_role(hr, "hr_manager")
    assert not is_admin(hr)
    assert is_admin(admin)
    assert admin.roles[0].sensitivity_access == DataLevel.COMPANY


def test_self_access(make_cache):
    cache = make_cache(user_id="me")
    assert is_self_access(cache, "me")
    assert not is_self_access(cache, "you")
    assert not is_self_access(cache, None)
