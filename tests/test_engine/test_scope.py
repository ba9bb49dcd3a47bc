from __future__ import annotations

import pytest

from authz_engine.engine.context import PermissionCheckContext
from authz_engine.engine.levels import Scope
from authz_engine.engine.scope import validate_scope


@pytest.fixture
def manager(make_cache):
    return make_cache(
        user_id="mgr",
        departments=("d-eng",),
        lobs=("lob-tech",),
        divisions=("div-na",),
        direct_reports=("report-1",),
    )


def test_company_is_unconditional(manager):
    assert validate_scope(manager, Scope.COMPANY, PermissionCheckContext())
    assert validate_scope(manager, Scope.COMPANY, PermissionCheckContext(target_user_id="anyone"))


def test_self_requires_same_user(manager):
    assert validate_scope(manager, Scope.SELF, PermissionCheckContext(target_user_id="mgr"))
    assert not validate_scope(manager, Scope.SELF, PermissionCheckContext(target_user_id="report-1"))
    assert not validate_scope(manager, Scope.SELF, PermissionCheckContext())


def test_direct_reports_includes_self(manager):
    assert validate_scope(manager, Scope.DIRECT_REPORTS, PermissionCheckContext(target_user_id="report-1"))
    assert validate_scope(manager, Scope.DIRECT_REPORTS, PermissionCheckContext(target_user_id="mgr"))
    assert not validate_scope(
        manager, Scope.DIRECT_REPORTS, PermissionCheckContext(target_user_id="peer", target_department_id="d-eng")
    )


def test_department_membership(manager):
    assert validate_scope(manager, Scope.DEPARTMENT, PermissionCheckContext(target_department_id="d-eng"))
    assert not validate_scope(manager, Scope.DEPARTMENT, PermissionCheckContext(target_department_id="d-fin"))


def test_broader_scopes_subsume_direct_reports(manager):
    ctx = PermissionCheckContext(target_user_id="report-1", target_department_id="d-elsewhere")
    for scope in (Scope.DEPARTMENT, Scope.LOB, Scope.DIVISION):
        assert validate_scope(manager, scope, ctx)


def test_lob_falls_back_to_department(manager):
    assert validate_scope(manager, Scope.LOB, PermissionCheckContext(target_lob_id="lob-tech"))
    assert not validate_scope(manager, Scope.LOB, PermissionCheckContext(target_lob_id="lob-other"))
    assert validate_scope(manager, Scope.LOB, PermissionCheckContext(target_department_id="d-eng"))


def test_division_falls_back_to_lob_then_department(manager):
    assert validate_scope(manager, Scope.DIVISION, PermissionCheckContext(target_division_id="div-na"))
    assert not validate_scope(manager, Scope.DIVISION, PermissionCheckContext(target_division_id="div-eu"))
    assert validate_scope(manager, Scope.DIVISION, PermissionCheckContext(target_lob_id="lob-tech"))
    assert validate_scope(manager, Scope.DIVISION, PermissionCheckContext(target_department_id="d-eng"))
    assert not validate_scope(manager, Scope.DIVISION, PermissionCheckContext())
