from __future__ import annotations

import pytest

from authz_engine.db.port import SqlAlchemyPermissionDataPort
from authz_engine.main import build_permission_manager, create_app
from authz_engine.settings import Settings


def test_manager_uses_settings(session_factory):
    port = SqlAlchemyPermissionDataPort(session_factory)
    manager = build_permission_manager(port, Settings(cache_ttl_seconds=10, tag_rule_order="ascending"))
    cache = manager.get_or_load("nobody")
    assert cache.expires_at - cache.loaded_at == pytest.approx(10)
    assert manager.loader.ttl_seconds == 10


def test_app_routes_registered():
    paths = create_app().openapi()["paths"]
    assert "/user/permissions" in paths
    assert "/field-sensitivity/{table_name}" in paths
