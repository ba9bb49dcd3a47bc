from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from authz_engine.db.init_db import init_db
from authz_engine.db.port import SqlAlchemyPermissionDataPort
from authz_engine.db.session import engine, make_session_factory
from authz_engine.engine.loader import PermissionCacheLoader
from authz_engine.engine.manager import PermissionCacheManager
from authz_engine.engine.store import InMemoryPermissionCacheStore
from authz_engine.logging_config import configure_app_logging
from authz_engine.routers import field_sensitivity, permissions
from authz_engine.security.config import build_registry
from authz_engine.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def build_permission_manager(port: SqlAlchemyPermissionDataPort, settings: Settings) -> PermissionCacheManager:
    loader = PermissionCacheLoader(
        port,
        ttl_seconds=settings.cache_ttl_seconds,
        priority_order=settings.tag_rule_order,
    )
    return PermissionCacheManager(loader, InMemoryPermissionCacheStore())


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        init_db(engine)
        logger.info("Database initialized (tables ensured + default roles seeded if needed)")

        port = SqlAlchemyPermissionDataPort(make_session_factory(engine))

        registry = build_registry(settings.resolved_field_sensitivity_path(), port.fetch_field_sensitivity())
        app.state.sensitivity_registry = registry
        logger.info("Loaded field sensitivity overrides count=%s", len(registry.overrides()))

        app.state.permission_manager = build_permission_manager(port, settings)

        yield
        # Shutdown
        app.state.permission_manager.invalidate_all()

    app = FastAPI(lifespan=lifespan)

    app.include_router(permissions.router)
    app.include_router(field_sensitivity.router)

    return app


app = create_app()
