"""
Pytest fixtures for the test suite.

Database tests use an in-memory SQLite engine and a connection-level
transaction that is rolled back after each test, so tests do not affect each
other. Engine tests build caches directly and need no database.
"""
from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from authz_engine.engine.context import OrgContext, PermissionCache, Role, TagRule
from authz_engine.engine.tag_rules import split_rules


TEST_DB_URL = "sqlite:///:memory:"


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from authz_engine.db.base import Base
    from authz_engine.models import org, rbac  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def connection(tables):
    connection = tables.connect()
    transaction = connection.begin()
    yield connection
    transaction.rollback()
    connection.close()


@pytest.fixture
def session_factory(connection):
    """Session factory bound to the test connection (what the data port receives)."""
    return sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
    )


@pytest.fixture
def db_session(session_factory):
    """
    Provide a Session bound to the test DB; rolled back after each test.

    Data flushed here is visible to other sessions on the same connection,
    including the ones the data port opens.
    """
    session = session_factory()
    yield session
    session.close()


# ---- Engine fixtures ----


@pytest.fixture
def make_cache():
    """Factory for PermissionCache snapshots built directly, without a loader."""

    def factory(
        user_id: str = "u-owner",
        permissions: tuple[str, ...] = (),
        roles: tuple[Role, ...] = (),
        tags: tuple[str, ...] = (),
        rules: tuple[TagRule, ...] = (),
        departments: tuple[str, ...] = (),
        lobs: tuple[str, ...] = (),
        divisions: tuple[str, ...] = (),
        direct_reports: tuple[str, ...] = (),
    ) -> PermissionCache:
        grants, denies = split_rules(rules)
        return PermissionCache(
            user_id=user_id,
            loaded_at=0.0,
            expires_at=300.0,
            permissions=frozenset(permissions),
            roles=roles,
            tags=frozenset(tags),
            tag_grants=grants,
            tag_denies=denies,
            org_context=OrgContext(
                user_id=user_id,
                department_ids=frozenset(departments),
                lob_ids=frozenset(lobs),
                division_ids=frozenset(divisions),
                direct_report_ids=frozenset(direct_reports),
            ),
        )

    return factory
