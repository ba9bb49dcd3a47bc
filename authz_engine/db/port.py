"""
SQLAlchemy implementation of ``PermissionDataPort``.

Read-only. Each fetch opens a short-lived session from the injected factory,
so the port is safe to share between threads. Optional relations are
detected once in the constructor with ``inspect().has_table``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable, Iterable

from sqlalchemy import inspect, or_, select
from sqlalchemy.orm import Session, sessionmaker

from authz_engine.engine.context import Role, TagRule
from authz_engine.engine.levels import DataLevel, coerce_data_level
from authz_engine.engine.loader import OrgAssignment, PortCapabilities, RoleGrant
from authz_engine.engine.sensitivity import FieldSensitivityConfig
from authz_engine.models.org import CoreUser, UserAssignment, UserSupervisor
from authz_engine.models.rbac import (
    RbacFieldSensitivity,
    RbacPermission,
    RbacRole,
    RbacTagPermission,
    RbacUserRole,
    RbacUserTag,
)

logger = logging.getLogger(__name__)


def detect_capabilities(session_factory: sessionmaker[Session]) -> PortCapabilities:
    with session_factory() as db:
        insp = inspect(db.connection())
        caps = PortCapabilities(
            tags=insp.has_table(RbacUserTag.__tablename__),
            tag_rules=insp.has_table(RbacTagPermission.__tablename__),
            org_assignments=insp.has_table(UserAssignment.__tablename__),
            supervisors=insp.has_table(UserSupervisor.__tablename__),
            field_sensitivity=insp.has_table(RbacFieldSensitivity.__tablename__),
        )
    missing = [name for name, present in vars(caps).items() if not present]
    if missing:
        logger.info("permission data port running without optional relations: %s", ", ".join(missing))
    return caps


def _timestamp(value: datetime | None) -> float | None:
    if value is None:
        return None
    # naive datetimes are stored as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


class SqlAlchemyPermissionDataPort:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        capabilities: PortCapabilities | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._session_factory = session_factory
        self._capabilities = capabilities if capabilities is not None else detect_capabilities(session_factory)
        self._today = today

    @property
    def capabilities(self) -> PortCapabilities:
        return self._capabilities

    def fetch_role_grants(self, user_id: str) -> list[RoleGrant]:
        stmt = (
            select(RbacUserRole, RbacRole)
            .join(RbacRole, RbacRole.id == RbacUserRole.role_id)
            .join(CoreUser, CoreUser.id == RbacUserRole.user_id)
            .where(RbacUserRole.user_id == user_id, RbacRole.is_active.is_(True), CoreUser.is_active.is_(True))
            .order_by(RbacRole.hierarchy_level, RbacRole.code)
        )
        with self._session_factory() as db:
            rows = db.execute(stmt).all()
            role_ids = {role.id for _assignment, role in rows}
            codes_by_role: dict[str, set[str]] = {role_id: set() for role_id in role_ids}
            if role_ids:
                perm_stmt = (
                    select(RbacRole.id, RbacPermission.code)
                    .select_from(RbacRole)
                    .join(RbacRole.permissions)
                    .where(RbacRole.id.in_(role_ids))
                )
                for role_id, code in db.execute(perm_stmt):
                    codes_by_role[role_id].add(code)

            return [
                RoleGrant(
                    role=Role(
                        code=role.code,
                        name=role.name,
                        scope_type=assignment.scope_type,
                        scope_id=assignment.scope_id,
                        hierarchy_level=role.hierarchy_level,
                        sensitivity_access=coerce_data_level(role.sensitivity_access, DataLevel.BASIC),
                        expires_at=_timestamp(assignment.expires_at),
                    ),
                    permissions=frozenset(codes_by_role[role.id]),
                )
                for assignment, role in rows
            ]

    def fetch_user_tags(self, user_id: str) -> list[str]:
        stmt = select(RbacUserTag.tag).where(RbacUserTag.user_id == user_id).order_by(RbacUserTag.tag)
        with self._session_factory() as db:
            return list(db.scalars(stmt).all())

    def fetch_tag_rules(self, tags: Iterable[str]) -> list[TagRule]:
        tags = list(tags)
        if not tags:
            return []
        stmt = (
            select(RbacTagPermission, RbacPermission.code)
            .join(RbacPermission, RbacPermission.id == RbacTagPermission.permission_id)
            .where(RbacTagPermission.tag.in_(tags))
        )
        with self._session_factory() as db:
            return [
                TagRule(
                    tag=rule.tag,
                    permission_code=code,
                    effect="deny" if rule.effect == "deny" else "grant",
                    target_tags=rule.target_tags,
                    priority=rule.priority,
                )
                for rule, code in db.execute(stmt)
            ]

    def fetch_org_assignments(self, user_id: str) -> list[OrgAssignment]:
        stmt = select(UserAssignment).where(
            UserAssignment.user_id == user_id,
            or_(UserAssignment.end_date.is_(None), UserAssignment.end_date >= self._today()),
        )
        with self._session_factory() as db:
            return [
                OrgAssignment(
                    department_id=a.department_id,
                    lob_id=a.lob_id,
                    division_id=a.division_id,
                    location_id=a.location_id,
                )
                for a in db.scalars(stmt)
            ]

    def fetch_direct_reports(self, user_id: str) -> list[str]:
        stmt = select(UserSupervisor.user_id).where(
            UserSupervisor.supervisor_id == user_id,
            or_(UserSupervisor.end_date.is_(None), UserSupervisor.end_date >= self._today()),
        )
        with self._session_factory() as db:
            return list(db.scalars(stmt).all())

    def fetch_supervisors(self, user_id: str) -> list[str]:
        stmt = select(UserSupervisor.supervisor_id).where(
            UserSupervisor.user_id == user_id,
            or_(UserSupervisor.end_date.is_(None), UserSupervisor.end_date >= self._today()),
        )
        with self._session_factory() as db:
            return list(db.scalars(stmt).all())

    def fetch_field_sensitivity(self, table_name: str | None = None) -> list[FieldSensitivityConfig]:
        if not self._capabilities.field_sensitivity:
            return []
        stmt = select(RbacFieldSensitivity).order_by(RbacFieldSensitivity.table_name, RbacFieldSensitivity.display_order)
        if table_name is not None:
            stmt = stmt.where(RbacFieldSensitivity.table_name == table_name)
        with self._session_factory() as db:
            return [
                FieldSensitivityConfig(
                    table_name=row.table_name,
                    field_name=row.field_name,
                    sensitivity=row.sensitivity,
                    masking_type=row.masking_type or "full",
                    min_sensitivity=row.min_sensitivity,
                    display_order=row.display_order,
                    display_name=row.display_name,
                    description=row.description,
                    is_system=row.is_system,
                )
                for row in db.scalars(stmt)
            ]
