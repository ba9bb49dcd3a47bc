from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from authz_engine.db.base import Base
from authz_engine.db.session import make_session_factory
from authz_engine.models import org as _org  # noqa: F401  (register core_* tables)
from authz_engine.models.rbac import RbacPermission, RbacRole

logger = logging.getLogger(__name__)

# code -> (name, hierarchy level, max sensitivity tier)
DEFAULT_ROLES: dict[str, tuple[str, int, str]] = {
    "super_admin": ("Super Admin", 1, "sensitive"),
    "admin": ("Admin", 2, "company"),
    "hr_manager": ("HR Manager", 3, "sensitive"),
    "payroll_admin": ("Payroll Admin", 3, "sensitive"),
    "manager": ("Manager", 4, "personal"),
    "employee": ("Employee", 5, "basic"),
}

DEFAULT_ROLE_PERMISSIONS: dict[str, list[str]] = {
    "super_admin": [
        "users.*.*.company",
        "compensation.*.company",
        "banking.*.company",
        "settings.manage",
        "rbac.manage",
        "audit.view",
        "audit.export",
        "reports.*",
    ],
    "admin": [
        "users.view.*.company",
        "users.edit.basic.company",
        "users.edit.personal.company",
        "users.create",
        "users.delete",
        "users.export",
        "settings.manage",
        "rbac.view",
        "rbac.assign_roles",
        "audit.view",
        "reports.view",
        "reports.create",
    ],
    "hr_manager": [
        "users.view.*.company",
        "users.edit.basic.company",
        "users.edit.personal.company",
        "users.edit.sensitive.company",
        "users.create",
        "users.export",
        "audit.view",
        "reports.view",
        "reports.create",
    ],
    "payroll_admin": [
        "users.view.basic.company",
        "users.view.sensitive.company",
        "compensation.view.company",
        "compensation.edit.company",
        "banking.view.company",
        "banking.edit.company",
        "audit.view",
        "reports.view",
        "reports.export",
    ],
    "manager": [
        "users.view.basic.company",
        "users.view.personal.direct_reports",
        "users.edit.basic.direct_reports",
        "compensation.view.direct_reports",
        "reports.view",
    ],
    "employee": [
        "users.view.basic.company",
        "users.view.personal.self",
        "users.view.sensitive.self",
        "users.edit.basic.self",
        "users.edit.personal.self",
        "compensation.view.self",
        "banking.view.self",
        "banking.edit.self",
    ],
}


def init_db(bind: Engine) -> None:
    """
    Create tables + seed the default roles and their permissions.

    Seeding only runs on an empty ``rbac_roles`` table, so tenant edits
    survive restarts.
    """

    Base.metadata.create_all(bind=bind)

    with make_session_factory(bind)() as db:
        if _has_seed_data(db):
            return
        seed_default_roles(db)
        db.commit()
        logger.info("seeded default roles count=%s", len(DEFAULT_ROLES))


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(RbacRole.id).limit(1)).first() is not None


def seed_default_roles(db: Session) -> dict[str, RbacRole]:
    permissions: dict[str, RbacPermission] = {}
    for codes in DEFAULT_ROLE_PERMISSIONS.values():
        for code in codes:
            if code not in permissions:
                permissions[code] = RbacPermission(code=code, name=code, category=code.split(".", 1)[0])
    db.add_all(permissions.values())
    db.flush()

    roles: dict[str, RbacRole] = {}
    for code, (name, level, tier) in DEFAULT_ROLES.items():
        role = RbacRole(code=code, name=name, hierarchy_level=level, sensitivity_access=tier, is_system=True)
        role.permissions.extend(permissions[c] for c in DEFAULT_ROLE_PERMISSIONS[code])
        roles[code] = role
    db.add_all(roles.values())
    db.flush()
    return roles
