from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from authz_engine.db.base import Base, new_id


class CoreUser(Base):
    __tablename__ = "core_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class UserAssignment(Base):
    """Org placement of a user; a user may hold several (one primary)."""

    __tablename__ = "core_user_assignments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("core_users.id", ondelete="CASCADE"), nullable=False, index=True)

    department_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    lob_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    division_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    location_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class UserSupervisor(Base):
    """``user_id`` reports to ``supervisor_id`` until ``end_date`` (open-ended when null)."""

    __tablename__ = "core_user_supervisors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("core_users.id", ondelete="CASCADE"), nullable=False, index=True)
    supervisor_id: Mapped[str] = mapped_column(
        ForeignKey("core_users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
