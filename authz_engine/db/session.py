from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from authz_engine.settings import get_settings


def make_engine(db_url: str) -> Engine:
    return create_engine(
        db_url,
        connect_args={"check_same_thread": False} if db_url.startswith("sqlite") else {},
    )


def make_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, class_=Session)


_settings = get_settings()

engine = make_engine(_settings.resolved_db_url())
