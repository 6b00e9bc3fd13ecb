from __future__ import annotations

from collections.abc import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from orgscope.settings import get_settings


def make_engine(url: str) -> Engine:
    return create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
    )


def make_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False, class_=Session)


_settings = get_settings()

engine = make_engine(_settings.resolved_db_url())

SessionLocal = make_session_factory(engine)


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Request-scoped session.

    When the security dependency resolved a scope for this request, it is
    stored in ``Session.info["authz"]`` and ``orgscope.db.filters`` narrows
    every ORM SELECT to in-scope rows. Handlers query normally.
    """

    factory = getattr(request.app.state, "session_factory", None) or SessionLocal
    db = factory()
    try:
        authz = getattr(getattr(request, "state", None), "authz", None)
        if authz is not None:
            db.info["authz"] = authz
        yield db
    finally:
        db.close()
