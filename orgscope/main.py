from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from orgscope.db import filters as _filters  # noqa: F401  (register SQLAlchemy filters)
from orgscope.db.init_db import init_db
from orgscope.db.session import make_session_factory
from orgscope.errors import AccessDenied, Conflict, NotFound, Unauthenticated, ValidationFailure
from orgscope.logging_config import configure_app_logging
from orgscope.repository import SqlRepository
from orgscope.routers import (
    attendance,
    graduate_groups,
    health,
    me,
    members,
    notifications,
    properties,
    regions,
    reports,
    small_groups,
    universities,
    user_roles,
)
from orgscope.scope.resolver import ScopeResolver
from orgscope.security.config import ensure_provider_allowed, load_security_config
from orgscope.security.dependencies import enforce_security
from orgscope.services.cascade import NotificationCascade
from orgscope.services.dispatcher import CascadeDispatcher
from orgscope.settings import get_settings

logger = logging.getLogger(__name__)


def create_app(engine: Engine | None = None, seed: bool | None = None) -> FastAPI:
    """
    Build the app.

    ``engine`` defaults to the one configured by ``ORGSCOPE_DB_URL``; tests
    pass their own. Tables are created on startup and demo data is seeded
    unless ``seed`` (or ``ORGSCOPE_SEED_DEMO_DATA``) says otherwise.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        app.state.security_config = load_security_config(settings.resolved_security_config_path())
        logger.info("Loaded security config: %s", settings.resolved_security_config_path())
        ensure_provider_allowed(app.state.security_config.auth, settings.environment)

        if engine is None:
            from orgscope.db.session import engine as bind
        else:
            bind = engine
        init_db(bind, seed=settings.seed_demo_data if seed is None else seed)
        logger.info("Database initialized (tables ensured + seed if needed)")

        session_factory = make_session_factory(bind)
        repository = SqlRepository(session_factory)
        cascade = NotificationCascade(
            repository,
            max_workers=settings.cascade_workers,
            fanout_timeout_seconds=settings.fanout_timeout_seconds,
            max_attempts=settings.cascade_max_attempts,
            retry_base_delay=settings.cascade_retry_base_delay,
            retry_max_delay=settings.cascade_retry_max_delay,
        )
        app.state.session_factory = session_factory
        app.state.repository = repository
        app.state.resolver = ScopeResolver(repository)
        app.state.dispatcher = CascadeDispatcher(cascade, max_workers=settings.dispatcher_workers)

        yield

        logger.info("Waiting for queued notification work")
        app.state.dispatcher.shutdown(wait=True)

    # Global dependency: every route is scoped with zero changes to handlers.
    app = FastAPI(title="orgscope", dependencies=[Depends(enforce_security)], lifespan=lifespan)
    _register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(me.router)
    app.include_router(regions.router)
    app.include_router(universities.router)
    app.include_router(small_groups.router)
    app.include_router(graduate_groups.router)
    app.include_router(properties.router)
    app.include_router(members.router)
    app.include_router(user_roles.router)
    app.include_router(reports.router)
    app.include_router(attendance.router)
    app.include_router(notifications.router)

    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(Unauthenticated)
    async def _unauthenticated(request: Request, exc: Unauthenticated) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": "Authentication required"})

    @app.exception_handler(AccessDenied)
    async def _access_denied(request: Request, exc: AccessDenied) -> JSONResponse:
        # The reason stays in the logs; responses never explain a denial.
        logger.info("Access denied path=%s method=%s reason=%s", request.url.path, request.method, exc)
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "Access denied"})

    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(ValidationFailure)
    async def _validation_failure(request: Request, exc: ValidationFailure) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.exception_handler(Conflict)
    async def _conflict(request: Request, exc: Conflict) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


app = create_app()
