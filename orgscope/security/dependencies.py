from __future__ import annotations

import logging

from fastapi import Depends, Request

from orgscope.errors import Unauthenticated
from orgscope.repository import OrgRepository
from orgscope.scope.predicates import ensure_entity_access
from orgscope.scope.resolver import ScopeResolver
from orgscope.security.auth import current_principal_id, load_principal
from orgscope.security.config import SecurityConfig
from orgscope.security.context import AuthzContext
from orgscope.services.dispatcher import CascadeDispatcher

logger = logging.getLogger(__name__)


def _app_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"app.state.{name} not set. Did app startup run?")
    return value


def get_security_config(request: Request) -> SecurityConfig:
    return _app_state(request, "security_config")


def get_repository(request: Request) -> OrgRepository:
    return _app_state(request, "repository")


def get_resolver(request: Request) -> ScopeResolver:
    return _app_state(request, "resolver")


def get_dispatcher(request: Request) -> CascadeDispatcher:
    return _app_state(request, "dispatcher")


def get_authz(request: Request) -> AuthzContext:
    authz = getattr(request.state, "authz", None)
    if authz is None:
        raise Unauthenticated("no authorization context on request")
    return authz


def enforce_security(
    request: Request,
    config: SecurityConfig = Depends(get_security_config),
    repository: OrgRepository = Depends(get_repository),
    resolver: ScopeResolver = Depends(get_resolver),
) -> None:
    """
    Global security dependency, driven by the YAML route rules.

    Resolves the caller's scope once per request and attaches it to
    ``request.state.authz``; the request session picks it up from there.
    Routes bound to an entity the scope can never see are refused here,
    before any query runs.
    """

    rule = config.match(request.url.path, request.method)
    if not rule.auth_required:
        return

    principal_id = current_principal_id(request, config)
    if principal_id is None:
        raise Unauthenticated("missing principal")

    principal = load_principal(repository, principal_id)
    scope = resolver.resolve(principal.id)

    if rule.entity is not None:
        ensure_entity_access(scope, rule.entity)

    logger.debug(
        "Authorized principal=%s scope=%s path=%s method=%s",
        principal.id,
        scope.tag.value,
        request.url.path,
        request.method,
    )
    request.state.authz = AuthzContext(principal=principal, scope=scope, entity=rule.entity)
