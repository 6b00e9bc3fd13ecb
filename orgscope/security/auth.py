from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from orgscope.contracts import Principal
from orgscope.errors import Unauthenticated
from orgscope.repository import OrgRepository
from orgscope.security.config import SecurityConfig

logger = logging.getLogger(__name__)


def current_principal_id(request: Request, config: SecurityConfig) -> str | None:
    """
    Development identity adapter: the bearer token *is* the principal id.

    - Input: ``Authorization: Bearer <principal id>``
    - Returns None when the header is absent; a malformed header is a 400.
    - A production deployment swaps this for token validation against the
      identity provider; nothing downstream changes.
    """

    header_name = config.auth.authorization_header
    bearer_prefix = config.auth.bearer_prefix

    raw = request.headers.get(header_name)
    if not raw:
        logger.info("Missing Authorization header (auth required) path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{bearer_prefix} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Expected '{bearer_prefix} <token>'.",
        )

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Missing token after '{bearer_prefix}'.",
        )

    return token


def load_principal(repository: OrgRepository, principal_id: str) -> Principal:
    principal = repository.get_principal(principal_id)
    if principal is None or not principal.is_active:
        logger.info("Unknown or inactive principal=%s", principal_id)
        raise Unauthenticated("invalid or inactive principal")
    return principal
