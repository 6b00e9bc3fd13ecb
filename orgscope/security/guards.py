from __future__ import annotations

from orgscope.contracts import OrgIds
from orgscope.repository import OrgRepository
from orgscope.scope.hierarchy import ensure_consistent_chain
from orgscope.scope.predicates import ensure_can_act, require_within_scope
from orgscope.scope.types import EntityType
from orgscope.security.context import AuthzContext


def authorize_write(
    authz: AuthzContext,
    repository: OrgRepository,
    entity: EntityType,
    requested: OrgIds,
) -> OrgIds:
    """
    Gate a create/move before anything is written.

    1. explicit ids must agree with the scope (403)
    2. the parent chain must exist and be consistent (400)
    3. the completed chain must still be actionable (403)

    Returns the completed chain, which is what the row should be stored with.
    """

    require_within_scope(authz.scope, requested)
    chain = ensure_consistent_chain(repository, requested)
    ensure_can_act(authz.scope, entity, chain)
    return chain


def check_filter_ids(authz: AuthzContext, **ids: int | None) -> OrgIds:
    """Explicit query-string ids must sit inside the caller's scope (403 otherwise)."""

    requested = OrgIds(**ids)
    require_within_scope(authz.scope, requested)
    return requested
