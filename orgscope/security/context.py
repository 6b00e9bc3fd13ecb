from __future__ import annotations

from dataclasses import dataclass

from orgscope.contracts import Principal
from orgscope.scope.types import EntityType, Scope, ScopeTag


@dataclass(frozen=True)
class AuthzContext:
    """
    Per-request authorization context.

    Attached to ``request.state`` (request lifetime) and ``Session.info``
    (session lifetime), where ``orgscope.db.filters`` reads ``scope``.
    """

    principal: Principal
    scope: Scope
    entity: EntityType | None = None

    @property
    def principal_id(self) -> str:
        return self.principal.id

    @property
    def is_superadmin(self) -> bool:
        return self.scope.tag is ScopeTag.SUPERADMIN
