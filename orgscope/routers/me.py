from __future__ import annotations

from fastapi import APIRouter, Depends

from orgscope.schemas.security import MeOut, ScopeOut
from orgscope.security.context import AuthzContext
from orgscope.security.dependencies import get_authz

router = APIRouter(tags=["me"])


@router.get("/me", response_model=MeOut)
def me(authz: AuthzContext = Depends(get_authz)) -> MeOut:
    principal = authz.principal
    return MeOut(
        id=principal.id,
        name=principal.name,
        email=principal.email,
        scope=ScopeOut(**authz.scope.to_dict()),
    )
