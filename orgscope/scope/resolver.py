"""
Scope resolution: principal id -> typed Scope.

Tie-break when a principal holds several role assignments: the lowest
assignment id wins (the earliest-assigned role). The repository returns roles
ordered by id; the resolver re-sorts anyway so the rule does not depend on it.
"""

from __future__ import annotations

import logging

from orgscope.contracts import RoleAssignment
from orgscope.errors import AccessDenied
from orgscope.repository import OrgRepository
from orgscope.scope.types import (
    GraduateGroupScope,
    NationalScope,
    RegionScope,
    Scope,
    ScopeTag,
    SmallGroupScope,
    SuperadminScope,
    UniversityScope,
)

logger = logging.getLogger(__name__)


class ScopeResolver:
    def __init__(self, repository: OrgRepository) -> None:
        self._repository = repository

    def resolve(self, principal_id: str) -> Scope:
        """
        Resolve the principal's primary scope.

        Raises AccessDenied when the principal has no role, or when the chosen
        role is missing the id its tag requires. A broken role never degrades
        into an unbounded scope.
        """

        roles = self._repository.get_role_assignments(principal_id)
        if not roles:
            logger.info("Principal has no role assignment principal=%s", principal_id)
            raise AccessDenied("no role assignment")

        primary = min(roles, key=lambda r: r.id)
        if len(roles) > 1:
            logger.debug(
                "Principal holds %d roles; using assignment id=%s scope=%s",
                len(roles),
                primary.id,
                primary.scope,
            )
        return self._from_role(primary)

    def _from_role(self, role: RoleAssignment) -> Scope:
        try:
            tag = ScopeTag(role.scope)
        except ValueError:
            logger.warning("Unknown scope tag on role id=%s scope=%r", role.id, role.scope)
            raise AccessDenied("unknown scope tag") from None

        pid = role.principal_id

        if tag is ScopeTag.SUPERADMIN:
            return SuperadminScope(principal_id=pid)
        if tag is ScopeTag.NATIONAL:
            return NationalScope(principal_id=pid)

        if tag is ScopeTag.REGION:
            if role.region_id is None:
                raise _misconfigured(role, "region_id")
            return RegionScope(principal_id=pid, region_id=role.region_id)

        if tag is ScopeTag.UNIVERSITY:
            if role.university_id is None:
                raise _misconfigured(role, "university_id")
            university = self._repository.get_university(role.university_id)
            region_id = university.region_id if university else role.region_id
            return UniversityScope(principal_id=pid, university_id=role.university_id, region_id=region_id)

        if tag is ScopeTag.SMALL_GROUP:
            if role.small_group_id is None:
                raise _misconfigured(role, "small_group_id")
            group = self._repository.get_small_group(role.small_group_id)
            return SmallGroupScope(
                principal_id=pid,
                small_group_id=role.small_group_id,
                university_id=group.university_id if group else role.university_id,
                region_id=group.region_id if group else role.region_id,
            )

        if role.graduate_group_id is None:
            raise _misconfigured(role, "graduate_group_id")
        graduate_group = self._repository.get_graduate_group(role.graduate_group_id)
        return GraduateGroupScope(
            principal_id=pid,
            graduate_group_id=role.graduate_group_id,
            region_id=graduate_group.region_id if graduate_group and graduate_group.region_id else role.region_id,
        )


def _misconfigured(role: RoleAssignment, missing: str) -> AccessDenied:
    logger.warning("Role id=%s scope=%s is missing %s; denying", role.id, role.scope, missing)
    return AccessDenied(f"role missing {missing}")
