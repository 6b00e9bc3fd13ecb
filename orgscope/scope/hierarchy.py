"""
Cross-entity consistency check for writes that place a row under a parent.

A crafted parent id must not orphan a row or move it into another subtree:
every parent has to exist and sit under the other requested parents.
"""

from __future__ import annotations

from orgscope.contracts import OrgIds
from orgscope.errors import ValidationFailure
from orgscope.repository import OrgRepository


def ensure_consistent_chain(repository: OrgRepository, ids: OrgIds) -> OrgIds:
    """
    Validate the requested parent chain and return it with ancestors filled in.

    Raises ValidationFailure when a parent does not exist or belongs to a
    different ancestor than the one requested.
    """

    chain = ids

    if chain.small_group_id is not None:
        group = repository.get_small_group(chain.small_group_id)
        if group is None:
            raise ValidationFailure("Small group does not exist")
        if chain.university_id is not None and chain.university_id != group.university_id:
            raise ValidationFailure("Small group does not belong to the selected university")
        if chain.region_id is not None and chain.region_id != group.region_id:
            raise ValidationFailure("Small group does not belong to the selected region")
        chain = chain.merged(university_id=group.university_id, region_id=group.region_id)

    if chain.university_id is not None:
        university = repository.get_university(chain.university_id)
        if university is None:
            raise ValidationFailure("University does not exist")
        if chain.region_id is not None and chain.region_id != university.region_id:
            raise ValidationFailure("University does not belong to the selected region")
        chain = chain.merged(region_id=university.region_id)

    if chain.graduate_group_id is not None:
        graduate_group = repository.get_graduate_group(chain.graduate_group_id)
        if graduate_group is None:
            raise ValidationFailure("Graduate small group does not exist")
        if chain.small_group_id is not None or chain.university_id is not None:
            raise ValidationFailure("Graduate small groups do not belong to a university")
        if (
            chain.region_id is not None
            and graduate_group.region_id is not None
            and chain.region_id != graduate_group.region_id
        ):
            raise ValidationFailure("Graduate small group does not belong to the selected region")
        chain = chain.merged(region_id=graduate_group.region_id)

    if chain.region_id is not None and repository.get_region(chain.region_id) is None:
        raise ValidationFailure("Region does not exist")

    return chain
