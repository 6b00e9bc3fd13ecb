"""
Row-level predicate builder.

Turns a resolved Scope into a ``Predicate`` for a given entity type, and
answers point checks ("may this scope act on a row at these org ids?").

Key ideas:
- A predicate is a disjunction of clauses; each clause is a conjunction of
  ``dimension == value`` equalities. An empty clause matches everything, an
  empty predicate matches nothing.
- A bounded scope restricts one dimension. If the entity type cannot express
  that dimension the predicate is deny-all, never unfiltered.
- Explicitly requested ids must agree with every id the scope knows about.

Pure Python, no SQLAlchemy. ``orgscope.db.filters`` translates predicates
into SQL criteria.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Mapping

from orgscope.contracts import OrgIds
from orgscope.errors import AccessDenied
from orgscope.scope.types import EntityType, Scope

logger = logging.getLogger(__name__)

OWNER = "owner_id"

_ALL_ORG = frozenset({"region_id", "university_id", "small_group_id", "graduate_group_id"})

# Which dimensions each entity type carries, directly or through a join.
ENTITY_DIMENSIONS: Mapping[EntityType, frozenset[str]] = {
    EntityType.REGION: frozenset({"region_id"}),
    EntityType.UNIVERSITY: frozenset({"region_id", "university_id"}),
    EntityType.SMALL_GROUP: frozenset({"region_id", "university_id", "small_group_id"}),
    EntityType.GRADUATE_SMALL_GROUP: frozenset({"region_id", "graduate_group_id"}),
    EntityType.PROPERTY: frozenset({"region_id"}),
    EntityType.MEMBER: _ALL_ORG,
    EntityType.USER_ROLE: _ALL_ORG,
    EntityType.NOTIFICATION: _ALL_ORG | {OWNER},
    EntityType.ATTENDANCE_EVENT: frozenset({"region_id", "university_id"}),
    EntityType.ATTENDANCE: _ALL_ORG,
    EntityType.REPORT: frozenset({"region_id", OWNER}),
}

# Entities whose owner always sees their own rows, whatever the scope.
OWNED_ENTITIES = frozenset({EntityType.REPORT, EntityType.NOTIFICATION})

Clause = tuple[tuple[str, object], ...]


@dataclass(frozen=True)
class Predicate:
    entity: EntityType
    clauses: tuple[Clause, ...]

    @classmethod
    def match_all(cls, entity: EntityType) -> Predicate:
        return cls(entity=entity, clauses=((),))

    @classmethod
    def deny_all(cls, entity: EntityType) -> Predicate:
        return cls(entity=entity, clauses=())

    @property
    def matches_all(self) -> bool:
        return any(len(clause) == 0 for clause in self.clauses)

    @property
    def denies_all(self) -> bool:
        return not self.clauses

    def conditions(self) -> list[dict[str, object]]:
        return [dict(clause) for clause in self.clauses]

    def matches(self, ids: OrgIds, owner_id: str | None = None) -> bool:
        """Evaluate against a row's org ids (and owner, for owned entities)."""

        for clause in self.clauses:
            if all(_value_of(dim, ids, owner_id) == value for dim, value in clause):
                return True
        return False


def _value_of(dimension: str, ids: OrgIds, owner_id: str | None) -> object:
    if dimension == OWNER:
        return owner_id
    return ids.get(dimension)


def build_filter(scope: Scope, entity: EntityType) -> Predicate:
    """Predicate restricting ``entity`` rows to those ``scope`` may touch."""

    if scope.unbounded:
        return Predicate.match_all(entity)

    dimensions = ENTITY_DIMENSIONS[entity]
    clauses: list[Clause] = []

    dimension, value = scope.bound
    if dimension in dimensions:
        clauses.append(((dimension, value),))

    if entity in OWNED_ENTITIES:
        clauses.append(((OWNER, scope.principal_id),))

    if not clauses:
        logger.debug("Scope %s has no access to entity=%s", scope.tag.value, entity.value)
        return Predicate.deny_all(entity)

    return Predicate(entity=entity, clauses=tuple(clauses))


def require_within_scope(scope: Scope, requested: OrgIds) -> None:
    """
    Explicit ids supplied by the caller must agree with the scope.

    Every dimension the scope knows (its bound id and its resolved ancestors)
    is compared for equality; a mismatch is denied rather than narrowed or
    widened. Dimensions the scope does not know are left to the predicate.
    """

    if scope.unbounded:
        return

    known = scope.org_ids()
    for dimension, value in requested.supplied().items():
        expected = known.get(dimension)
        if expected is not None and expected != value:
            raise AccessDenied(f"requested {dimension}={value} outside scope {scope.tag.value}")


def can_act(scope: Scope, entity: EntityType, ids: OrgIds, owner_id: str | None = None) -> bool:
    """Point check: may ``scope`` read or write an ``entity`` row positioned at ``ids``?"""

    if scope.unbounded:
        return True
    try:
        require_within_scope(scope, ids)
    except AccessDenied:
        return False
    return build_filter(scope, entity).matches(ids, owner_id=owner_id)


def ensure_can_act(scope: Scope, entity: EntityType, ids: OrgIds, owner_id: str | None = None) -> None:
    if not can_act(scope, entity, ids, owner_id=owner_id):
        raise AccessDenied(f"scope {scope.tag.value} may not act on {entity.value} at {ids.supplied()}")


def ensure_entity_access(scope: Scope, entity: EntityType) -> None:
    """Short-circuit before querying when the scope can never see ``entity``."""

    if build_filter(scope, entity).denies_all:
        raise AccessDenied(f"scope {scope.tag.value} denied entity {entity.value}")
