"""
Hierarchical scope resolution and row filtering.

Pure Python apart from the repository it is handed; no FastAPI dependency.
``orgscope.db.filters`` plugs predicates into SQLAlchemy sessions.
"""

from .hierarchy import ensure_consistent_chain
from .predicates import (
    Predicate,
    build_filter,
    can_act,
    ensure_can_act,
    ensure_entity_access,
    require_within_scope,
)
from .resolver import ScopeResolver
from .types import (
    EntityType,
    GraduateGroupScope,
    NationalScope,
    RegionScope,
    Scope,
    ScopeTag,
    SmallGroupScope,
    SuperadminScope,
    UniversityScope,
)

__all__ = [
    "EntityType",
    "GraduateGroupScope",
    "NationalScope",
    "Predicate",
    "RegionScope",
    "Scope",
    "ScopeResolver",
    "ScopeTag",
    "SmallGroupScope",
    "SuperadminScope",
    "UniversityScope",
    "build_filter",
    "can_act",
    "ensure_can_act",
    "ensure_consistent_chain",
    "ensure_entity_access",
    "require_within_scope",
]
