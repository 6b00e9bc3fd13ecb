from __future__ import annotations

import logging

from sqlalchemy import and_, event, false, or_, select
from sqlalchemy.orm import Session, with_loader_criteria
from sqlalchemy.sql.elements import ColumnElement

from orgscope.models.attendance import Attendance, AttendanceEvent
from orgscope.models.notification import Notification
from orgscope.models.organization import GraduateSmallGroup, Property, Region, SmallGroup, University
from orgscope.models.people import Member
from orgscope.models.reporting import ReportSubmission
from orgscope.models.security import UserRole
from orgscope.scope.predicates import OWNER, Predicate, build_filter
from orgscope.scope.types import EntityType, Scope

logger = logging.getLogger(__name__)

# Model -> (entity type, dimension renames). Dimensions not renamed map to a
# column of the same name.
_SCOPED_MODELS: dict[type, tuple[EntityType, dict[str, str]]] = {
    Region: (EntityType.REGION, {"region_id": "id"}),
    University: (EntityType.UNIVERSITY, {"university_id": "id"}),
    SmallGroup: (EntityType.SMALL_GROUP, {"small_group_id": "id"}),
    GraduateSmallGroup: (EntityType.GRADUATE_SMALL_GROUP, {"graduate_group_id": "id"}),
    Property: (EntityType.PROPERTY, {}),
    Member: (EntityType.MEMBER, {}),
    UserRole: (EntityType.USER_ROLE, {}),
    Notification: (EntityType.NOTIFICATION, {OWNER: "user_id"}),
    AttendanceEvent: (EntityType.ATTENDANCE_EVENT, {}),
    Attendance: (EntityType.ATTENDANCE, {}),
    ReportSubmission: (EntityType.REPORT, {OWNER: "user_id"}),
}


def _column(model: type, dimension: str) -> ColumnElement:
    if model is Attendance:
        # attendance rows are positioned by their member
        return getattr(Member, dimension)
    _entity, renames = _SCOPED_MODELS[model]
    return getattr(model, renames.get(dimension, dimension))


# A row may be positioned only by a lower link (a role or member with just a
# small_group_id, say). Wider dimensions then match through that link's
# ancestors. Core tables, so loader criteria do not apply to the subqueries.
_REGION_LINKS = {
    "university_id": University.__table__,
    "small_group_id": SmallGroup.__table__,
    "graduate_group_id": GraduateSmallGroup.__table__,
}
_UNIVERSITY_LINKS = {
    "small_group_id": SmallGroup.__table__,
}
_ANCESTOR_LINKS = {"region_id": _REGION_LINKS, "university_id": _UNIVERSITY_LINKS}


def _match(model: type, dimension: str, value) -> ColumnElement[bool]:
    expr = _column(model, dimension) == value
    links = _ANCESTOR_LINKS.get(dimension)
    if not links:
        return expr

    target = Member if model is Attendance else model
    renames = {} if model is Attendance else _SCOPED_MODELS[model][1]
    alternatives = [expr]
    for link, table in links.items():
        if link in renames or not hasattr(target, link):
            continue
        ancestors = select(table.c.id).where(table.c[dimension] == value)
        alternatives.append(getattr(target, link).in_(ancestors))
    return or_(*alternatives)


def predicate_criteria(model: type, predicate: Predicate) -> ColumnElement[bool] | None:
    """SQL translation of ``predicate`` for ``model``; ``None`` means no criteria needed."""

    if predicate.matches_all:
        return None
    if predicate.denies_all:
        return false()

    clauses = []
    for clause in predicate.clauses:
        expr = and_(*[_match(model, dim, value) for dim, value in clause])
        if model is Attendance:
            expr = Attendance.member.has(expr)
        clauses.append(expr)
    return or_(*clauses)


def scope_loader_options(scope: Scope) -> list:
    options = []
    for model, (entity, _renames) in _SCOPED_MODELS.items():
        criteria = predicate_criteria(model, build_filter(scope, entity))
        if criteria is not None:
            options.append(with_loader_criteria(model, criteria, include_aliases=True))
    return options


@event.listens_for(Session, "do_orm_execute")
def _apply_scope_filters(execute_state) -> None:
    """
    Transparent row scoping.

    Existing query code stays unchanged:
        db.scalars(select(Member)).all()
    only returns members inside the caller's scope when the session carries
    an ``authz`` context.
    """

    if not execute_state.is_select:
        return

    authz = execute_state.session.info.get("authz")
    if authz is None:
        return

    options = scope_loader_options(authz.scope)
    if options:
        logger.debug("Scoping SELECT for scope=%s principal=%s", authz.scope.tag.value, authz.scope.principal_id)
        execute_state.statement = execute_state.statement.options(*options)
