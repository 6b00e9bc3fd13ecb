"""
Tests for principal loading through the SQL repository.

Uses the committed demo tree from the ``seeded`` fixture.
"""
from __future__ import annotations

import pytest

from orgscope.errors import Unauthenticated
from orgscope.models.security import User
from orgscope.security.auth import load_principal


def test_load_principal_returns_active_user(seeded, repository):
    principal = load_principal(repository, "alpha-lead")

    assert principal.id == "alpha-lead"
    assert principal.name == "Aline Alpha"
    assert principal.is_active


def test_load_principal_raises_when_not_found(seeded, repository):
    with pytest.raises(Unauthenticated):
        load_principal(repository, "nobody")


def test_load_principal_raises_when_inactive(seeded, session_factory, repository):
    with session_factory() as db:
        db.add(User(id="retired", name="Retired Leader", is_active=False))
        db.commit()

    with pytest.raises(Unauthenticated):
        load_principal(repository, "retired")


def test_role_assignments_come_back_in_assignment_order(seeded, session_factory, repository):
    from orgscope.models.security import UserRole

    with session_factory() as db:
        db.add(UserRole(user_id="alpha-lead", scope="university", university_id=seeded.uok))
        db.commit()

    roles = repository.get_role_assignments("alpha-lead")

    assert [r.scope for r in roles] == ["smallgroup", "university"]
    assert roles[0].small_group_id == seeded.alpha
