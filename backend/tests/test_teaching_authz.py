"""
Ownership authorizer: principal resolution and the lesson -> course -> owner chain.
"""
from __future__ import annotations

import pytest

from backend.identity_access.stores import SessionRecord
from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.errors import ActionError, ErrorKind


@pytest.fixture
def seeded(teaching_repo):
    owner = teaching_repo.add_user(email="owner@example.com", role="instructor")
    other = teaching_repo.add_user(email="other@example.com", role="instructor")
    course = teaching_repo.create_course(owner["id"], {"title": "C"}, {})
    lesson = teaching_repo.create_lesson(course["id"], {"title": "L"}, 0)
    return OwnershipAuthorizer(teaching_repo), owner, other, course, lesson


def test_resolve_principal_maps_session_email_to_user(seeded):
    authz, owner, *_ = seeded
    principal = authz.resolve_principal(SessionRecord(session_id="s", email="Owner@Example.com"))
    assert principal.id == owner["id"]
    assert principal.role == "instructor"


@pytest.mark.parametrize("session", [None, SessionRecord(session_id="s", email=""), SessionRecord(session_id="s", email="ghost@example.com")])
def test_resolve_principal_unauthorized(seeded, session):
    authz = seeded[0]
    with pytest.raises(ActionError) as exc:
        authz.resolve_principal(session)
    assert exc.value.kind is ErrorKind.UNAUTHORIZED


def test_resolve_principal_id_unknown_email(seeded):
    authz = seeded[0]
    with pytest.raises(ActionError) as exc:
        authz.resolve_principal_id("")
    assert exc.value.kind is ErrorKind.UNAUTHORIZED


def test_course_and_lesson_ownership(seeded):
    authz, owner, other, course, lesson = seeded
    assert authz.authorize_course_owner(owner["id"], course["id"]) is True
    assert authz.authorize_course_owner(other["id"], course["id"]) is False
    assert authz.authorize_course_owner(owner["id"], "missing") is False
    assert authz.authorize_lesson_owner(owner["id"], lesson["id"]) is True
    assert authz.authorize_lesson_owner(other["id"], lesson["id"]) is False
    assert authz.authorize_lesson_owner(owner["id"], "missing") is False


def test_require_helpers_raise_permission_denied(seeded):
    authz, _, other, course, lesson = seeded
    with pytest.raises(ActionError) as exc:
        authz.require_lesson_owner(other["id"], lesson["id"], "delete this lesson")
    assert exc.value.kind is ErrorKind.PERMISSION_DENIED
    assert "permission" in exc.value.detail
    with pytest.raises(ActionError):
        authz.require_course_owner(other["id"], course["id"])


class _ExplodingRepo:
    """Stands in for a uuid-typed database that rejects malformed ids."""

    def get_course_owner(self, course_id):
        raise AssertionError(f"malformed id reached the repo: {course_id}")

    def get_lesson_course_id(self, lesson_id):
        raise AssertionError(f"malformed id reached the repo: {lesson_id}")


@pytest.mark.parametrize("bad", ["abc", "1", "../etc", "0000"])
def test_malformed_ids_are_denied_without_repo_lookup(bad):
    authz = OwnershipAuthorizer(_ExplodingRepo())
    assert authz.authorize_course_owner("u1", bad) is False
    assert authz.authorize_lesson_owner("u1", bad) is False
