"""
LessonsService: create/update/delete/reorder with ownership and dense ordering.

Runs against the in-memory repo with invariant checks enabled, so every
mutation also asserts that order_index stays 0..n-1 per course.
"""
from __future__ import annotations

import random

import pytest

from backend.identity_access.stores import SessionRecord
from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.ordering import is_dense
from backend.teaching.services.lessons import LessonsService


def _session(email: str) -> SessionRecord:
    return SessionRecord(session_id=f"sid-{email}", email=email)


QUIZ = {
    "questions": [
        {"id": "q1", "type": "True/False", "question": "Sky is blue?", "points": 1, "correctAnswer": True},
        {"id": "q2", "type": "Open Ended", "question": "Why?", "points": 2},
    ],
    "settings": {"passingScore": 50},
}


@pytest.fixture
def ctx(teaching_repo):
    owner = teaching_repo.add_user(email="owner@example.com", role="instructor")
    teaching_repo.add_user(email="other@example.com", role="instructor")
    course = teaching_repo.create_course(owner["id"], {"title": "C"}, {})
    service = LessonsService(teaching_repo, OwnershipAuthorizer(teaching_repo))
    return service, teaching_repo, course["id"]


def _create(service, course_id, title, email="owner@example.com", **extra):
    result = service.create_lesson(_session(email), {"courseId": course_id, "title": title, **extra})
    assert result.success, result.error
    return result.data["lessonId"]


def test_create_appends_at_end(ctx):
    service, repo, course_id = ctx
    _create(service, course_id, "A")
    _create(service, course_id, "B")
    result = service.create_lesson(_session("owner@example.com"), {"courseId": course_id, "title": "C"})
    assert result.success
    assert result.data["order_index"] == 2


def test_create_requires_title_and_course(ctx):
    service, _, course_id = ctx
    result = service.create_lesson(_session("owner@example.com"), {"courseId": course_id, "title": "  "})
    assert not result.success and result.kind.value == "validation"
    result = service.create_lesson(_session("owner@example.com"), {"title": "x"})
    assert not result.success and result.kind.value == "validation"


def test_create_by_non_owner_is_denied(ctx):
    service, repo, course_id = ctx
    result = service.create_lesson(_session("other@example.com"), {"courseId": course_id, "title": "x"})
    assert not result.success
    assert result.kind.value == "permission_denied"
    assert "permission" in result.error
    assert repo.list_lessons(course_id) == []


def test_create_without_session_is_unauthorized(ctx):
    service, _, course_id = ctx
    result = service.create_lesson(None, {"courseId": course_id, "title": "x"})
    assert result.to_dict() == {"success": False, "error": "You must be logged in", "kind": "unauthorized"}


def test_quiz_lesson_is_normalized_and_gets_default_duration(ctx):
    service, repo, course_id = ctx
    lesson_id = _create(service, course_id, "Quiz", contentType="quiz", contentData=QUIZ)
    lesson = repo.get_lesson(lesson_id)
    assert lesson["content_type"] == "quiz"
    assert lesson["content_data"]["metadata"] == {"totalPoints": 3, "questionCount": 2}
    assert lesson["duration_minutes"] == 4


def test_invalid_quiz_is_rejected(ctx):
    service, _, course_id = ctx
    result = service.create_lesson(
        _session("owner@example.com"),
        {"courseId": course_id, "title": "Quiz", "contentType": "quiz", "contentData": {"questions": []}},
    )
    assert not result.success and result.kind.value == "validation"
    assert result.error.startswith("Invalid quiz content")


def test_update_filters_course_id_and_unknown_fields(ctx):
    service, repo, course_id = ctx
    lesson_id = _create(service, course_id, "A")
    result = service.update_lesson(
        _session("owner@example.com"), lesson_id, {"title": "A2", "course_id": "elsewhere", "bogus": 1}
    )
    assert result.success
    lesson = repo.get_lesson(lesson_id)
    assert lesson["title"] == "A2"
    assert lesson["course_id"] == course_id
    assert "bogus" not in lesson


def test_update_with_nothing_valid_is_validation_error(ctx):
    service, _, course_id = ctx
    lesson_id = _create(service, course_id, "A")
    result = service.update_lesson(_session("owner@example.com"), lesson_id, {"course_id": "x"})
    assert not result.success
    assert result.error == "No valid fields to update"


def test_update_by_non_owner_is_denied(ctx):
    service, repo, course_id = ctx
    lesson_id = _create(service, course_id, "A")
    result = service.update_lesson(_session("other@example.com"), lesson_id, {"title": "hijack"})
    assert result.kind.value == "permission_denied"
    assert repo.get_lesson(lesson_id)["title"] == "A"


def test_delete_middle_lesson_closes_gap(ctx):
    service, repo, course_id = ctx
    a = _create(service, course_id, "A")
    b = _create(service, course_id, "B")
    c = _create(service, course_id, "C")
    result = service.delete_lesson(_session("owner@example.com"), b)
    assert result.success
    assert [(l["id"], l["order_index"]) for l in repo.list_lessons(course_id)] == [(a, 0), (c, 1)]


def test_delete_renumbers_from_the_rows_it_deletes_against(ctx, monkeypatch):
    service, repo, course_id = ctx
    a = _create(service, course_id, "A")
    b = _create(service, course_id, "B")
    c = _create(service, course_id, "C")
    # A stale sibling listing must not feed the renumbering.
    monkeypatch.setattr(repo, "list_lessons", lambda course_id: [])
    assert service.delete_lesson(_session("owner@example.com"), a).success
    monkeypatch.undo()
    assert [(l["id"], l["order_index"]) for l in repo.list_lessons(course_id)] == [(b, 0), (c, 1)]

    owner_id = repo.get_course(course_id)["instructor_id"]
    assert repo.delete_lesson(b, owner_id) == [{"id": c, "order_index": 0}]


def test_delete_missing_or_foreign_lesson_is_permission_denied(ctx):
    service, repo, course_id = ctx
    a = _create(service, course_id, "A")
    assert service.delete_lesson(_session("owner@example.com"), "missing").kind.value == "permission_denied"
    assert service.delete_lesson(_session("other@example.com"), a).kind.value == "permission_denied"
    assert len(repo.list_lessons(course_id)) == 1


def test_reorder_applies_full_permutation(ctx):
    service, repo, course_id = ctx
    a = _create(service, course_id, "A")
    b = _create(service, course_id, "B")
    result = service.reorder_lessons(
        _session("owner@example.com"), course_id, [{"id": b, "order": 0}, {"id": a, "order": 1}]
    )
    assert result.success
    assert [l["id"] for l in repo.list_lessons(course_id)] == [b, a]


def test_reorder_with_subset_is_rejected_and_leaves_order(ctx):
    service, repo, course_id = ctx
    a = _create(service, course_id, "A")
    b = _create(service, course_id, "B")
    result = service.reorder_lessons(_session("owner@example.com"), course_id, [{"id": b, "order": 0}])
    assert not result.success
    assert "Invalid lesson IDs" in result.error
    assert [l["id"] for l in repo.list_lessons(course_id)] == [a, b]


def test_get_lessons_by_course_is_sorted(ctx):
    service, _, course_id = ctx
    _create(service, course_id, "A")
    _create(service, course_id, "B")
    result = service.get_lessons_by_course(course_id)
    assert [l["title"] for l in result.data["lessons"]] == ["A", "B"]


class _BrokenRepo:
    def __getattr__(self, name):
        def _boom(*args, **kwargs):
            raise RuntimeError("connection refused password=hunter2")

        return _boom


def test_repo_failure_becomes_generic_persistence_error(caplog):
    service = LessonsService(_BrokenRepo(), OwnershipAuthorizer(_BrokenRepo()))
    result = service.get_lessons_by_course("c1")
    assert result.to_dict() == {"success": False, "error": "Failed to fetch lessons", "kind": "persistence"}
    assert "hunter2" not in caplog.text


REACT_QUIZ = {
    "title": "Sample quiz - React basics",
    "summary": "Checks the core React concepts.",
    "questions": [
        {
            "id": "s1",
            "type": "True/False",
            "question": "React is a JavaScript library from Facebook.",
            "points": 10,
            "randomize": False,
            "correctAnswer": True,
        },
        {
            "id": "s2",
            "type": "Single Choice",
            "question": "Which one is not a React feature?",
            "points": 10,
            "options": [
                {"id": "o1", "text": "Virtual DOM"},
                {"id": "o2", "text": "Components"},
                {"id": "o3", "text": "Automatic memory management"},
            ],
            "correctAnswer": "o3",
        },
        {
            "id": "s3",
            "type": "Multiple Choice",
            "question": "Pick every JavaScript trait.",
            "points": 20,
            "options": [
                {"id": "mc1", "text": "Dynamic typing"},
                {"id": "mc2", "text": "Prototypes"},
                {"id": "mc3", "text": "Compiled ahead of time"},
            ],
            "correctAnswer": ["mc1", "mc2"],
        },
        {"id": "s4", "type": "Open Ended", "question": "Name three React strengths.", "points": 30, "correctAnswer": None},
        {
            "id": "s5",
            "type": "Fill in the Blanks",
            "question": "State hook is [1], effect hook is [2].",
            "points": 20,
            "blanks": [
                {"id": 1, "answers": ["useState"], "caseSensitive": False},
                {"id": 2, "answers": ["useEffect"], "caseSensitive": False},
            ],
            "correctAnswer": {1: ["useState"], 2: ["useEffect"]},
        },
        {
            "id": "s6",
            "type": "Sort Answer",
            "question": "Order the lifecycle methods.",
            "points": 15,
            "sortItems": [
                {"id": 1, "text": "constructor", "order": 1},
                {"id": 2, "text": "render", "order": 2},
                {"id": 3, "text": "componentDidMount", "order": 3},
            ],
            "correctAnswer": [1, 2, 3],
        },
        {
            "id": "s7",
            "type": "Matching",
            "question": "Match concept to description.",
            "points": 25,
            "matchingPairs": {
                "leftItems": [{"id": "left1", "text": "useState"}],
                "rightItems": [{"id": "right1", "text": "state hook"}],
                "correctMatches": {"left1": "right1"},
            },
            "correctAnswer": {"left1": "right1"},
        },
    ],
    "settings": {
        "passingScore": 70,
        "feedbackMode": "reveal",
        "randomizeQuestions": False,
        "showAnswersAfterSubmit": True,
        "maxQuestions": 0,
        "maxAttempts": 3,
        "questionLayout": "one_per_page",
    },
}


def test_editor_quiz_with_every_question_type_is_saved(ctx):
    service, repo, course_id = ctx
    lesson_id = _create(service, course_id, "React quiz", contentType="quiz", contentData=REACT_QUIZ)
    data = repo.get_lesson(lesson_id)["content_data"]
    assert data["metadata"] == {"totalPoints": 130, "questionCount": 7}
    assert data["title"] == "Sample quiz - React basics"
    assert data["settings"]["maxAttempts"] == 3
    by_id = {q["id"]: q for q in data["questions"]}
    assert by_id["s2"]["options"][2] == {"id": "o3", "text": "Automatic memory management"}
    assert by_id["s5"]["correctAnswer"] == {"1": ["useState"], "2": ["useEffect"]}
    assert by_id["s5"]["blanks"][0]["answers"] == ["useState"]
    assert by_id["s6"]["correctAnswer"] == [1, 2, 3]
    assert by_id["s7"]["matchingPairs"]["correctMatches"] == {"left1": "right1"}


def test_returned_lessons_do_not_alias_stored_rows(ctx):
    service, repo, course_id = ctx
    lesson_id = _create(service, course_id, "Quiz", contentType="quiz", contentData=QUIZ)
    repo.get_lesson(lesson_id)["content_data"]["questions"].clear()
    repo.list_lessons(course_id)[0]["content_data"]["settings"]["passingScore"] = 0
    stored = repo.get_lesson(lesson_id)["content_data"]
    assert len(stored["questions"]) == 2
    assert stored["settings"]["passingScore"] == 50


def test_reorder_by_non_owner_changes_nothing(ctx):
    service, repo, course_id = ctx
    a = _create(service, course_id, "A")
    b = _create(service, course_id, "B")
    result = service.reorder_lessons(
        _session("other@example.com"), course_id, [{"id": b, "order": 0}, {"id": a, "order": 1}]
    )
    assert result.kind.value == "permission_denied"
    assert [(l["id"], l["order_index"]) for l in repo.list_lessons(course_id)] == [(a, 0), (b, 1)]


@pytest.mark.parametrize("seed", range(8))
def test_random_create_delete_reorder_keeps_positions_dense(ctx, seed):
    service, repo, course_id = ctx
    owner = _session("owner@example.com")
    rng = random.Random(seed)
    for step in range(40):
        ids = [l["id"] for l in repo.list_lessons(course_id)]
        op = rng.choice(["create", "create", "delete", "reorder"])
        if op == "create" or not ids:
            _create(service, course_id, f"L{step}")
        elif op == "delete":
            assert service.delete_lesson(owner, rng.choice(ids)).success
        else:
            rng.shuffle(ids)
            order = [{"id": lid, "order": pos} for pos, lid in enumerate(ids)]
            assert service.reorder_lessons(owner, course_id, order).success
            assert [l["id"] for l in repo.list_lessons(course_id)] == ids
        assert is_dense(l["order_index"] for l in repo.list_lessons(course_id))
