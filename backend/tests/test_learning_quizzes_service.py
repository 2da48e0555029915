"""
QuizzesService: attempt lifecycle, scoring on submit and listings.
"""
from __future__ import annotations

import pytest

from backend.identity_access.stores import SessionRecord
from backend.learning.services.quizzes import ALREADY_COMPLETED, QuizzesService
from backend.teaching.authz import OwnershipAuthorizer

TEACHER = SessionRecord(session_id="t", email="teacher@example.com")
STUDENT = SessionRecord(session_id="s", email="student@example.com")
STRANGER = SessionRecord(session_id="x", email="stranger@example.com")

QUIZ = {
    "questions": [
        {"id": "q1", "type": "True/False", "question": "Sky is blue?", "points": 1, "correctAnswer": True},
        {"id": "q2", "type": "Single Choice", "question": "2+2?", "points": 1, "options": ["3", "4"], "correctAnswer": "4"},
    ],
    "settings": {"passingScore": 50},
}


@pytest.fixture
def ctx(teaching_repo, learning_repo):
    teacher = teaching_repo.add_user(email="teacher@example.com", role="instructor")
    student = teaching_repo.add_user(email="student@example.com", role="student")
    teaching_repo.add_user(email="stranger@example.com", role="student")
    course = teaching_repo.create_course(teacher["id"], {"title": "Quizzes", "status": "published"}, {})
    quiz = teaching_repo.create_lesson(course["id"], {"title": "Q", "content_type": "quiz", "content_data": QUIZ}, 0)
    text = teaching_repo.create_lesson(course["id"], {"title": "Text"}, 1)
    learning_repo.create_enrollment(student["id"], course["id"])
    service = QuizzesService(learning_repo, teaching_repo, OwnershipAuthorizer(teaching_repo))
    return service, quiz["id"], text["id"]


def test_start_and_submit_scores_attempt(ctx):
    service, quiz_id, _ = ctx
    attempt = service.start_attempt(STUDENT, quiz_id).data["attempt"]
    assert attempt["attempt_number"] == 1 and attempt["completed_at"] is None

    result = service.submit_attempt(STUDENT, attempt["id"], {"q1": True, "q2": "3"})
    assert result.success, result.error
    row = result.data["attempt"]
    assert row["score"] == 1 and row["total_points"] == 2
    assert row["passed"] is True
    assert row["answers"]["q2"]["isCorrect"] is False
    assert result.data["percentage"] == 50
    assert result.data["needsReview"] is False


def test_second_submit_is_conflict(ctx):
    service, quiz_id, _ = ctx
    attempt = service.start_attempt(STUDENT, quiz_id).data["attempt"]
    service.submit_attempt(STUDENT, attempt["id"], {})
    again = service.submit_attempt(STUDENT, attempt["id"], {"q1": True})
    assert again.kind.value == "conflict"
    assert again.error == ALREADY_COMPLETED


def test_attempt_numbers_increase(ctx):
    service, quiz_id, _ = ctx
    service.start_attempt(STUDENT, quiz_id)
    second = service.start_attempt(STUDENT, quiz_id).data["attempt"]
    assert second["attempt_number"] == 2
    assert len(service.list_attempts(STUDENT, quiz_id).data["attempts"]) == 2


def test_start_requires_enrollment_or_ownership(ctx):
    service, quiz_id, _ = ctx
    assert service.start_attempt(STRANGER, quiz_id).kind.value == "permission_denied"
    assert service.start_attempt(TEACHER, quiz_id).success


def test_start_rejects_non_quiz_and_missing_lessons(ctx):
    service, _, text_id = ctx
    assert service.start_attempt(STUDENT, text_id).error == "Lesson is not a quiz"
    assert service.start_attempt(STUDENT, "missing").kind.value == "not_found"


def test_foreign_attempt_cannot_be_submitted(ctx):
    service, quiz_id, _ = ctx
    attempt = service.start_attempt(STUDENT, quiz_id).data["attempt"]
    assert service.submit_attempt(STRANGER, attempt["id"], {}).kind.value == "permission_denied"
    assert service.submit_attempt(STUDENT, attempt["id"], ["q1"]).kind.value == "validation"


def test_instructor_sees_attempts_for_own_courses(ctx):
    service, quiz_id, _ = ctx
    service.start_attempt(STUDENT, quiz_id)
    attempts = service.list_instructor_attempts(TEACHER).data["attempts"]
    assert [a["student"]["email"] for a in attempts] == ["student@example.com"]
    assert service.list_instructor_attempts(STRANGER).data["attempts"] == []
