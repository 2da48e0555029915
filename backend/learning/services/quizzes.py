"""Quiz attempts: start, submit (score) and list.

Attempt state machine: started -> submitted. A submitted attempt is final;
resubmitting it is a conflict.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

from backend.learning.scoring import score_answers
from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.errors import ActionResult, action, conflict, invalid, not_found, permission_denied
from backend.teaching.quiz_content import parse_quiz_content

logger = logging.getLogger("lectern.learning.quizzes")

ALREADY_COMPLETED = "This quiz attempt has already been completed"


class QuizAttemptsRepoProtocol(Protocol):
    def get_enrollment(self, user_id: str, course_id: str) -> Optional[dict]:
        ...

    def create_attempt(self, user_id: str, lesson_id: str, course_id: str) -> dict:
        ...

    def get_attempt(self, attempt_id: str) -> Optional[dict]:
        ...

    def complete_attempt(self, attempt_id: str, user_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        ...

    def list_attempts_for_user(self, user_id: str, lesson_id: Optional[str] = None) -> List[dict]:
        ...

    def list_attempts_for_courses(self, course_ids: List[str]) -> List[dict]:
        ...


class LessonCatalogProtocol(Protocol):
    def get_lesson(self, lesson_id: str) -> Optional[dict]:
        ...

    def list_courses_for_instructor(self, instructor_id: str) -> List[dict]:
        ...


def _elapsed_seconds(started_at: Any, now: datetime) -> int:
    try:
        started = datetime.fromisoformat(str(started_at).replace("Z", "+00:00"))
    except ValueError:
        return 0
    if started.tzinfo is None:
        started = started.replace(tzinfo=timezone.utc)
    return max(0, int((now - started).total_seconds()))


@dataclass
class QuizzesService:
    repo: QuizAttemptsRepoProtocol
    catalog: LessonCatalogProtocol
    authorizer: OwnershipAuthorizer

    def _quiz_lesson(self, lesson_id: str) -> dict:
        lesson = self.catalog.get_lesson(lesson_id)
        if lesson is None:
            raise not_found("Lesson not found")
        if lesson.get("content_type") != "quiz":
            raise invalid("Lesson is not a quiz")
        return lesson

    @action("Failed to start quiz", logger=logger)
    def start_attempt(self, session, lesson_id: str) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        lesson = self._quiz_lesson(lesson_id)
        course_id = lesson["course_id"]
        enrolled = self.repo.get_enrollment(principal.id, course_id) is not None
        if not enrolled and not self.authorizer.authorize_course_owner(principal.id, course_id):
            raise permission_denied("You do not have permission to take this quiz")
        row = self.repo.create_attempt(principal.id, lesson_id, course_id)
        return ActionResult.ok(attempt=row)

    @action("Failed to submit quiz", logger=logger)
    def submit_attempt(self, session, attempt_id: str, answers: Mapping[str, Any]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        if not isinstance(answers, Mapping):
            raise invalid("Answers must be an object keyed by question id")
        attempt = self.repo.get_attempt(attempt_id)
        if attempt is None or attempt["user_id"] != principal.id:
            raise permission_denied("You do not have permission to submit this attempt")
        if attempt.get("completed_at"):
            raise conflict(ALREADY_COMPLETED)

        lesson = self._quiz_lesson(attempt["lesson_id"])
        try:
            quiz = parse_quiz_content(lesson.get("content_data"))
        except ValueError as exc:
            raise invalid(str(exc)) from exc
        result = score_answers(quiz.questions, answers)
        passed = result.passed(quiz.settings.passing_score)

        now = datetime.now(timezone.utc)
        fields = {
            "completed_at": now.isoformat(),
            "time_spent_seconds": _elapsed_seconds(attempt["started_at"], now),
            "score": result.score,
            "total_points": result.total_points,
            "passed": passed,
            "answers": {qid: r.to_dict() for qid, r in result.results.items()},
        }
        row = self.repo.complete_attempt(attempt_id, principal.id, fields)
        if row is None:
            # Lost the race against a concurrent submit.
            raise conflict(ALREADY_COMPLETED)
        logger.info("quiz submitted attempt=%s passed=%s", attempt_id, passed)
        return ActionResult.ok(attempt=row, percentage=result.percentage, needsReview=result.needs_review)

    @action("Failed to fetch quiz attempts", logger=logger)
    def list_attempts(self, session, lesson_id: Optional[str] = None) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        return ActionResult.ok(attempts=self.repo.list_attempts_for_user(principal.id, lesson_id))

    @action("Failed to fetch quiz attempts", logger=logger)
    def list_instructor_attempts(self, session) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        course_ids = [c["id"] for c in self.catalog.list_courses_for_instructor(principal.id)]
        attempts = self.repo.list_attempts_for_courses(course_ids) if course_ids else []
        return ActionResult.ok(attempts=attempts)


__all__ = ["ALREADY_COMPLETED", "LessonCatalogProtocol", "QuizAttemptsRepoProtocol", "QuizzesService"]
