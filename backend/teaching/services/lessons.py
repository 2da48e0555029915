"""Lesson content actions (create/update/delete/reorder/list).

Protocol for every mutation:
    session -> principal -> ownership -> field mapping -> ordering -> persist.
Each public method returns an `ActionResult`; nothing raises past the
`action` decorator.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

from backend.teaching.authz import OwnershipAuthorizer, is_uuid_like
from backend.teaching.errors import ActionResult, action, invalid, permission_denied
from backend.teaching.mapping import lesson_form_to_storage
from backend.teaching.ordering import apply_explicit_order, next_index
from backend.teaching.assignment_content import normalize_assignment_content
from backend.teaching.quiz_content import normalize_quiz_content

logger = logging.getLogger("lectern.teaching.lessons")

CONTENT_TYPES = ("video", "quiz", "assignment", "lesson", "text")
DEFAULT_CONTENT_TYPE = "lesson"

UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "video_url",
        "duration_minutes",
        "content",
        "content_type",
        "content_data",
        "is_preview",
        "topic_id",
    }
)


class LessonsRepoProtocol(Protocol):
    def list_lessons(self, course_id: str) -> List[dict]:
        ...

    def get_lesson(self, lesson_id: str) -> Optional[dict]:
        ...

    def create_lesson(self, course_id: str, fields: Dict[str, Any], order_index: int) -> dict:
        ...

    def update_lesson(self, lesson_id: str, owner_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        ...

    def delete_lesson(self, lesson_id: str, owner_id: str) -> Optional[List[dict]]:
        """Delete and renumber the remaining siblings atomically; None when not owned."""
        ...

    def apply_lesson_order(self, course_id: str, pairs: List[dict]) -> None:
        ...

    def get_lesson_course_id(self, lesson_id: str) -> Optional[str]:
        ...

    def get_topic_course_id(self, topic_id: str) -> Optional[str]:
        ...


def _check_content(fields: Dict[str, Any]) -> None:
    content_type = fields.get("content_type")
    if content_type is not None and content_type not in CONTENT_TYPES:
        raise invalid(f"Invalid content type: {content_type}")
    if content_type == "quiz" and "content_data" in fields:
        try:
            fields["content_data"] = normalize_quiz_content(fields["content_data"])
        except ValueError as exc:
            raise invalid(str(exc)) from exc
        if not fields.get("duration_minutes"):
            fields["duration_minutes"] = 2 * fields["content_data"]["metadata"]["questionCount"]
    if content_type == "assignment" and "content_data" in fields:
        try:
            fields["content_data"] = normalize_assignment_content(fields["content_data"] or {})
        except ValueError as exc:
            raise invalid(str(exc)) from exc


def check_topic(repo: LessonsRepoProtocol, course_id: str, fields: Dict[str, Any]) -> None:
    """A lesson may only be filed under a topic of its own course; empty clears it."""
    if "topic_id" not in fields:
        return
    topic_id = fields["topic_id"] or None
    fields["topic_id"] = topic_id
    if topic_id is None:
        return
    if not is_uuid_like(topic_id) or str(repo.get_topic_course_id(topic_id)) != str(course_id):
        raise invalid("Topic does not belong to this course")


@dataclass
class LessonsService:
    repo: LessonsRepoProtocol
    authorizer: OwnershipAuthorizer

    @action("Failed to create lesson", logger=logger)
    def create_lesson(self, session, payload: Mapping[str, Any]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        course_id = str(payload.get("courseId") or payload.get("course_id") or "").strip()
        if not course_id:
            raise invalid("Course ID and title are required")
        self.authorizer.require_course_owner(principal.id, course_id, "add lessons to this course")

        fields = {k: v for k, v in lesson_form_to_storage(payload).items() if k in UPDATABLE_FIELDS}
        title = (fields.get("title") or "").strip()
        if not title:
            raise invalid("Course ID and title are required")
        fields["title"] = title
        fields["content_type"] = fields.get("content_type") or DEFAULT_CONTENT_TYPE
        fields["duration_minutes"] = fields.get("duration_minutes") or 0
        _check_content(fields)
        check_topic(self.repo, course_id, fields)

        existing = self.repo.list_lessons(course_id)
        order_index = next_index(existing)
        row = self.repo.create_lesson(course_id, fields, order_index)
        logger.info("lesson created course=%s lesson=%s order_index=%s", course_id, row["id"], order_index)
        return ActionResult.ok(lessonId=row["id"], order_index=row["order_index"])

    @action("Failed to update lesson", logger=logger)
    def update_lesson(self, session, lesson_id: str, updates: Mapping[str, Any]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_lesson_owner(principal.id, lesson_id, "update this lesson")

        fields = {k: v for k, v in lesson_form_to_storage(updates).items() if k in UPDATABLE_FIELDS}
        if not fields:
            raise invalid("No valid fields to update")
        if "title" in fields:
            title = (fields["title"] or "").strip()
            if not title:
                raise invalid("Title cannot be empty")
            fields["title"] = title
        if "content_data" in fields and "content_type" not in fields:
            current = self.repo.get_lesson(lesson_id) or {}
            if current.get("content_type") in ("quiz", "assignment"):
                fields["content_type"] = current["content_type"]
        _check_content(fields)
        if "topic_id" in fields:
            check_topic(self.repo, self.repo.get_lesson_course_id(lesson_id), fields)

        if self.repo.update_lesson(lesson_id, principal.id, fields) is None:
            raise permission_denied("You do not have permission to update this lesson")
        return ActionResult.ok()

    @action("Failed to delete lesson", logger=logger)
    def delete_lesson(self, session, lesson_id: str) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_lesson_owner(principal.id, lesson_id, "delete this lesson")

        renumbering = self.repo.delete_lesson(lesson_id, principal.id)
        if renumbering is None:
            raise permission_denied("You do not have permission to delete this lesson")
        logger.info("lesson deleted lesson=%s renumbered=%d", lesson_id, len(renumbering))
        return ActionResult.ok()

    @action("Failed to reorder lessons", logger=logger)
    def reorder_lessons(self, session, course_id: str, order: List[Mapping[str, Any]]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_course_owner(principal.id, course_id, "reorder lessons in this course")

        members = [l["id"] for l in self.repo.list_lessons(course_id)]
        pairs = apply_explicit_order(list(order or []), members)
        self.repo.apply_lesson_order(course_id, pairs)
        return ActionResult.ok()

    @action("Failed to fetch lessons", logger=logger)
    def get_lessons_by_course(self, course_id: str) -> ActionResult:
        return ActionResult.ok(lessons=self.repo.list_lessons(course_id))


__all__ = ["CONTENT_TYPES", "LessonsRepoProtocol", "LessonsService", "UPDATABLE_FIELDS", "check_topic"]
