"""Assignment lessons: lessons with `content_type = "assignment"`.

They live in the course's lesson ordering like every other lesson. Reordering
assignments only permutes them among the positions they already occupy, so
the course-wide `order_index` stays dense.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, List, Mapping, Optional

from backend.teaching.assignment_content import assignment_form_to_content, assignment_to_form
from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.errors import ActionResult, action, invalid, not_found, permission_denied
from backend.teaching.ordering import next_index
from backend.teaching.services.lessons import LessonsRepoProtocol, check_topic

logger = logging.getLogger("lectern.teaching.assignments")

ASSIGNMENT = "assignment"
INVALID_IDS_MESSAGE = "Invalid assignment IDs provided"


def _content(form: Mapping[str, Any]) -> dict:
    try:
        return assignment_form_to_content(form)
    except ValueError as exc:
        raise invalid(str(exc)) from exc


def _topic_of(payload: Mapping[str, Any]) -> Optional[str]:
    return payload.get("topicId") or payload.get("topic_id") or None


@dataclass
class AssignmentsService:
    repo: LessonsRepoProtocol
    authorizer: OwnershipAuthorizer

    def _assignment(self, lesson_id: str) -> dict:
        row = self.repo.get_lesson(lesson_id)
        if row is None or row.get("content_type") != ASSIGNMENT:
            raise not_found("Assignment not found")
        return row

    @action("Failed to create assignment", logger=logger)
    def create_assignment(self, session, course_id: str, payload: Mapping[str, Any]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_course_owner(principal.id, course_id, "modify this course")

        title = str(payload.get("title") or "").strip()
        if not title:
            raise invalid("Title is required")
        content = _content(payload)
        fields = {
            "title": title,
            "description": content["instructions"],
            "content_type": ASSIGNMENT,
            "content_data": content,
            "duration_minutes": 0,
            "is_preview": False,
            "topic_id": _topic_of(payload),
        }
        check_topic(self.repo, course_id, fields)

        order_index = next_index(self.repo.list_lessons(course_id))
        row = self.repo.create_lesson(course_id, fields, order_index)
        logger.info("assignment created course=%s lesson=%s order_index=%s", course_id, row["id"], order_index)
        return ActionResult.ok(lessonId=row["id"], assignment=assignment_to_form(row))

    @action("Failed to update assignment", logger=logger)
    def update_assignment(self, session, lesson_id: str, payload: Mapping[str, Any]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_lesson_owner(principal.id, lesson_id, "modify this assignment")
        current = self._assignment(lesson_id)

        form = {**assignment_to_form(current), **payload}
        title = str(form.get("title") or "").strip()
        if not title:
            raise invalid("Title cannot be empty")
        content = _content(form)
        fields = {"title": title, "description": content["instructions"], "content_data": content}
        if "topicId" in payload or "topic_id" in payload:
            fields["topic_id"] = _topic_of(payload)
            check_topic(self.repo, current["course_id"], fields)

        row = self.repo.update_lesson(lesson_id, principal.id, fields)
        if row is None:
            raise permission_denied("You do not have permission to modify this assignment")
        return ActionResult.ok(assignment=assignment_to_form(row))

    @action("Failed to delete assignment", logger=logger)
    def delete_assignment(self, session, lesson_id: str) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_lesson_owner(principal.id, lesson_id, "delete this assignment")
        self._assignment(lesson_id)

        renumbering = self.repo.delete_lesson(lesson_id, principal.id)
        if renumbering is None:
            raise permission_denied("You do not have permission to delete this assignment")
        logger.info("assignment deleted lesson=%s renumbered=%d", lesson_id, len(renumbering))
        return ActionResult.ok()

    @action("Failed to fetch assignment", logger=logger)
    def get_assignment(self, lesson_id: str) -> ActionResult:
        return ActionResult.ok(assignment=assignment_to_form(self._assignment(lesson_id)))

    @action("Failed to reorder assignments", logger=logger)
    def reorder_assignments(
        self, session, course_id: str, topic_id: Optional[str], assignment_ids: List[str]
    ) -> ActionResult:
        """Put the assignments of one topic (or of no topic) into the given order.

        `assignment_ids` must list exactly that group. The group keeps the set
        of positions it already holds; only who sits where changes.
        """
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_course_owner(principal.id, course_id, "modify this course")

        group = [
            l
            for l in self.repo.list_lessons(course_id)
            if l.get("content_type") == ASSIGNMENT and (l.get("topic_id") or None) == (topic_id or None)
        ]
        ids = [str(i) for i in assignment_ids or []]
        if len(ids) != len(set(ids)) or set(ids) != {str(l["id"]) for l in group}:
            raise invalid(INVALID_IDS_MESSAGE)
        slots = sorted(l["order_index"] for l in group)
        pairs = [{"id": lid, "order_index": slot} for lid, slot in zip(ids, slots)]
        self.repo.apply_lesson_order(course_id, pairs)
        return ActionResult.ok()


__all__ = ["ASSIGNMENT", "AssignmentsService"]
