"""Course actions: create, edit, status changes and instructor listings.

The course editor works in form shape; persistence works in storage shape.
`backend.teaching.mapping` is the only place that translates between them.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.errors import ActionResult, action, invalid, permission_denied
from backend.teaching.mapping import (
    course_form_to_settings,
    course_form_to_storage,
    course_storage_to_form,
    unmapped_form_fields,
)

logger = logging.getLogger("lectern.teaching.courses")

COURSE_STATUSES = ("draft", "published", "archived")

# Form key -> settings column. Used to upsert only the settings the caller sent.
_SETTINGS_KEYS = {
    "certificateEnabled": "certificate_enabled",
    "certificateTitle": "certificate_title",
    "enrollmentDeadline": "enrollment_deadline",
    "endDate": "end_date",
    "passingGrade": "passing_grade",
    "maxStudents": "max_students",
    "startDate": "start_date",
    "lifetimeAccess": "allow_lifetime_access",
}


class CoursesRepoProtocol(Protocol):
    def create_course(self, instructor_id: str, fields: Dict[str, Any], settings: Dict[str, Any]) -> dict:
        ...

    def get_course(self, course_id: str) -> Optional[dict]:
        ...

    def get_course_with_settings(self, course_id: str) -> Optional[dict]:
        ...

    def update_course_owned(
        self, course_id: str, owner_id: str, fields: Dict[str, Any], settings: Optional[Dict[str, Any]] = None
    ) -> Optional[dict]:
        ...

    def list_courses_for_instructor(self, instructor_id: str) -> List[dict]:
        ...


def _check_prices(regular: Any, discounted: Any) -> None:
    if regular is None or discounted is None:
        return
    if float(discounted) > float(regular):
        raise invalid("Discount price cannot exceed the regular price")


@dataclass
class CoursesService:
    repo: CoursesRepoProtocol
    authorizer: OwnershipAuthorizer

    @action("Failed to create course", logger=logger)
    def create_course(self, session, form: Mapping[str, Any]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_role(principal, "instructor", "You do not have permission to create courses")

        row = course_form_to_storage(form)
        title = (row.get("title") or "").strip()
        if not title:
            raise invalid("Course title is required")
        row["title"] = title
        status = row.get("status") or "draft"
        if status not in COURSE_STATUSES:
            raise invalid(f"Invalid course status: {status}")
        row["status"] = status
        _check_prices(row.get("regular_price"), row.get("discounted_price"))

        extra = unmapped_form_fields(form)
        if extra:
            logger.debug("create_course ignoring unmapped fields: %s", ", ".join(extra))
        created = self.repo.create_course(principal.id, row, course_form_to_settings(form))
        logger.info("course created id=%s instructor=%s", created["id"], principal.id)
        return ActionResult.ok(courseId=created["id"])

    @action("Failed to update course", logger=logger)
    def update_course(self, session, course_id: str, form: Mapping[str, Any]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_course_owner(principal.id, course_id, "update this course")

        row = course_form_to_storage(form, partial=True)
        # Status changes go through update_course_status.
        row.pop("status", None)
        if "title" in row:
            title = (row["title"] or "").strip()
            if not title:
                raise invalid("Course title is required")
            row["title"] = title
        if "regular_price" in row or "discounted_price" in row:
            current = self.repo.get_course(course_id) or {}
            _check_prices(
                row.get("regular_price", current.get("regular_price")),
                row.get("discounted_price", current.get("discounted_price")),
            )

        full_settings = course_form_to_settings(form)
        settings = {col: full_settings[col] for key, col in _SETTINGS_KEYS.items() if key in form}
        if not row and not settings:
            raise invalid("No valid fields to update")
        extra = unmapped_form_fields(form)
        if extra:
            logger.debug("update_course ignoring unmapped fields: %s", ", ".join(extra))
        if self.repo.update_course_owned(course_id, principal.id, row, settings or None) is None:
            raise permission_denied("You do not have permission to update this course")
        return ActionResult.ok()

    @action("Failed to update course status", logger=logger)
    def update_course_status(self, session, course_id: str, status: str) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_course_owner(principal.id, course_id, "change the status of this course")
        if status not in COURSE_STATUSES:
            raise invalid(f"Invalid course status: {status}")
        if self.repo.update_course_owned(course_id, principal.id, {"status": status}) is None:
            raise permission_denied("You do not have permission to change the status of this course")
        logger.info("course status id=%s status=%s", course_id, status)
        return ActionResult.ok(status=status)

    @action("Failed to load course", logger=logger)
    def get_course_for_edit(self, session, course_id: str) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_course_owner(principal.id, course_id, "edit this course")
        row = self.repo.get_course_with_settings(course_id)
        if row is None:
            raise permission_denied("You do not have permission to edit this course")
        return ActionResult.ok(course=course_storage_to_form(row))

    @action("Failed to fetch courses", logger=logger)
    def list_instructor_courses(self, session) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        return ActionResult.ok(courses=self.repo.list_courses_for_instructor(principal.id))


__all__ = ["COURSE_STATUSES", "CoursesRepoProtocol", "CoursesService"]
