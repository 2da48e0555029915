"""Enrollment use cases: enroll, progress tracking and roster listings."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, List, Optional, Protocol

from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.errors import ActionResult, action, invalid, not_found

logger = logging.getLogger("lectern.learning.enrollments")


class EnrollmentsRepoProtocol(Protocol):
    def create_enrollment(self, user_id: str, course_id: str) -> tuple[dict, bool]:
        ...

    def update_progress(self, user_id: str, course_id: str, progress: int) -> Optional[dict]:
        ...

    def list_enrollments_for_user(self, user_id: str) -> List[dict]:
        ...

    def list_enrollments_for_course(self, course_id: str) -> List[dict]:
        ...


class CourseCatalogProtocol(Protocol):
    def get_course(self, course_id: str) -> Optional[dict]:
        ...


def _check_progress(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise invalid("Progress must be an integer between 0 and 100")
    return value


@dataclass
class EnrollmentsService:
    repo: EnrollmentsRepoProtocol
    catalog: CourseCatalogProtocol
    authorizer: OwnershipAuthorizer

    @action("Failed to enroll", logger=logger)
    def enroll(self, session, course_id: str) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        course = self.catalog.get_course(course_id)
        # Unpublished courses are indistinguishable from missing ones.
        if course is None or course.get("status") != "published":
            raise not_found("Course not found")
        row, created = self.repo.create_enrollment(principal.id, course_id)
        if created:
            logger.info("enrolled user=%s course=%s", principal.id, course_id)
        return ActionResult.ok(enrollment=row, created=created)

    @action("Failed to update progress", logger=logger)
    def update_progress(self, session, course_id: str, progress: Any) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        value = _check_progress(progress)
        row = self.repo.update_progress(principal.id, course_id, value)
        if row is None:
            raise not_found("Enrollment not found")
        return ActionResult.ok(enrollment=row)

    @action("Failed to fetch enrollments", logger=logger)
    def list_my_enrollments(self, session) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        return ActionResult.ok(enrollments=self.repo.list_enrollments_for_user(principal.id))

    @action("Failed to fetch students", logger=logger)
    def list_course_students(self, session, course_id: str) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_course_owner(principal.id, course_id, "view the students of this course")
        return ActionResult.ok(students=self.repo.list_enrollments_for_course(course_id))


__all__ = ["CourseCatalogProtocol", "EnrollmentsRepoProtocol", "EnrollmentsService"]
