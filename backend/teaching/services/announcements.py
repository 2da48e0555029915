"""Announcement actions for instructors and their students."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.errors import ActionResult, action, invalid, permission_denied

logger = logging.getLogger("lectern.teaching.announcements")

PRIORITIES = ("normal", "important", "urgent")
_PRIORITY_RANK = {"urgent": 0, "important": 1, "normal": 2}
_MUTABLE_FIELDS = ("title", "content", "course_id", "priority", "is_active")


class AnnouncementsRepoProtocol(Protocol):
    def create_announcement(self, instructor_id: str, fields: Dict[str, Any]) -> dict:
        ...

    def get_announcement(self, announcement_id: str) -> Optional[dict]:
        ...

    def update_announcement_owned(self, announcement_id: str, owner_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        ...

    def delete_announcement_owned(self, announcement_id: str, owner_id: str) -> bool:
        ...

    def list_announcements_for_instructor(self, instructor_id: str) -> List[dict]:
        ...

    def list_announcements_for_student(self, course_ids: List[str], instructor_ids: List[str]) -> List[dict]:
        ...

    def list_courses_for_instructor(self, instructor_id: str) -> List[dict]:
        ...

    def list_courses_by_ids(self, course_ids: Iterable[str]) -> List[dict]:
        ...


class EnrollmentLookupProtocol(Protocol):
    def list_enrollments_for_user(self, user_id: str) -> List[dict]:
        ...


def _brief(course: Mapping[str, Any]) -> dict:
    return {"id": course["id"], "title": course.get("title")}


def _newest_first(items: List[dict]) -> List[dict]:
    return sorted(items, key=lambda a: a.get("created_at") or "", reverse=True)


def _clean_fields(data: Mapping[str, Any], *, partial: bool) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for key in _MUTABLE_FIELDS:
        if key in data:
            fields[key] = data[key]
    for key in ("title", "content"):
        if key in fields or not partial:
            value = fields.get(key)
            if not isinstance(value, str) or not value.strip():
                raise invalid(f"Announcement {key} is required")
            fields[key] = value.strip()
    if "priority" in fields or not partial:
        priority = fields.get("priority") or "normal"
        if priority not in PRIORITIES:
            raise invalid(f"Invalid priority: {priority}")
        fields["priority"] = priority
    if "is_active" in fields or not partial:
        fields["is_active"] = fields.get("is_active") is not False
    if "course_id" in fields:
        fields["course_id"] = fields["course_id"] or None
    return fields


@dataclass
class AnnouncementsService:
    repo: AnnouncementsRepoProtocol
    authorizer: OwnershipAuthorizer
    enrollments: EnrollmentLookupProtocol

    @action("Failed to create announcement", logger=logger)
    def create_announcement(self, session, data: Mapping[str, Any]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_role(principal, "instructor", "You do not have permission to create announcements")
        fields = _clean_fields(data, partial=False)
        if fields.get("course_id"):
            self.authorizer.require_course_owner(
                principal.id, fields["course_id"], "create announcements for this course"
            )
        row = self.repo.create_announcement(principal.id, fields)
        return ActionResult.ok(data=row)

    @action("Failed to update announcement", logger=logger)
    def update_announcement(self, session, announcement_id: str, data: Mapping[str, Any]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        existing = self.repo.get_announcement(announcement_id)
        if not existing or existing["instructor_id"] != principal.id:
            raise permission_denied("You do not have permission to update this announcement")
        fields = _clean_fields(data, partial=True)
        if not fields:
            raise invalid("No valid fields to update")
        if fields.get("course_id") and fields["course_id"] != existing.get("course_id"):
            self.authorizer.require_course_owner(
                principal.id, fields["course_id"], "move announcements to this course"
            )
        row = self.repo.update_announcement_owned(announcement_id, principal.id, fields)
        if row is None:
            raise permission_denied("You do not have permission to update this announcement")
        return ActionResult.ok(data=row)

    @action("Failed to delete announcement", logger=logger)
    def delete_announcement(self, session, announcement_id: str) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        if not self.repo.delete_announcement_owned(announcement_id, principal.id):
            raise permission_denied("You do not have permission to delete this announcement")
        return ActionResult.ok()

    @action("Failed to fetch announcements", logger=logger)
    def list_instructor_announcements(self, session) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_role(principal, "instructor", "You do not have permission to manage announcements")
        announcements = _newest_first(self.repo.list_announcements_for_instructor(principal.id))
        courses = sorted(
            (_brief(c) for c in self.repo.list_courses_for_instructor(principal.id)),
            key=lambda c: c.get("title") or "",
        )
        return ActionResult.ok(announcements=announcements, courses=courses)

    def _visible_scope(self, user_id: str) -> tuple[List[dict], List[str], List[str]]:
        course_ids = [e["course_id"] for e in self.enrollments.list_enrollments_for_user(user_id)]
        courses = self.repo.list_courses_by_ids(course_ids) if course_ids else []
        instructor_ids = sorted({c["instructor_id"] for c in courses if c.get("instructor_id")})
        return courses, course_ids, instructor_ids

    @action("Failed to fetch announcements", logger=logger)
    def list_student_announcements(self, session) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        courses, course_ids, instructor_ids = self._visible_scope(principal.id)
        if not course_ids:
            return ActionResult.ok(announcements=[], courses=[])
        items = _newest_first(self.repo.list_announcements_for_student(course_ids, instructor_ids))
        # Stable sort keeps newest-first inside each priority bucket.
        items.sort(key=lambda a: _PRIORITY_RANK.get(a.get("priority") or "normal", 2))
        return ActionResult.ok(
            announcements=items,
            courses=sorted((_brief(c) for c in courses), key=lambda c: c.get("title") or ""),
        )

    @action("Failed to fetch announcement", logger=logger)
    def get_announcement(self, session, announcement_id: str) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        row = self.repo.get_announcement(announcement_id)
        denied = permission_denied("You do not have permission to view this announcement")
        if row is None:
            raise denied
        if principal.role in ("instructor", "admin") and row["instructor_id"] == principal.id:
            return ActionResult.ok(data=row)
        if principal.role == "instructor":
            raise denied
        if not row.get("is_active"):
            raise denied
        _, course_ids, instructor_ids = self._visible_scope(principal.id)
        if row.get("course_id") in course_ids:
            return ActionResult.ok(data=row)
        if row.get("course_id") is None and row["instructor_id"] in instructor_ids:
            return ActionResult.ok(data=row)
        raise denied


__all__ = ["AnnouncementsService", "AnnouncementsRepoProtocol", "EnrollmentLookupProtocol", "PRIORITIES"]
