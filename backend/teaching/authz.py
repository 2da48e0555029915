"""
Ownership checks for courses, topics and lessons.

Ownership chain:
    lesson -> course -> instructor, and topic -> course -> instructor. A
    lesson or topic is owned by whoever owns its course. Missing rows anywhere
    along the chain mean "deny", never an exception, so callers cannot tell
    "does not exist" from "not yours".
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol
from uuid import UUID

from .errors import permission_denied, unauthorized


class OwnershipRepoProtocol(Protocol):
    def find_user_by_email(self, email: str) -> Optional[dict]:
        ...

    def get_course_owner(self, course_id: str) -> Optional[str]:
        ...

    def get_lesson_course_id(self, lesson_id: str) -> Optional[str]:
        ...

    def get_topic_course_id(self, topic_id: str) -> Optional[str]:
        ...


def is_uuid_like(value: Any) -> bool:
    """Best-effort UUID format check. Malformed ids are treated like missing rows."""
    try:
        UUID(str(value))
    except (ValueError, TypeError):
        return False
    return True


@dataclass
class Principal:
    id: str
    email: str
    role: str


@dataclass
class OwnershipAuthorizer:
    repo: OwnershipRepoProtocol

    def resolve_principal(self, session) -> Principal:
        """Translate the session into the internal user used for ownership checks.

        Raises ActionError(unauthorized) when there is no session or the email
        does not match a known user.
        """
        email = (getattr(session, "email", None) or "").strip() if session is not None else ""
        if not email:
            raise unauthorized()
        user = self.repo.find_user_by_email(email)
        if not user or not user.get("id"):
            raise unauthorized("User not found")
        return Principal(id=str(user["id"]), email=email, role=str(user.get("role") or "student"))

    def resolve_principal_id(self, session_email: str) -> str:
        user = self.repo.find_user_by_email(session_email) if session_email else None
        if not user or not user.get("id"):
            raise unauthorized("User not found")
        return str(user["id"])

    def authorize_course_owner(self, principal_id: str, course_id: str) -> bool:
        if not principal_id or not course_id or not is_uuid_like(course_id):
            return False
        owner = self.repo.get_course_owner(course_id)
        return owner is not None and str(owner) == str(principal_id)

    def authorize_lesson_owner(self, principal_id: str, lesson_id: str) -> bool:
        if not lesson_id or not is_uuid_like(lesson_id):
            return False
        course_id = self.repo.get_lesson_course_id(lesson_id)
        if course_id is None:
            return False
        return self.authorize_course_owner(principal_id, course_id)

    def authorize_topic_owner(self, principal_id: str, topic_id: str) -> bool:
        if not topic_id or not is_uuid_like(topic_id):
            return False
        course_id = self.repo.get_topic_course_id(topic_id)
        if course_id is None:
            return False
        return self.authorize_course_owner(principal_id, course_id)

    def require_course_owner(self, principal_id: str, course_id: str, verb: str = "modify this course") -> None:
        if not self.authorize_course_owner(principal_id, course_id):
            raise permission_denied(f"You do not have permission to {verb}")

    def require_lesson_owner(self, principal_id: str, lesson_id: str, verb: str = "modify this lesson") -> None:
        if not self.authorize_lesson_owner(principal_id, lesson_id):
            raise permission_denied(f"You do not have permission to {verb}")

    def require_topic_owner(self, principal_id: str, topic_id: str, verb: str = "modify this topic") -> None:
        if not self.authorize_topic_owner(principal_id, topic_id):
            raise permission_denied(f"You do not have permission to {verb}")

    @staticmethod
    def require_role(principal: Principal, role: str, detail: str) -> None:
        if principal.role != role and principal.role != "admin":
            raise permission_denied(detail)


__all__ = ["OwnershipAuthorizer", "OwnershipRepoProtocol", "Principal", "is_uuid_like"]
