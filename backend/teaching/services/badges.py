"""Course badge actions: read, add, remove, feature and recalculate."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.badges import BADGE_CATALOG, DERIVED_BADGES, derived_badges, enrich
from backend.teaching.errors import ActionResult, action, invalid, permission_denied

logger = logging.getLogger("lectern.teaching.badges")


class BadgesRepoProtocol(Protocol):
    def list_badges(self, course_ids: Iterable[str]) -> List[dict]:
        ...

    def upsert_badge(
        self, course_id: str, badge_type: str, *, metadata: Optional[dict] = None, expires_at: Optional[str] = None
    ) -> dict:
        ...

    def delete_badge(self, course_id: str, badge_type: str) -> bool:
        ...

    def get_course_with_settings(self, course_id: str) -> Optional[dict]:
        ...

    def update_course_owned(
        self, course_id: str, owner_id: str, fields: Dict[str, Any], settings: Optional[Dict[str, Any]] = None
    ) -> Optional[dict]:
        ...


@dataclass
class BadgesService:
    repo: BadgesRepoProtocol
    authorizer: OwnershipAuthorizer

    @action("Failed to fetch badges", logger=logger)
    def get_course_badges(self, course_id: str) -> ActionResult:
        return ActionResult.ok(badges=enrich(self.repo.list_badges([course_id])))

    @action("Failed to fetch badges", logger=logger)
    def get_multiple_course_badges(self, course_ids: List[str]) -> ActionResult:
        ids = [c for c in dict.fromkeys(course_ids or []) if c]
        grouped: Dict[str, List[dict]] = {}
        for badge in enrich(self.repo.list_badges(ids) if ids else []):
            grouped.setdefault(badge["course_id"], []).append(badge)
        return ActionResult.ok(badges=grouped)

    def _owner(self, session, course_id: str, verb: str) -> str:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_course_owner(principal.id, course_id, verb)
        return principal.id

    @action("Failed to add badge", logger=logger)
    def add_badge(
        self,
        session,
        course_id: str,
        badge_type: str,
        metadata: Optional[dict] = None,
        expires_at: Optional[str] = None,
    ) -> ActionResult:
        self._owner(session, course_id, "manage badges for this course")
        if badge_type not in BADGE_CATALOG:
            raise invalid("Invalid badge type")
        row = self.repo.upsert_badge(course_id, badge_type, metadata=metadata, expires_at=expires_at)
        return ActionResult.ok(badge=row)

    @action("Failed to remove badge", logger=logger)
    def remove_badge(self, session, course_id: str, badge_type: str) -> ActionResult:
        self._owner(session, course_id, "manage badges for this course")
        if badge_type not in BADGE_CATALOG:
            raise invalid("Invalid badge type")
        self.repo.delete_badge(course_id, badge_type)
        return ActionResult.ok()

    @action("Failed to update featured status", logger=logger)
    def toggle_featured(
        self, session, course_id: str, featured: bool, featured_until: Optional[str] = None
    ) -> ActionResult:
        owner_id = self._owner(session, course_id, "feature this course")
        fields = {"is_featured": bool(featured), "featured_until": featured_until if featured else None}
        if self.repo.update_course_owned(course_id, owner_id, fields) is None:
            raise permission_denied("You do not have permission to feature this course")
        if featured:
            self.repo.upsert_badge(course_id, "featured", expires_at=featured_until)
        else:
            self.repo.delete_badge(course_id, "featured")
        return ActionResult.ok(is_featured=bool(featured))

    @action("Failed to refresh badges", logger=logger)
    def refresh_course_badges(self, session, course_id: str) -> ActionResult:
        self._owner(session, course_id, "manage badges for this course")
        course = self.repo.get_course_with_settings(course_id)
        if course is None:
            raise permission_denied("You do not have permission to manage badges for this course")
        wanted = derived_badges(course)
        current = {b["badge_type"] for b in self.repo.list_badges([course_id])}
        for badge_type in DERIVED_BADGES:
            if wanted[badge_type] and badge_type not in current:
                expires = course.get("featured_until") if badge_type == "featured" else None
                self.repo.upsert_badge(course_id, badge_type, expires_at=expires)
            elif not wanted[badge_type] and badge_type in current:
                self.repo.delete_badge(course_id, badge_type)
        logger.info("badges refreshed course=%s derived=%s", course_id, sorted(k for k, v in wanted.items() if v))
        return ActionResult.ok(badges=enrich(self.repo.list_badges([course_id])))


__all__ = ["BadgesRepoProtocol", "BadgesService"]
