"""Curriculum topics: the sections a course's lessons are grouped under.

Topics carry their own dense `sort_order` per course. Deleting a topic keeps
its lessons; they simply lose their `topic_id`.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.errors import ActionResult, action, invalid, permission_denied
from backend.teaching.mapping import topic_form_to_storage
from backend.teaching.ordering import apply_explicit_order, next_index

logger = logging.getLogger("lectern.teaching.topics")


class TopicsRepoProtocol(Protocol):
    def list_topics(self, course_id: str) -> List[dict]:
        ...

    def create_topic(self, course_id: str, fields: Dict[str, Any], sort_order: int) -> dict:
        ...

    def update_topic(self, topic_id: str, owner_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        ...

    def delete_topic(self, topic_id: str, owner_id: str) -> Optional[List[dict]]:
        ...

    def apply_topic_order(self, course_id: str, pairs: List[dict]) -> None:
        ...

    def list_lessons(self, course_id: str) -> List[dict]:
        ...


@dataclass
class TopicsService:
    repo: TopicsRepoProtocol
    authorizer: OwnershipAuthorizer

    @action("Failed to create topic", logger=logger)
    def create_topic(self, session, course_id: str, payload: Mapping[str, Any]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_course_owner(principal.id, course_id, "add topics to this course")

        fields = topic_form_to_storage(payload)
        title = (fields.get("title") or "").strip()
        if not title:
            raise invalid("Topic title is required")
        fields["title"] = title
        sort_order = next_index(self.repo.list_topics(course_id))
        row = self.repo.create_topic(course_id, fields, sort_order)
        logger.info("topic created course=%s topic=%s sort_order=%s", course_id, row["id"], sort_order)
        return ActionResult.ok(topic=row)

    @action("Failed to update topic", logger=logger)
    def update_topic(self, session, topic_id: str, payload: Mapping[str, Any]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_topic_owner(principal.id, topic_id, "update this topic")

        fields = topic_form_to_storage(payload)
        if not fields:
            raise invalid("No valid fields to update")
        if "title" in fields:
            title = (fields["title"] or "").strip()
            if not title:
                raise invalid("Title cannot be empty")
            fields["title"] = title
        row = self.repo.update_topic(topic_id, principal.id, fields)
        if row is None:
            raise permission_denied("You do not have permission to update this topic")
        return ActionResult.ok(topic=row)

    @action("Failed to delete topic", logger=logger)
    def delete_topic(self, session, topic_id: str) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_topic_owner(principal.id, topic_id, "delete this topic")

        renumbering = self.repo.delete_topic(topic_id, principal.id)
        if renumbering is None:
            raise permission_denied("You do not have permission to delete this topic")
        logger.info("topic deleted topic=%s renumbered=%d", topic_id, len(renumbering))
        return ActionResult.ok()

    @action("Failed to reorder topics", logger=logger)
    def reorder_topics(self, session, course_id: str, order: List[Mapping[str, Any]]) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_course_owner(principal.id, course_id, "reorder topics in this course")

        members = [t["id"] for t in self.repo.list_topics(course_id)]
        pairs = apply_explicit_order(
            list(order or []),
            members,
            noun="topic",
            field="sort_order",
            position_keys=("sort_order", "order"),
        )
        self.repo.apply_topic_order(course_id, pairs)
        return ActionResult.ok()

    @action("Failed to fetch topics", logger=logger)
    def get_topics_by_course(self, course_id: str) -> ActionResult:
        """Topics in `sort_order`, each with its lessons in course order."""
        by_topic: Dict[str, List[dict]] = {}
        for lesson in self.repo.list_lessons(course_id):
            if lesson.get("topic_id"):
                by_topic.setdefault(str(lesson["topic_id"]), []).append(lesson)
        topics = []
        for topic in self.repo.list_topics(course_id):
            topics.append({**topic, "lessons": by_topic.get(str(topic["id"]), [])})
        return ActionResult.ok(topics=topics)


__all__ = ["TopicsRepoProtocol", "TopicsService"]
