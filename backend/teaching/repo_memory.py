"""
In-memory repository for Teaching (users, courses, topics, lessons, announcements, badges).

Why:
    Keeps the app usable without a database (dev, tests) and mirrors the
    surface of `DBTeachingRepo` so services stay storage-agnostic.

Behavior:
    - Rows are plain dicts; callers receive copies, never internal references.
    - Owner-scoped mutations return None/False when the row is missing or not
      owned, matching the conditional SQL of the Postgres repo.
"""
from __future__ import annotations

from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from .ordering import is_dense, renumber, sort_key


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryTeachingRepo:
    def __init__(self, *, check_invariants: bool = False) -> None:
        self.users: Dict[str, dict] = {}
        self.courses: Dict[str, dict] = {}
        self.settings: Dict[str, dict] = {}
        self.topics: Dict[str, dict] = {}
        self.lessons: Dict[str, dict] = {}
        self.announcements: Dict[str, dict] = {}
        # badges[(course_id, badge_type)] = row
        self.badges: Dict[tuple[str, str], dict] = {}
        self.check_invariants = check_invariants

    # --- Users -----------------------------------------------------------------
    def add_user(self, *, email: str, role: str = "student", full_name: Optional[str] = None, user_id: Optional[str] = None) -> dict:
        uid = user_id or str(uuid4())
        row = {"id": uid, "email": email.strip().lower(), "full_name": full_name, "role": role}
        self.users[uid] = row
        return dict(row)

    def find_user_by_email(self, email: str) -> Optional[dict]:
        needle = (email or "").strip().lower()
        for row in self.users.values():
            if row["email"] == needle:
                return dict(row)
        return None

    def get_user(self, user_id: str) -> Optional[dict]:
        row = self.users.get(user_id)
        return dict(row) if row else None

    # --- Ownership lookups ------------------------------------------------------
    def get_course_owner(self, course_id: str) -> Optional[str]:
        row = self.courses.get(course_id)
        return row["instructor_id"] if row else None

    def get_lesson_course_id(self, lesson_id: str) -> Optional[str]:
        row = self.lessons.get(lesson_id)
        return row["course_id"] if row else None

    def get_topic_course_id(self, topic_id: str) -> Optional[str]:
        row = self.topics.get(topic_id)
        return row["course_id"] if row else None

    # --- Courses ---------------------------------------------------------------
    def create_course(self, instructor_id: str, fields: Dict[str, Any], settings: Dict[str, Any]) -> dict:
        now = _now()
        cid = str(uuid4())
        row = {
            "status": "draft",
            "is_featured": False,
            "featured_until": None,
            "thumbnail_url": None,
            **fields,
            "id": cid,
            "instructor_id": instructor_id,
            "created_at": now,
            "updated_at": now,
        }
        self.courses[cid] = row
        self.settings[cid] = {**settings, "course_id": cid}
        return deepcopy(row)

    def get_course(self, course_id: str) -> Optional[dict]:
        row = self.courses.get(course_id)
        return deepcopy(row) if row else None

    def get_course_with_settings(self, course_id: str) -> Optional[dict]:
        row = self.courses.get(course_id)
        if not row:
            return None
        out = deepcopy(row)
        settings = self.settings.get(course_id)
        out["course_settings"] = [dict(settings)] if settings else []
        return out

    def list_courses_for_instructor(self, instructor_id: str) -> List[dict]:
        items = [c for c in self.courses.values() if c["instructor_id"] == instructor_id]
        items.sort(key=lambda c: c["created_at"], reverse=True)
        out = []
        for c in items:
            row = deepcopy(c)
            row["lesson_count"] = sum(1 for l in self.lessons.values() if l["course_id"] == c["id"])
            out.append(row)
        return out

    def list_courses_by_ids(self, course_ids: Iterable[str]) -> List[dict]:
        return [deepcopy(self.courses[cid]) for cid in course_ids if cid in self.courses]

    def update_course_owned(
        self,
        course_id: str,
        owner_id: str,
        fields: Dict[str, Any],
        settings: Optional[Dict[str, Any]] = None,
    ) -> Optional[dict]:
        row = self.courses.get(course_id)
        if not row or row["instructor_id"] != owner_id:
            return None
        row.update(fields)
        row["updated_at"] = _now()
        if settings is not None:
            current = self.settings.setdefault(course_id, {"course_id": course_id})
            current.update(settings)
        return deepcopy(row)

    # --- Lessons ---------------------------------------------------------------
    def list_lessons(self, course_id: str) -> List[dict]:
        items = [l for l in self.lessons.values() if l["course_id"] == course_id]
        return [deepcopy(l) for l in sorted(items, key=sort_key)]

    def get_lesson(self, lesson_id: str) -> Optional[dict]:
        row = self.lessons.get(lesson_id)
        return deepcopy(row) if row else None

    def create_lesson(self, course_id: str, fields: Dict[str, Any], order_index: int) -> dict:
        now = _now()
        lid = str(uuid4())
        row = {
            "description": None,
            "video_url": None,
            "duration_minutes": 0,
            "content": None,
            "content_type": "lesson",
            "content_data": None,
            "is_preview": False,
            "topic_id": None,
            **deepcopy(fields),
            "id": lid,
            "course_id": course_id,
            "order_index": order_index,
            "created_at": now,
            "updated_at": now,
        }
        self.lessons[lid] = row
        self._check(course_id)
        return deepcopy(row)

    def _owned_lesson(self, lesson_id: str, owner_id: str) -> Optional[dict]:
        row = self.lessons.get(lesson_id)
        if not row or self.get_course_owner(row["course_id"]) != owner_id:
            return None
        return row

    def update_lesson(self, lesson_id: str, owner_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        row = self._owned_lesson(lesson_id, owner_id)
        if row is None:
            return None
        row.update(deepcopy(fields))
        row["updated_at"] = _now()
        return deepcopy(row)

    def delete_lesson(self, lesson_id: str, owner_id: str) -> Optional[List[dict]]:
        row = self._owned_lesson(lesson_id, owner_id)
        if row is None:
            return None
        del self.lessons[lesson_id]
        renumbering = renumber(l for l in self.lessons.values() if l["course_id"] == row["course_id"])
        for pair in renumbering:
            self.lessons[pair["id"]]["order_index"] = pair["order_index"]
        self._check(row["course_id"])
        return renumbering

    def apply_lesson_order(self, course_id: str, pairs: List[dict]) -> None:
        for pair in pairs:
            row = self.lessons.get(pair["id"])
            if row is not None and row["course_id"] == course_id:
                row["order_index"] = pair["order_index"]
                row["updated_at"] = _now()
        self._check(course_id)

    def _check(self, course_id: str) -> None:
        if self.check_invariants:
            indices = [l["order_index"] for l in self.lessons.values() if l["course_id"] == course_id]
            assert is_dense(indices), f"order_index not dense for course {course_id}: {sorted(indices)}"

    # --- Topics ----------------------------------------------------------------
    def list_topics(self, course_id: str) -> List[dict]:
        items = [t for t in self.topics.values() if t["course_id"] == course_id]
        return [deepcopy(t) for t in sorted(items, key=lambda t: sort_key(t, "sort_order"))]

    def get_topic(self, topic_id: str) -> Optional[dict]:
        row = self.topics.get(topic_id)
        return deepcopy(row) if row else None

    def create_topic(self, course_id: str, fields: Dict[str, Any], sort_order: int) -> dict:
        now = _now()
        tid = str(uuid4())
        row = {
            "description": None,
            **deepcopy(fields),
            "id": tid,
            "course_id": course_id,
            "sort_order": sort_order,
            "created_at": now,
            "updated_at": now,
        }
        self.topics[tid] = row
        self._check_topics(course_id)
        return deepcopy(row)

    def _owned_topic(self, topic_id: str, owner_id: str) -> Optional[dict]:
        row = self.topics.get(topic_id)
        if not row or self.get_course_owner(row["course_id"]) != owner_id:
            return None
        return row

    def update_topic(self, topic_id: str, owner_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        row = self._owned_topic(topic_id, owner_id)
        if row is None:
            return None
        row.update(deepcopy(fields))
        row["updated_at"] = _now()
        return deepcopy(row)

    def delete_topic(self, topic_id: str, owner_id: str) -> Optional[List[dict]]:
        row = self._owned_topic(topic_id, owner_id)
        if row is None:
            return None
        del self.topics[topic_id]
        for lesson in self.lessons.values():
            if lesson.get("topic_id") == topic_id:
                lesson["topic_id"] = None
        renumbering = renumber((t for t in self.topics.values() if t["course_id"] == row["course_id"]), "sort_order")
        for pair in renumbering:
            self.topics[pair["id"]]["sort_order"] = pair["sort_order"]
        self._check_topics(row["course_id"])
        return renumbering

    def apply_topic_order(self, course_id: str, pairs: List[dict]) -> None:
        for pair in pairs:
            row = self.topics.get(pair["id"])
            if row is not None and row["course_id"] == course_id:
                row["sort_order"] = pair["sort_order"]
                row["updated_at"] = _now()
        self._check_topics(course_id)

    def _check_topics(self, course_id: str) -> None:
        if self.check_invariants:
            indices = [t["sort_order"] for t in self.topics.values() if t["course_id"] == course_id]
            assert is_dense(indices), f"sort_order not dense for course {course_id}: {sorted(indices)}"

    # --- Announcements ---------------------------------------------------------
    def create_announcement(self, instructor_id: str, fields: Dict[str, Any]) -> dict:
        now = _now()
        aid = str(uuid4())
        row = {
            "course_id": None,
            "priority": "normal",
            "is_active": True,
            **fields,
            "id": aid,
            "instructor_id": instructor_id,
            "created_at": now,
            "updated_at": now,
        }
        self.announcements[aid] = row
        return dict(row)

    def get_announcement(self, announcement_id: str) -> Optional[dict]:
        row = self.announcements.get(announcement_id)
        return dict(row) if row else None

    def update_announcement_owned(self, announcement_id: str, owner_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        row = self.announcements.get(announcement_id)
        if not row or row["instructor_id"] != owner_id:
            return None
        row.update(fields)
        row["updated_at"] = _now()
        return dict(row)

    def delete_announcement_owned(self, announcement_id: str, owner_id: str) -> bool:
        row = self.announcements.get(announcement_id)
        if not row or row["instructor_id"] != owner_id:
            return False
        del self.announcements[announcement_id]
        return True

    def list_announcements_for_instructor(self, instructor_id: str) -> List[dict]:
        items = [dict(a) for a in self.announcements.values() if a["instructor_id"] == instructor_id]
        return sorted(items, key=lambda a: a["created_at"], reverse=True)

    def list_announcements_for_student(self, course_ids: List[str], instructor_ids: List[str]) -> List[dict]:
        wanted_courses = set(course_ids)
        wanted_instructors = set(instructor_ids)
        out = []
        for a in self.announcements.values():
            if not a.get("is_active"):
                continue
            if a.get("course_id") in wanted_courses:
                out.append(dict(a))
            elif a.get("course_id") is None and a["instructor_id"] in wanted_instructors:
                out.append(dict(a))
        return out

    # --- Badges ----------------------------------------------------------------
    def list_badges(self, course_ids: Iterable[str]) -> List[dict]:
        wanted = set(course_ids)
        return [dict(b) for (cid, _), b in self.badges.items() if cid in wanted]

    def upsert_badge(self, course_id: str, badge_type: str, *, metadata: Optional[dict] = None, expires_at: Optional[str] = None) -> dict:
        key = (course_id, badge_type)
        row = self.badges.get(key)
        if row is None:
            row = {"id": str(uuid4()), "course_id": course_id, "badge_type": badge_type, "created_at": _now()}
            self.badges[key] = row
        row["metadata"] = dict(metadata or {})
        row["expires_at"] = expires_at
        return dict(row)

    def delete_badge(self, course_id: str, badge_type: str) -> bool:
        return self.badges.pop((course_id, badge_type), None) is not None


__all__ = ["InMemoryTeachingRepo"]
