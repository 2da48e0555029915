"""
In-memory repository for Learning (enrollments, quiz attempts, certificates).

Mirrors `DBLearningRepo`. An optional `directory` (the teaching repo) supplies
course titles and user names for joined listings.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryLearningRepo:
    def __init__(self, directory: Any = None) -> None:
        self.directory = directory
        # enrollments[(user_id, course_id)] = row
        self.enrollments: Dict[tuple[str, str], dict] = {}
        self.attempts: Dict[str, dict] = {}
        self.certificates: Dict[str, dict] = {}

    def _course_brief(self, course_id: str) -> Optional[dict]:
        if self.directory is None:
            return None
        course = self.directory.get_course(course_id)
        return {"id": course["id"], "title": course.get("title")} if course else None

    def _user_brief(self, user_id: str) -> Optional[dict]:
        if self.directory is None:
            return None
        user = self.directory.get_user(user_id)
        return {"id": user["id"], "email": user["email"], "full_name": user.get("full_name")} if user else None

    # --- Enrollments -----------------------------------------------------------
    def get_enrollment(self, user_id: str, course_id: str) -> Optional[dict]:
        row = self.enrollments.get((user_id, course_id))
        return dict(row) if row else None

    def create_enrollment(self, user_id: str, course_id: str) -> tuple[dict, bool]:
        key = (user_id, course_id)
        if key in self.enrollments:
            return dict(self.enrollments[key]), False
        now = _now()
        row = {
            "id": str(uuid4()),
            "user_id": user_id,
            "course_id": course_id,
            "enrolled_at": now,
            "progress": 0,
            "completed_at": None,
            "last_accessed_at": now,
            "status": "active",
        }
        self.enrollments[key] = row
        return dict(row), True

    def update_progress(self, user_id: str, course_id: str, progress: int) -> Optional[dict]:
        row = self.enrollments.get((user_id, course_id))
        if row is None:
            return None
        now = _now()
        row["progress"] = progress
        row["completed_at"] = (row.get("completed_at") or now) if progress == 100 else None
        row["status"] = "completed" if progress == 100 else "active"
        row["last_accessed_at"] = now
        return dict(row)

    def list_enrollments_for_user(self, user_id: str) -> List[dict]:
        items = [dict(r) for (uid, _), r in self.enrollments.items() if uid == user_id]
        for item in items:
            item["course"] = self._course_brief(item["course_id"])
        return sorted(items, key=lambda r: r["enrolled_at"], reverse=True)

    def list_enrollments_for_course(self, course_id: str) -> List[dict]:
        items = [dict(r) for (_, cid), r in self.enrollments.items() if cid == course_id]
        for item in items:
            item["student"] = self._user_brief(item["user_id"])
        return sorted(items, key=lambda r: r["enrolled_at"], reverse=True)

    # --- Quiz attempts ---------------------------------------------------------
    def create_attempt(self, user_id: str, lesson_id: str, course_id: str) -> dict:
        previous = sum(1 for a in self.attempts.values() if a["user_id"] == user_id and a["lesson_id"] == lesson_id)
        now = _now()
        row = {
            "id": str(uuid4()),
            "user_id": user_id,
            "lesson_id": lesson_id,
            "course_id": course_id,
            "started_at": now,
            "completed_at": None,
            "time_spent_seconds": None,
            "score": None,
            "total_points": None,
            "passed": None,
            "answers": None,
            "attempt_number": previous + 1,
            "created_at": now,
        }
        self.attempts[row["id"]] = row
        return dict(row)

    def get_attempt(self, attempt_id: str) -> Optional[dict]:
        row = self.attempts.get(attempt_id)
        return dict(row) if row else None

    def complete_attempt(self, attempt_id: str, user_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        row = self.attempts.get(attempt_id)
        if row is None or row["user_id"] != user_id or row["completed_at"] is not None:
            return None
        row.update(fields)
        return dict(row)

    def list_attempts_for_user(self, user_id: str, lesson_id: Optional[str] = None) -> List[dict]:
        items = [
            dict(a)
            for a in self.attempts.values()
            if a["user_id"] == user_id and (lesson_id is None or a["lesson_id"] == lesson_id)
        ]
        return sorted(items, key=lambda a: (a["created_at"], a["attempt_number"]), reverse=True)

    def list_attempts_for_courses(self, course_ids: Iterable[str]) -> List[dict]:
        wanted = set(course_ids)
        items = [dict(a) for a in self.attempts.values() if a["course_id"] in wanted]
        for item in items:
            item["student"] = self._user_brief(item["user_id"])
        return sorted(items, key=lambda a: a["created_at"], reverse=True)

    def best_quiz_percentages(self, user_id: str, course_id: str) -> List[float]:
        best: Dict[str, float] = {}
        for a in self.attempts.values():
            if a["user_id"] != user_id or a["course_id"] != course_id or a["completed_at"] is None:
                continue
            total = a.get("total_points") or 0
            pct = (a.get("score") or 0) / total * 100 if total else 0.0
            best[a["lesson_id"]] = max(best.get(a["lesson_id"], 0.0), pct)
        return list(best.values())

    # --- Certificates ----------------------------------------------------------
    def get_certificate_for(self, user_id: str, course_id: str) -> Optional[dict]:
        for c in self.certificates.values():
            if c["user_id"] == user_id and c["course_id"] == course_id:
                return dict(c)
        return None

    def create_certificate(self, fields: Dict[str, Any]) -> dict:
        if self.get_certificate_for(fields["user_id"], fields["course_id"]) is not None:
            raise ValueError("certificate_exists")
        for c in self.certificates.values():
            if c["verification_code"] == fields["verification_code"] or c["certificate_number"] == fields["certificate_number"]:
                raise ValueError("identifier_collision")
        row = {"status": "active", "issued_date": _now(), "metadata": {}, **fields, "id": str(uuid4())}
        self.certificates[row["id"]] = row
        return dict(row)

    def _joined(self, row: dict) -> dict:
        out = dict(row)
        out["course"] = self._course_brief(row["course_id"])
        out["student"] = self._user_brief(row["user_id"])
        return out

    def list_certificates_for_user(self, user_id: str) -> List[dict]:
        items = [self._joined(c) for c in self.certificates.values() if c["user_id"] == user_id and c["status"] == "active"]
        return sorted(items, key=lambda c: c["issued_date"], reverse=True)

    def get_certificate_by_number(self, number: str) -> Optional[dict]:
        for c in self.certificates.values():
            if c["certificate_number"] == number:
                return self._joined(c)
        return None

    def get_certificate_by_code(self, code: str) -> Optional[dict]:
        for c in self.certificates.values():
            if c["verification_code"] == code:
                return self._joined(c)
        return None


__all__ = ["InMemoryLearningRepo"]
