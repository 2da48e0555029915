"""
Teaching API routes: courses, topics, lessons, assignments, announcements,
badges and media.

Why:
    Thin adapter between HTTP and the teaching services. Each handler reads
    the session from `request.state`, applies the CSRF guard on writes,
    calls one service method and maps the envelope to a status code.

Notes:
    - Persistence: prefers the Postgres-backed repo when psycopg and a DSN
      are available and reachable; falls back to the in-memory repo for tests
      and offline work. Tests call `set_repo` to inject their own instance.
    - Every response carries `Cache-Control: private, no-store`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Query, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import field_validator

from backend.storage.config import MediaSettings, load_media_settings
from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.repo_memory import InMemoryTeachingRepo
from backend.teaching.services.announcements import AnnouncementsService
from backend.teaching.services.assignments import AssignmentsService
from backend.teaching.services.badges import BadgesService
from backend.teaching.services.courses import CoursesService
from backend.teaching.services.lessons import LessonsService
from backend.teaching.services.media import MediaService
from backend.teaching.services.topics import TopicsService
from backend.teaching.storage import NullStorageAdapter, StorageAdapterProtocol

from .security import body_dict, csrf_guard, invalid_id, is_uuid_like, respond, session_of

try:
    from backend.teaching.repo_db import DBTeachingRepo  # type: ignore
    _DB_REPO_IMPORT_ERROR: Exception | None = None
except Exception as exc:  # pragma: no cover - optional in some dev envs
    DBTeachingRepo = None  # type: ignore
    _DB_REPO_IMPORT_ERROR = exc

teaching_router = APIRouter(tags=["Teaching"])
logger = logging.getLogger("lectern.web.teaching")


# --- Wiring ------------------------------------------------------------------------

def _build_default_repo():
    """Prefer the DB-backed repo; fall back to in-memory when unavailable."""
    if DBTeachingRepo is None:
        if _DB_REPO_IMPORT_ERROR:
            logger.warning("Teaching repo import failed: %s", _DB_REPO_IMPORT_ERROR)
        return InMemoryTeachingRepo()
    try:
        repo = DBTeachingRepo()
        repo.ping()
        return repo
    except Exception as exc:  # pragma: no cover - exercised when DSN missing or DB down
        logger.warning("Teaching repo unavailable (%s); using in-memory fallback", exc.__class__.__name__)
        return InMemoryTeachingRepo()


_REPO = None
STORAGE_ADAPTER: StorageAdapterProtocol = NullStorageAdapter()
MEDIA_SETTINGS: MediaSettings = load_media_settings()


def get_repo():
    """Lazy accessor; avoids DB checks at import time."""
    global _REPO
    if _REPO is None:
        _REPO = _build_default_repo()
    return _REPO


def set_repo(repo) -> None:
    """Allow tests to swap the teaching repository implementation."""
    global _REPO
    _REPO = repo


def set_storage_adapter(adapter: StorageAdapterProtocol) -> None:
    global STORAGE_ADAPTER
    STORAGE_ADAPTER = adapter


def set_media_settings(settings: MediaSettings) -> None:
    global MEDIA_SETTINGS
    MEDIA_SETTINGS = settings


def _authorizer() -> OwnershipAuthorizer:
    return OwnershipAuthorizer(get_repo())


def _courses() -> CoursesService:
    return CoursesService(get_repo(), _authorizer())


def _lessons() -> LessonsService:
    return LessonsService(get_repo(), _authorizer())


def _topics() -> TopicsService:
    return TopicsService(get_repo(), _authorizer())


def _assignments() -> AssignmentsService:
    return AssignmentsService(get_repo(), _authorizer())


def _badges() -> BadgesService:
    return BadgesService(get_repo(), _authorizer())


def _media() -> MediaService:
    return MediaService(_authorizer(), get_repo(), storage=STORAGE_ADAPTER, settings=MEDIA_SETTINGS)


def _announcements() -> AnnouncementsService:
    # Learning owns enrollments and imports this module, so resolve it lazily.
    from .learning import get_learning_repo

    return AnnouncementsService(get_repo(), _authorizer(), get_learning_repo())


# --- Request models ----------------------------------------------------------------

class StatusUpdate(BaseModel):
    status: str = Field(..., min_length=1, max_length=32)


class LessonOrderItem(BaseModel):
    id: str = Field(..., min_length=1)
    order: Any = None
    order_index: Any = None


class ReorderRequest(BaseModel):
    lessons: List[LessonOrderItem]


class TopicOrderItem(BaseModel):
    id: str = Field(..., min_length=1)
    sort_order: Any = None
    order: Any = None


class TopicReorderRequest(BaseModel):
    topics: List[TopicOrderItem]


class AssignmentReorderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topic_id: Optional[str] = Field(default=None, alias="topicId")
    assignment_ids: List[str] = Field(..., alias="assignmentIds")


class BadgeAdd(BaseModel):
    metadata: Optional[Dict[str, Any]] = None
    expires_at: Optional[str] = None


class FeaturedToggle(BaseModel):
    featured: bool
    featured_until: Optional[str] = None


class UploadIntentRequest(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    mime_type: str = Field(..., min_length=1, max_length=128)
    size_bytes: int

    @field_validator("mime_type")
    @classmethod
    def _lower_mime(cls, value: str) -> str:
        return value.strip().lower()


class FinalizeRequest(BaseModel):
    storage_key: str = Field(..., min_length=1, max_length=512)


# --- Courses -----------------------------------------------------------------------

@teaching_router.post("/api/courses")
async def create_course(request: Request, payload: Dict[str, Any] = Body(...)):
    """Create a course owned by the caller (instructor only). 201 on success."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    return respond(_courses().create_course(session_of(request), payload), success_status=201)


@teaching_router.get("/api/courses")
async def list_courses(request: Request):
    return respond(_courses().list_instructor_courses(session_of(request)))


@teaching_router.get("/api/courses/{course_id}")
async def get_course(request: Request, course_id: str):
    """Owner-only edit view in form shape."""
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_courses().get_course_for_edit(session_of(request), course_id))


@teaching_router.patch("/api/courses/{course_id}")
async def update_course(request: Request, course_id: str, payload: Dict[str, Any] = Body(...)):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_courses().update_course(session_of(request), course_id, payload))


@teaching_router.post("/api/courses/{course_id}/status")
async def update_course_status(request: Request, course_id: str, payload: StatusUpdate):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_courses().update_course_status(session_of(request), course_id, payload.status))


# --- Lessons -----------------------------------------------------------------------

@teaching_router.get("/api/courses/{course_id}/lessons")
async def list_lessons(request: Request, course_id: str):
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_lessons().get_lessons_by_course(course_id))


@teaching_router.post("/api/courses/{course_id}/lessons")
async def create_lesson(request: Request, course_id: str, payload: Dict[str, Any] = Body(...)):
    """Append a lesson to the course. The path id wins over any body courseId."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    form = {**body_dict(payload), "courseId": course_id}
    form.pop("course_id", None)
    return respond(_lessons().create_lesson(session_of(request), form), success_status=201)


@teaching_router.post("/api/courses/{course_id}/lessons/reorder")
async def reorder_lessons(request: Request, course_id: str, payload: ReorderRequest):
    """Apply an explicit full ordering. Positions must be 0..n-1."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    order = [
        {"id": item.id, "order": item.order if item.order is not None else item.order_index}
        for item in payload.lessons
    ]
    return respond(_lessons().reorder_lessons(session_of(request), course_id, order))


@teaching_router.patch("/api/lessons/{lesson_id}")
async def update_lesson(request: Request, lesson_id: str, payload: Dict[str, Any] = Body(...)):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(lesson_id=lesson_id)
    if bad_id:
        return bad_id
    return respond(_lessons().update_lesson(session_of(request), lesson_id, body_dict(payload)))


@teaching_router.delete("/api/lessons/{lesson_id}")
async def delete_lesson(request: Request, lesson_id: str):
    """Delete a lesson and close the gap in its course's ordering."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(lesson_id=lesson_id)
    if bad_id:
        return bad_id
    return respond(_lessons().delete_lesson(session_of(request), lesson_id))


# --- Topics ------------------------------------------------------------------------

@teaching_router.get("/api/courses/{course_id}/topics")
async def list_topics(request: Request, course_id: str):
    """Curriculum sections in order, each with its lessons."""
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_topics().get_topics_by_course(course_id))


@teaching_router.post("/api/courses/{course_id}/topics")
async def create_topic(request: Request, course_id: str, payload: Dict[str, Any] = Body(...)):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_topics().create_topic(session_of(request), course_id, body_dict(payload)), success_status=201)


@teaching_router.post("/api/courses/{course_id}/topics/reorder")
async def reorder_topics(request: Request, course_id: str, payload: TopicReorderRequest):
    """Apply an explicit full topic ordering. Positions must be 0..n-1."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    order = [
        {"id": item.id, "sort_order": item.sort_order if item.sort_order is not None else item.order}
        for item in payload.topics
    ]
    return respond(_topics().reorder_topics(session_of(request), course_id, order))


@teaching_router.patch("/api/topics/{topic_id}")
async def update_topic(request: Request, topic_id: str, payload: Dict[str, Any] = Body(...)):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(topic_id=topic_id)
    if bad_id:
        return bad_id
    return respond(_topics().update_topic(session_of(request), topic_id, body_dict(payload)))


@teaching_router.delete("/api/topics/{topic_id}")
async def delete_topic(request: Request, topic_id: str):
    """Delete a topic; its lessons stay in the course without a topic."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(topic_id=topic_id)
    if bad_id:
        return bad_id
    return respond(_topics().delete_topic(session_of(request), topic_id))


# --- Assignments -------------------------------------------------------------------

@teaching_router.post("/api/courses/{course_id}/assignments")
async def create_assignment(request: Request, course_id: str, payload: Dict[str, Any] = Body(...)):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(
        _assignments().create_assignment(session_of(request), course_id, body_dict(payload)), success_status=201
    )


@teaching_router.post("/api/courses/{course_id}/assignments/reorder")
async def reorder_assignments(request: Request, course_id: str, payload: AssignmentReorderRequest):
    """Reorder the assignments of one topic within the positions they already hold."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(
        _assignments().reorder_assignments(session_of(request), course_id, payload.topic_id, payload.assignment_ids)
    )


@teaching_router.get("/api/assignments/{lesson_id}")
async def get_assignment(request: Request, lesson_id: str):
    bad_id = invalid_id(lesson_id=lesson_id)
    if bad_id:
        return bad_id
    return respond(_assignments().get_assignment(lesson_id))


@teaching_router.patch("/api/assignments/{lesson_id}")
async def update_assignment(request: Request, lesson_id: str, payload: Dict[str, Any] = Body(...)):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(lesson_id=lesson_id)
    if bad_id:
        return bad_id
    return respond(_assignments().update_assignment(session_of(request), lesson_id, body_dict(payload)))


@teaching_router.delete("/api/assignments/{lesson_id}")
async def delete_assignment(request: Request, lesson_id: str):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(lesson_id=lesson_id)
    if bad_id:
        return bad_id
    return respond(_assignments().delete_assignment(session_of(request), lesson_id))


# --- Announcements -----------------------------------------------------------------

@teaching_router.post("/api/announcements")
async def create_announcement(request: Request, payload: Dict[str, Any] = Body(...)):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    return respond(
        _announcements().create_announcement(session_of(request), body_dict(payload)), success_status=201
    )


@teaching_router.get("/api/announcements")
async def list_instructor_announcements(request: Request):
    return respond(_announcements().list_instructor_announcements(session_of(request)))


@teaching_router.get("/api/student/announcements")
async def list_student_announcements(request: Request):
    return respond(_announcements().list_student_announcements(session_of(request)))


@teaching_router.get("/api/announcements/{announcement_id}")
async def get_announcement(request: Request, announcement_id: str):
    bad_id = invalid_id(announcement_id=announcement_id)
    if bad_id:
        return bad_id
    return respond(_announcements().get_announcement(session_of(request), announcement_id))


@teaching_router.patch("/api/announcements/{announcement_id}")
async def update_announcement(request: Request, announcement_id: str, payload: Dict[str, Any] = Body(...)):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(announcement_id=announcement_id)
    if bad_id:
        return bad_id
    return respond(
        _announcements().update_announcement(session_of(request), announcement_id, body_dict(payload))
    )


@teaching_router.delete("/api/announcements/{announcement_id}")
async def delete_announcement(request: Request, announcement_id: str):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(announcement_id=announcement_id)
    if bad_id:
        return bad_id
    return respond(_announcements().delete_announcement(session_of(request), announcement_id))


# --- Badges ------------------------------------------------------------------------

@teaching_router.get("/api/badges")
async def list_badges_for_courses(request: Request, course_ids: List[str] = Query(default=[])):
    """Badges grouped per course for catalog listings (public). Malformed ids are skipped."""
    return respond(_badges().get_multiple_course_badges([cid for cid in course_ids if is_uuid_like(cid)]))


@teaching_router.get("/api/courses/{course_id}/badges")
async def get_course_badges(request: Request, course_id: str):
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_badges().get_course_badges(course_id))


@teaching_router.put("/api/courses/{course_id}/badges/{badge_type}")
async def add_badge(request: Request, course_id: str, badge_type: str, payload: BadgeAdd | None = None):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    body = payload or BadgeAdd()
    return respond(
        _badges().add_badge(
            session_of(request), course_id, badge_type, metadata=body.metadata, expires_at=body.expires_at
        )
    )


@teaching_router.delete("/api/courses/{course_id}/badges/{badge_type}")
async def remove_badge(request: Request, course_id: str, badge_type: str):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_badges().remove_badge(session_of(request), course_id, badge_type))


@teaching_router.post("/api/courses/{course_id}/featured")
async def toggle_featured(request: Request, course_id: str, payload: FeaturedToggle):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(
        _badges().toggle_featured(session_of(request), course_id, payload.featured, payload.featured_until)
    )


@teaching_router.post("/api/courses/{course_id}/badges/refresh")
async def refresh_badges(request: Request, course_id: str):
    """Recompute the derived badges (sale, certified, new, featured)."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_badges().refresh_course_badges(session_of(request), course_id))


# --- Media -------------------------------------------------------------------------

@teaching_router.post("/api/courses/{course_id}/thumbnail/upload-intent")
async def thumbnail_upload_intent(request: Request, course_id: str, payload: UploadIntentRequest):
    """Presigned upload for a course thumbnail. The browser uploads directly to storage."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    result = _media().create_thumbnail_upload(
        session_of(request), course_id, payload.filename, payload.mime_type, payload.size_bytes
    )
    return respond(result)


@teaching_router.post("/api/courses/{course_id}/thumbnail/finalize")
async def thumbnail_finalize(request: Request, course_id: str, payload: FinalizeRequest):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_media().finalize_thumbnail(session_of(request), course_id, payload.storage_key))


@teaching_router.post("/api/lessons/{lesson_id}/video/upload-intent")
async def video_upload_intent(request: Request, lesson_id: str, payload: UploadIntentRequest):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(lesson_id=lesson_id)
    if bad_id:
        return bad_id
    result = _media().create_lesson_video_upload(
        session_of(request), lesson_id, payload.filename, payload.mime_type, payload.size_bytes
    )
    return respond(result)


@teaching_router.post("/api/lessons/{lesson_id}/video/finalize")
async def video_finalize(request: Request, lesson_id: str, payload: FinalizeRequest):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(lesson_id=lesson_id)
    if bad_id:
        return bad_id
    return respond(_media().finalize_lesson_video(session_of(request), lesson_id, payload.storage_key))


__all__ = [
    "get_repo",
    "set_media_settings",
    "set_repo",
    "set_storage_adapter",
    "teaching_router",
]
