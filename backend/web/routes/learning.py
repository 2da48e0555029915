"""
Learning API routes: enrollments, quiz attempts and certificates.

Why:
    Students enroll in published courses, track progress, take quizzes and
    claim certificates. Instructors see their course rosters. Certificate
    lookup by number and verification by code are public.

Notes:
    - Persistence follows the teaching repo: when teaching runs on Postgres
      the learning repo does too; otherwise the in-memory learning repo reads
      course titles from the in-memory teaching repo.
    - Tests call `set_learning_repo` / `set_learning_config` for isolation.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from backend.learning.config import LearningConfig, load_learning_config
from backend.learning.repo_memory import InMemoryLearningRepo
from backend.learning.services.certificates import CertificatesService
from backend.learning.services.enrollments import EnrollmentsService
from backend.learning.services.quizzes import QuizzesService
from backend.teaching.authz import OwnershipAuthorizer

from . import teaching as _teaching
from .security import csrf_guard, invalid_id, respond, session_of

try:
    from backend.learning.repo_db import DBLearningRepo  # type: ignore
    from backend.teaching.repo_db import DBTeachingRepo  # type: ignore
except Exception:  # pragma: no cover - optional in some dev envs
    DBLearningRepo = None  # type: ignore
    DBTeachingRepo = None  # type: ignore

learning_router = APIRouter(tags=["Learning"])
logger = logging.getLogger("lectern.web.learning")


# --- Wiring ------------------------------------------------------------------------

def _build_default_repo(teaching_repo):
    if DBLearningRepo is not None and DBTeachingRepo is not None and isinstance(teaching_repo, DBTeachingRepo):
        try:
            return DBLearningRepo()
        except Exception as exc:  # pragma: no cover - DSN missing
            logger.warning("Learning repo unavailable (%s); using in-memory fallback", exc.__class__.__name__)
    return InMemoryLearningRepo(directory=teaching_repo)


_LEARNING_REPO = None
LEARNING_CONFIG: LearningConfig = load_learning_config()


def get_learning_repo():
    global _LEARNING_REPO
    if _LEARNING_REPO is None:
        _LEARNING_REPO = _build_default_repo(_teaching.get_repo())
    return _LEARNING_REPO


def set_learning_repo(repo) -> None:
    """Allow tests to swap the learning repository implementation."""
    global _LEARNING_REPO
    _LEARNING_REPO = repo


def set_learning_config(config: LearningConfig) -> None:
    global LEARNING_CONFIG
    LEARNING_CONFIG = config


def _authorizer() -> OwnershipAuthorizer:
    return OwnershipAuthorizer(_teaching.get_repo())


def _enrollments() -> EnrollmentsService:
    return EnrollmentsService(get_learning_repo(), _teaching.get_repo(), _authorizer())


def _quizzes() -> QuizzesService:
    return QuizzesService(get_learning_repo(), _teaching.get_repo(), _authorizer())


def _certificates() -> CertificatesService:
    return CertificatesService(get_learning_repo(), _teaching.get_repo(), _authorizer(), config=LEARNING_CONFIG)


# --- Request models ----------------------------------------------------------------

class ProgressUpdate(BaseModel):
    # Left untyped so the service reports non-integers as a validation error
    # instead of pydantic coercing "50" to 50.
    progress: Any = None


class SubmitAnswers(BaseModel):
    answers: Dict[str, Any] = Field(default_factory=dict)


# --- Enrollments -------------------------------------------------------------------

@learning_router.post("/api/courses/{course_id}/enroll")
async def enroll(request: Request, course_id: str):
    """Enroll the caller. 201 when a new enrollment was created, 200 when it existed."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    result = _enrollments().enroll(session_of(request), course_id)
    return respond(result, success_status=201 if result.data.get("created") else 200)


@learning_router.put("/api/courses/{course_id}/progress")
async def update_progress(request: Request, course_id: str, payload: ProgressUpdate):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_enrollments().update_progress(session_of(request), course_id, payload.progress))


@learning_router.get("/api/me/enrollments")
async def list_my_enrollments(request: Request):
    return respond(_enrollments().list_my_enrollments(session_of(request)))


@learning_router.get("/api/courses/{course_id}/students")
async def list_course_students(request: Request, course_id: str):
    """Roster of a course; owner only."""
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_enrollments().list_course_students(session_of(request), course_id))


# --- Quiz attempts -----------------------------------------------------------------

@learning_router.post("/api/lessons/{lesson_id}/attempts")
async def start_attempt(request: Request, lesson_id: str):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(lesson_id=lesson_id)
    if bad_id:
        return bad_id
    return respond(_quizzes().start_attempt(session_of(request), lesson_id), success_status=201)


@learning_router.post("/api/attempts/{attempt_id}/submit")
async def submit_attempt(request: Request, attempt_id: str, payload: SubmitAnswers):
    """Score and close an attempt. A second submit is a 409."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(attempt_id=attempt_id)
    if bad_id:
        return bad_id
    return respond(_quizzes().submit_attempt(session_of(request), attempt_id, payload.answers))


@learning_router.get("/api/me/attempts")
async def list_my_attempts(request: Request, lesson_id: Optional[str] = None):
    if lesson_id is not None:
        bad_id = invalid_id(lesson_id=lesson_id)
        if bad_id:
            return bad_id
    return respond(_quizzes().list_attempts(session_of(request), lesson_id))


@learning_router.get("/api/instructor/attempts")
async def list_instructor_attempts(request: Request):
    return respond(_quizzes().list_instructor_attempts(session_of(request)))


# --- Certificates ------------------------------------------------------------------

@learning_router.post("/api/courses/{course_id}/certificate")
async def issue_certificate(request: Request, course_id: str):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    bad_id = invalid_id(course_id=course_id)
    if bad_id:
        return bad_id
    return respond(_certificates().issue_certificate(session_of(request), course_id), success_status=201)


@learning_router.get("/api/me/certificates")
async def list_my_certificates(request: Request):
    return respond(_certificates().list_my_certificates(session_of(request)))


@learning_router.get("/api/certificates/verify/{code}")
async def verify_certificate(request: Request, code: str):
    """Public verification by code (or certificate number)."""
    return respond(_certificates().verify_certificate(code))


@learning_router.get("/api/certificates/{number}")
async def get_certificate(request: Request, number: str):
    return respond(_certificates().get_certificate_by_number(number))


__all__ = [
    "get_learning_repo",
    "learning_router",
    "set_learning_config",
    "set_learning_repo",
]
