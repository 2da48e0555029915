"""Postgres-backed repository for the Learning context (enrollments, attempts, certificates)."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import UUID
import os

try:  # pragma: no cover -- optional dependency in some environments
    import psycopg
    from psycopg.errors import UniqueViolation
    from psycopg.rows import dict_row
    from psycopg.types.json import Json

    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover
    psycopg = None  # type: ignore
    UniqueViolation = None  # type: ignore
    dict_row = None  # type: ignore
    Json = None  # type: ignore
    HAVE_PSYCOPG = False

from backend.learning.config import is_prod_like


def _default_dev_dsn() -> str:
    host = os.getenv("TEST_DB_HOST", "127.0.0.1")
    port = os.getenv("TEST_DB_PORT", "54322")
    return f"postgresql://postgres:postgres@{host}:{port}/postgres"


def _dsn() -> str:
    """Resolve the Postgres DSN (first non-empty wins).

    Order: LEARNING_DATABASE_URL, DATABASE_URL, SUPABASE_DB_URL, then the local
    dev DSN outside prod-like environments.
    """
    for env in ("LEARNING_DATABASE_URL", "DATABASE_URL", "SUPABASE_DB_URL"):
        value = os.getenv(env)
        if value:
            return value
    if is_prod_like():
        raise RuntimeError("Database DSN unavailable for DBLearningRepo")
    return _default_dev_dsn()


def _plain(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def _row(row: Optional[Mapping[str, Any]]) -> Optional[dict]:
    if row is None:
        return None
    return {k: _plain(v) for k, v in row.items()}


def _nest(row: dict, prefix: str, name: str) -> dict:
    """Move `{prefix}_*` columns into a nested dict under `name`."""
    nested = {}
    for key in [k for k in row if k.startswith(prefix)]:
        nested[key[len(prefix):]] = row.pop(key)
    row[name] = nested if nested.get("id") else None
    return row


_CERT_SELECT = """
    select cert.*,
           c.id::text as course__id, c.title as course__title,
           u.id::text as student__id, u.email as student__email, u.full_name as student__full_name
    from public.certificates cert
    join public.courses c on c.id = cert.course_id
    join public.users u on u.id = cert.user_id
"""


def _cert(row: Optional[Mapping[str, Any]]) -> Optional[dict]:
    out = _row(row)
    if out is None:
        return None
    return _nest(_nest(out, "course__", "course"), "student__", "student")


class DBLearningRepo:
    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBLearningRepo")
        self._dsn = dsn or _dsn()

    def _connect(self):
        return psycopg.connect(self._dsn, row_factory=dict_row)

    # --- Enrollments -----------------------------------------------------------
    def get_enrollment(self, user_id: str, course_id: str) -> Optional[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                "select * from public.enrollments where user_id = %s and course_id = %s",
                (user_id, course_id),
            )
            return _row(cur.fetchone())

    def create_enrollment(self, user_id: str, course_id: str) -> tuple[dict, bool]:
        """Insert an enrollment; on duplicate, return the existing row with created=False."""
        with self._connect() as conn:
            cur = conn.execute(
                """
                insert into public.enrollments (user_id, course_id)
                values (%s, %s)
                on conflict (user_id, course_id) do nothing
                returning *
                """,
                (user_id, course_id),
            )
            row = cur.fetchone()
            if row is not None:
                return _row(row), True
            cur = conn.execute(
                "select * from public.enrollments where user_id = %s and course_id = %s",
                (user_id, course_id),
            )
            return _row(cur.fetchone()), False

    def update_progress(self, user_id: str, course_id: str, progress: int) -> Optional[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                """
                update public.enrollments
                set progress = %s,
                    completed_at = case when %s = 100 then coalesce(completed_at, now()) else null end,
                    status = case when %s = 100 then 'completed' else 'active' end,
                    last_accessed_at = now()
                where user_id = %s and course_id = %s
                returning *
                """,
                (progress, progress, progress, user_id, course_id),
            )
            return _row(cur.fetchone())

    def list_enrollments_for_user(self, user_id: str) -> List[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                """
                select e.*, c.id::text as course__id, c.title as course__title
                from public.enrollments e
                left join public.courses c on c.id = e.course_id
                where e.user_id = %s
                order by e.enrolled_at desc, e.id
                """,
                (user_id,),
            )
            return [_nest(_row(r), "course__", "course") for r in cur.fetchall()]

    def list_enrollments_for_course(self, course_id: str) -> List[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                """
                select e.*, u.id::text as student__id, u.email as student__email, u.full_name as student__full_name
                from public.enrollments e
                left join public.users u on u.id = e.user_id
                where e.course_id = %s
                order by e.enrolled_at desc, e.id
                """,
                (course_id,),
            )
            return [_nest(_row(r), "student__", "student") for r in cur.fetchall()]

    # --- Quiz attempts ---------------------------------------------------------
    def create_attempt(self, user_id: str, lesson_id: str, course_id: str) -> dict:
        with self._connect() as conn:
            with conn.transaction():
                # Serialize attempt numbering per (user, lesson).
                conn.execute("select pg_advisory_xact_lock(hashtext(%s))", (f"{user_id}:{lesson_id}",))
                cur = conn.execute(
                    """
                    insert into public.quiz_attempts (user_id, lesson_id, course_id, attempt_number)
                    values (%s, %s, %s, (
                        select coalesce(max(attempt_number), 0) + 1
                        from public.quiz_attempts where user_id = %s and lesson_id = %s
                    ))
                    returning *
                    """,
                    (user_id, lesson_id, course_id, user_id, lesson_id),
                )
                return _row(cur.fetchone())

    def get_attempt(self, attempt_id: str) -> Optional[dict]:
        with self._connect() as conn:
            return _row(conn.execute("select * from public.quiz_attempts where id = %s", (attempt_id,)).fetchone())

    def complete_attempt(self, attempt_id: str, user_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        """Record the result only while the attempt is still open.

        Returns None when the attempt is missing, foreign or already completed.
        """
        with self._connect() as conn:
            cur = conn.execute(
                """
                update public.quiz_attempts
                set completed_at = %s, time_spent_seconds = %s, score = %s,
                    total_points = %s, passed = %s, answers = %s
                where id = %s and user_id = %s and completed_at is null
                returning *
                """,
                (
                    fields["completed_at"],
                    fields["time_spent_seconds"],
                    fields["score"],
                    fields["total_points"],
                    fields["passed"],
                    Json(fields["answers"]),
                    attempt_id,
                    user_id,
                ),
            )
            return _row(cur.fetchone())

    def list_attempts_for_user(self, user_id: str, lesson_id: Optional[str] = None) -> List[dict]:
        query = "select * from public.quiz_attempts where user_id = %s"
        params: list = [user_id]
        if lesson_id is not None:
            query += " and lesson_id = %s"
            params.append(lesson_id)
        query += " order by created_at desc, attempt_number desc"
        with self._connect() as conn:
            return [_row(r) for r in conn.execute(query, params).fetchall()]

    def list_attempts_for_courses(self, course_ids: Iterable[str]) -> List[dict]:
        ids = list(course_ids)
        if not ids:
            return []
        with self._connect() as conn:
            cur = conn.execute(
                """
                select a.*, u.id::text as student__id, u.email as student__email, u.full_name as student__full_name
                from public.quiz_attempts a
                left join public.users u on u.id = a.user_id
                where a.course_id = any(%s::uuid[])
                order by a.created_at desc, a.id
                """,
                (ids,),
            )
            return [_nest(_row(r), "student__", "student") for r in cur.fetchall()]

    def best_quiz_percentages(self, user_id: str, course_id: str) -> List[float]:
        with self._connect() as conn:
            cur = conn.execute(
                """
                select max(case when total_points > 0 then score * 100.0 / total_points else 0 end) as best
                from public.quiz_attempts
                where user_id = %s and course_id = %s and completed_at is not null
                group by lesson_id
                """,
                (user_id, course_id),
            )
            return [float(r["best"]) for r in cur.fetchall()]

    # --- Certificates ----------------------------------------------------------
    def get_certificate_for(self, user_id: str, course_id: str) -> Optional[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                "select * from public.certificates where user_id = %s and course_id = %s",
                (user_id, course_id),
            )
            return _row(cur.fetchone())

    def create_certificate(self, fields: Dict[str, Any]) -> dict:
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    """
                    insert into public.certificates
                        (user_id, course_id, certificate_number, verification_code, metadata)
                    values (%s, %s, %s, %s, %s)
                    returning *
                    """,
                    (
                        fields["user_id"],
                        fields["course_id"],
                        fields["certificate_number"],
                        fields["verification_code"],
                        Json(fields.get("metadata") or {}),
                    ),
                )
                return _row(cur.fetchone())
        except UniqueViolation as exc:
            constraint = getattr(exc.diag, "constraint_name", None) or ""
            if "verification_code" in constraint or "certificate_number" in constraint:
                raise ValueError("identifier_collision") from exc
            raise ValueError("certificate_exists") from exc

    def list_certificates_for_user(self, user_id: str) -> List[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                _CERT_SELECT + " where cert.user_id = %s and cert.status = 'active' order by cert.issued_date desc",
                (user_id,),
            )
            return [_cert(r) for r in cur.fetchall()]

    def get_certificate_by_number(self, number: str) -> Optional[dict]:
        with self._connect() as conn:
            return _cert(conn.execute(_CERT_SELECT + " where cert.certificate_number = %s", (number,)).fetchone())

    def get_certificate_by_code(self, code: str) -> Optional[dict]:
        with self._connect() as conn:
            return _cert(conn.execute(_CERT_SELECT + " where cert.verification_code = %s", (code,)).fetchone())


__all__ = ["DBLearningRepo", "HAVE_PSYCOPG"]
