"""
Postgres-backed repository for Teaching (courses, topics, lessons, announcements, badges).

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection.
- Returns plain dicts to keep services and the web adapter independent of ORM.
- Owner-scoped mutations filter on the owner in the same statement so a
  concurrent ownership change cannot slip between check and write.

Security:
- Dynamic column lists are built from fixed allow-lists with `psycopg.sql`
  identifiers; values are always bound parameters.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import UUID
import os

try:
    import psycopg
    from psycopg import sql
    from psycopg.rows import dict_row
    from psycopg.types.json import Json

    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional in some dev envs
    psycopg = None  # type: ignore
    sql = None  # type: ignore
    dict_row = None  # type: ignore
    Json = None  # type: ignore
    HAVE_PSYCOPG = False

from .ordering import renumber


def _is_prod_like() -> bool:
    env = (os.getenv("LECTERN_ENV") or "dev").lower()
    return env in {"prod", "production", "stage", "staging"}


def _default_dev_dsn() -> str:
    host = os.getenv("TEST_DB_HOST", "127.0.0.1")
    port = os.getenv("TEST_DB_PORT", "54322")
    return f"postgresql://postgres:postgres@{host}:{port}/postgres"


def _dsn() -> str:
    """Resolve the DSN; context-specific variables win over shared ones.

    Prod-like environments never fall back to the local dev DSN.
    """
    candidates = [
        os.getenv("TEACHING_DATABASE_URL"),
        os.getenv("DATABASE_URL"),
        os.getenv("SUPABASE_DB_URL"),
    ]
    for dsn in candidates:
        if dsn:
            return dsn
    if _is_prod_like():
        raise RuntimeError("Database DSN unavailable for DBTeachingRepo")
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


COURSE_COLUMNS = (
    "title",
    "description",
    "about_course",
    "regular_price",
    "discounted_price",
    "is_free",
    "language",
    "difficulty_level",
    "max_students",
    "intro_video_url",
    "start_date",
    "requirements",
    "targeted_audience",
    "total_duration_hours",
    "total_duration_minutes",
    "content_drip_enabled",
    "content_drip_type",
    "course_tags",
    "slug",
    "category",
    "thumbnail_url",
    "status",
    "is_featured",
    "featured_until",
)

SETTINGS_COLUMNS = (
    "certificate_enabled",
    "certificate_title",
    "passing_grade",
    "enrollment_deadline",
    "end_date",
    "max_students",
    "start_date",
    "allow_lifetime_access",
)

LESSON_COLUMNS = (
    "title",
    "description",
    "video_url",
    "duration_minutes",
    "content",
    "content_type",
    "content_data",
    "is_preview",
    "topic_id",
)

TOPIC_COLUMNS = ("title", "description")

ANNOUNCEMENT_COLUMNS = ("title", "content", "course_id", "priority", "is_active")

_JSON_COLUMNS = frozenset({"content_data", "metadata"})


def _pick(fields: Mapping[str, Any], allowed: Iterable[str]) -> List[tuple[str, Any]]:
    out = []
    for col in allowed:
        if col in fields:
            value = fields[col]
            if col in _JSON_COLUMNS and value is not None:
                value = Json(value)
            out.append((col, value))
    return out


def _assignments(pairs: List[tuple[str, Any]]):
    return sql.SQL(", ").join(sql.SQL("{} = %s").format(sql.Identifier(col)) for col, _ in pairs)


class DBTeachingRepo:
    def __init__(self, dsn: Optional[str] = None) -> None:
        """Initialize a Postgres-backed repository.

        Does not open a connection eagerly; connections are per-call.
        """
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBTeachingRepo")
        self._dsn = dsn or _dsn()

    def _connect(self):
        return psycopg.connect(self._dsn, row_factory=dict_row)

    def ping(self) -> None:
        with self._connect() as conn:
            conn.execute("select 1")

    # --- Users -----------------------------------------------------------------
    def find_user_by_email(self, email: str) -> Optional[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                "select id::text as id, email, full_name, role from public.users where lower(email) = lower(%s)",
                ((email or "").strip(),),
            )
            return _row(cur.fetchone())

    def get_user(self, user_id: str) -> Optional[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                "select id::text as id, email, full_name, role from public.users where id = %s",
                (user_id,),
            )
            return _row(cur.fetchone())

    # --- Ownership lookups ------------------------------------------------------
    def get_course_owner(self, course_id: str) -> Optional[str]:
        with self._connect() as conn:
            cur = conn.execute(
                "select instructor_id::text as instructor_id from public.courses where id = %s",
                (course_id,),
            )
            row = cur.fetchone()
        return row["instructor_id"] if row else None

    def get_lesson_course_id(self, lesson_id: str) -> Optional[str]:
        with self._connect() as conn:
            cur = conn.execute("select course_id::text as course_id from public.lessons where id = %s", (lesson_id,))
            row = cur.fetchone()
        return row["course_id"] if row else None

    def get_topic_course_id(self, topic_id: str) -> Optional[str]:
        with self._connect() as conn:
            cur = conn.execute("select course_id::text as course_id from public.course_topics where id = %s", (topic_id,))
            row = cur.fetchone()
        return row["course_id"] if row else None

    # --- Courses ---------------------------------------------------------------
    def create_course(self, instructor_id: str, fields: Dict[str, Any], settings: Dict[str, Any]) -> dict:
        pairs = _pick(fields, COURSE_COLUMNS)
        cols = sql.SQL(", ").join(sql.Identifier(c) for c, _ in pairs + [("instructor_id", None)])
        marks = sql.SQL(", ").join(sql.Placeholder() for _ in range(len(pairs) + 1))
        settings_pairs = _pick(settings, SETTINGS_COLUMNS)
        with self._connect() as conn:
            with conn.transaction():
                cur = conn.execute(
                    sql.SQL("insert into public.courses ({cols}) values ({marks}) returning *").format(
                        cols=cols, marks=marks
                    ),
                    [v for _, v in pairs] + [instructor_id],
                )
                course = _row(cur.fetchone())
                s_cols = sql.SQL(", ").join(sql.Identifier(c) for c, _ in settings_pairs + [("course_id", None)])
                s_marks = sql.SQL(", ").join(sql.Placeholder() for _ in range(len(settings_pairs) + 1))
                conn.execute(
                    sql.SQL("insert into public.course_settings ({cols}) values ({marks})").format(
                        cols=s_cols, marks=s_marks
                    ),
                    [v for _, v in settings_pairs] + [course["id"]],
                )
        return course

    def get_course(self, course_id: str) -> Optional[dict]:
        with self._connect() as conn:
            cur = conn.execute("select * from public.courses where id = %s", (course_id,))
            return _row(cur.fetchone())

    def get_course_with_settings(self, course_id: str) -> Optional[dict]:
        with self._connect() as conn:
            course = _row(conn.execute("select * from public.courses where id = %s", (course_id,)).fetchone())
            if course is None:
                return None
            settings = conn.execute(
                "select * from public.course_settings where course_id = %s", (course_id,)
            ).fetchall()
        course["course_settings"] = [_row(s) for s in settings]
        return course

    def list_courses_for_instructor(self, instructor_id: str) -> List[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                """
                select c.*, (select count(*) from public.lessons l where l.course_id = c.id) as lesson_count
                from public.courses c
                where c.instructor_id = %s
                order by c.created_at desc, c.id
                """,
                (instructor_id,),
            )
            return [_row(r) for r in cur.fetchall()]

    def list_courses_by_ids(self, course_ids: Iterable[str]) -> List[dict]:
        ids = list(course_ids)
        if not ids:
            return []
        with self._connect() as conn:
            cur = conn.execute("select * from public.courses where id = any(%s::uuid[])", (ids,))
            return [_row(r) for r in cur.fetchall()]

    def update_course_owned(
        self,
        course_id: str,
        owner_id: str,
        fields: Dict[str, Any],
        settings: Optional[Dict[str, Any]] = None,
    ) -> Optional[dict]:
        """Update course columns (and upsert settings) when `owner_id` owns the course.

        Returns the updated row, or None when not found/not owned.
        """
        pairs = _pick(fields, COURSE_COLUMNS) + [("updated_at", datetime.now().astimezone())]
        with self._connect() as conn:
            with conn.transaction():
                cur = conn.execute(
                    sql.SQL(
                        "update public.courses set {assign} where id = %s and instructor_id = %s returning *"
                    ).format(assign=_assignments(pairs)),
                    [v for _, v in pairs] + [course_id, owner_id],
                )
                course = _row(cur.fetchone())
                if course is None:
                    return None
                settings_pairs = _pick(settings or {}, SETTINGS_COLUMNS)
                if settings_pairs:
                    cols = [c for c, _ in settings_pairs]
                    conn.execute(
                        sql.SQL(
                            "insert into public.course_settings (course_id, {cols}) values (%s, {marks}) "
                            "on conflict (course_id) do update set {updates}"
                        ).format(
                            cols=sql.SQL(", ").join(sql.Identifier(c) for c in cols),
                            marks=sql.SQL(", ").join(sql.Placeholder() for _ in cols),
                            updates=sql.SQL(", ").join(
                                sql.SQL("{c} = excluded.{c}").format(c=sql.Identifier(c)) for c in cols
                            ),
                        ),
                        [course_id] + [v for _, v in settings_pairs],
                    )
        return course

    # --- Lessons ---------------------------------------------------------------
    def list_lessons(self, course_id: str) -> List[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                "select * from public.lessons where course_id = %s order by order_index asc, id",
                (course_id,),
            )
            return [_row(r) for r in cur.fetchall()]

    def get_lesson(self, lesson_id: str) -> Optional[dict]:
        with self._connect() as conn:
            return _row(conn.execute("select * from public.lessons where id = %s", (lesson_id,)).fetchone())

    def create_lesson(self, course_id: str, fields: Dict[str, Any], order_index: int) -> dict:
        pairs = _pick(fields, LESSON_COLUMNS) + [("course_id", course_id), ("order_index", order_index)]
        with self._connect() as conn:
            cur = conn.execute(
                sql.SQL("insert into public.lessons ({cols}) values ({marks}) returning *").format(
                    cols=sql.SQL(", ").join(sql.Identifier(c) for c, _ in pairs),
                    marks=sql.SQL(", ").join(sql.Placeholder() for _ in pairs),
                ),
                [v for _, v in pairs],
            )
            return _row(cur.fetchone())

    def update_lesson(self, lesson_id: str, owner_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        pairs = _pick(fields, LESSON_COLUMNS)
        if not pairs:
            return None
        pairs.append(("updated_at", datetime.now().astimezone()))
        with self._connect() as conn:
            cur = conn.execute(
                sql.SQL(
                    """
                    update public.lessons l set {assign}
                    from public.courses c
                    where l.id = %s and c.id = l.course_id and c.instructor_id = %s
                    returning l.*
                    """
                ).format(assign=_assignments(pairs)),
                [v for _, v in pairs] + [lesson_id, owner_id],
            )
            return _row(cur.fetchone())

    def delete_lesson(self, lesson_id: str, owner_id: str) -> Optional[List[dict]]:
        """Delete an owned lesson and close the gap in one transaction.

        The course's lessons are locked before the renumbering is computed, so a
        concurrent create or delete in the same course waits for this one.
        Returns the applied renumbering, or None (and changes nothing) when the
        lesson is missing or not owned.
        """
        with self._connect() as conn:
            with conn.transaction():
                cur = conn.execute(
                    """
                    select l.course_id::text as course_id
                    from public.lessons l
                    join public.courses c on c.id = l.course_id
                    where l.id = %s and c.instructor_id = %s
                    for update of c
                    """,
                    (lesson_id, owner_id),
                )
                row = cur.fetchone()
                if not row:
                    return None
                cur = conn.execute(
                    """
                    select id::text as id, order_index
                    from public.lessons
                    where course_id = %s
                    order by order_index, id
                    for update
                    """,
                    (row["course_id"],),
                )
                siblings = [dict(r) for r in cur.fetchall() if r["id"] != lesson_id]
                renumbering = renumber(siblings)
                conn.execute("delete from public.lessons where id = %s", (lesson_id,))
                if renumbering:
                    conn.execute(
                        """
                        with new_order as (
                          select lid, ord from unnest(%s::uuid[], %s::int[]) as t(lid, ord)
                        )
                        update public.lessons l
                        set order_index = n.ord
                        from new_order n
                        where l.id = n.lid and l.course_id = %s
                        """,
                        ([p["id"] for p in renumbering], [p["order_index"] for p in renumbering], row["course_id"]),
                    )
        return renumbering

    def apply_lesson_order(self, course_id: str, pairs: List[dict]) -> None:
        if not pairs:
            return
        with self._connect() as conn:
            with conn.transaction():
                conn.execute(
                    """
                    with new_order as (
                      select lid, ord from unnest(%s::uuid[], %s::int[]) as t(lid, ord)
                    )
                    update public.lessons l
                    set order_index = n.ord, updated_at = now()
                    from new_order n
                    where l.id = n.lid and l.course_id = %s
                    """,
                    ([p["id"] for p in pairs], [p["order_index"] for p in pairs], course_id),
                )

    # --- Topics ----------------------------------------------------------------
    def list_topics(self, course_id: str) -> List[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                "select * from public.course_topics where course_id = %s order by sort_order asc, id",
                (course_id,),
            )
            return [_row(r) for r in cur.fetchall()]

    def get_topic(self, topic_id: str) -> Optional[dict]:
        with self._connect() as conn:
            return _row(conn.execute("select * from public.course_topics where id = %s", (topic_id,)).fetchone())

    def create_topic(self, course_id: str, fields: Dict[str, Any], sort_order: int) -> dict:
        pairs = _pick(fields, TOPIC_COLUMNS) + [("course_id", course_id), ("sort_order", sort_order)]
        with self._connect() as conn:
            cur = conn.execute(
                sql.SQL("insert into public.course_topics ({cols}) values ({marks}) returning *").format(
                    cols=sql.SQL(", ").join(sql.Identifier(c) for c, _ in pairs),
                    marks=sql.SQL(", ").join(sql.Placeholder() for _ in pairs),
                ),
                [v for _, v in pairs],
            )
            return _row(cur.fetchone())

    def update_topic(self, topic_id: str, owner_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        pairs = _pick(fields, TOPIC_COLUMNS)
        if not pairs:
            return None
        pairs.append(("updated_at", datetime.now().astimezone()))
        with self._connect() as conn:
            cur = conn.execute(
                sql.SQL(
                    """
                    update public.course_topics t set {assign}
                    from public.courses c
                    where t.id = %s and c.id = t.course_id and c.instructor_id = %s
                    returning t.*
                    """
                ).format(assign=_assignments(pairs)),
                [v for _, v in pairs] + [topic_id, owner_id],
            )
            return _row(cur.fetchone())

    def delete_topic(self, topic_id: str, owner_id: str) -> Optional[List[dict]]:
        """Delete an owned topic, detach its lessons and close the gap in one transaction."""
        with self._connect() as conn:
            with conn.transaction():
                cur = conn.execute(
                    """
                    select t.course_id::text as course_id
                    from public.course_topics t
                    join public.courses c on c.id = t.course_id
                    where t.id = %s and c.instructor_id = %s
                    for update of c
                    """,
                    (topic_id, owner_id),
                )
                row = cur.fetchone()
                if not row:
                    return None
                cur = conn.execute(
                    """
                    select id::text as id, sort_order
                    from public.course_topics
                    where course_id = %s
                    order by sort_order, id
                    for update
                    """,
                    (row["course_id"],),
                )
                siblings = [dict(r) for r in cur.fetchall() if r["id"] != topic_id]
                renumbering = renumber(siblings, "sort_order")
                conn.execute("update public.lessons set topic_id = null where topic_id = %s", (topic_id,))
                conn.execute("delete from public.course_topics where id = %s", (topic_id,))
                if renumbering:
                    conn.execute(
                        """
                        with new_order as (
                          select tid, ord from unnest(%s::uuid[], %s::int[]) as t(tid, ord)
                        )
                        update public.course_topics t
                        set sort_order = n.ord
                        from new_order n
                        where t.id = n.tid and t.course_id = %s
                        """,
                        ([p["id"] for p in renumbering], [p["sort_order"] for p in renumbering], row["course_id"]),
                    )
        return renumbering

    def apply_topic_order(self, course_id: str, pairs: List[dict]) -> None:
        if not pairs:
            return
        with self._connect() as conn:
            with conn.transaction():
                conn.execute(
                    """
                    with new_order as (
                      select tid, ord from unnest(%s::uuid[], %s::int[]) as t(tid, ord)
                    )
                    update public.course_topics t
                    set sort_order = n.ord, updated_at = now()
                    from new_order n
                    where t.id = n.tid and t.course_id = %s
                    """,
                    ([p["id"] for p in pairs], [p["sort_order"] for p in pairs], course_id),
                )

    # --- Announcements ---------------------------------------------------------
    def create_announcement(self, instructor_id: str, fields: Dict[str, Any]) -> dict:
        pairs = _pick(fields, ANNOUNCEMENT_COLUMNS) + [("instructor_id", instructor_id)]
        with self._connect() as conn:
            cur = conn.execute(
                sql.SQL("insert into public.announcements ({cols}) values ({marks}) returning *").format(
                    cols=sql.SQL(", ").join(sql.Identifier(c) for c, _ in pairs),
                    marks=sql.SQL(", ").join(sql.Placeholder() for _ in pairs),
                ),
                [v for _, v in pairs],
            )
            return _row(cur.fetchone())

    def get_announcement(self, announcement_id: str) -> Optional[dict]:
        with self._connect() as conn:
            return _row(
                conn.execute("select * from public.announcements where id = %s", (announcement_id,)).fetchone()
            )

    def update_announcement_owned(self, announcement_id: str, owner_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        pairs = _pick(fields, ANNOUNCEMENT_COLUMNS) + [("updated_at", datetime.now().astimezone())]
        with self._connect() as conn:
            cur = conn.execute(
                sql.SQL(
                    "update public.announcements set {assign} where id = %s and instructor_id = %s returning *"
                ).format(assign=_assignments(pairs)),
                [v for _, v in pairs] + [announcement_id, owner_id],
            )
            return _row(cur.fetchone())

    def delete_announcement_owned(self, announcement_id: str, owner_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "delete from public.announcements where id = %s and instructor_id = %s",
                (announcement_id, owner_id),
            )
            return cur.rowcount > 0

    def list_announcements_for_instructor(self, instructor_id: str) -> List[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                "select * from public.announcements where instructor_id = %s order by created_at desc, id",
                (instructor_id,),
            )
            return [_row(r) for r in cur.fetchall()]

    def list_announcements_for_student(self, course_ids: List[str], instructor_ids: List[str]) -> List[dict]:
        with self._connect() as conn:
            cur = conn.execute(
                """
                select * from public.announcements
                where is_active
                  and (course_id = any(%s::uuid[])
                       or (course_id is null and instructor_id = any(%s::uuid[])))
                order by created_at desc, id
                """,
                (list(course_ids), list(instructor_ids)),
            )
            return [_row(r) for r in cur.fetchall()]

    # --- Badges ----------------------------------------------------------------
    def list_badges(self, course_ids: Iterable[str]) -> List[dict]:
        ids = list(course_ids)
        if not ids:
            return []
        with self._connect() as conn:
            cur = conn.execute(
                "select * from public.course_badges where course_id = any(%s::uuid[]) order by created_at, id",
                (ids,),
            )
            return [_row(r) for r in cur.fetchall()]

    def upsert_badge(self, course_id: str, badge_type: str, *, metadata: Optional[dict] = None, expires_at: Optional[str] = None) -> dict:
        with self._connect() as conn:
            cur = conn.execute(
                """
                insert into public.course_badges (course_id, badge_type, metadata, expires_at)
                values (%s, %s, %s, %s)
                on conflict (course_id, badge_type)
                do update set metadata = excluded.metadata, expires_at = excluded.expires_at
                returning *
                """,
                (course_id, badge_type, Json(dict(metadata or {})), expires_at),
            )
            return _row(cur.fetchone())

    def delete_badge(self, course_id: str, badge_type: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "delete from public.course_badges where course_id = %s and badge_type = %s",
                (course_id, badge_type),
            )
            return cur.rowcount > 0


__all__ = ["DBTeachingRepo", "HAVE_PSYCOPG"]
