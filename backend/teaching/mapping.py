"""
Course data mapper: UI form shape <-> storage row shape.

Why:
    The course editor speaks camelCase form keys while the `courses` and
    `course_settings` tables use snake_case columns (some renamed, e.g. the
    short description lives in `description` and the long text in
    `about_course`). Keeping the translation in one pure module lets the
    services and tests share one declared table of fields.

Behavior:
    - Pure functions, no I/O, no exceptions for missing or malformed values;
      they resolve to documented defaults.
    - Keys missing from both tables are dropped silently (best-effort mapper,
      not a schema validator). `unmapped_form_fields` reports them.
    - A field absent from the form is never written with `partial=True`, so
      updates do not clobber columns the caller did not send.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

DEFAULT_LANGUAGE = "English"
DEFAULT_LEVEL_WRITE = "All Levels"
DEFAULT_LEVEL_READ = "all_levels"
DEFAULT_PASSING_GRADE = 70
DEFAULT_STATUS = "draft"

_UNSET = object()


def _to_number(value: Any) -> Optional[float | int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            pass
        try:
            return float(raw)
        except ValueError:
            return None
    return None


def _to_int(value: Any) -> Optional[int]:
    number = _to_number(value)
    if number is None:
        return None
    try:
        return int(number)
    except (OverflowError, ValueError):
        return None


def _to_float(value: Any) -> Optional[float]:
    number = _to_number(value)
    return None if number is None else float(number)


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text or None


def _to_bool(value: Any) -> bool:
    return bool(value)


def split_tags(value: Any) -> List[str]:
    """Split a comma-delimited tag string into trimmed, non-empty tags."""
    if not value or not isinstance(value, str):
        return []
    return [tag.strip() for tag in value.split(",") if tag.strip()]


def join_tags(value: Any) -> str:
    if not isinstance(value, (list, tuple)):
        return ""
    return ", ".join(str(tag) for tag in value)


@dataclass(frozen=True)
class FieldSpec:
    """One row of the mapping table.

    `write_default` is used when the form value is missing or unusable and the
    field is always written (`always=True`). `read_default` is what the form
    receives when the storage value is falsy.
    """

    form_key: str
    column: str
    coerce: Callable[[Any], Any]
    write_default: Any = None
    read_default: Any = ""
    always: bool = True


COURSE_FIELDS: Sequence[FieldSpec] = (
    FieldSpec("title", "title", _to_text, always=False),
    FieldSpec("shortDescription", "description", _to_text, always=False),
    FieldSpec("description", "about_course", _to_text, always=False),
    FieldSpec("price", "regular_price", _to_float, write_default=0, read_default=0),
    FieldSpec("discountPrice", "discounted_price", lambda v: _to_float(v) or None, read_default=None),
    FieldSpec("language", "language", _to_text, write_default=DEFAULT_LANGUAGE, read_default=DEFAULT_LANGUAGE),
    FieldSpec("level", "difficulty_level", _to_text, write_default=DEFAULT_LEVEL_WRITE, read_default=DEFAULT_LEVEL_READ),
    FieldSpec("maxStudents", "max_students", _to_int, write_default=0, read_default=0),
    FieldSpec("introVideoUrl", "intro_video_url", _to_text),
    FieldSpec("startDate", "start_date", _to_text),
    FieldSpec("requirements", "requirements", _to_text),
    FieldSpec("targetedAudience", "targeted_audience", _to_text),
    FieldSpec("totalDurationMinutes", "total_duration_minutes", _to_int, write_default=0, read_default=0),
    FieldSpec("contentDripEnabled", "content_drip_enabled", _to_bool, write_default=False, read_default=False),
    FieldSpec("contentDripType", "content_drip_type", _to_text),
    # Optional pass-through columns: written only when present in the form.
    FieldSpec("slug", "slug", lambda v: v, always=False),
    FieldSpec("category", "category", lambda v: v, always=False),
    FieldSpec("thumbnail_url", "thumbnail_url", lambda v: v, always=False),
    FieldSpec("status", "status", lambda v: v, always=False, read_default=DEFAULT_STATUS),
)

SETTINGS_FIELDS: Sequence[FieldSpec] = (
    FieldSpec("certificateEnabled", "certificate_enabled", _to_bool, write_default=False, read_default=False),
    FieldSpec("certificateTitle", "certificate_title", _to_text),
    FieldSpec("enrollmentDeadline", "enrollment_deadline", _to_text),
    FieldSpec("endDate", "end_date", _to_text),
)

# Keys that only exist on the UI side; never reported as unmapped.
_UI_ONLY_KEYS = frozenset({"topics", "thumbnailPreview"})
_SPECIAL_FORM_KEYS = frozenset(
    {"courseTags", "totalDurationHours", "duration", "passingGrade", "lifetimeAccess"}
)


def _present(form: Mapping[str, Any], key: str) -> bool:
    return key in form and form[key] is not None


def _duration_hours(form: Mapping[str, Any]) -> Optional[int]:
    hours = _to_int(form.get("totalDurationHours"))
    if hours:
        return hours
    legacy = _to_int(form.get("duration"))
    return legacy or None


def course_form_to_storage(form: Mapping[str, Any], *, partial: bool = False) -> Dict[str, Any]:
    """Translate a course form into a `courses` row (toStorage).

    Parameters:
        form: UI form record (camelCase keys).
        partial: When True, only fields present in `form` are written. Used by
            updates so unspecified fields keep their stored values.
    """
    row: Dict[str, Any] = {}
    for entry in COURSE_FIELDS:
        if _present(form, entry.form_key):
            value = entry.coerce(form[entry.form_key])
            if value is None:
                value = entry.write_default
            row[entry.column] = value
        elif entry.always and not partial:
            row[entry.column] = entry.write_default

    if _present(form, "price"):
        row["is_free"] = _to_number(form["price"]) == 0
    elif not partial:
        row["is_free"] = False

    if _present(form, "totalDurationHours") or _present(form, "duration"):
        row["total_duration_hours"] = _duration_hours(form) or 0
    elif not partial:
        row["total_duration_hours"] = 0

    if "courseTags" in form:
        row["course_tags"] = split_tags(form["courseTags"])
    elif not partial:
        row["course_tags"] = []
    return row


def _clamp_grade(value: Any) -> int:
    grade = _to_int(value)
    if grade is None:
        return DEFAULT_PASSING_GRADE
    return max(0, min(100, grade))


def course_form_to_settings(form: Mapping[str, Any]) -> Dict[str, Any]:
    """Extract the `course_settings` row from a course form (toSettings)."""
    settings: Dict[str, Any] = {}
    for entry in SETTINGS_FIELDS:
        value = entry.coerce(form[entry.form_key]) if _present(form, entry.form_key) else None
        settings[entry.column] = entry.write_default if value is None else value
    settings["passing_grade"] = (
        _clamp_grade(form["passingGrade"]) if _present(form, "passingGrade") else DEFAULT_PASSING_GRADE
    )
    settings["max_students"] = _to_int(form.get("maxStudents")) or None
    settings["start_date"] = _to_text(form.get("startDate"))
    settings["allow_lifetime_access"] = form.get("lifetimeAccess") is not False
    return settings


def _first_settings(row: Mapping[str, Any]) -> Mapping[str, Any]:
    rel = row.get("course_settings")
    if isinstance(rel, (list, tuple)):
        return rel[0] if rel and isinstance(rel[0], Mapping) else {}
    if isinstance(rel, Mapping):
        return rel
    return {}


def course_storage_to_form(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate a `courses` row (with optional `course_settings`) into form data (toForm)."""
    form: Dict[str, Any] = {}
    for entry in COURSE_FIELDS:
        value = row.get(entry.column)
        form[entry.form_key] = value if value not in (None, "") else entry.read_default
    form["discountPrice"] = row.get("discounted_price") or None

    hours = row.get("total_duration_hours") or 0
    form["totalDurationHours"] = hours
    form["duration"] = hours
    form["courseTags"] = join_tags(row.get("course_tags"))

    settings = _first_settings(row)
    for entry in SETTINGS_FIELDS:
        value = settings.get(entry.column)
        form[entry.form_key] = value if value not in (None, "") else entry.read_default
    if not form["endDate"]:
        form["endDate"] = row.get("end_date") or ""
    grade = settings.get("passing_grade")
    form["passingGrade"] = DEFAULT_PASSING_GRADE if grade is None else grade
    form["lifetimeAccess"] = settings.get("allow_lifetime_access") is not False

    form["thumbnailPreview"] = row.get("thumbnail_url") or None
    form.pop("thumbnail_url", None)
    form["topics"] = []
    return form


LESSON_FIELDS: Sequence[FieldSpec] = (
    FieldSpec("title", "title", _to_text),
    FieldSpec("description", "description", _to_text),
    FieldSpec("videoUrl", "video_url", _to_text),
    FieldSpec("duration", "duration_minutes", _to_int),
    FieldSpec("content", "content", _to_text),
    FieldSpec("contentType", "content_type", _to_text),
    FieldSpec("contentData", "content_data", lambda v: v),
    FieldSpec("isPreview", "is_preview", _to_bool),
    FieldSpec("topicId", "topic_id", _to_text),
)


def lesson_form_to_storage(form: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename lesson editor keys to `lessons` columns.

    Snake_case keys that already name a column pass through unchanged; only
    keys present in `form` are emitted.
    """
    row: Dict[str, Any] = {}
    for entry in LESSON_FIELDS:
        if entry.column in form:
            row[entry.column] = form[entry.column]
        if entry.form_key in form:
            row[entry.column] = entry.coerce(form[entry.form_key])
    return row


def topic_form_to_storage(form: Mapping[str, Any]) -> Dict[str, Any]:
    """Map the curriculum editor's topic form (`name`/`summary` or `title`/`description`)."""
    row: Dict[str, Any] = {}
    for column, keys in (("title", ("title", "name")), ("description", ("description", "summary"))):
        present = [k for k in keys if k in form]
        if present:
            row[column] = next((_to_text(form[k]) for k in present if _to_text(form[k])), None)
    return row


def unmapped_form_fields(form: Mapping[str, Any]) -> List[str]:
    """Return form keys that neither mapping table knows about."""
    known = {entry.form_key for entry in COURSE_FIELDS}
    known.update(entry.form_key for entry in SETTINGS_FIELDS)
    known.update(_SPECIAL_FORM_KEYS)
    return sorted(k for k in form.keys() if k not in known and k not in _UI_ONLY_KEYS)


__all__ = [
    "COURSE_FIELDS",
    "SETTINGS_FIELDS",
    "DEFAULT_LANGUAGE",
    "DEFAULT_PASSING_GRADE",
    "LESSON_FIELDS",
    "course_form_to_settings",
    "course_form_to_storage",
    "course_storage_to_form",
    "join_tags",
    "lesson_form_to_storage",
    "split_tags",
    "topic_form_to_storage",
    "unmapped_form_fields",
]
