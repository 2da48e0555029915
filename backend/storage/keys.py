"""
Helpers to generate standardized storage_key paths for course media.

Conventions:
    - Course thumbnails: courses/{course}/thumbnail/{uuid}{ext}
    - Lesson videos: courses/{course}/lessons/{lesson}/{uuid}{ext}

Security:
    - Sanitization removes characters outside [A-Za-z0-9._-] from segments.
    - Filename extensions are lowercased and filtered to alphanumeric + dot.
"""
from __future__ import annotations

import os
import re
import unicodedata

_SEGMENT_RE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_segment(value: str, *, fallback: str = "x") -> str:
    value = value or ""
    normalized = unicodedata.normalize("NFKD", value)
    ascii_value = normalized.encode("ascii", "ignore").decode("ascii")
    sanitized = _SEGMENT_RE.sub("-", ascii_value).strip("-_.")
    return sanitized or fallback


def sanitize_ext(filename: str | None, default_ext: str = "") -> str:
    if not filename:
        ext = default_ext
    else:
        _, ext = os.path.splitext(os.path.basename(filename))
    ext = (ext or default_ext or "").lower()
    ext = "".join(ch for ch in ext if ch.isalnum() or ch == ".")
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ext


def course_prefix(course_id: str) -> str:
    return f"courses/{sanitize_segment(course_id, fallback='course')}/"


def make_thumbnail_key(*, course_id: str, filename: str, uuid_hex: str) -> str:
    """Return courses/{course}/thumbnail/{uuid}{ext}."""
    hexpart = (uuid_hex or "").strip() or "file"
    return f"{course_prefix(course_id)}thumbnail/{hexpart}{sanitize_ext(filename)}"


def make_lesson_video_key(*, course_id: str, lesson_id: str, filename: str, uuid_hex: str) -> str:
    """Return courses/{course}/lessons/{lesson}/{uuid}{ext}."""
    lesson = sanitize_segment(lesson_id, fallback="lesson")
    hexpart = (uuid_hex or "").strip() or "file"
    return f"{course_prefix(course_id)}lessons/{lesson}/{hexpart}{sanitize_ext(filename)}"


def is_safe_key(key: str) -> bool:
    """Reject keys with traversal, empty or unsanitized segments."""
    if not key or key.startswith("/") or "\\" in key:
        return False
    parts = key.split("/")
    return all(p and p not in (".", "..") and sanitize_segment(p, fallback="") == p for p in parts)


__all__ = [
    "course_prefix",
    "is_safe_key",
    "make_lesson_video_key",
    "make_thumbnail_key",
    "sanitize_ext",
    "sanitize_segment",
]
