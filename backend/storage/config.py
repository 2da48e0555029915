"""
Centralized storage configuration for course media.

Behavior:
    - MEDIA_BUCKET_DEFAULT is the canonical bucket ("courses"), overridable via
      LECTERN_MEDIA_BUCKET.
    - Size limits and the upload URL TTL read env overrides clamped to the
      contract maximum; invalid values fall back to the default.

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Tuple


MEDIA_BUCKET_DEFAULT = "courses"


def get_media_bucket() -> str:
    return (os.getenv("LECTERN_MEDIA_BUCKET") or MEDIA_BUCKET_DEFAULT).strip()


def _parse_int_env(name: str, default: int, *, contract_max: int | None = None) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    if isinstance(contract_max, int) and contract_max > 0:
        value = min(value, contract_max)
    return value


def get_thumbnail_max_bytes() -> int:
    """Maximum course thumbnail size (default/clamped 5 MiB)."""
    contract_max = 5 * 1024 * 1024
    return _parse_int_env("MEDIA_MAX_THUMBNAIL_BYTES", contract_max, contract_max=contract_max)


def get_video_max_bytes() -> int:
    """Maximum lesson video size (default/clamped 500 MiB)."""
    contract_max = 500 * 1024 * 1024
    return _parse_int_env("MEDIA_MAX_VIDEO_BYTES", contract_max, contract_max=contract_max)


def get_upload_ttl_seconds() -> int:
    return _parse_int_env("MEDIA_UPLOAD_TTL_SECONDS", 600, contract_max=3600)


@dataclass(frozen=True)
class MediaSettings:
    bucket: str = MEDIA_BUCKET_DEFAULT
    thumbnail_mime_types: Tuple[str, ...] = ("image/jpeg", "image/png", "image/webp", "image/gif")
    video_mime_types: Tuple[str, ...] = ("video/mp4", "video/webm", "video/quicktime")
    max_thumbnail_bytes: int = 5 * 1024 * 1024
    max_video_bytes: int = 500 * 1024 * 1024
    upload_ttl_seconds: int = 600


def load_media_settings() -> MediaSettings:
    return MediaSettings(
        bucket=get_media_bucket(),
        max_thumbnail_bytes=get_thumbnail_max_bytes(),
        max_video_bytes=get_video_max_bytes(),
        upload_ttl_seconds=get_upload_ttl_seconds(),
    )


__all__ = [
    "MEDIA_BUCKET_DEFAULT",
    "MediaSettings",
    "get_media_bucket",
    "get_thumbnail_max_bytes",
    "get_upload_ttl_seconds",
    "get_video_max_bytes",
    "load_media_settings",
]
