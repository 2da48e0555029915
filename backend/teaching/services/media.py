"""Media upload intents for course thumbnails and lesson videos.

Binary data never passes through this service: callers receive a short-lived
signed upload URL, upload directly to storage, then finalize with the
returned `storage_key`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
import os
from typing import Any, Dict, Optional, Protocol
from uuid import uuid4

from backend.storage.config import MediaSettings
from backend.storage.keys import course_prefix, is_safe_key, make_lesson_video_key, make_thumbnail_key, sanitize_segment
from backend.teaching.authz import OwnershipAuthorizer
from backend.teaching.errors import ActionResult, action, invalid, permission_denied
from backend.teaching.storage import NullStorageAdapter, StorageAdapterProtocol

logger = logging.getLogger("lectern.teaching.media")


class MediaRepoProtocol(Protocol):
    def get_lesson(self, lesson_id: str) -> Optional[dict]:
        ...

    def update_lesson(self, lesson_id: str, owner_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        ...

    def update_course_owned(
        self, course_id: str, owner_id: str, fields: Dict[str, Any], settings: Optional[Dict[str, Any]] = None
    ) -> Optional[dict]:
        ...


def _check_filename(filename: str) -> str:
    base = os.path.basename((filename or "").strip())
    root, _ = os.path.splitext(base)
    if not base or sanitize_segment(root, fallback="") == "":
        raise invalid("Invalid filename")
    return base


def _check_upload(mime: str, size: Any, *, allowed: tuple, max_bytes: int) -> None:
    if (mime or "").lower() not in allowed:
        raise invalid("File type not allowed")
    if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
        raise invalid("Invalid file size")
    if size > max_bytes:
        raise invalid("File too large")


@dataclass
class MediaService:
    authorizer: OwnershipAuthorizer
    repo: MediaRepoProtocol
    storage: StorageAdapterProtocol = field(default_factory=NullStorageAdapter)
    settings: MediaSettings = field(default_factory=MediaSettings)

    def _intent(self, key: str, mime: str) -> Dict[str, Any]:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.settings.upload_ttl_seconds)
        presign = self.storage.presign_upload(
            bucket=self.settings.bucket,
            key=key,
            expires_in=self.settings.upload_ttl_seconds,
            headers={"Content-Type": mime.lower()},
        )
        return {
            "url": presign["url"],
            "headers": presign.get("headers", {}),
            "storage_key": key,
            "expires_at": expires_at.isoformat(),
        }

    def _verify_object(self, key: str, *, allowed: tuple, max_bytes: int) -> None:
        meta = self.storage.head_object(bucket=self.settings.bucket, key=key)
        size = meta.get("content_length")
        mime = meta.get("content_type")
        if size is not None and int(size) > max_bytes:
            raise invalid("File too large")
        if mime is not None and str(mime).split(";")[0].strip().lower() not in allowed:
            raise invalid("File type not allowed")

    @action("Failed to create upload", logger=logger)
    def create_thumbnail_upload(self, session, course_id: str, filename: str, mime: str, size: int) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_course_owner(principal.id, course_id, "upload files for this course")
        name = _check_filename(filename)
        _check_upload(mime, size, allowed=self.settings.thumbnail_mime_types, max_bytes=self.settings.max_thumbnail_bytes)
        key = make_thumbnail_key(course_id=course_id, filename=name, uuid_hex=uuid4().hex)
        return ActionResult.ok(**self._intent(key, mime))

    @action("Failed to create upload", logger=logger)
    def create_lesson_video_upload(self, session, lesson_id: str, filename: str, mime: str, size: int) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_lesson_owner(principal.id, lesson_id, "upload files for this lesson")
        lesson = self.repo.get_lesson(lesson_id)
        if lesson is None:
            raise permission_denied("You do not have permission to upload files for this lesson")
        name = _check_filename(filename)
        _check_upload(mime, size, allowed=self.settings.video_mime_types, max_bytes=self.settings.max_video_bytes)
        key = make_lesson_video_key(
            course_id=lesson["course_id"], lesson_id=lesson_id, filename=name, uuid_hex=uuid4().hex
        )
        return ActionResult.ok(**self._intent(key, mime))

    @action("Failed to finalize upload", logger=logger)
    def finalize_thumbnail(self, session, course_id: str, storage_key: str) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_course_owner(principal.id, course_id, "upload files for this course")
        if not is_safe_key(storage_key) or not storage_key.startswith(course_prefix(course_id) + "thumbnail/"):
            raise invalid("Invalid storage key")
        self._verify_object(
            storage_key, allowed=self.settings.thumbnail_mime_types, max_bytes=self.settings.max_thumbnail_bytes
        )
        url = self.storage.public_url(bucket=self.settings.bucket, key=storage_key)
        if self.repo.update_course_owned(course_id, principal.id, {"thumbnail_url": url}) is None:
            raise permission_denied("You do not have permission to upload files for this course")
        logger.info("thumbnail finalized course=%s key=%s", course_id, storage_key)
        return ActionResult.ok(thumbnail_url=url)

    @action("Failed to finalize upload", logger=logger)
    def finalize_lesson_video(self, session, lesson_id: str, storage_key: str) -> ActionResult:
        principal = self.authorizer.resolve_principal(session)
        self.authorizer.require_lesson_owner(principal.id, lesson_id, "upload files for this lesson")
        lesson = self.repo.get_lesson(lesson_id)
        if lesson is None:
            raise permission_denied("You do not have permission to upload files for this lesson")
        prefix = f"{course_prefix(lesson['course_id'])}lessons/{sanitize_segment(lesson_id, fallback='lesson')}/"
        if not is_safe_key(storage_key) or not storage_key.startswith(prefix):
            raise invalid("Invalid storage key")
        self._verify_object(storage_key, allowed=self.settings.video_mime_types, max_bytes=self.settings.max_video_bytes)
        url = self.storage.public_url(bucket=self.settings.bucket, key=storage_key)
        if self.repo.update_lesson(lesson_id, principal.id, {"video_url": url}) is None:
            raise permission_denied("You do not have permission to upload files for this lesson")
        logger.info("lesson video finalized lesson=%s key=%s", lesson_id, storage_key)
        return ActionResult.ok(video_url=url)


__all__ = ["MediaRepoProtocol", "MediaService"]
