"""
Media storage settings read from the environment.
"""
from __future__ import annotations

from backend.storage.config import MEDIA_BUCKET_DEFAULT, MediaSettings, load_media_settings


def test_defaults():
    settings = load_media_settings()
    assert settings == MediaSettings()
    assert settings.bucket == MEDIA_BUCKET_DEFAULT


def test_env_overrides_are_clamped(monkeypatch):
    monkeypatch.setenv("LECTERN_MEDIA_BUCKET", " media ")
    monkeypatch.setenv("MEDIA_UPLOAD_TTL_SECONDS", "99999")
    monkeypatch.setenv("MEDIA_MAX_THUMBNAIL_BYTES", "1024")
    monkeypatch.setenv("MEDIA_MAX_VIDEO_BYTES", str(10 * 1024 * 1024 * 1024))
    settings = load_media_settings()
    assert settings.bucket == "media"
    assert settings.upload_ttl_seconds == 3600
    assert settings.max_thumbnail_bytes == 1024
    assert settings.max_video_bytes == 500 * 1024 * 1024


def test_invalid_values_fall_back(monkeypatch):
    monkeypatch.setenv("MEDIA_UPLOAD_TTL_SECONDS", "soon")
    monkeypatch.setenv("MEDIA_MAX_THUMBNAIL_BYTES", "-5")
    settings = load_media_settings()
    assert settings.upload_ttl_seconds == 600
    assert settings.max_thumbnail_bytes == 5 * 1024 * 1024
