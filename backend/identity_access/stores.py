"""
In-memory session store.

Why: Keep sessions opaque to the client. Login happens at an external OAuth
provider; whatever completes that flow calls `SessionStore.create` and sets the
session cookie. For production, replace with a Redis/DB-backed store with the
same surface.

Security: Cookies carry only an opaque session id. Session data stays server-side.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional
import secrets
import time

from .domain import normalize_roles


def _now() -> int:
    return int(time.time())


@dataclass
class SessionRecord:
    session_id: str
    email: str
    roles: list[str] = field(default_factory=list)
    expires_at: Optional[int] = None


class SessionStore:
    def __init__(self):
        self._data: Dict[str, SessionRecord] = {}

    def create(self, *, email: str, roles: Optional[list[str]] = None, ttl_seconds: int = 3600) -> SessionRecord:
        sid = secrets.token_urlsafe(24)
        rec = SessionRecord(
            session_id=sid,
            email=(email or "").strip().lower(),
            roles=normalize_roles(roles or []),
            expires_at=_now() + ttl_seconds,
        )
        self._data[sid] = rec
        return rec

    def get(self, session_id: str) -> Optional[SessionRecord]:
        rec = self._data.get(session_id)
        if not rec:
            return None
        if rec.expires_at and rec.expires_at < _now():
            self._data.pop(session_id, None)
            return None
        return rec

    def delete(self, session_id: str) -> None:
        self._data.pop(session_id, None)


__all__ = ["SessionRecord", "SessionStore"]
