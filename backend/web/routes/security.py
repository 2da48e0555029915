"""
Shared web helpers for the Teaching and Learning routers.

Contains the same-origin check used as CSRF defense, the private JSON
response helper and the envelope-to-status mapping. Both routers use the same
implementation so their security behavior cannot drift apart.
"""
from __future__ import annotations

import os
from typing import Any, Mapping
from urllib.parse import urlparse

from fastapi import Request
from fastapi.responses import JSONResponse

from backend.teaching.authz import is_uuid_like
from backend.teaching.errors import ActionResult, ErrorKind

STATUS_BY_KIND = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.FEATURE_DISABLED: 404,
    ErrorKind.PERSISTENCE: 500,
}


def _default_port(scheme: str) -> int:
    return 443 if scheme == "https" else 80


def _parse_origin(url: str) -> tuple[str, str, int]:
    p = urlparse(url)
    if not p.scheme or not p.hostname:
        raise ValueError("invalid_origin")
    scheme = p.scheme.lower()
    return scheme, p.hostname.lower(), int(p.port if p.port is not None else _default_port(scheme))


def _server_origin(request: Request) -> tuple[str, str, int]:
    """Scheme/host/port the client talked to. X-Forwarded-* only with LECTERN_TRUST_PROXY=true."""
    trust_proxy = (os.getenv("LECTERN_TRUST_PROXY", "false") or "").lower() == "true"
    if not trust_proxy:
        scheme = (request.url.scheme or "http").lower()
        port = request.url.port or _default_port(scheme)
        return scheme, (request.url.hostname or "").lower(), int(port)

    proto = (request.headers.get("x-forwarded-proto") or request.url.scheme or "").split(",")[0].strip()
    fwd_host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "").split(",")[0].strip()
    scheme = (proto or "http").lower()
    if ":" in fwd_host:
        host, port_str = fwd_host.rsplit(":", 1)
        port = int(port_str) if port_str.isdigit() else _default_port(scheme)
    else:
        host = fwd_host or (request.url.hostname or "")
        port = request.url.port or _default_port(scheme)
    fwd_port = (request.headers.get("x-forwarded-port") or "").split(",")[0].strip()
    if fwd_port:
        port = int(fwd_port) if fwd_port.isdigit() else _default_port(scheme)
    return scheme, host.lower(), int(port)


def is_same_origin(request: Request) -> bool:
    """Verify same-origin using the Origin header, else the Referer.

    Requests carrying neither header are allowed so non-browser clients keep
    working. Malformed headers count as foreign.
    """
    server = _server_origin(request)
    claimed = request.headers.get("origin") or request.headers.get("referer")
    if not claimed:
        return True
    try:
        return _parse_origin(claimed) == server
    except ValueError:
        return False


def json_private(payload: Any, *, status_code: int = 200) -> JSONResponse:
    """JSONResponse that neither shared caches nor browsers may store."""
    return JSONResponse(content=payload, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def csrf_guard(request: Request) -> JSONResponse | None:
    """Enforce same-origin for browser write requests.

    In prod-like environments or with STRICT_CSRF=true an Origin or Referer
    header is mandatory. Otherwise header-less calls pass.
    """
    env = (os.getenv("LECTERN_ENV", "dev") or "").lower()
    strict = env in {"prod", "production", "stage", "staging"} or (
        (os.getenv("STRICT_CSRF", "false") or "").lower() == "true"
    )
    if strict and not (request.headers.get("origin") or request.headers.get("referer")):
        return json_private({"error": "forbidden", "detail": "csrf_violation"}, status_code=403)
    if not is_same_origin(request):
        return json_private({"error": "forbidden", "detail": "csrf_violation"}, status_code=403)
    return None


def respond(result: ActionResult, *, success_status: int = 200) -> JSONResponse:
    """Map a service envelope onto an HTTP response."""
    if result.success:
        return json_private(result.to_dict(), status_code=success_status)
    return json_private(result.to_dict(), status_code=STATUS_BY_KIND.get(result.kind, 500))


def invalid_id(**ids: Any) -> JSONResponse | None:
    """400 validation envelope for the first id that is not a UUID, else None.

    Keeps malformed path ids away from the uuid-typed database columns.
    """
    for name, value in ids.items():
        if not is_uuid_like(value):
            return json_private({"success": False, "error": f"Invalid {name}", "kind": "validation"}, status_code=400)
    return None


def session_of(request: Request) -> Any:
    return getattr(request.state, "session", None)


def body_dict(payload: Any) -> Mapping[str, Any]:
    """Raw JSON object bodies pass through; anything else becomes empty."""
    return payload if isinstance(payload, Mapping) else {}


__all__ = [
    "STATUS_BY_KIND",
    "body_dict",
    "csrf_guard",
    "invalid_id",
    "is_same_origin",
    "is_uuid_like",
    "json_private",
    "respond",
    "session_of",
]
