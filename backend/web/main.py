"Lectern API"
from __future__ import annotations

import logging
import os
import sys

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.identity_access.stores import SessionStore
from backend.web import config as _cfg


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest; tests provide their own env.
    - Allow explicit opt-out via LECTERN_ENABLE_DOTENV (default true outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("LECTERN_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

# Fail fast on insecure production configuration.
_cfg.ensure_secure_config_on_startup()

from backend.web.routes.learning import learning_router  # noqa: E402
from backend.web.routes.teaching import teaching_router  # noqa: E402
from backend.web.storage_wiring import wire_supabase_adapter_if_configured  # noqa: E402

logger = logging.getLogger("lectern.web")
SESSION_COOKIE_NAME = "lectern_session"
SESSION_STORE = SessionStore()

app = FastAPI(title="Lectern", description="E-learning backend", version="0.1.0")
app.include_router(teaching_router)
app.include_router(learning_router)

wire_supabase_adapter_if_configured()


def _is_prod() -> bool:
    return (os.getenv("LECTERN_ENV", "dev") or "").lower() in _cfg.PROD_LIKE_ENVS


@app.middleware("http")
async def resolve_session(request: Request, call_next):
    """Attach the server-side session (or None) to `request.state.session`.

    Authentication itself happens at the external provider; services decide
    whether a missing session is an error.
    """
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    request.state.session = SESSION_STORE.get(sid) if sid else None
    return await call_next(request)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Cache-Control", "private, no-store")
    if _is_prod():
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    # Same envelope as service validation failures.
    return JSONResponse(
        {"success": False, "error": "Invalid input", "kind": "validation"},
        status_code=400,
        headers={"Cache-Control": "private, no-store"},
    )


@app.get("/health")
async def health():
    return {"status": "ok"}
