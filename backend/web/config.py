"""
Startup security checks for Lectern.

A single guard refuses to boot prod-like deployments with obviously insecure
settings. Development and test stay permissive. The guard only reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os
from urllib.parse import urlparse

PROD_LIKE_ENVS = {"prod", "production", "stage", "staging"}
DSN_ENV_KEYS = ("TEACHING_DATABASE_URL", "LEARNING_DATABASE_URL", "DATABASE_URL", "SUPABASE_DB_URL")
_DUMMY_KEYS = {"DUMMY_DO_NOT_USE", "CHANGEME", "CHANGE_ME"}


def _is_prod_like(env: str) -> bool:
    return (env or "").strip().lower() in PROD_LIKE_ENVS


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod-like `LECTERN_ENV` only):
    - SUPABASE_SERVICE_ROLE_KEY is set and not a known placeholder.
    - No configured DSN disables TLS with `sslmode=disable`.
    - SUPABASE_URL, when set, uses https.
    """
    if not _is_prod_like(os.getenv("LECTERN_ENV", "dev")):
        return

    srole = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not srole or srole.upper() in _DUMMY_KEYS:
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder in production."
        )

    for key in DSN_ENV_KEYS:
        if "sslmode=disable" in (os.getenv(key) or ""):
            raise SystemExit(
                f"Refusing to start: {key} contains sslmode=disable in production. Use sslmode=require."
            )

    supabase_url = (os.getenv("SUPABASE_URL") or "").strip()
    if supabase_url and urlparse(supabase_url).scheme.lower() != "https":
        raise SystemExit("Refusing to start: SUPABASE_URL must use https in production.")


__all__ = ["PROD_LIKE_ENVS", "ensure_secure_config_on_startup"]
