"""
Wiring of the Supabase-backed storage adapter.

Why:
    App startup may happen before Supabase is reachable locally, leaving the
    Null adapter in place. The helper is idempotent and can be called again
    later to retry once configuration is present.

Security:
    Requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY. Only the server holds
    the key; clients receive short-lived signed upload URLs.
"""
from __future__ import annotations

import logging
import os
from typing import Callable, Optional

logger = logging.getLogger("lectern.web")


def _default_client_factory(url: str, key: str):
    from supabase import create_client

    return create_client(url, key)


def wire_supabase_adapter_if_configured(client_factory: Optional[Callable] = None) -> bool:
    """Inject a SupabaseStorageAdapter into the teaching routes.

    Returns True when wiring succeeded, False when not configured or the
    client could not be created (the Null adapter stays in place).
    """
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        return False

    from backend.teaching.storage_supabase import SupabaseStorageAdapter
    from backend.web.routes import teaching as _teaching

    factory = client_factory or _default_client_factory
    try:
        client = factory(url, key)
    except Exception as exc:
        logger.warning("Supabase client unavailable: %s: %s", exc.__class__.__name__, str(exc)[:200])
        return False
    _teaching.set_storage_adapter(SupabaseStorageAdapter(client))
    logger.info("Storage adapter wired: Supabase")
    return True


__all__ = ["wire_supabase_adapter_if_configured"]
