"""
Identity domain constants and simple helpers.

Why:
- Centralize allowed roles to avoid drift between services and the web layer.
"""

from __future__ import annotations

from typing import Iterable, List

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"student", "instructor", "admin"})


def normalize_roles(roles: Iterable[str]) -> List[str]:
    """Lowercase, dedupe (keeping order) and drop roles outside ALLOWED_ROLES."""
    out: List[str] = []
    for role in roles:
        r = str(role or "").strip().lower()
        if r in ALLOWED_ROLES and r not in out:
            out.append(r)
    return out


__all__ = ["ALLOWED_ROLES", "normalize_roles"]
