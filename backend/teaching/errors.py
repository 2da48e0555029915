"""
Error kinds and the uniform result envelope for content actions.

Why:
    Callers branch on a closed set of error kinds instead of matching message
    substrings. The human-readable message stays available for display.

Design:
    - `ActionError` is raised by guards inside services.
    - `action` wraps a public service method so that no exception escapes;
      errors become an `ActionResult` with `success=False`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import functools
import logging
import re
from typing import Any, Callable, Dict, Optional


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    PERMISSION_DENIED = "permission_denied"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PERSISTENCE = "persistence"
    CONFLICT = "conflict"
    FEATURE_DISABLED = "feature_disabled"


_DEFAULT_MESSAGES = {
    ErrorKind.UNAUTHORIZED: "You must be logged in",
    ErrorKind.PERMISSION_DENIED: "You do not have permission to perform this action",
    ErrorKind.VALIDATION: "Invalid input",
    ErrorKind.NOT_FOUND: "Not found",
    ErrorKind.PERSISTENCE: "An unexpected error occurred",
    ErrorKind.CONFLICT: "Conflict",
    ErrorKind.FEATURE_DISABLED: "Feature is not enabled",
}


class ActionError(Exception):
    """Raised inside services; converted to a failure envelope by `action`."""

    def __init__(self, kind: ErrorKind, detail: Optional[str] = None) -> None:
        self.kind = kind
        self.detail = detail or _DEFAULT_MESSAGES[kind]
        super().__init__(self.detail)


def unauthorized(detail: Optional[str] = None) -> ActionError:
    return ActionError(ErrorKind.UNAUTHORIZED, detail)


def permission_denied(detail: Optional[str] = None) -> ActionError:
    return ActionError(ErrorKind.PERMISSION_DENIED, detail)


def invalid(detail: Optional[str] = None) -> ActionError:
    return ActionError(ErrorKind.VALIDATION, detail)


def not_found(detail: Optional[str] = None) -> ActionError:
    return ActionError(ErrorKind.NOT_FOUND, detail)


def conflict(detail: Optional[str] = None) -> ActionError:
    return ActionError(ErrorKind.CONFLICT, detail)


def feature_disabled(detail: Optional[str] = None) -> ActionError:
    return ActionError(ErrorKind.FEATURE_DISABLED, detail)


@dataclass
class ActionResult:
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, **data: Any) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind: ErrorKind, error: Optional[str] = None) -> "ActionResult":
        return cls(success=False, error=error or _DEFAULT_MESSAGES[kind], kind=kind)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, **self.data}
        return {"success": False, "error": self.error, "kind": self.kind.value if self.kind else None}


_ERROR_MAX_LENGTH = 256
_SENSITIVE_TOKEN_PATTERN = re.compile(r"(?i)(secret|token|password|key)[-_a-z0-9]*\s*[:=]\s*\S+")
_DSN_CREDENTIALS_PATTERN = re.compile(r"(?i)(postgres(?:ql)?://)[^@\s]+@")


def sanitize_error_message(value: Optional[str]) -> Optional[str]:
    """Strip secrets and truncate lengthy driver errors before logging."""
    if not value:
        return None
    collapsed = " ".join(str(value).split())
    if not collapsed:
        return None
    scrubbed = _SENSITIVE_TOKEN_PATTERN.sub("[redacted]", collapsed)
    scrubbed = _DSN_CREDENTIALS_PATTERN.sub(r"\1[redacted]@", scrubbed)
    if len(scrubbed) > _ERROR_MAX_LENGTH:
        scrubbed = scrubbed[: _ERROR_MAX_LENGTH - 3].rstrip() + "..."
    return scrubbed


def action(failure_message: str, *, logger: logging.Logger) -> Callable:
    """Wrap a service method so it always returns an `ActionResult`.

    Behavior:
        - `ActionError` → failure envelope with the error's kind and detail.
        - Any other exception → logged, then `persistence` failure carrying
          `failure_message` (the driver error is never surfaced).
    """

    def decorator(fn: Callable[..., ActionResult]) -> Callable[..., ActionResult]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> ActionResult:
            try:
                return fn(*args, **kwargs)
            except ActionError as exc:
                return ActionResult.fail(exc.kind, exc.detail)
            except Exception as exc:
                logger.warning(
                    "%s failed: %s: %s",
                    fn.__name__,
                    exc.__class__.__name__,
                    sanitize_error_message(str(exc)) or "-",
                )
                return ActionResult.fail(ErrorKind.PERSISTENCE, failure_message)

        return wrapper

    return decorator


__all__ = [
    "ActionError",
    "ActionResult",
    "ErrorKind",
    "action",
    "conflict",
    "feature_disabled",
    "invalid",
    "not_found",
    "permission_denied",
    "sanitize_error_message",
    "unauthorized",
]
