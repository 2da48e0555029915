"""
Feature configuration for the learning context.

Intent:
    Provide a single place to read environment variables that toggle learning
    features, so services and tests share one parser.
"""
from __future__ import annotations

from dataclasses import dataclass
import os


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class LearningConfig:
    certificate_enabled: bool = True


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got: {raw!r}")


def is_prod_like() -> bool:
    env = (os.getenv("LECTERN_ENV") or "dev").lower()
    return env in {"prod", "production", "stage", "staging"}


def load_learning_config() -> LearningConfig:
    """Parse learning feature flags.

    Behavior:
        - `CERTIFICATE_ENABLED` (default true) toggles certificate issuing.
        - Unparseable booleans raise ValueError instead of guessing.
    """
    return LearningConfig(certificate_enabled=_bool_env("CERTIFICATE_ENABLED", True))


__all__ = ["LearningConfig", "is_prod_like", "load_learning_config"]
