"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend and reset the module-level wiring
(repos, session store, storage adapter) so tests never leak state into each
other. API tests always run against the in-memory repos.
"""
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Keep env-driven behavior deterministic; tests opt into prod explicitly."""
    for var in (
        "LECTERN_ENV",
        "LECTERN_TRUST_PROXY",
        "STRICT_CSRF",
        "CERTIFICATE_ENABLED",
        "SUPABASE_URL",
        "LECTERN_MEDIA_BUCKET",
        "MEDIA_UPLOAD_TTL_SECONDS",
        "MEDIA_MAX_THUMBNAIL_BYTES",
        "MEDIA_MAX_VIDEO_BYTES",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def teaching_repo():
    from backend.teaching.repo_memory import InMemoryTeachingRepo

    return InMemoryTeachingRepo(check_invariants=True)


@pytest.fixture
def learning_repo(teaching_repo):
    from backend.learning.repo_memory import InMemoryLearningRepo

    return InMemoryLearningRepo(directory=teaching_repo)


@pytest.fixture
def wired_app(teaching_repo, learning_repo, monkeypatch: pytest.MonkeyPatch):
    """Import the app with fresh in-memory repos and session store injected."""
    from backend.identity_access.stores import SessionStore
    from backend.learning.config import LearningConfig
    from backend.teaching.storage import NullStorageAdapter
    from backend.web import main
    from backend.web.routes import learning, teaching

    teaching.set_repo(teaching_repo)
    teaching.set_storage_adapter(NullStorageAdapter())
    learning.set_learning_repo(learning_repo)
    learning.set_learning_config(LearningConfig())
    monkeypatch.setattr(main, "SESSION_STORE", SessionStore())
    yield main
    teaching.set_repo(None)
    learning.set_learning_repo(None)
