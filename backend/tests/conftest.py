"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors), and
keep module-level collaborators of the admin API from leaking across tests.
"""
import os
import sys
from pathlib import Path

import pytest


# Ensure the repo root (for `backend.*`) and the tests dir (for `utils.*`) are importable
REPO_ROOT = Path(__file__).resolve().parents[2]
TESTS_DIR = REPO_ROOT / "backend" / "tests"
for p in (str(REPO_ROOT), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Start every test in a dev environment without stray deployment settings.

    Why:
        Config guard and email tests set prod-like variables; leaking them
        would make unrelated tests abort at import or hit real endpoints.
    """
    for var in (
        "WEBCAPZ_ENV",
        "KC_API_AUDIENCE",
        "KC_PUBLIC_BASE_URL",
        "RESEND_API_KEY",
        "WELCOME_EMAIL_FROM",
        "APP_LOGIN_URL",
        "PROFILE_PICTURES_BUCKET",
        "PROFILE_PICTURE_MAX_BYTES",
        "SUPABASE_URL",
    ):
        monkeypatch.delenv(var, raising=False)
    if not os.getenv("SUPABASE_SERVICE_ROLE_KEY"):
        monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "TEST_ONLY_NOT_USED")
    if not os.getenv("KC_ADMIN_CLIENT_SECRET"):
        monkeypatch.setenv("KC_ADMIN_CLIENT_SECRET", "TEST_ONLY_NOT_USED")
    yield


@pytest.fixture(autouse=True)
def _reset_users_route_collaborators():
    """Reset identity/role/directory/storage wiring of the admin routes per test."""
    yield
    try:
        from backend.web.routes import users
    except Exception:
        return
    users.set_identity_provider(None)
    users.set_role_store(None)
    users.set_directory_repo(None)
    users.set_storage_adapter(None)
    users.set_email_sender(None)
