"""
Pytest configuration and shared fixtures.

Every test gets its own DATA_DIR and PUBLIC_DIR under tmp_path. The env vars
set here at import time only cover module-level settings read when
chatapp.main is first imported.
"""

import os
import tempfile

import pytest
from fastapi.testclient import TestClient

_SESSION_DIR = tempfile.mkdtemp(prefix="chatapp-tests-")
os.environ.setdefault("DATA_DIR", _SESSION_DIR)
os.environ.setdefault("PUBLIC_DIR", os.path.join(_SESSION_DIR, "public"))
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.makedirs(os.environ["PUBLIC_DIR"], exist_ok=True)

# Clear settings cache before any app imports to ensure test env vars are used
from chatapp.config import get_settings  # noqa: E402
get_settings.cache_clear()


@pytest.fixture
def storage_env(tmp_path, monkeypatch):
    """Point the stores at a fresh temporary directory."""
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("PUBLIC_DIR", str(tmp_path / "public"))
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def client(storage_env):
    """Test client whose lifespan wires services against storage_env."""
    from chatapp.main import app

    with TestClient(app) as test_client:
        yield test_client


def register(client, username: str, email: str, password: str) -> dict:
    """Register a user over HTTP and return the user payload."""
    response = client.post(
        "/api/register",
        json={"username": username, "email": email, "password": password},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True, body
    return body["user"]
