"""Tests for /health endpoint."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi.testclient import TestClient
from server.app import app
from server.dependencies import get_backend


client = TestClient(app)


def test_health_returns_ok():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


def test_health_never_builds_backend():
    def exploding_backend():
        raise AssertionError("health must not touch the backend")

    app.dependency_overrides[get_backend] = exploding_backend
    try:
        assert client.get("/health").status_code == 200
    finally:
        app.dependency_overrides.clear()


def test_app_metadata():
    assert app.title == "Roots"
    assert app.version


def test_lifespan_startup_and_shutdown(caplog):
    with caplog.at_level("INFO", logger="roots"):
        with TestClient(app) as c:
            assert c.get("/health").status_code == 200
    assert "Startup: begin" in caplog.text
    assert "+00:00] Shutdown: complete" in caplog.text
