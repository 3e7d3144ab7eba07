"""Shared test fixtures."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from cspolicy.middleware.pipeline import RequestContext


@pytest.fixture(autouse=True)
def _mock_settings(monkeypatch):
    """Provide default settings for all tests."""
    monkeypatch.delenv("CSP_POLICIES_FILE", raising=False)
    monkeypatch.delenv("CSP_DEFAULT_POLICY", raising=False)
    monkeypatch.setenv("CSP_LOG_JSON", "false")
    monkeypatch.setenv("CSP_LOG_LEVEL", "debug")

    # Reset cached settings and helper providers
    import cspolicy.config.loader as loader
    import cspolicy.helpers as helpers
    loader._settings = None
    helpers.reset_helpers()
    yield
    loader._settings = None
    helpers.reset_helpers()


@pytest.fixture
def context():
    return RequestContext(path="/")


@pytest.fixture
def client():
    """Create a FastAPI test client (runs the lifespan)."""
    import cspolicy.main as main_module
    main_module._pipeline = None

    from cspolicy.main import app
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    main_module._pipeline = None


@pytest.fixture
def policy_file(tmp_path, monkeypatch):
    """Write a YAML policy file and point CSP_POLICIES_FILE at it."""

    def _write(text: str):
        path = tmp_path / "policies.yaml"
        path.write_text(text)
        monkeypatch.setenv("CSP_POLICIES_FILE", str(path))
        return path

    return _write
