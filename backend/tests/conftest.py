"""Shared fixtures: the real app wired to fake downstream services."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from file_proxy.api.deps import get_http_client
from file_proxy.config import Settings, get_settings
from file_proxy.main import app
from tests.fixtures.downstream import DATAVERSE_URL, FakeDownstream


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="development",
        dataverse_url=DATAVERSE_URL,
        record_entity_set="crm_expenses",
        default_disposition="inline",
    )


@pytest.fixture
def downstream() -> FakeDownstream:
    return FakeDownstream()


@pytest.fixture
def token_provider():
    """Token provider returning a distinct token per scope."""
    provider = MagicMock()
    provider.get_token = AsyncMock(side_effect=lambda scope: f"token:{scope}")
    return provider


@pytest.fixture
def client(test_settings, downstream, token_provider):
    """TestClient wired to the fake downstream services."""
    http = httpx.AsyncClient(
        transport=httpx.MockTransport(downstream.handler), follow_redirects=True
    )
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_http_client] = lambda: http

    with patch("file_proxy.api.deps.get_token_provider", return_value=token_provider):
        yield TestClient(app)

    app.dependency_overrides.clear()
