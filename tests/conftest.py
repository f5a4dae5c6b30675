"""Shared test fixtures."""

from __future__ import annotations

import pytest
from helpers import FakeUpstream

from perplexity_bridge.config.settings import PROFILES, Settings
from perplexity_bridge.pipeline.dispatcher import RequestDispatcher
from perplexity_bridge.transport.client import UpstreamClient


@pytest.fixture
def settings():
    """Test settings: no .env, zero backoff, Basic auth configured."""
    return Settings(
        _env_file=None,
        perplexity_api_key="test-key",
        perplexity_api_url="https://upstream.test/chat/completions",
        retry_backoff_base_s=0.0,
        request_timeout_s=5.0,
        mcp_user="user",
        mcp_pass="pass",
    )


@pytest.fixture
def make_client():
    def _make(fake: FakeUpstream, **kwargs) -> UpstreamClient:
        params = {
            "api_key": "test-key",
            "url": "https://upstream.test/chat/completions",
            "backoff_base_s": 0.0,
        }
        params.update(kwargs)
        return UpstreamClient(transport=fake.transport(), **params)

    return _make


@pytest.fixture
def make_dispatcher(make_client):
    def _make(fake: FakeUpstream, profile: str = "stdio", **kwargs) -> RequestDispatcher:
        return RequestDispatcher(make_client(fake, **kwargs), PROFILES[profile])

    return _make
