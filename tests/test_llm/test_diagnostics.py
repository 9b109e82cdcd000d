"""
Tests for provider diagnostics: live connection checks and model lists.
"""

from __future__ import annotations

import json

import httpx
import pytest

from llm_gateway.config.schema import ProviderConfig
from llm_gateway.llm.diagnostics import (
    TEST_MAX_TOKENS,
    TEST_MESSAGE,
    TEST_SYSTEM_PROMPT,
    check_provider,
    known_models,
)
from llm_gateway.llm.types import ProviderName


@pytest.fixture
def anthropic_config():
    return ProviderConfig(
        name=ProviderName.CLOUD_A,
        endpoint="https://api.anthropic.com/v1/messages",
        api_key="ak-test",
        model="claude-3-haiku-20240307",
        max_retries=3,
    )


class TestCheckProvider:
    """check_provider(config)."""

    @pytest.mark.asyncio
    async def test_success(self, anthropic_config):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"content": [{"text": "Connection confirmed."}]})

        check = await check_provider(anthropic_config, transport=httpx.MockTransport(handler))

        assert check.success is True
        assert check.message == "Connection successful"
        assert check.response == "Connection confirmed."
        body = json.loads(requests[0].content)
        assert body["messages"] == [{"role": "user", "content": TEST_MESSAGE}]
        assert body["system"] == TEST_SYSTEM_PROMPT
        assert body["max_tokens"] == TEST_MAX_TOKENS

    @pytest.mark.asyncio
    async def test_upstream_failure(self, anthropic_config):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"message": "invalid x-api-key"}})

        check = await check_provider(anthropic_config, transport=httpx.MockTransport(handler))

        assert check.success is False
        assert check.http_status == 401
        assert "invalid x-api-key" in check.message

    @pytest.mark.asyncio
    async def test_probe_never_retries(self, anthropic_config):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        check = await check_provider(anthropic_config, transport=httpx.MockTransport(handler))

        assert check.success is False
        assert check.message.startswith("transport_error")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_unconfigured_provider_skips_network(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        check = await check_provider(
            ProviderConfig(name=ProviderName.CLOUD_B),
            transport=httpx.MockTransport(handler),
        )
        assert check.success is False
        assert check.message == "Provider is not configured"


class TestKnownModels:
    """known_models(provider)."""

    def test_lists(self):
        assert "gpt-4o" in known_models(ProviderName.CLOUD_B)
        assert "claude-3-haiku-20240307" in known_models("claude")
        assert known_models("local_inference")[0] == "llama2"
        assert "gemini-1.5-flash" in known_models(ProviderName.CLOUD_C)

    def test_unknown_provider(self):
        assert known_models("nope") == []

    def test_returns_copy(self):
        models = known_models(ProviderName.CLOUD_B)
        models.append("custom")
        assert "custom" not in known_models(ProviderName.CLOUD_B)
