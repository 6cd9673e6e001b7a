"""Tests for LLMClient request building and error mapping."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from modaudit.ai.llm_client import LLMClient
from modaudit.configuration.audit_settings import AuditSettings
from modaudit.exceptions import ConfigurationError, InvalidResponseError, TransportError

REQUEST = httpx.Request("POST", "https://llm.test/v1/chat/completions")
MESSAGES = [{"role": "system", "content": "prompt"}, {"role": "user", "content": "text"}]


def make_response(content, refusal=None):
    message = SimpleNamespace(content=content, refusal=refusal)
    choice = SimpleNamespace(message=message, finish_reason="stop")
    usage = SimpleNamespace(prompt_tokens=12, completion_tokens=5)
    return SimpleNamespace(id="cmpl-1", model="test-model", choices=[choice], usage=usage)


def make_client(settings, result=None, error=None):
    api = MagicMock()
    api.chat.completions.create = AsyncMock(return_value=result, side_effect=error)
    return LLMClient(settings, client=api), api


@pytest.fixture
def configured() -> AuditSettings:
    return AuditSettings(api_key="key", model="test-model", temperature=0.1, max_tokens=256)


class TestConfiguration:
    def test_requires_key_and_model(self):
        assert not LLMClient(AuditSettings()).is_configured()
        assert not LLMClient(AuditSettings(api_key="key", model=" ")).is_configured()
        assert LLMClient(AuditSettings(api_key="key")).is_configured()

    @pytest.mark.asyncio
    async def test_unconfigured_client_raises_before_network(self):
        client, api = make_client(AuditSettings())

        with pytest.raises(ConfigurationError):
            await client.audit(MESSAGES)

        api.chat.completions.create.assert_not_awaited()

    def test_system_prompt_falls_back_to_default(self):
        assert "content moderation assistant" in LLMClient(AuditSettings()).system_prompt
        assert LLMClient(AuditSettings(system_prompt="Custom")).system_prompt == "Custom"


class TestAudit:
    @pytest.mark.asyncio
    async def test_successful_request(self, configured):
        body = json.dumps({"confidence": 0.9, "actions": ["hide"], "conclusion": "spam"})
        client, api = make_client(configured, result=make_response(body))

        verdict = await client.audit(MESSAGES)

        assert verdict.actions == ("hide",)
        kwargs = api.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 256
        assert kwargs["messages"] == MESSAGES
        assert kwargs["response_format"]["type"] == "json_schema"

        exchange = client.last_exchange
        assert exchange.response["content"] == body
        assert exchange.response["usage"] == {"prompt_tokens": 12, "completion_tokens": 5}
        assert exchange.response_format_version == "json_schema"

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_transport_error(self, configured):
        client, _ = make_client(configured, error=openai.APIConnectionError(request=REQUEST))

        with pytest.raises(TransportError, match="connection failed"):
            await client.audit(MESSAGES)
        assert client.last_exchange.response is None

    @pytest.mark.asyncio
    async def test_timeout_maps_to_transport_error(self, configured):
        client, _ = make_client(configured, error=openai.APITimeoutError(request=REQUEST))

        with pytest.raises(TransportError, match="timed out"):
            await client.audit(MESSAGES)

    @pytest.mark.asyncio
    async def test_http_status_maps_to_transport_error(self, configured):
        response = httpx.Response(503, request=REQUEST)
        error = openai.APIStatusError("Service Unavailable", response=response, body=None)
        client, _ = make_client(configured, error=error)

        with pytest.raises(TransportError, match="503"):
            await client.audit(MESSAGES)

    @pytest.mark.asyncio
    async def test_empty_content_is_invalid(self, configured):
        client, _ = make_client(configured, result=make_response(""))

        with pytest.raises(InvalidResponseError):
            await client.audit(MESSAGES)
        assert client.last_exchange.response["content"] == ""

    @pytest.mark.asyncio
    async def test_refusal_is_invalid(self, configured):
        client, _ = make_client(configured, result=make_response(None, refusal="I can't help"))

        with pytest.raises(InvalidResponseError, match="refused"):
            await client.audit(MESSAGES)


class TestConnectionCheck:
    @pytest.mark.asyncio
    async def test_success(self, configured):
        body = json.dumps({"confidence": 0.0, "actions": ["none"], "conclusion": "This is a test"})
        client, _ = make_client(configured, result=make_response(body))

        check = await client.test_connection()

        assert check.success
        assert check.verdict.conclusion == "This is a test"

    @pytest.mark.asyncio
    async def test_failure_is_reported(self, configured):
        client, _ = make_client(configured, error=openai.APIConnectionError(request=REQUEST))

        check = await client.test_connection()

        assert not check.success
        assert "connection failed" in check.error
