"""
OpenAI-compatible chat-completion client for content audits.

One call to :meth:`LLMClient.audit` issues exactly one request; retries are
the job's business. The client never swallows a failure:

- missing API key or model: :class:`ConfigurationError` before any network I/O
- connection, timeout and HTTP status errors: :class:`TransportError`
- empty, non-JSON or mistyped bodies: :class:`InvalidResponseError`
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List

import openai
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletionMessageParam

from modaudit.ai.response_schema import build_response_format
from modaudit.ai.verdict_parsing import parse_verdict
from modaudit.configuration.audit_settings import AuditSettings
from modaudit.datatypes.action_datatypes import Verdict
from modaudit.datatypes.audit_datatypes import JSON_SCHEMA_FORMAT
from modaudit.exceptions import ConfigurationError, InvalidResponseError, TransportError
from modaudit.util.logger import get_logger

logger = get_logger("llm_client")


@dataclass(slots=True)
class LLMExchange:
    """Snapshot of the most recent request and the raw response it produced."""

    request: Dict[str, Any]
    response: Dict[str, Any] | None = None
    response_format_version: str = JSON_SCHEMA_FORMAT


@dataclass(slots=True)
class ConnectionCheck:
    success: bool
    verdict: Verdict | None = None
    error: str | None = None


def _snapshot_response(response: Any) -> Dict[str, Any]:
    choices = getattr(response, "choices", None) or []
    first = choices[0] if choices else None
    message = getattr(first, "message", None)
    usage = getattr(response, "usage", None)
    return {
        "id": getattr(response, "id", None),
        "model": getattr(response, "model", None),
        "content": getattr(message, "content", None),
        "refusal": getattr(message, "refusal", None),
        "finish_reason": getattr(first, "finish_reason", None),
        "usage": {
            "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
            "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
        } if usage is not None else None,
    }


class LLMClient:
    """
    Sends audit prompts to the configured endpoint and parses the verdict.

    The underlying :class:`AsyncOpenAI` client is created on first use so an
    unconfigured instance can exist (and report ``is_configured() == False``)
    without an API key.
    """

    def __init__(self, settings: AuditSettings, client: AsyncOpenAI | None = None) -> None:
        self.settings = settings
        self._client = client
        self.last_exchange: LLMExchange | None = None

    def is_configured(self) -> bool:
        return bool(self.settings.api_key.strip()) and bool(self.settings.model.strip())

    @property
    def system_prompt(self) -> str:
        return self.settings.effective_system_prompt

    def _get_client(self) -> AsyncOpenAI:
        if not self.is_configured():
            raise ConfigurationError("LLM API key or model is not configured")
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.api_key,
                base_url=self.settings.api_endpoint,
                timeout=self.settings.timeout,
                max_retries=0,
            )
            logger.info(
                "[LLM CLIENT] Initialized with base_url=%s, model=%s",
                self.settings.api_endpoint,
                self.settings.model,
            )
        return self._client

    def build_request(self, messages: List[ChatCompletionMessageParam]) -> Dict[str, Any]:
        """Return the request body :meth:`audit` will send."""
        return {
            "model": self.settings.model,
            "messages": messages,
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
            "response_format": build_response_format(),
        }

    async def audit(self, messages: List[ChatCompletionMessageParam]) -> Verdict:
        """
        Send one audit request and parse the verdict.

        Args:
            messages: The ``[system, user]`` pair from ``build_messages``.

        Returns:
            Verdict: The normalized model verdict.

        Raises:
            ConfigurationError: If the client is not configured.
            TransportError: On connection, timeout or HTTP status failures.
            InvalidResponseError: If the response body is unusable.
        """
        client = self._get_client()
        request = self.build_request(messages)
        self.last_exchange = LLMExchange(request=request)

        logger.debug(
            "[LLM CLIENT] Sending audit request model=%s messages=%d",
            request["model"], len(messages),
        )

        try:
            response = await client.chat.completions.create(**request)
        except openai.APIConnectionError as exc:
            # APITimeoutError is a subclass of APIConnectionError
            kind = "timed out" if isinstance(exc, openai.APITimeoutError) else "connection failed"
            logger.error("[LLM CLIENT] Request %s: %s", kind, exc)
            raise TransportError(f"LLM request {kind}: {exc}") from exc
        except openai.APIStatusError as exc:
            logger.error("[LLM CLIENT] Endpoint returned HTTP %s: %s", exc.status_code, exc)
            raise TransportError(f"LLM endpoint returned HTTP {exc.status_code}: {exc.message}") from exc
        except openai.APIResponseValidationError as exc:
            logger.error("[LLM CLIENT] Malformed response envelope: %s", exc)
            raise InvalidResponseError(f"Malformed response envelope: {exc}") from exc

        snapshot = _snapshot_response(response)
        self.last_exchange.response = snapshot

        if snapshot["usage"]:
            logger.debug(
                "[LLM CLIENT] Response finish_reason=%s prompt_tokens=%s completion_tokens=%s",
                snapshot["finish_reason"],
                snapshot["usage"]["prompt_tokens"],
                snapshot["usage"]["completion_tokens"],
            )

        if snapshot["content"] is None and snapshot["refusal"]:
            raise InvalidResponseError(f"Model refused the request: {snapshot['refusal']}")

        return parse_verdict(snapshot["content"])

    async def test_connection(self) -> ConnectionCheck:
        """Send a tiny fixed prompt and report whether a valid verdict came back."""
        messages: List[ChatCompletionMessageParam] = [
            {"role": "system", "content": "You are a test assistant."},
            {
                "role": "user",
                "content": 'Respond with a valid JSON object: '
                '{"confidence": 0.0, "actions": ["none"], "conclusion": "This is a test"}',
            },
        ]
        try:
            verdict = await self.audit(messages)
        except (ConfigurationError, TransportError, InvalidResponseError) as exc:
            logger.warning("[LLM CLIENT] Connection test failed: %s", exc)
            return ConnectionCheck(success=False, error=str(exc))
        logger.info("[LLM CLIENT] Connection test succeeded at %s", datetime.now(timezone.utc).isoformat())
        return ConnectionCheck(success=True, verdict=verdict)
