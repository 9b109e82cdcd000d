"""
Provider client base — shared HTTP call, timing and error mapping.

Every provider variant only describes its wire format:
- `build_request()`: URL, headers, query params and JSON body
- `parse_text()`: the success path inside the JSON response
- `parse_tokens()`: provider-reported output tokens, if any

The base class issues one POST with a bounded timeout, measures the
wall-clock processing time and maps failures uniformly:

    httpx request error / timeout    → TRANSPORT_ERROR (raw error text)
    non-2xx status                   → UPSTREAM_ERROR (status + message)
    undecodable body or wrong shape  → MALFORMED_RESPONSE

Transport errors may be retried with exponential backoff when the provider
config sets `max_retries`; upstream and malformed responses never are.

Clients keep no per-call state; everything a call needs arrives as
arguments, so one instance serves concurrent requests.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, ClassVar, Optional

import httpx

from llm_gateway.config.schema import ProviderConfig
from llm_gateway.exceptions import (
    MalformedResponseError,
    ProviderError,
    ProviderTransportError,
    UpstreamError,
)
from llm_gateway.llm.types import CompletionResult, ProviderMessages, ProviderName
from llm_gateway.observability.logging_config import truncate_for_log

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "unknown error"


@dataclass
class PreparedRequest:
    """A provider-native HTTP request, ready to send."""

    url: str
    json: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)


def extract_error_message(body: str) -> str:
    """
    Best-effort error text from an upstream error body.

    Understands {"error": {"message": ...}} and {"error": "..."}; falls
    back to a generic message for anything else.
    """
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return UNKNOWN_ERROR

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str) and error:
            return error
    return UNKNOWN_ERROR


def with_system_message(messages: ProviderMessages) -> list[dict[str, str]]:
    """Message list guaranteed to start with the system entry."""
    conversation = messages.conversation
    return [{"role": "system", "content": messages.system_prompt}] + conversation


class ProviderClient(ABC):
    """Common interface of the four provider variants."""

    provider: ClassVar[ProviderName]

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._transport = transport
        self._sleep = sleep

    # --- Wire format (per variant) ---

    @abstractmethod
    def build_request(
        self,
        messages: ProviderMessages,
        config: ProviderConfig,
    ) -> PreparedRequest:
        """Translate the neutral payload into the provider's request."""

    @abstractmethod
    def parse_text(self, data: Any) -> str:
        """
        Extract the answer from a 2xx body.

        Raises KeyError / IndexError / TypeError when the shape is wrong.
        """

    def parse_tokens(self, data: Any) -> Optional[int]:
        """Provider-reported output tokens; None when not reported."""
        return None

    # --- Public API ---

    async def create_response(
        self,
        message: str,
        messages: ProviderMessages,
        config: ProviderConfig,
    ) -> CompletionResult:
        """
        Run one completion against this provider.

        Args:
            message: Current user message (already last in `messages`).
            messages: Role-tagged messages plus system prompt.
            config: Resolved provider configuration.

        Returns:
            CompletionResult; failures are returned, never raised.
        """
        request = self.build_request(messages, config)
        start = time.monotonic()

        try:
            data = await self._send_with_retries(request, config)
            text = self._extract_text(data)
        except ProviderError as e:
            logger.warning(
                "provider_call_failed",
                extra={
                    "provider": self.provider.value,
                    "model": config.model,
                    "error_kind": e.kind.value if e.kind else None,
                    "status_code": e.status_code,
                    "error": truncate_for_log(str(e)),
                },
            )
            provider_message = getattr(e, "provider_message", None) or str(e)
            return CompletionResult.failure(
                e.kind,
                provider=self.provider,
                model=config.model,
                http_status=e.status_code,
                provider_message=provider_message,
            )

        elapsed_ms = round((time.monotonic() - start) * 1000)
        tokens = self.parse_tokens(data)

        logger.info(
            "provider_call_succeeded",
            extra={
                "provider": self.provider.value,
                "model": config.model,
                "duration_ms": elapsed_ms,
                "tokens": tokens,
                "message_chars": len(message),
            },
        )
        return CompletionResult.success(
            text,
            self.provider,
            config.model,
            processing_time_ms=elapsed_ms,
            tokens_used=tokens,
        )

    # --- HTTP ---

    async def _send_with_retries(
        self,
        request: PreparedRequest,
        config: ProviderConfig,
    ) -> Any:
        attempt = 0
        while True:
            try:
                return await self._send(request, config)
            except ProviderTransportError as e:
                if attempt >= config.max_retries:
                    raise
                delay = config.retry_backoff_seconds * (2 ** attempt)
                attempt += 1
                logger.warning(
                    "provider_retry",
                    extra={
                        "provider": self.provider.value,
                        "attempt": attempt,
                        "delay_seconds": delay,
                        "error": truncate_for_log(str(e)),
                    },
                )
                await self._sleep(delay)

    async def _send(self, request: PreparedRequest, config: ProviderConfig) -> Any:
        """POST once; return the decoded JSON body of a 2xx response."""
        logger.debug(
            "provider_request",
            extra={
                "provider": self.provider.value,
                "model": config.model,
                "payload": truncate_for_log(request.json),
            },
        )

        try:
            async with httpx.AsyncClient(
                timeout=config.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    request.url,
                    json=request.json,
                    headers=request.headers,
                    params=request.params or None,
                )
        except httpx.DecodingError as e:
            raise MalformedResponseError(
                f"Undecodable response body from {self.provider.value}: {e}",
                provider=self.provider.value,
            ) from e
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise ProviderTransportError(
                str(e) or type(e).__name__,
                provider=self.provider.value,
            ) from e

        if not 200 <= response.status_code < 300:
            provider_message = extract_error_message(response.text)
            raise UpstreamError(
                f"{self.provider.value} returned HTTP {response.status_code}: "
                f"{provider_message}",
                provider=self.provider.value,
                status_code=response.status_code,
                provider_message=provider_message,
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"Invalid JSON from {self.provider.value}: "
                f"{truncate_for_log(response.text, 200)}",
                provider=self.provider.value,
                status_code=response.status_code,
            ) from e

    def _extract_text(self, data: Any) -> str:
        try:
            text = self.parse_text(data)
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError(
                f"Invalid response format from {self.provider.value}",
                provider=self.provider.value,
                details={"missing": str(e)},
            ) from e
        if not isinstance(text, str):
            raise MalformedResponseError(
                f"Invalid response format from {self.provider.value}",
                provider=self.provider.value,
            )
        return text
