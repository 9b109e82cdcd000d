"""
Custom exception hierarchy for the LLM gateway.

Structured error handling with clear categories:
- Configuration errors (caught at startup / config load)
- Routing errors (no provider configured)
- Provider call errors (transport, upstream HTTP, malformed body)
- Input validation errors
- Storage errors (cache store unavailable)

Provider and input errors never escape the completion path: the
service converts them into failed ``CompletionResult`` values using
the ``kind`` attribute each of them carries.

Usage:
    from llm_gateway.exceptions import ProviderTransportError

    try:
        response = await client.post(url, json=payload)
    except httpx.TransportError as e:
        raise ProviderTransportError(str(e), provider="cloud_b") from e
"""

from __future__ import annotations

from typing import Optional

from llm_gateway.llm.types import ErrorKind


class GatewayError(Exception):
    """
    Base exception for all gateway errors.

    All custom exceptions inherit from this, so you can catch
    `GatewayError` to handle any gateway-specific error.
    """

    kind: Optional[ErrorKind] = None

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Configuration Errors ──────────────────────────────────────────


class ConfigurationError(GatewayError):
    """
    Raised when the gateway YAML config is missing, empty or invalid.
    """

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.config_path = config_path


# ── Routing Errors ────────────────────────────────────────────────


class NoProviderAvailableError(GatewayError):
    """Raised when no provider has its endpoint or API key configured."""

    kind = ErrorKind.NO_PROVIDER_AVAILABLE


# ── Input Errors ──────────────────────────────────────────────────


class InvalidInputError(GatewayError):
    """
    Raised for unusable request input (blank message, bad overrides).
    """

    kind = ErrorKind.INVALID_INPUT

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.field = field


# ── Provider Errors ───────────────────────────────────────────────


class ProviderError(GatewayError):
    """
    Raised when a call to an upstream LLM provider fails.

    Subclasses set `kind` so the failure maps onto a single ErrorKind.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.provider = provider
        self.status_code = status_code


class ProviderTransportError(ProviderError):
    """
    The provider could not be reached (connection refused, DNS, timeout).

    The only provider failure that is safe to retry.
    """

    kind = ErrorKind.TRANSPORT_ERROR
    retryable = True


class UpstreamError(ProviderError):
    """
    The provider answered with a non-2xx HTTP status.

    Not retried: it usually means bad credentials or an invalid model.
    """

    kind = ErrorKind.UPSTREAM_ERROR
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        provider_message: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(
            message,
            provider=provider,
            status_code=status_code,
            details=details,
        )
        self.provider_message = provider_message


class MalformedResponseError(ProviderError):
    """
    The provider answered 2xx but the body lacks the expected shape.
    """

    kind = ErrorKind.MALFORMED_RESPONSE
    retryable = False


# ── Storage Errors ────────────────────────────────────────────────


class CacheStoreError(GatewayError):
    """
    Raised when reading from or writing to the response cache store fails.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.operation = operation
