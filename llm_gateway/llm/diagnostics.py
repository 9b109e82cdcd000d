"""
Provider diagnostics — live connection checks and suggested model ids.

Unlike routing availability (presence of a key or endpoint), a connection
check sends a short real prompt to the provider, so it costs a request
and may take up to its timeout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from llm_gateway.config.schema import ProviderConfig
from llm_gateway.llm.history import HistoryManager
from llm_gateway.llm.providers import create_client
from llm_gateway.llm.types import ProviderName

logger = logging.getLogger(__name__)

TEST_MESSAGE = (
    "Hello, this is a test message to verify the connection to the API. "
    "Please respond with a short confirmation."
)
TEST_SYSTEM_PROMPT = "You are a helpful assistant that gives concise, accurate responses."
TEST_MAX_TOKENS = 100
TEST_TIMEOUT_SECONDS = 15.0

KNOWN_MODELS: dict[ProviderName, tuple[str, ...]] = {
    ProviderName.LOCAL_INFERENCE: (
        "llama2", "llama3", "mistral", "gemma", "phi",
        "deepseek-coder", "openchat", "wizardlm", "orca-mini",
    ),
    ProviderName.CLOUD_A: (
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
        "claude-3.5-sonnet-20240620",
        "claude-3.7-sonnet-20250219",
    ),
    ProviderName.CLOUD_B: ("gpt-4o", "gpt-4-turbo", "gpt-4", "gpt-3.5-turbo"),
    ProviderName.CLOUD_C: ("gemini-pro", "gemini-1.5-pro", "gemini-1.5-flash"),
}


@dataclass
class ConnectionCheck:
    """Outcome of one live provider probe."""

    provider: ProviderName
    success: bool
    message: str
    response: str = ""
    http_status: Optional[int] = None
    processing_time_ms: Optional[int] = None


def known_models(provider: ProviderName | str) -> list[str]:
    """Suggested model ids for a provider; empty for unknown names."""
    name = ProviderName.parse(provider)
    if name is None:
        return []
    return list(KNOWN_MODELS[name])


async def check_provider(
    config: ProviderConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = TEST_TIMEOUT_SECONDS,
) -> ConnectionCheck:
    """
    Send a fixed short prompt to one provider and report the outcome.

    Unconfigured providers fail without any network call. The probe never
    retries and is capped at `timeout` seconds.
    """
    if not config.available:
        return ConnectionCheck(
            provider=config.name,
            success=False,
            message="Provider is not configured",
        )

    probe_config = config.model_copy(update={
        "max_tokens": TEST_MAX_TOKENS,
        "timeout": min(config.timeout, timeout),
        "max_retries": 0,
    })
    messages = HistoryManager().to_provider_messages(
        [], TEST_MESSAGE, TEST_SYSTEM_PROMPT, config.name
    )

    client = create_client(config.name, transport)
    result = await client.create_response(TEST_MESSAGE, messages, probe_config)

    if result.ok:
        check = ConnectionCheck(
            provider=config.name,
            success=True,
            message="Connection successful",
            response=result.text,
            processing_time_ms=result.processing_time_ms,
        )
    else:
        check = ConnectionCheck(
            provider=config.name,
            success=False,
            message=f"{result.error_kind.value}: {result.provider_message}",
            http_status=result.http_status,
        )

    logger.info(
        "provider_checked",
        extra={
            "provider": config.name.value,
            "model": config.model,
            "status": "ok" if check.success else "failed",
        },
    )
    return check
