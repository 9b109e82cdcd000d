"""
Provider clients, one per ProviderName.

Usage:
    from llm_gateway.llm.providers import create_clients

    clients = create_clients()
    result = await clients[ProviderName.CLOUD_B].create_response(msg, messages, config)
"""

from __future__ import annotations

from typing import Optional

import httpx

from llm_gateway.llm.providers.anthropic_client import AnthropicClient
from llm_gateway.llm.providers.base import ProviderClient
from llm_gateway.llm.providers.gemini_client import GeminiClient
from llm_gateway.llm.providers.ollama_client import OllamaClient
from llm_gateway.llm.providers.openai_client import OpenAIClient
from llm_gateway.llm.types import ProviderName

CLIENT_CLASSES: dict[ProviderName, type[ProviderClient]] = {
    ProviderName.LOCAL_INFERENCE: OllamaClient,
    ProviderName.CLOUD_A: AnthropicClient,
    ProviderName.CLOUD_B: OpenAIClient,
    ProviderName.CLOUD_C: GeminiClient,
}


def create_client(
    name: ProviderName,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderClient:
    return CLIENT_CLASSES[name](transport=transport)


def create_clients(
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[ProviderName, ProviderClient]:
    """One client per provider, optionally sharing a transport (tests)."""
    return {name: create_client(name, transport) for name in CLIENT_CLASSES}


__all__ = [
    "AnthropicClient",
    "CLIENT_CLASSES",
    "GeminiClient",
    "OllamaClient",
    "OpenAIClient",
    "ProviderClient",
    "create_client",
    "create_clients",
]
