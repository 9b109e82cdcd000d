"""
Anthropic Messages API client (cloud_a).

The system prompt travels in the top-level "system" field; the message
list holds only user/assistant entries.
"""

from __future__ import annotations

from typing import Any, Optional

from llm_gateway.config.schema import ProviderConfig
from llm_gateway.llm.providers.base import PreparedRequest, ProviderClient
from llm_gateway.llm.types import ProviderMessages, ProviderName

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicClient(ProviderClient):
    provider = ProviderName.CLOUD_A

    def build_request(
        self,
        messages: ProviderMessages,
        config: ProviderConfig,
    ) -> PreparedRequest:
        return PreparedRequest(
            url=config.endpoint or "",
            headers={
                "Content-Type": "application/json",
                "x-api-key": config.api_key or "",
                "anthropic-version": ANTHROPIC_VERSION,
            },
            json={
                "model": config.model,
                "messages": messages.conversation,
                "system": messages.system_prompt,
                "temperature": float(config.temperature),
                "max_tokens": int(config.max_tokens),
            },
        )

    def parse_text(self, data: Any) -> str:
        return data["content"][0]["text"]

    def parse_tokens(self, data: Any) -> Optional[int]:
        usage = data.get("usage") if isinstance(data, dict) else None
        if isinstance(usage, dict) and isinstance(usage.get("output_tokens"), int):
            return usage["output_tokens"]
        return None
