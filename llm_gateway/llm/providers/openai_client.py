"""
OpenAI Chat Completions client (cloud_b).
"""

from __future__ import annotations

from typing import Any, Optional

from llm_gateway.config.schema import ProviderConfig
from llm_gateway.llm.providers.base import (
    PreparedRequest,
    ProviderClient,
    with_system_message,
)
from llm_gateway.llm.types import ProviderMessages, ProviderName


class OpenAIClient(ProviderClient):
    provider = ProviderName.CLOUD_B

    def build_request(
        self,
        messages: ProviderMessages,
        config: ProviderConfig,
    ) -> PreparedRequest:
        return PreparedRequest(
            url=config.endpoint or "",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {config.api_key or ''}",
            },
            json={
                "model": config.model,
                "messages": with_system_message(messages),
                "temperature": float(config.temperature),
                "max_tokens": int(config.max_tokens),
            },
        )

    def parse_text(self, data: Any) -> str:
        return data["choices"][0]["message"]["content"]

    def parse_tokens(self, data: Any) -> Optional[int]:
        usage = data.get("usage") if isinstance(data, dict) else None
        if isinstance(usage, dict) and isinstance(usage.get("completion_tokens"), int):
            return usage["completion_tokens"]
        return None
