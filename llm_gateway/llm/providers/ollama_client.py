"""
Local inference client (self-hosted Ollama server).

POST {endpoint}/api/chat with the system prompt as the first message.
No authentication; availability depends only on the endpoint.
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


class OllamaClient(ProviderClient):
    provider = ProviderName.LOCAL_INFERENCE

    def build_request(
        self,
        messages: ProviderMessages,
        config: ProviderConfig,
    ) -> PreparedRequest:
        return PreparedRequest(
            url=f"{(config.endpoint or '').rstrip('/')}/api/chat",
            headers={"Content-Type": "application/json"},
            json={
                "model": config.model,
                "messages": with_system_message(messages),
                "temperature": float(config.temperature),
                "max_tokens": int(config.max_tokens),
                "stream": False,
            },
        )

    def parse_text(self, data: Any) -> str:
        return data["message"]["content"]

    def parse_tokens(self, data: Any) -> Optional[int]:
        count = data.get("eval_count") if isinstance(data, dict) else None
        return count if isinstance(count, int) else None
