"""
Google Gemini generateContent client (cloud_c).

Gemini has no system role. A non-empty system prompt is sent as a leading
user turn followed by a synthetic model acknowledgement, then the
conversation with "assistant" renamed to "model". The API key goes in the
query string.
"""

from __future__ import annotations

from typing import Any, Optional

from llm_gateway.config.schema import ProviderConfig
from llm_gateway.llm.providers.base import PreparedRequest, ProviderClient
from llm_gateway.llm.types import ProviderMessages, ProviderName

SYSTEM_ACKNOWLEDGEMENT = "I understand and will follow these instructions."

TOP_P = 0.95
TOP_K = 40


def _content(role: str, text: str) -> dict[str, Any]:
    return {"role": role, "parts": [{"text": text}]}


class GeminiClient(ProviderClient):
    provider = ProviderName.CLOUD_C

    @staticmethod
    def build_contents(messages: ProviderMessages) -> list[dict[str, Any]]:
        contents: list[dict[str, Any]] = []
        if messages.system_prompt:
            contents.append(_content("user", messages.system_prompt))
            contents.append(_content("model", SYSTEM_ACKNOWLEDGEMENT))
        for message in messages.conversation:
            role = "model" if message["role"] == "assistant" else "user"
            contents.append(_content(role, message["content"]))
        return contents

    def build_request(
        self,
        messages: ProviderMessages,
        config: ProviderConfig,
    ) -> PreparedRequest:
        base = (config.endpoint or "").rstrip("/")
        return PreparedRequest(
            url=f"{base}/v1beta/models/{config.model}:generateContent",
            headers={"Content-Type": "application/json"},
            params={"key": config.api_key or ""},
            json={
                "contents": self.build_contents(messages),
                "generationConfig": {
                    "temperature": float(config.temperature),
                    "maxOutputTokens": int(config.max_tokens),
                    "topP": TOP_P,
                    "topK": TOP_K,
                },
            },
        )

    def parse_text(self, data: Any) -> str:
        return data["candidates"][0]["content"]["parts"][0]["text"]

    def parse_tokens(self, data: Any) -> Optional[int]:
        usage = data.get("usageMetadata") if isinstance(data, dict) else None
        if isinstance(usage, dict) and isinstance(usage.get("candidatesTokenCount"), int):
            return usage["candidatesTokenCount"]
        return None
