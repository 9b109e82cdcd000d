"""
Core data types shared by the gateway components.

- ProviderName: closed set of supported providers
- ChatTurn: one user message / assistant response pair
- ProviderMessages: role-tagged message list plus the system prompt
- CompletionRequest: a single inbound chat request
- CompletionResult: normalized success or failure value
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ProviderName(str, Enum):
    """Backend chat-completion services the gateway can call."""

    LOCAL_INFERENCE = "local_inference"  # Self-hosted Ollama server
    CLOUD_A = "cloud_a"                  # Anthropic Messages API
    CLOUD_B = "cloud_b"                  # OpenAI Chat Completions API
    CLOUD_C = "cloud_c"                  # Google Gemini generateContent API

    @classmethod
    def parse(cls, value: Any) -> Optional[ProviderName]:
        """
        Parse a routing hint into a ProviderName.

        Accepts enum members, canonical values and the legacy provider
        names ("ollama", "claude", "openai", "gemini"). Anything else
        means "no preference" and returns None.
        """
        if value is None or isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if not text:
            return None
        try:
            return cls(text)
        except ValueError:
            return _PROVIDER_ALIASES.get(text)


_PROVIDER_ALIASES: dict[str, ProviderName] = {
    "ollama": ProviderName.LOCAL_INFERENCE,
    "claude": ProviderName.CLOUD_A,
    "anthropic": ProviderName.CLOUD_A,
    "openai": ProviderName.CLOUD_B,
    "gemini": ProviderName.CLOUD_C,
}


class ErrorKind(str, Enum):
    """Failure categories surfaced in CompletionResult."""

    NO_PROVIDER_AVAILABLE = "no_provider_available"
    TRANSPORT_ERROR = "transport_error"
    UPSTREAM_ERROR = "upstream_error"
    MALFORMED_RESPONSE = "malformed_response"
    INVALID_INPUT = "invalid_input"


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChatTurn:
    """One exchange. The in-flight turn has no assistant response yet."""

    user_message: str
    assistant_response: Optional[str] = None


ConversationHistory = list[ChatTurn]


@dataclass
class ProviderMessages:
    """
    Provider-neutral call payload built by the HistoryManager.

    `messages` holds {"role", "content"} dicts in chronological order and
    ends with the current user message. It starts with a system entry only
    for providers that accept a system role; the other providers take
    `system_prompt` through their own top-level field.
    """

    system_prompt: str
    messages: list[dict[str, str]] = field(default_factory=list)

    @property
    def conversation(self) -> list[dict[str, str]]:
        """Messages without any system-role entry."""
        return [m for m in self.messages if m["role"] != "system"]


# ---------------------------------------------------------------------------
# Request / Result
# ---------------------------------------------------------------------------

@dataclass
class CompletionRequest:
    """A single chat request, constructed per call and never persisted."""

    message: str
    history: Any = field(default_factory=list)  # ChatTurns, dicts or JSON text
    routing_hint: Optional[ProviderName | str] = None
    system_prompt_override: Optional[str] = None
    reference_text: Optional[str] = None
    model_overrides: dict[str, Any] = field(default_factory=dict)


@dataclass
class CompletionResult:
    """Unified response from any provider, or a structured failure."""

    text: str = ""
    provider: Optional[ProviderName] = None
    model: str = ""
    from_cache: bool = False
    processing_time_ms: Optional[int] = None
    tokens_used: Optional[int] = None   # Only when the provider reports it
    error_kind: Optional[ErrorKind] = None
    http_status: Optional[int] = None
    provider_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(
        cls,
        text: str,
        provider: ProviderName,
        model: str,
        *,
        from_cache: bool = False,
        processing_time_ms: Optional[int] = None,
        tokens_used: Optional[int] = None,
    ) -> CompletionResult:
        return cls(
            text=text,
            provider=provider,
            model=model,
            from_cache=from_cache,
            processing_time_ms=processing_time_ms,
            tokens_used=tokens_used,
        )

    @classmethod
    def failure(
        cls,
        error_kind: ErrorKind,
        *,
        provider: Optional[ProviderName] = None,
        model: str = "",
        http_status: Optional[int] = None,
        provider_message: Optional[str] = None,
    ) -> CompletionResult:
        return cls(
            provider=provider,
            model=model,
            error_kind=error_kind,
            http_status=http_status,
            provider_message=provider_message,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses (HTTP host, CLI)."""
        if not self.ok:
            return {
                "error": True,
                "error_kind": self.error_kind.value,
                "http_status": self.http_status,
                "message": self.provider_message,
                "provider": self.provider.value if self.provider else None,
            }

        data: dict[str, Any] = {
            "message": self.text,
            "from_cache": self.from_cache,
            "provider": self.provider.value if self.provider else None,
            "model": self.model,
        }
        if not self.from_cache:
            data["metadata"] = {
                "provider": data["provider"],
                "model": self.model,
                "processing_time_ms": self.processing_time_ms,
                "tokens_used": self.tokens_used,
            }
        return data
