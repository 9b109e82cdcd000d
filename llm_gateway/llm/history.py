"""
History Manager — Conversation formatting and context-budget control.

Conversation history arrives as opaque client data (a JSON string or a
list of {"message", "response"} objects). The manager:

- parses it into ChatTurns, degrading to an empty history when malformed
  (history is advisory context, never a reason to fail a request)
- converts it into a role-tagged message list for a provider
- estimates token usage with a cheap character heuristic
- truncates long histories to first-2 + most-recent turns once the
  estimate passes 80% of the model's context window
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Iterable, Mapping, Optional

from llm_gateway.llm.types import (
    ChatTurn,
    ConversationHistory,
    ProviderMessages,
    ProviderName,
)

logger = logging.getLogger(__name__)


# Providers whose wire format carries the system prompt as a message.
SYSTEM_ROLE_PROVIDERS = frozenset({
    ProviderName.LOCAL_INFERENCE,
    ProviderName.CLOUD_B,
})

# Approximate context windows (tokens) for the supported model ids.
MODEL_CONTEXT_LIMITS: dict[str, int] = {
    # Anthropic
    "claude-3-opus-20240229": 200000,
    "claude-3-sonnet-20240229": 200000,
    "claude-3-haiku-20240307": 200000,
    "claude-3.5-sonnet-20240620": 200000,
    "claude-3.7-sonnet-20250219": 200000,
    # OpenAI
    "gpt-4o": 128000,
    "gpt-4-turbo": 128000,
    "gpt-4": 8192,
    "gpt-3.5-turbo": 16385,
    # Gemini
    "gemini-pro": 32760,
    "gemini-1.5-pro": 1000000,
    "gemini-1.5-flash": 1000000,
    # Ollama
    "llama2": 4096,
    "llama3": 8192,
    "mistral": 8192,
    "gemma": 8192,
    "phi": 2048,
}

DEFAULT_CONTEXT_LIMIT = 4000
TRUNCATION_THRESHOLD = 0.8
DEFAULT_KEEP_TURNS = 10
LEADING_TURNS_KEPT = 2

_ASCII_SAMPLE_CHARS = 500
_ASCII_TEXT = re.compile(r"^[\x20-\x7E\t\r\n]*$")


class HistoryManager:
    """
    Converts and budgets conversation history.

    Stateless: every method works only on its arguments.
    """

    def __init__(
        self,
        context_limits: Optional[Mapping[str, int]] = None,
        default_limit: int = DEFAULT_CONTEXT_LIMIT,
    ):
        self._limits = dict(MODEL_CONTEXT_LIMITS)
        if context_limits:
            self._limits.update(context_limits)
        self._default_limit = default_limit

    # --- Parsing ---

    def parse_history(self, raw: Any) -> ConversationHistory:
        """
        Normalize client-supplied history into ChatTurns.

        Accepts None, a JSON string, or an iterable of ChatTurn objects /
        mappings with "message" and optional "response" keys. Entries
        without a user message are skipped; anything unparseable yields
        an empty history.
        """
        if raw is None or raw == "":
            return []

        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except (TypeError, ValueError):
                logger.warning("history_unparseable", extra={"reason": "invalid_json"})
                return []

        if not isinstance(raw, list):
            logger.warning(
                "history_unparseable",
                extra={"reason": f"expected list, got {type(raw).__name__}"},
            )
            return []

        turns: ConversationHistory = []
        for entry in raw:
            if isinstance(entry, ChatTurn):
                turns.append(entry)
                continue
            if not isinstance(entry, Mapping):
                continue
            message = entry.get("message")
            if not isinstance(message, str):
                continue
            response = entry.get("response")
            turns.append(ChatTurn(
                user_message=message,
                assistant_response=response if isinstance(response, str) else None,
            ))
        return turns

    # --- Formatting ---

    @staticmethod
    def format_turns(history: Iterable[ChatTurn]) -> list[dict[str, str]]:
        """User entry per turn, followed by the assistant entry if present."""
        messages: list[dict[str, str]] = []
        for turn in history:
            messages.append({"role": "user", "content": turn.user_message})
            if turn.assistant_response is not None:
                messages.append({"role": "assistant", "content": turn.assistant_response})
        return messages

    def to_provider_messages(
        self,
        history: Iterable[ChatTurn],
        current_message: str,
        system_prompt: str,
        provider: ProviderName,
    ) -> ProviderMessages:
        """
        Build the ordered message list for a provider.

        Providers with a system-role slot get the system prompt as the
        first message; all others receive it only via `system_prompt`.
        """
        messages: list[dict[str, str]] = []
        if provider in SYSTEM_ROLE_PROVIDERS:
            messages.append({"role": "system", "content": system_prompt})
        messages.extend(self.format_turns(history))
        messages.append({"role": "user", "content": current_message})
        return ProviderMessages(system_prompt=system_prompt, messages=messages)

    # --- Token Budget ---

    @staticmethod
    def estimate_tokens(text: Optional[str]) -> int:
        """
        Rough token count: chars/4 for mostly-ASCII text, chars/6 otherwise.

        Only the first 500 characters are inspected to classify the text.
        """
        if not text:
            return 0
        divisor = 4 if _ASCII_TEXT.match(text[:_ASCII_SAMPLE_CHARS]) else 6
        return math.ceil(len(text) / divisor)

    def context_limit(self, model: str) -> int:
        """Known context window for `model`, or the default limit."""
        return self._limits.get(model, self._default_limit)

    def count_tokens(self, history: Iterable[ChatTurn], current_message: str) -> int:
        total = self.estimate_tokens(current_message)
        for turn in history:
            total += self.estimate_tokens(turn.user_message)
            total += self.estimate_tokens(turn.assistant_response)
        return total

    def should_truncate(
        self,
        history: Iterable[ChatTurn],
        current_message: str,
        model: str,
    ) -> bool:
        """True when the estimate exceeds 80% of the model's context limit."""
        tokens = self.count_tokens(history, current_message)
        return tokens > self.context_limit(model) * TRUNCATION_THRESHOLD

    @staticmethod
    def truncate(
        history: ConversationHistory,
        keep: int = DEFAULT_KEEP_TURNS,
    ) -> ConversationHistory:
        """
        Keep the first 2 turns (original context) and the last `keep - 2`.

        No-op when the history already has `keep` turns or fewer.
        """
        if len(history) <= keep:
            return list(history)
        head = min(LEADING_TURNS_KEPT, max(keep, 0))
        recent = keep - head
        tail = history[-recent:] if recent > 0 else []
        return list(history[:head]) + list(tail)
