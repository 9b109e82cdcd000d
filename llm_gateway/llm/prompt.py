"""
Prompt Composer — Reference-text ("source of truth") framing.

Operators can attach factual reference text that should ground every
answer. The composer wraps it in a provider-specific preamble, places it
ahead of the base system prompt and closes with a reinforcement suffix:

    <preamble><reference text>

    <base prompt><reinforcement suffix>

Composition is a pure function of its inputs, so composing twice with the
same arguments yields the same prompt (nothing accumulates).

Usage:
    from llm_gateway.llm.prompt import PromptComposer

    prompt = PromptComposer().compose(
        base_prompt="You are a course assistant.",
        reference_text="Q: When is the exam?\\nA: June 3rd.",
        provider=ProviderName.CLOUD_A,
    )
"""

from __future__ import annotations

from typing import Optional

from llm_gateway.llm.types import ProviderName


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

QA_PREAMBLE = (
    "Below is a list of questions and their answers. This information "
    "should be used as a reference for any inquiries:\n\n"
)

REFERENCE_INFORMATION_PREAMBLE = (
    "REFERENCE INFORMATION\n"
    "The following reference information is authoritative for this "
    "conversation:\n\n"
)

IMPORTANT_FACTS_PREAMBLE = (
    "IMPORTANT FACTS\n"
    "Treat the following facts as the primary source when answering:\n\n"
)

REINFORCEMENT_SUFFIX = (
    " The assistant must answer using the reference information above "
    "whenever a question or topic is covered by it, giving that information "
    "priority over general knowledge. If the reference contradicts general "
    "knowledge, the reference is correct. If the reference does not cover "
    "the question or topic, the assistant may use general knowledge to answer."
)

PROVIDER_PREAMBLES: dict[ProviderName, str] = {
    ProviderName.LOCAL_INFERENCE: QA_PREAMBLE,
    ProviderName.CLOUD_A: REFERENCE_INFORMATION_PREAMBLE,
    ProviderName.CLOUD_B: QA_PREAMBLE,
    ProviderName.CLOUD_C: IMPORTANT_FACTS_PREAMBLE,
}


def merge_reference_texts(*texts: Optional[str]) -> str:
    """Join the non-empty reference texts (global first) with a blank line."""
    return "\n\n".join(t.strip() for t in texts if t and t.strip())


# ---------------------------------------------------------------------------
# Composer
# ---------------------------------------------------------------------------

class PromptComposer:
    """
    Builds the final system prompt for a provider.

    Stateless; a single instance can be shared across requests.
    """

    def __init__(self, preambles: Optional[dict[ProviderName, str]] = None):
        self._preambles = dict(PROVIDER_PREAMBLES)
        if preambles:
            self._preambles.update(preambles)

    def preamble_for(
        self,
        provider: ProviderName,
        override: Optional[str] = None,
    ) -> str:
        """Preamble template for a provider (config override wins)."""
        if override:
            return override
        return self._preambles.get(provider, QA_PREAMBLE)

    def compose(
        self,
        base_prompt: str,
        reference_text: Optional[str],
        provider: ProviderName,
        *,
        preamble: Optional[str] = None,
    ) -> str:
        """
        Compose the system prompt.

        Args:
            base_prompt: Operator system prompt.
            reference_text: Merged reference text, may be empty.
            provider: Provider the prompt is built for.
            preamble: Optional template overriding the provider default.

        Returns:
            `base_prompt` unchanged when there is no reference text,
            otherwise the framed three-part prompt.
        """
        if not reference_text or not reference_text.strip():
            return base_prompt

        framed = self.preamble_for(provider, preamble) + reference_text
        return f"{framed}\n\n{base_prompt}{REINFORCEMENT_SUFFIX}"
