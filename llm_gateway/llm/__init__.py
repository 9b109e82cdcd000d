"""
LLM Abstraction Layer — Provider routing, prompt framing and caching.

Provides a uniform request/response contract over four chat-completion
providers (a local Ollama server plus the Anthropic, OpenAI and Gemini
cloud APIs) with availability-based routing and deterministic fallback.

Modules:
- types: ChatTurn, CompletionRequest, CompletionResult, ProviderName
- prompt: PromptComposer — reference-text framing per provider
- history: HistoryManager — message lists, token estimates, truncation
- cache: ResponseCache — TTL-based response caching over a row store
- router: ProviderRouter — priority-ordered provider resolution
- providers: one client per wire protocol
- service: CompletionService — orchestrates a single completion
- diagnostics: live connection checks and suggested model lists
"""
