"""
Completion Service — one chat request from message to normalized result.

Pipeline per call:

    validate → parse history → resolve provider → apply overrides
      → compose prompt → cache lookup ──hit──────────────────────┐
      → truncate history → build messages → provider call         │
      → cache put → audit log ────────────────────────────────────┴→ result

Every failure comes back as a CompletionResult with an ErrorKind; nothing
raised below this layer escapes `get_response`. Cache and audit-log
problems are logged and ignored.

Usage:
    from llm_gateway.llm.service import CompletionService

    service = CompletionService.from_settings(settings)
    resolved = settings.resolve()
    result = await service.get_response(
        "What is the capital of France?",
        history=[],
        routing_hint=None,
        providers=resolved.providers,
        base_prompt=resolved.base_prompt,
        reference_text=resolved.reference_text,
    )
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Iterable, Mapping, Optional

import httpx

from llm_gateway.config.schema import GatewaySettings, ProviderConfig
from llm_gateway.exceptions import (
    GatewayError,
    InvalidInputError,
    NoProviderAvailableError,
)
from llm_gateway.llm.cache import ResponseCache
from llm_gateway.llm.cache_store import create_cache_store
from llm_gateway.llm.history import HistoryManager
from llm_gateway.llm.prompt import PromptComposer
from llm_gateway.llm.providers import ProviderClient, create_clients
from llm_gateway.llm.router import ProviderRouter
from llm_gateway.llm.types import (
    CompletionRequest,
    CompletionResult,
    ErrorKind,
    ProviderName,
)
from llm_gateway.observability.audit import (
    AuditLogSink,
    InteractionLog,
    JSONLinesAuditLog,
)
from llm_gateway.observability.logging_config import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

OVERRIDE_KEYS = frozenset({"temperature", "max_tokens", "model"})


def apply_model_overrides(
    config: ProviderConfig,
    overrides: Optional[Mapping[str, Any]],
) -> ProviderConfig:
    """
    Return `config` with per-request knobs applied.

    Raises:
        InvalidInputError: unknown key or out-of-range value.
    """
    if not overrides:
        return config

    unknown = set(overrides) - OVERRIDE_KEYS
    if unknown:
        raise InvalidInputError(
            f"Unknown model override(s): {', '.join(sorted(unknown))}",
            field="model_overrides",
        )

    update: dict[str, Any] = {}

    if overrides.get("temperature") is not None:
        temperature = overrides["temperature"]
        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
            raise InvalidInputError("temperature must be a number", field="temperature")
        if not 0.0 <= temperature <= 1.0:
            raise InvalidInputError(
                "temperature must be between 0.0 and 1.0", field="temperature"
            )
        update["temperature"] = float(temperature)

    if overrides.get("max_tokens") is not None:
        max_tokens = overrides["max_tokens"]
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0:
            raise InvalidInputError(
                "max_tokens must be a positive integer", field="max_tokens"
            )
        update["max_tokens"] = max_tokens

    if overrides.get("model") is not None:
        model = overrides["model"]
        if not isinstance(model, str) or not model.strip():
            raise InvalidInputError("model must be a non-empty string", field="model")
        update["model"] = model.strip()

    return config.model_copy(update=update)


class CompletionService:
    """
    Orchestrates router, composer, history, cache and provider clients.

    Holds no per-request state; concurrent calls share only the cache
    store and the usage counters.
    """

    def __init__(
        self,
        router: Optional[ProviderRouter] = None,
        composer: Optional[PromptComposer] = None,
        history: Optional[HistoryManager] = None,
        cache: Optional[ResponseCache] = None,
        clients: Optional[Mapping[ProviderName, ProviderClient]] = None,
        audit_log: Optional[AuditLogSink] = None,
    ):
        self._router = router or ProviderRouter()
        self._composer = composer or PromptComposer()
        self._history = history or HistoryManager()
        self._cache = cache if cache is not None else ResponseCache()
        self._clients = dict(clients) if clients is not None else create_clients()
        self._audit_log = audit_log

        # Usage tracking
        self._call_count: int = 0
        self._cache_hits: int = 0
        self._failures: int = 0
        self._total_tokens: int = 0
        self._calls_by_provider: dict[str, int] = {}

    @classmethod
    def from_settings(
        cls,
        settings: GatewaySettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> CompletionService:
        """Wire a service from the YAML-backed settings."""
        cache = ResponseCache(
            create_cache_store(settings.cache),
            enabled=settings.cache.enabled,
            ttl_seconds=settings.cache.ttl_seconds,
        )
        audit_log = (
            JSONLinesAuditLog(settings.logging.audit_dir)
            if settings.logging.audit_enabled
            else None
        )
        return cls(
            cache=cache,
            clients=create_clients(transport),
            audit_log=audit_log,
        )

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def router(self) -> ProviderRouter:
        return self._router

    # --- Main API ---

    async def get_response(
        self,
        message: str,
        history: Any,
        routing_hint: Any,
        providers: Iterable[ProviderConfig],
        base_prompt: str,
        reference_text: Optional[str] = None,
        *,
        model_overrides: Optional[Mapping[str, Any]] = None,
        log_context: Optional[dict[str, Any]] = None,
    ) -> CompletionResult:
        """
        Answer one chat message.

        Args:
            message: Current user input; must be non-blank.
            history: ChatTurns, dicts or a JSON string. Malformed history
                     is treated as empty.
            routing_hint: Preferred provider (name or alias) or None.
            providers: Resolved ProviderConfigs for this request. Bare
                       provider names carry no credentials and are ignored.
            base_prompt: System prompt before reference framing.
            reference_text: Merged "source of truth" text, if any.
            model_overrides: Per-request temperature / max_tokens / model.
            log_context: Caller ids for the audit row (user_id, course_id,
                         context_id, instance_id).

        Returns:
            CompletionResult (success or structured failure).
        """
        set_request_id(uuid.uuid4().hex[:16])
        try:
            return await self._get_response(
                message,
                history,
                routing_hint,
                [p for p in providers if isinstance(p, ProviderConfig)],
                base_prompt,
                reference_text,
                model_overrides,
                log_context,
            )
        finally:
            clear_request_id()

    async def complete(
        self,
        request: CompletionRequest,
        providers: Iterable[ProviderConfig],
        base_prompt: str,
        *,
        log_context: Optional[dict[str, Any]] = None,
    ) -> CompletionResult:
        """CompletionRequest-shaped entry point."""
        return await self.get_response(
            request.message,
            request.history,
            request.routing_hint,
            providers,
            request.system_prompt_override or base_prompt,
            request.reference_text,
            model_overrides=request.model_overrides,
            log_context=log_context,
        )

    async def _get_response(
        self,
        message: str,
        history: Any,
        routing_hint: Any,
        providers: list[ProviderConfig],
        base_prompt: str,
        reference_text: Optional[str],
        model_overrides: Optional[Mapping[str, Any]],
        log_context: Optional[dict[str, Any]],
    ) -> CompletionResult:
        if not isinstance(message, str) or not message.strip():
            return self._fail(InvalidInputError("Message is empty", field="message"))

        turns = self._history.parse_history(history)

        try:
            provider = self._router.resolve(routing_hint, providers)
            config = apply_model_overrides(self._config_for(provider, providers), model_overrides)
        except GatewayError as e:
            return self._fail(e)

        system_prompt = self._composer.compose(
            base_prompt,
            reference_text,
            provider,
            preamble=config.reference_preamble,
        )

        cached = self._cache.get(message, config.model)
        if cached is not None:
            result = CompletionResult.success(
                cached, provider, config.model, from_cache=True
            )
            self._track_usage(result)
            logger.info(
                "completion_served",
                extra={"provider": provider.value, "model": config.model, "from_cache": True},
            )
            self._record_interaction(message, result, log_context)
            return result

        if self._history.should_truncate(turns, message, config.model):
            original = len(turns)
            turns = self._history.truncate(turns)
            logger.info(
                "history_truncated",
                extra={"model": config.model, "turns_before": original, "turns_after": len(turns)},
            )

        provider_messages = self._history.to_provider_messages(
            turns, message, system_prompt, provider
        )

        client = self._clients[provider]
        result = await client.create_response(message, provider_messages, config)
        self._track_usage(result)

        if result.ok:
            self._cache.put(message, config.model, result.text)
            logger.info(
                "completion_served",
                extra={
                    "provider": provider.value,
                    "model": config.model,
                    "from_cache": False,
                    "duration_ms": result.processing_time_ms,
                    "tokens": result.tokens_used,
                },
            )
        else:
            logger.warning(
                "completion_failed",
                extra={
                    "provider": provider.value,
                    "model": config.model,
                    "error_kind": result.error_kind.value,
                    "status_code": result.http_status,
                },
            )

        self._record_interaction(message, result, log_context)
        return result

    # --- Helpers ---

    @staticmethod
    def _config_for(
        provider: ProviderName,
        providers: list[ProviderConfig],
    ) -> ProviderConfig:
        for config in providers:
            if config.name == provider:
                return config
        raise NoProviderAvailableError(
            f"No configuration for provider {provider.value}"
        )

    def _fail(self, error: GatewayError) -> CompletionResult:
        logger.warning(
            "completion_rejected",
            extra={
                "error_kind": error.kind.value if error.kind else None,
                "error": str(error)[:200],
            },
        )
        result = CompletionResult.failure(
            error.kind or ErrorKind.INVALID_INPUT,
            provider_message=str(error),
        )
        self._track_usage(result)
        return result

    def _record_interaction(
        self,
        message: str,
        result: CompletionResult,
        log_context: Optional[dict[str, Any]],
    ) -> None:
        """Write the audit row. Failures are logged, never raised."""
        if self._audit_log is None:
            return

        response = result.text if result.ok else json.dumps(result.to_dict())
        entry = InteractionLog.from_context(
            log_context,
            message=message,
            response=response,
            provider=result.provider.value if result.provider else "",
            model=result.model,
        )
        try:
            self._audit_log.record(entry)
        except Exception as e:
            logger.warning("audit_log_failed", extra={"error": str(e)[:200]})

    # --- Usage Tracking ---

    def _track_usage(self, result: CompletionResult) -> None:
        self._call_count += 1
        if not result.ok:
            self._failures += 1
            return
        if result.from_cache:
            self._cache_hits += 1
        if result.tokens_used:
            self._total_tokens += result.tokens_used
        if result.provider is not None:
            name = result.provider.value
            self._calls_by_provider[name] = self._calls_by_provider.get(name, 0) + 1

    def get_usage_stats(self) -> dict[str, Any]:
        """Return cumulative usage statistics."""
        return {
            "total_calls": self._call_count,
            "cache_hits": self._cache_hits,
            "failures": self._failures,
            "total_tokens": self._total_tokens,
            "calls_by_provider": dict(self._calls_by_provider),
            "cache": self._cache.get_stats(),
        }

    def reset_usage(self) -> None:
        """Reset usage counters."""
        self._call_count = 0
        self._cache_hits = 0
        self._failures = 0
        self._total_tokens = 0
        self._calls_by_provider = {}
