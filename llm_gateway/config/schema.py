"""
Pydantic configuration schema for the LLM gateway.

The gateway is configured by a YAML file that conforms to these models.
Secrets never live in the file: each provider names the environment
variables holding its API key and endpoint, and `GatewaySettings.resolve()`
reads them once per request so that live config changes are picked up.

Instance-level settings (one chat block / tenant) override the global
model, temperature, token limit, prompt and default provider only when
`allow_instance_settings` is enabled. Reference texts are never replaced:
global and instance texts are concatenated.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from llm_gateway.llm.prompt import merge_reference_texts
from llm_gateway.llm.types import ProviderName


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer questions clearly and concisely."
)


def _parse_provider_keys(value: Any) -> Any:
    """Accept legacy provider names ("ollama", "claude", ...) as mapping keys."""
    if not isinstance(value, Mapping):
        return value
    parsed = {}
    for key, item in value.items():
        name = ProviderName.parse(key)
        if name is None:
            raise ValueError(f"Unknown provider: {key!r}")
        parsed[name] = item
    return parsed


# ---------------------------------------------------------------------------
# Resolved provider config
# ---------------------------------------------------------------------------

class ProviderConfig(BaseModel):
    """
    Immutable, fully resolved configuration for one provider.

    Assembled once per request and passed down to the router and clients.
    """

    model_config = ConfigDict(frozen=True)

    name: ProviderName
    endpoint: str = ""
    api_key: str = ""
    model: str = ""
    temperature: float = Field(0.7, ge=0.0, le=1.0)
    max_tokens: int = Field(1024, gt=0)
    timeout: float = Field(60.0, gt=0, description="Upstream call timeout (s)")
    max_retries: int = Field(0, ge=0, le=5, description="Transport retries")
    retry_backoff_seconds: float = Field(0.5, ge=0.0)
    reference_preamble: Optional[str] = None

    @property
    def available(self) -> bool:
        """
        Presence-based availability: the local server needs an endpoint,
        cloud providers need an API key. No connectivity probe.
        """
        if self.name == ProviderName.LOCAL_INFERENCE:
            return bool(self.endpoint.strip())
        return bool(self.api_key.strip())


# ---------------------------------------------------------------------------
# YAML sub-models
# ---------------------------------------------------------------------------

class ProviderSettings(BaseModel):
    """Per-provider section of the YAML file."""

    endpoint: Optional[str] = None
    endpoint_env: Optional[str] = None
    api_key_env: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = Field(None, ge=0.0, le=1.0)
    max_tokens: Optional[int] = Field(None, gt=0)
    timeout: Optional[float] = Field(None, gt=0)
    max_retries: Optional[int] = Field(None, ge=0, le=5)
    reference_preamble: Optional[str] = None


# Built-in defaults per provider; YAML sections are layered on top.
DEFAULT_PROVIDER_SETTINGS: dict[ProviderName, ProviderSettings] = {
    ProviderName.LOCAL_INFERENCE: ProviderSettings(
        endpoint_env="OLLAMA_API_URL",
        model="llama3",
    ),
    ProviderName.CLOUD_A: ProviderSettings(
        endpoint="https://api.anthropic.com/v1/messages",
        api_key_env="ANTHROPIC_API_KEY",
        model="claude-3-haiku-20240307",
    ),
    ProviderName.CLOUD_B: ProviderSettings(
        endpoint="https://api.openai.com/v1/chat/completions",
        api_key_env="OPENAI_API_KEY",
        model="gpt-4o",
    ),
    ProviderName.CLOUD_C: ProviderSettings(
        endpoint="https://generativelanguage.googleapis.com",
        api_key_env="GEMINI_API_KEY",
        model="gemini-1.5-flash",
    ),
}


class CacheSettings(BaseModel):
    """Response cache settings."""
    enabled: bool = True
    backend: Literal["memory", "sqlite"] = "memory"
    sqlite_path: str = "llm_gateway_cache.db"
    ttl_seconds: int = Field(24 * 3600, gt=0)
    purge_max_age_seconds: int = Field(
        7 * 24 * 3600, gt=0, description="Age cutoff used by purge-cache"
    )


class LoggingSettings(BaseModel):
    """Application logging and interaction audit settings."""
    level: str = "INFO"
    audit_enabled: bool = False
    audit_dir: str = "logs/audit"


class InstanceSettings(BaseModel):
    """Overrides supplied by one chat instance (block, tenant, channel)."""

    instance_id: Optional[int] = None
    default_provider: Optional[ProviderName] = None
    system_prompt: Optional[str] = None
    reference_text: Optional[str] = None
    models: dict[ProviderName, str] = Field(default_factory=dict)
    temperature: Optional[float] = Field(None, ge=0.0, le=1.0)
    max_tokens: Optional[int] = Field(None, gt=0)

    @field_validator("default_provider", mode="before")
    @classmethod
    def parse_default_provider(cls, v: Any) -> Optional[ProviderName]:
        return ProviderName.parse(v)

    @field_validator("models", mode="before")
    @classmethod
    def parse_model_keys(cls, v: Any) -> Any:
        return _parse_provider_keys(v)


# ---------------------------------------------------------------------------
# Resolved settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResolvedSettings:
    """Everything one completion call needs, merged from global + instance."""

    providers: tuple[ProviderConfig, ...]
    default_provider: Optional[ProviderName]
    base_prompt: str
    reference_text: str
    allow_provider_selection: bool = True

    def get(self, name: ProviderName) -> ProviderConfig:
        for config in self.providers:
            if config.name == name:
                return config
        raise KeyError(name)

    @property
    def available(self) -> list[ProviderName]:
        return [c.name for c in self.providers if c.available]

    def routing_hint(self, requested: Any = None) -> Optional[ProviderName]:
        """The request's hint when allowed and given, else the configured default."""
        if not self.allow_provider_selection:
            return self.default_provider
        return ProviderName.parse(requested) or self.default_provider


# ---------------------------------------------------------------------------
# Root Config
# ---------------------------------------------------------------------------

class GatewaySettings(BaseModel):
    """
    Root configuration model. Loaded from the gateway YAML file.
    """

    default_provider: Optional[ProviderName] = None
    allow_provider_selection: bool = Field(
        True, description="Honour routing hints sent with requests"
    )
    allow_instance_settings: bool = False
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    reference_text: str = ""
    providers: dict[ProviderName, ProviderSettings] = Field(default_factory=dict)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("default_provider", mode="before")
    @classmethod
    def parse_default_provider(cls, v: Any) -> Optional[ProviderName]:
        return ProviderName.parse(v)

    @field_validator("providers", mode="before")
    @classmethod
    def parse_provider_keys(cls, v: Any) -> Any:
        return _parse_provider_keys(v)

    def provider_settings(self, name: ProviderName) -> ProviderSettings:
        """YAML section for `name` layered over the built-in defaults."""
        base = DEFAULT_PROVIDER_SETTINGS[name]
        override = self.providers.get(name)
        if override is None:
            return base
        return base.model_copy(update=override.model_dump(exclude_none=True))

    def resolve(
        self,
        instance: Optional[InstanceSettings] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> ResolvedSettings:
        """
        Build the per-request settings snapshot.

        Args:
            instance: Optional instance-level overrides.
            environ: Environment mapping (defaults to os.environ).

        Returns:
            ResolvedSettings with one ProviderConfig per provider.
        """
        env = os.environ if environ is None else environ
        use_instance = instance is not None and self.allow_instance_settings

        configs = []
        for name in ProviderName:
            section = self.provider_settings(name)

            endpoint = section.endpoint or ""
            if section.endpoint_env and env.get(section.endpoint_env):
                endpoint = env[section.endpoint_env]
            api_key = env.get(section.api_key_env, "") if section.api_key_env else ""

            values: dict[str, Any] = {
                "name": name,
                "endpoint": endpoint.strip(),
                "api_key": api_key.strip(),
                "model": section.model or "",
                "reference_preamble": section.reference_preamble,
            }
            for key in ("temperature", "max_tokens", "timeout", "max_retries"):
                value = getattr(section, key)
                if value is not None:
                    values[key] = value

            if use_instance:
                if instance.models.get(name):
                    values["model"] = instance.models[name]
                if instance.temperature is not None:
                    values["temperature"] = instance.temperature
                if instance.max_tokens is not None:
                    values["max_tokens"] = instance.max_tokens

            configs.append(ProviderConfig(**values))

        default_provider = self.default_provider
        base_prompt = self.system_prompt
        if use_instance:
            default_provider = instance.default_provider or default_provider
            base_prompt = instance.system_prompt or base_prompt

        instance_reference = instance.reference_text if instance else None

        return ResolvedSettings(
            providers=tuple(configs),
            default_provider=default_provider,
            base_prompt=base_prompt,
            reference_text=merge_reference_texts(
                self.reference_text, instance_reference
            ),
            allow_provider_selection=self.allow_provider_selection,
        )
