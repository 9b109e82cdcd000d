"""
Tests for the gateway configuration schema and YAML loader.

Validates defaults, environment resolution, instance overrides,
reference-text merging and loader error handling.
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest

from llm_gateway.config.loader import (
    CONFIG_PATH_ENV,
    clear_cache,
    load_gateway_config,
    missing_env_vars,
)
from llm_gateway.config.schema import (
    DEFAULT_SYSTEM_PROMPT,
    GatewaySettings,
    InstanceSettings,
    ProviderConfig,
)
from llm_gateway.exceptions import ConfigurationError
from llm_gateway.llm.types import ProviderName


@pytest.fixture(autouse=True)
def _clear_config_cache():
    clear_cache()
    yield
    clear_cache()


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "gateway.yaml"
    path.write_text(textwrap.dedent(content))
    return path


# ===========================================================================
# Schema
# ===========================================================================

class TestProviderConfig:
    """Validation of resolved provider config."""

    def test_defaults(self):
        config = ProviderConfig(name=ProviderName.CLOUD_B)
        assert config.temperature == 0.7
        assert config.max_tokens == 1024
        assert config.timeout == 60.0
        assert config.max_retries == 0

    @pytest.mark.parametrize("field, value", [
        ("temperature", 1.5),
        ("temperature", -0.1),
        ("max_tokens", 0),
        ("max_retries", 9),
    ])
    def test_rejects_out_of_range(self, field, value):
        with pytest.raises(ValueError):
            ProviderConfig(name=ProviderName.CLOUD_B, **{field: value})


class TestResolve:
    """GatewaySettings.resolve(instance, environ)."""

    def test_availability_from_environment(self):
        resolved = GatewaySettings().resolve(environ={
            "ANTHROPIC_API_KEY": "ak",
            "OLLAMA_API_URL": "http://localhost:11434",
        })
        assert resolved.available == [ProviderName.LOCAL_INFERENCE, ProviderName.CLOUD_A]
        assert resolved.get(ProviderName.CLOUD_A).api_key == "ak"
        assert resolved.get(ProviderName.LOCAL_INFERENCE).endpoint == "http://localhost:11434"

    def test_nothing_configured(self):
        resolved = GatewaySettings().resolve(environ={})
        assert resolved.available == []
        assert resolved.base_prompt == DEFAULT_SYSTEM_PROMPT

    def test_yaml_sections_layer_over_defaults(self):
        settings = GatewaySettings(providers={"openai": {"model": "gpt-4-turbo", "max_retries": 2}})
        config = settings.resolve(environ={}).get(ProviderName.CLOUD_B)
        assert config.model == "gpt-4-turbo"
        assert config.max_retries == 2
        assert config.endpoint == "https://api.openai.com/v1/chat/completions"

    def test_unknown_provider_key_rejected(self):
        with pytest.raises(ValueError):
            GatewaySettings(providers={"mistral": {}})

    def test_instance_overrides_ignored_unless_allowed(self):
        instance = InstanceSettings(
            system_prompt="Instance prompt",
            models={"cloud_b": "gpt-4"},
            default_provider="gemini",
        )
        resolved = GatewaySettings().resolve(instance, environ={})
        assert resolved.base_prompt == DEFAULT_SYSTEM_PROMPT
        assert resolved.get(ProviderName.CLOUD_B).model == "gpt-4o"
        assert resolved.default_provider is None

    def test_instance_overrides_applied_when_allowed(self):
        instance = InstanceSettings(
            system_prompt="Instance prompt",
            models={"cloud_b": "gpt-4"},
            temperature=0.1,
            default_provider="gemini",
        )
        settings = GatewaySettings(allow_instance_settings=True)
        resolved = settings.resolve(instance, environ={})
        assert resolved.base_prompt == "Instance prompt"
        assert resolved.get(ProviderName.CLOUD_B).model == "gpt-4"
        assert resolved.get(ProviderName.CLOUD_A).temperature == 0.1
        assert resolved.default_provider == ProviderName.CLOUD_C

    def test_reference_texts_always_merged(self):
        settings = GatewaySettings(reference_text="Global facts.")
        resolved = settings.resolve(InstanceSettings(reference_text="Course facts."), environ={})
        assert resolved.reference_text == "Global facts.\n\nCourse facts."

    def test_routing_hint(self):
        settings = GatewaySettings(default_provider="openai")
        resolved = settings.resolve(environ={})
        assert resolved.routing_hint("gemini") == ProviderName.CLOUD_C
        assert resolved.routing_hint(None) == ProviderName.CLOUD_B

        locked = GatewaySettings(default_provider="openai", allow_provider_selection=False)
        assert locked.resolve(environ={}).routing_hint("gemini") == ProviderName.CLOUD_B


# ===========================================================================
# Loader
# ===========================================================================

class TestLoadGatewayConfig:
    """load_gateway_config(path)."""

    def test_loads_yaml(self, tmp_path):
        path = _write(tmp_path, """
            default_provider: claude
            cache:
              backend: sqlite
              ttl_seconds: 3600
            providers:
              cloud_a:
                model: claude-3-opus-20240229
        """)
        config = load_gateway_config(path)

        assert config.default_provider == ProviderName.CLOUD_A
        assert config.cache.backend == "sqlite"
        assert config.cache.ttl_seconds == 3600
        assert config.provider_settings(ProviderName.CLOUD_A).model == "claude-3-opus-20240229"

    def test_cached_per_path(self, tmp_path):
        path = _write(tmp_path, "default_provider: openai\n")
        assert load_gateway_config(path) is load_gateway_config(path)

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_gateway_config(tmp_path / "nope.yaml")
        assert exc_info.value.config_path.endswith("nope.yaml")

    def test_empty_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="empty"):
            load_gateway_config(_write(tmp_path, ""))

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_gateway_config(_write(tmp_path, "providers: [unclosed\n"))

    def test_schema_violation(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Invalid gateway config"):
            load_gateway_config(_write(tmp_path, "cache:\n  backend: redis\n"))

    def test_env_var_path(self, tmp_path):
        path = _write(tmp_path, "default_provider: gemini\n")
        with patch.dict("os.environ", {CONFIG_PATH_ENV: str(path)}):
            config = load_gateway_config()
        assert config.default_provider == ProviderName.CLOUD_C

    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        config = load_gateway_config()
        assert config == GatewaySettings()


class TestMissingEnvVars:
    """missing_env_vars(config, environ)."""

    def test_reports_unset_variables(self):
        missing = missing_env_vars(GatewaySettings(), environ={"OPENAI_API_KEY": "sk"})
        assert missing[ProviderName.CLOUD_B] == []
        assert missing[ProviderName.CLOUD_A] == ["ANTHROPIC_API_KEY"]
        assert missing[ProviderName.LOCAL_INFERENCE] == ["OLLAMA_API_URL"]

    def test_static_local_endpoint_needs_nothing(self):
        settings = GatewaySettings(providers={"ollama": {"endpoint": "http://gpu-box:11434"}})
        assert missing_env_vars(settings, environ={})[ProviderName.LOCAL_INFERENCE] == []
