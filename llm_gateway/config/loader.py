"""
Configuration loader for the LLM gateway.

Loads the gateway YAML file, validates it against the Pydantic schema and
caches the result per path. Lookup order for the file:

1. explicit `path` argument
2. LLM_GATEWAY_CONFIG environment variable
3. config/gateway.yaml in the working directory

When no file is found via 2 or 3 the built-in defaults are used, so a bare
environment with e.g. OPENAI_API_KEY set is a working setup.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

import yaml
from pydantic import ValidationError

from llm_gateway.config.schema import GatewaySettings
from llm_gateway.exceptions import ConfigurationError
from llm_gateway.llm.types import ProviderName

DEFAULT_CONFIG_PATH = Path("config") / "gateway.yaml"
CONFIG_PATH_ENV = "LLM_GATEWAY_CONFIG"

# Module-level cache: resolved path (or "<defaults>") -> GatewaySettings
_loaded_configs: dict[str, GatewaySettings] = {}


def find_config_path(path: Optional[str | Path] = None) -> Optional[Path]:
    """Return the config file to load, or None to use defaults."""
    if path is not None:
        return Path(path)
    from_env = os.environ.get(CONFIG_PATH_ENV)
    if from_env:
        return Path(from_env)
    if DEFAULT_CONFIG_PATH.exists():
        return DEFAULT_CONFIG_PATH
    return None


def load_gateway_config(path: Optional[str | Path] = None) -> GatewaySettings:
    """
    Load and validate the gateway configuration.

    Args:
        path: Optional explicit path to the YAML file.

    Returns:
        Validated GatewaySettings instance.

    Raises:
        ConfigurationError: file missing (when named explicitly or via
            LLM_GATEWAY_CONFIG), empty, not valid YAML, or failing
            schema validation.
    """
    config_path = find_config_path(path)
    cache_key = str(config_path.resolve()) if config_path else "<defaults>"
    if cache_key in _loaded_configs:
        return _loaded_configs[cache_key]

    if config_path is None:
        config = GatewaySettings()
        _loaded_configs[cache_key] = config
        return config

    if not config_path.exists():
        raise ConfigurationError(
            f"Config not found: {config_path}",
            config_path=str(config_path),
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Config is not valid YAML: {config_path}\n{e}",
            config_path=str(config_path),
        ) from e

    if raw is None:
        raise ConfigurationError(
            f"Config file is empty: {config_path}",
            config_path=str(config_path),
        )
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Config must be a mapping at the top level: {config_path}",
            config_path=str(config_path),
        )

    try:
        config = GatewaySettings(**raw)
    except (ValidationError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid gateway config {config_path}:\n{e}",
            config_path=str(config_path),
        ) from e

    _loaded_configs[cache_key] = config
    return config


def missing_env_vars(
    config: GatewaySettings,
    environ: Optional[Mapping[str, str]] = None,
) -> dict[ProviderName, list[str]]:
    """
    Environment variables each provider needs but does not have.

    A provider with an empty list is available. Used by the CLI to
    explain why a provider is not offered.
    """
    env = os.environ if environ is None else environ
    missing: dict[ProviderName, list[str]] = {}
    for name in ProviderName:
        section = config.provider_settings(name)
        needed: list[str] = []
        if name == ProviderName.LOCAL_INFERENCE:
            if not section.endpoint and section.endpoint_env and not env.get(section.endpoint_env):
                needed.append(section.endpoint_env)
        elif section.api_key_env and not env.get(section.api_key_env):
            needed.append(section.api_key_env)
        missing[name] = needed
    return missing


def clear_cache() -> None:
    """Clear the config cache. Useful for testing."""
    _loaded_configs.clear()
