"""
Provider Router — Availability-based provider selection with fallback.

Routing rules:
- The requested provider wins when it is configured (available).
- Otherwise the first available provider in the fixed priority order
  local_inference → cloud_a → cloud_b → cloud_c. Self-hosted inference is
  preferred before the paid cloud APIs.
- No available provider → NoProviderAvailableError.

Availability is presence-based (endpoint / API key set), never a live
connectivity probe, so resolution performs no I/O.

Usage:
    from llm_gateway.llm.router import ProviderRouter

    name = ProviderRouter().resolve("cloud_c", settings.providers)
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Union

from llm_gateway.config.schema import ProviderConfig
from llm_gateway.exceptions import NoProviderAvailableError
from llm_gateway.llm.types import ProviderName

logger = logging.getLogger(__name__)


PROVIDER_PRIORITY: tuple[ProviderName, ...] = (
    ProviderName.LOCAL_INFERENCE,
    ProviderName.CLOUD_A,
    ProviderName.CLOUD_B,
    ProviderName.CLOUD_C,
)

Configured = Iterable[Union[ProviderConfig, ProviderName, str]]


class ProviderRouter:
    """Resolves the provider for one request. Stateless."""

    def __init__(self, priority: tuple[ProviderName, ...] = PROVIDER_PRIORITY):
        self._priority = priority

    @property
    def priority(self) -> tuple[ProviderName, ...]:
        return self._priority

    @staticmethod
    def available_providers(configured: Configured) -> set[ProviderName]:
        """
        Names of the available providers.

        ProviderConfig items count only when `available`; bare names are
        taken as already filtered.
        """
        names: set[ProviderName] = set()
        for item in configured:
            if isinstance(item, ProviderConfig):
                if item.available:
                    names.add(item.name)
                continue
            name = ProviderName.parse(item)
            if name is not None:
                names.add(name)
        return names

    def resolve(self, requested: Any, configured: Configured) -> ProviderName:
        """
        Pick the provider to call.

        Args:
            requested: Routing hint (ProviderName, string alias or None).
            configured: ProviderConfigs or provider names.

        Returns:
            The resolved ProviderName.

        Raises:
            NoProviderAvailableError: nothing is configured.
        """
        available = self.available_providers(configured)
        if not available:
            raise NoProviderAvailableError("No AI provider is configured")

        wanted: Optional[ProviderName] = ProviderName.parse(requested)
        if wanted is not None and wanted in available:
            return wanted

        for name in self._priority:
            if name in available:
                if wanted is not None:
                    logger.info(
                        "provider_fallback",
                        extra={"requested": wanted.value, "provider": name.value},
                    )
                return name

        # Only reachable with a custom priority that omits a provider.
        raise NoProviderAvailableError("No AI provider is configured")
