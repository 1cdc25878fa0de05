"""Provider registry - adapters registered by name at startup"""

import asyncio
import logging
from typing import Iterable, Optional

from .ports import ExternalProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    def __init__(self, providers: Iterable[ExternalProvider] = ()):
        self._providers: dict[str, ExternalProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: ExternalProvider) -> None:
        if not provider.name:
            raise ValueError("Provider must have a name")
        if provider.name in self._providers:
            raise ValueError(f"Provider '{provider.name}' is already registered")
        self._providers[provider.name] = provider

    def get(self, name: str) -> Optional[ExternalProvider]:
        return self._providers.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    async def configured_for(self, salon_id: str, only: Optional[Iterable[str]] = None) -> list[ExternalProvider]:
        """Providers enabled for the salon; a failing configuration check counts as not configured"""
        wanted = set(only) if only is not None else None
        candidates = [p for name, p in self._providers.items() if wanted is None or name in wanted]
        if not candidates:
            return []

        checks = await asyncio.gather(*(p.is_configured(salon_id) for p in candidates), return_exceptions=True)

        configured = []
        for provider, outcome in zip(candidates, checks):
            if isinstance(outcome, BaseException):
                logger.warning(f"⚠️ Could not check '{provider.name}' configuration for salon {salon_id}: {outcome}")
            elif outcome:
                configured.append(provider)
        return configured
