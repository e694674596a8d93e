# helpdesk/providers/__init__.py
# Provider-Registry: statische Zuordnung ProviderId → Adapter-Instanz
from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping

from ..models import ProviderId
from .azure import AzureOpenAIProvider
from .base import BaseProvider
from .claude import ClaudeProvider
from .llama import LlamaProvider
from .openai import OpenAIProvider

logger = logging.getLogger(__name__)

__all__ = ["BaseProvider", "ProviderRegistry", "default_providers"]


def default_providers() -> dict[ProviderId, BaseProvider]:
    """Alle Adapter instanziieren: aktiv nur wenn Zugangsdaten gesetzt sind."""
    return {
        ProviderId.AZURE: AzureOpenAIProvider(),
        ProviderId.LLAMA: LlamaProvider(),
        ProviderId.OPENAI: OpenAIProvider(),
        ProviderId.CLAUDE: ClaudeProvider(),
    }


class ProviderRegistry:
    """
    Einmalig beim Start befüllt (kein Hot-Reload).
    Verwaltet Initialisierung und Shutdown der HTTP-Clients.
    """

    def __init__(self, providers: Mapping[str, BaseProvider] | None = None) -> None:
        source = default_providers() if providers is None else providers
        # Schlüssel als reine Strings: ProviderId ist ein str-Enum, Transport liefert str
        self._providers: dict[str, BaseProvider] = {
            (k.value if isinstance(k, ProviderId) else k): v for k, v in source.items()
        }

    async def initialize(self) -> None:
        """Alle Provider-HTTP-Clients initialisieren (Verbindungspool aufbauen)."""
        for provider_id, provider in self._providers.items():
            await provider.initialize()
            logger.info("Provider %s initialisiert", provider_id)

    async def shutdown(self) -> None:
        """Alle Provider-Verbindungen ordnungsgemäß schließen."""
        for provider in self._providers.values():
            await provider.shutdown()

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers

    def __iter__(self) -> Iterator[str]:
        return iter(self._providers)

    def ids(self) -> list[str]:
        return list(self._providers)

    def items(self) -> list[tuple[str, BaseProvider]]:
        return list(self._providers.items())

    def get(self, provider_id: str) -> BaseProvider | None:
        """Adapter nach Kennung abrufen; None wenn nicht registriert."""
        return self._providers.get(provider_id)
