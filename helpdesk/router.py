# helpdesk/router.py
# Dispatcher: Provider-Kennung → Adapter, genau ein Aufruf pro Anfrage
from __future__ import annotations

import logging
import time

from .metrics import REQUEST_COUNT, REQUEST_LATENCY, TOKENS_TOTAL
from .models import ConversationHistory, ErrorKind, GatewayResult, ResultMetadata
from .providers import ProviderRegistry

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Einziger Einstiegspunkt der Transportschicht für Chat-Anfragen.

    Kein Retry, kein Load-Balancing, kein Caching: unbekannte Kennung →
    UNKNOWN_PROVIDER, sonst exakt ein respond()-Aufruf des gewählten Adapters.
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def unknown_provider(self, provider_id: str) -> GatewayResult:
        valid = ", ".join(self._registry.ids())
        return GatewayResult(
            text=f"Please specify a valid LLM: {valid}.",
            error_kind=ErrorKind.UNKNOWN_PROVIDER,
            metadata=ResultMetadata(model="none"),
        )

    async def invoke(
        self, provider_id: str, message: str, history: ConversationHistory | None = None
    ) -> GatewayResult:
        """Anfrage an den gewählten Adapter delegieren; liefert immer ein Ergebnis."""
        adapter = self._registry.get(provider_id)
        if adapter is None:
            logger.warning("Unbekannter Provider angefragt: %r", provider_id)
            REQUEST_COUNT.labels(
                provider="unknown", status=ErrorKind.UNKNOWN_PROVIDER.value
            ).inc()
            return self.unknown_provider(provider_id)

        start_time = time.monotonic()
        result = await adapter.respond(message, history or ConversationHistory())
        latency_ms = (time.monotonic() - start_time) * 1000

        # Prometheus: Ergebnis, Latenz, Token
        status = result.error_kind.value if result.error_kind else "success"
        REQUEST_COUNT.labels(provider=provider_id, status=status).inc()
        REQUEST_LATENCY.labels(provider=provider_id).observe(latency_ms)
        if result.metadata.prompt_tokens:
            TOKENS_TOTAL.labels(direction="input", provider=provider_id).inc(
                result.metadata.prompt_tokens
            )
        if result.metadata.completion_tokens:
            TOKENS_TOTAL.labels(direction="output", provider=provider_id).inc(
                result.metadata.completion_tokens
            )

        if result.ok:
            logger.info(
                "Anfrage an %s/%s in %.0fms", provider_id, result.metadata.model, latency_ms
            )
        else:
            logger.warning(
                "Anfrage an %s fehlgeschlagen (%s) nach %.0fms",
                provider_id, status, latency_ms,
            )
        return result
