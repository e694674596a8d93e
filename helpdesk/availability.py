# helpdesk/availability.py
# Verfügbarkeitsprüfung: alle Provider parallel proben, Ergebnis als Gesamtkarte
from __future__ import annotations

import asyncio
import logging

from .metrics import PROVIDER_AVAILABLE
from .models import AvailabilityStatus
from .providers import BaseProvider, ProviderRegistry

logger = logging.getLogger(__name__)


class AvailabilityProber:
    """
    Startet alle Probes gleichzeitig und wartet auf jeden einzelnen.
    Ein fehlschlagender oder langsamer Provider beeinflusst die anderen nicht,
    außer durch die eigene Latenz bis zum Abschluss von probe_all().
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry

    async def _probe_one(self, provider_id: str, adapter: BaseProvider) -> AvailabilityStatus:
        try:
            return await adapter.probe()
        except Exception as exc:
            # probe() darf nicht werfen; falls doch, nur diesen Provider abwerten
            logger.error("Probe für %s abgebrochen: %s", provider_id, exc)
            model = adapter.model_name(adapter.config)
            return AvailabilityStatus(available=False, model=model, error=str(exc) or repr(exc))

    async def probe_all(self) -> dict[str, AvailabilityStatus]:
        """Statuskarte bei jedem Aufruf vollständig neu aufbauen."""
        entries = self._registry.items()
        statuses = await asyncio.gather(
            *(self._probe_one(provider_id, adapter) for provider_id, adapter in entries)
        )

        result: dict[str, AvailabilityStatus] = {}
        for (provider_id, _), status in zip(entries, statuses):
            PROVIDER_AVAILABLE.labels(provider=provider_id).set(1 if status.available else 0)
            result[provider_id] = status

        unavailable = [p for p, s in result.items() if not s.available]
        if unavailable:
            logger.info("Nicht verfügbare Provider: %s", ", ".join(unavailable))
        return result
