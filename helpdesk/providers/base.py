# helpdesk/providers/base.py
# Abstrakte Basisklasse: gemeinsames Interface für alle LLM-Adapter
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..models import (
    AvailabilityStatus,
    ConversationHistory,
    ErrorKind,
    GatewayResult,
    ResultMetadata,
)

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful tech support assistant."

# Einheitliche Obergrenze für Probes (alle Adapter, beide Strategien)
PROBE_TIMEOUT_SEC = 10.0
PROBE_MESSAGE = "test"


class AdapterConfig(BaseModel):
    """
    Generierungsparameter eines Adapters.
    Unbekannte Felder werden bei update_config() abgelehnt.
    """

    model_config = ConfigDict(extra="forbid")

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)


ConfigT = TypeVar("ConfigT", bound=AdapterConfig)


class BackendReply(BaseModel):
    """Aus der Backend-Antwort extrahierter Text + Token-Zählung."""

    text: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    raw_response: str | None = None


class BaseProvider(ABC, Generic[ConfigT]):
    """
    Basis für alle Adapter-Implementierungen.

    respond() ist der gemeinsame Ablauf: Zugangsdaten prüfen → Anfrage bauen →
    genau EIN HTTP-Aufruf → Antwort oder Fehler in GatewayResult abbilden.
    Konkrete Klassen liefern nur die backend-spezifischen Teile.
    respond() und probe() werfen nie: jeder Fehler wird als Daten zurückgegeben.
    """

    # Anzeigename im Fehlertext, z.B. "[OpenAI API error: 401 - ...]"
    display_name: ClassVar[str] = "LLM"

    def __init__(self, config: ConfigT, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        # Gemeinsamer async httpx-Client: wird in initialize() erstellt
        self._client = client

    async def initialize(self) -> None:
        """Async HTTP-Client mit Verbindungspool erstellen."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(connect=10.0, read=60.0, write=10.0, pool=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )

    async def shutdown(self) -> None:
        """HTTP-Client ordnungsgemäß schließen (alle Verbindungen freigeben)."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # ── Konfiguration ────────────────────────────────────────────────────

    @property
    def config(self) -> ConfigT:
        return self._config

    def update_config(self, partial: dict[str, Any]) -> ConfigT:
        """
        Angegebene Felder über die aktuelle Konfiguration legen (flach).
        Die Instanz wird als Ganzes ersetzt: laufende Aufrufe sehen entweder
        den alten oder den neuen Stand (last-write-wins).
        """
        merged = {**self._config.model_dump(), **partial}
        self._config = type(self._config).model_validate(merged)
        logger.info("%s-Konfiguration aktualisiert: %s", self.display_name, sorted(partial))
        return self._config

    # ── Backend-spezifische Teile ────────────────────────────────────────

    @abstractmethod
    def has_credentials(self) -> bool:
        """True wenn alle benötigten Zugangsdaten gesetzt sind."""
        ...

    @abstractmethod
    def missing_credentials_text(self) -> str:
        """Anzeigbarer Hinweis, welche Variablen fehlen."""
        ...

    @abstractmethod
    def model_name(self, config: ConfigT) -> str:
        """Modellbezeichnung für Metadaten und Status."""
        ...

    @abstractmethod
    def build_request(
        self, message: str, history: ConversationHistory, config: ConfigT
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        """(url, headers, json-body) für den Backend-Aufruf bauen."""
        ...

    @abstractmethod
    def parse_reply(self, data: Any, message: str, history: ConversationHistory) -> BackendReply:
        """Antworttext und Token-Zählung aus dem JSON-Body lesen."""
        ...

    def no_response_text(self) -> str:
        return f"[No response from {self.display_name}]"

    # ── Gemeinsamer Ablauf ───────────────────────────────────────────────

    async def respond(self, message: str, history: ConversationHistory) -> GatewayResult:
        """Genau ein Backend-Aufruf; Ergebnis immer als GatewayResult."""
        config = self._config
        model = self.model_name(config)

        if not self.has_credentials():
            return GatewayResult(
                text=self.missing_credentials_text(),
                error_kind=ErrorKind.MISSING_CREDENTIALS,
                metadata=ResultMetadata(model=model),
            )

        try:
            url, headers, payload = self.build_request(message, history, config)
            if self._client is None:
                await self.initialize()
            response = await self._client.post(url, headers=headers, json=payload)

            if not response.is_success:
                logger.warning(
                    "%s antwortete mit HTTP %d", self.display_name, response.status_code
                )
                return GatewayResult(
                    text=(
                        f"[{self.display_name} API error: "
                        f"{response.status_code} - {response.text}]"
                    ),
                    error_kind=ErrorKind.API_ERROR,
                    http_status=response.status_code,
                    metadata=ResultMetadata(model=model),
                )

            reply = self.parse_reply(response.json(), message, history)
        except Exception as exc:
            logger.error("%s-Aufruf fehlgeschlagen: %s", self.display_name, exc)
            return GatewayResult(
                text=f"[Network or processing error: {exc}]",
                error_kind=ErrorKind.NETWORK_ERROR,
                metadata=ResultMetadata(model=model),
            )

        metadata = ResultMetadata(
            model=model,
            prompt_tokens=reply.prompt_tokens,
            completion_tokens=reply.completion_tokens,
            total_tokens=reply.total_tokens,
            raw_response=reply.raw_response,
        )
        if not reply.text:
            return GatewayResult(
                text=self.no_response_text(),
                error_kind=ErrorKind.NO_RESPONSE,
                metadata=metadata,
            )
        return GatewayResult(text=reply.text, metadata=metadata)

    async def probe(self) -> AvailabilityStatus:
        """
        Standard-Probe: trivialer respond()-Aufruf mit fester Eingabe.
        Adapter mit Metadaten-Endpunkt überschreiben dies.
        """
        model = self.model_name(self._config)
        try:
            result = await asyncio.wait_for(
                self.respond(PROBE_MESSAGE, ConversationHistory()),
                timeout=PROBE_TIMEOUT_SEC,
            )
        except asyncio.TimeoutError:
            return AvailabilityStatus(
                available=False, model=model, error=f"Timeout nach {PROBE_TIMEOUT_SEC:.0f}s"
            )
        if result.ok:
            return AvailabilityStatus(available=True, model=model)
        return AvailabilityStatus(available=False, model=model, error=result.text)


def usage_int(usage: Any, key: str) -> int | None:
    """Token-Zähler defensiv lesen (fehlende/ungültige Werte → None)."""
    if not isinstance(usage, dict):
        return None
    value = usage.get(key)
    return value if isinstance(value, int) else None


def first_item(items: Any) -> Any:
    """Erstes Element einer JSON-Liste oder None."""
    if isinstance(items, list) and items:
        return items[0]
    return None


def structured_turns(history: ConversationHistory) -> list[dict[str, str]]:
    """Historie 1:1 auf {role, content}-Objekte abbilden (strukturierte Backends)."""
    return [{"role": t.role, "content": t.content} for t in history.turns]
