# helpdesk/models.py
# Pydantic v2 Datenschemas: Konversation, Gateway-Ergebnis, Status, Tickets
from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant", "system"]


class ProviderId(str, Enum):
    """Unterstützte LLM-Backends im Gateway."""

    AZURE = "azure"
    OPENAI = "openai"
    CLAUDE = "claude"
    LLAMA = "llama"


class ErrorKind(str, Enum):
    """Fehlerklassen: werden als Daten zurückgegeben, nie als Exception."""

    MISSING_CREDENTIALS = "MISSING_CREDENTIALS"
    API_ERROR = "API_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    NO_RESPONSE = "NO_RESPONSE"
    UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"
    INVALID_TICKET_INPUT = "INVALID_TICKET_INPUT"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Konversation ─────────────────────────────────────────────────────────────


class Turn(BaseModel):
    """Einzelne Nachricht in einer Konversation (unveränderlich)."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: dict[str, Any] | None = None


class ConversationHistory(BaseModel):
    """
    Geordnete Folge von Turns (Einfügereihenfolge = Chronologie).
    Gehört dem Aufrufer: das Gateway liest nur, validiert keine Reihenfolge.
    """

    model_config = ConfigDict(frozen=True)

    turns: tuple[Turn, ...] = ()

    @classmethod
    def from_messages(cls, messages: Iterable[dict[str, Any] | Turn]) -> ConversationHistory:
        """Transport-Nachrichten ({role, content}) in eine Historie überführen."""
        return cls(
            turns=tuple(
                m if isinstance(m, Turn) else Turn.model_validate(m) for m in messages
            )
        )

    def __len__(self) -> int:
        return len(self.turns)

    def to_transcript(self) -> str:
        """'<role>: <content>' pro Turn, zeilenweise verbunden."""
        return "\n".join(f"{t.role}: {t.content}" for t in self.turns)


# ── Gateway-Ergebnis ─────────────────────────────────────────────────────────


class ResultMetadata(BaseModel):
    """
    Anbieterneutrale Metadaten. Token-Felder tragen immer die Semantik
    input/output/gesamt: unabhängig davon, wie das Backend sie benennt.
    """

    model_config = ConfigDict(frozen=True)

    model: str
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    raw_response: str | None = None


class GatewayResult(BaseModel):
    """Einheitlicher Antwortvertrag: pro Aufruf neu erzeugt, nie verändert."""

    model_config = ConfigDict(frozen=True)

    text: str
    error_kind: ErrorKind | None = None
    http_status: int | None = None
    metadata: ResultMetadata

    @property
    def ok(self) -> bool:
        return self.error_kind is None


class AvailabilityStatus(BaseModel):
    """Verfügbarkeit eines einzelnen Providers (Ergebnis eines Probes)."""

    model_config = ConfigDict(frozen=True)

    available: bool
    model: str
    error: str | None = None


# ── Tickets ──────────────────────────────────────────────────────────────────

TRANSCRIPT_HEADER = "\n\nConversation Summary:\n"


class TicketDraft(BaseModel):
    """Entwurf einer Eskalation: wird nicht im Gateway gehalten."""

    model_config = ConfigDict(frozen=True)

    issue_text: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    priority: Priority = Priority.MEDIUM
    transcript: str = ""

    @property
    def final_issue_text(self) -> str:
        return f"{self.issue_text}{TRANSCRIPT_HEADER}{self.transcript}"


class Ticket(BaseModel):
    """Persistiertes Ticket (vom Ticket-Store verwaltet)."""

    id: str
    issue: str
    user: str
    priority: Priority
    status: TicketStatus = TicketStatus.OPEN
    created_at: str
    updated_at: str


# ── Transport-Schemas ────────────────────────────────────────────────────────


class ChatTurnIn(BaseModel):
    """Eingehende Historien-Nachricht (Zeitstempel optional)."""

    role: Role
    content: str
    timestamp: datetime | None = None
    metadata: dict[str, Any] | None = None

    def to_turn(self) -> Turn:
        data = self.model_dump(exclude_none=True)
        return Turn.model_validate(data)


class ChatRequest(BaseModel):
    """POST /chat: Nachricht + Provider-Auswahl + bisherige Konversation."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    use: str = ProviderId.AZURE.value
    conversation_history: list[ChatTurnIn] = Field(
        default_factory=list, alias="conversationHistory"
    )

    def history(self) -> ConversationHistory:
        return ConversationHistory(turns=tuple(t.to_turn() for t in self.conversation_history))


class ChatResponse(BaseModel):
    """Antwort auf POST /chat bzw. WebSocket 'message-response'."""

    reply: str
    error: ErrorKind | None = None
    status: int | None = None
    metadata: ResultMetadata

    @classmethod
    def from_result(cls, result: GatewayResult) -> ChatResponse:
        return cls(
            reply=result.text,
            error=result.error_kind,
            status=result.http_status,
            metadata=result.metadata,
        )


class ModelStatusResponse(BaseModel):
    models: dict[str, AvailabilityStatus]


class TicketCreate(BaseModel):
    """POST /ticket: Eskalation einer Konversation."""

    model_config = ConfigDict(populate_by_name=True)

    issue: str = ""
    user: str = ""
    priority: Priority = Priority.MEDIUM
    conversation_history: list[ChatTurnIn] = Field(
        default_factory=list, alias="conversationHistory"
    )

    def history(self) -> ConversationHistory:
        return ConversationHistory(turns=tuple(t.to_turn() for t in self.conversation_history))


class TicketStatusUpdate(BaseModel):
    status: TicketStatus


class HealthResponse(BaseModel):
    """Gateway-Status mit Liste der registrierten Provider."""

    status: str
    providers: list[str]
