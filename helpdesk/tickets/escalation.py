# helpdesk/tickets/escalation.py
# Eskalation: Konversation als Transkript an die Problembeschreibung anhängen
from __future__ import annotations

import logging
from typing import Protocol

from ..metrics import TICKETS_CREATED
from ..models import ConversationHistory, ErrorKind, Priority, TicketDraft

logger = logging.getLogger(__name__)


class InvalidTicketInput(ValueError):
    """Pflichtfelder leer: Aufruferfehler, wird nicht an den Ticket-Store weitergegeben."""

    error_kind = ErrorKind.INVALID_TICKET_INPUT

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required fields: {' and '.join(missing)}")


class TicketCreator(Protocol):
    """Vertrag des Ticketing-Kollaborators (z.B. TicketStore)."""

    async def create(self, issue_text: str, user_id: str, priority: Priority) -> str: ...


def build_draft(
    issue_text: str,
    user_id: str,
    priority: Priority | str = Priority.MEDIUM,
    history: ConversationHistory | None = None,
) -> TicketDraft:
    """
    Ticket-Entwurf erstellen. issue_text und user_id dürfen nach strip()
    nicht leer sein; eine leere Historie ergibt ein leeres Transkript.
    """
    missing = [
        name
        for name, value in (("issue", issue_text), ("user", user_id))
        if not (value or "").strip()
    ]
    if missing:
        raise InvalidTicketInput(missing)

    transcript = (history or ConversationHistory()).to_transcript()
    return TicketDraft(
        issue_text=issue_text,
        user_id=user_id,
        priority=Priority(priority),
        transcript=transcript,
    )


class EscalationBuilder:
    """Entwurf bauen und an den Ticketing-Kollaborator übergeben (kein eigener Speicher)."""

    def __init__(self, tickets: TicketCreator) -> None:
        self._tickets = tickets

    async def escalate(
        self,
        issue_text: str,
        user_id: str,
        priority: Priority | str = Priority.MEDIUM,
        history: ConversationHistory | None = None,
    ) -> str:
        """Gibt die vom Kollaborator vergebene Ticket-ID unverändert zurück."""
        draft = build_draft(issue_text, user_id, priority, history)
        ticket_id = await self._tickets.create(
            draft.final_issue_text, draft.user_id, draft.priority
        )
        TICKETS_CREATED.labels(priority=draft.priority.value).inc()
        logger.info(
            "Eskalation %s erstellt (%d Turns im Transkript)",
            ticket_id, len(history) if history else 0,
        )
        return ticket_id
