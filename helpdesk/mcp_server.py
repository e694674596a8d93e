# helpdesk/mcp_server.py
# MCP-Server: Exponiert Chat, Modellstatus und Eskalation als Tool-Interface
from __future__ import annotations

import logging

from fastmcp import FastMCP

from .availability import AvailabilityProber
from .models import ConversationHistory, Priority
from .router import Dispatcher
from .tickets import EscalationBuilder

logger = logging.getLogger(__name__)

mcp = FastMCP(
    name="Tech Support Chat Gateway",
    instructions=(
        "Tech-Support-Chat über austauschbare LLM-Backends (azure, openai, claude, llama). "
        "Konversationen können als Support-Ticket an Menschen eskaliert werden."
    ),
)

# Referenzen: werden in main.py beim Startup gesetzt
_dispatcher: Dispatcher | None = None
_prober: AvailabilityProber | None = None
_escalation: EscalationBuilder | None = None


def set_services(
    dispatcher: Dispatcher, prober: AvailabilityProber, escalation: EscalationBuilder
) -> None:
    """Gateway-Komponenten setzen (aufgerufen beim App-Startup)."""
    global _dispatcher, _prober, _escalation
    _dispatcher, _prober, _escalation = dispatcher, prober, escalation


@mcp.tool()
async def chat(
    message: str,
    provider: str = "azure",
    history: list[dict[str, str]] | None = None,
) -> str:
    """
    Sende eine Nachricht an das gewählte LLM-Backend.

    Args:
        message: Die neue Nachricht des Nutzers
        provider: azure, openai, claude oder llama
        history: Bisherige Konversation als Liste von {role, content}

    Returns:
        Antworttext; bei Fehlern ein anzeigbarer Hinweis mit Fehlerklasse
    """
    if _dispatcher is None:
        return "Fehler: Gateway nicht initialisiert"

    try:
        conversation = ConversationHistory.from_messages(history or [])
    except ValueError as exc:
        # ValidationError (z.B. unbekannte Rolle) ist ein ValueError
        return f"Fehler: {exc}"

    result = await _dispatcher.invoke(provider, message, conversation)
    if result.ok:
        return f"{result.text}\n\n---\nModel: {result.metadata.model}"
    return f"{result.text}\n\n---\nFehler: {result.error_kind.value}"


@mcp.tool()
async def model_status() -> str:
    """Verfügbarkeit aller konfigurierten LLM-Backends prüfen."""
    if _prober is None:
        return "Fehler: Gateway nicht initialisiert"

    statuses = await _prober.probe_all()
    lines = ["Provider-Status:\n"]
    for provider_id, status in statuses.items():
        icon = "OK" if status.available else "AUSFALL"
        suffix = f" ({status.error})" if status.error else ""
        lines.append(f"  {provider_id} [{status.model}]: {icon}{suffix}")
    return "\n".join(lines)


@mcp.tool()
async def escalate(
    issue: str,
    user: str,
    priority: str = "medium",
    history: list[dict[str, str]] | None = None,
) -> str:
    """
    Konversation als Support-Ticket an das Support-Team übergeben.

    Args:
        issue: Problembeschreibung des Nutzers
        user: Nutzerkennung (z.B. E-Mail)
        priority: low, medium, high oder urgent
        history: Konversation, die als Transkript angehängt wird
    """
    if _escalation is None:
        return "Fehler: Gateway nicht initialisiert"

    try:
        ticket_id = await _escalation.escalate(
            issue, user, Priority(priority), ConversationHistory.from_messages(history or [])
        )
    except ValueError as exc:
        # InvalidTicketInput, unbekannte Priorität oder ungültige Rolle in der Historie
        return f"Fehler: {exc}"
    return f"Ticket erstellt: {ticket_id}"
