# helpdesk/tickets/__init__.py
# Eskalation und Ticket-Persistenz

from .escalation import EscalationBuilder, InvalidTicketInput, build_draft
from .store import TicketStore

__all__ = ["EscalationBuilder", "InvalidTicketInput", "TicketStore", "build_draft"]
