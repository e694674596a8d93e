# helpdesk/tickets/store.py
# Ticket-Store: Persistenz, ID-Vergabe und Status-Lebenszyklus der Support-Tickets
from __future__ import annotations

import logging
import os
import random
import time
from datetime import datetime, timezone

from ..db import execute_query
from ..models import Priority, Ticket, TicketStatus

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "./helpdesk.db")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS tickets (
    id          TEXT PRIMARY KEY,
    issue       TEXT NOT NULL,
    user_id     TEXT NOT NULL,
    priority    TEXT NOT NULL,
    status      TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
)
"""

_COLUMNS = "id, issue, user_id, priority, status, created_at, updated_at"


def new_ticket_id() -> str:
    """TICKET-<Millisekunden>-<Zufallszahl>."""
    return f"TICKET-{int(time.time() * 1000)}-{random.randrange(10000)}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_ticket(row: dict) -> Ticket:
    return Ticket(
        id=row["id"],
        issue=row["issue"],
        user=row["user_id"],
        priority=row["priority"],
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class TicketStore:
    """
    Ticketing-Kollaborator des Gateways.
    Allein zuständig für Persistenz, ID-Vergabe und Status (open → in-progress →
    resolved/closed). Der Eskalations-Builder ruft nur create() auf.
    """

    def __init__(self, db_url: str = DATABASE_URL) -> None:
        self._db_url = db_url

    async def initialize(self) -> None:
        """Tabellenschema anlegen (idempotent)."""
        await execute_query(self._db_url, _SCHEMA)
        await execute_query(
            self._db_url,
            "CREATE INDEX IF NOT EXISTS idx_tickets_status ON tickets(status, created_at)",
        )

    async def create(
        self, issue_text: str, user_id: str, priority: Priority = Priority.MEDIUM
    ) -> str:
        """Neues Ticket im Status 'open' anlegen; gibt die Ticket-ID zurück."""
        ticket_id = new_ticket_id()
        now = _now_iso()
        await execute_query(
            self._db_url,
            f"INSERT INTO tickets ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                ticket_id,
                issue_text,
                user_id,
                Priority(priority).value,
                TicketStatus.OPEN.value,
                now,
                now,
            ),
        )
        logger.info("Ticket %s angelegt (Priorität %s)", ticket_id, Priority(priority).value)
        return ticket_id

    async def list_all(self) -> list[Ticket]:
        rows = await execute_query(
            self._db_url,
            f"SELECT {_COLUMNS} FROM tickets ORDER BY created_at, id",
            fetch="all",
        )
        return [_row_to_ticket(row) for row in rows]

    async def get(self, ticket_id: str) -> Ticket | None:
        row = await execute_query(
            self._db_url,
            f"SELECT {_COLUMNS} FROM tickets WHERE id = ?",
            (ticket_id,),
            fetch="one",
        )
        return _row_to_ticket(row) if row else None

    async def update_status(self, ticket_id: str, status: TicketStatus) -> bool:
        """Status setzen; False wenn das Ticket nicht existiert."""
        updated = await execute_query(
            self._db_url,
            "UPDATE tickets SET status = ?, updated_at = ? WHERE id = ?",
            (TicketStatus(status).value, _now_iso(), ticket_id),
        )
        if not updated:
            logger.warning("Status-Update für unbekanntes Ticket %s", ticket_id)
            return False
        return True
