# helpdesk/db/__init__.py
# Datenbankzugriff für den Ticket-Store: SQLite lokal, PostgreSQL im Betrieb

from .database import execute_query, is_postgres

__all__ = ["execute_query", "is_postgres"]
