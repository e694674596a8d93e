# helpdesk/db/database.py
# Database-Abstraktion: SQLite (dev) oder PostgreSQL (production)
from __future__ import annotations

from typing import Any, Literal

Fetch = Literal["one", "all", "val"]


def is_postgres(db_url: str) -> bool:
    """Prüft, ob DATABASE_URL auf PostgreSQL zeigt."""
    return db_url.startswith(("postgres://", "postgresql://"))


def to_pg_placeholders(query: str, n_params: int) -> str:
    """'?'-Platzhalter (SQLite) in $1, $2, ... (asyncpg) umschreiben."""
    for i in range(1, n_params + 1):
        query = query.replace("?", f"${i}", 1)
    return query


async def execute_query(
    db_url: str,
    query: str,
    params: tuple | list | None = None,
    fetch: Fetch | None = None,
) -> Any:
    """
    Führt eine SQL-Anweisung aus (SQLite oder PostgreSQL je nach URL).

    fetch:
        "one" → dict | None, "all" → list[dict], "val" → Skalar,
        None → kein Rückgabewert, Anzahl betroffener Zeilen
    """
    params = tuple(params or ())

    if is_postgres(db_url):
        import asyncpg

        conn = await asyncpg.connect(db_url)
        try:
            pg_query = to_pg_placeholders(query, len(params))
            if fetch == "one":
                row = await conn.fetchrow(pg_query, *params)
                return dict(row) if row else None
            if fetch == "all":
                return [dict(row) for row in await conn.fetch(pg_query, *params)]
            if fetch == "val":
                return await conn.fetchval(pg_query, *params)
            # asyncpg liefert Status-Tag, z.B. "UPDATE 1"
            status = await conn.execute(pg_query, *params)
            tail = status.rsplit(" ", 1)[-1]
            return int(tail) if tail.isdigit() else 0
        finally:
            await conn.close()

    import aiosqlite

    async with aiosqlite.connect(db_url) as db:
        db.row_factory = aiosqlite.Row  # dict-ähnliche Zeilen
        async with db.execute(query, params) as cursor:
            if fetch == "one":
                row = await cursor.fetchone()
                return dict(row) if row else None
            if fetch == "all":
                return [dict(row) for row in await cursor.fetchall()]
            if fetch == "val":
                row = await cursor.fetchone()
                return row[0] if row else None
            rowcount = cursor.rowcount
        await db.commit()
        return rowcount
