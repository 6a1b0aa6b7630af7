from __future__ import annotations

from psycopg import Cursor

# marks a column the caller leaves untouched in partial updates
KEEP = object()


def fetch_one(cur: Cursor) -> dict | None:
    row = cur.fetchone()
    if not row:
        return None
    cols = [d.name for d in cur.description]
    return dict(zip(cols, row))


def fetch_all(cur: Cursor) -> list[dict]:
    cols = [d.name for d in cur.description]
    return [dict(zip(cols, row)) for row in cur.fetchall()]
