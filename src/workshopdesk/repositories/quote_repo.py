from __future__ import annotations

from decimal import Decimal

from psycopg import Connection
from psycopg.types.json import Jsonb

from ..domain import Quote, QuoteItem, QuoteStatus
from .rows import fetch_all, fetch_one

_COLS = "id, booking_id, workshop_id, items, labor, tax, total, status, diagnosis, note, version, created_at"


def _to_quote(row: dict) -> Quote:
    return Quote(
        id=row["id"],
        booking_id=row["booking_id"],
        workshop_id=row["workshop_id"],
        items=tuple(QuoteItem(name=i["name"], price=Decimal(str(i["price"]))) for i in row["items"] or ()),
        labor=row["labor"],
        tax=row["tax"],
        total=row["total"],
        status=QuoteStatus(row["status"]),
        diagnosis=tuple(row["diagnosis"] or ()),
        note=row["note"],
        version=int(row["version"]),
        created_at=row["created_at"],
    )


class QuoteRepository:
    def create(self, conn: Connection, *, quote: Quote) -> Quote:
        cur = conn.execute(
            f"""
            INSERT INTO quote(id, booking_id, workshop_id, items, labor, tax, total, status, diagnosis, note, version, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_COLS};
            """,
            (
                quote.id,
                quote.booking_id,
                quote.workshop_id,
                Jsonb([{"name": i.name, "price": str(i.price)} for i in quote.items]),
                quote.labor,
                quote.tax,
                quote.total,
                quote.status.value,
                Jsonb(list(quote.diagnosis)),
                quote.note,
                quote.version,
                quote.created_at,
            ),
        )
        return _to_quote(fetch_one(cur))

    def get(self, conn: Connection, quote_id: str) -> Quote | None:
        cur = conn.execute(f"SELECT {_COLS} FROM quote WHERE id = %s;", (quote_id,))
        row = fetch_one(cur)
        return _to_quote(row) if row else None

    def list_by_booking(self, conn: Connection, booking_id: str) -> list[Quote]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM quote WHERE booking_id = %s ORDER BY created_at;",
            (booking_id,),
        )
        return [_to_quote(r) for r in fetch_all(cur)]

    def list_by_workshop(self, conn: Connection, workshop_id: str) -> list[Quote]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM quote WHERE workshop_id = %s ORDER BY created_at DESC;",
            (workshop_id,),
        )
        return [_to_quote(r) for r in fetch_all(cur)]

    def delete(self, conn: Connection, quote_id: str) -> None:
        conn.execute("DELETE FROM quote WHERE id = %s;", (quote_id,))

    def update_status(
        self, conn: Connection, *, quote_id: str, status: QuoteStatus, expected_version: int
    ) -> Quote | None:
        cur = conn.execute(
            f"""
            UPDATE quote SET status = %s, version = version + 1
            WHERE id = %s AND version = %s
            RETURNING {_COLS};
            """,
            (status.value, quote_id, expected_version),
        )
        row = fetch_one(cur)
        return _to_quote(row) if row else None

    def accept_open_for_booking(self, conn: Connection, booking_id: str) -> int:
        cur = conn.execute(
            """
            UPDATE quote SET status = 'ACCEPTED', version = version + 1
            WHERE booking_id = %s AND status = 'PENDING';
            """,
            (booking_id,),
        )
        return cur.rowcount
