from __future__ import annotations

from psycopg import Connection

from ..domain import Payment
from .rows import fetch_all, fetch_one

_COLS = "id, booking_id, amount, method, transaction_id, is_refund, paid_at"


def _to_payment(row: dict) -> Payment:
    return Payment(
        id=row["id"],
        booking_id=row["booking_id"],
        amount=row["amount"],
        method=row["method"],
        transaction_id=row["transaction_id"],
        is_refund=bool(row["is_refund"]),
        paid_at=row["paid_at"],
    )


class PaymentRepository:
    def create(self, conn: Connection, *, payment: Payment) -> Payment:
        cur = conn.execute(
            f"""
            INSERT INTO payment(id, booking_id, amount, method, transaction_id, is_refund, paid_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_COLS};
            """,
            (
                payment.id,
                payment.booking_id,
                payment.amount,
                payment.method,
                payment.transaction_id,
                payment.is_refund,
                payment.paid_at,
            ),
        )
        return _to_payment(fetch_one(cur))

    def list_for_booking(self, conn: Connection, booking_id: str) -> list[Payment]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM payment WHERE booking_id = %s ORDER BY paid_at;",
            (booking_id,),
        )
        return [_to_payment(r) for r in fetch_all(cur)]
