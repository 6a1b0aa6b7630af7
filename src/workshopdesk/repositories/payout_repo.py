from __future__ import annotations

from datetime import datetime

from psycopg import Connection

from ..domain import Payout, PayoutStatus
from .rows import fetch_all, fetch_one

_COLS = "id, owner_id, workshop_id, amount, bank_name, account_last4, status, requested_at, updated_at"


def _to_payout(row: dict) -> Payout:
    return Payout(
        id=row["id"],
        owner_id=row["owner_id"],
        workshop_id=row["workshop_id"],
        amount=row["amount"],
        bank_name=row["bank_name"],
        account_last4=row["account_last4"],
        status=PayoutStatus(row["status"]),
        requested_at=row["requested_at"],
        updated_at=row["updated_at"],
    )


class PayoutRepository:
    def lock_workshop(self, conn: Connection, workshop_id: str) -> None:
        # serialises withdrawals against the same balance
        conn.execute("SELECT id FROM workshop WHERE id = %s FOR UPDATE;", (workshop_id,))

    def create(self, conn: Connection, *, payout: Payout) -> Payout:
        cur = conn.execute(
            f"""
            INSERT INTO payout(id, owner_id, workshop_id, amount, bank_name, account_last4,
                               status, requested_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_COLS};
            """,
            (
                payout.id,
                payout.owner_id,
                payout.workshop_id,
                payout.amount,
                payout.bank_name,
                payout.account_last4,
                payout.status.value,
                payout.requested_at,
                payout.updated_at,
            ),
        )
        return _to_payout(fetch_one(cur))

    def get(self, conn: Connection, payout_id: str) -> Payout | None:
        cur = conn.execute(f"SELECT {_COLS} FROM payout WHERE id = %s;", (payout_id,))
        row = fetch_one(cur)
        return _to_payout(row) if row else None

    def list_by_workshop(self, conn: Connection, workshop_id: str) -> list[Payout]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM payout WHERE workshop_id = %s ORDER BY requested_at DESC;",
            (workshop_id,),
        )
        return [_to_payout(r) for r in fetch_all(cur)]

    def list_open(self, conn: Connection) -> list[Payout]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM payout WHERE status IN ('REQUESTED', 'PROCESSING') ORDER BY requested_at;"
        )
        return [_to_payout(r) for r in fetch_all(cur)]

    def update_status(
        self,
        conn: Connection,
        *,
        payout_id: str,
        status: PayoutStatus,
        expected_status: PayoutStatus,
        updated_at: datetime,
    ) -> Payout | None:
        cur = conn.execute(
            f"""
            UPDATE payout SET status = %s, updated_at = %s
            WHERE id = %s AND status = %s
            RETURNING {_COLS};
            """,
            (status.value, updated_at, payout_id, expected_status.value),
        )
        row = fetch_one(cur)
        return _to_payout(row) if row else None
