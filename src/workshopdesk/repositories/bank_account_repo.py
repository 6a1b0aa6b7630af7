from __future__ import annotations

from psycopg import Connection

from ..domain import BankAccount
from .rows import fetch_one

_COLS = "owner_id, bank_name, account_holder, account_number, updated_at"


def _to_account(row: dict) -> BankAccount:
    return BankAccount(
        owner_id=row["owner_id"],
        bank_name=row["bank_name"],
        account_holder=row["account_holder"],
        account_number=row["account_number"],
        updated_at=row["updated_at"],
    )


class BankAccountRepository:
    def save(self, conn: Connection, *, account: BankAccount) -> BankAccount:
        cur = conn.execute(
            f"""
            INSERT INTO bank_account(owner_id, bank_name, account_holder, account_number, updated_at)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (owner_id) DO UPDATE SET
              bank_name = EXCLUDED.bank_name,
              account_holder = EXCLUDED.account_holder,
              account_number = EXCLUDED.account_number,
              updated_at = EXCLUDED.updated_at
            RETURNING {_COLS};
            """,
            (
                account.owner_id,
                account.bank_name,
                account.account_holder,
                account.account_number,
                account.updated_at,
            ),
        )
        return _to_account(fetch_one(cur))

    def get(self, conn: Connection, owner_id: str) -> BankAccount | None:
        cur = conn.execute(f"SELECT {_COLS} FROM bank_account WHERE owner_id = %s;", (owner_id,))
        row = fetch_one(cur)
        return _to_account(row) if row else None
