from __future__ import annotations

from datetime import datetime

from psycopg import Connection
from psycopg.types.json import Jsonb

from ..domain import RefundCase, RefundComment, RefundStatus, RefundTimelineEntry
from .rows import fetch_all, fetch_one

_COLS = """
    id, booking_id, workshop_id, customer_id, amount, reason, description,
    evidence, status, timeline, comments, version, created_at
"""


def _entry_json(e: RefundTimelineEntry) -> dict:
    return {
        "status": e.status.value,
        "label": e.label,
        "timestamp": e.timestamp.isoformat(),
        "description": e.description,
    }


def _comment_json(c: RefundComment) -> dict:
    return {
        "id": c.id,
        "authorRole": c.author_role,
        "text": c.text,
        "timestamp": c.timestamp.isoformat(),
    }


def _to_refund(row: dict) -> RefundCase:
    return RefundCase(
        id=row["id"],
        booking_id=row["booking_id"],
        workshop_id=row["workshop_id"],
        customer_id=row["customer_id"],
        amount=row["amount"],
        reason=row["reason"],
        description=row["description"],
        evidence=row["evidence"],
        status=RefundStatus(row["status"]),
        timeline=tuple(
            RefundTimelineEntry(
                status=RefundStatus(e["status"]),
                label=e["label"],
                timestamp=datetime.fromisoformat(e["timestamp"]),
                description=e.get("description"),
            )
            for e in row["timeline"] or ()
        ),
        comments=tuple(
            RefundComment(
                id=c["id"],
                author_role=c["authorRole"],
                text=c["text"],
                timestamp=datetime.fromisoformat(c["timestamp"]),
            )
            for c in row["comments"] or ()
        ),
        version=int(row["version"]),
        created_at=row["created_at"],
    )


class RefundRepository:
    def create(self, conn: Connection, *, refund: RefundCase) -> RefundCase:
        cur = conn.execute(
            f"""
            INSERT INTO refund_case(
              id, booking_id, workshop_id, customer_id, amount, reason, description,
              evidence, status, timeline, comments, version, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_COLS};
            """,
            (
                refund.id,
                refund.booking_id,
                refund.workshop_id,
                refund.customer_id,
                refund.amount,
                refund.reason,
                refund.description,
                refund.evidence,
                refund.status.value,
                Jsonb([_entry_json(e) for e in refund.timeline]),
                Jsonb([_comment_json(c) for c in refund.comments]),
                refund.version,
                refund.created_at,
            ),
        )
        return _to_refund(fetch_one(cur))

    def get(self, conn: Connection, refund_id: str) -> RefundCase | None:
        cur = conn.execute(f"SELECT {_COLS} FROM refund_case WHERE id = %s;", (refund_id,))
        row = fetch_one(cur)
        return _to_refund(row) if row else None

    def list_by_booking(self, conn: Connection, booking_id: str) -> list[RefundCase]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM refund_case WHERE booking_id = %s ORDER BY created_at;",
            (booking_id,),
        )
        return [_to_refund(r) for r in fetch_all(cur)]

    def list_by_workshop(self, conn: Connection, workshop_id: str) -> list[RefundCase]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM refund_case WHERE workshop_id = %s ORDER BY created_at DESC;",
            (workshop_id,),
        )
        return [_to_refund(r) for r in fetch_all(cur)]

    def list_by_customer(self, conn: Connection, customer_id: str) -> list[RefundCase]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM refund_case WHERE customer_id = %s ORDER BY created_at DESC;",
            (customer_id,),
        )
        return [_to_refund(r) for r in fetch_all(cur)]

    def update_status(
        self,
        conn: Connection,
        *,
        refund_id: str,
        status: RefundStatus,
        entries: list[RefundTimelineEntry],
        expected_version: int,
    ) -> RefundCase | None:
        # timeline is append-only: new entries are concatenated in one statement
        cur = conn.execute(
            f"""
            UPDATE refund_case
            SET status = %s, timeline = timeline || %s, version = version + 1
            WHERE id = %s AND version = %s
            RETURNING {_COLS};
            """,
            (status.value, Jsonb([_entry_json(e) for e in entries]), refund_id, expected_version),
        )
        row = fetch_one(cur)
        return _to_refund(row) if row else None

    def append_comment(self, conn: Connection, *, refund_id: str, comment: RefundComment) -> RefundCase | None:
        cur = conn.execute(
            f"""
            UPDATE refund_case SET comments = comments || %s
            WHERE id = %s
            RETURNING {_COLS};
            """,
            (Jsonb([_comment_json(comment)]), refund_id),
        )
        row = fetch_one(cur)
        return _to_refund(row) if row else None
