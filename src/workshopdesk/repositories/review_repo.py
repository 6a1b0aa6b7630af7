from __future__ import annotations

from datetime import datetime

from psycopg import Connection

from ..domain import Review
from .rows import fetch_all, fetch_one

_COLS = """
    id, user_id, user_name, workshop_id, booking_id, rating, pricing_rating,
    attitude_rating, professional_rating, comment, reply, replied_at, created_at
"""


def _to_review(row: dict) -> Review:
    return Review(
        id=row["id"],
        user_id=row["user_id"],
        user_name=row["user_name"] or "",
        workshop_id=row["workshop_id"],
        booking_id=row["booking_id"],
        rating=int(row["rating"]),
        pricing_rating=int(row["pricing_rating"]),
        attitude_rating=int(row["attitude_rating"]),
        professional_rating=int(row["professional_rating"]),
        comment=row["comment"] or "",
        reply=row["reply"],
        replied_at=row["replied_at"],
        created_at=row["created_at"],
    )


class ReviewRepository:
    def create(self, conn: Connection, *, review: Review) -> Review | None:
        cur = conn.execute(
            f"""
            INSERT INTO review(
              id, user_id, user_name, workshop_id, booking_id, rating, pricing_rating,
              attitude_rating, professional_rating, comment, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (booking_id) DO NOTHING
            RETURNING {_COLS};
            """,
            (
                review.id,
                review.user_id,
                review.user_name,
                review.workshop_id,
                review.booking_id,
                review.rating,
                review.pricing_rating,
                review.attitude_rating,
                review.professional_rating,
                review.comment,
                review.created_at,
            ),
        )
        row = fetch_one(cur)
        return _to_review(row) if row else None

    def get(self, conn: Connection, review_id: str) -> Review | None:
        cur = conn.execute(f"SELECT {_COLS} FROM review WHERE id = %s;", (review_id,))
        row = fetch_one(cur)
        return _to_review(row) if row else None

    def get_by_booking(self, conn: Connection, booking_id: str) -> Review | None:
        cur = conn.execute(f"SELECT {_COLS} FROM review WHERE booking_id = %s;", (booking_id,))
        row = fetch_one(cur)
        return _to_review(row) if row else None

    def list_by_workshop(self, conn: Connection, workshop_id: str) -> list[Review]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM review WHERE workshop_id = %s ORDER BY created_at DESC;",
            (workshop_id,),
        )
        return [_to_review(r) for r in fetch_all(cur)]

    def set_reply(self, conn: Connection, *, review_id: str, reply: str, replied_at: datetime) -> Review | None:
        cur = conn.execute(
            f"""
            UPDATE review SET reply = %s, replied_at = %s
            WHERE id = %s AND reply IS NULL
            RETURNING {_COLS};
            """,
            (reply, replied_at, review_id),
        )
        row = fetch_one(cur)
        return _to_review(row) if row else None
