from __future__ import annotations

from psycopg import Connection

from ..domain import Workshop
from .rows import fetch_all, fetch_one

_COLS = "id, name, owner_id, location, rating, reviews, rating_total, status"


def _to_workshop(row: dict) -> Workshop:
    return Workshop(
        id=row["id"],
        name=row["name"],
        owner_id=row["owner_id"],
        location=row["location"] or "",
        rating=float(row["rating"]),
        reviews=int(row["reviews"]),
        rating_total=int(row["rating_total"]),
        status=row["status"],
    )


class WorkshopRepository:
    def upsert(self, conn: Connection, *, workshop: Workshop) -> Workshop:
        cur = conn.execute(
            f"""
            INSERT INTO workshop(id, name, owner_id, location, rating, reviews, rating_total, status)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET
              name = EXCLUDED.name,
              owner_id = EXCLUDED.owner_id,
              location = EXCLUDED.location,
              status = EXCLUDED.status
            RETURNING {_COLS};
            """,
            (
                workshop.id,
                workshop.name,
                workshop.owner_id,
                workshop.location,
                workshop.rating,
                workshop.reviews,
                workshop.rating_total,
                workshop.status,
            ),
        )
        return _to_workshop(fetch_one(cur))

    def get(self, conn: Connection, workshop_id: str) -> Workshop | None:
        cur = conn.execute(f"SELECT {_COLS} FROM workshop WHERE id = %s;", (workshop_id,))
        row = fetch_one(cur)
        return _to_workshop(row) if row else None

    def list(self, conn: Connection, limit: int = 50) -> list[Workshop]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM workshop ORDER BY name LIMIT %s;",
            (limit,),
        )
        return [_to_workshop(r) for r in fetch_all(cur)]

    def update_rating(
        self, conn: Connection, *, workshop_id: str, rating: float, reviews: int, rating_total: int
    ) -> None:
        conn.execute(
            "UPDATE workshop SET rating = %s, reviews = %s, rating_total = %s WHERE id = %s;",
            (rating, reviews, rating_total, workshop_id),
        )
