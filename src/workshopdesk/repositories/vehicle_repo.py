from __future__ import annotations

from psycopg import Connection

from ..domain import Vehicle
from .rows import fetch_all, fetch_one

_COLS = "id, user_id, name, plate, brand, model, year, capacity, is_primary, created_at"
_EDITABLE = {"name", "plate", "brand", "model", "year", "capacity"}


def _to_vehicle(row: dict) -> Vehicle:
    return Vehicle(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        plate=row["plate"],
        brand=row["brand"] or "",
        model=row["model"] or "",
        year=row["year"] or "",
        capacity=row["capacity"] or "",
        is_primary=bool(row["is_primary"]),
        created_at=row["created_at"],
    )


class VehicleRepository:
    def create(self, conn: Connection, *, vehicle: Vehicle) -> Vehicle:
        cur = conn.execute(
            f"""
            INSERT INTO vehicle(id, user_id, name, plate, brand, model, year, capacity, is_primary, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_COLS};
            """,
            (
                vehicle.id,
                vehicle.user_id,
                vehicle.name,
                vehicle.plate,
                vehicle.brand,
                vehicle.model,
                vehicle.year,
                vehicle.capacity,
                vehicle.is_primary,
                vehicle.created_at,
            ),
        )
        return _to_vehicle(fetch_one(cur))

    def get(self, conn: Connection, vehicle_id: str) -> Vehicle | None:
        cur = conn.execute(f"SELECT {_COLS} FROM vehicle WHERE id = %s;", (vehicle_id,))
        row = fetch_one(cur)
        return _to_vehicle(row) if row else None

    def list_by_user(self, conn: Connection, user_id: str) -> list[Vehicle]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM vehicle WHERE user_id = %s ORDER BY is_primary DESC, created_at;",
            (user_id,),
        )
        return [_to_vehicle(r) for r in fetch_all(cur)]

    def update(self, conn: Connection, *, vehicle_id: str, fields: dict) -> Vehicle | None:
        unknown = set(fields) - _EDITABLE
        if unknown:
            raise ValueError(f"Not editable: {sorted(unknown)}")
        if not fields:
            return self.get(conn, vehicle_id)
        names = sorted(fields)
        cur = conn.execute(
            f"""
            UPDATE vehicle SET {", ".join(f"{n} = %s" for n in names)}
            WHERE id = %s
            RETURNING {_COLS};
            """,
            [fields[n] for n in names] + [vehicle_id],
        )
        row = fetch_one(cur)
        return _to_vehicle(row) if row else None

    def delete(self, conn: Connection, vehicle_id: str) -> bool:
        cur = conn.execute("DELETE FROM vehicle WHERE id = %s;", (vehicle_id,))
        return cur.rowcount == 1

    def set_primary(self, conn: Connection, *, user_id: str, vehicle_id: str) -> None:
        # clear first: the partial unique index is checked row by row
        conn.execute(
            "UPDATE vehicle SET is_primary = false WHERE user_id = %s AND is_primary AND id <> %s;",
            (user_id, vehicle_id),
        )
        conn.execute(
            "UPDATE vehicle SET is_primary = true WHERE id = %s AND user_id = %s;",
            (vehicle_id, user_id),
        )
