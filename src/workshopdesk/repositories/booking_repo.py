from __future__ import annotations

from psycopg import Connection

from ..domain import Booking, BookingStatus
from .rows import KEEP, fetch_all, fetch_one

_COLS = """
    id, customer_id, customer_name, workshop_id, vehicle_name, vehicle_plate,
    service_type, services, booking_date, booking_time, status, total_amount, quote_id,
    version, created_at
"""


def _to_booking(row: dict) -> Booking:
    return Booking(
        id=row["id"],
        customer_id=row["customer_id"],
        customer_name=row["customer_name"] or "",
        workshop_id=row["workshop_id"],
        vehicle_name=row["vehicle_name"],
        vehicle_plate=row["vehicle_plate"],
        service_type=row["service_type"],
        services=tuple(row["services"] or ()),
        date=row["booking_date"],
        time=row["booking_time"],
        status=BookingStatus(row["status"]),
        total_amount=row["total_amount"],
        quote_id=row["quote_id"],
        version=int(row["version"]),
        created_at=row["created_at"],
    )


class BookingRepository:
    def create(self, conn: Connection, *, booking: Booking) -> Booking:
        cur = conn.execute(
            f"""
            INSERT INTO booking(
              id, customer_id, customer_name, workshop_id, vehicle_name, vehicle_plate,
              service_type, services, booking_date, booking_time, status, total_amount, quote_id,
              version, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_COLS};
            """,
            (
                booking.id,
                booking.customer_id,
                booking.customer_name,
                booking.workshop_id,
                booking.vehicle_name,
                booking.vehicle_plate,
                booking.service_type,
                list(booking.services),
                booking.date,
                booking.time,
                booking.status.value,
                booking.total_amount,
                booking.quote_id,
                booking.version,
                booking.created_at,
            ),
        )
        return _to_booking(fetch_one(cur))

    def get(self, conn: Connection, booking_id: str) -> Booking | None:
        cur = conn.execute(f"SELECT {_COLS} FROM booking WHERE id = %s;", (booking_id,))
        row = fetch_one(cur)
        return _to_booking(row) if row else None

    def list_by_customer(self, conn: Connection, customer_id: str) -> list[Booking]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM booking WHERE customer_id = %s ORDER BY created_at DESC;",
            (customer_id,),
        )
        return [_to_booking(r) for r in fetch_all(cur)]

    def list_by_workshop(self, conn: Connection, workshop_id: str) -> list[Booking]:
        cur = conn.execute(
            f"SELECT {_COLS} FROM booking WHERE workshop_id = %s ORDER BY created_at DESC;",
            (workshop_id,),
        )
        return [_to_booking(r) for r in fetch_all(cur)]

    def update_status(
        self,
        conn: Connection,
        *,
        booking_id: str,
        status: BookingStatus,
        expected_version: int,
        quote_id=KEEP,
        total_amount=KEEP,
    ) -> Booking | None:
        """Compare-and-swap on version; returns None when the row moved on."""
        sets = ["status = %s", "version = version + 1"]
        params: list = [status.value]
        if quote_id is not KEEP:
            sets.append("quote_id = %s")
            params.append(quote_id)
        if total_amount is not KEEP:
            sets.append("total_amount = %s")
            params.append(total_amount)
        params += [booking_id, expected_version]

        cur = conn.execute(
            f"""
            UPDATE booking SET {", ".join(sets)}
            WHERE id = %s AND version = %s
            RETURNING {_COLS};
            """,
            params,
        )
        row = fetch_one(cur)
        return _to_booking(row) if row else None
