"""In-process store with the same repository contracts as the psycopg ones.

``MemoryDb.transaction()`` snapshots every table and restores the snapshot
if the block raises, so engine calls stay all-or-nothing. Entities are
frozen dataclasses, which keeps a shallow copy of each table enough for a
snapshot. A re-entrant lock serialises sessions.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime

from .domain import (
    BankAccount,
    Booking,
    BookingStatus,
    Notification,
    Payment,
    Payout,
    PayoutStatus,
    Quote,
    QuoteStatus,
    RefundCase,
    RefundComment,
    RefundStatus,
    RefundTimelineEntry,
    Review,
    Vehicle,
    Workshop,
)
from .repositories.rows import KEEP

_TABLES = (
    "workshops",
    "bookings",
    "quotes",
    "refunds",
    "reviews",
    "vehicles",
    "payments",
    "notifications",
    "bank_accounts",
    "payouts",
)


class MemoryStore:
    def __init__(self) -> None:
        self.workshops: dict[str, Workshop] = {}
        self.bookings: dict[str, Booking] = {}
        self.quotes: dict[str, Quote] = {}
        self.refunds: dict[str, RefundCase] = {}
        self.reviews: dict[str, Review] = {}
        self.vehicles: dict[str, Vehicle] = {}
        self.payments: dict[str, Payment] = {}
        self.notifications: dict[str, Notification] = {}
        self.bank_accounts: dict[str, BankAccount] = {}
        self.payouts: dict[str, Payout] = {}
        self.dedupe_keys: set[str] = set()
        self.lock = threading.RLock()

    def snapshot(self) -> dict:
        snap = {name: dict(getattr(self, name)) for name in _TABLES}
        snap["dedupe_keys"] = set(self.dedupe_keys)
        return snap

    def restore(self, snap: dict) -> None:
        for name, value in snap.items():
            setattr(self, name, value)


class MemoryDb:
    def __init__(self, store: MemoryStore | None = None) -> None:
        self.store = store or MemoryStore()

    @contextmanager
    def session(self):
        with self.store.lock:
            yield self.store

    @contextmanager
    def transaction(self):
        with self.store.lock:
            snap = self.store.snapshot()
            try:
                yield self.store
            except BaseException:
                self.store.restore(snap)
                raise


def _newest_first(items, key="created_at"):
    return sorted(items, key=lambda x: getattr(x, key), reverse=True)


class MemoryWorkshopRepository:
    def upsert(self, conn: MemoryStore, *, workshop: Workshop) -> Workshop:
        current = conn.workshops.get(workshop.id)
        if current is not None:
            workshop = replace(
                workshop, rating=current.rating, reviews=current.reviews, rating_total=current.rating_total
            )
        conn.workshops[workshop.id] = workshop
        return workshop

    def get(self, conn: MemoryStore, workshop_id: str) -> Workshop | None:
        return conn.workshops.get(workshop_id)

    def list(self, conn: MemoryStore, limit: int = 50) -> list[Workshop]:
        return sorted(conn.workshops.values(), key=lambda w: w.name)[:limit]

    def update_rating(
        self, conn: MemoryStore, *, workshop_id: str, rating: float, reviews: int, rating_total: int
    ) -> None:
        w = conn.workshops.get(workshop_id)
        if w is not None:
            conn.workshops[workshop_id] = replace(w, rating=rating, reviews=reviews, rating_total=rating_total)


class MemoryBookingRepository:
    def create(self, conn: MemoryStore, *, booking: Booking) -> Booking:
        conn.bookings[booking.id] = booking
        return booking

    def get(self, conn: MemoryStore, booking_id: str) -> Booking | None:
        return conn.bookings.get(booking_id)

    def list_by_customer(self, conn: MemoryStore, customer_id: str) -> list[Booking]:
        return _newest_first(b for b in conn.bookings.values() if b.customer_id == customer_id)

    def list_by_workshop(self, conn: MemoryStore, workshop_id: str) -> list[Booking]:
        return _newest_first(b for b in conn.bookings.values() if b.workshop_id == workshop_id)

    def update_status(
        self,
        conn: MemoryStore,
        *,
        booking_id: str,
        status: BookingStatus,
        expected_version: int,
        quote_id=KEEP,
        total_amount=KEEP,
    ) -> Booking | None:
        b = conn.bookings.get(booking_id)
        if b is None or b.version != expected_version:
            return None
        changes = {"status": status, "version": b.version + 1}
        if quote_id is not KEEP:
            changes["quote_id"] = quote_id
        if total_amount is not KEEP:
            changes["total_amount"] = total_amount
        b = replace(b, **changes)
        conn.bookings[booking_id] = b
        return b


class MemoryQuoteRepository:
    def create(self, conn: MemoryStore, *, quote: Quote) -> Quote:
        conn.quotes[quote.id] = quote
        return quote

    def get(self, conn: MemoryStore, quote_id: str) -> Quote | None:
        return conn.quotes.get(quote_id)

    def list_by_booking(self, conn: MemoryStore, booking_id: str) -> list[Quote]:
        return sorted(
            (q for q in conn.quotes.values() if q.booking_id == booking_id),
            key=lambda q: q.created_at,
        )

    def list_by_workshop(self, conn: MemoryStore, workshop_id: str) -> list[Quote]:
        return _newest_first(q for q in conn.quotes.values() if q.workshop_id == workshop_id)

    def delete(self, conn: MemoryStore, quote_id: str) -> None:
        conn.quotes.pop(quote_id, None)

    def update_status(
        self, conn: MemoryStore, *, quote_id: str, status: QuoteStatus, expected_version: int
    ) -> Quote | None:
        q = conn.quotes.get(quote_id)
        if q is None or q.version != expected_version:
            return None
        q = replace(q, status=status, version=q.version + 1)
        conn.quotes[quote_id] = q
        return q

    def accept_open_for_booking(self, conn: MemoryStore, booking_id: str) -> int:
        n = 0
        for q in list(conn.quotes.values()):
            if q.booking_id == booking_id and q.status == QuoteStatus.PENDING:
                conn.quotes[q.id] = replace(q, status=QuoteStatus.ACCEPTED, version=q.version + 1)
                n += 1
        return n


class MemoryRefundRepository:
    def create(self, conn: MemoryStore, *, refund: RefundCase) -> RefundCase:
        conn.refunds[refund.id] = refund
        return refund

    def get(self, conn: MemoryStore, refund_id: str) -> RefundCase | None:
        return conn.refunds.get(refund_id)

    def list_by_booking(self, conn: MemoryStore, booking_id: str) -> list[RefundCase]:
        return sorted(
            (r for r in conn.refunds.values() if r.booking_id == booking_id),
            key=lambda r: r.created_at,
        )

    def list_by_workshop(self, conn: MemoryStore, workshop_id: str) -> list[RefundCase]:
        return _newest_first(r for r in conn.refunds.values() if r.workshop_id == workshop_id)

    def list_by_customer(self, conn: MemoryStore, customer_id: str) -> list[RefundCase]:
        return _newest_first(r for r in conn.refunds.values() if r.customer_id == customer_id)

    def update_status(
        self,
        conn: MemoryStore,
        *,
        refund_id: str,
        status: RefundStatus,
        entries: list[RefundTimelineEntry],
        expected_version: int,
    ) -> RefundCase | None:
        r = conn.refunds.get(refund_id)
        if r is None or r.version != expected_version:
            return None
        r = replace(r, status=status, timeline=r.timeline + tuple(entries), version=r.version + 1)
        conn.refunds[refund_id] = r
        return r

    def append_comment(self, conn: MemoryStore, *, refund_id: str, comment: RefundComment) -> RefundCase | None:
        r = conn.refunds.get(refund_id)
        if r is None:
            return None
        r = replace(r, comments=r.comments + (comment,))
        conn.refunds[refund_id] = r
        return r


class MemoryReviewRepository:
    def create(self, conn: MemoryStore, *, review: Review) -> Review | None:
        if self.get_by_booking(conn, review.booking_id) is not None:
            return None
        conn.reviews[review.id] = review
        return review

    def get(self, conn: MemoryStore, review_id: str) -> Review | None:
        return conn.reviews.get(review_id)

    def get_by_booking(self, conn: MemoryStore, booking_id: str) -> Review | None:
        return next((r for r in conn.reviews.values() if r.booking_id == booking_id), None)

    def list_by_workshop(self, conn: MemoryStore, workshop_id: str) -> list[Review]:
        return _newest_first(r for r in conn.reviews.values() if r.workshop_id == workshop_id)

    def set_reply(self, conn: MemoryStore, *, review_id: str, reply: str, replied_at: datetime) -> Review | None:
        r = conn.reviews.get(review_id)
        if r is None or r.reply is not None:
            return None
        r = replace(r, reply=reply, replied_at=replied_at)
        conn.reviews[review_id] = r
        return r


class MemoryVehicleRepository:
    _EDITABLE = {"name", "plate", "brand", "model", "year", "capacity"}

    def create(self, conn: MemoryStore, *, vehicle: Vehicle) -> Vehicle:
        conn.vehicles[vehicle.id] = vehicle
        return vehicle

    def get(self, conn: MemoryStore, vehicle_id: str) -> Vehicle | None:
        return conn.vehicles.get(vehicle_id)

    def list_by_user(self, conn: MemoryStore, user_id: str) -> list[Vehicle]:
        return sorted(
            (v for v in conn.vehicles.values() if v.user_id == user_id),
            key=lambda v: (not v.is_primary, v.created_at),
        )

    def update(self, conn: MemoryStore, *, vehicle_id: str, fields: dict) -> Vehicle | None:
        unknown = set(fields) - self._EDITABLE
        if unknown:
            raise ValueError(f"Not editable: {sorted(unknown)}")
        v = conn.vehicles.get(vehicle_id)
        if v is None:
            return None
        v = replace(v, **fields)
        conn.vehicles[vehicle_id] = v
        return v

    def delete(self, conn: MemoryStore, vehicle_id: str) -> bool:
        return conn.vehicles.pop(vehicle_id, None) is not None

    def set_primary(self, conn: MemoryStore, *, user_id: str, vehicle_id: str) -> None:
        for v in list(conn.vehicles.values()):
            if v.user_id == user_id:
                conn.vehicles[v.id] = replace(v, is_primary=(v.id == vehicle_id))


class MemoryPaymentRepository:
    def create(self, conn: MemoryStore, *, payment: Payment) -> Payment:
        conn.payments[payment.id] = payment
        return payment

    def list_for_booking(self, conn: MemoryStore, booking_id: str) -> list[Payment]:
        return sorted(
            (p for p in conn.payments.values() if p.booking_id == booking_id),
            key=lambda p: p.paid_at,
        )


class MemoryNotificationRepository:
    def create(self, conn: MemoryStore, *, notification: Notification, dedupe_key: str | None = None) -> bool:
        if dedupe_key is not None:
            if dedupe_key in conn.dedupe_keys:
                return False
            conn.dedupe_keys.add(dedupe_key)
        conn.notifications[notification.id] = notification
        return True

    def list_for_user(
        self,
        conn: MemoryStore,
        user_id: str,
        *,
        role: str | None = None,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        rows = [
            n
            for n in conn.notifications.values()
            if n.user_id == user_id and (role is None or n.role == role) and not (unread_only and n.is_read)
        ]
        return _newest_first(rows)[:limit]

    def mark_read(self, conn: MemoryStore, notification_id: str, *, user_id: str) -> bool:
        n = conn.notifications.get(notification_id)
        if n is None or n.user_id != user_id:
            return False
        conn.notifications[notification_id] = replace(n, is_read=True)
        return True

    def mark_all_read(self, conn: MemoryStore, user_id: str, role: str | None = None) -> int:
        count = 0
        for n in list(conn.notifications.values()):
            if n.user_id == user_id and (role is None or n.role == role) and not n.is_read:
                conn.notifications[n.id] = replace(n, is_read=True)
                count += 1
        return count


class MemoryBankAccountRepository:
    def save(self, conn: MemoryStore, *, account: BankAccount) -> BankAccount:
        conn.bank_accounts[account.owner_id] = account
        return account

    def get(self, conn: MemoryStore, owner_id: str) -> BankAccount | None:
        return conn.bank_accounts.get(owner_id)


class MemoryPayoutRepository:
    def lock_workshop(self, conn: MemoryStore, workshop_id: str) -> None:
        pass

    def create(self, conn: MemoryStore, *, payout: Payout) -> Payout:
        conn.payouts[payout.id] = payout
        return payout

    def get(self, conn: MemoryStore, payout_id: str) -> Payout | None:
        return conn.payouts.get(payout_id)

    def list_by_workshop(self, conn: MemoryStore, workshop_id: str) -> list[Payout]:
        return _newest_first([p for p in conn.payouts.values() if p.workshop_id == workshop_id], "requested_at")

    def list_open(self, conn: MemoryStore) -> list[Payout]:
        return sorted(
            (p for p in conn.payouts.values() if p.status in (PayoutStatus.REQUESTED, PayoutStatus.PROCESSING)),
            key=lambda p: p.requested_at,
        )

    def update_status(
        self,
        conn: MemoryStore,
        *,
        payout_id: str,
        status: PayoutStatus,
        expected_status: PayoutStatus,
        updated_at: datetime,
    ) -> Payout | None:
        p = conn.payouts.get(payout_id)
        if p is None or p.status != expected_status:
            return None
        p = replace(p, status=status, updated_at=updated_at)
        conn.payouts[payout_id] = p
        return p
