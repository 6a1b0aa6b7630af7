from __future__ import annotations

import random

import pytest

from workshopdesk.container import build, memory_repos
from workshopdesk.domain import Actor, BookingStatus, Workshop
from workshopdesk.memory import MemoryDb
from workshopdesk.payments import SimulatedPaymentGateway
from workshopdesk.services.quote_service import QuoteLineInput

CARD = {"method": "card", "card": {"number": "4111 1111 1111 1111"}}


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent = []

    def notify(self, conn, notification) -> None:
        self.sent.append(notification)

    def titles(self, user_id: str | None = None) -> list[str]:
        return [n.title for n in self.sent if user_id is None or n.user_id == user_id]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway():
    return SimulatedPaymentGateway(rng=random.Random(7))


def seed_workshops(c) -> None:
    c.repos.workshop.upsert(
        c.db.store,
        workshop=Workshop(id="w1", name="Ah Seng Motor", owner_id="owner-1", location="Petaling Jaya"),
    )
    c.repos.workshop.upsert(
        c.db.store,
        workshop=Workshop(id="w2", name="Jalan Klang Auto", owner_id="owner-2", location="Klang"),
    )


@pytest.fixture
def desk(notifier, gateway):
    c = build(MemoryDb(), memory_repos(), gateway=gateway, notifier=notifier)
    seed_workshops(c)
    return c


@pytest.fixture
def conn(desk):
    return desk.db.store


@pytest.fixture
def customer():
    return Actor(user_id="cust-1", role="customer")


@pytest.fixture
def other_customer():
    return Actor(user_id="cust-2", role="customer")


@pytest.fixture
def owner():
    return Actor(user_id="owner-1", role="owner")


@pytest.fixture
def other_owner():
    return Actor(user_id="owner-2", role="owner")


@pytest.fixture
def make_booking(desk, conn, customer):
    def _make(actor=None, workshop_id="w1", **kw):
        fields = {
            "vehicle_name": "Perodua Myvi",
            "vehicle_plate": "WXY 1234",
            "service_type": "Servicing",
            "services": ["Oil change", "Brake check"],
            "date": "2026-11-02",
            "time": "10:00",
            "customer_name": "Aina",
        }
        fields.update(kw)
        return desk.bookings.create_booking(conn, actor=actor or customer, workshop_id=workshop_id, **fields)

    return _make


@pytest.fixture
def make_quote(desk, conn, owner):
    def _quote(booking, items=None, labor=50):
        items = items if items is not None else [QuoteLineInput(name="Oil Filter", price=30)]
        return desk.quotes.create_quote(conn, actor=owner, booking_id=booking.id, items=items, labor=labor)

    return _quote


@pytest.fixture
def booking_at(desk, conn, customer, owner, make_booking, make_quote):
    """Books, quotes and drives a booking forward to ``status``."""

    def _at(status: BookingStatus):
        b = make_booking()
        if status == BookingStatus.PENDING:
            return b
        make_quote(b)
        if status == BookingStatus.QUOTED:
            return desk.bookings.get_booking(conn, b.id)
        desk.payments.pay_for_booking(conn, b.id, actor=customer, details=CARD)
        steps = [
            (BookingStatus.REPAIRING, desk.bookings.start_repair, owner),
            (BookingStatus.READY, desk.bookings.mark_ready, owner),
            (BookingStatus.COMPLETED, desk.bookings.confirm_pickup, customer),
        ]
        current = desk.bookings.get_booking(conn, b.id)
        for target, op, actor in steps:
            if current.status == status:
                break
            current = op(conn, b.id, actor=actor)
        assert current.status == status
        return current

    return _at
