from __future__ import annotations

from decimal import Decimal

import pytest

from workshopdesk.domain import BookingStatus, QuoteStatus
from workshopdesk.errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from workshopdesk.services.quote_service import QuoteLineInput, price_quote


def test_price_quote_charges_sst_on_subtotal():
    p = price_quote([QuoteLineInput("Oil Filter", 30)], 50)
    assert p.tax == Decimal("4.80")
    assert p.total == Decimal("84.80")


def test_price_quote_rounds_tax_to_cents():
    p = price_quote([QuoteLineInput("Brake Pads", "120.35"), QuoteLineInput("Wiper", "19.90")], "45.50")
    subtotal = Decimal("120.35") + Decimal("19.90") + Decimal("45.50")
    assert p.tax == Decimal("11.15")
    assert p.total == subtotal + p.tax


@pytest.mark.parametrize(
    "items,labor",
    [
        ([QuoteLineInput("Oil Filter", -1)], 10),
        ([QuoteLineInput("", 10)], 10),
        ([QuoteLineInput("Oil Filter", "abc")], 10),
        ([], 0),
        ([QuoteLineInput("Oil Filter", 10)], -5),
    ],
)
def test_price_quote_rejects_bad_input(items, labor):
    with pytest.raises(ValidationError):
        price_quote(items, labor)


def test_create_quote_marks_booking_quoted(desk, conn, notifier, make_booking, make_quote):
    b = make_booking()
    assert b.status == BookingStatus.PENDING

    q = make_quote(b)

    b = desk.bookings.get_booking(conn, b.id)
    assert b.status == BookingStatus.QUOTED
    assert b.quote_id == q.id
    assert b.total_amount == q.total == Decimal("84.8")
    assert q.status == QuoteStatus.PENDING
    assert "New Quote Received" in notifier.titles("cust-1")


def test_reject_quote_keeps_audit_record(desk, conn, customer, notifier, make_booking, make_quote):
    b = make_booking()
    q = make_quote(b)

    desk.quotes.reject_quote(conn, q.id, actor=customer)

    b = desk.bookings.get_booking(conn, b.id)
    assert b.status == BookingStatus.PENDING
    assert b.quote_id is None
    assert b.total_amount is None
    assert desk.quotes.get_quote(conn, q.id).status == QuoteStatus.REJECTED
    assert "Quote Rejected" in notifier.titles("owner-1")


def test_withdraw_quote_deletes_it(desk, conn, owner, notifier, make_booking, make_quote):
    b = make_booking()
    q = make_quote(b)

    desk.quotes.withdraw_quote(conn, q.id, actor=owner)

    b = desk.bookings.get_booking(conn, b.id)
    assert b.status == BookingStatus.PENDING
    assert b.quote_id is None
    with pytest.raises(NotFoundError):
        desk.quotes.get_quote(conn, q.id)
    assert "Quote Withdrawn" in notifier.titles("cust-1")


def test_second_open_quote_is_a_conflict(make_booking, make_quote):
    b = make_booking()
    make_quote(b)
    with pytest.raises(ConflictError):
        make_quote(b, labor=80)


def test_requote_after_rejection(desk, conn, customer, make_booking, make_quote):
    b = make_booking()
    first = make_quote(b)
    desk.quotes.reject_quote(conn, first.id, actor=customer)

    second = make_quote(b, labor=40)

    b = desk.bookings.get_booking(conn, b.id)
    assert b.quote_id == second.id
    assert [q.status for q in desk.quotes.list_for_booking(conn, b.id)] == [QuoteStatus.REJECTED, QuoteStatus.PENDING]


def test_only_workshop_owner_can_quote(desk, conn, other_owner, customer, make_booking):
    b = make_booking()
    for actor in (other_owner, customer):
        with pytest.raises(PermissionDeniedError):
            desk.quotes.create_quote(conn, actor=actor, booking_id=b.id, items=[], labor=50)


def test_only_booking_customer_can_reject(desk, conn, other_customer, owner, make_booking, make_quote):
    b = make_booking()
    q = make_quote(b)
    for actor in (other_customer, owner):
        with pytest.raises(PermissionDeniedError):
            desk.quotes.reject_quote(conn, q.id, actor=actor)


def test_cannot_quote_accepted_booking(desk, conn, owner, make_booking, make_quote):
    b = make_booking()
    desk.bookings.accept_booking(conn, b.id, actor=owner)
    with pytest.raises(InvalidTransitionError):
        make_quote(b)


def test_resend_notifies_again_without_state_change(desk, conn, owner, notifier, make_booking, make_quote):
    b = make_booking()
    q = make_quote(b)
    before = desk.bookings.get_booking(conn, b.id)

    desk.quotes.resend_quote(conn, q.id, actor=owner)

    assert "Quote Resubmitted" in notifier.titles("cust-1")
    assert desk.bookings.get_booking(conn, b.id) == before


def test_rejected_quote_cannot_be_withdrawn(desk, conn, customer, owner, make_booking, make_quote):
    b = make_booking()
    q = make_quote(b)
    desk.quotes.reject_quote(conn, q.id, actor=customer)
    with pytest.raises(InvalidTransitionError):
        desk.quotes.withdraw_quote(conn, q.id, actor=owner)


def test_quoted_iff_pending_quote_attached(desk, conn, customer, owner, make_booking, make_quote):
    bookings = [make_booking() for _ in range(4)]
    quotes = [make_quote(b) for b in bookings[:3]]
    desk.quotes.reject_quote(conn, quotes[0].id, actor=customer)
    desk.quotes.withdraw_quote(conn, quotes[1].id, actor=owner)

    for b in desk.bookings.booking_repo.list_by_customer(conn, "cust-1"):
        q = desk.quotes.quote_repo.get(conn, b.quote_id) if b.quote_id else None
        attached_pending = q is not None and q.status == QuoteStatus.PENDING and q.booking_id == b.id
        assert (b.status == BookingStatus.QUOTED) == attached_pending
