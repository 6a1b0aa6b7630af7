from __future__ import annotations

import pytest

from workshopdesk.domain import BookingStatus, QuoteStatus
from workshopdesk.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

S = BookingStatus


def test_create_booking_notifies_both_parties(desk, conn, notifier, make_booking):
    b = make_booking()

    assert b.status == S.PENDING
    assert b.id
    assert b.services == ("Oil change", "Brake check")
    assert notifier.titles("cust-1") == ["Booking Confirmed"]
    assert notifier.titles("owner-1") == ["New Job Request"]
    assert all(n.related_booking_id == b.id for n in notifier.sent)


def test_booking_ids_are_unique(make_booking):
    assert len({make_booking().id for _ in range(5)}) == 5


def test_owner_cannot_book(owner, make_booking):
    with pytest.raises(PermissionDeniedError):
        make_booking(actor=owner)


def test_booking_needs_known_workshop(make_booking):
    with pytest.raises(NotFoundError):
        make_booking(workshop_id="nope")


def test_booking_validates_fields(make_booking):
    with pytest.raises(ValidationError):
        make_booking(vehicle_name="  ")


def test_get_unknown_booking(desk, conn):
    with pytest.raises(NotFoundError):
        desk.bookings.get_booking(conn, "missing")


@pytest.mark.parametrize("status", [S.PENDING, S.QUOTED])
def test_cancel_before_payment_notifies_owner(desk, conn, customer, notifier, booking_at, status):
    b = booking_at(status)
    notifier.clear()

    b = desk.bookings.cancel_booking(conn, b.id, actor=customer)

    assert b.status == S.CANCELLED
    assert notifier.titles("owner-1") == ["Booking Cancelled"]
    assert notifier.titles("cust-1") == []


def test_cancel_quoted_booking_retires_quote(desk, conn, customer, booking_at):
    b = booking_at(S.QUOTED)
    quote_id = b.quote_id

    b = desk.bookings.cancel_booking(conn, b.id, actor=customer)

    assert b.quote_id is None
    assert desk.quotes.get_quote(conn, quote_id).status == QuoteStatus.REJECTED


def test_cancel_accepted_booking(desk, conn, customer, owner, make_booking):
    b = make_booking()
    desk.bookings.accept_booking(conn, b.id, actor=owner)
    assert desk.bookings.cancel_booking(conn, b.id, actor=customer).status == S.CANCELLED


@pytest.mark.parametrize("status", [S.PAID, S.REPAIRING, S.READY, S.COMPLETED])
def test_cancel_refused_after_payment(desk, conn, customer, booking_at, status):
    b = booking_at(status)
    with pytest.raises(InvalidTransitionError):
        desk.bookings.cancel_booking(conn, b.id, actor=customer)
    assert desk.bookings.get_booking(conn, b.id).status == status


def test_owner_cannot_cancel(desk, conn, owner, make_booking):
    b = make_booking()
    with pytest.raises(PermissionDeniedError):
        desk.bookings.cancel_booking(conn, b.id, actor=owner)


def test_update_status_to_quoted_never_edits(desk, conn, owner, booking_at, make_booking):
    quoted = booking_at(S.QUOTED)
    assert desk.bookings.update_status(conn, quoted.id, S.QUOTED, actor=owner) == quoted

    pending = make_booking()
    with pytest.raises(InvalidTransitionError):
        desk.bookings.update_status(conn, pending.id, S.QUOTED, actor=owner)
    assert desk.bookings.get_booking(conn, pending.id) == pending


def test_update_status_to_quoted_needs_a_party(desk, conn, other_owner, other_customer, booking_at):
    quoted = booking_at(S.QUOTED)
    for stranger in (other_owner, other_customer):
        with pytest.raises(PermissionDeniedError):
            desk.bookings.update_status(conn, quoted.id, S.QUOTED, actor=stranger)


def test_refund_approval_clears_quote(desk, conn, customer, owner, booking_at):
    b = booking_at(S.REPAIRING)
    assert b.quote_id is not None
    case = desk.refunds.create_refund_case(
        conn, actor=customer, booking_id=b.id, amount="40", reason="Overcharged", description=""
    )
    desk.refunds.resolve_refund(conn, case.id, actor=owner, resolution="Approved", shop_message="ok")

    cancelled = desk.bookings.get_booking(conn, b.id)
    assert (cancelled.status, cancelled.quote_id) == (S.CANCELLED, None)
    assert cancelled.total_amount is not None


def test_illegal_transition_leaves_booking_untouched(desk, conn, owner, make_booking, notifier):
    b = make_booking()
    notifier.clear()
    with pytest.raises(InvalidTransitionError):
        desk.bookings.update_status(conn, b.id, S.READY, actor=owner)
    assert desk.bookings.get_booking(conn, b.id) == b
    assert notifier.sent == []


def test_stranger_cannot_move_booking(desk, conn, other_owner, other_customer, make_booking):
    b = make_booking()
    with pytest.raises(PermissionDeniedError):
        desk.bookings.update_status(conn, b.id, S.ACCEPTED, actor=other_owner)
    with pytest.raises(PermissionDeniedError):
        desk.bookings.update_status(conn, b.id, S.CANCELLED, actor=other_customer)


def test_stale_version_is_a_conflict(desk, conn, owner, customer, make_booking):
    b = make_booking()
    desk.bookings.accept_booking(conn, b.id, actor=owner)
    with pytest.raises(ConflictError):
        desk.bookings.update_status(conn, b.id, S.CANCELLED, actor=customer, expected_version=b.version)


def test_version_increments_per_write(desk, conn, owner, make_booking):
    b = make_booking()
    accepted = desk.bookings.accept_booking(conn, b.id, actor=owner)
    assert accepted.version == b.version + 1


def test_concurrent_writer_loses_race(desk, conn, owner, make_booking):
    b = make_booking()
    desk.bookings.accept_booking(conn, b.id, actor=owner)
    # b is the stale copy a second session would still hold
    with pytest.raises(ConflictError):
        desk.bookings.transition(conn, b, S.REJECTED, driver="owner")


def test_direct_accept_without_quote_cannot_be_paid(desk, conn, owner, customer, make_booking):
    b = make_booking()
    desk.bookings.accept_booking(conn, b.id, actor=owner)
    with pytest.raises(InvalidTransitionError):
        desk.bookings.update_status(conn, b.id, S.PAID, actor=customer)
    assert desk.bookings.start_repair(conn, b.id, actor=owner).status == S.REPAIRING


def test_accept_quote_then_pay(desk, conn, customer, notifier, booking_at):
    b = booking_at(S.QUOTED)
    notifier.clear()

    b = desk.bookings.accept_quote(conn, b.id, actor=customer)

    assert b.status == S.ACCEPTED
    assert desk.quotes.get_quote(conn, b.quote_id).status == QuoteStatus.ACCEPTED
    assert notifier.titles("cust-1") == ["Quote Accepted"]
    assert notifier.titles("owner-1") == ["Quote Approved"]


@pytest.mark.parametrize("status", [S.PAID, S.REPAIRING, S.READY, S.COMPLETED])
def test_advancing_accepts_quote(desk, conn, booking_at, status):
    b = booking_at(status)
    assert desk.quotes.get_quote(conn, b.quote_id).status == QuoteStatus.ACCEPTED


def test_full_lifecycle_notifications(desk, conn, customer, owner, notifier, booking_at):
    b = booking_at(S.PAID)
    assert notifier.titles("cust-1")[-1] == "Payment Successful"
    assert notifier.titles("owner-1")[-1] == "Payment Received"

    desk.bookings.start_repair(conn, b.id, actor=owner)
    assert notifier.titles("cust-1")[-1] == "Repair Started"

    desk.bookings.mark_ready(conn, b.id, actor=owner)
    assert notifier.titles("cust-1")[-1] == "Vehicle Ready"

    notifier.clear()
    desk.bookings.confirm_pickup(conn, b.id, actor=customer)
    assert notifier.titles() == ["Payment Released"]
    assert notifier.sent[0].user_id == "owner-1"


def test_customer_cannot_mark_ready(desk, conn, customer, booking_at):
    b = booking_at(S.REPAIRING)
    with pytest.raises(PermissionDeniedError):
        desk.bookings.mark_ready(conn, b.id, actor=customer)


def test_owner_reject_booking(desk, conn, owner, make_booking):
    b = make_booking()
    assert desk.bookings.reject_booking(conn, b.id, actor=owner).status == S.REJECTED


def test_list_views(desk, conn, customer, owner, make_booking, booking_at):
    active = make_booking()
    done = booking_at(S.COMPLETED)
    cancelled = make_booking()
    desk.bookings.cancel_booking(conn, cancelled.id, actor=customer)

    act = desk.bookings.list_bookings(conn, customer_id="cust-1", view="active")
    hist = desk.bookings.list_bookings(conn, customer_id="cust-1", view="history")
    assert [i.booking.id for i in act] == [active.id]
    assert {i.booking.id for i in hist} == {done.id, cancelled.id}
    assert len(desk.bookings.list_bookings(conn, workshop_id="w1")) == 3
    assert desk.bookings.list_bookings(conn, workshop_id="w2") == []


def test_list_requires_one_scope(desk, conn):
    with pytest.raises(ValidationError):
        desk.bookings.list_bookings(conn)
    with pytest.raises(ValidationError):
        desk.bookings.list_bookings(conn, customer_id="cust-1", view="archived")


def test_failed_call_rolls_back_transaction(desk, customer, owner, make_booking):
    with desk.db.transaction() as conn:
        b = make_booking()
    with pytest.raises(InvalidTransitionError):
        with desk.db.transaction() as conn:
            desk.bookings.accept_booking(conn, b.id, actor=owner)
            desk.bookings.update_status(conn, b.id, S.COMPLETED, actor=customer)
    with desk.db.session() as conn:
        assert desk.bookings.get_booking(conn, b.id).status == S.PENDING
