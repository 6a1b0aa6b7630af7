from __future__ import annotations

from decimal import Decimal

import pytest

from workshopdesk.domain import BookingStatus, RefundStatus
from workshopdesk.errors import (
    ConflictError,
    InvalidTransitionError,
    PermissionDeniedError,
    ValidationError,
)

S = BookingStatus
R = RefundStatus


@pytest.fixture
def open_case(desk, conn, customer):
    def _open(booking, amount="84.80"):
        return desk.refunds.create_refund_case(
            conn,
            actor=customer,
            booking_id=booking.id,
            workshop_id=booking.workshop_id,
            amount=amount,
            reason="Problem not fixed",
            description="Engine light is still on",
            evidence="photo-1.jpg",
        )

    return _open


@pytest.mark.parametrize("status", [S.PAID, S.REPAIRING, S.READY])
def test_approved_refund_cancels_booking(desk, conn, owner, booking_at, open_case, status):
    b = booking_at(status)
    case = open_case(b)
    assert case.status == R.REQUESTED
    assert [e.status for e in case.timeline] == [R.REQUESTED]
    assert desk.bookings.get_booking(conn, b.id).status == status

    resolved = desk.refunds.resolve_refund(
        conn, case.id, actor=owner, resolution=R.APPROVED, shop_message="refunded in full"
    )

    assert resolved.status == R.APPROVED
    assert [e.status for e in resolved.timeline] == [R.REQUESTED, R.SHOP_RESPONDED, R.APPROVED]
    assert resolved.timeline[1].description == "refunded in full"
    assert resolved.timeline[2].label == "Refund Approved"
    cancelled = desk.bookings.get_booking(conn, b.id)
    assert cancelled.status == S.CANCELLED
    assert cancelled.quote_id is None


def test_approved_refund_shows_refunded_and_leaves_active_list(desk, conn, owner, booking_at, open_case):
    b = booking_at(S.READY)
    case = open_case(b)
    desk.refunds.resolve_refund(conn, case.id, actor=owner, resolution=R.APPROVED, shop_message="ok")

    for scope in ({"customer_id": "cust-1"}, {"workshop_id": "w1"}):
        active = desk.bookings.list_bookings(conn, view="active", **scope)
        history = desk.bookings.list_bookings(conn, view="history", **scope)
        assert b.id not in [i.booking.id for i in active]
        assert [i.display_status for i in history if i.booking.id == b.id] == ["REFUNDED"]


def test_approved_refund_records_refund_payment(desk, conn, owner, booking_at, open_case):
    b = booking_at(S.PAID)
    case = open_case(b, amount="50.5")
    desk.refunds.resolve_refund(conn, case.id, actor=owner, resolution=R.APPROVED, shop_message="ok")

    payments = desk.payments.list_payments(conn, b.id)
    assert [p.is_refund for p in payments] == [False, True]
    assert payments[1].amount == Decimal("50.50")


def test_rejected_refund_leaves_booking(desk, conn, owner, customer, booking_at, open_case):
    b = booking_at(S.REPAIRING)
    case = open_case(b)

    resolved = desk.refunds.resolve_refund(
        conn, case.id, actor=owner, resolution=R.REJECTED, shop_message="Work was done as quoted"
    )

    assert resolved.status == R.REJECTED
    assert resolved.timeline[-1].label == "Refund Rejected"
    assert desk.bookings.get_booking(conn, b.id).status == S.REPAIRING
    with pytest.raises(InvalidTransitionError):
        desk.refunds.resolve_refund(conn, case.id, actor=owner, resolution=R.APPROVED, shop_message="changed mind")
    # the customer can still argue in the comments
    desk.refunds.add_comment(conn, case.id, actor=customer, text="Please reconsider")


@pytest.mark.parametrize("status", [S.PENDING, S.QUOTED, S.COMPLETED])
def test_refund_needs_captured_payment(booking_at, open_case, status):
    b = booking_at(status)
    with pytest.raises(InvalidTransitionError):
        open_case(b)


def test_refund_only_by_booking_customer(desk, conn, other_customer, owner, booking_at):
    b = booking_at(S.PAID)
    for actor in (other_customer, owner):
        with pytest.raises(PermissionDeniedError):
            desk.refunds.create_refund_case(
                conn, actor=actor, booking_id=b.id, amount=10, reason="x", description=""
            )


def test_refund_validates_input(desk, conn, customer, booking_at):
    b = booking_at(S.PAID)
    with pytest.raises(ValidationError):
        desk.refunds.create_refund_case(conn, actor=customer, booking_id=b.id, amount=0, reason="x", description="")
    with pytest.raises(ValidationError):
        desk.refunds.create_refund_case(conn, actor=customer, booking_id=b.id, amount=10, reason=" ", description="")
    with pytest.raises(ValidationError):
        desk.refunds.create_refund_case(
            conn, actor=customer, booking_id=b.id, workshop_id="w2", amount=10, reason="x", description=""
        )


def test_refund_capped_at_booking_total(desk, conn, customer, owner, booking_at):
    b = booking_at(S.PAID)
    with pytest.raises(ValidationError, match="exceed"):
        desk.refunds.create_refund_case(
            conn, actor=customer, booking_id=b.id, amount=1_000_000, reason="x", description=""
        )
    with pytest.raises(ValidationError):
        desk.refunds.create_refund_case(
            conn, actor=customer, booking_id=b.id, amount="84.81", reason="x", description=""
        )
    assert desk.refunds.list_for_booking(conn, b.id) == []

    case = desk.refunds.create_refund_case(
        conn, actor=customer, booking_id=b.id, amount="84.80", reason="Wrong part", description=""
    )
    desk.refunds.resolve_refund(conn, case.id, actor=owner, resolution=R.APPROVED, shop_message="ok")
    refunds = [p for p in desk.payments.list_payments(conn, b.id) if p.is_refund]
    assert [p.amount for p in refunds] == [Decimal("84.80")]


def test_second_refund_case_is_a_conflict(booking_at, open_case):
    b = booking_at(S.PAID)
    open_case(b)
    with pytest.raises(ConflictError):
        open_case(b)


def test_only_workshop_owner_resolves(desk, conn, customer, other_owner, booking_at, open_case):
    case = open_case(booking_at(S.PAID))
    for actor in (customer, other_owner):
        with pytest.raises(PermissionDeniedError):
            desk.refunds.resolve_refund(conn, case.id, actor=actor, resolution=R.APPROVED, shop_message="")


def test_resolution_must_be_approved_or_rejected(desk, conn, owner, booking_at, open_case):
    case = open_case(booking_at(S.PAID))
    with pytest.raises(ValidationError):
        desk.refunds.resolve_refund(conn, case.id, actor=owner, resolution=R.COMPLETED, shop_message="")


def test_review_step_before_resolution(desk, conn, owner, booking_at, open_case):
    case = open_case(booking_at(S.PAID))

    reviewing = desk.refunds.start_review(conn, case.id, actor=owner)
    assert reviewing.status == R.UNDER_REVIEW
    with pytest.raises(InvalidTransitionError):
        desk.refunds.start_review(conn, case.id, actor=owner)

    done = desk.refunds.resolve_refund(conn, case.id, actor=owner, resolution=R.APPROVED, shop_message="ok")
    assert [e.status for e in done.timeline] == [R.REQUESTED, R.UNDER_REVIEW, R.SHOP_RESPONDED, R.APPROVED]


def test_comments_do_not_touch_status(desk, conn, customer, owner, booking_at, open_case):
    case = open_case(booking_at(S.PAID))

    desk.refunds.add_comment(conn, case.id, actor=customer, text="Any update?")
    updated = desk.refunds.add_comment(conn, case.id, actor=owner, text="Checking with the mechanic")

    assert [c.author_role for c in updated.comments] == ["user", "owner"]
    assert updated.status == R.REQUESTED
    assert updated.timeline == case.timeline


def test_stranger_cannot_comment(desk, conn, other_customer, booking_at, open_case):
    case = open_case(booking_at(S.PAID))
    with pytest.raises(PermissionDeniedError):
        desk.refunds.add_comment(conn, case.id, actor=other_customer, text="hi")


def test_pickup_blocked_while_dispute_open(desk, conn, customer, owner, booking_at, open_case):
    b = booking_at(S.READY)
    case = open_case(b)
    with pytest.raises(InvalidTransitionError):
        desk.bookings.confirm_pickup(conn, b.id, actor=customer)

    desk.refunds.resolve_refund(conn, case.id, actor=owner, resolution=R.REJECTED, shop_message="no")
    assert desk.bookings.confirm_pickup(conn, b.id, actor=customer).status == S.COMPLETED
