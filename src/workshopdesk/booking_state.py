"""Booking and refund-case state machines.

Every edge a booking may take is listed in ``TRANSITIONS`` together with the
parties allowed to drive it. ``quote`` edges are only taken by the quote
engine (creating, withdrawing or rejecting a quote) and ``system`` edges only
by refund resolution, so neither is reachable through a plain status update.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .domain import Booking, BookingStatus, RefundCase, RefundStatus
from .errors import InvalidTransitionError, PermissionDeniedError

CUSTOMER = "customer"
OWNER = "owner"
SYSTEM = "system"
QUOTE_ENGINE = "quote"

S = BookingStatus

TRANSITIONS: dict[tuple[BookingStatus, BookingStatus], frozenset[str]] = {
    (S.PENDING, S.QUOTED): frozenset({QUOTE_ENGINE}),
    (S.PENDING, S.ACCEPTED): frozenset({OWNER}),
    (S.PENDING, S.REJECTED): frozenset({OWNER}),
    (S.PENDING, S.CANCELLED): frozenset({CUSTOMER}),
    (S.QUOTED, S.PENDING): frozenset({QUOTE_ENGINE}),
    (S.QUOTED, S.ACCEPTED): frozenset({CUSTOMER}),
    (S.QUOTED, S.PAID): frozenset({CUSTOMER}),
    (S.QUOTED, S.CANCELLED): frozenset({CUSTOMER}),
    (S.ACCEPTED, S.PAID): frozenset({CUSTOMER}),
    (S.ACCEPTED, S.REPAIRING): frozenset({OWNER}),
    (S.ACCEPTED, S.CANCELLED): frozenset({CUSTOMER}),
    (S.PAID, S.REPAIRING): frozenset({OWNER}),
    (S.REPAIRING, S.READY): frozenset({OWNER}),
    (S.READY, S.COMPLETED): frozenset({CUSTOMER}),
    (S.PAID, S.CANCELLED): frozenset({SYSTEM}),
    (S.REPAIRING, S.CANCELLED): frozenset({SYSTEM}),
    (S.READY, S.CANCELLED): frozenset({SYSTEM}),
}

CANCELLABLE = frozenset({S.PENDING, S.ACCEPTED, S.QUOTED})
# payment captured but not yet released to the workshop
ESCROW = frozenset({S.PAID, S.REPAIRING, S.READY})
QUOTE_ACCEPTING = frozenset({S.PAID, S.REPAIRING, S.READY, S.COMPLETED})
FINISHED = frozenset({S.COMPLETED, S.CANCELLED})
TERMINAL = frozenset({S.COMPLETED, S.CANCELLED, S.REJECTED})

R = RefundStatus

OPEN_DISPUTE = frozenset({R.REQUESTED, R.UNDER_REVIEW, R.SHOP_RESPONDED})
RESOLUTIONS = frozenset({R.APPROVED, R.REJECTED})
REFUND_TERMINAL = frozenset({R.APPROVED, R.REJECTED, R.COMPLETED})
# refund statuses that take the booking out of the active list
REFUND_CLOSES_BOOKING = frozenset({R.APPROVED, R.COMPLETED})

REFUND_TRANSITIONS: dict[RefundStatus, frozenset[RefundStatus]] = {
    R.REQUESTED: frozenset({R.UNDER_REVIEW, R.SHOP_RESPONDED, R.APPROVED, R.REJECTED}),
    R.UNDER_REVIEW: frozenset({R.SHOP_RESPONDED, R.APPROVED, R.REJECTED}),
    R.SHOP_RESPONDED: frozenset({R.APPROVED, R.REJECTED}),
    R.APPROVED: frozenset(),
    R.REJECTED: frozenset(),
    R.COMPLETED: frozenset(),
}


def drivers_for(current: BookingStatus, target: BookingStatus) -> frozenset[str]:
    return TRANSITIONS.get((current, target), frozenset())


def can_transition(current: BookingStatus, target: BookingStatus, driver: str | None = None) -> bool:
    drivers = drivers_for(current, target)
    if driver is None:
        return bool(drivers)
    return driver in drivers


def check_transition(current: BookingStatus, target: BookingStatus, driver: str) -> None:
    drivers = drivers_for(current, target)
    if not drivers:
        raise InvalidTransitionError(current.value, target.value)
    if driver not in drivers:
        if drivers <= {QUOTE_ENGINE, SYSTEM}:
            raise InvalidTransitionError(
                current.value, target.value, "only reachable through quotes or refunds"
            )
        raise PermissionDeniedError(
            f"{driver} cannot move a booking from {current.value} to {target.value}"
        )


def check_refund_transition(current: RefundStatus, target: RefundStatus) -> None:
    if target not in REFUND_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value)


def refund_index(refunds: Iterable[RefundCase]) -> dict[str, RefundCase]:
    """Most recent refund case per booking id."""
    out: dict[str, RefundCase] = {}
    for r in refunds:
        cur = out.get(r.booking_id)
        if cur is None or r.created_at >= cur.created_at:
            out[r.booking_id] = r
    return out


def display_status(booking: Booking, refund: Optional[RefundCase]) -> str:
    if refund is not None and refund.status in REFUND_CLOSES_BOOKING:
        return "REFUNDED" if refund.status == R.APPROVED else "COMPLETED"
    return booking.status.value


def is_active(booking: Booking, refund: Optional[RefundCase]) -> bool:
    if refund is not None and refund.status in REFUND_CLOSES_BOOKING:
        return False
    return booking.status not in FINISHED


def is_history(booking: Booking, refund: Optional[RefundCase]) -> bool:
    if refund is not None and refund.status in REFUND_CLOSES_BOOKING:
        return True
    return booking.status in FINISHED
