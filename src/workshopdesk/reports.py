from __future__ import annotations

from collections import Counter
from decimal import Decimal

from .booking_state import ESCROW, OPEN_DISPUTE, refund_index
from .domain import BookingStatus, RefundStatus


def wallet_summary(conn, workshop_id: str, *, booking_repo, refund_repo) -> dict:
    # escrow: captured but not yet released; available: released on pickup
    available = escrow = refunded = Decimal("0.00")
    jobs = {"available": 0, "escrow": 0, "refunded": 0}
    refunds = refund_index(refund_repo.list_by_workshop(conn, workshop_id))

    for b in booking_repo.list_by_workshop(conn, workshop_id):
        r = refunds.get(b.id)
        amount = b.total_amount or Decimal("0.00")
        if r is not None and r.status == RefundStatus.APPROVED:
            refunded += r.amount
            jobs["refunded"] += 1
        elif b.status == BookingStatus.COMPLETED and not (r is not None and r.status in OPEN_DISPUTE):
            available += amount
            jobs["available"] += 1
        elif b.status in ESCROW or b.status == BookingStatus.COMPLETED:
            escrow += amount
            jobs["escrow"] += 1

    return {
        "workshop_id": workshop_id,
        "available": available,
        "escrow": escrow,
        "refunded": refunded,
        "jobs": jobs,
    }


def workshop_stats(conn, workshop_id: str, *, booking_repo, review_repo) -> dict:
    bookings = booking_repo.list_by_workshop(conn, workshop_id)
    reviews = review_repo.list_by_workshop(conn, workshop_id)
    by_status = Counter(b.status.value for b in bookings)

    def avg(attr: str) -> float | None:
        if not reviews:
            return None
        return round(sum(getattr(r, attr) for r in reviews) / len(reviews), 1)

    return {
        "workshop_id": workshop_id,
        "bookings_total": len(bookings),
        "bookings_by_status": {s.value: by_status.get(s.value, 0) for s in BookingStatus},
        "reviews_count": len(reviews),
        "rating": avg("rating"),
        "pricing_rating": avg("pricing_rating"),
        "attitude_rating": avg("attitude_rating"),
        "professional_rating": avg("professional_rating"),
        "unreplied_reviews": sum(1 for r in reviews if r.reply is None),
    }
