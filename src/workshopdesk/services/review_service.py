from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from ..booking_state import CUSTOMER, OWNER
from ..domain import Actor, BookingStatus, Review, new_id, utcnow
from ..errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from .booking_service import BookingService

logger = logging.getLogger(__name__)


def _rating(value, label: str) -> int:
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{label} must be a whole number.")
    try:
        n = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{label} must be a whole number.") from e
    if not 1 <= n <= 5:
        raise ValidationError(f"{label} must be between 1 and 5.")
    return n


def average_rating(total: int, count: int) -> float:
    if count <= 0:
        return 0.0
    return float((Decimal(total) / Decimal(count)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


class ReviewService:
    def __init__(self, *, bookings: BookingService, review_repo, workshop_repo) -> None:
        self.bookings = bookings
        self.review_repo = review_repo
        self.workshop_repo = workshop_repo

    def get_review(self, conn, review_id: str) -> Review:
        review = self.review_repo.get(conn, review_id)
        if review is None:
            raise NotFoundError("Review", review_id)
        return review

    def list_for_workshop(self, conn, workshop_id: str) -> list[Review]:
        return self.review_repo.list_by_workshop(conn, workshop_id)

    def create_review(
        self,
        conn,
        *,
        actor: Actor,
        booking_id: str,
        rating,
        pricing_rating,
        attitude_rating,
        professional_rating,
        comment: str = "",
        user_name: str = "",
    ) -> Review:
        booking = self.bookings.get_booking(conn, booking_id)
        if actor.role != CUSTOMER or actor.user_id != booking.customer_id:
            raise PermissionDeniedError("Only the booking's customer can review it.")
        if booking.status != BookingStatus.COMPLETED:
            raise InvalidTransitionError(booking.status.value, "reviewed", "only completed bookings can be reviewed")
        if self.review_repo.get_by_booking(conn, booking.id) is not None:
            logger.warning("Duplicate review for booking %s refused", booking.id)
            raise ConflictError(f"Booking {booking.id} has already been reviewed")

        review = Review(
            id=new_id(),
            user_id=actor.user_id,
            user_name=(user_name or booking.customer_name or "").strip(),
            workshop_id=booking.workshop_id,
            booking_id=booking.id,
            rating=_rating(rating, "Rating"),
            pricing_rating=_rating(pricing_rating, "Pricing rating"),
            attitude_rating=_rating(attitude_rating, "Attitude rating"),
            professional_rating=_rating(professional_rating, "Professional rating"),
            comment=(comment or "").strip(),
            created_at=utcnow(),
        )
        stored = self.review_repo.create(conn, review=review)
        if stored is None:
            raise ConflictError(f"Booking {booking.id} has already been reviewed")

        workshop = self.bookings.get_workshop(conn, booking.workshop_id)
        count = workshop.reviews + 1
        total = workshop.rating_total + stored.rating
        average = average_rating(total, count)
        self.workshop_repo.update_rating(
            conn, workshop_id=workshop.id, rating=average, reviews=count, rating_total=total
        )
        logger.info("Review %s for workshop %s: rating now %.1f over %d", stored.id, workshop.id, average, count)
        return stored

    def reply_to_review(self, conn, review_id: str, *, actor: Actor, reply: str) -> Review:
        review = self.get_review(conn, review_id)
        workshop = self.bookings.get_workshop(conn, review.workshop_id)
        if actor.role != OWNER or actor.user_id != workshop.owner_id:
            raise PermissionDeniedError("Only the workshop owner can reply to its reviews.")
        if not reply or not reply.strip():
            raise ValidationError("Reply cannot be empty.")
        if review.reply is not None:
            raise ConflictError(f"Review {review.id} already has a reply")

        updated = self.review_repo.set_reply(conn, review_id=review.id, reply=reply.strip(), replied_at=utcnow())
        if updated is None:
            raise ConflictError(f"Review {review.id} already has a reply")
        return updated
