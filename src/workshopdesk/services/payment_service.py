from __future__ import annotations

import logging
from dataclasses import dataclass

from ..booking_state import CUSTOMER, check_transition
from ..domain import Actor, Booking, BookingStatus, Payment, new_id, utcnow
from ..errors import InvalidTransitionError, PermissionDeniedError, ValidationError
from ..payments import PaymentResult
from .booking_service import BookingService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentOutcome:
    result: PaymentResult
    booking: Booking
    payment: Payment | None = None


class PaymentService:
    def __init__(self, *, bookings: BookingService, payment_repo, gateway) -> None:
        self.bookings = bookings
        self.payment_repo = payment_repo
        self.gateway = gateway

    def list_payments(self, conn, booking_id: str) -> list[Payment]:
        self.bookings.get_booking(conn, booking_id)
        return self.payment_repo.list_for_booking(conn, booking_id)

    def pay_for_booking(self, conn, booking_id: str, *, actor: Actor, details: dict) -> PaymentOutcome:
        booking = self.bookings.get_booking(conn, booking_id)
        if actor.role != CUSTOMER or actor.user_id != booking.customer_id:
            raise PermissionDeniedError("Only the booking's customer can pay for it.")
        check_transition(booking.status, BookingStatus.PAID, CUSTOMER)
        if not booking.quote_id or booking.total_amount is None:
            raise InvalidTransitionError(booking.status.value, BookingStatus.PAID.value, "no quote attached")
        method = (details or {}).get("method")
        if not method:
            raise ValidationError("Payment method is required.")

        result = self.gateway.process_payment(booking.id, booking.total_amount, details)
        if result.status != "SUCCESS":
            logger.warning(
                "Payment %s for booking %s: %s %s",
                result.transaction_id,
                booking.id,
                result.status,
                result.error or "",
            )
            return PaymentOutcome(result=result, booking=booking)

        payment = self.payment_repo.create(
            conn,
            payment=Payment(
                id=new_id(),
                booking_id=booking.id,
                amount=booking.total_amount,
                method=str(method),
                paid_at=utcnow(),
                transaction_id=result.transaction_id,
            ),
        )
        updated = self.bookings.update_status(conn, booking.id, BookingStatus.PAID, actor=actor)
        return PaymentOutcome(result=result, booking=updated, payment=payment)
