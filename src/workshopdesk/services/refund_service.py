from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from ..booking_state import CUSTOMER, ESCROW, OPEN_DISPUTE, OWNER, check_refund_transition
from ..domain import (
    Actor,
    Payment,
    RefundCase,
    RefundComment,
    RefundStatus,
    RefundTimelineEntry,
    money,
    new_id,
    utcnow,
)
from ..errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from .booking_service import BookingService

logger = logging.getLogger(__name__)

R = RefundStatus

_RESOLUTION_TEXT = {
    R.APPROVED: (
        "Refund Approved",
        "The shop has approved your refund. The amount will be credited back shortly.",
    ),
    R.REJECTED: (
        "Refund Rejected",
        "The shop has rejected your refund request.",
    ),
}


class RefundService:
    def __init__(self, *, bookings: BookingService, refund_repo, payment_repo) -> None:
        self.bookings = bookings
        self.refund_repo = refund_repo
        self.payment_repo = payment_repo

    def get_refund(self, conn, refund_id: str) -> RefundCase:
        refund = self.refund_repo.get(conn, refund_id)
        if refund is None:
            raise NotFoundError("RefundCase", refund_id)
        return refund

    def list_for_booking(self, conn, booking_id: str) -> list[RefundCase]:
        return self.refund_repo.list_by_booking(conn, booking_id)

    def list_for_workshop(self, conn, workshop_id: str) -> list[RefundCase]:
        return self.refund_repo.list_by_workshop(conn, workshop_id)

    def list_for_customer(self, conn, customer_id: str) -> list[RefundCase]:
        return self.refund_repo.list_by_customer(conn, customer_id)

    def create_refund_case(
        self,
        conn,
        *,
        actor: Actor,
        booking_id: str,
        amount,
        reason: str,
        description: str,
        evidence: str | None = None,
        workshop_id: str | None = None,
    ) -> RefundCase:
        booking = self.bookings.get_booking(conn, booking_id)
        if actor.role != CUSTOMER or actor.user_id != booking.customer_id:
            raise PermissionDeniedError("Only the booking's customer can request a refund.")
        if workshop_id is not None and workshop_id != booking.workshop_id:
            raise ValidationError("Workshop does not match the booking.")
        if booking.status not in ESCROW:
            raise InvalidTransitionError(
                booking.status.value, R.REQUESTED.value, "refunds need a paid booking that is not yet completed"
            )
        if self.refund_repo.list_by_booking(conn, booking.id):
            raise ConflictError(f"Booking {booking.id} already has a refund case")

        try:
            amount = money(amount)
        except (InvalidOperation, ValueError, TypeError) as e:
            raise ValidationError("Refund amount must be a number.") from e
        if amount <= Decimal("0"):
            raise ValidationError("Refund amount must be positive.")
        if booking.total_amount is not None and amount > booking.total_amount:
            raise ValidationError(f"Refund amount cannot exceed the amount paid (RM {booking.total_amount:.2f}).")
        if not reason or not reason.strip():
            raise ValidationError("Refund reason cannot be empty.")

        now = utcnow()
        refund = self.refund_repo.create(
            conn,
            refund=RefundCase(
                id=new_id(),
                booking_id=booking.id,
                workshop_id=booking.workshop_id,
                customer_id=booking.customer_id,
                amount=amount,
                reason=reason.strip(),
                description=(description or "").strip(),
                evidence=evidence or None,
                status=R.REQUESTED,
                created_at=now,
                timeline=(
                    RefundTimelineEntry(
                        status=R.REQUESTED,
                        label="Refund Requested",
                        timestamp=now,
                        description="Your refund request has been submitted and is under review.",
                    ),
                ),
            ),
        )
        logger.info("Refund case %s opened for booking %s (%s)", refund.id, booking.id, amount)
        return refund

    def start_review(self, conn, refund_id: str, *, actor: Actor) -> RefundCase:
        refund = self.get_refund(conn, refund_id)
        self._require_owner(conn, refund, actor)
        check_refund_transition(refund.status, R.UNDER_REVIEW)
        entry = RefundTimelineEntry(
            status=R.UNDER_REVIEW,
            label="Under Review",
            timestamp=utcnow(),
            description="The shop is reviewing your request.",
        )
        return self._write(conn, refund, R.UNDER_REVIEW, [entry])

    def resolve_refund(
        self,
        conn,
        refund_id: str,
        *,
        actor: Actor,
        resolution: RefundStatus,
        shop_message: str,
    ) -> RefundCase:
        refund = self.get_refund(conn, refund_id)
        self._require_owner(conn, refund, actor)
        resolution = RefundStatus(resolution)
        if resolution not in _RESOLUTION_TEXT:
            raise ValidationError(f"Resolution must be Approved or Rejected, not {resolution.value}.")
        if refund.status not in OPEN_DISPUTE:
            raise InvalidTransitionError(refund.status.value, resolution.value, "case is already resolved")
        if refund.status != R.SHOP_RESPONDED:
            check_refund_transition(refund.status, R.SHOP_RESPONDED)
        check_refund_transition(R.SHOP_RESPONDED, resolution)

        now = utcnow()
        label, text = _RESOLUTION_TEXT[resolution]
        entries = [
            RefundTimelineEntry(
                status=R.SHOP_RESPONDED,
                label="Shop Responded",
                timestamp=now,
                description=(shop_message or "").strip() or None,
            ),
            RefundTimelineEntry(status=resolution, label=label, timestamp=now, description=text),
        ]
        updated = self._write(conn, refund, resolution, entries)

        if resolution == R.APPROVED:
            self.bookings.force_cancel(conn, refund.booking_id)
            self.payment_repo.create(
                conn,
                payment=Payment(
                    id=new_id(),
                    booking_id=refund.booking_id,
                    amount=refund.amount,
                    method="refund",
                    paid_at=now,
                    is_refund=True,
                ),
            )
        return updated

    def add_comment(self, conn, refund_id: str, *, actor: Actor, text: str) -> RefundCase:
        refund = self.get_refund(conn, refund_id)
        if actor.role == CUSTOMER and actor.user_id == refund.customer_id:
            author = "user"
        else:
            self._require_owner(conn, refund, actor)
            author = "owner"
        if not text or not text.strip():
            raise ValidationError("Comment cannot be empty.")

        updated = self.refund_repo.append_comment(
            conn,
            refund_id=refund.id,
            comment=RefundComment(id=new_id(), author_role=author, text=text.strip(), timestamp=utcnow()),
        )
        if updated is None:
            raise NotFoundError("RefundCase", refund_id)
        return updated

    def _require_owner(self, conn, refund: RefundCase, actor: Actor) -> None:
        workshop = self.bookings.get_workshop(conn, refund.workshop_id)
        if actor.role != OWNER or actor.user_id != workshop.owner_id:
            raise PermissionDeniedError("Only the workshop owner can handle this refund case.")

    def _write(self, conn, refund: RefundCase, status: RefundStatus, entries: list[RefundTimelineEntry]) -> RefundCase:
        updated = self.refund_repo.update_status(
            conn, refund_id=refund.id, status=status, entries=entries, expected_version=refund.version
        )
        if updated is None:
            raise ConflictError(f"Refund case {refund.id} was modified concurrently; reload and retry")
        logger.info("Refund case %s: %s -> %s", refund.id, refund.status.value, status.value)
        return updated
