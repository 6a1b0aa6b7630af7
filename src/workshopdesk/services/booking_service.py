from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Literal, Optional

from .. import notifications
from ..booking_state import (
    CANCELLABLE,
    CUSTOMER,
    OPEN_DISPUTE,
    OWNER,
    QUOTE_ACCEPTING,
    SYSTEM,
    check_transition,
    display_status,
    is_active,
    is_history,
    refund_index,
)
from ..domain import (
    Actor,
    Booking,
    BookingStatus,
    Notification,
    QuoteStatus,
    RefundCase,
    Workshop,
    new_id,
    utcnow,
)
from ..errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ..repositories.rows import KEEP

logger = logging.getLogger(__name__)

BookingView = Literal["all", "active", "history"]


@dataclass(frozen=True)
class BookingListItem:
    booking: Booking
    display_status: str
    refund: Optional[RefundCase] = None


def _required(value: str | None, label: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} cannot be empty.")
    return str(value).strip()


class BookingService:
    def __init__(
        self,
        *,
        booking_repo,
        workshop_repo,
        quote_repo,
        refund_repo,
        notifier,
    ) -> None:
        self.booking_repo = booking_repo
        self.workshop_repo = workshop_repo
        self.quote_repo = quote_repo
        self.refund_repo = refund_repo
        self.notifier = notifier

    # lookups shared with the quote, refund and payment engines

    def get_booking(self, conn, booking_id: str) -> Booking:
        booking = self.booking_repo.get(conn, booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    def get_workshop(self, conn, workshop_id: str) -> Workshop:
        workshop = self.workshop_repo.get(conn, workshop_id)
        if workshop is None:
            raise NotFoundError("Workshop", workshop_id)
        return workshop

    def require_party(self, conn, booking: Booking, actor: Actor) -> Workshop:
        """Checks the actor is the booking's customer or its workshop's owner."""
        workshop = self.get_workshop(conn, booking.workshop_id)
        if actor.role == CUSTOMER and actor.user_id == booking.customer_id:
            return workshop
        if actor.role == OWNER and actor.user_id == workshop.owner_id:
            return workshop
        raise PermissionDeniedError(f"{actor.role} {actor.user_id} is not a party to booking {booking.id}")

    def emit(self, conn, items: Iterable[Notification]) -> None:
        for n in items:
            self.notifier.notify(conn, n)

    # the single write path for booking status

    def transition(
        self,
        conn,
        booking: Booking,
        target: BookingStatus,
        *,
        driver: str,
        expected_version: int | None = None,
        quote_id=KEEP,
        total_amount=KEEP,
    ) -> Booking:
        if expected_version is not None and expected_version != booking.version:
            raise ConflictError(
                f"Booking {booking.id} is at version {booking.version}, expected {expected_version}"
            )
        if driver == SYSTEM and target == BookingStatus.CANCELLED:
            # refund approval voids the job whatever state it reached
            if booking.status == BookingStatus.CANCELLED:
                return booking
        else:
            check_transition(booking.status, target, driver)

        updated = self.booking_repo.update_status(
            conn,
            booking_id=booking.id,
            status=target,
            expected_version=booking.version,
            quote_id=quote_id,
            total_amount=total_amount,
        )
        if updated is None:
            raise ConflictError(f"Booking {booking.id} was modified concurrently; reload and retry")

        if target in QUOTE_ACCEPTING or (
            target == BookingStatus.ACCEPTED and booking.status == BookingStatus.QUOTED
        ):
            self.quote_repo.accept_open_for_booking(conn, booking.id)

        logger.info(
            "Booking %s: %s -> %s (%s)", booking.id, booking.status.value, target.value, driver
        )
        return updated

    # operations

    def create_booking(
        self,
        conn,
        *,
        actor: Actor,
        workshop_id: str,
        vehicle_name: str,
        service_type: str,
        date: str,
        time: str,
        services: Iterable[str] = (),
        vehicle_plate: str | None = None,
        customer_name: str = "",
    ) -> Booking:
        if actor.role != CUSTOMER:
            raise PermissionDeniedError("Only customers can create bookings.")
        workshop = self.get_workshop(conn, workshop_id)
        if workshop.status != "ACTIVE":
            raise ValidationError(f"Workshop {workshop.name} is not accepting bookings.")

        booking = Booking(
            id=new_id(),
            customer_id=actor.user_id,
            customer_name=(customer_name or "").strip(),
            workshop_id=workshop.id,
            vehicle_name=_required(vehicle_name, "Vehicle name"),
            vehicle_plate=(vehicle_plate.strip() if vehicle_plate else None),
            service_type=_required(service_type, "Service type"),
            services=tuple(s.strip() for s in services if s and s.strip()),
            date=_required(date, "Date"),
            time=_required(time, "Time"),
            status=BookingStatus.PENDING,
            created_at=utcnow(),
        )
        booking = self.booking_repo.create(conn, booking=booking)
        logger.info("Booking %s created for workshop %s", booking.id, workshop.id)
        self.emit(conn, notifications.booking_created(booking, workshop))
        return booking

    def update_status(
        self,
        conn,
        booking_id: str,
        new_status: BookingStatus,
        *,
        actor: Actor,
        expected_version: int | None = None,
    ) -> Booking:
        booking = self.get_booking(conn, booking_id)
        new_status = BookingStatus(new_status)
        workshop = self.require_party(conn, booking, actor)

        if new_status == BookingStatus.QUOTED:
            if booking.status == BookingStatus.QUOTED:
                return booking
            raise InvalidTransitionError(
                booking.status.value, new_status.value, "bookings become QUOTED by creating a quote"
            )

        if new_status == BookingStatus.PAID and not booking.quote_id:
            raise InvalidTransitionError(booking.status.value, new_status.value, "no quote attached")
        if new_status == BookingStatus.COMPLETED and self.has_open_dispute(conn, booking.id):
            raise InvalidTransitionError(
                booking.status.value, new_status.value, "a refund dispute is still open"
            )

        previous = booking.status
        extra = {}
        if new_status == BookingStatus.CANCELLED and booking.quote_id:
            self._retire_open_quote(conn, booking)
            extra["quote_id"] = None

        updated = self.transition(
            conn,
            booking,
            new_status,
            driver=actor.role,
            expected_version=expected_version,
            **extra,
        )

        if new_status == BookingStatus.CANCELLED:
            self.emit(conn, notifications.booking_cancelled(updated, workshop))
        else:
            self.emit(conn, notifications.status_changed(updated, previous, new_status, workshop))
        return updated

    def cancel_booking(self, conn, booking_id: str, *, actor: Actor, expected_version: int | None = None) -> Booking:
        booking = self.get_booking(conn, booking_id)
        if actor.role != CUSTOMER:
            raise PermissionDeniedError("Only the customer can cancel a booking.")
        if booking.status not in CANCELLABLE:
            raise InvalidTransitionError(
                booking.status.value, BookingStatus.CANCELLED.value, "work has already been paid for"
            )
        return self.update_status(
            conn, booking_id, BookingStatus.CANCELLED, actor=actor, expected_version=expected_version
        )

    def accept_booking(self, conn, booking_id: str, *, actor: Actor) -> Booking:
        return self.update_status(conn, booking_id, BookingStatus.ACCEPTED, actor=self._owner(actor))

    def reject_booking(self, conn, booking_id: str, *, actor: Actor) -> Booking:
        return self.update_status(conn, booking_id, BookingStatus.REJECTED, actor=self._owner(actor))

    def accept_quote(self, conn, booking_id: str, *, actor: Actor) -> Booking:
        return self.update_status(conn, booking_id, BookingStatus.ACCEPTED, actor=actor)

    def start_repair(self, conn, booking_id: str, *, actor: Actor) -> Booking:
        return self.update_status(conn, booking_id, BookingStatus.REPAIRING, actor=self._owner(actor))

    def mark_ready(self, conn, booking_id: str, *, actor: Actor) -> Booking:
        return self.update_status(conn, booking_id, BookingStatus.READY, actor=self._owner(actor))

    def confirm_pickup(self, conn, booking_id: str, *, actor: Actor) -> Booking:
        return self.update_status(conn, booking_id, BookingStatus.COMPLETED, actor=actor)

    def force_cancel(self, conn, booking_id: str) -> Booking:
        booking = self.get_booking(conn, booking_id)
        return self.transition(conn, booking, BookingStatus.CANCELLED, driver=SYSTEM, quote_id=None)

    def has_open_dispute(self, conn, booking_id: str) -> bool:
        return any(r.status in OPEN_DISPUTE for r in self.refund_repo.list_by_booking(conn, booking_id))

    # views

    def list_bookings(
        self,
        conn,
        *,
        customer_id: str | None = None,
        workshop_id: str | None = None,
        view: BookingView = "all",
    ) -> list[BookingListItem]:
        if (customer_id is None) == (workshop_id is None):
            raise ValidationError("Pass exactly one of customer_id or workshop_id.")
        if customer_id is not None:
            bookings = self.booking_repo.list_by_customer(conn, customer_id)
            refunds = refund_index(self.refund_repo.list_by_customer(conn, customer_id))
        else:
            bookings = self.booking_repo.list_by_workshop(conn, workshop_id)
            refunds = refund_index(self.refund_repo.list_by_workshop(conn, workshop_id))

        keep = {"all": lambda b, r: True, "active": is_active, "history": is_history}.get(view)
        if keep is None:
            raise ValidationError(f"Unknown booking view: {view}")

        out = []
        for b in bookings:
            r = refunds.get(b.id)
            if keep(b, r):
                out.append(BookingListItem(booking=b, display_status=display_status(b, r), refund=r))
        return out

    def _owner(self, actor: Actor) -> Actor:
        if actor.role != OWNER:
            raise PermissionDeniedError("Only the workshop owner can do that.")
        return actor

    def _retire_open_quote(self, conn, booking: Booking) -> None:
        quote = self.quote_repo.get(conn, booking.quote_id)
        if quote is not None and quote.status == QuoteStatus.PENDING:
            if self.quote_repo.update_status(
                conn, quote_id=quote.id, status=QuoteStatus.REJECTED, expected_version=quote.version
            ) is None:
                raise ConflictError(f"Quote {quote.id} was modified concurrently; reload and retry")
