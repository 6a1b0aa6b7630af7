from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable

from .. import notifications
from ..booking_state import OWNER, QUOTE_ENGINE
from ..domain import (
    SST_RATE,
    Actor,
    BookingStatus,
    Quote,
    QuoteItem,
    QuoteStatus,
    money,
    new_id,
    utcnow,
)
from ..errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from .booking_service import BookingService

logger = logging.getLogger(__name__)


@dataclass
class QuoteLineInput:
    name: str
    price: Decimal | float | str


@dataclass(frozen=True)
class QuotePrice:
    items: tuple[QuoteItem, ...]
    labor: Decimal
    tax: Decimal
    total: Decimal


def _amount(value, label: str) -> Decimal:
    try:
        amount = money(value)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValidationError(f"{label} must be a number.") from e
    if amount < 0:
        raise ValidationError(f"{label} cannot be negative.")
    return amount


def price_quote(items: Iterable[QuoteLineInput | QuoteItem], labor) -> QuotePrice:
    """Subtotal is parts plus labor; SST is charged on the subtotal."""
    lines = []
    for it in items:
        if not it.name or not it.name.strip():
            raise ValidationError("Quote item name cannot be empty.")
        lines.append(QuoteItem(name=it.name.strip(), price=_amount(it.price, f"Price of {it.name}")))
    labor = _amount(labor, "Labor")
    if not lines and labor == 0:
        raise ValidationError("A quote needs at least one item or a labor charge.")

    subtotal = sum((i.price for i in lines), Decimal("0")) + labor
    tax = money(subtotal * SST_RATE)
    return QuotePrice(items=tuple(lines), labor=labor, tax=tax, total=subtotal + tax)


class QuoteService:
    def __init__(self, *, bookings: BookingService, quote_repo) -> None:
        self.bookings = bookings
        self.quote_repo = quote_repo

    def get_quote(self, conn, quote_id: str) -> Quote:
        quote = self.quote_repo.get(conn, quote_id)
        if quote is None:
            raise NotFoundError("Quote", quote_id)
        return quote

    def list_for_booking(self, conn, booking_id: str) -> list[Quote]:
        self.bookings.get_booking(conn, booking_id)
        return self.quote_repo.list_by_booking(conn, booking_id)

    def list_for_workshop(self, conn, workshop_id: str) -> list[Quote]:
        return self.quote_repo.list_by_workshop(conn, workshop_id)

    def create_quote(
        self,
        conn,
        *,
        actor: Actor,
        booking_id: str,
        items: Iterable[QuoteLineInput | QuoteItem],
        labor,
        diagnosis: Iterable[dict] | None = None,
        note: str | None = None,
    ) -> Quote:
        booking = self.bookings.get_booking(conn, booking_id)
        workshop = self._require_owner(conn, booking, actor)

        if any(q.status == QuoteStatus.PENDING for q in self.quote_repo.list_by_booking(conn, booking.id)):
            raise ConflictError(f"Booking {booking.id} already has an open quote; withdraw it first")
        if booking.status != BookingStatus.PENDING:
            raise InvalidTransitionError(booking.status.value, BookingStatus.QUOTED.value, "only pending bookings can be quoted")

        price = price_quote(items, labor)
        quote = self.quote_repo.create(
            conn,
            quote=Quote(
                id=new_id(),
                booking_id=booking.id,
                workshop_id=booking.workshop_id,
                items=price.items,
                labor=price.labor,
                tax=price.tax,
                total=price.total,
                status=QuoteStatus.PENDING,
                created_at=utcnow(),
                diagnosis=tuple(diagnosis or ()),
                note=(note.strip() if note and note.strip() else None),
            ),
        )
        updated = self.bookings.transition(
            conn,
            booking,
            BookingStatus.QUOTED,
            driver=QUOTE_ENGINE,
            quote_id=quote.id,
            total_amount=quote.total,
        )
        logger.info("Quote %s for booking %s: total %s", quote.id, booking.id, quote.total)
        self.bookings.emit(conn, notifications.quote_created(updated, quote, workshop))
        return quote

    def withdraw_quote(self, conn, quote_id: str, *, actor: Actor) -> None:
        quote = self.get_quote(conn, quote_id)
        booking = self.bookings.get_booking(conn, quote.booking_id)
        workshop = self._require_owner(conn, booking, actor)
        self._require_open(quote, booking)

        self.quote_repo.delete(conn, quote.id)
        updated = self.bookings.transition(
            conn, booking, BookingStatus.PENDING, driver=QUOTE_ENGINE, quote_id=None, total_amount=None
        )
        logger.info("Quote %s withdrawn", quote.id)
        self.bookings.emit(conn, notifications.quote_withdrawn(updated, workshop))

    def reject_quote(self, conn, quote_id: str, *, actor: Actor) -> Quote:
        quote = self.get_quote(conn, quote_id)
        booking = self.bookings.get_booking(conn, quote.booking_id)
        if actor.role != "customer" or actor.user_id != booking.customer_id:
            raise PermissionDeniedError("Only the booking's customer can reject its quote.")
        self._require_open(quote, booking)
        workshop = self.bookings.get_workshop(conn, booking.workshop_id)

        rejected = self.quote_repo.update_status(
            conn, quote_id=quote.id, status=QuoteStatus.REJECTED, expected_version=quote.version
        )
        if rejected is None:
            raise ConflictError(f"Quote {quote.id} was modified concurrently; reload and retry")
        updated = self.bookings.transition(
            conn, booking, BookingStatus.PENDING, driver=QUOTE_ENGINE, quote_id=None, total_amount=None
        )
        logger.info("Quote %s rejected", quote.id)
        self.bookings.emit(conn, notifications.quote_rejected(updated, workshop))
        return rejected

    def resend_quote(self, conn, quote_id: str, *, actor: Actor) -> Quote:
        quote = self.get_quote(conn, quote_id)
        booking = self.bookings.get_booking(conn, quote.booking_id)
        workshop = self._require_owner(conn, booking, actor)
        self._require_open(quote, booking)
        self.bookings.emit(conn, notifications.quote_resent(booking, quote, workshop))
        return quote

    def _require_owner(self, conn, booking, actor: Actor):
        workshop = self.bookings.get_workshop(conn, booking.workshop_id)
        if actor.role != OWNER or actor.user_id != workshop.owner_id:
            raise PermissionDeniedError("Only the workshop owner can manage quotes.")
        return workshop

    @staticmethod
    def _require_open(quote: Quote, booking) -> None:
        if quote.status != QuoteStatus.PENDING or booking.quote_id != quote.id:
            raise InvalidTransitionError(
                quote.status.value, "withdrawn/rejected", "quote is no longer open"
            )
