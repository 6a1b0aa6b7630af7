"""Notification triggers.

The functions in this module are pure: given the entities involved in a
transition they return the notifications it produces, in the order they
should be delivered. Engines hand them to a notifier object, which only
needs a ``notify(conn, notification)`` method.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from .domain import (
    Booking,
    BookingStatus,
    Notification,
    NotificationType,
    Quote,
    Workshop,
)

logger = logging.getLogger(__name__)


def _rm(amount: Optional[Decimal]) -> str:
    return f"RM {(amount or Decimal('0')):.2f}"


def _customer(booking: Booking, type_: NotificationType, title: str, message: str) -> Notification:
    return Notification(
        user_id=booking.customer_id,
        role="customer",
        type=type_,
        title=title,
        message=message,
        related_booking_id=booking.id,
    )


def _owner(workshop: Workshop, booking: Booking, type_: NotificationType, title: str, message: str) -> Notification:
    return Notification(
        user_id=workshop.owner_id,
        role="owner",
        type=type_,
        title=title,
        message=message,
        related_booking_id=booking.id,
    )


def booking_created(booking: Booking, workshop: Workshop) -> list[Notification]:
    return [
        _customer(
            booking,
            NotificationType.BOOKING,
            "Booking Confirmed",
            f"Your booking #{booking.id} with {workshop.name} is being reviewed.",
        ),
        _owner(
            workshop,
            booking,
            NotificationType.BOOKING,
            "New Job Request",
            f"You have a new booking request for {booking.vehicle_name}.",
        ),
    ]


def booking_cancelled(booking: Booking, workshop: Workshop) -> list[Notification]:
    who = booking.customer_name or "The customer"
    return [
        _owner(
            workshop,
            booking,
            NotificationType.BOOKING,
            "Booking Cancelled",
            f"{who} has cancelled their booking for {booking.vehicle_name}.",
        )
    ]


def quote_created(booking: Booking, quote: Quote, workshop: Workshop) -> list[Notification]:
    return [
        _customer(
            booking,
            NotificationType.QUOTE,
            "New Quote Received",
            f"{workshop.name} has submitted a quote for {_rm(quote.total)}.",
        )
    ]


def quote_resent(booking: Booking, quote: Quote, workshop: Workshop) -> list[Notification]:
    return [
        _customer(
            booking,
            NotificationType.QUOTE,
            "Quote Resubmitted",
            f"{workshop.name} has resubmitted their quote for {_rm(quote.total)}.",
        )
    ]


def quote_withdrawn(booking: Booking, workshop: Workshop) -> list[Notification]:
    return [
        _customer(
            booking,
            NotificationType.QUOTE,
            "Quote Withdrawn",
            f"{workshop.name} has withdrawn their quote. Your booking is back to pending.",
        )
    ]


def quote_rejected(booking: Booking, workshop: Workshop) -> list[Notification]:
    who = booking.customer_name or "The customer"
    return [
        _owner(
            workshop,
            booking,
            NotificationType.BOOKING,
            "Quote Rejected",
            f"{who} has rejected your quote for {booking.vehicle_name}.",
        )
    ]


def status_changed(
    booking: Booking,
    previous: BookingStatus,
    new: BookingStatus,
    workshop: Workshop,
) -> list[Notification]:
    """Notifications for a plain status move; ``booking`` is the updated record."""
    who = booking.customer_name or "The customer"
    amount = _rm(booking.total_amount)

    if new == BookingStatus.READY:
        return [
            _customer(
                booking,
                NotificationType.PICKUP,
                "Vehicle Ready",
                f"Your {booking.vehicle_name} is ready for pickup!",
            )
        ]
    if new == BookingStatus.REPAIRING:
        return [
            _customer(
                booking,
                NotificationType.REPAIR,
                "Repair Started",
                f"Work has started on your {booking.vehicle_name}.",
            )
        ]
    if new == BookingStatus.PAID:
        return [
            _customer(
                booking,
                NotificationType.PAYMENT,
                "Payment Successful",
                f"Payment of {amount} confirmed for {booking.id}.",
            ),
            _owner(
                workshop,
                booking,
                NotificationType.PAYMENT,
                "Payment Received",
                f"{who} has paid {amount} for {booking.vehicle_name}.",
            ),
        ]
    if new == BookingStatus.ACCEPTED and previous == BookingStatus.QUOTED:
        return [
            _customer(
                booking,
                NotificationType.BOOKING,
                "Quote Accepted",
                f"You have accepted the quote for {booking.id}.",
            ),
            _owner(
                workshop,
                booking,
                NotificationType.BOOKING,
                "Quote Approved",
                f"{who} has approved your quote for {amount}.",
            ),
        ]
    if new == BookingStatus.COMPLETED:
        return [
            _owner(
                workshop,
                booking,
                NotificationType.PAYMENT,
                "Payment Released",
                f"Funds for {booking.vehicle_name} ({amount}) have been released to your available balance.",
            )
        ]
    return []


def dedupe_key(n: Notification, window_seconds: int) -> Optional[str]:
    if window_seconds <= 0:
        return None
    bucket = int(n.created_at.timestamp()) // window_seconds
    return f"{n.user_id}:{n.type.value}:{n.related_booking_id or '-'}:{bucket}"


class LoggingNotifier:
    def notify(self, conn, notification: Notification) -> None:
        logger.info(
            "notify user=%s role=%s type=%s booking=%s title=%r",
            notification.user_id,
            notification.role,
            notification.type.value,
            notification.related_booking_id,
            notification.title,
        )


class OutboxNotifier:
    """Stores notifications in the same transaction as the state change."""

    def __init__(self, notification_repo, *, dedupe_window_seconds: int = 0) -> None:
        self.notification_repo = notification_repo
        self.dedupe_window_seconds = dedupe_window_seconds

    def notify(self, conn, notification: Notification) -> None:
        key = dedupe_key(notification, self.dedupe_window_seconds)
        stored = self.notification_repo.create(conn, notification=notification, dedupe_key=key)
        if not stored:
            logger.debug("Dropped duplicate notification %s", key)
