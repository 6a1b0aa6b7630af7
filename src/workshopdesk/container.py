from __future__ import annotations

from dataclasses import dataclass

from .config import AppConfig
from .notifications import LoggingNotifier, OutboxNotifier
from .payments import build_gateway
from .services.booking_service import BookingService
from .services.payment_service import PaymentService
from .services.payout_service import PayoutService
from .services.quote_service import QuoteService
from .services.refund_service import RefundService
from .services.review_service import ReviewService
from .services.vehicle_service import VehicleService


@dataclass
class Repos:
    workshop: object
    booking: object
    quote: object
    refund: object
    review: object
    vehicle: object
    payment: object
    notification: object
    bank_account: object
    payout: object


@dataclass
class Container:
    db: object
    repos: Repos
    bookings: BookingService
    quotes: QuoteService
    refunds: RefundService
    reviews: ReviewService
    vehicles: VehicleService
    payments: PaymentService
    payouts: PayoutService


def pg_repos() -> Repos:
    from .repositories.bank_account_repo import BankAccountRepository
    from .repositories.booking_repo import BookingRepository
    from .repositories.notification_repo import NotificationRepository
    from .repositories.payment_repo import PaymentRepository
    from .repositories.payout_repo import PayoutRepository
    from .repositories.quote_repo import QuoteRepository
    from .repositories.refund_repo import RefundRepository
    from .repositories.review_repo import ReviewRepository
    from .repositories.vehicle_repo import VehicleRepository
    from .repositories.workshop_repo import WorkshopRepository

    return Repos(
        workshop=WorkshopRepository(),
        booking=BookingRepository(),
        quote=QuoteRepository(),
        refund=RefundRepository(),
        review=ReviewRepository(),
        vehicle=VehicleRepository(),
        payment=PaymentRepository(),
        notification=NotificationRepository(),
        bank_account=BankAccountRepository(),
        payout=PayoutRepository(),
    )


def memory_repos() -> Repos:
    from . import memory

    return Repos(
        workshop=memory.MemoryWorkshopRepository(),
        booking=memory.MemoryBookingRepository(),
        quote=memory.MemoryQuoteRepository(),
        refund=memory.MemoryRefundRepository(),
        review=memory.MemoryReviewRepository(),
        vehicle=memory.MemoryVehicleRepository(),
        payment=memory.MemoryPaymentRepository(),
        notification=memory.MemoryNotificationRepository(),
        bank_account=memory.MemoryBankAccountRepository(),
        payout=memory.MemoryPayoutRepository(),
    )


def build(db, repos: Repos, *, gateway, notifier=None) -> Container:
    notifier = notifier or OutboxNotifier(repos.notification)
    bookings = BookingService(
        booking_repo=repos.booking,
        workshop_repo=repos.workshop,
        quote_repo=repos.quote,
        refund_repo=repos.refund,
        notifier=notifier,
    )
    return Container(
        db=db,
        repos=repos,
        bookings=bookings,
        quotes=QuoteService(bookings=bookings, quote_repo=repos.quote),
        refunds=RefundService(bookings=bookings, refund_repo=repos.refund, payment_repo=repos.payment),
        reviews=ReviewService(bookings=bookings, review_repo=repos.review, workshop_repo=repos.workshop),
        vehicles=VehicleService(vehicle_repo=repos.vehicle),
        payments=PaymentService(bookings=bookings, payment_repo=repos.payment, gateway=gateway),
        payouts=PayoutService(
            bookings=bookings,
            bank_account_repo=repos.bank_account,
            payout_repo=repos.payout,
            booking_repo=repos.booking,
            refund_repo=repos.refund,
        ),
    )


def build_from_config(cfg: AppConfig, *, log_only_notifications: bool = False) -> Container:
    """PostgreSQL when ``[db]`` is configured, the in-memory store otherwise."""
    if cfg.db is not None:
        from .db import Db

        db, repos = Db(cfg.db), pg_repos()
    else:
        from .memory import MemoryDb

        db, repos = MemoryDb(), memory_repos()

    if log_only_notifications:
        notifier = LoggingNotifier()
    else:
        notifier = OutboxNotifier(
            repos.notification, dedupe_window_seconds=cfg.notifications.dedupe_window_seconds
        )
    return build(db, repos, gateway=build_gateway(cfg.payments), notifier=notifier)
