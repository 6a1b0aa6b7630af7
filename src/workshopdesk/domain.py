from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Literal, Optional

# Malaysian Sales and Service Tax applied to quote subtotals.
SST_RATE = Decimal("0.06")
CENTS = Decimal("0.01")

Role = Literal["customer", "owner"]
CommentAuthor = Literal["user", "owner"]


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    QUOTED = "QUOTED"
    PAID = "PAID"
    REPAIRING = "REPAIRING"
    READY = "READY"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class QuoteStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class RefundStatus(str, Enum):
    REQUESTED = "Requested"
    UNDER_REVIEW = "Under Review"
    SHOP_RESPONDED = "Shop Responded"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    COMPLETED = "Completed"


class NotificationType(str, Enum):
    BOOKING = "booking"
    QUOTE = "quote"
    PAYMENT = "payment"
    REPAIR = "repair"
    PICKUP = "pickup"
    INFO = "info"


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: Role


@dataclass(frozen=True)
class Workshop:
    id: str
    name: str
    owner_id: str
    location: str = ""
    rating: float = 0.0
    reviews: int = 0
    # sum of all star ratings; rating is derived from it
    rating_total: int = 0
    status: Literal["ACTIVE", "INACTIVE"] = "ACTIVE"


@dataclass(frozen=True)
class Booking:
    id: str
    customer_id: str
    workshop_id: str
    vehicle_name: str
    service_type: str
    services: tuple[str, ...]
    date: str
    time: str
    status: BookingStatus
    created_at: datetime
    vehicle_plate: Optional[str] = None
    customer_name: str = ""
    total_amount: Optional[Decimal] = None
    quote_id: Optional[str] = None
    version: int = 1


@dataclass(frozen=True)
class QuoteItem:
    name: str
    price: Decimal


@dataclass(frozen=True)
class Quote:
    id: str
    booking_id: str
    workshop_id: str
    items: tuple[QuoteItem, ...]
    labor: Decimal
    tax: Decimal
    total: Decimal
    status: QuoteStatus
    created_at: datetime
    diagnosis: tuple[dict, ...] = ()
    note: Optional[str] = None
    version: int = 1


@dataclass(frozen=True)
class RefundTimelineEntry:
    status: RefundStatus
    label: str
    timestamp: datetime
    description: Optional[str] = None


@dataclass(frozen=True)
class RefundComment:
    id: str
    author_role: CommentAuthor
    text: str
    timestamp: datetime


@dataclass(frozen=True)
class RefundCase:
    id: str
    booking_id: str
    workshop_id: str
    customer_id: str
    amount: Decimal
    reason: str
    description: str
    status: RefundStatus
    created_at: datetime
    evidence: Optional[str] = None
    timeline: tuple[RefundTimelineEntry, ...] = ()
    comments: tuple[RefundComment, ...] = ()
    version: int = 1


@dataclass(frozen=True)
class Review:
    id: str
    user_id: str
    workshop_id: str
    booking_id: str
    rating: int
    pricing_rating: int
    attitude_rating: int
    professional_rating: int
    created_at: datetime
    user_name: str = ""
    comment: str = ""
    reply: Optional[str] = None
    replied_at: Optional[datetime] = None


@dataclass(frozen=True)
class Vehicle:
    id: str
    user_id: str
    name: str
    plate: str
    created_at: datetime
    brand: str = ""
    model: str = ""
    year: str = ""
    capacity: str = ""
    is_primary: bool = False


@dataclass(frozen=True)
class Payment:
    id: str
    booking_id: str
    amount: Decimal
    method: str
    paid_at: datetime
    transaction_id: Optional[str] = None
    is_refund: bool = False


@dataclass(frozen=True)
class Notification:
    user_id: str
    role: Role
    type: NotificationType
    title: str
    message: str
    related_booking_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    is_read: bool = False


class PayoutStatus(str, Enum):
    REQUESTED = "REQUESTED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


MALAYSIAN_BANKS = (
    "Maybank",
    "CIMB Bank",
    "Public Bank",
    "RHB Bank",
    "Hong Leong Bank",
    "AmBank",
    "UOB Malaysia",
    "Bank Islam Malaysia",
    "OCBC Bank Malaysia",
    "Alliance Bank Malaysia",
)


@dataclass(frozen=True)
class BankAccount:
    owner_id: str
    bank_name: str
    account_holder: str
    account_number: str
    updated_at: datetime

    @property
    def masked_number(self) -> str:
        return "****" + self.account_number[-4:]


@dataclass(frozen=True)
class Payout:
    id: str
    owner_id: str
    workshop_id: str
    amount: Decimal
    bank_name: str
    account_last4: str
    status: PayoutStatus
    requested_at: datetime
    updated_at: datetime
