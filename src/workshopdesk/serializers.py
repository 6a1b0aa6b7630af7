"""camelCase JSON shapes for the HTTP API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from .domain import (
    BankAccount,
    Booking,
    Notification,
    Payment,
    Payout,
    Quote,
    RefundCase,
    Review,
    Vehicle,
    Workshop,
)


def _num(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def workshop_json(w: Workshop) -> dict:
    return {
        "id": w.id,
        "name": w.name,
        "ownerId": w.owner_id,
        "location": w.location,
        "rating": w.rating,
        "reviews": w.reviews,
        "status": w.status,
    }


def booking_json(b: Booking, display_status: str | None = None) -> dict:
    out = {
        "id": b.id,
        "customerId": b.customer_id,
        "customerName": b.customer_name,
        "workshopId": b.workshop_id,
        "vehicleName": b.vehicle_name,
        "vehiclePlate": b.vehicle_plate,
        "serviceType": b.service_type,
        "services": list(b.services),
        "date": b.date,
        "time": b.time,
        "status": b.status.value,
        "totalAmount": _num(b.total_amount),
        "quoteId": b.quote_id,
        "createdAt": _ts(b.created_at),
        "version": b.version,
    }
    if display_status is not None:
        out["displayStatus"] = display_status
    return out


def quote_json(q: Quote) -> dict:
    return {
        "id": q.id,
        "bookingId": q.booking_id,
        "workshopId": q.workshop_id,
        "items": [{"name": i.name, "price": _num(i.price)} for i in q.items],
        "labor": _num(q.labor),
        "tax": _num(q.tax),
        "total": _num(q.total),
        "status": q.status.value,
        "diagnosis": list(q.diagnosis),
        "note": q.note,
        "createdAt": _ts(q.created_at),
        "version": q.version,
    }


def refund_json(r: RefundCase) -> dict:
    return {
        "id": r.id,
        "bookingId": r.booking_id,
        "workshopId": r.workshop_id,
        "customerId": r.customer_id,
        "amount": _num(r.amount),
        "reason": r.reason,
        "description": r.description,
        "evidence": r.evidence,
        "status": r.status.value,
        "createdAt": _ts(r.created_at),
        "timeline": [
            {
                "status": e.status.value,
                "label": e.label,
                "timestamp": _ts(e.timestamp),
                "description": e.description,
            }
            for e in r.timeline
        ],
        "comments": [
            {"id": c.id, "authorRole": c.author_role, "text": c.text, "timestamp": _ts(c.timestamp)}
            for c in r.comments
        ],
        "version": r.version,
    }


def review_json(r: Review) -> dict:
    return {
        "id": r.id,
        "userId": r.user_id,
        "userName": r.user_name,
        "workshopId": r.workshop_id,
        "bookingId": r.booking_id,
        "rating": r.rating,
        "pricingRating": r.pricing_rating,
        "attitudeRating": r.attitude_rating,
        "professionalRating": r.professional_rating,
        "comment": r.comment,
        "reply": r.reply,
        "repliedAt": _ts(r.replied_at),
        "createdAt": _ts(r.created_at),
    }


def vehicle_json(v: Vehicle) -> dict:
    return {
        "id": v.id,
        "userId": v.user_id,
        "name": v.name,
        "plate": v.plate,
        "brand": v.brand,
        "model": v.model,
        "year": v.year,
        "capacity": v.capacity,
        "isPrimary": v.is_primary,
        "createdAt": _ts(v.created_at),
    }


def payment_json(p: Payment) -> dict:
    return {
        "id": p.id,
        "bookingId": p.booking_id,
        "amount": _num(p.amount),
        "method": p.method,
        "transactionId": p.transaction_id,
        "isRefund": p.is_refund,
        "paidAt": _ts(p.paid_at),
    }


def bank_account_json(a: BankAccount | None) -> dict | None:
    if a is None:
        return None
    return {
        "bankName": a.bank_name,
        "accountHolder": a.account_holder,
        "accountNumber": a.masked_number,
        "updatedAt": _ts(a.updated_at),
    }


def payout_json(p: Payout) -> dict:
    return {
        "id": p.id,
        "workshopId": p.workshop_id,
        "amount": _num(p.amount),
        "bankName": p.bank_name,
        "accountNumber": p.account_last4,
        "status": p.status.value,
        "requestedAt": _ts(p.requested_at),
        "updatedAt": _ts(p.updated_at),
    }


def notification_json(n: Notification) -> dict:
    return {
        "id": n.id,
        "userId": n.user_id,
        "role": n.role,
        "type": n.type.value,
        "title": n.title,
        "message": n.message,
        "relatedBookingId": n.related_booking_id,
        "isRead": n.is_read,
        "createdAt": _ts(n.created_at),
    }


def money_json(report: dict) -> dict:
    return {k: (_num(v) if isinstance(v, Decimal) else v) for k, v in report.items()}
