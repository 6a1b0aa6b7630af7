"""JSON API over the engines.

The caller identifies itself with ``X-User-Id`` and ``X-User-Role``
headers; authentication belongs to whatever sits in front of this app.
"""

from __future__ import annotations

import logging

from flask import Flask, g, jsonify, request

from .config import AppConfig
from .container import Container
from .domain import Actor, BookingStatus, RefundStatus
from .errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    UpstreamUnavailableError,
    ValidationError,
    WorkshopDeskError,
)
from .reports import wallet_summary, workshop_stats
from .serializers import (
    bank_account_json,
    booking_json,
    money_json,
    notification_json,
    payment_json,
    payout_json,
    quote_json,
    refund_json,
    review_json,
    vehicle_json,
    workshop_json,
)
from .services.quote_service import QuoteLineInput
from .services.vehicle_service import EDITABLE_FIELDS

logger = logging.getLogger(__name__)

STATUS_CODES = [
    (ValidationError, 400),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (InvalidTransitionError, 409),
    (ConflictError, 409),
    (UpstreamUnavailableError, 503),
]


def _status_for(e: WorkshopDeskError) -> int:
    for cls, code in STATUS_CODES:
        if isinstance(e, cls):
            return code
    return 500


def _actor() -> Actor:
    user_id = request.headers.get("X-User-Id", "").strip()
    role = request.headers.get("X-User-Role", "").strip().lower()
    if not user_id or role not in {"customer", "owner"}:
        raise PermissionDeniedError("X-User-Id and X-User-Role (customer or owner) headers are required.")
    return Actor(user_id=user_id, role=role)


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def _field(data: dict, name: str):
    value = data.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{name} is required.")
    return value


def _version(data: dict) -> int | None:
    value = data.get("expectedVersion")
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("expectedVersion must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError("expectedVersion must be an integer.") from e


def create_app(c: Container, cfg: AppConfig | None = None) -> Flask:
    app = Flask(__name__)
    app.secret_key = cfg.web.secret_key if cfg else "change-this-secret-key-in-production"
    app.extensions["workshopdesk"] = c

    @app.errorhandler(WorkshopDeskError)
    def handle_domain_error(e: WorkshopDeskError):
        code = _status_for(e)
        if code >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, e)
        else:
            logger.warning("%s %s refused (%s): %s", request.method, request.path, e.kind, e)
        return jsonify({"error": e.kind, "message": str(e)}), code

    @app.before_request
    def load_actor():
        g.actor = None
        if request.endpoint not in {None, "health", "workshops_list"}:
            g.actor = _actor()

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    # workshops

    @app.route("/workshops")
    def workshops_list():
        limit = request.args.get("limit", 50, type=int)
        with c.db.session() as conn:
            rows = c.repos.workshop.list(conn, limit=limit)
        return jsonify([workshop_json(w) for w in rows])

    @app.route("/workshops/<workshop_id>/bookings")
    def workshop_bookings(workshop_id):
        view = request.args.get("view", "all")
        with c.db.session() as conn:
            _require_workshop_owner(conn, workshop_id)
            items = c.bookings.list_bookings(conn, workshop_id=workshop_id, view=view)
        return jsonify([booking_json(i.booking, i.display_status) for i in items])

    @app.route("/workshops/<workshop_id>/refunds")
    def workshop_refunds(workshop_id):
        with c.db.session() as conn:
            _require_workshop_owner(conn, workshop_id)
            rows = c.refunds.list_for_workshop(conn, workshop_id)
        return jsonify([refund_json(r) for r in rows])

    @app.route("/workshops/<workshop_id>/reviews")
    def workshop_reviews(workshop_id):
        with c.db.session() as conn:
            c.bookings.get_workshop(conn, workshop_id)
            rows = c.reviews.list_for_workshop(conn, workshop_id)
        return jsonify([review_json(r) for r in rows])

    @app.route("/workshops/<workshop_id>/wallet")
    def workshop_wallet(workshop_id):
        with c.db.session() as conn:
            _require_workshop_owner(conn, workshop_id)
            report = wallet_summary(conn, workshop_id, booking_repo=c.repos.booking, refund_repo=c.repos.refund)
        return jsonify(money_json(report))

    @app.route("/workshops/<workshop_id>/stats")
    def workshop_report(workshop_id):
        with c.db.session() as conn:
            _require_workshop_owner(conn, workshop_id)
            report = workshop_stats(conn, workshop_id, booking_repo=c.repos.booking, review_repo=c.repos.review)
        return jsonify(report)

    def _require_workshop_owner(conn, workshop_id):
        workshop = c.bookings.get_workshop(conn, workshop_id)
        if g.actor.role != "owner" or g.actor.user_id != workshop.owner_id:
            raise PermissionDeniedError("Only the workshop owner can see this.")
        return workshop

    # payouts

    @app.route("/owner/bank-account", methods=["GET"])
    def bank_account_get():
        with c.db.session() as conn:
            account = c.payouts.get_bank_account(conn, actor=g.actor)
        return jsonify(bank_account_json(account))

    @app.route("/owner/bank-account", methods=["PUT"])
    def bank_account_save():
        data = _body()
        with c.db.transaction() as conn:
            account = c.payouts.save_bank_account(
                conn,
                actor=g.actor,
                bank_name=str(_field(data, "bankName")),
                account_holder=str(_field(data, "accountHolder")),
                account_number=str(_field(data, "accountNumber")),
            )
        return jsonify(bank_account_json(account))

    @app.route("/workshops/<workshop_id>/payouts", methods=["GET"])
    def payouts_list(workshop_id):
        with c.db.session() as conn:
            rows = c.payouts.list_payouts(conn, workshop_id, actor=g.actor)
            summary = c.payouts.payout_summary(conn, workshop_id, actor=g.actor)
        return jsonify({"summary": money_json(summary), "payouts": [payout_json(p) for p in rows]})

    @app.route("/workshops/<workshop_id>/payouts", methods=["POST"])
    def payouts_request(workshop_id):
        data = _body()
        with c.db.transaction() as conn:
            p = c.payouts.request_withdrawal(conn, workshop_id, actor=g.actor, amount=_field(data, "amount"))
        return jsonify(payout_json(p)), 201

    # bookings

    @app.route("/bookings", methods=["GET"])
    def bookings_list():
        view = request.args.get("view", "all")
        with c.db.session() as conn:
            items = c.bookings.list_bookings(conn, customer_id=g.actor.user_id, view=view)
        return jsonify([booking_json(i.booking, i.display_status) for i in items])

    @app.route("/bookings", methods=["POST"])
    def bookings_create():
        data = _body()
        services = data.get("services") or []
        if not isinstance(services, list):
            raise ValidationError("services must be a list.")
        with c.db.transaction() as conn:
            b = c.bookings.create_booking(
                conn,
                actor=g.actor,
                workshop_id=_field(data, "workshopId"),
                vehicle_name=_field(data, "vehicleName"),
                vehicle_plate=data.get("vehiclePlate"),
                service_type=_field(data, "serviceType"),
                services=[str(s) for s in services],
                date=_field(data, "date"),
                time=_field(data, "time"),
                customer_name=data.get("customerName") or "",
            )
        return jsonify(booking_json(b)), 201

    @app.route("/bookings/<booking_id>")
    def bookings_get(booking_id):
        with c.db.session() as conn:
            b = c.bookings.get_booking(conn, booking_id)
            c.bookings.require_party(conn, b, g.actor)
        return jsonify(booking_json(b))

    @app.route("/bookings/<booking_id>/status", methods=["POST"])
    def bookings_status(booking_id):
        data = _body()
        try:
            status = BookingStatus(_field(data, "status"))
        except ValueError as e:
            raise ValidationError(f"Unknown booking status: {data.get('status')}") from e
        expected = _version(data)
        with c.db.transaction() as conn:
            b = c.bookings.update_status(
                conn,
                booking_id,
                status,
                actor=g.actor,
                expected_version=expected,
            )
        return jsonify(booking_json(b))

    @app.route("/bookings/<booking_id>/cancel", methods=["POST"])
    def bookings_cancel(booking_id):
        expected = _version(_body())
        with c.db.transaction() as conn:
            b = c.bookings.cancel_booking(conn, booking_id, actor=g.actor, expected_version=expected)
        return jsonify(booking_json(b))

    @app.route("/bookings/<booking_id>/pay", methods=["POST"])
    def bookings_pay(booking_id):
        data = _body()
        with c.db.transaction() as conn:
            out = c.payments.pay_for_booking(conn, booking_id, actor=g.actor, details=data)
        body = {
            "status": out.result.status,
            "transactionId": out.result.transaction_id,
            "error": out.result.error,
            "booking": booking_json(out.booking),
        }
        return jsonify(body), (200 if out.result.status == "SUCCESS" else 402)

    @app.route("/bookings/<booking_id>/payments")
    def bookings_payments(booking_id):
        with c.db.session() as conn:
            c.bookings.require_party(conn, c.bookings.get_booking(conn, booking_id), g.actor)
            rows = c.payments.list_payments(conn, booking_id)
        return jsonify([payment_json(p) for p in rows])

    # quotes

    @app.route("/bookings/<booking_id>/quotes", methods=["GET"])
    def quotes_list(booking_id):
        with c.db.session() as conn:
            c.bookings.require_party(conn, c.bookings.get_booking(conn, booking_id), g.actor)
            rows = c.quotes.list_for_booking(conn, booking_id)
        return jsonify([quote_json(q) for q in rows])

    @app.route("/bookings/<booking_id>/quotes", methods=["POST"])
    def quotes_create(booking_id):
        data = _body()
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list) or not all(isinstance(i, dict) for i in raw_items):
            raise ValidationError("items must be a list of {name, price} objects.")
        items = [QuoteLineInput(name=str(i.get("name") or ""), price=i.get("price")) for i in raw_items]
        with c.db.transaction() as conn:
            q = c.quotes.create_quote(
                conn,
                actor=g.actor,
                booking_id=booking_id,
                items=items,
                labor=data.get("labor", 0),
                diagnosis=data.get("diagnosis") or None,
                note=data.get("note"),
            )
        return jsonify(quote_json(q)), 201

    @app.route("/quotes/<quote_id>")
    def quotes_get(quote_id):
        with c.db.session() as conn:
            q = c.quotes.get_quote(conn, quote_id)
            c.bookings.require_party(conn, c.bookings.get_booking(conn, q.booking_id), g.actor)
        return jsonify(quote_json(q))

    @app.route("/quotes/<quote_id>/withdraw", methods=["POST"])
    def quotes_withdraw(quote_id):
        with c.db.transaction() as conn:
            c.quotes.withdraw_quote(conn, quote_id, actor=g.actor)
        return "", 204

    @app.route("/quotes/<quote_id>/reject", methods=["POST"])
    def quotes_reject(quote_id):
        with c.db.transaction() as conn:
            q = c.quotes.reject_quote(conn, quote_id, actor=g.actor)
        return jsonify(quote_json(q))

    @app.route("/quotes/<quote_id>/resend", methods=["POST"])
    def quotes_resend(quote_id):
        with c.db.transaction() as conn:
            q = c.quotes.resend_quote(conn, quote_id, actor=g.actor)
        return jsonify(quote_json(q))

    # refunds

    @app.route("/refunds")
    def refunds_list():
        with c.db.session() as conn:
            rows = c.refunds.list_for_customer(conn, g.actor.user_id)
        return jsonify([refund_json(r) for r in rows])

    @app.route("/bookings/<booking_id>/refunds", methods=["POST"])
    def refunds_create(booking_id):
        data = _body()
        with c.db.transaction() as conn:
            r = c.refunds.create_refund_case(
                conn,
                actor=g.actor,
                booking_id=booking_id,
                workshop_id=data.get("workshopId"),
                amount=_field(data, "amount"),
                reason=_field(data, "reason"),
                description=data.get("description") or "",
                evidence=data.get("evidence"),
            )
        return jsonify(refund_json(r)), 201

    @app.route("/refunds/<refund_id>")
    def refunds_get(refund_id):
        with c.db.session() as conn:
            r = c.refunds.get_refund(conn, refund_id)
            c.bookings.require_party(conn, c.bookings.get_booking(conn, r.booking_id), g.actor)
        return jsonify(refund_json(r))

    @app.route("/refunds/<refund_id>/review", methods=["POST"])
    def refunds_review(refund_id):
        with c.db.transaction() as conn:
            r = c.refunds.start_review(conn, refund_id, actor=g.actor)
        return jsonify(refund_json(r))

    @app.route("/refunds/<refund_id>/resolve", methods=["POST"])
    def refunds_resolve(refund_id):
        data = _body()
        try:
            resolution = RefundStatus(_field(data, "resolution"))
        except ValueError as e:
            raise ValidationError(f"Unknown resolution: {data.get('resolution')}") from e
        with c.db.transaction() as conn:
            r = c.refunds.resolve_refund(
                conn,
                refund_id,
                actor=g.actor,
                resolution=resolution,
                shop_message=data.get("shopMessage") or "",
            )
        return jsonify(refund_json(r))

    @app.route("/refunds/<refund_id>/comments", methods=["POST"])
    def refunds_comment(refund_id):
        data = _body()
        with c.db.transaction() as conn:
            r = c.refunds.add_comment(conn, refund_id, actor=g.actor, text=_field(data, "text"))
        return jsonify(refund_json(r)), 201

    # reviews

    @app.route("/bookings/<booking_id>/review", methods=["POST"])
    def reviews_create(booking_id):
        data = _body()
        with c.db.transaction() as conn:
            r = c.reviews.create_review(
                conn,
                actor=g.actor,
                booking_id=booking_id,
                rating=_field(data, "rating"),
                pricing_rating=_field(data, "pricingRating"),
                attitude_rating=_field(data, "attitudeRating"),
                professional_rating=_field(data, "professionalRating"),
                comment=data.get("comment") or "",
                user_name=data.get("userName") or "",
            )
        return jsonify(review_json(r)), 201

    @app.route("/reviews/<review_id>/reply", methods=["POST"])
    def reviews_reply(review_id):
        data = _body()
        with c.db.transaction() as conn:
            r = c.reviews.reply_to_review(conn, review_id, actor=g.actor, reply=_field(data, "reply"))
        return jsonify(review_json(r))

    # vehicles

    @app.route("/vehicles", methods=["GET"])
    def vehicles_list():
        with c.db.session() as conn:
            rows = c.vehicles.list_vehicles(conn, g.actor.user_id)
        return jsonify([vehicle_json(v) for v in rows])

    @app.route("/vehicles", methods=["POST"])
    def vehicles_create():
        data = _body()
        with c.db.transaction() as conn:
            v = c.vehicles.add_vehicle(
                conn,
                actor=g.actor,
                name=_field(data, "name"),
                plate=_field(data, "plate"),
                brand=data.get("brand") or "",
                model=data.get("model") or "",
                year=str(data.get("year") or ""),
                capacity=data.get("capacity") or "",
                is_primary=bool(data.get("isPrimary", False)),
            )
        return jsonify(vehicle_json(v)), 201

    @app.route("/vehicles/<vehicle_id>", methods=["PATCH"])
    def vehicles_update(vehicle_id):
        data = _body()
        unknown = sorted(set(data) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Cannot edit vehicle fields: {', '.join(unknown)}")
        fields = {k: data[k] for k in EDITABLE_FIELDS if k in data}
        with c.db.transaction() as conn:
            v = c.vehicles.update_vehicle(conn, vehicle_id, actor=g.actor, **fields)
        return jsonify(vehicle_json(v))

    @app.route("/vehicles/<vehicle_id>", methods=["DELETE"])
    def vehicles_delete(vehicle_id):
        with c.db.transaction() as conn:
            c.vehicles.delete_vehicle(conn, vehicle_id, actor=g.actor)
        return "", 204

    @app.route("/vehicles/<vehicle_id>/primary", methods=["POST"])
    def vehicles_primary(vehicle_id):
        with c.db.transaction() as conn:
            v = c.vehicles.set_primary(conn, vehicle_id, actor=g.actor)
        return jsonify(vehicle_json(v))

    # notifications

    @app.route("/notifications")
    def notifications_list():
        unread = request.args.get("unread", "").lower() in {"1", "true", "yes"}
        with c.db.session() as conn:
            rows = c.repos.notification.list_for_user(
                conn, g.actor.user_id, role=g.actor.role, unread_only=unread, limit=100
            )
        return jsonify([notification_json(n) for n in rows])

    @app.route("/notifications/<notification_id>/read", methods=["POST"])
    def notifications_read(notification_id):
        with c.db.transaction() as conn:
            if not c.repos.notification.mark_read(conn, notification_id, user_id=g.actor.user_id):
                raise NotFoundError("Notification", notification_id)
        return "", 204

    @app.route("/notifications/read-all", methods=["POST"])
    def notifications_read_all():
        with c.db.transaction() as conn:
            n = c.repos.notification.mark_all_read(conn, g.actor.user_id, role=g.actor.role)
        return jsonify({"updated": n})

    return app
