from __future__ import annotations

import logging

from .container import Container
from .domain import MALAYSIAN_BANKS, Actor, RefundStatus
from .errors import ValidationError, WorkshopDeskError
from .importers import ImportFileError, import_vehicles_csv, import_workshops_json
from .reports import wallet_summary, workshop_stats
from .services.quote_service import QuoteLineInput

logger = logging.getLogger(__name__)


def _prompt(msg: str) -> str:
    return input(msg).strip()


def _print_bookings(items) -> None:
    if not items:
        print("(no bookings)")
    for it in items:
        b = it.booking
        total = f"RM {b.total_amount:.2f}" if b.total_amount is not None else "-"
        print(
            f"{b.id} [{it.display_status}] {b.vehicle_name} {b.service_type} "
            f"{b.date} {b.time} total={total} v{b.version}"
        )


def _customer_menu(c: Container, actor: Actor) -> bool:
    print("\n=== WorkshopDesk (customer) ===")
    print("1) List workshops")
    print("2) Book a service")
    print("3) My active bookings")
    print("4) My booking history")
    print("5) Accept quote")
    print("6) Reject quote")
    print("7) Pay for booking")
    print("8) Cancel booking")
    print("9) Confirm pickup")
    print("10) Request refund")
    print("11) Comment on refund")
    print("12) Review a booking")
    print("13) My vehicles")
    print("14) Add vehicle")
    print("15) Set primary vehicle")
    print("16) Notifications")
    print("0) Exit")

    choice = _prompt("> ")
    if choice == "0":
        return False

    elif choice == "1":
        with c.db.session() as conn:
            rows = c.repos.workshop.list(conn, limit=50)
        for w in rows:
            print(f"{w.id} {w.name} ({w.location}) rating={w.rating} reviews={w.reviews}")

    elif choice == "2":
        workshop_id = _prompt("workshop id: ")
        vehicle_name = _prompt("vehicle: ")
        plate = _prompt("plate (optional): ") or None
        service_type = _prompt("service type: ")
        services = [s for s in _prompt("services (comma separated): ").split(",") if s.strip()]
        date = _prompt("date (YYYY-MM-DD): ")
        time = _prompt("time (HH:MM): ")
        with c.db.transaction() as conn:
            b = c.bookings.create_booking(
                conn,
                actor=actor,
                workshop_id=workshop_id,
                vehicle_name=vehicle_name,
                vehicle_plate=plate,
                service_type=service_type,
                services=services,
                date=date,
                time=time,
            )
        print(f"Created booking {b.id} status={b.status.value}")

    elif choice in {"3", "4"}:
        view = "active" if choice == "3" else "history"
        with c.db.session() as conn:
            items = c.bookings.list_bookings(conn, customer_id=actor.user_id, view=view)
        _print_bookings(items)

    elif choice == "5":
        booking_id = _prompt("booking id: ")
        with c.db.transaction() as conn:
            b = c.bookings.accept_quote(conn, booking_id, actor=actor)
        print(f"Booking {b.id} is now {b.status.value}")

    elif choice == "6":
        booking_id = _prompt("booking id: ")
        with c.db.transaction() as conn:
            b = c.bookings.get_booking(conn, booking_id)
            if not b.quote_id:
                raise ValidationError("That booking has no open quote.")
            q = c.quotes.reject_quote(conn, b.quote_id, actor=actor)
        print(f"Quote {q.id} rejected")

    elif choice == "7":
        booking_id = _prompt("booking id: ")
        method = _prompt("method (card/fpx/ewallet): ").lower()
        details: dict = {"method": method}
        if method == "card":
            details["card"] = {"number": _prompt("card number: ")}
        elif method == "fpx":
            details["fpx"] = {"bankCode": _prompt("bank code: ")}
        elif method == "ewallet":
            details["ewallet"] = {"provider": _prompt("provider: ")}
        with c.db.transaction() as conn:
            out = c.payments.pay_for_booking(conn, booking_id, actor=actor, details=details)
        print(f"Payment {out.result.transaction_id}: {out.result.status} {out.result.error or ''}".rstrip())

    elif choice == "8":
        booking_id = _prompt("booking id: ")
        with c.db.transaction() as conn:
            b = c.bookings.cancel_booking(conn, booking_id, actor=actor)
        print(f"Booking {b.id} cancelled")

    elif choice == "9":
        booking_id = _prompt("booking id: ")
        with c.db.transaction() as conn:
            b = c.bookings.confirm_pickup(conn, booking_id, actor=actor)
        print(f"Booking {b.id} is now {b.status.value}")

    elif choice == "10":
        booking_id = _prompt("booking id: ")
        amount = _prompt("amount (RM): ")
        reason = _prompt("reason: ")
        description = _prompt("description: ")
        with c.db.transaction() as conn:
            r = c.refunds.create_refund_case(
                conn,
                actor=actor,
                booking_id=booking_id,
                amount=amount,
                reason=reason,
                description=description,
            )
        print(f"Refund case {r.id} {r.status.value}")

    elif choice == "11":
        refund_id = _prompt("refund case id: ")
        text = _prompt("comment: ")
        with c.db.transaction() as conn:
            c.refunds.add_comment(conn, refund_id, actor=actor, text=text)
        print("Comment added")

    elif choice == "12":
        booking_id = _prompt("booking id: ")
        ratings = [_prompt(f"{label} (1-5): ") for label in ("overall", "pricing", "attitude", "professional")]
        comment = _prompt("comment (optional): ")
        with c.db.transaction() as conn:
            r = c.reviews.create_review(
                conn,
                actor=actor,
                booking_id=booking_id,
                rating=ratings[0],
                pricing_rating=ratings[1],
                attitude_rating=ratings[2],
                professional_rating=ratings[3],
                comment=comment,
            )
        print(f"Review {r.id} saved")

    elif choice == "13":
        with c.db.session() as conn:
            rows = c.vehicles.list_vehicles(conn, actor.user_id)
        for v in rows:
            star = "*" if v.is_primary else " "
            print(f"{star} {v.id} {v.name} {v.plate} {v.brand} {v.model} {v.year}".rstrip())

    elif choice == "14":
        name = _prompt("name: ")
        plate = _prompt("plate: ")
        brand = _prompt("brand (optional): ")
        model = _prompt("model (optional): ")
        year = _prompt("year (optional): ")
        primary = _prompt("make primary? (y/n): ").lower() in {"y", "yes"}
        with c.db.transaction() as conn:
            v = c.vehicles.add_vehicle(
                conn, actor=actor, name=name, plate=plate, brand=brand, model=model, year=year, is_primary=primary
            )
        print(f"Vehicle {v.id} added primary={v.is_primary}")

    elif choice == "15":
        vehicle_id = _prompt("vehicle id: ")
        with c.db.transaction() as conn:
            c.vehicles.set_primary(conn, vehicle_id, actor=actor)
        print("Primary vehicle updated")

    elif choice == "16":
        _notifications(c, actor)

    else:
        print("Unknown choice.")
    return True


def _owner_menu(c: Container, actor: Actor) -> bool:
    print("\n=== WorkshopDesk (owner) ===")
    print("1) Job list (active)")
    print("2) Job history")
    print("3) Accept booking")
    print("4) Reject booking")
    print("5) Send quote")
    print("6) Withdraw quote")
    print("7) Start repair")
    print("8) Mark ready")
    print("9) Refund cases")
    print("10) Review refund case")
    print("11) Resolve refund case")
    print("12) Reply to review")
    print("13) Wallet + stats")
    print("14) Import workshops JSON")
    print("15) Import vehicles CSV")
    print("16) Notifications")
    print("17) Payout bank account")
    print("18) Withdraw earnings")
    print("19) Payout history")
    print("0) Exit")

    choice = _prompt("> ")
    if choice == "0":
        return False

    elif choice in {"1", "2"}:
        workshop_id = _prompt("workshop id: ")
        view = "active" if choice == "1" else "history"
        with c.db.session() as conn:
            items = c.bookings.list_bookings(conn, workshop_id=workshop_id, view=view)
        _print_bookings(items)

    elif choice in {"3", "4", "7", "8"}:
        booking_id = _prompt("booking id: ")
        op = {
            "3": c.bookings.accept_booking,
            "4": c.bookings.reject_booking,
            "7": c.bookings.start_repair,
            "8": c.bookings.mark_ready,
        }[choice]
        with c.db.transaction() as conn:
            b = op(conn, booking_id, actor=actor)
        print(f"Booking {b.id} is now {b.status.value}")

    elif choice == "5":
        booking_id = _prompt("booking id: ")
        items: list[QuoteLineInput] = []
        while True:
            add = _prompt("Add item? (y/n): ").lower()
            if add != "y":
                break
            name = _prompt("  item: ")
            price = _prompt("  price (RM): ")
            items.append(QuoteLineInput(name=name, price=price))
        labor = _prompt("labor (RM): ") or "0"
        note = _prompt("note (optional): ") or None
        with c.db.transaction() as conn:
            q = c.quotes.create_quote(conn, actor=actor, booking_id=booking_id, items=items, labor=labor, note=note)
        print(f"Quote {q.id}: tax=RM {q.tax:.2f} total=RM {q.total:.2f}")

    elif choice == "6":
        quote_id = _prompt("quote id: ")
        with c.db.transaction() as conn:
            c.quotes.withdraw_quote(conn, quote_id, actor=actor)
        print("Quote withdrawn")

    elif choice == "9":
        workshop_id = _prompt("workshop id: ")
        with c.db.session() as conn:
            rows = c.refunds.list_for_workshop(conn, workshop_id)
        for r in rows:
            print(f"{r.id} booking={r.booking_id} RM {r.amount:.2f} [{r.status.value}] {r.reason}")

    elif choice == "10":
        refund_id = _prompt("refund case id: ")
        with c.db.transaction() as conn:
            r = c.refunds.start_review(conn, refund_id, actor=actor)
        print(f"Refund case {r.id} {r.status.value}")

    elif choice == "11":
        refund_id = _prompt("refund case id: ")
        decision = _prompt("approve or reject? (a/r): ").lower()
        resolution = RefundStatus.APPROVED if decision.startswith("a") else RefundStatus.REJECTED
        message = _prompt("message to customer: ")
        with c.db.transaction() as conn:
            r = c.refunds.resolve_refund(conn, refund_id, actor=actor, resolution=resolution, shop_message=message)
        print(f"Refund case {r.id} {r.status.value}")

    elif choice == "12":
        review_id = _prompt("review id: ")
        reply = _prompt("reply: ")
        with c.db.transaction() as conn:
            c.reviews.reply_to_review(conn, review_id, actor=actor, reply=reply)
        print("Reply posted")

    elif choice == "13":
        workshop_id = _prompt("workshop id: ")
        with c.db.session() as conn:
            wallet = wallet_summary(conn, workshop_id, booking_repo=c.repos.booking, refund_repo=c.repos.refund)
            stats = workshop_stats(conn, workshop_id, booking_repo=c.repos.booking, review_repo=c.repos.review)
        print(
            f"available=RM {wallet['available']:.2f} escrow=RM {wallet['escrow']:.2f} "
            f"refunded=RM {wallet['refunded']:.2f}"
        )
        print(f"bookings={stats['bookings_total']} reviews={stats['reviews_count']} rating={stats['rating']}")
        for status, n in stats["bookings_by_status"].items():
            if n:
                print(f"  {status}: {n}")

    elif choice == "14":
        path = _prompt("path to workshops.json: ")
        with c.db.transaction() as conn:
            n = import_workshops_json(conn, path, c.repos.workshop)
        print(f"Imported/updated workshops: {n}")

    elif choice == "15":
        path = _prompt("path to vehicles.csv: ")
        with c.db.transaction() as conn:
            n = import_vehicles_csv(conn, path, c.vehicles)
        print(f"Imported vehicles: {n}")

    elif choice == "16":
        _notifications(c, actor)

    elif choice == "17":
        for i, bank in enumerate(MALAYSIAN_BANKS, start=1):
            print(f"  {i}) {bank}")
        pick = _prompt("bank number: ")
        if not pick.isdigit() or not 1 <= int(pick) <= len(MALAYSIAN_BANKS):
            print("[INPUT ERROR] Pick a bank from the list.")
            return True
        holder = _prompt("account holder: ")
        number = _prompt("account number: ")
        with c.db.transaction() as conn:
            a = c.payouts.save_bank_account(
                conn,
                actor=actor,
                bank_name=MALAYSIAN_BANKS[int(pick) - 1],
                account_holder=holder,
                account_number=number,
            )
        print(f"Payouts go to {a.bank_name} {a.masked_number}")

    elif choice == "18":
        workshop_id = _prompt("workshop id: ")
        amount = _prompt("amount (RM): ")
        with c.db.transaction() as conn:
            p = c.payouts.request_withdrawal(conn, workshop_id, actor=actor, amount=amount)
        print(f"Withdrawal {p.id} of RM {p.amount:.2f} to {p.bank_name} ****{p.account_last4} requested")

    elif choice == "19":
        workshop_id = _prompt("workshop id: ")
        with c.db.session() as conn:
            summary = c.payouts.payout_summary(conn, workshop_id, actor=actor)
            rows = c.payouts.list_payouts(conn, workshop_id, actor=actor)
        print(
            f"available=RM {summary['available']:.2f} pending=RM {summary['pending']:.2f} "
            f"withdrawn=RM {summary['withdrawn']:.2f}"
        )
        for p in rows:
            print(f"{p.id} {p.requested_at:%Y-%m-%d %H:%M} RM {p.amount:.2f} [{p.status.value}] {p.bank_name}")

    else:
        print("Unknown choice.")
    return True


def _notifications(c: Container, actor: Actor) -> None:
    with c.db.transaction() as conn:
        rows = c.repos.notification.list_for_user(conn, actor.user_id, role=actor.role, limit=20)
        c.repos.notification.mark_all_read(conn, actor.user_id, role=actor.role)
    if not rows:
        print("(no notifications)")
    for n in rows:
        flag = " " if n.is_read else "*"
        print(f"{flag} {n.created_at:%Y-%m-%d %H:%M} [{n.type.value}] {n.title}: {n.message}")


def run_cli(c: Container) -> None:
    user_id = _prompt("user id: ")
    role = _prompt("role (customer/owner): ").lower()
    if role not in {"customer", "owner"} or not user_id:
        print("[INPUT ERROR] Enter a user id and a role of customer or owner.")
        return
    actor = Actor(user_id=user_id, role=role)
    menu = _customer_menu if role == "customer" else _owner_menu

    while True:
        try:
            if not menu(c, actor):
                return
        except ValidationError as e:
            print(f"[INPUT ERROR] {e}")
        except ImportFileError as e:
            print(f"[IMPORT ERROR] {e}")
        except WorkshopDeskError as e:
            logger.warning("%s refused: %s", e.kind, e)
            print(f"[{e.kind.upper()}] {e}")
        except ValueError as e:
            print(f"[VALUE ERROR] {e}")
        except Exception as e:
            logger.exception("Unexpected CLI failure")
            print(f"[ERROR] {type(e).__name__}: {e}")
