from __future__ import annotations

from decimal import Decimal

import pytest

from workshopdesk.domain import BookingStatus, PayoutStatus
from workshopdesk.errors import InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError

P = PayoutStatus


@pytest.fixture
def bank(desk, conn, owner):
    return desk.payouts.save_bank_account(
        conn, actor=owner, bank_name="Maybank", account_holder="Ah Seng", account_number="5140-1234-5678"
    )


@pytest.fixture
def earned(booking_at):
    # one picked-up job releases RM 84.80
    return booking_at(BookingStatus.COMPLETED)


def test_save_bank_account(desk, conn, owner, bank):
    assert bank.account_number == "514012345678"
    assert bank.masked_number == "****5678"
    assert desk.payouts.get_bank_account(conn, actor=owner) == bank

    moved = desk.payouts.save_bank_account(
        conn, actor=owner, bank_name="CIMB Bank", account_holder="Ah Seng", account_number="80012345"
    )
    assert desk.payouts.get_bank_account(conn, actor=owner).bank_name == moved.bank_name == "CIMB Bank"


@pytest.mark.parametrize(
    "bank_name,holder,number",
    [("Bank of Nowhere", "Ah Seng", "12345678"), ("Maybank", " ", "12345678"), ("Maybank", "Ah Seng", "12ab")],
)
def test_bank_account_validation(desk, conn, owner, bank_name, holder, number):
    with pytest.raises(ValidationError):
        desk.payouts.save_bank_account(
            conn, actor=owner, bank_name=bank_name, account_holder=holder, account_number=number
        )


def test_customers_have_no_payout_account(desk, conn, customer):
    with pytest.raises(PermissionDeniedError):
        desk.payouts.save_bank_account(
            conn, actor=customer, bank_name="Maybank", account_holder="Aina", account_number="12345678"
        )


def test_withdrawal_needs_bank_account(desk, conn, owner, earned):
    with pytest.raises(ValidationError, match="bank account"):
        desk.payouts.request_withdrawal(conn, "w1", actor=owner, amount=10)


@pytest.mark.parametrize("amount", [0, -5, "abc"])
def test_withdrawal_amount_must_be_positive(desk, conn, owner, bank, earned, amount):
    with pytest.raises(ValidationError):
        desk.payouts.request_withdrawal(conn, "w1", actor=owner, amount=amount)


def test_withdrawal_limited_to_available_balance(desk, conn, owner, bank, earned, booking_at):
    booking_at(BookingStatus.READY)  # still in escrow

    with pytest.raises(ValidationError, match="Insufficient"):
        desk.payouts.request_withdrawal(conn, "w1", actor=owner, amount="84.81")

    p = desk.payouts.request_withdrawal(conn, "w1", actor=owner, amount="50")
    assert (p.status, p.amount, p.bank_name, p.account_last4) == (P.REQUESTED, Decimal("50.00"), "Maybank", "5678")

    with pytest.raises(ValidationError, match="Insufficient"):
        desk.payouts.request_withdrawal(conn, "w1", actor=owner, amount=40)

    summary = desk.payouts.payout_summary(conn, "w1", actor=owner)
    assert summary["earned"] == Decimal("84.80")
    assert summary["available"] == Decimal("34.80")
    assert summary["pending"] == Decimal("50.00")
    assert summary["withdrawn"] == Decimal("0.00")


def test_settle_moves_payouts_to_completed(desk, conn, owner, bank, earned):
    p = desk.payouts.request_withdrawal(conn, "w1", actor=owner, amount="84.80")

    assert [x.status for x in desk.payouts.settle_payouts(conn)] == [P.PROCESSING]
    assert [x.status for x in desk.payouts.settle_payouts(conn)] == [P.COMPLETED]
    assert desk.payouts.settle_payouts(conn) == []

    summary = desk.payouts.payout_summary(conn, "w1", actor=owner)
    assert (summary["available"], summary["pending"], summary["withdrawn"]) == (
        Decimal("0.00"),
        Decimal("0.00"),
        Decimal("84.80"),
    )
    assert [x.id for x in desk.payouts.list_payouts(conn, "w1", actor=owner)] == [p.id]


def test_failed_payout_returns_to_balance(desk, conn, owner, bank, earned):
    p = desk.payouts.request_withdrawal(conn, "w1", actor=owner, amount=80)
    desk.payouts.advance_payout(conn, p.id, P.FAILED)

    assert desk.payouts.payout_summary(conn, "w1", actor=owner)["available"] == Decimal("84.80")
    with pytest.raises(InvalidTransitionError):
        desk.payouts.advance_payout(conn, p.id, P.PROCESSING)
    with pytest.raises(NotFoundError):
        desk.payouts.advance_payout(conn, "missing", P.PROCESSING)


def test_only_workshop_owner_withdraws(desk, conn, other_owner, customer, earned):
    desk.payouts.save_bank_account(
        conn, actor=other_owner, bank_name="RHB Bank", account_holder="Klang Auto", account_number="21212121"
    )
    with pytest.raises(PermissionDeniedError):
        desk.payouts.request_withdrawal(conn, "w1", actor=other_owner, amount=10)
    with pytest.raises(PermissionDeniedError):
        desk.payouts.payout_summary(conn, "w1", actor=customer)


def test_refused_withdrawal_rolls_back(desk, owner, bank, earned):
    with pytest.raises(ValidationError):
        with desk.db.transaction() as conn:
            desk.payouts.request_withdrawal(conn, "w1", actor=owner, amount=50)
            desk.payouts.request_withdrawal(conn, "w1", actor=owner, amount=50)
    with desk.db.session() as conn:
        assert desk.payouts.list_payouts(conn, "w1", actor=owner) == []
