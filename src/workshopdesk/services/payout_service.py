from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation

from ..booking_state import OWNER
from ..domain import MALAYSIAN_BANKS, Actor, BankAccount, Payout, PayoutStatus, Workshop, money, new_id, utcnow
from ..errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from ..reports import wallet_summary
from .booking_service import BookingService

logger = logging.getLogger(__name__)

P = PayoutStatus

PAYOUT_FLOW = {
    P.REQUESTED: frozenset({P.PROCESSING, P.FAILED}),
    P.PROCESSING: frozenset({P.COMPLETED, P.FAILED}),
    P.COMPLETED: frozenset(),
    P.FAILED: frozenset(),
}

# what the bank does next with a payout still in flight
_NEXT_STEP = {P.REQUESTED: P.PROCESSING, P.PROCESSING: P.COMPLETED}

_ACCOUNT_NUMBER = re.compile(r"^\d{6,20}$")


class PayoutService:
    def __init__(self, *, bookings: BookingService, bank_account_repo, payout_repo, booking_repo, refund_repo) -> None:
        self.bookings = bookings
        self.bank_account_repo = bank_account_repo
        self.payout_repo = payout_repo
        self.booking_repo = booking_repo
        self.refund_repo = refund_repo

    def _require_owner(self, conn, workshop_id: str, actor: Actor) -> Workshop:
        workshop = self.bookings.get_workshop(conn, workshop_id)
        if actor.role != OWNER or actor.user_id != workshop.owner_id:
            raise PermissionDeniedError("Only the workshop owner can manage its payouts.")
        return workshop

    # bank account

    def get_bank_account(self, conn, *, actor: Actor) -> BankAccount | None:
        if actor.role != OWNER:
            raise PermissionDeniedError("Only workshop owners keep a payout bank account.")
        return self.bank_account_repo.get(conn, actor.user_id)

    def save_bank_account(
        self,
        conn,
        *,
        actor: Actor,
        bank_name: str,
        account_holder: str,
        account_number: str,
    ) -> BankAccount:
        if actor.role != OWNER:
            raise PermissionDeniedError("Only workshop owners keep a payout bank account.")
        bank_name = (bank_name or "").strip()
        if bank_name not in MALAYSIAN_BANKS:
            raise ValidationError(f"Unsupported bank: {bank_name or '(none)'}")
        if not account_holder or not account_holder.strip():
            raise ValidationError("Account holder cannot be empty.")
        number = re.sub(r"[\s-]", "", account_number or "")
        if not _ACCOUNT_NUMBER.match(number):
            raise ValidationError("Account number must be 6 to 20 digits.")

        account = self.bank_account_repo.save(
            conn,
            account=BankAccount(
                owner_id=actor.user_id,
                bank_name=bank_name,
                account_holder=account_holder.strip(),
                account_number=number,
                updated_at=utcnow(),
            ),
        )
        logger.info("Owner %s saved payout account %s %s", actor.user_id, bank_name, account.masked_number)
        return account

    # balance

    def payout_summary(self, conn, workshop_id: str, *, actor: Actor) -> dict:
        self._require_owner(conn, workshop_id, actor)
        return self._summary(conn, workshop_id)

    def _summary(self, conn, workshop_id: str) -> dict:
        wallet = wallet_summary(conn, workshop_id, booking_repo=self.booking_repo, refund_repo=self.refund_repo)
        pending = withdrawn = Decimal("0.00")
        for p in self.payout_repo.list_by_workshop(conn, workshop_id):
            if p.status in (P.REQUESTED, P.PROCESSING):
                pending += p.amount
            elif p.status == P.COMPLETED:
                withdrawn += p.amount
        return {
            "workshop_id": workshop_id,
            "earned": wallet["available"],
            "available": wallet["available"] - pending - withdrawn,
            "pending": pending,
            "withdrawn": withdrawn,
        }

    def list_payouts(self, conn, workshop_id: str, *, actor: Actor) -> list[Payout]:
        self._require_owner(conn, workshop_id, actor)
        return self.payout_repo.list_by_workshop(conn, workshop_id)

    # withdrawals

    def request_withdrawal(self, conn, workshop_id: str, *, actor: Actor, amount) -> Payout:
        self._require_owner(conn, workshop_id, actor)
        account = self.bank_account_repo.get(conn, actor.user_id)
        if account is None:
            raise ValidationError("Please set up your bank account first.")
        try:
            amount = money(amount)
        except (InvalidOperation, ValueError, TypeError) as e:
            raise ValidationError("Withdrawal amount must be a number.") from e
        if amount <= Decimal("0"):
            raise ValidationError("Invalid withdrawal amount.")

        self.payout_repo.lock_workshop(conn, workshop_id)
        balance = self._summary(conn, workshop_id)["available"]
        if amount > balance:
            logger.warning("Withdrawal of %s from workshop %s refused: balance %s", amount, workshop_id, balance)
            raise ValidationError(f"Insufficient balance (RM {balance:.2f} available).")

        now = utcnow()
        payout = self.payout_repo.create(
            conn,
            payout=Payout(
                id=new_id(),
                owner_id=actor.user_id,
                workshop_id=workshop_id,
                amount=amount,
                bank_name=account.bank_name,
                account_last4=account.account_number[-4:],
                status=P.REQUESTED,
                requested_at=now,
                updated_at=now,
            ),
        )
        logger.info("Payout %s requested: %s to %s %s", payout.id, amount, account.bank_name, account.masked_number)
        return payout

    def advance_payout(self, conn, payout_id: str, status: PayoutStatus) -> Payout:
        payout = self.payout_repo.get(conn, payout_id)
        if payout is None:
            raise NotFoundError("Payout", payout_id)
        status = PayoutStatus(status)
        if status not in PAYOUT_FLOW[payout.status]:
            raise InvalidTransitionError(payout.status.value, status.value)
        updated = self.payout_repo.update_status(
            conn, payout_id=payout.id, status=status, expected_status=payout.status, updated_at=utcnow()
        )
        if updated is None:
            raise ConflictError(f"Payout {payout.id} was modified concurrently; reload and retry")
        logger.info("Payout %s: %s -> %s", payout.id, payout.status.value, status.value)
        return updated

    def settle_payouts(self, conn) -> list[Payout]:
        """Moves every payout still in flight one step along the bank transfer."""
        return [self.advance_payout(conn, p.id, _NEXT_STEP[p.status]) for p in self.payout_repo.list_open(conn)]
