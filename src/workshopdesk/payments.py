"""Payment settlement adapters.

The engines only need ``process_payment(booking_id, amount, details)``
returning a :class:`PaymentResult`. ``details`` is the checkout payload:
``{"method": "card", "card": {"number": ...}}``, ``{"method": "fpx",
"fpx": {"bankCode": "MBB"}}`` or ``{"method": "ewallet", "ewallet":
{"provider": "tng"}}``.
"""

from __future__ import annotations

import logging
import random
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal, Optional

import requests

from .errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

PaymentStatus = Literal["SUCCESS", "FAILED", "PENDING"]
PAYMENT_STATUSES = ("SUCCESS", "FAILED", "PENDING")
DEFAULT_TIMEOUT = 15.0


@dataclass(frozen=True)
class PaymentResult:
    status: PaymentStatus
    transaction_id: str
    error: Optional[str] = None


def new_transaction_id() -> str:
    return f"TXN-{uuid.uuid4().hex[:9].upper()}"


class SimulatedPaymentGateway:
    """Local stand-in for the checkout gateway.

    Input checks are deterministic; random declines (and FPX pending
    states) only happen when the rates are above zero.
    """

    def __init__(self, *, decline_rate: float = 0.0, pending_rate: float = 0.0, rng: random.Random | None = None) -> None:
        self.decline_rate = decline_rate
        self.pending_rate = pending_rate
        self.rng = rng or random.Random()

    def process_payment(self, booking_id: str, amount: Decimal, details: dict) -> PaymentResult:
        txn = new_transaction_id()
        method = (details or {}).get("method")
        logger.info("Simulated %s payment of %s for booking %s", method, amount, booking_id)

        if method == "card":
            number = str(((details.get("card") or {}).get("number")) or "").replace(" ", "")
            if len(number) < 16:
                return PaymentResult("FAILED", txn, "Invalid card number")
            if self.rng.random() < self.decline_rate:
                return PaymentResult("FAILED", txn, "Transaction declined by bank")
            return PaymentResult("SUCCESS", txn)

        if method == "fpx":
            if not (details.get("fpx") or {}).get("bankCode"):
                return PaymentResult("FAILED", txn, "No bank selected")
            roll = self.rng.random()
            if roll < self.pending_rate:
                return PaymentResult("PENDING", txn)
            if roll < self.pending_rate + self.decline_rate:
                return PaymentResult("FAILED", txn, "Bank server timeout")
            return PaymentResult("SUCCESS", txn)

        if method == "ewallet":
            if not (details.get("ewallet") or {}).get("provider"):
                return PaymentResult("FAILED", txn, "No e-wallet selected")
            if self.rng.random() < self.decline_rate:
                return PaymentResult("FAILED", txn, "Insufficient wallet balance")
            return PaymentResult("SUCCESS", txn)

        return PaymentResult("FAILED", txn, "Unsupported payment method")


class HttpPaymentGateway:
    def __init__(
        self,
        gateway_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = 0,
        retry_backoff: float = 1.0,
        session: requests.Session | None = None,
    ) -> None:
        self.gateway_url = gateway_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.session = session or requests.Session()

    def process_payment(self, booking_id: str, amount: Decimal, details: dict) -> PaymentResult:
        payload = {"bookingId": booking_id, "amount": str(amount), "details": details}
        last_exc = None
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                response = self.session.post(self.gateway_url, json=payload, timeout=self.timeout)
                response.raise_for_status()
                return self._parse(response.json())
            except (requests.RequestException, ValueError) as e:
                last_exc = e
                if attempt < attempts:
                    sleep_for = self.retry_backoff * (2 ** (attempt - 1))
                    logger.warning(
                        "Payment gateway retry %d/%d for booking %s in %.1fs due to: %s",
                        attempt,
                        attempts - 1,
                        booking_id,
                        sleep_for,
                        e,
                    )
                    time.sleep(sleep_for)
        logger.error("Payment gateway unavailable for booking %s: %s", booking_id, last_exc)
        raise UpstreamUnavailableError(f"Payment gateway unavailable: {last_exc}") from last_exc

    @staticmethod
    def _parse(data: dict) -> PaymentResult:
        status = data.get("status")
        if status not in PAYMENT_STATUSES:
            raise ValueError(f"Unexpected payment status: {status!r}")
        return PaymentResult(
            status=status,
            transaction_id=str(data.get("transactionId") or new_transaction_id()),
            error=data.get("error"),
        )


def build_gateway(cfg) -> SimulatedPaymentGateway | HttpPaymentGateway:
    if cfg.mode == "http":
        return HttpPaymentGateway(
            cfg.gateway_url,
            timeout=cfg.timeout,
            max_retries=cfg.max_retries,
            retry_backoff=cfg.retry_backoff,
        )
    return SimulatedPaymentGateway(decline_rate=cfg.decline_rate, pending_rate=cfg.pending_rate)
