from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Protocol

import stripe

from ..config import settings
from ..errors import GatewayError, IntentNotFoundError

log = logging.getLogger(__name__)

SUCCEEDED = "succeeded"


def to_cents(amount: Decimal | int | float | str) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class PaymentIntentHandle:
    intent_id: str
    client_secret: str


@dataclass(frozen=True)
class PaymentIntentInfo:
    intent_id: str
    status: str
    amount_cents: int
    lease_id: Optional[int] = None
    customer_id: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)


class PaymentGateway(Protocol):
    def get_or_create_customer(self, user_id: int, email: str, name: Optional[str]) -> str: ...

    def create_payment_intent(
        self, customer_id: str, amount: Decimal, lease_id: Optional[int] = None
    ) -> PaymentIntentHandle: ...

    def retrieve_intent(self, intent_id: str) -> PaymentIntentInfo: ...

    def confirm_payment(self, intent_id: str) -> bool: ...


class StripePaymentGateway:
    """
    Stripe-backed gateway.

    Unknown intent ids raise IntentNotFoundError; every other Stripe failure
    (network, auth, rate limit) raises GatewayError so callers can retry.
    """

    def __init__(self, api_key: Optional[str] = None, currency: Optional[str] = None) -> None:
        self.api_key = api_key or settings.stripe_secret_key
        self.currency = (currency or settings.payment_currency).lower()

    def enabled(self) -> bool:
        return bool(self.api_key)

    def _require_key(self) -> str:
        if not self.api_key:
            raise GatewayError("Payment gateway is not configured.")
        return self.api_key

    def get_or_create_customer(self, user_id: int, email: str, name: Optional[str]) -> str:
        api_key = self._require_key()
        try:
            found = stripe.Customer.search(
                query=f"metadata['user_id']:'{int(user_id)}'",
                limit=1,
                api_key=api_key,
            )
            if found.data:
                return str(found.data[0].id)

            customer = stripe.Customer.create(
                email=email,
                name=name or email,
                metadata={"user_id": str(int(user_id))},
                api_key=api_key,
            )
        except stripe.StripeError as e:
            log.warning("stripe customer lookup failed: %s", e, extra={"user_id": user_id})
            raise GatewayError("Payment gateway is unavailable, please retry.") from e

        log.info("created stripe customer %s", customer.id, extra={"user_id": user_id})
        return str(customer.id)

    def create_payment_intent(
        self, customer_id: str, amount: Decimal, lease_id: Optional[int] = None
    ) -> PaymentIntentHandle:
        api_key = self._require_key()
        metadata: dict[str, str] = {}
        if lease_id is not None:
            metadata["lease_id"] = str(int(lease_id))

        try:
            intent = stripe.PaymentIntent.create(
                amount=to_cents(amount),
                currency=self.currency,
                customer=customer_id,
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
                api_key=api_key,
            )
        except stripe.StripeError as e:
            log.warning("stripe intent creation failed: %s", e, extra={"lease_id": lease_id})
            raise GatewayError("Payment gateway is unavailable, please retry.") from e

        log.info(
            "created payment intent for %s",
            f"lease {lease_id}" if lease_id is not None else "rent payment",
            extra={"intent_id": intent.id, "lease_id": lease_id},
        )
        return PaymentIntentHandle(intent_id=str(intent.id), client_secret=str(intent.client_secret))

    def retrieve_intent(self, intent_id: str) -> PaymentIntentInfo:
        api_key = self._require_key()
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=api_key)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                raise IntentNotFoundError("Payment intent not found.") from e
            raise GatewayError("Payment gateway rejected the request, please retry.") from e
        except stripe.StripeError as e:
            log.warning("stripe intent lookup failed: %s", e, extra={"intent_id": intent_id})
            raise GatewayError("Payment gateway is unavailable, please retry.") from e

        metadata = dict(intent.metadata or {})
        lease_raw = metadata.get("lease_id")
        return PaymentIntentInfo(
            intent_id=str(intent.id),
            status=str(intent.status),
            amount_cents=int(intent.amount_received or intent.amount or 0),
            lease_id=int(lease_raw) if lease_raw and str(lease_raw).isdigit() else None,
            customer_id=str(intent.customer) if intent.customer else None,
            raw=metadata,
        )

    def confirm_payment(self, intent_id: str) -> bool:
        info = self.retrieve_intent(intent_id)
        if not info.succeeded:
            log.warning("payment intent has status %s", info.status, extra={"intent_id": intent_id})
        return info.succeeded


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency; tests override it with an in-memory gateway."""
    global _gateway
    if _gateway is None:
        _gateway = StripePaymentGateway()
    return _gateway
