# backend/tenanttrack/services/payment_reconciler.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import Principal
from ..clients.payment_gateway import PaymentGateway, to_cents
from ..domain.audit import audit_write, payment_snapshot
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..models import AppUser, Lease, LeaseStatus, Payment, PaymentStatus, Tenant
from . import notifications
from .lease_state_machine import activate_lease
from .ownership import is_tenant_of, must_get_payment, must_get_tenant, require_landlord_or_admin
from .runtime_metrics import METRICS

log = logging.getLogger(__name__)

MSG_NOT_AWAITING = "Lease is not awaiting payment."
MSG_NO_ACTIVE_LEASE = "No active lease found."
MSG_NOT_SUCCESSFUL = "Payment was not successful."
MSG_AMOUNT_MISMATCH = "Payment amount does not match the expected charge."
MSG_AMOUNT_POSITIVE = "Amount must be greater than zero."
MSG_WRONG_LEASE = "Payment intent does not belong to this lease."

# Leases a confirmed gateway payment may settle.
PAYABLE_STATUSES = (LeaseStatus.APPROVED_AWAITING_PAYMENT, LeaseStatus.ACTIVE)


@dataclass(frozen=True)
class IntentResult:
    client_secret: str
    amount: Decimal
    lease_id: int


def expected_charge(lease: Lease) -> Decimal:
    """First payment covers rent plus deposit; afterwards it is rent alone."""
    if lease.status is LeaseStatus.APPROVED_AWAITING_PAYMENT:
        return lease.amount_due_at_signing
    return Decimal(lease.rent)


# -----------------------------------------------------------------------------
# Caller lookups
# -----------------------------------------------------------------------------
def _tenant_for_principal(db: Session, principal: Principal) -> Optional[Tenant]:
    email = func.lower(Tenant.email)
    return db.scalar(
        select(Tenant)
        .where(or_(email == principal.email.strip().lower(), email == principal.username.strip().lower()))
        .order_by(Tenant.id)
        .limit(1)
    )


def _lease_for_payer(db: Session, principal: Principal, lease_id: int) -> Lease:
    lease = db.get(Lease, lease_id, populate_existing=True)
    if lease is None:
        raise NotFoundError("Lease not found")
    if lease.tenant is None or not is_tenant_of(principal, lease.tenant):
        raise AuthorizationError("You can only pay for your own lease")
    return lease


def _current_payable_lease(db: Session, tenant: Tenant) -> Optional[Lease]:
    return db.scalar(
        select(Lease)
        .where(Lease.tenant_id == tenant.id, Lease.status.in_(PAYABLE_STATUSES))
        .order_by(Lease.id.desc())
        .limit(1)
    )


def _customer_id(db: Session, gateway: PaymentGateway, principal: Principal) -> str:
    user = db.get(AppUser, principal.user_id)
    if user is not None and user.billing_customer_id:
        return user.billing_customer_id

    customer_id = gateway.get_or_create_customer(
        principal.user_id, principal.email, principal.display_name or principal.username
    )
    if user is not None:
        user.billing_customer_id = customer_id
        db.add(user)
        db.commit()
    return customer_id


# -----------------------------------------------------------------------------
# Intents
# -----------------------------------------------------------------------------
def create_intent_for_lease(
    db: Session, gateway: PaymentGateway, principal: Principal, lease_id: int
) -> IntentResult:
    lease = _lease_for_payer(db, principal, lease_id)
    if lease.status is not LeaseStatus.APPROVED_AWAITING_PAYMENT:
        raise ValidationError(MSG_NOT_AWAITING)

    amount = lease.amount_due_at_signing
    customer_id = _customer_id(db, gateway, principal)
    handle = gateway.create_payment_intent(customer_id, amount, lease_id=lease.id)

    METRICS.inc("payment.intent.created")
    log.info(
        "payment intent created for signing",
        extra={"lease_id": lease.id, "intent_id": handle.intent_id, "user_id": principal.user_id},
    )
    return IntentResult(client_secret=handle.client_secret, amount=amount, lease_id=int(lease.id))


def create_intent_for_rent(db: Session, gateway: PaymentGateway, principal: Principal) -> IntentResult:
    tenant = _tenant_for_principal(db, principal)
    if tenant is None:
        raise NotFoundError("Tenant not found")

    lease = db.scalar(
        select(Lease)
        .where(Lease.tenant_id == tenant.id, Lease.status == LeaseStatus.ACTIVE)
        .order_by(Lease.id.desc())
        .limit(1)
    )
    if lease is None:
        raise ValidationError(MSG_NO_ACTIVE_LEASE)

    amount = Decimal(lease.rent)
    customer_id = _customer_id(db, gateway, principal)
    handle = gateway.create_payment_intent(customer_id, amount, lease_id=lease.id)

    METRICS.inc("payment.intent.created")
    log.info(
        "payment intent created for rent",
        extra={"lease_id": lease.id, "intent_id": handle.intent_id, "user_id": principal.user_id},
    )
    return IntentResult(client_secret=handle.client_secret, amount=amount, lease_id=int(lease.id))


# -----------------------------------------------------------------------------
# Confirm
# -----------------------------------------------------------------------------
def _existing_payment(db: Session, intent_id: str) -> Optional[Payment]:
    return db.scalar(select(Payment).where(Payment.gateway_transaction_id == intent_id))


def _owned_existing(principal: Principal, existing: Payment, lease_id: Optional[int]) -> Payment:
    # a replayed intent only resolves for the payer of the original lease
    if existing.tenant is None or not is_tenant_of(principal, existing.tenant):
        raise AuthorizationError("You can only pay for your own lease")
    if lease_id is not None and existing.lease_id != lease_id:
        raise ValidationError(MSG_WRONG_LEASE)
    return existing


def confirm(
    db: Session,
    gateway: PaymentGateway,
    principal: Principal,
    intent_id: str,
    amount: Decimal,
    lease_id: Optional[int] = None,
    notifier: Optional[notifications.Notifier] = None,
) -> Payment:
    """
    Reconcile a gateway payment intent into a Paid payment row.

    Order matters:
      1) a payment already recorded for this intent is returned to its own payer
      2) the gateway must report the intent as succeeded
      3) the lease is resolved and must belong to the caller
      4) settled amount == expected charge == amount the client reported
      5) payment insert, lease activation and unit occupancy commit together
    Nothing is written unless step 5 runs to completion.
    """
    intent_id = (intent_id or "").strip()
    if not intent_id:
        raise ValidationError("Payment intent id is required.")

    existing = _existing_payment(db, intent_id)
    if existing is not None:
        _owned_existing(principal, existing, lease_id)
        METRICS.inc("payment.confirm.duplicate")
        log.info("payment intent already reconciled", extra={"intent_id": intent_id, "payment_id": existing.id})
        return existing

    info = gateway.retrieve_intent(intent_id)
    if not info.succeeded:
        METRICS.inc("payment.confirm.not_succeeded")
        log.warning("payment intent status %s", info.status, extra={"intent_id": intent_id})
        raise ValidationError(MSG_NOT_SUCCESSFUL)

    if lease_id is not None:
        lease = _lease_for_payer(db, principal, lease_id)
    else:
        tenant = _tenant_for_principal(db, principal)
        if tenant is None:
            raise NotFoundError("Tenant not found")
        lease = _current_payable_lease(db, tenant)
        if lease is None:
            raise ValidationError(MSG_NO_ACTIVE_LEASE)

    if lease.status not in PAYABLE_STATUSES:
        raise ValidationError(MSG_NOT_AWAITING)
    if info.lease_id is not None and int(info.lease_id) != int(lease.id):
        raise ValidationError(MSG_WRONG_LEASE)

    expected = to_cents(expected_charge(lease))
    if info.amount_cents != expected or to_cents(amount) != expected:
        METRICS.inc("payment.confirm.amount_mismatch")
        log.warning(
            "amount mismatch: settled=%s reported=%s expected=%s",
            info.amount_cents,
            to_cents(amount),
            expected,
            extra={"intent_id": intent_id, "lease_id": lease.id},
        )
        raise ValidationError(MSG_AMOUNT_MISMATCH)

    try:
        payment = Payment(
            tenant_id=lease.tenant_id,
            lease_id=lease.id,
            amount=info.amount,
            paid_on=date.today(),
            method="Card",
            status=PaymentStatus.PAID,
            gateway_transaction_id=intent_id,
        )
        db.add(payment)
        db.flush()

        activated = lease.status is LeaseStatus.APPROVED_AWAITING_PAYMENT
        if activated:
            activate_lease(db, lease, actor_user_id=principal.user_id)

        audit_write(
            db,
            actor_user_id=principal.user_id,
            action="payment.confirm",
            entity_type="Payment",
            entity_id=payment.id,
            before=None,
            after=payment_snapshot(payment),
        )
        db.commit()
    except IntegrityError:
        # another request recorded the same intent first
        db.rollback()
        existing = _existing_payment(db, intent_id)
        if existing is None:
            raise
        return _owned_existing(principal, existing, lease_id)
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    METRICS.inc("payment.confirm.paid")
    log.info(
        "payment reconciled",
        extra={"intent_id": intent_id, "payment_id": payment.id, "lease_id": lease.id, "user_id": principal.user_id},
    )
    if activated:
        notifications.send(
            notifier or notifications.get_notifier(),
            notifications.LEASE_ACTIVATED,
            lease.tenant.email,
            {"lease_id": lease.id, "unit_number": lease.unit_number, "amount_paid": str(payment.amount)},
        )
    return payment


# -----------------------------------------------------------------------------
# Manual payments (landlord-entered)
# -----------------------------------------------------------------------------
def _check_amount(amount: Decimal) -> Decimal:
    value = Decimal(str(amount))
    if value <= 0:
        raise ValidationError(MSG_AMOUNT_POSITIVE)
    return value


def _check_lease_link(db: Session, tenant: Tenant, lease_id: Optional[int]) -> Optional[int]:
    if lease_id is None:
        return None
    lease = db.get(Lease, lease_id)
    if lease is None:
        raise NotFoundError("Lease not found")
    if int(lease.tenant_id) != int(tenant.id):
        raise ValidationError("Lease does not belong to this tenant.")
    return int(lease.id)


def create_manual_payment(
    db: Session,
    principal: Principal,
    *,
    tenant_id: int,
    amount: Decimal,
    paid_on: Optional[date] = None,
    method: str = "Cash",
    status: PaymentStatus = PaymentStatus.PAID,
    lease_id: Optional[int] = None,
) -> Payment:
    require_landlord_or_admin(principal)
    value = _check_amount(amount)
    tenant = must_get_tenant(db, principal, tenant_id)

    payment = Payment(
        tenant_id=tenant.id,
        lease_id=_check_lease_link(db, tenant, lease_id),
        amount=value,
        paid_on=paid_on or date.today(),
        method=method,
        status=status,
    )
    db.add(payment)
    db.flush()
    audit_write(
        db,
        actor_user_id=principal.user_id,
        action="payment.create",
        entity_type="Payment",
        entity_id=payment.id,
        after=payment_snapshot(payment),
    )
    db.commit()
    db.refresh(payment)
    METRICS.inc("payment.manual.created")
    return payment


def update_manual_payment(
    db: Session,
    principal: Principal,
    payment_id: int,
    *,
    tenant_id: int,
    amount: Decimal,
    paid_on: date,
    method: str,
    status: PaymentStatus,
    lease_id: Optional[int] = None,
) -> Payment:
    require_landlord_or_admin(principal)
    payment = must_get_payment(db, principal, payment_id)
    value = _check_amount(amount)
    tenant = must_get_tenant(db, principal, tenant_id)

    before = payment_snapshot(payment)
    payment.tenant_id = tenant.id
    payment.lease_id = _check_lease_link(db, tenant, lease_id)
    payment.amount = value
    payment.paid_on = paid_on
    payment.method = method
    payment.status = status
    db.add(payment)
    db.flush()
    audit_write(
        db,
        actor_user_id=principal.user_id,
        action="payment.update",
        entity_type="Payment",
        entity_id=payment.id,
        before=before,
        after=payment_snapshot(payment),
    )
    db.commit()
    db.refresh(payment)
    return payment


def delete_payment(db: Session, principal: Principal, payment_id: int) -> None:
    require_landlord_or_admin(principal)
    payment = must_get_payment(db, principal, payment_id)
    audit_write(
        db,
        actor_user_id=principal.user_id,
        action="payment.delete",
        entity_type="Payment",
        entity_id=payment.id,
        before=payment_snapshot(payment),
    )
    db.delete(payment)
    db.commit()
    METRICS.inc("payment.deleted")
