# backend/tenanttrack/routers/payments.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..auth import Principal, get_optional_principal, get_principal
from ..clients.payment_gateway import PaymentGateway, get_payment_gateway
from ..db import get_db
from ..models import Payment
from ..schemas import ConfirmPaymentIn, IntentOut, PaymentCreate, PaymentOut, PaymentUpdate
from ..services import payment_reconciler as reconciler
from ..services.notifications import Notifier, get_notifier
from ..services.ownership import must_get_payment
from ..services.role_scope import EntityKind, scoped_select

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("", response_model=list[PaymentOut])
def list_payments(
    tenant_id: Optional[int] = Query(default=None),
    lease_id: Optional[int] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=2000),
    db: Session = Depends(get_db),
    p: Optional[Principal] = Depends(get_optional_principal),
):
    q = scoped_select(db, p, EntityKind.PAYMENTS, Payment)
    if tenant_id is not None:
        q = q.where(Payment.tenant_id == tenant_id)
    if lease_id is not None:
        q = q.where(Payment.lease_id == lease_id)
    q = q.order_by(desc(Payment.id)).limit(limit)
    return list(db.scalars(q).all())


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(payment_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return must_get_payment(db, p, payment_id)


@router.post("", response_model=PaymentOut, status_code=201)
def create_payment(payload: PaymentCreate, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return reconciler.create_manual_payment(db, p, **payload.model_dump())


@router.put("/{payment_id}", response_model=PaymentOut)
def update_payment(
    payment_id: int,
    payload: PaymentUpdate,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return reconciler.update_manual_payment(db, p, payment_id, **payload.model_dump())


@router.delete("/{payment_id}", status_code=204)
def delete_payment(payment_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    reconciler.delete_payment(db, p, payment_id)
    return Response(status_code=204)


# -------------------- Gateway flow --------------------

@router.post("/lease/{lease_id}/create-intent", response_model=IntentOut)
def create_lease_intent(
    lease_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    return reconciler.create_intent_for_lease(db, gateway, p, lease_id)


@router.post("/lease/{lease_id}/confirm", response_model=PaymentOut)
def confirm_lease_payment(
    lease_id: int,
    payload: ConfirmPaymentIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
):
    return reconciler.confirm(
        db, gateway, p, payload.payment_intent_id, payload.amount, lease_id=lease_id, notifier=notifier
    )


@router.post("/rent/create-intent", response_model=IntentOut)
def create_rent_intent(
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    return reconciler.create_intent_for_rent(db, gateway, p)


@router.post("/rent/confirm", response_model=PaymentOut)
def confirm_rent_payment(
    payload: ConfirmPaymentIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
):
    return reconciler.confirm(db, gateway, p, payload.payment_intent_id, payload.amount, notifier=notifier)
