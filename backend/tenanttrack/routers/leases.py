# backend/tenanttrack/routers/leases.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..auth import Principal, get_optional_principal, get_principal
from ..db import get_db
from ..models import Lease, LeaseStatus
from ..schemas import LeaseApprove, LeaseCreate, LeaseDeny, LeaseOut, LeaseTerminate, LeaseUpdate
from ..services import lease_state_machine as machine
from ..services.notifications import Notifier, get_notifier
from ..services.ownership import must_get_lease
from ..services.role_scope import EntityKind, scoped_select

router = APIRouter(prefix="/leases", tags=["leases"])


@router.get("", response_model=list[LeaseOut])
def list_leases(
    status: Optional[LeaseStatus] = Query(default=None),
    tenant_id: Optional[int] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=2000),
    db: Session = Depends(get_db),
    p: Optional[Principal] = Depends(get_optional_principal),
):
    q = scoped_select(db, p, EntityKind.LEASES, Lease)
    if status is not None:
        q = q.where(Lease.status == status)
    if tenant_id is not None:
        q = q.where(Lease.tenant_id == tenant_id)
    q = q.order_by(desc(Lease.id)).limit(limit)
    return list(db.scalars(q).all())


@router.get("/{lease_id}", response_model=LeaseOut)
def get_lease(lease_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return must_get_lease(db, p, lease_id)


@router.post("", response_model=LeaseOut, status_code=201)
def create_lease(
    payload: LeaseCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    return machine.create_lease(db, p, notifier=notifier, **payload.model_dump())


@router.put("/{lease_id}", response_model=LeaseOut)
def update_lease(
    lease_id: int,
    payload: LeaseUpdate,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return machine.update_lease(db, p, lease_id, **payload.model_dump())


@router.delete("/{lease_id}", status_code=204)
def delete_lease(lease_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    machine.delete_lease(db, p, lease_id)
    return Response(status_code=204)


@router.post("/{lease_id}/approve", response_model=LeaseOut)
def approve_lease(
    lease_id: int,
    payload: LeaseApprove,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    return machine.approve_lease(db, p, lease_id, notifier=notifier, **payload.model_dump())


@router.post("/{lease_id}/deny", response_model=LeaseOut)
def deny_lease(
    lease_id: int,
    payload: Optional[LeaseDeny] = None,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    reason = payload.reason if payload is not None else None
    return machine.deny_lease(db, p, lease_id, reason=reason, notifier=notifier)


@router.post("/{lease_id}/terminate", response_model=LeaseOut)
def terminate_lease(
    lease_id: int,
    payload: Optional[LeaseTerminate] = None,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
):
    reason = payload.reason if payload is not None else None
    return machine.terminate_lease(db, p, lease_id, reason=reason, notifier=notifier)
