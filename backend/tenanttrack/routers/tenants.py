# backend/tenanttrack/routers/tenants.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import desc, exists, func, or_, select
from sqlalchemy.orm import Session

from ..auth import Principal, get_optional_principal, get_principal
from ..db import get_db
from ..domain.audit import audit_write
from ..errors import ConflictError, ValidationError
from ..models import Lease, MaintenanceRequest, Payment, Tenant
from ..schemas import TenantCreate, TenantOut
from ..services.occupancy import refresh_unit, refresh_units
from ..services.ownership import is_admin, must_get_tenant, must_get_unit, require_landlord_or_admin
from ..services.role_scope import EntityKind, scoped_select

router = APIRouter(prefix="/tenants", tags=["tenants"])

MSG_EMAIL_TAKEN = "A tenant with this email already exists."
MSG_HAS_DEPENDANTS = "Cannot delete tenant with existing payments, leases, or maintenance requests."


def _tenant_snapshot(row: Tenant) -> dict:
    return {
        "id": row.id,
        "unit_id": row.unit_id,
        "first_name": row.first_name,
        "last_name": row.last_name,
        "email": row.email,
    }


def _ensure_email_free(db: Session, email: str, *, ignore_id: Optional[int] = None) -> None:
    q = select(Tenant.id).where(func.lower(Tenant.email) == email.strip().lower())
    if ignore_id is not None:
        q = q.where(Tenant.id != ignore_id)
    if db.scalar(q) is not None:
        raise ConflictError(MSG_EMAIL_TAKEN)


def _check_unit(db: Session, p: Principal, unit_id: Optional[int]) -> Optional[int]:
    if unit_id is None:
        # landlords only see tenants through their units
        if not is_admin(p):
            raise ValidationError("Tenant must be assigned to a unit.")
        return None
    return int(must_get_unit(db, p, unit_id).id)


@router.post("", response_model=TenantOut, status_code=201)
def create_tenant(payload: TenantCreate, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    require_landlord_or_admin(p)
    unit_id = _check_unit(db, p, payload.unit_id)
    _ensure_email_free(db, payload.email)

    row = Tenant(**payload.model_dump(exclude={"unit_id", "email"}), unit_id=unit_id, email=payload.email.strip())
    db.add(row)
    db.flush()

    refresh_unit(db, unit_id)
    audit_write(
        db,
        actor_user_id=p.user_id,
        action="tenant.create",
        entity_type="Tenant",
        entity_id=row.id,
        after=_tenant_snapshot(row),
    )
    db.commit()
    db.refresh(row)
    return row


@router.get("", response_model=list[TenantOut])
def list_tenants(
    limit: int = Query(default=100, ge=1, le=2000),
    db: Session = Depends(get_db),
    p: Optional[Principal] = Depends(get_optional_principal),
):
    q = scoped_select(db, p, EntityKind.TENANTS, Tenant).order_by(desc(Tenant.id)).limit(limit)
    return list(db.scalars(q).all())


@router.get("/{tenant_id}", response_model=TenantOut)
def get_tenant(tenant_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return must_get_tenant(db, p, tenant_id)


@router.put("/{tenant_id}", response_model=TenantOut)
def update_tenant(
    tenant_id: int,
    payload: TenantCreate,  # full update
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    require_landlord_or_admin(p)
    row = must_get_tenant(db, p, tenant_id)
    before = _tenant_snapshot(row)
    old_unit_id = row.unit_id

    unit_id = _check_unit(db, p, payload.unit_id)
    _ensure_email_free(db, payload.email, ignore_id=row.id)

    for k, v in payload.model_dump(exclude={"unit_id"}).items():
        setattr(row, k, v)
    row.unit_id = unit_id
    db.add(row)
    db.flush()

    # a move frees the old unit and binds the new one
    refresh_units(db, [old_unit_id, unit_id])
    audit_write(
        db,
        actor_user_id=p.user_id,
        action="tenant.update",
        entity_type="Tenant",
        entity_id=row.id,
        before=before,
        after=_tenant_snapshot(row),
    )
    db.commit()
    db.refresh(row)
    return row


@router.delete("/{tenant_id}", status_code=204)
def delete_tenant(tenant_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    require_landlord_or_admin(p)
    row = must_get_tenant(db, p, tenant_id)

    has_dependants = db.scalar(
        select(
            or_(
                exists().where(Lease.tenant_id == row.id),
                exists().where(Payment.tenant_id == row.id),
                exists().where(MaintenanceRequest.tenant_id == row.id),
            )
        )
    )
    if has_dependants:
        raise ConflictError(MSG_HAS_DEPENDANTS)

    unit_id = row.unit_id
    audit_write(
        db,
        actor_user_id=p.user_id,
        action="tenant.delete",
        entity_type="Tenant",
        entity_id=row.id,
        before=_tenant_snapshot(row),
    )
    db.delete(row)
    db.flush()

    refresh_unit(db, unit_id)
    db.commit()
    return Response(status_code=204)
