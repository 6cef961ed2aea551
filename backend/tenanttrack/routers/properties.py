# backend/tenanttrack/routers/properties.py
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal
from ..db import get_db
from ..errors import ConflictError
from ..models import (
    Lease,
    LeaseStatus,
    MaintenanceRequest,
    MaintenanceStatus,
    Payment,
    PaymentStatus,
    Property,
    Staff,
    Tenant,
    Unit,
    UnitStatus,
)
from ..schemas import (
    LandlordDashboardOut,
    PropertyCreate,
    PropertyOut,
    StaffCreate,
    StaffOut,
    UnitCreate,
    UnitOut,
)
from ..services.ownership import (
    is_admin,
    is_landlord_or_admin,
    must_get_property,
    must_get_unit,
    require_landlord_or_admin,
)

router = APIRouter(tags=["properties"])

MSG_DUPLICATE_UNIT = "Unit number already exists for this property."
MSG_UNIT_IN_USE = "Cannot delete unit while tenants are assigned to it."
MSG_STAFF_EMAIL_TAKEN = "Email address is already in use"


def _owned_property_ids(p: Principal):
    q = select(Property.id)
    if not is_admin(p):
        q = q.where(Property.owner_user_id == p.user_id)
    return q


# -------------------- Properties --------------------

@router.get("/properties", response_model=list[PropertyOut])
def list_properties(db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    require_landlord_or_admin(p)
    q = select(Property).where(Property.id.in_(_owned_property_ids(p))).order_by(desc(Property.id))
    return list(db.scalars(q).all())


@router.post("/properties", response_model=PropertyOut, status_code=201)
def create_property(payload: PropertyCreate, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    require_landlord_or_admin(p)
    row = Property(**payload.model_dump(), owner_user_id=p.user_id)
    row.state = row.state.upper()
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


# -------------------- Units --------------------

@router.get("/units", response_model=list[UnitOut])
def list_units(
    property_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    """Landlords see their own units; everyone else browses what is available."""
    q = select(Unit)
    if is_landlord_or_admin(p):
        q = q.where(Unit.property_id.in_(_owned_property_ids(p)))
    else:
        q = q.where(Unit.status == UnitStatus.AVAILABLE)
    if property_id is not None:
        q = q.where(Unit.property_id == property_id)
    return list(db.scalars(q.order_by(Unit.property_id, Unit.unit_number)).all())


@router.post("/units", response_model=UnitOut, status_code=201)
def create_unit(payload: UnitCreate, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    prop = must_get_property(db, p, payload.property_id)

    number = payload.unit_number.strip()
    taken = db.scalar(
        select(Unit.id).where(
            Unit.property_id == prop.id,
            func.lower(Unit.unit_number) == number.lower(),
        )
    )
    if taken is not None:
        raise ConflictError(MSG_DUPLICATE_UNIT)

    # Rented is derived from tenant bindings, never set by hand
    status = UnitStatus.AVAILABLE if payload.status is UnitStatus.RENTED else payload.status
    row = Unit(**payload.model_dump(exclude={"unit_number", "status"}), unit_number=number, status=status)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.delete("/units/{unit_id}", status_code=204)
def delete_unit(unit_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    row = must_get_unit(db, p, unit_id)
    if db.scalar(select(Tenant.id).where(Tenant.unit_id == row.id).limit(1)) is not None:
        raise ConflictError(MSG_UNIT_IN_USE)
    db.delete(row)
    db.commit()
    return Response(status_code=204)


# -------------------- Staff --------------------

@router.get("/staff", response_model=list[StaffOut])
def list_staff(
    property_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    require_landlord_or_admin(p)
    q = select(Staff).where(Staff.property_id.in_(_owned_property_ids(p)))
    if property_id is not None:
        q = q.where(Staff.property_id == property_id)
    return list(db.scalars(q.order_by(Staff.last_name, Staff.first_name)).all())


@router.post("/staff", response_model=StaffOut, status_code=201)
def create_staff(payload: StaffCreate, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    prop = must_get_property(db, p, payload.property_id)

    email = payload.email.strip()
    if db.scalar(select(Staff.id).where(func.lower(Staff.email) == email.lower())) is not None:
        raise ConflictError(MSG_STAFF_EMAIL_TAKEN)

    row = Staff(**payload.model_dump(exclude={"property_id", "email"}), property_id=prop.id, email=email)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


# -------------------- Dashboard --------------------

@router.get("/landlord/dashboard", response_model=LandlordDashboardOut)
def landlord_dashboard(db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    require_landlord_or_admin(p)
    prop_ids = _owned_property_ids(p)
    unit_ids = select(Unit.id).where(Unit.property_id.in_(prop_ids))
    tenant_ids = select(Tenant.id).where(Tenant.unit_id.in_(unit_ids))

    units_by_status = {s.value: 0 for s in UnitStatus}
    for status, n in db.execute(
        select(Unit.status, func.count(Unit.id)).where(Unit.id.in_(unit_ids)).group_by(Unit.status)
    ).all():
        units_by_status[status.value] = int(n)

    leases_by_status = {s.value: 0 for s in LeaseStatus}
    for status, n in db.execute(
        select(Lease.status, func.count(Lease.id)).where(Lease.tenant_id.in_(tenant_ids)).group_by(Lease.status)
    ).all():
        leases_by_status[status.value] = int(n)

    open_requests = db.scalar(
        select(func.count(MaintenanceRequest.id)).where(
            MaintenanceRequest.tenant_id.in_(tenant_ids),
            MaintenanceRequest.status.in_((MaintenanceStatus.PENDING, MaintenanceStatus.IN_PROGRESS)),
        )
    )
    paid_total = db.scalar(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.tenant_id.in_(tenant_ids),
            Payment.status == PaymentStatus.PAID,
        )
    )

    return LandlordDashboardOut(
        properties=int(db.scalar(select(func.count()).select_from(prop_ids.subquery())) or 0),
        units=sum(units_by_status.values()),
        units_by_status=units_by_status,
        tenants=int(db.scalar(select(func.count()).select_from(tenant_ids.subquery())) or 0),
        leases_by_status=leases_by_status,
        pending_applications=leases_by_status[LeaseStatus.PENDING.value],
        open_maintenance_requests=int(open_requests or 0),
        paid_total=Decimal(str(paid_total or 0)).quantize(Decimal("0.01")),
    )
