# backend/tenanttrack/routers/maintenance_requests.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..auth import Principal, get_optional_principal, get_principal
from ..db import get_db
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..models import ActorKind, MaintenanceRequest, MaintenanceStatus, Staff, _utcnow
from ..schemas import MaintenanceRequestCreate, MaintenanceRequestOut, MaintenanceRequestUpdate
from ..services.ownership import (
    is_landlord_or_admin,
    is_tenant_of,
    must_get_maintenance_request,
    must_get_tenant,
    tenant_property,
)
from ..services.role_scope import EntityKind, effective_kind, scoped_select

router = APIRouter(prefix="/maintenance-requests", tags=["maintenance"])


def _check_assignee(db: Session, row: MaintenanceRequest, staff_id: Optional[int]) -> Optional[int]:
    if staff_id is None:
        return None
    staff = db.get(Staff, staff_id)
    if staff is None:
        raise NotFoundError("Staff member not found")
    prop = tenant_property(row.tenant)
    if prop is None or int(staff.property_id) != int(prop.id):
        raise ValidationError("Staff member does not work at this property.")
    return int(staff.id)


@router.get("", response_model=list[MaintenanceRequestOut])
def list_requests(
    status: Optional[MaintenanceStatus] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=2000),
    db: Session = Depends(get_db),
    p: Optional[Principal] = Depends(get_optional_principal),
):
    q = scoped_select(db, p, EntityKind.MAINTENANCE_REQUESTS, MaintenanceRequest)
    if status is not None:
        q = q.where(MaintenanceRequest.status == status)
    q = q.order_by(desc(MaintenanceRequest.requested_at), desc(MaintenanceRequest.id)).limit(limit)
    return list(db.scalars(q).all())


@router.get("/{request_id}", response_model=MaintenanceRequestOut)
def get_request(request_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return must_get_maintenance_request(db, p, request_id)


@router.post("", response_model=MaintenanceRequestOut, status_code=201)
def create_request(
    payload: MaintenanceRequestCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    if effective_kind(p) is ActorKind.MAINTENANCE:
        raise AuthorizationError("Maintenance staff cannot file requests")
    tenant = must_get_tenant(db, p, payload.tenant_id)

    row = MaintenanceRequest(
        tenant_id=tenant.id,
        description=payload.description.strip(),
        priority=payload.priority,
        status=MaintenanceStatus.PENDING,
        requested_at=_utcnow(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.put("/{request_id}", response_model=MaintenanceRequestOut)
def update_request(
    request_id: int,
    payload: MaintenanceRequestUpdate,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    row = must_get_maintenance_request(db, p, request_id)

    if effective_kind(p) is ActorKind.TENANT:
        # tenants may reword their own request until work starts
        if row.status is not MaintenanceStatus.PENDING:
            raise ValidationError("Only pending requests can be edited.")
        if payload.status is not row.status or payload.assigned_staff_id != row.assigned_staff_id:
            raise AuthorizationError("Tenants cannot change status or assignment")

    row.description = payload.description.strip()
    row.priority = payload.priority
    row.assigned_staff_id = _check_assignee(db, row, payload.assigned_staff_id)
    if payload.status is not row.status:
        row.status = payload.status
        row.completed_at = _utcnow() if payload.status is MaintenanceStatus.COMPLETED else None
    row.updated_at = _utcnow()

    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.delete("/{request_id}", status_code=204)
def delete_request(request_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    row = must_get_maintenance_request(db, p, request_id)
    if not is_landlord_or_admin(p):
        if not (is_tenant_of(p, row.tenant) and row.status is MaintenanceStatus.PENDING):
            raise AuthorizationError("You are not allowed to delete this request")

    db.delete(row)
    db.commit()
    return Response(status_code=204)
