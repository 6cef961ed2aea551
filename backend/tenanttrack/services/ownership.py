# backend/tenanttrack/services/ownership.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Principal
from ..errors import AuthorizationError, NotFoundError
from ..models import ActorKind, Lease, MaintenanceRequest, Payment, Property, Tenant, Unit
from .role_scope import EntityKind, effective_kind, predicate, resolve_scope


def _must_get_scoped(db: Session, principal: Optional[Principal], entity: EntityKind, model, row_id: int, label: str):
    row = db.get(model, row_id, populate_existing=True)
    if row is None:
        raise NotFoundError(f"{label} not found")

    scope = resolve_scope(db, principal, entity)
    visible = db.scalar(select(model.id).where(model.id == row_id).where(predicate(entity, scope)))
    if visible is None:
        raise AuthorizationError(f"You are not allowed to access this {label.lower()}")
    return row


def must_get_tenant(db: Session, principal: Optional[Principal], tenant_id: int) -> Tenant:
    return _must_get_scoped(db, principal, EntityKind.TENANTS, Tenant, tenant_id, "Tenant")


def must_get_lease(db: Session, principal: Optional[Principal], lease_id: int) -> Lease:
    return _must_get_scoped(db, principal, EntityKind.LEASES, Lease, lease_id, "Lease")


def must_get_payment(db: Session, principal: Optional[Principal], payment_id: int) -> Payment:
    return _must_get_scoped(db, principal, EntityKind.PAYMENTS, Payment, payment_id, "Payment")


def must_get_maintenance_request(db: Session, principal: Optional[Principal], request_id: int) -> MaintenanceRequest:
    return _must_get_scoped(
        db, principal, EntityKind.MAINTENANCE_REQUESTS, MaintenanceRequest, request_id, "Maintenance request"
    )


# -----------------------------------------------------------------------------
# Property side: landlords own properties, admins own everything
# -----------------------------------------------------------------------------
def is_admin(principal: Principal) -> bool:
    return effective_kind(principal) is ActorKind.ADMIN


def is_landlord_or_admin(principal: Principal) -> bool:
    return effective_kind(principal) in (ActorKind.ADMIN, ActorKind.LANDLORD)


def require_landlord_or_admin(principal: Principal) -> None:
    if not is_landlord_or_admin(principal):
        raise AuthorizationError("Only landlords or admins may perform this action")


def owns_property(principal: Principal, prop: Optional[Property]) -> bool:
    if is_admin(principal):
        return True
    return (
        prop is not None
        and effective_kind(principal) is ActorKind.LANDLORD
        and int(prop.owner_user_id) == int(principal.user_id)
    )


def must_get_property(db: Session, principal: Principal, property_id: int) -> Property:
    row = db.get(Property, property_id)
    if row is None:
        raise NotFoundError("Property not found")
    if not owns_property(principal, row):
        raise AuthorizationError("You do not own this property")
    return row


def must_get_unit(db: Session, principal: Principal, unit_id: int) -> Unit:
    row = db.get(Unit, unit_id)
    if row is None:
        raise NotFoundError("Unit not found")
    if not owns_property(principal, row.property):
        raise AuthorizationError("You do not own this unit's property")
    return row


def tenant_property(tenant: Tenant) -> Optional[Property]:
    return tenant.unit.property if tenant.unit is not None else None


def is_tenant_of(principal: Principal, tenant: Tenant) -> bool:
    """Identity match used for payments: tenant email equals the caller's email or username."""
    email = (tenant.email or "").strip().lower()
    return email in (principal.email.strip().lower(), principal.username.strip().lower())
