# backend/tenanttrack/services/role_scope.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from sqlalchemy import Select, false, func, or_, select, true
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from ..auth import Principal
from ..config import settings
from ..models import (
    ActorKind,
    Lease,
    MaintenanceRequest,
    Payment,
    Property,
    Staff,
    Tenant,
    Unit,
)

# -----------------------------------------------------------------------------
# Role scope resolver
# -----------------------------------------------------------------------------
# Every list/detail query over tenants, leases, payments and maintenance
# requests goes through here. Resolution happens in two steps:
#
#   1) scope_for(...)   pure: (actor kind, entity, staff assignment) -> RowScope
#   2) predicate(...)   RowScope -> SQL boolean over the entity's table
#
# Only resolve_scope touches the database, and only for the staff lookup a
# Maintenance caller needs. Nothing here raises: an unmatched caller gets the
# Nothing scope and therefore an empty result.
# -----------------------------------------------------------------------------


class EntityKind(str, Enum):
    TENANTS = "tenants"
    LEASES = "leases"
    PAYMENTS = "payments"
    MAINTENANCE_REQUESTS = "maintenance_requests"


@dataclass(frozen=True)
class Unrestricted:
    pass


@dataclass(frozen=True)
class OwnedBy:
    """Rows whose tenant's unit sits in a property owned by this user."""

    owner_user_id: int


@dataclass(frozen=True)
class AtProperty:
    """Rows whose tenant's unit sits in this property."""

    property_id: int


@dataclass(frozen=True)
class OwnRecords:
    """Rows whose tenant email matches the caller's email or username."""

    email: str
    username: str


@dataclass(frozen=True)
class Nothing:
    pass


RowScope = Union[Unrestricted, OwnedBy, AtProperty, OwnRecords, Nothing]

# Admin wins over everything; a landlord who also rents keeps landlord scope.
KIND_PRECEDENCE = (ActorKind.ADMIN, ActorKind.LANDLORD, ActorKind.MAINTENANCE, ActorKind.TENANT)


def effective_kind(principal: Principal) -> Optional[ActorKind]:
    for kind in KIND_PRECEDENCE:
        if principal.has(kind):
            return kind
    return None


def scope_for(
    principal: Optional[Principal],
    entity: EntityKind,
    *,
    staff_property_id: Optional[int] = None,
    allow_anonymous: bool = False,
) -> RowScope:
    if principal is None:
        return Unrestricted() if allow_anonymous else Nothing()

    kind = effective_kind(principal)

    if kind is ActorKind.ADMIN:
        return Unrestricted()

    if kind is ActorKind.LANDLORD:
        return OwnedBy(owner_user_id=principal.user_id)

    if kind is ActorKind.MAINTENANCE:
        if staff_property_id is None:
            return Nothing()
        if entity is EntityKind.TENANTS:
            return Unrestricted()
        return AtProperty(property_id=staff_property_id)

    if kind is ActorKind.TENANT:
        return OwnRecords(email=principal.email.lower(), username=principal.username.lower())

    return Nothing()


def staff_property_for(db: Session, email: str) -> Optional[int]:
    row = db.scalar(select(Staff).where(func.lower(Staff.email) == email.strip().lower()))
    return int(row.property_id) if row is not None and row.property_id is not None else None


def resolve_scope(db: Session, principal: Optional[Principal], entity: EntityKind) -> RowScope:
    staff_property_id = None
    if principal is not None and effective_kind(principal) is ActorKind.MAINTENANCE:
        staff_property_id = staff_property_for(db, principal.email)

    return scope_for(
        principal,
        entity,
        staff_property_id=staff_property_id,
        allow_anonymous=settings.allow_anonymous_listing,
    )


# -----------------------------------------------------------------------------
# SQL side
# -----------------------------------------------------------------------------
def _tenant_ids(scope: RowScope) -> Select:
    q = select(Tenant.id)
    if isinstance(scope, OwnedBy):
        return (
            q.join(Unit, Tenant.unit_id == Unit.id)
            .join(Property, Unit.property_id == Property.id)
            .where(Property.owner_user_id == scope.owner_user_id)
        )
    if isinstance(scope, AtProperty):
        return q.join(Unit, Tenant.unit_id == Unit.id).where(Unit.property_id == scope.property_id)
    if isinstance(scope, OwnRecords):
        email = func.lower(Tenant.email)
        return q.where(or_(email == scope.email, email == scope.username))
    raise TypeError(f"scope {scope!r} has no tenant subquery")


_TENANT_FK = {
    EntityKind.TENANTS: Tenant.id,
    EntityKind.LEASES: Lease.tenant_id,
    EntityKind.PAYMENTS: Payment.tenant_id,
    EntityKind.MAINTENANCE_REQUESTS: MaintenanceRequest.tenant_id,
}


def predicate(entity: EntityKind, scope: RowScope) -> ColumnElement[bool]:
    if isinstance(scope, Unrestricted):
        return true()
    if isinstance(scope, Nothing):
        return false()
    return _TENANT_FK[entity].in_(_tenant_ids(scope))


def apply_scope(stmt: Select, entity: EntityKind, scope: RowScope) -> Select:
    if isinstance(scope, Unrestricted):
        return stmt
    return stmt.where(predicate(entity, scope))


def scoped_select(db: Session, principal: Optional[Principal], entity: EntityKind, model) -> Select:
    """select(model) narrowed to what the caller may see."""
    return apply_scope(select(model), entity, resolve_scope(db, principal, entity))
