# backend/tenanttrack/services/lease_state_machine.py
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Principal
from ..domain.audit import audit_write, lease_snapshot
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..models import (
    CLOSED_LEASE_STATUSES,
    _utcnow,
    ActorKind,
    Lease,
    LeaseStatus,
    Tenant,
    UnitStatus,
)
from . import notifications
from .lease_rules import (
    MSG_TENANT_ASSIGNED,
    MSG_TENANT_HAS_LEASE,
    ensure_single_live_lease,
    validate_lease_terms,
)
from .occupancy import refresh_for_lease, refresh_units
from .ownership import (
    is_landlord_or_admin,
    is_tenant_of,
    must_get_lease,
    must_get_tenant,
    owns_property,
    require_landlord_or_admin,
    tenant_property,
)
from .role_scope import effective_kind
from .runtime_metrics import METRICS

log = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Lease state machine
# -----------------------------------------------------------------------------
#   Pending -> Approved-AwaitingPayment -> Active -> Expired | Terminated
#   Pending -> Denied
#
# Activation only happens through the payment reconciler (activate_lease),
# which owns the surrounding transaction. Every other transition here commits
# its own change together with the occupancy refresh and the audit row, then
# sends notifications.
# -----------------------------------------------------------------------------

TRANSITIONS: dict[LeaseStatus, frozenset[LeaseStatus]] = {
    LeaseStatus.PENDING: frozenset({LeaseStatus.APPROVED_AWAITING_PAYMENT, LeaseStatus.DENIED}),
    LeaseStatus.APPROVED_AWAITING_PAYMENT: frozenset({LeaseStatus.ACTIVE}),
    LeaseStatus.ACTIVE: frozenset({LeaseStatus.EXPIRED, LeaseStatus.TERMINATED}),
}

# Statuses a landlord may put on a lease they enter directly.
SEEDABLE_STATUSES = (
    LeaseStatus.PENDING,
    LeaseStatus.APPROVED_AWAITING_PAYMENT,
    LeaseStatus.ACTIVE,
)


def can_transition(current: LeaseStatus, target: LeaseStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def _transition(
    db: Session,
    lease: Lease,
    target: LeaseStatus,
    *,
    actor_user_id: Optional[int],
    message: str,
) -> Lease:
    if not can_transition(lease.status, target):
        raise ValidationError(message, current=lease.status.value, target=target.value)

    before = lease_snapshot(lease)
    lease.status = target
    now = _utcnow()
    if target is LeaseStatus.APPROVED_AWAITING_PAYMENT:
        lease.approved_at = now
    elif target is LeaseStatus.ACTIVE:
        lease.activated_at = now
    elif target in CLOSED_LEASE_STATUSES:
        lease.closed_at = now

    db.add(lease)
    db.flush()

    audit_write(
        db,
        actor_user_id=actor_user_id,
        action=f"lease.{target.value.lower()}",
        entity_type="Lease",
        entity_id=lease.id,
        before=before,
        after=lease_snapshot(lease),
    )
    METRICS.inc(f"lease.transition.{target.value.lower()}")
    log.info(
        "lease %s -> %s",
        before["status"].value,
        target.value,
        extra={"lease_id": lease.id, "user_id": actor_user_id},
    )
    return lease


def _get_lease(db: Session, lease_id: int) -> Lease:
    lease = db.get(Lease, lease_id, populate_existing=True)
    if lease is None:
        raise NotFoundError("Lease not found")
    return lease


def _authorize_owner_action(principal: Principal, lease: Lease) -> None:
    """Admins, or the landlord owning the property of the tenant's unit."""
    if not owns_property(principal, tenant_property(lease.tenant)):
        raise AuthorizationError("Only the landlord of this property may manage this lease")


def _landlord_email(tenant: Tenant) -> Optional[str]:
    prop = tenant_property(tenant)
    if prop is None or prop.owner is None:
        return None
    return prop.owner.email


def _tenant_payload(lease: Lease, **extra) -> dict:
    tenant = lease.tenant
    prop = tenant_property(tenant)
    payload = {
        "lease_id": lease.id,
        "tenant_name": tenant.full_name,
        "unit_number": tenant.unit_number,
        "property_name": prop.name if prop is not None else "Property",
        "start_date": lease.start_date.isoformat(),
        "end_date": lease.end_date.isoformat(),
        "rent": str(lease.rent),
        "deposit": str(lease.deposit),
    }
    payload.update(extra)
    return payload


# -----------------------------------------------------------------------------
# Create / update / delete
# -----------------------------------------------------------------------------
def create_lease(
    db: Session,
    principal: Principal,
    *,
    tenant_id: int,
    start_date: date,
    end_date: date,
    rent: Decimal,
    deposit: Decimal,
    status: Optional[LeaseStatus] = None,
    notifier: Optional[notifications.Notifier] = None,
) -> Lease:
    """
    A tenant's rental application, or a lease a landlord enters directly.

    Only landlords/admins may seed a status; everyone else gets Pending.
    """
    if effective_kind(principal) not in (ActorKind.ADMIN, ActorKind.LANDLORD, ActorKind.TENANT):
        raise AuthorizationError("You are not allowed to create leases")

    tenant = must_get_tenant(db, principal, tenant_id)

    if status is not None and status is not LeaseStatus.PENDING:
        if not is_landlord_or_admin(principal):
            raise AuthorizationError("Only landlords or admins may set a lease status")
        if status not in SEEDABLE_STATUSES:
            raise ValidationError(f"A new lease cannot start as {status.value}.")
        if tenant.unit_id is None:
            raise ValidationError("Tenant must be assigned to a unit first.")

    validate_lease_terms(start_date=start_date, end_date=end_date, rent=rent, deposit=deposit)
    ensure_single_live_lease(db, tenant_id=tenant.id, message=MSG_TENANT_HAS_LEASE)

    now = _utcnow()
    seeded = status or LeaseStatus.PENDING
    lease = Lease(
        tenant_id=tenant.id,
        start_date=start_date,
        end_date=end_date,
        rent=Decimal(str(rent)),
        deposit=Decimal(str(deposit)),
        status=seeded,
        approved_at=now if seeded is not LeaseStatus.PENDING else None,
        activated_at=now if seeded is LeaseStatus.ACTIVE else None,
    )
    db.add(lease)
    db.flush()

    # a new live lease re-binds a unit a closed lease had freed
    refresh_for_lease(db, lease)

    audit_write(
        db,
        actor_user_id=principal.user_id,
        action="lease.create",
        entity_type="Lease",
        entity_id=lease.id,
        before=None,
        after=lease_snapshot(lease),
    )
    db.commit()
    db.refresh(lease)
    METRICS.inc("lease.created")
    log.info("lease created as %s", seeded.value, extra={"lease_id": lease.id, "tenant_id": tenant.id})

    if seeded is LeaseStatus.PENDING:
        notifications.send(
            notifier or notifications.get_notifier(),
            notifications.APPLICATION_SUBMITTED,
            _landlord_email(tenant),
            {"tenant_name": tenant.full_name, "unit_number": tenant.unit_number, "lease_id": lease.id},
        )
    return lease


def update_lease(
    db: Session,
    principal: Principal,
    lease_id: int,
    *,
    tenant_id: int,
    start_date: date,
    end_date: date,
    rent: Decimal,
    deposit: Decimal,
) -> Lease:
    require_landlord_or_admin(principal)
    lease = must_get_lease(db, principal, lease_id)

    if lease.status in CLOSED_LEASE_STATUSES:
        raise ValidationError("Only open leases can be edited.")

    old_unit_id = lease.tenant.unit_id if lease.tenant is not None else None
    if int(tenant_id) != int(lease.tenant_id):
        must_get_tenant(db, principal, tenant_id)

    validate_lease_terms(start_date=start_date, end_date=end_date, rent=rent, deposit=deposit)
    ensure_single_live_lease(db, tenant_id=tenant_id, ignore_lease_id=lease.id, message=MSG_TENANT_ASSIGNED)

    before = lease_snapshot(lease)
    lease.tenant_id = int(tenant_id)
    lease.start_date = start_date
    lease.end_date = end_date
    lease.rent = Decimal(str(rent))
    lease.deposit = Decimal(str(deposit))
    db.add(lease)
    db.flush()
    db.refresh(lease)

    refresh_units(db, [old_unit_id, lease.tenant.unit_id])

    audit_write(
        db,
        actor_user_id=principal.user_id,
        action="lease.update",
        entity_type="Lease",
        entity_id=lease.id,
        before=before,
        after=lease_snapshot(lease),
    )
    db.commit()
    db.refresh(lease)
    return lease


def delete_lease(db: Session, principal: Principal, lease_id: int) -> None:
    """
    Permitted in any state for landlords/admins; a tenant may withdraw their
    own application while it is still Pending.
    """
    lease = must_get_lease(db, principal, lease_id)
    if not is_landlord_or_admin(principal):
        if not (is_tenant_of(principal, lease.tenant) and lease.status is LeaseStatus.PENDING):
            raise AuthorizationError("Only pending applications can be withdrawn by the tenant")

    unit_id = lease.tenant.unit_id if lease.tenant is not None else None
    audit_write(
        db,
        actor_user_id=principal.user_id,
        action="lease.delete",
        entity_type="Lease",
        entity_id=lease.id,
        before=lease_snapshot(lease),
        after=None,
    )
    db.delete(lease)
    db.flush()

    refresh_units(db, [unit_id])
    db.commit()
    METRICS.inc("lease.deleted")


# -----------------------------------------------------------------------------
# Transitions
# -----------------------------------------------------------------------------
def approve_lease(
    db: Session,
    principal: Principal,
    lease_id: int,
    *,
    start_date: date,
    end_date: date,
    deposit: Decimal,
    notifier: Optional[notifications.Notifier] = None,
) -> Lease:
    """Pending -> Approved-AwaitingPayment, with the final dates and deposit."""
    lease = _get_lease(db, lease_id)
    require_landlord_or_admin(principal)
    # an unbound tenant has no property, so ownership cannot be decided yet
    if lease.tenant.unit_id is None:
        raise ValidationError("Tenant must be assigned to a unit first.")
    _authorize_owner_action(principal, lease)

    if lease.status is not LeaseStatus.PENDING:
        raise ValidationError("Only pending leases can be approved")

    validate_lease_terms(start_date=start_date, end_date=end_date, rent=lease.rent, deposit=deposit)

    lease.start_date = start_date
    lease.end_date = end_date
    lease.deposit = Decimal(str(deposit))
    _transition(
        db,
        lease,
        LeaseStatus.APPROVED_AWAITING_PAYMENT,
        actor_user_id=principal.user_id,
        message="Only pending leases can be approved",
    )
    db.commit()
    db.refresh(lease)

    notifications.send(
        notifier or notifications.get_notifier(),
        notifications.LEASE_APPROVED,
        lease.tenant.email,
        _tenant_payload(lease, amount_due=str(lease.amount_due_at_signing)),
    )
    return lease


def deny_lease(
    db: Session,
    principal: Principal,
    lease_id: int,
    *,
    reason: Optional[str] = None,
    notifier: Optional[notifications.Notifier] = None,
) -> Lease:
    lease = _get_lease(db, lease_id)
    _authorize_owner_action(principal, lease)

    if lease.status is not LeaseStatus.PENDING:
        raise ValidationError("Only pending leases can be denied")

    lease.denial_reason = (reason or "").strip() or None
    _transition(
        db,
        lease,
        LeaseStatus.DENIED,
        actor_user_id=principal.user_id,
        message="Only pending leases can be denied",
    )
    refresh_for_lease(db, lease)
    db.commit()
    db.refresh(lease)

    notifications.send(
        notifier or notifications.get_notifier(),
        notifications.LEASE_DENIED,
        lease.tenant.email,
        _tenant_payload(lease, reason=lease.denial_reason),
    )
    return lease


def activate_lease(db: Session, lease: Lease, *, actor_user_id: Optional[int]) -> Lease:
    """
    Approved-AwaitingPayment -> Active and mark the unit Rented.

    Called by the payment reconciler only. Flushes, never commits: the
    payment row, the lease and the unit land in the caller's transaction.
    """
    if lease.tenant is None or lease.tenant.unit_id is None:
        raise ValidationError("Tenant must be assigned to a unit first.")

    _transition(
        db,
        lease,
        LeaseStatus.ACTIVE,
        actor_user_id=actor_user_id,
        message="Only leases awaiting payment can be activated",
    )
    unit = refresh_for_lease(db, lease)
    if unit is None or unit.status is not UnitStatus.RENTED:
        raise ValidationError("Unit could not be marked as rented.")
    return lease


def terminate_lease(
    db: Session,
    principal: Principal,
    lease_id: int,
    *,
    reason: Optional[str] = None,
    notifier: Optional[notifications.Notifier] = None,
) -> Lease:
    lease = _get_lease(db, lease_id)
    _authorize_owner_action(principal, lease)

    if lease.status is not LeaseStatus.ACTIVE:
        raise ValidationError("Only active leases can be terminated")

    _transition(
        db,
        lease,
        LeaseStatus.TERMINATED,
        actor_user_id=principal.user_id,
        message="Only active leases can be terminated",
    )
    refresh_for_lease(db, lease)
    db.commit()
    db.refresh(lease)

    notifications.send(
        notifier or notifications.get_notifier(),
        notifications.LEASE_TERMINATED,
        lease.tenant.email,
        _tenant_payload(lease, reason=(reason or "").strip() or None),
    )
    return lease


def expire_due_leases(db: Session, *, today: Optional[date] = None) -> list[int]:
    """Active leases whose end date has passed become Expired. Returns their ids."""
    today = today or date.today()
    due = db.scalars(
        select(Lease)
        .where(Lease.status == LeaseStatus.ACTIVE, Lease.end_date < today)
        .order_by(Lease.id)
    ).all()

    expired: list[int] = []
    for lease in due:
        _transition(
            db,
            lease,
            LeaseStatus.EXPIRED,
            actor_user_id=None,
            message="Only active leases can expire",
        )
        refresh_for_lease(db, lease)
        expired.append(int(lease.id))

    db.commit()
    if expired:
        log.info("expired %d lease(s)", len(expired))
    return expired
