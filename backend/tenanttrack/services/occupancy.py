# backend/tenanttrack/services/occupancy.py
from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import CLOSED_LEASE_STATUSES, Lease, Tenant, Unit, UnitStatus
from .runtime_metrics import METRICS

log = logging.getLogger(__name__)

# Landlord-set states that a missing binding does not override.
_MANUAL_STATES = (UnitStatus.MAINTENANCE, UnitStatus.UNAVAILABLE)


def set_unit_status(db: Session, unit_id: int, status: UnitStatus) -> Unit:
    """Pure write. Callers own the invariants and the transaction."""
    unit = db.get(Unit, unit_id, populate_existing=True)
    if unit is None:
        raise ValueError(f"unit {unit_id} does not exist")

    if unit.status != status:
        log.info(
            "unit status %s -> %s",
            unit.status.value,
            status.value,
            extra={"unit_id": unit_id},
        )
        unit.status = status
        db.add(unit)
        db.flush()
        METRICS.inc(f"unit.status.{status.value.lower()}")
    return unit


def _latest_lease(db: Session, tenant_id: int) -> Optional[Lease]:
    return db.scalar(
        select(Lease).where(Lease.tenant_id == tenant_id).order_by(Lease.id.desc()).limit(1)
    )


def has_active_binding(db: Session, unit_id: int, *, ignore_tenant_id: Optional[int] = None) -> bool:
    """
    A unit is bound when some tenant references it and that tenant's most
    recent lease (if any) is not closed (Denied, Expired, Terminated).
    """
    q = select(Tenant).where(Tenant.unit_id == unit_id)
    if ignore_tenant_id is not None:
        q = q.where(Tenant.id != ignore_tenant_id)

    for tenant in db.scalars(q).all():
        lease = _latest_lease(db, tenant.id)
        if lease is None or lease.status not in CLOSED_LEASE_STATUSES:
            return True
    return False


def refresh_unit(db: Session, unit_id: Optional[int], *, ignore_tenant_id: Optional[int] = None) -> Optional[Unit]:
    """
    Re-derive a unit's occupancy from its bindings.

    Bound -> Rented. Unbound and Rented -> Available. Unbound units the
    landlord put into Maintenance/Unavailable keep that status.
    Flushes only; the caller commits.
    """
    if unit_id is None:
        return None

    db.flush()
    unit = db.get(Unit, unit_id, populate_existing=True)
    if unit is None:
        return None

    if has_active_binding(db, unit_id, ignore_tenant_id=ignore_tenant_id):
        return set_unit_status(db, unit_id, UnitStatus.RENTED)

    if unit.status in _MANUAL_STATES:
        return unit
    return set_unit_status(db, unit_id, UnitStatus.AVAILABLE)


def refresh_units(db: Session, unit_ids: Iterable[Optional[int]]) -> None:
    for unit_id in {u for u in unit_ids if u is not None}:
        refresh_unit(db, unit_id)


def refresh_for_lease(db: Session, lease: Lease) -> Optional[Unit]:
    tenant = db.get(Tenant, lease.tenant_id)
    if tenant is None:
        return None
    return refresh_unit(db, tenant.unit_id)
