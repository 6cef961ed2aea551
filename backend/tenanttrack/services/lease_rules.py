# backend/tenanttrack/services/lease_rules.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import ConflictError, ValidationError
from ..models import LIVE_LEASE_STATUSES, Lease

MSG_START_BEFORE_END = "Start date must be before end date."
MSG_MIN_DURATION = "Lease duration must be at least 6 months."
MSG_NEGATIVE_RENT = "Rent cannot be negative."
MSG_NEGATIVE_DEPOSIT = "Deposit cannot be negative."
MSG_TENANT_HAS_LEASE = "This tenant already has another lease."
MSG_TENANT_ASSIGNED = "This tenant is already assigned to another lease."


def _as_date(v: Any) -> Optional[date]:
    if v is None:
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    try:
        return date.fromisoformat(str(v))
    except ValueError:
        return None


def validate_lease_terms(*, start_date: Any, end_date: Any, rent: Any, deposit: Any) -> None:
    """
    Raise ValidationError on the first violated rule, checked in this order:
    start < end, minimum duration, rent >= 0, deposit >= 0.
    """
    s = _as_date(start_date)
    e = _as_date(end_date)
    if s is None or e is None:
        raise ValidationError("Start date and end date are required.")

    if s >= e:
        raise ValidationError(MSG_START_BEFORE_END)

    if (e - s).days < int(settings.min_lease_days):
        raise ValidationError(MSG_MIN_DURATION)

    if Decimal(str(rent)) < 0:
        raise ValidationError(MSG_NEGATIVE_RENT)

    if Decimal(str(deposit)) < 0:
        raise ValidationError(MSG_NEGATIVE_DEPOSIT)


def live_lease_for_tenant(db: Session, tenant_id: int, *, ignore_lease_id: Optional[int] = None) -> Optional[Lease]:
    q = select(Lease).where(
        Lease.tenant_id == int(tenant_id),
        Lease.status.in_(LIVE_LEASE_STATUSES),
    )
    if ignore_lease_id is not None:
        q = q.where(Lease.id != int(ignore_lease_id))
    return db.scalar(q.order_by(Lease.id.desc()).limit(1))


def ensure_single_live_lease(
    db: Session,
    *,
    tenant_id: int,
    ignore_lease_id: Optional[int] = None,
    message: str = MSG_TENANT_HAS_LEASE,
) -> None:
    """
    Raise ConflictError if the tenant already holds a live lease
    (Pending, Approved-AwaitingPayment or Active). Re-read right before the write.
    """
    existing = live_lease_for_tenant(db, tenant_id, ignore_lease_id=ignore_lease_id)
    if existing is not None:
        raise ConflictError(message, conflict_lease_id=int(existing.id))
