# backend/tenanttrack/domain/audit.py
from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import AuditEvent, Lease, Payment, _utcnow


def _default(v: Any) -> Any:
    if isinstance(v, Enum):
        return v.value
    if isinstance(v, Decimal):
        return str(v)
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    return str(v)


def _dumps(v: Optional[dict[str, Any]]) -> Optional[str]:
    if v is None:
        return None
    return json.dumps(v, sort_keys=True, default=_default)


def lease_snapshot(row: Lease) -> dict[str, Any]:
    return {
        "id": row.id,
        "tenant_id": row.tenant_id,
        "status": row.status,
        "start_date": row.start_date,
        "end_date": row.end_date,
        "rent": row.rent,
        "deposit": row.deposit,
    }


def payment_snapshot(row: Payment) -> dict[str, Any]:
    return {
        "id": row.id,
        "tenant_id": row.tenant_id,
        "lease_id": row.lease_id,
        "amount": row.amount,
        "status": row.status,
        "method": row.method,
        "gateway_transaction_id": row.gateway_transaction_id,
    }


def audit_write(
    db: Session,
    *,
    actor_user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Any,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """
    Adds an audit row to the current transaction.

    Never commits: the row lands together with the change it describes, or not at all.
    """
    row = AuditEvent(
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        before_json=_dumps(before),
        after_json=_dumps(after),
        created_at=_utcnow(),
    )
    db.add(row)
    return row
