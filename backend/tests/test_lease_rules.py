# backend/tests/test_lease_rules.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from tenanttrack.errors import ConflictError, ValidationError
from tenanttrack.models import Lease, LeaseStatus
from tenanttrack.services.lease_rules import (
    MSG_MIN_DURATION,
    MSG_NEGATIVE_DEPOSIT,
    MSG_NEGATIVE_RENT,
    MSG_START_BEFORE_END,
    MSG_TENANT_HAS_LEASE,
    ensure_single_live_lease,
    live_lease_for_tenant,
    validate_lease_terms,
)


def _terms(**over):
    base = dict(start_date=date(2026, 1, 1), end_date=date(2026, 12, 31), rent=Decimal("1000"), deposit=Decimal("500"))
    base.update(over)
    return base


def test_valid_terms_pass():
    validate_lease_terms(**_terms())


def test_four_month_lease_is_rejected():
    with pytest.raises(ValidationError) as e:
        validate_lease_terms(**_terms(start_date=date(2025, 1, 1), end_date=date(2025, 5, 1)))
    assert str(e.value) == MSG_MIN_DURATION


def test_exactly_minimum_duration_passes():
    validate_lease_terms(**_terms(start_date=date(2026, 1, 1), end_date=date(2026, 6, 30)))


@pytest.mark.parametrize(
    "over, message",
    [
        ({"end_date": date(2026, 1, 1)}, MSG_START_BEFORE_END),
        ({"end_date": date(2025, 12, 1)}, MSG_START_BEFORE_END),
        ({"rent": Decimal("-1")}, MSG_NEGATIVE_RENT),
        ({"deposit": Decimal("-0.01")}, MSG_NEGATIVE_DEPOSIT),
    ],
)
def test_each_guard_has_its_message(over, message):
    with pytest.raises(ValidationError) as e:
        validate_lease_terms(**_terms(**over))
    assert e.value.message == message


def test_guards_report_the_first_violation():
    # both the dates and the rent are wrong; dates are checked first
    with pytest.raises(ValidationError) as e:
        validate_lease_terms(**_terms(end_date=date(2025, 1, 1), rent=Decimal("-5")))
    assert e.value.message == MSG_START_BEFORE_END

    with pytest.raises(ValidationError) as e:
        validate_lease_terms(**_terms(end_date=date(2026, 2, 1), rent=Decimal("-5")))
    assert e.value.message == MSG_MIN_DURATION


def test_zero_rent_and_deposit_are_allowed():
    validate_lease_terms(**_terms(rent=Decimal("0"), deposit=Decimal("0")))


def _lease(db, tenant_id: int, status: LeaseStatus) -> Lease:
    row = Lease(
        tenant_id=tenant_id,
        start_date=date(2026, 1, 1),
        end_date=date(2026, 12, 31),
        rent=Decimal("1000"),
        deposit=Decimal("0"),
        status=status,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def test_closed_leases_do_not_block_a_new_one(db, world):
    for status in (LeaseStatus.DENIED, LeaseStatus.EXPIRED, LeaseStatus.TERMINATED):
        _lease(db, world.tenant_id, status)
    assert live_lease_for_tenant(db, world.tenant_id) is None
    ensure_single_live_lease(db, tenant_id=world.tenant_id)


@pytest.mark.parametrize(
    "status",
    [LeaseStatus.PENDING, LeaseStatus.APPROVED_AWAITING_PAYMENT, LeaseStatus.ACTIVE],
)
def test_live_lease_blocks_another(db, world, status):
    row = _lease(db, world.tenant_id, status)
    with pytest.raises(ConflictError) as e:
        ensure_single_live_lease(db, tenant_id=world.tenant_id)
    assert e.value.message == MSG_TENANT_HAS_LEASE
    assert e.value.details["conflict_lease_id"] == row.id

    # the lease itself is not a conflict when it is being edited
    ensure_single_live_lease(db, tenant_id=world.tenant_id, ignore_lease_id=row.id)
