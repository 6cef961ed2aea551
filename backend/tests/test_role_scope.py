# backend/tests/test_role_scope.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from tenanttrack.auth import Principal
from tenanttrack.errors import AuthorizationError, NotFoundError
from tenanttrack.models import ActorKind, Lease, LeaseStatus, MaintenanceRequest, Payment, PaymentStatus, Tenant
from tenanttrack.services.ownership import must_get_lease, must_get_tenant
from tenanttrack.services.role_scope import (
    AtProperty,
    EntityKind,
    Nothing,
    OwnedBy,
    OwnRecords,
    Unrestricted,
    effective_kind,
    resolve_scope,
    scope_for,
    scoped_select,
)


def _p(*kinds: ActorKind, email: str = "someone@t.local", user_id: int = 7) -> Principal:
    return Principal(user_id=user_id, email=email, username=email, kinds=frozenset(kinds))


# -------------------- pure resolution --------------------

def test_anonymous_gets_nothing_unless_enabled():
    assert scope_for(None, EntityKind.TENANTS) == Nothing()
    assert scope_for(None, EntityKind.TENANTS, allow_anonymous=True) == Unrestricted()


def test_admin_is_unrestricted_for_every_entity():
    for entity in EntityKind:
        assert scope_for(_p(ActorKind.ADMIN), entity) == Unrestricted()


def test_landlord_is_scoped_to_owned_properties():
    assert scope_for(_p(ActorKind.LANDLORD, user_id=42), EntityKind.LEASES) == OwnedBy(owner_user_id=42)


def test_maintenance_without_staff_row_sees_nothing():
    for entity in EntityKind:
        assert scope_for(_p(ActorKind.MAINTENANCE), entity) == Nothing()


def test_maintenance_with_staff_row():
    p = _p(ActorKind.MAINTENANCE)
    assert scope_for(p, EntityKind.TENANTS, staff_property_id=3) == Unrestricted()
    assert scope_for(p, EntityKind.LEASES, staff_property_id=3) == AtProperty(property_id=3)
    assert scope_for(p, EntityKind.PAYMENTS, staff_property_id=3) == AtProperty(property_id=3)
    assert scope_for(p, EntityKind.MAINTENANCE_REQUESTS, staff_property_id=3) == AtProperty(property_id=3)


def test_tenant_sees_own_records_case_insensitively():
    p = _p(ActorKind.TENANT, email="Tia@T.Local")
    assert scope_for(p, EntityKind.PAYMENTS) == OwnRecords(email="tia@t.local", username="tia@t.local")


def test_principal_without_roles_sees_nothing():
    assert scope_for(_p(), EntityKind.TENANTS) == Nothing()


@pytest.mark.parametrize(
    "kinds, expected",
    [
        ((ActorKind.TENANT, ActorKind.ADMIN), ActorKind.ADMIN),
        ((ActorKind.TENANT, ActorKind.LANDLORD), ActorKind.LANDLORD),
        ((ActorKind.MAINTENANCE, ActorKind.LANDLORD), ActorKind.LANDLORD),
        ((ActorKind.TENANT, ActorKind.MAINTENANCE), ActorKind.MAINTENANCE),
    ],
)
def test_kind_precedence(kinds, expected):
    assert effective_kind(_p(*kinds)) is expected


# -------------------- against the database --------------------

def _ids(db, principal, entity, model) -> set[int]:
    return {row.id for row in db.scalars(scoped_select(db, principal, entity, model)).all()}


def _lease(db, tenant_id: int) -> Lease:
    row = Lease(
        tenant_id=tenant_id,
        start_date=date(2026, 1, 1),
        end_date=date(2026, 12, 31),
        rent=Decimal("1000"),
        deposit=Decimal("0"),
        status=LeaseStatus.ACTIVE,
    )
    db.add(row)
    db.commit()
    return row


def test_landlord_lists_only_their_tenants(db, world):
    assert _ids(db, world.landlord, EntityKind.TENANTS, Tenant) == {world.tenant_id}
    assert _ids(db, world.other_landlord, EntityKind.TENANTS, Tenant) == {world.other_tenant_id}
    assert _ids(db, world.admin, EntityKind.TENANTS, Tenant) == {world.tenant_id, world.other_tenant_id}


def test_tenant_lists_only_their_own_rows(db, world):
    mine = _lease(db, world.tenant_id)
    _lease(db, world.other_tenant_id)
    db.add(Payment(tenant_id=world.other_tenant_id, amount=Decimal("10"), status=PaymentStatus.PAID))
    db.commit()

    assert _ids(db, world.tenant, EntityKind.TENANTS, Tenant) == {world.tenant_id}
    assert _ids(db, world.tenant, EntityKind.LEASES, Lease) == {mine.id}
    assert _ids(db, world.tenant, EntityKind.PAYMENTS, Payment) == set()


def test_tenant_username_match(db, world):
    p = Principal(user_id=999, email="elsewhere@t.local", username="TENANT@t.local", kinds=frozenset({ActorKind.TENANT}))
    assert _ids(db, p, EntityKind.TENANTS, Tenant) == {world.tenant_id}


def test_maintenance_staff_sees_their_property(db, world):
    mine = _lease(db, world.tenant_id)
    _lease(db, world.other_tenant_id)
    db.add(MaintenanceRequest(tenant_id=world.other_tenant_id, description="leak"))
    db.commit()

    assert isinstance(resolve_scope(db, world.maintenance, EntityKind.LEASES), AtProperty)
    assert _ids(db, world.maintenance, EntityKind.LEASES, Lease) == {mine.id}
    assert _ids(db, world.maintenance, EntityKind.MAINTENANCE_REQUESTS, MaintenanceRequest) == set()
    # tenant directory is open to staff
    assert _ids(db, world.maintenance, EntityKind.TENANTS, Tenant) == {world.tenant_id, world.other_tenant_id}


def test_maintenance_without_staff_row_lists_no_tenants(db, world):
    p = Principal(user_id=998, email="nobody@t.local", username="nobody@t.local", kinds=frozenset({ActorKind.MAINTENANCE}))
    assert _ids(db, p, EntityKind.TENANTS, Tenant) == set()


def test_anonymous_listing_is_empty(db, world):
    assert _ids(db, None, EntityKind.TENANTS, Tenant) == set()


def test_missing_row_is_404_and_foreign_row_is_403(db, world):
    other = _lease(db, world.other_tenant_id)

    with pytest.raises(NotFoundError):
        must_get_lease(db, world.landlord, 12345)
    with pytest.raises(AuthorizationError):
        must_get_lease(db, world.landlord, other.id)
    with pytest.raises(AuthorizationError):
        must_get_tenant(db, world.tenant, world.other_tenant_id)

    assert must_get_lease(db, world.other_landlord, other.id).id == other.id
