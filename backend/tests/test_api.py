# backend/tests/test_api.py
from __future__ import annotations

from decimal import Decimal

from tenanttrack.db import SessionLocal
from tenanttrack.models import Unit, UnitStatus
from tenanttrack.services.lease_rules import MSG_MIN_DURATION

TERMS = {"start_date": "2026-01-01", "end_date": "2026-12-31", "rent": "1000.00", "deposit": "500.00"}


def _unit_status(unit_id: int) -> UnitStatus:
    s = SessionLocal()
    try:
        return s.get(Unit, unit_id).status
    finally:
        s.close()


def _apply(client, as_user, tenant_id: int, email: str = "tenant@t.local") -> dict:
    r = client.post("/api/leases", json={"tenant_id": tenant_id, **TERMS}, headers=as_user(email))
    assert r.status_code == 201, r.text
    return r.json()


# -------------------- ops --------------------

def test_health_and_request_id(client):
    r = client.get("/api/health", headers={"X-Request-ID": "abc-123"})
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.headers["X-Request-ID"] == "abc-123"


def test_metrics_exposes_counters(client, world, as_user):
    _apply(client, as_user, world.tenant_id)
    r = client.get("/api/metrics")
    assert r.status_code == 200
    assert "tenanttrack_lease_created 1" in r.text


# -------------------- visibility --------------------

def test_maintenance_user_without_staff_row_lists_no_tenants(client, world, as_user):
    r = client.get("/api/tenants", headers=as_user("newfix@t.local", "Maintenance"))
    assert r.status_code == 200
    assert r.json() == []


def test_anonymous_listing_is_empty_and_detail_needs_auth(client, world):
    r = client.get("/api/tenants")
    assert r.status_code == 200
    assert r.json() == []

    r = client.get(f"/api/tenants/{world.tenant_id}")
    assert r.status_code == 401
    assert r.json()["code"] == "not_authenticated"


def test_landlord_tenant_listing_is_scoped(client, world, as_user):
    r = client.get("/api/tenants", headers=as_user("landlord@t.local"))
    assert [t["id"] for t in r.json()] == [world.tenant_id]
    assert r.json()[0]["unit_number"] == "101"


def test_missing_lease_is_404_and_foreign_lease_is_403(client, world, as_user):
    other = _apply(client, as_user, world.other_tenant_id, email="other@t.local")

    r = client.get("/api/leases/99999", headers=as_user("landlord@t.local"))
    assert r.status_code == 404

    r = client.get(f"/api/leases/{other['id']}", headers=as_user("landlord@t.local"))
    assert r.status_code == 403
    assert r.json()["code"] == "forbidden"

    r = client.get(f"/api/leases/{other['id']}", headers=as_user("landlord2@t.local"))
    assert r.status_code == 200


# -------------------- lease + payment flow --------------------

def test_apply_approve_pay_activates_lease(client, world, as_user, gateway):
    lease = _apply(client, as_user, world.tenant_id)
    assert lease["status"] == "Pending"
    assert lease["unit_number"] == "101"

    r = client.post(
        f"/api/leases/{lease['id']}/approve",
        json={"start_date": "2026-01-01", "end_date": "2026-12-31", "deposit": "500.00"},
        headers=as_user("landlord@t.local"),
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "Approved-AwaitingPayment"

    r = client.post(f"/api/payments/lease/{lease['id']}/create-intent", headers=as_user("tenant@t.local"))
    assert r.status_code == 200, r.text
    assert Decimal(r.json()["amount"]) == Decimal("1500.00")

    intent_id = list(gateway.intents)[-1]
    gateway.settle(intent_id)
    body = {"payment_intent_id": intent_id, "amount": "1500.00"}

    r = client.post(f"/api/payments/lease/{lease['id']}/confirm", json=body, headers=as_user("tenant@t.local"))
    assert r.status_code == 200, r.text
    payment = r.json()
    assert payment["status"] == "Paid"
    assert payment["method"] == "Card"
    assert Decimal(payment["amount"]) == Decimal("1500.00")

    r = client.get(f"/api/leases/{lease['id']}", headers=as_user("tenant@t.local"))
    assert r.json()["status"] == "Active"
    assert _unit_status(world.unit_id) is UnitStatus.RENTED

    # confirming again hands back the same payment
    r = client.post(f"/api/payments/lease/{lease['id']}/confirm", json=body, headers=as_user("tenant@t.local"))
    assert r.json()["id"] == payment["id"]
    r = client.get("/api/payments", headers=as_user("tenant@t.local"))
    assert len(r.json()) == 1

    # the same intent id replayed by another tenant
    r = client.post("/api/payments/rent/confirm", json=body, headers=as_user("other@t.local"))
    assert r.status_code == 403
    assert r.json()["code"] == "forbidden"


def test_confirm_with_wrong_amount_is_400(client, world, as_user, gateway):
    lease = _apply(client, as_user, world.tenant_id)
    client.post(
        f"/api/leases/{lease['id']}/approve",
        json={"start_date": "2026-01-01", "end_date": "2026-12-31", "deposit": "500.00"},
        headers=as_user("landlord@t.local"),
    )
    client.post(f"/api/payments/lease/{lease['id']}/create-intent", headers=as_user("tenant@t.local"))
    intent_id = list(gateway.intents)[-1]
    gateway.settle(intent_id)

    r = client.post(
        f"/api/payments/lease/{lease['id']}/confirm",
        json={"payment_intent_id": intent_id, "amount": "1000.00"},
        headers=as_user("tenant@t.local"),
    )
    assert r.status_code == 400
    assert r.json() == {"detail": "Payment amount does not match the expected charge.", "code": "validation_error"}


def test_gateway_outage_is_503_and_retryable(client, world, as_user, gateway):
    lease = _apply(client, as_user, world.tenant_id)
    client.post(
        f"/api/leases/{lease['id']}/approve",
        json={"start_date": "2026-01-01", "end_date": "2026-12-31", "deposit": "500.00"},
        headers=as_user("landlord@t.local"),
    )
    client.post(f"/api/payments/lease/{lease['id']}/create-intent", headers=as_user("tenant@t.local"))
    intent_id = list(gateway.intents)[-1]
    gateway.settle(intent_id)
    gateway.down = True

    r = client.post(
        f"/api/payments/lease/{lease['id']}/confirm",
        json={"payment_intent_id": intent_id, "amount": "1500.00"},
        headers=as_user("tenant@t.local"),
    )
    assert r.status_code == 503
    assert r.json()["retryable"] is True
    assert r.json()["code"] == "gateway_error"


def test_short_lease_is_rejected(client, world, as_user):
    r = client.post(
        "/api/leases",
        json={"tenant_id": world.tenant_id, "start_date": "2025-01-01", "end_date": "2025-05-01", "rent": "1000"},
        headers=as_user("tenant@t.local"),
    )
    assert r.status_code == 400
    assert r.json()["detail"] == MSG_MIN_DURATION


def test_tenant_cannot_seed_an_active_lease(client, world, as_user):
    r = client.post(
        "/api/leases",
        json={"tenant_id": world.tenant_id, **TERMS, "status": "Active"},
        headers=as_user("tenant@t.local"),
    )
    assert r.status_code == 403


# -------------------- portfolio guards --------------------

def test_duplicate_unit_number_is_400(client, world, as_user):
    r = client.post(
        "/api/units",
        json={"property_id": world.property_id, "unit_number": " 101 "},
        headers=as_user("landlord@t.local"),
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Unit number already exists for this property."


def test_new_unit_cannot_start_rented(client, world, as_user):
    r = client.post(
        "/api/units",
        json={"property_id": world.property_id, "unit_number": "103", "status": "Rented"},
        headers=as_user("landlord@t.local"),
    )
    assert r.status_code == 201
    assert r.json()["status"] == "Available"


def test_unit_with_tenants_cannot_be_deleted(client, world, as_user):
    r = client.delete(f"/api/units/{world.unit_id}", headers=as_user("landlord@t.local"))
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot delete unit while tenants are assigned to it."

    r = client.delete(f"/api/units/{world.spare_unit_id}", headers=as_user("landlord@t.local"))
    assert r.status_code == 204


def test_tenant_with_payments_cannot_be_deleted(client, world, as_user):
    r = client.post(
        "/api/payments",
        json={"tenant_id": world.tenant_id, "amount": "250.00"},
        headers=as_user("landlord@t.local"),
    )
    assert r.status_code == 201, r.text

    r = client.delete(f"/api/tenants/{world.tenant_id}", headers=as_user("landlord@t.local"))
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot delete tenant with existing payments, leases, or maintenance requests."


def test_moving_a_tenant_frees_the_old_unit(client, world, as_user):
    body = {
        "unit_id": world.spare_unit_id,
        "first_name": "Tia",
        "last_name": "Tenant",
        "email": "tenant@t.local",
    }
    r = client.put(f"/api/tenants/{world.tenant_id}", json=body, headers=as_user("landlord@t.local"))
    assert r.status_code == 200, r.text
    assert r.json()["unit_number"] == "102"

    assert _unit_status(world.unit_id) is UnitStatus.AVAILABLE
    assert _unit_status(world.spare_unit_id) is UnitStatus.RENTED


def test_tenant_role_cannot_create_tenants(client, world, as_user):
    body = {"unit_id": world.spare_unit_id, "first_name": "X", "last_name": "Y", "email": "xy@t.local"}
    r = client.post("/api/tenants", json=body, headers=as_user("tenant@t.local"))
    assert r.status_code == 403

    r = client.post("/api/tenants", json={**body, "unit_id": None}, headers=as_user("landlord@t.local"))
    assert r.status_code == 400
    assert r.json()["detail"] == "Tenant must be assigned to a unit."
