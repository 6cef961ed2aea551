# backend/tests/test_maintenance_requests.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from tenanttrack.db import SessionLocal
from tenanttrack.models import MaintenanceRequest


def _file(client, as_user, tenant_id: int, email: str = "tenant@t.local"):
    return client.post(
        "/api/maintenance-requests",
        json={"tenant_id": tenant_id, "description": "Kitchen sink leaks", "priority": "High"},
        headers=as_user(email),
    )


def _staff_id(client, as_user) -> int:
    r = client.get("/api/staff", headers=as_user("landlord@t.local"))
    return r.json()[0]["id"]


def test_tenant_files_for_themselves_only(client, world, as_user):
    r = _file(client, as_user, world.tenant_id)
    assert r.status_code == 201
    assert r.json()["status"] == "Pending"

    r = _file(client, as_user, world.other_tenant_id)
    assert r.status_code == 403


def test_maintenance_staff_cannot_file(client, world, as_user):
    r = _file(client, as_user, world.tenant_id, email="fixit@t.local")
    assert r.status_code == 403


def test_staff_sees_requests_at_their_property(client, world, as_user):
    _file(client, as_user, world.tenant_id)
    _file(client, as_user, world.other_tenant_id, email="other@t.local")

    r = client.get("/api/maintenance-requests", headers=as_user("fixit@t.local"))
    assert [row["tenant_id"] for row in r.json()] == [world.tenant_id]


def test_tenant_cannot_change_status_or_assignment(client, world, as_user):
    row = _file(client, as_user, world.tenant_id).json()
    body = {"description": "Sink and faucet", "status": "Pending", "priority": "Medium", "assigned_staff_id": None}

    r = client.put(f"/api/maintenance-requests/{row['id']}", json=body, headers=as_user("tenant@t.local"))
    assert r.status_code == 200
    assert r.json()["description"] == "Sink and faucet"

    r = client.put(
        f"/api/maintenance-requests/{row['id']}",
        json={**body, "status": "Completed"},
        headers=as_user("tenant@t.local"),
    )
    assert r.status_code == 403


def test_landlord_assigns_staff_from_the_same_property(client, world, as_user):
    row = _file(client, as_user, world.tenant_id).json()
    staff_id = _staff_id(client, as_user)
    body = {"description": row["description"], "status": "InProgress", "priority": "High", "assigned_staff_id": staff_id}

    r = client.put(f"/api/maintenance-requests/{row['id']}", json=body, headers=as_user("landlord@t.local"))
    assert r.status_code == 200
    assert r.json()["assigned_staff_id"] == staff_id

    # a tenant can no longer edit once work has started
    r = client.put(
        f"/api/maintenance-requests/{row['id']}",
        json={**body, "description": "never mind"},
        headers=as_user("tenant@t.local"),
    )
    assert r.status_code == 400


def test_staff_from_another_property_is_rejected(client, world, as_user):
    row = _file(client, as_user, world.other_tenant_id, email="other@t.local").json()
    staff_id = _staff_id(client, as_user)  # works at Oak, request is at Elm
    body = {"description": row["description"], "status": "Pending", "priority": "High", "assigned_staff_id": staff_id}

    r = client.put(f"/api/maintenance-requests/{row['id']}", json=body, headers=as_user("landlord2@t.local"))
    assert r.status_code == 400
    assert r.json()["detail"] == "Staff member does not work at this property."


def test_landlord_dashboard_counts(client, world, as_user):
    _file(client, as_user, world.tenant_id)
    client.post(
        "/api/leases",
        json={"tenant_id": world.tenant_id, "start_date": "2026-01-01", "end_date": "2026-12-31", "rent": "900"},
        headers=as_user("tenant@t.local"),
    )
    client.post("/api/payments", json={"tenant_id": world.tenant_id, "amount": "120.50"}, headers=as_user("landlord@t.local"))

    r = client.get("/api/landlord/dashboard", headers=as_user("landlord@t.local"))
    assert r.status_code == 200
    data = r.json()
    assert data["properties"] == 1
    assert data["units"] == 2
    assert data["tenants"] == 1
    assert data["pending_applications"] == 1
    assert data["open_maintenance_requests"] == 1
    assert Decimal(data["paid_total"]) == Decimal("120.50")

    r = client.get("/api/landlord/dashboard", headers=as_user("tenant@t.local"))
    assert r.status_code == 403


def test_completion_is_stamped_in_naive_utc(client, world, as_user):
    row = _file(client, as_user, world.tenant_id).json()
    body = {"description": row["description"], "status": "Completed", "priority": "High", "assigned_staff_id": None}

    r = client.put(f"/api/maintenance-requests/{row['id']}", json=body, headers=as_user("landlord@t.local"))
    assert r.status_code == 200

    s = SessionLocal()
    try:
        stored = s.get(MaintenanceRequest, row["id"])
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        assert stored.completed_at is not None
        assert stored.completed_at.tzinfo is None
        assert abs(now - stored.completed_at) < timedelta(minutes=5)
        assert abs(now - stored.requested_at) < timedelta(minutes=5)
    finally:
        s.close()
