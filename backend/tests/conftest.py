# backend/tests/conftest.py
from __future__ import annotations

import os
import tempfile

# Must happen before tenanttrack.config is imported anywhere.
_DB_DIR = tempfile.mkdtemp(prefix="tenanttrack-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "test.db")
os.environ["APP_ENV"] = "test"
os.environ["AUTH_MODE"] = "dev"
os.environ.pop("STRIPE_SECRET_KEY", None)

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from tenanttrack.auth import Principal
from tenanttrack.clients.payment_gateway import (
    PaymentIntentHandle,
    PaymentIntentInfo,
    get_payment_gateway,
    to_cents,
)
from tenanttrack.db import Base, SessionLocal, engine
from tenanttrack.errors import GatewayError, IntentNotFoundError
from tenanttrack.main import create_app
from tenanttrack.models import ActorKind, AppUser, Property, Staff, Tenant, Unit, UnitStatus, UserRole
from tenanttrack.services.runtime_metrics import METRICS


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    METRICS.reset()
    yield


@pytest.fixture()
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


# -------------------- Fake payment gateway --------------------

class FakePaymentGateway:
    """In-memory stand-in for the Stripe adapter."""

    def __init__(self) -> None:
        self.intents: dict[str, dict[str, Any]] = {}
        self.customers: dict[int, str] = {}
        self.customer_calls = 0
        self.down = False
        self._seq = 0

    def _check(self) -> None:
        if self.down:
            raise GatewayError("Payment gateway is unavailable, please retry.")

    def get_or_create_customer(self, user_id: int, email: str, name: Optional[str]) -> str:
        self._check()
        self.customer_calls += 1
        return self.customers.setdefault(int(user_id), f"cus_{int(user_id)}")

    def create_payment_intent(self, customer_id: str, amount: Decimal, lease_id: Optional[int] = None):
        self._check()
        self._seq += 1
        intent_id = f"pi_test_{self._seq}"
        self.intents[intent_id] = {
            "status": "requires_payment_method",
            "amount_cents": to_cents(amount),
            "lease_id": lease_id,
            "customer_id": customer_id,
        }
        return PaymentIntentHandle(intent_id=intent_id, client_secret=f"{intent_id}_secret")

    def settle(self, intent_id: str, *, status: str = "succeeded", amount: Optional[Decimal] = None) -> None:
        self.intents[intent_id]["status"] = status
        if amount is not None:
            self.intents[intent_id]["amount_cents"] = to_cents(amount)

    def retrieve_intent(self, intent_id: str) -> PaymentIntentInfo:
        self._check()
        data = self.intents.get(intent_id)
        if data is None:
            raise IntentNotFoundError("Payment intent not found.")
        return PaymentIntentInfo(
            intent_id=intent_id,
            status=data["status"],
            amount_cents=data["amount_cents"],
            lease_id=data["lease_id"],
            customer_id=data["customer_id"],
        )

    def confirm_payment(self, intent_id: str) -> bool:
        return self.retrieve_intent(intent_id).succeeded


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, str, dict]] = []
        self.fail = fail

    def notify(self, kind: str, recipient: str, payload: dict) -> None:
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((kind, recipient, payload))

    def kinds(self) -> list[str]:
        return [k for k, _, _ in self.sent]


@pytest.fixture()
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)


@pytest.fixture()
def client(gateway):
    app = create_app()
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c


def headers(email: str, role: Optional[str] = None) -> dict[str, str]:
    h = {"X-User-Email": email}
    if role:
        h["X-User-Role"] = role
    return h


@pytest.fixture()
def as_user():
    return headers


# -------------------- Shared portfolio --------------------

@dataclass(frozen=True)
class World:
    admin: Principal
    landlord: Principal
    other_landlord: Principal
    tenant: Principal
    other_tenant: Principal
    maintenance: Principal

    property_id: int
    other_property_id: int
    unit_id: int
    spare_unit_id: int
    other_unit_id: int
    tenant_id: int
    other_tenant_id: int


def _user(db, email: str, kind: ActorKind) -> Principal:
    u = AppUser(email=email, username=email, display_name=email.split("@")[0])
    db.add(u)
    db.flush()
    db.add(UserRole(user_id=u.id, role=kind))
    db.flush()
    return Principal(
        user_id=int(u.id),
        email=email,
        username=email,
        kinds=frozenset({kind}),
        display_name=u.display_name,
    )


def _property(db, owner: Principal, name: str) -> Property:
    p = Property(owner_user_id=owner.user_id, name=name, address="1 Main St", city="Hammond", state="LA", zip_code="70401")
    db.add(p)
    db.flush()
    return p


def _unit(db, prop: Property, number: str) -> Unit:
    u = Unit(property_id=prop.id, unit_number=number, rent=Decimal("1000.00"), status=UnitStatus.AVAILABLE)
    db.add(u)
    db.flush()
    return u


@pytest.fixture()
def world() -> World:
    """
    Two landlords with one property each.

      landlord:       property "Oak" with units 101 (tenant bound) and 102 (spare)
      other_landlord: property "Elm" with unit 201 (other_tenant bound)
      maintenance:    staff at "Oak"
    """
    s = SessionLocal()
    try:
        admin = _user(s, "admin@t.local", ActorKind.ADMIN)
        landlord = _user(s, "landlord@t.local", ActorKind.LANDLORD)
        other_landlord = _user(s, "landlord2@t.local", ActorKind.LANDLORD)
        tenant = _user(s, "tenant@t.local", ActorKind.TENANT)
        other_tenant = _user(s, "other@t.local", ActorKind.TENANT)
        maintenance = _user(s, "fixit@t.local", ActorKind.MAINTENANCE)

        oak = _property(s, landlord, "Oak")
        elm = _property(s, other_landlord, "Elm")
        u101 = _unit(s, oak, "101")
        u102 = _unit(s, oak, "102")
        u201 = _unit(s, elm, "201")

        s.add(Staff(property_id=oak.id, first_name="Fix", last_name="It", email="fixit@t.local", position="Maintenance"))

        t1 = Tenant(unit_id=u101.id, first_name="Tia", last_name="Tenant", email="tenant@t.local")
        t2 = Tenant(unit_id=u201.id, first_name="Otto", last_name="Other", email="other@t.local")
        s.add_all([t1, t2])
        s.commit()

        return World(
            admin=admin,
            landlord=landlord,
            other_landlord=other_landlord,
            tenant=tenant,
            other_tenant=other_tenant,
            maintenance=maintenance,
            property_id=int(oak.id),
            other_property_id=int(elm.id),
            unit_id=int(u101.id),
            spare_unit_id=int(u102.id),
            other_unit_id=int(u201.id),
            tenant_id=int(t1.id),
            other_tenant_id=int(t2.id),
        )
    finally:
        s.close()
