# backend/tenanttrack/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from tenanttrack.db import SessionLocal
from tenanttrack.models import (
    ActorKind,
    AppUser,
    Lease,
    LeaseStatus,
    Property,
    Staff,
    Tenant,
    Unit,
    UserRole,
)
from tenanttrack.services.occupancy import refresh_unit


@dataclass(frozen=True)
class SeedResult:
    landlord_email: str
    tenant_email: str
    staff_email: str
    property_id: int
    lease_id: Optional[int]


def _get_or_create_user(db: Session, email: str, display_name: str, kind: ActorKind) -> AppUser:
    row = db.scalar(select(AppUser).where(AppUser.email == email))
    if row is None:
        row = AppUser(email=email, username=email, display_name=display_name)
        db.add(row)
        db.flush()
    if kind not in row.kinds:
        db.add(UserRole(user_id=row.id, role=kind))
    db.commit()
    db.refresh(row)
    return row


def _get_or_create_unit(db: Session, prop: Property, number: str, rent: str, bedrooms: int) -> Unit:
    row = db.scalar(select(Unit).where(Unit.property_id == prop.id, Unit.unit_number == number))
    if row is not None:
        return row
    row = Unit(property_id=prop.id, unit_number=number, rent=Decimal(rent), bedrooms=bedrooms, bathrooms=1)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def seed_demo(
    *,
    landlord_email: str = "landlord@demo.local",
    tenant_email: str = "tenant@demo.local",
    staff_email: str = "maintenance@demo.local",
    with_application: bool = True,
) -> SeedResult:
    """Idempotent: re-running reuses existing rows."""
    db = SessionLocal()
    try:
        landlord = _get_or_create_user(db, landlord_email, "Demo Landlord", ActorKind.LANDLORD)
        _get_or_create_user(db, tenant_email, "Demo Tenant", ActorKind.TENANT)
        _get_or_create_user(db, staff_email, "Demo Maintenance", ActorKind.MAINTENANCE)

        prop = db.scalar(select(Property).where(Property.owner_user_id == landlord.id).order_by(Property.id))
        if prop is None:
            prop = Property(
                owner_user_id=landlord.id,
                name="Oak Street Apartments",
                address="100 Oak St",
                city="Hammond",
                state="LA",
                zip_code="70401",
            )
            db.add(prop)
            db.commit()
            db.refresh(prop)

        unit_a = _get_or_create_unit(db, prop, "101", "1000.00", 1)
        _get_or_create_unit(db, prop, "102", "1250.00", 2)

        if db.scalar(select(Staff).where(Staff.email == staff_email)) is None:
            db.add(
                Staff(
                    property_id=prop.id,
                    first_name="Demo",
                    last_name="Maintenance",
                    email=staff_email,
                    position="Maintenance",
                )
            )
            db.commit()

        tenant = db.scalar(select(Tenant).where(Tenant.email == tenant_email))
        if tenant is None:
            tenant = Tenant(unit_id=unit_a.id, first_name="Demo", last_name="Tenant", email=tenant_email)
            db.add(tenant)
            db.flush()
            refresh_unit(db, unit_a.id)
            db.commit()
            db.refresh(tenant)

        lease_id: Optional[int] = None
        if with_application:
            lease = db.scalar(select(Lease).where(Lease.tenant_id == tenant.id).order_by(Lease.id.desc()))
            if lease is None:
                start = date.today().replace(day=1)
                lease = Lease(
                    tenant_id=tenant.id,
                    start_date=start,
                    end_date=start.replace(year=start.year + 1),
                    rent=Decimal("1000.00"),
                    deposit=Decimal("500.00"),
                    status=LeaseStatus.PENDING,
                )
                db.add(lease)
                db.commit()
                db.refresh(lease)
            lease_id = int(lease.id)

        return SeedResult(
            landlord_email=landlord_email,
            tenant_email=tenant_email,
            staff_email=staff_email,
            property_id=int(prop.id),
            lease_id=lease_id,
        )
    finally:
        db.close()
