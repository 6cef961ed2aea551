# backend/tenanttrack/models.py
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def _utcnow() -> datetime:
    # naive UTC, matching the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


# -----------------------------
# Status vocabularies
# -----------------------------
class ActorKind(str, Enum):
    """Closed set of roles a user can hold."""

    ADMIN = "Admin"
    LANDLORD = "Landlord"
    MAINTENANCE = "Maintenance"
    TENANT = "Tenant"


class UnitStatus(str, Enum):
    AVAILABLE = "Available"
    RENTED = "Rented"
    MAINTENANCE = "Maintenance"
    UNAVAILABLE = "Unavailable"


class LeaseStatus(str, Enum):
    PENDING = "Pending"
    APPROVED_AWAITING_PAYMENT = "Approved-AwaitingPayment"
    ACTIVE = "Active"
    EXPIRED = "Expired"
    TERMINATED = "Terminated"
    DENIED = "Denied"


# A tenant holds at most one lease in one of these.
LIVE_LEASE_STATUSES = (
    LeaseStatus.PENDING,
    LeaseStatus.APPROVED_AWAITING_PAYMENT,
    LeaseStatus.ACTIVE,
)
CLOSED_LEASE_STATUSES = (
    LeaseStatus.DENIED,
    LeaseStatus.EXPIRED,
    LeaseStatus.TERMINATED,
)


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"


class MaintenanceStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class MaintenancePriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


def _enum_col(enum_cls: type[Enum], length: int = 40) -> SQLEnum:
    # store the human-readable value, not the member name
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=length,
        validate_strings=True,
        values_callable=lambda e: [m.value for m in e],
    )


Money = Numeric(12, 2, asdecimal=True)


# -----------------------------
# Users
# -----------------------------
class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    username: Mapped[str] = mapped_column(String(120), nullable=False, unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)

    # payment gateway customer reference, reused across intents
    billing_customer_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    roles: Mapped[List["UserRole"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def kinds(self) -> frozenset[ActorKind]:
        return frozenset(r.role for r in self.roles)


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("app_users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[ActorKind] = mapped_column(_enum_col(ActorKind, 20), nullable=False)

    user: Mapped["AppUser"] = relationship(back_populates="roles")


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


# -----------------------------
# Properties / Units / Staff
# -----------------------------
class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    state: Mapped[str] = mapped_column(String(2), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(10), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    owner: Mapped["AppUser"] = relationship()
    units: Mapped[List["Unit"]] = relationship(back_populates="property")
    staff: Mapped[List["Staff"]] = relationship(back_populates="property")


class Unit(Base):
    __tablename__ = "units"
    __table_args__ = (UniqueConstraint("property_id", "unit_number", name="uq_units_property_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)

    unit_number: Mapped[str] = mapped_column(String(40), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    bathrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    rent: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    status: Mapped[UnitStatus] = mapped_column(
        _enum_col(UnitStatus, 20), nullable=False, default=UnitStatus.AVAILABLE
    )

    property: Mapped["Property"] = relationship(back_populates="units")
    tenants: Mapped[List["Tenant"]] = relationship(back_populates="unit")


class Staff(Base):
    __tablename__ = "staff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)

    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    position: Mapped[str] = mapped_column(String(50), nullable=False)

    property: Mapped["Property"] = relationship(back_populates="staff")


# -----------------------------
# Tenants / Leases / Payments
# -----------------------------
class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    unit_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("units.id"), nullable=True, index=True)

    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    unit: Mapped[Optional["Unit"]] = relationship(back_populates="tenants")
    leases: Mapped[List["Lease"]] = relationship(back_populates="tenant")
    payments: Mapped[List["Payment"]] = relationship(back_populates="tenant")
    maintenance_requests: Mapped[List["MaintenanceRequest"]] = relationship(back_populates="tenant")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def unit_number(self) -> Optional[str]:
        return self.unit.unit_number if self.unit is not None else None


class Lease(Base):
    __tablename__ = "leases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    rent: Mapped[Decimal] = mapped_column(Money, nullable=False)
    deposit: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    status: Mapped[LeaseStatus] = mapped_column(
        _enum_col(LeaseStatus), nullable=False, default=LeaseStatus.PENDING, index=True
    )
    denial_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    activated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    tenant: Mapped["Tenant"] = relationship(back_populates="leases")
    payments: Mapped[List["Payment"]] = relationship(back_populates="lease")

    @property
    def unit_number(self) -> Optional[str]:
        return self.tenant.unit_number if self.tenant is not None else None

    @property
    def amount_due_at_signing(self) -> Decimal:
        return Decimal(self.rent) + Decimal(self.deposit)


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    lease_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("leases.id", ondelete="SET NULL"), nullable=True, index=True
    )

    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    paid_on: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    method: Mapped[str] = mapped_column(String(20), nullable=False, default="Card")
    status: Mapped[PaymentStatus] = mapped_column(
        _enum_col(PaymentStatus, 20), nullable=False, default=PaymentStatus.PENDING
    )

    # unique: one payment row per reconciled gateway intent
    gateway_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(120), nullable=True, unique=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    tenant: Mapped["Tenant"] = relationship(back_populates="payments")
    lease: Mapped[Optional["Lease"]] = relationship(back_populates="payments")


class MaintenanceRequest(Base):
    __tablename__ = "maintenance_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    assigned_staff_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("staff.id", ondelete="SET NULL"), nullable=True
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[MaintenanceStatus] = mapped_column(
        _enum_col(MaintenanceStatus, 20), nullable=False, default=MaintenanceStatus.PENDING
    )
    priority: Mapped[MaintenancePriority] = mapped_column(
        _enum_col(MaintenancePriority, 20), nullable=False, default=MaintenancePriority.MEDIUM
    )

    requested_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=_utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    tenant: Mapped["Tenant"] = relationship(back_populates="maintenance_requests")
    assignee: Mapped[Optional["Staff"]] = relationship()
