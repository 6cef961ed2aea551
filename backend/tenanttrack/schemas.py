# backend/tenanttrack/schemas.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    LeaseStatus,
    MaintenancePriority,
    MaintenanceStatus,
    PaymentStatus,
    UnitStatus,
)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# -------------------- Properties / Units / Staff --------------------

class PropertyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    address: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=120)
    state: str = Field(min_length=2, max_length=2)
    zip_code: str = Field(min_length=1, max_length=10)


class PropertyOut(PropertyCreate):
    id: int
    owner_user_id: int
    model_config = ConfigDict(from_attributes=True)


class UnitCreate(BaseModel):
    property_id: int
    unit_number: str = Field(min_length=1, max_length=40)
    description: Optional[str] = None
    bedrooms: int = Field(default=1, ge=0)
    bathrooms: int = Field(default=1, ge=0)
    rent: Decimal = Field(default=Decimal("0"), ge=0)
    status: UnitStatus = UnitStatus.AVAILABLE


class UnitOut(UnitCreate):
    id: int
    model_config = ConfigDict(from_attributes=True)


class StaffCreate(BaseModel):
    property_id: int
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: str = Field(max_length=200, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(default=None, max_length=20)
    position: str = Field(min_length=1, max_length=50)


class StaffOut(StaffCreate):
    id: int
    model_config = ConfigDict(from_attributes=True)


# -------------------- Tenants --------------------

class TenantCreate(BaseModel):
    unit_id: Optional[int] = None
    first_name: str = Field(min_length=1, max_length=120)
    last_name: str = Field(min_length=1, max_length=120)
    phone_number: Optional[str] = Field(default=None, max_length=40)
    email: str = Field(max_length=200, pattern=EMAIL_PATTERN)


class TenantOut(TenantCreate):
    id: int
    unit_number: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# -------------------- Leases --------------------

class LeaseCreate(BaseModel):
    tenant_id: int
    start_date: date
    end_date: date
    rent: Decimal
    deposit: Decimal = Decimal("0")

    # landlord-entered leases may start past Pending
    status: Optional[LeaseStatus] = None


class LeaseUpdate(BaseModel):
    tenant_id: int
    start_date: date
    end_date: date
    rent: Decimal
    deposit: Decimal = Decimal("0")


class LeaseApprove(BaseModel):
    start_date: date
    end_date: date
    deposit: Decimal


class LeaseDeny(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class LeaseTerminate(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class LeaseOut(BaseModel):
    id: int
    tenant_id: int
    unit_number: Optional[str] = None
    start_date: date
    end_date: date
    rent: Decimal
    deposit: Decimal
    status: LeaseStatus
    denial_reason: Optional[str] = None
    approved_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# -------------------- Payments --------------------

class PaymentCreate(BaseModel):
    tenant_id: int
    lease_id: Optional[int] = None
    amount: Decimal
    paid_on: Optional[date] = None
    method: str = Field(default="Cash", max_length=20)
    status: PaymentStatus = PaymentStatus.PAID


class PaymentUpdate(BaseModel):
    tenant_id: int
    lease_id: Optional[int] = None
    amount: Decimal
    paid_on: date
    method: str = Field(max_length=20)
    status: PaymentStatus


class PaymentOut(BaseModel):
    id: int
    tenant_id: int
    lease_id: Optional[int] = None
    amount: Decimal
    paid_on: date
    method: str
    status: PaymentStatus
    gateway_transaction_id: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class IntentOut(BaseModel):
    client_secret: str
    amount: Decimal
    lease_id: int
    model_config = ConfigDict(from_attributes=True)


class ConfirmPaymentIn(BaseModel):
    payment_intent_id: str = Field(min_length=1)
    amount: Decimal


# -------------------- Maintenance --------------------

class MaintenanceRequestCreate(BaseModel):
    tenant_id: int
    description: str = Field(min_length=1, max_length=500)
    priority: MaintenancePriority = MaintenancePriority.MEDIUM


class MaintenanceRequestUpdate(BaseModel):
    description: str = Field(min_length=1, max_length=500)
    status: MaintenanceStatus
    priority: MaintenancePriority
    assigned_staff_id: Optional[int] = None


class MaintenanceRequestOut(BaseModel):
    id: int
    tenant_id: int
    assigned_staff_id: Optional[int] = None
    description: str
    status: MaintenanceStatus
    priority: MaintenancePriority
    requested_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# -------------------- Dashboard --------------------

class LandlordDashboardOut(BaseModel):
    properties: int
    units: int
    units_by_status: dict[str, int]
    tenants: int
    leases_by_status: dict[str, int]
    pending_applications: int
    open_maintenance_requests: int
    paid_total: Decimal
