from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models import LeadStatus, TrackingStatus, UserRole

COUNTRY_PATTERN = r'^[A-Z]{2}$'
EMAIL_PATTERN = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Pagination(ApiModel):
    total: int
    page: int
    limit: int
    total_pages: int


# Auth

class LoginIn(ApiModel):
    email: str = Field(min_length=3, max_length=150)
    password: str = Field(min_length=1)


class UserOut(ApiModel):
    id: str
    name: str
    email: str
    role: UserRole


# Tracking

class ShipmentCreate(ApiModel):
    user_id: str | None = None
    carrier: str | None = Field(default=None, max_length=100)
    carrier_tracking_number: str | None = None
    estimated_delivery: datetime | None = None


class ShipmentStatusUpdate(ApiModel):
    status: TrackingStatus
    description: str = Field(min_length=1)
    location: str | None = Field(default=None, max_length=200)
    timestamp: datetime | None = None


class TrackingEventOut(ApiModel):
    id: str
    status: TrackingStatus
    description: str
    location: str | None
    timestamp: datetime
    created_at: datetime


class ShipmentOut(ApiModel):
    id: str
    tracking_number: str
    carrier: str | None
    carrier_tracking_number: str | None
    status: TrackingStatus
    estimated_delivery: datetime | None
    actual_delivery: datetime | None
    created_at: datetime
    updated_at: datetime
    user_id: str | None


class ShipmentWithEventsOut(ShipmentOut):
    events: list[TrackingEventOut] = []


class ShipmentListOut(ApiModel):
    shipments: list[ShipmentWithEventsOut]
    pagination: Pagination


# Leads

class LeadCreate(ApiModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(max_length=150, pattern=EMAIL_PATTERN)
    phone: str = Field(min_length=1, max_length=20)
    origin_country: str = Field(pattern=COUNTRY_PATTERN)
    destination_country: str = Field(pattern=COUNTRY_PATTERN)
    parcel_type: str = Field(min_length=1, max_length=100)
    weight: Decimal = Field(gt=0, le=Decimal('999999.99'))
    notes: str = ''


class LeadUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    email: str | None = Field(default=None, max_length=150, pattern=EMAIL_PATTERN)
    phone: str | None = Field(default=None, min_length=1, max_length=20)
    origin_country: str | None = Field(default=None, pattern=COUNTRY_PATTERN)
    destination_country: str | None = Field(default=None, pattern=COUNTRY_PATTERN)
    parcel_type: str | None = Field(default=None, min_length=1, max_length=100)
    weight: Decimal | None = Field(default=None, gt=0, le=Decimal('999999.99'))
    notes: str | None = None


class LeadStatusUpdate(ApiModel):
    status: LeadStatus
    assigned_to: str | None = None


class LeadConvert(ApiModel):
    carrier: str | None = Field(default=None, max_length=100)
    carrier_tracking_number: str | None = None
    estimated_delivery: datetime | None = None


class LeadOut(ApiModel):
    id: str
    name: str
    email: str
    phone: str
    origin_country: str
    destination_country: str
    parcel_type: str
    weight: float
    notes: str
    status: LeadStatus
    client_id: str | None
    assigned_to: str | None
    created_at: datetime
    updated_at: datetime


class LeadListOut(ApiModel):
    leads: list[LeadOut]
    pagination: Pagination


class LeadStatsOut(ApiModel):
    total_leads: int
    new_leads: int
    converted_leads: int
