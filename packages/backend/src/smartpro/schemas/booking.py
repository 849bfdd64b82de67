"""Pydantic schemas for bookings and contracts.

Learn: Separate schemas for create/read keeps the API clean.
- BookingCreate / ContractCreate: what you POST
- StatusChange: dedicated schema for status transitions (validated by the service)
- BookingRead / ContractRead: what the API returns and what goes into events
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_read_config = ConfigDict(
    alias_generator=to_camel, populate_by_name=True, from_attributes=True
)


# ─── Bookings ────────────────────────────────────────────

class BookingCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str = Field(..., min_length=1, max_length=64)
    service_name: str = Field(..., min_length=1, max_length=200)
    provider_id: Optional[str] = Field(None, max_length=64)
    scheduled_at: Optional[datetime] = None
    notes: Optional[str] = None


class BookingStatusChange(BaseModel):
    status: str = Field(..., pattern=r"^(pending|confirmed|completed|cancelled)$")


class BookingRead(BaseModel):
    model_config = _read_config

    id: uuid.UUID
    user_id: str
    provider_id: Optional[str]
    service_name: str
    scheduled_at: Optional[datetime]
    status: str
    notes: Optional[str]
    created_at: datetime


# ─── Contracts ───────────────────────────────────────────

class ContractCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=200)
    value: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)


class ContractStatusChange(BaseModel):
    status: str = Field(..., pattern=r"^(draft|pending|signed|cancelled)$")


class ContractRead(BaseModel):
    model_config = _read_config

    id: uuid.UUID
    user_id: str
    title: str
    value: float
    status: str
    created_at: datetime
    signed_at: Optional[datetime]
