"""Schemas for ticket types, seats and holds."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ticketing.domain.enums import HoldReason, TicketKind, TicketTypeStatus


class TicketTypeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    kind: TicketKind = TicketKind.GA
    price_cents: int = Field(0, ge=0)
    fee_cents: int = Field(0, ge=0)
    currency: str | None = Field(None, min_length=3, max_length=3)
    capacity: int | None = Field(None, ge=0, description="Null for unlimited")
    per_order_limit: int | None = Field(None, ge=1)
    sales_start: datetime | None = None
    sales_end: datetime | None = None


class TicketTypeUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=120)
    status: TicketTypeStatus | None = None
    price_cents: int | None = Field(None, ge=0)
    fee_cents: int | None = Field(None, ge=0)
    capacity: int | None = Field(None, ge=0)
    per_order_limit: int | None = Field(None, ge=1)
    sales_start: datetime | None = None
    sales_end: datetime | None = None


class TicketTypeResponse(BaseModel):
    id: UUID
    event_id: UUID
    name: str
    kind: TicketKind
    status: TicketTypeStatus
    currency: str
    price_cents: int
    fee_cents: int
    capacity: int | None = None
    per_order_limit: int | None = None
    sales_start: datetime | None = None
    sales_end: datetime | None = None
    # Filled in by list endpoints; available is null for seated or unlimited types
    sold: int | None = None
    available: int | None = None

    model_config = ConfigDict(from_attributes=True)


class SeatCreate(BaseModel):
    section: str = Field(min_length=1, max_length=50)
    row: str = Field(min_length=1, max_length=20)
    number: str = Field(min_length=1, max_length=20)
    ticket_type_id: UUID | None = None


class SeatsCreate(BaseModel):
    seats: list[SeatCreate] = Field(min_length=1, max_length=1000)


class SeatResponse(BaseModel):
    id: UUID
    event_id: UUID
    ticket_type_id: UUID | None = None
    section: str
    row: str
    number: str
    label: str
    state: str | None = Field(None, description="available, held or sold")

    model_config = ConfigDict(from_attributes=True)


class HoldCreate(BaseModel):
    ticket_type_id: UUID | None = None
    seat_id: UUID | None = None
    quantity: int = Field(1, ge=1)
    reason: HoldReason = HoldReason.ORGANIZER
    expires_at: datetime | None = None


class HoldResponse(BaseModel):
    id: UUID
    event_id: UUID
    ticket_type_id: UUID | None = None
    seat_id: UUID | None = None
    quantity: int
    reason: HoldReason
    expires_at: datetime | None = None
    released_at: datetime | None = None
    created_by: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
