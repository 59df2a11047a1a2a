"""Schemas for tickets, check-ins and transfers."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ticketing.domain.enums import TicketStatus


class TicketResponse(BaseModel):
    id: UUID
    order_id: UUID
    event_id: UUID
    occurrence_id: UUID | None = None
    ticket_type_id: UUID
    seat_id: UUID | None = None
    owner_id: UUID
    status: TicketStatus
    qr_code: str
    barcode: str
    transferred_from_id: UUID | None = None
    issued_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TicketStatusUpdate(BaseModel):
    status: TicketStatus


class CheckinRequest(BaseModel):
    ticket_ref: str = Field(
        min_length=1, max_length=2048, description="Ticket id or scanned QR payload"
    )
    gate: str | None = Field(None, max_length=60)
    occurrence_id: UUID | None = None


class CheckinResponse(BaseModel):
    id: UUID
    ticket_id: UUID
    event_id: UUID
    occurrence_id: UUID | None = None
    scanner_id: UUID
    gate: str | None = None
    scanned_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TicketStatsResponse(BaseModel):
    total: int
    issued: int
    checked_in: int
    void: int
    transferred: int
    check_in_rate: float = Field(description="Percentage of non-void tickets checked in")


class TransferCreate(BaseModel):
    recipient_email: str | None = Field(None, min_length=3, max_length=320)
    recipient_id: UUID | None = None
    message: str | None = Field(None, max_length=500)

    @model_validator(mode="after")
    def require_recipient(self) -> TransferCreate:
        if not self.recipient_email and self.recipient_id is None:
            raise ValueError("recipient_email or recipient_id is required")
        return self


class TransferResponse(BaseModel):
    id: UUID
    ticket_id: UUID
    from_user_id: UUID
    to_user_id: UUID
    message: str | None = None
    created_at: datetime
    accepted_at: datetime | None = None
    canceled_at: datetime | None = None
    is_pending: bool

    model_config = ConfigDict(from_attributes=True)


TransferDirection = Literal["sent", "received"]
