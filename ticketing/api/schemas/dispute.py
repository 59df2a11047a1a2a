"""Schemas for buyer disputes."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ticketing.domain.enums import DisputeResolution, DisputeSenderRole, DisputeStatus


class DisputeCreate(BaseModel):
    order_id: UUID
    reason: str = Field(min_length=1, max_length=60)
    description: str = Field(min_length=1, max_length=5000)


class DisputeMessageCreate(BaseModel):
    body: str = Field(min_length=1, max_length=5000)


class DisputeMessageResponse(BaseModel):
    id: UUID
    sender_id: UUID
    sender_role: DisputeSenderRole
    body: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DisputeResponse(BaseModel):
    id: UUID
    order_id: UUID
    user_id: UUID
    org_id: UUID
    event_id: UUID
    status: DisputeStatus
    reason: str
    description: str
    resolution: DisputeResolution | None = None
    resolution_note: str | None = None
    refund_amount_cents: int | None = None
    respond_by_at: datetime
    resolved_at: datetime | None = None
    appeal_reason: str | None = None
    appealed_at: datetime | None = None
    closed_at: datetime | None = None
    created_at: datetime
    messages: list[DisputeMessageResponse] = []

    model_config = ConfigDict(from_attributes=True)


class DisputeResolve(BaseModel):
    resolution: DisputeResolution
    amount_cents: int | None = Field(None, description="Required for partial refunds")
    note: str | None = Field(None, max_length=5000)


class DisputeAppeal(BaseModel):
    reason: str = Field(min_length=1, max_length=5000)
