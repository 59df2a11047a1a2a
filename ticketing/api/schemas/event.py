"""Schemas for events, event policies and occurrences."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ticketing.domain.enums import EventStatus, Visibility


class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=180)
    description: str | None = None
    start_at: datetime
    end_at: datetime | None = Field(None, description="Defaults to two hours after start")
    visibility: Visibility = Visibility.PUBLIC
    currency: str | None = Field(None, min_length=3, max_length=3)


class EventUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    title: str | None = Field(None, min_length=1, max_length=180)
    description: str | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    visibility: Visibility | None = None
    currency: str | None = Field(None, min_length=3, max_length=3)


class EventPolicyResponse(BaseModel):
    transfer_allowed: bool
    transfer_cutoff_hours: int | None = None
    refund_policy: str | None = None
    resale_allowed: bool

    model_config = ConfigDict(from_attributes=True)


class EventPolicyUpdate(BaseModel):
    transfer_allowed: bool | None = None
    transfer_cutoff_hours: int | None = Field(
        None, ge=0, description="Hours before start when transfers close; null for no cutoff"
    )
    refund_policy: str | None = Field(None, max_length=5000)


class EventResponse(BaseModel):
    id: UUID
    org_id: UUID
    title: str
    description: str | None = None
    status: EventStatus
    visibility: Visibility
    start_at: datetime
    end_at: datetime
    publish_at: datetime | None = None
    currency: str
    created_at: datetime
    policy: EventPolicyResponse | None = None

    model_config = ConfigDict(from_attributes=True)


class OccurrenceCreate(BaseModel):
    start_at: datetime
    end_at: datetime | None = None
    gate_open_at: datetime | None = None


class OccurrenceResponse(BaseModel):
    id: UUID
    event_id: UUID
    start_at: datetime
    end_at: datetime | None = None
    gate_open_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
