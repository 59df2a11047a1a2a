"""Schemas for organizer balances and payouts."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ticketing.domain.enums import PayoutStatus


class BalanceResponse(BaseModel):
    org_id: UUID
    currency: str
    gross_cents: int
    platform_fees_cents: int
    tax_cents: int
    refunds_cents: int
    paid_out_cents: int
    available_cents: int
    has_pending_payout: bool
    can_create_payout: bool


class PayoutCreate(BaseModel):
    amount_cents: int
    currency: str | None = Field(None, min_length=3, max_length=3)


class PayoutReview(BaseModel):
    status: PayoutStatus
    failure_reason: str | None = Field(None, max_length=1000)


class PayoutResponse(BaseModel):
    id: UUID
    org_id: UUID
    amount_cents: int
    currency: str
    status: PayoutStatus
    requested_by: UUID
    reviewed_by: UUID | None = None
    failure_reason: str | None = None
    created_at: datetime
    processed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PayoutStatsResponse(BaseModel):
    total_payouts: int
    total_paid_cents: int
    by_status: dict[str, int]
