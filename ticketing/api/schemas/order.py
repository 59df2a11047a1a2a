"""Schemas for checkout and orders."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ticketing.domain.enums import FeeBeneficiary, OrderStatus


class OrderItemCreate(BaseModel):
    ticket_type_id: UUID
    quantity: int = Field(1, ge=1, description="Ignored for seated tickets")
    seat_id: UUID | None = None


class OrderCreate(BaseModel):
    event_id: UUID
    occurrence_id: UUID | None = None
    items: list[OrderItemCreate] = Field(min_length=1, max_length=50)
    idempotency_key: str | None = Field(
        None,
        max_length=255,
        description="Replaying a key returns the original order; the Idempotency-Key header also works",
    )


class OrderItemResponse(BaseModel):
    id: UUID
    ticket_type_id: UUID
    seat_id: UUID | None = None
    quantity: int
    unit_price_cents: int
    unit_fee_cents: int

    model_config = ConfigDict(from_attributes=True)


class OrderTaxLineResponse(BaseModel):
    name: str
    rate_bps: int
    amount_cents: int

    model_config = ConfigDict(from_attributes=True)


class OrderFeeLineResponse(BaseModel):
    name: str
    amount_cents: int
    beneficiary: FeeBeneficiary

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: UUID
    buyer_id: UUID
    org_id: UUID
    event_id: UUID
    occurrence_id: UUID | None = None
    status: OrderStatus
    currency: str
    subtotal_cents: int
    fees_cents: int
    tax_cents: int
    total_cents: int
    idempotency_key: str | None = None
    payment_provider: str | None = None
    payment_reference: str | None = None
    paid_at: datetime | None = None
    canceled_at: datetime | None = None
    created_at: datetime
    items: list[OrderItemResponse] = []
    tax_lines: list[OrderTaxLineResponse] = []
    fee_lines: list[OrderFeeLineResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ConfirmPaymentRequest(BaseModel):
    provider: str = Field(min_length=1, max_length=40)
    reference: str = Field(min_length=1, max_length=255)


class CancelOrderRequest(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class OrderStatsResponse(BaseModel):
    total_orders: int
    total_spent_cents: int
    by_status: dict[str, int]
