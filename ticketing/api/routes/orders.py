"""
Order routes: checkout, payment confirmation, cancellation and history.

Checkout is idempotent per buyer: repeating a request with the same
idempotency key (body field or ``Idempotency-Key`` header) returns the
order created the first time.
"""

import logging
import uuid
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, Path, Query, status

from ticketing.api.schemas.order import (
    CancelOrderRequest,
    ConfirmPaymentRequest,
    OrderCreate,
    OrderResponse,
    OrderStatsResponse,
)
from ticketing.api.schemas.pagination import PaginatedResponse
from ticketing.core.dependencies import AsyncDbSession, CurrentUser
from ticketing.core.security import get_user_id, require_permission
from ticketing.db.models import Order
from ticketing.domain.enums import OrderStatus
from ticketing.repos import order_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])

OrderId = Annotated[uuid.UUID, Path(description="Order id")]


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Check out",
    description="""
    Create an order for a live public event.

    **Pricing:** subtotal = price x qty, fees = (ticket fee + platform fee) x qty,
    tax = subtotal x sales tax rate. Free orders are paid immediately and
    their tickets issued.

    **Errors:**
    - 400 Bad Request: Sales window closed, per-order limit, mixed currencies
    - 403 Forbidden: Event not on sale
    - 409 Conflict: Sold out or seat unavailable
    """,
)
async def create_order(
    payload: OrderCreate,
    db: AsyncDbSession,
    user: Annotated[dict[str, Any], Depends(require_permission("order:create"))],
    idempotency_key: Annotated[str | None, Header(max_length=255)] = None,
) -> Order:
    order = await order_repo.create_order(
        db,
        buyer_id=get_user_id(user),
        event_id=payload.event_id,
        occurrence_id=payload.occurrence_id,
        items=[item.model_dump() for item in payload.items],
        idempotency_key=payload.idempotency_key or idempotency_key,
    )
    await db.commit()
    return order


@router.get("", response_model=PaginatedResponse[OrderResponse], summary="My orders")
async def list_orders(
    db: AsyncDbSession,
    user: CurrentUser,
    status_filter: Annotated[OrderStatus | None, Query(alias="status")] = None,
    event_id: Annotated[uuid.UUID | None, Query()] = None,
    org_id: Annotated[uuid.UUID | None, Query()] = None,
    page: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
) -> dict:
    return await order_repo.list_orders(
        db,
        buyer_id=get_user_id(user),
        status=status_filter,
        event_id=event_id,
        org_id=org_id,
        page=page,
        limit=limit,
    )


@router.get("/stats", response_model=OrderStatsResponse, summary="My order statistics")
async def get_order_stats(
    db: AsyncDbSession,
    user: CurrentUser,
    event_id: Annotated[uuid.UUID | None, Query()] = None,
    org_id: Annotated[uuid.UUID | None, Query()] = None,
    start: Annotated[datetime | None, Query(description="Created at or after")] = None,
    end: Annotated[datetime | None, Query(description="Created at or before")] = None,
) -> dict:
    return await order_repo.get_order_stats(
        db, buyer_id=get_user_id(user), event_id=event_id, org_id=org_id, start=start, end=end
    )


@router.get("/{order_id}", response_model=OrderResponse, summary="Get an order")
async def get_order(order_id: OrderId, db: AsyncDbSession, user: CurrentUser) -> Order:
    return await order_repo.get_order(db, order_id, get_user_id(user))


@router.post(
    "/{order_id}/confirm-payment",
    response_model=OrderResponse,
    summary="Record a successful payment",
    description="""
    Mark a pending order paid and issue its tickets. Confirming again with
    the same reference returns the order unchanged.

    **Errors:**
    - 409 Conflict: Order canceled/expired, or paid with another reference
    """,
)
async def confirm_payment(
    order_id: OrderId, payload: ConfirmPaymentRequest, db: AsyncDbSession, user: CurrentUser
) -> Order:
    order = await order_repo.confirm_payment(
        db,
        order_id=order_id,
        user_id=get_user_id(user),
        provider=payload.provider,
        reference=payload.reference,
    )
    await db.commit()
    return order


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel an order",
    description="Paid orders are refunded in full; all tickets are voided.",
)
async def cancel_order(
    order_id: OrderId,
    db: AsyncDbSession,
    user: CurrentUser,
    payload: CancelOrderRequest | None = None,
) -> Order:
    order = await order_repo.cancel_order(
        db,
        order_id=order_id,
        user_id=get_user_id(user),
        reason=payload.reason if payload else None,
    )
    await db.commit()
    return order
