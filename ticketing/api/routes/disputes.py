"""Buyer dispute routes."""

import logging
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Path, Query, status

from ticketing.api.schemas.dispute import (
    DisputeAppeal,
    DisputeCreate,
    DisputeMessageCreate,
    DisputeResolve,
    DisputeResponse,
)
from ticketing.api.schemas.pagination import PaginatedResponse
from ticketing.core.dependencies import AsyncDbSession, CurrentUser
from ticketing.core.security import get_user_id, require_permission
from ticketing.db.models import Dispute
from ticketing.domain.enums import DisputeStatus
from ticketing.repos import dispute_repo

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Disputes"])

DisputeId = Annotated[uuid.UUID, Path(description="Dispute id")]


@router.post(
    "/disputes",
    response_model=DisputeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a dispute on an order",
    description="""
    Disputes can be opened on paid or refunded orders up to 30 days after
    the event starts. The organizer has 7 days to respond.

    **Errors:**
    - 400 Bad Request: Order not paid or window closed
    - 404 Not Found: Order not found
    - 409 Conflict: An active dispute already exists for the order
    """,
)
async def create_dispute(
    payload: DisputeCreate,
    db: AsyncDbSession,
    user: Annotated[dict[str, Any], Depends(require_permission("dispute:create"))],
) -> Dispute:
    dispute = await dispute_repo.create_dispute(
        db,
        order_id=payload.order_id,
        user_id=get_user_id(user),
        reason=payload.reason,
        description=payload.description,
    )
    await db.commit()
    return dispute


@router.get("/disputes", response_model=PaginatedResponse[DisputeResponse], summary="My disputes")
async def list_my_disputes(
    db: AsyncDbSession,
    user: CurrentUser,
    status_filter: Annotated[DisputeStatus | None, Query(alias="status")] = None,
    page: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
) -> dict:
    return await dispute_repo.list_my_disputes(
        db, user_id=get_user_id(user), status=status_filter, page=page, limit=limit
    )


@router.get(
    "/orgs/{org_id}/disputes",
    response_model=PaginatedResponse[DisputeResponse],
    summary="Disputes against an organization",
)
async def list_org_disputes(
    org_id: Annotated[uuid.UUID, Path(description="Organization id")],
    db: AsyncDbSession,
    user: CurrentUser,
    status_filter: Annotated[DisputeStatus | None, Query(alias="status")] = None,
    page: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
) -> dict:
    return await dispute_repo.list_org_disputes(
        db,
        org_id=org_id,
        user_id=get_user_id(user),
        status=status_filter,
        page=page,
        limit=limit,
    )


@router.get("/disputes/{dispute_id}", response_model=DisputeResponse, summary="Get a dispute")
async def get_dispute(dispute_id: DisputeId, db: AsyncDbSession, user: CurrentUser) -> Dispute:
    return await dispute_repo.get_dispute(db, dispute_id=dispute_id, user_id=get_user_id(user))


@router.post(
    "/disputes/{dispute_id}/messages",
    response_model=DisputeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reply on a dispute",
)
async def add_message(
    dispute_id: DisputeId, payload: DisputeMessageCreate, db: AsyncDbSession, user: CurrentUser
) -> Dispute:
    dispute = await dispute_repo.add_message(
        db, dispute_id=dispute_id, user_id=get_user_id(user), body=payload.body
    )
    await db.commit()
    return dispute


@router.post(
    "/disputes/{dispute_id}/resolve",
    response_model=DisputeResponse,
    summary="Resolve a dispute (admin)",
    description="""
    **Authentication:** requires `dispute:resolve` permission.

    Refund resolutions record a refund against the order; a full refund
    also voids the order's tickets.
    """,
)
async def resolve_dispute(
    dispute_id: DisputeId,
    payload: DisputeResolve,
    db: AsyncDbSession,
    user: Annotated[dict[str, Any], Depends(require_permission("dispute:resolve"))],
) -> Dispute:
    dispute = await dispute_repo.resolve_dispute(
        db,
        dispute_id=dispute_id,
        resolver_id=get_user_id(user),
        resolution=payload.resolution,
        amount_cents=payload.amount_cents,
        note=payload.note,
    )
    await db.commit()
    return dispute


@router.post(
    "/disputes/{dispute_id}/appeal",
    response_model=DisputeResponse,
    summary="Appeal a resolution",
)
async def appeal_dispute(
    dispute_id: DisputeId, payload: DisputeAppeal, db: AsyncDbSession, user: CurrentUser
) -> Dispute:
    dispute = await dispute_repo.appeal_dispute(
        db, dispute_id=dispute_id, user_id=get_user_id(user), reason=payload.reason
    )
    await db.commit()
    return dispute


@router.post(
    "/disputes/{dispute_id}/close",
    response_model=DisputeResponse,
    summary="Withdraw a dispute",
)
async def close_dispute(dispute_id: DisputeId, db: AsyncDbSession, user: CurrentUser) -> Dispute:
    dispute = await dispute_repo.close_dispute(db, dispute_id=dispute_id, user_id=get_user_id(user))
    await db.commit()
    return dispute
