"""
Organizer balance and payout routes.

available = gross - platform fees - tax - refunds - committed payouts.
Only one payout may be pending or in review at a time.
"""

import logging
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Path, Query, status

from ticketing.api.schemas.pagination import PaginatedResponse
from ticketing.api.schemas.payout import (
    BalanceResponse,
    PayoutCreate,
    PayoutResponse,
    PayoutReview,
    PayoutStatsResponse,
)
from ticketing.core.dependencies import AsyncDbSession, CurrentUser
from ticketing.core.security import get_user_id, require_permission
from ticketing.db.models import Payout
from ticketing.domain.enums import PayoutStatus
from ticketing.repos import payout_repo

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Payouts"])

OrgId = Annotated[uuid.UUID, Path(description="Organization id")]


@router.get(
    "/orgs/{org_id}/balance",
    response_model=BalanceResponse,
    summary="Organization balance",
    description="**Authorization:** owner or finance member.",
)
async def get_balance(
    org_id: OrgId,
    db: AsyncDbSession,
    user: CurrentUser,
    currency: Annotated[str | None, Query(min_length=3, max_length=3)] = None,
) -> dict:
    return await payout_repo.calculate_balance(
        db, org_id=org_id, user_id=get_user_id(user), currency=currency
    )


@router.post(
    "/orgs/{org_id}/payouts",
    response_model=PayoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a payout",
    description="""
    **Errors:**
    - 400 Bad Request: Amount not positive or above the available balance
    - 409 Conflict: Another payout is pending or in review
    """,
)
async def create_payout(
    org_id: OrgId, payload: PayoutCreate, db: AsyncDbSession, user: CurrentUser
) -> Payout:
    payout = await payout_repo.create_payout(
        db,
        org_id=org_id,
        user_id=get_user_id(user),
        amount_cents=payload.amount_cents,
        currency=payload.currency,
    )
    await db.commit()
    return payout


@router.get(
    "/orgs/{org_id}/payouts",
    response_model=PaginatedResponse[PayoutResponse],
    summary="Payout history",
)
async def list_payouts(
    org_id: OrgId,
    db: AsyncDbSession,
    user: CurrentUser,
    status_filter: Annotated[PayoutStatus | None, Query(alias="status")] = None,
    page: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
) -> dict:
    return await payout_repo.list_payouts(
        db,
        org_id=org_id,
        user_id=get_user_id(user),
        status=status_filter,
        page=page,
        limit=limit,
    )


@router.get(
    "/orgs/{org_id}/payouts/stats",
    response_model=PayoutStatsResponse,
    summary="Payout counts per status",
)
async def payout_stats(org_id: OrgId, db: AsyncDbSession, user: CurrentUser) -> dict:
    return await payout_repo.payout_stats(db, org_id=org_id, user_id=get_user_id(user))


@router.patch(
    "/payouts/{payout_id}",
    response_model=PayoutResponse,
    summary="Review a payout (admin)",
    description="""
    Allowed moves: pending -> in_review | canceled, in_review -> paid | failed.

    **Authentication:** requires `payout:review` permission.
    """,
)
async def review_payout(
    payout_id: Annotated[uuid.UUID, Path(description="Payout id")],
    payload: PayoutReview,
    db: AsyncDbSession,
    user: Annotated[dict[str, Any], Depends(require_permission("payout:review"))],
) -> Payout:
    payout = await payout_repo.review_payout(
        db,
        payout_id=payout_id,
        reviewer_id=get_user_id(user),
        status=payload.status,
        failure_reason=payload.failure_reason,
    )
    await db.commit()
    return payout
