"""
Event creator wizard routes.

A draft is edited section by section (basics, story, tickets, schedule,
checkout). Publishing is idempotent: a draft that already produced an
event returns that event instead of creating another.
"""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from ticketing.api.schemas.draft import (
    DraftCreate,
    DraftPublishRequest,
    DraftPublishResponse,
    DraftResponse,
    DraftSectionUpdate,
    DraftSummaryResponse,
)
from ticketing.api.schemas.pagination import PaginatedResponse
from ticketing.core.dependencies import AsyncDbSession, CurrentUser
from ticketing.core.security import get_user_id
from ticketing.db.models import EventDraft
from ticketing.domain.enums import DraftStatus
from ticketing.repos import draft_repo

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Event Drafts"])

DraftId = Annotated[uuid.UUID, Path(description="Draft id")]


@router.post(
    "/orgs/{org_id}/drafts",
    response_model=DraftResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a new event draft",
)
async def create_draft(
    org_id: Annotated[uuid.UUID, Path(description="Organization id")],
    db: AsyncDbSession,
    user: CurrentUser,
    payload: DraftCreate | None = None,
) -> EventDraft:
    draft = await draft_repo.create_draft(
        db, org_id=org_id, user_id=get_user_id(user), title=payload.title if payload else None
    )
    await db.commit()
    return draft


@router.get(
    "/orgs/{org_id}/drafts",
    response_model=PaginatedResponse[DraftSummaryResponse],
    summary="List an organization's drafts",
)
async def list_drafts(
    org_id: Annotated[uuid.UUID, Path(description="Organization id")],
    db: AsyncDbSession,
    user: CurrentUser,
    status_filter: Annotated[DraftStatus | None, Query(alias="status")] = None,
    page: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
) -> dict:
    return await draft_repo.list_drafts(
        db,
        org_id=org_id,
        user_id=get_user_id(user),
        status=status_filter,
        page=page,
        limit=limit,
    )


@router.get("/drafts/{draft_id}", response_model=DraftResponse, summary="Get a draft")
async def get_draft(draft_id: DraftId, db: AsyncDbSession, user: CurrentUser) -> EventDraft:
    return await draft_repo.get_draft(db, draft_id=draft_id, user_id=get_user_id(user))


@router.put(
    "/drafts/{draft_id}/sections/{section}",
    response_model=DraftResponse,
    summary="Save a wizard section",
    description="""
    Replace one section's payload. The server validates it and returns
    the section's status and field errors along with the draft's
    completion percentage.

    **Errors:**
    - 400 Bad Request: Unknown section
    - 409 Conflict: Draft already published or scheduled
    """,
)
async def update_section(
    draft_id: DraftId,
    section: Annotated[str, Path(description="basics, story, tickets, schedule or checkout")],
    payload: DraftSectionUpdate,
    db: AsyncDbSession,
    user: CurrentUser,
) -> EventDraft:
    draft = await draft_repo.update_section(
        db,
        draft_id=draft_id,
        user_id=get_user_id(user),
        section=section,
        payload=payload.payload,
    )
    await db.commit()
    return draft


@router.post(
    "/drafts/{draft_id}/duplicate",
    response_model=DraftResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Copy a draft",
)
async def duplicate_draft(draft_id: DraftId, db: AsyncDbSession, user: CurrentUser) -> EventDraft:
    draft = await draft_repo.duplicate_draft(db, draft_id=draft_id, user_id=get_user_id(user))
    await db.commit()
    return draft


@router.post(
    "/drafts/{draft_id}/publish",
    response_model=DraftPublishResponse,
    summary="Publish a draft as an event",
    description="""
    Create the event, its policy, occurrences and ticket types from the
    draft. With a future `publish_at` the event is scheduled (status
    `pending`) instead of going live.

    **Errors:**
    - 400 Bad Request: Sections not valid (see `details.blocking_sections`)
    """,
)
async def publish_draft(
    draft_id: DraftId,
    db: AsyncDbSession,
    user: CurrentUser,
    payload: DraftPublishRequest | None = None,
) -> dict:
    result = await draft_repo.publish_draft(
        db,
        draft_id=draft_id,
        user_id=get_user_id(user),
        publish_at=payload.publish_at if payload else None,
    )
    await db.commit()
    return result
