"""
Event routes: creation, public listing, status transitions, policy and
occurrences.

Status transitions:
- publish: draft/pending/approved/paused -> live
- pause: live -> paused
- cancel: live/pending/approved -> canceled
"""

import logging
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Path, Query, status

from ticketing.api.schemas.event import (
    EventCreate,
    EventPolicyResponse,
    EventPolicyUpdate,
    EventResponse,
    EventUpdate,
    OccurrenceCreate,
    OccurrenceResponse,
)
from ticketing.api.schemas.pagination import PaginatedResponse
from ticketing.core.dependencies import AsyncDbSession, CurrentUser
from ticketing.core.security import get_user_id, require_permission
from ticketing.db.models import Event, EventOccurrence, EventPolicy
from ticketing.domain.enums import EventStatus
from ticketing.repos import event_repo

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Events"])

EventId = Annotated[uuid.UUID, Path(description="Event id")]
ReadUser = Annotated[dict[str, Any], Depends(require_permission("event:read"))]


@router.post(
    "/orgs/{org_id}/events",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an event",
    description="""
    Create a draft event for an organization.

    **Authorization:** owner or manager of the organization.

    **Defaults:**
    - `end_at`: two hours after `start_at`
    - `currency`: the organization's currency
    - policy: transfers allowed, no cutoff
    """,
)
async def create_event(
    org_id: Annotated[uuid.UUID, Path(description="Organization id")],
    payload: EventCreate,
    db: AsyncDbSession,
    user: CurrentUser,
) -> Event:
    event = await event_repo.create_event(
        db,
        org_id=org_id,
        created_by=get_user_id(user),
        **payload.model_dump(),
    )
    await db.commit()
    return event


@router.get(
    "/orgs/{org_id}/events",
    response_model=PaginatedResponse[EventResponse],
    summary="List an organization's events (members only)",
)
async def list_org_events(
    org_id: Annotated[uuid.UUID, Path(description="Organization id")],
    db: AsyncDbSession,
    user: CurrentUser,
    status_filter: Annotated[EventStatus | None, Query(alias="status")] = None,
    page: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
) -> dict:
    return await event_repo.list_org_events(
        db,
        org_id=org_id,
        user_id=get_user_id(user),
        status=status_filter,
        page=page,
        limit=limit,
    )


@router.get(
    "/events",
    response_model=PaginatedResponse[EventResponse],
    summary="Browse public live events",
)
async def list_public_events(
    db: AsyncDbSession,
    user: ReadUser,
    search: Annotated[str | None, Query(max_length=200, description="Match on title")] = None,
    upcoming: Annotated[bool, Query(description="Only events that have not started")] = False,
    page: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
) -> dict:
    return await event_repo.list_public_events(
        db, search=search, upcoming=upcoming, page=page, limit=limit
    )


@router.get("/events/{event_id}", response_model=EventResponse, summary="Get an event")
async def get_event(event_id: EventId, db: AsyncDbSession, user: ReadUser) -> Event:
    return await event_repo.get_event(db, event_id, get_user_id(user))


@router.patch(
    "/events/{event_id}",
    response_model=EventResponse,
    summary="Update an event",
    description="Canceled and ended events cannot be edited.",
)
async def update_event(
    event_id: EventId, payload: EventUpdate, db: AsyncDbSession, user: CurrentUser
) -> Event:
    event = await event_repo.update_event(
        db,
        event_id=event_id,
        user_id=get_user_id(user),
        changes=payload.model_dump(exclude_unset=True),
    )
    await db.commit()
    return event


@router.post("/events/{event_id}/publish", response_model=EventResponse, summary="Go live")
async def publish_event(event_id: EventId, db: AsyncDbSession, user: CurrentUser) -> Event:
    event = await event_repo.publish_event(db, event_id=event_id, user_id=get_user_id(user))
    await db.commit()
    return event


@router.post("/events/{event_id}/pause", response_model=EventResponse, summary="Pause sales")
async def pause_event(event_id: EventId, db: AsyncDbSession, user: CurrentUser) -> Event:
    event = await event_repo.pause_event(db, event_id=event_id, user_id=get_user_id(user))
    await db.commit()
    return event


@router.post("/events/{event_id}/cancel", response_model=EventResponse, summary="Cancel an event")
async def cancel_event(event_id: EventId, db: AsyncDbSession, user: CurrentUser) -> Event:
    event = await event_repo.cancel_event(db, event_id=event_id, user_id=get_user_id(user))
    await db.commit()
    return event


@router.put(
    "/events/{event_id}/policy",
    response_model=EventPolicyResponse,
    summary="Update transfer and refund policy",
)
async def update_policy(
    event_id: EventId, payload: EventPolicyUpdate, db: AsyncDbSession, user: CurrentUser
) -> EventPolicy:
    policy = await event_repo.update_policy(
        db, event_id=event_id, user_id=get_user_id(user), **payload.model_dump()
    )
    await db.commit()
    return policy


@router.post(
    "/events/{event_id}/occurrences",
    response_model=OccurrenceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an occurrence",
)
async def add_occurrence(
    event_id: EventId, payload: OccurrenceCreate, db: AsyncDbSession, user: CurrentUser
) -> EventOccurrence:
    occurrence = await event_repo.add_occurrence(
        db, event_id=event_id, user_id=get_user_id(user), **payload.model_dump()
    )
    await db.commit()
    return occurrence


@router.get(
    "/events/{event_id}/occurrences",
    response_model=list[OccurrenceResponse],
    summary="List occurrences",
)
async def list_occurrences(
    event_id: EventId, db: AsyncDbSession, user: ReadUser
) -> list[EventOccurrence]:
    return await event_repo.list_occurrences(db, event_id=event_id, user_id=get_user_id(user))
