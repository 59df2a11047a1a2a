"""
Inventory routes: ticket types, seats and holds.

Seat state and GA availability are computed on read, so they always
reflect current sales and unexpired holds.
"""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from ticketing.api.schemas.inventory import (
    HoldCreate,
    HoldResponse,
    SeatResponse,
    SeatsCreate,
    TicketTypeCreate,
    TicketTypeResponse,
    TicketTypeUpdate,
)
from ticketing.core.dependencies import AsyncDbSession, CurrentUser
from ticketing.core.security import get_user_id
from ticketing.db.models import Hold, TicketType
from ticketing.repos import inventory_repo

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Inventory"])

EventId = Annotated[uuid.UUID, Path(description="Event id")]


@router.post(
    "/events/{event_id}/ticket-types",
    response_model=TicketTypeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a ticket type",
    description="""
    Add a GA or SEATED ticket type to an event.

    **Authorization:** owner or manager of the event's organization.

    `capacity` null means unlimited. Currency defaults to the event's.
    """,
)
async def create_ticket_type(
    event_id: EventId, payload: TicketTypeCreate, db: AsyncDbSession, user: CurrentUser
) -> TicketType:
    ticket_type = await inventory_repo.create_ticket_type(
        db, event_id=event_id, user_id=get_user_id(user), **payload.model_dump()
    )
    await db.commit()
    return ticket_type


@router.get(
    "/events/{event_id}/ticket-types",
    response_model=list[TicketTypeResponse],
    summary="List ticket types with sold/available counts",
)
async def list_ticket_types(
    event_id: EventId, db: AsyncDbSession, user: CurrentUser
) -> list[TicketTypeResponse]:
    rows = await inventory_repo.list_ticket_types(db, event_id=event_id, user_id=get_user_id(user))
    return [
        TicketTypeResponse.model_validate(row["ticket_type"]).model_copy(
            update={"sold": row["sold"], "available": row["available"]}
        )
        for row in rows
    ]


@router.patch(
    "/ticket-types/{ticket_type_id}",
    response_model=TicketTypeResponse,
    summary="Update a ticket type",
)
async def update_ticket_type(
    ticket_type_id: Annotated[uuid.UUID, Path(description="Ticket type id")],
    payload: TicketTypeUpdate,
    db: AsyncDbSession,
    user: CurrentUser,
) -> TicketType:
    ticket_type = await inventory_repo.update_ticket_type(
        db,
        ticket_type_id=ticket_type_id,
        user_id=get_user_id(user),
        changes=payload.model_dump(exclude_unset=True),
    )
    await db.commit()
    return ticket_type


@router.post(
    "/events/{event_id}/seats",
    response_model=list[SeatResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Add seats",
    description="""
    Add seats to a seated event. Each (section, row, number) must be
    unique within the event.

    **Errors:**
    - 409 Conflict: A seat already exists
    """,
)
async def add_seats(
    event_id: EventId, payload: SeatsCreate, db: AsyncDbSession, user: CurrentUser
) -> list[SeatResponse]:
    seats = await inventory_repo.add_seats(
        db,
        event_id=event_id,
        user_id=get_user_id(user),
        seats=[seat.model_dump() for seat in payload.seats],
    )
    await db.commit()
    return [
        SeatResponse.model_validate(seat).model_copy(update={"state": "available"})
        for seat in seats
    ]


@router.get(
    "/events/{event_id}/seats",
    response_model=list[SeatResponse],
    summary="Seat map with availability",
)
async def list_seats(
    event_id: EventId, db: AsyncDbSession, user: CurrentUser
) -> list[SeatResponse]:
    rows = await inventory_repo.list_seats(db, event_id=event_id, user_id=get_user_id(user))
    return [
        SeatResponse.model_validate(row["seat"]).model_copy(update={"state": row["state"]})
        for row in rows
    ]


@router.post(
    "/events/{event_id}/holds",
    response_model=HoldResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Hold inventory",
    description="""
    Take inventory off sale for a ticket type or a single seat.

    **Errors:**
    - 409 Conflict: The seat is already held or sold
    """,
)
async def create_hold(
    event_id: EventId, payload: HoldCreate, db: AsyncDbSession, user: CurrentUser
) -> Hold:
    hold = await inventory_repo.create_hold(
        db, event_id=event_id, user_id=get_user_id(user), **payload.model_dump()
    )
    await db.commit()
    return hold


@router.get("/events/{event_id}/holds", response_model=list[HoldResponse], summary="List holds")
async def list_holds(
    event_id: EventId,
    db: AsyncDbSession,
    user: CurrentUser,
    active_only: Annotated[bool, Query(description="Skip released and expired holds")] = True,
) -> list[Hold]:
    return await inventory_repo.list_holds(
        db, event_id=event_id, user_id=get_user_id(user), active_only=active_only
    )


@router.delete("/holds/{hold_id}", response_model=HoldResponse, summary="Release a hold")
async def release_hold(
    hold_id: Annotated[uuid.UUID, Path(description="Hold id")],
    db: AsyncDbSession,
    user: CurrentUser,
) -> Hold:
    hold = await inventory_repo.release_hold(db, hold_id=hold_id, user_id=get_user_id(user))
    await db.commit()
    return hold
