"""
Ticket routes: my tickets, QR refresh, gate check-in and transfers.

Check-in accepts either a raw ticket id or the scanned QR payload.
"""

import logging
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Path, Query, status

from ticketing.api.schemas.pagination import PaginatedResponse
from ticketing.api.schemas.ticket import (
    CheckinRequest,
    CheckinResponse,
    TicketResponse,
    TicketStatsResponse,
    TicketStatusUpdate,
    TransferCreate,
    TransferDirection,
    TransferResponse,
)
from ticketing.core.dependencies import AsyncDbSession, CurrentUser
from ticketing.core.security import get_user_id, require_permission
from ticketing.db.models import Checkin, Ticket, TicketTransfer
from ticketing.domain.enums import TicketStatus
from ticketing.repos import ticket_repo

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tickets"])

TicketId = Annotated[uuid.UUID, Path(description="Ticket id")]
TransferId = Annotated[uuid.UUID, Path(description="Transfer id")]
EventId = Annotated[uuid.UUID, Path(description="Event id")]


# ============================================================================
# Tickets
# ============================================================================


@router.get("/tickets", response_model=PaginatedResponse[TicketResponse], summary="My tickets")
async def list_my_tickets(
    db: AsyncDbSession,
    user: CurrentUser,
    event_id: Annotated[uuid.UUID | None, Query()] = None,
    status_filter: Annotated[TicketStatus | None, Query(alias="status")] = None,
    upcoming: Annotated[bool, Query(description="Only tickets for events that have not ended")] = False,
    page: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
) -> dict:
    return await ticket_repo.list_my_tickets(
        db,
        user_id=get_user_id(user),
        event_id=event_id,
        status=status_filter,
        upcoming=upcoming,
        page=page,
        limit=limit,
    )


@router.get("/tickets/{ticket_id}", response_model=TicketResponse, summary="Get a ticket")
async def get_ticket(ticket_id: TicketId, db: AsyncDbSession, user: CurrentUser) -> Ticket:
    return await ticket_repo.get_ticket(db, ticket_id, get_user_id(user))


@router.post("/tickets/{ticket_id}/qr", response_model=TicketResponse, summary="Regenerate QR code")
async def regenerate_qr(ticket_id: TicketId, db: AsyncDbSession, user: CurrentUser) -> Ticket:
    ticket = await ticket_repo.regenerate_qr(db, ticket_id=ticket_id, user_id=get_user_id(user))
    await db.commit()
    return ticket


@router.patch(
    "/tickets/{ticket_id}/status",
    response_model=TicketResponse,
    summary="Void a ticket",
    description="""
    Only `void` can be set. Allowed for the ticket owner or an owner/manager
    of the event's organization. Checked-in tickets cannot be voided.
    """,
)
async def update_ticket_status(
    ticket_id: TicketId, payload: TicketStatusUpdate, db: AsyncDbSession, user: CurrentUser
) -> Ticket:
    ticket = await ticket_repo.update_ticket_status(
        db, ticket_id=ticket_id, user_id=get_user_id(user), status=payload.status
    )
    await db.commit()
    return ticket


# ============================================================================
# Check-in
# ============================================================================


@router.post(
    "/events/{event_id}/checkins",
    response_model=CheckinResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Check a ticket in at the gate",
    description="""
    **Authorization:** owner, manager or staff of the event's organization.

    The gate opens two hours before start, or at the occurrence's
    `gate_open_at` when one is set.

    **Errors:**
    - 400 Bad Request: Unreadable QR payload
    - 404 Not Found: Unknown ticket or ticket for another event
    - 409 Conflict: Already checked in, not valid, event ended or not started
    """,
)
async def check_in(
    event_id: EventId, payload: CheckinRequest, db: AsyncDbSession, user: CurrentUser
) -> Checkin:
    checkin = await ticket_repo.check_in(
        db,
        event_id=event_id,
        scanner_id=get_user_id(user),
        ticket_ref=payload.ticket_ref,
        gate=payload.gate,
        occurrence_id=payload.occurrence_id,
    )
    await db.commit()
    return checkin


@router.get(
    "/events/{event_id}/checkins",
    response_model=PaginatedResponse[CheckinResponse],
    summary="Check-in log",
)
async def list_checkins(
    event_id: EventId,
    db: AsyncDbSession,
    user: CurrentUser,
    page: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
) -> dict:
    return await ticket_repo.list_checkins(
        db, event_id=event_id, user_id=get_user_id(user), page=page, limit=limit
    )


@router.get(
    "/events/{event_id}/ticket-stats",
    response_model=TicketStatsResponse,
    summary="Ticket counts and check-in rate",
)
async def ticket_stats(event_id: EventId, db: AsyncDbSession, user: CurrentUser) -> dict:
    return await ticket_repo.ticket_stats(db, event_id=event_id, user_id=get_user_id(user))


# ============================================================================
# Transfers
# ============================================================================


@router.post(
    "/tickets/{ticket_id}/transfers",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Offer a ticket to another user",
    description="""
    Start a transfer by recipient email or user id. The ticket stays with
    the sender until the recipient accepts.

    **Errors:**
    - 400 Bad Request: Transfers disabled, cutoff passed, or transfer to yourself
    - 404 Not Found: Ticket or recipient not found
    - 409 Conflict: A transfer is already pending
    """,
)
async def initiate_transfer(
    ticket_id: TicketId,
    payload: TransferCreate,
    db: AsyncDbSession,
    user: Annotated[dict[str, Any], Depends(require_permission("ticket:transfer"))],
) -> TicketTransfer:
    transfer = await ticket_repo.initiate_transfer(
        db,
        ticket_id=ticket_id,
        user_id=get_user_id(user),
        recipient_email=payload.recipient_email,
        recipient_id=payload.recipient_id,
        message=payload.message,
    )
    await db.commit()
    return transfer


@router.get("/transfers", response_model=list[TransferResponse], summary="My transfers")
async def list_transfers(
    db: AsyncDbSession,
    user: CurrentUser,
    direction: Annotated[TransferDirection, Query()] = "received",
) -> list[TicketTransfer]:
    return await ticket_repo.list_transfers(db, user_id=get_user_id(user), direction=direction)


@router.post(
    "/transfers/{transfer_id}/accept",
    response_model=TransferResponse,
    summary="Accept a transfer",
)
async def accept_transfer(
    transfer_id: TransferId, db: AsyncDbSession, user: CurrentUser
) -> TicketTransfer:
    transfer = await ticket_repo.accept_transfer(
        db, transfer_id=transfer_id, user_id=get_user_id(user)
    )
    await db.commit()
    return transfer


@router.post(
    "/transfers/{transfer_id}/cancel",
    response_model=TransferResponse,
    summary="Cancel a pending transfer",
)
async def cancel_transfer(
    transfer_id: TransferId, db: AsyncDbSession, user: CurrentUser
) -> TicketTransfer:
    transfer = await ticket_repo.cancel_transfer(
        db, transfer_id=transfer_id, user_id=get_user_id(user)
    )
    await db.commit()
    return transfer
