"""
Repository functions for ticket types, seats and holds.

Availability is derived on read: a GA ticket type has
``capacity - sold - active holds`` left, and a seat is taken while a
non-void ticket or an unexpired, unreleased hold points at it.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.errors import CapacityError, ConflictError, NotFoundError, ValidationError
from ticketing.core.observability import db_metrics
from ticketing.db.models import Hold, Seat, Ticket, TicketType
from ticketing.db.validators import as_utc, utcnow
from ticketing.domain.enums import HoldReason, TicketKind, TicketStatus, TicketTypeStatus
from ticketing.repos.event_repo import get_event
from ticketing.repos.org_repo import get_managed_event
from ticketing.services.currency import validate_currency_code

logger = logging.getLogger(__name__)

TICKET_TYPE_NOT_FOUND = "Ticket type not found"

TICKET_TYPE_UPDATABLE_FIELDS = (
    "name",
    "status",
    "price_cents",
    "fee_cents",
    "capacity",
    "per_order_limit",
    "sales_start",
    "sales_end",
)


def _active_hold_filter(now: datetime):
    return and_(
        Hold.released_at.is_(None),
        or_(Hold.expires_at.is_(None), Hold.expires_at > now),
    )


# ============================================================================
# Availability helpers
# ============================================================================


async def count_sold(db: AsyncSession, ticket_type_id: Any) -> int:
    """Number of non-void tickets of a ticket type."""
    with db_metrics.track("count_sold"):
        total = await db.scalar(
            select(func.count())
            .select_from(Ticket)
            .where(Ticket.ticket_type_id == ticket_type_id, Ticket.status != TicketStatus.VOID)
        )
    return total or 0


async def count_active_holds(db: AsyncSession, ticket_type_id: Any, now: datetime | None = None) -> int:
    """Quantity held back on a ticket type by unexpired, unreleased holds."""
    now = now or utcnow()
    with db_metrics.track("count_active_holds"):
        total = await db.scalar(
            select(func.coalesce(func.sum(Hold.quantity), 0)).where(
                Hold.ticket_type_id == ticket_type_id, _active_hold_filter(now)
            )
        )
    return int(total or 0)


async def is_seat_taken(db: AsyncSession, seat_id: Any, now: datetime | None = None) -> bool:
    return await seat_state(db, seat_id, now) != "available"


async def seat_state(db: AsyncSession, seat_id: Any, now: datetime | None = None) -> str:
    """One of ``sold``, ``held`` or ``available``."""
    now = now or utcnow()
    sold = await db.scalar(
        select(Ticket.id)
        .where(Ticket.seat_id == seat_id, Ticket.status != TicketStatus.VOID)
        .limit(1)
    )
    if sold is not None:
        return "sold"
    held = await db.scalar(
        select(Hold.id).where(Hold.seat_id == seat_id, _active_hold_filter(now)).limit(1)
    )
    return "held" if held is not None else "available"


async def available_quantity(db: AsyncSession, ticket_type: TicketType, now: datetime | None = None) -> int | None:
    """Remaining GA quantity, or None for unlimited capacity."""
    if ticket_type.capacity is None:
        return None
    sold = await count_sold(db, ticket_type.id)
    held = await count_active_holds(db, ticket_type.id, now)
    return max(ticket_type.capacity - sold - held, 0)


# ============================================================================
# Ticket types
# ============================================================================


def _check_ticket_type_values(values: dict[str, Any]) -> None:
    for field in ("price_cents", "fee_cents"):
        if values.get(field) is not None and values[field] < 0:
            raise ValidationError(f"{field} must not be negative", details={"field": field})
    if values.get("capacity") is not None and values["capacity"] < 0:
        raise ValidationError("capacity must not be negative", details={"field": "capacity"})
    if values.get("per_order_limit") is not None and values["per_order_limit"] < 1:
        raise ValidationError(
            "per_order_limit must be at least 1", details={"field": "per_order_limit"}
        )


def _check_sales_window(ticket_type: TicketType) -> None:
    if (
        ticket_type.sales_start
        and ticket_type.sales_end
        and ticket_type.sales_end <= ticket_type.sales_start
    ):
        raise ValidationError("Sales end must be after sales start")


async def create_ticket_type(
    db: AsyncSession,
    *,
    event_id: Any,
    user_id: Any,
    name: str,
    kind: TicketKind = TicketKind.GA,
    price_cents: int = 0,
    fee_cents: int = 0,
    currency: str | None = None,
    capacity: int | None = None,
    per_order_limit: int | None = None,
    sales_start: datetime | None = None,
    sales_end: datetime | None = None,
) -> TicketType:
    event = await get_managed_event(db, event_id, user_id)
    _check_ticket_type_values(
        {
            "price_cents": price_cents,
            "fee_cents": fee_cents,
            "capacity": capacity,
            "per_order_limit": per_order_limit,
        }
    )

    ticket_type = TicketType(
        event_id=event.id,
        name=name.strip(),
        kind=kind,
        status=TicketTypeStatus.ACTIVE,
        currency=validate_currency_code(currency or event.currency),
        price_cents=price_cents,
        fee_cents=fee_cents,
        capacity=capacity,
        per_order_limit=per_order_limit,
        sales_start=as_utc(sales_start),
        sales_end=as_utc(sales_end),
    )
    _check_sales_window(ticket_type)
    db.add(ticket_type)
    await db.flush()

    logger.info("Created ticket type %s for event %s", ticket_type.id, event.id)
    return ticket_type


async def get_ticket_type(db: AsyncSession, ticket_type_id: Any) -> TicketType:
    ticket_type = await db.get(TicketType, ticket_type_id)
    if ticket_type is None:
        raise NotFoundError(TICKET_TYPE_NOT_FOUND, details={"ticket_type_id": str(ticket_type_id)})
    return ticket_type


async def update_ticket_type(
    db: AsyncSession, *, ticket_type_id: Any, user_id: Any, changes: dict[str, Any]
) -> TicketType:
    ticket_type = await get_ticket_type(db, ticket_type_id)
    await get_managed_event(db, ticket_type.event_id, user_id)
    _check_ticket_type_values(changes)

    for field in TICKET_TYPE_UPDATABLE_FIELDS:
        if changes.get(field) is None:
            continue
        value = changes[field]
        if field in ("sales_start", "sales_end"):
            value = as_utc(value)
        setattr(ticket_type, field, value)

    _check_sales_window(ticket_type)
    await db.flush()
    return ticket_type


async def list_ticket_types(db: AsyncSession, *, event_id: Any, user_id: Any) -> list[dict[str, Any]]:
    """Ticket types of an event with ``sold`` and ``available`` counts."""
    event = await get_event(db, event_id, user_id)
    result = await db.execute(
        select(TicketType)
        .where(TicketType.event_id == event.id)
        .order_by(TicketType.created_at.asc(), TicketType.id.asc())
    )

    now = utcnow()
    rows = []
    for ticket_type in result.scalars().all():
        sold = await count_sold(db, ticket_type.id)
        available = None
        if ticket_type.kind == TicketKind.GA:
            available = await available_quantity(db, ticket_type, now)
        rows.append({"ticket_type": ticket_type, "sold": sold, "available": available})
    return rows


# ============================================================================
# Seats
# ============================================================================


async def add_seats(
    db: AsyncSession, *, event_id: Any, user_id: Any, seats: list[dict[str, Any]]
) -> list[Seat]:
    """
    Raises:
        ConflictError: If a position repeats in the request or already exists
    """
    event = await get_managed_event(db, event_id, user_id)

    existing = await db.execute(
        select(Seat.section, Seat.row, Seat.number).where(Seat.event_id == event.id)
    )
    taken = {tuple(row) for row in existing.all()}

    created = []
    for item in seats:
        position = (str(item["section"]), str(item["row"]), str(item["number"]))
        if position in taken:
            raise ConflictError(
                "Seat already exists",
                details={"section": position[0], "row": position[1], "number": position[2]},
            )
        taken.add(position)

        ticket_type_id = item.get("ticket_type_id")
        if ticket_type_id is not None:
            ticket_type = await get_ticket_type(db, ticket_type_id)
            if ticket_type.event_id != event.id:
                raise ValidationError("Ticket type does not belong to this event")

        seat = Seat(
            event_id=event.id,
            ticket_type_id=ticket_type_id,
            section=position[0],
            row=position[1],
            number=position[2],
        )
        db.add(seat)
        created.append(seat)

    await db.flush()
    logger.info("Added %d seats to event %s", len(created), event.id)
    return created


async def list_seats(db: AsyncSession, *, event_id: Any, user_id: Any) -> list[dict[str, Any]]:
    event = await get_event(db, event_id, user_id)
    result = await db.execute(
        select(Seat)
        .where(Seat.event_id == event.id)
        .order_by(Seat.section, Seat.row, Seat.number)
    )

    now = utcnow()
    return [
        {"seat": seat, "state": await seat_state(db, seat.id, now)}
        for seat in result.scalars().all()
    ]


async def get_seat(db: AsyncSession, seat_id: Any) -> Seat:
    seat = await db.get(Seat, seat_id)
    if seat is None:
        raise NotFoundError("Seat not found", details={"seat_id": str(seat_id)})
    return seat


# ============================================================================
# Holds
# ============================================================================


async def create_hold(
    db: AsyncSession,
    *,
    event_id: Any,
    user_id: Any,
    quantity: int = 1,
    reason: HoldReason = HoldReason.ORGANIZER,
    ticket_type_id: Any = None,
    seat_id: Any = None,
    expires_at: datetime | None = None,
) -> Hold:
    event = await get_managed_event(db, event_id, user_id)
    if quantity < 1:
        raise ValidationError("Hold quantity must be at least 1")
    if ticket_type_id is None and seat_id is None:
        raise ValidationError("A hold needs a ticket type or a seat")

    if ticket_type_id is not None:
        ticket_type = await get_ticket_type(db, ticket_type_id)
        if ticket_type.event_id != event.id:
            raise ValidationError("Ticket type does not belong to this event")

    if seat_id is not None:
        seat = await get_seat(db, seat_id)
        if seat.event_id != event.id:
            raise ValidationError("Seat does not belong to this event")
        if await is_seat_taken(db, seat.id):
            raise CapacityError("Seat is not available", details={"seat_id": str(seat.id)})
        quantity = 1

    hold = Hold(
        event_id=event.id,
        ticket_type_id=ticket_type_id,
        seat_id=seat_id,
        quantity=quantity,
        reason=reason,
        expires_at=as_utc(expires_at),
        created_by=user_id,
    )
    db.add(hold)
    await db.flush()

    logger.info("Created %s hold %s on event %s", reason.value, hold.id, event.id)
    return hold


async def list_holds(
    db: AsyncSession, *, event_id: Any, user_id: Any, active_only: bool = True
) -> list[Hold]:
    event = await get_managed_event(db, event_id, user_id)
    stmt = select(Hold).where(Hold.event_id == event.id)
    if active_only:
        stmt = stmt.where(_active_hold_filter(utcnow()))
    result = await db.execute(stmt.order_by(Hold.created_at.desc()))
    return list(result.scalars().all())


async def release_hold(db: AsyncSession, *, hold_id: Any, user_id: Any) -> Hold:
    hold = await db.get(Hold, hold_id)
    if hold is None:
        raise NotFoundError("Hold not found", details={"hold_id": str(hold_id)})
    await get_managed_event(db, hold.event_id, user_id)

    if hold.released_at is None:
        hold.released_at = utcnow()
        await db.flush()
        logger.info("Released hold %s", hold.id)
    return hold
