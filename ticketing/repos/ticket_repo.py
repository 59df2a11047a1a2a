"""
Repository functions for tickets: lookup, check-in and transfers.

Scanners may send a ticket id or a QR payload; both resolve through
`decode_qr`.
"""

import logging
import uuid
from datetime import timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.audit import create_audit_log_async, snapshot_entity
from ticketing.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ticketing.core.notifications import notify
from ticketing.core.observability import metrics, region_label
from ticketing.db.models import Checkin, Event, EventOccurrence, Ticket, TicketTransfer, User
from ticketing.db.validators import utcnow
from ticketing.domain.enums import (
    AuditEntityType,
    NotificationCategory,
    TicketStatus,
    Visibility,
)
from ticketing.repos.auth_repo import get_user_by_email
from ticketing.repos.notification_repo import create_notification
from ticketing.repos.org_repo import CHECKIN_ROLES, MANAGE_ROLES, assert_org_role, get_membership
from ticketing.repos.pagination import paginate
from ticketing.services.qr_codec import decode_qr, encode_qr

logger = logging.getLogger(__name__)

TICKET_NOT_FOUND = "Ticket not found"
TRANSFER_NOT_FOUND = "Transfer not found"

# Gates open this long before the scheduled start
GATE_OPEN_LEAD = timedelta(hours=2)


async def _get_event(db: AsyncSession, event_id: Any) -> Event:
    event = await db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found", details={"event_id": str(event_id)})
    return event


async def get_ticket(db: AsyncSession, ticket_id: Any, user_id: Any) -> Ticket:
    """Load a ticket owned by the user."""
    ticket = await db.get(Ticket, ticket_id)
    if ticket is None or ticket.owner_id != user_id:
        raise NotFoundError(TICKET_NOT_FOUND, details={"ticket_id": str(ticket_id)})
    return ticket


async def list_my_tickets(
    db: AsyncSession,
    *,
    user_id: Any,
    event_id: Any = None,
    status: TicketStatus | None = None,
    upcoming: bool = False,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    stmt = select(Ticket).where(Ticket.owner_id == user_id)
    if event_id is not None:
        stmt = stmt.where(Ticket.event_id == event_id)
    if status is not None:
        stmt = stmt.where(Ticket.status == status)
    if upcoming:
        stmt = stmt.join(Event, Event.id == Ticket.event_id).where(Event.end_at >= utcnow())
    stmt = stmt.order_by(Ticket.issued_at.desc(), Ticket.id.desc())
    return await paginate(db, stmt, page, limit)


async def regenerate_qr(db: AsyncSession, *, ticket_id: Any, user_id: Any) -> Ticket:
    ticket = await get_ticket(db, ticket_id, user_id)
    ticket.qr_code = encode_qr(ticket.id, ticket.order_id, ticket.ticket_type_id, ticket.seat_id)
    await db.flush()
    logger.info("Regenerated QR code for ticket %s", ticket.id)
    return ticket


# ============================================================================
# Check-in
# ============================================================================


def _resolve_ticket_ref(ticket_ref: str) -> uuid.UUID:
    try:
        return uuid.UUID(decode_qr(ticket_ref.strip()))
    except ValueError:
        raise NotFoundError(TICKET_NOT_FOUND, details={"ticket_ref": ticket_ref})


async def check_in(
    db: AsyncSession,
    *,
    event_id: Any,
    scanner_id: Any,
    ticket_ref: str,
    gate: str | None = None,
    occurrence_id: Any = None,
) -> Checkin:
    """
    Admit a ticket at the gate.

    Raises:
        NotFoundError: Unknown ticket, or a ticket for another event
        ForbiddenError: Scanner has no check-in role on the event's org
        ConflictError: Ticket already checked in
        InvalidStateError: Ticket not valid, event ended or gates not open
    """
    ticket_id = _resolve_ticket_ref(ticket_ref)
    ticket = await db.get(Ticket, ticket_id)
    if ticket is None:
        metrics.checkins_total.labels(result="not_found", region=region_label()).inc()
        raise NotFoundError(TICKET_NOT_FOUND, details={"ticket_ref": ticket_ref})

    event = await _get_event(db, ticket.event_id)
    await assert_org_role(
        db,
        event.org_id,
        scanner_id,
        CHECKIN_ROLES,
        "You do not have permission to check in tickets for this event",
    )
    if str(event.id) != str(event_id):
        raise NotFoundError(TICKET_NOT_FOUND, details={"ticket_id": str(ticket.id)})

    if ticket.status == TicketStatus.CHECKED_IN:
        metrics.checkins_total.labels(result="duplicate", region=region_label()).inc()
        raise ConflictError("Ticket is already checked in", details={"ticket_id": str(ticket.id)})
    if ticket.status != TicketStatus.ISSUED:
        metrics.checkins_total.labels(result="rejected", region=region_label()).inc()
        raise InvalidStateError(
            "Ticket is not valid for entry",
            details={"ticket_id": str(ticket.id), "status": ticket.status.value},
        )

    occurrence = None
    occurrence_id = occurrence_id or ticket.occurrence_id
    if occurrence_id is not None:
        occurrence = await db.get(EventOccurrence, occurrence_id)
        if occurrence is None or occurrence.event_id != event.id:
            raise ValidationError("Occurrence does not belong to this event")

    now = utcnow()
    start_at = occurrence.start_at if occurrence else event.start_at
    end_at = (occurrence.end_at if occurrence else None) or event.end_at
    if end_at < now:
        metrics.checkins_total.labels(result="rejected", region=region_label()).inc()
        raise InvalidStateError("Event has ended", details={"event_id": str(event.id)})

    gate_open = now >= start_at - GATE_OPEN_LEAD
    if occurrence is not None and occurrence.gate_open_at is not None:
        gate_open = gate_open or now >= occurrence.gate_open_at
    if now < start_at and not gate_open:
        metrics.checkins_total.labels(result="rejected", region=region_label()).inc()
        raise InvalidStateError(
            "Event has not started yet",
            details={"event_id": str(event.id), "start_at": start_at.isoformat()},
        )

    checkin = Checkin(
        ticket_id=ticket.id,
        event_id=event.id,
        occurrence_id=occurrence.id if occurrence else None,
        scanner_id=scanner_id,
        gate=gate,
        scanned_at=now,
    )
    ticket.status = TicketStatus.CHECKED_IN
    db.add(checkin)
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.TICKET,
        entity_id=ticket.id,
        action="CHECKIN",
        old_value={"status": TicketStatus.ISSUED.value},
        new_value={"status": ticket.status.value, "gate": gate},
        performed_by=scanner_id,
    )
    metrics.checkins_total.labels(result="success", region=region_label()).inc()
    logger.info("Checked in ticket %s at gate %s", ticket.id, gate or "-")
    return checkin


async def _assert_event_readable(db: AsyncSession, event: Event, user_id: Any, what: str) -> None:
    if event.visibility == Visibility.PUBLIC:
        return
    if await get_membership(db, event.org_id, user_id) is None:
        raise ForbiddenError(
            f"You do not have permission to view {what} for this event",
            details={"event_id": str(event.id)},
        )


async def list_checkins(
    db: AsyncSession,
    *,
    event_id: Any,
    user_id: Any,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    event = await _get_event(db, event_id)
    await _assert_event_readable(db, event, user_id, "check-ins")
    stmt = (
        select(Checkin)
        .where(Checkin.event_id == event.id)
        .order_by(Checkin.scanned_at.desc(), Checkin.id.desc())
    )
    return await paginate(db, stmt, page, limit)


async def ticket_stats(db: AsyncSession, *, event_id: Any, user_id: Any) -> dict[str, Any]:
    """
    Ticket counts for an event.

    ``transferred`` counts tickets that changed hands; ``check_in_rate`` is
    the percentage of non-void tickets that were scanned.
    """
    event = await _get_event(db, event_id)
    await _assert_event_readable(db, event, user_id, "stats")

    rows = (
        await db.execute(
            select(Ticket.status, func.count())
            .where(Ticket.event_id == event.id)
            .group_by(Ticket.status)
        )
    ).all()
    counts = {status: 0 for status in TicketStatus}
    for status, count in rows:
        counts[status] = count

    transferred = await db.scalar(
        select(func.count())
        .select_from(Ticket)
        .where(Ticket.event_id == event.id, Ticket.transferred_from_id.is_not(None))
    )

    total = sum(counts.values())
    admissible = total - counts[TicketStatus.VOID]
    checked_in = counts[TicketStatus.CHECKED_IN]
    return {
        "total": total,
        "issued": counts[TicketStatus.ISSUED],
        "checked_in": checked_in,
        "void": counts[TicketStatus.VOID],
        "transferred": transferred or 0,
        "check_in_rate": round(checked_in / admissible * 100, 1) if admissible else 0.0,
    }


async def update_ticket_status(
    db: AsyncSession, *, ticket_id: Any, user_id: Any, status: TicketStatus
) -> Ticket:
    """Void a ticket. Allowed for its owner or an event manager."""
    if status != TicketStatus.VOID:
        raise ValidationError(
            "Only void can be set on a ticket", details={"status": status.value}
        )

    ticket = await db.get(Ticket, ticket_id)
    if ticket is None:
        raise NotFoundError(TICKET_NOT_FOUND, details={"ticket_id": str(ticket_id)})
    if ticket.owner_id != user_id:
        event = await _get_event(db, ticket.event_id)
        membership = await get_membership(db, event.org_id, user_id)
        if membership is None:
            raise NotFoundError(TICKET_NOT_FOUND, details={"ticket_id": str(ticket_id)})
        if membership.role not in MANAGE_ROLES:
            raise ForbiddenError("You do not have permission to update this ticket")

    if ticket.status == TicketStatus.VOID:
        return ticket
    if ticket.status == TicketStatus.CHECKED_IN:
        raise InvalidStateError("Checked-in tickets cannot be voided")

    old_value = snapshot_entity(ticket, include=["status", "owner_id"])
    ticket.status = TicketStatus.VOID
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.TICKET,
        entity_id=ticket.id,
        action="VOID",
        old_value=old_value,
        new_value=snapshot_entity(ticket, include=["status", "owner_id"]),
        performed_by=user_id,
    )
    logger.info("Voided ticket %s", ticket.id)
    return ticket


# ============================================================================
# Transfers
# ============================================================================


async def _get_pending_transfer(db: AsyncSession, ticket_id: Any) -> TicketTransfer | None:
    result = await db.execute(
        select(TicketTransfer).where(
            TicketTransfer.ticket_id == ticket_id,
            TicketTransfer.accepted_at.is_(None),
            TicketTransfer.canceled_at.is_(None),
        )
    )
    return result.scalars().first()


async def initiate_transfer(
    db: AsyncSession,
    *,
    ticket_id: Any,
    user_id: Any,
    recipient_email: str | None = None,
    recipient_id: Any = None,
    message: str | None = None,
) -> TicketTransfer:
    ticket = await get_ticket(db, ticket_id, user_id)
    if ticket.status != TicketStatus.ISSUED:
        raise InvalidStateError(
            "Ticket cannot be transferred in its current status",
            details={"ticket_id": str(ticket.id), "status": ticket.status.value},
        )

    event = await _get_event(db, ticket.event_id)
    policy = event.policy
    if policy is not None and not policy.transfer_allowed:
        raise ValidationError("Transfers are not allowed for this event")
    if policy is not None and policy.transfer_cutoff_hours is not None:
        cutoff = event.start_at - timedelta(hours=policy.transfer_cutoff_hours)
        if utcnow() > cutoff:
            raise ValidationError(
                "Transfer cutoff has passed", details={"cutoff": cutoff.isoformat()}
            )

    if await _get_pending_transfer(db, ticket.id) is not None:
        raise ConflictError(
            "Ticket is already being transferred", details={"ticket_id": str(ticket.id)}
        )

    if recipient_email:
        recipient = await get_user_by_email(db, recipient_email)
    elif recipient_id is not None:
        recipient = await db.get(User, recipient_id)
    else:
        raise ValidationError("A recipient email or user id is required")
    if recipient is None:
        raise NotFoundError("Recipient not found")
    if recipient.id == user_id:
        raise ValidationError("Cannot transfer ticket to yourself")

    transfer = TicketTransfer(
        ticket_id=ticket.id, from_user_id=user_id, to_user_id=recipient.id, message=message
    )
    db.add(transfer)
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.TRANSFER,
        entity_id=transfer.id,
        action="INITIATE",
        new_value=snapshot_entity(transfer),
        performed_by=user_id,
    )
    await create_notification(
        db,
        user_id=recipient.id,
        type="transfer.received",
        category=NotificationCategory.TRANSACTIONAL,
        title="You have been sent a ticket",
        message=f"A ticket for {event.title} is waiting for you to accept.",
        data={"transfer_id": str(transfer.id), "ticket_id": str(ticket.id)},
    )
    notify("transfer.initiated", entity_type="transfer", entity_id=transfer.id, actor=user_id)
    metrics.transfers_total.labels(action="initiated", region=region_label()).inc()
    logger.info("Ticket %s transfer %s initiated", ticket.id, transfer.id)
    return transfer


async def _get_transfer(db: AsyncSession, transfer_id: Any) -> TicketTransfer:
    transfer = await db.get(TicketTransfer, transfer_id)
    if transfer is None:
        raise NotFoundError(TRANSFER_NOT_FOUND, details={"transfer_id": str(transfer_id)})
    return transfer


def _assert_pending(transfer: TicketTransfer) -> None:
    if not transfer.is_pending:
        raise InvalidStateError(
            "Transfer has already been processed", details={"transfer_id": str(transfer.id)}
        )


async def accept_transfer(db: AsyncSession, *, transfer_id: Any, user_id: Any) -> TicketTransfer:
    """Hand the ticket to the recipient and issue it a fresh QR code."""
    transfer = await _get_transfer(db, transfer_id)
    if transfer.to_user_id != user_id:
        raise ForbiddenError("You are not the recipient of this transfer")
    _assert_pending(transfer)

    ticket = await db.get(Ticket, transfer.ticket_id)
    if ticket is None or ticket.owner_id != transfer.from_user_id or ticket.status != TicketStatus.ISSUED:
        raise InvalidStateError("Ticket can no longer be transferred")

    transfer.accepted_at = utcnow()
    ticket.transferred_from_id = transfer.from_user_id
    ticket.owner_id = user_id
    ticket.qr_code = encode_qr(ticket.id, ticket.order_id, ticket.ticket_type_id, ticket.seat_id)
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.TRANSFER,
        entity_id=transfer.id,
        action="ACCEPT",
        old_value={"owner_id": str(transfer.from_user_id)},
        new_value={"owner_id": str(user_id)},
        performed_by=user_id,
    )
    notify("transfer.accepted", entity_type="transfer", entity_id=transfer.id, actor=user_id)
    metrics.transfers_total.labels(action="accepted", region=region_label()).inc()
    logger.info("Transfer %s accepted", transfer.id)
    return transfer


async def cancel_transfer(db: AsyncSession, *, transfer_id: Any, user_id: Any) -> TicketTransfer:
    transfer = await _get_transfer(db, transfer_id)
    if transfer.from_user_id != user_id:
        raise ForbiddenError("Only the sender can cancel this transfer")
    _assert_pending(transfer)

    transfer.canceled_at = utcnow()
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.TRANSFER,
        entity_id=transfer.id,
        action="CANCEL",
        performed_by=user_id,
    )
    metrics.transfers_total.labels(action="canceled", region=region_label()).inc()
    logger.info("Transfer %s canceled", transfer.id)
    return transfer


async def list_transfers(
    db: AsyncSession, *, user_id: Any, direction: str = "received"
) -> list[TicketTransfer]:
    column = TicketTransfer.from_user_id if direction == "sent" else TicketTransfer.to_user_id
    result = await db.execute(
        select(TicketTransfer)
        .where(column == user_id)
        .order_by(TicketTransfer.created_at.desc())
    )
    return list(result.scalars().all())
