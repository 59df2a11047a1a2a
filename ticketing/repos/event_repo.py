"""
Repository functions for events, their policy and occurrences.
"""

import logging
from collections.abc import Collection
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.audit import create_audit_log_async, snapshot_entity
from ticketing.core.errors import InvalidStateError, NotFoundError, ValidationError
from ticketing.core.notifications import notify
from ticketing.db.models import Event, EventOccurrence, EventPolicy, Organization
from ticketing.db.validators import as_utc, utcnow
from ticketing.domain.enums import AuditEntityType, EventStatus, Visibility
from ticketing.repos.org_repo import assert_org_role, get_managed_event, is_org_member
from ticketing.repos.pagination import LIKE_ESCAPE, contains_pattern, paginate
from ticketing.services.currency import validate_currency_code
from ticketing.services.drafts import DEFAULT_EVENT_DURATION

logger = logging.getLogger(__name__)

EVENT_NOT_FOUND = "Event not found"

IMMUTABLE_EVENT_STATUSES = (EventStatus.CANCELED, EventStatus.ENDED)

PUBLISHABLE_FROM = (
    EventStatus.DRAFT,
    EventStatus.PENDING,
    EventStatus.APPROVED,
    EventStatus.PAUSED,
)
PAUSABLE_FROM = (EventStatus.LIVE,)
CANCELABLE_FROM = (EventStatus.LIVE, EventStatus.PENDING, EventStatus.APPROVED)

EVENT_UPDATABLE_FIELDS = ("title", "description", "visibility", "start_at", "end_at", "currency")


def _check_event_window(start_at: datetime, end_at: datetime) -> None:
    if end_at <= start_at:
        raise ValidationError(
            "Event end must be after its start",
            details={"start_at": start_at.isoformat(), "end_at": end_at.isoformat()},
        )


async def create_event(
    db: AsyncSession,
    *,
    org_id: Any,
    title: str,
    start_at: datetime,
    created_by: Any,
    description: str | None = None,
    end_at: datetime | None = None,
    visibility: Visibility = Visibility.PUBLIC,
    currency: str | None = None,
) -> Event:
    await assert_org_role(db, org_id, created_by)
    org = await db.get(Organization, org_id)
    if org is None:
        raise NotFoundError("Organization not found", details={"org_id": str(org_id)})

    start_at = as_utc(start_at)
    end_at = as_utc(end_at) if end_at else start_at + DEFAULT_EVENT_DURATION
    _check_event_window(start_at, end_at)

    event = Event(
        org_id=org_id,
        title=title.strip(),
        description=description,
        status=EventStatus.DRAFT,
        visibility=visibility,
        start_at=start_at,
        end_at=end_at,
        currency=validate_currency_code(currency or org.currency),
        created_by=created_by,
    )
    event.policy = EventPolicy(transfer_allowed=True, transfer_cutoff_hours=None)
    db.add(event)
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.EVENT,
        entity_id=event.id,
        action="CREATE",
        new_value=snapshot_entity(event),
        performed_by=created_by,
    )
    logger.info("Created event %s in org %s", event.id, org_id)
    return event


async def update_event(
    db: AsyncSession, *, event_id: Any, user_id: Any, changes: dict[str, Any]
) -> Event:
    """Apply a partial update to an event the user manages."""
    event = await get_managed_event(db, event_id, user_id)
    if event.status in IMMUTABLE_EVENT_STATUSES:
        raise InvalidStateError(
            f"Cannot edit an event that is {event.status.value}",
            details={"event_id": str(event.id), "status": event.status.value},
        )

    old_value = snapshot_entity(event)
    for field in EVENT_UPDATABLE_FIELDS:
        if changes.get(field) is None:
            continue
        value = changes[field]
        if field in ("start_at", "end_at"):
            value = as_utc(value)
        elif field == "currency":
            value = validate_currency_code(value)
        elif field == "title":
            value = value.strip()
        setattr(event, field, value)

    _check_event_window(event.start_at, event.end_at)
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.EVENT,
        entity_id=event.id,
        action="UPDATE",
        old_value=old_value,
        new_value=snapshot_entity(event),
        performed_by=user_id,
    )
    return event


async def transition_event_status(
    db: AsyncSession,
    event: Event,
    next_status: EventStatus,
    allowed_from: Collection[EventStatus],
    *,
    performed_by: Any,
) -> Event:
    """
    Move an event to `next_status`.

    Raises:
        InvalidStateError: If the current status is not in `allowed_from`
    """
    if event.status not in allowed_from:
        raise InvalidStateError(
            f"Cannot change event status from {event.status.value} to {next_status.value}",
            details={
                "event_id": str(event.id),
                "current_status": event.status.value,
                "requested_status": next_status.value,
            },
        )

    old_status = event.status
    now = utcnow()
    if next_status == EventStatus.LIVE and (event.publish_at is None or event.publish_at > now):
        event.publish_at = now
    elif next_status == EventStatus.DRAFT:
        event.publish_at = None
    event.status = next_status
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.EVENT,
        entity_id=event.id,
        action="STATUS_CHANGE",
        old_value={"status": old_status.value},
        new_value={"status": next_status.value},
        performed_by=performed_by,
    )
    notify(
        f"event.{next_status.value}",
        entity_type="event",
        entity_id=event.id,
        actor=performed_by,
        details={"from": old_status.value},
    )
    logger.info("Event %s moved from %s to %s", event.id, old_status.value, next_status.value)
    return event


async def publish_event(db: AsyncSession, *, event_id: Any, user_id: Any) -> Event:
    event = await get_managed_event(db, event_id, user_id)
    return await transition_event_status(
        db, event, EventStatus.LIVE, PUBLISHABLE_FROM, performed_by=user_id
    )


async def pause_event(db: AsyncSession, *, event_id: Any, user_id: Any) -> Event:
    event = await get_managed_event(db, event_id, user_id)
    return await transition_event_status(
        db, event, EventStatus.PAUSED, PAUSABLE_FROM, performed_by=user_id
    )


async def cancel_event(db: AsyncSession, *, event_id: Any, user_id: Any) -> Event:
    event = await get_managed_event(db, event_id, user_id)
    return await transition_event_status(
        db, event, EventStatus.CANCELED, CANCELABLE_FROM, performed_by=user_id
    )


def is_publicly_visible(event: Event) -> bool:
    return event.status == EventStatus.LIVE and event.visibility == Visibility.PUBLIC


async def get_event(db: AsyncSession, event_id: Any, user_id: Any) -> Event:
    """
    Public live events are readable by anyone; everything else only by
    members of the owning org.
    """
    event = await db.get(Event, event_id)
    if event is None:
        raise NotFoundError(EVENT_NOT_FOUND, details={"event_id": str(event_id)})
    if is_publicly_visible(event):
        return event
    if not await is_org_member(db, event.org_id, user_id):
        raise NotFoundError(EVENT_NOT_FOUND, details={"event_id": str(event_id)})
    return event


async def list_public_events(
    db: AsyncSession,
    *,
    search: str | None = None,
    upcoming: bool = False,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    stmt = select(Event).where(
        Event.status == EventStatus.LIVE, Event.visibility == Visibility.PUBLIC
    )
    if search:
        stmt = stmt.where(Event.title.ilike(contains_pattern(search), escape=LIKE_ESCAPE))
    if upcoming:
        stmt = stmt.where(Event.start_at >= utcnow())
    stmt = stmt.order_by(Event.start_at.asc(), Event.id.asc())
    return await paginate(db, stmt, page, limit)


async def list_org_events(
    db: AsyncSession,
    *,
    org_id: Any,
    user_id: Any,
    status: EventStatus | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    if not await is_org_member(db, org_id, user_id):
        raise NotFoundError("Organization not found", details={"org_id": str(org_id)})

    stmt = select(Event).where(Event.org_id == org_id)
    if status is not None:
        stmt = stmt.where(Event.status == status)
    stmt = stmt.order_by(Event.start_at.desc(), Event.id.desc())
    return await paginate(db, stmt, page, limit)


async def update_policy(
    db: AsyncSession,
    *,
    event_id: Any,
    user_id: Any,
    transfer_allowed: bool | None = None,
    transfer_cutoff_hours: int | None = None,
    refund_policy: str | None = None,
) -> EventPolicy:
    event = await get_managed_event(db, event_id, user_id)
    if transfer_cutoff_hours is not None and transfer_cutoff_hours < 0:
        raise ValidationError("Transfer cutoff must not be negative")

    policy = event.policy
    old_value = snapshot_entity(policy) if policy is not None else None
    if policy is None:
        policy = EventPolicy(event_id=event.id)
        event.policy = policy

    if transfer_allowed is not None:
        policy.transfer_allowed = transfer_allowed
    policy.transfer_cutoff_hours = transfer_cutoff_hours
    if refund_policy is not None:
        policy.refund_policy = refund_policy
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.EVENT,
        entity_id=event.id,
        action="POLICY_UPDATE",
        old_value=old_value,
        new_value=snapshot_entity(policy),
        performed_by=user_id,
    )
    return policy


async def add_occurrence(
    db: AsyncSession,
    *,
    event_id: Any,
    user_id: Any,
    start_at: datetime,
    end_at: datetime | None = None,
    gate_open_at: datetime | None = None,
) -> EventOccurrence:
    event = await get_managed_event(db, event_id, user_id)
    start_at = as_utc(start_at)
    end_at = as_utc(end_at)
    if end_at is not None and end_at <= start_at:
        raise ValidationError("Occurrence end must be after its start")

    occurrence = EventOccurrence(
        event_id=event.id,
        start_at=start_at,
        end_at=end_at,
        gate_open_at=as_utc(gate_open_at),
    )
    db.add(occurrence)
    await db.flush()
    logger.info("Added occurrence %s to event %s", occurrence.id, event.id)
    return occurrence


async def list_occurrences(db: AsyncSession, *, event_id: Any, user_id: Any) -> list[EventOccurrence]:
    event = await get_event(db, event_id, user_id)
    result = await db.execute(
        select(EventOccurrence)
        .where(EventOccurrence.event_id == event.id)
        .order_by(EventOccurrence.start_at.asc())
    )
    return list(result.scalars().all())
