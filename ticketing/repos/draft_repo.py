"""
Repository functions for event drafts (the event creator wizard).

Publishing turns a fully valid draft into a live or scheduled Event with
its policy, occurrences and ticket types. Publishing twice returns the
first result; `event_drafts.event_id` is unique so a concurrent second
publish fails at flush and is answered the same way.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.audit import create_audit_log_async
from ticketing.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ticketing.core.notifications import notify
from ticketing.core.observability import metrics, region_label
from ticketing.db.models import (
    DraftCollaborator,
    DraftSection,
    Event,
    EventDraft,
    EventOccurrence,
    EventPolicy,
    Organization,
    TicketType,
)
from ticketing.db.validators import as_utc, utcnow
from ticketing.domain.enums import (
    AuditEntityType,
    CollaboratorRole,
    DraftSectionType,
    DraftStatus,
    EventStatus,
    SectionStatus,
    TicketKind,
    TicketTypeStatus,
    Visibility,
)
from ticketing.repos.org_repo import ALL_ROLES, MANAGE_ROLES, assert_org_role
from ticketing.repos.pagination import paginate
from ticketing.services.currency import validate_currency_code
from ticketing.services.drafts import (
    DEFAULT_EVENT_DURATION,
    SECTION_ORDER,
    SHORT_DESCRIPTION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    compute_completion,
    parse_datetime,
    schedule_occurrences,
    slugify,
    transfer_cutoff_hours,
    validate_section,
)

logger = logging.getLogger(__name__)

DRAFT_NOT_FOUND = "Draft not found"
ALREADY_PUBLISHED_MSG = "Event already published"
COPY_SUFFIX = " (Copy)"

LOCKED_DRAFT_STATUSES = (DraftStatus.PUBLISHED, DraftStatus.SCHEDULED)


def _new_sections() -> list[DraftSection]:
    return [
        DraftSection(section=section, payload={}, status=SectionStatus.INCOMPLETE, errors=[])
        for section in SECTION_ORDER
    ]


async def create_draft(
    db: AsyncSession, *, org_id: Any, user_id: Any, title: str | None = None
) -> EventDraft:
    await assert_org_role(db, org_id, user_id, MANAGE_ROLES)

    draft = EventDraft(
        org_id=org_id,
        created_by=user_id,
        title=title.strip()[:TITLE_MAX_LENGTH] if title else None,
        status=DraftStatus.DRAFT,
        completion_percent=0,
        active_section=DraftSectionType.BASICS,
    )
    draft.sections.extend(_new_sections())
    draft.collaborators.append(DraftCollaborator(user_id=user_id, role=CollaboratorRole.OWNER))
    db.add(draft)
    await db.flush()

    logger.info("Created draft %s in org %s", draft.id, org_id)
    return draft


async def ensure_draft_access(db: AsyncSession, draft_id: Any, user_id: Any) -> EventDraft:
    """
    Load a draft the user created or collaborates on.

    Raises:
        NotFoundError: Unknown draft
        ForbiddenError: User is neither creator nor collaborator
    """
    draft = await db.get(EventDraft, draft_id)
    if draft is None:
        raise NotFoundError(DRAFT_NOT_FOUND, details={"draft_id": str(draft_id)})
    if draft.created_by != user_id and not any(
        c.user_id == user_id for c in draft.collaborators
    ):
        raise ForbiddenError(
            "You do not have access to this draft", details={"draft_id": str(draft_id)}
        )
    return draft


async def get_draft(db: AsyncSession, *, draft_id: Any, user_id: Any) -> EventDraft:
    return await ensure_draft_access(db, draft_id, user_id)


async def list_drafts(
    db: AsyncSession,
    *,
    org_id: Any,
    user_id: Any,
    status: DraftStatus | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    await assert_org_role(db, org_id, user_id, ALL_ROLES)
    stmt = select(EventDraft).where(EventDraft.org_id == org_id)
    if status is not None:
        stmt = stmt.where(EventDraft.status == status)
    stmt = stmt.order_by(EventDraft.updated_at.desc(), EventDraft.id.desc())
    return await paginate(db, stmt, page, limit)


async def _unique_draft_slug(db: AsyncSession, value: str, draft_id: Any) -> str:
    base = slugify(value)
    candidate = base
    suffix = 2
    while await db.scalar(
        select(EventDraft.id).where(EventDraft.slug == candidate, EventDraft.id != draft_id)
    ):
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


async def _apply_basics(db: AsyncSession, draft: EventDraft, payload: dict[str, Any]) -> None:
    title = payload.get("title")
    if isinstance(title, str) and title.strip():
        draft.title = title.strip()[:TITLE_MAX_LENGTH]
    short_description = payload.get("short_description")
    if isinstance(short_description, str):
        draft.short_description = short_description[:SHORT_DESCRIPTION_MAX_LENGTH]
    if payload.get("visibility") in {v.value for v in Visibility}:
        draft.visibility = Visibility(payload["visibility"])

    requested_slug = payload.get("slug")
    if isinstance(requested_slug, str) and requested_slug.strip():
        draft.slug = await _unique_draft_slug(db, requested_slug, draft.id)
    elif not draft.slug and draft.title:
        draft.slug = await _unique_draft_slug(db, draft.title, draft.id)


async def update_section(
    db: AsyncSession,
    *,
    draft_id: Any,
    user_id: Any,
    section: str,
    payload: dict[str, Any],
) -> EventDraft:
    """Store a section payload and recompute its status and the draft's completion."""
    draft = await ensure_draft_access(db, draft_id, user_id)
    if draft.status in LOCKED_DRAFT_STATUSES:
        raise InvalidStateError(
            f"Cannot edit a {draft.status.value} draft", details={"draft_id": str(draft.id)}
        )

    try:
        section_type = DraftSectionType(section)
    except ValueError:
        raise ValidationError(
            f"Unknown draft section: {section}",
            details={"sections": [s.value for s in SECTION_ORDER]},
        )

    row = draft.section(section_type)
    if row is None:
        row = DraftSection(section=section_type)
        draft.sections.append(row)

    status, errors = validate_section(section_type, payload)
    row.payload = dict(payload)
    row.status = status
    row.errors = errors
    row.completed_at = utcnow() if status == SectionStatus.VALID else None

    if section_type == DraftSectionType.BASICS:
        await _apply_basics(db, draft, payload)

    draft.active_section = section_type
    draft.completion_percent = compute_completion([s.status for s in draft.sections])
    draft.status = DraftStatus.READY if draft.completion_percent == 100 else DraftStatus.DRAFT
    await db.flush()

    logger.info(
        "Draft %s section %s is %s (%d%% complete)",
        draft.id,
        section_type.value,
        status.value,
        draft.completion_percent,
    )
    return draft


async def duplicate_draft(db: AsyncSession, *, draft_id: Any, user_id: Any) -> EventDraft:
    source = await ensure_draft_access(db, draft_id, user_id)
    await assert_org_role(db, source.org_id, user_id, MANAGE_ROLES)

    title = (source.title or "Untitled event")[: TITLE_MAX_LENGTH - len(COPY_SUFFIX)] + COPY_SUFFIX
    copy = EventDraft(
        org_id=source.org_id,
        created_by=user_id,
        title=title,
        short_description=source.short_description,
        visibility=source.visibility,
        status=DraftStatus.DRAFT,
        completion_percent=0,
        active_section=DraftSectionType.BASICS,
    )
    for section in source.sections:
        copy.sections.append(
            DraftSection(
                section=section.section,
                payload=dict(section.payload or {}),
                status=SectionStatus.INCOMPLETE,
                errors=[],
            )
        )
    copy.collaborators.append(DraftCollaborator(user_id=user_id, role=CollaboratorRole.OWNER))
    db.add(copy)
    await db.flush()

    logger.info("Duplicated draft %s into %s", source.id, copy.id)
    return copy


def _already_published(draft_id: Any, event_id: Any, status: DraftStatus) -> dict[str, Any]:
    return {
        "draft_id": draft_id,
        "event_id": event_id,
        "status": status,
        "message": ALREADY_PUBLISHED_MSG,
    }


def _ticket_types_from_payload(event: Event, payload: dict[str, Any]) -> list[TicketType]:
    ticket_types = []
    for item in payload.get("ticket_types") or []:
        kind = item.get("kind", TicketKind.GA.value)
        ticket_types.append(
            TicketType(
                event_id=event.id,
                name=str(item["name"]).strip(),
                kind=TicketKind(kind) if kind in {k.value for k in TicketKind} else TicketKind.GA,
                status=TicketTypeStatus.ACTIVE,
                currency=validate_currency_code(item.get("currency") or event.currency),
                price_cents=item.get("price_cents", 0),
                fee_cents=item.get("fee_cents", 0),
                capacity=item.get("quantity"),
                per_order_limit=item.get("per_order_limit"),
                sales_start=parse_datetime(item.get("sales_start")),
                sales_end=parse_datetime(item.get("sales_end")),
            )
        )
    return ticket_types


async def publish_draft(
    db: AsyncSession, *, draft_id: Any, user_id: Any, publish_at: datetime | None = None
) -> dict[str, Any]:
    """
    Create the Event for a complete draft.

    Returns:
        Dict with draft_id, event_id, status and message

    Raises:
        InvalidStateError: Draft was published but has no event
        ValidationError: Sections not all valid, or no schedule occurrences
    """
    draft = await ensure_draft_access(db, draft_id, user_id)
    await assert_org_role(db, draft.org_id, user_id, MANAGE_ROLES)

    if draft.status in LOCKED_DRAFT_STATUSES:
        if draft.event_id is not None:
            metrics.drafts_published_total.labels(
                outcome="already_published", region=region_label()
            ).inc()
            return _already_published(draft.id, draft.event_id, draft.status)
        raise InvalidStateError(
            "Draft has already been published", details={"draft_id": str(draft.id)}
        )

    blocking = [
        section.value
        for section in SECTION_ORDER
        if (row := draft.section(section)) is None or row.status != SectionStatus.VALID
    ]
    if blocking:
        metrics.drafts_published_total.labels(outcome="blocked", region=region_label()).inc()
        raise ValidationError(
            "Complete all sections before publishing.",
            details={"blocking_sections": blocking},
        )

    basics = draft.section(DraftSectionType.BASICS).payload
    story = draft.section(DraftSectionType.STORY).payload
    tickets = draft.section(DraftSectionType.TICKETS).payload
    occurrences = schedule_occurrences(draft.section(DraftSectionType.SCHEDULE).payload)
    if not occurrences:
        raise ValidationError("No schedule occurrences found")

    now = utcnow()
    publish_at = as_utc(publish_at)
    live_now = publish_at is None or publish_at <= now

    org = await db.get(Organization, draft.org_id)
    first = occurrences[0]
    event = Event(
        org_id=draft.org_id,
        title=draft.title or str(basics.get("title", "")).strip()[:TITLE_MAX_LENGTH],
        description=story.get("description"),
        status=EventStatus.LIVE if live_now else EventStatus.PENDING,
        visibility=draft.visibility,
        start_at=first["starts_at"],
        end_at=first["ends_at"] or first["starts_at"] + DEFAULT_EVENT_DURATION,
        publish_at=now if live_now else publish_at,
        currency=validate_currency_code(tickets.get("currency") or org.currency),
        created_by=user_id,
    )
    event.policy = EventPolicy(
        transfer_allowed=story.get("transfer_enabled", True),
        transfer_cutoff_hours=transfer_cutoff_hours(story),
        refund_policy=story.get("refund_policy"),
    )
    db.add(event)

    draft_key = draft.id
    try:
        await db.flush()
        for occurrence in occurrences:
            db.add(
                EventOccurrence(
                    event_id=event.id,
                    start_at=occurrence["starts_at"],
                    end_at=occurrence["ends_at"],
                    gate_open_at=occurrence["gate_open_at"],
                )
            )
        db.add_all(_ticket_types_from_payload(event, tickets))

        draft.status = DraftStatus.PUBLISHED if live_now else DraftStatus.SCHEDULED
        draft.event_id = event.id
        draft.target_publish_at = publish_at
        await db.flush()
    except IntegrityError:
        await db.rollback()
        existing = await db.get(EventDraft, draft_key, populate_existing=True)
        if existing is not None and existing.event_id is not None:
            logger.info("Draft %s was published concurrently", draft_key)
            return _already_published(existing.id, existing.event_id, existing.status)
        raise ConflictError("Draft publish conflicted", details={"draft_id": str(draft_key)})

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.DRAFT,
        entity_id=draft.id,
        action="PUBLISH",
        new_value={"event_id": str(event.id), "status": draft.status.value},
        performed_by=user_id,
    )
    notify(
        "draft.published",
        entity_type="draft",
        entity_id=draft.id,
        actor=user_id,
        details={"event_id": str(event.id), "live": live_now},
    )
    metrics.drafts_published_total.labels(
        outcome=draft.status.value, region=region_label()
    ).inc()
    logger.info("Published draft %s as event %s (%s)", draft.id, event.id, event.status.value)

    return {
        "draft_id": draft.id,
        "event_id": event.id,
        "status": draft.status,
        "message": "Event published" if live_now else "Event scheduled",
    }
