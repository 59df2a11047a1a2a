"""
Repository functions for buyer disputes on orders.

A dispute is visible to the buyer and to members of the organization that
sold the order. Platform staff resolve disputes; the buyer may appeal a
resolution that did not refund them, once.
"""

import logging
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
from ticketing.db.models import Dispute, DisputeMessage, Event, Order, OrgMember, Refund
from ticketing.db.validators import utcnow
from ticketing.domain.enums import (
    AuditEntityType,
    DisputeResolution,
    DisputeSenderRole,
    DisputeStatus,
    NotificationCategory,
    OrderStatus,
    RefundStatus,
)
from ticketing.repos.notification_repo import create_notification
from ticketing.repos.order_repo import record_refund, void_order_tickets
from ticketing.repos.org_repo import MANAGE_ROLES, assert_org_role, is_org_member
from ticketing.repos.pagination import paginate

logger = logging.getLogger(__name__)

DISPUTE_NOT_FOUND = "Dispute not found"

DISPUTE_WINDOW_AFTER_EVENT = timedelta(days=30)
DISPUTE_WINDOW_AFTER_PURCHASE = timedelta(days=90)
ORGANIZER_RESPONSE_TIME = timedelta(days=7)

DISPUTABLE_ORDER_STATUSES = (OrderStatus.PAID, OrderStatus.REFUNDED)
FINISHED_STATUSES = (DisputeStatus.RESOLVED, DisputeStatus.CLOSED)
REFUND_RESOLUTIONS = (DisputeResolution.FULL_REFUND, DisputeResolution.PARTIAL_REFUND)


async def _notify_org_members(
    db: AsyncSession, dispute: Dispute, *, type: str, title: str, message: str
) -> None:
    result = await db.execute(select(OrgMember.user_id).where(OrgMember.org_id == dispute.org_id))
    for member_id in result.scalars().all():
        await create_notification(
            db,
            user_id=member_id,
            type=type,
            category=NotificationCategory.TRANSACTIONAL,
            title=title,
            message=message,
            data={"dispute_id": str(dispute.id), "order_id": str(dispute.order_id)},
        )


async def create_dispute(
    db: AsyncSession, *, order_id: Any, user_id: Any, reason: str, description: str
) -> Dispute:
    """
    Open a dispute on one of the buyer's paid orders.

    The window closes 30 days after the event starts, or 90 days after
    purchase when the event has no date.
    """
    order = await db.get(Order, order_id)
    if order is None or order.buyer_id != user_id:
        raise NotFoundError("Order not found", details={"order_id": str(order_id)})
    if order.status not in DISPUTABLE_ORDER_STATUSES:
        raise ValidationError(
            "Only paid orders can be disputed",
            details={"order_id": str(order.id), "status": order.status.value},
        )

    now = utcnow()
    event = await db.get(Event, order.event_id)
    if event is not None and event.start_at is not None:
        deadline = event.start_at + DISPUTE_WINDOW_AFTER_EVENT
    else:
        deadline = order.created_at + DISPUTE_WINDOW_AFTER_PURCHASE
    if now > deadline:
        raise ValidationError("Dispute window has closed", details={"deadline": deadline.isoformat()})

    active = await db.scalar(
        select(Dispute.id)
        .where(Dispute.order_id == order.id, Dispute.status.not_in(FINISHED_STATUSES))
        .limit(1)
    )
    if active is not None:
        raise ConflictError(
            "An active dispute already exists for this order",
            details={"dispute_id": str(active)},
        )

    dispute = Dispute(
        order_id=order.id,
        user_id=user_id,
        org_id=order.org_id,
        event_id=order.event_id,
        status=DisputeStatus.OPEN,
        reason=reason,
        description=description,
        respond_by_at=now + ORGANIZER_RESPONSE_TIME,
    )
    dispute.messages.append(
        DisputeMessage(sender_id=user_id, sender_role=DisputeSenderRole.BUYER, body=description)
    )
    db.add(dispute)
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.DISPUTE,
        entity_id=dispute.id,
        action="CREATE",
        new_value=snapshot_entity(dispute),
        performed_by=user_id,
    )
    await _notify_org_members(
        db,
        dispute,
        type="dispute.opened",
        title="New dispute",
        message=f"A buyer opened a dispute: {reason}",
    )
    notify("dispute.opened", entity_type="dispute", entity_id=dispute.id, actor=user_id)
    logger.info("Opened dispute %s on order %s", dispute.id, order.id)
    return dispute


async def get_dispute(db: AsyncSession, *, dispute_id: Any, user_id: Any) -> Dispute:
    """Load a dispute visible to the buyer or an org member."""
    dispute = await db.get(Dispute, dispute_id)
    if dispute is None or (
        dispute.user_id != user_id and not await is_org_member(db, dispute.org_id, user_id)
    ):
        raise NotFoundError(DISPUTE_NOT_FOUND, details={"dispute_id": str(dispute_id)})
    return dispute


async def list_my_disputes(
    db: AsyncSession,
    *,
    user_id: Any,
    status: DisputeStatus | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    stmt = select(Dispute).where(Dispute.user_id == user_id)
    if status is not None:
        stmt = stmt.where(Dispute.status == status)
    stmt = stmt.order_by(Dispute.created_at.desc(), Dispute.id.desc())
    return await paginate(db, stmt, page, limit)


async def list_org_disputes(
    db: AsyncSession,
    *,
    org_id: Any,
    user_id: Any,
    status: DisputeStatus | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    await assert_org_role(db, org_id, user_id, MANAGE_ROLES)
    stmt = select(Dispute).where(Dispute.org_id == org_id)
    if status is not None:
        stmt = stmt.where(Dispute.status == status)
    stmt = stmt.order_by(Dispute.respond_by_at.asc(), Dispute.id.asc())
    return await paginate(db, stmt, page, limit)


async def add_message(db: AsyncSession, *, dispute_id: Any, user_id: Any, body: str) -> Dispute:
    dispute = await get_dispute(db, dispute_id=dispute_id, user_id=user_id)
    if dispute.status in FINISHED_STATUSES:
        raise InvalidStateError(
            f"Cannot add messages to a {dispute.status.value} dispute",
            details={"dispute_id": str(dispute.id)},
        )

    is_buyer = dispute.user_id == user_id
    sender_role = DisputeSenderRole.BUYER if is_buyer else DisputeSenderRole.ORGANIZER
    dispute.messages.append(
        DisputeMessage(dispute_id=dispute.id, sender_id=user_id, sender_role=sender_role, body=body)
    )
    if not is_buyer and dispute.status == DisputeStatus.OPEN:
        dispute.status = DisputeStatus.RESPONDED
    await db.flush()

    if is_buyer:
        await _notify_org_members(
            db,
            dispute,
            type="dispute.message",
            title="New dispute message",
            message="The buyer replied to a dispute.",
        )
    else:
        await create_notification(
            db,
            user_id=dispute.user_id,
            type="dispute.message",
            category=NotificationCategory.TRANSACTIONAL,
            title="The organizer replied",
            message="The organizer responded to your dispute.",
            data={"dispute_id": str(dispute.id)},
        )
    return dispute


async def _refunded_so_far(db: AsyncSession, order_id: Any) -> int:
    total = await db.scalar(
        select(func.coalesce(func.sum(Refund.amount_cents), 0)).where(
            Refund.order_id == order_id, Refund.status == RefundStatus.PROCESSED
        )
    )
    return int(total or 0)


async def resolve_dispute(
    db: AsyncSession,
    *,
    dispute_id: Any,
    resolver_id: Any,
    resolution: DisputeResolution,
    amount_cents: int | None = None,
    note: str | None = None,
) -> Dispute:
    """
    Resolve a dispute. Callers must hold ``dispute:resolve``.

    A full refund returns whatever has not been refunded yet and voids
    the order's tickets; a partial refund needs an amount.
    """
    dispute = await db.get(Dispute, dispute_id)
    if dispute is None:
        raise NotFoundError(DISPUTE_NOT_FOUND, details={"dispute_id": str(dispute_id)})
    if dispute.status in FINISHED_STATUSES:
        raise InvalidStateError(
            f"Dispute is already {dispute.status.value}", details={"dispute_id": str(dispute.id)}
        )

    old_value = snapshot_entity(dispute)
    order = await db.get(Order, dispute.order_id)
    refund_amount = None
    if resolution in REFUND_RESOLUTIONS:
        refundable = order.total_cents - await _refunded_so_far(db, order.id)
        if refundable <= 0:
            raise ValidationError("Order has already been fully refunded")
        if resolution == DisputeResolution.FULL_REFUND:
            refund_amount = refundable
        else:
            if amount_cents is None or amount_cents <= 0 or amount_cents > refundable:
                raise ValidationError(
                    "Partial refund amount must be between 1 and the refundable amount",
                    details={"refundable_cents": refundable},
                )
            refund_amount = amount_cents

        await record_refund(
            db,
            order,
            amount_cents=refund_amount,
            created_by=resolver_id,
            reason=f"Dispute {dispute.id}",
        )
        # A partial refund that uses up the remainder counts as a full one
        if refund_amount >= refundable:
            order.status = OrderStatus.REFUNDED
            await void_order_tickets(db, order.id)

    now = utcnow()
    dispute.resolution = resolution
    dispute.resolution_note = note
    dispute.refund_amount_cents = refund_amount
    dispute.status = DisputeStatus.RESOLVED
    dispute.resolved_at = now
    if note:
        dispute.messages.append(
            DisputeMessage(
                dispute_id=dispute.id,
                sender_id=resolver_id,
                sender_role=DisputeSenderRole.PLATFORM,
                body=note,
            )
        )
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.DISPUTE,
        entity_id=dispute.id,
        action="RESOLVE",
        old_value=old_value,
        new_value=snapshot_entity(dispute),
        performed_by=resolver_id,
    )
    await create_notification(
        db,
        user_id=dispute.user_id,
        type="dispute.resolved",
        category=NotificationCategory.TRANSACTIONAL,
        title="Your dispute was resolved",
        message=f"Resolution: {resolution.value.replace('_', ' ')}",
        data={"dispute_id": str(dispute.id), "refund_amount_cents": refund_amount},
    )
    notify(
        "dispute.resolved",
        entity_type="dispute",
        entity_id=dispute.id,
        actor=resolver_id,
        details={"resolution": resolution.value},
    )
    logger.info("Resolved dispute %s with %s", dispute.id, resolution.value)
    return dispute


async def _get_buyer_dispute(db: AsyncSession, dispute_id: Any, user_id: Any, action: str) -> Dispute:
    dispute = await get_dispute(db, dispute_id=dispute_id, user_id=user_id)
    if dispute.user_id != user_id:
        raise ForbiddenError(f"Only the buyer can {action} this dispute")
    return dispute


async def appeal_dispute(db: AsyncSession, *, dispute_id: Any, user_id: Any, reason: str) -> Dispute:
    dispute = await _get_buyer_dispute(db, dispute_id, user_id, "appeal")
    if dispute.status != DisputeStatus.RESOLVED:
        raise InvalidStateError("Only resolved disputes can be appealed")
    if dispute.appealed_at is not None:
        raise InvalidStateError("Dispute has already been appealed")
    if dispute.resolution in REFUND_RESOLUTIONS:
        raise InvalidStateError("A dispute resolved with a refund cannot be appealed")

    dispute.status = DisputeStatus.APPEALED
    dispute.appeal_reason = reason
    dispute.appealed_at = utcnow()
    dispute.messages.append(
        DisputeMessage(
            dispute_id=dispute.id,
            sender_id=user_id,
            sender_role=DisputeSenderRole.BUYER,
            body=reason,
        )
    )
    await db.flush()

    notify("dispute.appealed", entity_type="dispute", entity_id=dispute.id, actor=user_id)
    logger.info("Dispute %s appealed", dispute.id)
    return dispute


async def close_dispute(db: AsyncSession, *, dispute_id: Any, user_id: Any) -> Dispute:
    """Buyer withdraws the dispute."""
    dispute = await _get_buyer_dispute(db, dispute_id, user_id, "close")
    if dispute.status == DisputeStatus.CLOSED:
        raise InvalidStateError("Dispute is already closed")

    dispute.status = DisputeStatus.CLOSED
    dispute.closed_at = utcnow()
    await db.flush()
    logger.info("Dispute %s closed by buyer", dispute.id)
    return dispute
