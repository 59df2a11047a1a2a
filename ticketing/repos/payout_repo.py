"""
Repository functions for organizer balances and payouts.
"""

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.audit import create_audit_log_async, snapshot_entity
from ticketing.core.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ticketing.core.notifications import notify
from ticketing.db.models import Order, OrderFeeLine, Organization, Payout, Refund
from ticketing.db.validators import utcnow
from ticketing.domain.enums import AuditEntityType, FeeBeneficiary, PayoutStatus, RefundStatus
from ticketing.repos.org_repo import FINANCE_ROLES, assert_org_role
from ticketing.repos.pagination import paginate
from ticketing.services.currency import validate_currency_code

logger = logging.getLogger(__name__)

IN_FLIGHT_STATUSES = (PayoutStatus.PENDING, PayoutStatus.IN_REVIEW)
COMMITTED_STATUSES = (PayoutStatus.PENDING, PayoutStatus.IN_REVIEW, PayoutStatus.PAID)
TERMINAL_STATUSES = (PayoutStatus.PAID, PayoutStatus.FAILED, PayoutStatus.CANCELED)

ALLOWED_REVIEW_TRANSITIONS = {
    PayoutStatus.PENDING: (PayoutStatus.IN_REVIEW, PayoutStatus.CANCELED),
    PayoutStatus.IN_REVIEW: (PayoutStatus.PAID, PayoutStatus.FAILED),
}


async def _org_currency(db: AsyncSession, org_id: Any, currency: str | None) -> str:
    if currency:
        return validate_currency_code(currency)
    org = await db.get(Organization, org_id)
    if org is None:
        raise NotFoundError("Organization not found", details={"org_id": str(org_id)})
    return org.currency


async def _has_in_flight_payout(db: AsyncSession, org_id: Any) -> bool:
    found = await db.scalar(
        select(Payout.id)
        .where(Payout.org_id == org_id, Payout.status.in_(IN_FLIGHT_STATUSES))
        .limit(1)
    )
    return found is not None


async def _compute_balance(db: AsyncSession, org_id: Any, currency: str) -> dict[str, Any]:
    """
    Balance for one currency.

    Every order that was ever paid counts toward gross; refunds (full
    cancellations and dispute refunds alike) are subtracted separately.
    """
    paid_orders = (Order.org_id == org_id, Order.currency == currency, Order.paid_at.is_not(None))

    gross, tax = (
        await db.execute(
            select(
                func.coalesce(func.sum(Order.total_cents), 0),
                func.coalesce(func.sum(Order.tax_cents), 0),
            ).where(*paid_orders)
        )
    ).one()

    platform_fees = await db.scalar(
        select(func.coalesce(func.sum(OrderFeeLine.amount_cents), 0))
        .join(Order, Order.id == OrderFeeLine.order_id)
        .where(*paid_orders, OrderFeeLine.beneficiary == FeeBeneficiary.PLATFORM)
    )
    refunds = await db.scalar(
        select(func.coalesce(func.sum(Refund.amount_cents), 0))
        .join(Order, Order.id == Refund.order_id)
        .where(
            Order.org_id == org_id,
            Refund.currency == currency,
            Refund.status == RefundStatus.PROCESSED,
        )
    )
    paid_out = await db.scalar(
        select(func.coalesce(func.sum(Payout.amount_cents), 0)).where(
            Payout.org_id == org_id,
            Payout.currency == currency,
            Payout.status.in_(COMMITTED_STATUSES),
        )
    )

    available = int(gross) - int(platform_fees) - int(tax) - int(refunds) - int(paid_out)
    in_flight = await _has_in_flight_payout(db, org_id)
    return {
        "org_id": org_id,
        "currency": currency,
        "gross_cents": int(gross),
        "platform_fees_cents": int(platform_fees),
        "tax_cents": int(tax),
        "refunds_cents": int(refunds),
        "paid_out_cents": int(paid_out),
        "available_cents": available,
        "has_pending_payout": in_flight,
        "can_create_payout": available > 0 and not in_flight,
    }


async def calculate_balance(
    db: AsyncSession, *, org_id: Any, user_id: Any, currency: str | None = None
) -> dict[str, Any]:
    await assert_org_role(db, org_id, user_id, FINANCE_ROLES)
    return await _compute_balance(db, org_id, await _org_currency(db, org_id, currency))


async def create_payout(
    db: AsyncSession,
    *,
    org_id: Any,
    user_id: Any,
    amount_cents: int,
    currency: str | None = None,
) -> Payout:
    """
    Raises:
        ValidationError: Non-positive amount or insufficient balance
        ConflictError: Another payout is pending or in review
    """
    await assert_org_role(db, org_id, user_id, FINANCE_ROLES)
    if amount_cents <= 0:
        raise ValidationError("Payout amount must be positive")

    currency = await _org_currency(db, org_id, currency)
    if await _has_in_flight_payout(db, org_id):
        raise ConflictError(
            "A payout is already in progress for this organization",
            details={"org_id": str(org_id)},
        )

    balance = await _compute_balance(db, org_id, currency)
    if amount_cents > balance["available_cents"]:
        raise ValidationError(
            "Insufficient balance",
            details={"available_cents": balance["available_cents"], "requested_cents": amount_cents},
        )

    payout = Payout(
        org_id=org_id,
        amount_cents=amount_cents,
        currency=currency,
        status=PayoutStatus.PENDING,
        requested_by=user_id,
    )
    db.add(payout)
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.PAYOUT,
        entity_id=payout.id,
        action="REQUEST",
        new_value=snapshot_entity(payout),
        performed_by=user_id,
    )
    notify("payout.requested", entity_type="payout", entity_id=payout.id, actor=user_id)
    logger.info("Payout %s requested for org %s: %d %s", payout.id, org_id, amount_cents, currency)
    return payout


async def list_payouts(
    db: AsyncSession,
    *,
    org_id: Any,
    user_id: Any,
    status: PayoutStatus | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    await assert_org_role(db, org_id, user_id, FINANCE_ROLES)
    stmt = select(Payout).where(Payout.org_id == org_id)
    if status is not None:
        stmt = stmt.where(Payout.status == status)
    stmt = stmt.order_by(Payout.created_at.desc(), Payout.id.desc())
    return await paginate(db, stmt, page, limit)


async def payout_stats(db: AsyncSession, *, org_id: Any, user_id: Any) -> dict[str, Any]:
    await assert_org_role(db, org_id, user_id, FINANCE_ROLES)
    rows = (
        await db.execute(
            select(Payout.status, func.count(), func.coalesce(func.sum(Payout.amount_cents), 0))
            .where(Payout.org_id == org_id)
            .group_by(Payout.status)
        )
    ).all()

    by_status = {status.value: 0 for status in PayoutStatus}
    total_paid = 0
    for status, count, amount in rows:
        by_status[status.value] = count
        if status == PayoutStatus.PAID:
            total_paid = int(amount)
    return {
        "total_payouts": sum(by_status.values()),
        "total_paid_cents": total_paid,
        "by_status": by_status,
    }


async def review_payout(
    db: AsyncSession,
    *,
    payout_id: Any,
    reviewer_id: Any,
    status: PayoutStatus,
    failure_reason: str | None = None,
) -> Payout:
    """Move a payout through review. Callers must hold ``payout:review``."""
    payout = await db.get(Payout, payout_id)
    if payout is None:
        raise NotFoundError("Payout not found", details={"payout_id": str(payout_id)})

    allowed = ALLOWED_REVIEW_TRANSITIONS.get(payout.status, ())
    if status not in allowed:
        raise InvalidStateError(
            f"Cannot change payout status from {payout.status.value} to {status.value}",
            details={"payout_id": str(payout.id), "allowed": [s.value for s in allowed]},
        )

    old_value = snapshot_entity(payout)
    payout.status = status
    payout.reviewed_by = reviewer_id
    if status == PayoutStatus.FAILED:
        payout.failure_reason = failure_reason
    if status in TERMINAL_STATUSES:
        payout.processed_at = utcnow()
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.PAYOUT,
        entity_id=payout.id,
        action="REVIEW",
        old_value=old_value,
        new_value=snapshot_entity(payout),
        performed_by=reviewer_id,
    )
    notify(
        f"payout.{status.value}",
        entity_type="payout",
        entity_id=payout.id,
        actor=reviewer_id,
    )
    logger.info("Payout %s is now %s", payout.id, status.value)
    return payout
