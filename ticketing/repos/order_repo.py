"""
Repository functions for orders, checkout and ticket issuance.

Orders are priced server-side from the ticket types at purchase time.
Payment capture is recorded through `confirm_payment`; issuing tickets is
safe to repeat because existing barcodes of the order are skipped.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.audit import create_audit_log_async, snapshot_entity
from ticketing.core.config import settings
from ticketing.core.errors import (
    CapacityError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ticketing.core.notifications import notify
from ticketing.core.observability import metrics, region_label
from ticketing.db.models import (
    Event,
    EventOccurrence,
    Order,
    OrderFeeLine,
    OrderItem,
    OrderTaxLine,
    Refund,
    Ticket,
)
from ticketing.db.validators import new_id, utcnow
from ticketing.domain.enums import (
    AuditEntityType,
    EventStatus,
    FeeBeneficiary,
    NotificationCategory,
    OrderStatus,
    RefundStatus,
    TicketKind,
    TicketStatus,
    TicketTypeStatus,
    Visibility,
)
from ticketing.repos.inventory_repo import available_quantity, get_seat, get_ticket_type, is_seat_taken
from ticketing.repos.notification_repo import create_notification
from ticketing.repos.pagination import paginate
from ticketing.services.currency import format_amount
from ticketing.services.pricing import (
    PLATFORM_FEE_NAME,
    SALES_TAX_NAME,
    SERVICE_FEE_NAME,
    calculate_order_totals,
)
from ticketing.services.qr_codec import build_barcode, encode_qr

logger = logging.getLogger(__name__)

ORDER_NOT_FOUND = "Order not found"
FALLBACK_CURRENCY = "USD"
FREE_ORDER_PROVIDER = "free"

PURCHASABLE_TICKET_TYPE_STATUSES = (TicketTypeStatus.ACTIVE, TicketTypeStatus.APPROVED)


async def get_order_by_idempotency_key(db: AsyncSession, buyer_id: Any, key: str) -> Order | None:
    result = await db.execute(
        select(Order).where(Order.buyer_id == buyer_id, Order.idempotency_key == key)
    )
    return result.scalar_one_or_none()


async def _load_purchasable_event(db: AsyncSession, event_id: Any) -> Event:
    event = await db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found", details={"event_id": str(event_id)})
    if event.status != EventStatus.LIVE or event.visibility != Visibility.PUBLIC:
        raise ForbiddenError(
            "Event is not available for purchase",
            details={"event_id": str(event.id), "status": event.status.value},
        )
    return event


def _check_sales_window(ticket_type: Any, now: datetime) -> None:
    if ticket_type.sales_start and now < ticket_type.sales_start:
        raise ValidationError(
            "Ticket sales have not started",
            details={"ticket_type_id": str(ticket_type.id)},
        )
    if ticket_type.sales_end and now > ticket_type.sales_end:
        raise ValidationError(
            "Ticket sales have ended",
            details={"ticket_type_id": str(ticket_type.id)},
        )


async def _price_items(
    db: AsyncSession, event: Event, items: list[dict[str, Any]], now: datetime
) -> tuple[list[dict[str, Any]], str]:
    """Validate requested items and return priced lines plus the order currency."""
    lines: list[dict[str, Any]] = []
    currency: str | None = None
    requested_ga: dict[Any, int] = defaultdict(int)
    selected_seats: set[Any] = set()

    for item in items:
        ticket_type = await get_ticket_type(db, item["ticket_type_id"])
        if ticket_type.event_id != event.id:
            raise ValidationError(
                "Ticket type does not belong to this event",
                details={"ticket_type_id": str(ticket_type.id)},
            )
        if ticket_type.status not in PURCHASABLE_TICKET_TYPE_STATUSES:
            raise ValidationError(
                f"Ticket type {ticket_type.name} is not on sale",
                details={"ticket_type_id": str(ticket_type.id), "status": ticket_type.status.value},
            )
        _check_sales_window(ticket_type, now)

        ticket_currency = ticket_type.currency or FALLBACK_CURRENCY
        if currency is None:
            currency = ticket_currency
        elif ticket_currency != currency:
            raise ValidationError(
                "All items in an order must use the same currency",
                details={"currencies": [currency, ticket_currency]},
            )

        seat_id = item.get("seat_id")
        quantity = item.get("quantity", 1)

        if ticket_type.kind == TicketKind.SEATED:
            if seat_id is None:
                raise ValidationError(
                    "A seat is required for seated tickets",
                    details={"ticket_type_id": str(ticket_type.id)},
                )
            quantity = 1
            seat = await get_seat(db, seat_id)
            if seat.event_id != event.id:
                raise ValidationError("Seat does not belong to this event")
            if seat.id in selected_seats:
                raise ValidationError(
                    "The same seat was selected more than once",
                    details={"seat_id": str(seat.id)},
                )
            selected_seats.add(seat.id)
            if await is_seat_taken(db, seat.id, now):
                raise CapacityError("Seat is not available", details={"seat_id": str(seat.id)})
        else:
            seat_id = None

        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if ticket_type.per_order_limit is not None and quantity > ticket_type.per_order_limit:
            raise ValidationError(
                f"Maximum {ticket_type.per_order_limit} tickets per order for {ticket_type.name}",
                details={"ticket_type_id": str(ticket_type.id)},
            )

        if ticket_type.kind == TicketKind.GA:
            requested_ga[ticket_type.id] += quantity
            available = await available_quantity(db, ticket_type, now)
            if available is not None and available < requested_ga[ticket_type.id]:
                raise CapacityError(
                    f"Only {available} tickets available for {ticket_type.name}",
                    details={"ticket_type_id": str(ticket_type.id), "available": available},
                )

        lines.append(
            {
                "ticket_type_id": ticket_type.id,
                "seat_id": seat_id,
                "quantity": quantity,
                "unit_price_cents": ticket_type.price_cents,
                "unit_fee_cents": ticket_type.fee_cents,
            }
        )

    return lines, currency or FALLBACK_CURRENCY


async def create_order(
    db: AsyncSession,
    *,
    buyer_id: Any,
    event_id: Any,
    items: list[dict[str, Any]],
    occurrence_id: Any = None,
    idempotency_key: str | None = None,
) -> Order:
    """
    Create a pending order, or return the buyer's existing order for the
    same idempotency key.

    Free orders are marked paid and their tickets issued immediately.

    Raises:
        ForbiddenError: Event is not live and public
        ValidationError: Bad item, sales window closed, mixed currencies
        CapacityError: Sold out or seat taken
        ConflictError: Insert conflicted and no order exists for the key
    """
    if idempotency_key:
        existing = await get_order_by_idempotency_key(db, buyer_id, idempotency_key)
        if existing is not None:
            logger.info("Replayed order %s for idempotency key", existing.id)
            return existing

    event = await _load_purchasable_event(db, event_id)

    if occurrence_id is not None:
        occurrence = await db.get(EventOccurrence, occurrence_id)
        if occurrence is None or occurrence.event_id != event.id:
            raise ValidationError(
                "Occurrence does not belong to this event",
                details={"occurrence_id": str(occurrence_id)},
            )

    if not items:
        raise ValidationError("An order needs at least one item")

    now = utcnow()
    lines, currency = await _price_items(db, event, items, now)
    totals = calculate_order_totals(
        lines,
        tax_rate_bps=settings.sales_tax_rate_bps,
        platform_fee_cents=settings.platform_fee_cents,
    )

    order = Order(
        buyer_id=buyer_id,
        org_id=event.org_id,
        event_id=event.id,
        occurrence_id=occurrence_id,
        status=OrderStatus.PENDING,
        currency=currency,
        subtotal_cents=totals["subtotal_cents"],
        fees_cents=totals["fees_cents"],
        tax_cents=totals["tax_cents"],
        total_cents=totals["total_cents"],
        idempotency_key=idempotency_key,
        items=[],
        tax_lines=[],
        fee_lines=[],
    )
    for line in lines:
        order.items.append(OrderItem(**line))
    order.tax_lines.append(
        OrderTaxLine(
            name=SALES_TAX_NAME,
            rate_bps=settings.sales_tax_rate_bps,
            amount_cents=totals["tax_cents"],
        )
    )
    if totals["platform_fee_cents"]:
        order.fee_lines.append(
            OrderFeeLine(
                name=PLATFORM_FEE_NAME,
                amount_cents=totals["platform_fee_cents"],
                beneficiary=FeeBeneficiary.PLATFORM,
            )
        )
    if totals["service_fee_cents"]:
        order.fee_lines.append(
            OrderFeeLine(
                name=SERVICE_FEE_NAME,
                amount_cents=totals["service_fee_cents"],
                beneficiary=FeeBeneficiary.ORGANIZER,
            )
        )
    db.add(order)
    try:
        await db.flush()
    except IntegrityError:
        # A concurrent request with the same key committed first
        await db.rollback()
        if idempotency_key:
            existing = await get_order_by_idempotency_key(db, buyer_id, idempotency_key)
            if existing is not None:
                logger.info("Replayed order %s after idempotency key conflict", existing.id)
                return existing
        raise ConflictError(
            "Order could not be created", details={"event_id": str(event_id)}
        ) from None

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.ORDER,
        entity_id=order.id,
        action="CREATE",
        new_value=snapshot_entity(order),
        performed_by=buyer_id,
    )

    if order.total_cents == 0:
        await _mark_paid(db, order, provider=FREE_ORDER_PROVIDER, reference=None, now=now)

    metrics.orders_total.labels(status=order.status.value, region=region_label()).inc()
    metrics.order_value_cents.labels(currency=order.currency, region=region_label()).observe(
        order.total_cents
    )
    notify("order.created", entity_type="order", entity_id=order.id, actor=buyer_id)
    logger.info("Created order %s (%s) for event %s", order.id, order.status.value, event.id)
    return order


async def _mark_paid(
    db: AsyncSession,
    order: Order,
    *,
    provider: str,
    reference: str | None,
    now: datetime,
) -> list[Ticket]:
    order.status = OrderStatus.PAID
    order.paid_at = now
    order.payment_provider = provider
    order.payment_reference = reference
    await db.flush()

    tickets = await issue_tickets(db, order)
    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.ORDER,
        entity_id=order.id,
        action="PAY",
        new_value={"status": order.status.value, "payment_provider": provider},
        performed_by=order.buyer_id,
    )
    await create_notification(
        db,
        user_id=order.buyer_id,
        type="order.paid",
        category=NotificationCategory.TRANSACTIONAL,
        title="Order confirmed",
        message=f"Your order of {format_amount(order.total_cents, order.currency)} is confirmed.",
        data={"order_id": str(order.id), "tickets": len(tickets)},
    )
    notify("order.paid", entity_type="order", entity_id=order.id, actor=order.buyer_id)
    return tickets


async def issue_tickets(db: AsyncSession, order: Order) -> list[Ticket]:
    """
    Create one ticket per item unit, skipping barcodes the order already has.

    Returns:
        Newly created tickets only
    """
    result = await db.execute(select(Ticket.barcode).where(Ticket.order_id == order.id))
    existing_barcodes = set(result.scalars().all())

    sequence: dict[tuple[Any, Any], int] = defaultdict(int)
    created = []
    for item in order.items:
        for _ in range(item.quantity):
            key = (item.ticket_type_id, item.seat_id)
            sequence[key] += 1
            barcode = build_barcode(order.id, item.ticket_type_id, item.seat_id, sequence[key])
            if barcode in existing_barcodes:
                continue

            ticket_id = new_id()
            ticket = Ticket(
                id=ticket_id,
                order_id=order.id,
                event_id=order.event_id,
                occurrence_id=order.occurrence_id,
                ticket_type_id=item.ticket_type_id,
                seat_id=item.seat_id,
                owner_id=order.buyer_id,
                status=TicketStatus.ISSUED,
                qr_code=encode_qr(ticket_id, order.id, item.ticket_type_id, item.seat_id),
                barcode=barcode,
            )
            db.add(ticket)
            existing_barcodes.add(barcode)
            created.append(ticket)

    await db.flush()
    if created:
        metrics.tickets_issued_total.labels(region=region_label()).inc(len(created))
        logger.info("Issued %d tickets for order %s", len(created), order.id)
    return created


async def get_order(db: AsyncSession, order_id: Any, user_id: Any) -> Order:
    """Load an order owned by the user; other buyers' orders are not found."""
    order = await db.get(Order, order_id)
    if order is None or order.buyer_id != user_id:
        raise NotFoundError(ORDER_NOT_FOUND, details={"order_id": str(order_id)})
    return order


async def _ensure_items_available(db: AsyncSession, order: Order, now: datetime) -> None:
    """Pending orders reserve nothing, so stock is checked again at payment."""
    wanted_ga: dict[Any, int] = defaultdict(int)
    for item in order.items:
        if item.seat_id is not None:
            if await is_seat_taken(db, item.seat_id, now):
                raise CapacityError(
                    "Seat is no longer available",
                    details={"order_id": str(order.id), "seat_id": str(item.seat_id)},
                )
        else:
            wanted_ga[item.ticket_type_id] += item.quantity

    for ticket_type_id, quantity in wanted_ga.items():
        ticket_type = await get_ticket_type(db, ticket_type_id)
        available = await available_quantity(db, ticket_type, now)
        if available is not None and available < quantity:
            raise CapacityError(
                f"Only {available} tickets available for {ticket_type.name}",
                details={"order_id": str(order.id), "ticket_type_id": str(ticket_type_id)},
            )


async def confirm_payment(
    db: AsyncSession, *, order_id: Any, user_id: Any, provider: str, reference: str
) -> Order:
    """
    Record a captured payment and issue tickets.

    Confirming an already paid order with the same reference is a no-op.
    """
    order = await get_order(db, order_id, user_id)

    if order.status == OrderStatus.PAID:
        if order.payment_reference == reference:
            return order
        raise InvalidStateError(
            "Order was paid with a different payment reference",
            details={"order_id": str(order.id)},
        )
    if order.status != OrderStatus.PENDING:
        raise InvalidStateError(
            f"Cannot confirm payment for a {order.status.value} order",
            details={"order_id": str(order.id), "status": order.status.value},
        )

    now = utcnow()
    await _ensure_items_available(db, order, now)
    await _mark_paid(db, order, provider=provider, reference=reference, now=now)
    metrics.orders_total.labels(status=order.status.value, region=region_label()).inc()
    logger.info("Confirmed payment for order %s via %s", order.id, provider)
    return order


async def record_refund(
    db: AsyncSession,
    order: Order,
    *,
    amount_cents: int,
    created_by: Any,
    reason: str | None = None,
) -> Refund:
    now = utcnow()
    refund = Refund(
        order_id=order.id,
        amount_cents=amount_cents,
        currency=order.currency,
        reason=reason,
        status=RefundStatus.PROCESSED,
        created_by=created_by,
        processed_at=now,
    )
    db.add(refund)
    await db.flush()
    logger.info("Refunded %d on order %s", amount_cents, order.id)
    return refund


async def void_order_tickets(db: AsyncSession, order_id: Any) -> int:
    result = await db.execute(
        select(Ticket).where(Ticket.order_id == order_id, Ticket.status != TicketStatus.VOID)
    )
    tickets = result.scalars().all()
    for ticket in tickets:
        ticket.status = TicketStatus.VOID
    await db.flush()
    return len(tickets)


async def cancel_order(
    db: AsyncSession, *, order_id: Any, user_id: Any, reason: str | None = None
) -> Order:
    """
    Cancel a pending order, or refund a paid one in full. Tickets are voided.
    """
    order = await get_order(db, order_id, user_id)

    if order.status == OrderStatus.CANCELED:
        raise InvalidStateError("Order is already canceled", details={"order_id": str(order.id)})
    if order.status == OrderStatus.REFUNDED:
        raise InvalidStateError("Order has been refunded", details={"order_id": str(order.id)})
    if order.status == OrderStatus.EXPIRED:
        raise InvalidStateError("Order has expired", details={"order_id": str(order.id)})

    old_value = snapshot_entity(order)
    if order.status == OrderStatus.PAID:
        await record_refund(
            db, order, amount_cents=order.total_cents, created_by=user_id, reason=reason
        )
        order.status = OrderStatus.REFUNDED
    else:
        order.status = OrderStatus.CANCELED
    order.canceled_at = utcnow()
    voided = await void_order_tickets(db, order.id)

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.ORDER,
        entity_id=order.id,
        action="CANCEL",
        old_value=old_value,
        new_value=snapshot_entity(order),
        performed_by=user_id,
    )
    metrics.orders_total.labels(status=order.status.value, region=region_label()).inc()
    notify(
        "order.canceled",
        entity_type="order",
        entity_id=order.id,
        actor=user_id,
        details={"status": order.status.value, "voided_tickets": voided},
    )
    logger.info("Order %s is now %s", order.id, order.status.value)
    return order


def _order_filters(
    stmt: Any,
    *,
    status: OrderStatus | None = None,
    event_id: Any = None,
    org_id: Any = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> Any:
    if status is not None:
        stmt = stmt.where(Order.status == status)
    if event_id is not None:
        stmt = stmt.where(Order.event_id == event_id)
    if org_id is not None:
        stmt = stmt.where(Order.org_id == org_id)
    if start is not None:
        stmt = stmt.where(Order.created_at >= start)
    if end is not None:
        stmt = stmt.where(Order.created_at <= end)
    return stmt


async def list_orders(
    db: AsyncSession,
    *,
    buyer_id: Any,
    status: OrderStatus | None = None,
    event_id: Any = None,
    org_id: Any = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    stmt = _order_filters(
        select(Order).where(Order.buyer_id == buyer_id),
        status=status,
        event_id=event_id,
        org_id=org_id,
    )
    stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc())
    return await paginate(db, stmt, page, limit)


async def get_order_stats(
    db: AsyncSession,
    *,
    buyer_id: Any,
    event_id: Any = None,
    org_id: Any = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict[str, Any]:
    """Order counts per status; only paid orders count toward spend."""
    stmt = _order_filters(
        select(Order.status, func.count(), func.coalesce(func.sum(Order.total_cents), 0))
        .where(Order.buyer_id == buyer_id),
        event_id=event_id,
        org_id=org_id,
        start=start,
        end=end,
    ).group_by(Order.status)
    rows = (await db.execute(stmt)).all()

    by_status = {status.value: 0 for status in OrderStatus}
    total_spent = 0
    for status, count, amount in rows:
        by_status[status.value] = count
        if status == OrderStatus.PAID:
            total_spent = int(amount)

    return {
        "total_orders": sum(by_status.values()),
        "total_spent_cents": total_spent,
        "by_status": by_status,
    }
