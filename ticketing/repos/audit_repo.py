"""
Read access to the audit log with keyset pagination.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.api.schemas.pagination import CursorDirection
from ticketing.core.errors import ValidationError
from ticketing.core.observability import db_metrics
from ticketing.db.models import AuditLog
from ticketing.repos.pagination import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    build_keyset_query,
    decode_cursor,
    get_keyset_page_info,
)


async def query_audit_log(
    db: AsyncSession,
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    action: str | None = None,
    performed_by: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    cursor: str | None = None,
    limit: int = DEFAULT_PAGE_LIMIT,
    direction: CursorDirection = CursorDirection.NEXT,
) -> tuple[list[AuditLog], bool, bool, str | None, str | None]:
    """Query audit entries newest first.

    Args:
        db: Database session
        entity_type: Filter by entity type (e.g. "ORDER")
        entity_id: Filter by entity id
        action: Filter by action (e.g. "CHECKIN")
        performed_by: Filter by actor user id
        since: Only entries at or after this time
        until: Only entries at or before this time
        cursor: Base64-encoded cursor from a previous page
        limit: Page size, capped at 100
        direction: NEXT for older entries, PREV for newer

    Returns:
        Tuple of (entries, has_next, has_prev, next_cursor, prev_cursor)

    Raises:
        ValidationError: If the cursor cannot be decoded
    """
    limit = min(max(limit, 1), MAX_PAGE_LIMIT)

    cursor_tuple = None
    if cursor:
        try:
            cursor_id, cursor_ts = decode_cursor(cursor)
            cursor_tuple = (uuid.UUID(cursor_id), cursor_ts)
        except ValueError as e:
            raise ValidationError("Invalid cursor", details={"cursor": cursor}) from e

    stmt = select(AuditLog)
    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type.upper())
    if entity_id:
        stmt = stmt.where(AuditLog.entity_id == entity_id)
    if action:
        stmt = stmt.where(AuditLog.action == action.upper())
    if performed_by:
        stmt = stmt.where(AuditLog.performed_by == performed_by)
    if since:
        stmt = stmt.where(AuditLog.performed_at >= since)
    if until:
        stmt = stmt.where(AuditLog.performed_at <= until)

    stmt = build_keyset_query(
        stmt, AuditLog.performed_at, AuditLog.audit_id, cursor_tuple, direction, limit
    )
    with db_metrics.track("query_audit_log"):
        result = await db.execute(stmt)
    entries: list[Any] = list(result.scalars().all())

    return get_keyset_page_info(
        entries,
        limit,
        direction,
        is_first_page=cursor is None,
        id_attr="audit_id",
        ts_attr="performed_at",
    )
