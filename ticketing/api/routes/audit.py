"""Audit log query route."""

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from ticketing.api.schemas.audit import AuditLogResponse
from ticketing.api.schemas.pagination import CursorDirection, KeysetPaginatedResponse
from ticketing.core.dependencies import AsyncDbSession
from ticketing.core.security import get_user_sub, require_permission
from ticketing.repos import audit_repo

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Audit"])


@router.get("/audit-log")
async def query_audit_log(
    db: AsyncDbSession,
    user: Annotated[dict[str, Any], Depends(require_permission("audit:read"))],
    entity_type: Annotated[str | None, Query(description="e.g. ORDER, TICKET, EVENT")] = None,
    entity_id: Annotated[str | None, Query()] = None,
    action: Annotated[str | None, Query(description="e.g. CREATE, CHECKIN")] = None,
    performed_by: Annotated[str | None, Query(description="Actor user id")] = None,
    since: Annotated[datetime | None, Query()] = None,
    until: Annotated[datetime | None, Query()] = None,
    cursor: Annotated[
        str | None, Query(description="Base64-encoded cursor from previous page")
    ] = None,
    limit: Annotated[int, Query(ge=1, le=100, description="Number of items per page")] = 20,
    direction: Annotated[
        CursorDirection, Query(description="Pagination direction")
    ] = CursorDirection.NEXT,
) -> KeysetPaginatedResponse[AuditLogResponse]:
    """Audit entries newest first. Requires ``audit:read``."""
    entries, has_next, has_prev, next_cursor, prev_cursor = await audit_repo.query_audit_log(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        performed_by=performed_by,
        since=since,
        until=until,
        cursor=cursor,
        limit=limit,
        direction=direction,
    )
    logger.info("User %s queried the audit log (%d entries)", get_user_sub(user), len(entries))

    return KeysetPaginatedResponse[AuditLogResponse](
        items=[AuditLogResponse.model_validate(entry) for entry in entries],
        next_cursor=next_cursor,
        prev_cursor=prev_cursor,
        has_next=has_next,
        has_prev=has_prev,
        limit=limit,
    )
