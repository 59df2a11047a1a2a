"""Shared utilities for offset and keyset/cursor-based pagination."""

import base64
import binascii
import json
import math
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.api.schemas.pagination import CursorDirection

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100

# ============================================================================
# Offset pagination
# ============================================================================


def clamp_pagination(
    page: int | None,
    limit: int | None,
    max_limit: int = MAX_PAGE_LIMIT,
    default_limit: int = DEFAULT_PAGE_LIMIT,
) -> tuple[int, int]:
    """Normalise page/limit query values.

    Missing, zero or negative values fall back to page 1 and
    `default_limit`; limits above `max_limit` are capped.
    """
    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else default_limit
    return page, min(limit, max_limit)


def calculate_skip(page: int, limit: int) -> int:
    return (page - 1) * limit


def build_paginated_response(
    items: Sequence[Any], page: int, limit: int, total: int
) -> dict[str, Any]:
    return {
        "items": list(items),
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total and limit else 0,
    }


LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """ILIKE pattern matching ``term`` anywhere, with wildcards taken literally.

    Use with ``escape=LIKE_ESCAPE``.
    """
    escaped = (
        term.strip()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


async def paginate(
    db: AsyncSession, stmt: Select, page: int | None, limit: int | None
) -> dict[str, Any]:
    """Run `stmt` for one page and count the full result set.

    `stmt` must already carry its ORDER BY.
    """
    page, limit = clamp_pagination(page, limit)
    total = await db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))
    result = await db.execute(stmt.offset(calculate_skip(page, limit)).limit(limit))
    return build_paginated_response(result.scalars().all(), page, limit, total or 0)


# ============================================================================
# Keyset pagination
# ============================================================================


def encode_cursor(id: Any, timestamp: datetime) -> str:
    """Encode a cursor from an id and the ordering timestamp.

    Returns:
        Base64-encoded JSON cursor string
    """
    cursor_data = {"id": str(id), "ts": timestamp.isoformat()}
    return base64.b64encode(json.dumps(cursor_data).encode("utf-8")).decode("utf-8")


def decode_cursor(cursor: str) -> tuple[str, datetime]:
    """Decode a cursor into (id, timestamp).

    Raises:
        ValueError: If cursor is invalid or malformed
    """
    try:
        json_str = base64.b64decode(cursor.encode("utf-8"), validate=True).decode("utf-8")
        cursor_data = json.loads(json_str)
        return str(cursor_data["id"]), datetime.fromisoformat(cursor_data["ts"])
    except (KeyError, TypeError, binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise ValueError(f"Invalid cursor: {e}") from e


def build_keyset_query(
    stmt: Select,
    order_col: Any,
    id_col: Any,
    cursor: tuple[Any, datetime] | None,
    direction: CursorDirection,
    limit: int,
) -> Select:
    """Apply keyset ordering, cursor filter and limit to a filtered query.

    Pages are newest first. NEXT walks toward older rows; PREV walks toward
    newer rows and is queried in ascending order, so the caller reverses
    the result (see `get_keyset_page_info`). One extra row is fetched to
    detect whether more rows exist.
    """
    if cursor is not None:
        cursor_id, cursor_ts = cursor
        if direction == CursorDirection.NEXT:
            stmt = stmt.where(
                or_(order_col < cursor_ts, and_(order_col == cursor_ts, id_col < cursor_id))
            )
        else:
            stmt = stmt.where(
                or_(order_col > cursor_ts, and_(order_col == cursor_ts, id_col > cursor_id))
            )

    if direction == CursorDirection.NEXT:
        stmt = stmt.order_by(order_col.desc(), id_col.desc())
    else:
        stmt = stmt.order_by(order_col.asc(), id_col.asc())

    return stmt.limit(limit + 1)


def get_keyset_page_info(
    items: list[Any],
    limit: int,
    direction: CursorDirection,
    is_first_page: bool = False,
    id_attr: str = "id",
    ts_attr: str = "created_at",
) -> tuple[list[Any], bool, bool, str | None, str | None]:
    """Trim the extra row and compute cursors.

    Returns:
        Tuple of (items newest first, has_next, has_prev, next_cursor, prev_cursor)
    """
    has_more = len(items) > limit
    items = items[:limit]

    if direction == CursorDirection.PREV:
        items = list(reversed(items))
        has_prev = has_more
        # We came back from a later page, so one exists
        has_next = True
    else:
        has_next = has_more
        has_prev = not is_first_page

    if not items:
        return items, False, False, None, None

    def cursor_for(item: Any) -> str:
        return encode_cursor(getattr(item, id_attr), getattr(item, ts_attr))

    next_cursor = cursor_for(items[-1]) if has_next else None
    prev_cursor = cursor_for(items[0]) if has_prev else None
    return items, has_next, has_prev, next_cursor, prev_cursor
