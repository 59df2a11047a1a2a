"""Audit trail helpers.

Repos call these inside the same transaction as the change they record,
so an audit row exists exactly when the change is committed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.db.models import AuditLog
from ticketing.db.validators import to_jsonable, utcnow

logger = logging.getLogger(__name__)

# Never copied into old_value/new_value
_SECRET_COLUMNS = frozenset({"password_hash", "refresh_token_hash"})


def snapshot_entity(
    entity: Any, *, include: Iterable[str] | None = None, exclude: Iterable[str] | None = None
) -> dict:
    """Column values of an ORM instance as JSON-ready data.

    ``include`` narrows the snapshot to the named columns; ``exclude``
    drops columns. Credential hashes are always left out.
    """
    wanted = set(include) if include is not None else None
    unwanted = set(exclude or ()) | _SECRET_COLUMNS

    snapshot = {}
    for attr in inspect(entity).mapper.column_attrs:
        if wanted is not None and attr.key not in wanted:
            continue
        if attr.key in unwanted:
            continue
        snapshot[attr.key] = to_jsonable(getattr(entity, attr.key))
    return snapshot


async def create_audit_log_async(
    db: AsyncSession,
    *,
    entity_type: str,
    entity_id: Any,
    action: str,
    old_value: dict | None = None,
    new_value: dict | None = None,
    performed_by: Any,
) -> AuditLog:
    """Stage an AuditLog row on the session; the caller commits.

    ``entity_type`` may be a plain string or an enum member. Ids are
    stored in their string form whatever their type.
    """
    entry = AuditLog(
        entity_type=str(getattr(entity_type, "value", entity_type)),
        entity_id=str(entity_id),
        action=action,
        old_value=old_value,
        new_value=new_value,
        performed_by=str(performed_by),
        performed_at=utcnow(),
    )
    db.add(entry)
    logger.debug("Audit %s %s %s", entry.entity_type, entry.action, entry.entity_id)
    return entry
