"""Domain event notifications.

Email, SMS and push delivery are not wired up. `notify` is the single
call-site for domain events and emits a structured log line; user-facing
events additionally get an inbox row via
`ticketing.repos.notification_repo.create_notification`.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


def notify(
    event: str,
    *,
    entity_type: str,
    entity_id: Any,
    actor: Any,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit a notification event as a structured log message."""
    logger.info(
        "notify:%s",
        event,
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "actor": str(actor),
            "details": details or {},
        },
    )
