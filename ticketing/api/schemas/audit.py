"""Audit log response schema."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuditLogResponse(BaseModel):
    audit_id: UUID
    entity_type: str
    entity_id: str
    action: str
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    performed_by: str
    performed_at: datetime

    model_config = ConfigDict(from_attributes=True)
