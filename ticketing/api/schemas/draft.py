"""Schemas for the event creator wizard."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ticketing.domain.enums import DraftSectionType, DraftStatus, SectionStatus, Visibility
from ticketing.services.drafts import SECTION_ORDER


class DraftCreate(BaseModel):
    title: str | None = Field(None, max_length=180)


class DraftSectionResponse(BaseModel):
    section: DraftSectionType
    payload: dict[str, Any]
    status: SectionStatus
    errors: list[dict[str, Any]]
    completed_at: datetime | None = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DraftResponse(BaseModel):
    id: UUID
    org_id: UUID
    created_by: UUID
    title: str | None = None
    slug: str | None = None
    short_description: str | None = None
    visibility: Visibility
    status: DraftStatus
    completion_percent: int
    active_section: DraftSectionType | None = None
    event_id: UUID | None = None
    target_publish_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    sections: list[DraftSectionResponse] = []

    model_config = ConfigDict(from_attributes=True)

    @field_validator("sections")
    @classmethod
    def order_sections(cls, v: list[DraftSectionResponse]) -> list[DraftSectionResponse]:
        return sorted(v, key=lambda s: SECTION_ORDER.index(s.section))


class DraftSummaryResponse(BaseModel):
    id: UUID
    org_id: UUID
    title: str | None = None
    status: DraftStatus
    completion_percent: int
    event_id: UUID | None = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DraftSectionUpdate(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class DraftPublishRequest(BaseModel):
    publish_at: datetime | None = Field(None, description="Schedule for later; omit to go live now")


class DraftPublishResponse(BaseModel):
    draft_id: UUID
    event_id: UUID
    status: DraftStatus
    message: str
