"""Schemas for organizations and their members."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ticketing.domain.enums import OrgMemberRole


class OrgCreate(BaseModel):
    name: str = Field(min_length=2, max_length=200)
    country: str | None = Field(None, min_length=2, max_length=2, description="ISO 3166-1 alpha-2")
    currency: str | None = Field(None, min_length=3, max_length=3)


class OrgResponse(BaseModel):
    id: UUID
    name: str
    slug: str
    country: str | None = None
    currency: str
    created_by: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MemberCreate(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    role: OrgMemberRole = OrgMemberRole.STAFF


class MemberRoleUpdate(BaseModel):
    role: OrgMemberRole


class MemberResponse(BaseModel):
    id: UUID
    org_id: UUID
    user_id: UUID
    role: OrgMemberRole
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
