"""Schemas for the notification inbox and preferences."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ticketing.domain.enums import NotificationCategory


class NotificationResponse(BaseModel):
    id: UUID
    type: str
    category: NotificationCategory
    title: str
    message: str
    data: dict[str, Any] | None = None
    channels: list[str]
    read_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    updated: int


class NotificationPreferenceResponse(BaseModel):
    category: NotificationCategory
    in_app: bool
    email: bool
    push: bool
    sms: bool


class NotificationPreferenceUpdate(BaseModel):
    category: NotificationCategory
    in_app: bool | None = None
    email: bool | None = None
    push: bool | None = None
    sms: bool | None = None


class NotificationPreferencesUpdate(BaseModel):
    preferences: list[NotificationPreferenceUpdate] = Field(min_length=1)


class NotificationStatsResponse(BaseModel):
    total: int
    unread: int
    by_category: dict[str, int]
