"""Notification inbox and preference routes."""

import logging
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Path, Query, status

from ticketing.api.schemas.notification import (
    MarkAllReadResponse,
    NotificationPreferenceResponse,
    NotificationPreferencesUpdate,
    NotificationResponse,
    NotificationStatsResponse,
    UnreadCountResponse,
)
from ticketing.api.schemas.pagination import PaginatedResponse
from ticketing.core.dependencies import AsyncDbSession
from ticketing.core.security import get_user_id, require_permission
from ticketing.db.models import Notification
from ticketing.domain.enums import NotificationCategory
from ticketing.repos import notification_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])

InboxUser = Annotated[dict[str, Any], Depends(require_permission("notification:read"))]


@router.get("", response_model=PaginatedResponse[NotificationResponse], summary="Inbox")
async def list_notifications(
    db: AsyncDbSession,
    user: InboxUser,
    unread_only: Annotated[bool, Query()] = False,
    category: Annotated[NotificationCategory | None, Query()] = None,
    search: Annotated[str | None, Query(max_length=200)] = None,
    page: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
) -> dict:
    return await notification_repo.list_notifications(
        db,
        user_id=get_user_id(user),
        unread_only=unread_only,
        category=category,
        search=search,
        page=page,
        limit=limit,
    )


@router.get("/unread-count", response_model=UnreadCountResponse, summary="Unread count")
async def unread_count(db: AsyncDbSession, user: InboxUser) -> dict:
    return {"count": await notification_repo.unread_count(db, user_id=get_user_id(user))}


@router.get("/stats", response_model=NotificationStatsResponse, summary="Counts per category")
async def category_stats(db: AsyncDbSession, user: InboxUser) -> dict:
    return await notification_repo.category_stats(db, user_id=get_user_id(user))


@router.get(
    "/preferences",
    response_model=list[NotificationPreferenceResponse],
    summary="Delivery preferences for every category",
)
async def get_preferences(db: AsyncDbSession, user: InboxUser) -> list[dict]:
    return await notification_repo.get_preferences(db, user_id=get_user_id(user))


@router.put(
    "/preferences",
    response_model=list[NotificationPreferenceResponse],
    summary="Update delivery preferences",
    description="Only the channels given are changed; omitted ones keep their value.",
)
async def update_preferences(
    payload: NotificationPreferencesUpdate, db: AsyncDbSession, user: InboxUser
) -> list[dict]:
    preferences = await notification_repo.update_preferences(
        db,
        user_id=get_user_id(user),
        updates=[p.model_dump(exclude_unset=True) for p in payload.preferences],
    )
    await db.commit()
    return preferences


@router.post("/read-all", response_model=MarkAllReadResponse, summary="Mark everything read")
async def mark_all_as_read(db: AsyncDbSession, user: InboxUser) -> dict:
    updated = await notification_repo.mark_all_as_read(db, user_id=get_user_id(user))
    await db.commit()
    return {"updated": updated}


@router.post(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification read",
)
async def mark_as_read(
    notification_id: Annotated[uuid.UUID, Path(description="Notification id")],
    db: AsyncDbSession,
    user: InboxUser,
) -> Notification:
    notification = await notification_repo.mark_as_read(
        db, notification_id=notification_id, user_id=get_user_id(user)
    )
    await db.commit()
    return notification


@router.delete(
    "/{notification_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a notification",
)
async def delete_notification(
    notification_id: Annotated[uuid.UUID, Path(description="Notification id")],
    db: AsyncDbSession,
    user: InboxUser,
) -> None:
    await notification_repo.delete_notification(
        db, notification_id=notification_id, user_id=get_user_id(user)
    )
    await db.commit()
