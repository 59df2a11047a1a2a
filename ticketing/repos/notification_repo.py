"""
Repository functions for the in-app notification inbox and preferences.
"""

import logging
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.errors import NotFoundError
from ticketing.db.models import Notification, NotificationPreference
from ticketing.db.validators import utcnow
from ticketing.domain.enums import NotificationCategory
from ticketing.repos.pagination import LIKE_ESCAPE, contains_pattern, paginate

logger = logging.getLogger(__name__)

NOTIFICATION_NOT_FOUND = "Notification not found"
PREFERENCE_CHANNELS = ("in_app", "email", "push", "sms")


def default_preferences(category: NotificationCategory) -> dict[str, bool]:
    return {
        "in_app": True,
        "email": category != NotificationCategory.MARKETING,
        "push": True,
        "sms": False,
    }


async def _get_preference_row(
    db: AsyncSession, user_id: Any, category: NotificationCategory
) -> NotificationPreference | None:
    result = await db.execute(
        select(NotificationPreference).where(
            NotificationPreference.user_id == user_id,
            NotificationPreference.category == category,
        )
    )
    return result.scalar_one_or_none()


async def create_notification(
    db: AsyncSession,
    *,
    user_id: Any,
    type: str,
    title: str,
    message: str,
    category: NotificationCategory = NotificationCategory.SYSTEM,
    data: dict[str, Any] | None = None,
    channels: list[str] | None = None,
) -> Notification | None:
    """
    Add an inbox row unless the user turned off in-app for the category.

    Returns:
        The notification, or None when skipped by preference
    """
    pref = await _get_preference_row(db, user_id, category)
    in_app = pref.in_app if pref is not None else default_preferences(category)["in_app"]
    if not in_app:
        logger.debug("Skipped %s notification for user %s by preference", type, user_id)
        return None

    notification = Notification(
        user_id=user_id,
        type=type,
        category=category,
        title=title,
        message=message,
        data=data,
        channels=channels or ["in_app"],
    )
    db.add(notification)
    await db.flush()
    return notification


async def list_notifications(
    db: AsyncSession,
    *,
    user_id: Any,
    unread_only: bool = False,
    category: NotificationCategory | None = None,
    search: str | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.read_at.is_(None))
    if category is not None:
        stmt = stmt.where(Notification.category == category)
    if search:
        pattern = contains_pattern(search)
        stmt = stmt.where(
            or_(
                Notification.title.ilike(pattern, escape=LIKE_ESCAPE),
                Notification.message.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
    return await paginate(db, stmt, page, limit)


async def unread_count(db: AsyncSession, *, user_id: Any) -> int:
    count = await db.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
    )
    return count or 0


async def _get_owned(db: AsyncSession, notification_id: Any, user_id: Any) -> Notification:
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError(
            NOTIFICATION_NOT_FOUND, details={"notification_id": str(notification_id)}
        )
    return notification


async def mark_as_read(db: AsyncSession, *, notification_id: Any, user_id: Any) -> Notification:
    notification = await _get_owned(db, notification_id, user_id)
    if notification.read_at is None:
        notification.read_at = utcnow()
        await db.flush()
    return notification


async def mark_all_as_read(db: AsyncSession, *, user_id: Any) -> int:
    """Mark every unread notification read; returns how many changed."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
        .values(read_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


async def delete_notification(db: AsyncSession, *, notification_id: Any, user_id: Any) -> None:
    notification = await _get_owned(db, notification_id, user_id)
    await db.delete(notification)
    await db.flush()


async def get_preferences(db: AsyncSession, *, user_id: Any) -> list[dict[str, Any]]:
    """Preferences for every category, defaults filled in for missing rows."""
    result = await db.execute(
        select(NotificationPreference).where(NotificationPreference.user_id == user_id)
    )
    stored = {pref.category: pref for pref in result.scalars().all()}

    preferences = []
    for category in NotificationCategory:
        pref = stored.get(category)
        if pref is None:
            values = default_preferences(category)
        else:
            values = {channel: getattr(pref, channel) for channel in PREFERENCE_CHANNELS}
        preferences.append({"category": category, **values})
    return preferences


async def update_preferences(
    db: AsyncSession, *, user_id: Any, updates: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """Upsert preferences per category; unspecified channels keep their value."""
    for update_ in updates:
        category = NotificationCategory(update_["category"])
        pref = await _get_preference_row(db, user_id, category)
        if pref is None:
            pref = NotificationPreference(
                user_id=user_id, category=category, **default_preferences(category)
            )
            db.add(pref)
        for channel in PREFERENCE_CHANNELS:
            if update_.get(channel) is not None:
                setattr(pref, channel, update_[channel])

    await db.flush()
    return await get_preferences(db, user_id=user_id)


async def category_stats(db: AsyncSession, *, user_id: Any) -> dict[str, Any]:
    rows = (
        await db.execute(
            select(
                Notification.category,
                func.count(),
                func.count(Notification.id).filter(Notification.read_at.is_(None)),
            )
            .where(Notification.user_id == user_id)
            .group_by(Notification.category)
        )
    ).all()

    by_category = {category.value: 0 for category in NotificationCategory}
    total = 0
    unread = 0
    for category, count, unread_in_category in rows:
        by_category[category.value] = count
        total += count
        unread += unread_in_category
    return {"total": total, "unread": unread, "by_category": by_category}
