"""Notification creation and delivery service.

Notifications are:
1. Persisted in the database
2. Pushed to the user over Redis pub/sub when Redis is configured

Dispatch is best-effort: callers use ``notify`` after their primary write
has committed, and a failure here never undoes that write.

Types: challenge, achievement, social, system
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.db.models import Notification
from habitz.resilience import bounded_store_call

logger = logging.getLogger(__name__)

VALID_TYPES = {"challenge", "achievement", "social", "system"}


async def push_notification_to_user(redis: Any | None, notification: Notification) -> None:
    """Publish a formatted notification to ``notify:user:{user_id}``."""
    if redis is None:
        return

    payload = {
        "event": "notification",
        "data": {
            "id": str(notification.id),
            "type": notification.type,
            "subtype": notification.subtype,
            "title": notification.title,
            "description": notification.description,
            "timestamp": notification.created_at.isoformat() if notification.created_at else None,
            "read": False,
            "actionUrl": notification.action_url,
        },
    }
    try:
        await redis.publish(f"notify:user:{notification.user_id}", json.dumps(payload))
    except Exception:
        logger.warning("Failed to push notification to user %s", notification.user_id, exc_info=True)


async def create_notification(
    db: AsyncSession,
    user_id: str,
    type_: str,
    subtype: str,
    title: str,
    description: str | None = None,
    action_url: str | None = None,
    metadata: dict[str, Any] | None = None,
    redis: Any | None = None,
) -> Notification:
    """Persist a notification (flushed, not committed) and push it."""
    if type_ not in VALID_TYPES:
        raise ValueError(f"Invalid notification type: {type_}. Must be one of {VALID_TYPES}")

    notification = Notification(
        user_id=user_id,
        type=type_,
        subtype=subtype,
        title=title,
        description=description,
        action_url=action_url,
        notification_metadata=metadata or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()

    await push_notification_to_user(redis, notification)
    return notification


async def notify(
    db: AsyncSession,
    user_id: str,
    type_: str,
    subtype: str,
    title: str,
    description: str | None = None,
    action_url: str | None = None,
    metadata: dict[str, Any] | None = None,
    redis: Any | None = None,
) -> bool:
    """Create and commit a notification. Failures are logged, never raised."""
    try:
        await create_notification(
            db, user_id, type_, subtype, title,
            description=description,
            action_url=action_url,
            metadata=metadata,
            redis=redis,
        )
        await db.commit()
        return True
    except Exception:
        logger.warning("Notification %s/%s for %s failed", type_, subtype, user_id, exc_info=True)
        await db.rollback()
        return False


@bounded_store_call("list_notifications")
async def get_notifications(
    db: AsyncSession,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Notification], int]:
    """Get paginated notifications, newest first, with the unread count."""
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))

    result = await db.execute(
        query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).offset(offset)
    )
    notifications = list(result.scalars().all())

    unread = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
    )
    return notifications, unread.scalar() or 0


@bounded_store_call("mark_notifications_read")
async def mark_read(db: AsyncSession, user_id: str, notification_id: int | None = None) -> int:
    """Mark one notification (or all, when no id is given) as read. Returns rows updated."""
    stmt = update(Notification).where(Notification.user_id == user_id, Notification.read.is_(False))
    if notification_id is not None:
        stmt = stmt.where(Notification.id == notification_id)
    result = await db.execute(stmt.values(read=True))
    await db.commit()
    return result.rowcount or 0
