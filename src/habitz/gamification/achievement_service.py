"""Achievement evaluation, idempotent unlocks and XP grants."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.checkins.points import activity_points_by_type, total_points
from habitz.db.models import (
    Achievement,
    AchievementActivity,
    Profile,
    UserAchievement,
    UserAchievementPoints,
)
from habitz.db.upsert import insert_for
from habitz.gamification.achievement_rules import (
    AchievementRule,
    ActivityScoped,
    is_unlocked,
    point_source,
    progress,
    resolve_current_points,
)
from habitz.resilience import bounded_store_call
from habitz.social.notification_service import notify

logger = logging.getLogger(__name__)


def build_rule(
    achievement: Achievement,
    unlocked: bool = False,
    current_points: int | None = None,
) -> AchievementRule:
    return AchievementRule(
        achievement_id=achievement.id,
        required_points=achievement.required_points,
        source=point_source(achievement.category, achievement.is_generic, achievement.activity_type_ids),
        unlocked=unlocked,
        current_points=current_points,
    )


async def unlock_achievement(
    db: AsyncSession,
    user_id: str,
    achievement: Achievement,
    now: datetime | None = None,
) -> bool:
    """Insert the unlock row if absent and grant the achievement's XP.

    Returns True only for the call that actually inserted the row; repeat
    and concurrent calls are no-ops. Caller commits.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    stmt = (
        insert_for(db, UserAchievement)
        .values(user_id=user_id, achievement_id=achievement.id, unlocked_at=now)
        .on_conflict_do_nothing(index_elements=["user_id", "achievement_id"])
        .returning(UserAchievement.id)
    )
    inserted = (await db.execute(stmt)).scalar_one_or_none()
    if inserted is None:
        return False

    if achievement.xp_points:
        await db.execute(
            update(Profile)
            .where(Profile.id == user_id)
            .values(xp=Profile.xp + achievement.xp_points)
        )
    logger.info("Achievement %s unlocked for %s (+%d XP)", achievement.slug, user_id, achievement.xp_points)
    return True


async def _record_progress(db: AsyncSession, user_id: str, achievement_id: int, current_points: int) -> None:
    stmt = insert_for(db, UserAchievementPoints).values(
        user_id=user_id,
        achievement_id=achievement_id,
        current_points=current_points,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "achievement_id"],
        set_={"current_points": stmt.excluded.current_points},
        # Progress only moves forward.
        where=UserAchievementPoints.current_points < stmt.excluded.current_points,
    )
    await db.execute(stmt)


@bounded_store_call("check_activity_achievements")
async def check_activity_achievements(
    db: AsyncSession,
    user_id: str,
    activity_type_id: int,
    redis: object | None = None,
) -> list[int]:
    """Unlock every now-qualifying achievement linked to ``activity_type_id``.

    Only achievements the user has not unlocked yet are scanned. Returns
    the ids unlocked by this call.
    """
    already = select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    result = await db.execute(
        select(Achievement)
        .join(AchievementActivity, AchievementActivity.achievement_id == Achievement.id)
        .where(
            AchievementActivity.activity_type_id == activity_type_id,
            Achievement.id.not_in(already),
        )
        .order_by(Achievement.required_points)
    )
    candidates = list(result.scalars().unique().all())
    if not candidates:
        return []

    total = await total_points(db, user_id)
    by_type = await activity_points_by_type(db, user_id)

    newly_unlocked: list[Achievement] = []
    for achievement in candidates:
        rule = build_rule(achievement)
        current = resolve_current_points(rule, total, by_type)
        if isinstance(rule.source, ActivityScoped):
            await _record_progress(db, user_id, achievement.id, current)
        if is_unlocked(rule, current) and await unlock_achievement(db, user_id, achievement):
            newly_unlocked.append(achievement)
    await db.commit()

    # Plain values: a failed notification rolls back and expires the ORM rows
    unlocked = [(a.id, a.name, a.description, a.tier, a.xp_points) for a in newly_unlocked]
    for achievement_id, name, description, tier, xp in unlocked:
        await notify(
            db,
            user_id,
            "achievement",
            "achievement_unlocked",
            f"Achievement unlocked: {name}",
            description=description,
            action_url="/achievements",
            metadata={"achievement_id": achievement_id, "tier": tier, "xp": xp},
            redis=redis,
        )
    return [achievement_id for achievement_id, *_ in unlocked]


@bounded_store_call("list_user_achievements")
async def list_user_achievements(db: AsyncSession, user_id: str) -> list[dict]:
    """Every achievement with the user's progress and unlock state."""
    achievements = (
        await db.execute(select(Achievement).order_by(Achievement.sort_order, Achievement.id))
    ).scalars().all()

    unlocked_rows = await db.execute(
        select(UserAchievement.achievement_id, UserAchievement.unlocked_at).where(
            UserAchievement.user_id == user_id
        )
    )
    unlocked_at = {row.achievement_id: row.unlocked_at for row in unlocked_rows}

    progress_rows = await db.execute(
        select(UserAchievementPoints.achievement_id, UserAchievementPoints.current_points).where(
            UserAchievementPoints.user_id == user_id
        )
    )
    persisted = {row.achievement_id: row.current_points for row in progress_rows}

    total = await total_points(db, user_id)
    by_type = await activity_points_by_type(db, user_id)

    items = []
    for achievement in achievements:
        unlocked = achievement.id in unlocked_at
        if unlocked:
            # Unlocked achievements report full progress.
            override = achievement.required_points
        else:
            # A stored value can lag the ledger when a re-evaluation failed
            live = resolve_current_points(build_rule(achievement), total, by_type)
            override = max(live, persisted.get(achievement.id, live))
        rule = build_rule(achievement, unlocked=unlocked, current_points=override)
        current = resolve_current_points(rule, total, by_type)
        items.append({
            "id": achievement.id,
            "slug": achievement.slug,
            "name": achievement.name,
            "description": achievement.description,
            "icon": achievement.icon,
            "category": achievement.category,
            "tier": achievement.tier,
            "is_generic": achievement.is_generic,
            "required_points": achievement.required_points,
            "xp_points": achievement.xp_points,
            "activity_type_ids": sorted(achievement.activity_type_ids),
            "current_points": current,
            "progress": progress(achievement.required_points, current),
            "unlocked": is_unlocked(rule, current),
            "unlocked_at": unlocked_at.get(achievement.id),
        })
    return items
