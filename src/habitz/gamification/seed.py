"""Reference data: activity types and achievement definitions."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.db.models import Achievement, AchievementActivity, ActivityType
from habitz.db.upsert import insert_for

logger = logging.getLogger(__name__)

ACTIVITY_TYPE_SEED_DATA: list[dict] = [
    {"name": "Running", "icon": "footprints", "is_habit_forming": True},
    {"name": "Cycling", "icon": "bike", "is_habit_forming": True},
    {"name": "Swimming", "icon": "waves", "is_habit_forming": True},
    {"name": "Gym", "icon": "dumbbell", "is_habit_forming": True},
    {"name": "Yoga", "icon": "flower", "is_habit_forming": True},
    {"name": "Walking", "icon": "map", "is_habit_forming": True},
]

# "activities": activity type names the achievement is linked to; "*" links all.
ACHIEVEMENT_SEED_DATA: list[dict] = [
    # General
    {
        "slug": "first_week",
        "name": "First Week",
        "description": "Log 7 check-ins",
        "icon": "calendar",
        "category": "general",
        "tier": "bronze",
        "is_generic": True,
        "required_points": 7,
        "xp_points": 50,
        "sort_order": 1,
        "activities": "*",
    },
    {
        "slug": "committed",
        "name": "Committed",
        "description": "Log 30 check-ins",
        "icon": "medal",
        "category": "general",
        "tier": "silver",
        "is_generic": True,
        "required_points": 30,
        "xp_points": 150,
        "sort_order": 2,
        "activities": "*",
    },
    {
        "slug": "unstoppable",
        "name": "Unstoppable",
        "description": "Log 100 check-ins",
        "icon": "trophy",
        "category": "general",
        "tier": "gold",
        "is_generic": True,
        "required_points": 100,
        "xp_points": 500,
        "sort_order": 3,
        "activities": "*",
    },
    # Activity
    {
        "slug": "runner",
        "name": "Runner",
        "description": "Go for 10 runs",
        "icon": "footprints",
        "category": "activity",
        "tier": "bronze",
        "is_generic": False,
        "required_points": 10,
        "xp_points": 75,
        "sort_order": 10,
        "activities": ["Running"],
    },
    {
        "slug": "marathoner",
        "name": "Marathoner",
        "description": "Go for 50 runs",
        "icon": "footprints",
        "category": "activity",
        "tier": "gold",
        "is_generic": False,
        "required_points": 50,
        "xp_points": 300,
        "sort_order": 11,
        "activities": ["Running"],
    },
    {
        "slug": "iron_pumper",
        "name": "Iron Pumper",
        "description": "Train at the gym 20 times",
        "icon": "dumbbell",
        "category": "activity",
        "tier": "silver",
        "is_generic": False,
        "required_points": 20,
        "xp_points": 150,
        "sort_order": 12,
        "activities": ["Gym"],
    },
    {
        "slug": "water_and_wheels",
        "name": "Water and Wheels",
        "description": "Swim or cycle 15 times",
        "icon": "waves",
        "category": "activity",
        "tier": "silver",
        "is_generic": False,
        "required_points": 15,
        "xp_points": 120,
        "sort_order": 13,
        "activities": ["Swimming", "Cycling"],
    },
    # Nutrition
    {
        "slug": "clean_plate",
        "name": "Clean Plate",
        "description": "Log 10 healthy meals",
        "icon": "salad",
        "category": "nutrition",
        "tier": "bronze",
        "is_generic": False,
        "required_points": 10,
        "xp_points": 50,
        "sort_order": 20,
        "activities": [],
    },
    # Streak
    {
        "slug": "on_fire",
        "name": "On Fire",
        "description": "Keep your streak alive",
        "icon": "flame",
        "category": "streak",
        "tier": "bronze",
        "is_generic": False,
        "required_points": 14,
        "xp_points": 100,
        "sort_order": 30,
        "activities": [],
    },
]


async def seed_activity_types(db: AsyncSession) -> dict[str, int]:
    """Insert missing activity types. Returns name -> id for all of them."""
    for data in ACTIVITY_TYPE_SEED_DATA:
        stmt = insert_for(db, ActivityType).values(**data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["name"],
            set_={"icon": stmt.excluded.icon, "is_habit_forming": stmt.excluded.is_habit_forming},
        )
        await db.execute(stmt)
    result = await db.execute(select(ActivityType.id, ActivityType.name))
    return {row.name: row.id for row in result}


async def seed_achievements(db: AsyncSession, activity_ids: dict[str, int]) -> int:
    """Upsert achievement definitions and their activity links."""
    seeded = 0
    for data in ACHIEVEMENT_SEED_DATA:
        values = {k: v for k, v in data.items() if k != "activities"}
        stmt = insert_for(db, Achievement).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "icon": stmt.excluded.icon,
                "category": stmt.excluded.category,
                "tier": stmt.excluded.tier,
                "is_generic": stmt.excluded.is_generic,
                "required_points": stmt.excluded.required_points,
                "xp_points": stmt.excluded.xp_points,
                "sort_order": stmt.excluded.sort_order,
            },
        ).returning(Achievement.id)
        achievement_id = (await db.execute(stmt)).scalar_one()

        names = activity_ids.keys() if data["activities"] == "*" else data["activities"]
        for name in names:
            link = insert_for(db, AchievementActivity).values(
                achievement_id=achievement_id,
                activity_type_id=activity_ids[name],
            )
            await db.execute(link.on_conflict_do_nothing(index_elements=["achievement_id", "activity_type_id"]))
        seeded += 1
    return seeded


async def seed_reference_data(db: AsyncSession) -> int:
    """Idempotently seed activity types and achievements. Returns achievements seeded."""
    activity_ids = await seed_activity_types(db)
    seeded = await seed_achievements(db, activity_ids)
    await db.commit()
    logger.info("Seeded %d activity types and %d achievements", len(activity_ids), seeded)
    return seeded
