"""Achievement point sources and progress rules.

An achievement's category decides which points count toward it. The
decision is made once, when the rule is built, as one of the
``PointSource`` variants below.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Generic:
    """Counts the user's total points."""


@dataclass(frozen=True)
class ActivityScoped:
    """Counts points earned on the listed activity types."""

    activity_type_ids: frozenset[int]


@dataclass(frozen=True)
class StreakScoped:
    """Streak achievements; counted against total points."""


@dataclass(frozen=True)
class Fallback:
    """Anything else; counted against total points."""


PointSource = Generic | ActivityScoped | StreakScoped | Fallback


def point_source(category: str, is_generic: bool, activity_type_ids: Iterable[int] = ()) -> PointSource:
    ids = frozenset(activity_type_ids)
    if is_generic or category == "general":
        return Generic()
    if category == "streak":
        return StreakScoped()
    if category == "activity" and ids:
        return ActivityScoped(ids)
    return Fallback()


@dataclass(frozen=True)
class AchievementRule:
    achievement_id: int
    required_points: int
    source: PointSource = field(default_factory=Fallback)
    unlocked: bool = False
    # Persisted progress for this user; wins over any derived value.
    current_points: int | None = None


def resolve_current_points(
    rule: AchievementRule,
    total_points: int,
    activity_type_points: Mapping[int, int],
) -> int:
    if rule.current_points is not None:
        return rule.current_points
    if isinstance(rule.source, ActivityScoped):
        return sum(
            points
            for activity_type_id, points in activity_type_points.items()
            if activity_type_id in rule.source.activity_type_ids
        )
    return total_points


def progress(required_points: int, current_points: int) -> float:
    """Percent toward ``required_points``, clamped to [0, 100]."""
    if required_points <= 0:
        msg = f"required_points must be positive, got {required_points}"
        raise ValueError(msg)
    return min(100.0, max(0.0, current_points / required_points * 100))


def is_unlocked(rule: AchievementRule, current_points: int) -> bool:
    return rule.unlocked or progress(rule.required_points, current_points) >= 100
