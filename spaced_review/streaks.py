"""Daily study streak milestones."""

from typing import Optional

from spaced_review.schemas import Milestone

STREAK_MILESTONES = [
    (1, "First Day"),
    (3, "3-Day Streak"),
    (7, "Week Warrior"),
    (14, "Two Week Champion"),
    (30, "Monthly Master"),
    (60, "Two Month Legend"),
    (100, "Century Club"),
    (365, "Year Champion"),
]


def get_streak_milestone(streak: int) -> Optional[Milestone]:
    """
    Milestone reached exactly at ``streak`` days, otherwise the next one
    ahead with the days remaining. None once every milestone is behind.
    """
    for days, name in STREAK_MILESTONES:
        if days == streak:
            return Milestone(days=days, name=name)

    for days, name in STREAK_MILESTONES:
        if days > streak:
            return Milestone(days=days, name=name, days_remaining=days - streak, is_approaching=True)

    return None


def is_milestone_reached(milestone: Optional[Milestone]) -> bool:
    return milestone is not None and not milestone.is_approaching
