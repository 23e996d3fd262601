import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from spaced_review.crud.student import require_student
from spaced_review.errors import ValidationError
from spaced_review.models import DailyActivity
from spaced_review.schemas import StreakInfo, StreakUpdate
from spaced_review.streaks import get_streak_milestone, is_milestone_reached

logger = logging.getLogger(__name__)


def get_activity(db: Session, student_id: int, activity_date: date) -> Optional[DailyActivity]:
    """Get a student's activity row for one day"""
    return db.query(DailyActivity).filter(
        DailyActivity.student_id == student_id,
        DailyActivity.activity_date == activity_date
    ).first()


def get_longest_streak(db: Session, student_id: int) -> int:
    """Longest streak ever recorded for a student"""
    longest = db.query(func.max(DailyActivity.longest_streak)).filter(
        DailyActivity.student_id == student_id
    ).scalar()
    return longest or 0


def update_daily_streak(
    db: Session,
    student_id: int,
    minutes_studied: int = 0,
    today: Optional[date] = None
) -> StreakUpdate:
    """
    Log study minutes for today and advance the streak.

    The first entry of a day continues yesterday's streak when minutes were
    studied, otherwise the streak drops to 0. Later entries on the same day
    only add minutes.
    """
    if minutes_studied < 0:
        raise ValidationError("minutes_studied cannot be negative", ["minutes_studied: must be >= 0"])
    today = today or date.today()
    require_student(db, student_id)

    activity = get_activity(db, student_id, today)
    if activity is not None:
        activity.minutes_studied += minutes_studied
        db.commit()
        return StreakUpdate(
            current_streak=activity.current_streak,
            previous_streak=activity.current_streak,
            is_new_streak=False
        )

    yesterday = get_activity(db, student_id, today - timedelta(days=1))
    previous_streak = yesterday.current_streak if yesterday else 0
    new_streak = previous_streak + 1 if minutes_studied > 0 else 0
    longest = max(get_longest_streak(db, student_id), new_streak)

    activity = DailyActivity(
        student_id=student_id,
        activity_date=today,
        minutes_studied=minutes_studied,
        current_streak=new_streak,
        longest_streak=longest
    )
    db.add(activity)
    db.commit()

    milestone = get_streak_milestone(new_streak)
    if is_milestone_reached(milestone):
        logger.info("Student %s reached streak milestone %r", student_id, milestone.name)

    return StreakUpdate(
        current_streak=new_streak,
        previous_streak=previous_streak,
        is_new_streak=new_streak > previous_streak,
        milestone=milestone
    )


def get_streak_info(db: Session, student_id: int, today: Optional[date] = None) -> StreakInfo:
    """Current streak standing; a streak is at risk until today is logged"""
    today = today or date.today()
    activity = get_activity(db, student_id, today)

    if activity is None:
        yesterday = get_activity(db, student_id, today - timedelta(days=1))
        return StreakInfo(
            current_streak=0,
            longest_streak=get_longest_streak(db, student_id),
            days_until_streak_loss=1,
            streak_at_risk=bool(yesterday and yesterday.current_streak > 0)
        )

    return StreakInfo(
        current_streak=activity.current_streak,
        longest_streak=activity.longest_streak,
        days_until_streak_loss=0,
        streak_at_risk=False,
        milestone=get_streak_milestone(activity.current_streak),
        today_minutes=activity.minutes_studied
    )
