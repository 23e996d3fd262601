import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from numbers import Real

from spaced_review.errors import ValidationError

MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3  # below this the recall counts as failed
MAX_INTERVAL_DAYS = timedelta.max.days


@dataclass(frozen=True)
class SchedulerParams:
    """Constants of the SM-2 variant, passed explicitly to every call"""
    initial_ease_factor: float = 2.5
    min_ease_factor: float = 1.3
    first_interval_days: int = 1
    second_interval_days: int = 6


DEFAULT_PARAMS = SchedulerParams()


@dataclass(frozen=True)
class ReviewState:
    """Review state of one (student, concept) pair between two reviews"""
    repetitions: int = 0
    ease_factor: float = 2.5
    interval_days: int = 0


@dataclass(frozen=True)
class ScheduledReview:
    """Result of scheduling: the new state plus when to review next"""
    repetitions: int
    ease_factor: float
    interval_days: int
    next_review_at: datetime

    @property
    def state(self) -> ReviewState:
        return ReviewState(self.repetitions, self.ease_factor, self.interval_days)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SM2Algorithm:
    """
    SM-2 spaced repetition algorithm for calculating review intervals.
    Based on SuperMemo 2 algorithm by Piotr Wozniak.
    """

    @staticmethod
    def validate_quality(quality) -> int:
        """Reject anything that is not an integer recall grade 0-5"""
        if not _is_int(quality):
            raise ValidationError(
                f"quality must be an integer, got {type(quality).__name__}",
                ["quality: must be an integer between 0 and 5"],
            )
        if quality < MIN_QUALITY or quality > MAX_QUALITY:
            raise ValidationError(
                f"quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {quality}",
                [f"quality: {quality} is outside {MIN_QUALITY}-{MAX_QUALITY}"],
            )
        return quality

    @staticmethod
    def validate_state(state: ReviewState, params: SchedulerParams = DEFAULT_PARAMS) -> ReviewState:
        """Collect every problem with a prior state before failing"""
        errors = []
        if not _is_int(state.repetitions) or state.repetitions < 0:
            errors.append(f"repetitions: must be a non-negative integer, got {state.repetitions!r}")
        if not _is_int(state.interval_days) or state.interval_days < 0:
            errors.append(f"interval_days: must be a non-negative integer, got {state.interval_days!r}")
        elif state.interval_days > MAX_INTERVAL_DAYS:
            errors.append(f"interval_days: must be at most {MAX_INTERVAL_DAYS}, got {state.interval_days!r}")
        ease = state.ease_factor
        if isinstance(ease, bool) or not isinstance(ease, Real) or not math.isfinite(ease):
            errors.append(f"ease_factor: must be a finite number, got {ease!r}")
        elif ease < params.min_ease_factor:
            errors.append(f"ease_factor: must be at least {params.min_ease_factor}, got {ease!r}")

        if errors:
            raise ValidationError("invalid prior review state", errors)
        return state

    @staticmethod
    def update_ease_factor(ease_factor: float, quality: int, params: SchedulerParams = DEFAULT_PARAMS) -> float:
        """EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored, no ceiling"""
        miss = MAX_QUALITY - quality
        new_ef = ease_factor + (0.1 - miss * (0.08 + miss * 0.02))
        return max(params.min_ease_factor, new_ef)

    @staticmethod
    def schedule_review(
        state: ReviewState,
        quality: int,
        reference_time: datetime = None,
        params: SchedulerParams = DEFAULT_PARAMS
    ) -> ScheduledReview:
        """
        Calculate the next review of a concept from its prior state.

        Args:
            state: Prior repetitions, ease factor and interval
            quality: Recall quality (0-5). 0=total blackout, 5=perfect
            reference_time: Moment of the review (defaults to now, UTC)
            params: Scheduler constants

        Returns:
            ScheduledReview with the new state and next_review_at

        Raises:
            ValidationError: quality or state out of range, or a next review
                past the supported date range
        """
        SM2Algorithm.validate_quality(quality)
        SM2Algorithm.validate_state(state, params)

        new_ef = SM2Algorithm.update_ease_factor(state.ease_factor, quality, params)

        if quality < PASSING_QUALITY:
            # Failed recall: relearn tomorrow
            new_repetitions = 0
            new_interval = params.first_interval_days
        else:
            new_repetitions = state.repetitions + 1

            if new_repetitions == 1:
                new_interval = params.first_interval_days
            elif new_repetitions == 2:
                new_interval = params.second_interval_days
            else:
                grown = state.interval_days * new_ef
                if not math.isfinite(grown) or grown > MAX_INTERVAL_DAYS:
                    raise ValidationError(
                        "next interval is too large to schedule",
                        [f"interval_days: {state.interval_days} x {new_ef!r} exceeds {MAX_INTERVAL_DAYS} days"],
                    )
                new_interval = max(1, round_half_up(grown))

        base_time = reference_time if reference_time is not None else datetime.now(timezone.utc)
        try:
            next_review_at = base_time + timedelta(days=new_interval)
        except OverflowError as e:
            raise ValidationError(
                "next review date is out of range",
                [f"interval_days: {new_interval} days after {base_time.date()} is past {datetime.max.year}"],
            ) from e

        return ScheduledReview(
            repetitions=new_repetitions,
            ease_factor=new_ef,
            interval_days=new_interval,
            next_review_at=next_review_at,
        )

    @staticmethod
    def initial_state(params: SchedulerParams = DEFAULT_PARAMS) -> ReviewState:
        """State of a concept that has never been reviewed"""
        return ReviewState(repetitions=0, ease_factor=params.initial_ease_factor, interval_days=0)

    @staticmethod
    def is_due_for_review(next_review_at: datetime, now: datetime) -> bool:
        """Check if a concept is due for review"""
        return now >= next_review_at

    @staticmethod
    def get_days_overdue(next_review_at: datetime, now: datetime) -> int:
        """Calculate how many whole days overdue a review is"""
        if now < next_review_at:
            return 0
        return (now - next_review_at).days

    @staticmethod
    def get_days_until_review(next_review_at: datetime, now: datetime) -> int:
        """Days left before a review is due, rounded up; 0 once due"""
        if now >= next_review_at:
            return 0
        remaining = (next_review_at - now).total_seconds() / 86400
        return int(math.ceil(remaining))


schedule_review = SM2Algorithm.schedule_review
