"""Mastery estimate and quality scoring derived from review history."""

from spaced_review.sm2 import DEFAULT_PARAMS, SchedulerParams, round_half_up

MASTERED_THRESHOLD = 80
LEARNING_THRESHOLD = 50

# Repetitions at which the repetition component saturates
FULL_REPETITIONS = 10


def calculate_mastery(
    average_quality: float,
    repetitions: int,
    ease_factor: float,
    params: SchedulerParams = DEFAULT_PARAMS
) -> int:
    """
    Estimate mastery of a concept on a 0-100 scale.

    Weighted blend of average recall quality (50%), consecutive successful
    repetitions (30%) and ease factor relative to its starting value (20%).
    """
    quality_score = (average_quality / 5) * 100
    repetition_score = min(100.0, (repetitions / FULL_REPETITIONS) * 100)

    ease_span = params.initial_ease_factor - params.min_ease_factor
    ease_score = min(100.0, ((ease_factor - params.min_ease_factor) / ease_span) * 100)

    mastery = quality_score * 0.5 + repetition_score * 0.3 + ease_score * 0.2
    return min(100, max(0, round_half_up(mastery)))


def mastery_band(score: int) -> str:
    """Bucket a mastery score into mastered / learning / new"""
    if score >= MASTERED_THRESHOLD:
        return "mastered"
    if score >= LEARNING_THRESHOLD:
        return "learning"
    return "new"


def quality_from_performance(
    correct: bool,
    confidence: float,
    time_spent: float,
    expected_time: float
) -> int:
    """
    Convert a measured answer into a 0-5 quality score.

    Args:
        correct: Whether the answer was right
        confidence: Learner confidence, 0.0-1.0
        time_spent: Seconds taken to answer
        expected_time: Seconds a fluent learner would take

    Returns:
        0-2 for wrong answers (closer misses score higher), 3-5 for right ones
    """
    if not correct:
        if confidence > 0.5:
            return 2
        if confidence > 0.2:
            return 1
        return 0

    time_ratio = time_spent / expected_time if expected_time > 0 else 1.0

    if confidence >= 0.9 and time_ratio <= 0.7:
        return 5
    if confidence >= 0.8 and time_ratio <= 1.0:
        return 4
    return 3
