"""JSON request/response entry points.

Bodies are validated into tagged pydantic structs before anything is
computed; schema problems surface as ``spaced_review.errors.ValidationError``.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

import pydantic
from pydantic import TypeAdapter
from sqlalchemy.orm import Session

from spaced_review.crud import record_review, schedule_initial_review
from spaced_review.errors import ValidationError
from spaced_review.schemas import (
    RecordReviewCommand,
    ReviewCommand,
    ScheduleRequest,
    ScheduleResponse,
)
from spaced_review.sm2 import DEFAULT_PARAMS, ReviewState, SchedulerParams, SM2Algorithm

logger = logging.getLogger(__name__)

Payload = Union[str, bytes, Dict[str, Any]]

_review_command_adapter = TypeAdapter(ReviewCommand)


def _load(payload: Payload) -> Dict[str, Any]:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValidationError(f"body is not valid JSON: {e.msg}", [f"body: {e.msg}"]) from e
        except UnicodeDecodeError as e:
            raise ValidationError(f"body is not valid UTF-8: {e.reason}", [f"body: {e.reason}"]) from e
    if not isinstance(payload, dict):
        raise ValidationError("body must be a JSON object", ["body: expected an object"])
    return payload


def _field_errors(exc: pydantic.ValidationError):
    return [
        f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
        for err in exc.errors()
    ]


def _reject(exc: pydantic.ValidationError, what: str) -> ValidationError:
    errors = _field_errors(exc)
    logger.warning("Rejected %s: %s", what, "; ".join(errors))
    return ValidationError(f"invalid {what}", errors)


def parse_schedule_request(payload: Payload) -> ScheduleRequest:
    """Validate a stateless scheduling body"""
    try:
        return ScheduleRequest.model_validate(_load(payload))
    except pydantic.ValidationError as e:
        raise _reject(e, "schedule request") from e


def schedule(
    payload: Payload,
    reference_time: Optional[datetime] = None,
    params: SchedulerParams = DEFAULT_PARAMS
) -> Dict[str, Any]:
    """
    Stateless scheduling call.

    Input:  {"quality": int, "priorState": {"repetitions", "easeFactor", "intervalDays"}}
    Output: {"repetitions", "easeFactor", "intervalDays", "nextReviewAt"}
    """
    request = parse_schedule_request(payload)
    prior = request.prior_state
    scheduled = SM2Algorithm.schedule_review(
        ReviewState(
            repetitions=prior.repetitions,
            ease_factor=prior.ease_factor,
            interval_days=prior.interval_days
        ),
        request.quality,
        reference_time=reference_time,
        params=params
    )
    response = ScheduleResponse(
        repetitions=scheduled.repetitions,
        ease_factor=scheduled.ease_factor,
        interval_days=scheduled.interval_days,
        next_review_at=scheduled.next_review_at
    )
    return response.model_dump(mode="json", by_alias=True)


def parse_review_command(payload: Payload):
    """Validate a review command; bodies without an action record a review"""
    body = dict(_load(payload))
    body.setdefault("action", RecordReviewCommand.model_fields["action"].default)
    try:
        return _review_command_adapter.validate_python(body)
    except pydantic.ValidationError as e:
        raise _reject(e, "review command") from e


def handle_review_command(
    db: Session,
    payload: Payload,
    now: Optional[datetime] = None,
    params: Optional[SchedulerParams] = None
) -> Dict[str, Any]:
    """Dispatch a review command to the matching service and serialise the result"""
    command = parse_review_command(payload)

    if isinstance(command, RecordReviewCommand):
        result = record_review(
            db,
            command.student_id,
            command.concept_id,
            command.quality,
            subject_id=command.subject_id,
            session_id=command.session_id,
            now=now,
            params=params
        )
    else:
        result = schedule_initial_review(
            db,
            command.student_id,
            command.concept_id,
            subject_id=command.subject_id,
            initial_quality=command.quality,
            now=now,
            params=params
        )

    return {"success": True, **result.model_dump(mode="json", by_alias=True)}
