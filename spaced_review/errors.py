"""Exceptions raised by the scheduler and review services."""

from typing import List, Optional


class SpacedReviewError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(SpacedReviewError, ValueError):
    """Input rejected before any computation or write happened.

    ``errors`` holds one human readable message per offending field.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class NotFoundError(SpacedReviewError, LookupError):
    """A student or review record does not exist."""
