"""
Error taxonomy for the assessment core.

Every error carries a user-facing message and an ``http_status`` hint so the
surrounding CRUD layer can render it without inspecting the type hierarchy:

    ValidationError        400  bad input, rejected before any upstream call
    InvalidTask            400  a prompt was requested with missing inputs
    InvalidAnswer          400  an answer references a question outside the test
    RecordNotFound         404  unknown attempt or test id
    StateConflict          409  attempt lifecycle violation
    PermanentUpstreamError 502  upstream refused the request, not retried
    TransientUpstreamError 503  upstream temporarily unavailable
    ProcessingFailed       503  transient failures outlasted the retry budget

``MalformedResponse`` is raised only inside the extraction layer and is always
absorbed into a default value before it reaches scoring callers.
"""

from typing import Any, Optional


class AssessmentError(Exception):
    """Base class for all errors raised by the assessment core."""

    http_status: int = 500

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details

    def to_dict(self):
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status": self.http_status,
            "details": self.details,
        }


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationError(AssessmentError):
    http_status = 400


class InvalidTask(ValidationError):
    """A generation task is missing one of its required inputs."""


class InvalidAnswer(ValidationError):
    """A submitted answer references a question that is not part of the test."""


class RecordNotFound(AssessmentError):
    http_status = 404


# =============================================================================
# UPSTREAM
# =============================================================================

class UpstreamError(AssessmentError):
    http_status = 500


class TransientUpstreamError(UpstreamError):
    """Upstream temporarily unavailable (timeouts, 429, 5xx gateway errors)."""

    http_status = 503


class PermanentUpstreamError(UpstreamError):
    """Upstream rejected the request; retrying will not help."""

    http_status = 502


class ProcessingFailed(TransientUpstreamError):
    """Raised once the retry budget is exhausted."""

    DEFAULT_MESSAGE = (
        "The AI service is temporarily unavailable. Please try again later."
    )

    def __init__(self, message: str = "", attempts: int = 0, **details: Any):
        super().__init__(message or self.DEFAULT_MESSAGE, attempts=attempts, **details)
        self.attempts = attempts


class MalformedResponse(AssessmentError):
    """Generated text could not be interpreted."""

    http_status = 502

    def __init__(self, message: str = "", raw_text: str = ""):
        super().__init__(message, raw_excerpt=raw_text[:200])
        self.raw_text = raw_text


# =============================================================================
# ATTEMPT LIFECYCLE
# =============================================================================

class StateConflict(AssessmentError):
    http_status = 409


class AlreadyInProgress(StateConflict):
    pass


class AlreadyCompleted(StateConflict):
    pass


class NotYetCompleted(StateConflict):
    pass


class TimeExpired(StateConflict):
    """The attempt deadline passed; ``attempt`` holds the persisted zero-score record."""

    def __init__(self, message: str = "", attempt: Optional[Any] = None):
        super().__init__(message or "The time limit for this test has expired")
        self.attempt = attempt
