"""
Attempt lifecycle.

    NotStarted -> InProgress -> Completed
                             -> Expired

Completed and Expired are terminal. At most one InProgress attempt exists per
(applicant, test) pair. Open-ended answers are graded by the AnswerGraderAgent
outside the state lock, so a slow upstream never blocks other attempts.
"""

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Mapping, Optional, Protocol

from .agents.answer_grader import AnswerGraderAgent, GradeRequest
from .core.errors import (
    AlreadyCompleted,
    AlreadyInProgress,
    InvalidAnswer,
    NotYetCompleted,
    RecordNotFound,
    StateConflict,
    TimeExpired,
)
from .scoring import ScoreAggregator
from .schemas.assessment import (
    Answer,
    AnswerSubmission,
    AssessmentTest,
    Attempt,
    AttemptStatus,
)

logger = logging.getLogger(__name__)

NEUTRAL_AI_SCORE = 0.5
PENDING_REVIEW_FEEDBACK = "Pending manual review"


# =============================================================================
# COLLABORATORS
# =============================================================================

class AttemptRepository(Protocol):
    def get(self, attempt_id: str) -> Optional[Attempt]: ...

    def find_in_progress(self, applicant_id: str, test_id: str) -> Optional[Attempt]: ...

    def save(self, attempt: Attempt) -> Attempt: ...


class AssessmentCatalog(Protocol):
    def get_test(self, test_id: str) -> Optional[AssessmentTest]: ...


class InMemoryAttemptRepository:
    """Dictionary-backed repository; stores copies so callers cannot alias records."""

    def __init__(self):
        self._attempts: Dict[str, Attempt] = {}
        self._lock = threading.Lock()

    def get(self, attempt_id: str) -> Optional[Attempt]:
        with self._lock:
            attempt = self._attempts.get(attempt_id)
            return copy.deepcopy(attempt) if attempt else None

    def find_in_progress(self, applicant_id: str, test_id: str) -> Optional[Attempt]:
        with self._lock:
            for attempt in self._attempts.values():
                if (
                    attempt.applicant_id == applicant_id
                    and attempt.test_id == test_id
                    and attempt.completed_at is None
                ):
                    return copy.deepcopy(attempt)
        return None

    def save(self, attempt: Attempt) -> Attempt:
        with self._lock:
            self._attempts[attempt.attempt_id] = copy.deepcopy(attempt)
        return attempt


class InMemoryAssessmentCatalog:
    def __init__(self, tests: Iterable[AssessmentTest] = ()):
        self._tests = {t.test_id: t for t in tests}

    def add(self, test: AssessmentTest) -> None:
        self._tests[test.test_id] = test

    def get_test(self, test_id: str) -> Optional[AssessmentTest]:
        return self._tests.get(test_id)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# STATE MACHINE
# =============================================================================

class AttemptStateMachine:
    """
    Owns start, submit and review for test attempts.

    Args:
        attempts: Attempt storage.
        catalog: Test lookup.
        grader: Grades open-ended answers. Built from settings when omitted.
        clock: Returns the current timezone-aware time.
        on_passed: Called with the attempt whenever a submission, or a review
            that lifts a failing score, reaches the passing score.
    """

    def __init__(
        self,
        attempts: AttemptRepository,
        catalog: AssessmentCatalog,
        grader: Optional[AnswerGraderAgent] = None,
        clock: Callable[[], datetime] = utc_now,
        on_passed: Optional[Callable[[Attempt], None]] = None,
    ):
        self.attempts = attempts
        self.catalog = catalog
        self._grader = grader
        self.clock = clock
        self.on_passed = on_passed
        self._lock = threading.RLock()

    @property
    def grader(self) -> AnswerGraderAgent:
        if self._grader is None:
            self._grader = AnswerGraderAgent()
        return self._grader

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _test(self, test_id: str) -> AssessmentTest:
        test = self.catalog.get_test(test_id)
        if test is None:
            raise RecordNotFound(f"Test not found with id: {test_id}")
        return test

    def _attempt(self, attempt_id: str) -> Attempt:
        attempt = self.attempts.get(attempt_id)
        if attempt is None:
            raise RecordNotFound(f"Attempt not found with id: {attempt_id}")
        return attempt

    def current_status(self, applicant_id: str, test_id: str) -> AttemptStatus:
        if self.attempts.find_in_progress(applicant_id, test_id) is None:
            return AttemptStatus.NOT_STARTED
        return AttemptStatus.IN_PROGRESS

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _expire(self, attempt: Attempt, test: AssessmentTest) -> Attempt:
        attempt.completed_at = attempt.deadline(test.duration)
        attempt.score = 0.0
        attempt.status = AttemptStatus.EXPIRED
        self.attempts.save(attempt)
        logger.warning(
            "Attempt %s expired at %s with score 0",
            attempt.attempt_id, attempt.completed_at.isoformat(),
        )
        return attempt

    def start(self, applicant_id: str, test_id: str) -> Attempt:
        test = self._test(test_id)
        with self._lock:
            now = self.clock()
            existing = self.attempts.find_in_progress(applicant_id, test_id)
            if existing is not None:
                if now > existing.deadline(test.duration):
                    self._expire(existing, test)
                else:
                    raise AlreadyInProgress(
                        f"Applicant {applicant_id} already has test {test_id} in progress",
                        attempt_id=existing.attempt_id,
                    )

            attempt = Attempt(applicant_id=applicant_id, test_id=test_id, started_at=now)
            self.attempts.save(attempt)

        logger.info("Attempt %s started for applicant %s", attempt.attempt_id, applicant_id)
        return attempt

    def submit(self, attempt_id: str, answers: Iterable[AnswerSubmission]) -> Attempt:
        submissions = list(answers)

        with self._lock:
            attempt = self._attempt(attempt_id)
            if attempt.is_completed:
                raise AlreadyCompleted("This test has already been completed")
            test = self._test(attempt.test_id)
            if self.clock() > attempt.deadline(test.duration):
                expired = self._expire(attempt, test)
                raise TimeExpired(attempt=expired)

        for submission in submissions:
            if test.question(submission.question_id) is None:
                raise InvalidAnswer(
                    f"Question {submission.question_id} does not belong to test {test.test_id}",
                    question_id=submission.question_id,
                )

        graded: Dict[str, Answer] = {}
        for submission in submissions:
            graded[submission.question_id] = self._grade(test, submission)

        with self._lock:
            current = self._attempt(attempt_id)
            if current.is_completed:
                raise AlreadyCompleted("This test has already been completed")
            current.answers = graded
            current.score = ScoreAggregator.compute(test.questions, current.answers)
            # Grading may run past the deadline; completion is never recorded after it
            current.completed_at = min(self.clock(), current.deadline(test.duration))
            current.status = AttemptStatus.COMPLETED
            self.attempts.save(current)

        logger.info("Attempt %s completed with score %.2f", attempt_id, current.score)
        if current.score >= test.passing_score:
            self._notify_passed(current)
        return current

    def _grade(self, test: AssessmentTest, submission: AnswerSubmission) -> Answer:
        question = test.question(submission.question_id)
        answer = Answer(
            question_id=submission.question_id,
            submitted_text=submission.submitted_text or "",
        )
        if question.kind.is_deterministic:
            answer.is_correct = bool(submission.is_correct)
            return answer

        response = self.grader.run(
            GradeRequest(
                question=question.text,
                submitted_text=answer.submitted_text,
                canonical_answer=question.canonical_answer,
            )
        )
        if response.is_successful():
            answer.ai_score = response.output.score
            answer.feedback = response.output.feedback
        else:
            logger.warning(
                "Grading failed for question %s, using neutral score: %s",
                question.question_id, response.explanation,
            )
            answer.ai_score = NEUTRAL_AI_SCORE
            answer.feedback = PENDING_REVIEW_FEEDBACK
        return answer

    def review(self, attempt_id: str, corrections: Mapping[str, bool]) -> Attempt:
        """Apply ``answer_id -> is_correct`` overrides and recompute the score."""
        with self._lock:
            attempt = self._attempt(attempt_id)
            if not attempt.is_completed:
                raise NotYetCompleted("Cannot review a test that has not been completed")
            if attempt.status is AttemptStatus.EXPIRED:
                raise StateConflict("Expired attempts cannot be reviewed")
            test = self._test(attempt.test_id)

            for answer_id, is_correct in corrections.items():
                answer = attempt.answer_by_id(answer_id)
                if answer is None:
                    raise InvalidAnswer(
                        f"Answer {answer_id} does not belong to attempt {attempt_id}",
                        answer_id=answer_id,
                    )
                answer.is_correct = bool(is_correct)
                answer.overridden = True

            previous = attempt.score or 0.0
            attempt.score = ScoreAggregator.compute(test.questions, attempt.answers)
            self.attempts.save(attempt)

        logger.info(
            "Attempt %s reviewed: %d corrections, score %.2f -> %.2f",
            attempt_id, len(corrections), previous, attempt.score,
        )
        if previous < test.passing_score <= attempt.score:
            self._notify_passed(attempt)
        return attempt

    def _notify_passed(self, attempt: Attempt) -> None:
        if self.on_passed is None:
            return
        logger.info("Attempt %s passed; advancing applicant %s", attempt.attempt_id, attempt.applicant_id)
        self.on_passed(attempt)
