from datetime import timedelta

import pytest

from assessment.core.errors import (
    AlreadyCompleted,
    AlreadyInProgress,
    InvalidAnswer,
    NotYetCompleted,
    RecordNotFound,
    StateConflict,
    TimeExpired,
)
from assessment.schemas.assessment import AnswerSubmission, AttemptStatus

from conftest import api_error, status_error

GOOD_GRADE = '{"score": 0.8, "feedback": "Covers cycle detection correctly."}'
WEAK_GRADE = '{"score": 0.3, "feedback": "Mentions reference counting only."}'


def submissions(mc_1=True, mc_2=False, open_text="The cyclic collector finds unreachable groups."):
    return [
        AnswerSubmission("q_mc_1", "yield", is_correct=mc_1),
        AnswerSubmission("q_mc_2", "tuple", is_correct=mc_2),
        AnswerSubmission("q_open", open_text),
    ]


def stored(service, attempt_id):
    return service.attempt_machine.attempts.get(attempt_id)


# =============================================================================
# START
# =============================================================================

def test_start_creates_in_progress_attempt(make_service, clock):
    service, _, _ = make_service()
    attempt = service.start_attempt("applicant_7", "test_python_01")

    assert attempt.status is AttemptStatus.IN_PROGRESS
    assert attempt.started_at == clock.now
    assert attempt.completed_at is None
    assert service.attempt_machine.current_status("applicant_7", "test_python_01") is AttemptStatus.IN_PROGRESS
    assert service.attempt_machine.current_status("applicant_8", "test_python_01") is AttemptStatus.NOT_STARTED


def test_second_start_is_rejected(make_service):
    service, _, _ = make_service()
    first = service.start_attempt("applicant_7", "test_python_01")

    with pytest.raises(AlreadyInProgress) as exc_info:
        service.start_attempt("applicant_7", "test_python_01")
    assert exc_info.value.details["attempt_id"] == first.attempt_id
    assert exc_info.value.http_status == 409


def test_unknown_test(make_service):
    service, _, _ = make_service()
    with pytest.raises(RecordNotFound):
        service.start_attempt("applicant_7", "missing")


def test_start_after_deadline_expires_stale_attempt(make_service, clock):
    service, _, _ = make_service()
    stale = service.start_attempt("applicant_7", "test_python_01")
    clock.advance(minutes=45)

    fresh = service.start_attempt("applicant_7", "test_python_01")

    old = stored(service, stale.attempt_id)
    assert fresh.attempt_id != stale.attempt_id
    assert old.status is AttemptStatus.EXPIRED
    assert old.score == 0.0
    assert old.completed_at == stale.started_at + timedelta(minutes=30)


# =============================================================================
# SUBMIT
# =============================================================================

def test_submit_scores_and_completes(make_service, clock):
    service, sdk, passed = make_service(GOOD_GRADE)
    attempt = service.start_attempt("applicant_7", "test_python_01")
    clock.advance(minutes=12)

    result = service.submit_attempt(attempt.attempt_id, submissions())

    # 10 + 0 + 10 * 0.8 = 18 of 30
    assert result.score == pytest.approx(60.0)
    assert result.status is AttemptStatus.COMPLETED
    assert result.completed_at == clock.now
    assert result.answers["q_open"].ai_score == pytest.approx(0.8)
    assert result.answers["q_open"].feedback == "Covers cycle detection correctly."
    assert result.answers["q_mc_1"].ai_score is None
    assert len(sdk.calls) == 1
    assert passed == [result]
    assert stored(service, attempt.attempt_id).score == pytest.approx(60.0)


def test_failing_score_does_not_advance(make_service):
    service, _, passed = make_service(WEAK_GRADE)
    attempt = service.start_attempt("applicant_7", "test_python_01")

    result = service.submit_attempt(attempt.attempt_id, submissions())

    assert result.score == pytest.approx(43.333333, rel=1e-5)
    assert passed == []


def test_submit_twice(make_service):
    service, _, _ = make_service(GOOD_GRADE)
    attempt = service.start_attempt("applicant_7", "test_python_01")
    service.submit_attempt(attempt.attempt_id, submissions())

    with pytest.raises(AlreadyCompleted):
        service.submit_attempt(attempt.attempt_id, submissions())


def test_submit_at_the_deadline_is_accepted(make_service, clock):
    service, _, _ = make_service(GOOD_GRADE)
    attempt = service.start_attempt("applicant_7", "test_python_01")
    clock.advance(minutes=30)

    assert service.submit_attempt(attempt.attempt_id, submissions()).status is AttemptStatus.COMPLETED


def test_submit_after_deadline_expires(make_service, clock):
    service, sdk, passed = make_service(GOOD_GRADE)
    attempt = service.start_attempt("applicant_7", "test_python_01")
    clock.advance(minutes=30, seconds=1)

    with pytest.raises(TimeExpired) as exc_info:
        service.submit_attempt(attempt.attempt_id, submissions(mc_2=True))

    expired = exc_info.value.attempt
    assert expired.status is AttemptStatus.EXPIRED
    assert expired.score == 0.0
    assert expired.completed_at == attempt.started_at + timedelta(minutes=30)
    assert stored(service, attempt.attempt_id).status is AttemptStatus.EXPIRED
    assert sdk.calls == []
    assert passed == []

    with pytest.raises(AlreadyCompleted):
        service.submit_attempt(attempt.attempt_id, submissions())


def test_answer_for_foreign_question(make_service):
    service, sdk, _ = make_service(GOOD_GRADE)
    attempt = service.start_attempt("applicant_7", "test_python_01")

    with pytest.raises(InvalidAnswer):
        service.submit_attempt(
            attempt.attempt_id,
            submissions() + [AnswerSubmission("q_other_test", "42", is_correct=True)],
        )

    assert sdk.calls == []
    assert stored(service, attempt.attempt_id).status is AttemptStatus.IN_PROGRESS


def test_grading_outage_uses_neutral_score(make_service):
    service, sdk, _ = make_service(status_error(503))
    attempt = service.start_attempt("applicant_7", "test_python_01")

    result = service.submit_attempt(attempt.attempt_id, submissions(mc_2=True))

    open_answer = result.answers["q_open"]
    assert open_answer.ai_score == 0.5
    assert open_answer.feedback == "Pending manual review"
    # 10 + 10 + 5 = 25 of 30
    assert result.score == pytest.approx(83.333333, rel=1e-5)
    assert len(sdk.calls) == 3


def test_unexpected_sdk_error_degrades_one_answer(make_service):
    service, sdk, _ = make_service(api_error())
    attempt = service.start_attempt("applicant_7", "test_python_01")

    result = service.submit_attempt(attempt.attempt_id, submissions(mc_2=True))

    assert result.status is AttemptStatus.COMPLETED
    assert result.answers["q_open"].ai_score == 0.5
    assert result.answers["q_open"].feedback == "Pending manual review"
    assert len(sdk.calls) == 1


def test_slow_grading_never_completes_after_deadline(make_service, clock):
    def slow_grade(_request):
        clock.advance(minutes=10)
        return GOOD_GRADE

    service, _, _ = make_service(slow_grade)
    attempt = service.start_attempt("applicant_7", "test_python_01")
    clock.advance(minutes=25)

    result = service.submit_attempt(attempt.attempt_id, submissions())

    assert result.status is AttemptStatus.COMPLETED
    assert result.score == pytest.approx(60.0)
    assert result.completed_at == attempt.started_at + timedelta(minutes=30)


def test_empty_open_answer_scores_zero_without_grading(make_service):
    service, sdk, _ = make_service(GOOD_GRADE)
    attempt = service.start_attempt("applicant_7", "test_python_01")

    result = service.submit_attempt(attempt.attempt_id, submissions(mc_2=True, open_text="   "))

    assert result.answers["q_open"].ai_score == 0.0
    assert result.score == pytest.approx(66.666667, rel=1e-5)
    assert sdk.calls == []


def test_unanswered_questions_earn_nothing(make_service):
    service, _, _ = make_service()
    attempt = service.start_attempt("applicant_7", "test_python_01")

    result = service.submit_attempt(
        attempt.attempt_id, [AnswerSubmission("q_mc_1", "yield", is_correct=True)]
    )

    assert result.score == pytest.approx(33.333333, rel=1e-5)
    assert set(result.answers) == {"q_mc_1"}


# =============================================================================
# REVIEW
# =============================================================================

def test_review_requires_completion(make_service):
    service, _, _ = make_service()
    attempt = service.start_attempt("applicant_7", "test_python_01")

    with pytest.raises(NotYetCompleted):
        service.review_attempt(attempt.attempt_id, {})


def test_review_of_expired_attempt(make_service, clock):
    service, _, _ = make_service()
    attempt = service.start_attempt("applicant_7", "test_python_01")
    clock.advance(hours=1)
    with pytest.raises(TimeExpired):
        service.submit_attempt(attempt.attempt_id, submissions())

    with pytest.raises(StateConflict):
        service.review_attempt(attempt.attempt_id, {})


def test_review_unknown_answer(make_service):
    service, _, _ = make_service(WEAK_GRADE)
    attempt = service.start_attempt("applicant_7", "test_python_01")
    service.submit_attempt(attempt.attempt_id, submissions())

    with pytest.raises(InvalidAnswer):
        service.review_attempt(attempt.attempt_id, {"no-such-answer": True})


def test_review_recomputes_and_advances_once(make_service):
    service, _, passed = make_service(WEAK_GRADE)
    attempt = service.start_attempt("applicant_7", "test_python_01")
    submitted = service.submit_attempt(attempt.attempt_id, submissions())
    assert passed == []

    mc_2 = submitted.answers["q_mc_2"].answer_id
    reviewed = service.review_attempt(attempt.attempt_id, {mc_2: True})

    # 10 + 10 + 3 = 23 of 30
    assert reviewed.score == pytest.approx(76.666667, rel=1e-5)
    assert reviewed.answers["q_mc_2"].overridden is True
    assert len(passed) == 1

    open_id = submitted.answers["q_open"].answer_id
    again = service.review_attempt(attempt.attempt_id, {open_id: True})
    assert again.score == pytest.approx(100.0)
    assert len(passed) == 1


def test_review_can_lower_the_score(make_service):
    service, _, _ = make_service(GOOD_GRADE)
    attempt = service.start_attempt("applicant_7", "test_python_01")
    submitted = service.submit_attempt(attempt.attempt_id, submissions())

    open_id = submitted.answers["q_open"].answer_id
    reviewed = service.review_attempt(attempt.attempt_id, {open_id: False})

    assert reviewed.score == pytest.approx(33.333333, rel=1e-5)
    assert stored(service, attempt.attempt_id).answers["q_open"].is_correct is False
