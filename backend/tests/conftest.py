from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import httpx
import pytest
from groq import APIConnectionError, APIError, APIStatusError

from assessment.attempts import InMemoryAssessmentCatalog, InMemoryAttemptRepository
from assessment.core.cache import ResponseCache
from assessment.core.config import Settings
from assessment.core.llm import GenerativeClient
from assessment.schemas.assessment import AssessmentTest, Question, QuestionKind
from assessment.service import AssessmentService

GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"


def status_error(code: int) -> APIStatusError:
    request = httpx.Request("POST", GROQ_URL)
    return APIStatusError(
        f"HTTP {code}", response=httpx.Response(code, request=request), body=None
    )


def api_error(message: str = "Malformed completion payload") -> APIError:
    return APIError(message, request=httpx.Request("POST", GROQ_URL), body=None)


def connection_error() -> APIConnectionError:
    return APIConnectionError(request=httpx.Request("POST", GROQ_URL))


class FakeCompletions:
    """
    Scripted stand-in for ``client.chat.completions``.

    Replies are consumed in order; the last one repeats. A reply may be a
    string, an exception to raise, or a callable taking the request kwargs.
    """

    def __init__(self, replies):
        self.replies = list(replies) or [""]
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if callable(reply) and not isinstance(reply, Exception):
            reply = reply(kwargs)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=reply))]
        )


class FakeGroq:
    def __init__(self, *replies):
        self.completions = FakeCompletions(replies)
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self) -> list[dict]:
        return self.completions.calls


class Clock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


def build_sample_test(duration_minutes: int = 30, passing_score: float = 60.0) -> AssessmentTest:
    """Two multiple choice questions and one open-ended question, 10 points each."""
    return AssessmentTest(
        test_id="test_python_01",
        title="Python fundamentals",
        duration_minutes=duration_minutes,
        passing_score=passing_score,
        questions=[
            Question(
                question_id="q_mc_1",
                text="Which keyword defines a generator function's yield point?",
                canonical_answer="yield",
                kind=QuestionKind.MULTIPLE_CHOICE,
                point_value=10.0,
            ),
            Question(
                question_id="q_mc_2",
                text="Select the immutable built-in sequence type.",
                canonical_answer="tuple",
                kind=QuestionKind.MULTIPLE_CHOICE,
                point_value=10.0,
            ),
            Question(
                question_id="q_open",
                text="Explain how Python's garbage collector handles reference cycles.",
                canonical_answer="A cyclic collector finds unreachable groups of objects.",
                kind=QuestionKind.OPEN_ENDED,
                point_value=10.0,
            ),
        ],
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        GROQ_API_KEY="test-key",
        LLM_RETRY_DELAY_SECONDS=0,
    )


@pytest.fixture
def make_client(settings):
    def _make(*replies):
        sdk = FakeGroq(*replies)
        return GenerativeClient(sdk_client=sdk, settings=settings, retry_delay=0), sdk

    return _make


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def sample_test() -> AssessmentTest:
    return build_sample_test()


@pytest.fixture
def make_service(settings, clock, sample_test):
    """Build an AssessmentService over a scripted upstream; returns (service, sdk, passed)."""

    def _make(*replies):
        sdk = FakeGroq(*replies)
        client = GenerativeClient(sdk_client=sdk, settings=settings, retry_delay=0)
        passed = []
        service = AssessmentService(
            attempts=InMemoryAttemptRepository(),
            catalog=InMemoryAssessmentCatalog([sample_test]),
            client=client,
            cache=ResponseCache(ttl_seconds=3600),
            settings=settings,
            clock=clock,
            on_passed=passed.append,
        )
        return service, sdk, passed

    return _make
