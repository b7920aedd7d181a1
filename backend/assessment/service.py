"""
AssessmentService: the entry points the CRUD layer calls.

Wires one shared ResponseCache and GenerativeClient into every agent and the
attempt state machine. Failed agent responses are turned back into typed
errors here (via ``AgentResponse.unwrap``) so callers can map them to HTTP
statuses.
"""

from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence

from .agents.answer_grader import AnswerGraderAgent, GradeRequest
from .agents.cv_scorer import CvScoreRequest, CvScorerAgent
from .agents.question_generator import QuestionGenerationRequest, QuestionGeneratorAgent
from .agents.text_analysis import (
    PlagiarismAgent,
    PlagiarismRequest,
    SentimentAgent,
    SentimentRequest,
    SourceCheck,
    check_against_sources,
)
from .attempts import AssessmentCatalog, AttemptRepository, AttemptStateMachine, utc_now
from .core.cache import ResponseCache
from .core.config import Settings, get_settings
from .core.llm import GenerativeClient
from .core.prompts import PromptBuilder
from .schemas.assessment import (
    AnswerSubmission,
    Attempt,
    CvScore,
    GradeResult,
    Question,
    SentimentResult,
    SimilarityResult,
)
from .utils.extractor import ResultExtractor


class AssessmentService:
    def __init__(
        self,
        attempts: AttemptRepository,
        catalog: AssessmentCatalog,
        client: Optional[GenerativeClient] = None,
        cache: Optional[ResponseCache] = None,
        settings: Optional[Settings] = None,
        clock: Callable = utc_now,
        on_passed: Optional[Callable[[Attempt], None]] = None,
    ):
        self.settings = settings or get_settings()
        if cache is None:
            cache = ResponseCache(ttl_seconds=self.settings.cache_ttl_seconds)
        self.cache = cache
        self.client = client or GenerativeClient(settings=self.settings)

        shared = dict(
            client=self.client,
            cache=self.cache,
            builder=PromptBuilder(language=self.settings.RESPONSE_LANGUAGE),
            extractor=ResultExtractor(),
            settings=self.settings,
        )
        self.question_generator = QuestionGeneratorAgent(**shared)
        self.answer_grader = AnswerGraderAgent(**shared)
        self.cv_scorer = CvScorerAgent(**shared)
        self.sentiment = SentimentAgent(**shared)
        self.plagiarism = PlagiarismAgent(**shared)

        self.attempt_machine = AttemptStateMachine(
            attempts=attempts,
            catalog=catalog,
            grader=self.answer_grader,
            clock=clock,
            on_passed=on_passed,
        )

    # -------------------------------------------------------------------------
    # Generation & grading
    # -------------------------------------------------------------------------

    def generate_questions(
        self,
        topic: str,
        count: int,
        difficulty: Any = "medium",
        question_kind: Any = None,
    ) -> List[Question]:
        request = QuestionGenerationRequest.create(
            topic=topic, count=count, difficulty=difficulty, question_kind=question_kind
        )
        return self.question_generator.run(request).unwrap().questions

    def grade_open_ended_answer(
        self, question: str, submitted_text: str, canonical_answer: Optional[str] = None
    ) -> GradeResult:
        return self.answer_grader.run(
            GradeRequest(question, submitted_text, canonical_answer)
        ).unwrap()

    def score_cv(self, cv_text: str, job_description: str) -> CvScore:
        return self.cv_scorer.run(CvScoreRequest(cv_text, job_description)).unwrap()

    def analyze_sentiment(self, text: str) -> SentimentResult:
        return self.sentiment.run(SentimentRequest(text)).unwrap()

    def check_plagiarism(self, original_text: str, comparison_text: str) -> SimilarityResult:
        return self.plagiarism.run(PlagiarismRequest(original_text, comparison_text)).unwrap()

    def check_against_sources(self, answer: str, sources: Sequence[str]) -> SourceCheck:
        return check_against_sources(answer, sources)

    def clear_cache(self) -> None:
        self.cache.clear()

    # -------------------------------------------------------------------------
    # Attempt lifecycle
    # -------------------------------------------------------------------------

    def start_attempt(self, applicant_id: str, test_id: str) -> Attempt:
        return self.attempt_machine.start(applicant_id, test_id)

    def submit_attempt(self, attempt_id: str, answers: Iterable[AnswerSubmission]) -> Attempt:
        return self.attempt_machine.submit(attempt_id, answers)

    def review_attempt(self, attempt_id: str, corrections: Mapping[str, bool]) -> Attempt:
        return self.attempt_machine.review(attempt_id, corrections)
