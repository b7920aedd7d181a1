"""
Question Generator Agent

Responsibility: Generate assessment questions on a topic using the LLM.
Single purpose: Return exactly the requested number of typed Question records.

The generated text is parsed by the ResultExtractor cascade; anything it cannot
recover is backfilled with labeled placeholders so the count always holds.
This agent does NOT grade answers or attach questions to a test.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pydantic
from pydantic import BaseModel, Field, field_validator

from .base import AgentResponse, GenerativeAgent
from ..core.errors import AssessmentError, ValidationError
from ..schemas.assessment import (
    Difficulty,
    ExtractedQuestionSet,
    Question,
    QuestionCandidate,
    QuestionKind,
)
from ..schemas.tasks import GenerationTask, TaskKind
from ..utils.extractor import infer_question_kind


class QuestionGenerationRequest(BaseModel):
    """Input for question generation."""
    topic: str = Field(..., min_length=1, max_length=500)
    count: int = Field(..., ge=1)
    difficulty: Difficulty = Difficulty.MEDIUM
    question_kind: Optional[QuestionKind] = None  # None = mixed

    @field_validator("topic")
    @classmethod
    def topic_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Topic is required for AI question generation")
        return value

    @field_validator("difficulty", mode="before")
    @classmethod
    def lenient_difficulty(cls, value: Any) -> Difficulty:
        return Difficulty.parse(value)

    @field_validator("question_kind", mode="before")
    @classmethod
    def mixed_means_none(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and value.strip().lower() in ("", "mixed")):
            return None
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @classmethod
    def create(cls, **values: Any) -> "QuestionGenerationRequest":
        """Build a request, raising the core ValidationError on bad input."""
        try:
            return cls(**values)
        except pydantic.ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ValidationError(f"Invalid question generation request: {problems}") from e

    def to_task(self) -> GenerationTask:
        return GenerationTask.of(
            TaskKind.QUESTION_GEN,
            topic=self.topic,
            count=self.count,
            difficulty=self.difficulty.value,
            question_kind=self.question_kind.label if self.question_kind else "mixed",
        )


@dataclass
class GeneratedQuestions:
    """Output from question generation."""
    topic: str
    questions: List[Question] = field(default_factory=list)
    placeholder_count: int = 0
    extraction: Optional[ExtractedQuestionSet] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "questions": [q.to_dict() for q in self.questions],
            "placeholder_count": self.placeholder_count,
            "rejected_candidates": len(self.extraction.rejected) if self.extraction else 0,
        }


class QuestionGeneratorAgent(GenerativeAgent[QuestionGenerationRequest, GeneratedQuestions]):
    """
    Generates questions for a topic.

    Input: QuestionGenerationRequest (topic, count, difficulty, kind)
    Output: GeneratedQuestions with exactly ``count`` questions

    Does NOT:
    - Persist questions
    - Grade answers
    """

    name = "question_generator"
    description = "Generates typed assessment questions for a topic via the LLM"

    def run(self, input_data: QuestionGenerationRequest) -> AgentResponse[GeneratedQuestions]:
        self._begin_trace()
        settings = self.settings

        if input_data.count > settings.MAX_QUESTIONS_PER_REQUEST:
            return self._failure(
                ValidationError(
                    f"Number of questions must be between 1 and "
                    f"{settings.MAX_QUESTIONS_PER_REQUEST}"
                ),
                explanation="Requested question count is out of range",
            )

        self.log_reasoning(
            f"Generating {input_data.count} {input_data.difficulty.value} questions "
            f"about {input_data.topic!r}"
        )
        try:
            raw_text = self._generate(input_data.to_task())
        except AssessmentError as e:
            return self._from_error(e, "Question generation")

        extraction = self.extractor.extract_question_set(
            raw_text, input_data.count, topic=input_data.topic
        )
        accepted = extraction.accepted[: input_data.count]
        questions = [
            self._to_question(c, input_data, settings.DEFAULT_QUESTION_POINTS) for c in accepted
        ]

        placeholders = extraction.placeholder_count
        self.log_reasoning(
            f"Accepted {len(accepted) - placeholders} generated questions, "
            f"rejected {len(extraction.rejected)}, backfilled {placeholders}"
        )

        output = GeneratedQuestions(
            topic=input_data.topic,
            questions=questions,
            placeholder_count=placeholders,
            extraction=extraction,
        )
        real_share = (len(questions) - placeholders) / len(questions)
        confidence = round(0.85 * real_share, 4)
        explanation = (
            f"Generated {len(questions)} questions about {input_data.topic}"
            + (f", {placeholders} of them placeholders needing review." if placeholders else ".")
        )
        return self._success(
            output,
            confidence=confidence,
            explanation=explanation,
            metadata={"placeholders": placeholders, "rejected": len(extraction.rejected)},
        )

    @staticmethod
    def _to_question(
        candidate: QuestionCandidate,
        request: QuestionGenerationRequest,
        points: float,
    ) -> Question:
        kind = request.question_kind or infer_question_kind(candidate.question)
        return Question(
            text=candidate.question,
            canonical_answer=candidate.answer,
            explanation=candidate.explanation,
            kind=kind,
            point_value=points,
            ai_generated=True,
        )
