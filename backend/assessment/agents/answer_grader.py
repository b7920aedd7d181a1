"""
Answer Grader Agent

Responsibility: Score a candidate's open-ended answer with the LLM.
Single purpose: Produce a score in [0, 1] plus feedback for one answer.

Unparseable grading text degrades to the neutral 0.5 instead of failing;
only upstream outages and bad input are reported as failures.
"""

from dataclasses import dataclass
from typing import Optional

from .base import AgentResponse, GenerativeAgent
from ..core.errors import AssessmentError, InvalidTask
from ..schemas.assessment import GradeResult
from ..schemas.tasks import GenerationTask, TaskKind
from ..utils.extractor import extract_grade


@dataclass(frozen=True)
class GradeRequest:
    question: str
    submitted_text: str
    canonical_answer: Optional[str] = None

    def to_task(self) -> GenerationTask:
        return GenerationTask.of(
            TaskKind.ANSWER_GRADE,
            question=self.question,
            submitted_text=self.submitted_text,
            canonical_answer=self.canonical_answer,
        )


class AnswerGraderAgent(GenerativeAgent[GradeRequest, GradeResult]):
    """
    Grades open-ended answers.

    An empty submission scores 0 without calling the LLM.
    """

    name = "answer_grader"
    description = "Scores open-ended answers against a reference answer via the LLM"

    def run(self, input_data: GradeRequest) -> AgentResponse[GradeResult]:
        self._begin_trace()

        if not (input_data.question or "").strip():
            return self._failure(
                InvalidTask("A question is required to grade an answer"),
                explanation="Cannot grade an answer without its question",
            )

        if not (input_data.submitted_text or "").strip():
            self.log_reasoning("Empty submission, scored 0 without grading")
            return self._success(
                GradeResult(score=0.0, feedback="No answer was submitted."),
                confidence=1.0,
                explanation="Empty answer receives no credit",
            )

        try:
            raw_text = self._generate(input_data.to_task())
        except AssessmentError as e:
            return self._from_error(e, "Answer grading")

        result = extract_grade(raw_text)
        self.log_reasoning(f"Graded answer at {result.score:.2f}")
        return self._success(
            result,
            confidence=0.8 if result.feedback else 0.6,
            explanation=f"AI grade {result.score:.2f}",
        )
