"""
Score aggregation for test attempts.

Pure functions of (questions, answers); no I/O.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping

from .schemas.assessment import Answer, Question, QuestionKind


@dataclass(frozen=True)
class ScoreBreakdown:
    earned_points: float
    total_points: float
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "earned_points": self.earned_points,
            "total_points": self.total_points,
            "percentage": self.percentage,
        }


def answer_contribution(question: Question, answer: Answer) -> float:
    """
    Points earned by one answer.

    A reviewer override always decides by its boolean. Otherwise multiple
    choice and true/false earn full points when marked correct, and open-ended
    answers earn ``point_value * ai_score``.
    """
    if answer.overridden or question.kind is not QuestionKind.OPEN_ENDED:
        return question.point_value if answer.is_correct is True else 0.0
    if answer.ai_score is None:
        return 0.0
    return question.point_value * answer.ai_score


class ScoreAggregator:
    """Combines per-question contributions into a percentage in [0, 100]."""

    @staticmethod
    def breakdown(
        questions: Iterable[Question], answers: Mapping[str, Answer]
    ) -> ScoreBreakdown:
        total = 0.0
        earned = 0.0
        for question in questions:
            total += question.point_value
            answer = answers.get(question.question_id)
            if answer is not None:
                earned += answer_contribution(question, answer)

        percentage = earned / total * 100.0 if total > 0 else 0.0
        return ScoreBreakdown(
            earned_points=round(earned, 6),
            total_points=round(total, 6),
            percentage=round(max(0.0, min(100.0, percentage)), 6),
        )

    @classmethod
    def compute(cls, questions: Iterable[Question], answers: Mapping[str, Answer]) -> float:
        """``answers`` is keyed by question id; unanswered questions earn 0."""
        return cls.breakdown(questions, answers).percentage
