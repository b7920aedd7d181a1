"""
Assessment schemas: questions, answers, attempts and AI-derived results.

These records are the field contracts the surrounding CRUD layer persists.
The core never decides how they are stored.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4


# =============================================================================
# ENUMS
# =============================================================================

class QuestionKind(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    OPEN_ENDED = "open_ended"
    TRUE_FALSE = "true_false"

    @property
    def is_deterministic(self) -> bool:
        """Correctness is supplied by the caller rather than graded by AI."""
        return self is not QuestionKind.OPEN_ENDED

    @property
    def label(self) -> str:
        return {
            QuestionKind.MULTIPLE_CHOICE: "multiple choice",
            QuestionKind.OPEN_ENDED: "open-ended",
            QuestionKind.TRUE_FALSE: "true/false",
        }[self]


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @classmethod
    def parse(cls, value: Any) -> "Difficulty":
        """Lenient parse; unknown values fall back to MEDIUM."""
        if isinstance(value, Difficulty):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.MEDIUM


class AttemptStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"


# =============================================================================
# TEST CONTENT
# =============================================================================

@dataclass
class Question:
    """
    A single assessment question, generated or entered manually.
    """
    text: str = ""
    canonical_answer: str = ""
    explanation: str = ""
    kind: QuestionKind = QuestionKind.OPEN_ENDED
    point_value: float = 10.0
    ai_generated: bool = False
    question_id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        if self.point_value <= 0:
            raise ValueError(f"point_value must be positive, got {self.point_value}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "text": self.text,
            "canonical_answer": self.canonical_answer,
            "explanation": self.explanation,
            "kind": self.kind.value,
            "point_value": self.point_value,
            "ai_generated": self.ai_generated,
        }


@dataclass
class AssessmentTest:
    """The parts of a test the attempt lifecycle needs."""
    test_id: str
    questions: List[Question] = field(default_factory=list)
    duration_minutes: int = 30
    passing_score: float = 70.0
    title: str = ""

    def __post_init__(self) -> None:
        if self.duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        if not 0.0 <= self.passing_score <= 100.0:
            raise ValueError("passing_score must be within [0, 100]")

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)

    def question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.question_id == question_id:
                return q
        return None


# =============================================================================
# ANSWERS & ATTEMPTS
# =============================================================================

@dataclass
class AnswerSubmission:
    """What the caller submits for one question."""
    question_id: str
    submitted_text: str = ""
    is_correct: Optional[bool] = None


@dataclass
class Answer:
    """
    One answer per (attempt, question).

    ``is_correct`` is caller-supplied for multiple choice and true/false, or set
    by a reviewer override. ``ai_score`` is only ever set for open-ended answers.
    """
    question_id: str
    submitted_text: str = ""
    is_correct: Optional[bool] = None
    ai_score: Optional[float] = None
    feedback: str = ""
    overridden: bool = False
    answer_id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        if self.ai_score is not None and not 0.0 <= self.ai_score <= 1.0:
            raise ValueError(f"ai_score must be in [0, 1], got {self.ai_score}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer_id": self.answer_id,
            "question_id": self.question_id,
            "submitted_text": self.submitted_text,
            "is_correct": self.is_correct,
            "ai_score": self.ai_score,
            "feedback": self.feedback,
            "overridden": self.overridden,
        }


@dataclass
class Attempt:
    """
    One applicant's timed pass through a test.

    ``score`` is only meaningful once ``completed_at`` is set.
    """
    applicant_id: str
    test_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    score: Optional[float] = None
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    answers: Dict[str, Answer] = field(default_factory=dict)  # keyed by question_id
    attempt_id: str = field(default_factory=lambda: uuid4().hex)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def deadline(self, duration: timedelta) -> datetime:
        return self.started_at + duration

    def answer_by_id(self, answer_id: str) -> Optional[Answer]:
        for answer in self.answers.values():
            if answer.answer_id == answer_id:
                return answer
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "applicant_id": self.applicant_id,
            "test_id": self.test_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "score": self.score,
            "status": self.status.value,
            "answers": [a.to_dict() for a in self.answers.values()],
        }


# =============================================================================
# EXTRACTION & AI RESULTS
# =============================================================================

@dataclass
class QuestionCandidate:
    """A parsed question fragment, before or after acceptance."""
    question: str = ""
    answer: str = ""
    explanation: str = ""
    strategy: str = ""
    accepted: bool = False
    rejection_reason: str = ""
    placeholder: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "answer": self.answer,
            "explanation": self.explanation,
            "strategy": self.strategy,
            "accepted": self.accepted,
            "rejection_reason": self.rejection_reason,
            "placeholder": self.placeholder,
        }


@dataclass
class ExtractedQuestionSet:
    """Everything the extractor looked at, tagged accepted or rejected."""
    candidates: List[QuestionCandidate] = field(default_factory=list)
    wanted: int = 0

    @property
    def accepted(self) -> List[QuestionCandidate]:
        return [c for c in self.candidates if c.accepted]

    @property
    def rejected(self) -> List[QuestionCandidate]:
        return [c for c in self.candidates if not c.accepted]

    @property
    def placeholder_count(self) -> int:
        return sum(1 for c in self.accepted if c.placeholder)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wanted": self.wanted,
            "accepted": [c.to_dict() for c in self.accepted],
            "rejected": [c.to_dict() for c in self.rejected],
        }


@dataclass
class GradeResult:
    score: float = 0.5
    feedback: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "feedback": self.feedback}


@dataclass
class CvScore:
    """Category scores in [0, 1] plus the free-text sections of the analysis."""
    relevance: float = 0.5
    technical_skills: float = 0.5
    experience: float = 0.5
    education: float = 0.5
    strengths: str = ""
    weaknesses: str = ""
    full_analysis: str = ""

    @property
    def overall(self) -> float:
        return round(
            (self.relevance + self.technical_skills + self.experience + self.education) / 4, 4
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "relevance": self.relevance,
            "technical_skills": self.technical_skills,
            "experience": self.experience,
            "education": self.education,
            "overall": self.overall,
            "strengths": self.strengths,
            "weaknesses": self.weaknesses,
            "full_analysis": self.full_analysis,
        }


@dataclass
class SentimentResult:
    label: str = "neutral"  # positive, negative, neutral
    polarity: float = 0.0   # [-1, 1]

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "polarity": self.polarity}


@dataclass
class SimilarityResult:
    similarity: float = 0.0  # [0, 1]
    analysis: str = ""
    method: str = "ai"  # ai, lexical

    SUSPICIOUS_THRESHOLD = 0.7

    @property
    def suspicious(self) -> bool:
        return self.similarity > self.SUSPICIOUS_THRESHOLD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "similarity": self.similarity,
            "analysis": self.analysis,
            "method": self.method,
            "suspicious": self.suspicious,
        }
