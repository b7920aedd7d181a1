"""
Text analysis agents: sentiment and plagiarism.

Both degrade gracefully on unparseable model output. The plagiarism agent
falls back to a local word-overlap measure, which is also what
``check_against_sources`` uses to compare an answer with known texts.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .base import AgentResponse, GenerativeAgent
from ..core.errors import AssessmentError, MalformedResponse
from ..schemas.assessment import SentimentResult, SimilarityResult
from ..schemas.tasks import GenerationTask, TaskKind
from ..utils.extractor import lexical_similarity, parse_sentiment, parse_similarity


@dataclass(frozen=True)
class SentimentRequest:
    text: str


@dataclass(frozen=True)
class PlagiarismRequest:
    original_text: str
    comparison_text: str


class SentimentAgent(GenerativeAgent[SentimentRequest, SentimentResult]):
    name = "sentiment_analyzer"
    description = "Classifies text sentiment as positive, negative or neutral"

    def run(self, input_data: SentimentRequest) -> AgentResponse[SentimentResult]:
        self._begin_trace()
        try:
            raw_text = self._generate(GenerationTask.of(TaskKind.SENTIMENT, text=input_data.text))
        except AssessmentError as e:
            return self._from_error(e, "Sentiment analysis")

        try:
            result = parse_sentiment(raw_text)
            confidence = 0.8
        except MalformedResponse as e:
            self.log_reasoning(f"{e.message}; defaulting to neutral")
            result = SentimentResult()
            confidence = 0.3

        return self._success(
            result,
            confidence=confidence,
            explanation=f"Sentiment {result.label} ({result.polarity:+.2f})",
        )


class PlagiarismAgent(GenerativeAgent[PlagiarismRequest, SimilarityResult]):
    name = "plagiarism_checker"
    description = "Estimates how much of one text is copied from another"

    def run(self, input_data: PlagiarismRequest) -> AgentResponse[SimilarityResult]:
        self._begin_trace()
        task = GenerationTask.of(
            TaskKind.PLAGIARISM,
            original_text=input_data.original_text,
            comparison_text=input_data.comparison_text,
        )
        try:
            raw_text = self._generate(task)
        except AssessmentError as e:
            return self._from_error(e, "Plagiarism check")

        try:
            result = parse_similarity(raw_text)
            confidence = 0.8
        except MalformedResponse as e:
            self.log_reasoning(f"{e.message}; using word overlap instead")
            result = SimilarityResult(
                similarity=lexical_similarity(input_data.comparison_text, input_data.original_text),
                analysis="Estimated from shared vocabulary.",
                method="lexical",
            )
            confidence = 0.5

        return self._success(
            result,
            confidence=confidence,
            explanation=(
                f"Similarity {result.similarity:.0%} via {result.method}"
                + (" (suspicious)" if result.suspicious else "")
            ),
        )


@dataclass
class SourceCheck:
    """Closest known source for an answer, by word overlap."""
    score: float = 0.0
    closest_source: str = ""
    suspicious_fragments: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "closest_source": self.closest_source,
            "suspicious_fragments": list(self.suspicious_fragments),
        }


def check_against_sources(answer: str, sources: Sequence[str]) -> SourceCheck:
    """Compare ``answer`` with every known source and keep the closest."""
    best = SourceCheck()
    for source in sources:
        similarity = lexical_similarity(answer, source)
        if similarity > best.score:
            best = SourceCheck(score=similarity, closest_source=source)
    if best.score > SimilarityResult.SUSPICIOUS_THRESHOLD:
        best.suspicious_fragments.append(best.closest_source)
    return best
