"""
CV Scorer Agent

Responsibility: Evaluate a CV against a job description using the LLM.
Single purpose: Produce per-category scores and strength/weakness notes.

Category labels are matched in English and Spanish. A category the model did
not score reads as the neutral 0.5.
"""

from dataclasses import dataclass

from .base import AgentResponse, GenerativeAgent
from ..core.errors import AssessmentError
from ..schemas.assessment import CvScore
from ..schemas.tasks import GenerationTask, TaskKind
from ..utils.extractor import extract_score, extract_section, find_score

CATEGORY_LABELS = {
    "relevance": ("Relevance", "Relevancia"),
    "technical_skills": ("Technical skills", "Technical", "Habilidades técnicas", "Habilidades tecnicas"),
    "experience": ("Experience", "Experiencia"),
    "education": ("Education", "Educación", "Educacion"),
}
STRENGTH_LABELS = ("Strengths", "Fortalezas")
WEAKNESS_LABELS = ("Weaknesses", "Debilidades")


@dataclass(frozen=True)
class CvScoreRequest:
    cv_text: str
    job_description: str

    def to_task(self) -> GenerationTask:
        return GenerationTask.of(
            TaskKind.CV_SCORE,
            cv_text=self.cv_text,
            job_description=self.job_description,
        )


class CvScorerAgent(GenerativeAgent[CvScoreRequest, CvScore]):
    """
    Scores a CV for a job.

    Input: CvScoreRequest (CV text + job description)
    Output: CvScore with four category scores in [0, 1]
    """

    name = "cv_scorer"
    description = "Scores CV relevance, skills, experience and education against a job"

    def run(self, input_data: CvScoreRequest) -> AgentResponse[CvScore]:
        self._begin_trace()
        try:
            analysis = self._generate(input_data.to_task())
        except AssessmentError as e:
            return self._from_error(e, "CV scoring")

        found = 0
        scores = {}
        for category, labels in CATEGORY_LABELS.items():
            if find_score(analysis, labels) is not None:
                found += 1
            scores[category] = extract_score(analysis, labels)
        self.log_reasoning(f"Scored {found} of {len(CATEGORY_LABELS)} categories")

        output = CvScore(
            strengths=extract_section(analysis, STRENGTH_LABELS),
            weaknesses=extract_section(analysis, WEAKNESS_LABELS),
            full_analysis=analysis.strip(),
            **scores,
        )
        return self._success(
            output,
            confidence=round(0.4 + 0.1 * found, 2),
            explanation=(
                f"Overall CV match {output.overall:.2f} "
                f"({found}/{len(CATEGORY_LABELS)} categories scored by the model)"
            ),
        )
