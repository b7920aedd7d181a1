"""
Prompt builder.

One template per task kind. Each template fixes the response language and a
strict output skeleton so the extractor has something regular to aim for,
even though it never relies on the model honouring it.
"""

from typing import Dict, Optional

from langchain_core.prompts import PromptTemplate

from .errors import InvalidTask
from ..schemas.tasks import GenerationParams, GenerationTask, TaskKind


# =============================================================================
# SYSTEM INSTRUCTIONS
# =============================================================================

SYSTEM_PROMPTS: Dict[TaskKind, str] = {
    TaskKind.QUESTION_GEN: (
        "You are an expert technical interviewer creating assessment questions. "
        "Questions must test practical knowledge, have clear unambiguous answers "
        "and avoid cultural bias or region-specific references."
    ),
    TaskKind.CV_SCORE: (
        "You are an experienced technical recruiter. Evaluate candidates fairly "
        "and only on job-relevant evidence found in the CV."
    ),
    TaskKind.ANSWER_GRADE: (
        "You are a strict but fair examiner grading a candidate's answer to a "
        "technical interview question."
    ),
    TaskKind.SENTIMENT: "You are a sentiment analysis engine.",
    TaskKind.PLAGIARISM: (
        "You are a plagiarism detection engine comparing two texts for copied "
        "or closely paraphrased content."
    ),
}


# =============================================================================
# TEMPLATES
# =============================================================================

QUESTION_GEN_TEMPLATE = """Generate exactly {count} {difficulty} {question_kind} questions about {topic}.

Requirements:
1. Every question must be specific and technical, testing practical applied knowledge.
2. Every answer must be technically accurate and detailed (at least three sentences).
3. Every explanation must add technical context to the answer.
4. All content MUST be written in {language}.

Return ONLY a JSON array, with this exact structure for each question:
[
    {{
        "question": "Specific technical question about {topic}",
        "answer": "Detailed, technically accurate answer",
        "explanation": "Technical explanation of why the answer is correct"
    }}
]"""

CV_SCORE_TEMPLATE = """Evaluate how well the following CV matches the job description.

Job description:
{job_description}

CV:
{cv_text}

Score each category from 0.0 to 1.0 and answer in {language} using exactly these lines:
Relevance: 0.NN
Technical skills: 0.NN
Experience: 0.NN
Education: 0.NN
Strengths: one line summarising the candidate's main strengths
Weaknesses: one line summarising the candidate's main gaps"""

ANSWER_GRADE_TEMPLATE = """Grade the candidate's answer to the question below.

Question: {question}
Reference answer: {canonical_answer}
Candidate answer: {submitted_text}

Score the answer from 0.0 (completely wrong) to 1.0 (complete and correct).
Write the feedback in {language}.
Return ONLY valid JSON:
{{"score": 0.0, "feedback": "Short justification of the score"}}"""

SENTIMENT_TEMPLATE = """Analyse the sentiment of the following text.

Text:
{text}

Return ONLY valid JSON:
{{"sentiment": "positive | negative | neutral", "score": 0.0}}
where score ranges from -1.0 (very negative) to 1.0 (very positive)."""

PLAGIARISM_TEMPLATE = """Compare the two texts below and estimate how much of the second is copied or closely paraphrased from the first.

Original text:
{original_text}

Text to check:
{comparison_text}

Write the analysis in {language}.
Return ONLY valid JSON:
{{"similarityPercentage": 0, "analysis": "Short explanation of the overlap"}}
where similarityPercentage ranges from 0 to 100."""


TEMPLATES: Dict[TaskKind, PromptTemplate] = {
    TaskKind.QUESTION_GEN: PromptTemplate.from_template(QUESTION_GEN_TEMPLATE),
    TaskKind.CV_SCORE: PromptTemplate.from_template(CV_SCORE_TEMPLATE),
    TaskKind.ANSWER_GRADE: PromptTemplate.from_template(ANSWER_GRADE_TEMPLATE),
    TaskKind.SENTIMENT: PromptTemplate.from_template(SENTIMENT_TEMPLATE),
    TaskKind.PLAGIARISM: PromptTemplate.from_template(PLAGIARISM_TEMPLATE),
}

# Inputs a caller may omit
OPTIONAL_INPUTS: Dict[TaskKind, Dict[str, str]] = {
    TaskKind.QUESTION_GEN: {"question_kind": "mixed", "difficulty": "medium"},
    TaskKind.ANSWER_GRADE: {"canonical_answer": "Not provided"},
}

GENERATION_PARAMS: Dict[TaskKind, GenerationParams] = {
    TaskKind.QUESTION_GEN: GenerationParams(max_length=2048, temperature=0.7, top_p=0.9),
    TaskKind.CV_SCORE: GenerationParams(max_length=2048, temperature=0.7, top_p=0.95),
    TaskKind.ANSWER_GRADE: GenerationParams(max_length=1024, temperature=0.3, top_p=0.95),
    TaskKind.SENTIMENT: GenerationParams(max_length=256, temperature=0.2, top_p=0.95),
    TaskKind.PLAGIARISM: GenerationParams(max_length=1024, temperature=0.2, top_p=0.95),
}


class PromptBuilder:
    """
    Renders a GenerationTask into prompt text. Stateless apart from the
    response language.
    """

    def __init__(self, language: str = "English"):
        self.language = language

    def required_inputs(self, kind: TaskKind) -> set:
        variables = set(TEMPLATES[kind].input_variables) - {"language"}
        return variables - set(OPTIONAL_INPUTS.get(kind, {}))

    def build(self, task: GenerationTask) -> str:
        template = TEMPLATES[task.kind]
        values: Dict[str, object] = {"language": self.language}
        values.update(OPTIONAL_INPUTS.get(task.kind, {}))

        for name, value in task:
            if value is None:
                continue
            if isinstance(value, str):
                value = value.strip()
                if not value:
                    continue
            values[name] = value

        missing = sorted(n for n in self.required_inputs(task.kind) if n not in values)
        if missing:
            raise InvalidTask(
                f"{task.kind.value} task is missing required inputs: {', '.join(missing)}",
                missing=missing,
            )

        return template.format(
            **{n: values[n] for n in template.input_variables}
        )

    def system_prompt(self, kind: TaskKind) -> str:
        return SYSTEM_PROMPTS[kind]

    def params_for(self, kind: TaskKind, override: Optional[GenerationParams] = None) -> GenerationParams:
        return override or GENERATION_PARAMS[kind]
