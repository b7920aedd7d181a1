# Agent modules - Core contracts
from .base import (
    BaseAgent,
    GenerativeAgent,
    AgentResponse,
    AgentStatus,
)

# Specialized agents
from .question_generator import QuestionGeneratorAgent, QuestionGenerationRequest
from .answer_grader import AnswerGraderAgent, GradeRequest
from .cv_scorer import CvScorerAgent, CvScoreRequest
from .text_analysis import PlagiarismAgent, PlagiarismRequest, SentimentAgent, SentimentRequest

__all__ = [
    # Core contracts
    "BaseAgent",
    "GenerativeAgent",
    "AgentResponse",
    "AgentStatus",
    # Agents
    "QuestionGeneratorAgent",
    "QuestionGenerationRequest",
    "AnswerGraderAgent",
    "GradeRequest",
    "CvScorerAgent",
    "CvScoreRequest",
    "SentimentAgent",
    "SentimentRequest",
    "PlagiarismAgent",
    "PlagiarismRequest",
]
