"""AI-assisted assessment core: question generation, grading and attempt scoring."""

from .service import AssessmentService

__all__ = ["AssessmentService"]

__version__ = "0.1.0"
