# Utility modules
from .extractor import (
    ResultExtractor,
    extract_score,
    extract_section,
    extract_grade,
    extract_sentiment,
    extract_similarity,
    infer_question_kind,
    lexical_similarity,
)

__all__ = [
    "ResultExtractor",
    "extract_score",
    "extract_section",
    "extract_grade",
    "extract_sentiment",
    "extract_similarity",
    "infer_question_kind",
    "lexical_similarity",
]
