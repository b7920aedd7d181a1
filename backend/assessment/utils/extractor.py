"""
Result Extractor

Responsibility: Turn raw generated text into typed records.
Single purpose: Tolerate whatever the generative service actually returns.

Question extraction runs an ordered cascade of strategies, each a pure
function ``text -> [QuestionCandidate]``:

    1. whole_json       - the full text is a JSON array (or wrapper object)
    2. split_objects    - split on ``}{`` boundaries and parse each fragment
    3. brace_scan       - scan for balanced ``{...}`` substrings anywhere
    4. numbered_blocks  - "1." / "Q1:" / "Question 2:" paragraphs with
                          labeled Answer/Explanation lines
    5. blank_line_blocks - whatever is left, split on blank lines

The cascade stops as soon as ``wanted`` candidates are accepted. Anything
still missing is backfilled with clearly-labeled placeholder questions, so
callers always receive exactly ``wanted`` items.

Score, section, sentiment and similarity helpers live here too. None of the
``extract_*`` helpers raise on malformed text: they log a warning and return a
neutral default. The ``parse_*`` variants raise MalformedResponse for callers
that want to choose their own fallback.
"""

import json
import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..core.errors import MalformedResponse
from ..schemas.assessment import (
    ExtractedQuestionSet,
    GradeResult,
    QuestionCandidate,
    QuestionKind,
    SentimentResult,
    SimilarityResult,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

NEUTRAL_SCORE = 0.5
MIN_FIELD_LENGTH = 10
MAX_FIELD_LENGTH = 1000

QUESTION_KEYS = (
    "question", "pregunta", "text", "content", "prompt", "title", "texto", "contenido",
)
ANSWER_KEYS = (
    "answer", "respuesta", "correctanswer", "correct_answer", "solution",
    "solucion", "solución", "respuestacorrecta", "respuesta_correcta",
)
EXPLANATION_KEYS = (
    "explanation", "explicacion", "explicación", "reason", "justification",
    "feedback", "razon", "razón", "justificacion", "justificación",
)
WRAPPER_KEYS = ("questions", "preguntas", "items", "data", "results")

QUESTION_PREFIX_RE = re.compile(
    r"^\s*\**\s*(?:pregunta|question|q|p)\s*\d*\s*\**\s*[:.]\s*\**\s*", re.I
)
ANSWER_PREFIX_RE = re.compile(
    r"^\s*\**\s*(?:respuesta(?: correcta)?|(?:correct )?answer|a|r)\s*\**\s*:\s*\**\s*", re.I
)
EXPLANATION_PREFIX_RE = re.compile(
    r"^\s*\**\s*(?:explicaci[oó]n|explanation|exp|e)\s*\**\s*:\s*\**\s*", re.I
)

# Template leftovers: a whole field in brackets, or a bracketed field label
PLACEHOLDER_RE = re.compile(
    r"^\s*\[[A-Za-zÀ-ÿ ][^\[\]\"',]*\]\s*$"
    r"|\[\s*(?:pregunta|respuesta|explicaci[oó]n|question|answer|explanation)\b",
    re.I,
)

# A following question's label bleeding into an answer or explanation
BLEED_RE = re.compile(r"(?:pregunta|question)\s*\d*\s*:", re.I)

DEFAULT_EXPLANATION = "No explanation was provided for this question."
DEFAULT_ANSWER = "Answer pending review."

PLACEHOLDER_QUESTION = "Question about {topic} (part {part})"
PLACEHOLDER_ANSWER = "This is a placeholder answer. Please review and update."
PLACEHOLDER_EXPLANATION = (
    "This question was generated as a placeholder due to parsing issues."
)


# =============================================================================
# CLEANUP
# =============================================================================

_FENCE_RE = re.compile(r"```(?:json|JSON)?")
_NUMBERED_OBJECT_RE = re.compile(r"\d+\.\s*\{")


def clean_generated_text(text: str) -> str:
    """
    Strip markdown fences, leading chatter before the first JSON bracket and
    list numbering in front of objects (``1. {``).
    """
    if not text:
        return ""
    cleaned = _FENCE_RE.sub("", text)
    cleaned = _NUMBERED_OBJECT_RE.sub("{", cleaned)

    starts = [i for i in (cleaned.find("["), cleaned.find("{")) if i >= 0]
    if starts:
        first = min(starts)
        preamble = cleaned[:first]
        # Drop chatter only; a preamble holding a question is content
        if first > 0 and "?" not in preamble and json_objects(cleaned[first:]):
            cleaned = cleaned[first:]
    return cleaned.strip()


# =============================================================================
# FIELD HELPERS
# =============================================================================

def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return "\n".join(_stringify(v) for v in value if v is not None).strip()
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value).strip()


def lookup_field(data: Dict[str, Any], aliases: Sequence[str]) -> str:
    """Try each alias in priority order, case-insensitively."""
    lowered = {str(k).strip().lower(): v for k, v in data.items()}
    for alias in aliases:
        if alias in lowered:
            value = _stringify(lowered[alias])
            if value:
                return value
    return ""


def truncate(text: str, limit: int = MAX_FIELD_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def cut_bleed_through(text: str) -> str:
    """Cut a field at a stray label belonging to the next question."""
    for match in BLEED_RE.finditer(text):
        if match.start() > 10:
            return text[: match.start()].rstrip()
    return text


def is_placeholder(text: str) -> bool:
    return bool(PLACEHOLDER_RE.search(text))


def _normalize_question(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip().lower()


# =============================================================================
# CANDIDATE REVIEW
# =============================================================================

def review_candidate(candidate: QuestionCandidate, strict_answer: bool = True) -> QuestionCandidate:
    """
    Clean a candidate's fields in place and mark it accepted or rejected.

    ``strict_answer`` applies the absent/placeholder/too-short rules to the
    answer as well as the question. Text-derived candidates pass False: their
    answer, if any, is kept as written and a missing one is filled with a
    pending-review marker.
    """
    question = QUESTION_PREFIX_RE.sub("", candidate.question).strip()
    answer = ANSWER_PREFIX_RE.sub("", candidate.answer).strip()
    explanation = EXPLANATION_PREFIX_RE.sub("", candidate.explanation).strip()

    def reject(reason: str) -> QuestionCandidate:
        candidate.accepted = False
        candidate.rejection_reason = reason
        return candidate

    if not question:
        return reject("missing question")
    if is_placeholder(question):
        return reject("placeholder question")
    if len(question) < MIN_FIELD_LENGTH:
        return reject("question too short")

    if strict_answer:
        if not answer:
            return reject("missing answer")
        if is_placeholder(answer):
            return reject("placeholder answer")
        if len(answer) < MIN_FIELD_LENGTH:
            return reject("answer too short")
    elif not answer or is_placeholder(answer):
        answer = DEFAULT_ANSWER

    if not explanation or is_placeholder(explanation) or len(explanation) < MIN_FIELD_LENGTH:
        explanation = DEFAULT_EXPLANATION

    candidate.question = truncate(question)
    candidate.answer = truncate(cut_bleed_through(answer))
    candidate.explanation = truncate(cut_bleed_through(explanation))
    candidate.accepted = True
    candidate.rejection_reason = ""
    return candidate


def candidate_from_mapping(data: Dict[str, Any], strategy: str) -> QuestionCandidate:
    candidate = QuestionCandidate(
        question=lookup_field(data, QUESTION_KEYS),
        answer=lookup_field(data, ANSWER_KEYS),
        explanation=lookup_field(data, EXPLANATION_KEYS),
        strategy=strategy,
    )
    return review_candidate(candidate, strict_answer=True)


def _expand(parsed: Any) -> List[Dict[str, Any]]:
    """Flatten parsed JSON into question-shaped objects."""
    if isinstance(parsed, list):
        out: List[Dict[str, Any]] = []
        for item in parsed:
            out.extend(_expand(item))
        return out
    if isinstance(parsed, dict):
        lowered = {str(k).lower(): v for k, v in parsed.items()}
        for key in WRAPPER_KEYS:
            if isinstance(lowered.get(key), list):
                return _expand(lowered[key])
        return [parsed]
    return []


# =============================================================================
# BALANCED BRACE SCANNER
# =============================================================================

def scan_balanced_objects(text: str) -> List[Tuple[int, int]]:
    """
    Return ``(start, end)`` spans of top-level balanced ``{...}`` substrings.

    Braces inside JSON string literals are ignored.
    """
    spans: List[Tuple[int, int]] = []
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                spans.append((start, i + 1))

    return spans


def _parse_json(fragment: str) -> Optional[Any]:
    try:
        return json.loads(fragment)
    except (json.JSONDecodeError, ValueError):
        return None


def json_objects(text: str) -> List[Dict[str, Any]]:
    """Every balanced fragment of ``text`` that parses as a JSON object."""
    objects = []
    for start, end in scan_balanced_objects(text):
        parsed = _parse_json(text[start:end])
        if isinstance(parsed, dict):
            objects.append(parsed)
    return objects


def strip_json_fragments(text: str) -> str:
    """Remove parseable ``{...}`` fragments, leaving the surrounding prose."""
    pieces = []
    cursor = 0
    for start, end in scan_balanced_objects(text):
        if _parse_json(text[start:end]) is None:
            continue
        pieces.append(text[cursor:start])
        cursor = end
    pieces.append(text[cursor:])
    remaining = "".join(pieces)
    remaining = re.sub(r"^[ \t\[\],]+$", "", remaining, flags=re.M)
    return remaining.strip()


# =============================================================================
# STRATEGIES
# =============================================================================

def whole_json_strategy(text: str) -> List[QuestionCandidate]:
    parsed = _parse_json(text)
    if parsed is None:
        first, last = text.find("["), text.rfind("]")
        if 0 <= first < last:
            parsed = _parse_json(text[first:last + 1])
    if parsed is None:
        return []
    return [candidate_from_mapping(obj, "whole_json") for obj in _expand(parsed)]


_OBJECT_BOUNDARY_RE = re.compile(r"\}\s*,?\s*\{")


def split_objects_strategy(text: str) -> List[QuestionCandidate]:
    parts = _OBJECT_BOUNDARY_RE.split(text)
    if len(parts) < 2:
        return []

    candidates = []
    last = len(parts) - 1
    for i, part in enumerate(parts):
        fragment = part
        if i > 0:
            fragment = "{" + fragment
        if i < last:
            fragment = fragment + "}"
        fragment = fragment.strip().lstrip("[").rstrip("],").strip()
        if i == 0:
            brace = fragment.find("{")
            fragment = fragment[brace:] if brace >= 0 else fragment
        if i == last:
            brace = fragment.rfind("}")
            fragment = fragment[: brace + 1] if brace >= 0 else fragment

        parsed = _parse_json(fragment)
        for obj in _expand(parsed):
            candidates.append(candidate_from_mapping(obj, "split_objects"))
    return candidates


def brace_scan_strategy(text: str) -> List[QuestionCandidate]:
    candidates = []
    for obj in json_objects(text):
        for item in _expand(obj):
            candidates.append(candidate_from_mapping(item, "brace_scan"))
    return candidates


_MARKER_RE = re.compile(
    r"^[ \t]*(?:#+[ \t]*)?(?:\*\*)?"
    r"(?:\d+[.)]|q\d*[.:]|question[ \t]*\d*[.:]|pregunta[ \t]*\d*[.:]|p\d+[.:])"
    r"(?:\*\*)?[ \t]*",
    re.I | re.M,
)
_ANSWER_LABEL_RE = re.compile(
    r"^[ \t]*(?:\*\*)?(?:correct answer|respuesta correcta|answer|respuesta|solution|a|r)"
    r"(?:\*\*)?[ \t]*[:.](?:\*\*)?[ \t]*",
    re.I | re.M,
)
_EXPLANATION_LABEL_RE = re.compile(
    r"^[ \t]*(?:\*\*)?(?:explanation|explicaci[oó]n|reason|raz[oó]n|why|exp|e)"
    r"(?:\*\*)?[ \t]*[:.](?:\*\*)?[ \t]*",
    re.I | re.M,
)


def split_labeled_fields(block: str) -> Tuple[str, str, str]:
    """
    Split a paragraph into ``(question, answer, explanation)`` using labeled
    lines. Text before the first label is the question.
    """
    labels = []
    for field_name, pattern in (("answer", _ANSWER_LABEL_RE), ("explanation", _EXPLANATION_LABEL_RE)):
        for match in pattern.finditer(block):
            # Single-letter labels need a colon; "a." is an option, not an answer
            token = match.group(0).strip().strip("*").rstrip(":.").strip("*").strip()
            if len(token) == 1 and ":" not in match.group(0):
                continue
            labels.append((match.start(), match.end(), field_name))
    labels.sort()

    if not labels:
        return block.strip(), "", ""

    question = block[: labels[0][0]].strip()
    fields = {"answer": "", "explanation": ""}
    for i, (_, end, name) in enumerate(labels):
        stop = labels[i + 1][0] if i + 1 < len(labels) else len(block)
        if not fields[name]:
            fields[name] = block[end:stop].strip()
    return question, fields["answer"], fields["explanation"]


def numbered_blocks_strategy(text: str) -> List[QuestionCandidate]:
    remaining = strip_json_fragments(text)
    markers = list(_MARKER_RE.finditer(remaining))
    if not markers:
        return []

    candidates = []
    for i, marker in enumerate(markers):
        stop = markers[i + 1].start() if i + 1 < len(markers) else len(remaining)
        block = remaining[marker.end():stop]
        question, answer, explanation = split_labeled_fields(block)
        candidate = QuestionCandidate(
            question=question, answer=answer, explanation=explanation,
            strategy="numbered_blocks",
        )
        candidates.append(review_candidate(candidate, strict_answer=False))
    return candidates


def blank_line_blocks_strategy(text: str) -> List[QuestionCandidate]:
    remaining = strip_json_fragments(text)
    first_marker = _MARKER_RE.search(remaining)
    if first_marker:
        # Everything from the first marker on belongs to numbered blocks
        remaining = remaining[: first_marker.start()]

    candidates = []
    for block in re.split(r"\n\s*\n", remaining):
        block = block.strip()
        if not block:
            continue
        question, answer, explanation = split_labeled_fields(block)
        candidate = QuestionCandidate(
            question=question, answer=answer, explanation=explanation,
            strategy="blank_line_blocks",
        )
        if question.rstrip().endswith(":"):
            candidate.rejection_reason = "preamble, not a question"
            candidates.append(candidate)
            continue
        candidates.append(review_candidate(candidate, strict_answer=False))
    return candidates


Strategy = Callable[[str], List[QuestionCandidate]]

STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("whole_json", whole_json_strategy),
    ("split_objects", split_objects_strategy),
    ("brace_scan", brace_scan_strategy),
    ("numbered_blocks", numbered_blocks_strategy),
    ("blank_line_blocks", blank_line_blocks_strategy),
)


# =============================================================================
# QUESTION KIND INFERENCE
# =============================================================================

_TRUE_FALSE_RE = re.compile(
    r"true or false|true/false|verdadero o falso|verdadero/falso|\b(?:true|false)\b.*\?",
    re.I | re.S,
)
_MULTIPLE_CHOICE_RE = re.compile(
    r"\b(?:choose|select|pick|elija|seleccione)\b|multiple choice|selecci[oó]n m[uú]ltiple"
    r"|\([a-d]\)|\n\s*[a-d][.)]\s+",
    re.I,
)


def infer_question_kind(text: str) -> QuestionKind:
    if _TRUE_FALSE_RE.search(text):
        return QuestionKind.TRUE_FALSE
    if _MULTIPLE_CHOICE_RE.search(text):
        return QuestionKind.MULTIPLE_CHOICE
    return QuestionKind.OPEN_ENDED


# =============================================================================
# QUESTION EXTRACTION
# =============================================================================

def placeholder_candidate(topic: str, part: int) -> QuestionCandidate:
    return QuestionCandidate(
        question=PLACEHOLDER_QUESTION.format(topic=topic or "the topic", part=part),
        answer=PLACEHOLDER_ANSWER,
        explanation=PLACEHOLDER_EXPLANATION,
        strategy="backfill",
        accepted=True,
        placeholder=True,
    )


class ResultExtractor:
    """
    Runs the question extraction cascade and owns the backfill step.

    Example:
        >>> extractor = ResultExtractor()
        >>> questions = extractor.extract_questions(raw_text, wanted=5, topic="SQL")
        >>> assert len(questions) == 5
    """

    def __init__(self, strategies: Optional[Iterable[Tuple[str, Strategy]]] = None):
        self.strategies = tuple(strategies) if strategies is not None else STRATEGIES

    def run_strategies(self, raw_text: str, wanted: int) -> ExtractedQuestionSet:
        """Run the cascade without backfilling."""
        result = ExtractedQuestionSet(wanted=wanted)
        text = clean_generated_text(raw_text)
        if not text:
            logger.warning("Generated text is empty; nothing to extract")
            return result

        seen = set()
        accepted = 0
        for name, strategy in self.strategies:
            if accepted >= wanted:
                break
            found = strategy(text)
            gained = 0
            for candidate in found:
                if candidate.accepted:
                    key = _normalize_question(candidate.question)
                    if key in seen or accepted >= wanted:
                        candidate.accepted = False
                        candidate.rejection_reason = (
                            "duplicate question" if key in seen else "surplus"
                        )
                    else:
                        seen.add(key)
                        accepted += 1
                        gained += 1
                result.candidates.append(candidate)
            logger.debug(
                "Strategy %s: %d candidates, %d accepted", name, len(found), gained
            )
        return result

    def backfill(self, result: ExtractedQuestionSet, topic: str) -> ExtractedQuestionSet:
        """Append labeled placeholders until exactly ``wanted`` are accepted."""
        missing = result.wanted - len(result.accepted)
        if missing <= 0:
            return result
        logger.warning(
            "Only %d of %d questions could be extracted; adding %d placeholders",
            result.wanted - missing, result.wanted, missing,
        )
        start = len(result.accepted)
        for i in range(missing):
            result.candidates.append(placeholder_candidate(topic, start + i + 1))
        return result

    def extract_question_set(
        self, raw_text: str, wanted: int, topic: str = ""
    ) -> ExtractedQuestionSet:
        return self.backfill(self.run_strategies(raw_text, wanted), topic)

    def extract_questions(
        self, raw_text: str, wanted: int, topic: str = ""
    ) -> List[QuestionCandidate]:
        return self.extract_question_set(raw_text, wanted, topic).accepted[:wanted]


# =============================================================================
# SCORES
# =============================================================================

Category = Union[str, Sequence[str]]

_NUMBER = r"([0-9]+(?:[.,][0-9]+)?)"
_SEP = r"[\s*_]*:[\s*]*"


def _to_float(raw: str) -> float:
    return float(raw.replace(",", "."))


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def normalize_score(value: float, scale: Optional[float] = None) -> float:
    """
    Bring a raw number onto [0, 1]: explicit ``/10`` or ``/100`` scales are
    divided out, bare values above 1 are read as out of 10, and the result is
    clamped.
    """
    if scale:
        value = value / scale
    elif value > 1:
        value = value / 10.0
    return clamp01(value)


_BARE_END = r"(?![0-9]|[.,][0-9]|\s*/|\s*%)"


def _category_patterns(category: str) -> List[Tuple[re.Pattern, Optional[float]]]:
    # Priority order: 0.NN, N/10, "score" 0.NN, N/100, then percent and bare numbers
    cat = re.escape(category.strip())
    label = cat + r"(?:\s+score)?" + _SEP
    flags = re.I
    return [
        (re.compile(cat + _SEP + r"([0-9]+[.,][0-9]+)" + _BARE_END, flags), None),
        (re.compile(label + _NUMBER + r"\s*/\s*10(?![0-9])", flags), 10.0),
        (re.compile(cat + r"\s+score" + _SEP + _NUMBER + _BARE_END, flags), None),
        (re.compile(label + _NUMBER + r"\s*/\s*100(?![0-9])", flags), 100.0),
        (re.compile(label + _NUMBER + r"\s*%", flags), 100.0),
        (re.compile(label + _NUMBER + _BARE_END, flags), None),
    ]


def find_score(text: str, category: Category) -> Optional[float]:
    """Category-specific score, or None when no pattern matches."""
    if not text:
        return None
    categories = [category] if isinstance(category, str) else list(category)
    for cat in categories:
        for pattern, scale in _category_patterns(cat):
            match = pattern.search(text)
            if match:
                return normalize_score(_to_float(match.group(1)), scale)
    return None


def find_score_in_text(text: str) -> Optional[float]:
    """Loose whole-text scan, or None when nothing numeric is found."""
    if not text:
        return None
    for match in re.finditer(r"(?<![0-9.])([0-9]+\.[0-9]+)(?![0-9.]*\s*/)", text):
        value = float(match.group(1))
        if 0.0 <= value <= 1.0:
            return value
    match = re.search(r"(?<![0-9.])" + _NUMBER + r"\s*/\s*10(?![0-9])", text)
    if match:
        return normalize_score(_to_float(match.group(1)), 10.0)
    match = re.search(r"(?<![0-9.])" + _NUMBER + r"\s*(?:/\s*100(?![0-9])|%)", text)
    if match:
        return normalize_score(_to_float(match.group(1)), 100.0)
    return None


def extract_score(text: str, category: Category, loose: bool = False) -> float:
    """
    Score for ``category`` in [0, 1], matched case-insensitively.

    With ``loose`` set, a whole-text number scan is tried when the category is
    absent. Without a numeric match the neutral 0.5 is returned.
    """
    score = find_score(text, category)
    if score is None and loose:
        score = find_score_in_text(text)
    if score is None:
        logger.debug("No score found for %r; using neutral default", category)
        return NEUTRAL_SCORE
    return score


def extract_score_from_text(text: str) -> float:
    score = find_score_in_text(text)
    return NEUTRAL_SCORE if score is None else score


def extract_section(text: str, section: Category) -> str:
    """First-line content following ``<section>:``; empty when absent."""
    if not text:
        return ""
    sections = [section] if isinstance(section, str) else list(section)
    for name in sections:
        match = re.search(re.escape(name) + _SEP + r"(.*)", text, re.I)
        if match and match.group(1).strip():
            return match.group(1).strip().strip("*").strip()
    return ""


# =============================================================================
# GRADES
# =============================================================================

SCORE_KEYS = ("score", "puntuacion", "puntuación", "grade", "rating", "calificacion", "calificación")
FEEDBACK_KEYS = ("feedback", "retroalimentacion", "retroalimentación", "comment", "comments", "analysis", "explanation")
SCORE_LABELS = ("Score", "Puntuación", "Puntuacion", "Grade", "Calificación")
FEEDBACK_LABELS = ("Feedback", "Retroalimentación", "Retroalimentacion", "Comment")


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = re.search(r"-?[0-9]+(?:[.,][0-9]+)?", value)
        if match:
            return _to_float(match.group(0))
    return None


def parse_grade(text: str) -> GradeResult:
    for obj in json_objects(text or ""):
        lowered = {str(k).lower(): v for k, v in obj.items()}
        for key in SCORE_KEYS:
            value = _numeric(lowered.get(key))
            if value is not None:
                scale = 10.0 if isinstance(lowered.get(key), str) and "/10" in lowered[key] else None
                return GradeResult(
                    score=normalize_score(max(value, 0.0), scale),
                    feedback=truncate(lookup_field(obj, FEEDBACK_KEYS)),
                )

    score = find_score(text, SCORE_LABELS)
    if score is None:
        score = find_score_in_text(text)
    if score is None:
        raise MalformedResponse("No score found in grading response", raw_text=text or "")
    feedback = extract_section(text, FEEDBACK_LABELS) or (text or "").strip()
    return GradeResult(score=score, feedback=truncate(feedback))


def extract_grade(text: str) -> GradeResult:
    try:
        return parse_grade(text)
    except MalformedResponse as e:
        logger.warning("%s; using neutral score %.1f", e.message, NEUTRAL_SCORE)
        return GradeResult(score=NEUTRAL_SCORE, feedback=(text or "").strip()[:MAX_FIELD_LENGTH])


# =============================================================================
# SENTIMENT
# =============================================================================

_SENTIMENT_LABELS = {
    "positive": "positive", "positivo": "positive", "pos": "positive",
    "negative": "negative", "negativo": "negative", "neg": "negative",
    "neutral": "neutral", "neutro": "neutral",
}
_LABEL_POLARITY = {"positive": 0.5, "negative": -0.5, "neutral": 0.0}


def _clamp_polarity(value: float) -> float:
    return max(-1.0, min(1.0, value))


def parse_sentiment(text: str) -> SentimentResult:
    for obj in json_objects(text or ""):
        lowered = {str(k).lower(): v for k, v in obj.items()}
        raw_label = str(lowered.get("sentiment") or lowered.get("sentimiento") or lowered.get("label") or "")
        label = _SENTIMENT_LABELS.get(raw_label.strip().lower())
        score = _numeric(lowered.get("score", lowered.get("polarity")))
        if label or score is not None:
            if label is None:
                label = "positive" if score > 0 else "negative" if score < 0 else "neutral"
            polarity = _LABEL_POLARITY[label] if score is None else _clamp_polarity(score)
            return SentimentResult(label=label, polarity=polarity)

    match = re.search(r"\b(positi(?:ve|vo)|negati(?:ve|vo)|neutral|neutro)\b", text or "", re.I)
    if not match:
        raise MalformedResponse("No sentiment label found", raw_text=text or "")
    label = _SENTIMENT_LABELS[match.group(1).lower()]
    score_match = re.search(r"score" + _SEP + r"(-?[0-9]+(?:\.[0-9]+)?)", text, re.I)
    polarity = _clamp_polarity(float(score_match.group(1))) if score_match else _LABEL_POLARITY[label]
    return SentimentResult(label=label, polarity=polarity)


def extract_sentiment(text: str) -> SentimentResult:
    try:
        return parse_sentiment(text)
    except MalformedResponse as e:
        logger.warning("%s; defaulting to neutral", e.message)
        return SentimentResult()


# =============================================================================
# SIMILARITY
# =============================================================================

PERCENT_KEYS = ("similaritypercentage", "similarity_percentage", "porcentajesimilitud", "percentage", "porcentaje")
RATIO_KEYS = ("similarity", "similitud", "score")
ANALYSIS_KEYS = ("analysis", "analisis", "análisis", "explanation", "details")


def parse_similarity(text: str) -> SimilarityResult:
    for obj in json_objects(text or ""):
        lowered = {str(k).lower(): v for k, v in obj.items()}
        analysis = truncate(lookup_field(obj, ANALYSIS_KEYS))
        for key in PERCENT_KEYS:
            value = _numeric(lowered.get(key))
            if value is not None:
                return SimilarityResult(similarity=clamp01(value / 100.0), analysis=analysis)
        for key in RATIO_KEYS:
            value = _numeric(lowered.get(key))
            if value is not None:
                return SimilarityResult(
                    similarity=clamp01(value if value <= 1 else value / 100.0), analysis=analysis
                )

    match = re.search(r"(?<![0-9.])([0-9]+(?:\.[0-9]+)?)\s*%", text or "")
    if not match:
        raise MalformedResponse("No similarity figure found", raw_text=text or "")
    return SimilarityResult(
        similarity=clamp01(float(match.group(1)) / 100.0),
        analysis=truncate((text or "").strip()),
    )


def extract_similarity(text: str) -> SimilarityResult:
    try:
        return parse_similarity(text)
    except MalformedResponse as e:
        logger.warning("%s; defaulting to 0.0", e.message)
        return SimilarityResult(similarity=0.0)


def lexical_similarity(text1: str, text2: str) -> float:
    """
    Share of words (longer than three characters) of ``text1`` that also
    appear in ``text2``, over the larger word count.
    """
    words1 = [w for w in re.split(r"\W+", (text1 or "").lower()) if w]
    words2 = [w for w in re.split(r"\W+", (text2 or "").lower()) if w]
    if not words1 or not words2:
        return 0.0
    vocabulary = set(words2)
    common = sum(1 for w in words1 if len(w) > 3 and w in vocabulary)
    return clamp01(common / max(len(words1), len(words2)))
