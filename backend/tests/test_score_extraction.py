import pytest

from assessment.core.errors import MalformedResponse
from assessment.utils.extractor import (
    NEUTRAL_SCORE,
    extract_grade,
    extract_score,
    extract_score_from_text,
    extract_section,
    extract_sentiment,
    extract_similarity,
    lexical_similarity,
    normalize_score,
    parse_grade,
    parse_sentiment,
    parse_similarity,
)


# =============================================================================
# CATEGORY SCORES
# =============================================================================

@pytest.mark.parametrize(
    "text, category, expected",
    [
        ("Relevance: 0.85", "Relevance", 0.85),
        ("Technical skills: 8/10", "Technical skills", 0.8),
        ("Experience score: 0.7", "Experience", 0.7),
        ("Education: 75/100", "Education", 0.75),
        ("Education: 80%", "Education", 0.8),
        ("**Relevance**: 9", "Relevance", 0.9),
        ("Relevance: 8", "Relevance", 0.8),
        ("Relevance: 85", "Relevance", 1.0),
        ("Relevance: 15", "Relevance", 1.0),
        ("relevance: 0.6", "Relevance", 0.6),
        ("Relevance: 0,9", "Relevance", 0.9),
    ],
)
def test_extract_score_formats(text, category, expected):
    assert extract_score(text, category) == pytest.approx(expected)


def test_extract_score_picks_the_named_category():
    text = "Relevance: 0.9\nExperience: 4/10\nEducation: 60%"
    assert extract_score(text, "Experience") == pytest.approx(0.4)
    assert extract_score(text, "Education") == pytest.approx(0.6)


def test_extract_score_accepts_aliases():
    assert extract_score("Relevancia: 0.9", ("Relevance", "Relevancia")) == pytest.approx(0.9)


@pytest.mark.parametrize("text", ["Relevance: 15/10", "Relevance: 150%"])
def test_extract_score_clamps(text):
    assert extract_score(text, "Relevance") == 1.0


def test_absent_category_is_neutral():
    text = "Overall this candidate fits at 0.65"
    assert extract_score(text, "Relevance") == NEUTRAL_SCORE
    assert extract_score("", "Relevance") == NEUTRAL_SCORE


def test_loose_mode_scans_the_whole_text():
    assert extract_score("Overall this candidate fits at 0.65", "Relevance", loose=True) == pytest.approx(0.65)


@pytest.mark.parametrize(
    "text, expected",
    [("Rated 7/10 overall", 0.7), ("Roughly 40% of the material", 0.4), ("No numbers here", 0.5)],
)
def test_extract_score_from_text(text, expected):
    assert extract_score_from_text(text) == pytest.approx(expected)


@pytest.mark.parametrize(
    "value, scale, expected",
    [
        (0.5, None, 0.5),
        (7, None, 0.7),
        (85, None, 1.0),
        (85, 100.0, 0.85),
        (150, None, 1.0),
        (-0.2, None, 0.0),
        (50, 100.0, 0.5),
        (12, 10.0, 1.0),
    ],
)
def test_normalize_score(value, scale, expected):
    assert normalize_score(value, scale) == pytest.approx(expected)


def test_extract_section():
    text = "Strengths: Strong Python background\nWeaknesses: **Little cloud experience**"
    assert extract_section(text, "Strengths") == "Strong Python background"
    assert extract_section(text, ("Debilidades", "Weaknesses")) == "Little cloud experience"
    assert extract_section(text, "Education") == ""


# =============================================================================
# GRADES
# =============================================================================

def test_grade_from_json():
    result = parse_grade('Result: {"score": 0.8, "feedback": "Good coverage of the topic."}')
    assert result.score == pytest.approx(0.8)
    assert result.feedback == "Good coverage of the topic."


@pytest.mark.parametrize("raw, expected", [('{"score": 8}', 0.8), ('{"score": "7/10"}', 0.7)])
def test_grade_json_scales(raw, expected):
    assert parse_grade(raw).score == pytest.approx(expected)


def test_grade_from_labels():
    result = parse_grade("Score: 0.9\nFeedback: Well explained with an example.")
    assert result.score == pytest.approx(0.9)
    assert result.feedback == "Well explained with an example."


def test_unparseable_grade():
    with pytest.raises(MalformedResponse):
        parse_grade("I cannot grade this answer.")

    result = extract_grade("I cannot grade this answer.")
    assert result.score == NEUTRAL_SCORE
    assert result.feedback == "I cannot grade this answer."


# =============================================================================
# SENTIMENT
# =============================================================================

@pytest.mark.parametrize(
    "raw, label, polarity",
    [
        ('{"sentiment": "positive", "score": 0.8}', "positive", 0.8),
        ('{"sentimiento": "negativo"}', "negative", -0.5),
        ('{"score": 3}', "positive", 1.0),
        ("The tone is neutral.", "neutral", 0.0),
        ("Sentiment: negative, score: -0.6", "negative", -0.6),
    ],
)
def test_parse_sentiment(raw, label, polarity):
    result = parse_sentiment(raw)
    assert result.label == label
    assert result.polarity == pytest.approx(polarity)


def test_unparseable_sentiment_is_neutral():
    with pytest.raises(MalformedResponse):
        parse_sentiment("???")
    result = extract_sentiment("???")
    assert (result.label, result.polarity) == ("neutral", 0.0)


# =============================================================================
# SIMILARITY
# =============================================================================

def test_similarity_percentage_key():
    result = parse_similarity('{"similarityPercentage": 85, "analysis": "Mostly copied."}')
    assert result.similarity == pytest.approx(0.85)
    assert result.analysis == "Mostly copied."
    assert result.suspicious


@pytest.mark.parametrize(
    "raw, expected",
    [('{"similarity": 0.4}', 0.4), ('{"similarity": 40}', 0.4), ("About 30% overlaps.", 0.3)],
)
def test_similarity_forms(raw, expected):
    result = parse_similarity(raw)
    assert result.similarity == pytest.approx(expected)
    assert not result.suspicious


def test_unparseable_similarity():
    assert extract_similarity("no idea").similarity == 0.0


@pytest.mark.parametrize(
    "text1, text2, expected",
    [
        ("python lists store ordered items", "python lists store ordered items", 1.0),
        ("python lists store ordered items", "python lists are dynamic arrays", 0.4),
        ("python lists store ordered items", "java arrays have fixed sizes", 0.0),
        ("", "anything", 0.0),
    ],
)
def test_lexical_similarity(text1, text2, expected):
    assert lexical_similarity(text1, text2) == pytest.approx(expected)
