"""Relevance scoring for messages and plan documents.

Two message scorers exist on purpose:

- ``calculate_relevance_score`` is the base score assigned while scanning.
  It is unbounded and carries the strict-term veto.
- ``calculate_claude_relevance`` re-weights an already-scored message by
  content features and recency, capped at 10. File-context lookups use it
  to order related messages.
"""

import math
from datetime import datetime, timezone

from cc_historian.matching import is_strict_core, is_supporting, matches_term, query_words
from cc_historian.models import Message

STRICT_TERM_WEIGHT = 10
SUPPORTING_TERM_WEIGHT = 3
RESIDUAL_TERM_WEIGHT = 2
EXACT_PHRASE_BONUS = 5
COVERAGE_BONUS = 4
COVERAGE_THRESHOLD = 0.6
TOOL_MESSAGE_BONUS = 5
FILE_REFERENCE_BONUS = 3
PROJECT_MATCH_BONUS = 5

CLAUDE_RELEVANCE_CAP = 10.0

FILE_REFERENCE_MARKERS = ("src/", ".ts", ".js", ".py")

# Substring -> multiplier applied when the content mentions it
TECHNICAL_BOOSTS = {
    "code": 2.0,
    "error": 1.8,
    "function": 1.5,
    "class": 1.5,
    "import": 1.3,
    "export": 1.3,
    "const": 1.2,
    "let": 1.2,
    "var": 1.2,
}


def calculate_relevance_score(
    message: Message, query: str, project_filter: str | None = None
) -> float:
    """Score one message against a query.

    Returns 0 when the query names a specific technology (see
    ``STRICT_CORE_TERMS``) that the content never mentions with normal casing.
    """
    content = message.content
    lower_query = query.lower().strip()
    words = query_words(query)

    strict_terms = [w for w in words if is_strict_core(w)]
    supporting_terms = [w for w in words if is_supporting(w)]

    score = 0.0
    strict_matches = 0
    for term in strict_terms:
        if matches_term(content, term):
            strict_matches += 1
            score += STRICT_TERM_WEIGHT

    if strict_terms and strict_matches == 0:
        return 0.0

    for term in supporting_terms:
        if matches_term(content, term):
            score += SUPPORTING_TERM_WEIGHT

    word_matches = strict_matches
    for word in words:
        if word in strict_terms or word in supporting_terms:
            continue
        if matches_term(content, word):
            word_matches += 1
            score += RESIDUAL_TERM_WEIGHT

    if lower_query and lower_query in content.lower():
        score += EXACT_PHRASE_BONUS

    if words and word_matches >= math.ceil(len(words) * COVERAGE_THRESHOLD):
        score += COVERAGE_BONUS

    if message.role in ("tool_use", "tool_result"):
        score += TOOL_MESSAGE_BONUS

    if any(marker in content for marker in FILE_REFERENCE_MARKERS):
        score += FILE_REFERENCE_BONUS

    if project_filter and (
        project_filter in message.project_path or project_filter in message.cwd
    ):
        score += PROJECT_MATCH_BONUS

    return score


def _age_days(timestamp: datetime | None, now: datetime) -> float | None:
    if timestamp is None:
        return None
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return (now - timestamp).total_seconds() / 86400


def calculate_claude_relevance(
    message: Message, query: str, now: datetime | None = None
) -> float:
    """Re-weight a scored message by content features and recency (max 10)."""
    score = message.relevance_score
    content = message.content.lower()

    for term, boost in TECHNICAL_BOOSTS.items():
        if term in content:
            score *= boost

    for term in query.lower().split():
        if term in content:
            score *= 1.1

    age = _age_days(message.timestamp, now or datetime.now(tz=timezone.utc))
    if age is not None:
        if age < 1:
            score *= 1.5
        elif age < 7:
            score *= 1.2
        elif age < 30:
            score *= 1.1

    if message.tools:
        score *= 1.3
    if message.files:
        score *= 1.2
    if message.errors:
        score *= 1.4

    if message.role == "assistant" and any(
        marker in content for marker in ("solution", "fixed", "resolved")
    ):
        score *= 1.6

    return min(score, CLAUDE_RELEVANCE_CAP)


def calculate_plan_relevance(
    query: str, title: str | None, sections: list[str], content: str
) -> float:
    """Score a plan document: title hits weigh most, body hits least."""
    lower_query = query.lower().strip()
    terms = query_words(query)
    score = 0.0

    if title:
        lower_title = title.lower()
        if lower_query in lower_title:
            score += 20
        score += sum(5 for term in terms if term in lower_title)

    for section in sections:
        lower_section = section.lower()
        if lower_query in lower_section:
            score += 10
        score += sum(3 for term in terms if term in lower_section)

    lower_content = content.lower()
    if lower_query in lower_content:
        score += 8
    for term in terms:
        score += min(lower_content.count(term), 5)

    return score
