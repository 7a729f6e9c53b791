"""Candidate filtering, staged re-ranking and deduplication.

The re-ranker is a pipeline of small stages, each taking the previous
stage's score:

    base relevance -> multi-word veto -> coverage -> semantic -> urgency

A veto (score 0) is final: no later stage may raise it.
"""

import logging
import math
import re
from dataclasses import replace
from datetime import datetime, timezone

from cc_historian.intent import matches_query_intent, matches_semantic_type
from cc_historian.matching import query_words, significant_words
from cc_historian.models import Message, QueryAnalysis

logger = logging.getLogger(__name__)

# System and boilerplate text that never answers a search
NOISE_PATTERNS = (
    "this session is being continued",
    "caveat:",
    "command-name>",
    "local-command-stdout",
    "system-reminder",
    "command-message>",
    "much better! now i can see",
    "package.js",
    "export interface",
    "you are claude code",
    "read-only mode",
    "i cannot make changes",
    "i'm in plan mode",
    "hello! i'm claude",
    "i am claude",
    "ready to help you",
    "what would you like me to",
    "how can i assist",
    "i understand that i'm",
)

LOW_VALUE_SUBSTRINGS = (
    "local-command-stdout>(no content)",
    "command-name>/doctor",
    "system-reminder>",
    "much better! now i can see",
)
LOW_VALUE_PATTERNS = (
    re.compile(r"^(ok|yes|no|sure|thanks)\.?$"),
    re.compile(r"^error:\s*$"),
    re.compile(r"^warning:\s*$"),
)

SUMMARY_INDICATORS = (
    "summary:",
    "in summary",
    "to recap",
    "here's what we accomplished",
    "let me summarize",
    "to sum up",
    "overview:",
    "in conclusion",
    "final summary",
    "session summary",
)

MIN_CANDIDATE_LENGTH = 40
MIN_LOW_VALUE_LENGTH = 20
FILE_SCORE_FLOOR = 1.0
MERGE_SCORE_FLOOR = 0.3
QUALITY_SCORE_FLOOR = 1.5

COVERAGE_THRESHOLD = 0.5
COVERAGE_TERM_MULTIPLIER = 2.0
PARTIAL_TERM_BONUS = 0.5
NO_COVERAGE_PENALTY = 0.1
URGENCY_MULTIPLIER = 1.5
URGENCY_WINDOW_HOURS = 24

SIGNATURE_PREFIX_CHARS = 80
CONTENT_SIGNATURE_PREFIX_CHARS = 200
SUMMARY_SHARE = 0.3
NEAR_TIE = 1.0

_DIGITS = re.compile(r"\d+")
_QUOTES = re.compile(r"[\"']")
_WHITESPACE = re.compile(r"\s+")


def is_low_value(content: str) -> bool:
    """Filler content: tool chatter, one-word replies, bare error labels."""
    lower = content.lower()
    if any(s in lower for s in LOW_VALUE_SUBSTRINGS):
        return True
    if any(p.search(lower) for p in LOW_VALUE_PATTERNS):
        return True
    return len(content.strip()) < MIN_LOW_VALUE_LENGTH


def is_noise(content: str) -> bool:
    lower = content.lower()
    return len(lower) < MIN_CANDIDATE_LENGTH or any(p in lower for p in NOISE_PATTERNS)


def passes_file_filter(message: Message, analysis: QueryAnalysis) -> bool:
    """Per-file gate applied while scanning a session file."""
    return message.relevance_score >= FILE_SCORE_FLOOR and matches_query_intent(message, analysis)


def is_highly_relevant(message: Message, analysis: QueryAnalysis) -> bool:
    """Merge-time gate applied to every partition's candidates."""
    if is_noise(message.content):
        return False
    if message.relevance_score < MERGE_SCORE_FLOOR:
        return False
    return matches_query_intent(message, analysis)


def passes_quality_gate(message: Message) -> bool:
    return (
        message.effective_score >= QUALITY_SCORE_FLOOR
        and len(message.content) >= MIN_CANDIDATE_LENGTH
        and not is_low_value(message.content)
    )


def _age_hours(timestamp: datetime | None, now: datetime) -> float | None:
    if timestamp is None:
        return None
    return (now - timestamp).total_seconds() / 3600


# Re-ranking stages


def apply_multiword_veto(score: float, significant_terms: list[str]) -> float | None:
    """0 when a multi-word query already vetoed the record, otherwise None."""
    if len(significant_terms) >= 2 and score == 0:
        return 0.0
    return None


def apply_coverage_boost(score: float, content: str, terms: list[str]) -> float:
    """Double per matching term at >= 50% coverage; penalize thin coverage."""
    lower = content.lower()
    matched = [t for t in terms if t in lower]
    ratio = len(matched) / len(terms) if terms else 1.0

    if ratio >= COVERAGE_THRESHOLD:
        for _ in matched:
            score *= COVERAGE_TERM_MULTIPLIER
        return score
    if matched:
        return score * (1 + len(matched) * PARTIAL_TERM_BONUS) * ratio
    return score * NO_COVERAGE_PENALTY


def apply_semantic_boosts(score: float, message: Message, boosts: dict[str, float]) -> float:
    for semantic_type, boost in boosts.items():
        if matches_semantic_type(message, semantic_type):
            score *= boost
    return score


def apply_urgency_boost(
    score: float, message: Message, urgency: str, now: datetime
) -> float:
    if urgency != "high":
        return score
    age = _age_hours(message.timestamp, now)
    if age is not None and age < URGENCY_WINDOW_HOURS:
        score *= URGENCY_MULTIPLIER
    return score


def final_score(
    message: Message, query: str, analysis: QueryAnalysis, now: datetime | None = None
) -> float:
    """Run every re-ranking stage over a candidate's base score."""
    now = now or datetime.now(tz=timezone.utc)
    score = message.relevance_score

    vetoed = apply_multiword_veto(score, analysis.significant_terms)
    if vetoed is not None:
        return vetoed

    score = apply_coverage_boost(score, message.content, query_words(query))
    score = apply_semantic_boosts(score, message, analysis.semantic_boosts)
    return apply_urgency_boost(score, message, analysis.urgency, now)


# Signatures and deduplication


def _normalize(content: str, length: int) -> str:
    text = _DIGITS.sub("N", content.lower())
    text = _QUOTES.sub("", text)
    return _WHITESPACE.sub(" ", text)[:length]


def ranking_signature(message: Message) -> str:
    """role:tools:files|nofiles:first-80-normalized-chars"""
    tools = "|".join(sorted(message.tools))
    files = "files" if message.files else "nofiles"
    return f"{message.role}:{tools}:{files}:{_normalize(message.content, SIGNATURE_PREFIX_CHARS)}"


def content_signature(message: Message) -> str:
    """files:tools:errors:first-200-normalized-chars"""
    files = "|".join(sorted(message.files))
    tools = "|".join(sorted(message.tools))
    errors = "|".join(message.errors)
    return f"{files}:{tools}:{errors}:{_normalize(message.content, CONTENT_SIGNATURE_PREFIX_CHARS)}"


def deduplicate(messages: list[Message]) -> list[Message]:
    """Keep one record per ranking signature.

    A later duplicate replaces the kept one only with a strictly higher final
    score. Kept records stay at the first-seen position.
    """
    seen: dict[str, Message] = {}
    for message in messages:
        signature = ranking_signature(message)
        existing = seen.get(signature)
        if existing is None or message.effective_score > existing.effective_score:
            seen[signature] = message
    return list(seen.values())


def deduplicate_by_content(messages: list[Message]) -> list[Message]:
    """Keep one record per content signature, preferring higher relevance."""
    seen: dict[str, Message] = {}
    for message in messages:
        signature = content_signature(message)
        existing = seen.get(signature)
        if existing is None or message.relevance_score > existing.relevance_score:
            seen[signature] = message
    return list(seen.values())


def select_top_results(
    candidates: list[Message],
    query: str,
    analysis: QueryAnalysis,
    limit: int,
    now: datetime | None = None,
) -> list[Message]:
    """Re-score, sort, deduplicate and cut candidates to ``limit``."""
    now = now or datetime.now(tz=timezone.utc)
    scored: list[Message] = []
    for message in candidates:
        try:
            score = final_score(message, query, analysis, now)
        except Exception:
            logger.debug("Re-ranking failed for %s", message.id, exc_info=True)
            continue
        scored.append(replace(message, final_score=score))

    scored.sort(key=lambda m: m.effective_score, reverse=True)
    return deduplicate(scored)[:limit]


# Recency-aware prioritization


def is_summary_message(message: Message) -> bool:
    lower = message.content.lower()
    if any(indicator in lower for indicator in SUMMARY_INDICATORS):
        return True
    return message.role == "assistant" and "summary" in lower and len(lower) > 100


def _prefix_key(message: Message) -> str:
    return _WHITESPACE.sub("", message.content[:100].lower())


def _timestamp_key(message: Message) -> float:
    return message.timestamp.timestamp() if message.timestamp else 0.0


def _near_tie_order(messages: list[Message]) -> list[Message]:
    """Score descending; records within NEAR_TIE of each other go newest first."""
    ordered = sorted(messages, key=lambda m: m.effective_score, reverse=True)
    result: list[Message] = []
    i = 0
    while i < len(ordered):
        j = i + 1
        while j < len(ordered) and ordered[j - 1].effective_score - ordered[j].effective_score <= NEAR_TIE:
            j += 1
        result.extend(sorted(ordered[i:j], key=_timestamp_key, reverse=True))
        i = j
    return result


def prioritize_results(messages: list[Message], limit: int) -> list[Message]:
    """Summaries first (up to 30% of ``limit``), then score with recency tie-breaks."""
    summaries = sorted(
        (m for m in messages if is_summary_message(m)),
        key=lambda m: m.effective_score,
        reverse=True,
    )[: math.ceil(limit * SUMMARY_SHARE)]

    regular = _near_tie_order(messages)[: max(limit - len(summaries), 0)]

    unique: list[Message] = []
    seen: set[str] = set()
    for message in summaries + regular:
        key = _prefix_key(message)
        if key not in seen:
            seen.add(key)
            unique.append(message)
    return unique[:limit]
