"""Query intent classification."""

from cc_historian.matching import query_words, significant_words
from cc_historian.models import Message, QueryAnalysis

# Checked in order; the first type with a trigger in the query wins
QUERY_TYPE_TRIGGERS = (
    ("error", ("error", "bug", "fix", "issue")),
    ("implementation", ("implement", "create", "build", "add")),
    ("analysis", ("how", "why", "analyze", "understand")),
)

# Query substring -> (semantic type, multiplier)
SEMANTIC_BOOST_TRIGGERS = (
    ("error", "error_resolution", 3.0),
    ("implement", "implementation", 2.5),
    ("optimize", "optimization", 2.0),
    ("fix", "solutions", 2.8),
    ("file", "file_operations", 2.0),
    ("tool", "tool_usage", 2.2),
)


def classify_query_type(query: str) -> str:
    lower = query.lower()
    for query_type, triggers in QUERY_TYPE_TRIGGERS:
        if any(trigger in lower for trigger in triggers):
            return query_type
    return "general"


def get_semantic_boosts(query: str) -> dict[str, float]:
    lower = query.lower()
    return {
        semantic_type: boost
        for trigger, semantic_type, boost in SEMANTIC_BOOST_TRIGGERS
        if trigger in lower
    }


def analyze_query(query: str) -> QueryAnalysis:
    """Classify a query and derive the boosts used when re-ranking."""
    lower = query.lower().strip()
    keywords = query_words(lower)
    return QueryAnalysis(
        query_type=classify_query_type(lower),
        urgency="high" if "error" in lower or "failed" in lower else "medium",
        scope="broad" if "project" in lower or "all" in lower else "focused",
        expects_code=any(w in lower for w in ("function", "implement", "code")),
        expects_solution=any(w in lower for w in ("how", "fix", "solve")),
        keywords=keywords,
        significant_terms=significant_words(keywords),
        semantic_boosts=get_semantic_boosts(lower),
    )


def matches_query_intent(message: Message, analysis: QueryAnalysis) -> bool:
    """Check that a message shows the features its query's intent asks for."""
    content = message.content.lower()

    if analysis.query_type == "error":
        return (
            any(w in content for w in ("error", "fix", "solution"))
            or bool(message.errors)
        )
    if analysis.query_type == "implementation":
        return (
            any(w in content for w in ("implement", "create", "function"))
            or bool(message.snippets)
        )
    if analysis.query_type == "analysis":
        return any(w in content for w in ("analyze", "understand", "explain")) or (
            message.role == "assistant" and len(content) > 100
        )
    # general: tool usage or a substantial assistant answer
    return bool(message.tools) or (message.role == "assistant" and len(content) > 80)


def matches_semantic_type(message: Message, semantic_type: str) -> bool:
    content = message.content.lower()

    if semantic_type == "error_resolution":
        return "error" in content or "exception" in content or bool(message.errors)
    if semantic_type == "implementation":
        return "function" in content or "implement" in content or bool(message.snippets)
    if semantic_type == "optimization":
        return any(w in content for w in ("optimize", "performance", "faster"))
    if semantic_type == "solutions":
        return any(w in content for w in ("solution", "fix", "resolve"))
    if semantic_type == "file_operations":
        return bool(message.files)
    if semantic_type == "tool_usage":
        return bool(message.tools)
    return False
