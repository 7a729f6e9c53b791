"""Similarity between short free-text queries."""

import re

from cc_historian.matching import query_words, significant_words

EXACT_MATCH = 1.0
PARTIAL_MATCH = 0.8
CHARACTER_MATCH = 0.6
SYNONYM_MATCH = 0.7

MIN_PARTIAL_LENGTH = 5
MIN_PARTIAL_RATIO = 0.6
TECHNICAL_BOOST = 1.2
STEM_BONUS_WEIGHT = 0.3
MIN_SIGNIFICANT_MATCHES = 2

TECHNICAL_TRIGGERS = frozenset({"error", "fix", "build", "install", "typescript", "javascript"})

TECHNICAL_SYNONYMS = {
    "error": ("exception", "fail", "crash", "bug", "issue", "problem"),
    "fix": ("resolve", "solve", "repair", "correct", "solution"),
    "install": ("setup", "configure", "add", "create"),
    "build": ("compile", "bundle", "deploy", "package"),
    "test": ("verify", "check", "validate", "debug"),
    "typescript": ("ts", "type", "interface"),
    "javascript": ("js", "node", "npm"),
}

_STEM_SUFFIX = re.compile(r"(ing|ed|s|ly|tion|ment)$")


def is_word_similar(a: str, b: str) -> bool:
    """Same length within 3, at least 4 chars, >= 60% positional identity."""
    if abs(len(a) - len(b)) > 3:
        return False
    shortest = min(len(a), len(b))
    if shortest < 4:
        return False
    same = sum(1 for i in range(shortest) if a[i] == b[i])
    return same >= shortest * 0.6


def are_synonyms(a: str, b: str) -> bool:
    for key, synonyms in TECHNICAL_SYNONYMS.items():
        if (key == a and b in synonyms) or (key == b and a in synonyms):
            return True
        if a in synonyms and b in synonyms:
            return True
    return False


def word_match_score(a: str, b: str) -> float:
    """Pairwise score of two lower-cased words (0 when unrelated)."""
    if a == b:
        return EXACT_MATCH
    if a in b or b in a:
        shorter, longer = sorted((len(a), len(b)))
        if shorter >= MIN_PARTIAL_LENGTH and shorter / longer >= MIN_PARTIAL_RATIO:
            return PARTIAL_MATCH * (shorter / longer)
        return 0.0
    if is_word_similar(a, b):
        return CHARACTER_MATCH
    if are_synonyms(a, b):
        return SYNONYM_MATCH
    return 0.0


def _is_strong_match(a: str, b: str) -> bool:
    """Exact, containment or synonym. Character-similar pairs are weak."""
    if a == b or a in b or b in a:
        return True
    return not is_word_similar(a, b) and are_synonyms(a, b)


def stem(word: str) -> str:
    return _STEM_SUFFIX.sub("", word)


def query_similarity(query_a: str, query_b: str) -> float:
    """Similarity of two queries in [0, 1].

    Words of ``query_a`` are matched greedily, in order, to the best unused
    word of ``query_b``. When both queries carry two or more significant
    words, fewer than two significant-to-significant matches yields 0.
    """
    words_a = query_words(query_a)
    words_b = query_words(query_b)
    if not words_a or not words_b:
        return 0.0

    significant_a = set(significant_words(words_a))
    significant_b = set(significant_words(words_b))

    total = 0.0
    significant_matches = 0
    used: set[int] = set()
    for word_a in words_a:
        best_score = 0.0
        best_index = -1
        for j, word_b in enumerate(words_b):
            if j in used:
                continue
            score = word_match_score(word_a, word_b)
            if score > best_score:
                best_score = score
                best_index = j
        if best_index < 0:
            continue

        word_b = words_b[best_index]
        used.add(best_index)
        total += best_score
        if word_a in significant_a and word_b in significant_b and _is_strong_match(word_a, word_b):
            significant_matches += 1

    if (
        significant_matches < MIN_SIGNIFICANT_MATCHES
        and len(significant_a) >= 2
        and len(significant_b) >= 2
    ):
        return 0.0

    longest = max(len(words_a), len(words_b))
    shortest = min(len(words_a), len(words_b))
    technical = any(w in TECHNICAL_TRIGGERS for w in words_a + words_b)
    base = (total / longest) * (shortest / longest) * (TECHNICAL_BOOST if technical else 1.0)

    stems_b = [stem(w) for w in words_b]
    shared_stems = [s for s in (stem(w) for w in words_a) if s in stems_b]
    stem_bonus = len(shared_stems) / longest * STEM_BONUS_WEIGHT

    return min(base + stem_bonus, 1.0)
