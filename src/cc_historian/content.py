"""Content-type detection and type-aware truncation."""

import re

CODE = "code"
ERROR = "error"
TECHNICAL = "technical"
CONVERSATIONAL = "conversational"

# Characters shown per result by the formatter
DISPLAY_BUDGETS = {
    CODE: 600,
    ERROR: 700,
    TECHNICAL: 500,
    CONVERSATIONAL: 400,
}

# Characters kept per message when a session file is parsed
STORAGE_BUDGETS = {
    CODE: 4000,
    ERROR: 3500,
    TECHNICAL: 3500,
    CONVERSATIONAL: 3000,
}

ELLIPSIS = "..."

CODE_MARKERS = ("```", "function ", "const ", "import ", "export ", "def ")
ERROR_VOCABULARY = re.compile(r"(error|exception|failed|cannot|unable to)", re.IGNORECASE)
FILE_EXTENSION = re.compile(r"\.(ts|js|json|md|py|java|cpp|rs|go|yml|yaml)\b")
TECHNICAL_MARKERS = ("src/", "./", "tool_use")

FENCED_BLOCK = re.compile(r"```[\s\S]*?```")
DECLARATION = re.compile(r"(function \w+|const \w+|class \w+|export \w+|def \w+)")
ERROR_SPAN = re.compile(r"(error|exception|failed)[\s\S]*?(?:\n\s*\n|$)", re.IGNORECASE)
ERROR_TYPE = re.compile(r"(\w*Error|\w*Exception):")
FILE_PATH = re.compile(r"[\w\-/\\.]+\.(?:ts|js|json|md|py|java|cpp|rs|go|yml|yaml)(?::\d+)?")
TOOL_REFERENCE = re.compile(r"(?:tool_use.*?\"name\":\s*\"[^\"]+\"|\[Tool: \w+\])")
SENTENCE_END = re.compile(r"[.!?](?=\s|$)")


def detect_content_type(text: str) -> str:
    """Classify text as code, error, technical or conversational (first match wins)."""
    if any(marker in text for marker in CODE_MARKERS):
        return CODE
    if ERROR_VOCABULARY.search(text):
        return ERROR
    if FILE_EXTENSION.search(text) or any(marker in text for marker in TECHNICAL_MARKERS):
        return TECHNICAL
    return CONVERSATIONAL


def display_budget(text: str) -> int:
    return DISPLAY_BUDGETS[detect_content_type(text)]


def storage_budget(text: str) -> int:
    return STORAGE_BUDGETS[detect_content_type(text)]


def truncate(text: str, budget: int) -> str:
    """Shorten text to about ``budget`` characters, keeping its most useful part.

    Text that already fits is returned unchanged.
    """
    if len(text) <= budget:
        return text

    content_type = detect_content_type(text)
    if content_type == CODE:
        result = _truncate_code(text, budget)
    elif content_type == ERROR:
        result = _truncate_error(text, budget)
    elif content_type == TECHNICAL:
        result = _truncate_technical(text, budget)
    else:
        result = None
    return result if result else truncate_at_boundary(text, budget)


def preserve_for_storage(text: str) -> str:
    """Apply the per-type storage budget to freshly parsed content."""
    return truncate(text, storage_budget(text))


def _truncate_code(text: str, budget: int) -> str | None:
    blocks = FENCED_BLOCK.findall(text)
    if not blocks:
        declarations = DECLARATION.findall(text)
        if declarations:
            summary = ", ".join(declarations[:3])
            if len(declarations) > 3:
                summary += ELLIPSIS
            if len(summary) <= budget:
                return summary
        return None

    parts: list[str] = []
    remaining = budget
    for block in blocks:
        if len(block) <= remaining:
            parts.append(block)
            remaining -= len(block) + 1
            continue
        # Partial block, led by a little of the text before it
        before = text[: text.index(block)]
        lead = before[-min(100, remaining // 4) :] if remaining >= 4 else ""
        take = remaining - len(lead) - len(ELLIPSIS)
        if take > 0:
            parts.append(lead + block[:take] + ELLIPSIS)
        break
    return "\n".join(parts).strip() or None


def _truncate_error(text: str, budget: int) -> str | None:
    match = ERROR_SPAN.search(text)
    if match:
        line_start = text.rfind("\n", 0, match.start()) + 1
        span = text[line_start : match.end()].strip()
        if span and len(span) <= budget:
            return span

    error_type = ERROR_TYPE.search(text)
    if error_type:
        token = error_type.group(0)
        remaining = budget - len(token) - len(ELLIPSIS) - 1
        if remaining > 0:
            trailing = text[error_type.end() : error_type.end() + remaining].strip()
            return f"{token} {trailing}{ELLIPSIS}"
    return None


def _truncate_technical(text: str, budget: int) -> str | None:
    elements: list[str] = []
    for path in FILE_PATH.findall(text):
        if path not in elements:
            elements.append(path)
    elements = elements[:2]
    elements.extend(TOOL_REFERENCE.findall(text)[:1])
    if not elements:
        return None
    summary = " | ".join(elements)
    return summary if len(summary) <= budget else None


def truncate_at_boundary(text: str, budget: int) -> str:
    """Cut at the last sentence end, else the last space, else hard; add an ellipsis."""
    if len(text) <= budget:
        return text

    limit = max(budget - len(ELLIPSIS), 0)
    window = text[:limit]

    sentence_ends = [m.end() for m in SENTENCE_END.finditer(window)]
    if sentence_ends:
        return window[: sentence_ends[-1]].rstrip(".!?") + ELLIPSIS

    space = window.rfind(" ")
    if space > 0:
        return window[:space].rstrip() + ELLIPSIS

    return window + ELLIPSIS
