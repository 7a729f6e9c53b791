"""Heuristic extractors over parsed session messages.

Each extractor is an ordered table of ``(name, pattern, render)`` entries,
where ``render`` turns a regex match into the output string. Tables are
plain data so every entry can be tested on its own.
"""

import re
from collections import Counter
from collections.abc import Callable
from pathlib import PurePosixPath

from cc_historian.models import Message

Render = Callable[[re.Match], str]
PatternTable = tuple[tuple[str, re.Pattern, Render], ...]


def _group(n: int) -> Render:
    return lambda m: m.group(n).strip()


def _prefixed(prefix: str, n: int = 1) -> Render:
    return lambda m: f"{prefix}{m.group(n).strip()}"


def _constant(text: str) -> Render:
    return lambda m: text


def _basename(path: str) -> str:
    return PurePosixPath(path).name or path


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


COMMIT_COMMAND = re.compile(r"git commit -m\s*[\"']([^\"']{10,80})[\"']", re.I)
COMMIT_PHRASE = re.compile(r"committed:?\s*[\"']?([^\"'\n]{10,60})[\"']?", re.I)

# Session listing: first matching entry per message wins
SESSION_ACCOMPLISHMENTS: PatternTable = (
    ("commit_command", COMMIT_COMMAND, _prefixed("Committed: ")),
    ("commit_phrase", COMMIT_PHRASE, _prefixed("Committed: ")),
    ("test_count", re.compile(r"(\d+)\s*tests?\s*passed", re.I), lambda m: f"{m.group(1)} tests passed"),
    ("all_tests", re.compile(r"all\s*tests?\s*(?:passed|succeeded)", re.I), _constant("All tests passed")),
    ("build", re.compile(r"build\s*(?:succeeded|completed)", re.I), _constant("Build succeeded")),
    ("compile", re.compile(r"(?:compiled|built)\s*successfully", re.I), _constant("Built successfully")),
    (
        "completion_verb",
        re.compile(r"(?:completed|implemented|fixed|created|built|added):?\s*([^.\n]{10,80})", re.I),
        _group(1),
    ),
    (
        "recap",
        re.compile(r"(?:here's what we accomplished|accomplishments):?\s*([^.\n]{10,100})", re.I),
        _group(1),
    ),
    (
        "edit_tool",
        re.compile(r"Edit.*?file_path.*?[\"']([^\"']+\.\w{1,5})[\"']"),
        lambda m: f"Edited: {_basename(m.group(1))}",
    ),
    (
        "write_tool",
        re.compile(r"Write.*?file_path.*?[\"']([^\"']+\.\w{1,5})[\"']"),
        lambda m: f"Created: {_basename(m.group(1))}",
    ),
)

# Session detail: every entry may contribute
DETAIL_ACCOMPLISHMENTS: PatternTable = (
    (
        "tool_completion",
        re.compile(
            r"(?:I've|I have|Just|Successfully)\s+(?:used|called|ran|executed)\s+(?:the\s+)?(\w+)\s+tool\s+to\s+([^.]{15,100})",
            re.I,
        ),
        lambda m: f"{m.group(1)}: {m.group(2).strip()}",
    ),
    ("done_marker", re.compile(r"(?:Done|Complete|Finished)[:.!]\s*([^.\n]{15,100})", re.I), _group(1)),
    (
        "now_is",
        re.compile(r"Now\s+(?:the\s+)?(\w+)\s+(?:is|are|has|have|works?)\s+([^.]{10,80})", re.I),
        lambda m: f"{m.group(1)} {m.group(2).strip()}" if len(m.group(1)) + len(m.group(2)) > 12 else "",
    ),
    (
        "action_verb",
        re.compile(
            r"(?:Made|Updated|Fixed|Changed|Created|Added|Removed|Refactored|Implemented|Resolved)\s+(?:the\s+)?([^.\n]{15,100})",
            re.I,
        ),
        _group(1),
    ),
    (
        "the_now",
        re.compile(r"The\s+(\w+)\s+now\s+([^.]{10,80})", re.I),
        lambda m: f"{m.group(1)} now {m.group(2).strip()}" if len(m.group(1)) + len(m.group(2)) > 12 else "",
    ),
    ("commit_command", COMMIT_COMMAND, _prefixed("Committed: ")),
    (
        "first_person",
        re.compile(
            r"(?:I've |I have |Successfully )(?:completed?|implemented?|fixed?|created?|added?|updated?|changed?):?\s*([^.\n]{15,100})",
            re.I,
        ),
        _group(1),
    ),
    (
        "completed_the",
        re.compile(r"(?:completed?|implemented?|fixed?|created?|built?|added?|updated?)\s+(?:the\s+)?([^.\n]{15,100})", re.I),
        _group(1),
    ),
    ("test_count", re.compile(r"(\d+)\s*tests?\s*passed", re.I), lambda m: f"{m.group(1)} tests passed"),
    ("all_tests", re.compile(r"all\s*tests?\s*(?:passed|succeeded)", re.I), _constant("All tests passed")),
    ("build", re.compile(r"build\s*(?:succeeded|completed|passed)", re.I), _constant("Build succeeded")),
    ("compile", re.compile(r"(?:compiled|built)\s*successfully", re.I), _constant("Built successfully")),
)

# Success lines in tool output
TOOL_RESULT_ACCOMPLISHMENTS: PatternTable = (
    ("build_done", re.compile(r"✨ Done|Successfully compiled"), _constant("Build completed")),
    ("tests_passing", re.compile(r"\d+\s+passing|\d+\s+passed|All tests passed", re.I), _constant("Tests passed")),
    (
        "success_line",
        re.compile(r"(?:successfully|completed|done|finished)[:\s]+([^.\n]{15,80})", re.I),
        _group(1),
    ),
)

DECISION_PATTERNS = (
    re.compile(r"(?:decided to|chose to|will use|going with|approach is)[\s:]+([^.\n]{20,100})", re.I),
    re.compile(r"(?:best option|recommended|should use)[\s:]+([^.\n]{20,100})", re.I),
    re.compile(r"(?:because|the reason)[\s:]+([^.\n]{20,100})", re.I),
)

FILE_EDITING_TOOLS = frozenset({"Edit", "Write", "MultiEdit", "NotebookEdit"})

MAX_SESSION_ACCOMPLISHMENTS = 3
MAX_DETAIL_ACCOMPLISHMENTS = 8
MAX_DECISIONS = 3
MAX_DETAIL_TOOLS = 8
MAX_DETAIL_FILES = 10


def _first_match(table: PatternTable, content: str) -> str | None:
    for _name, pattern, render in table:
        match = pattern.search(content)
        if match:
            return render(match)
    return None


def _all_matches(table: PatternTable, content: str) -> list[str]:
    found = []
    for _name, pattern, render in table:
        match = pattern.search(content)
        if match:
            text = render(match)
            if text:
                found.append(text)
    return found


def session_accomplishments(messages: list[Message]) -> list[str]:
    """One accomplishment per assistant message, top 3."""
    found = []
    for message in messages:
        if message.role != "assistant":
            continue
        text = _first_match(SESSION_ACCOMPLISHMENTS, message.content)
        if text:
            found.append(text)
    return _dedupe(found)[:MAX_SESSION_ACCOMPLISHMENTS]


def is_valid_accomplishment(text: str) -> bool:
    """At least 15 chars and two words; not a bare path or markdown debris."""
    trimmed = text.strip()
    if len(trimmed) < 15:
        return False
    if len([w for w in trimmed.split() if len(w) > 1]) < 2:
        return False
    if re.fullmatch(r"[/.\w]+", trimmed):
        return False
    return not re.match(r"[*`#]+", trimmed)


def detail_accomplishments(messages: list[Message]) -> list[str]:
    """Validated accomplishments from assistant prose and tool output, top 8."""
    raw: list[str] = []
    for message in messages:
        if message.role != "assistant":
            continue
        content = message.content
        raw.extend(_all_matches(DETAIL_ACCOMPLISHMENTS, content))

        if not COMMIT_COMMAND.search(content):
            commit = COMMIT_PHRASE.search(content)
            if commit:
                raw.append(f"Committed: {commit.group(1)}")

        if FILE_EDITING_TOOLS.intersection(message.tools) and message.files:
            name = _basename(message.files[0])
            if len(name) > 3:
                raw.append(f"Modified {name}")

    for message in messages:
        if message.role == "tool_result" and len(message.content) > 20:
            raw.extend(_all_matches(TOOL_RESULT_ACCOMPLISHMENTS, message.content))

    return _dedupe([a for a in raw if is_valid_accomplishment(a)])[:MAX_DETAIL_ACCOMPLISHMENTS]


def key_decisions(messages: list[Message]) -> list[str]:
    decisions = []
    for message in messages:
        if message.role != "assistant":
            continue
        for pattern in DECISION_PATTERNS:
            decisions.extend(m.group(1).strip() for m in pattern.finditer(message.content))
    return _dedupe(decisions)[:MAX_DECISIONS]


def tools_used(messages: list[Message], limit: int = MAX_DETAIL_TOOLS) -> list[str]:
    return _dedupe([tool for m in messages for tool in m.tools])[:limit]


def files_modified(messages: list[Message]) -> list[str]:
    names = [_basename(f) for m in messages for f in m.files]
    return _dedupe([n for n in names if len(n) > 2])[:MAX_DETAIL_FILES]


def session_quality(tool_count: int, message_count: int, error_count: int = 0) -> str:
    score = tool_count * 10 + message_count * 0.5 - error_count * 5
    if score > 50:
        return "excellent"
    if score > 25:
        return "good"
    if score > 10:
        return "average"
    return "poor"


# Error gates

ACTUAL_ERROR_INDICATORS = (
    re.compile(r"error[:\s]", re.I),
    re.compile(r"exception[:\s]", re.I),
    re.compile(r"failed", re.I),
    re.compile(r"\w+Error", re.I),
    re.compile(r"cannot\s+", re.I),
    re.compile(r"undefined\s+is\s+not", re.I),
    re.compile(r"not\s+found", re.I),
    re.compile(r"invalid", re.I),
    re.compile(r"stack trace", re.I),
    re.compile(r"at\s+\w+\s+\([^)]+:\d+:\d+\)"),
)

META_ERROR_INDICATORS = (
    re.compile(r"\d+/\d+.*(?:pass|fail|queries|results)", re.I),
    re.compile(r"(?:test|benchmark|verify).*(?:error|solution)", re.I),
    re.compile(r"(?:plan|design|implement).*(?:error handling|solution)", re.I),
    re.compile(r"root\s+cause.*:", re.I),
    re.compile(r"(?:⚠️|✅|❌|🔴|🟢)"),
    re.compile(r"\|\s*(?:tool|status|issue)", re.I),
)

SPECIFIC_ERROR_CODES = (
    "enoent", "eacces", "etimedout", "econnrefused", "eperm", "eexist", "enotdir",
    "eisdir", "eaddrinuse", "econnreset", "ehostunreach", "typeerror",
    "referenceerror", "syntaxerror", "rangeerror", "urierror",
)

ERROR_PHRASES = (
    "connection refused", "permission denied", "no such file", "not found",
    "module not found", "command not found", "cannot read", "cannot find",
    "is not a function", "is not defined", "undefined is not", "null is not",
    "build failed", "compile error", "test failed", "npm err", "yarn error",
    "exit code", "stack trace", "uncaught exception", "unhandled rejection",
)

ERROR_TYPE = re.compile(r"(typeerror|syntaxerror|referenceerror|rangeerror|error)")


def is_actual_error(content: str) -> bool:
    """Content shows an error occurrence: error vocabulary or a stack frame."""
    return any(p.search(content) for p in ACTUAL_ERROR_INDICATORS)


def is_meta_error_content(content: str) -> bool:
    """Content talks about errors: scoreboards, plans, status tables."""
    return any(p.search(content) for p in META_ERROR_INDICATORS)


def has_error_in_content(content: str, error_pattern: str) -> bool:
    lower_content = content.lower()
    lower_pattern = re.sub(r"[!?.:]+", "", error_pattern.lower()).strip()
    if not lower_pattern:
        return False
    if lower_pattern in lower_content:
        return True

    # A specific code must appear itself, not just generic error text
    codes = [code for code in SPECIFIC_ERROR_CODES if code in lower_pattern]
    if codes:
        return any(code in lower_content for code in codes)

    words = [w for w in re.split(r"[\s:_-]+", lower_pattern) if len(w) > 2]
    if not words:
        return False

    for phrase in ERROR_PHRASES:
        parts = phrase.split(" ")
        if len(parts) > 1 and parts[0] in lower_pattern and phrase in lower_content:
            return True

    matched = sum(1 for w in words if w in lower_content)
    return matched >= min(2, len(words))


def matches_error_context(errors: list[str], error_pattern: str) -> bool:
    """Check a message's extracted errors against the requested pattern.

    An error type named in the pattern (TypeError, ...) must appear. Then
    the full pattern, or at least min(3, n) of its words, must match.
    """
    lower_pattern = error_pattern.lower()
    words = [w for w in lower_pattern.split() if len(w) > 2]
    type_match = ERROR_TYPE.search(lower_pattern)
    error_type = type_match.group(0) if type_match else None

    for error in errors:
        lower_error = error.lower()
        if error_type and error_type not in lower_error:
            continue
        if lower_pattern in lower_error:
            return True
        if words and sum(1 for w in words if w in lower_error) >= min(3, len(words)):
            return True
    return False


def error_key(errors: list[str], error_pattern: str) -> str:
    lower_pattern = error_pattern.lower()
    for error in errors:
        if lower_pattern in error.lower():
            return error
    return errors[0] if errors else error_pattern


def solution_context(messages: list[Message]) -> str:
    return " ".join(m.content for m in messages)[:200] + "..."


# Tool usage

CORE_TOOLS = frozenset({"Edit", "Read", "Bash", "Grep", "Glob", "Write", "Task", "MultiEdit", "Notebook"})
FILE_TOOLS = frozenset({"Edit", "Write", "Read"})
BASH_BLOCK = re.compile(r"```(?:bash|sh|shell|)\n(.{5,80})\n")
EXTENSION = re.compile(r"\.(\w+)$")

MAX_TOOL_PATTERNS = 10
MAX_BEST_PRACTICES = 5
PATTERN_SAMPLE = 25

# (tool, minimum usages, advice)
TOOL_ADVICE = (
    ("Edit", 5, "Frequent file modifications - consider atomic changes"),
    ("Bash", 3, "Multiple command executions - verify error handling"),
    ("Read", 10, "Heavy file reading - consider caching"),
)


def tool_patterns(tool: str, messages: list[Message]) -> list[str]:
    """Concrete usages of a tool: files it touched, described uses, commands."""
    mention = re.compile(
        rf"(?:use|using|called?)\s+(?:the\s+)?{re.escape(tool)}(?:\s+tool)?\s+(?:to|on|for)\s+([^.\n]{{10,60}})",
        re.I,
    )
    patterns = []
    for message in messages[:PATTERN_SAMPLE]:
        if tool in FILE_TOOLS:
            patterns.extend(f"{tool}: {_basename(f)}" for f in message.files[:3])

        match = mention.search(message.content)
        if match:
            patterns.append(f"{tool}: {match.group(1).strip()}")

        if tool == "Bash":
            block = BASH_BLOCK.search(message.content)
            if block:
                patterns.append(f"$ {block.group(1)[:60]}")
    return _dedupe(patterns)[:MAX_TOOL_PATTERNS]


def best_practices(tool: str, messages: list[Message]) -> list[str]:
    """Practices derived from observed usage: file types, success rate, advice."""
    practices = []
    extensions: list[str] = []
    successes = 0
    for message in messages:
        if not message.errors:
            successes += 1
        for f in message.files:
            match = EXTENSION.search(f)
            if match:
                extensions.append(match.group(1))

    if extensions:
        practices.append(f"Used with: {', '.join(_dedupe(extensions)[:5])} files")
    if successes:
        rate = round(successes / len(messages) * 100)
        practices.append(f"{rate}% success rate ({successes}/{len(messages)} uses)")

    for advice_tool, minimum, advice in TOOL_ADVICE:
        if tool == advice_tool:
            if len(messages) > minimum:
                practices.append(advice)
            break
    return practices[:MAX_BEST_PRACTICES]


def common_patterns(messages: list[Message]) -> list[str]:
    """Top tool combinations and file types across messages."""
    combos: Counter[str] = Counter()
    file_types: Counter[str] = Counter()
    for message in messages:
        if message.tools:
            combos[" → ".join(sorted(message.tools))] += 1
        for f in message.files:
            suffix = f.rsplit(".", 1)[-1]
            if suffix:
                file_types[suffix] += 1

    patterns = [f"{combo} ({count}x successful)" for combo, count in combos.most_common(3)]
    if file_types:
        top = ", ".join(f"{t} ({c}x)" for t, c in file_types.most_common(3))
        patterns.append(f"Common files: {top}")
    return patterns


def infer_operation_type(messages: list[Message]) -> str:
    for message in messages:
        lower = message.content.lower()
        if "write" in lower or "edit" in lower or "Edit" in message.tools:
            return "edit"
    return "read"


# File context


def path_variations(file_path: str) -> list[str]:
    lower = file_path.lower()
    variations = [
        lower,
        lower.replace("\\", "/"),
        lower.replace("/", "\\"),
        lower.split("/")[-1],
        lower.split("\\")[-1],
    ]
    return [v for v in dict.fromkeys(variations) if v]


def references_file(message: Message, file_path: str) -> bool:
    """Whether a message names ``file_path`` in its context or content."""
    path_lower = file_path.lower()
    for ref in message.files:
        ref_lower = ref.lower()
        if (
            path_lower in ref_lower
            or ref_lower in path_lower
            or ref_lower.split("/")[-1] == path_lower
            or path_lower.split("/")[-1] == ref_lower
            or path_lower.replace("\\", "/") in ref_lower
            or path_lower.replace("/", "\\") in ref_lower
        ):
            return True

    content = message.content.lower()
    return any(v in content for v in path_variations(file_path))


# Plans

PLAN_TITLE = re.compile(r"^#\s+(.+)$", re.M)
PLAN_SECTION = re.compile(r"^##\s+(.+)$", re.M)
PLAN_FILE_PATTERNS = (
    (re.compile(r"[\w\-./]+\.(?:ts|js|json|md|py|tsx|jsx|css|scss|html|yml|yaml|toml|sh)"), 0),
    (re.compile(r"`([^`]+\.\w{1,5})`"), 1),
    (re.compile(r"src/[\w\-./]+"), 0),
)
MAX_PLAN_FILES = 20


def plan_title(content: str) -> str | None:
    match = PLAN_TITLE.search(content)
    return match.group(1).strip() if match else None


def plan_sections(content: str) -> list[str]:
    return [m.group(1).strip() for m in PLAN_SECTION.finditer(content)]


def plan_file_references(content: str) -> list[str]:
    files = []
    for pattern, group in PLAN_FILE_PATTERNS:
        for match in pattern.finditer(content):
            name = match.group(group)
            if 2 < len(name) < 100:
                files.append(name)
    return _dedupe(files)[:MAX_PLAN_FILES]
