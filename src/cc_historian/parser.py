"""JSONL session parsing and context extraction."""

import json
import logging
import re
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from cc_historian.content import preserve_for_storage
from cc_historian.corpus import decode_project_path
from cc_historian.models import Message, MessageContext

logger = logging.getLogger(__name__)

# Timestamps at or before this year are placeholders, not real times
MIN_VALID_YEAR = 2021

MAX_TOOL_RESULT_CHARS = 1000

_EXTENSIONS = (
    r"ts|tsx|js|jsx|json|md|py|java|cpp|c|h|css|html|yml|yaml|toml|rs|go|txt|log|env|config"
    r"|gitignore|lock|sql|sh|bat|php|rb|swift|kt|scala|fs|clj|ex|elm|vue|svelte|astro"
)

# (pattern, group holding the path)
FILE_PATTERNS = (
    (re.compile(rf"[\w\-/\\.]+\.(?:{_EXTENSIONS})(?:\b|$)", re.IGNORECASE), 0),
    (re.compile(r"(?:modified|added|deleted|new file|renamed):\s+([^\n\r\t]+)", re.IGNORECASE), 1),
    (re.compile(rf"(?:src/|\./|\.\./|~/|/)[^\s]+\.(?:{_EXTENSIONS})", re.IGNORECASE), 0),
    (
        re.compile(
            r"\b(CLAUDE\.md|README\.md|package\.json|pyproject\.toml|tsconfig\.json|Dockerfile"
            r"|docker-compose\.yml|\.env|\.gitignore)\b"
        ),
        1,
    ),
    (re.compile(r"src/[\w\-/\\.]+"), 0),
    (re.compile(r"\./[\w\-/\\.]+"), 0),
)

TOOL_NAME_PATTERNS = (
    re.compile(r"\[Tool:\s*(\w+)\]", re.IGNORECASE),
    re.compile(r"Called the (\w+) tool", re.IGNORECASE),
    re.compile(r"\bmcp__[\w-]+__([\w-]+)", re.IGNORECASE),
    re.compile(r"Result of calling the (\w+) tool", re.IGNORECASE),
    re.compile(r"tool_use.*?\"name\":\s*\"([^\"]+)\"", re.IGNORECASE),
)

ERROR_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"error[:\s]+[^\n]+",
        r"failed[:\s]+[^\n]+",
        r"exception[:\s]+[^\n]+",
        r"cannot[:\s]+[^\n]+",
        r"unable to[:\s]+[^\n]+",
        r"(?:ENOENT|EACCES|ETIMEDOUT|ECONNREFUSED|EPERM|EEXIST|ENOTDIR|EISDIR)[:\s]+[^\n]+",
        r"(?:TypeError|ReferenceError|SyntaxError|RangeError|URIError|ValueError|KeyError)[:\s]+[^\n]+",
        r"permission denied[:\s]*[^\n]*",
        r"connection refused[:\s]*[^\n]*",
        r"module not found[:\s]*[^\n]*",
        r"command not found[:\s]*[^\n]*",
        r"no such file[:\s]*[^\n]*",
        r"not found[:\s]*[^\n]*",
    )
)

# (pattern, label, minimum captured length)
INSIGHT_PATTERNS = (
    (re.compile(r"(?:solution|fix|resolve|answer)[:\s]*([^\n.]{20,200})", re.IGNORECASE), "Solution", 15),
    (re.compile(r"(?:here's how|to fix this|you can)[:\s]*([^\n.]{20,200})", re.IGNORECASE), "Solution", 15),
    (re.compile(r"(?:the issue is|problem is|cause is)[:\s]*([^\n.]{20,200})", re.IGNORECASE), "Solution", 15),
    (re.compile(r"(?:✅|✓|fixed|solved|resolved)[:\s]*([^\n.]{15,150})", re.IGNORECASE), "Solution", 15),
    (re.compile(r"(?:this means|this is because|the reason)[:\s]*([^\n.]{25,250})", re.IGNORECASE), "Explanation", 20),
    (re.compile(r"(?:explanation|basically|in other words)[:\s]*([^\n.]{25,200})", re.IGNORECASE), "Explanation", 20),
)

ACTION_PATTERNS = (
    re.compile(r"(?:next step|now|then|first|finally|to do)[:\s]*([^\n.]{15,150})", re.IGNORECASE),
    re.compile(r"(?:run|execute|install|update|create|add|remove)[:\s]*([^\n.]{10,100})", re.IGNORECASE),
    re.compile(r"(?:you should|you need to|you can)[:\s]*([^\n.]{15,150})", re.IGNORECASE),
    re.compile(r"\d+\.\s+([^\n.]{15,150})"),
    re.compile(r"[-*]\s+([^\n.]{15,150})"),
)

FENCED_CODE = re.compile(r"```\w*\n([\s\S]*?)\n```")
INLINE_CODE = re.compile(r"`([^`\n]{10,120})`")
ANY_FENCE = re.compile(r"```[\s\S]*?```")

MAX_INSIGHTS = 3
MAX_SNIPPETS = 5
MAX_ACTIONS = 4
MAX_SNIPPET_CHARS = 400


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO timestamp; None when missing, malformed or a placeholder."""
    if not isinstance(value, str) or not value:
        return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    if ts.year < MIN_VALID_YEAR:
        return None
    return ts


def clean_tool_name(name: str) -> str:
    """mcp__server__do_thing -> dothing, Read -> Read"""
    return re.sub(r"[_-]", "", re.sub(r"^mcp__.*?__", "", name))


def extract_text(message: dict[str, Any]) -> str:
    """Flatten a message's content blocks into searchable text."""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""

    parts: list[str] = []
    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            text = block.get("text")
            if isinstance(text, str):
                parts.append(text)
        elif block_type == "tool_use":
            parts.append(f"[Tool: {block.get('name', 'unknown')}]")
        elif block_type == "tool_result":
            result = block.get("content", "")
            if isinstance(result, list):
                result = " ".join(
                    item["text"] for item in result if isinstance(item, dict) and isinstance(item.get("text"), str)
                )
            if isinstance(result, str) and result.strip():
                parts.append(f"[Tool Result] {result[:MAX_TOOL_RESULT_CHARS]}")
            else:
                parts.append("[Tool Result]")
    return " ".join(p for p in parts if p).strip()


def derive_role(record: dict[str, Any]) -> str:
    """Map a raw record to user, assistant, tool_use or tool_result."""
    record_type = record.get("type", "")
    if record_type in ("tool_use", "tool_result"):
        return record_type

    content = (record.get("message") or {}).get("content")
    if isinstance(content, list):
        block_types = {b.get("type") for b in content if isinstance(b, dict)}
        if record_type == "user" and block_types == {"tool_result"}:
            return "tool_result"
        if record_type == "assistant" and block_types == {"tool_use"}:
            return "tool_use"
    return record_type


def _tool_blocks(record: dict[str, Any]) -> list[dict[str, Any]]:
    content = (record.get("message") or {}).get("content")
    if not isinstance(content, list):
        return []
    return [b for b in content if isinstance(b, dict) and b.get("type") == "tool_use" and b.get("name")]


def extract_context(record: dict[str, Any], content: str, role: str) -> MessageContext | None:
    """Pull files, tools, errors, snippets, insights and actions out of a record."""
    files: list[str] = []
    for pattern, group in FILE_PATTERNS:
        for match in pattern.finditer(content):
            files.append(match.group(group).strip())

    tools: list[str] = []
    bash_commands: list[str] = []
    for block in _tool_blocks(record):
        name = clean_tool_name(block["name"])
        if name:
            tools.append(name)
        tool_input = block.get("input")
        if not isinstance(tool_input, dict):
            continue
        for key in ("file_path", "filepath", "path", "notebook_path"):
            value = tool_input.get(key)
            if isinstance(value, str) and value:
                files.append(value)
                break
        pattern_value = tool_input.get("pattern")
        if isinstance(pattern_value, str) and "/" in pattern_value:
            files.append(pattern_value)
        command = tool_input.get("command")
        if isinstance(command, str) and command:
            bash_commands.append(command[:100])

    for pattern in TOOL_NAME_PATTERNS:
        for match in pattern.finditer(content):
            name = clean_tool_name(match.group(1))
            if name:
                tools.append(name)

    errors = [m.group(0)[:100] for p in ERROR_PATTERNS for m in p.finditer(content)]

    context = MessageContext(
        files_referenced=_unique([f for f in files if f]),
        tools_used=_unique(tools),
        error_patterns=_unique(errors),
        code_snippets=extract_code_snippets(content),
        insights=extract_insights(content) if role == "assistant" else [],
        action_items=extract_action_items(content),
        bash_commands=_unique(bash_commands),
    )
    return None if context.is_empty() else context


def extract_insights(content: str) -> list[str]:
    insights: list[str] = []
    for pattern, label, min_length in INSIGHT_PATTERNS:
        for match in pattern.finditer(content):
            text = match.group(1).strip()
            if len(text) > min_length:
                insights.append(f"{label}: {text}")
    return _unique(insights)[:MAX_INSIGHTS]


def extract_code_snippets(content: str) -> list[str]:
    snippets: list[str] = []
    for match in FENCED_CODE.finditer(content):
        snippet = match.group(1).strip()
        if len(snippet) > 10:
            if len(snippet) > MAX_SNIPPET_CHARS:
                snippet = snippet[:MAX_SNIPPET_CHARS] + "..."
            snippets.append(snippet)

    # Inline spans outside fenced blocks only
    for match in INLINE_CODE.finditer(ANY_FENCE.sub("", content)):
        inline = match.group(1)
        if not any(inline in s for s in snippets):
            snippets.append(inline)

    return snippets[:MAX_SNIPPETS]


def extract_action_items(content: str) -> list[str]:
    actions: list[str] = []
    for pattern in ACTION_PATTERNS:
        for match in pattern.finditer(content):
            action = match.group(1).strip()
            if len(action) > 10 and not any(action[:20] in a for a in actions):
                actions.append(action)
    return actions[:MAX_ACTIONS]


def parse_record(record: dict[str, Any], path: Path, line_num: int, project_dir: str) -> Message | None:
    """Build a Message from one decoded line, or None when it has no content."""
    content = extract_text(record.get("message") or {})
    if not content:
        return None

    role = derive_role(record)
    return Message(
        id=record.get("uuid") or f"{path.stem}-{line_num}",
        timestamp=parse_timestamp(record.get("timestamp")),
        role=role,
        content=preserve_for_storage(content),
        session_id=record.get("sessionId") or path.stem,
        project_path=decode_project_path(project_dir),
        project_dir=project_dir,
        cwd=record.get("cwd") or "",
        context=extract_context(record, content, role),
    )


def iter_messages(path: Path, project_dir: str) -> Iterator[Message]:
    """Stream messages from a JSONL session file, skipping malformed lines."""
    with open(path, encoding="utf-8", errors="replace") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue

            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("Skipping malformed line %d in %s: %s", line_num, path.name, e)
                continue

            if not isinstance(record, dict):
                logger.warning("Skipping non-object line %d in %s", line_num, path.name)
                continue

            if not isinstance(record.get("message") or {}, dict):
                logger.warning("Skipping malformed line %d in %s: message is not an object", line_num, path.name)
                continue

            try:
                message = parse_record(record, path, line_num, project_dir)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed line %d in %s: %s", line_num, path.name, e)
                continue
            if message is not None:
                yield message


def parse_session_file(path: Path, project_dir: str | None = None) -> list[Message]:
    """Parse a whole session file. Unreadable files yield no messages."""
    project_dir = project_dir if project_dir is not None else path.parent.name
    try:
        return list(iter_messages(path, project_dir))
    except OSError as e:
        logger.error("Error reading %s: %s", path, e)
        return []
