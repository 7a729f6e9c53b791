"""Data models for cc-historian."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


@dataclass
class MessageContext:
    """Structured details extracted from a message's content."""

    files_referenced: list[str] = field(default_factory=list)
    tools_used: list[str] = field(default_factory=list)
    error_patterns: list[str] = field(default_factory=list)
    code_snippets: list[str] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    bash_commands: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(
            (
                self.files_referenced,
                self.tools_used,
                self.error_patterns,
                self.code_snippets,
                self.insights,
                self.action_items,
                self.bash_commands,
            )
        )


@dataclass
class Message:
    """A single conversational turn from a session file."""

    id: str
    timestamp: datetime | None  # None when missing or invalid
    role: str  # "user" | "assistant" | "tool_use" | "tool_result"
    content: str
    session_id: str
    project_path: str
    project_dir: str = ""
    cwd: str = ""
    relevance_score: float = 0.0
    final_score: float | None = None
    context: MessageContext | None = None

    @property
    def tools(self) -> list[str]:
        return self.context.tools_used if self.context else []

    @property
    def files(self) -> list[str]:
        return self.context.files_referenced if self.context else []

    @property
    def errors(self) -> list[str]:
        return self.context.error_patterns if self.context else []

    @property
    def snippets(self) -> list[str]:
        return self.context.code_snippets if self.context else []

    @property
    def effective_score(self) -> float:
        """Final score when re-ranked, otherwise the base relevance score."""
        if self.final_score is not None:
            return self.final_score
        return self.relevance_score


@dataclass
class QueryAnalysis:
    """Intent classification of a free-text query."""

    query_type: str  # "error" | "implementation" | "analysis" | "general"
    urgency: str  # "high" | "medium"
    scope: str  # "broad" | "focused"
    expects_code: bool
    expects_solution: bool
    keywords: list[str] = field(default_factory=list)
    significant_terms: list[str] = field(default_factory=list)
    semantic_boosts: dict[str, float] = field(default_factory=dict)


@dataclass
class SearchResult:
    """Ranked messages for a query."""

    messages: list[Message]
    total_results: int
    query: str
    execution_time_ms: int


@dataclass
class FileContext:
    """Messages touching a file, grouped per session file."""

    file_path: str
    last_modified: datetime | None
    related_messages: list[Message]
    operation_type: str  # "read" | "write" | "edit" | "delete"


@dataclass
class ErrorSolution:
    """An error pattern with the assistant messages that followed it."""

    error_pattern: str
    solutions: list[Message]
    context: str
    frequency: int


@dataclass
class ToolPattern:
    """Usage of a tool, or of a workflow chain such as "Read → Edit"."""

    tool_name: str
    usages: list[Message]
    common_patterns: list[str] = field(default_factory=list)
    best_practices: list[str] = field(default_factory=list)

    @property
    def is_workflow(self) -> bool:
        return "→" in self.tool_name


@dataclass
class SessionSummary:
    """A session as listed by recent-session queries."""

    session_id: str
    project_dir: str
    project_path: str
    project_name: str
    start_time: datetime | None
    end_time: datetime | None
    duration_minutes: int
    message_count: int
    assistant_count: int
    error_count: int
    tools_used: list[str] = field(default_factory=list)
    quality: str = "poor"  # "excellent" | "good" | "average" | "poor"
    accomplishments: list[str] = field(default_factory=list)


@dataclass
class SessionDetail:
    """Rich summary of a single session."""

    session_id: str
    project_path: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_minutes: int = 0
    message_count: int = 0
    tools_used: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    accomplishments: list[str] = field(default_factory=list)
    key_decisions: list[str] = field(default_factory=list)


@dataclass
class PlanResult:
    """A planning document matching a query."""

    name: str
    path: Path
    title: str | None
    content: str
    sections: list[str]
    files_mentioned: list[str]
    timestamp: datetime
    relevance_score: float
