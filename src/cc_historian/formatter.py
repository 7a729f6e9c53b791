"""Human and JSON output for engine results."""

import re
from datetime import datetime, timezone
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from cc_historian.content import display_budget, truncate
from cc_historian.models import (
    ErrorSolution,
    FileContext,
    Message,
    PlanResult,
    SearchResult,
    SessionDetail,
    SessionSummary,
    ToolPattern,
)

console = Console()

ROLE_STYLES = {
    "user": "cyan",
    "assistant": "green",
    "tool_use": "magenta",
    "tool_result": "yellow",
}


def format_age(timestamp: datetime | None) -> str:
    """Relative age such as "3 days ago"."""
    if timestamp is None:
        return "unknown time"
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    age = datetime.now(tz=timezone.utc) - timestamp
    if age.days > 0:
        return f"{age.days} days ago"
    elif age.seconds > 3600:
        return f"{age.seconds // 3600} hours ago"
    else:
        return f"{age.seconds // 60} minutes ago"


def _iso(timestamp: datetime | None) -> str | None:
    return timestamp.isoformat() if timestamp else None


def highlight_matches(text: str, query: str) -> str:
    """Escape ``text`` for Rich and highlight query terms."""
    text = escape(text)
    for term in query.lower().split():
        # Skip very short terms to avoid too many highlights
        if len(term) < 3:
            continue
        pattern = re.compile(re.escape(escape(term)), re.IGNORECASE)
        text = pattern.sub(lambda m: f"[bold yellow]{m.group()}[/bold yellow]", text)
    return text


def _display_text(content: str) -> str:
    return truncate(content, display_budget(content))


def message_to_dict(message: Message) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": message.id,
        "timestamp": _iso(message.timestamp),
        "role": message.role,
        "content": message.content,
        "session_id": message.session_id,
        "project_path": message.project_path,
        "relevance_score": round(message.effective_score, 4),
    }
    if message.context and not message.context.is_empty():
        ctx = message.context
        data["context"] = {
            "files_referenced": ctx.files_referenced,
            "tools_used": ctx.tools_used,
            "error_patterns": ctx.error_patterns,
            "code_snippets": ctx.code_snippets,
            "insights": ctx.insights,
            "action_items": ctx.action_items,
            "bash_commands": ctx.bash_commands,
        }
    return data


def _message_panel(message: Message, rank: int, query: str = "") -> Panel:
    header = Text()
    header.append(f"[{rank}] ", style="bold cyan")
    header.append(message.role, style=ROLE_STYLES.get(message.role, "white"))
    header.append(f" | {message.project_path}", style="green")
    header.append(f" | {format_age(message.timestamp)}", style="dim")
    header.append(f" | score {message.effective_score:.1f}", style="dim")

    body = highlight_matches(_display_text(message.content), query)
    if message.tools:
        body += f"\n[dim]tools: {escape(', '.join(message.tools))}[/dim]"
    if message.files:
        body += f"\n[dim]files: {escape(', '.join(message.files[:5]))}[/dim]"

    return Panel(
        body,
        title=header,
        subtitle=f"→ session {message.session_id[:8]}",
        subtitle_align="left",
    )


# search


def format_search(result: SearchResult, project_filter: str | None = None) -> None:
    if not result.messages:
        if project_filter:
            console.print(f"[yellow]No sessions found for project '{escape(project_filter)}'[/yellow]")
        else:
            console.print("[yellow]No results found. Try a different query.[/yellow]")
        return

    for i, message in enumerate(result.messages, 1):
        console.print(_message_panel(message, i, result.query))
        console.print()

    console.print("─" * 50)
    console.print(
        f"Showing {len(result.messages)} of {result.total_results} candidates "
        f"in {result.execution_time_ms}ms"
    )


def search_to_dict(result: SearchResult) -> dict[str, Any]:
    return {
        "results": [message_to_dict(m) for m in result.messages],
        "query": result.query,
        "total_results": result.total_results,
        "search_time_ms": result.execution_time_ms,
    }


# similar


def format_similar(messages: list[Message], query: str) -> None:
    if not messages:
        console.print("[yellow]No similar questions found.[/yellow]")
        return

    for i, message in enumerate(messages, 1):
        console.print(_message_panel(message, i, query))
        answers = message.context.insights if message.context else []
        if answers:
            console.print(f"  [green]Answer:[/green] {escape(answers[0])}")
        console.print()


def similar_to_dict(messages: list[Message], query: str) -> dict[str, Any]:
    return {
        "query": query,
        "results": [
            {
                **message_to_dict(m),
                "answer": m.context.insights[0] if m.context and m.context.insights else None,
            }
            for m in messages
        ],
    }


# file context


def format_file_context(contexts: list[FileContext], file_path: str) -> None:
    if not contexts:
        console.print(f"[yellow]No history found for '{escape(file_path)}'.[/yellow]")
        return

    for ctx in contexts:
        console.print(
            f"[bold cyan]{escape(ctx.file_path)}[/bold cyan] "
            f"[dim]({ctx.operation_type}, {format_age(ctx.last_modified)})[/dim]"
        )
        for i, message in enumerate(ctx.related_messages, 1):
            console.print(_message_panel(message, i, file_path))
        console.print()


def file_context_to_dict(contexts: list[FileContext], file_path: str) -> dict[str, Any]:
    return {
        "file_path": file_path,
        "contexts": [
            {
                "file_path": ctx.file_path,
                "last_modified": _iso(ctx.last_modified),
                "operation_type": ctx.operation_type,
                "related_messages": [message_to_dict(m) for m in ctx.related_messages],
            }
            for ctx in contexts
        ],
    }


# errors


def format_error_solutions(solutions: list[ErrorSolution], error_pattern: str) -> None:
    if not solutions:
        console.print(f"[yellow]No solutions found for '{escape(error_pattern)}'.[/yellow]")
        return

    for solution in solutions:
        console.print(
            f"[bold red]{escape(solution.error_pattern)}[/bold red] "
            f"[dim](seen {solution.frequency}x)[/dim]"
        )
        console.print(f"  [dim]{escape(solution.context)}[/dim]")
        for i, message in enumerate(solution.solutions, 1):
            console.print(_message_panel(message, i, error_pattern))
        console.print()


def error_solutions_to_dict(solutions: list[ErrorSolution], error_pattern: str) -> dict[str, Any]:
    return {
        "error_pattern": error_pattern,
        "solutions": [
            {
                "error_pattern": s.error_pattern,
                "frequency": s.frequency,
                "context": s.context,
                "solutions": [message_to_dict(m) for m in s.solutions],
            }
            for s in solutions
        ],
    }


# tools


def format_tool_patterns(patterns: list[ToolPattern]) -> None:
    if not patterns:
        console.print("[yellow]No tool usage found.[/yellow]")
        return

    for pattern in patterns:
        kind = "workflow" if pattern.is_workflow else "tool"
        lines = ["[bold]Patterns[/bold]"]
        lines.extend(f"  • {escape(p)}" for p in pattern.common_patterns)
        lines.append("[bold]Best practices[/bold]")
        lines.extend(f"  • {escape(p)}" for p in pattern.best_practices)
        console.print(
            Panel(
                "\n".join(lines),
                title=f"[bold cyan]{escape(pattern.tool_name)}[/bold cyan] [dim]{kind}[/dim]",
                subtitle=f"{len(pattern.usages)} usages",
                subtitle_align="left",
            )
        )


def tool_patterns_to_dict(patterns: list[ToolPattern]) -> dict[str, Any]:
    return {
        "patterns": [
            {
                "tool_name": p.tool_name,
                "is_workflow": p.is_workflow,
                "usage_count": len(p.usages),
                "common_patterns": p.common_patterns,
                "best_practices": p.best_practices,
            }
            for p in patterns
        ]
    }


# sessions


def format_sessions(sessions: list[SessionSummary]) -> None:
    if not sessions:
        console.print("[yellow]No sessions found.[/yellow]")
        return

    for session in sessions:
        console.print(
            f"[cyan]{session.session_id[:8]}[/cyan] [green]{escape(session.project_name)}[/green] "
            f"[dim]{format_age(session.end_time)} | {session.duration_minutes} min | "
            f"{session.message_count} messages | {session.quality}[/dim]"
        )
        if session.tools_used:
            console.print(f"  tools: {escape(', '.join(session.tools_used))}")
        for item in session.accomplishments:
            console.print(f"  • {escape(item)}")


def session_summary_to_dict(session: SessionSummary) -> dict[str, Any]:
    return {
        "session_id": session.session_id,
        "project_path": session.project_path,
        "project_name": session.project_name,
        "start_time": _iso(session.start_time),
        "end_time": _iso(session.end_time),
        "duration_minutes": session.duration_minutes,
        "message_count": session.message_count,
        "assistant_count": session.assistant_count,
        "error_count": session.error_count,
        "tools_used": session.tools_used,
        "quality": session.quality,
        "accomplishments": session.accomplishments,
    }


def sessions_to_dict(sessions: list[SessionSummary]) -> dict[str, Any]:
    return {"sessions": [session_summary_to_dict(s) for s in sessions]}


# summary


def format_session_detail(detail: SessionDetail) -> None:
    if detail.project_path is None:
        console.print(f"[yellow]Session '{escape(detail.session_id)}' not found.[/yellow]")
        return

    lines = [
        f"[bold]Project:[/bold] {escape(detail.project_path)}",
        f"[bold]Duration:[/bold] {detail.duration_minutes} min ({detail.message_count} messages)",
    ]
    if detail.end_time:
        lines.append(f"[bold]Ended:[/bold] {format_age(detail.end_time)}")
    for label, items in (
        ("Tools", detail.tools_used),
        ("Files modified", detail.files_modified),
        ("Accomplishments", detail.accomplishments),
        ("Key decisions", detail.key_decisions),
    ):
        if items:
            lines.append(f"[bold]{label}:[/bold]")
            lines.extend(f"  • {escape(item)}" for item in items)

    console.print(Panel("\n".join(lines), title=f"[bold cyan]Session {escape(detail.session_id)}[/bold cyan]"))


def session_detail_to_dict(detail: SessionDetail) -> dict[str, Any]:
    return {
        "session_id": detail.session_id,
        "found": detail.project_path is not None,
        "project_path": detail.project_path,
        "start_time": _iso(detail.start_time),
        "end_time": _iso(detail.end_time),
        "duration_minutes": detail.duration_minutes,
        "message_count": detail.message_count,
        "tools_used": detail.tools_used,
        "files_modified": detail.files_modified,
        "accomplishments": detail.accomplishments,
        "key_decisions": detail.key_decisions,
    }


# plans


def format_plans(plans: list[PlanResult], query: str) -> None:
    if not plans:
        console.print("[yellow]No matching plans found.[/yellow]")
        return

    for i, plan in enumerate(plans, 1):
        header = Text()
        header.append(f"[{i}] ", style="bold cyan")
        header.append(plan.title or plan.name, style="green")
        header.append(f" | {format_age(plan.timestamp)}", style="dim")
        header.append(f" | score {plan.relevance_score:.1f}", style="dim")

        body = highlight_matches(_display_text(plan.content), query)
        if plan.sections:
            body += f"\n[dim]sections: {escape(', '.join(plan.sections[:6]))}[/dim]"
        console.print(Panel(body, title=header, subtitle=str(plan.path), subtitle_align="left"))
        console.print()


def plans_to_dict(plans: list[PlanResult], query: str) -> dict[str, Any]:
    return {
        "query": query,
        "plans": [
            {
                "name": p.name,
                "path": str(p.path),
                "title": p.title,
                "content": p.content,
                "sections": p.sections,
                "files_mentioned": p.files_mentioned,
                "timestamp": _iso(p.timestamp),
                "relevance_score": round(p.relevance_score, 4),
            }
            for p in plans
        ],
    }


def print_json(data: dict[str, Any]) -> None:
    console.print_json(data=data)
