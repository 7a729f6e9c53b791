"""CLI for cc-historian."""

import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from cc_historian import __version__

app = typer.Typer(
    name="cc-historian",
    help="Search Claude Code conversation history without building an index.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

TIMEFRAMES = ("today", "yesterday", "week", "month", "last-week", "last-month")

JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]


def version_callback(value: bool) -> None:
    if value:
        console.print(f"cc-historian {__version__}")
        raise typer.Exit()


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=verbose)],
        force=True,
    )


def require_text(value: str, label: str = "Query") -> None:
    if not value.strip():
        console.print(f"[red]Error: {label} required[/red]")
        raise typer.Exit(1)


def get_engine(include_desktop: bool = True):
    from cc_historian.engine import HistorySearchEngine

    return HistorySearchEngine(include_desktop=include_desktop)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", help="Show debug logging")] = False,
) -> None:
    """Search Claude Code conversation history."""
    setup_logging(verbose)


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query")],
    project: Annotated[
        str | None, typer.Option("--project", "-p", help="Filter by project (path substring)")
    ] = None,
    timeframe: Annotated[
        str | None,
        typer.Option("--timeframe", "-t", help="today, yesterday, week, month (or last-week, last-month)"),
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of results")] = 15,
    no_desktop: Annotated[
        bool, typer.Option("--no-desktop", help="Skip the Claude Desktop scan")
    ] = False,
    json_output: JsonOption = False,
) -> None:
    """Search conversations for a query."""
    require_text(query)
    if timeframe and timeframe.lower() not in TIMEFRAMES:
        console.print(f"[red]Error: Unknown timeframe '{timeframe}'[/red]")
        raise typer.Exit(1)

    from cc_historian import formatter

    result = get_engine(include_desktop=not no_desktop).search(
        query, project_filter=project, timeframe=timeframe, limit=limit
    )
    if json_output:
        formatter.print_json(formatter.search_to_dict(result))
    else:
        formatter.format_search(result, project_filter=project)


@app.command()
def similar(
    query: Annotated[str, typer.Argument(help="Question to compare against past questions")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of results")] = 10,
    json_output: JsonOption = False,
) -> None:
    """Find earlier questions like this one, with their answers."""
    require_text(query)
    from cc_historian import formatter

    messages = get_engine().find_similar(query, limit=limit)
    if json_output:
        formatter.print_json(formatter.similar_to_dict(messages, query))
    else:
        formatter.format_similar(messages, query)


@app.command()
def file(
    file_path: Annotated[str, typer.Argument(help="File path or name")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Messages per session")] = 25,
    json_output: JsonOption = False,
) -> None:
    """Show conversations that touched a file."""
    require_text(file_path, "File path")
    from cc_historian import formatter

    contexts = get_engine().find_file_context(file_path, limit=limit)
    if json_output:
        formatter.print_json(formatter.file_context_to_dict(contexts, file_path))
    else:
        formatter.format_file_context(contexts, file_path)


@app.command()
def errors(
    error_pattern: Annotated[str, typer.Argument(help="Error text or pattern")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of results")] = 10,
    json_output: JsonOption = False,
) -> None:
    """Find how an error was handled before."""
    require_text(error_pattern, "Error pattern")
    from cc_historian import formatter

    solutions = get_engine().get_error_solutions(error_pattern, limit=limit)
    if json_output:
        formatter.print_json(formatter.error_solutions_to_dict(solutions, error_pattern))
    else:
        formatter.format_error_solutions(solutions, error_pattern)


@app.command()
def tools(
    tool_name: Annotated[str | None, typer.Argument(help="Tool to inspect (default: core tools)")] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of results")] = 20,
    json_output: JsonOption = False,
) -> None:
    """Show tool usage patterns and workflows."""
    from cc_historian import formatter

    patterns = get_engine().get_tool_patterns(tool_name, limit=limit)
    if json_output:
        formatter.print_json(formatter.tool_patterns_to_dict(patterns))
    else:
        formatter.format_tool_patterns(patterns)


@app.command()
def sessions(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of sessions")] = 10,
    json_output: JsonOption = False,
) -> None:
    """List recent sessions."""
    from cc_historian import formatter

    recent = get_engine().list_recent_sessions(limit=limit)
    if json_output:
        formatter.print_json(formatter.sessions_to_dict(recent))
    else:
        formatter.format_sessions(recent)


@app.command()
def summary(
    session_id: Annotated[str, typer.Argument(help="Session id, id prefix, or 'latest'")] = "latest",
    max_messages: Annotated[
        int | None, typer.Option("--max-messages", "-m", help="Messages to analyze (default 100)")
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """Summarize one session."""
    require_text(session_id, "Session id")
    from cc_historian import formatter

    detail = get_engine().summarize_session(session_id, max_messages=max_messages)
    if json_output:
        formatter.print_json(formatter.session_detail_to_dict(detail))
    else:
        formatter.format_session_detail(detail)


@app.command()
def plans(
    query: Annotated[str, typer.Argument(help="Search query")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of results")] = 10,
    json_output: JsonOption = False,
) -> None:
    """Search planning documents."""
    require_text(query)
    from cc_historian import formatter

    matches = get_engine().search_plans(query, limit=limit)
    if json_output:
        formatter.print_json(formatter.plans_to_dict(matches, query))
    else:
        formatter.format_plans(matches, query)


if __name__ == "__main__":
    app()
