"""Query operations over Claude Code conversation history.

Every operation scans the corpus afresh. Partitions (project directories)
and session files are visited most recently modified first and capped per
operation. File-level work fans out over a thread pool; results are merged
in submission order so output never depends on which task finished first.

No public method raises: failures are logged and turned into an empty
result of the operation's usual type.
"""

import concurrent.futures
import logging
import math
import time
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TypeVar

from cc_historian import config, corpus
from cc_historian.cache import FileKey, ValueBiasedCache, file_key
from cc_historian.desktop import search_desktop
from cc_historian.extractors import (
    CORE_TOOLS,
    best_practices,
    common_patterns,
    detail_accomplishments,
    error_key,
    files_modified,
    has_error_in_content,
    infer_operation_type,
    is_actual_error,
    is_meta_error_content,
    key_decisions,
    matches_error_context,
    plan_file_references,
    plan_sections,
    plan_title,
    references_file,
    session_accomplishments,
    session_quality,
    solution_context,
    tool_patterns,
    tools_used,
)
from cc_historian.intent import analyze_query
from cc_historian.models import (
    ErrorSolution,
    FileContext,
    Message,
    MessageContext,
    PlanResult,
    QueryAnalysis,
    SearchResult,
    SessionDetail,
    SessionSummary,
    ToolPattern,
)
from cc_historian.parser import parse_session_file
from cc_historian.ranking import (
    deduplicate_by_content,
    is_highly_relevant,
    is_low_value,
    passes_file_filter,
    passes_quality_gate,
    prioritize_results,
    select_top_results,
)
from cc_historian.scoring import (
    calculate_claude_relevance,
    calculate_plan_relevance,
    calculate_relevance_score,
)
from cc_historian.similarity import query_similarity

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

MIN_QUERY_LENGTH = 3

# Search
MIN_SEARCH_PROJECTS = 8
SEARCH_FILES_PER_PROJECT = 4

# (partitions, files per partition) per operation
FILE_CONTEXT_CAPS = (15, 10)
SIMILAR_CAPS = (8, 5)
ERROR_CAPS = (12, 6)
TOOL_CAPS = (15, 8)
SESSION_CAPS = (10, 5)

SIMILARITY_THRESHOLD = 0.4
SIMILAR_MIN_LENGTH = 15
SIMILAR_MAX_LENGTH = 800
ANSWER_LOOKAHEAD = 4
ANSWER_MIN_LENGTH = 50
ANSWER_MAX_CHARS = 400
SIMILAR_CANDIDATE_FACTOR = 4

FILE_CONTEXT_MIN_LENGTH = 15
FILE_CONTEXT_MAX_RELATED = 10

ERROR_WINDOW = 8
ERROR_MAX_SOLUTIONS = 5
SOLUTION_MIN_LENGTH = 20
SHORT_USER_REPLY = 200

MAX_TOOL_USAGES = 10
SESSION_LIST_TOOLS = 5
SUMMARY_SESSION_POOL = 20
DEFAULT_MAX_MESSAGES = 100

PLAN_CONTENT_CHARS = 2000

TIMEFRAMES = ("today", "yesterday", "week", "month")


def timeframe_cutoff(timeframe: str | None, now: datetime | None = None) -> datetime | None:
    """Earliest timestamp a record may carry for ``timeframe``; None = no limit."""
    if not timeframe:
        return None
    now = (now or datetime.now(tz=timezone.utc)).astimezone()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    key = timeframe.lower().removeprefix("last-")
    if key == "today":
        return midnight
    if key == "yesterday":
        return midnight - timedelta(days=1)
    if key == "week":
        return now - timedelta(days=7)
    if key == "month":
        return now - timedelta(days=30)
    logger.debug("Ignoring unknown timeframe %r", timeframe)
    return None


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class HistorySearchEngine:
    """Search and summarize Claude Code sessions.

    Args:
        cache: Parsed-file cache shared across queries (a fresh one by default)
        max_workers: Thread pool size for file-level fan-out
        include_desktop: Also scan Claude Desktop storage during ``search``
    """

    def __init__(
        self,
        cache: ValueBiasedCache | None = None,
        max_workers: int = config.MAX_WORKERS,
        include_desktop: bool = True,
    ) -> None:
        self.cache = cache if cache is not None else ValueBiasedCache()
        self.max_workers = max_workers
        self.include_desktop = include_desktop

    # Corpus access

    def _project_dirs(self) -> list[str]:
        return corpus.expand_worktree_projects(corpus.find_project_dirs())

    def _session_files(self, caps: tuple[int, int]) -> list[tuple[str, Path]]:
        max_projects, max_files = caps
        return [
            (project_dir, path)
            for project_dir in self._project_dirs()[:max_projects]
            for path in corpus.find_session_files(project_dir)[:max_files]
        ]

    def _load(self, path: Path, project_dir: str) -> tuple[list[Message], FileKey | None]:
        """Parsed records of a file, plus its key when it still needs caching."""
        try:
            key = file_key(path)
        except OSError as e:
            logger.warning("Cannot stat %s: %s", path, e)
            return [], None

        cached = self.cache.get(key)
        if cached is not None:
            return cached, None
        return parse_session_file(path, project_dir), key

    def _messages(self, path: Path, project_dir: str) -> list[Message]:
        messages, key = self._load(path, project_dir)
        if key is not None:
            self.cache.put(key, messages, [m.relevance_score for m in messages])
        return messages

    def _fan_out(self, fn: Callable[[T], R], items: Iterable[T], empty: Callable[[], R]) -> list[R]:
        """Run ``fn`` over ``items`` concurrently; a failed task yields ``empty()``."""
        items = list(items)
        if not items:
            return []

        results: list[R] = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(fn, item) for item in items]
            for item, future in zip(items, futures):
                try:
                    results.append(future.result())
                except Exception:
                    logger.warning("Task failed for %s", item, exc_info=True)
                    results.append(empty())
        return results

    # search

    def search(
        self,
        query: str,
        project_filter: str | None = None,
        timeframe: str | None = None,
        limit: int = 15,
    ) -> SearchResult:
        """Ranked, deduplicated records matching ``query``."""
        start = time.perf_counter()
        try:
            return self._search(query, project_filter, timeframe, limit, start)
        except Exception:
            logger.exception("Search failed for %r", query)
            return SearchResult([], 0, query, _elapsed_ms(start))

    def _search(
        self,
        query: str,
        project_filter: str | None,
        timeframe: str | None,
        limit: int,
        start: float,
    ) -> SearchResult:
        if len(query.strip()) < MIN_QUERY_LENGTH or limit <= 0:
            return SearchResult([], 0, query, _elapsed_ms(start))

        now = datetime.now(tz=timezone.utc)
        analysis = analyze_query(query)
        since = timeframe_cutoff(timeframe, now)

        project_dirs = self._project_dirs()
        if project_filter:
            project_dirs = [
                d for d in project_dirs
                if project_filter in d or project_filter in corpus.decode_project_path(d)
            ]
        else:
            max_projects = min(len(project_dirs), max(MIN_SEARCH_PROJECTS, math.ceil(limit / 2)))
            project_dirs = project_dirs[:max_projects]

        target = limit * 2
        candidates: list[Message] = []
        if project_dirs:
            per_partition = math.ceil(target / len(project_dirs))
            partitions = self._fan_out(
                lambda d: self._scan_partition(d, query, analysis, since, per_partition, project_filter),
                project_dirs,
                list,
            )
            for partition in partitions:
                candidates.extend(m for m in partition if is_highly_relevant(m, analysis))
                if len(candidates) >= target:
                    break

        ranked = select_top_results(candidates, query, analysis, limit, now)
        results = [m for m in ranked if passes_quality_gate(m)]
        total = len(candidates)

        if self.include_desktop:
            extra = search_desktop(query, limit)
            if extra:
                results = prioritize_results(results + extra, limit)
                total += len(extra)

        return SearchResult(results, total, query, _elapsed_ms(start))

    def _scan_partition(
        self,
        project_dir: str,
        query: str,
        analysis: QueryAnalysis,
        since: datetime | None,
        target: int,
        project_filter: str | None,
    ) -> list[Message]:
        files = corpus.find_session_files(project_dir)[:SEARCH_FILES_PER_PROJECT]
        if not files:
            return []

        quota = math.ceil(target / len(files))
        found: list[Message] = []
        for path in files:
            scored = self._score_file(path, project_dir, query, since, project_filter)
            found.extend([m for m in scored if passes_file_filter(m, analysis)][:quota])
            if len(found) >= target:
                break
        return found

    def _score_file(
        self,
        path: Path,
        project_dir: str,
        query: str,
        since: datetime | None,
        project_filter: str | None,
    ) -> list[Message]:
        messages, key = self._load(path, project_dir)

        scores: list[float] = []
        for message in messages:
            try:
                scores.append(calculate_relevance_score(message, query, project_filter))
            except Exception:
                logger.debug("Scoring failed for %s", message.id, exc_info=True)
                scores.append(0.0)

        if key is not None:
            self.cache.put(key, messages, scores)

        return [
            replace(message, relevance_score=score)
            for message, score in zip(messages, scores)
            if since is None or (message.timestamp is not None and message.timestamp >= since)
        ]

    # find_similar

    def find_similar(self, query: str, limit: int = 10) -> list[Message]:
        """Earlier user questions resembling ``query``, each with its best answer.

        The answer, when found, is the only entry of ``context.insights``.
        """
        try:
            return self._find_similar(query, limit)
        except Exception:
            logger.exception("Similar-query search failed for %r", query)
            return []

    def _find_similar(self, query: str, limit: int) -> list[Message]:
        if not query.strip() or limit <= 0:
            return []

        wanted = limit * SIMILAR_CANDIDATE_FACTOR
        found: list[Message] = []
        for project_dir, path in self._session_files(SIMILAR_CAPS):
            messages = self._messages(path, project_dir)
            for index, message in enumerate(messages):
                if not self._is_candidate_question(message):
                    continue
                similarity = query_similarity(query, message.content)
                if similarity <= SIMILARITY_THRESHOLD:
                    continue
                found.append(self._with_answer(message, messages, index, similarity))
            if len(found) >= wanted:
                break

        found = [m for m in found if not is_low_value(m.content)]
        found.sort(key=lambda m: m.relevance_score, reverse=True)
        return found[:limit]

    @staticmethod
    def _is_candidate_question(message: Message) -> bool:
        return (
            message.role == "user"
            and SIMILAR_MIN_LENGTH < len(message.content) < SIMILAR_MAX_LENGTH
            and not is_low_value(message.content)
        )

    @staticmethod
    def _with_answer(message: Message, messages: list[Message], index: int, similarity: float) -> Message:
        context = message.context
        for following in messages[index + 1 : index + 1 + ANSWER_LOOKAHEAD]:
            if following.role == "assistant" and len(following.content) > ANSWER_MIN_LENGTH:
                answer = following.content[:ANSWER_MAX_CHARS]
                context = replace(context or MessageContext(), insights=[answer])
                break
        return replace(message, relevance_score=similarity, context=context)

    # find_file_context

    def find_file_context(self, file_path: str, limit: int = 25) -> list[FileContext]:
        """Per-session history of messages touching ``file_path``, newest first."""
        try:
            return self._find_file_context(file_path, limit)
        except Exception:
            logger.exception("File context search failed for %r", file_path)
            return []

    def _find_file_context(self, file_path: str, limit: int) -> list[FileContext]:
        if not file_path.strip() or limit <= 0:
            return []

        contexts = self._fan_out(
            lambda item: self._file_context_in(item[1], item[0], file_path, limit),
            self._session_files(FILE_CONTEXT_CAPS),
            lambda: None,
        )
        found = [c for c in contexts if c is not None]
        found.sort(
            key=lambda c: c.last_modified or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return found

    def _file_context_in(self, path: Path, project_dir: str, file_path: str, limit: int) -> FileContext | None:
        messages = [
            m for m in self._messages(path, project_dir)
            if references_file(m, file_path)
            and len(m.content) > FILE_CONTEXT_MIN_LENGTH
            and not is_low_value(m.content)
        ]
        if not messages:
            return None

        scored = []
        for message in messages:
            message = replace(message, relevance_score=calculate_relevance_score(message, file_path))
            scored.append(replace(message, final_score=calculate_claude_relevance(message, file_path)))

        related = deduplicate_by_content(scored)
        related.sort(key=lambda m: m.effective_score, reverse=True)
        timestamps = [m.timestamp for m in related if m.timestamp is not None]
        return FileContext(
            file_path=file_path,
            last_modified=max(timestamps) if timestamps else None,
            related_messages=related[: min(limit, FILE_CONTEXT_MAX_RELATED)],
            operation_type=infer_operation_type(related),
        )

    # get_error_solutions

    def get_error_solutions(self, error_pattern: str, limit: int = 10) -> list[ErrorSolution]:
        """Past occurrences of an error with the assistant replies that followed."""
        try:
            return self._get_error_solutions(error_pattern, limit)
        except Exception:
            logger.exception("Error solution search failed for %r", error_pattern)
            return []

    def _get_error_solutions(self, error_pattern: str, limit: int) -> list[ErrorSolution]:
        if not error_pattern.strip() or limit <= 0:
            return []

        per_file = self._fan_out(
            lambda item: self._errors_in(item[1], item[0], error_pattern),
            self._session_files(ERROR_CAPS),
            dict,
        )
        grouped: dict[str, list[Message]] = {}
        for errors in per_file:
            for key, messages in errors.items():
                grouped.setdefault(key, []).extend(messages)

        solutions = []
        for key, messages in grouped.items():
            answers = [
                m for m in messages
                if m.role == "assistant"
                and not is_low_value(m.content)
                and len(m.content) >= SOLUTION_MIN_LENGTH
            ]
            if answers:
                solutions.append(
                    ErrorSolution(
                        error_pattern=key,
                        solutions=answers[:ERROR_MAX_SOLUTIONS],
                        context=solution_context(answers),
                        frequency=len(messages),
                    )
                )

        solutions.sort(key=lambda s: s.frequency, reverse=True)
        return solutions[:limit]

    def _errors_in(self, path: Path, project_dir: str, error_pattern: str) -> dict[str, list[Message]]:
        messages = self._messages(path, project_dir)
        found: dict[str, list[Message]] = {}
        for i, current in enumerate(messages[:-1]):
            matched = matches_error_context(current.errors, error_pattern) or has_error_in_content(
                current.content, error_pattern
            )
            if not matched or not is_actual_error(current.content) or is_meta_error_content(current.content):
                continue

            window = [
                m for m in messages[i : i + ERROR_WINDOW]
                if m.role in ("assistant", "tool_result")
                or (m.role == "user" and len(m.content) < SHORT_USER_REPLY)
            ]
            found.setdefault(error_key(current.errors, error_pattern), []).extend(window)
        return found

    # get_tool_patterns

    def get_tool_patterns(self, tool_name: str | None = None, limit: int = 20) -> list[ToolPattern]:
        """Usage of one tool, or of the core tools, plus the workflows they form."""
        try:
            return self._get_tool_patterns(tool_name or None, limit)
        except Exception:
            logger.exception("Tool pattern search failed for %r", tool_name)
            return []

    def _get_tool_patterns(self, tool_name: str | None, limit: int) -> list[ToolPattern]:
        if limit <= 0:
            return []

        per_file = self._fan_out(
            lambda item: self._tool_usage_in(item[1], item[0], tool_name),
            self._session_files(TOOL_CAPS),
            lambda: ({}, {}),
        )
        tools: dict[str, list[Message]] = {}
        workflows: dict[str, list[Message]] = {}
        for file_tools, file_workflows in per_file:
            for key, messages in file_tools.items():
                tools.setdefault(key, []).extend(messages)
            for key, messages in file_workflows.items():
                workflows.setdefault(key, []).extend(messages)

        patterns: list[ToolPattern] = []
        for tool, messages in sorted(tools.items(), key=lambda kv: len(kv[1]), reverse=True):
            if len(patterns) >= limit:
                break
            unique = deduplicate_by_content(messages)
            patterns.append(
                ToolPattern(
                    tool_name=tool,
                    usages=unique[:MAX_TOOL_USAGES],
                    common_patterns=tool_patterns(tool, unique)
                    or common_patterns(unique)
                    or [f"{tool} usage pattern"],
                    best_practices=best_practices(tool, unique)
                    or [f"{tool} used {len(unique)}x successfully"],
                )
            )

        named = {p.tool_name for p in patterns}
        ordered_workflows = [
            w for tool in [p.tool_name for p in patterns] for w in workflows if tool in w
        ] + [w for w, _ in sorted(workflows.items(), key=lambda kv: len(kv[1]), reverse=True)]
        for workflow in ordered_workflows:
            if len(patterns) >= limit:
                break
            if workflow in named:
                continue
            named.add(workflow)
            unique = deduplicate_by_content(workflows[workflow])
            patterns.append(
                ToolPattern(
                    tool_name=workflow,
                    usages=unique[:MAX_TOOL_USAGES],
                    common_patterns=[workflow],
                    best_practices=[f"{workflow} workflow ({len(unique)}x successful)"],
                )
            )

        patterns.sort(key=lambda p: (p.is_workflow, -len(p.usages)))
        return patterns[:limit]

    def _tool_usage_in(
        self, path: Path, project_dir: str, tool_name: str | None
    ) -> tuple[dict[str, list[Message]], dict[str, list[Message]]]:
        messages = self._messages(path, project_dir)

        def tracked(chain: tuple[str, ...]) -> bool:
            if tool_name:
                return tool_name in chain
            return all(t in CORE_TOOLS for t in chain)

        tools: dict[str, list[Message]] = {}
        for message in messages:
            for tool in message.tools:
                if tracked((tool,)):
                    tools.setdefault(tool, []).append(message)

        workflows: dict[str, list[Message]] = {}
        for size in (2, 3):
            for i in range(len(messages) - size + 1):
                window = messages[i : i + size]
                if not all(m.tools for m in window):
                    continue
                for chain in _tool_chains([m.tools for m in window]):
                    if tracked(chain):
                        workflows.setdefault(" → ".join(chain), []).extend(window)
        return tools, workflows

    # list_recent_sessions

    def list_recent_sessions(self, limit: int = 10) -> list[SessionSummary]:
        """Most recently ended sessions across recent projects."""
        try:
            return self._list_recent_sessions(limit)
        except Exception:
            logger.exception("Listing recent sessions failed")
            return []

    def _list_recent_sessions(self, limit: int) -> list[SessionSummary]:
        if limit <= 0:
            return []
        summaries = self._fan_out(
            lambda item: self._summarize_file(item[1], item[0]),
            self._session_files(SESSION_CAPS),
            lambda: None,
        )
        sessions = [s for s in summaries if s is not None and s.end_time is not None]
        sessions.sort(key=lambda s: s.end_time, reverse=True)
        return sessions[:limit]

    def _summarize_file(self, path: Path, project_dir: str) -> SessionSummary | None:
        messages = self._messages(path, project_dir)
        if not messages:
            return None

        timestamps = [m.timestamp for m in messages if m.timestamp is not None]
        start_time = min(timestamps) if timestamps else None
        end_time = max(timestamps) if timestamps else None
        duration = round((end_time - start_time).total_seconds() / 60) if timestamps else 0

        all_tools = tools_used(messages, limit=len(messages) or 1)
        error_count = sum(1 for m in messages if m.errors)
        return SessionSummary(
            session_id=path.stem,
            project_dir=project_dir,
            project_path=corpus.decode_project_path(project_dir),
            project_name=corpus.project_name(project_dir),
            start_time=start_time,
            end_time=end_time,
            duration_minutes=duration,
            message_count=len(messages),
            assistant_count=sum(1 for m in messages if m.role == "assistant"),
            error_count=error_count,
            tools_used=all_tools[:SESSION_LIST_TOOLS],
            quality=session_quality(len(all_tools), len(messages), error_count),
            accomplishments=session_accomplishments(messages),
        )

    # summarize_session

    def summarize_session(self, session_id: str, max_messages: int | None = None) -> SessionDetail:
        """Detailed summary of one session; ``latest`` or an id prefix also work."""
        try:
            return self._summarize_session(session_id, max_messages or DEFAULT_MAX_MESSAGES)
        except Exception:
            logger.exception("Summarizing session %r failed", session_id)
            return SessionDetail(session_id=session_id)

    def _summarize_session(self, session_id: str, max_messages: int) -> SessionDetail:
        requested = session_id.strip()
        if not requested:
            return SessionDetail(session_id=session_id)

        sessions = self.list_recent_sessions(SUMMARY_SESSION_POOL)
        if requested.lower() == "latest":
            if not sessions:
                return SessionDetail(session_id="latest")
            requested = sessions[0].session_id

        session = _match_session(sessions, requested)
        if session is None:
            return SessionDetail(session_id=requested)

        path = corpus.session_file(session.project_dir, session.session_id)
        messages = self._messages(path, session.project_dir)[:max_messages]
        return SessionDetail(
            session_id=session.session_id,
            project_path=session.project_path,
            start_time=session.start_time,
            end_time=session.end_time,
            duration_minutes=session.duration_minutes,
            message_count=len(messages),
            tools_used=tools_used(messages),
            files_modified=files_modified(messages),
            accomplishments=detail_accomplishments(messages),
            key_decisions=key_decisions(messages),
        )

    # search_plans

    def search_plans(self, query: str, limit: int = 10) -> list[PlanResult]:
        """Planning documents ranked by title, section and body matches."""
        try:
            return self._search_plans(query, limit)
        except Exception:
            logger.exception("Plan search failed for %r", query)
            return []

    def _search_plans(self, query: str, limit: int) -> list[PlanResult]:
        if not query.strip() or limit <= 0:
            return []
        plans = self._fan_out(lambda path: _read_plan(path, query), corpus.find_plan_files(), lambda: None)
        matches = [p for p in plans if p is not None and p.relevance_score > 0]
        matches.sort(key=lambda p: p.relevance_score, reverse=True)
        return matches[:limit]


def _tool_chains(tool_lists: list[list[str]]) -> list[tuple[str, ...]]:
    """Every ordered pick of one tool per message."""
    chains: list[tuple[str, ...]] = [()]
    for tools in tool_lists:
        chains = [chain + (tool,) for chain in chains for tool in tools]
    return chains


def _match_session(sessions: list[SessionSummary], requested: str) -> SessionSummary | None:
    tail = requested.rsplit("/", 1)[-1]
    for session in sessions:
        sid = session.session_id
        if sid == requested or sid.startswith(requested) or sid in requested or tail in sid:
            return session
    return None


def _read_plan(path: Path, query: str) -> PlanResult | None:
    try:
        content = path.read_text(encoding="utf-8")
        mtime = path.stat().st_mtime
    except OSError as e:
        logger.warning("Cannot read plan %s: %s", path, e)
        return None

    title = plan_title(content)
    sections = plan_sections(content)
    return PlanResult(
        name=path.stem,
        path=path,
        title=title,
        content=content[:PLAN_CONTENT_CHARS],
        sections=sections,
        files_mentioned=plan_file_references(content),
        timestamp=datetime.fromtimestamp(mtime, tz=timezone.utc),
        relevance_score=calculate_plan_relevance(query, title, sections, content),
    )
