"""Best-effort text scan of Claude Desktop's IndexedDB files.

Claude Desktop keeps conversations in a LevelDB store. Rather than decode
it, this scans the raw ``.log``/``.ldb`` files for the query text. The scan
runs under a short time budget and returns nothing on timeout or error.
"""

import concurrent.futures
import logging
from datetime import datetime, timezone
from pathlib import Path

from cc_historian import config
from cc_historian.models import Message

logger = logging.getLogger(__name__)

LEVELDB_NAME = "https_claude.ai_0.indexeddb.leveldb"
MAX_BYTES_PER_FILE = 50_000
SNIPPET_RADIUS = 100
EXACT_MATCH_SCORE = 10
WORD_MATCH_SCORE = 2

DESKTOP_PROJECT = "claude-desktop"
DESKTOP_SESSION = "claude-desktop-session"


def leveldb_dir(desktop_dir: Path | None = None) -> Path | None:
    base = desktop_dir if desktop_dir is not None else config.DESKTOP_DIR
    if base is None:
        return None
    path = base / "IndexedDB" / LEVELDB_NAME
    return path if path.is_dir() else None


def extract_snippet(content: str, query: str) -> str:
    """Text around the first occurrence of ``query``."""
    index = content.lower().find(query.lower())
    if index == -1:
        return content[:2 * SNIPPET_RADIUS]
    return content[max(0, index - SNIPPET_RADIUS) : index + SNIPPET_RADIUS]


def desktop_relevance(content: str, query: str) -> float:
    lower = content.lower()
    lower_query = query.lower()
    score = EXACT_MATCH_SCORE if lower_query in lower else 0
    score += WORD_MATCH_SCORE * sum(1 for w in lower_query.split() if w in lower)
    return float(score)


def scan_leveldb(directory: Path, query: str, limit: int) -> list[Message]:
    """Messages for each store file whose leading bytes contain ``query``."""
    lower_query = query.lower()
    now = datetime.now(tz=timezone.utc)
    results: list[Message] = []

    for path in sorted(directory.iterdir()):
        if path.suffix not in (".log", ".ldb"):
            continue
        with open(path, "rb") as f:
            content = f.read(MAX_BYTES_PER_FILE).decode("utf-8", errors="ignore")
        if lower_query not in content.lower():
            continue

        results.append(
            Message(
                id=f"desktop-{path.name}",
                timestamp=now,
                role="assistant",
                content=extract_snippet(content, query),
                session_id=DESKTOP_SESSION,
                project_path=DESKTOP_PROJECT,
                project_dir=DESKTOP_PROJECT,
                relevance_score=desktop_relevance(content, query),
            )
        )
        if len(results) >= limit:
            break
    return results


def search_desktop(
    query: str,
    limit: int = 10,
    timeout: float = config.DESKTOP_TIMEOUT_SECONDS,
    desktop_dir: Path | None = None,
) -> list[Message]:
    """Scan Claude Desktop storage within ``timeout`` seconds; [] otherwise."""
    directory = leveldb_dir(desktop_dir)
    if directory is None or not query.strip():
        return []

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    future = executor.submit(scan_leveldb, directory, query, limit)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError:
        logger.debug("Claude Desktop scan exceeded %.2fs", timeout)
        return []
    except Exception:
        logger.debug("Claude Desktop scan failed", exc_info=True)
        return []
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
