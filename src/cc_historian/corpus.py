"""Discovery of Claude Code project directories, session files and plans."""

import logging
import re
from pathlib import Path

from cc_historian import config

logger = logging.getLogger(__name__)

PROJECTS_DIR = config.PROJECTS_DIR
PLANS_DIR = config.PLANS_DIR


def decode_project_path(encoded: str) -> str:
    """Decode a project directory name: -Users-name-Code-project -> /Users/name/Code/project"""
    return encoded.replace("-", "/")


def encode_project_path(path: str) -> str:
    return path.replace("/", "-")


def project_name(encoded: str) -> str:
    """Last component of the decoded project path."""
    parts = [p for p in decode_project_path(encoded).split("/") if p]
    return parts[-1] if parts else encoded


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


def find_project_dirs() -> list[str]:
    """List project directory names, most recently modified first."""
    if not PROJECTS_DIR.exists():
        return []
    try:
        dirs = [p for p in PROJECTS_DIR.iterdir() if p.is_dir()]
    except OSError as e:
        logger.error("Cannot list %s: %s", PROJECTS_DIR, e)
        return []
    dirs.sort(key=_mtime, reverse=True)
    return [p.name for p in dirs]


def find_session_files(project_dir: str) -> list[Path]:
    """List a project's JSONL session files, most recently modified first."""
    full_path = PROJECTS_DIR / project_dir
    try:
        files = [p for p in full_path.iterdir() if p.suffix == ".jsonl"]
    except OSError as e:
        logger.warning("Cannot list session files in %s: %s", project_dir, e)
        return []
    files.sort(key=_mtime, reverse=True)
    return files


def session_file(project_dir: str, session_id: str) -> Path:
    return PROJECTS_DIR / project_dir / f"{session_id}.jsonl"


def find_plan_files() -> list[Path]:
    if not PLANS_DIR.exists():
        return []
    try:
        return sorted(PLANS_DIR.glob("*.md"))
    except OSError as e:
        logger.error("Cannot list plans in %s: %s", PLANS_DIR, e)
        return []


def worktree_parent(project_dir: str) -> str | None:
    """Encoded parent project of a git worktree checkout, if it is one.

    A worktree's ``.git`` is a file containing
    ``gitdir: /path/to/parent/.git/worktrees/name``.
    """
    git_file = Path(decode_project_path(project_dir)) / ".git"
    try:
        if not git_file.is_file():
            return None
        text = git_file.read_text(encoding="utf-8")
    except OSError:
        return None

    match = re.search(r"gitdir:\s*(.+)", text)
    if not match:
        return None
    parent = re.sub(r"\.git/worktrees/.+$", "", match.group(1).strip()).rstrip("/")
    if not parent:
        return None
    return encode_project_path(parent)


def expand_worktree_projects(project_dirs: list[str]) -> list[str]:
    """Append the parent project of every worktree checkout in the list."""
    if not config.EXPAND_WORKTREES:
        return project_dirs

    expanded = list(project_dirs)
    for project_dir in project_dirs:
        parent = worktree_parent(project_dir)
        if parent and parent not in expanded and (PROJECTS_DIR / parent).is_dir():
            expanded.append(parent)
    return expanded
