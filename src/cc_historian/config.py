"""Paths and tunable limits for cc-historian."""

import os
import sys
from pathlib import Path

# Claude Code data location (same override Claude Code itself honours)
CLAUDE_DIR = Path(os.environ.get("CLAUDE_CONFIG_DIR", Path.home() / ".claude"))
PROJECTS_DIR = CLAUDE_DIR / "projects"
PLANS_DIR = CLAUDE_DIR / "plans"


def _default_desktop_dir() -> Path | None:
    """Platform-specific Claude Desktop data directory."""
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "Claude"
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        return Path(appdata) / "Claude" if appdata else None
    if sys.platform.startswith("linux"):
        xdg = os.environ.get("XDG_CONFIG_HOME")
        base = Path(xdg) if xdg else Path.home() / ".config"
        return base / "Claude"
    return None


_desktop_override = os.environ.get("CC_HISTORIAN_DESKTOP_DIR")
DESKTOP_DIR = Path(_desktop_override) if _desktop_override else _default_desktop_dir()

# Parsed-file cache
CACHE_CAPACITY = 500
CACHE_HIGH_VALUE_SCORE = 8.0

# Fan-out
MAX_WORKERS = 8

# Best-effort Claude Desktop scan budget
DESKTOP_TIMEOUT_SECONDS = 0.5

# Fold git worktree checkouts into their parent project
EXPAND_WORKTREES = os.environ.get("CC_HISTORIAN_EXPAND_WORKTREES", "").lower() in ("1", "true", "yes")
