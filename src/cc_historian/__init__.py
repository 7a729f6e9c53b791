"""Search Claude Code conversation history without an index."""

__version__ = "0.1.0"
