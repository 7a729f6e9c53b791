"""Tests for the corpus module."""

import os
import time

from cc_historian import config, corpus


def test_project_path_encoding():
    assert corpus.decode_project_path("-Users-dev-Code-webapp") == "/Users/dev/Code/webapp"
    assert corpus.encode_project_path("/Users/dev/Code/webapp") == "-Users-dev-Code-webapp"
    assert corpus.project_name("-Users-dev-Code-webapp") == "webapp"


def test_find_project_dirs_most_recent_first(claude_dir):
    projects = claude_dir / "projects"
    old = projects / "-Users-dev-old"
    new = projects / "-Users-dev-new"
    old.mkdir()
    new.mkdir()
    (projects / "stray.txt").write_text("not a project")
    now = time.time()
    os.utime(old, (now - 3600, now - 3600))
    os.utime(new, (now, now))

    assert corpus.find_project_dirs() == ["-Users-dev-new", "-Users-dev-old"]


def test_find_project_dirs_missing_root(temp_dir, monkeypatch):
    monkeypatch.setattr(corpus, "PROJECTS_DIR", temp_dir / "nope")
    assert corpus.find_project_dirs() == []


def test_find_session_files(write_session, claude_dir):
    now = time.time()
    write_session("-p", "older", ["{}"], mtime=now - 60)
    write_session("-p", "newer", ["{}"], mtime=now)
    (claude_dir / "projects" / "-p" / "notes.txt").write_text("skip me")

    assert [p.stem for p in corpus.find_session_files("-p")] == ["newer", "older"]
    assert corpus.find_session_files("-missing") == []
    assert corpus.session_file("-p", "newer") == claude_dir / "projects" / "-p" / "newer.jsonl"


def test_find_plan_files(write_plan):
    write_plan("b-plan", "# B")
    write_plan("a-plan", "# A")
    assert [p.stem for p in corpus.find_plan_files()] == ["a-plan", "b-plan"]


def test_expand_worktree_projects_disabled(monkeypatch):
    monkeypatch.setattr(config, "EXPAND_WORKTREES", False)
    assert corpus.expand_worktree_projects(["-a", "-b"]) == ["-a", "-b"]


def test_expand_worktree_projects_adds_parent(claude_dir, monkeypatch):
    (claude_dir / "projects" / "-repo-main").mkdir()
    monkeypatch.setattr(config, "EXPAND_WORKTREES", True)
    monkeypatch.setattr(corpus, "worktree_parent", lambda d: "-repo-main" if d == "-repo-feature" else None)

    assert corpus.expand_worktree_projects(["-repo-feature", "-other"]) == [
        "-repo-feature",
        "-other",
        "-repo-main",
    ]


def test_worktree_parent_of_plain_directory():
    assert corpus.worktree_parent("-definitely-not-a-real-path") is None
