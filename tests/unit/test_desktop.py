"""Tests for the desktop module."""

import time

from cc_historian import desktop
from cc_historian.cache import ValueBiasedCache
from cc_historian.desktop import (
    LEVELDB_NAME,
    desktop_relevance,
    extract_snippet,
    leveldb_dir,
    search_desktop,
)
from cc_historian.engine import HistorySearchEngine


def make_store(base):
    store = base / "IndexedDB" / LEVELDB_NAME
    store.mkdir(parents=True)
    return store


def test_leveldb_dir(temp_dir):
    assert leveldb_dir(temp_dir) is None
    store = make_store(temp_dir)
    assert leveldb_dir(temp_dir) == store


def test_extract_snippet():
    content = "a" * 300 + "docker compose" + "b" * 300
    snippet = extract_snippet(content, "Docker Compose")
    assert "docker compose" in snippet
    assert len(snippet) == 200
    assert extract_snippet("short text", "missing") == "short text"


def test_desktop_relevance():
    assert desktop_relevance("notes about docker compose networking", "docker compose") == 14.0
    assert desktop_relevance("just docker here", "docker compose") == 2.0


def test_search_desktop_finds_matching_store_files(temp_dir):
    store = make_store(temp_dir)
    (store / "000003.log").write_bytes(b"\x00\x01binary prefix conversation about docker compose networking\xff")
    (store / "000004.ldb").write_bytes(b"nothing relevant in this one")
    (store / "LOCK").write_bytes(b"docker compose")

    results = search_desktop("docker compose", desktop_dir=temp_dir)

    assert [m.id for m in results] == ["desktop-000003.log"]
    message = results[0]
    assert message.role == "assistant"
    assert message.project_path == "claude-desktop"
    assert "docker compose" in message.content
    assert message.relevance_score >= 10


def test_search_desktop_without_store(temp_dir):
    assert search_desktop("docker compose", desktop_dir=temp_dir) == []


def test_search_desktop_times_out(temp_dir, monkeypatch):
    make_store(temp_dir)

    def slow_scan(directory, query, limit):
        time.sleep(0.5)
        return ["late"]

    monkeypatch.setattr(desktop, "scan_leveldb", slow_scan)
    assert search_desktop("docker", timeout=0.05, desktop_dir=temp_dir) == []


def test_search_desktop_swallows_scan_errors(temp_dir, monkeypatch):
    make_store(temp_dir)

    def broken_scan(directory, query, limit):
        raise ValueError("corrupt block")

    monkeypatch.setattr(desktop, "scan_leveldb", broken_scan)
    assert search_desktop("docker", desktop_dir=temp_dir) == []


def test_desktop_failure_keeps_local_results(write_session, make_record, now, temp_dir, monkeypatch):
    make_store(temp_dir)
    monkeypatch.setattr(desktop.config, "DESKTOP_DIR", temp_dir)
    monkeypatch.setattr(desktop, "scan_leveldb", lambda directory, query, limit: 1 / 0)
    write_session(
        "-Users-dev-Code-webapp",
        "sess-docker",
        [
            make_record(
                "assistant",
                "We fixed the Docker auth issue using the Read tool",
                now,
                uuid="u1",
                tools=[("Read", {"file_path": "Dockerfile"})],
            )
        ],
    )

    engine = HistorySearchEngine(cache=ValueBiasedCache(), include_desktop=True)
    assert [m.id for m in engine.search("docker auth").messages] == ["u1"]
