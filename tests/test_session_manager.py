"""Tests for SessionManager."""

import pytest

from tokentrim.compaction.types import CompactionConfig, Message
from tokentrim.session.manager import SessionManager


class RecordingArchive:
    def __init__(self):
        self.batches: list[list[Message]] = []

    def archive(self, messages: list[Message]) -> None:
        self.batches.append(list(messages))


@pytest.fixture
def manager(tmp_path):
    return SessionManager(tmp_path / "sessions", config=CompactionConfig(minimum_messages=3))


def _fill(manager: SessionManager, key: str, count: int) -> None:
    history = manager.get_or_create(key)
    history.append("system", "System: stay on topic")
    for i in range(1, count):
        history.append("user" if i % 2 else "assistant", " ".join(["lorem"] * 80))


class TestSessionManager:
    def test_get_or_create_returns_cached_history(self, manager):
        first = manager.get_or_create("telegram:42")
        second = manager.get_or_create("telegram:42")
        assert first is second

    def test_sessions_are_isolated(self, manager):
        manager.get_or_create("a").append("user", "only in a")
        assert len(manager.get_or_create("b")) == 0

    def test_save_and_reload(self, tmp_path):
        manager = SessionManager(tmp_path)
        history = manager.get_or_create("cli:direct")
        history.append("user", "hello")
        history.append("assistant", "hi")
        path = manager.save("cli:direct")

        assert path.name == "cli_direct.jsonl"
        reloaded = SessionManager(tmp_path).get_or_create("cli:direct")
        assert [(m.role, m.content) for m in reloaded.items()] == [
            ("user", "hello"),
            ("assistant", "hi"),
        ]

    def test_reload_skips_malformed_records(self, tmp_path):
        (tmp_path / "broken.jsonl").write_text(
            '{"role": "user", "content": "kept"}\n'
            '{"role": "alien", "content": "dropped"}\n'
            "not json\n",
            encoding="utf-8",
        )
        history = SessionManager(tmp_path).get_or_create("broken")
        assert [m.content for m in history.items()] == ["kept"]

    def test_compact_archives_dropped_and_persists(self, manager):
        _fill(manager, "chat", 20)
        archive = RecordingArchive()

        result = manager.compact("chat", max_tokens=800, archive=archive)

        assert result.messages_removed > 0
        assert archive.batches == [result.dropped]
        saved = manager._get_session_path("chat")
        assert saved.exists()
        lines = saved.read_text(encoding="utf-8").splitlines()
        assert len(lines) == len(result.messages)

    def test_compact_noop_does_not_write(self, manager):
        manager.get_or_create("quiet").append("user", "hi")
        archive = RecordingArchive()
        result = manager.compact("quiet", max_tokens=1000, archive=archive)
        assert result.messages_removed == 0
        assert archive.batches == []
        assert not manager._get_session_path("quiet").exists()

    def test_delete(self, manager):
        manager.get_or_create("gone").append("user", "bye")
        manager.save("gone")
        assert manager.delete("gone")
        assert not manager.delete("gone")
        assert len(manager.get_or_create("gone")) == 0

    def test_list_sessions(self, manager):
        for key in ("one", "two"):
            manager.get_or_create(key).append("user", key)
            manager.save(key)
        keys = {s["key"] for s in manager.list_sessions()}
        assert keys == {"one", "two"}

    def test_lru_eviction(self, tmp_path):
        manager = SessionManager(tmp_path, max_cached=2)
        first = manager.get_or_create("a")
        manager.get_or_create("b")
        manager.get_or_create("c")
        assert "a" not in manager._cache
        assert manager.get_or_create("a") is not first

    def test_from_config(self, tmp_path):
        from tokentrim.config.schema import Config

        config = Config()
        config.sessions.directory = str(tmp_path / "from-config")
        config.sessions.max_cached = 5
        config.compaction.minimum_messages = 4

        manager = SessionManager.from_config(config)

        assert manager.sessions_dir == tmp_path / "from-config"
        assert manager.max_cached == 5
        assert manager.get_or_create("x").config.minimum_messages == 4

    def test_eviction_persists_unsaved_history(self, tmp_path):
        manager = SessionManager(tmp_path, max_cached=1)
        manager.get_or_create("a").append("user", "not saved yet")
        manager.get_or_create("b")

        assert (tmp_path / "a.jsonl").exists()
        reloaded = manager.get_or_create("a")
        assert [m.content for m in reloaded.items()] == ["not saved yet"]
