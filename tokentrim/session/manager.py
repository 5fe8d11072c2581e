"""Session management for conversation histories."""

import threading
from collections import OrderedDict
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from tokentrim.compaction.estimator import Tokenizer, get_tokenizer
from tokentrim.compaction.types import CompactionConfig, CompactionResult
from tokentrim.config.schema import Config
from tokentrim.errors import InvalidInputError
from tokentrim.session.history import ConversationHistory
from tokentrim.session.log import Archive, read_session_log, write_session_log
from tokentrim.utils.helpers import ensure_dir, safe_filename

# Maximum number of sessions to keep in memory cache (LRU eviction)
DEFAULT_MAX_CACHED_SESSIONS = 200


class SessionManager:
    """
    Manages one conversation history per session key.

    Histories are persisted as JSONL logs in the sessions directory and
    kept in an LRU cache; a non-empty history is written to its log when it
    is evicted. Sessions share nothing with each other.
    """

    def __init__(
        self,
        sessions_dir: Path,
        config: CompactionConfig | None = None,
        tokenizer: Tokenizer | None = None,
        max_cached: int = DEFAULT_MAX_CACHED_SESSIONS,
    ):
        self.sessions_dir = ensure_dir(sessions_dir)
        self.config = config or CompactionConfig()
        self.tokenizer = tokenizer
        self.max_cached = max_cached
        self._cache: OrderedDict[str, ConversationHistory] = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config) -> "SessionManager":
        """Build a manager from loaded settings."""
        return cls(
            config.sessions_path,
            config=config.to_compaction_config(),
            tokenizer=get_tokenizer(config.compaction.tokenizer),
            max_cached=config.sessions.max_cached,
        )

    def _get_session_path(self, key: str) -> Path:
        """Get the file path for a session."""
        safe_key = safe_filename(key.replace(":", "_"))
        return self.sessions_dir / f"{safe_key}.jsonl"

    def _new_history(self) -> ConversationHistory:
        return ConversationHistory(self.config, tokenizer=self.tokenizer)

    def get_or_create(self, key: str) -> ConversationHistory:
        """
        Get an existing session or create a new one.

        Args:
            key: Session key (usually channel:chat_id).

        Returns:
            The session's history.
        """
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                return self._cache[key]

            history = self._load(key) or self._new_history()

            self._cache[key] = history
            if len(self._cache) > self.max_cached:
                evicted, evicted_history = self._cache.popitem(last=False)
                if len(evicted_history):
                    write_session_log(self._get_session_path(evicted), evicted_history.items())
                logger.debug(f"Evicted session {evicted} from cache")
            return history

    def _load(self, key: str) -> ConversationHistory | None:
        """Re-hydrate a session from its log."""
        path = self._get_session_path(key)
        if not path.exists():
            return None

        history = self._new_history()
        try:
            history.record_items(read_session_log(path))
        except InvalidInputError as e:
            logger.warning(f"Session {key}: skipped {len(e.failures)} malformed record(s)")
        return history

    def save(self, key: str) -> Path:
        """Persist a cached session to disk."""
        history = self.get_or_create(key)
        path = self._get_session_path(key)
        write_session_log(path, history.items())
        return path

    def compact(
        self,
        key: str,
        max_tokens: int | None = None,
        archive: Archive | None = None,
    ) -> CompactionResult:
        """
        Compact a session, hand evicted messages to the archive and persist.

        Args:
            key: Session key.
            max_tokens: Absolute ceiling; defaults to the configured reduction ratio.
            archive: Optional sink for dropped messages.

        Returns:
            The compaction result.
        """
        history = self.get_or_create(key)
        result = history.compact(max_tokens)
        if archive is not None and result.dropped:
            archive.archive(result.dropped)
        if result.messages_removed or result.compressed_indices:
            self.save(key)
        return result

    def delete(self, key: str) -> bool:
        """
        Delete a session.

        Args:
            key: Session key.

        Returns:
            True if deleted, False if not found.
        """
        with self._lock:
            self._cache.pop(key, None)

        path = self._get_session_path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def list_sessions(self) -> list[dict[str, Any]]:
        """
        List all persisted sessions.

        Returns:
            List of session info dicts, most recently modified first.
        """
        sessions = []
        for path in self.sessions_dir.glob("*.jsonl"):
            stat = path.stat()
            sessions.append({
                "key": path.stem.replace("_", ":"),
                "updated_at": datetime.fromtimestamp(stat.st_mtime).isoformat(),
                "size": stat.st_size,
                "path": str(path),
            })
        return sorted(sessions, key=lambda x: x["updated_at"], reverse=True)
