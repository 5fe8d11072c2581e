"""Conversation history store with append-time merging and compaction."""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from loguru import logger

from tokentrim.compaction.classifier import EssentialClassifier
from tokentrim.compaction.estimator import Tokenizer
from tokentrim.compaction.pruning import keep_last_messages
from tokentrim.compaction.scoring import ImportanceScorer
from tokentrim.compaction.service import CompactionService
from tokentrim.compaction.types import (
    VALID_ROLES,
    CompactionConfig,
    CompactionResult,
    HistoryStats,
    Message,
)
from tokentrim.errors import InvalidInputError, ItemFailure

MIGRATION_BATCH_SIZE = 50

Item = Message | Mapping[str, Any]


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now()


def _validate_item(item: Any) -> tuple[str, str, datetime]:
    """Return (role, content, timestamp) or raise ValueError with the reason."""
    if isinstance(item, Message):
        role, content, timestamp = item.role, item.content, item.timestamp
    elif isinstance(item, Mapping):
        role = item.get("role")
        content = item.get("content")
        timestamp = _parse_timestamp(item.get("timestamp"))
    else:
        raise ValueError(f"unsupported item type {type(item).__name__}")

    if not role:
        raise ValueError("missing role")
    if not isinstance(role, str):
        raise ValueError("role must be a string")
    if role not in VALID_ROLES:
        raise ValueError(f"unknown role {role!r}")
    if content is None:
        raise ValueError("missing content")
    if not isinstance(content, str):
        raise ValueError("content must be a string")
    return role, content, timestamp


class ConversationHistory:
    """
    Ordered message store for one session.

    Every new message gets the next index; consecutive assistant messages
    are merged into one entry. Compaction replaces the stored sequence in
    one step. Mutations are serialized with a lock so indices stay
    monotonic when a host calls in from several threads.
    """

    def __init__(
        self,
        config: CompactionConfig | None = None,
        tokenizer: Tokenizer | None = None,
        scorer: ImportanceScorer | None = None,
        classifier: EssentialClassifier | None = None,
    ):
        self.service = CompactionService(config, tokenizer, scorer, classifier)
        self._messages: list[Message] = []
        self._next_index = 0
        self._lock = threading.RLock()
        self.last_result: CompactionResult | None = None

    @property
    def config(self) -> CompactionConfig:
        return self.service.config

    def __len__(self) -> int:
        return len(self._messages)

    def _annotate(self, message: Message) -> Message:
        """Fill in derived fields from the current strategies."""
        return replace(
            message,
            token_count=self.service.tokenizer.estimate(message.content),
            importance=self.service.scorer.score(message),
            essential=self.service.classifier.is_essential(message),
        )

    # ── Store ───────────────────────────────────────────────────────

    def append(self, role: str, content: str, timestamp: datetime | None = None) -> Message:
        """
        Add a message, merging it into the previous one if both are assistant turns.

        A compressed assistant message is never merged into; the new turn
        starts its own entry.

        Returns:
            The stored message (new or merged).
        """
        with self._lock:
            last = self._messages[-1] if self._messages else None
            if (
                last is not None
                and last.role == "assistant"
                and role == "assistant"
                and not last.is_compressed
            ):
                merged = self._annotate(last.with_content(last.content + content))
                self._messages[-1] = merged
                return merged

            message = self._annotate(Message(
                index=self._next_index,
                role=role,
                content=content,
                timestamp=timestamp or datetime.now(),
            ))
            self._next_index += 1
            self._messages.append(message)
            return message

    def snapshot(self) -> tuple[Message, ...]:
        """Read-only view of the current sequence."""
        with self._lock:
            return tuple(self._messages)

    def replace(self, messages: Sequence[Message]) -> None:
        """
        Swap in a new sequence.

        The new sequence must be a subsequence (by index) of the current one;
        content may differ because of compression.
        """
        with self._lock:
            known = {m.index for m in self._messages}
            failures: list[ItemFailure] = []
            previous = -1
            for position, message in enumerate(messages):
                if message.index not in known:
                    failures.append(ItemFailure(position, f"unknown index {message.index}"))
                elif message.index <= previous:
                    failures.append(ItemFailure(position, f"index {message.index} out of order"))
                previous = max(previous, message.index)
            if failures:
                raise InvalidInputError(failures)
            self._messages = [self._annotate(m) for m in messages]

    # ── Host operations ─────────────────────────────────────────────

    def record_items(self, items: Iterable[Item]) -> list[Message]:
        """
        Record items with append-time merging.

        Items are Messages or mappings with ``role``, ``content`` and an
        optional ``timestamp``; indices on incoming Messages are ignored.
        Malformed items are skipped, the rest are still recorded, and an
        InvalidInputError naming the skipped positions is raised at the end.

        Returns:
            The stored messages touched by this call.
        """
        recorded: list[Message] = []
        failures: list[ItemFailure] = []
        with self._lock:
            for position, item in enumerate(items):
                try:
                    role, content, timestamp = _validate_item(item)
                except ValueError as e:
                    failures.append(ItemFailure(position, str(e)))
                    continue
                stored = self.append(role, content, timestamp)
                if recorded and recorded[-1].index == stored.index:
                    recorded[-1] = stored
                else:
                    recorded.append(stored)

        if failures:
            logger.warning(f"Rejected {len(failures)} malformed item(s)")
            raise InvalidInputError(failures)
        return recorded

    def compact(self, max_tokens: int | None = None) -> CompactionResult:
        """Run a compaction cycle and replace the stored sequence."""
        with self._lock:
            result = self.service.compact(self._messages, max_tokens)
            if result.messages_removed or result.compressed_indices:
                self.replace(result.messages)
            self.last_result = result
            return result

    def optimize_history(self, max_tokens: int) -> list[Message]:
        """
        Compact against an absolute token ceiling.

        Args:
            max_tokens: Token ceiling for the whole history.

        Returns:
            The new history.
        """
        return list(self.compact(max_tokens).messages)

    def keep_last_messages(self, count: int) -> list[Message]:
        """Truncate to the last ``count`` messages without scoring."""
        with self._lock:
            self._messages = keep_last_messages(self._messages, count)
            return list(self._messages)

    def items(self) -> list[Message]:
        """Ordered export of all messages."""
        with self._lock:
            return list(self._messages)

    def total_tokens(self) -> int:
        with self._lock:
            return sum(m.token_count for m in self._messages)

    def stats(self, max_tokens: int | None = None) -> HistoryStats:
        """
        Get token usage statistics.

        Args:
            max_tokens: Ceiling used for the utilization percentage.
        """
        with self._lock:
            total = sum(m.token_count for m in self._messages)
            scorer = self.service.scorer
            utilization = None
            if max_tokens:
                utilization = int(total / max_tokens * 100)
            return HistoryStats(
                total_messages=len(self._messages),
                total_tokens=total,
                max_tokens=max_tokens,
                utilization_percentage=utilization,
                compressed_messages=sum(1 for m in self._messages if m.is_compressed),
                high_importance_messages=sum(
                    1 for m in self._messages if scorer.categorize(m.importance) == "high"
                ),
                essential_messages=sum(1 for m in self._messages if m.essential),
            )

    # ── Migration ───────────────────────────────────────────────────

    @classmethod
    def from_items(
        cls,
        items: Sequence[Item],
        batch_size: int = MIGRATION_BATCH_SIZE,
        **kwargs: Any,
    ) -> "ConversationHistory":
        """
        Build a history from legacy items, recording them in batches.

        Malformed items are skipped with a warning.
        """
        history = cls(**kwargs)
        skipped = 0
        for start in range(0, len(items), batch_size):
            try:
                history.record_items(items[start:start + batch_size])
            except InvalidInputError as e:
                skipped += len(e.failures)
        if skipped:
            logger.warning(f"Migration skipped {skipped} malformed item(s)")
        return history

    def migration_report(self, max_tokens: int | None = None) -> str:
        """Human-readable summary of the current statistics."""
        stats = self.stats(max_tokens)
        utilization = (
            f"{stats.utilization_percentage}%"
            if stats.utilization_percentage is not None
            else "n/a"
        )
        return (
            "Migration complete\n"
            f"Total messages: {stats.total_messages}\n"
            f"Total tokens: {stats.total_tokens}\n"
            f"Utilization: {utilization}\n"
            f"Compressed messages: {stats.compressed_messages}\n"
            f"High importance: {stats.high_importance_messages}\n"
            f"Essential: {stats.essential_messages}"
        )
