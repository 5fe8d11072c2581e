"""Tests for the compaction service."""

from tokentrim.compaction.service import CompactionService
from tokentrim.compaction.types import COMPRESSED_MARKER, CompactionConfig, Message


def _filler(index: int, words: int = 80) -> Message:
    return Message(index=index, role="assistant", content=" ".join(["lorem"] * words))


def _history(count: int) -> list[Message]:
    messages = [Message(index=0, role="system", content="SYSTEM: you are a careful planner")]
    messages += [_filler(i) for i in range(1, count)]
    return messages


class TestShouldCompact:
    def test_threshold(self):
        service = CompactionService()
        assert service.should_compact(1001, 1000)
        assert not service.should_compact(1000, 1000)


class TestCompact:
    def test_noop_under_budget(self):
        service = CompactionService()
        messages = _history(5)
        result = service.compact(messages, max_tokens=10_000)
        assert result.messages == messages
        assert result.messages_removed == 0
        assert result.compressed_indices == []
        assert service.compaction_count == 0

    def test_after_prune_compresses_selected_only(self):
        config = CompactionConfig(minimum_messages=5)
        service = CompactionService(config)
        messages = _history(40)

        result = service.compact(messages)

        kept = {m.index: m for m in result.messages}
        recent = {m.index for m in messages[-5:]}
        assert result.budget_met
        assert result.compressed_indices
        assert not recent & set(result.compressed_indices)
        assert 0 not in result.compressed_indices
        assert kept[0].content == messages[0].content
        for index in result.compressed_indices:
            assert COMPRESSED_MARKER in kept[index].content
        assert service.compaction_count == 1

    def test_before_prune_can_avoid_deletion(self):
        config = CompactionConfig(minimum_messages=5, compression_order="before_prune")
        service = CompactionService(config)
        messages = _history(40)

        result = service.compact(messages)

        assert result.messages_removed == 0
        assert len(result.compressed_indices) == 34
        assert result.tokens_after <= result.target_tokens

    def test_off_never_compresses(self):
        config = CompactionConfig(minimum_messages=5, compression_order="off")
        result = CompactionService(config).compact(_history(40))
        assert result.compressed_indices == []
        assert all(COMPRESSED_MARKER not in m.content for m in result.messages)
        assert result.messages_removed > 0

    def test_target_from_ratio(self):
        config = CompactionConfig(target_reduction_ratio=0.5, minimum_messages=3)
        result = CompactionService(config).compact(_history(20))
        assert result.target_tokens == result.tokens_before // 2
        assert result.reduction >= 0.5

    def test_budget_unreachable_reported(self):
        config = CompactionConfig(minimum_messages=10)
        result = CompactionService(config).compact(_history(20), max_tokens=50)
        assert result.budget_unreachable
        assert len(result.messages) == 11
        assert result.dropped
        assert result.compressed_indices == []

    def test_dropped_and_kept_partition(self):
        messages = _history(30)
        result = CompactionService(CompactionConfig(minimum_messages=5)).compact(messages, max_tokens=500)
        indices = sorted([m.index for m in result.messages] + [m.index for m in result.dropped])
        assert indices == [m.index for m in messages]


class TestInjectedStrategies:
    def test_custom_tokenizer(self):
        class WordTokenizer:
            def estimate(self, text: str) -> int:
                return len(text.split())

        service = CompactionService(
            CompactionConfig(minimum_messages=2, compression_order="off"),
            tokenizer=WordTokenizer(),
        )
        messages = _history(10)
        result = service.compact(messages, max_tokens=300)
        assert result.tokens_before == 6 + 9 * 80
        assert result.tokens_after <= 300
