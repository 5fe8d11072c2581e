"""Tests for token estimation strategies."""

import pytest

from tokentrim.compaction.estimator import (
    HeuristicTokenizer,
    TiktokenTokenizer,
    estimate_message_tokens,
    estimate_messages_tokens,
    estimate_tokens,
    get_tokenizer,
)
from tokentrim.compaction.types import Message


class FakeEncoder:
    """Stands in for a tiktoken encoding: one token per word."""

    def encode(self, text: str, disallowed_special=()):
        return text.split()


class WordTokenizer:
    def estimate(self, text: str) -> int:
        return len(text.split())


# ── HeuristicTokenizer ──────────────────────────────────────────────


class TestHeuristicTokenizer:
    def test_empty(self):
        assert HeuristicTokenizer().estimate("") == 0

    def test_rounds_up(self):
        tok = HeuristicTokenizer()
        assert tok.estimate("abc") == 1
        assert tok.estimate("a" * 7) == 2
        assert tok.estimate("a" * 8) == 3

    def test_exact_multiple(self):
        assert HeuristicTokenizer().estimate("a" * 35) == 10

    def test_custom_ratio(self):
        assert HeuristicTokenizer(chars_per_token=4).estimate("a" * 9) == 3

    def test_deterministic(self):
        tok = HeuristicTokenizer()
        text = "The quick brown fox " * 20
        assert tok.estimate(text) == tok.estimate(text)


# ── TiktokenTokenizer ───────────────────────────────────────────────


class TestTiktokenTokenizer:
    def test_uses_encoder(self):
        tok = TiktokenTokenizer()
        tok._encoder = FakeEncoder()
        assert tok.estimate("one two three") == 3

    def test_empty_skips_encoder(self):
        tok = TiktokenTokenizer()
        # No encoder is loaded for empty text
        assert tok.estimate("") == 0
        assert tok._encoder is None


# ── Module helpers ──────────────────────────────────────────────────


class TestEstimateHelpers:
    def test_estimate_tokens_default(self):
        assert estimate_tokens("a" * 70) == 20

    def test_estimate_tokens_injected(self):
        assert estimate_tokens("a b c d", WordTokenizer()) == 4

    def test_message_tokens(self):
        msg = Message(index=0, role="user", content="a" * 35)
        assert estimate_message_tokens(msg) == 10

    def test_messages_sum(self):
        messages = [
            Message(index=0, role="user", content="a" * 35),
            Message(index=1, role="assistant", content="a" * 7),
            Message(index=2, role="user", content=""),
        ]
        assert estimate_messages_tokens(messages) == 12

    def test_messages_injected(self):
        messages = [
            Message(index=0, role="user", content="hello there"),
            Message(index=1, role="assistant", content="general kenobi you are"),
        ]
        assert estimate_messages_tokens(messages, WordTokenizer()) == 6

    def test_empty_list(self):
        assert estimate_messages_tokens([]) == 0


class TestGetTokenizer:
    def test_heuristic(self):
        assert isinstance(get_tokenizer("heuristic"), HeuristicTokenizer)

    def test_tiktoken(self):
        assert isinstance(get_tokenizer("tiktoken"), TiktokenTokenizer)

    def test_unknown(self):
        with pytest.raises(ValueError):
            get_tokenizer("bogus")
