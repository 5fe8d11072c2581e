"""Token estimation for messages."""

import math
from typing import Iterable, Protocol

import tiktoken

from tokentrim.compaction.types import CHARS_PER_TOKEN, Message


class Tokenizer(Protocol):
    """Anything that can turn text into a token count."""

    def estimate(self, text: str) -> int:
        ...


class HeuristicTokenizer:
    """Fixed characters-per-token ratio, no external data needed."""

    def __init__(self, chars_per_token: float = CHARS_PER_TOKEN):
        self.chars_per_token = chars_per_token

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)


class TiktokenTokenizer:
    """Exact token counts using a tiktoken encoding."""

    def __init__(self, encoding: str = "cl100k_base"):
        self.encoding_name = encoding
        self._encoder: tiktoken.Encoding | None = None

    def _get_encoder(self) -> tiktoken.Encoding:
        """Get or create the tiktoken encoder."""
        if self._encoder is None:
            self._encoder = tiktoken.get_encoding(self.encoding_name)
        return self._encoder

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return len(self._get_encoder().encode(text, disallowed_special=()))


DEFAULT_TOKENIZER = HeuristicTokenizer()


def get_tokenizer(name: str) -> Tokenizer:
    """
    Resolve a tokenizer by name.

    Args:
        name: "heuristic" or "tiktoken".

    Returns:
        A tokenizer instance.
    """
    if name == "heuristic":
        return HeuristicTokenizer()
    if name == "tiktoken":
        return TiktokenTokenizer()
    raise ValueError(f"Unknown tokenizer: {name}")


def estimate_tokens(text: str, tokenizer: Tokenizer | None = None) -> int:
    """
    Estimate the number of tokens in a text string.

    Args:
        text: The text to estimate tokens for.
        tokenizer: Strategy to use; the heuristic one by default.

    Returns:
        Estimated token count.
    """
    return (tokenizer or DEFAULT_TOKENIZER).estimate(text)


def estimate_message_tokens(message: Message, tokenizer: Tokenizer | None = None) -> int:
    """Estimate tokens for a single message's content."""
    return estimate_tokens(message.content, tokenizer)


def estimate_messages_tokens(
    messages: Iterable[Message],
    tokenizer: Tokenizer | None = None,
) -> int:
    """
    Estimate total tokens for a list of messages.

    Args:
        messages: Messages to count.
        tokenizer: Strategy to use; the heuristic one by default.

    Returns:
        Sum of per-message estimates.
    """
    return sum(estimate_message_tokens(msg, tokenizer) for msg in messages)
