"""Lossy compression of verbose, low-importance messages."""

import math
from dataclasses import replace
from typing import Collection, Sequence

from loguru import logger

from tokentrim.compaction.classifier import EssentialClassifier
from tokentrim.compaction.estimator import Tokenizer, DEFAULT_TOKENIZER
from tokentrim.compaction.scoring import ImportanceScorer
from tokentrim.compaction.types import COMPRESSED_SUFFIX, CompactionConfig, Message


def compression_ratio(before: str, after: str, tokenizer: Tokenizer | None = None) -> float:
    """Fraction of estimated tokens removed going from ``before`` to ``after``."""
    tokenizer = tokenizer or DEFAULT_TOKENIZER
    before_tokens = tokenizer.estimate(before)
    if before_tokens == 0:
        return 0.0
    return 1 - tokenizer.estimate(after) / before_tokens


def should_compress(
    message: Message,
    config: CompactionConfig,
    scorer: ImportanceScorer,
    classifier: EssentialClassifier,
) -> bool:
    """Long, below the importance cutoff, not essential and not compressed yet."""
    if message.is_compressed:
        return False
    if len(message.content) <= config.compression_length_threshold:
        return False
    if classifier.is_essential(message):
        return False
    return scorer.score(message) < config.compression_importance_cutoff


def truncate_words(content: str, keep_fraction: float) -> tuple[list[str], int]:
    """Split on spaces and return (words, number of words to keep)."""
    words = content.split(" ")
    return words, math.floor(len(words) * keep_fraction)


def compress_message(
    message: Message,
    config: CompactionConfig,
    *,
    tokenizer: Tokenizer | None = None,
    scorer: ImportanceScorer | None = None,
    classifier: EssentialClassifier | None = None,
) -> Message:
    """
    Shorten a message to its leading words plus a compression marker.

    Keeps ``compression_keep_fraction`` of the words and drops more
    trailing words until the estimated token reduction reaches
    ``min_compression_ratio``. Messages that don't qualify, or that cannot
    reach the ratio while getting shorter, are returned unchanged.

    Args:
        message: Message to compress.
        config: Compaction configuration.
        tokenizer: Token counting strategy.
        scorer: Importance scorer.
        classifier: Essential-message classifier.

    Returns:
        The compressed message (same index, role and timestamp) or the
        original one.
    """
    tokenizer = tokenizer or DEFAULT_TOKENIZER
    scorer = scorer or ImportanceScorer(config.scoring)
    classifier = classifier or EssentialClassifier(config.essential_keywords)

    if not should_compress(message, config, scorer, classifier):
        return message

    words, keep = truncate_words(message.content, config.compression_keep_fraction)
    compressed = " ".join(words[:keep]) + COMPRESSED_SUFFIX
    while keep > 0 and compression_ratio(message.content, compressed, tokenizer) < config.min_compression_ratio:
        keep -= 1
        compressed = " ".join(words[:keep]) + COMPRESSED_SUFFIX

    if len(compressed) >= len(message.content):
        return message
    if compression_ratio(message.content, compressed, tokenizer) < config.min_compression_ratio:
        logger.debug(f"Message {message.index} too short to reach the compression ratio")
        return message

    shortened = replace(message, content=compressed, token_count=tokenizer.estimate(compressed))
    return replace(shortened, importance=scorer.score(shortened))


def compress_messages(
    messages: Sequence[Message],
    config: CompactionConfig,
    *,
    only: Collection[int] | None = None,
    tokenizer: Tokenizer | None = None,
    scorer: ImportanceScorer | None = None,
    classifier: EssentialClassifier | None = None,
) -> tuple[list[Message], list[int]]:
    """
    Compress every qualifying message, preserving order.

    Args:
        messages: History in chronological order.
        config: Compaction configuration.
        only: Restrict compression to these indices.
        tokenizer: Token counting strategy.
        scorer: Importance scorer.
        classifier: Essential-message classifier.

    Returns:
        Tuple of (messages, indices that were compressed).
    """
    scorer = scorer or ImportanceScorer(config.scoring)
    classifier = classifier or EssentialClassifier(config.essential_keywords)

    result: list[Message] = []
    compressed_indices: list[int] = []
    for message in messages:
        if only is not None and message.index not in only:
            result.append(message)
            continue
        compressed = compress_message(
            message, config, tokenizer=tokenizer, scorer=scorer, classifier=classifier
        )
        if compressed is not message:
            compressed_indices.append(message.index)
        result.append(compressed)
    return result, compressed_indices
