"""Compaction system for conversation histories."""

from tokentrim.compaction.estimator import (
    HeuristicTokenizer,
    TiktokenTokenizer,
    Tokenizer,
    estimate_tokens,
    estimate_messages_tokens,
    get_tokenizer,
)
from tokentrim.compaction.classifier import EssentialClassifier, is_essential
from tokentrim.compaction.scoring import ImportanceScorer, score_message
from tokentrim.compaction.pruning import keep_last_messages, prune_history
from tokentrim.compaction.compression import compress_message, compress_messages
from tokentrim.compaction.service import CompactionService
from tokentrim.compaction.types import (
    CompactionConfig,
    CompactionResult,
    HistoryStats,
    Message,
    PruneResult,
    ScoringWeights,
)

__all__ = [
    # Estimator
    "Tokenizer",
    "HeuristicTokenizer",
    "TiktokenTokenizer",
    "get_tokenizer",
    "estimate_tokens",
    "estimate_messages_tokens",
    # Classification and scoring
    "EssentialClassifier",
    "is_essential",
    "ImportanceScorer",
    "score_message",
    # Pruning
    "prune_history",
    "keep_last_messages",
    # Compression
    "compress_message",
    "compress_messages",
    # Service
    "CompactionService",
    # Types
    "CompactionConfig",
    "CompactionResult",
    "HistoryStats",
    "Message",
    "PruneResult",
    "ScoringWeights",
]
