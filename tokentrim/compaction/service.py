"""Compaction service: pruning plus compression in one cycle."""

from typing import Sequence

from loguru import logger

from tokentrim.compaction.classifier import EssentialClassifier
from tokentrim.compaction.compression import compress_messages
from tokentrim.compaction.estimator import Tokenizer, DEFAULT_TOKENIZER, estimate_messages_tokens
from tokentrim.compaction.pruning import compute_target_tokens, prune_history, split_protected
from tokentrim.compaction.scoring import ImportanceScorer
from tokentrim.compaction.types import CompactionConfig, CompactionResult, Message


class CompactionService:
    """
    Service for compacting conversation histories.

    Handles:
    - Threshold checks against an absolute token ceiling
    - Importance-aware pruning that never drops essential or recent messages
    - Compression of retained low-importance messages, before or after pruning
    """

    def __init__(
        self,
        config: CompactionConfig | None = None,
        tokenizer: Tokenizer | None = None,
        scorer: ImportanceScorer | None = None,
        classifier: EssentialClassifier | None = None,
    ):
        """
        Initialize the compaction service.

        Args:
            config: Compaction configuration.
            tokenizer: Token counting strategy.
            scorer: Importance scorer; built from the config weights if omitted.
            classifier: Essential classifier; built from the config keywords if omitted.
        """
        self.config = config or CompactionConfig()
        self.tokenizer = tokenizer or DEFAULT_TOKENIZER
        self.scorer = scorer or ImportanceScorer(self.config.scoring)
        self.classifier = classifier or EssentialClassifier(self.config.essential_keywords)
        self._compaction_count = 0

    def should_compact(self, total_tokens: int, max_tokens: int) -> bool:
        """
        Check if compaction should be triggered.

        Args:
            total_tokens: Current total tokens in the history.
            max_tokens: Token ceiling.

        Returns:
            True if the history is over the ceiling.
        """
        return total_tokens > max_tokens

    def count_tokens(self, messages: Sequence[Message]) -> int:
        return estimate_messages_tokens(messages, self.tokenizer)

    def compact(
        self,
        messages: Sequence[Message],
        max_tokens: int | None = None,
    ) -> CompactionResult:
        """
        Compact a history to fit the token budget.

        Args:
            messages: History in chronological order.
            max_tokens: Absolute ceiling; defaults to the configured reduction ratio.

        Returns:
            CompactionResult with the new history and statistics.
        """
        history = list(messages)
        tokens_before = self.count_tokens(history)
        target_tokens = compute_target_tokens(tokens_before, self.config, max_tokens)

        if tokens_before <= target_tokens:
            return CompactionResult(
                messages=history,
                tokens_before=tokens_before,
                tokens_after=tokens_before,
                target_tokens=target_tokens,
            )

        order = self.config.compression_order
        compressed_indices: list[int] = []

        if order == "before_prune":
            _, _, remainder = split_protected(
                history, self.config.minimum_messages, self.classifier
            )
            history, compressed_indices = compress_messages(
                history,
                self.config,
                only={m.index for m in remainder},
                tokenizer=self.tokenizer,
                scorer=self.scorer,
                classifier=self.classifier,
            )

        pruned = prune_history(
            history,
            self.config,
            max_tokens=target_tokens,
            tokenizer=self.tokenizer,
            scorer=self.scorer,
            classifier=self.classifier,
        )
        kept = pruned.messages
        kept_indices = {m.index for m in kept}
        compressed_indices = [i for i in compressed_indices if i in kept_indices]

        if order == "after_prune" and pruned.selected:
            kept, compressed_indices = compress_messages(
                kept,
                self.config,
                only=set(pruned.selected),
                tokenizer=self.tokenizer,
                scorer=self.scorer,
                classifier=self.classifier,
            )

        tokens_after = self.count_tokens(kept)
        result = CompactionResult(
            messages=kept,
            tokens_before=tokens_before,
            tokens_after=tokens_after,
            target_tokens=target_tokens,
            messages_removed=len(pruned.dropped),
            dropped=pruned.dropped,
            compressed_indices=compressed_indices,
            budget_met=tokens_after <= target_tokens,
        )

        self._compaction_count += 1

        if result.budget_met:
            logger.info(
                f"Compacted history: {tokens_before} -> {tokens_after} tokens "
                f"({result.messages_removed} removed, {len(compressed_indices)} compressed)"
            )
        else:
            logger.warning(
                f"Token budget unreachable: protected messages need {tokens_after} tokens, "
                f"target is {target_tokens}"
            )

        return result

    @property
    def compaction_count(self) -> int:
        """Get the number of compactions performed."""
        return self._compaction_count
