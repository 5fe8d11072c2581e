"""Budget-constrained history pruning."""

import math
from typing import Sequence

from loguru import logger

from tokentrim.compaction.classifier import EssentialClassifier
from tokentrim.compaction.estimator import Tokenizer, DEFAULT_TOKENIZER
from tokentrim.compaction.scoring import ImportanceScorer
from tokentrim.compaction.types import CompactionConfig, Message, PruneResult
from tokentrim.errors import ConfigurationError


def compute_target_tokens(
    current_tokens: int,
    config: CompactionConfig,
    max_tokens: int | None = None,
) -> int:
    """
    Resolve the token ceiling for a pass.

    Args:
        current_tokens: Tokens in the history before pruning.
        config: Compaction configuration.
        max_tokens: Absolute ceiling; overrides the reduction ratio.

    Returns:
        Target token count.
    """
    if max_tokens is not None:
        if max_tokens < 0:
            raise ConfigurationError("max_tokens", max_tokens, "a non-negative integer")
        return max_tokens
    return math.floor(current_tokens * (1 - config.target_reduction_ratio))


def split_protected(
    messages: Sequence[Message],
    minimum_messages: int,
    classifier: EssentialClassifier,
) -> tuple[list[Message], list[Message], list[Message]]:
    """
    Partition a history into essential, recent and remainder.

    The essential and recent groups may overlap; the remainder holds
    everything in neither of them.

    Returns:
        Tuple of (essential, recent, remainder), each in history order.
    """
    essential = [m for m in messages if classifier.is_essential(m)]
    recent = list(messages[-minimum_messages:]) if minimum_messages > 0 else []
    protected = {m.index for m in essential} | {m.index for m in recent}
    remainder = [m for m in messages if m.index not in protected]
    return essential, recent, remainder


def _reserved_tokens(
    essential: list[Message],
    recent: list[Message],
    tokens: dict[int, int],
    policy: str,
) -> int:
    essential_tokens = sum(tokens[m.index] for m in essential)
    recent_tokens = sum(tokens[m.index] for m in recent)
    if policy == "max":
        return max(essential_tokens, recent_tokens)
    if policy == "sum":
        return essential_tokens + recent_tokens
    protected = {m.index for m in essential} | {m.index for m in recent}
    return sum(tokens[i] for i in protected)


def _merge_in_order(messages: Sequence[Message], keep: set[int]) -> list[Message]:
    """Pick messages by index, deduplicated and in chronological order."""
    by_index = {m.index: m for m in messages if m.index in keep}
    return [by_index[i] for i in sorted(by_index)]


def select_by_importance(
    candidates: Sequence[Message],
    budget: int,
    tokens: dict[int, int],
    scorer: ImportanceScorer,
) -> list[Message]:
    """
    Greedily pick the highest-scoring candidates that fit in a budget.

    Candidates are ranked by score descending, earlier index first on
    ties. A candidate that does not fit is skipped and smaller ones after
    it may still be taken.
    """
    ranked = sorted(candidates, key=lambda m: (-scorer.score(m), m.index))
    selected: list[Message] = []
    used = 0
    for message in ranked:
        cost = tokens[message.index]
        if used + cost <= budget:
            selected.append(message)
            used += cost
    return selected


def prune_history(
    messages: Sequence[Message],
    config: CompactionConfig,
    *,
    max_tokens: int | None = None,
    tokenizer: Tokenizer | None = None,
    scorer: ImportanceScorer | None = None,
    classifier: EssentialClassifier | None = None,
) -> PruneResult:
    """
    Select a subsequence of the history that fits the token budget.

    Essential messages and the most recent ``minimum_messages`` messages
    are always kept. The remaining budget is filled from the rest of the
    history by importance. When the protected messages alone exceed the
    target, they are returned on their own and the result reports that the
    budget was not met.

    Args:
        messages: History in chronological order.
        config: Compaction configuration.
        max_tokens: Absolute ceiling; defaults to the configured reduction ratio.
        tokenizer: Token counting strategy.
        scorer: Importance scorer.
        classifier: Essential-message classifier.

    Returns:
        PruneResult with kept and dropped messages and token accounting.
    """
    tokenizer = tokenizer or DEFAULT_TOKENIZER
    scorer = scorer or ImportanceScorer(config.scoring)
    classifier = classifier or EssentialClassifier(config.essential_keywords)

    history = list(messages)
    tokens = {m.index: tokenizer.estimate(m.content) for m in history}
    current_tokens = sum(tokens.values())
    target_tokens = compute_target_tokens(current_tokens, config, max_tokens)

    if current_tokens <= target_tokens:
        return PruneResult(
            messages=history,
            dropped=[],
            tokens_before=current_tokens,
            tokens_after=current_tokens,
            target_tokens=target_tokens,
            changed=False,
        )

    essential, recent, remainder = split_protected(
        history, config.minimum_messages, classifier
    )
    reserved = _reserved_tokens(essential, recent, tokens, config.reserve_policy)
    available = target_tokens - reserved

    keep = {m.index for m in essential} | {m.index for m in recent}
    selected: list[Message] = []
    if available > 0:
        selected = select_by_importance(remainder, available, tokens, scorer)
        keep.update(m.index for m in selected)
    else:
        logger.debug(
            f"Protected messages reserve {reserved} tokens, "
            f"target is {target_tokens}; keeping protected set only"
        )

    kept = _merge_in_order(history, keep)
    dropped = [m for m in history if m.index not in keep]
    tokens_after = sum(tokens[m.index] for m in kept)

    logger.debug(
        f"Pruned {len(dropped)} of {len(history)} messages "
        f"({current_tokens} -> {tokens_after} tokens, target {target_tokens}, "
        f"{len(essential)} essential, {len(recent)} recent)"
    )

    return PruneResult(
        messages=kept,
        dropped=dropped,
        tokens_before=current_tokens,
        tokens_after=tokens_after,
        target_tokens=target_tokens,
        reserved_tokens=reserved,
        selected=[m.index for m in selected],
        budget_met=tokens_after <= target_tokens,
        changed=bool(dropped),
    )


def keep_last_messages(messages: Sequence[Message], count: int) -> list[Message]:
    """Plain truncation to the last ``count`` messages, no scoring."""
    if count <= 0:
        return []
    return list(messages[-count:])
