"""Types for the compaction system."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Literal

from tokentrim.errors import ConfigurationError

Role = Literal["system", "user", "assistant"]
VALID_ROLES: frozenset[str] = frozenset({"system", "user", "assistant"})

ImportanceCategory = Literal["high", "medium", "low"]

# How protected-set tokens are reserved before filling from the remainder
ReservePolicy = Literal["union", "max", "sum"]

# When compression runs relative to pruning
CompressionOrder = Literal["after_prune", "before_prune", "off"]

# Constants
CHARS_PER_TOKEN = 3.5
COMPRESSED_MARKER = "[Compressed]"
COMPRESSED_SUFFIX = f"... {COMPRESSED_MARKER}"

DEFAULT_ESSENTIAL_KEYWORDS: tuple[str, ...] = ("system:", "error:", "critical", "config:")


@dataclass(frozen=True)
class Message:
    """
    A single conversation message.

    ``index`` is assigned once by the history store and is the only
    identity used for ordering and deduplication. The derived fields are
    filled in by the store and may be recomputed at any time.
    """

    index: int
    role: Role
    content: str
    timestamp: datetime = field(default_factory=datetime.now)
    token_count: int = 0
    importance: float = 0.0
    essential: bool = False

    @property
    def is_compressed(self) -> bool:
        return COMPRESSED_MARKER in self.content

    def with_content(self, content: str) -> "Message":
        """Return a copy with new content and the same index."""
        return replace(self, content=content)

    def to_record(self) -> dict[str, Any]:
        """Session log record: role, content and ISO timestamp."""
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ScoringWeights:
    """Tunable weights and thresholds for importance scoring."""

    base: float = 0.3

    # High-value markers
    critical_bonus: float = 0.4
    config_bonus: float = 0.3
    code_bonus: float = 0.25
    system_role_bonus: float = 0.3

    # Task-oriented language
    task_bonus: float = 0.2
    delivery_bonus: float = 0.15

    # Courtesy / filler
    thanks_penalty: float = 0.1
    follow_up_penalty: float = 0.15
    pointer_penalty: float = 0.1

    # Verbosity
    long_length: int = 1000
    long_penalty: float = 0.1

    # Category thresholds
    high_threshold: float = 0.6
    medium_threshold: float = 0.35


@dataclass
class CompactionConfig:
    """Configuration for a compaction pass."""

    # Fraction of tokens to shed when no absolute ceiling is given
    target_reduction_ratio: float = 0.20

    # Most recent messages that always survive
    minimum_messages: int = 15

    # Compression applies above this content length (chars)
    compression_length_threshold: int = 200

    # ... and below this importance score
    compression_importance_cutoff: float = 0.7

    # Share of words kept by compression
    compression_keep_fraction: float = 0.35

    # Minimum token reduction a compressed message must reach
    min_compression_ratio: float = 0.6

    reserve_policy: ReservePolicy = "union"
    compression_order: CompressionOrder = "after_prune"

    scoring: ScoringWeights = field(default_factory=ScoringWeights)
    essential_keywords: tuple[str, ...] = DEFAULT_ESSENTIAL_KEYWORDS

    def __post_init__(self) -> None:
        if not 0 <= self.target_reduction_ratio < 1:
            raise ConfigurationError(
                "target_reduction_ratio", self.target_reduction_ratio, "a value in [0, 1)"
            )
        if self.minimum_messages <= 0:
            raise ConfigurationError(
                "minimum_messages", self.minimum_messages, "a positive integer"
            )
        if not 0 < self.compression_keep_fraction <= 1:
            raise ConfigurationError(
                "compression_keep_fraction", self.compression_keep_fraction, "a value in (0, 1]"
            )
        if self.compression_length_threshold < 0:
            raise ConfigurationError(
                "compression_length_threshold",
                self.compression_length_threshold,
                "a non-negative integer",
            )
        if not 0 <= self.min_compression_ratio < 1:
            raise ConfigurationError(
                "min_compression_ratio", self.min_compression_ratio, "a value in [0, 1)"
            )
        if self.reserve_policy not in ("union", "max", "sum"):
            raise ConfigurationError(
                "reserve_policy", self.reserve_policy, "one of 'union', 'max', 'sum'"
            )
        if self.compression_order not in ("after_prune", "before_prune", "off"):
            raise ConfigurationError(
                "compression_order",
                self.compression_order,
                "one of 'after_prune', 'before_prune', 'off'",
            )
        self.essential_keywords = tuple(k.lower() for k in self.essential_keywords)


@dataclass
class PruneResult:
    """Outcome of a single pruning pass."""

    messages: list[Message]
    dropped: list[Message]
    tokens_before: int
    tokens_after: int
    target_tokens: int
    reserved_tokens: int = 0
    selected: list[int] = field(default_factory=list)
    budget_met: bool = True
    changed: bool = True


@dataclass
class CompactionResult:
    """Result of a compaction cycle (prune + compress)."""

    messages: list[Message]
    tokens_before: int
    tokens_after: int
    target_tokens: int
    messages_removed: int = 0
    dropped: list[Message] = field(default_factory=list)
    compressed_indices: list[int] = field(default_factory=list)
    budget_met: bool = True

    @property
    def budget_unreachable(self) -> bool:
        return not self.budget_met

    @property
    def reduction(self) -> float:
        """Fraction of estimated tokens removed."""
        if self.tokens_before == 0:
            return 0.0
        return (self.tokens_before - self.tokens_after) / self.tokens_before


@dataclass
class HistoryStats:
    """Snapshot statistics for a conversation history."""

    total_messages: int
    total_tokens: int
    max_tokens: int | None
    utilization_percentage: int | None
    compressed_messages: int
    high_importance_messages: int
    essential_messages: int
