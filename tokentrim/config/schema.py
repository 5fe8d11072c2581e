"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tokentrim.compaction.types import (
    DEFAULT_ESSENTIAL_KEYWORDS,
    CompactionConfig,
    ScoringWeights,
)


class ScoringSettings(BaseModel):
    """Importance scoring weights and category thresholds."""
    base: float = 0.3
    critical_bonus: float = 0.4  # system:/critical/error:
    config_bonus: float = 0.3  # config/setting/parameter
    code_bonus: float = 0.25  # code fences, function definitions
    system_role_bonus: float = 0.3
    task_bonus: float = 0.2  # implement/feature/how do
    delivery_bonus: float = 0.15  # here is/requested
    thanks_penalty: float = 0.1
    follow_up_penalty: float = 0.15
    pointer_penalty: float = 0.1
    long_length: int = 1000  # chars
    long_penalty: float = 0.1
    high_threshold: float = 0.6
    medium_threshold: float = 0.35


class CompactionSettings(BaseModel):
    """History compaction configuration."""
    target_reduction_ratio: float = 0.2  # 0.0-0.99
    minimum_messages: int = 15
    compression_length_threshold: int = 200  # chars
    compression_importance_cutoff: float = 0.7
    compression_keep_fraction: float = 0.35
    min_compression_ratio: float = 0.6
    reserve_policy: Literal["union", "max", "sum"] = "union"
    compression_order: Literal["after_prune", "before_prune", "off"] = "after_prune"
    essential_keywords: list[str] = Field(default_factory=lambda: list(DEFAULT_ESSENTIAL_KEYWORDS))
    tokenizer: Literal["heuristic", "tiktoken"] = "heuristic"


class SessionSettings(BaseModel):
    """Session storage configuration."""
    directory: str = "~/.tokentrim/sessions"
    max_cached: int = 200  # LRU size


class Config(BaseSettings):
    """Root configuration for tokentrim."""
    compaction: CompactionSettings = Field(default_factory=CompactionSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    sessions: SessionSettings = Field(default_factory=SessionSettings)

    model_config = SettingsConfigDict(
        env_prefix="TOKENTRIM_",
        env_nested_delimiter="__",
    )

    @property
    def sessions_path(self) -> Path:
        """Get expanded sessions directory."""
        return Path(self.sessions.directory).expanduser()

    def to_compaction_config(self) -> CompactionConfig:
        """
        Build the engine configuration.

        Raises:
            ConfigurationError: If a value is out of range.
        """
        settings = self.compaction.model_dump(exclude={"essential_keywords", "tokenizer"})
        return CompactionConfig(
            **settings,
            scoring=ScoringWeights(**self.scoring.model_dump()),
            essential_keywords=tuple(self.compaction.essential_keywords),
        )
