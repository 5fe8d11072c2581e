"""Tests for configuration schema validation."""

from pathlib import Path

import pytest

from tokentrim.compaction.types import CompactionConfig
from tokentrim.config.schema import CompactionSettings, Config, ScoringSettings
from tokentrim.errors import ConfigurationError


class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.compaction.target_reduction_ratio == 0.2
        assert config.compaction.reserve_policy == "union"
        assert config.compaction.compression_order == "after_prune"
        assert config.compaction.tokenizer == "heuristic"
        assert config.sessions.max_cached == 200

    def test_sessions_path_expansion(self):
        path = Config().sessions_path
        assert isinstance(path, Path)
        assert "~" not in str(path)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("TOKENTRIM_COMPACTION__MINIMUM_MESSAGES", "7")
        assert Config().compaction.minimum_messages == 7

    def test_rejects_unknown_policy(self):
        with pytest.raises(ValueError):
            CompactionSettings(reserve_policy="greedy")


class TestToCompactionConfig:
    def test_defaults_match_engine_defaults(self):
        assert Config().to_compaction_config() == CompactionConfig()

    def test_carries_scoring_and_keywords(self):
        config = Config(
            compaction=CompactionSettings(essential_keywords=["FATAL:"]),
            scoring=ScoringSettings(high_threshold=0.8),
        )
        engine = config.to_compaction_config()
        assert engine.essential_keywords == ("fatal:",)
        assert engine.scoring.high_threshold == 0.8

    @pytest.mark.parametrize(
        "field,value",
        [
            ("target_reduction_ratio", 1.0),
            ("target_reduction_ratio", -0.1),
            ("minimum_messages", 0),
            ("compression_keep_fraction", 0.0),
            ("min_compression_ratio", 1.5),
        ],
    )
    def test_out_of_range_values(self, field, value):
        config = Config(compaction=CompactionSettings(**{field: value}))
        with pytest.raises(ConfigurationError) as exc_info:
            config.to_compaction_config()
        assert exc_info.value.field_name == field
