"""Configuration module for tokentrim."""

from tokentrim.config.loader import load_config, get_config_path
from tokentrim.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
