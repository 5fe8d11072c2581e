"""Utility functions for tokentrim."""

from tokentrim.utils.helpers import ensure_dir, safe_filename

__all__ = ["ensure_dir", "safe_filename"]
