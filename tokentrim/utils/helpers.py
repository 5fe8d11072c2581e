"""Small filesystem helpers."""

import re
from pathlib import Path

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def ensure_dir(path: Path) -> Path:
    """Create a directory (and parents) if needed and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_filename(name: str) -> str:
    """Replace characters that are not allowed in file names."""
    cleaned = _UNSAFE_CHARS.sub("_", name).strip()
    return cleaned or "_"
