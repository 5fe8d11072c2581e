"""JSONL session logs: one ``{role, content, timestamp}`` record per line."""

import json
import os
import secrets
from pathlib import Path
from typing import Any, Iterable, Protocol

from filelock import FileLock
from loguru import logger

from tokentrim.compaction.types import Message

# Give up on a log with more corrupt lines than this
MAX_CORRUPT_LINES = 50


class Archive(Protocol):
    """Sink for messages evicted by a compaction."""

    def archive(self, messages: list[Message]) -> None:
        ...


def _record(item: Message | dict[str, Any]) -> dict[str, Any]:
    if isinstance(item, Message):
        return item.to_record()
    return {
        "role": item.get("role"),
        "content": item.get("content"),
        "timestamp": item.get("timestamp"),
    }


def read_session_log(path: Path) -> list[dict[str, Any]]:
    """
    Read records from a session log, skipping corrupt lines.

    Args:
        path: Log file path.

    Returns:
        Records in file order (empty if the file is missing).
    """
    if not path.exists():
        return []

    records: list[dict[str, Any]] = []
    corrupt_lines = 0
    with open(path, encoding="utf-8") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                corrupt_lines += 1
                if corrupt_lines <= 3:
                    logger.warning(f"Skipped corrupt line {line_num} in {path}")
                if corrupt_lines > MAX_CORRUPT_LINES:
                    logger.error(f"Too many corrupt lines in {path}, aborting load")
                    return []
                continue
            if not isinstance(data, dict):
                corrupt_lines += 1
                continue
            records.append(data)

    if corrupt_lines:
        logger.warning(f"{path}: loaded with {corrupt_lines} corrupt line(s) skipped")
    return records


def write_session_log(path: Path, items: Iterable[Message | dict[str, Any]]) -> None:
    """Rewrite a session log atomically (temp file, then rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f".tmp.{secrets.token_hex(4)}")
    try:
        with open(tmp_path, "w", encoding="utf-8", newline="\n") as f:
            for item in items:
                f.write(json.dumps(_record(item)) + "\n")
        os.replace(str(tmp_path), str(path))
    except Exception:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def append_session_log(path: Path, items: Iterable[Message | dict[str, Any]]) -> None:
    """Append records to a session log under a file lock."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with FileLock(path.with_suffix(".lock"), timeout=10):
        with open(path, "a", encoding="utf-8", newline="\n") as f:
            for item in items:
                f.write(json.dumps(_record(item)) + "\n")


class JsonlArchive:
    """Archive that appends evicted messages to a JSONL file."""

    def __init__(self, path: Path):
        self.path = path

    def archive(self, messages: list[Message]) -> None:
        if not messages:
            return
        append_session_log(self.path, messages)
        logger.debug(f"Archived {len(messages)} message(s) to {self.path}")
