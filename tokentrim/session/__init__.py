"""Session history storage."""

from tokentrim.session.history import ConversationHistory
from tokentrim.session.log import (
    Archive,
    JsonlArchive,
    append_session_log,
    read_session_log,
    write_session_log,
)
from tokentrim.session.manager import SessionManager

__all__ = [
    "ConversationHistory",
    "SessionManager",
    "Archive",
    "JsonlArchive",
    "read_session_log",
    "write_session_log",
    "append_session_log",
]
