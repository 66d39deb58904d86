"""Command system for the SMS router.

This module implements:
- Command parsing from inbound SMS text
- Per-phone session slots with expiry
- Command dispatch and reply formatting
"""

from .dispatcher import CommandDispatcher, DispatchResult
from .parser import Command, CommandParser, CommandType
from .session_store import RedisSessionStore, SessionStore, Slot

__all__ = [
    "Command",
    "CommandDispatcher",
    "CommandParser",
    "CommandType",
    "DispatchResult",
    "RedisSessionStore",
    "SessionStore",
    "Slot",
]
