"""Persistence backends for the project index and sessions."""

from .base import SessionStorage, Storage
from .files import FileSessionStorage, FileStorage, project_key
from .memory import InMemorySessionStorage, InMemoryStorage
from .schema import SCHEMA_VERSION, SessionListItem, SessionRecord, UndoEntryRecord

__all__ = [
    "Storage",
    "SessionStorage",
    "FileStorage",
    "FileSessionStorage",
    "InMemoryStorage",
    "InMemorySessionStorage",
    "SessionRecord",
    "SessionListItem",
    "UndoEntryRecord",
    "SCHEMA_VERSION",
    "project_key",
]
