"""
Storage layer for rulestore.

Provides pluggable node stores, with the default in-memory
implementation for development and SQLite for persistence.
"""

from rulestore.storage.engine import NodeStore, InMemoryNodeStore
from rulestore.storage.sqlite import SQLiteNodeStore

__all__ = [
    "NodeStore",
    "InMemoryNodeStore",
    "SQLiteNodeStore",
]
