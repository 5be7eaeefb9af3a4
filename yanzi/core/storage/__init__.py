"""Persistence for intent records.

SQLite holds one append-only ``intents`` table keyed by id with a unique index
on hash. Schema changes arrive as ordered, apply-once migration scripts.
"""

from .meta_filter import filter_by_meta, matches_meta  # noqa: F401
from .migrations import (  # noqa: F401
    DirectoryMigrationSource,
    Migration,
    MigrationSource,
    PackagedMigrationSource,
    StaticMigrationSource,
)
from .sqlite_store import SQLiteIntentStore, open_store  # noqa: F401
