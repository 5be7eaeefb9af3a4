"""yanzi: append-only, hash-chained intent records.

Records are identified by a SHA-256 digest over a canonical preimage, so the
same logical content always hashes the same regardless of metadata key order,
numeric spelling or line endings.

Security notes
- Hashing gives integrity, not authenticity; nothing here signs records.
- The store never updates or deletes rows.
"""

from yanzi.core.errors import (  # noqa: F401
    CanonicalizationError,
    DuplicateHash,
    DuplicateID,
    FilterError,
    FilterMalformedInput,
    InvalidShape,
    InvalidTimestamp,
    MalformedInput,
    MigrationError,
    MissingField,
    NotFound,
    StorageError,
    StoreClosedError,
    TrailingData,
    ValidationError,
    YanziError,
)
from yanzi.core.model.intent import IntentRecord, normalize_newlines  # noqa: F401
from yanzi.core.hashing.canonical import canonicalize_meta  # noqa: F401
from yanzi.core.hashing.intent_hash import (  # noqa: F401
    canonical_preimage,
    hash_intent,
    seal_intent,
    verify_intent,
)
from yanzi.core.storage import (  # noqa: F401
    DirectoryMigrationSource,
    Migration,
    MigrationSource,
    PackagedMigrationSource,
    SQLiteIntentStore,
    StaticMigrationSource,
    filter_by_meta,
    open_store,
)
from yanzi.core.chain import ChainReport, verify_chain  # noqa: F401

__version__ = "0.1.0"
