from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

from yanzi.config import JOURNAL_MODES, StoreConfig
from yanzi.core.errors import (
    DuplicateHash,
    DuplicateID,
    InvalidTimestamp,
    MigrationError,
    NotFound,
    StorageError,
    StoreClosedError,
)
from yanzi.core.hashing.timestamps import now_rfc3339_nano, parse_rfc3339
from yanzi.core.model.intent import IntentRecord

from .migrations import (
    DirectoryMigrationSource,
    Migration,
    MigrationSource,
    PackagedMigrationSource,
    ordered,
)

log = logging.getLogger("yanzi.store")

_SCHEMA_MIGRATIONS = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version TEXT PRIMARY KEY,
    applied_at TEXT NOT NULL
)
"""

_SELECT = (
    "SELECT id, created_at, author, source_type, title, prompt, response, meta, prev_hash, hash "
    "FROM intents"
)

# Columns get()/get_by_hash() may look up by; never interpolate anything else.
_LOOKUP_COLUMNS = {"id", "hash"}


def _row_to_record(r: Tuple[Any, ...]) -> IntentRecord:
    return IntentRecord(
        id=r[0],
        created_at=r[1],
        author=r[2],
        source_type=r[3],
        title=r[4],
        prompt=r[5],
        response=r[6],
        meta=r[7],
        prev_hash=r[8],
        hash=r[9],
    )


@dataclass(slots=True)
class SQLiteIntentStore:
    """SQLite persistence for intent records.

    The store is an owned handle: open() acquires one connection, close()
    releases it, and the ``with`` form closes on every exit path. There are
    no update or delete operations; the table is append-only.

    Security notes:
    - Treat all values read from the database as untrusted.
    - This store does NOT encrypt data at rest.
    - All queries are parameterized.

    Concurrency
    - One connection per handle, autocommit mode. Locking is SQLite's own
      (WAL journal plus busy_timeout); nothing is queued or retried here.
    """

    db_path: Path
    config: StoreConfig = field(default_factory=StoreConfig)
    _con: Optional[sqlite3.Connection] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.db_path = Path(self.db_path)

    # lifecycle

    def open(self) -> "SQLiteIntentStore":
        """Open the connection and apply connection PRAGMAs."""

        if self._con is not None:
            return self

        con: Optional[sqlite3.Connection] = None
        try:
            con = sqlite3.connect(
                str(self.db_path),
                timeout=self.config.busy_timeout_ms / 1000.0,
                isolation_level=None,
            )
            # PRAGMA takes no parameters; only a whitelisted name is interpolated.
            mode = JOURNAL_MODES[self.config.journal_mode]
            con.execute(f"PRAGMA journal_mode={mode}")
            con.execute("PRAGMA foreign_keys=ON")
            con.execute(f"PRAGMA busy_timeout={int(self.config.busy_timeout_ms)}")
        except sqlite3.Error as exc:
            if con is not None:
                con.close()
            raise StorageError(f"open {self.db_path}: {exc}") from exc

        self._con = con
        log.debug("opened intent store at %s", self.db_path)
        return self

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""

        con, self._con = self._con, None
        if con is not None:
            con.close()

    @property
    def closed(self) -> bool:
        return self._con is None

    def __enter__(self) -> "SQLiteIntentStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._con is None:
            raise StoreClosedError()
        return self._con

    # migrations

    def _default_source(self) -> MigrationSource:
        if self.config.migrations_dir is not None:
            return DirectoryMigrationSource(self.config.migrations_dir)
        return PackagedMigrationSource()

    def applied_migrations(self) -> List[Tuple[str, str]]:
        """Return recorded (version, applied_at) pairs in version order."""

        con = self._connection()
        try:
            exists = con.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'schema_migrations'"
            ).fetchone()
            if exists is None:
                return []
            rows = con.execute(
                "SELECT version, applied_at FROM schema_migrations ORDER BY version"
            ).fetchall()
        except sqlite3.Error as exc:
            raise MigrationError(f"read schema_migrations: {exc}") from exc
        return [(r[0], r[1]) for r in rows]

    def migrate(self, source: Optional[MigrationSource] = None) -> List[str]:
        """Apply every migration not yet recorded, in ascending version order.

        Each script and its schema_migrations row commit in one transaction.
        A failing script is rolled back and reported; scripts applied before
        it stay applied, so a re-run resumes at the failed one.

        Returns the versions applied by this call (empty when up to date).

        Raises
        - MigrationError: the source is empty or a script fails.
        """

        con = self._connection()
        try:
            con.execute(_SCHEMA_MIGRATIONS)
        except sqlite3.Error as exc:
            raise MigrationError(f"create schema_migrations: {exc}") from exc

        migrations = ordered((source or self._default_source()).load())
        if not migrations:
            raise MigrationError("no migration files found")

        applied = {version for version, _ in self.applied_migrations()}
        done: List[str] = []
        for m in migrations:
            if m.version in applied:
                continue
            self._apply(con, m)
            done.append(m.version)
            log.info("applied migration %s", m.version)
        if done:
            self._backfill_sort_keys(con)
        return done

    def _backfill_sort_keys(self, con: sqlite3.Connection) -> int:
        """Fill created_at_utc for rows stored before the column existed."""

        try:
            columns = {r[1] for r in con.execute("PRAGMA table_info(intents)")}
            if "created_at_utc" not in columns:
                return 0
            rows = con.execute(
                "SELECT rowid, created_at FROM intents WHERE created_at_utc IS NULL"
            ).fetchall()
            if not rows:
                return 0

            con.execute("BEGIN")
            for rowid, created_at in rows:
                try:
                    key = parse_rfc3339(created_at).sort_key()
                except InvalidTimestamp:
                    log.warning("row %s has unparseable created_at %r; sorting by raw text", rowid, created_at)
                    key = created_at
                con.execute("UPDATE intents SET created_at_utc = ? WHERE rowid = ?", (key, rowid))
            con.execute("COMMIT")
        except sqlite3.Error as exc:
            if con.in_transaction:
                con.execute("ROLLBACK")
            raise MigrationError(f"backfill created_at_utc: {exc}") from exc

        log.info("keyed %d existing intents by UTC instant", len(rows))
        return len(rows)

    def _apply(self, con: sqlite3.Connection, m: Migration) -> None:
        try:
            # executescript cannot take parameters, so the bookkeeping insert
            # runs as a separate statement inside the same open transaction.
            con.executescript("BEGIN;\n" + m.script)
            con.execute(
                "INSERT INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                (m.version, now_rfc3339_nano()),
            )
            con.execute("COMMIT")
        except sqlite3.Error as exc:
            if con.in_transaction:
                con.execute("ROLLBACK")
            log.error("migration %s failed: %s", m.version, exc)
            raise MigrationError(f"apply: {exc}", m.version) from exc

    # records

    def create(self, record: IntentRecord) -> None:
        """Insert a record exactly once.

        Raises
        - ValidationError / CanonicalizationError: record is incomplete.
        - DuplicateID: id already stored.
        - DuplicateHash: another record already has this hash.
        - StorageError: any other database failure.
        """

        con = self._connection()
        record.validate()
        sort_key = parse_rfc3339(record.created_at).sort_key()

        try:
            con.execute(
                """INSERT INTO intents(
                    id, created_at, author, source_type, title, prompt, response, meta, prev_hash, hash, created_at_utc
                ) VALUES(?,?,?,?,?,?,?,?,?,?,?)""",
                (
                    record.id,
                    record.created_at,
                    record.author,
                    record.source_type,
                    record.title,
                    record.prompt,
                    record.response,
                    record.meta,
                    record.prev_hash,
                    record.hash,
                    sort_key,
                ),
            )
        except sqlite3.IntegrityError as exc:
            msg = str(exc)
            if "intents.id" in msg:
                raise DuplicateID(record.id) from exc
            if "intents.hash" in msg:
                raise DuplicateHash(record.hash) from exc
            raise StorageError(f"create intent {record.id!r}: {exc}") from exc
        except sqlite3.Error as exc:
            raise StorageError(f"create intent {record.id!r}: {exc}") from exc

    def _fetch_one(self, column: str, value: str) -> IntentRecord:
        if column not in _LOOKUP_COLUMNS:
            raise ValueError(f"unsupported lookup column: {column}")
        con = self._connection()
        try:
            row = con.execute(f"{_SELECT} WHERE {column} = ?", (value,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"get intent by {column}: {exc}") from exc
        if row is None:
            raise NotFound(column, value)
        return _row_to_record(row)

    def get(self, record_id: str) -> IntentRecord:
        """Load a record by id. Raises NotFound when absent."""

        return self._fetch_one("id", record_id)

    def get_by_hash(self, hash_hex: str) -> IntentRecord:
        """Load a record by content hash, for chain traversal."""

        return self._fetch_one("hash", hash_hex)

    def list(self, limit: Optional[int] = None) -> List[IntentRecord]:
        """Return the newest records first.

        limit <= 0 or None falls back to config.default_list_limit (100).
        Ordering uses the instant, not the spelling, of created_at.
        """

        if limit is None or int(limit) <= 0:
            limit = self.config.default_list_limit

        con = self._connection()
        try:
            rows = con.execute(
                f"{_SELECT} ORDER BY created_at_utc DESC, rowid DESC LIMIT ?",
                (int(limit),),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"list intents: {exc}") from exc
        return [_row_to_record(r) for r in rows]


def open_store(
    path: Union[str, Path, None],
    config: Optional[StoreConfig] = None,
) -> SQLiteIntentStore:
    """Open an intent store at path.

    Raises
    - StorageError: path is blank or the database cannot be opened.
    """

    if path is None or not str(path).strip():
        raise StorageError("sqlite path is required")
    cfg = config or StoreConfig(db_path=Path(path))
    return SQLiteIntentStore(db_path=Path(path), config=cfg).open()
