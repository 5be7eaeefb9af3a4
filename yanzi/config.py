from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_DB_PATH = "yanzi.db"
DEFAULT_BUSY_TIMEOUT_MS = 5000
DEFAULT_JOURNAL_MODE = "WAL"
DEFAULT_LIST_LIMIT = 100

# Accepted journal modes, mapped to the literal interpolated into the PRAGMA.
JOURNAL_MODES = {m: m for m in ("DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF")}


@dataclass(frozen=True, slots=True)
class StoreConfig:
    """Configuration for the intent store.

    Security notes:
    - Env vars are treated as trusted local configuration.
    - journal_mode is restricted to SQLite's known modes because it is
      interpolated into a PRAGMA statement.

    """

    db_path: Path = Path(DEFAULT_DB_PATH)
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    journal_mode: str = DEFAULT_JOURNAL_MODE
    default_list_limit: int = DEFAULT_LIST_LIMIT
    migrations_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        mode = str(self.journal_mode).upper()
        if mode not in JOURNAL_MODES:
            raise ValueError(f"unsupported journal_mode: {self.journal_mode!r}")
        object.__setattr__(self, "journal_mode", mode)
        object.__setattr__(self, "db_path", Path(self.db_path))
        if self.migrations_dir is not None:
            object.__setattr__(self, "migrations_dir", Path(self.migrations_dir))

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Build a config from YANZI_* environment variables."""

        migrations_dir = os.environ.get("YANZI_MIGRATIONS_DIR", "").strip()
        return cls(
            db_path=Path(os.environ.get("YANZI_DB_PATH", "").strip() or DEFAULT_DB_PATH),
            busy_timeout_ms=_env_int("YANZI_BUSY_TIMEOUT_MS", DEFAULT_BUSY_TIMEOUT_MS),
            journal_mode=os.environ.get("YANZI_JOURNAL_MODE", "").strip() or DEFAULT_JOURNAL_MODE,
            default_list_limit=_env_int("YANZI_LIST_LIMIT", DEFAULT_LIST_LIMIT),
            migrations_dir=Path(migrations_dir) if migrations_dir else None,
        )


def _env_int(name: str, default: int) -> int:
    """Read a positive integer environment variable, falling back to default."""

    raw = os.environ.get(name, "").strip()
    if not raw:
        return int(default)
    try:
        value = int(raw)
    except ValueError:
        return int(default)
    return value if value > 0 else int(default)
