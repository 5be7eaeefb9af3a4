from __future__ import annotations

from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Iterable, List, Protocol, Tuple

from yanzi.core.errors import MigrationError

SCRIPT_SUFFIX = ".sql"


@dataclass(frozen=True)
class Migration:
    """One schema script. version is the script's file name, e.g. 001_init.sql."""

    version: str
    script: str


class MigrationSource(Protocol):
    """Anything that can hand the store its migration scripts."""

    def load(self) -> List[Migration]:
        ...


def ordered(migrations: Iterable[Migration]) -> List[Migration]:
    """Sort by version (ascending, lexicographic) and reject duplicates."""

    out = sorted(migrations, key=lambda m: m.version)
    for prev, cur in zip(out, out[1:]):
        if prev.version == cur.version:
            raise MigrationError("duplicate migration version", cur.version)
    return out


@dataclass(frozen=True)
class StaticMigrationSource:
    """In-memory list of migrations."""

    migrations: Tuple[Migration, ...]

    def load(self) -> List[Migration]:
        return ordered(self.migrations)


@dataclass(frozen=True)
class DirectoryMigrationSource:
    """``*.sql`` files directly inside a directory (subdirectories ignored)."""

    path: Path

    def load(self) -> List[Migration]:
        root = Path(self.path)
        try:
            entries = sorted(p for p in root.iterdir() if p.is_file() and p.suffix == SCRIPT_SUFFIX)
        except OSError as exc:
            raise MigrationError(f"list migrations in {root}: {exc}") from exc

        out: List[Migration] = []
        for p in entries:
            try:
                out.append(Migration(version=p.name, script=p.read_text(encoding="utf-8")))
            except (OSError, UnicodeDecodeError) as exc:
                raise MigrationError(f"read migration: {exc}", p.name) from exc
        return ordered(out)


@dataclass(frozen=True)
class PackagedMigrationSource:
    """The scripts shipped with yanzi in ``yanzi/core/storage/sql``."""

    package: str = "yanzi.core.storage.sql"

    def load(self) -> List[Migration]:
        out: List[Migration] = []
        for entry in resources.files(self.package).iterdir():
            if entry.is_file() and entry.name.endswith(SCRIPT_SUFFIX):
                out.append(Migration(version=entry.name, script=entry.read_text(encoding="utf-8")))
        return ordered(out)
