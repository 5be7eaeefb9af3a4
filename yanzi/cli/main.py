from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterator, List

from yanzi.config import StoreConfig
from yanzi.core.chain import verify_chain
from yanzi.core.errors import YanziError
from yanzi.core.hashing.intent_hash import canonical_preimage, hash_intent, seal_intent
from yanzi.core.model.intent import IntentRecord
from yanzi.core.storage.meta_filter import filter_by_meta
from yanzi.core.storage.sqlite_store import SQLiteIntentStore, open_store

log = logging.getLogger("yanzi.cli")


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True, ensure_ascii=False))


def _read_record(path: str) -> IntentRecord:
    """Read one intent record (JSON object) from a file, or stdin for '-'.

    Numbers decode as Decimal so an inline meta object keeps every digit.
    """

    if path == "-":
        data = json.load(sys.stdin, parse_float=Decimal, parse_int=Decimal)
    else:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f, parse_float=Decimal, parse_int=Decimal)
    if not isinstance(data, dict):
        raise ValueError("record file must contain a JSON object")
    return IntentRecord.from_dict(data)


def _parse_meta_filters(items: List[str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"--meta expects key=value, got {item!r}")
        out[key] = value
    return out


@contextmanager
def _store(args: argparse.Namespace) -> Iterator[SQLiteIntentStore]:
    cfg = replace(StoreConfig.from_env(), db_path=Path(args.db))
    store = open_store(args.db, cfg)
    try:
        yield store
    finally:
        store.close()


def cmd_migrate(args: argparse.Namespace) -> int:
    with _store(args) as store:
        applied = store.migrate()
        _print_json({"applied": applied, "versions": [v for v, _ in store.applied_migrations()]})
    return 0


def cmd_hash(args: argparse.Namespace) -> int:
    """Print the content hash of a record file (no database access)."""

    record = _read_record(args.path)
    if args.preimage:
        print(canonical_preimage(record).decode("utf-8"))
    print(hash_intent(record))
    return 0


def cmd_create(args: argparse.Namespace) -> int:
    """Persist a record file. A missing hash is computed; a given one is kept."""

    record = _read_record(args.path).normalize()
    if not record.hash:
        record = seal_intent(record)
    with _store(args) as store:
        store.create(record)
    _print_json(record.to_dict())
    return 0


def cmd_get(args: argparse.Namespace) -> int:
    with _store(args) as store:
        record = store.get(args.id)
    _print_json(record.to_dict())
    return 0


def cmd_get_by_hash(args: argparse.Namespace) -> int:
    with _store(args) as store:
        record = store.get_by_hash(args.hash)
    _print_json(record.to_dict())
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    filters = _parse_meta_filters(args.meta or [])
    with _store(args) as store:
        records = store.list(args.limit)
    records = filter_by_meta(records, filters)
    _print_json([r.to_dict() for r in records])
    return 0


def cmd_verify_chain(args: argparse.Namespace) -> int:
    with _store(args) as store:
        rep = verify_chain(store, args.hash, max_depth=args.max_depth)
    _print_json(
        {
            "head": rep.head,
            "ok": rep.ok,
            "length": rep.length,
            "hashes": list(rep.hashes),
            "problem": rep.problem,
            "at": rep.at,
            "detail": rep.detail,
        }
    )
    return 0 if rep.ok else 1


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser."""
    p = argparse.ArgumentParser(prog="yanzi", description="yanzi intent store CLI")
    p.add_argument(
        "--db",
        default=str(StoreConfig.from_env().db_path),
        help="SQLite database path (default: $YANZI_DB_PATH or yanzi.db)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    mp = sub.add_parser("migrate", help="Apply pending schema migrations")
    mp.set_defaults(func=cmd_migrate)

    hp = sub.add_parser("hash", help="Compute the content hash of a record file")
    hp.add_argument("path", help="Path to record JSON ('-' for stdin)")
    hp.add_argument("--preimage", action="store_true", help="Also print the canonical preimage")
    hp.set_defaults(func=cmd_hash)

    cp = sub.add_parser("create", help="Store a record file")
    cp.add_argument("path", help="Path to record JSON ('-' for stdin)")
    cp.set_defaults(func=cmd_create)

    gp = sub.add_parser("get", help="Load a record by id")
    gp.add_argument("id", help="Record id")
    gp.set_defaults(func=cmd_get)

    gh = sub.add_parser("get-by-hash", help="Load a record by content hash")
    gh.add_argument("hash", help="Record hash (hex)")
    gh.set_defaults(func=cmd_get_by_hash)

    lp = sub.add_parser("list", help="List newest records")
    lp.add_argument("--limit", type=int, default=0, help="Max records (<=0 uses the default)")
    lp.add_argument(
        "--meta",
        action="append",
        default=[],
        help="Exact metadata match key=value (repeatable, all must match)",
    )
    lp.set_defaults(func=cmd_list)

    vp = sub.add_parser("verify-chain", help="Walk and re-hash a chain from its head")
    vp.add_argument("hash", help="Head record hash")
    vp.add_argument("--max-depth", type=int, default=None, help="Stop after this many records")
    vp.set_defaults(func=cmd_verify_chain)

    return p


def main(argv: List[str] | None = None) -> int:
    """CLI entry."""
    logging.basicConfig(
        level=os.environ.get("YANZI_LOG_LEVEL", "WARNING").upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return int(args.func(args))
    except (YanziError, ValueError, OSError) as e:
        log.debug("command %s failed", args.cmd, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
