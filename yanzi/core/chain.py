from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Set, Tuple

from yanzi.core.errors import CanonicalizationError, NotFound, ValidationError
from yanzi.core.hashing.intent_hash import verify_intent
from yanzi.core.model.intent import IntentRecord

log = logging.getLogger("yanzi.chain")

HASH_MISMATCH = "hash_mismatch"
UNHASHABLE = "unhashable"
MISSING_PREDECESSOR = "missing_predecessor"
CYCLE = "cycle"
MAX_DEPTH = "max_depth"


class RecordLookup(Protocol):
    def get_by_hash(self, hash_hex: str) -> IntentRecord:
        ...


@dataclass(frozen=True)
class ChainReport:
    """Outcome of walking a chain from its head towards the genesis record.

    hashes lists the records reached, head first. problem is None when the
    walk ended at a record without prev_hash and every hash verified.
    """

    head: str
    hashes: Tuple[str, ...]
    problem: Optional[str] = None
    at: Optional[str] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.problem is None

    @property
    def length(self) -> int:
        return len(self.hashes)


def verify_chain(
    store: RecordLookup,
    head_hash: str,
    *,
    max_depth: Optional[int] = None,
) -> ChainReport:
    """Follow prev_hash links from head_hash, re-hashing every record.

    The walk stops at the first problem:
    - hash_mismatch: stored hash differs from the recomputed one
    - unhashable: stored content can no longer be hashed (e.g. bad meta)
    - missing_predecessor: prev_hash points at no stored record
    - cycle: a hash is reached twice
    - max_depth: more than max_depth records without reaching the start

    Raises
    - NotFound: head_hash itself is not stored.
    """

    visited: List[str] = []
    seen: Set[str] = set()

    def report(problem: Optional[str] = None, at: Optional[str] = None, detail: Optional[str] = None) -> ChainReport:
        if problem is not None:
            log.warning("chain from %s broken at %s: %s", head_hash, at, problem)
        return ChainReport(head=head_hash, hashes=tuple(visited), problem=problem, at=at, detail=detail)

    current = head_hash
    record = store.get_by_hash(current)

    while True:
        if current in seen:
            return report(CYCLE, current)
        seen.add(current)
        visited.append(current)

        try:
            intact = verify_intent(record)
        except (ValidationError, CanonicalizationError) as exc:
            return report(UNHASHABLE, current, str(exc))
        if not intact:
            return report(HASH_MISMATCH, current)

        if not record.prev_hash:
            return report()
        if max_depth is not None and len(visited) >= max_depth:
            return report(MAX_DEPTH, current)

        current = record.prev_hash
        try:
            record = store.get_by_hash(current)
        except NotFound:
            return report(MISSING_PREDECESSOR, current)
