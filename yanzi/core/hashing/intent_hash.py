from __future__ import annotations

import hashlib
import hmac
from typing import List, Optional

from yanzi.core.errors import MissingField
from yanzi.core.model.intent import IntentRecord

from .canonical import canonicalize_meta
from .timestamps import normalize_rfc3339
from .values import encode_string

# Mandatory fields, checked in this order so the first missing one is reported.
REQUIRED_FOR_HASH = ("id", "created_at", "author", "source_type", "prompt", "response")


def sha256_hex(data: bytes) -> str:
    """Compute SHA-256 hex digest.

    Security notes:
    - SHA-256 provides strong collision resistance for integrity.
    - This is integrity-only; it does not provide authenticity.

    """

    h = hashlib.sha256()
    h.update(data)
    return h.hexdigest()


def _add_field(parts: List[str], name: str, encoded: str) -> None:
    if parts:
        parts.append(",")
    parts.append(encode_string(name))
    parts.append(":")
    parts.append(encoded)


def canonical_preimage(record: IntentRecord) -> bytes:
    """Build the exact bytes that are digested for a record.

    Layout: a compact JSON object holding only the present fields in fixed
    order id, created_at, author, source_type, title, prompt, response, meta,
    prev_hash. Absent optional fields are left out instead of written as null,
    so preimages produced before an optional field existed stay reproducible.
    hash itself is never part of the preimage.

    Raises
    - MissingField: a mandatory field is empty.
    - InvalidTimestamp: created_at does not parse.
    - CanonicalizationError: meta is malformed or not an object.
    """

    record = record.normalize()

    for name in REQUIRED_FOR_HASH:
        if not getattr(record, name):
            raise MissingField(name)

    created_at = normalize_rfc3339(record.created_at)

    meta: Optional[str] = None
    if record.meta:
        meta = canonicalize_meta(record.meta)

    parts: List[str] = []
    _add_field(parts, "id", encode_string(record.id))
    _add_field(parts, "created_at", encode_string(created_at))
    _add_field(parts, "author", encode_string(record.author))
    _add_field(parts, "source_type", encode_string(record.source_type))
    if record.title:
        _add_field(parts, "title", encode_string(record.title))
    _add_field(parts, "prompt", encode_string(record.prompt))
    _add_field(parts, "response", encode_string(record.response))
    if meta:
        _add_field(parts, "meta", meta)
    if record.prev_hash:
        _add_field(parts, "prev_hash", encode_string(record.prev_hash))

    return ("{" + "".join(parts) + "}").encode("utf-8")


def hash_intent(record: IntentRecord) -> str:
    """Compute the deterministic content hash (lowercase hex SHA-256)."""

    return sha256_hex(canonical_preimage(record))


def seal_intent(record: IntentRecord) -> IntentRecord:
    """Return a copy of record carrying its computed hash."""

    return record.with_hash(hash_intent(record))


def verify_intent(record: IntentRecord) -> bool:
    """True when record.hash matches the hash recomputed from its content.

    Raises the same errors as hash_intent when the content cannot be hashed.
    """

    if not record.hash:
        return False
    expected = hash_intent(record).encode("ascii")
    return hmac.compare_digest(expected, record.hash.encode("utf-8"))
