from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

from yanzi.core.errors import MissingField
from yanzi.core.hashing.canonical import decode_text, canonicalize_meta, compact_meta
from yanzi.core.hashing.timestamps import now_rfc3339_nano, parse_rfc3339

# Free-text fields rewritten by normalize(). id and meta are left alone.
TEXT_FIELDS = ("author", "source_type", "title", "prompt", "response", "prev_hash")
OPTIONAL_FIELDS = ("title", "meta", "prev_hash")


def normalize_newlines(value: Optional[str]) -> Optional[str]:
    """Convert CRLF and lone CR to LF. Empty and None pass through."""

    if not value:
        return value
    return value.replace("\r\n", "\n").replace("\r", "\n")


@dataclass(frozen=True)
class IntentRecord:
    """
    Immutable intent record: one author-submitted prompt/response interaction.

    Invariants
    - hash is derived from every other field (see yanzi.core.hashing.intent_hash)
      and never feeds into itself
    - optional fields are either a non-empty string or None; "" is stored as None
    - meta is raw JSON text of an object, kept exactly as supplied
    """

    id: str
    created_at: str
    author: str
    source_type: str
    prompt: str
    response: str
    title: Optional[str] = None
    meta: Optional[str] = None
    prev_hash: Optional[str] = None
    hash: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.meta, (bytes, bytearray)):
            object.__setattr__(self, "meta", decode_text(self.meta))
        for name in OPTIONAL_FIELDS:
            if getattr(self, name) == "":
                object.__setattr__(self, name, None)

    @classmethod
    def create(
        cls,
        *,
        author: str,
        source_type: str,
        prompt: str,
        response: str,
        title: Optional[str] = None,
        meta: Optional[str] = None,
        prev_hash: Optional[str] = None,
        id: Optional[str] = None,
        created_at: Optional[str] = None,
    ) -> "IntentRecord":
        """Build a normalized, sealed record.

        id defaults to a fresh uuid4 and created_at to the current UTC instant.
        """

        from yanzi.core.hashing.intent_hash import seal_intent

        record = cls(
            id=id or str(uuid4()),
            created_at=created_at or now_rfc3339_nano(),
            author=author,
            source_type=source_type,
            title=title,
            prompt=prompt,
            response=response,
            meta=meta,
            prev_hash=prev_hash,
        )
        return seal_intent(record.normalize())

    def normalize(self) -> "IntentRecord":
        """Return a copy with line endings in free-text fields folded to LF."""

        return replace(self, **{name: normalize_newlines(getattr(self, name)) for name in TEXT_FIELDS})

    def validate(self) -> None:
        """Check the record is complete enough to persist.

        Raises
        - MissingField: a mandatory field is absent or empty.
        - InvalidTimestamp: created_at is not RFC 3339.
        - CanonicalizationError: meta is present but not a JSON object.
        """

        if not self.id or not self.id.strip():
            raise MissingField("id")
        if not self.created_at:
            raise MissingField("created_at")
        parse_rfc3339(self.created_at)
        for name in ("author", "source_type", "prompt", "response", "hash"):
            if not getattr(self, name):
                raise MissingField(name)
        if self.meta:
            canonicalize_meta(self.meta)

    def with_hash(self, hash_hex: str) -> "IntentRecord":
        return replace(self, hash=hash_hex)

    def to_dict(self) -> Dict[str, Any]:
        """Export using the wire field names; absent optionals are omitted."""

        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in OPTIONAL_FIELDS and value is None:
                continue
            out[f.name] = value
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IntentRecord":
        """Build a record from a decoded JSON document.

        Security notes:
        - Input is untrusted; nothing is validated here. Call validate() or
          hash the record before relying on it.
        - meta may be JSON text or an already decoded value; decoded values are
          re-serialized compactly.
        """

        meta = data.get("meta")
        if meta is not None and not isinstance(meta, (str, bytes, bytearray)):
            meta = compact_meta(meta)

        def _s(name: str) -> str:
            value = data.get(name)
            return "" if value is None else str(value)

        return cls(
            id=_s("id"),
            created_at=_s("created_at"),
            author=_s("author"),
            source_type=_s("source_type"),
            title=data.get("title"),
            prompt=_s("prompt"),
            response=_s("response"),
            meta=meta,
            prev_hash=data.get("prev_hash"),
            hash=_s("hash"),
        )
