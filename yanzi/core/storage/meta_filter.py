from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional

from yanzi.core.errors import CanonicalizationError, FilterMalformedInput
from yanzi.core.hashing.canonical import decode_json
from yanzi.core.hashing.values import JsonObject, JsonString
from yanzi.core.model.intent import IntentRecord


def _string_meta(record: IntentRecord) -> Dict[str, str]:
    """Decode record.meta into its string-valued top-level entries.

    Uses the same strict decoder as hashing, so meta the hasher rejects
    (NaN, trailing data, runaway nesting) is rejected here too.
    """

    try:
        payload = decode_json(record.meta)
    except CanonicalizationError as exc:
        raise FilterMalformedInput(record.id, str(exc)) from exc
    if not isinstance(payload, JsonObject):
        raise FilterMalformedInput(record.id, f"expected object, got {payload.kind}")
    return {k: v.value for k, v in payload.members.items() if isinstance(v, JsonString)}


def matches_meta(record: IntentRecord, filters: Optional[Mapping[str, str]]) -> bool:
    """True when every filter key maps to an equal string in record.meta.

    Non-string metadata values never match. A record without meta matches
    only an empty filter set.
    """

    if not filters:
        return True
    if not record.meta:
        return False

    meta = _string_meta(record)
    for key, want in filters.items():
        if meta.get(key) != want:
            return False
    return True


def filter_by_meta(
    records: Iterable[IntentRecord],
    filters: Optional[Mapping[str, str]],
) -> List[IntentRecord]:
    """Keep the records whose metadata satisfies all filters (AND semantics).

    Empty or None filters return every record unchanged. Order is preserved.

    Raises
    - FilterMalformedInput: any record's meta fails to decode; no partial
      result is returned.
    """

    if not filters:
        return list(records)
    return [r for r in records if matches_meta(r, filters)]
