from __future__ import annotations

import json
import re
from decimal import Decimal
from typing import Any, List, Optional, Tuple, Union

from yanzi.core.errors import InvalidShape, MalformedInput, TrailingData

from .values import (
    JsonArray,
    JsonBool,
    JsonNull,
    JsonNumber,
    JsonObject,
    JsonString,
    JsonValue,
    canonical_number,
    encode_string,
    scrub_surrogates,
)

RawJSON = Union[str, bytes, bytearray]

_WS = re.compile(r"[ \t\n\r]*")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid literal {name}")


def _number(token: str) -> JsonNumber:
    # rejects tokens Decimal cannot hold (e.g. exponents past its range)
    canonical_number(token)
    return JsonNumber(token)


def _lift(value: Any) -> JsonValue:
    """Wrap a value produced by the json scanner into its tagged variant."""

    if value is None:
        return JsonNull()
    if isinstance(value, bool):
        return JsonBool(value)
    if isinstance(value, str):
        return JsonString(scrub_surrogates(value))
    if isinstance(value, list):
        return JsonArray(tuple(_lift(v) for v in value))
    if isinstance(value, (JsonNumber, JsonObject)):
        return value
    raise TypeError(f"unexpected decoded value: {type(value).__name__}")


def _object_from_pairs(pairs: List[Tuple[str, Any]]) -> JsonObject:
    members = {}
    for key, value in pairs:
        # duplicate keys: the last one wins
        members[scrub_surrogates(key)] = _lift(value)
    return JsonObject(members)


def decode_text(raw: RawJSON) -> str:
    if isinstance(raw, (bytes, bytearray)):
        data = bytes(raw)
        return data.decode(json.detect_encoding(data), "replace")
    return raw


def decode_json(raw: RawJSON) -> JsonValue:
    """Decode exactly one JSON value into the tagged value tree.

    Numbers are captured as their literal tokens; nothing passes through float.

    Raises
    - MalformedInput: syntax errors, NaN/Infinity, or nesting too deep.
    - TrailingData: anything but whitespace after the first value.
    """

    text = decode_text(raw)
    start = _WS.match(text, 0).end()
    if start == len(text):
        raise MalformedInput("unexpected end of JSON input", start)

    # A fresh decoder per call: the scanner's key memo is not safe to share.
    decoder = json.JSONDecoder(
        object_pairs_hook=_object_from_pairs,
        parse_float=_number,
        parse_int=_number,
        parse_constant=_reject_constant,
    )
    try:
        value, end = decoder.raw_decode(text, start)
    except RecursionError as exc:
        raise MalformedInput("nesting too deep") from exc
    except json.JSONDecodeError as exc:
        raise MalformedInput(exc.msg, exc.pos) from exc
    except ValueError as exc:
        raise MalformedInput(str(exc)) from exc

    tail = _WS.match(text, end).end()
    if tail != len(text):
        raise TrailingData(tail)

    try:
        return _lift(value)
    except RecursionError as exc:
        raise MalformedInput("nesting too deep") from exc


def _sorted_keys(obj: JsonObject) -> List[str]:
    keys = list(obj.members.keys())
    keys.sort(key=lambda k: k.encode("utf-8"))
    return keys


def _write(out: List[str], value: JsonValue, sort_keys: bool = True) -> None:
    if isinstance(value, JsonNull):
        out.append("null")
    elif isinstance(value, JsonBool):
        out.append("true" if value.value else "false")
    elif isinstance(value, JsonString):
        out.append(encode_string(value.value))
    elif isinstance(value, JsonNumber):
        out.append(value.canonical())
    elif isinstance(value, JsonArray):
        out.append("[")
        for i, item in enumerate(value.items):
            if i:
                out.append(",")
            _write(out, item, sort_keys)
        out.append("]")
    elif isinstance(value, JsonObject):
        out.append("{")
        keys = _sorted_keys(value) if sort_keys else list(value.members)
        for i, key in enumerate(keys):
            if i:
                out.append(",")
            out.append(encode_string(key))
            out.append(":")
            _write(out, value.members[key], sort_keys)
        out.append("}")
    else:
        raise TypeError(f"unsupported JSON value: {type(value).__name__}")


def encode_canonical(value: JsonValue) -> str:
    """Serialize a value tree in canonical form (compact, keys byte-sorted)."""

    out: List[str] = []
    _write(out, value)
    return "".join(out)


def canonicalize_meta(raw: Optional[RawJSON]) -> Optional[str]:
    """Re-encode a metadata payload into its canonical JSON text.

    Two payloads that differ only in key order, whitespace, string escape
    spelling or numeric literal spelling produce identical output.

    Returns None for absent or empty input.

    Raises
    - MalformedInput / TrailingData: from decode_json.
    - InvalidShape: the top-level value is not an object.
    """

    if raw is None or len(raw) == 0:
        return None

    value = decode_json(raw)
    if not isinstance(value, JsonObject):
        raise InvalidShape(value.kind)

    try:
        return encode_canonical(value)
    except RecursionError as exc:
        raise MalformedInput("nesting too deep") from exc


def from_python(value: Any) -> JsonValue:
    """Wrap an already decoded document (dicts, lists, scalars) as a value tree.

    int and Decimal keep every digit; floats are spelled by repr(). Decode
    with ``parse_float=Decimal`` upstream to avoid binary rounding entirely.
    """

    if value is None:
        return JsonNull()
    if isinstance(value, bool):
        return JsonBool(value)
    if isinstance(value, str):
        return JsonString(scrub_surrogates(value))
    if isinstance(value, (int, Decimal)):
        return _number(str(value))
    if isinstance(value, float):
        return _number(repr(value))
    if isinstance(value, (list, tuple)):
        return JsonArray(tuple(from_python(v) for v in value))
    if isinstance(value, dict):
        members = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"object keys must be str, got {type(key).__name__}")
            members[scrub_surrogates(key)] = from_python(item)
        return JsonObject(members)
    raise TypeError(f"unsupported value: {type(value).__name__}")


def compact_meta(meta: Any) -> str:
    """Serialize an in-memory mapping as compact JSON text.

    Key order is kept as given, so the result is not canonical by itself;
    hashing canonicalizes it later. Numbers are written without float
    rounding.

    Raises
    - MalformedInput: a number is NaN, infinite or out of Decimal's range.
    """

    try:
        value = from_python(meta)
    except ValueError as exc:
        raise MalformedInput(str(exc)) from exc
    out: List[str] = []
    _write(out, value, sort_keys=False)
    return "".join(out)
