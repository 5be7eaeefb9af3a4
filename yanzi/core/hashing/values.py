from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, Tuple, Union


@dataclass(frozen=True)
class JsonNull:
    """JSON ``null``."""

    kind = "null"


@dataclass(frozen=True)
class JsonBool:
    value: bool

    kind = "boolean"


@dataclass(frozen=True)
class JsonString:
    value: str

    kind = "string"


@dataclass(frozen=True)
class JsonNumber:
    """A JSON number kept as its literal token.

    The token is never routed through float. ``canonical()`` reads it as an
    exact Decimal and re-spells it, so ``1``, ``1.0`` and ``10e-1`` agree.
    """

    token: str

    kind = "number"

    def canonical(self) -> str:
        return canonical_number(self.token)


@dataclass(frozen=True)
class JsonArray:
    items: Tuple["JsonValue", ...] = ()

    kind = "array"


@dataclass(frozen=True)
class JsonObject:
    """A JSON object.

    ``members`` keeps the decoder's insertion order; canonical output sorts
    keys explicitly and never relies on it.
    """

    members: Dict[str, "JsonValue"] = field(default_factory=dict)

    kind = "object"


JsonValue = Union[JsonNull, JsonBool, JsonString, JsonNumber, JsonArray, JsonObject]


# Integral values are written out in full up to _INTEGER_DIGITS_MAX digits.
# Other values use positional notation while the exponent of the leading digit
# lies in [_POSITIONAL_MIN, _POSITIONAL_MAX). Everything else switches to
# d[.ddd]e+N / e-N so huge exponents cannot blow up the output.
_INTEGER_DIGITS_MAX = 1024
_POSITIONAL_MIN = -7
_POSITIONAL_MAX = 21


def canonical_number(token: str) -> str:
    """Return the single canonical spelling of a JSON number token.

    Rules
    - Decoded exactly with Decimal (no binary rounding).
    - Zero of any sign or scale is ``0``.
    - Trailing zeros of the coefficient are removed.
    - Integers are written out in full (up to _INTEGER_DIGITS_MAX digits),
      whatever the spelling of the token.
    - Positional layout for moderate magnitudes, exponent layout otherwise.

    Raises
    - ValueError: token is not a finite number.
    """

    try:
        d = Decimal(token)
    except InvalidOperation as exc:
        raise ValueError(f"invalid number token: {token!r}") from exc
    if not d.is_finite():
        raise ValueError(f"non-finite number: {token!r}")

    sign, digit_tuple, exponent = d.as_tuple()
    digits = list(digit_tuple)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    if digits == [0]:
        return "0"

    coeff = "".join(str(x) for x in digits)
    n = len(coeff)
    leading = exponent + n - 1
    prefix = "-" if sign else ""

    if exponent >= 0 and leading < _INTEGER_DIGITS_MAX:
        return prefix + coeff + "0" * exponent

    if _POSITIONAL_MIN <= leading < _POSITIONAL_MAX:
        if leading >= 0:
            point = n + exponent
            return prefix + coeff[:point] + "." + coeff[point:]
        return prefix + "0." + "0" * (-leading - 1) + coeff

    mantissa = coeff[0] + ("." + coeff[1:] if n > 1 else "")
    exp_sign = "+" if leading >= 0 else "-"
    return f"{prefix}{mantissa}e{exp_sign}{abs(leading)}"


_STRING_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}

_NEEDS_ESCAPE = re.compile(r'["\\\x00-\x1f<>&\u2028\u2029]')
_LONE_SURROGATE = re.compile(r"[\ud800-\udfff]")


def scrub_surrogates(value: str) -> str:
    """Replace unpaired surrogates with U+FFFD so the text is valid UTF-8."""

    return _LONE_SURROGATE.sub("\ufffd", value)


def _escape(m: "re.Match[str]") -> str:
    ch = m.group(0)
    esc = _STRING_ESCAPES.get(ch)
    if esc is None:
        esc = f"\\u{ord(ch):04x}"
    return esc


def encode_string(value: str) -> str:
    """Encode text as a JSON string literal.

    Non-ASCII text is written as-is; HTML-significant characters and the
    JavaScript line separators are escaped.
    """

    return '"' + _NEEDS_ESCAPE.sub(_escape, scrub_surrogates(value)) + '"'
