from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from yanzi.core.errors import InvalidTimestamp

_RFC3339 = re.compile(
    r"^(?P<year>[0-9]{4})-(?P<month>[0-9]{2})-(?P<day>[0-9]{2})"
    r"T(?P<hour>[0-9]{2}):(?P<minute>[0-9]{2}):(?P<second>[0-9]{2})"
    r"(?:\.(?P<frac>[0-9]+))?"
    r"(?P<tz>Z|[+-][0-9]{2}:[0-9]{2})\Z"
)


@dataclass(frozen=True)
class Instant:
    """A UTC instant at nanosecond precision.

    datetime only carries microseconds, so the sub-second part lives in
    ``nanos`` and ``moment`` is truncated to whole seconds.
    """

    moment: datetime
    nanos: int

    def format(self) -> str:
        """Render as ``YYYY-MM-DDTHH:MM:SS[.fraction]Z``.

        Trailing zeros of the fraction are dropped and a zero fraction is
        omitted entirely, so one instant has exactly one spelling.
        """

        m = self.moment
        # strftime does not zero-pad years below 1000 on every platform
        base = (
            f"{m.year:04d}-{m.month:02d}-{m.day:02d}"
            f"T{m.hour:02d}:{m.minute:02d}:{m.second:02d}"
        )
        if self.nanos:
            base += "." + f"{self.nanos:09d}".rstrip("0")
        return base + "Z"

    def sort_key(self) -> str:
        """Fixed-width form (always nine fraction digits); sorts as text."""

        m = self.moment
        return (
            f"{m.year:04d}-{m.month:02d}-{m.day:02d}"
            f"T{m.hour:02d}:{m.minute:02d}:{m.second:02d}.{self.nanos:09d}Z"
        )


def parse_rfc3339(value: str) -> Instant:
    """Parse an RFC 3339 timestamp into a UTC Instant.

    Accepts any number of fractional digits; digits past the ninth are
    truncated. A numeric offset or ``Z`` is mandatory.

    Raises
    - InvalidTimestamp: on syntax errors, impossible dates or offsets, or
      instants outside years 0001-9999 once shifted to UTC.
    """

    if not isinstance(value, str):
        raise InvalidTimestamp(repr(value), "not a string")

    m = _RFC3339.match(value)
    if m is None:
        raise InvalidTimestamp(value, "bad layout")

    tz = m.group("tz")
    if tz == "Z":
        offset = timedelta(0)
    else:
        sign = -1 if tz[0] == "-" else 1
        hours, minutes = int(tz[1:3]), int(tz[4:6])
        if hours > 23 or minutes > 59:
            raise InvalidTimestamp(value, "offset out of range")
        offset = sign * timedelta(hours=hours, minutes=minutes)

    frac = (m.group("frac") or "")[:9]
    nanos = int(frac.ljust(9, "0")) if frac else 0

    try:
        local = datetime(
            int(m.group("year")),
            int(m.group("month")),
            int(m.group("day")),
            int(m.group("hour")),
            int(m.group("minute")),
            int(m.group("second")),
            tzinfo=timezone(offset),
        )
        moment = local.astimezone(timezone.utc)
    except (ValueError, OverflowError) as exc:
        raise InvalidTimestamp(value, str(exc)) from exc

    return Instant(moment=moment, nanos=nanos)


def normalize_rfc3339(value: str) -> str:
    """Collapse equivalent RFC 3339 spellings to one UTC nanosecond form."""

    return parse_rfc3339(value).format()


def now_rfc3339_nano() -> str:
    """Current UTC instant in the normalized nanosecond form."""

    ns = time.time_ns()
    seconds, nanos = divmod(ns, 1_000_000_000)
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return Instant(moment=moment, nanos=nanos).format()
