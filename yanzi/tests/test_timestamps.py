import pytest

from yanzi.core.errors import InvalidTimestamp
from yanzi.core.hashing.timestamps import normalize_rfc3339, now_rfc3339_nano, parse_rfc3339


def test_utc_timestamp_without_fraction_is_unchanged():
    assert normalize_rfc3339("2026-02-09T10:00:00Z") == "2026-02-09T10:00:00Z"


def test_offsets_collapse_to_utc():
    assert normalize_rfc3339("2026-02-09T12:30:00+02:30") == "2026-02-09T10:00:00Z"
    assert normalize_rfc3339("2026-02-09T05:00:00-05:00") == "2026-02-09T10:00:00Z"


def test_fraction_trailing_zeros_are_dropped():
    assert normalize_rfc3339("2026-02-09T10:00:00.500Z") == "2026-02-09T10:00:00.5Z"
    assert normalize_rfc3339("2026-02-09T10:00:00.000000000Z") == "2026-02-09T10:00:00Z"


def test_nanosecond_precision_is_kept():
    assert normalize_rfc3339("2026-02-09T10:00:00.123456789Z") == "2026-02-09T10:00:00.123456789Z"


def test_digits_past_nanoseconds_are_truncated():
    assert normalize_rfc3339("2026-02-09T10:00:00.1234567891Z") == "2026-02-09T10:00:00.123456789Z"


def test_offset_crossing_midnight_moves_the_date():
    assert normalize_rfc3339("2026-03-01T01:00:00+02:00") == "2026-02-28T23:00:00Z"


@pytest.mark.parametrize(
    "value",
    [
        "not-a-time",
        "",
        "2026-02-09",
        "2026-02-09T10:00:00",
        "2026-02-09 10:00:00Z",
        "2026-02-30T10:00:00Z",
        "2026-02-09T24:00:00Z",
        "2026-02-09T10:00:00+24:00",
        "2026-02-09T10:00:00.Z",
        "2026-02-09T10:00:00Z\n",
        "2026-02-09T10:00:00+01:00\n",
    ],
)
def test_invalid_timestamps_raise(value):
    with pytest.raises(InvalidTimestamp):
        parse_rfc3339(value)


def test_sort_key_is_fixed_width():
    a = parse_rfc3339("2026-02-09T10:00:00Z").sort_key()
    b = parse_rfc3339("2026-02-09T10:00:00.5Z").sort_key()
    assert a == "2026-02-09T10:00:00.000000000Z"
    assert len(a) == len(b)
    assert a < b


def test_now_is_normalized():
    now = now_rfc3339_nano()
    assert now.endswith("Z")
    assert normalize_rfc3339(now) == now
