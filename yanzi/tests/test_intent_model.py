import pytest

from yanzi.core.errors import InvalidShape, InvalidTimestamp, MalformedInput, MissingField
from yanzi.core.model.intent import IntentRecord, normalize_newlines


def _base(**overrides) -> IntentRecord:
    fields = dict(
        id="01HZYFQ7T9ZV54X2G4A8M4J2C1",
        created_at="2026-02-09T10:00:00Z",
        author="alice",
        source_type="cli",
        prompt="hello",
        response="world",
        hash="abc123",
    )
    fields.update(overrides)
    return IntentRecord(**fields)


def test_normalize_newlines():
    assert normalize_newlines("a\r\nb\rc\nd") == "a\nb\nc\nd"
    assert normalize_newlines("\r\r\n") == "\n\n"
    assert normalize_newlines("") == ""
    assert normalize_newlines(None) is None


def test_normalize_rewrites_free_text_only():
    rec = _base(
        id="id\r\n",
        author="a\r\nb",
        title="t\rt",
        prompt="p\r\n",
        response="r\r",
        prev_hash="h\r\n",
        meta='{"k":"v\\r\\n"}',
    )
    out = rec.normalize()
    assert out.id == "id\r\n"
    assert out.author == "a\nb"
    assert out.title == "t\nt"
    assert out.prompt == "p\n"
    assert out.response == "r\n"
    assert out.prev_hash == "h\n"
    assert out.meta == rec.meta
    assert rec.prompt == "p\r\n"


def test_empty_optional_fields_become_none():
    rec = _base(title="", meta="", prev_hash="")
    assert rec.title is None
    assert rec.meta is None
    assert rec.prev_hash is None


def test_bytes_meta_is_decoded_to_text():
    rec = _base(meta=b'{"a":1}')
    assert rec.meta == '{"a":1}'


def test_validate_accepts_complete_record():
    _base().validate()
    _base(meta='{"env":"prod"}', title="x", prev_hash="p").validate()


@pytest.mark.parametrize("field", ["id", "created_at", "author", "source_type", "prompt", "response", "hash"])
def test_validate_reports_missing_field(field):
    with pytest.raises(MissingField) as ei:
        _base(**{field: ""}).validate()
    assert ei.value.field == field
    assert str(ei.value) == f"{field} is required"


def test_validate_rejects_blank_id():
    with pytest.raises(MissingField):
        _base(id="   ").validate()


def test_validate_rejects_bad_timestamp():
    with pytest.raises(InvalidTimestamp):
        _base(created_at="not-a-time").validate()


def test_validate_checks_meta_shape():
    with pytest.raises(InvalidShape):
        _base(meta="[1,2]").validate()
    with pytest.raises(MalformedInput):
        _base(meta='{"env":').validate()


def test_dict_roundtrip_omits_absent_optionals():
    rec = _base(title="hello", meta='{"env":"prod"}')
    d = rec.to_dict()
    assert "prev_hash" not in d
    assert d["title"] == "hello"
    assert IntentRecord.from_dict(d) == rec


def test_from_dict_serializes_decoded_meta():
    rec = IntentRecord.from_dict(
        {
            "id": "x",
            "created_at": "2026-02-09T10:00:00Z",
            "author": "a",
            "source_type": "cli",
            "prompt": "p",
            "response": "r",
            "meta": {"env": "prod", "count": 2},
        }
    )
    assert rec.meta == '{"env":"prod","count":2}'
    assert rec.hash == ""


def test_create_assigns_id_timestamp_and_hash():
    rec = IntentRecord.create(author="a", source_type="cli", prompt="p\r\n", response="r")
    assert rec.id
    assert rec.created_at.endswith("Z")
    assert rec.prompt == "p\n"
    assert len(rec.hash) == 64
    rec.validate()


def test_record_is_immutable():
    rec = _base()
    with pytest.raises(AttributeError):
        rec.hash = "other"  # type: ignore[misc]
