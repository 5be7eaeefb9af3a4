from __future__ import annotations

from typing import Optional


class YanziError(Exception):
    """
    Base exception for all yanzi failures.
    """

    pass


class ValidationError(YanziError):
    """
    Raised when a record is missing a required field or carries a malformed one.
    """

    pass


class MissingField(ValidationError):
    """A mandatory record field is absent or empty."""

    def __init__(self, field: str) -> None:
        super().__init__(f"{field} is required")
        self.field = field


class InvalidTimestamp(ValidationError):
    """created_at could not be parsed as an RFC 3339 instant."""

    def __init__(self, value: str, reason: str = "") -> None:
        msg = f"created_at must be RFC3339: {value!r}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.value = value
        self.field = "created_at"


class CanonicalizationError(YanziError):
    """
    Raised when metadata cannot be brought into canonical form.
    """

    pass


class MalformedInput(CanonicalizationError):
    """The metadata payload is not valid JSON."""

    def __init__(self, detail: str, position: Optional[int] = None) -> None:
        msg = f"malformed JSON: {detail}"
        if position is not None:
            msg = f"{msg} (at offset {position})"
        super().__init__(msg)
        self.detail = detail
        self.position = position


class InvalidShape(CanonicalizationError):
    """The metadata payload decoded to something other than a JSON object."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"meta must be a JSON object, got {kind}")
        self.kind = kind


class TrailingData(CanonicalizationError):
    """Extra bytes follow the first decoded JSON value."""

    def __init__(self, position: int) -> None:
        super().__init__(f"unexpected trailing JSON data at offset {position}")
        self.position = position


class StorageError(YanziError):
    """
    Raised for open, migrate and query failures of the record store.
    """

    pass


class StoreClosedError(StorageError):
    """The store handle was used after close()."""

    def __init__(self) -> None:
        super().__init__("store is closed")


class NotFound(StorageError):
    """No record matches the requested key."""

    def __init__(self, key: str, value: str) -> None:
        super().__init__(f"intent not found: {key}={value!r}")
        self.key = key
        self.value = value


class DuplicateID(StorageError):
    """A record with the same id already exists."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"intent id already exists: {record_id!r}")
        self.record_id = record_id


class DuplicateHash(StorageError):
    """A record with the same content hash already exists."""

    def __init__(self, hash_hex: str) -> None:
        super().__init__(f"intent hash already exists: {hash_hex}")
        self.hash = hash_hex


class MigrationError(StorageError):
    """A migration script could not be loaded, applied or recorded."""

    def __init__(self, message: str, version: Optional[str] = None) -> None:
        if version:
            message = f"migration {version}: {message}"
        super().__init__(message)
        self.version = version


class FilterError(YanziError):
    """
    Raised when a metadata filter pass cannot be completed.
    """

    pass


class FilterMalformedInput(FilterError):
    """A record's metadata could not be decoded while filtering."""

    def __init__(self, record_id: str, detail: str) -> None:
        super().__init__(f"decode meta for intent {record_id!r}: {detail}")
        self.record_id = record_id
        self.detail = detail
