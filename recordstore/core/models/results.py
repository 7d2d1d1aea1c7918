"""
Result variants returned by record store operations.

Store operations report failures inside these models instead of raising;
``raise_for_error()`` converts a failed result back into an exception for
callers that prefer that style.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from recordstore.core.errors import (
    IdentityConsistencyError,
    MalformedRecordData,
    StoreReadFailed,
    StoreWriteFailed,
)
from .constant_fields import UnknownEnumToken
from .record import Record


class LookupStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    # row present, body text would not deserialize
    CORRUPT_BODY = "corrupt_body"
    # row present, constant columns unreadable
    CORRUPT_ROW = "corrupt_row"
    # reader query failed, row state unknown
    READ_FAILED = "read_failed"


class AddResult(BaseModel):
    """
    Outcome of add() / add_record().

    Attributes:
        record_id: New row id (None on failure)
        entered_at: Insert timestamp stamped by the store
        record: For add_record(), the caller's record carrying its new identity
        error: Why nothing was written
    """

    record_id: int | None = None
    entered_at: datetime | None = None
    record: Record | None = None
    error: StoreWriteFailed | MalformedRecordData | None = None

    model_config = {"arbitrary_types_allowed": True}

    @property
    def ok(self) -> bool:
        return self.error is None and self.record_id is not None

    def raise_for_error(self) -> int:
        """Return the new id or raise the recorded error."""
        if self.error is not None:
            raise self.error
        return self.record_id


class UpdateResult(BaseModel):
    """
    Outcome of update().

    ``affected == 0`` with no error means the row did not exist; that is a
    normal no-op, not a failure.
    """

    record_id: int
    affected: int = 0
    error: StoreWriteFailed | IdentityConsistencyError | MalformedRecordData | None = None

    model_config = {"arbitrary_types_allowed": True}

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def updated(self) -> bool:
        return self.error is None and self.affected == 1

    def raise_for_error(self) -> int:
        if self.error is not None:
            raise self.error
        return self.affected


class DeleteResult(BaseModel):
    """Outcome of delete(); success iff exactly one row was removed."""

    record_id: int
    affected: int = 0
    error: StoreWriteFailed | IdentityConsistencyError | None = None

    model_config = {"arbitrary_types_allowed": True}

    @property
    def success(self) -> bool:
        return self.error is None and self.affected == 1

    @property
    def not_found(self) -> bool:
        return self.error is None and self.affected == 0

    def raise_for_error(self) -> bool:
        if self.error is not None:
            raise self.error
        return self.success


class RecordLookup(BaseModel):
    """
    Outcome of get_by_id().

    Attributes:
        record_id: Requested id
        status: FOUND, NOT_FOUND, CORRUPT_BODY, CORRUPT_ROW or READ_FAILED
        record: Loaded record; for CORRUPT_BODY a shell with constants and body=None
        error: Deserialization error for corrupt rows, or the reader failure
        enum_errors: Unknown enum tokens; the affected fields load as absent
    """

    record_id: int
    status: LookupStatus
    record: Record | None = None
    error: MalformedRecordData | StoreReadFailed | None = None
    enum_errors: list[UnknownEnumToken] = Field(default_factory=list)

    model_config = {"arbitrary_types_allowed": True}

    @property
    def found(self) -> bool:
        return self.status not in (LookupStatus.NOT_FOUND, LookupStatus.READ_FAILED)

    @property
    def ok(self) -> bool:
        return self.status == LookupStatus.FOUND

    def raise_for_error(self) -> Record | None:
        if self.error is not None:
            raise self.error
        return self.record
