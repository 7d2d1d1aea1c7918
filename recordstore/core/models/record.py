"""
Record entity: a deserialized body paired with its persistence identity.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from recordstore.core.errors import MalformedRecordData
from recordstore.core.serialization import serialize
from .constant_fields import ConstantFields, UnknownEnumToken


class Record(BaseModel):
    """
    One user submission: body + constants + identity metadata.

    The caller owns the in-memory Record while editing it. ``id`` and
    ``schema_version`` cannot be reassigned; a stored record's identity is
    attached with ``with_identity()``, which returns a copy.

    Attributes:
        id: Store-assigned row id (None before first insert)
        schema_version: Opaque identifier of the form schema that produced the body
        body: Arbitrary JSON-compatible structure or Pydantic model (None if unreadable)
        constants: Constant metadata fields
        entered_at: Set once by the store at insert
        updated_at: Refreshed by the store on every update
    """

    id: int | None = Field(default=None, frozen=True)
    schema_version: str = Field(..., min_length=1, frozen=True)
    body: Any = None
    constants: ConstantFields
    entered_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"validate_assignment": True, "arbitrary_types_allowed": True}

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def with_identity(self, record_id: int, entered_at: datetime | None = None) -> "Record":
        """
        Return a copy of this record carrying a store identity.

        Args:
            record_id: Row id assigned by the store
            entered_at: Insert timestamp stamped by the store

        Returns:
            New Record instance

        Raises:
            ValueError: If this record already has a different identity
        """
        if self.id is not None and self.id != record_id:
            raise ValueError(f"record already has id {self.id}, cannot rebind to {record_id}")
        return self.model_copy(update={"id": record_id, "entered_at": entered_at or self.entered_at})

    def serialize_body(self) -> str:
        """Serialize the body with the canonical codec."""
        return serialize(self.body)


class RecordSummary(BaseModel):
    """
    One row of a list_all() scan.

    The body is left serialized so upload collaborators can forward it as-is;
    corrupt constants are reported in ``error`` rather than aborting the scan.
    """

    id: int
    schema_version: str
    data: str | None
    entered_at: datetime | None
    updated_at: datetime | None = None
    constants: ConstantFields | None = None
    enum_errors: list[UnknownEnumToken] = Field(default_factory=list)
    error: MalformedRecordData | None = None

    model_config = {"arbitrary_types_allowed": True}
