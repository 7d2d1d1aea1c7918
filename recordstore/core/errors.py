"""
Error taxonomy for the record store.

Store operations never let these escape as uncaught faults: they are carried
inside the result models in ``recordstore.core.models.results``. The codec
raises ``MalformedRecordData`` directly, and ``StoreUnavailable`` propagates
out of store construction. Reads without a result model
(``get_serialized_record``, ``list_all``, ``count``) raise ``StoreReadFailed``
in place of the driver error.
"""


class RecordStoreError(Exception):
    """Base class for all record store errors."""


class MalformedRecordData(RecordStoreError):
    """Raised when record body text cannot be (de)serialized."""

    def __init__(self, message: str, operation: str = "deserialize", record_id: int | None = None):
        self.message = message
        self.operation = operation
        self.record_id = record_id
        prefix = f"record {record_id}: " if record_id is not None else ""
        super().__init__(f"[{operation}] {prefix}{message}")


class StoreWriteFailed(RecordStoreError):
    """A write transaction could not commit and was rolled back in full."""

    def __init__(self, operation: str, message: str, record_id: int | None = None):
        self.operation = operation
        self.message = message
        self.record_id = record_id
        target = f" (id={record_id})" if record_id is not None else ""
        super().__init__(f"{operation} failed{target}: {message}")


class IdentityConsistencyError(RecordStoreError):
    """An update or delete touched an unexpected number of rows."""

    def __init__(self, operation: str, record_id: int, affected: int):
        self.operation = operation
        self.record_id = record_id
        self.affected = affected
        super().__init__(
            f"{operation} on id={record_id} affected {affected} rows; "
            "identity is not unique, storage may be corrupt"
        )


class StoreUnavailable(RecordStoreError):
    """The storage file could not be opened or migrated at construction time."""


class StoreReadFailed(RecordStoreError):
    """A query on the reader handle failed, for example because the table was locked."""

    def __init__(self, operation: str, message: str, record_id: int | None = None):
        self.operation = operation
        self.message = message
        self.record_id = record_id
        target = f" (id={record_id})" if record_id is not None else ""
        super().__init__(f"{operation} read failed{target}: {message}")
