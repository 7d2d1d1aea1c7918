"""
Transactional record store.

Persists serialized record bodies with their constant fields in the single
``record`` table. Every write is one atomic transaction on the writer handle;
reads use the separate reader handle. Failures are returned as result
variants (see ``recordstore.core.models.results``) and never raised, except
``StoreUnavailable`` when the database cannot be opened at construction.
"""

import sqlite3
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterator

from pydantic import ValidationError as PydanticValidationError

from recordstore.config import StoreConfig
from recordstore.core.errors import (
    IdentityConsistencyError,
    MalformedRecordData,
    StoreReadFailed,
    StoreUnavailable,
    StoreWriteFailed,
)
from recordstore.core.models import (
    AddResult,
    ConstantFields,
    DeleteResult,
    LightEnum,
    Location,
    LookupStatus,
    Record,
    RecordLookup,
    RecordSummary,
    UnknownEnumToken,
    UpdateResult,
    WeatherEnum,
)
from recordstore.core.models.timestamps import format_timestamp, parse_timestamp, utc_now
from recordstore.core.serialization import deserialize
from recordstore.observability.logger import get_logger
from recordstore.observability.metrics import (
    record_corrupt_read,
    record_operation,
    set_gauge,
    store_operation_duration_seconds,
    stored_records,
    track_duration,
)
from recordstore.utils.validation import validate_record_id, validate_schema_version
from .connection import StoreConnection
from .schema_mgmt import RECORD_TABLE, SchemaManager, SchemaVersionError

logger = get_logger(__name__)

ALL_FIELDS = (
    "id",
    "entered_at",
    "updated_at",
    "schema_version",
    "data",
    "occurred_from",
    "occurred_to",
    "latitude",
    "longitude",
    "weather",
    "light",
)

SELECT_ALL = f"SELECT {', '.join(ALL_FIELDS)} FROM {RECORD_TABLE}"

# write failures the store reports instead of raising
WRITE_FAULTS = (sqlite3.Error, TimeoutError)


class RecordStore:
    """
    Local store for partially or fully completed records.

    Usage:
        >>> store = RecordStore.from_config(StoreConfig(db_path="records.db"))
        >>> result = store.add("v1", serialize({"Name": "Evel Knievel"}), constants)
        >>> lookup = store.get_by_id(result.record_id)
        >>> for summary in store.list_all():
        ...     upload(summary.data)
        ...     store.delete(summary.id)
    """

    def __init__(
        self,
        connection: StoreConnection,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Open the connection and bring the schema up to date.

        Args:
            connection: Unopened (or open) writer/reader connection pair
            clock: Source of entered_at/updated_at timestamps

        Raises:
            StoreUnavailable: If the database cannot be opened or migrated
        """
        self.connection = connection
        self._clock = clock
        self.name = "memory" if connection.in_memory else str(connection.db_path)

        try:
            self.connection.open()
            SchemaManager(self.connection).migrate()
        except (sqlite3.Error, OSError, TimeoutError, SchemaVersionError) as e:
            logger.critical(
                f"Record store {self.name} is unusable: {e}",
                extra={"operation": "open"},
                exc_info=True,
            )
            self.connection.close()
            raise StoreUnavailable(f"cannot open record store {self.name}: {e}") from e

        self._refresh_count()

    @classmethod
    def from_config(cls, config: StoreConfig, clock: Callable[[], datetime] = utc_now) -> "RecordStore":
        """
        Build a store from configuration.

        Args:
            config: Store settings
            clock: Source of entered_at/updated_at timestamps

        Returns:
            Open RecordStore
        """
        connection = StoreConnection(
            db_path=Path(config.db_path),
            in_memory=config.in_memory,
            busy_timeout=config.busy_timeout_seconds,
            journal_mode=config.journal_mode,
            synchronous=config.synchronous,
        )
        return cls(connection, clock=clock)

    # ---- writes ---------------------------------------------------------

    def add(self, schema_version: str, data: str, constants: ConstantFields) -> AddResult:
        """
        Insert one record.

        Args:
            schema_version: Opaque id of the schema that produced the body
            data: Serialized body (output of serialize())
            constants: Constant fields; optional sub-fields may be unset

        Returns:
            AddResult with the new id, or a StoreWriteFailed error after full rollback

        Raises:
            ValidationError: If schema_version is empty or too long
        """
        schema_version = validate_schema_version(schema_version)
        constants = self._coerce_constants(constants)
        entered_at = format_timestamp(self._clock())

        params = {
            **self._constant_columns(constants),
            "entered_at": entered_at,
            "schema_version": schema_version,
            "data": data,
        }

        try:
            with track_duration(store_operation_duration_seconds, operation="add"):
                with self.connection.transaction() as conn:
                    cur = conn.execute(
                        f"""
                        INSERT INTO {RECORD_TABLE} (
                            entered_at, schema_version, data,
                            occurred_from, occurred_to, latitude, longitude, weather, light
                        ) VALUES (
                            :entered_at, :schema_version, :data,
                            :occurred_from, :occurred_to, :latitude, :longitude, :weather, :light
                        )
                        """,
                        params,
                    )
                    new_id = cur.lastrowid
        except WRITE_FAULTS as e:
            logger.error(
                f"Database record insert failed: {e}",
                extra={"operation": "add", "schema_version": schema_version},
                exc_info=True,
            )
            record_operation("add", "write_failed")
            return AddResult(error=StoreWriteFailed("add", str(e)))

        logger.debug(f"Inserted record {new_id}", extra={"operation": "add", "record_id": new_id})
        record_operation("add", "success")
        self._refresh_count()
        return AddResult(record_id=new_id, entered_at=parse_timestamp(entered_at))

    def update(self, record_id: int, data: str, constants: ConstantFields) -> UpdateResult:
        """
        Replace the body and constants of an existing record.

        schema_version and entered_at are left untouched; updated_at is refreshed.

        Args:
            record_id: Id of the row to update
            data: Serialized body
            constants: New constant fields

        Returns:
            UpdateResult with affected 1, or 0 if the row does not exist.
            An affected count above 1 is rolled back and reported as
            IdentityConsistencyError.
        """
        record_id = validate_record_id(record_id)
        constants = self._coerce_constants(constants)

        params = {
            **self._constant_columns(constants),
            "data": data,
            "updated_at": format_timestamp(self._clock()),
            "id": record_id,
        }

        try:
            with track_duration(store_operation_duration_seconds, operation="update"):
                with self.connection.transaction() as conn:
                    cur = conn.execute(
                        f"""
                        UPDATE {RECORD_TABLE} SET
                            data = :data,
                            updated_at = :updated_at,
                            occurred_from = :occurred_from,
                            occurred_to = :occurred_to,
                            latitude = :latitude,
                            longitude = :longitude,
                            weather = :weather,
                            light = :light
                        WHERE id = :id
                        """,
                        params,
                    )
                    affected = cur.rowcount
                    if affected > 1:
                        raise IdentityConsistencyError("update", record_id, affected)
        except IdentityConsistencyError as e:
            logger.critical(
                str(e),
                extra={"operation": "update", "record_id": record_id, "affected": e.affected},
            )
            record_operation("update", "identity_error")
            return UpdateResult(record_id=record_id, affected=e.affected, error=e)
        except WRITE_FAULTS as e:
            logger.error(
                f"Database record update failed for ID {record_id}: {e}",
                extra={"operation": "update", "record_id": record_id},
                exc_info=True,
            )
            record_operation("update", "write_failed")
            return UpdateResult(record_id=record_id, error=StoreWriteFailed("update", str(e), record_id))

        if affected == 0:
            logger.info(
                f"Update for missing record {record_id} changed nothing",
                extra={"operation": "update", "record_id": record_id, "affected": 0},
            )
            record_operation("update", "noop")
        else:
            record_operation("update", "success")
        return UpdateResult(record_id=record_id, affected=affected)

    def delete(self, record_id: int) -> DeleteResult:
        """
        Delete a single record, typically after it was uploaded.

        Args:
            record_id: Id of the row to delete

        Returns:
            DeleteResult; success iff exactly one row was removed. Zero rows is
            reported as not found; more than one is rolled back and reported as
            IdentityConsistencyError.
        """
        record_id = validate_record_id(record_id)

        try:
            with track_duration(store_operation_duration_seconds, operation="delete"):
                with self.connection.transaction() as conn:
                    cur = conn.execute(f"DELETE FROM {RECORD_TABLE} WHERE id = ?", (record_id,))
                    affected = cur.rowcount
                    if affected > 1:
                        raise IdentityConsistencyError("delete", record_id, affected)
        except IdentityConsistencyError as e:
            logger.critical(
                str(e),
                extra={"operation": "delete", "record_id": record_id, "affected": e.affected},
            )
            record_operation("delete", "identity_error")
            return DeleteResult(record_id=record_id, affected=e.affected, error=e)
        except WRITE_FAULTS as e:
            logger.error(
                f"Database record deletion failed for ID {record_id}: {e}",
                extra={"operation": "delete", "record_id": record_id},
                exc_info=True,
            )
            record_operation("delete", "write_failed")
            return DeleteResult(record_id=record_id, error=StoreWriteFailed("delete", str(e), record_id))

        if affected == 0:
            logger.warning(
                f"Record with ID {record_id} not found for delete",
                extra={"operation": "delete", "record_id": record_id, "affected": 0},
            )
            record_operation("delete", "not_found")
        else:
            record_operation("delete", "success")
            self._refresh_count()
        return DeleteResult(record_id=record_id, affected=affected)

    def add_record(self, record: Record) -> AddResult:
        """
        Serialize a new in-memory record and insert it.

        Args:
            record: Record without an id

        Returns:
            AddResult whose ``record`` is a copy of the input carrying its id

        Raises:
            ValueError: If the record already has an id
        """
        if record.id is not None:
            raise ValueError(f"record already stored with id {record.id}; use update_record()")
        try:
            data = record.serialize_body()
        except MalformedRecordData as e:
            logger.error(f"Refusing to store unserializable record body: {e}", extra={"operation": "add"})
            record_operation("add", "write_failed")
            return AddResult(error=e)

        result = self.add(record.schema_version, data, record.constants)
        if not result.ok:
            return result
        return result.model_copy(update={"record": record.with_identity(result.record_id, result.entered_at)})

    def update_record(self, record: Record) -> UpdateResult:
        """
        Serialize an edited record and write it back.

        Raises:
            ValueError: If the record has never been stored
        """
        if record.id is None:
            raise ValueError("record has no id; use add_record()")
        try:
            data = record.serialize_body()
        except MalformedRecordData as e:
            e.record_id = record.id
            logger.error(f"Refusing to store unserializable record body: {e}", extra={"operation": "update"})
            record_operation("update", "write_failed")
            return UpdateResult(record_id=record.id, error=e)
        return self.update(record.id, data, record.constants)

    # ---- reads ----------------------------------------------------------

    def get_by_id(self, record_id: int, schema_hint: Any = None) -> RecordLookup:
        """
        Retrieve a single record with its constants and deserialized body.

        Args:
            record_id: Id of the row
            schema_hint: Optional type the body is validated into (see deserialize())

        Returns:
            RecordLookup with status FOUND, NOT_FOUND, CORRUPT_BODY (record shell
            with constants and body=None), CORRUPT_ROW (constants unreadable)
            or READ_FAILED (reader query failed)
        """
        record_id = validate_record_id(record_id)
        try:
            rows = self.connection.execute_query(f"{SELECT_ALL} WHERE id = ?", (record_id,))
        except sqlite3.Error as e:
            return RecordLookup(
                record_id=record_id,
                status=LookupStatus.READ_FAILED,
                error=self._read_failed("get_by_id", e, record_id),
            )

        if not rows:
            logger.warning(
                f"Record with ID {record_id} not found!",
                extra={"operation": "get_by_id", "record_id": record_id},
            )
            return RecordLookup(record_id=record_id, status=LookupStatus.NOT_FOUND)

        row = rows[0]
        enum_errors: list[UnknownEnumToken] = []
        try:
            constants = self._read_constants(row, enum_errors)
            entered_at = parse_timestamp(row["entered_at"])
            updated_at = parse_timestamp(row["updated_at"]) if row["updated_at"] is not None else None
            shell = self._build_shell(row, constants, entered_at, updated_at)
        except MalformedRecordData as e:
            e.record_id = record_id
            logger.error(
                f"Stored constant fields unreadable for record {record_id}: {e}",
                extra={"operation": "get_by_id", "record_id": record_id},
            )
            record_corrupt_read("constants")
            return RecordLookup(
                record_id=record_id, status=LookupStatus.CORRUPT_ROW, error=e, enum_errors=enum_errors
            )

        try:
            body = deserialize(row["data"], schema_hint)
        except MalformedRecordData as e:
            e.record_id = record_id
            logger.error(
                f"Failed to deserialize record data for id {record_id}: {e.message}",
                extra={"operation": "get_by_id", "record_id": record_id},
            )
            record_corrupt_read("body")
            return RecordLookup(
                record_id=record_id,
                status=LookupStatus.CORRUPT_BODY,
                record=shell,
                error=e,
                enum_errors=enum_errors,
            )

        return RecordLookup(
            record_id=record_id,
            status=LookupStatus.FOUND,
            record=shell.model_copy(update={"body": body}),
            enum_errors=enum_errors,
        )

    def get_serialized_record(self, record_id: int) -> str | None:
        """
        Fetch the stored body text of a record without deserializing it.

        Returns:
            Serialized body, or None if the record does not exist

        Raises:
            StoreReadFailed: If the reader query fails
        """
        record_id = validate_record_id(record_id)
        try:
            rows = self.connection.execute_query(f"SELECT data FROM {RECORD_TABLE} WHERE id = ?", (record_id,))
        except sqlite3.Error as e:
            raise self._read_failed("get_serialized_record", e, record_id) from e
        if not rows:
            logger.warning(
                f"Record with ID {record_id} not found!",
                extra={"operation": "get_serialized_record", "record_id": record_id},
            )
            return None
        return rows[0]["data"]

    def list_all(self) -> Iterator[RecordSummary]:
        """
        Stream all records, most recently entered first.

        Rows are fetched lazily from one read snapshot; records committed while
        the iterator is open are not included. Corrupt rows are yielded with
        ``error`` set instead of stopping the scan.

        Yields:
            RecordSummary per row

        Raises:
            StoreReadFailed: If the reader query fails mid-scan
        """
        rows = self.connection.stream_query(f"{SELECT_ALL} ORDER BY entered_at DESC, id DESC")
        with closing(rows):
            try:
                for row in rows:
                    yield self._summarize(row)
            except sqlite3.Error as e:
                raise self._read_failed("list_all", e) from e

    def count(self) -> int:
        try:
            return int(self.connection.scalar(f"SELECT COUNT(*) FROM {RECORD_TABLE}") or 0)
        except sqlite3.Error as e:
            raise self._read_failed("count", e) from e

    # ---- lifecycle ------------------------------------------------------

    def close(self) -> None:
        self.connection.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # ---- helpers --------------------------------------------------------

    def _read_failed(self, operation: str, error: sqlite3.Error, record_id: int | None = None) -> StoreReadFailed:
        logger.error(
            f"Reader query failed for {operation}: {error}",
            extra={"operation": operation, "record_id": record_id},
            exc_info=True,
        )
        record_operation(operation, "read_failed")
        return StoreReadFailed(operation, str(error), record_id)

    @staticmethod
    def _coerce_constants(constants: ConstantFields | dict) -> ConstantFields:
        if isinstance(constants, ConstantFields):
            return constants
        return ConstantFields.model_validate(constants)

    @staticmethod
    def _constant_columns(constants: ConstantFields) -> dict[str, Any]:
        occurred = format_timestamp(constants.occurred_from)
        location = constants.location
        return {
            "occurred_from": occurred,
            # occurred_to is not separately editable; it mirrors occurred_from
            "occurred_to": occurred,
            "latitude": location.latitude if location is not None else None,
            "longitude": location.longitude if location is not None else None,
            "weather": constants.weather.to_token() if constants.weather is not None else None,
            "light": constants.light.to_token() if constants.light is not None else None,
        }

    def _read_constants(self, row: sqlite3.Row, enum_errors: list[UnknownEnumToken]) -> ConstantFields:
        """
        Rebuild constant fields from a stored row.

        Unknown enum tokens load as absent and are appended to enum_errors.

        Raises:
            MalformedRecordData: If the timestamp or coordinates are unreadable
        """
        occurred_from = parse_timestamp(row["occurred_from"])

        location = None
        latitude, longitude = row["latitude"], row["longitude"]
        if latitude is not None and longitude is not None:
            try:
                location = Location(latitude=latitude, longitude=longitude)
            except PydanticValidationError as e:
                raise MalformedRecordData(
                    f"stored location ({latitude}, {longitude}) is invalid", operation="read_constants"
                ) from e
        elif latitude is not None or longitude is not None:
            logger.warning(
                f"Record {row['id']} has only half of a location pair; treating location as absent",
                extra={"operation": "read_constants", "record_id": row["id"]},
            )
            record_corrupt_read("constants")

        weather = self._read_token(WeatherEnum, row["weather"], "weather", row["id"], enum_errors)
        light = self._read_token(LightEnum, row["light"], "light", row["id"], enum_errors)

        return ConstantFields(occurred_from=occurred_from, location=location, weather=weather, light=light)

    @staticmethod
    def _build_shell(
        row: sqlite3.Row,
        constants: ConstantFields,
        entered_at: datetime,
        updated_at: datetime | None,
    ) -> Record:
        try:
            return Record(
                id=row["id"],
                schema_version=row["schema_version"],
                constants=constants,
                entered_at=entered_at,
                updated_at=updated_at,
            )
        except PydanticValidationError as e:
            raise MalformedRecordData(
                f"stored identity fields are invalid: {e.error_count()} error(s)",
                operation="read_constants",
            ) from e

    @staticmethod
    def _read_token(enum_cls, token, field_name: str, record_id: int, enum_errors: list[UnknownEnumToken]):
        if token is None:
            return None
        parsed = enum_cls.from_token(token)
        if isinstance(parsed, UnknownEnumToken):
            unknown = UnknownEnumToken(enum_name=parsed.enum_name, token=parsed.token, field_name=field_name)
            logger.warning(
                f"Record {record_id}: {unknown}; loading field as absent",
                extra={"operation": "read_constants", "record_id": record_id},
            )
            record_corrupt_read("enum_token")
            enum_errors.append(unknown)
            return None
        return parsed

    def _summarize(self, row: sqlite3.Row) -> RecordSummary:
        enum_errors: list[UnknownEnumToken] = []
        constants = None
        entered_at = updated_at = None
        error = None
        try:
            constants = self._read_constants(row, enum_errors)
            entered_at = parse_timestamp(row["entered_at"])
            if row["updated_at"] is not None:
                updated_at = parse_timestamp(row["updated_at"])
        except MalformedRecordData as e:
            e.record_id = row["id"]
            logger.error(
                f"Stored fields unreadable for record {row['id']}: {e}",
                extra={"operation": "list_all", "record_id": row["id"]},
            )
            record_corrupt_read("constants")
            error = e

        return RecordSummary(
            id=row["id"],
            schema_version=row["schema_version"],
            data=row["data"],
            entered_at=entered_at,
            updated_at=updated_at,
            constants=constants,
            enum_errors=enum_errors,
            error=error,
        )

    def _refresh_count(self) -> None:
        try:
            set_gauge(stored_records, self.count(), store=self.name)
        except StoreReadFailed:
            # committed write stands; gauge catches up on the next refresh
            pass
