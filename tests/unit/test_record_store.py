"""
Unit tests for RecordStore against an in-memory database
"""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import BaseModel

from recordstore.config import StoreConfig
from recordstore.core.errors import MalformedRecordData, StoreReadFailed, StoreWriteFailed
from recordstore.core.models import (
    ConstantFields,
    LightEnum,
    Location,
    LookupStatus,
    Record,
    WeatherEnum,
)
from recordstore.core.serialization import serialize
from recordstore.observability.metrics import REGISTRY, generate_metrics, get_content_type
from recordstore.storage.connection import StoreConnection
from recordstore.storage.record_store import RecordStore
from recordstore.utils.validation import ValidationError

EVEL = {"Name": "Evel Knievel"}


def operation_count(operation: str, status: str) -> float:
    value = REGISTRY.get_sample_value(
        "recordstore_operations_total", {"operation": operation, "status": status}
    )
    return value or 0.0


def corrupt_row(store: RecordStore, record_id: int, column: str, value) -> None:
    with store.connection.transaction() as conn:
        conn.execute(f"UPDATE record SET {column} = ? WHERE id = ?", (value, record_id))


class Person(BaseModel):
    Name: str


@pytest.mark.unit
class TestAdd:
    """Test RecordStore.add()"""

    def test_add_and_read_back(self, memory_store, sample_constants):
        """Test the basic insert/read cycle"""
        result = memory_store.add("v1", serialize(EVEL), sample_constants)

        assert result.ok
        assert result.record_id is not None
        assert result.entered_at == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

        lookup = memory_store.get_by_id(result.record_id)
        assert lookup.status == LookupStatus.FOUND
        record = lookup.record
        assert record.body == EVEL
        assert record.schema_version == "v1"
        assert record.constants.occurred_from == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert record.constants.occurred_to == record.constants.occurred_from
        assert record.constants.weather is WeatherEnum.CLEAR
        assert record.constants.location is None
        assert record.constants.light is None
        assert record.entered_at == result.entered_at
        assert record.updated_at is None

    def test_ids_are_unique(self, memory_store, sample_constants):
        """Test every insert gets a new id"""
        ids = {memory_store.add("v1", serialize({"n": i}), sample_constants).record_id for i in range(5)}
        assert len(ids) == 5
        assert memory_store.count() == 5

    def test_zero_location_is_present(self, memory_store, located_constants):
        """Test 0.0/0.0 survives as a present location"""
        record_id = memory_store.add("v1", "{}", located_constants).record_id
        location = memory_store.get_by_id(record_id).record.constants.location
        assert location == Location(latitude=0.0, longitude=0.0)

    def test_constants_as_mapping(self, memory_store):
        """Test constants may be passed as a plain mapping"""
        result = memory_store.add("v1", "{}", {"occurred_from": "2024-05-05T10:00:00Z", "light": "DUSK"})
        constants = memory_store.get_by_id(result.record_id).record.constants
        assert constants.light is LightEnum.DUSK

    def test_empty_schema_version(self, memory_store, sample_constants):
        """Test an empty schema version is a programming error"""
        with pytest.raises(ValidationError):
            memory_store.add("", "{}", sample_constants)
        assert memory_store.count() == 0

    def test_write_fault_rolls_back(self, memory_store, sample_constants):
        """Test a failing insert is reported and leaves no row"""
        with memory_store.connection.transaction() as conn:
            conn.execute(
                "CREATE TRIGGER reject_insert BEFORE INSERT ON record "
                "BEGIN SELECT RAISE(ABORT, 'disk full'); END"
            )
        before = operation_count("add", "write_failed")

        result = memory_store.add("v1", serialize(EVEL), sample_constants)

        assert not result.ok
        assert isinstance(result.error, StoreWriteFailed)
        assert "disk full" in str(result.error)
        assert memory_store.count() == 0
        assert operation_count("add", "write_failed") == before + 1

    def test_writer_busy_reports_failure(self, sample_constants):
        """Test lock contention past the busy timeout is a write failure, not a hang"""
        store = RecordStore(StoreConnection(in_memory=True, busy_timeout=0.05))
        try:
            store.connection._write_lock.acquire()
            try:
                result = store.add("v1", "{}", sample_constants)
            finally:
                store.connection._write_lock.release()

            assert isinstance(result.error, StoreWriteFailed)
            assert "busy" in str(result.error)
            assert store.count() == 0
        finally:
            store.close()


@pytest.mark.unit
class TestUpdate:
    """Test RecordStore.update()"""

    def test_update_replaces_body_and_constants(self, memory_store, sample_constants):
        """Test update keeps identity and entry time, refreshes updated_at"""
        added = memory_store.add("v1", serialize(EVEL), sample_constants)
        new_constants = ConstantFields(
            occurred_from=datetime(2024, 1, 2, 6, 30, tzinfo=timezone.utc),
            location=Location(latitude=14.5995, longitude=120.9842),
            light=LightEnum.DAWN,
        )

        result = memory_store.update(added.record_id, serialize({"Name": "Robbie Knievel"}), new_constants)

        assert result.ok
        assert result.updated
        assert result.affected == 1

        record = memory_store.get_by_id(added.record_id).record
        assert record.body == {"Name": "Robbie Knievel"}
        assert record.schema_version == "v1"
        assert record.entered_at == added.entered_at
        assert record.updated_at == added.entered_at + timedelta(minutes=1)
        assert record.constants == new_constants
        assert record.constants.weather is None

    def test_updated_at_advances(self, memory_store, sample_constants):
        """Test each update stamps a later time"""
        record_id = memory_store.add("v1", "{}", sample_constants).record_id
        memory_store.update(record_id, '{"a":1}', sample_constants)
        first = memory_store.get_by_id(record_id).record.updated_at
        memory_store.update(record_id, '{"a":2}', sample_constants)
        second = memory_store.get_by_id(record_id).record.updated_at
        assert second > first

    def test_update_missing_is_noop(self, memory_store, sample_constants):
        """Test updating an id that does not exist changes nothing"""
        before = operation_count("update", "noop")

        result = memory_store.update(99999, serialize(EVEL), sample_constants)

        assert result.ok
        assert result.affected == 0
        assert not result.updated
        assert memory_store.count() == 0
        assert memory_store.get_by_id(99999).status == LookupStatus.NOT_FOUND
        assert operation_count("update", "noop") == before + 1

    def test_update_write_fault(self, memory_store, sample_constants):
        """Test a failing update is rolled back in full"""
        record_id = memory_store.add("v1", serialize(EVEL), sample_constants).record_id
        with memory_store.connection.transaction() as conn:
            conn.execute(
                "CREATE TRIGGER reject_update BEFORE UPDATE ON record "
                "BEGIN SELECT RAISE(ABORT, 'read-only media'); END"
            )

        result = memory_store.update(record_id, '{"Name":"changed"}', sample_constants)

        assert isinstance(result.error, StoreWriteFailed)
        assert result.error.record_id == record_id
        assert memory_store.get_by_id(record_id).record.body == EVEL

    def test_update_wrong_id_type(self, memory_store, sample_constants):
        """Test non-integer ids are rejected before any SQL"""
        with pytest.raises(ValidationError):
            memory_store.update("1", "{}", sample_constants)


@pytest.mark.unit
class TestDelete:
    """Test RecordStore.delete()"""

    def test_delete_once(self, memory_store, sample_constants):
        """Test deleting an existing record"""
        record_id = memory_store.add("v1", "{}", sample_constants).record_id

        result = memory_store.delete(record_id)

        assert result.success
        assert memory_store.get_by_id(record_id).status == LookupStatus.NOT_FOUND
        assert memory_store.count() == 0

    def test_delete_twice(self, memory_store, sample_constants):
        """Test the second delete reports not found and is not fatal"""
        record_id = memory_store.add("v1", "{}", sample_constants).record_id
        memory_store.delete(record_id)

        second = memory_store.delete(record_id)

        assert not second.success
        assert second.not_found
        assert second.error is None
        assert second.raise_for_error() is False

    def test_delete_leaves_other_rows(self, memory_store, sample_constants):
        """Test only the addressed row is removed"""
        keep = memory_store.add("v1", '{"keep":true}', sample_constants).record_id
        drop = memory_store.add("v1", '{"keep":false}', sample_constants).record_id

        memory_store.delete(drop)

        assert memory_store.count() == 1
        assert memory_store.get_by_id(keep).record.body == {"keep": True}

    def test_delete_write_fault(self, memory_store, sample_constants):
        """Test a failing delete keeps the row"""
        record_id = memory_store.add("v1", "{}", sample_constants).record_id
        with memory_store.connection.transaction() as conn:
            conn.execute(
                "CREATE TRIGGER reject_delete BEFORE DELETE ON record "
                "BEGIN SELECT RAISE(ABORT, 'locked'); END"
            )

        result = memory_store.delete(record_id)

        assert not result.success
        assert not result.not_found
        assert isinstance(result.error, StoreWriteFailed)
        assert memory_store.count() == 1

    def test_records_gauge(self, memory_store, sample_constants):
        """Test the records gauge follows inserts and deletes"""
        first = memory_store.add("v1", "{}", sample_constants).record_id
        memory_store.add("v1", "{}", sample_constants)
        assert REGISTRY.get_sample_value("recordstore_records", {"store": "memory"}) == 2

        memory_store.delete(first)
        assert REGISTRY.get_sample_value("recordstore_records", {"store": "memory"}) == 1


@pytest.mark.unit
class TestGetById:
    """Test RecordStore.get_by_id() including corrupt rows"""

    def test_not_found(self, memory_store):
        """Test a missing id"""
        lookup = memory_store.get_by_id(12345)
        assert lookup.status == LookupStatus.NOT_FOUND
        assert lookup.record is None
        assert lookup.error is None

    def test_corrupt_body(self, memory_store, sample_constants):
        """Test a truncated body yields a shell record with constants"""
        record_id = memory_store.add("v1", serialize(EVEL), sample_constants).record_id
        corrupt_row(memory_store, record_id, "data", '{"Name": "Ev')

        lookup = memory_store.get_by_id(record_id)

        assert lookup.status == LookupStatus.CORRUPT_BODY
        assert isinstance(lookup.error, MalformedRecordData)
        assert lookup.error.record_id == record_id
        assert lookup.record.body is None
        assert lookup.record.id == record_id
        assert lookup.record.constants.weather is WeatherEnum.CLEAR

    def test_null_body(self, memory_store, sample_constants):
        """Test a row without data is a corrupt body"""
        record_id = memory_store.add("v1", "{}", sample_constants).record_id
        corrupt_row(memory_store, record_id, "data", None)
        assert memory_store.get_by_id(record_id).status == LookupStatus.CORRUPT_BODY

    def test_deeply_nested_truncated_body(self, memory_store, sample_constants):
        """Test a truncated body nested beyond the decoder's depth yields a shell record"""
        record_id = memory_store.add("v1", "[" * 200_000, sample_constants).record_id

        lookup = memory_store.get_by_id(record_id)

        assert lookup.status == LookupStatus.CORRUPT_BODY
        assert isinstance(lookup.error, MalformedRecordData)
        assert lookup.record.body is None
        assert lookup.record.constants.weather is WeatherEnum.CLEAR

    def test_unknown_enum_token(self, memory_store, sample_constants):
        """Test an unrecognized weather token loads as absent with an error entry"""
        record_id = memory_store.add("v1", serialize(EVEL), sample_constants).record_id
        corrupt_row(memory_store, record_id, "weather", "VOLCANIC_ASH")

        lookup = memory_store.get_by_id(record_id)

        assert lookup.status == LookupStatus.FOUND
        assert lookup.record.constants.weather is None
        assert lookup.record.body == EVEL
        assert len(lookup.enum_errors) == 1
        unknown = lookup.enum_errors[0]
        assert unknown.token == "VOLCANIC_ASH"
        assert unknown.field_name == "weather"

    def test_corrupt_constants(self, memory_store, sample_constants):
        """Test an unparsable stored timestamp yields CORRUPT_ROW"""
        record_id = memory_store.add("v1", serialize(EVEL), sample_constants).record_id
        corrupt_row(memory_store, record_id, "occurred_from", "last tuesday")

        lookup = memory_store.get_by_id(record_id)

        assert lookup.status == LookupStatus.CORRUPT_ROW
        assert lookup.record is None
        assert lookup.error.operation == "parse_timestamp"

    def test_schema_hint(self, memory_store, sample_constants):
        """Test the body can be validated into a model"""
        record_id = memory_store.add("v1", serialize(EVEL), sample_constants).record_id
        lookup = memory_store.get_by_id(record_id, schema_hint=Person)
        assert lookup.record.body == Person(Name="Evel Knievel")

    def test_schema_hint_mismatch(self, memory_store, sample_constants):
        """Test a body that does not fit the hint is reported as corrupt"""
        record_id = memory_store.add("v1", '{"Age": 69}', sample_constants).record_id
        assert memory_store.get_by_id(record_id, schema_hint=Person).status == LookupStatus.CORRUPT_BODY

    def test_serialized_record(self, memory_store, sample_constants):
        """Test fetching the raw body text"""
        record_id = memory_store.add("v1", serialize(EVEL), sample_constants).record_id
        assert memory_store.get_serialized_record(record_id) == '{"Name":"Evel Knievel"}'
        assert memory_store.get_serialized_record(record_id + 1) is None


@pytest.mark.unit
class TestListAll:
    """Test RecordStore.list_all()"""

    def test_empty(self, memory_store):
        """Test listing an empty store"""
        assert list(memory_store.list_all()) == []

    def test_newest_first(self, memory_store, sample_constants):
        """Test records are listed by entered_at descending"""
        ids = [memory_store.add("v1", serialize({"n": n}), sample_constants).record_id for n in range(3)]

        summaries = list(memory_store.list_all())

        assert [s.id for s in summaries] == list(reversed(ids))
        assert summaries[0].data == '{"n":2}'
        assert summaries[0].constants == sample_constants

    def test_ties_broken_by_id(self, clock, sample_constants):
        """Test records entered in the same second list highest id first"""
        clock.step = timedelta(0)
        with RecordStore(StoreConnection(in_memory=True), clock=clock) as store:
            ids = [store.add("v1", "{}", sample_constants).record_id for _ in range(3)]
            assert [s.id for s in store.list_all()] == sorted(ids, reverse=True)

    def test_corrupt_rows_do_not_stop_scan(self, memory_store, sample_constants):
        """Test a corrupt row is reported inline"""
        good = memory_store.add("v1", "{}", sample_constants).record_id
        bad = memory_store.add("v1", "{}", sample_constants).record_id
        corrupt_row(memory_store, bad, "entered_at", "not a time")

        summaries = {s.id: s for s in memory_store.list_all()}

        assert summaries[good].error is None
        assert isinstance(summaries[bad].error, MalformedRecordData)
        assert summaries[bad].entered_at is None

    def test_is_lazy(self, memory_store, sample_constants):
        """Test list_all returns an iterator, not a list"""
        memory_store.add("v1", "{}", sample_constants)
        listing = memory_store.list_all()
        assert next(listing).schema_version == "v1"
        listing.close()


@pytest.mark.unit
class TestReadFailures:
    """Test reader query failures are reported, not raised as driver errors"""

    def test_get_by_id_while_table_locked(self, memory_store, sample_constants):
        """Test a lookup blocked by an open write reports READ_FAILED"""
        record_id = memory_store.add("v1", serialize(EVEL), sample_constants).record_id
        before = operation_count("get_by_id", "read_failed")

        with memory_store.connection.transaction() as conn:
            conn.execute("UPDATE record SET data = data WHERE id = ?", (record_id,))
            lookup = memory_store.get_by_id(record_id)

        assert lookup.status == LookupStatus.READ_FAILED
        assert isinstance(lookup.error, StoreReadFailed)
        assert lookup.error.record_id == record_id
        assert lookup.record is None
        assert not lookup.found
        assert not lookup.ok
        assert operation_count("get_by_id", "read_failed") == before + 1
        with pytest.raises(StoreReadFailed):
            lookup.raise_for_error()

        assert memory_store.get_by_id(record_id).status == LookupStatus.FOUND

    def test_serialized_record_while_table_locked(self, memory_store, sample_constants):
        """Test raw body reads raise StoreReadFailed in place of the driver error"""
        record_id = memory_store.add("v1", serialize(EVEL), sample_constants).record_id

        with memory_store.connection.transaction() as conn:
            conn.execute("UPDATE record SET data = data WHERE id = ?", (record_id,))
            with pytest.raises(StoreReadFailed, match="get_serialized_record"):
                memory_store.get_serialized_record(record_id)
            with pytest.raises(StoreReadFailed, match="count"):
                memory_store.count()
            with pytest.raises(StoreReadFailed, match="list_all"):
                list(memory_store.list_all())

        assert memory_store.get_serialized_record(record_id) == serialize(EVEL)


@pytest.mark.unit
class TestRecordHelpers:
    """Test add_record()/update_record() and construction"""

    def test_add_record_assigns_identity(self, memory_store, sample_constants):
        """Test add_record returns a copy carrying the new id"""
        draft = Record(schema_version="v1", body=EVEL, constants=sample_constants)

        result = memory_store.add_record(draft)

        assert result.ok
        assert result.record.id == result.record_id
        assert result.record.entered_at == result.entered_at
        assert draft.id is None

    def test_add_record_rejects_stored(self, memory_store, sample_constants):
        """Test a stored record cannot be inserted again"""
        stored = Record(schema_version="v1", constants=sample_constants).with_identity(3)
        with pytest.raises(ValueError, match="update_record"):
            memory_store.add_record(stored)

    def test_add_record_unserializable(self, memory_store, sample_constants):
        """Test an unserializable body is refused without writing"""
        draft = Record(schema_version="v1", body={"x": {1, 2}}, constants=sample_constants)
        result = memory_store.add_record(draft)
        assert isinstance(result.error, MalformedRecordData)
        assert memory_store.count() == 0

    def test_add_record_too_deep(self, memory_store, sample_constants):
        """Test a body nested beyond the encoder's depth is refused without writing"""
        body: list = []
        for _ in range(100_000):
            body = [body]
        draft = Record(schema_version="v1", body=body, constants=sample_constants)

        result = memory_store.add_record(draft)

        assert isinstance(result.error, MalformedRecordData)
        assert result.error.operation == "serialize"
        assert memory_store.count() == 0

    def test_update_record(self, memory_store, sample_constants):
        """Test editing a loaded record and writing it back"""
        stored = memory_store.add_record(
            Record(schema_version="v1", body={"Name": "Evel"}, constants=sample_constants)
        ).record
        stored.body["Jumps"] = 75

        result = memory_store.update_record(stored)

        assert result.updated
        assert memory_store.get_by_id(stored.id).record.body == {"Name": "Evel", "Jumps": 75}

    def test_update_record_requires_identity(self, memory_store, sample_constants):
        """Test a never-stored record cannot be updated"""
        with pytest.raises(ValueError, match="add_record"):
            memory_store.update_record(Record(schema_version="v1", constants=sample_constants))

    def test_from_config_in_memory(self):
        """Test building a store from configuration"""
        with RecordStore.from_config(StoreConfig(in_memory=True)) as store:
            assert store.name == "memory"
            assert store.count() == 0


@pytest.mark.unit
def test_metrics_exposition(memory_store, sample_constants):
    """Test store metrics render in Prometheus text format"""
    memory_store.add("v1", "{}", sample_constants)

    payload = generate_metrics().decode("utf-8")

    assert 'recordstore_operations_total{operation="add",status="success"}' in payload
    assert "recordstore_operation_duration_seconds_bucket" in payload
    assert get_content_type().startswith("text/plain")
