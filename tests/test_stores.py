"""Tests for store implementations."""

import pytest

from idemguard import PersistenceLayerError
from idemguard.record import DataRecord, RecordStatus
from idemguard.stores import FileStore, MemoryStore, SaveResult

NOW = 1_700_000_000.0
KEY = "orders#abc"


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        backend = MemoryStore()
    else:
        backend = FileStore(tmp_path / "records")
    backend.configure("orders", expires_after_seconds=60, in_progress_expiry_seconds=10)
    return backend


def test_save_in_progress_is_conditional(store):
    assert store.save_in_progress(KEY, None, NOW) is SaveResult.CREATED
    assert store.save_in_progress(KEY, None, NOW + 1) is SaveResult.CONFLICT

    record = store.get_record(KEY, NOW)
    assert record.status is RecordStatus.IN_PROGRESS
    assert record.expiry == int(NOW + 60)
    assert record.in_progress_expiry == int((NOW + 10) * 1000)
    assert record.response_data is None


def test_save_in_progress_overwrites_expired_record(store):
    assert store.save_in_progress(KEY, None, NOW) is SaveResult.CREATED

    assert store.save_in_progress(KEY, "fp", NOW + 60) is SaveResult.CREATED
    assert store.get_record(KEY, NOW + 60).validation == "fp"


def test_deadline_hint_shortens_in_progress_expiry(store):
    store.save_in_progress(KEY, None, NOW, deadline_hint=2.5)
    assert store.get_record(KEY, NOW).in_progress_expiry == int((NOW + 2.5) * 1000)

    store.save_in_progress("orders#def", None, NOW, deadline_hint=120)
    assert store.get_record("orders#def", NOW).in_progress_expiry == int((NOW + 10) * 1000)


def test_get_record_does_not_filter_expired(store):
    store.save_in_progress(KEY, None, NOW)

    record = store.get_record(KEY, NOW + 3600)

    assert record is not None
    assert record.is_expired(NOW + 3600)
    assert record.effective_status(NOW + 3600) is RecordStatus.EXPIRED


def test_get_record_not_found(store):
    assert store.get_record("orders#missing", NOW) is None


def test_save_success(store):
    store.save_in_progress(KEY, "fp", NOW)

    written = store.save_success(KEY, '{"total": 1}', NOW + 5, fingerprint="fp")
    record = store.get_record(KEY, NOW + 5)

    assert record == written
    assert record.status is RecordStatus.COMPLETED
    assert record.response_data == '{"total": 1}'
    assert record.in_progress_expiry is None
    assert record.expiry == int(NOW + 65)
    assert record.validation == "fp"


def test_delete_record_is_idempotent(store):
    store.save_in_progress(KEY, None, NOW)

    store.delete_record(KEY)
    store.delete_record(KEY)

    assert store.get_record(KEY, NOW) is None
    assert store.save_in_progress(KEY, None, NOW) is SaveResult.CREATED


def test_settings_are_per_namespace(store):
    store.configure("invoices", expires_after_seconds=5)

    store.save_in_progress("invoices#1", None, NOW)
    store.save_in_progress("orders#1", None, NOW)

    invoice = store.get_record("invoices#1", NOW)
    assert invoice.expiry == int(NOW + 5)
    assert invoice.in_progress_expiry == int((NOW + 5) * 1000)
    assert store.get_record("orders#1", NOW).expiry == int(NOW + 60)


def test_clear(store):
    store.save_in_progress("orders#1", None, NOW)
    store.save_in_progress("orders#2", None, NOW)

    store.clear()

    assert store.get_record("orders#1", NOW) is None
    assert store.get_record("orders#2", NOW) is None


def test_backend_errors_are_wrapped():
    class BrokenStore(MemoryStore):
        def fetch_record(self, key):
            raise OSError("disk on fire")

    with pytest.raises(PersistenceLayerError) as exc_info:
        BrokenStore().get_record(KEY, NOW)

    assert isinstance(exc_info.value.cause, OSError)


def test_record_to_dict():
    """Test record serialization to the wire shape."""
    record = DataRecord(
        key="orders#1",
        status=RecordStatus.IN_PROGRESS,
        expiry=1700000060,
        in_progress_expiry=1700000010000,
        validation="fp",
    )

    assert record.to_dict() == {
        "id": "orders#1",
        "status": "IN_PROGRESS",
        "expiration": 1700000060,
        "in_progress_expiration": 1700000010000,
        "data": None,
        "validation": "fp",
    }


def test_record_from_dict():
    """Test record deserialization from the wire shape."""
    data = {
        "id": "orders#1",
        "status": "COMPLETED",
        "expiration": "1700000060",
        "in_progress_expiration": None,
        "data": '{"total": 1}',
        "validation": None,
    }

    record = DataRecord.from_dict(data)

    assert record.key == "orders#1"
    assert record.status is RecordStatus.COMPLETED
    assert record.expiry == 1700000060
    assert record.in_progress_expiry is None
    assert record.response_data == '{"total": 1}'
    assert DataRecord.from_dict(record.to_dict()) == record


def test_record_from_dict_rejects_bad_data():
    with pytest.raises(ValueError):
        DataRecord.from_dict({"id": "k", "status": "EXPIRED", "expiration": 1})

    with pytest.raises(ValueError):
        DataRecord.from_dict({"id": "k", "status": "COMPLETED", "expiration": None})


def test_record_in_progress_expiry():
    record = DataRecord(
        key="orders#1",
        status=RecordStatus.IN_PROGRESS,
        expiry=int(NOW + 60),
        in_progress_expiry=int((NOW + 10) * 1000),
    )

    assert not record.is_in_progress_expired(NOW + 9.999)
    assert record.is_in_progress_expired(NOW + 10)
    assert not record.completed("{}", int(NOW + 60)).is_in_progress_expired(NOW + 10)


# FileStore Tests


def test_file_store_persistence(tmp_path):
    """Test that FileStore persists across instances."""
    store1 = FileStore(tmp_path)
    store1.save_in_progress(KEY, None, NOW)
    store1.save_success(KEY, '{"data": 123}', NOW)

    # Create second store instance (simulates process restart)
    store2 = FileStore(tmp_path)
    retrieved = store2.get_record(KEY, NOW)

    assert retrieved is not None
    assert retrieved.key == KEY
    assert retrieved.status is RecordStatus.COMPLETED
    assert retrieved.response_data == '{"data": 123}'

    # A second process cannot win the same key
    assert store2.save_in_progress(KEY, None, NOW) is SaveResult.CONFLICT


def test_file_store_special_characters_in_key(tmp_path):
    """Test that FileStore handles special characters in keys."""
    store = FileStore(tmp_path)
    key = "tests.module:create/order#abc"

    store.save_in_progress(key, None, NOW)

    retrieved = store.get_record(key, NOW)
    assert retrieved is not None
    assert retrieved.key == key


def test_file_store_directory_creation(tmp_path):
    """Test that FileStore creates directory if it doesn't exist."""
    nested_dir = tmp_path / "nested" / "path"
    store = FileStore(nested_dir)

    # Directory should be created
    assert nested_dir.exists()
    assert nested_dir.is_dir()

    # Should be able to store records
    store.save_in_progress(KEY, None, NOW)
    assert store.get_record(KEY, NOW) is not None


def test_file_store_corrupt_record(tmp_path):
    store = FileStore(tmp_path)
    (tmp_path / f"{KEY}.json").write_text("{not json")

    with pytest.raises(PersistenceLayerError):
        store.get_record(KEY, NOW)


def test_explicit_namespace_overrides_key_prefix(store):
    store.save_in_progress("42", None, NOW, namespace="orders")
    assert store.get_record("42", NOW).expiry == int(NOW + 60)
    assert store.get_record("42", NOW).in_progress_expiry == int((NOW + 10) * 1000)

    written = store.save_success("42", "{}", NOW, namespace="orders")
    assert written.expiry == int(NOW + 60)

    # Without a namespace a bare key falls back to the defaults
    store.save_in_progress("43", None, NOW)
    assert store.get_record("43", NOW).expiry == int(NOW + 3600)
