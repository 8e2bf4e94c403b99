"""
Tests for scan and event storage.
"""
import sqlite3

import pytest

from error_handlers import RecordNotFoundError, UnknownFieldError, ValidationError
from layer2_mrz import decode
from layer3_storage import Event, ScanRecord, ScanStore, open_store


@pytest.fixture
def store():
    with open_store(":memory:") as scan_store:
        yield scan_store


@pytest.fixture
def record(sample_mrz_text):
    return ScanRecord.from_document(decode(sample_mrz_text), carrier="UA", confidence=0.91)


class TestScanRecord:
    """Test the record shape."""

    def test_from_document_copies_mrz_fields(self, record):
        """Test decoded fields and extras land on the record."""
        assert record.surname == "DOE"
        assert record.document_number == "AB1234567"
        assert record.carrier == "UA"
        assert record.confidence == 0.91
        assert record.email == ""
        assert record.id is None

    def test_document_round_trip(self, record, sample_mrz_text):
        """Test the MRZ part of the record is the decoded document."""
        assert record.document() == decode(sample_mrz_text)

    def test_updated_strips_text(self, record):
        """Test text values are trimmed and None becomes empty."""
        changed = record.updated(email="  john@example.com ", phone_number=None)

        assert changed.email == "john@example.com"
        assert changed.phone_number == ""
        assert record.email == ""

    def test_updated_rejects_unknown_fields(self, record):
        """Test names outside the record raise UnknownFieldError."""
        with pytest.raises(UnknownFieldError) as exc_info:
            record.updated(favourite_colour="blue")
        assert exc_info.value.details["fields"] == ["favourite_colour"]

    def test_updated_rejects_bad_numbers(self, record):
        """Test non-numeric confidence is a validation error."""
        with pytest.raises(ValidationError):
            record.updated(confidence="high")

    @pytest.mark.parametrize("value", [{"x": [1]}, ["DOE"]])
    def test_updated_rejects_structured_text(self, record, value):
        """Test objects and arrays are not stored as their repr."""
        with pytest.raises(ValidationError) as exc_info:
            record.updated(surname=value)
        assert exc_info.value.details["field"] == "surname"

    def test_update_scan_rejects_structured_text(self, store, record):
        """Test a rejected update leaves the stored scan unchanged."""
        saved = store.insert_scan(record)

        with pytest.raises(ValidationError):
            store.update_scan(saved.id, {"surname": {"x": [1]}})
        assert store.get_scan(saved.id).surname == "DOE"

    def test_full_name(self, record):
        assert record.full_name() == "JOHN MICHAEL DOE"

    def test_column_names_exclude_row_metadata(self):
        columns = ScanRecord.column_names()

        assert "id" not in columns
        assert "saved_at" not in columns
        assert "signature" in columns


class TestScanStore:
    """Test scan persistence."""

    def test_insert_and_get(self, store, record):
        """Test a stored scan comes back with an id and timestamp."""
        saved = store.insert_scan(record)

        assert saved.id is not None
        assert saved.saved_at
        assert store.get_scan(saved.id) == saved
        assert saved.updated(id=None, saved_at="") == record

    def test_get_missing_scan(self, store):
        """Test unknown ids raise RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError) as exc_info:
            store.get_scan(999)
        assert exc_info.value.error_code == "SCAN_NOT_FOUND"
        assert exc_info.value.status_code == 404

    def test_update_scan(self, store, record):
        """Test only the named fields change."""
        saved = store.insert_scan(record)

        updated = store.update_scan(saved.id, {"email": "john@example.com", "seats": "12A"})

        assert updated.email == "john@example.com"
        assert updated.seats == "12A"
        assert updated.surname == "DOE"
        assert updated.carrier == "UA"

    def test_update_ignores_row_metadata(self, store, record):
        """Test id and saved_at in the payload are not written."""
        saved = store.insert_scan(record)

        updated = store.update_scan(saved.id, {"id": 42, "saved_at": "yesterday"})

        assert updated == saved

    def test_update_unknown_field(self, store, record):
        """Test unknown names are rejected before writing."""
        saved = store.insert_scan(record)

        with pytest.raises(UnknownFieldError):
            store.update_scan(saved.id, {"self": "x", "email": "a@b.c"})
        assert store.get_scan(saved.id).email == ""

    def test_update_missing_scan(self, store):
        with pytest.raises(RecordNotFoundError):
            store.update_scan(5, {"email": "a@b.c"})

    def test_list_scans_newest_first(self, store, record):
        """Test listing order is newest first."""
        first = store.insert_scan(record)
        second = store.insert_scan(record.updated(surname="ROE"))

        assert [scan.id for scan in store.list_scans()] == [second.id, first.id]


class TestEvents:
    """Test event storage and scan grouping."""

    def test_insert_and_list(self, store):
        event = store.insert_event("  Flight UA 100 ", "Evacuation group")

        assert isinstance(event, Event)
        assert event.name == "Flight UA 100"
        assert event.description == "Evacuation group"
        assert store.list_events() == [event]

    def test_event_name_required(self, store):
        """Test blank names are rejected."""
        with pytest.raises(ValidationError):
            store.insert_event("   ")

    def test_update_event(self, store):
        """Test omitted fields keep their value."""
        event = store.insert_event("Group A", "first")

        updated = store.update_event(event.id, description="second")

        assert updated.name == "Group A"
        assert updated.description == "second"

    def test_get_missing_event(self, store):
        with pytest.raises(RecordNotFoundError) as exc_info:
            store.get_event(12)
        assert exc_info.value.error_code == "EVENT_NOT_FOUND"

    def test_scans_by_event(self, store, record):
        """Test scans are grouped by their event."""
        event = store.insert_event("Group A")
        grouped = store.insert_scan(record.updated(event_id=event.id))
        store.insert_scan(record)

        assert store.list_scans_by_event(event.id) == [grouped]

    def test_scan_with_unknown_event(self, store, record):
        """Test scans cannot reference a missing event."""
        with pytest.raises(RecordNotFoundError):
            store.insert_scan(record.updated(event_id=77))


class TestMaintenance:
    """Test housekeeping operations."""

    def test_delete_all_and_info(self, store, record):
        store.insert_event("Group A")
        store.insert_scan(record)
        assert store.info() == {"scans": 1, "events": 1}

        store.delete_all()

        assert store.info() == {"scans": 0, "events": 0}

    def test_store_uses_passed_connection(self, tmp_path, record):
        """Test data written through one connection is visible to the next."""
        path = tmp_path / "scans.db"
        with open_store(path) as first:
            saved = first.insert_scan(record)

        connection = sqlite3.connect(str(path))
        try:
            store = ScanStore(connection).initialize()
            assert store.get_scan(saved.id) == saved
        finally:
            connection.close()
