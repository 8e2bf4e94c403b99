"""
Layer 3 — Storage
Component: Scan store
Responsibility: Persist scan records and events in SQLite

The store never opens a connection on its own; callers pass one in and own
its lifetime (see open_store() for the common case).
"""
import logging
import sqlite3
from contextlib import contextmanager

from .records import Event, ScanRecord

logger = logging.getLogger(__name__)


def _scan_columns_sql():
    columns = []
    for name in ScanRecord.column_names():
        if name == "confidence":
            columns.append("confidence REAL DEFAULT 0")
        elif name == "event_id":
            columns.append("event_id INTEGER REFERENCES events (id)")
        else:
            columns.append(f"{name} TEXT DEFAULT ''")
    return ",\n    ".join(columns)


SCHEMA = f"""
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT DEFAULT '',
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS scans (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    {_scan_columns_sql()},
    saved_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""


class ScanStore:
    """Scan and event persistence on an explicitly passed connection"""

    def __init__(self, connection):
        """
        Args:
            connection: sqlite3.Connection owned by the caller
        """
        self.connection = connection
        self.connection.row_factory = sqlite3.Row

    def initialize(self):
        """Create tables that do not exist yet"""
        with self.connection:
            self.connection.executescript(SCHEMA)
        logger.debug("Scan store tables ready")
        return self

    # =========================================================================
    # SCANS
    # =========================================================================

    def insert_scan(self, record):
        """
        Store a new scan

        Returns:
            ScanRecord: The stored record with id and saved_at filled in
        """
        if record.event_id is not None:
            self.get_event(record.event_id)

        columns = ScanRecord.column_names()
        placeholders = ", ".join("?" for _ in columns)
        values = [getattr(record, name) for name in columns]

        with self.connection:
            cursor = self.connection.execute(
                f"INSERT INTO scans ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )
        scan_id = cursor.lastrowid
        logger.info(f"Scan saved with id {scan_id}")
        return self.get_scan(scan_id)

    def get_scan(self, scan_id):
        from error_handlers import RecordNotFoundError

        row = self.connection.execute(
            "SELECT * FROM scans WHERE id = ?", (scan_id,)
        ).fetchone()
        if row is None:
            raise RecordNotFoundError("scan", scan_id)
        return ScanRecord.from_row(row)

    def update_scan(self, scan_id, changes):
        """
        Change fields of a stored scan

        Args:
            scan_id: Row id of the scan
            changes: {field name: new value}

        Raises:
            RecordNotFoundError: If the scan does not exist
            UnknownFieldError: If a field name is not a scan column
        """
        from error_handlers import UnknownFieldError

        current = self.get_scan(scan_id)
        changes = {k: v for k, v in changes.items() if k not in ("id", "saved_at")}
        unknown = ScanRecord.unknown_fields(changes)
        if unknown:
            raise UnknownFieldError(unknown)
        if not changes:
            return current
        updated = current.updated(**changes)

        if "event_id" in changes and updated.event_id is not None:
            self.get_event(updated.event_id)

        assignments = ", ".join(f"{name} = ?" for name in changes)
        values = [getattr(updated, name) for name in changes]
        with self.connection:
            self.connection.execute(
                f"UPDATE scans SET {assignments} WHERE id = ?",
                values + [scan_id],
            )
        logger.info(f"Scan {scan_id} updated: {', '.join(sorted(changes))}")
        return self.get_scan(scan_id)

    def list_scans(self):
        rows = self.connection.execute(
            "SELECT * FROM scans ORDER BY saved_at DESC, id DESC"
        ).fetchall()
        return [ScanRecord.from_row(row) for row in rows]

    def list_scans_by_event(self, event_id):
        rows = self.connection.execute(
            "SELECT * FROM scans WHERE event_id = ? ORDER BY saved_at DESC, id DESC",
            (event_id,),
        ).fetchall()
        return [ScanRecord.from_row(row) for row in rows]

    # =========================================================================
    # EVENTS
    # =========================================================================

    def insert_event(self, name, description=""):
        from error_handlers import ValidationError

        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Event name is required", field="name")
        if description is not None and not isinstance(description, str):
            raise ValidationError("Event description must be text", field="description")

        name = name.strip()
        with self.connection:
            cursor = self.connection.execute(
                "INSERT INTO events (name, description) VALUES (?, ?)",
                (name, (description or "").strip()),
            )
        logger.info(f"Event '{name}' created with id {cursor.lastrowid}")
        return self.get_event(cursor.lastrowid)

    def get_event(self, event_id):
        from error_handlers import RecordNotFoundError

        row = self.connection.execute(
            "SELECT * FROM events WHERE id = ?", (event_id,)
        ).fetchone()
        if row is None:
            raise RecordNotFoundError("event", event_id)
        return Event.from_row(row)

    def list_events(self):
        rows = self.connection.execute(
            "SELECT * FROM events ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [Event.from_row(row) for row in rows]

    def update_event(self, event_id, name=None, description=None):
        from error_handlers import ValidationError

        current = self.get_event(event_id)
        if name is not None and (not isinstance(name, str) or not name.strip()):
            raise ValidationError("Event name is required", field="name")
        if description is not None and not isinstance(description, str):
            raise ValidationError("Event description must be text", field="description")

        new_name = name.strip() if name is not None else current.name
        new_description = description.strip() if description is not None else current.description
        with self.connection:
            self.connection.execute(
                "UPDATE events SET name = ?, description = ? WHERE id = ?",
                (new_name, new_description, event_id),
            )
        return self.get_event(event_id)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def delete_all(self):
        """Remove every scan and event"""
        with self.connection:
            self.connection.execute("DELETE FROM scans")
            self.connection.execute("DELETE FROM events")
        logger.warning("All scans and events deleted")

    def info(self):
        """Row counts per table"""
        counts = {}
        for table in ("scans", "events"):
            counts[table] = self.connection.execute(
                f"SELECT COUNT(*) FROM {table}"
            ).fetchone()[0]
        return counts


@contextmanager
def open_store(path):
    """
    Open a SQLite database, yield an initialized ScanStore, then close it

    Args:
        path: Database file path (":memory:" for a throwaway store)
    """
    connection = sqlite3.connect(str(path))
    try:
        yield ScanStore(connection).initialize()
    finally:
        connection.close()
