"""
Device snapshot persistence.

Snapshots are stored per subnet under the key "{network}/{cidr}". The
registry seeds offline devices from the last snapshot at scan start and the
orchestrator writes a fresh one when the scan completes.

SQLiteSnapshotStore keeps one JSON document per key plus a short scan
history. Uses WAL mode for crash safety and concurrent reads.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Protocol

from ._types import DeviceSnapshot, ScanReport, now_utc

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    """Key-value store of device snapshots."""

    def load(self, key: str) -> list[DeviceSnapshot]:
        ...

    def save(self, key: str, snapshots: list[DeviceSnapshot]) -> None:
        ...


def _decode(key: str, document: str) -> list[DeviceSnapshot]:
    try:
        return [DeviceSnapshot.from_dict(item) for item in json.loads(document)]
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"Discarding corrupt snapshot for {key}: {e}")
        return []


def _encode(snapshots: list[DeviceSnapshot]) -> str:
    return json.dumps([s.to_dict() for s in snapshots])


class MemorySnapshotStore:
    """In-process snapshot store."""

    def __init__(self):
        self._documents: dict[str, str] = {}

    def load(self, key: str) -> list[DeviceSnapshot]:
        document = self._documents.get(key)
        if document is None:
            return []
        return _decode(key, document)

    def save(self, key: str, snapshots: list[DeviceSnapshot]) -> None:
        self._documents[key] = _encode(snapshots)

    def snapshot_keys(self) -> list[str]:
        return sorted(self._documents)


# Database schema
SCHEMA = """
CREATE TABLE IF NOT EXISTS snapshots (
    key TEXT PRIMARY KEY,
    document TEXT NOT NULL,
    device_count INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS scan_history (
    id TEXT PRIMARY KEY,
    network TEXT,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    status TEXT NOT NULL,
    devices_found INTEGER DEFAULT 0,
    online_count INTEGER DEFAULT 0,
    methods_used TEXT,  -- JSON array
    error_message TEXT
);

CREATE INDEX IF NOT EXISTS idx_scan_history_started ON scan_history(started_at);
"""


def _iso_format(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


class SQLiteSnapshotStore:
    """SQLite-backed snapshot store."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path).expanduser()
        self._ensure_directory()
        self._init_db()

    def _ensure_directory(self) -> None:
        """Ensure database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        """Initialize database with schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            # Enable WAL mode for crash safety
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.commit()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def load(self, key: str) -> list[DeviceSnapshot]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT document FROM snapshots WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return []
        return _decode(key, row["document"])

    def save(self, key: str, snapshots: list[DeviceSnapshot]) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO snapshots (key, document, device_count, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    document = excluded.document,
                    device_count = excluded.device_count,
                    updated_at = excluded.updated_at
                """,
                (key, _encode(snapshots), len(snapshots), _iso_format(now_utc())),
            )
            conn.commit()
        logger.debug(f"Saved {len(snapshots)} device snapshots for {key}")

    def snapshot_keys(self) -> list[str]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT key FROM snapshots ORDER BY key").fetchall()
        return [row["key"] for row in rows]

    def delete(self, key: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM snapshots WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Scan history
    # -------------------------------------------------------------------------

    def record_scan(self, report: ScanReport) -> None:
        """Insert or update the history row for a scan."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO scan_history
                (id, network, started_at, completed_at, status,
                 devices_found, online_count, methods_used, error_message)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    report.scan_id,
                    report.network,
                    _iso_format(report.started_at),
                    _iso_format(report.completed_at),
                    report.status,
                    report.devices_found,
                    report.online_count,
                    json.dumps(report.methods_used),
                    report.error_message,
                ),
            )
            conn.commit()

    def scan_history(self, limit: int = 20) -> list[dict]:
        """Most recent scans first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM scan_history ORDER BY started_at DESC LIMIT ?", (limit,)
            ).fetchall()

        history = []
        for row in rows:
            entry = dict(row)
            entry["methods_used"] = json.loads(row["methods_used"] or "[]")
            history.append(entry)
        return history
