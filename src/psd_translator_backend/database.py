"""
SQLite database for persistent job storage.

This module provides a simple SQLite-based persistence layer for translation
job records and for pending object deletions, ensuring both survive server
restarts.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .utils import ensure_directory

# Default database path
DEFAULT_DB_PATH = Path("data/jobs.db")

# Columns that update_job may touch besides status/updated_at
_UPDATABLE_COLUMNS = {
    "download_url",
    "download_expires_at",
    "output_size",
    "message",
    "error",
    "error_kind",
    "error_status",
}


def _serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Serialize datetime to ISO format string."""
    return dt.isoformat() if dt else None


def _deserialize_datetime(s: Optional[str]) -> Optional[datetime]:
    """Deserialize ISO format string to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


class JobDatabase:
    """
    SQLite database for job persistence.

    Thread-safe: every call opens its own connection and SQLite handles
    concurrent access with WAL mode.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        ensure_directory(self.db_path.parent)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    source_filename TEXT NOT NULL,
                    source_key TEXT NOT NULL,
                    target_lang TEXT NOT NULL,
                    output_key TEXT NOT NULL,
                    download_url TEXT,
                    download_expires_at TEXT,
                    output_size INTEGER,
                    message TEXT,
                    error TEXT,
                    error_kind TEXT,
                    error_status INTEGER,
                    events TEXT
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_created_at
                ON jobs(created_at DESC)
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS pending_deletions (
                    object_key TEXT PRIMARY KEY,
                    due_at TEXT NOT NULL,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    last_error TEXT
                )
            """)

    def save_job(self, job_data: Dict[str, Any]) -> None:
        """
        Save or update a job record.

        Args:
            job_data: Dictionary with job fields
        """
        with self._get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO jobs (
                    id, status, created_at, updated_at,
                    source_filename, source_key, target_lang, output_key,
                    download_url, download_expires_at, output_size,
                    message, error, error_kind, error_status, events
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                job_data["id"],
                job_data["status"],
                _serialize_datetime(job_data["created_at"]),
                _serialize_datetime(job_data["updated_at"]),
                job_data["source_filename"],
                job_data["source_key"],
                job_data["target_lang"],
                job_data["output_key"],
                job_data.get("download_url"),
                _serialize_datetime(job_data.get("download_expires_at")),
                job_data.get("output_size"),
                job_data.get("message"),
                job_data.get("error"),
                job_data.get("error_kind"),
                job_data.get("error_status"),
                json.dumps([
                    {"timestamp": _serialize_datetime(e["timestamp"]), "message": e["message"]}
                    for e in job_data.get("events", [])
                ]),
            ))

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve a job by ID.

        Returns:
            Job data dictionary or None if not found
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM jobs WHERE id = ?", (job_id,)
            ).fetchone()

            if not row:
                return None

            return self._row_to_dict(row)

    def list_jobs(self) -> List[Dict[str, Any]]:
        """
        List all jobs ordered by creation time (newest first).
        """
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM jobs ORDER BY created_at DESC"
            ).fetchall()

            return [self._row_to_dict(row) for row in rows]

    def update_job(self, job_id: str, status: str, **fields: Any) -> None:
        """
        Update job status and any of the result/error columns.

        Args:
            job_id: The job ID
            status: New status value
            **fields: Column values to set (see ``_UPDATABLE_COLUMNS``)

        Raises:
            ValueError: If an unknown column is passed
        """
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown job columns: {sorted(unknown)}")

        updates = ["status = ?", "updated_at = ?"]
        values: List[Any] = [status, _serialize_datetime(datetime.utcnow())]
        for column, value in fields.items():
            updates.append(f"{column} = ?")
            values.append(_serialize_datetime(value) if isinstance(value, datetime) else value)
        values.append(job_id)

        with self._get_connection() as conn:
            conn.execute(
                f"UPDATE jobs SET {', '.join(updates)} WHERE id = ?",
                values
            )

    def add_job_event(self, job_id: str, message: str, timestamp: Optional[datetime] = None) -> None:
        """
        Add an event to a job's event log.
        """
        timestamp = timestamp or datetime.utcnow()
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT events FROM jobs WHERE id = ?", (job_id,)
            ).fetchone()

            if not row:
                return

            events = json.loads(row["events"] or "[]")
            events.append({
                "timestamp": _serialize_datetime(timestamp),
                "message": message,
            })

            conn.execute(
                "UPDATE jobs SET events = ?, updated_at = ? WHERE id = ?",
                (json.dumps(events), _serialize_datetime(timestamp), job_id)
            )

    def add_pending_deletion(self, object_key: str, due_at: datetime) -> None:
        """Record (or reschedule) the deferred deletion of an object."""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO pending_deletions (object_key, due_at) VALUES (?, ?)
                ON CONFLICT(object_key) DO UPDATE SET due_at = excluded.due_at
            """, (object_key, _serialize_datetime(due_at)))

    def due_deletions(self, now: datetime) -> List[Dict[str, Any]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM pending_deletions WHERE due_at <= ? ORDER BY due_at",
                (_serialize_datetime(now),)
            ).fetchall()
            return [
                {
                    "object_key": row["object_key"],
                    "due_at": _deserialize_datetime(row["due_at"]),
                    "attempts": row["attempts"],
                    "last_error": row["last_error"],
                }
                for row in rows
            ]

    def count_pending_deletions(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM pending_deletions").fetchone()[0]

    def remove_pending_deletion(self, object_key: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM pending_deletions WHERE object_key = ?", (object_key,))

    def record_deletion_failure(self, object_key: str, error: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE pending_deletions SET attempts = attempts + 1, last_error = ? WHERE object_key = ?",
                (error, object_key)
            )

    def _row_to_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        """Convert a database row to a job data dictionary."""
        events_raw = json.loads(row["events"] or "[]")
        events = [
            {
                "timestamp": _deserialize_datetime(e["timestamp"]),
                "message": e["message"],
            }
            for e in events_raw
        ]

        return {
            "id": row["id"],
            "status": row["status"],
            "created_at": _deserialize_datetime(row["created_at"]),
            "updated_at": _deserialize_datetime(row["updated_at"]),
            "source_filename": row["source_filename"],
            "source_key": row["source_key"],
            "target_lang": row["target_lang"],
            "output_key": row["output_key"],
            "download_url": row["download_url"],
            "download_expires_at": _deserialize_datetime(row["download_expires_at"]),
            "output_size": row["output_size"],
            "message": row["message"],
            "error": row["error"],
            "error_kind": row["error_kind"],
            "error_status": row["error_status"],
            "events": events,
        }
