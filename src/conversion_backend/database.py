"""
SQLite database for conversion jobs, daily usage statistics and the audit log.

Every query that touches jobs or usage rows is filtered by owner, so one
caller can never read or modify another caller's rows.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from .models import JobStatus


DEFAULT_DB_PATH = Path("data/conversions.db")

# Allowed predecessor states for each status transition
_PREDECESSORS: Dict[JobStatus, tuple] = {
    JobStatus.PROCESSING: (JobStatus.PENDING,),
    JobStatus.COMPLETED: (JobStatus.PENDING, JobStatus.PROCESSING),
    JobStatus.FAILED: (JobStatus.PENDING, JobStatus.PROCESSING),
}


def _ensure_db_dir(db_path: Path) -> None:
    """Ensure the database directory exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Serialize datetime to a fixed-width ISO string so text order matches time order."""
    return dt.isoformat(timespec="microseconds") if dt else None


def _deserialize_datetime(s: Optional[str]) -> Optional[datetime]:
    if not s:
        return None
    return datetime.fromisoformat(s)


def _dump(value: Any) -> Optional[str]:
    return json.dumps(value) if value is not None else None


def _load(raw: Optional[str]) -> Any:
    return json.loads(raw) if raw else None


class InvalidTransition(Exception):
    """Raised when a status update would move a job backwards or out of a terminal state."""


class JobDatabase:
    """
    SQLite persistence for the conversion backend.

    Each public method runs in its own connection and transaction.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        _ensure_db_dir(self.db_path)
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
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS conversion_jobs (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    conversion_type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    input_data TEXT,
                    output_data TEXT,
                    error_message TEXT,
                    processing_time_ms INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_owner_created_at
                ON conversion_jobs(owner, created_at DESC)
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS usage_stats (
                    owner TEXT NOT NULL,
                    date TEXT NOT NULL,
                    total_conversions INTEGER NOT NULL DEFAULT 0,
                    successful_conversions INTEGER NOT NULL DEFAULT 0,
                    failed_conversions INTEGER NOT NULL DEFAULT 0,
                    total_processing_time_ms INTEGER NOT NULL DEFAULT 0,
                    conversion_types TEXT NOT NULL DEFAULT '{}',
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (owner, date)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS system_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    log_level TEXT NOT NULL,
                    source TEXT NOT NULL,
                    message TEXT NOT NULL,
                    metadata TEXT,
                    owner TEXT,
                    created_at TEXT NOT NULL
                )
            """)

    # -- conversion jobs --------------------------------------------------

    def _insert_job(
        self,
        conn: sqlite3.Connection,
        owner: str,
        conversion_type: str,
        input_data: Optional[Dict[str, Any]],
        created_at: datetime,
    ) -> str:
        job_id = uuid4().hex
        conn.execute("""
            INSERT INTO conversion_jobs (
                id, owner, conversion_type, status, input_data,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            job_id,
            owner,
            conversion_type,
            JobStatus.PENDING.value,
            _dump(input_data),
            _serialize_datetime(created_at),
            _serialize_datetime(created_at),
        ))
        return job_id

    def _advance(
        self,
        conn: sqlite3.Connection,
        job_id: str,
        owner: str,
        status: JobStatus,
        updated_at: datetime,
        output_data: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
        processing_time_ms: Optional[int] = None,
    ) -> None:
        allowed = _PREDECESSORS.get(status)
        if not allowed:
            raise InvalidTransition(f"Cannot transition a job to {status.value}")

        updates = ["status = ?", "updated_at = ?"]
        values: List[Any] = [status.value, _serialize_datetime(updated_at)]

        if status.is_terminal:
            updates.append("completed_at = ?")
            values.append(_serialize_datetime(updated_at))
            updates.append("processing_time_ms = ?")
            values.append(processing_time_ms)

        if status is JobStatus.COMPLETED:
            updates.append("output_data = ?")
            values.append(_dump(output_data))

        if status is JobStatus.FAILED:
            updates.append("error_message = ?")
            values.append(error_message)

        placeholders = ", ".join("?" for _ in allowed)
        values.extend([job_id, owner, *[s.value for s in allowed]])

        cursor = conn.execute(
            f"UPDATE conversion_jobs SET {', '.join(updates)} "
            f"WHERE id = ? AND owner = ? AND status IN ({placeholders})",
            values,
        )
        if cursor.rowcount == 0:
            raise InvalidTransition(f"Job {job_id} cannot move to {status.value}")

    def _fetch_job(self, conn: sqlite3.Connection, job_id: str) -> Dict[str, Any]:
        row = conn.execute(
            "SELECT * FROM conversion_jobs WHERE id = ?", (job_id,)
        ).fetchone()
        return self._job_to_dict(row)

    def create_job(
        self,
        owner: str,
        conversion_type: str,
        input_data: Optional[Dict[str, Any]],
        created_at: datetime,
    ) -> Dict[str, Any]:
        """
        Insert a new job in the ``pending`` state.

        Returns:
            The stored job as a dictionary
        """
        with self._get_connection() as conn:
            job_id = self._insert_job(conn, owner, conversion_type, input_data, created_at)
            return self._fetch_job(conn, job_id)

    def open_job(
        self,
        owner: str,
        conversion_type: str,
        input_data: Optional[Dict[str, Any]],
        created_at: datetime,
    ) -> Dict[str, Any]:
        """
        Insert a job and move it to ``processing`` in one transaction.

        Either both steps are stored or neither is, so a failure never
        leaves a ``pending`` row behind.
        """
        with self._get_connection() as conn:
            job_id = self._insert_job(conn, owner, conversion_type, input_data, created_at)
            self._advance(conn, job_id, owner, JobStatus.PROCESSING, created_at)
            return self._fetch_job(conn, job_id)

    def advance_status(
        self,
        job_id: str,
        owner: str,
        status: JobStatus,
        updated_at: datetime,
        output_data: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
        processing_time_ms: Optional[int] = None,
    ) -> None:
        """
        Move a job forward in its lifecycle.

        Terminal transitions also stamp ``completed_at``. The update only
        applies when the job currently sits in an allowed predecessor state.

        Raises:
            InvalidTransition: If the job is missing, owned by someone else,
                or not in a state that may move to ``status``
        """
        with self._get_connection() as conn:
            self._advance(
                conn,
                job_id,
                owner,
                status,
                updated_at,
                output_data=output_data,
                error_message=error_message,
                processing_time_ms=processing_time_ms,
            )

    def finish_job(
        self,
        job_id: str,
        owner: str,
        conversion_type: str,
        status: JobStatus,
        updated_at: datetime,
        processing_time_ms: int,
        output_data: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """
        Move a job to a terminal state and count it in the owner's daily
        usage bucket, in one ``BEGIN IMMEDIATE`` transaction.

        Raises:
            InvalidTransition: If ``status`` is not terminal or the job
                cannot move to it
        """
        if not status.is_terminal:
            raise InvalidTransition(f"{status.value} is not a terminal state")

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            self._advance(
                conn,
                job_id,
                owner,
                status,
                updated_at,
                output_data=output_data,
                error_message=error_message,
                processing_time_ms=processing_time_ms,
            )
            self._bump_usage(
                conn,
                owner,
                updated_at.date(),
                conversion_type,
                succeeded=status is JobStatus.COMPLETED,
                processing_time_ms=processing_time_ms,
                updated_at=updated_at,
            )

    def get_job(self, job_id: str, owner: str) -> Optional[Dict[str, Any]]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM conversion_jobs WHERE id = ? AND owner = ?",
                (job_id, owner),
            ).fetchone()
            return self._job_to_dict(row) if row else None

    def list_jobs(
        self,
        owner: str,
        limit: int,
        status: Optional[str] = None,
        conversion_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        List an owner's jobs, newest first.

        Args:
            owner: Only rows with this owner are returned
            limit: Maximum number of rows
            status: Optional equality filter on status
            conversion_type: Optional equality filter on conversion type
        """
        clauses = ["owner = ?"]
        values: List[Any] = [owner]
        if status:
            clauses.append("status = ?")
            values.append(status)
        if conversion_type:
            clauses.append("conversion_type = ?")
            values.append(conversion_type)
        values.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM conversion_jobs WHERE {' AND '.join(clauses)} "
                "ORDER BY created_at DESC, rowid DESC LIMIT ?",
                values,
            ).fetchall()
            return [self._job_to_dict(row) for row in rows]

    def _job_to_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "owner": row["owner"],
            "conversion_type": row["conversion_type"],
            "status": JobStatus(row["status"]),
            "input_data": _load(row["input_data"]),
            "output_data": _load(row["output_data"]),
            "error_message": row["error_message"],
            "processing_time_ms": row["processing_time_ms"],
            "created_at": _deserialize_datetime(row["created_at"]),
            "updated_at": _deserialize_datetime(row["updated_at"]),
            "completed_at": _deserialize_datetime(row["completed_at"]),
        }

    # -- usage statistics -------------------------------------------------

    def _bump_usage(
        self,
        conn: sqlite3.Connection,
        owner: str,
        day: date,
        conversion_type: str,
        succeeded: bool,
        processing_time_ms: int,
        updated_at: datetime,
    ) -> None:
        row = conn.execute(
            "SELECT conversion_types FROM usage_stats WHERE owner = ? AND date = ?",
            (owner, day.isoformat()),
        ).fetchone()

        type_counts: Dict[str, int] = json.loads(row["conversion_types"]) if row else {}
        type_counts[conversion_type] = type_counts.get(conversion_type, 0) + 1

        if row is None:
            conn.execute("""
                INSERT INTO usage_stats (
                    owner, date, total_conversions, successful_conversions,
                    failed_conversions, total_processing_time_ms,
                    conversion_types, updated_at
                ) VALUES (?, ?, 1, ?, ?, ?, ?, ?)
            """, (
                owner,
                day.isoformat(),
                1 if succeeded else 0,
                0 if succeeded else 1,
                processing_time_ms,
                json.dumps(type_counts),
                _serialize_datetime(updated_at),
            ))
        else:
            conn.execute("""
                UPDATE usage_stats SET
                    total_conversions = total_conversions + 1,
                    successful_conversions = successful_conversions + ?,
                    failed_conversions = failed_conversions + ?,
                    total_processing_time_ms = total_processing_time_ms + ?,
                    conversion_types = ?,
                    updated_at = ?
                WHERE owner = ? AND date = ?
            """, (
                1 if succeeded else 0,
                0 if succeeded else 1,
                processing_time_ms,
                json.dumps(type_counts),
                _serialize_datetime(updated_at),
                owner,
                day.isoformat(),
            ))

    def record_usage(
        self,
        owner: str,
        day: date,
        conversion_type: str,
        succeeded: bool,
        processing_time_ms: int,
        updated_at: datetime,
    ) -> None:
        """Add one terminal job to the owner's bucket for ``day``."""
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            self._bump_usage(conn, owner, day, conversion_type, succeeded, processing_time_ms, updated_at)

    def usage_stats(self, owner: str, since: date) -> List[Dict[str, Any]]:
        """Daily usage rows for ``owner`` on or after ``since``, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM usage_stats WHERE owner = ? AND date >= ? ORDER BY date DESC",
                (owner, since.isoformat()),
            ).fetchall()
            return [
                {
                    "date": date.fromisoformat(row["date"]),
                    "total_conversions": row["total_conversions"],
                    "successful_conversions": row["successful_conversions"],
                    "failed_conversions": row["failed_conversions"],
                    "total_processing_time_ms": row["total_processing_time_ms"],
                    "conversion_types": json.loads(row["conversion_types"] or "{}"),
                }
                for row in rows
            ]

    # -- audit log --------------------------------------------------------

    def log_event(
        self,
        log_level: str,
        source: str,
        message: str,
        created_at: datetime,
        metadata: Optional[Dict[str, Any]] = None,
        owner: Optional[str] = None,
    ) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO system_logs (log_level, source, message, metadata, owner, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                log_level,
                source,
                message,
                json.dumps(metadata or {}, default=str),
                owner,
                _serialize_datetime(created_at),
            ))

    def list_logs(self, source: Optional[str] = None) -> List[Dict[str, Any]]:
        query = "SELECT * FROM system_logs"
        values: List[Any] = []
        if source:
            query += " WHERE source = ?"
            values.append(source)
        query += " ORDER BY id DESC"

        with self._get_connection() as conn:
            rows = conn.execute(query, values).fetchall()
            return [
                {
                    "log_level": row["log_level"],
                    "source": row["source"],
                    "message": row["message"],
                    "metadata": json.loads(row["metadata"] or "{}"),
                    "owner": row["owner"],
                    "created_at": _deserialize_datetime(row["created_at"]),
                }
                for row in rows
            ]
