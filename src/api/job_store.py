"""SQLite-based persistent storage for background workflow jobs.

Jobs survive server restarts; WebSocket subscribers do not. Uses aiosqlite
for async database operations.
"""

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import aiosqlite

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = ".trendscout/jobs.db"

QUEUED_PROGRESS = {"stage": "queued", "percent": 0, "message": "Job queued"}


class JobStatus:
    """Job status constants."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStore:
    """Async SQLite job storage.

    Each job row keeps its request, progress and final result in one JSON
    ``data`` column; the common fields are flattened when read.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize job store with database path.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        self.db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the connection and create the jobs table."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.db = await aiosqlite.connect(str(self.db_path))
        self.db.row_factory = aiosqlite.Row

        if self.db_path != ":memory:":
            # WAL lets status polls read while the worker writes
            await self.db.execute("PRAGMA journal_mode=WAL")

        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL DEFAULT 'workflow',
                status TEXT NOT NULL DEFAULT 'queued',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                data JSON,
                error TEXT
            )
        """)
        await self.db.execute("""
            CREATE INDEX IF NOT EXISTS idx_jobs_created_at
            ON jobs (created_at DESC)
        """)
        await self.db.commit()
        logger.info(f"Job store connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self.db:
            await self.db.close()
            self.db = None
            logger.info("Job store connection closed")

    def _require_db(self) -> aiosqlite.Connection:
        if self.db is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self.db

    async def create_job(
        self,
        job_id: str,
        job_type: str = "workflow",
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create a queued job.

        Args:
            job_id: Unique job identifier
            job_type: Job type (workflow)
            data: Job data (business_description, owner_id, videos_per_query)

        Returns:
            Created job as dict

        Raises:
            RuntimeError: If database is not connected
        """
        db = self._require_db()
        now = datetime.now().isoformat()
        data = dict(data or {})
        data.setdefault("progress", dict(QUEUED_PROGRESS))

        await db.execute(
            "INSERT INTO jobs (id, type, status, created_at, updated_at, data) VALUES (?, ?, ?, ?, ?, ?)",
            (job_id, job_type, JobStatus.QUEUED, now, now, json.dumps(data)),
        )
        await db.commit()
        logger.info(f"Created job {job_id} of type {job_type}")

        return await self.get_job(job_id)

    async def get_job(self, job_id: str) -> dict[str, Any] | None:
        """Get a job by ID, or None if not found."""
        db = self._require_db()
        async with db.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)) as cursor:
            row = await cursor.fetchone()
            return self._row_to_dict(row) if row is not None else None

    async def update_job(
        self,
        job_id: str,
        status: str | None = None,
        data: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> dict[str, Any] | None:
        """Update status, merge data fields and set the error of a job.

        Returns:
            Updated job dict or None if not found
        """
        db = self._require_db()
        current = await self.get_job(job_id)
        if current is None:
            return None

        merged = current["data"]
        if data:
            merged.update(data)

        await db.execute(
            "UPDATE jobs SET status = ?, updated_at = ?, data = ?, error = ? WHERE id = ?",
            (
                status or current["status"],
                datetime.now().isoformat(),
                json.dumps(merged),
                error if error is not None else current["error"],
                job_id,
            ),
        )
        await db.commit()
        logger.debug(f"Updated job {job_id}: status={status or current['status']}")

        return await self.get_job(job_id)

    async def list_jobs(self, job_type: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
        """List jobs newest first, optionally of one type."""
        db = self._require_db()
        query = "SELECT * FROM jobs"
        params: list[Any] = []
        if job_type:
            query += " WHERE type = ?"
            params.append(job_type)
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        async with db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_dict(row) for row in rows]

    async def cleanup_old_jobs(self, days: int = 7) -> int:
        """Delete finished jobs older than ``days``. Active jobs are kept.

        Returns:
            Number of deleted jobs
        """
        db = self._require_db()
        cutoff = (datetime.now() - timedelta(days=days)).isoformat()
        cursor = await db.execute(
            "DELETE FROM jobs WHERE created_at < ? AND status IN (?, ?)",
            (cutoff, JobStatus.COMPLETED, JobStatus.FAILED),
        )
        await db.commit()
        if cursor.rowcount:
            logger.info(f"Cleaned up {cursor.rowcount} old jobs (older than {days} days)")
        return cursor.rowcount

    def _row_to_dict(self, row: aiosqlite.Row) -> dict[str, Any]:
        """Convert a row to a dict with progress, result and request fields flattened."""
        data: dict[str, Any] = {}
        if row["data"]:
            try:
                data = json.loads(row["data"])
            except json.JSONDecodeError:
                logger.warning(f"Failed to parse JSON data for job {row['id']}")

        return {
            "id": row["id"],
            "type": row["type"],
            "status": row["status"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "error": row["error"],
            "data": data,
            "progress": data.get("progress", dict(QUEUED_PROGRESS)),
            "business_description": data.get("business_description", ""),
            "result": data.get("result"),
        }
