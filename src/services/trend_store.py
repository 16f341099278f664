"""SQLite persistence for trend queries, staged videos, analyses and strategies.

Uses aiosqlite for async database operations. Every owned record resolves its
owner through one policy (see ``resolve_owner``), and every insert is read back
so a silently dropped write surfaces as PersistenceError.
"""

import asyncio
import json
import logging
import re
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Optional

import aiosqlite

from models.analysis import Strategy, VideoAnalysis
from models.video import SearchQuery, StagedVideo
from services.errors import MissingReferenceError, PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = ".trendscout/trends.db"
SYSTEM_OWNER_EMAIL = "system@trendscout.local"
PLACEHOLDER_EMAIL = "temp_{owner_id}@example.com"
DEFAULT_TREND_QUERY = "default"

HASHTAG_PATTERN = re.compile(r"#\w+")

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS owners (
        id TEXT PRIMARY KEY,
        auth_id TEXT UNIQUE,
        email TEXT UNIQUE NOT NULL,
        is_placeholder INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS trend_queries (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL REFERENCES owners (id),
        query TEXT NOT NULL,
        business_description TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS videos (
        id TEXT PRIMARY KEY,
        trend_query_id TEXT NOT NULL REFERENCES trend_queries (id),
        owner_id TEXT NOT NULL REFERENCES owners (id),
        platform_id TEXT NOT NULL,
        author_handle TEXT,
        caption TEXT,
        video_url TEXT,
        download_url TEXT,
        storage_key TEXT,
        likes INTEGER DEFAULT 0,
        comments INTEGER DEFAULT 0,
        shares INTEGER DEFAULT 0,
        views INTEGER DEFAULT 0,
        duration_seconds INTEGER DEFAULT 0,
        music_title TEXT,
        hashtags JSON,
        cover_url TEXT,
        search_query TEXT,
        uploaded_at TEXT,
        last_analyzed_at TEXT,
        analysis_summary TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS analyses (
        id TEXT PRIMARY KEY,
        video_id TEXT NOT NULL REFERENCES videos (id),
        owner_id TEXT NOT NULL REFERENCES owners (id),
        summary TEXT NOT NULL,
        payload JSON NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS strategies (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL REFERENCES owners (id),
        business_context TEXT,
        sections JSON,
        raw_content TEXT NOT NULL,
        sections_parsed INTEGER NOT NULL DEFAULT 0,
        video_count INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_trend_queries_owner ON trend_queries (owner_id, created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_videos_trend_query ON videos (trend_query_id)",
    "CREATE INDEX IF NOT EXISTS idx_strategies_owner ON strategies (owner_id, created_at DESC)",
]

JSON_COLUMNS = ("hashtags", "payload", "sections")


def extract_hashtags(caption: str) -> list[str]:
    """All ``#tag`` tokens in a caption, in order."""
    return HASHTAG_PATTERN.findall(caption or "")


class TrendStore:
    """Async SQLite store for the trend pipeline.

    Writes are serialized behind a lock so each insert and its read-back see
    a consistent row even when analyses run concurrently.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize store with database path.

        Args:
            db_path: Path to SQLite database file, or ":memory:". Parent
                     directory will be created if it doesn't exist.
        """
        self.db_path = db_path
        self.db: aiosqlite.Connection | None = None
        self._write_lock: asyncio.Lock | None = None

    async def connect(self) -> None:
        """Open the connection and create the schema."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.db = await aiosqlite.connect(str(self.db_path))
        self.db.row_factory = aiosqlite.Row
        self._write_lock = asyncio.Lock()

        if self.db_path != ":memory:":
            await self.db.execute("PRAGMA journal_mode=WAL")
        await self.db.execute("PRAGMA foreign_keys=ON")

        for statement in SCHEMA:
            await self.db.execute(statement)
        await self.db.commit()
        logger.info(f"Trend store connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self.db:
            await self.db.close()
            self.db = None
            logger.info("Trend store connection closed")

    async def __aenter__(self) -> "TrendStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _require_db(self) -> aiosqlite.Connection:
        if self.db is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self.db

    # =========================================================================
    # Low-level helpers
    # =========================================================================

    async def _fetch_one(self, query: str, params: Iterable[Any] = ()) -> dict[str, Any] | None:
        db = self._require_db()
        async with db.execute(query, tuple(params)) as cursor:
            row = await cursor.fetchone()
            return self._row_to_dict(row) if row is not None else None

    async def _fetch_all(self, query: str, params: Iterable[Any] = ()) -> list[dict[str, Any]]:
        db = self._require_db()
        async with db.execute(query, tuple(params)) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_dict(row) for row in rows]

    async def _insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and read it back.

        Raises:
            PersistenceError: If the row cannot be read back after the insert
        """
        db = self._require_db()
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        params = [json.dumps(v) if k in JSON_COLUMNS else v for k, v in values.items()]

        await db.execute(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", params)
        await db.commit()

        row = await self._fetch_one(f"SELECT * FROM {table} WHERE id = ?", (values["id"],))
        if row is None:
            raise PersistenceError(f"Insert into {table} returned no row (id={values['id']})")
        return row

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now() -> str:
        return datetime.now().isoformat()

    def _row_to_dict(self, row: aiosqlite.Row) -> dict[str, Any]:
        result = dict(row)
        for column in JSON_COLUMNS:
            if column in result and isinstance(result[column], str):
                try:
                    result[column] = json.loads(result[column])
                except json.JSONDecodeError:
                    logger.warning(f"Failed to parse JSON column {column} for row {result.get('id')}")
                    result[column] = None
        return result

    # =========================================================================
    # Owners
    # =========================================================================

    async def get_owner(self, owner_id: str) -> dict[str, Any] | None:
        """Look up an owner by external auth id, then by primary key."""
        owner = await self._fetch_one("SELECT * FROM owners WHERE auth_id = ?", (owner_id,))
        if owner is None:
            owner = await self._fetch_one("SELECT * FROM owners WHERE id = ?", (owner_id,))
        return owner

    async def resolve_owner(self, owner_id: Optional[str] = None) -> str:
        """Resolve an owner identity to a row id, creating a placeholder if needed.

        The same policy applies to every owned record:

        1. an owner whose ``auth_id`` equals ``owner_id``
        2. an owner whose primary key equals ``owner_id``
        3. a new placeholder owner with ``auth_id = owner_id``

        Without an owner id the shared system owner is used (created on first
        use).

        Raises:
            MissingReferenceError: If the placeholder owner cannot be created
        """
        self._require_db()

        if owner_id:
            owner = await self.get_owner(owner_id)
            if owner:
                return owner["id"]
            auth_id = owner_id
            email = PLACEHOLDER_EMAIL.format(owner_id=owner_id)
        else:
            owner = await self._fetch_one(
                "SELECT * FROM owners WHERE email = ?", (SYSTEM_OWNER_EMAIL,)
            )
            if owner:
                return owner["id"]
            auth_id = None
            email = SYSTEM_OWNER_EMAIL

        try:
            owner = await self._insert(
                "owners",
                {
                    "id": self._new_id(),
                    "auth_id": auth_id,
                    "email": email,
                    "is_placeholder": 1,
                    "created_at": self._now(),
                },
            )
        except (aiosqlite.Error, PersistenceError) as e:
            raise MissingReferenceError(
                f"Owner '{owner_id or 'system'}' not found and placeholder creation failed: {e}"
            ) from e

        logger.info(f"Created placeholder owner {owner['id']} for '{owner_id or 'system'}'")
        return owner["id"]

    # =========================================================================
    # Writes
    # =========================================================================

    async def save_trend_query(
        self, query: SearchQuery, business_description: Optional[str] = None
    ) -> str:
        """Persist a search query and stamp its ``trend_query_id``.

        Returns:
            The trend query row id
        """
        async with self._write_lock:
            owner_row_id = await self.resolve_owner(query.owner_id)
            row = await self._insert(
                "trend_queries",
                {
                    "id": self._new_id(),
                    "owner_id": owner_row_id,
                    "query": query.text,
                    "business_description": business_description,
                    "created_at": self._now(),
                },
            )
        query.trend_query_id = row["id"]
        logger.debug(f"Saved trend query '{query.text}' as {row['id']}")
        return row["id"]

    async def save_video(
        self,
        video: StagedVideo,
        owner_id: Optional[str] = None,
        trend_query_id: Optional[str] = None,
    ) -> str:
        """Persist a staged video and stamp its ``record_id``.

        When no trend query id is supplied a default trend query is created for
        the owner so the foreign key always resolves.

        Returns:
            The video row id
        """
        if not trend_query_id:
            trend_query_id = await self.save_trend_query(
                SearchQuery(text=video.search_query or DEFAULT_TREND_QUERY, owner_id=owner_id)
            )

        async with self._write_lock:
            owner_row_id = await self.resolve_owner(owner_id)
            engagement = video.engagement
            row = await self._insert(
                "videos",
                {
                    "id": self._new_id(),
                    "trend_query_id": trend_query_id,
                    "owner_id": owner_row_id,
                    "platform_id": video.platform_id,
                    "author_handle": video.author_handle,
                    "caption": video.caption,
                    "video_url": video.original_url,
                    "download_url": video.storage_url,
                    "storage_key": video.storage_key,
                    "likes": engagement.likes,
                    "comments": engagement.comments,
                    "shares": engagement.shares,
                    "views": engagement.views,
                    "duration_seconds": video.duration_seconds,
                    "music_title": video.music_title,
                    "hashtags": extract_hashtags(video.caption),
                    "cover_url": video.cover_url,
                    "search_query": video.search_query,
                    "uploaded_at": video.uploaded_at.isoformat() if video.uploaded_at else None,
                    "created_at": self._now(),
                },
            )
        video.record_id = row["id"]
        return row["id"]

    async def save_analysis(
        self, video_id: str, analysis: VideoAnalysis, owner_id: Optional[str] = None
    ) -> str:
        """Persist an analysis and mark the video as analyzed.

        Returns:
            The analysis row id
        """
        async with self._write_lock:
            owner_row_id = await self.resolve_owner(owner_id)
            now = self._now()
            row = await self._insert(
                "analyses",
                {
                    "id": self._new_id(),
                    "video_id": video_id,
                    "owner_id": owner_row_id,
                    "summary": analysis.summary,
                    "payload": analysis.to_payload(),
                    "created_at": now,
                },
            )
            await self.db.execute(
                "UPDATE videos SET last_analyzed_at = ?, analysis_summary = ? WHERE id = ?",
                (now, analysis.summary, video_id),
            )
            await self.db.commit()
        return row["id"]

    async def save_strategy(
        self,
        strategy: Strategy,
        owner_id: Optional[str] = None,
        business_context: Optional[str] = None,
    ) -> str:
        """Persist a strategy and stamp its ``strategy_id``.

        Returns:
            The strategy row id
        """
        async with self._write_lock:
            owner_row_id = await self.resolve_owner(owner_id)
            row = await self._insert(
                "strategies",
                {
                    "id": self._new_id(),
                    "owner_id": owner_row_id,
                    "business_context": business_context,
                    "sections": strategy.section_dict(),
                    "raw_content": strategy.raw_content,
                    "sections_parsed": int(strategy.sections_parsed),
                    "video_count": strategy.video_count,
                    "created_at": self._now(),
                },
            )
        strategy.strategy_id = row["id"]
        return row["id"]

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_trend_queries(self, owner_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Trend queries of an owner, newest first. Unknown owners have none."""
        owner = await self.get_owner(owner_id)
        if owner is None:
            return []
        return await self._fetch_all(
            "SELECT * FROM trend_queries WHERE owner_id = ? ORDER BY created_at DESC LIMIT ?",
            (owner["id"], limit),
        )

    async def list_strategies(self, owner_id: str, limit: int = 20) -> list[dict[str, Any]]:
        """Strategies of an owner, newest first."""
        owner = await self.get_owner(owner_id)
        if owner is None:
            return []
        return await self._fetch_all(
            "SELECT * FROM strategies WHERE owner_id = ? ORDER BY created_at DESC LIMIT ?",
            (owner["id"], limit),
        )

    async def get_videos_for_trend_query(self, trend_query_id: str) -> list[dict[str, Any]]:
        return await self._fetch_all(
            "SELECT * FROM videos WHERE trend_query_id = ? ORDER BY created_at",
            (trend_query_id,),
        )

    async def recent_trend_queries_with_videos(self, limit: int = 5) -> list[dict[str, Any]]:
        """Most recent trend queries that have at least one stored video.

        Each result carries its videos under ``videos``.
        """
        queries = await self._fetch_all(
            """
            SELECT tq.* FROM trend_queries tq
            WHERE EXISTS (SELECT 1 FROM videos v WHERE v.trend_query_id = tq.id)
            ORDER BY tq.created_at DESC
            LIMIT ?
            """,
            (limit,),
        )
        for query in queries:
            query["videos"] = await self.get_videos_for_trend_query(query["id"])
        return queries

    async def videos_needing_analysis(
        self,
        stale_days: int = 7,
        limit: int = 100,
        trend_query_ids: Optional[Iterable[str]] = None,
    ) -> list[dict[str, Any]]:
        """Videos never analyzed, or last analyzed more than ``stale_days`` ago.

        ``trend_query_ids`` narrows the search to videos of those trend queries.
        """
        cutoff = (datetime.now() - timedelta(days=stale_days)).isoformat()
        sql = "SELECT * FROM videos WHERE (last_analyzed_at IS NULL OR last_analyzed_at < ?)"
        params: list[Any] = [cutoff]
        if trend_query_ids is not None:
            ids = list(trend_query_ids)
            if not ids:
                return []
            sql += f" AND trend_query_id IN ({', '.join('?' * len(ids))})"
            params.extend(ids)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        return await self._fetch_all(sql, tuple(params))

    @staticmethod
    def match_stored_files(
        file_names: Iterable[str], records: list[dict[str, Any]]
    ) -> dict[str, dict[str, Any]]:
        """Pair storage file names with video rows.

        A record matches when the file name occurs in its ``download_url`` or
        ``video_url``, or equals the last path segment of ``download_url``.
        The first matching record in ``records`` order wins. File names with no
        match are left out of the result.
        """
        matches = {}
        for name in file_names:
            for record in records:
                download_url = record.get("download_url") or ""
                video_url = record.get("video_url") or ""
                if name in download_url or name in video_url:
                    matches[name] = record
                    break
                if download_url and download_url.rstrip("/").rsplit("/", 1)[-1] == name:
                    matches[name] = record
                    break
        return matches
