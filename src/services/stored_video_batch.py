"""Re-analysis of videos that are already in object storage."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from models.video import EngagementCounts, StagedVideo
from services.errors import TrendScoutError
from services.object_storage import VIDEO_PREFIX, VideoStorage
from services.trend_store import TrendStore
from services.video_analyzer import VideoAnalyzer

logger = logging.getLogger(__name__)


def staged_video_from_record(record: dict[str, Any]) -> StagedVideo:
    """Rebuild a StagedVideo from a ``videos`` row."""
    uploaded_at = record.get("uploaded_at")
    return StagedVideo(
        platform_id=record.get("platform_id") or record["id"],
        author_handle=record.get("author_handle") or "",
        caption=record.get("caption") or "",
        original_url=record.get("video_url") or "",
        engagement=EngagementCounts(
            likes=record.get("likes"),
            comments=record.get("comments"),
            shares=record.get("shares"),
            views=record.get("views"),
        ),
        media_url=record.get("download_url"),
        duration_seconds=record.get("duration_seconds") or 0,
        music_title=record.get("music_title") or "N/A",
        uploaded_at=datetime.fromisoformat(uploaded_at) if uploaded_at else None,
        cover_url=record.get("cover_url") or "",
        search_query=record.get("search_query") or "",
        storage_url=record.get("download_url") or "",
        storage_key=record.get("storage_key") or "",
        record_id=record["id"],
    )


@dataclass
class BatchReport:
    """Outcome of a stored-video batch."""

    trend_queries: int = 0
    files_seen: int = 0
    analyzed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    deleted: int = 0

    def to_dict(self) -> dict:
        return {
            "trend_queries": self.trend_queries,
            "files_seen": self.files_seen,
            "analyzed": len(self.analyzed),
            "failed": len(self.failed),
            "unmatched": len(self.unmatched),
            "skipped": len(self.skipped),
            "deleted": self.deleted,
        }


class StoredVideoBatch:
    """Analyzes stored videos of the most recent trend queries."""

    def __init__(self, store: TrendStore, storage: VideoStorage, analyzer: VideoAnalyzer):
        self.store = store
        self.storage = storage
        self.analyzer = analyzer

    async def run(
        self,
        limit: int = 5,
        delete_after: bool = False,
        on_video: Optional[Callable[[str, bool], None]] = None,
        stale_days: Optional[int] = None,
    ) -> BatchReport:
        """Analyze every stored file tagged with one of the recent trend queries.

        Args:
            limit: Number of most recent trend queries to cover
            delete_after: Delete successfully analyzed files from storage
            on_video: Called with (file name, success) after each video
            stale_days: When set, skip videos analyzed within the last ``stale_days`` days

        Returns:
            BatchReport with per-file outcomes

        Raises:
            UpstreamUnavailableError: If the storage listing fails
        """
        report = BatchReport()
        trend_queries = await self.store.recent_trend_queries_with_videos(limit)
        report.trend_queries = len(trend_queries)
        if not trend_queries:
            logger.info("No trend queries with stored videos")
            return report

        files = await asyncio.to_thread(self.storage.list_files, VIDEO_PREFIX)
        report.files_seen = len(files)
        logger.info(f"Found {len(files)} stored files for {len(trend_queries)} trend queries")

        due_ids = None
        if stale_days is not None:
            due = await self.store.videos_needing_analysis(
                stale_days,
                limit=max(1, sum(len(tq["videos"]) for tq in trend_queries)),
                trend_query_ids=[tq["id"] for tq in trend_queries],
            )
            due_ids = {video["id"] for video in due}

        analyzed_keys = []
        for trend_query in trend_queries:
            tag = f"tq-{trend_query['id']}"
            names = [f["name"] for f in files if tag in f["name"]]
            if not names:
                continue

            matches = self.store.match_stored_files(names, trend_query["videos"])
            business_context = trend_query.get("business_description")
            for name in names:
                record = matches.get(name)
                if record is None:
                    logger.warning(f"No database record matches stored file {name}")
                    report.unmatched.append(name)
                    continue
                if due_ids is not None and record["id"] not in due_ids:
                    logger.debug(f"Skipping {name}: analyzed within the last {stale_days} days")
                    report.skipped.append(name)
                    continue

                ok = await self._analyze_record(name, record, business_context)
                (report.analyzed if ok else report.failed).append(name)
                if ok:
                    analyzed_keys.append(name)
                if on_video:
                    on_video(name, ok)

        if delete_after and analyzed_keys:
            report.deleted = await asyncio.to_thread(self.storage.delete_files, analyzed_keys)

        logger.info(
            f"Stored batch done: {len(report.analyzed)} analyzed, {len(report.failed)} failed, "
            f"{len(report.unmatched)} unmatched"
        )
        return report

    async def _analyze_record(
        self, name: str, record: dict[str, Any], business_context: Optional[str]
    ) -> bool:
        video = staged_video_from_record(record)
        try:
            analysis = await self.analyzer.analyze(video, business_context)
            await self.store.save_analysis(record["id"], analysis, record.get("owner_id"))
        except TrendScoutError as e:
            logger.error(f"Failed to analyze stored file {name}: {e}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error analyzing stored file {name}: {e}")
            return False
        return True
