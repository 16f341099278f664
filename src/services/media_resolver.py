"""Search, download and re-host short videos.

The resolver turns one search term into staged videos: it asks the configured
search source for candidates, drops those without a media stream, downloads
each remaining stream and uploads it to object storage. Failures are isolated
per candidate so one bad download never sinks the batch.
"""

import asyncio
import logging
import random
import time
from typing import Optional

import httpx

from models.video import CandidateVideo, SearchFilters, StagedVideo
from services.errors import UpstreamUnavailableError
from services.object_storage import VideoStorage
from services.video_sources import VideoSource

logger = logging.getLogger(__name__)

# Browser-like UA; several CDNs refuse requests without one
DOWNLOAD_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Referer": "https://www.tiktok.com/",
}


def build_file_name(tag: str) -> str:
    """Unique storage file name for a video, e.g. ``tq-42-video-1700000000000-123456.mp4``."""
    millis = int(time.time() * 1000)
    return f"{tag}-video-{millis}-{random.randint(0, 999_999)}.mp4"


def make_batch_tag(trend_query_id: Optional[str] = None, run_id: Optional[str] = None) -> str:
    """File name tag linking a stored file back to its trend query or run."""
    if trend_query_id:
        return f"tq-{trend_query_id}"
    return f"batch-{run_id or 'adhoc'}"


class MediaResolver:
    """Resolves search terms into videos hosted in our own storage."""

    def __init__(
        self,
        source: VideoSource,
        storage: VideoStorage,
        client: Optional[httpx.AsyncClient] = None,
        download_timeout: float = 120.0,
    ):
        """Initialize the resolver.

        Args:
            source: Search source used for candidate lookup
            storage: Object storage receiving the downloads
            client: Shared httpx client for media downloads
            download_timeout: Per-download timeout in seconds
        """
        self.source = source
        self.storage = storage
        self.client = client or httpx.AsyncClient(
            timeout=download_timeout, follow_redirects=True
        )

    async def search_candidates(
        self, query: str, count: int, filters: Optional[SearchFilters] = None
    ) -> list[CandidateVideo]:
        """Search the provider; candidates without a media stream are dropped."""
        candidates = await self.source.search_videos(query, count, filters)

        usable = []
        for candidate in candidates:
            if not candidate.has_media:
                logger.warning(
                    f"Dropping {candidate.platform_id} by @{candidate.author_handle}: "
                    "no media URL exposed"
                )
                continue
            usable.append(candidate)
        return usable

    async def resolve(
        self,
        query: str,
        count: int,
        filters: Optional[SearchFilters] = None,
        batch_tag: str = "batch-adhoc",
    ) -> list[StagedVideo]:
        """Search, download and upload up to ``count`` videos for one term.

        Candidates are processed in provider order and the result keeps that
        order. A candidate whose download or upload fails is skipped.

        Args:
            query: Search term
            count: Maximum number of staged videos
            filters: Provider filters
            batch_tag: Prefix that ties stored files to a trend query or run

        Returns:
            Staged videos, at most ``count``

        Raises:
            UpstreamUnavailableError: If the search request itself fails
        """
        candidates = await self.search_candidates(query, count, filters)
        logger.info(f"Resolving {len(candidates)} candidates for '{query}'")

        staged: list[StagedVideo] = []
        for index, candidate in enumerate(candidates[:count], 1):
            try:
                video = await self.stage(candidate, batch_tag)
            except UpstreamUnavailableError as e:
                logger.error(
                    f"[{index}/{len(candidates)}] Failed to stage {candidate.platform_id}: {e}"
                )
                continue
            staged.append(video)
            logger.info(f"[{index}/{len(candidates)}] Staged {video.storage_key}")

        return staged[:count]

    async def stage(self, candidate: CandidateVideo, tag: str) -> StagedVideo:
        """Download one candidate and upload it to storage.

        Raises:
            UpstreamUnavailableError: If the download or upload fails
        """
        data = await self.download(candidate.media_url)
        file_name = build_file_name(tag)
        key, url = await asyncio.to_thread(self.storage.upload_video, file_name, data)
        return StagedVideo.from_candidate(candidate, storage_url=url, storage_key=key)

    async def download(self, url: str) -> bytes:
        """Fetch a media stream as bytes.

        An HTML answer means we got a web page instead of a video, which is
        treated like any other failed download.

        Raises:
            UpstreamUnavailableError: On transport failure, non-2xx, an HTML
                body or an empty body
        """
        try:
            response = await self.client.get(url, headers=DOWNLOAD_HEADERS)
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError("download", f"{url}: {e}") from e

        if response.status_code >= 400:
            raise UpstreamUnavailableError("download", f"{url}: HTTP {response.status_code}")

        content_type = response.headers.get("content-type", "").lower()
        if "text/html" in content_type:
            raise UpstreamUnavailableError("download", f"{url}: got an HTML page, not a media stream")
        if not response.content:
            raise UpstreamUnavailableError("download", f"{url}: empty body")

        logger.debug(f"Downloaded {len(response.content) / 1024:.0f} KB from {url}")
        return response.content
