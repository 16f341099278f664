"""TikTok search sources hosted on RapidAPI."""

import logging

from models.video import SearchFilters
from services.video_sources.base import VideoSource

# publish_time values accepted by the feed search API, in days
FEED_PUBLISH_WINDOWS = [1, 7, 30, 90, 180]
FEED_SORT_TYPES = {"relevance": 0, "likes": 1, "latest": 3}
TRENDING_SORTINGS = ("rise", "rate")

logger = logging.getLogger(__name__)


class FeedSearchSource(VideoSource):
    """Keyword search over the TikTok feed (exposes direct play URLs)."""

    BASE_URL = "https://tiktok-scraper7.p.rapidapi.com/feed/search"
    API_HOST = "tiktok-scraper7.p.rapidapi.com"

    def get_source_name(self) -> str:
        return "feed_search"

    def build_params(self, query: str, count: int, filters: SearchFilters) -> dict:
        params = {
            "keywords": query,
            "count": str(count),
            "cursor": "0",
            "publish_time": str(self._publish_window(filters.recency_days)),
            "sort_type": str(FEED_SORT_TYPES.get(filters.sort_mode, 0)),
        }
        if filters.region:
            params["region"] = filters.region
        return params

    @staticmethod
    def _publish_window(recency_days: int) -> int:
        """Smallest supported window covering the requested recency, 0 for all time."""
        if recency_days <= 0:
            return 0
        for window in FEED_PUBLISH_WINDOWS:
            if recency_days <= window:
                return window
        return 0


class TrendingSource(VideoSource):
    """Most-trending content search (page URLs only, no binary stream)."""

    BASE_URL = "https://tiktok-most-trending-and-viral-content.p.rapidapi.com/video"
    API_HOST = "tiktok-most-trending-and-viral-content.p.rapidapi.com"

    def get_source_name(self) -> str:
        return "trending"

    def build_params(self, query: str, count: int, filters: SearchFilters) -> dict:
        params = {
            "search": query,
            "take": str(count),
            "sorting": filters.sort_mode if filters.sort_mode in TRENDING_SORTINGS else "rise",
            "days": str(filters.recency_days or 7),
            "order": "desc",
        }
        if filters.region:
            params["country"] = filters.region
        return params


SOURCES = {
    "feed_search": FeedSearchSource,
    "trending": TrendingSource,
}


def create_video_source(name: str, api_key: str, client=None) -> VideoSource:
    """Instantiate a source by its config name."""
    try:
        source_cls = SOURCES[name]
    except KeyError:
        raise ValueError(f"Unknown search provider '{name}'. Use one of: {sorted(SOURCES)}")
    if name == "trending":
        logger.warning(
            "Search provider 'trending' only returns page URLs, which cannot be downloaded "
            "as media; full workflow runs will stage no videos. Use 'feed_search' for runs."
        )
    return source_cls(api_key=api_key, client=client)
