"""Video-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class SearchFilters:
    """Filters forwarded to the short-video search provider.

    sort_mode is provider-neutral: "relevance", "likes" and "latest" map onto
    the feed search API, "rise" and "rate" onto the trending API. Modes a
    provider does not know fall back to its default ordering.
    """

    sort_mode: str = "relevance"
    recency_days: int = 0  # 0 means no recency limit
    region: Optional[str] = "US"

    def __post_init__(self):
        self.recency_days = max(0, int(self.recency_days or 0))
        if self.region is not None:
            self.region = self.region.strip().upper() or None


@dataclass
class SearchQuery:
    """A search term produced from a business description."""

    text: str
    owner_id: Optional[str] = None
    trend_query_id: Optional[str] = None  # set once persisted


@dataclass
class EngagementCounts:
    """Engagement counters reported by the platform."""

    likes: int = 0
    comments: int = 0
    shares: int = 0
    views: int = 0

    def __post_init__(self):
        self.likes = _non_negative(self.likes)
        self.comments = _non_negative(self.comments)
        self.shares = _non_negative(self.shares)
        self.views = _non_negative(self.views)


@dataclass
class CandidateVideo:
    """A search hit before anything has been downloaded."""

    platform_id: str
    author_handle: str
    caption: str
    original_url: str
    engagement: EngagementCounts = field(default_factory=EngagementCounts)
    media_url: Optional[str] = None  # None when no playable stream was exposed
    duration_seconds: int = 0
    music_title: str = "N/A"
    uploaded_at: Optional[datetime] = None
    cover_url: str = ""
    search_query: str = ""

    @property
    def has_media(self) -> bool:
        """Whether a downloadable media URL was resolved."""
        return bool(self.media_url)


@dataclass
class StagedVideo(CandidateVideo):
    """A candidate whose binary has been re-hosted in object storage."""

    storage_url: str = ""
    storage_key: str = ""
    record_id: Optional[str] = None  # database row id when persisted

    @classmethod
    def from_candidate(
        cls, candidate: CandidateVideo, storage_url: str, storage_key: str
    ) -> "StagedVideo":
        """Promote a candidate once its upload has succeeded."""
        return cls(
            platform_id=candidate.platform_id,
            author_handle=candidate.author_handle,
            caption=candidate.caption,
            original_url=candidate.original_url,
            engagement=candidate.engagement,
            media_url=candidate.media_url,
            duration_seconds=candidate.duration_seconds,
            music_title=candidate.music_title,
            uploaded_at=candidate.uploaded_at,
            cover_url=candidate.cover_url,
            search_query=candidate.search_query,
            storage_url=storage_url,
            storage_key=storage_key,
        )

    @property
    def file_name(self) -> str:
        """Last path segment of the storage key."""
        return self.storage_key.rsplit("/", 1)[-1]


def _non_negative(value) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0
