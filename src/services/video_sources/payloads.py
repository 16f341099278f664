"""Decoding of short-video search responses.

Two response shapes exist upstream:

- feed search: ``{"code": 0, "msg": ..., "data": {"videos": [...]}}`` with
  snake_case items keyed by ``video_id`` and ``author.unique_id``
- trending: ``{"data": {"stats": [...]}}`` with camelCase items keyed by
  ``videoId`` and ``authorName``

``decode_search_payload`` inspects which key path is populated and returns one
variant of the ``SearchPayload`` union; everything downstream works with
``CandidateVideo`` only.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from models.video import CandidateVideo, EngagementCounts

logger = logging.getLogger(__name__)

PLATFORM_VIDEO_URL = "https://www.tiktok.com/@{handle}/video/{video_id}"


def _first(item: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return default


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, "", 0):
        return None
    try:
        if isinstance(value, (int, float)) or str(value).isdigit():
            seconds = float(value)
            if seconds > 1e11:  # milliseconds
                seconds /= 1000
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        return None


def _as_int(value: Any) -> int:
    try:
        return int(float(value or 0))
    except (TypeError, ValueError):
        return 0


@dataclass
class FeedSearchPayload:
    """Response of the feed search API."""

    items: list[dict]
    code: Optional[int] = 0
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.code in (0, None)

    def to_candidates(self, search_query: str) -> list[CandidateVideo]:
        if not self.ok:
            logger.warning(f"Feed search returned code {self.code}: {self.message}")
            return []

        candidates = []
        for index, item in enumerate(self.items):
            if not isinstance(item, dict):
                continue
            video_id = _first(item, "video_id", "aweme_id")
            author = item.get("author") or {}
            handle = author.get("unique_id") if isinstance(author, dict) else None
            if not video_id or not handle:
                logger.warning(
                    f"Skipping feed search hit {index} for '{search_query}': "
                    "missing video_id or author.unique_id"
                )
                continue

            music = item.get("music_info") or {}
            candidates.append(
                CandidateVideo(
                    platform_id=str(video_id),
                    author_handle=str(handle),
                    caption=item.get("title") or search_query,
                    original_url=PLATFORM_VIDEO_URL.format(handle=handle, video_id=video_id),
                    engagement=EngagementCounts(
                        likes=item.get("digg_count"),
                        comments=item.get("comment_count"),
                        shares=item.get("share_count"),
                        views=item.get("play_count"),
                    ),
                    # Non-watermarked stream first, then watermarked
                    media_url=_first(item, "play", "wmplay"),
                    duration_seconds=_as_int(item.get("duration")),
                    music_title=(music.get("title") if isinstance(music, dict) else None) or "N/A",
                    uploaded_at=_parse_timestamp(item.get("create_time")),
                    cover_url=_first(item, "cover", "origin_cover", "ai_dynamic_cover", default=""),
                    search_query=search_query,
                )
            )
        return candidates


@dataclass
class TrendingPayload:
    """Response of the trending content API.

    This API never exposes a binary stream, only the platform page URL.
    """

    items: list[dict]

    def to_candidates(self, search_query: str) -> list[CandidateVideo]:
        candidates = []
        for index, item in enumerate(self.items):
            if not isinstance(item, dict):
                continue
            video_id = _first(item, "videoId", "id")
            handle = _first(item, "authorName", "authorUniqueId")
            if not video_id or not handle:
                logger.warning(
                    f"Skipping trending hit {index} for '{search_query}': "
                    "missing videoId or authorName"
                )
                continue

            page_url = _first(
                item,
                "videoUrl",
                "url",
                default=PLATFORM_VIDEO_URL.format(handle=handle, video_id=video_id),
            )
            candidates.append(
                CandidateVideo(
                    platform_id=str(video_id),
                    author_handle=str(handle),
                    caption=_first(item, "description", "title", default=search_query),
                    original_url=page_url,
                    engagement=EngagementCounts(
                        likes=_first(item, "likes", "diggCount"),
                        comments=_first(item, "comments", "commentCount"),
                        shares=_first(item, "shares", "shareCount"),
                        views=_first(item, "views", "playCount"),
                    ),
                    media_url=page_url,
                    duration_seconds=_as_int(item.get("duration")),
                    music_title=_first(item, "musicTitle", "music", default="N/A"),
                    uploaded_at=_parse_timestamp(_first(item, "createTime", "publishedAt")),
                    cover_url=_first(item, "cover", "coverUrl", default=""),
                    search_query=search_query,
                )
            )
        return candidates


@dataclass
class UnknownPayload:
    """Response whose shape matched neither known API."""

    reason: str = ""
    items: list[dict] = field(default_factory=list)

    def to_candidates(self, search_query: str) -> list[CandidateVideo]:
        logger.warning(f"Unrecognized search response for '{search_query}': {self.reason}")
        return []


SearchPayload = Union[FeedSearchPayload, TrendingPayload, UnknownPayload]


def decode_search_payload(data: Any) -> SearchPayload:
    """Detect the response shape and wrap it in the matching variant."""
    if not isinstance(data, dict):
        return UnknownPayload(reason=f"expected object, got {type(data).__name__}")

    inner = data.get("data")
    if not isinstance(inner, dict):
        if "code" in data and data.get("code") not in (0, None):
            return FeedSearchPayload(items=[], code=data.get("code"), message=str(data.get("msg", "")))
        return UnknownPayload(reason="missing data object")

    if isinstance(inner.get("videos"), list):
        return FeedSearchPayload(
            items=inner["videos"],
            code=data.get("code", 0),
            message=str(data.get("msg", "")),
        )
    if isinstance(inner.get("stats"), list):
        return TrendingPayload(items=inner["stats"])
    if "code" in data and data.get("code") not in (0, None):
        return FeedSearchPayload(items=[], code=data.get("code"), message=str(data.get("msg", "")))

    return UnknownPayload(reason=f"data keys {sorted(inner.keys())}")
