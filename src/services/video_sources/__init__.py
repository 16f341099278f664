"""Video sources package for short-video search."""

from services.video_sources.base import VideoSource
from services.video_sources.payloads import (
    FeedSearchPayload,
    SearchPayload,
    TrendingPayload,
    UnknownPayload,
    decode_search_payload,
)
from services.video_sources.tiktok import FeedSearchSource, TrendingSource, create_video_source

__all__ = [
    "VideoSource",
    "FeedSearchSource",
    "TrendingSource",
    "create_video_source",
    "SearchPayload",
    "FeedSearchPayload",
    "TrendingPayload",
    "UnknownPayload",
    "decode_search_payload",
]
