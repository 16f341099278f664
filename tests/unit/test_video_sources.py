"""Unit tests for short-video search sources and payload decoding.

Tests the RapidAPI-hosted search functionality:
- decode_search_payload: response shape detection
- FeedSearchSource: keyword search with direct play URLs
- TrendingSource: trending content search (page URLs only)
"""

import json
import logging

import httpx
import pytest

from models.video import SearchFilters
from services.errors import UpstreamUnavailableError
from services.video_sources import (
    FeedSearchPayload,
    FeedSearchSource,
    TrendingPayload,
    TrendingSource,
    UnknownPayload,
    VideoSource,
    create_video_source,
    decode_search_payload,
)


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDecodeSearchPayload:
    """Tests for response shape detection."""

    def test_feed_search_shape(self, feed_search_response):
        payload = decode_search_payload(feed_search_response)
        assert isinstance(payload, FeedSearchPayload)
        assert len(payload.items) == 3

    def test_trending_shape(self):
        payload = decode_search_payload({"data": {"stats": [{"videoId": "1"}]}})
        assert isinstance(payload, TrendingPayload)

    def test_error_code_without_data(self):
        payload = decode_search_payload({"code": -1, "msg": "quota exceeded"})
        assert isinstance(payload, FeedSearchPayload)
        assert not payload.ok
        assert payload.to_candidates("x") == []

    @pytest.mark.parametrize("data", [None, [], "text", {"data": {"other": []}}, {}])
    def test_unknown_shapes(self, data):
        payload = decode_search_payload(data)
        assert isinstance(payload, UnknownPayload)
        assert payload.to_candidates("x") == []


class TestFeedSearchPayload:
    """Tests for feed search item mapping."""

    def test_candidates_keep_provider_order(self, feed_search_response):
        candidates = decode_search_payload(feed_search_response).to_candidates("healthy meal prep")
        assert [c.platform_id for c in candidates] == ["7301", "7302", "7303"]

    def test_fields_are_mapped(self, feed_search_response):
        first = decode_search_payload(feed_search_response).to_candidates("healthy meal prep")[0]
        assert first.author_handle == "greenbowl"
        assert first.original_url == "https://www.tiktok.com/@greenbowl/video/7301"
        assert first.media_url == "https://cdn.tiktok.test/7301.mp4"
        assert first.engagement.likes == 1200
        assert first.engagement.views == 50000
        assert first.music_title == "original sound"
        assert first.uploaded_at is not None
        assert first.search_query == "healthy meal prep"

    def test_missing_play_url_means_no_media(self, feed_search_response):
        second = decode_search_payload(feed_search_response).to_candidates("q")[1]
        assert second.media_url is None
        assert not second.has_media

    def test_watermarked_url_used_when_play_missing(self, feed_search_response):
        third = decode_search_payload(feed_search_response).to_candidates("q")[2]
        assert third.media_url == "https://cdn.tiktok.test/7303-wm.mp4"

    def test_items_without_author_are_skipped(self):
        payload = FeedSearchPayload(items=[{"video_id": "1"}, {"video_id": "2", "author": {"unique_id": "a"}}])
        assert [c.platform_id for c in payload.to_candidates("q")] == ["2"]


class TestTrendingPayload:
    """Tests for trending item mapping."""

    def test_page_url_is_media_url(self):
        payload = TrendingPayload(
            items=[
                {
                    "videoId": "99",
                    "authorName": "chef",
                    "description": "crispy tofu",
                    "likes": "1500",
                    "views": 20000,
                    "createTime": "2024-03-01T10:00:00Z",
                }
            ]
        )
        candidate = payload.to_candidates("tofu")[0]
        assert candidate.original_url == "https://www.tiktok.com/@chef/video/99"
        assert candidate.media_url == candidate.original_url
        assert candidate.engagement.likes == 1500
        assert candidate.uploaded_at.year == 2024


class TestFeedSearchSource:
    """Tests for FeedSearchSource requests."""

    def test_build_params(self):
        source = FeedSearchSource(api_key="k", client=mock_client(lambda r: httpx.Response(200)))
        params = source.build_params(
            "vegan lunch", 5, SearchFilters(sort_mode="likes", recency_days=10, region="gb")
        )
        assert params == {
            "keywords": "vegan lunch",
            "count": "5",
            "cursor": "0",
            "publish_time": "30",
            "sort_type": "1",
            "region": "GB",
        }

    @pytest.mark.parametrize("days,window", [(0, 0), (1, 1), (3, 7), (90, 90), (365, 0)])
    def test_publish_window(self, days, window):
        assert FeedSearchSource._publish_window(days) == window

    @pytest.mark.asyncio
    async def test_search_sends_rapidapi_headers(self, feed_search_response):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=feed_search_response)

        source = FeedSearchSource(api_key="secret", client=mock_client(handler))
        candidates = await source.search_videos("healthy meal prep", 2)

        assert seen["headers"]["X-RapidAPI-Key"] == "secret"
        assert seen["headers"]["X-RapidAPI-Host"] == FeedSearchSource.API_HOST
        assert seen["params"]["keywords"] == "healthy meal prep"
        assert len(candidates) == 2

    @pytest.mark.asyncio
    async def test_client_error_raises_upstream_unavailable(self):
        source = FeedSearchSource(
            api_key="k", client=mock_client(lambda r: httpx.Response(403, json={"message": "no"}))
        )
        with pytest.raises(UpstreamUnavailableError):
            await source.search_videos("x", 3)

    @pytest.mark.asyncio
    async def test_non_json_body_raises_upstream_unavailable(self):
        source = FeedSearchSource(
            api_key="k", client=mock_client(lambda r: httpx.Response(200, text="<html>"))
        )
        with pytest.raises(UpstreamUnavailableError):
            await source.search_videos("x", 3)

    @pytest.mark.asyncio
    async def test_without_api_key_returns_empty(self):
        def handler(request):
            raise AssertionError("no request expected")

        source = FeedSearchSource(api_key="", client=mock_client(handler))
        assert await source.search_videos("x", 3) == []
        assert not source.is_configured()

    @pytest.mark.asyncio
    async def test_blank_query_returns_empty(self):
        source = FeedSearchSource(api_key="k", client=mock_client(lambda r: httpx.Response(500)))
        assert await source.search_videos("   ", 3) == []


class TestTrendingSource:
    """Tests for TrendingSource requests."""

    def test_build_params_defaults(self):
        source = TrendingSource(api_key="k", client=mock_client(lambda r: httpx.Response(200)))
        params = source.build_params("tofu", 4, SearchFilters(sort_mode="latest", region=None))
        assert params == {"search": "tofu", "take": "4", "sorting": "rise", "days": "7", "order": "desc"}

    @pytest.mark.asyncio
    async def test_search_decodes_trending_shape(self):
        body = {"data": {"stats": [{"videoId": "1", "authorName": "a"}, {"videoId": "2"}]}}
        source = TrendingSource(
            api_key="k", client=mock_client(lambda r: httpx.Response(200, content=json.dumps(body)))
        )
        candidates = await source.search_videos("tofu", 5)
        assert [c.platform_id for c in candidates] == ["1"]


class TestFactory:
    def test_create_known_sources(self):
        assert isinstance(create_video_source("feed_search", "k"), FeedSearchSource)
        assert isinstance(create_video_source("trending", "k"), TrendingSource)

    def test_trending_warns_it_cannot_stage_media(self, caplog):
        with caplog.at_level(logging.WARNING, logger="services.video_sources.tiktok"):
            create_video_source("trending", "k")
        assert "page URLs" in caplog.text

        caplog.clear()
        with caplog.at_level(logging.WARNING, logger="services.video_sources.tiktok"):
            create_video_source("feed_search", "k")
        assert caplog.text == ""

    def test_unknown_source(self):
        with pytest.raises(ValueError):
            create_video_source("pexels", "k")

    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            VideoSource(api_key="k")
