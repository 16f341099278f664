"""Unit tests for search, download and re-hosting of videos."""

import re

import httpx
import pytest

from models.video import CandidateVideo
from services.errors import UpstreamUnavailableError
from services.media_resolver import MediaResolver, build_file_name, make_batch_tag


class StaticSource:
    """Search source double returning a fixed candidate list."""

    def __init__(self, candidates=None, error=None):
        self.candidates = candidates or []
        self.error = error
        self.calls = []

    async def search_videos(self, query, count, filters=None):
        self.calls.append((query, count, filters))
        if self.error:
            raise self.error
        return self.candidates[:count]


def candidate(platform_id: str, media: bool = True) -> CandidateVideo:
    return CandidateVideo(
        platform_id=platform_id,
        author_handle="creator",
        caption=f"video {platform_id}",
        original_url=f"https://www.tiktok.com/@creator/video/{platform_id}",
        media_url=f"https://cdn.test/{platform_id}.mp4" if media else None,
        search_query="healthy food",
    )


def media_handler(failing=(), html=(), empty=()):
    def handler(request: httpx.Request) -> httpx.Response:
        name = request.url.path.rsplit("/", 1)[-1].split(".")[0]
        if name in failing:
            return httpx.Response(404)
        if name in html:
            return httpx.Response(200, headers={"content-type": "text/html"}, text="<html></html>")
        if name in empty:
            return httpx.Response(200, headers={"content-type": "video/mp4"}, content=b"")
        return httpx.Response(200, headers={"content-type": "video/mp4"}, content=b"MP4" + name.encode())

    return handler


def make_resolver(source, storage, **kwargs) -> MediaResolver:
    client = httpx.AsyncClient(transport=httpx.MockTransport(media_handler(**kwargs)))
    return MediaResolver(source, storage, client=client)


class TestResolve:
    """Tests for MediaResolver.resolve."""

    @pytest.mark.asyncio
    async def test_failed_download_is_skipped_and_order_kept(self, storage, fake_s3):
        source = StaticSource([candidate("a"), candidate("b"), candidate("c")])
        resolver = make_resolver(source, storage, failing={"b"})

        staged = await resolver.resolve("healthy food", 3, batch_tag="tq-7")

        assert [v.platform_id for v in staged] == ["a", "c"]
        assert len(fake_s3.objects) == 2
        assert all(v.storage_key.startswith("videos/tq-7-video-") for v in staged)
        assert all(v.storage_url.startswith("https://cdn.test/videos/") for v in staged)

    @pytest.mark.asyncio
    async def test_candidates_without_media_are_excluded(self, storage):
        source = StaticSource([candidate("a", media=False), candidate("b")])
        resolver = make_resolver(source, storage)

        staged = await resolver.resolve("q", 5)

        assert [v.platform_id for v in staged] == ["b"]

    @pytest.mark.asyncio
    async def test_html_response_counts_as_failed_download(self, storage, fake_s3):
        source = StaticSource([candidate("page"), candidate("ok")])
        resolver = make_resolver(source, storage, html={"page"})

        staged = await resolver.resolve("q", 5)

        assert [v.platform_id for v in staged] == ["ok"]
        assert len(fake_s3.objects) == 1

    @pytest.mark.asyncio
    async def test_never_more_than_count(self, storage):
        source = StaticSource([candidate(str(i)) for i in range(6)])
        resolver = make_resolver(source, storage)

        staged = await resolver.resolve("q", 2)

        assert len(staged) == 2
        assert source.calls[0][1] == 2

    @pytest.mark.asyncio
    async def test_search_failure_propagates(self, storage):
        source = StaticSource(error=UpstreamUnavailableError("feed_search", "HTTP 403"))
        resolver = make_resolver(source, storage)

        with pytest.raises(UpstreamUnavailableError):
            await resolver.resolve("q", 2)

    @pytest.mark.asyncio
    async def test_staged_video_keeps_candidate_fields(self, storage, fake_s3):
        resolver = make_resolver(StaticSource([candidate("a")]), storage)

        video = (await resolver.resolve("q", 1))[0]

        assert video.original_url == "https://www.tiktok.com/@creator/video/a"
        assert video.search_query == "healthy food"
        assert fake_s3.objects[video.storage_key] == b"MP4a"
        assert fake_s3.content_types[video.storage_key] == "video/mp4"


class TestDownload:
    """Tests for MediaResolver.download."""

    @pytest.mark.asyncio
    async def test_empty_body_is_a_failure(self, storage):
        resolver = make_resolver(StaticSource(), storage, empty={"x"})
        with pytest.raises(UpstreamUnavailableError):
            await resolver.download("https://cdn.test/x.mp4")

    @pytest.mark.asyncio
    async def test_transport_error_is_a_failure(self, storage):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        resolver = MediaResolver(
            StaticSource(), storage, client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        with pytest.raises(UpstreamUnavailableError):
            await resolver.download("https://cdn.test/x.mp4")


def test_build_file_name_format():
    assert re.fullmatch(r"tq-5-video-\d{13}-\d+\.mp4", build_file_name("tq-5"))


def test_make_batch_tag():
    assert make_batch_tag("42") == "tq-42"
    assert make_batch_tag(None, "run1") == "batch-run1"
    assert make_batch_tag() == "batch-adhoc"
