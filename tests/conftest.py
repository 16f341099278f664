"""Shared pytest fixtures for trendscout tests."""

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from fakes import FakeS3Client
from models.analysis import VideoAnalysis
from models.video import CandidateVideo, EngagementCounts, StagedVideo
from services.object_storage import VideoStorage
from services.trend_store import TrendStore


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def storage(fake_s3) -> VideoStorage:
    """VideoStorage over the in-memory S3 client."""
    return VideoStorage(
        endpoint_url="https://s3.test",
        access_key_id="key",
        secret_access_key="secret",
        bucket_name="tiktok-videos",
        public_url="https://cdn.test",
        client=fake_s3,
    )


@pytest_asyncio.fixture
async def trend_store(tmp_path):
    """Connected TrendStore on a temporary database file."""
    store = TrendStore(str(tmp_path / "trends.db"))
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def sample_candidate() -> CandidateVideo:
    return CandidateVideo(
        platform_id="7301",
        author_handle="greenbowl",
        caption="40g protein in 5 minutes #mealprep #healthy",
        original_url="https://www.tiktok.com/@greenbowl/video/7301",
        engagement=EngagementCounts(likes=1200, comments=45, shares=30, views=50000),
        media_url="https://cdn.tiktok.test/7301.mp4",
        duration_seconds=28,
        search_query="healthy meal prep",
    )


@pytest.fixture
def sample_staged(sample_candidate) -> StagedVideo:
    return StagedVideo.from_candidate(
        sample_candidate,
        storage_url="https://cdn.test/videos/tq-1-video-1700000000000-1.mp4",
        storage_key="videos/tq-1-video-1700000000000-1.mp4",
    )


@pytest.fixture
def sample_analysis() -> VideoAnalysis:
    return VideoAnalysis(
        summary="A chef assembles a grain bowl while listing its macros.",
        hooks=["Starts with the finished bowl"],
        calls_to_action=["Comment your favorite topping"],
        content_style="Overhead shots",
        success_factors=["Clear value"],
        transcript="",
    )


@pytest.fixture
def feed_search_response() -> dict:
    """Feed search payload with three hits, the second missing a play URL."""
    return {
        "code": 0,
        "msg": "success",
        "data": {
            "videos": [
                {
                    "video_id": "7301",
                    "title": "40g protein bowl #mealprep",
                    "play": "https://cdn.tiktok.test/7301.mp4",
                    "wmplay": "https://cdn.tiktok.test/7301-wm.mp4",
                    "cover": "https://cdn.tiktok.test/7301.jpg",
                    "duration": 28,
                    "digg_count": 1200,
                    "comment_count": 45,
                    "share_count": 30,
                    "play_count": 50000,
                    "create_time": 1700000000,
                    "music_info": {"title": "original sound"},
                    "author": {"unique_id": "greenbowl"},
                },
                {
                    "video_id": "7302",
                    "title": "salad jar",
                    "digg_count": 10,
                    "author": {"unique_id": "jarlife"},
                },
                {
                    "video_id": "7303",
                    "title": "smoothie",
                    "wmplay": "https://cdn.tiktok.test/7303-wm.mp4",
                    "author": {"unique_id": "blendit"},
                },
            ]
        },
    }
