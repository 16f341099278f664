"""Tests for the FastAPI routes with dependencies overridden by fakes."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from api import dependencies
from api.job_store import JobStatus, JobStore
from api.routers import workflow as workflow_router
from api.server import create_app
from api.websocket_manager import WebSocketManager
from fakes import STRATEGY_TEXT, FakeMultimodalClient, FakeSearchSource, FakeTextClient, build_workflow
from models.video import SearchQuery
from services.strategy_synthesizer import StrategySynthesizer
from services.video_analyzer import VideoAnalyzer

BUSINESS = "A restaurant specializing in healthy food options"


@pytest_asyncio.fixture
async def job_store():
    store = JobStore(":memory:")
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def app(fake_s3, trend_store, job_store):
    app = create_app()
    app.dependency_overrides[dependencies.get_trend_store] = lambda: trend_store
    app.dependency_overrides[dependencies.get_job_store] = lambda: job_store
    app.dependency_overrides[dependencies.get_workflow] = lambda: build_workflow(fake_s3, store=trend_store)
    app.dependency_overrides[dependencies.get_analyzer] = lambda: VideoAnalyzer(FakeMultimodalClient())
    app.dependency_overrides[dependencies.get_synthesizer] = lambda: StrategySynthesizer(
        FakeTextClient(STRATEGY_TEXT), store=trend_store
    )
    return app


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestCoreRoutes:
    @pytest.mark.asyncio
    async def test_root_and_health(self, client):
        root = await client.get("/")
        assert root.json() == {"message": "TrendScout API", "version": "1.0.0"}
        assert (await client.get("/api/health")).json() == {"status": "healthy"}


class TestWorkflowRoutes:
    @pytest.mark.asyncio
    async def test_run_workflow(self, client):
        response = await client.post(
            "/api/workflow/run", json={"business_description": BUSINESS, "videos_per_query": 2}
        )

        assert response.status_code == 200
        body = response.json()
        assert len(body["queries"]) == 5
        assert body["staged_videos"] == 10
        assert body["analyzed_videos"] == 10
        assert body["strategy"]["sections_parsed"] is True

    @pytest.mark.asyncio
    async def test_blank_description_is_rejected(self, client):
        response = await client.post("/api/workflow/run", json={"business_description": "   "})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_videos_per_query_bounds(self, client):
        response = await client.post(
            "/api/workflow/run", json={"business_description": BUSINESS, "videos_per_query": 0}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_failed_run_returns_stage(self, app, client, fake_s3):
        app.dependency_overrides[dependencies.get_workflow] = lambda: build_workflow(
            fake_s3, source=FakeSearchSource(per_query=0)
        )

        response = await client.post("/api/workflow/run", json={"business_description": BUSINESS})

        assert response.status_code == 502
        assert response.json()["stage"] == "videos_scraped"

    @pytest.mark.asyncio
    async def test_unconfigured_storage_is_service_unavailable(self, app, client, trend_store, monkeypatch):
        del app.dependency_overrides[dependencies.get_workflow]
        monkeypatch.setattr(dependencies, "_config", {"storage_endpoint_url": None})
        monkeypatch.setattr(dependencies, "_workflow", None)
        monkeypatch.setattr(dependencies, "_trend_store", trend_store)

        response = await client.post("/api/workflow/run", json={"business_description": BUSINESS})

        assert response.status_code == 503
        assert "Object storage is not configured" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_background_job_completes(self, client, job_store):
        response = await client.post(
            "/api/workflow/jobs",
            json={"business_description": BUSINESS, "videos_per_query": 1, "owner_id": "auth-9"},
        )
        assert response.status_code == 202
        job_id = response.json()["job_id"]

        await asyncio.gather(*list(workflow_router._background_tasks))

        job = (await client.get(f"/api/workflow/jobs/{job_id}")).json()
        assert job["status"] == JobStatus.COMPLETED
        assert job["progress"]["percent"] == 100
        assert job["result"]["analyzed_videos"] == 5
        assert job["business_description"] == BUSINESS
        assert workflow_router.ws_manager.last_message[job_id]["type"] == "complete"

    @pytest.mark.asyncio
    async def test_finished_job_is_forgotten_after_replay_window(self, client, monkeypatch):
        monkeypatch.setattr(workflow_router.ws_manager, "replay_seconds", 0.01)
        job_id = (
            await client.post(
                "/api/workflow/jobs", json={"business_description": BUSINESS, "videos_per_query": 1}
            )
        ).json()["job_id"]

        await asyncio.gather(*list(workflow_router._background_tasks))
        assert job_id in workflow_router.ws_manager.last_message
        await asyncio.sleep(0.05)

        assert job_id not in workflow_router.ws_manager.last_message
        assert job_id not in workflow_router.ws_manager.connections

    @pytest.mark.asyncio
    async def test_background_job_failure(self, app, client, fake_s3):
        app.dependency_overrides[dependencies.get_workflow] = lambda: build_workflow(
            fake_s3, source=FakeSearchSource(per_query=0)
        )
        job_id = (
            await client.post("/api/workflow/jobs", json={"business_description": BUSINESS})
        ).json()["job_id"]

        await asyncio.gather(*list(workflow_router._background_tasks))

        job = (await client.get(f"/api/workflow/jobs/{job_id}")).json()
        assert job["status"] == JobStatus.FAILED
        assert job["error"]
        assert workflow_router.ws_manager.last_message[job_id]["stage"] == "videos_scraped"

    @pytest.mark.asyncio
    async def test_list_workflow_jobs(self, client, job_store):
        await job_store.create_job("older", "workflow", {"business_description": "bakery"})
        await job_store.create_job("other", "stored_batch")
        await job_store.create_job("newer", "workflow", {"business_description": BUSINESS})

        response = await client.get("/api/workflow/jobs", params={"limit": 5})

        assert response.status_code == 200
        assert {job["id"] for job in response.json()} == {"older", "newer"}
        assert all(job["type"] == "workflow" for job in response.json())

    @pytest.mark.asyncio
    async def test_unknown_job(self, client):
        assert (await client.get("/api/workflow/jobs/missing")).status_code == 404


class TestAnalysisRoutes:
    @pytest.mark.asyncio
    async def test_analyze_stream_emits_chunks_then_complete(self, client):
        response = await client.post(
            "/api/videos/analyze/stream",
            json={"video_url": "https://cdn.test/videos/f.mp4", "caption": "bowl", "likes": 3},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [line for line in response.text.splitlines() if line.startswith("event:")]
        assert events[-1] == "event: complete"
        assert set(events[:-1]) == {"event: chunk"}

    @pytest.mark.asyncio
    async def test_analyze_stream_error_event(self, app, client):
        app.dependency_overrides[dependencies.get_analyzer] = lambda: VideoAnalyzer(
            FakeMultimodalClient(default="no json")
        )

        response = await client.post(
            "/api/videos/analyze/stream", json={"video_url": "https://cdn.test/videos/f.mp4"}
        )

        assert "event: error" in response.text
        assert "event: complete" not in response.text

    @pytest.mark.asyncio
    async def test_summarize(self, client, trend_store):
        response = await client.post(
            "/api/strategy/summarize",
            json={
                "analyzed_videos": [{"caption": "bowl", "summary": {"summary": "macro bowl"}}],
                "business_description": BUSINESS,
                "owner_id": "auth-3",
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["video_count"] == 1
        assert body["content_themes"][0] == "Meal prep in under 10 minutes"
        assert [s["id"] for s in await trend_store.list_strategies("auth-3")] == [body["strategy_id"]]

    @pytest.mark.asyncio
    async def test_summarize_requires_videos(self, client):
        response = await client.post(
            "/api/strategy/summarize",
            json={"analyzed_videos": [], "business_description": BUSINESS},
        )
        assert response.status_code == 400


class TestHistoryRoutes:
    @pytest.mark.asyncio
    async def test_owner_history(self, client, trend_store, sample_staged):
        query = SearchQuery(text="protein bowl", owner_id="auth-5")
        await trend_store.save_trend_query(query, BUSINESS)
        await trend_store.save_video(sample_staged, "auth-5", query.trend_query_id)

        queries = (await client.get("/api/owners/auth-5/queries")).json()
        videos = (await client.get(f"/api/trend-queries/{query.trend_query_id}/videos")).json()

        assert [q["query"] for q in queries] == ["protein bowl"]
        assert videos[0]["hashtags"] == ["#mealprep", "#healthy"]
        assert (await client.get("/api/owners/nobody/strategies")).json() == []


class TestWebSocketManager:
    @pytest.mark.asyncio
    async def test_late_subscriber_gets_last_message(self):
        manager = WebSocketManager()
        await manager.broadcast("job", {"type": "progress", "stage": "videos_scraped"})

        ws = AsyncMock()
        await manager.connect("job", ws)

        ws.accept.assert_awaited_once()
        ws.send_json.assert_awaited_once_with({"type": "progress", "stage": "videos_scraped"})

    @pytest.mark.asyncio
    async def test_failed_subscriber_is_dropped(self):
        manager = WebSocketManager()
        good, bad = AsyncMock(), AsyncMock()
        bad.send_json.side_effect = RuntimeError("closed")
        await manager.connect("job", good)
        await manager.connect("job", bad)

        await manager.broadcast("job", {"type": "complete"})

        assert manager.connections["job"] == [good]
        manager.cleanup("job")
        assert "job" not in manager.last_message

    @pytest.mark.asyncio
    async def test_scheduled_cleanup_keeps_replay_until_window_ends(self):
        manager = WebSocketManager(replay_seconds=0.01)
        ws = AsyncMock()
        await manager.connect("job", ws)
        await manager.broadcast("job", {"type": "complete"})

        manager.schedule_cleanup("job")
        assert manager.last_message["job"] == {"type": "complete"}
        await asyncio.sleep(0.05)

        assert "job" not in manager.last_message
        assert "job" not in manager.connections
