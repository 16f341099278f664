"""Single-video streamed analysis and strategy summarization routes."""

import json
import logging

from api.dependencies import get_analyzer, get_synthesizer
from api.schemas import AnalyzeVideoRequest, StrategyResponse, SummarizeRequest
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from models.video import EngagementCounts, StagedVideo
from services.errors import TrendScoutError, UpstreamUnavailableError
from services.strategy_synthesizer import StrategySynthesizer
from services.video_analyzer import VideoAnalyzer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Analysis"])


def sse_event(event: str, data: dict) -> str:
    """Format one server-sent event."""
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def video_from_request(body: AnalyzeVideoRequest) -> StagedVideo:
    return StagedVideo(
        platform_id=body.video_url.rstrip("/").rsplit("/", 1)[-1],
        author_handle="",
        caption=body.caption,
        original_url=body.video_url,
        engagement=EngagementCounts(
            likes=body.likes, comments=body.comments, shares=body.shares, views=body.views
        ),
        media_url=body.video_url,
        storage_url=body.video_url,
    )


@router.post(
    "/api/videos/analyze/stream",
    summary="Analyze a video (streamed)",
    description=(
        "Server-sent events: one `chunk` event per piece of model output, then a "
        "`complete` event with the parsed analysis or an `error` event."
    ),
)
async def analyze_video_stream(
    body: AnalyzeVideoRequest,
    request: Request,
    analyzer: VideoAnalyzer = Depends(get_analyzer),
) -> StreamingResponse:
    video = video_from_request(body)

    async def event_gen():
        stream = analyzer.analyze_stream(video, body.business_description)
        try:
            async for event in stream:
                if await request.is_disconnected():
                    logger.info(f"Client disconnected during analysis of {video.platform_id}")
                    return
                if event.kind == "chunk":
                    yield sse_event("chunk", {"text": event.text})
                else:
                    yield sse_event("complete", {"analysis": event.analysis.to_payload()})
        except TrendScoutError as e:
            logger.error(f"Streamed analysis failed for {video.platform_id}: {e}")
            yield sse_event("error", {"message": str(e)})
        finally:
            # Closes the upstream response if we stopped early
            await stream.aclose()

    return StreamingResponse(
        event_gen(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post(
    "/api/strategy/summarize",
    response_model=StrategyResponse,
    summary="Summarize trends",
    description="Synthesize one strategy from already analyzed videos.",
    responses={400: {"description": "No analyzed videos supplied"}, 502: {"description": "Model unavailable"}},
)
async def summarize_trends(
    body: SummarizeRequest,
    synthesizer: StrategySynthesizer = Depends(get_synthesizer),
) -> dict:
    if not body.analyzed_videos:
        raise HTTPException(
            status_code=400, detail="Analyzed videos are required and must be a non-empty list"
        )

    logger.info(f"Summarizing trends from {len(body.analyzed_videos)} videos")
    try:
        strategy = await synthesizer.summarize(
            body.analyzed_videos, body.business_description, owner_id=body.owner_id
        )
    except UpstreamUnavailableError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return strategy.to_dict()
