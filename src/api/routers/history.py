"""Read-only routes over persisted trend queries, videos and strategies."""

from api.dependencies import get_trend_store
from api.schemas import StoredStrategyResponse, StoredVideoResponse, TrendQueryResponse
from fastapi import APIRouter, Depends, Query
from services.trend_store import TrendStore

router = APIRouter(tags=["History"])


@router.get(
    "/api/owners/{owner_id}/queries",
    response_model=list[TrendQueryResponse],
    summary="List an owner's trend queries",
)
async def list_owner_queries(
    owner_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    store: TrendStore = Depends(get_trend_store),
) -> list[dict]:
    return await store.list_trend_queries(owner_id, limit=limit)


@router.get(
    "/api/owners/{owner_id}/strategies",
    response_model=list[StoredStrategyResponse],
    summary="List an owner's strategies",
)
async def list_owner_strategies(
    owner_id: str,
    limit: int = Query(default=20, ge=1, le=200),
    store: TrendStore = Depends(get_trend_store),
) -> list[dict]:
    return await store.list_strategies(owner_id, limit=limit)


@router.get(
    "/api/trend-queries/{trend_query_id}/videos",
    response_model=list[StoredVideoResponse],
    summary="List the videos staged for a trend query",
)
async def list_trend_query_videos(
    trend_query_id: str,
    store: TrendStore = Depends(get_trend_store),
) -> list[dict]:
    return await store.get_videos_for_trend_query(trend_query_id)
