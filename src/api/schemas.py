"""Pydantic request/response models for the trendscout API."""

from typing import Any

from pydantic import BaseModel, Field

# =============================================================================
# Response Models
# =============================================================================


class RootResponse(BaseModel):
    """Root endpoint response."""

    message: str
    version: str

    model_config = {"json_schema_extra": {"examples": [{"message": "TrendScout API", "version": "1.0.0"}]}}


class HealthResponse(BaseModel):
    """Health check response."""

    status: str

    model_config = {"json_schema_extra": {"examples": [{"status": "healthy"}]}}


class ErrorResponse(BaseModel):
    """Error body returned for failed runs."""

    detail: str
    stage: str | None = None


class StrategyResponse(BaseModel):
    """A synthesized marketing strategy."""

    observations: str = ""
    key_takeaways: str = ""
    sample_script: str = ""
    technical_specs: str = ""
    content_themes: list[str] = Field(default_factory=list)
    hashtag_strategy: str = ""
    posting_frequency: str = ""
    raw_content: str
    sections_parsed: bool = False
    video_count: int = 0
    strategy_id: str | None = None


class WorkflowRunResponse(BaseModel):
    """Result of a synchronous workflow run."""

    run_id: str
    queries: list[str]
    staged_videos: int
    analyzed_videos: int
    strategy: StrategyResponse

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "run_id": "3f2a9c1b7d4e",
                    "queries": ["healthy meal prep", "protein bowl"],
                    "staged_videos": 8,
                    "analyzed_videos": 7,
                    "strategy": {"raw_content": "## Observations\n...", "sections_parsed": True},
                }
            ]
        }
    }


class JobProgressResponse(BaseModel):
    """Job progress details."""

    stage: str
    percent: int = Field(ge=0, le=100)
    message: str


class JobResponse(BaseModel):
    """Background workflow job."""

    id: str
    type: str
    status: str
    created_at: str
    updated_at: str
    progress: JobProgressResponse
    business_description: str = ""
    result: dict | None = None
    error: str | None = None


class JobCreatedResponse(BaseModel):
    """Response when a job is created."""

    job_id: str
    message: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "job_id": "550e8400-e29b-41d4-a716-446655440000",
                    "message": "Workflow started",
                }
            ]
        }
    }


class TrendQueryResponse(BaseModel):
    """A persisted search term."""

    id: str
    owner_id: str
    query: str
    business_description: str | None = None
    created_at: str


class StoredVideoResponse(BaseModel):
    """A persisted staged video."""

    id: str
    trend_query_id: str
    platform_id: str
    author_handle: str | None = None
    caption: str | None = None
    video_url: str | None = None
    download_url: str | None = None
    likes: int = 0
    comments: int = 0
    shares: int = 0
    views: int = 0
    hashtags: list[str] | None = None
    last_analyzed_at: str | None = None
    analysis_summary: str | None = None


class StoredStrategyResponse(BaseModel):
    """A persisted strategy."""

    id: str
    owner_id: str
    business_context: str | None = None
    sections: dict[str, Any] | None = None
    raw_content: str
    sections_parsed: bool = False
    video_count: int = 0
    created_at: str


# =============================================================================
# Request Models
# =============================================================================


class SearchFiltersRequest(BaseModel):
    """Search provider filters."""

    sort_mode: str = "relevance"
    recency_days: int = Field(default=0, ge=0)
    region: str | None = "US"


class WorkflowRunRequest(BaseModel):
    """Input for a workflow run."""

    business_description: str = Field(min_length=1)
    owner_id: str | None = None
    videos_per_query: int = Field(default=5, ge=1, le=30)
    filters: SearchFiltersRequest | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "business_description": "A restaurant specializing in healthy food options",
                    "videos_per_query": 2,
                }
            ]
        }
    }


class AnalyzeVideoRequest(BaseModel):
    """A stored video to analyze with streamed output."""

    video_url: str = Field(min_length=1)
    caption: str = ""
    likes: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)
    views: int = Field(default=0, ge=0)
    business_description: str | None = None


class SummarizeRequest(BaseModel):
    """Analyzed videos to synthesize into one strategy.

    Each item is a video dict carrying ``summary`` (an analysis object, its
    JSON string, or plain text) and optionally ``caption``/``title``,
    ``video_url``/``url`` and ``search_query``.
    """

    analyzed_videos: list[dict[str, Any]]
    business_description: str = Field(min_length=1)
    owner_id: str | None = None
