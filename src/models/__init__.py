# Data models for trendscout
from .video import (
    SearchFilters,
    SearchQuery,
    EngagementCounts,
    CandidateVideo,
    StagedVideo,
)
from .analysis import (
    ANALYSIS_KEYS,
    STRATEGY_HEADINGS,
    VideoAnalysis,
    AnalyzedVideo,
    Strategy,
)
from .workflow import (
    WorkflowStage,
    WorkflowRequest,
    WorkflowRun,
    WorkflowResult,
    StageEvent,
)

__all__ = [
    "SearchFilters",
    "SearchQuery",
    "EngagementCounts",
    "CandidateVideo",
    "StagedVideo",
    "ANALYSIS_KEYS",
    "STRATEGY_HEADINGS",
    "VideoAnalysis",
    "AnalyzedVideo",
    "Strategy",
    # Workflow state
    "WorkflowStage",
    "WorkflowRequest",
    "WorkflowRun",
    "WorkflowResult",
    "StageEvent",
]
