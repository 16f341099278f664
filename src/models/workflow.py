"""Workflow run state models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from models.analysis import AnalyzedVideo, Strategy
from models.video import SearchFilters, SearchQuery, StagedVideo


class WorkflowStage(str, Enum):
    """Stages of a trend workflow run, in execution order."""

    STARTED = "started"
    QUERIES_GENERATED = "queries_generated"
    VIDEOS_SCRAPED = "videos_scraped"
    VIDEOS_ANALYZED = "videos_analyzed"
    STRATEGY_BUILT = "strategy_built"
    FAILED = "failed"


# Forward-only ordering; FAILED is reachable from any non-terminal stage
STAGE_ORDER = [
    WorkflowStage.STARTED,
    WorkflowStage.QUERIES_GENERATED,
    WorkflowStage.VIDEOS_SCRAPED,
    WorkflowStage.VIDEOS_ANALYZED,
    WorkflowStage.STRATEGY_BUILT,
]


@dataclass
class WorkflowRequest:
    """Input for one end-to-end run."""

    business_description: str
    owner_id: Optional[str] = None
    videos_per_query: int = 5
    filters: Optional[SearchFilters] = None

    def __post_init__(self):
        self.business_description = (self.business_description or "").strip()
        if not self.business_description:
            raise ValueError("business_description is required")
        if self.videos_per_query < 1:
            raise ValueError("videos_per_query must be at least 1")


@dataclass
class StageEvent:
    """Progress notification emitted when a stage completes or the run fails."""

    run_id: str
    stage: WorkflowStage
    count: int
    message: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "stage": self.stage.value,
            "count": self.count,
            "message": self.message,
            "timestamp": self.timestamp,
        }


class WorkflowRun:
    """Tracks the current stage of a run and rejects backward transitions."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        self.stage = WorkflowStage.STARTED
        self.history: list[WorkflowStage] = [WorkflowStage.STARTED]
        self.error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.stage in (WorkflowStage.STRATEGY_BUILT, WorkflowStage.FAILED)

    def advance(self, stage: WorkflowStage) -> None:
        """Move to the next stage.

        Raises:
            ValueError: If the run is terminal or the stage is not the next one
        """
        if self.is_terminal:
            raise ValueError(f"Run {self.run_id} already ended in {self.stage.value}")
        if stage == WorkflowStage.FAILED:
            raise ValueError("Use fail() to end a run in FAILED")

        expected = STAGE_ORDER[STAGE_ORDER.index(self.stage) + 1]
        if stage != expected:
            raise ValueError(
                f"Invalid transition {self.stage.value} -> {stage.value} "
                f"(expected {expected.value})"
            )
        self.stage = stage
        self.history.append(stage)

    def fail(self, message: str) -> None:
        if self.is_terminal:
            raise ValueError(f"Run {self.run_id} already ended in {self.stage.value}")
        self.stage = WorkflowStage.FAILED
        self.history.append(WorkflowStage.FAILED)
        self.error = message


@dataclass
class WorkflowResult:
    """Everything a successful run produced."""

    run_id: str
    queries: list[SearchQuery]
    staged_videos: list[StagedVideo]
    analyzed_videos: list[AnalyzedVideo]
    strategy: Strategy
    stage_history: list[WorkflowStage] = field(default_factory=list)

    @property
    def analyses(self):
        return [item.analysis for item in self.analyzed_videos]
