"""End-to-end trend workflow: queries, videos, analyses, strategy.

Stages run in a fixed order and a run only moves forward:

    QUERIES_GENERATED -> VIDEOS_SCRAPED -> VIDEOS_ANALYZED -> STRATEGY_BUILT

Any unrecovered failure ends the run in FAILED and surfaces as WorkflowError.
Per-item failures inside a stage (one video that will not download, one
analysis that times out) are logged and the item is left out.
"""

import asyncio
import inspect
import logging
import uuid
from typing import Awaitable, Callable, Optional, Union

import httpx

from models.analysis import AnalyzedVideo
from models.video import SearchFilters, SearchQuery, StagedVideo
from models.workflow import (
    STAGE_ORDER,
    StageEvent,
    WorkflowRequest,
    WorkflowResult,
    WorkflowRun,
    WorkflowStage,
)
from services.errors import (
    EmptyBatchError,
    MalformedResponseError,
    TrendScoutError,
    UpstreamUnavailableError,
    WorkflowError,
)
from services.media_resolver import MediaResolver, make_batch_tag
from services.model_clients import DashScopeClient, create_text_client
from services.object_storage import create_storage
from services.query_generator import QueryGenerator
from services.strategy_synthesizer import StrategySynthesizer
from services.video_analyzer import VideoAnalyzer
from services.video_sources import create_video_source
from utils.logging import job_context

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[StageEvent], Union[None, Awaitable[None]]]


class TrendWorkflow:
    """Central orchestrator for a trend research run."""

    def __init__(
        self,
        query_generator: QueryGenerator,
        resolver: MediaResolver,
        analyzer: VideoAnalyzer,
        synthesizer: StrategySynthesizer,
        store=None,
        queries_per_run: int = 5,
        max_concurrent_analyses: int = 1,
        analysis_timeout: float = 300.0,
        default_filters: Optional[SearchFilters] = None,
    ):
        """Initialize the workflow with its collaborators.

        Args:
            query_generator: Produces search terms
            resolver: Searches, downloads and stages videos
            analyzer: Analyzes staged videos
            synthesizer: Builds the strategy
            store: Optional TrendStore; records are only written with an owner id
            queries_per_run: Number of search terms per run
            max_concurrent_analyses: Upper bound on in-flight analyses
            analysis_timeout: Seconds allowed per analysis call
            default_filters: Search filters used when a request has none
        """
        self.query_generator = query_generator
        self.resolver = resolver
        self.analyzer = analyzer
        self.synthesizer = synthesizer
        self.store = store
        self.queries_per_run = queries_per_run
        self.max_concurrent_analyses = max(1, max_concurrent_analyses)
        self.analysis_timeout = analysis_timeout
        self.default_filters = default_filters or SearchFilters()

    @classmethod
    def from_config(cls, config: dict, store=None) -> "TrendWorkflow":
        """Wire a workflow from a load_config() dict.

        Raises:
            ValueError: If object storage is not configured
        """
        storage = create_storage(config)
        if storage is None:
            raise ValueError("Object storage is not configured (STORAGE_* settings)")

        http_client = httpx.AsyncClient(timeout=60.0, follow_redirects=True)
        text_client = create_text_client(config, client=http_client)
        source = create_video_source(
            config.get("search_provider", "feed_search"),
            api_key=config.get("rapidapi_key") or "",
            client=http_client,
        )
        dashscope = DashScopeClient(
            api_key=config.get("dashscope_api_key") or "",
            model=config.get("dashscope_model", "qwen2.5-vl-72b-instruct"),
            base_url=config.get("dashscope_base_url", "https://dashscope-intl.aliyuncs.com/api/v1"),
            timeout_seconds=config.get("analysis_timeout_seconds", 300.0),
        )

        return cls(
            query_generator=QueryGenerator(text_client),
            resolver=MediaResolver(source, storage),
            analyzer=VideoAnalyzer(
                dashscope,
                fps=config.get("analysis_fps", 1),
                window_seconds=config.get("analysis_window_seconds", 60),
            ),
            synthesizer=StrategySynthesizer(text_client, store=store),
            store=store,
            queries_per_run=config.get("queries_per_run", 5),
            max_concurrent_analyses=config.get("max_concurrent_analyses", 1),
            analysis_timeout=config.get("analysis_timeout_seconds", 300.0),
            default_filters=SearchFilters(
                sort_mode=config.get("search_sort_mode", "relevance"),
                recency_days=config.get("search_recency_days", 0),
                region=config.get("search_region", "US"),
            ),
        )

    async def run(
        self,
        request: WorkflowRequest,
        progress_callback: Optional[ProgressCallback] = None,
        run_id: Optional[str] = None,
    ) -> WorkflowResult:
        """Execute all four stages for one business description.

        Args:
            request: Run input
            progress_callback: Called (or awaited) with one StageEvent per
                completed stage, and once more if the run fails
            run_id: Identifier for logs and storage tags (generated if omitted)

        Returns:
            WorkflowResult with every intermediate collection and the strategy

        Raises:
            WorkflowError: If any stage fails without recovery
        """
        run = WorkflowRun(run_id or uuid.uuid4().hex[:12])

        with job_context(run.run_id):
            logger.info(f"Starting trend workflow for: {request.business_description[:80]}")
            try:
                return await self._execute(run, request, progress_callback)
            except TrendScoutError as e:
                stage = getattr(e, "stage", None) or self._failing_stage(run)
                await self._fail(run, stage, str(e), progress_callback, e)
            except Exception as e:
                logger.exception(f"Unexpected error in workflow run {run.run_id}")
                await self._fail(
                    run, self._failing_stage(run), f"Unexpected error: {e}", progress_callback, e
                )

    async def _execute(
        self,
        run: WorkflowRun,
        request: WorkflowRequest,
        progress_callback: Optional[ProgressCallback],
    ) -> WorkflowResult:
        owner_id = request.owner_id
        filters = request.filters or self.default_filters

        # Stage 1: search terms
        queries = await self.query_generator.generate(
            request.business_description, self.queries_per_run, owner_id=owner_id
        )
        if not queries:
            raise EmptyBatchError(
                WorkflowStage.QUERIES_GENERATED.value, "Query generation produced no search terms"
            )
        if owner_id and self.store is not None:
            for query in queries:
                await self.store.save_trend_query(query, request.business_description)
        await self._advance(run, WorkflowStage.QUERIES_GENERATED, len(queries), progress_callback,
                            ", ".join(q.text for q in queries))

        # Stage 2: search, download and stage
        staged = await self._scrape(run, queries, request, filters)
        if not staged:
            raise EmptyBatchError(
                WorkflowStage.VIDEOS_SCRAPED.value,
                f"No videos could be staged for {len(queries)} search terms",
            )
        await self._advance(run, WorkflowStage.VIDEOS_SCRAPED, len(staged), progress_callback)

        # Stage 3: analysis
        analyzed = await self._analyze_all(staged, request)
        if not analyzed:
            raise EmptyBatchError(
                WorkflowStage.VIDEOS_ANALYZED.value,
                f"All {len(staged)} video analyses failed",
            )
        await self._advance(run, WorkflowStage.VIDEOS_ANALYZED, len(analyzed), progress_callback)

        # Stage 4: strategy
        strategy = await self.synthesizer.synthesize(
            analyzed, request.business_description, owner_id=owner_id
        )
        await self._advance(run, WorkflowStage.STRATEGY_BUILT, 1, progress_callback)

        logger.info(
            f"Workflow complete: {len(queries)} queries, {len(staged)} staged, "
            f"{len(analyzed)} analyzed"
        )
        return WorkflowResult(
            run_id=run.run_id,
            queries=queries,
            staged_videos=staged,
            analyzed_videos=analyzed,
            strategy=strategy,
            stage_history=list(run.history),
        )

    async def _scrape(
        self,
        run: WorkflowRun,
        queries: list[SearchQuery],
        request: WorkflowRequest,
        filters: SearchFilters,
    ) -> list[StagedVideo]:
        """Resolve each query in turn into one flat list."""
        staged: list[StagedVideo] = []
        for query in queries:
            tag = make_batch_tag(query.trend_query_id, run.run_id)
            try:
                videos = await self.resolver.resolve(
                    query.text, request.videos_per_query, filters, batch_tag=tag
                )
            except UpstreamUnavailableError as e:
                logger.error(f"Search failed for '{query.text}': {e}")
                continue

            if request.owner_id and self.store is not None:
                for video in videos:
                    try:
                        await self.store.save_video(video, request.owner_id, query.trend_query_id)
                    except TrendScoutError as e:
                        # The video stays in the batch without a record id
                        logger.error(f"Failed to save video {video.platform_id}: {e}")

            logger.info(f"Staged {len(videos)} videos for '{query.text}'")
            staged.extend(videos)
        return staged

    async def _analyze_all(
        self, staged: list[StagedVideo], request: WorkflowRequest
    ) -> list[AnalyzedVideo]:
        """Analyze staged videos with bounded concurrency, keeping input order."""
        semaphore = asyncio.Semaphore(self.max_concurrent_analyses)

        async def analyze_one(video: StagedVideo, idx: int) -> Optional[AnalyzedVideo]:
            async with semaphore:
                try:
                    analysis = await asyncio.wait_for(
                        self.analyzer.analyze(video, request.business_description),
                        timeout=self.analysis_timeout,
                    )
                except asyncio.TimeoutError:
                    logger.warning(
                        f"[{idx}/{len(staged)}] Analysis timed out for {video.platform_id}"
                    )
                    return None
                except (UpstreamUnavailableError, MalformedResponseError) as e:
                    logger.error(f"[{idx}/{len(staged)}] Analysis failed for {video.platform_id}: {e}")
                    return None
                except Exception as e:
                    logger.exception(
                        f"[{idx}/{len(staged)}] Unexpected error analyzing {video.platform_id}: {e}"
                    )
                    return None

                item = AnalyzedVideo(video=video, analysis=analysis)
                if request.owner_id and self.store is not None and video.record_id:
                    try:
                        item.analysis_id = await self.store.save_analysis(
                            video.record_id, analysis, request.owner_id
                        )
                    except TrendScoutError as e:
                        logger.error(f"Failed to save analysis for {video.platform_id}: {e}")
                logger.info(f"[{idx}/{len(staged)}] Analyzed {video.platform_id}")
                return item

        results = await asyncio.gather(
            *(analyze_one(video, idx) for idx, video in enumerate(staged, 1))
        )
        return [item for item in results if item is not None]

    async def _advance(
        self,
        run: WorkflowRun,
        stage: WorkflowStage,
        count: int,
        progress_callback: Optional[ProgressCallback],
        message: str = "",
    ) -> None:
        run.advance(stage)
        logger.info(f"Stage {stage.value}: {count}")
        await self._notify(progress_callback, StageEvent(run.run_id, stage, count, message))

    async def _fail(
        self,
        run: WorkflowRun,
        stage: str,
        message: str,
        progress_callback: Optional[ProgressCallback],
        cause: Exception,
    ) -> None:
        logger.error(f"Workflow failed at {stage}: {message}")
        run.fail(message)
        await self._notify(
            progress_callback, StageEvent(run.run_id, WorkflowStage.FAILED, 0, message)
        )
        raise WorkflowError(stage, message, run_id=run.run_id) from cause

    @staticmethod
    def _failing_stage(run: WorkflowRun) -> str:
        """The stage that was in progress when the run broke."""
        index = STAGE_ORDER.index(run.stage)
        return STAGE_ORDER[min(index + 1, len(STAGE_ORDER) - 1)].value

    @staticmethod
    async def _notify(progress_callback: Optional[ProgressCallback], event: StageEvent) -> None:
        if progress_callback is None:
            return
        try:
            result = progress_callback(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress callback failed for {event.stage.value}: {e}")
