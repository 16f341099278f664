"""Service singletons and dependency injection for the trendscout API.

Routes receive their collaborators through ``Depends(get_...)`` so tests can
swap them with ``app.dependency_overrides``.
"""

from fastapi import HTTPException

from api.job_store import JobStore
from services.model_clients import DashScopeClient, TextModelClient, create_text_client
from services.strategy_synthesizer import StrategySynthesizer
from services.trend_store import TrendStore
from services.video_analyzer import VideoAnalyzer
from services.workflow import TrendWorkflow
from utils.config import load_config

# Service singletons
_config: dict | None = None
_trend_store: TrendStore | None = None
_job_store: JobStore | None = None
_text_client: TextModelClient | None = None
_workflow: TrendWorkflow | None = None
_analyzer: VideoAnalyzer | None = None
_synthesizer: StrategySynthesizer | None = None


def get_config() -> dict:
    """Get the loaded configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


async def init_stores() -> None:
    """Connect the trend and job databases (called from the app lifespan)."""
    global _trend_store, _job_store
    config = get_config()
    if _trend_store is None:
        _trend_store = TrendStore(config["database_path"])
        await _trend_store.connect()
    if _job_store is None:
        _job_store = JobStore(config["jobs_db_path"])
        await _job_store.connect()


async def close_stores() -> None:
    """Close database connections on shutdown."""
    global _trend_store, _job_store
    if _trend_store is not None:
        await _trend_store.close()
        _trend_store = None
    if _job_store is not None:
        await _job_store.close()
        _job_store = None


def get_trend_store() -> TrendStore:
    if _trend_store is None:
        raise RuntimeError("Trend store not initialized")
    return _trend_store


def get_job_store() -> JobStore:
    if _job_store is None:
        raise RuntimeError("Job store not initialized")
    return _job_store


def get_text_client() -> TextModelClient:
    """Get or create the configured text model client."""
    global _text_client
    if _text_client is None:
        _text_client = create_text_client(get_config())
    return _text_client


def get_workflow() -> TrendWorkflow:
    """Get or create the workflow wired from configuration."""
    global _workflow
    if _workflow is None:
        try:
            _workflow = TrendWorkflow.from_config(get_config(), store=get_trend_store())
        except ValueError as e:
            raise HTTPException(status_code=503, detail=str(e))
    return _workflow


def get_analyzer() -> VideoAnalyzer:
    """Get or create the video analyzer."""
    global _analyzer
    if _analyzer is None:
        config = get_config()
        _analyzer = VideoAnalyzer(
            DashScopeClient(
                api_key=config.get("dashscope_api_key") or "",
                model=config["dashscope_model"],
                base_url=config["dashscope_base_url"],
                timeout_seconds=config["analysis_timeout_seconds"],
            ),
            fps=config["analysis_fps"],
            window_seconds=config["analysis_window_seconds"],
        )
    return _analyzer


def get_synthesizer() -> StrategySynthesizer:
    """Get or create the strategy synthesizer."""
    global _synthesizer
    if _synthesizer is None:
        _synthesizer = StrategySynthesizer(get_text_client(), store=get_trend_store())
    return _synthesizer
