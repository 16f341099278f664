"""Configuration loading and validation for trendscout."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from rich.logging import RichHandler

# Get the project root directory (parent of src)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Load environment variables from .env file in project root
load_dotenv(PROJECT_ROOT / ".env")

TEXT_MODEL_PROVIDERS = ("openrouter", "gemini")
SEARCH_PROVIDERS = ("feed_search", "trending")


def load_config() -> dict:
    """Load configuration from environment variables."""

    # Helper function to resolve paths relative to project root
    def resolve_path(path: str | None, default_relative: str) -> str:
        if not path:
            return str(PROJECT_ROOT / default_relative)
        if path == ":memory:" or Path(path).is_absolute():
            return path
        return str(PROJECT_ROOT / path)

    config = {
        # Text model (query generation and strategy synthesis)
        "text_model_provider": os.getenv("TEXT_MODEL_PROVIDER", "openrouter").lower(),
        "openrouter_api_key": os.getenv("OPENROUTER_API_KEY"),
        "openrouter_model": os.getenv("OPENROUTER_MODEL", "google/gemma-3-27b-it:free"),
        "gemini_api_key": os.getenv("GEMINI_API_KEY"),
        "gemini_model": os.getenv("GEMINI_MODEL", "gemini-3-flash-preview"),
        # Multimodal video analysis
        "dashscope_api_key": os.getenv("DASHSCOPE_API_KEY"),
        "dashscope_model": os.getenv("DASHSCOPE_MODEL", "qwen2.5-vl-72b-instruct"),
        "dashscope_base_url": os.getenv(
            "DASHSCOPE_BASE_URL", "https://dashscope-intl.aliyuncs.com/api/v1"
        ),
        "analysis_fps": int(os.getenv("ANALYSIS_FPS", "1")),
        "analysis_window_seconds": int(os.getenv("ANALYSIS_WINDOW_SECONDS", "60")),
        "analysis_timeout_seconds": float(os.getenv("ANALYSIS_TIMEOUT_SECONDS", "300")),
        "max_concurrent_analyses": int(os.getenv("MAX_CONCURRENT_ANALYSES", "1")),
        # Short-video search (RapidAPI)
        "rapidapi_key": os.getenv("RAPIDAPI_KEY"),
        "search_provider": os.getenv("SEARCH_PROVIDER", "feed_search").lower(),
        "search_region": os.getenv("SEARCH_REGION", "US"),
        "search_sort_mode": os.getenv("SEARCH_SORT_MODE", "relevance"),
        "search_recency_days": int(os.getenv("SEARCH_RECENCY_DAYS", "0")),
        # S3-compatible object storage
        "storage_endpoint_url": os.getenv("STORAGE_ENDPOINT_URL"),
        "storage_access_key_id": os.getenv("STORAGE_ACCESS_KEY_ID"),
        "storage_secret_access_key": os.getenv("STORAGE_SECRET_ACCESS_KEY"),
        "storage_bucket_name": os.getenv("STORAGE_BUCKET_NAME", "tiktok-videos"),
        "storage_public_url": os.getenv("STORAGE_PUBLIC_URL"),
        "storage_region": os.getenv("STORAGE_REGION", "auto"),
        # Databases
        "database_path": resolve_path(os.getenv("DATABASE_PATH"), ".trendscout/trends.db"),
        "jobs_db_path": resolve_path(os.getenv("JOBS_DB_PATH"), ".trendscout/jobs.db"),
        # Run sizing
        "queries_per_run": int(os.getenv("QUERIES_PER_RUN", "5")),
        "videos_per_query": int(os.getenv("VIDEOS_PER_QUERY", "5")),
        # Logging
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "log_json": os.getenv("LOG_JSON", "false").lower() == "true",
    }

    return config


def validate_config(config: dict) -> list[str]:
    """Validate configuration and return list of errors."""
    errors = []

    provider = config.get("text_model_provider")
    if provider not in TEXT_MODEL_PROVIDERS:
        errors.append(
            f"TEXT_MODEL_PROVIDER must be one of {', '.join(TEXT_MODEL_PROVIDERS)}, got '{provider}'"
        )
    elif provider == "openrouter" and not config.get("openrouter_api_key"):
        errors.append("OPENROUTER_API_KEY is required when TEXT_MODEL_PROVIDER=openrouter")
    elif provider == "gemini" and not config.get("gemini_api_key"):
        errors.append("GEMINI_API_KEY is required when TEXT_MODEL_PROVIDER=gemini")

    if not config.get("dashscope_api_key"):
        errors.append("DASHSCOPE_API_KEY is required for video analysis")

    if not config.get("rapidapi_key"):
        errors.append("RAPIDAPI_KEY is required for video search")

    if config.get("search_provider") not in SEARCH_PROVIDERS:
        errors.append(
            f"SEARCH_PROVIDER must be one of {', '.join(SEARCH_PROVIDERS)}, "
            f"got '{config.get('search_provider')}'"
        )

    storage_keys = ("storage_endpoint_url", "storage_access_key_id", "storage_secret_access_key")
    if not all(config.get(key) for key in storage_keys):
        errors.append(
            "STORAGE_ENDPOINT_URL, STORAGE_ACCESS_KEY_ID and STORAGE_SECRET_ACCESS_KEY are required"
        )
    elif not config.get("storage_public_url"):
        errors.append("STORAGE_PUBLIC_URL is required so the analysis model can fetch videos")

    for key in ("queries_per_run", "videos_per_query", "max_concurrent_analyses"):
        if config.get(key, 1) < 1:
            errors.append(f"{key.upper()} must be at least 1")

    if config.get("analysis_timeout_seconds", 1) <= 0:
        errors.append("ANALYSIS_TIMEOUT_SECONDS must be positive")

    return errors


def setup_logging(log_level: str = "INFO") -> None:
    """Set up logging configuration with Rich for beautiful terminal output."""
    # Clear any existing handlers
    logging.root.handlers.clear()

    # Rich handler for beautiful console output
    rich_handler = RichHandler(
        show_time=True,
        show_level=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,  # Disable markup to avoid conflicts
    )

    # File handler for plain text logging (always in src directory)
    log_file = PROJECT_ROOT / "src" / "trendscout.log"
    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        handlers=[rich_handler, file_handler],
        format="%(message)s",
    )

    # Suppress noisy third-party loggers
    noisy_loggers = [
        "httpx",
        "httpcore",
        "botocore",
        "boto3",
        "google_genai",
        "google_genai.models",
        "aiosqlite",
        "urllib3.connectionpool",
    ]

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
