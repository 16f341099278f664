#!/usr/bin/env python
"""FastAPI server for the trendscout API."""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Add src directory to Python path for imports
src_dir = Path(__file__).parent.parent
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import close_stores, get_config, get_job_store, init_stores
from api.routers import analysis, core, history, workflow
from api.routers.core import API_VERSION
from utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    setup_logging(config.get("log_level", "INFO"), json_output=config.get("log_json", False))
    await init_stores()
    removed = await get_job_store().cleanup_old_jobs()
    if removed:
        logger.info(f"Removed {removed} finished jobs older than 7 days")
    logger.info("TrendScout API started")
    try:
        yield
    finally:
        await close_stores()


def create_app() -> FastAPI:
    app = FastAPI(title="TrendScout API", version=API_VERSION, lifespan=lifespan)

    # CORS middleware for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],  # Vite default port
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(core.router)
    app.include_router(workflow.router)
    app.include_router(analysis.router)
    app.include_router(history.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=False)
