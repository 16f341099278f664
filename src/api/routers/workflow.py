"""Workflow routes: synchronous runs and background jobs with live progress."""

import asyncio
import logging
import uuid

from api.dependencies import get_job_store, get_workflow
from api.job_store import JobStatus, JobStore
from api.schemas import (
    ErrorResponse,
    JobCreatedResponse,
    JobResponse,
    WorkflowRunRequest,
    WorkflowRunResponse,
)
from api.websocket_manager import WebSocketManager
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from models.video import SearchFilters
from models.workflow import StageEvent, WorkflowRequest, WorkflowResult, WorkflowStage
from services.errors import WorkflowError
from services.workflow import TrendWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Workflow"])

# WebSocket manager for job progress
ws_manager = WebSocketManager()

# Keep references to background tasks to prevent garbage collection
_background_tasks: set = set()

STAGE_PERCENT = {
    WorkflowStage.QUERIES_GENERATED: 25,
    WorkflowStage.VIDEOS_SCRAPED: 50,
    WorkflowStage.VIDEOS_ANALYZED: 75,
    WorkflowStage.STRATEGY_BUILT: 100,
}


def to_workflow_request(body: WorkflowRunRequest) -> WorkflowRequest:
    """Translate the API body into a WorkflowRequest.

    Raises:
        HTTPException: 400 if the request fails validation
    """
    filters = None
    if body.filters:
        filters = SearchFilters(
            sort_mode=body.filters.sort_mode,
            recency_days=body.filters.recency_days,
            region=body.filters.region,
        )
    try:
        return WorkflowRequest(
            business_description=body.business_description,
            owner_id=body.owner_id,
            videos_per_query=body.videos_per_query,
            filters=filters,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def result_to_dict(result: WorkflowResult) -> dict:
    return {
        "run_id": result.run_id,
        "queries": [q.text for q in result.queries],
        "staged_videos": len(result.staged_videos),
        "analyzed_videos": len(result.analyzed_videos),
        "strategy": result.strategy.to_dict(),
    }


def workflow_error_response(error: WorkflowError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": str(error), "stage": error.stage})


@router.post(
    "/api/workflow/run",
    response_model=WorkflowRunResponse,
    summary="Run the trend workflow",
    description="Generate queries, stage and analyze videos and synthesize a strategy in one request.",
    responses={400: {"description": "Invalid request"}, 502: {"model": ErrorResponse}},
)
async def run_workflow(
    body: WorkflowRunRequest,
    workflow: TrendWorkflow = Depends(get_workflow),
):
    request = to_workflow_request(body)
    try:
        result = await workflow.run(request)
    except WorkflowError as e:
        return workflow_error_response(e)
    return result_to_dict(result)


async def run_workflow_job(
    job_id: str, request: WorkflowRequest, workflow: TrendWorkflow, job_store: JobStore
) -> None:
    """Run a workflow in the background, mirroring progress to the job row and sockets."""

    async def on_stage(event: StageEvent) -> None:
        progress = {
            "stage": event.stage.value,
            "percent": STAGE_PERCENT.get(event.stage, 0),
            "message": event.message or f"{event.stage.value}: {event.count}",
        }
        await job_store.update_job(job_id, data={"progress": progress})
        await ws_manager.broadcast(job_id, {"type": "progress", **event.to_dict(), **progress})

    await job_store.update_job(job_id, status=JobStatus.PROCESSING)
    try:
        result = await workflow.run(request, progress_callback=on_stage, run_id=job_id)
    except WorkflowError as e:
        await job_store.update_job(job_id, status=JobStatus.FAILED, error=str(e))
        await ws_manager.broadcast(
            job_id, {"type": "error", "job_id": job_id, "stage": e.stage, "message": str(e)}
        )
        ws_manager.schedule_cleanup(job_id)
        return
    except Exception as e:
        logger.exception(f"Workflow job {job_id} crashed")
        await job_store.update_job(job_id, status=JobStatus.FAILED, error=str(e))
        await ws_manager.broadcast(job_id, {"type": "error", "job_id": job_id, "message": str(e)})
        ws_manager.schedule_cleanup(job_id)
        return

    payload = result_to_dict(result)
    await job_store.update_job(job_id, status=JobStatus.COMPLETED, data={"result": payload})
    await ws_manager.broadcast(job_id, {"type": "complete", "job_id": job_id, "result": payload})
    ws_manager.schedule_cleanup(job_id)


@router.post(
    "/api/workflow/jobs",
    status_code=202,
    response_model=JobCreatedResponse,
    summary="Start a workflow job",
    description="Start the workflow in the background. Progress streams over /ws/workflow/{job_id}.",
)
async def start_workflow_job(
    body: WorkflowRunRequest,
    workflow: TrendWorkflow = Depends(get_workflow),
    job_store: JobStore = Depends(get_job_store),
) -> dict:
    request = to_workflow_request(body)
    job_id = str(uuid.uuid4())
    await job_store.create_job(
        job_id,
        "workflow",
        {
            "business_description": request.business_description,
            "owner_id": request.owner_id,
            "videos_per_query": request.videos_per_query,
        },
    )

    # Store task reference to prevent GC
    task = asyncio.create_task(run_workflow_job(job_id, request, workflow, job_store))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    logger.info(f"Started workflow job {job_id}")
    return {"job_id": job_id, "message": "Workflow started"}


@router.get(
    "/api/workflow/jobs",
    response_model=list[JobResponse],
    summary="List workflow jobs",
    description="Workflow jobs, newest first.",
)
async def list_workflow_jobs(
    limit: int = Query(default=20, ge=1, le=100),
    job_store: JobStore = Depends(get_job_store),
) -> list[dict]:
    return await job_store.list_jobs("workflow", limit=limit)


@router.get(
    "/api/workflow/jobs/{job_id}",
    response_model=JobResponse,
    summary="Get workflow job",
    responses={404: {"description": "Job not found"}},
)
async def get_workflow_job(job_id: str, job_store: JobStore = Depends(get_job_store)) -> dict:
    job = await job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.websocket("/ws/workflow/{job_id}")
async def workflow_websocket(websocket: WebSocket, job_id: str) -> None:
    """Stream progress events of one job until the client disconnects."""
    await ws_manager.connect(job_id, websocket)
    try:
        while True:
            # Keep connection alive; clients may send pings
            await websocket.receive_text()
    except WebSocketDisconnect:
        ws_manager.disconnect(job_id, websocket)
