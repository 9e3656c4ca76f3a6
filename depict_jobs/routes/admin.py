"""Queue administration endpoints."""

from fastapi import APIRouter, HTTPException, Depends, Request
from pydantic import BaseModel, Field
from typing import Literal
import logging

from depict_jobs.admin import DEFAULT_CLEAN_GRACE_MS, QueueAdmin
from depict_jobs.errors import JobNotFound, QueueNotFound

router = APIRouter()
logger = logging.getLogger(__name__)


class CleanRequest(BaseModel):
    """Request to clean finished jobs."""
    grace_ms: int = Field(default=DEFAULT_CLEAN_GRACE_MS, ge=0)
    state: str = "completed"


class CleanResponse(BaseModel):
    removed_count: int


class QueueActionResponse(BaseModel):
    queue_name: str
    status: Literal["paused", "resumed"]


def get_admin(request: Request) -> QueueAdmin:
    """Admin facade over the registry built at startup."""
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Job queues not initialized")
    return QueueAdmin(registry)


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e))


@router.get("/stats")
async def get_all_stats(admin: QueueAdmin = Depends(get_admin)):
    """Counts per state for every queue."""
    return await admin.get_all_queues_stats()


@router.get("/queue/{name}/stats")
async def get_queue_stats(name: str, admin: QueueAdmin = Depends(get_admin)):
    try:
        return await admin.get_queue_stats(name)
    except QueueNotFound as e:
        raise _not_found(e)


@router.get("/queue/{name}/jobs")
async def list_jobs(
    name: str,
    state: str = "failed",
    start: int = 0,
    end: int = 49,
    admin: QueueAdmin = Depends(get_admin),
):
    """List jobs in a state (failed by default), terminal states newest first."""
    try:
        return await admin.get_jobs(name, state, start, end)
    except QueueNotFound as e:
        raise _not_found(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/job/{queue}/{job_id}")
async def get_job(queue: str, job_id: str, admin: QueueAdmin = Depends(get_admin)):
    try:
        return await admin.get_job(queue, job_id)
    except (QueueNotFound, JobNotFound) as e:
        raise _not_found(e)


@router.post("/queue/{name}/pause", response_model=QueueActionResponse)
async def pause_queue(name: str, admin: QueueAdmin = Depends(get_admin)):
    try:
        await admin.pause_queue(name)
    except QueueNotFound as e:
        raise _not_found(e)
    return QueueActionResponse(queue_name=name, status="paused")


@router.post("/queue/{name}/resume", response_model=QueueActionResponse)
async def resume_queue(name: str, admin: QueueAdmin = Depends(get_admin)):
    try:
        await admin.resume_queue(name)
    except QueueNotFound as e:
        raise _not_found(e)
    return QueueActionResponse(queue_name=name, status="resumed")


@router.post("/queue/{name}/clean", response_model=CleanResponse)
async def clean_queue(name: str, request: CleanRequest, admin: QueueAdmin = Depends(get_admin)):
    """Remove completed or failed jobs older than grace_ms."""
    try:
        removed = await admin.clean_queue(name, request.grace_ms, request.state)
    except QueueNotFound as e:
        raise _not_found(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return CleanResponse(removed_count=removed)


@router.post("/job/{queue}/{job_id}/retry")
async def retry_job(queue: str, job_id: str, admin: QueueAdmin = Depends(get_admin)):
    try:
        return await admin.retry_job(queue, job_id)
    except (QueueNotFound, JobNotFound) as e:
        raise _not_found(e)


@router.delete("/job/{queue}/{job_id}")
async def remove_job(queue: str, job_id: str, admin: QueueAdmin = Depends(get_admin)):
    try:
        job = await admin.remove_job(queue, job_id)
    except (QueueNotFound, JobNotFound) as e:
        raise _not_found(e)
    return {"removed": True, "job_id": job["id"]}
