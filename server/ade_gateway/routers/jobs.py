"""Job submission and management endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth import require_auth
from ..deps import get_job_manager
from ..models.jobs import JobSubmission
from ..services.job_manager import JobManager

router = APIRouter(prefix="/api/jobs", tags=["jobs"], dependencies=[Depends(require_auth)])


@router.post("")
async def submit_job(body: JobSubmission, jobs: JobManager = Depends(get_job_manager)) -> dict:
    """Queue a command for Claude Code directly, without translation."""
    job = jobs.create_job(body.owner, body.command)
    return {"job": job.model_dump(mode="json")}


@router.get("")
async def list_jobs(
    owner: str | None = None,
    limit: int = Query(10, ge=1, le=100),
    jobs: JobManager = Depends(get_job_manager),
) -> dict:
    """List recent jobs, newest first."""
    return {"jobs": [j.model_dump(mode="json") for j in jobs.get_recent_jobs(owner, limit)]}


@router.get("/active")
async def list_active_jobs(owner: str | None = None, jobs: JobManager = Depends(get_job_manager)) -> dict:
    """List queued and running jobs."""
    return {"jobs": [j.model_dump(mode="json") for j in jobs.get_active_jobs(owner)]}


@router.get("/{job_id}")
async def get_job(job_id: str, jobs: JobManager = Depends(get_job_manager)) -> dict:
    """Get job detail."""
    job = jobs.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return {"job": job.model_dump(mode="json")}


@router.post("/{job_id}/cancel")
async def cancel_job(job_id: str, jobs: JobManager = Depends(get_job_manager)) -> dict:
    """Cancel a queued or running job."""
    if not jobs.cancel_job(job_id):
        raise HTTPException(status_code=400, detail="Job cannot be cancelled (not found or already finished)")
    return {"success": True, "jobId": job_id}
