"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..deps import get_job_manager
from ..services.job_manager import JobManager
from ..services.protocol_loader import get_protocol_version

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def health_check(jobs: JobManager = Depends(get_job_manager)) -> dict:
    """Report whether Claude Code can be launched and how busy the queue is."""
    available = await jobs.is_available()
    return {
        "status": "ok" if available else "degraded",
        "version": "0.1.0",
        "protocolVersion": get_protocol_version(),
        "claudeAvailable": available,
        "bridge": jobs.bridge_state.value,
        "activeJobs": len(jobs.get_active_jobs()),
    }
