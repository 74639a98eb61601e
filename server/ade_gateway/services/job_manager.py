"""Job manager: queues Claude Code jobs and runs them one at a time."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from datetime import datetime, timezone

from ..config import config
from ..errors import AlreadyRunningError, InvalidTransitionError
from ..models.jobs import ChunkKind, Job, JobProgressEvent, JobStatus, OutputChunk, ProgressKind
from .claude_cli import BridgeState, ClaudeCodeBridge, ExecuteOptions
from .events import ProgressChannel, ProgressListener, Subscription

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
}

_PROGRESS_FOR_STATUS = {
    JobStatus.RUNNING: ProgressKind.STARTED,
    JobStatus.COMPLETED: ProgressKind.COMPLETED,
    JobStatus.FAILED: ProgressKind.FAILED,
    JobStatus.CANCELLED: ProgressKind.CANCELLED,
}


def default_execute_options() -> ExecuteOptions:
    return ExecuteOptions(
        cwd=config.project_dir,
        timeout=config.job_timeout,
        allowed_tools=list(config.allowed_tools),
        append_system_prompt=config.append_system_prompt,
    )


class JobManager:
    """Owns job identity and lifecycle, and serializes execution through one bridge.

    Jobs are only mutated here. Everything handed out (return values and
    event snapshots) is a copy.
    """

    def __init__(self, bridge: ClaudeCodeBridge | None = None, options: ExecuteOptions | None = None) -> None:
        self._bridge = bridge or ClaudeCodeBridge(default_timeout=config.job_timeout, kill_grace=config.kill_grace)
        self._options = options or default_execute_options()
        self._jobs: dict[str, Job] = {}
        self._queue: deque[str] = deque()
        self._drain_task: asyncio.Task | None = None
        self._channel = ProgressChannel()

    @property
    def bridge_state(self) -> BridgeState:
        return self._bridge.state

    async def is_available(self) -> bool:
        return await self._bridge.is_available()

    def create_job(self, owner: str, command: str) -> Job:
        """Queue a new job. Returns immediately; execution happens in the drain task."""
        job = Job(id=str(uuid.uuid4()), owner=str(owner), command=command)
        self._jobs[job.id] = job
        self._queue.append(job.id)

        logger.info("Job %s created for %s (command length %d)", job.id, job.owner, len(command))

        self._ensure_drain()
        return job.model_copy(deep=True)

    def get_job(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    def get_active_jobs(self, owner: str | None = None) -> list[Job]:
        return [
            job.model_copy(deep=True)
            for job in self._jobs.values()
            if job.status in (JobStatus.QUEUED, JobStatus.RUNNING) and (owner is None or job.owner == owner)
        ]

    def get_recent_jobs(self, owner: str | None = None, limit: int = 10) -> list[Job]:
        jobs = [job for job in self._jobs.values() if owner is None or job.owner == owner]
        jobs = sorted(jobs, key=lambda j: j.created_at, reverse=True)
        return [job.model_copy(deep=True) for job in jobs[: max(limit, 0)]]

    def cancel_job(self, job_id: str) -> bool:
        job = self._jobs.get(job_id)
        if not job:
            return False

        if job.status is JobStatus.QUEUED:
            try:
                self._queue.remove(job_id)
            except ValueError:
                pass
            self._transition(job, JobStatus.CANCELLED)
            logger.info("Queued job %s cancelled", job_id)
            return True

        if job.status is JobStatus.RUNNING:
            self._bridge.kill()
            self._transition(job, JobStatus.CANCELLED)
            logger.info("Running job %s cancelled", job_id)
            return True

        return False

    def subscribe(self, listener: ProgressListener, job_id: str | None = None) -> Subscription:
        """Register a progress listener, optionally scoped to a single job."""
        return self._channel.subscribe(listener, job_id=job_id)

    async def shutdown(self) -> None:
        """Cancel queued and running jobs and stop the drain task."""
        for job in list(self._jobs.values()):
            if not job.status.is_terminal:
                self.cancel_job(job.id)

        task, self._drain_task = self._drain_task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ── Internal ──────────────────────────────────────────────────────────

    def _ensure_drain(self) -> None:
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        """Run queued jobs strictly in FIFO order, one at a time."""
        while self._queue:
            job = self._jobs.get(self._queue.popleft())
            if not job or job.status is not JobStatus.QUEUED:
                continue
            await self._execute_job(job)

    async def _execute_job(self, job: Job) -> None:
        self._transition(job, JobStatus.RUNNING)

        if self._bridge.state is not BridgeState.IDLE:
            self._fail(job, AlreadyRunningError())
            return

        def on_output(chunk: OutputChunk) -> None:
            if job.status is not JobStatus.RUNNING:
                return
            if chunk.kind is ChunkKind.TEXT:
                job.output.append(chunk.content)
                self._emit(job, ProgressKind.OUTPUT, chunk.content)
            else:
                logger.debug("Job %s %s: %s", job.id, chunk.kind.value, chunk.content[:200])

        try:
            result = await self._bridge.execute(job.command, self._options, on_output=on_output)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if job.status is JobStatus.CANCELLED:
                logger.info("Job %s was cancelled; ignoring process failure: %s", job.id, exc)
                return
            self._fail(job, exc)
            return

        if job.status is JobStatus.CANCELLED:
            logger.info("Job %s finished after it was cancelled; keeping cancelled", job.id)
            return

        if not job.output and result:
            job.output.append(result)
        self._transition(job, JobStatus.COMPLETED, content=result)
        logger.info("Job %s completed in %.1fs", job.id, job.duration_seconds or 0.0)

    def _fail(self, job: Job, exc: Exception) -> None:
        self._transition(job, JobStatus.FAILED, content=str(exc), error=str(exc))
        logger.error("Job %s failed: %s", job.id, exc)

    def _transition(
        self,
        job: Job,
        status: JobStatus,
        *,
        content: str | None = None,
        error: str | None = None,
    ) -> None:
        if status not in _TRANSITIONS.get(job.status, frozenset()):
            raise InvalidTransitionError(f"Job {job.id}: {job.status.value} -> {status.value}")

        now = datetime.now(timezone.utc)
        job.status = status
        if status is JobStatus.RUNNING:
            job.started_at = now
        if status.is_terminal:
            job.completed_at = now
        if status is JobStatus.FAILED:
            job.error = error

        self._emit(job, _PROGRESS_FOR_STATUS[status], content)

    def _emit(self, job: Job, kind: ProgressKind, content: str | None = None) -> None:
        self._channel.publish(
            JobProgressEvent(job_id=job.id, kind=kind, content=content, snapshot=job.model_copy(deep=True))
        )
