"""Job, output chunk and progress event models."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class JobSubmission(BaseModel):
    owner: str
    command: str = Field(min_length=1)


class Job(BaseModel):
    id: str
    owner: str
    command: str
    status: JobStatus = JobStatus.QUEUED
    output: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def result_text(self) -> str:
        return "\n".join(self.output)


class ChunkKind(str, Enum):
    TEXT = "text"
    RESULT = "result"
    ERROR = "error"
    SYSTEM = "system"
    TOOL_USE = "tool_use"


class OutputChunk(BaseModel):
    """One normalized unit parsed from a line of process output."""

    kind: ChunkKind
    content: str
    timestamp: float = Field(default_factory=time.time)
    tool_name: str | None = None


class ProgressKind(str, Enum):
    STARTED = "started"
    OUTPUT = "output"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ProgressKind.COMPLETED, ProgressKind.FAILED, ProgressKind.CANCELLED)


class JobProgressEvent(BaseModel):
    job_id: str
    kind: ProgressKind
    content: str | None = None
    snapshot: Job
