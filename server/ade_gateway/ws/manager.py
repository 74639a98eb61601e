"""WebSocket connection manager that relays job progress events."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import WebSocket

from ..models.jobs import JobProgressEvent
from ..services.events import Subscription
from ..services.job_manager import JobManager

logger = logging.getLogger(__name__)

_ALL_JOBS = "_all"


class ConnectionManager:
    """Manages WebSocket connections and broadcasts job progress to them.

    Events are queued by a job manager subscription and sent by a single pump
    task, so every client sees them in emission order.
    """

    def __init__(self) -> None:
        # job id (or _ALL_JOBS) -> list of WebSocket connections
        self._connections: dict[str, list[WebSocket]] = {}
        # reverse lookup: ws -> job id filter
        self._ws_filter: dict[int, str] = {}
        self._events: asyncio.Queue[JobProgressEvent] = asyncio.Queue()
        self._subscription: Subscription | None = None
        self._pump_task: asyncio.Task | None = None

    @property
    def connection_count(self) -> int:
        return sum(len(conns) for conns in self._connections.values())

    async def connect(self, ws: WebSocket, job_id: str | None = None) -> None:
        await ws.accept()
        key = job_id or _ALL_JOBS
        self._connections.setdefault(key, []).append(ws)
        self._ws_filter[id(ws)] = key
        logger.info("WebSocket client connected for '%s' (%d total)", key, self.connection_count)

    def disconnect(self, ws: WebSocket) -> None:
        key = self._ws_filter.pop(id(ws), _ALL_JOBS)
        if key in self._connections:
            if ws in self._connections[key]:
                self._connections[key].remove(ws)
            if not self._connections[key]:
                del self._connections[key]
        logger.info("WebSocket client disconnected (%d total)", self.connection_count)

    async def broadcast(self, event: JobProgressEvent) -> None:
        """Send an event to clients watching all jobs or this job."""
        targets = self._connections.get(_ALL_JOBS, []) + self._connections.get(event.job_id, [])
        if not targets:
            return

        message = json.dumps({"type": "job_progress", "data": event.model_dump(mode="json")})
        disconnected: list[WebSocket] = []

        for ws in targets:
            try:
                await ws.send_text(message)
            except Exception:
                disconnected.append(ws)

        for ws in disconnected:
            self.disconnect(ws)

    def attach(self, job_manager: JobManager) -> None:
        """Subscribe to a job manager and start relaying its events."""
        self.detach()
        self._subscription = job_manager.subscribe(self._events.put_nowait)
        self._pump_task = asyncio.create_task(self._pump())
        logger.info("Progress relay started")

    def detach(self) -> None:
        if self._subscription:
            self._subscription.close()
            self._subscription = None
        if self._pump_task and not self._pump_task.done():
            self._pump_task.cancel()
            logger.info("Progress relay stopped")
        self._pump_task = None

    async def _pump(self) -> None:
        while True:
            event = await self._events.get()
            try:
                await self.broadcast(event)
            except Exception as exc:
                logger.error("Progress relay error: %s", exc)


# Singleton
ws_manager = ConnectionManager()
