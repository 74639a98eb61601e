"""FastAPI application for the ADE Gateway."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .app_state import get_gateway_state
from .auth import is_valid_key
from .config import config
from .routers.health import router as health_router
from .routers.jobs import router as jobs_router
from .routers.messages import router as messages_router
from .ws.manager import ws_manager

logging.basicConfig(level=config.log_level, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("ADE Gateway starting on %s:%d", config.host, config.port)
    logger.info("Project directory: %s", config.project_dir)

    state = get_gateway_state()
    if await state.job_manager.is_available():
        logger.info("Claude Code executable found: %s", " ".join(config.claude_command))
    else:
        logger.warning("Claude Code executable not available (%s); jobs will fail", " ".join(config.claude_command))

    ws_manager.attach(state.job_manager)

    yield

    ws_manager.detach()
    await state.close()

    logger.info("ADE Gateway stopped")


app = FastAPI(
    title="ADE Gateway",
    description="HTTP/WebSocket gateway from natural-language requests to Claude Code jobs",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(messages_router)
app.include_router(jobs_router)


@app.websocket("/api/ws")
async def websocket_endpoint(ws: WebSocket, token: str | None = None, job: str | None = None):
    """WebSocket endpoint for live job progress.

    Authentication via query param: ws://host/api/ws?token=<api-key>&job=<id>
    """
    if not is_valid_key(token):
        await ws.close(code=4001, reason="Unauthorized")
        return

    await ws_manager.connect(ws, job_id=job)
    try:
        while True:
            # We don't expect client messages, but reading detects disconnects
            await ws.receive_text()
    except WebSocketDisconnect:
        ws_manager.disconnect(ws)
    except Exception:
        ws_manager.disconnect(ws)
