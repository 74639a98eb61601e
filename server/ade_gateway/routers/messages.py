"""Natural-language message endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..auth import require_auth
from ..config import config
from ..core.engine import Engine
from ..deps import get_engine
from ..models.commands import EngineResult, MessageRequest

router = APIRouter(prefix="/api/messages", tags=["messages"], dependencies=[Depends(require_auth)])


@router.post("")
async def process_message(body: MessageRequest, engine: Engine = Depends(get_engine)) -> EngineResult:
    """Translate a message, run it, and return the user-facing reply.

    Waits for the job to finish; follow progress on the WebSocket meanwhile.
    """
    access_token = body.access_token or config.translator_token
    if not access_token:
        raise HTTPException(status_code=400, detail="No translation service access token configured")
    return await engine.process_message(body.owner, access_token, body.text)


@router.delete("/{owner}/history")
async def reset_history(owner: str, engine: Engine = Depends(get_engine)) -> dict:
    """Forget the owner's conversation history."""
    return {"success": engine.reset_context(owner)}
