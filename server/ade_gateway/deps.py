"""FastAPI dependencies for shared gateway state."""

from __future__ import annotations

from fastapi import Depends

from .app_state import GatewayState, get_gateway_state
from .core.engine import Engine
from .services.job_manager import JobManager


async def get_state() -> GatewayState:
    return get_gateway_state()


async def get_job_manager(state: GatewayState = Depends(get_state)) -> JobManager:
    return state.job_manager


async def get_engine(state: GatewayState = Depends(get_state)) -> Engine:
    return state.engine
