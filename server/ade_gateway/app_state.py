"""Process-wide gateway state: one job manager, one engine, one translator client."""

from __future__ import annotations

import logging

from .core.engine import Engine
from .services.job_manager import JobManager
from .services.llm_client import ChatClient
from .services.translator import Translator

logger = logging.getLogger(__name__)


class GatewayState:
    """Holds the service instances shared by the HTTP and WebSocket layers."""

    def __init__(self, job_manager: JobManager | None = None, translator: Translator | None = None) -> None:
        self.job_manager = job_manager or JobManager()
        self.translator = translator or Translator(ChatClient())
        self.engine = Engine(self.job_manager, self.translator)

    async def close(self) -> None:
        """Stop running work and release the translator's HTTP client."""
        await self.job_manager.shutdown()
        await self.translator.client.aclose()
        logger.info("Gateway state closed")


_state: GatewayState | None = None


def get_gateway_state() -> GatewayState:
    """Get (or create) the singleton GatewayState."""
    global _state
    if _state is None:
        _state = GatewayState()
    return _state
