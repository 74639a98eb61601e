"""Environment-based configuration for the ADE Gateway."""

from __future__ import annotations

import os
import secrets
import shlex
from pathlib import Path


def _csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class GatewayConfig:
    """Gateway configuration loaded from environment variables."""

    def __init__(self) -> None:
        self.project_dir = Path(os.environ.get("PROJECT_DIR", os.getcwd()))
        self.host = os.environ.get("ADE_GATEWAY_HOST", "0.0.0.0")
        self.port = int(os.environ.get("ADE_GATEWAY_PORT", "8080"))
        self.log_level = os.environ.get("ADE_LOG_LEVEL", "INFO").upper()

        # Claude Code process
        self.claude_command: list[str] = shlex.split(os.environ.get("ADE_CLAUDE_COMMAND", "claude"))
        self.job_timeout = float(os.environ.get("ADE_JOB_TIMEOUT", "600"))
        self.kill_grace = float(os.environ.get("ADE_KILL_GRACE", "5"))
        self.allowed_tools: list[str] = _csv(os.environ.get("ADE_ALLOWED_TOOLS"))
        self.append_system_prompt = os.environ.get("ADE_APPEND_SYSTEM_PROMPT") or None

        # Translation service
        self.translator_base_url = os.environ.get(
            "ADE_TRANSLATOR_BASE_URL", "https://api.kimi.com/coding/v1"
        ).rstrip("/")
        self.translator_model = os.environ.get("ADE_TRANSLATOR_MODEL", "kimi-k2.5")
        self.translator_token = os.environ.get("ADE_TRANSLATOR_TOKEN", "")

        self.max_message_length = int(os.environ.get("ADE_MAX_MESSAGE_LENGTH", "4096"))

        # Derived paths
        self.ade_root = self.project_dir / ".ade"

        # API key auth
        self.api_key = os.environ.get("ADE_API_KEY") or self._load_or_create_api_key()

        # CORS origins (comma-separated)
        self.cors_origins: list[str] = _csv(os.environ.get("ADE_CORS_ORIGINS")) or ["*"]

    def _load_or_create_api_key(self) -> str:
        """Load API key from .ade/api-key.txt or generate a new one."""
        key_path = self.ade_root / "api-key.txt"
        if key_path.exists():
            return key_path.read_text().strip()

        key = secrets.token_urlsafe(32)
        self.ade_root.mkdir(parents=True, exist_ok=True)
        key_path.write_text(key)
        return key


# Singleton
config = GatewayConfig()
