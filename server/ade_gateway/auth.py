"""API key authentication for the ADE Gateway."""

from __future__ import annotations

import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import config

_bearer = HTTPBearer(auto_error=False)


def is_valid_key(token: str | None) -> bool:
    return bool(token) and secrets.compare_digest(token.encode(), config.api_key.encode())


async def require_auth(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> None:
    """Validate the Bearer token against the configured API key."""
    if credentials and is_valid_key(credentials.credentials):
        return

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
        headers={"WWW-Authenticate": "Bearer"},
    )
