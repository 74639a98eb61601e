"""Chat completion client for the translation service (OpenAI-compatible API)."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx

from ..config import config
from ..errors import TranslationServiceError
from ..models.commands import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 4096


class ChatClient:
    """Thin async wrapper around ``POST {base_url}/chat/completions``."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or config.translator_base_url).rstrip("/")
        self.model = model or config.translator_model
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def chat_completion(
        self,
        access_token: str,
        messages: Sequence[ChatMessage],
        *,
        model: str | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> str:
        """Send a chat request and return the first choice's content.

        Raises ``TranslationServiceError`` on a non-2xx response or an empty
        completion. Transport failures surface as ``httpx.HTTPError``.
        """
        model = model or self.model
        logger.debug("Chat request (%d messages, model %s)", len(messages), model)

        resp = await self._client.post(
            f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {access_token}"},
            json={
                "model": model,
                "messages": [m.model_dump() for m in messages],
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )
        if resp.status_code >= 400:
            raise TranslationServiceError(f"Translation API error: {resp.status_code} {resp.text[:500]}")

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise TranslationServiceError(f"Malformed translation API response: {exc}") from exc

        if not content:
            raise TranslationServiceError("Translation API returned an empty response")

        usage = data.get("usage") or {}
        logger.debug("Chat response (%s tokens)", usage.get("total_tokens", "?"))
        return content
