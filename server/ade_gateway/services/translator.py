"""Translation between user messages and ADE commands, and back."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

import httpx
from pydantic import ValidationError

from ..errors import CommandParseError, TranslationServiceError
from ..models.commands import ADECommand, ChatMessage
from .llm_client import ChatClient
from .protocol_loader import load_protocol

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 10

UNCLEAR_REQUEST = "I could not understand your request. Could you rephrase it?"
SERVICE_UNAVAILABLE = "The translation service is unavailable right now. Please try again in a moment."

_COMMAND_SCHEMA = (
    '{ "action": string, "agent": string, "command": string, "args": object, '
    '"confidence": number, "rawPrompt": string, "clarification": string|null }'
)

_HUMANIZE_PROMPT = """\
You are translating ADE (development engine) output into a user-friendly chat message.
Rules:
- Keep it concise (under 3000 chars)
- Respond in the same language the user used
- Use only simple chat markdown: *bold*, _italic_, `inline code`, ```code blocks```
- No # headers, no [links](url), no > blockquotes
- Summarize long outputs: focus on what was DONE and what the NEXT STEPS are
- Use bullet points (•) for lists
- If the ADE created files, list the key files created
- If there was an error, explain it simply and suggest what to do
- Never expose internal errors, stack traces, or API keys"""

_FENCE_RE = re.compile(r"```(?:json)?\n?")
_HEADER_RE = re.compile(r"^#{1,6}\s+(.+)$", re.MULTILINE)
_DOUBLE_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_QUOTE_RE = re.compile(r"^>\s?(.*)$", re.MULTILINE)
_BULLET_RE = re.compile(r"^(\s*)[-*]\s+", re.MULTILINE)


def parse_command(response: str) -> ADECommand:
    """Parse a translator reply (possibly wrapped in a code fence) into a command."""
    payload = _FENCE_RE.sub("", response).strip()
    try:
        return ADECommand.model_validate_json(payload)
    except ValidationError as exc:
        raise CommandParseError(f"Invalid ADE command: {exc.error_count()} validation error(s)") from exc


def sanitize_markdown(text: str) -> str:
    """Convert GitHub-style markdown into the simpler chat dialect."""
    text = _HEADER_RE.sub(r"*\1*", text)
    text = _DOUBLE_BOLD_RE.sub(r"*\1*", text)
    text = _LINK_RE.sub(r"\1 (\2)", text)
    text = _QUOTE_RE.sub(r"│ \1", text)
    return _BULLET_RE.sub(r"\1• ", text)


class Translator:
    """Client of the translation service.

    ``to_command`` always returns a command, degrading to a clarification
    request when the service fails. ``to_user`` raises, and the caller falls
    back to the raw output.
    """

    def __init__(self, client: ChatClient | None = None) -> None:
        self.client = client or ChatClient()

    async def to_command(
        self,
        access_token: str,
        message: str,
        history: Sequence[ChatMessage] = (),
    ) -> ADECommand:
        system = ChatMessage(
            role="system",
            content=f"{load_protocol()}\n\n---\n\n"
            f"Respond ONLY with a valid JSON object matching this schema:\n{_COMMAND_SCHEMA}",
        )
        history = list(history)
        # Callers usually record the message before translating it
        if history and history[-1].role == "user" and history[-1].content == message:
            history.pop()
        messages = [system, *history[-HISTORY_WINDOW:], ChatMessage(role="user", content=message)]

        logger.debug("Translating user message to ADE (length %d)", len(message))
        try:
            response = await self.client.chat_completion(access_token, messages)
        except (httpx.HTTPError, TranslationServiceError) as exc:
            logger.error("Translation service call failed: %s", exc)
            return ADECommand.clarify(SERVICE_UNAVAILABLE)

        try:
            return parse_command(response)
        except CommandParseError as exc:
            logger.error("Failed to parse ADE command (%s): %s", exc, response[:500])
            return ADECommand.clarify(UNCLEAR_REQUEST)

    async def to_user(self, access_token: str, output: str, context: str = "") -> str:
        messages = [
            ChatMessage(role="system", content=_HUMANIZE_PROMPT),
            ChatMessage(
                role="user",
                content=f"Context: {context}\n\nADE Output:\n{output}\n\n"
                "Translate this into a user-friendly chat message.",
            ),
        ]
        logger.debug("Translating ADE output to user (length %d)", len(output))
        response = await self.client.chat_completion(access_token, messages)
        return sanitize_markdown(response)
