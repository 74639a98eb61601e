"""Parser for Claude Code's newline-delimited ``stream-json`` output.

The format is not guaranteed stable across CLI versions, so parsing never
raises: anything that is not a recognized JSON event degrades to raw text.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

from ..models.jobs import ChunkKind, OutputChunk

logger = logging.getLogger(__name__)


def summarize_tool(tool_name: str, tool_input: dict[str, Any] | None = None) -> str:
    """Short human-readable description of a tool invocation."""
    tool_input = tool_input if isinstance(tool_input, dict) else {}
    if tool_name == "Read":
        return f"Reading {tool_input.get('file_path', 'file')}"
    if tool_name == "Write":
        return f"Writing {tool_input.get('file_path', 'file')}"
    if tool_name == "Edit":
        return f"Editing {tool_input.get('file_path', 'file')}"
    if tool_name == "Bash":
        return f"Running: {str(tool_input.get('command', ''))[:80]}"
    if tool_name == "Glob":
        return f"Searching files: {tool_input.get('pattern', '')}"
    if tool_name == "Grep":
        return f"Searching code: {tool_input.get('pattern', '')}"
    if tool_name == "Task":
        return f"Running subtask: {str(tool_input.get('description', ''))[:60]}"
    return f"Using tool: {tool_name}"


class StreamParser:
    """Incrementally turns stdout bytes into ``OutputChunk`` values.

    Text chunks are also accumulated into ``result``, which is what the
    bridge hands back once the process exits.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._parts: list[str] = []
        self._errors: list[str] = []

    @property
    def result(self) -> str:
        return "\n".join(self._parts)

    @property
    def errors(self) -> str:
        return "\n".join(self._errors)

    def feed(self, data: bytes) -> list[OutputChunk]:
        """Consume a block of stdout and return chunks for every complete line."""
        self._buffer += self._decoder.decode(data)
        *lines, self._buffer = self._buffer.split("\n")
        chunks: list[OutputChunk] = []
        for line in lines:
            chunks.extend(self.parse_line(line))
        return chunks

    def finish(self) -> list[OutputChunk]:
        """Flush the decoder and parse any leftover partial line."""
        remainder = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self.parse_line(remainder)

    def parse_line(self, line: str) -> list[OutputChunk]:
        line = line.strip()
        if not line:
            return []

        try:
            event = json.loads(line)
        except (ValueError, RecursionError):
            # Deeply nested arrays exhaust the decoder's recursion limit
            event = None

        if not isinstance(event, dict):
            return [self._text(line)]

        event_type = event.get("type")
        if event_type == "assistant":
            return self._parse_assistant(event)
        if event_type == "result":
            return [self._parse_result(event)]
        if event_type == "system":
            message = event.get("message") or event.get("subtype") or ""
            return [OutputChunk(kind=ChunkKind.SYSTEM, content=str(message))]
        if event_type == "error":
            error = event.get("error") or event.get("message") or ""
            if isinstance(error, dict):
                error = error.get("message", json.dumps(error))
            return [self._error(str(error))]

        logger.debug("Ignoring stream event of type %r", event_type)
        return []

    # ── Internal ──────────────────────────────────────────────────────────

    def _text(self, content: str) -> OutputChunk:
        self._parts.append(content)
        return OutputChunk(kind=ChunkKind.TEXT, content=content)

    def _error(self, content: str) -> OutputChunk:
        if content:
            self._errors.append(content)
        return OutputChunk(kind=ChunkKind.ERROR, content=content)

    def _parse_assistant(self, event: dict[str, Any]) -> list[OutputChunk]:
        message = event.get("message")
        if not isinstance(message, dict):
            return []

        content = message.get("content")
        if isinstance(content, str):
            return [self._text(content)] if content else []
        if not isinstance(content, list):
            return []

        chunks: list[OutputChunk] = []
        for block in content:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text" and isinstance(block.get("text"), str):
                chunks.append(self._text(block["text"]))
            elif block.get("type") == "tool_use":
                tool_name = str(block.get("name") or "unknown")
                chunks.append(
                    OutputChunk(
                        kind=ChunkKind.TOOL_USE,
                        content=summarize_tool(tool_name, block.get("input")),
                        tool_name=tool_name,
                    )
                )
        return chunks

    def _parse_result(self, event: dict[str, Any]) -> OutputChunk:
        result = event.get("result")
        result = result if isinstance(result, str) else ""
        if event.get("is_error"):
            return self._error(result)
        if result and result not in self._parts:
            self._parts.append(result)
        return OutputChunk(kind=ChunkKind.RESULT, content=result)
