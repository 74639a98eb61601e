"""Split long replies into transport-sized messages."""

from __future__ import annotations

import re

MAX_MESSAGE_LENGTH = 4096

_SENTENCE_END_RE = re.compile(r"[.!?](?=\s)")
_WHITESPACE_RE = re.compile(r"\s")


def _find_cut(text: str, max_length: int) -> int:
    """Index to cut ``text`` at so the head fits in ``max_length``.

    Preference: paragraph break, line break, sentence end, whitespace, hard cut.
    """
    for separator in ("\n\n", "\n"):
        index = text.rfind(separator, 0, max_length + len(separator))
        if index > 0:
            return index

    window = text[: max_length + 1]
    sentence_ends = [m.end() for m in _SENTENCE_END_RE.finditer(window) if m.end() <= max_length]
    if sentence_ends:
        return sentence_ends[-1]

    spaces = [m.start() for m in _WHITESPACE_RE.finditer(window) if m.start() > 0]
    if spaces:
        return spaces[-1]

    return max_length


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split ``text`` into chunks of at most ``max_length`` characters.

    Whitespace at each cut is trimmed; nothing else is dropped and no chunk
    is empty.
    """
    if max_length <= 0:
        raise ValueError("max_length must be positive")
    if not text.strip():
        return []
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    remaining = text.strip()
    while len(remaining) > max_length:
        cut = _find_cut(remaining, max_length)
        head = remaining[:cut].rstrip()
        if head:
            chunks.append(head)
        remaining = remaining[cut:].lstrip()
    if remaining:
        chunks.append(remaining)
    return chunks
