"""Loads the ADE protocol document used as the translator's system prompt."""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path

PROTOCOL_PATH = Path(__file__).parent.parent / "protocol.md"

_VERSION_RE = re.compile(r"Protocol version:\s*(.+)")


@lru_cache(maxsize=1)
def load_protocol() -> str:
    try:
        return PROTOCOL_PATH.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise FileNotFoundError(f"Protocol document not found at {PROTOCOL_PATH}") from None


def get_protocol_version() -> str:
    match = _VERSION_RE.search(load_protocol())
    return match.group(1).strip() if match else "unknown"


def clear_protocol_cache() -> None:
    load_protocol.cache_clear()
