"""ADE Gateway: natural-language requests to supervised Claude Code jobs."""

__version__ = "0.1.0"
