"""Run the ADE Gateway with uvicorn: ``python -m ade_gateway``."""

from __future__ import annotations

import argparse

import uvicorn

from .config import config


def main() -> None:
    parser = argparse.ArgumentParser(description="ADE Gateway server")
    parser.add_argument("--host", default=config.host, help="Bind address")
    parser.add_argument("--port", type=int, default=config.port, help="Bind port")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    args = parser.parse_args()

    uvicorn.run(
        "ade_gateway.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
