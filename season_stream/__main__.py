"""Command-line entry point: ``python -m season_stream``."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

import uvicorn

from .config import ServerSettings
from .main import create_app


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve a year/season music library over HTTP.")
    parser.add_argument("--host", help="Bind address (default: $HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Bind port (default: $PORT or 3000)")
    parser.add_argument("--music-root", help="Override $MUSIC_ROOT")
    parser.add_argument("--log-level", help="Override $LOG_LEVEL")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    settings = ServerSettings.load()
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    if args.music_root:
        settings.music_root = Path(args.music_root).expanduser().resolve()
    if args.log_level:
        settings.log_level = args.log_level.lower()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
