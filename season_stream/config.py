"""
Configuration helpers for the FastAPI backend.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv


def _resolve_path(raw: str) -> Path:
    """Resolves a potentially relative path against the project root."""
    candidate = Path(raw).expanduser()
    if candidate.is_absolute():
        return candidate
    project_root = Path(__file__).resolve().parents[1]
    return (project_root / candidate).resolve()


@dataclass
class ServerSettings:
    """Settings object populated from environment variables."""

    project_root: Path = field(default_factory=lambda: _resolve_path("."))
    music_root: Path = field(default_factory=lambda: Path("/music"))
    cover_cache_dir: Path = field(default_factory=lambda: _resolve_path("public/covers"))
    public_dir: Path = field(default_factory=lambda: _resolve_path("public"))
    default_cover_url: str = "/default-cover.png"
    cors_origins: List[str] = field(default_factory=list)
    gzip_min_size: int = 512
    resolve_concurrency: int = 16
    cover_lock_timeout: float = 30.0
    cover_max_size: int = 500
    cover_jpeg_quality: int = 85
    stream_chunk_size: int = 64 * 1024
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"

    @classmethod
    def load(cls) -> "ServerSettings":
        load_dotenv()

        project_root = _resolve_path(".")
        music_root = _resolve_path(os.getenv("MUSIC_ROOT", "/music"))
        cover_cache_dir = _resolve_path(os.getenv("COVER_CACHE_DIR", "public/covers"))
        public_dir = _resolve_path(os.getenv("PUBLIC_DIR", "public"))
        default_cover_url = os.getenv("DEFAULT_COVER_URL", "/default-cover.png").strip() or "/default-cover.png"
        cors_raw = os.getenv("CORS_ORIGINS", "")
        cors_origins = [origin.strip() for origin in cors_raw.split(",") if origin.strip()]
        gzip_min_size = int(os.getenv("GZIP_MIN_SIZE", "512"))
        resolve_concurrency = max(1, int(os.getenv("RESOLVE_CONCURRENCY", "16")))
        cover_lock_timeout = float(os.getenv("COVER_LOCK_TIMEOUT", "30"))
        cover_max_size = max(0, int(os.getenv("COVER_MAX_SIZE", "500")))
        cover_jpeg_quality = min(95, max(1, int(os.getenv("COVER_JPEG_QUALITY", "85"))))
        stream_chunk_size = max(1024, int(os.getenv("STREAM_CHUNK_SIZE", str(64 * 1024))))
        host = os.getenv("HOST", "0.0.0.0")
        port = int(os.getenv("PORT", "3000"))
        log_level = (os.getenv("LOG_LEVEL", "info") or "info").strip().lower()

        return cls(
            project_root=project_root,
            music_root=music_root,
            cover_cache_dir=cover_cache_dir,
            public_dir=public_dir,
            default_cover_url=default_cover_url,
            cors_origins=cors_origins,
            gzip_min_size=gzip_min_size,
            resolve_concurrency=resolve_concurrency,
            cover_lock_timeout=cover_lock_timeout,
            cover_max_size=cover_max_size,
            cover_jpeg_quality=cover_jpeg_quality,
            stream_chunk_size=stream_chunk_size,
            host=host,
            port=port,
            log_level=log_level,
        )
