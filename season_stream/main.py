"""
FastAPI application that exposes a year/season music tree as JSON APIs and audio streams.
"""

from __future__ import annotations

import functools
import logging
from pathlib import Path
from typing import BinaryIO, List, Optional, Tuple

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.types import ASGIApp, Receive, Scope, Send

from .config import ServerSettings
from .schemas import ErrorResponse, TrackDescriptor
from .services import (
    CatalogError,
    CatalogNotFoundError,
    CoverCache,
    CoverResolver,
    DirectoryCatalog,
    InvalidRangeError,
    TrackMetadataResolver,
    build_stream_response,
    describe_tracks,
    encode_jpeg,
    guess_audio_type,
    open_track,
    parse_range,
)

logger = logging.getLogger(__name__)

FILE_NOT_FOUND = "File not found"


class ListingGZipMiddleware(GZipMiddleware):
    """GZip for JSON listings; media routes pass through so byte offsets stay exact."""

    def __init__(self, app: ASGIApp, minimum_size: int = 500, exclude_prefixes: tuple[str, ...] = ()):
        super().__init__(app, minimum_size=minimum_size)
        self.exclude_prefixes = exclude_prefixes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"].startswith(self.exclude_prefixes):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


def create_app(settings: Optional[ServerSettings] = None) -> FastAPI:
    settings = settings or ServerSettings.load()

    catalog = DirectoryCatalog(settings.music_root)
    cover_cache = CoverCache(settings.cover_cache_dir)
    cover_cache.ensure_ready()
    cover_resolver = CoverResolver(
        cover_cache,
        settings.default_cover_url,
        encoder=functools.partial(
            encode_jpeg,
            max_size=settings.cover_max_size or None,
            quality=settings.cover_jpeg_quality,
        ),
        lock_timeout=settings.cover_lock_timeout,
    )
    metadata_resolver = TrackMetadataResolver()

    app = FastAPI(
        title="Season Stream API",
        version="0.1.0",
        description="REST API that lists a year/season music library and streams its tracks.",
    )

    app.state.settings = settings
    app.state.catalog = catalog
    app.state.cover_cache = cover_cache
    app.state.cover_resolver = cover_resolver
    app.state.metadata_resolver = metadata_resolver

    logger.info("Serving music from %s, covers cached in %s", settings.music_root, settings.cover_cache_dir)

    if settings.cors_origins:
        logger.info("Configuring CORS for origins: %s", settings.cors_origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(
        ListingGZipMiddleware,
        minimum_size=settings.gzip_min_size,
        exclude_prefixes=("/stream/", "/covers/"),
    )

    _register_exception_handlers(app)
    _register_routes(app)

    if settings.public_dir.is_dir():
        app.mount("/", StaticFiles(directory=settings.public_dir, html=True), name="frontend")
    else:
        logger.info("Static frontend directory %s not found; serving API only", settings.public_dir)

    return app


def get_settings(request: Request) -> ServerSettings:
    return request.app.state.settings


def get_catalog(request: Request) -> DirectoryCatalog:
    return request.app.state.catalog


def get_cover_cache(request: Request) -> CoverCache:
    return request.app.state.cover_cache


def get_cover_resolver(request: Request) -> CoverResolver:
    return request.app.state.cover_resolver


def get_metadata_resolver(request: Request) -> TrackMetadataResolver:
    return request.app.state.metadata_resolver


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CatalogNotFoundError)
    async def catalog_not_found(request: Request, exc: CatalogNotFoundError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=status.HTTP_404_NOT_FOUND)

    @app.exception_handler(CatalogError)
    async def catalog_failure(request: Request, exc: CatalogError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _register_routes(app: FastAPI) -> None:
    error_responses = {
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    }

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/years", response_model=List[str], responses=error_responses)
    async def list_years(catalog: DirectoryCatalog = Depends(get_catalog)) -> List[str]:
        return await run_in_threadpool(catalog.list_years)

    @app.get("/api/seasons/{year}", response_model=List[str], responses=error_responses)
    async def list_seasons(year: str, catalog: DirectoryCatalog = Depends(get_catalog)) -> List[str]:
        return await run_in_threadpool(catalog.list_seasons, year)

    @app.get("/api/files/{year}/{season}", response_model=List[TrackDescriptor], responses=error_responses)
    async def list_files(
        year: str,
        season: str,
        catalog: DirectoryCatalog = Depends(get_catalog),
        metadata_resolver: TrackMetadataResolver = Depends(get_metadata_resolver),
        cover_resolver: CoverResolver = Depends(get_cover_resolver),
        settings: ServerSettings = Depends(get_settings),
    ) -> List[TrackDescriptor]:
        tracks = await run_in_threadpool(catalog.list_files, year, season)
        return await describe_tracks(
            catalog.root / year / season,
            tracks,
            metadata_resolver,
            cover_resolver,
            concurrency=settings.resolve_concurrency,
        )

    @app.api_route("/stream/{year}/{season}/{file_name}", methods=["GET", "HEAD"])
    async def stream_track(
        year: str,
        season: str,
        file_name: str,
        request: Request,
        catalog: DirectoryCatalog = Depends(get_catalog),
        settings: ServerSettings = Depends(get_settings),
    ) -> Response:
        def open_resolved() -> Tuple[Path, BinaryIO, int]:
            path = catalog.resolve_track(year, season, file_name)
            handle, file_size = open_track(path)
            return path, handle, file_size

        try:
            path, handle, file_size = await run_in_threadpool(open_resolved)
        except (CatalogError, OSError) as exc:
            logger.info("Cannot open %s/%s/%s: %s", year, season, file_name, exc)
            return JSONResponse({"error": FILE_NOT_FOUND}, status_code=status.HTTP_404_NOT_FOUND)

        try:
            byte_range = parse_range(request.headers.get("range"), file_size)
        except InvalidRangeError as exc:
            handle.close()
            logger.info("Rejecting range for %s: %s", file_name, exc)
            return JSONResponse(
                {"error": "Requested range not satisfiable"},
                status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
                headers={"Content-Range": f"bytes */{file_size}"},
            )

        return build_stream_response(
            handle,
            file_size,
            byte_range,
            guess_audio_type(path),
            chunk_size=settings.stream_chunk_size,
            include_body=request.method != "HEAD",
        )

    @app.get("/covers/{file_name}")
    async def get_cover(
        file_name: str,
        cover_cache: CoverCache = Depends(get_cover_cache),
        settings: ServerSettings = Depends(get_settings),
    ) -> Response:
        path: Optional[Path] = cover_cache.lookup(file_name)
        if path is None:
            return RedirectResponse(settings.default_cover_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
        return FileResponse(path, media_type="image/jpeg")
