"""Builds season listings by resolving metadata and covers concurrently."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Sequence

from fastapi.concurrency import run_in_threadpool

from ..schemas import TrackDescriptor
from .catalog import TrackRef
from .covers import CoverResolver
from .metadata import TrackMetadataResolver

logger = logging.getLogger(__name__)


async def describe_tracks(
    season_dir: Path,
    tracks: Sequence[TrackRef],
    metadata_resolver: TrackMetadataResolver,
    cover_resolver: CoverResolver,
    *,
    concurrency: int = 16,
) -> List[TrackDescriptor]:
    """Resolves every track of a season, at most ``concurrency`` at a time.

    Results come back in the order of ``tracks`` regardless of which
    resolution finishes first.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _describe(track: TrackRef) -> TrackDescriptor:
        file_path = season_dir / track.file_name
        async with semaphore:
            metadata, cover = await asyncio.gather(
                run_in_threadpool(metadata_resolver.resolve, file_path, track.file_name),
                run_in_threadpool(cover_resolver.resolve, file_path, track.cache_key),
            )
        return TrackDescriptor(
            artist=metadata.artist,
            title=metadata.title,
            ext=track.extension,
            cover=cover,
            url=track.stream_url,
        )

    descriptors = await asyncio.gather(*(_describe(track) for track in tracks))
    logger.debug("Described %d tracks in %s", len(descriptors), season_dir)
    return list(descriptors)
