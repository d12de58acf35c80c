"""Whole-file and partial-content audio responses."""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO, Generator, Optional, Tuple

from fastapi import status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from .ranges import ByteRange

DEFAULT_CHUNK_SIZE = 64 * 1024

_AUDIO_CONTENT_TYPES = {
    ".mp3": "audio/mpeg",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".wav": "audio/wav",
}


def guess_audio_type(path: Path) -> str:
    """Guess content type based on file extension."""
    return _AUDIO_CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")


def open_track(path: Path) -> Tuple[BinaryIO, int]:
    """Opens ``path`` for reading and returns the handle with its size.

    The size comes from the open descriptor, so it describes exactly the
    bytes the handle will serve. Raises ``OSError`` when the file cannot be
    opened or stat'd.
    """
    handle = path.open("rb")
    try:
        size = os.fstat(handle.fileno()).st_size
    except OSError:
        handle.close()
        raise
    return handle, size


def iter_file(handle: BinaryIO, start: int, end: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Generator[bytes, None, None]:
    with handle:
        handle.seek(start)
        bytes_remaining = end - start + 1
        while bytes_remaining > 0:
            read_size = min(chunk_size, bytes_remaining)
            chunk = handle.read(read_size)
            if not chunk:
                break
            yield chunk
            bytes_remaining -= len(chunk)


def build_stream_response(
    handle: BinaryIO,
    total_size: int,
    byte_range: Optional[ByteRange],
    media_type: str,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    include_body: bool = True,
) -> StreamingResponse:
    """Frame the open ``handle`` as a 200 or 206 response depending on ``byte_range``.

    The body is produced lazily in ``chunk_size`` pieces. The handle is closed
    once the body is exhausted, when the client goes away, or straight away
    for header-only responses.
    """
    start, end = (byte_range.start, byte_range.end) if byte_range is not None else (0, total_size - 1)
    if include_body:
        body = iter_file(handle, start, end, chunk_size)
    else:
        handle.close()
        body = iter(())

    # Closing is idempotent; this covers a body that was never iterated.
    cleanup = BackgroundTask(handle.close)

    if byte_range is not None:
        headers = {
            "Content-Range": byte_range.content_range(total_size),
            "Accept-Ranges": "bytes",
            "Content-Length": str(byte_range.length),
        }
        return StreamingResponse(
            body,
            status_code=status.HTTP_206_PARTIAL_CONTENT,
            media_type=media_type,
            headers=headers,
            background=cleanup,
        )

    headers = {
        "Content-Length": str(total_size),
        "Accept-Ranges": "bytes",
    }
    return StreamingResponse(body, media_type=media_type, headers=headers, background=cleanup)
