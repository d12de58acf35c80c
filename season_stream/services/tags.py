"""Tag reading for mp3/flac/ogg/wav files backed by mutagen."""

from __future__ import annotations

import base64
import binascii
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

from mutagen import File as MutagenFile
from mutagen import MutagenError
from mutagen.flac import FLAC, Picture
from mutagen.id3 import ID3
from mutagen.mp4 import MP4Tags

logger = logging.getLogger(__name__)

# ID3 frame, Vorbis comment and MP4 atom names, in lookup order.
_ARTIST_KEYS = ("TPE1", "artist", "\xa9ART")
_TITLE_KEYS = ("TIT2", "title", "\xa9nam")


class TagReadError(Exception):
    """Raised when an audio file's tags cannot be parsed."""


@dataclass(frozen=True)
class TrackTags:
    artist: Optional[str] = None
    title: Optional[str] = None
    picture: Optional[bytes] = None


def read_tags(path: Path, *, with_picture: bool = False) -> TrackTags:
    """Reads artist, title and (optionally) the first embedded picture.

    Files mutagen does not recognise yield an empty ``TrackTags``; files it
    recognises but cannot parse raise ``TagReadError``.
    """
    try:
        audio = MutagenFile(str(path))
    except (MutagenError, OSError, ValueError) as exc:
        raise TagReadError(f"{Path(path).name}: {exc}") from exc

    if audio is None:
        return TrackTags()

    tags = audio.tags
    picture = _first_picture(audio) if with_picture else None
    if tags is None:
        return TrackTags(picture=picture)

    return TrackTags(
        artist=_first_text(tags, _ARTIST_KEYS),
        title=_first_text(tags, _TITLE_KEYS),
        picture=picture,
    )


def _first_text(tags: Any, keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        try:
            value = tags.get(key)
        except (KeyError, ValueError):
            continue
        if value is None:
            continue
        texts = getattr(value, "text", value)
        if isinstance(texts, str):
            texts = [texts]
        for text in texts:
            stripped = str(text).strip()
            if stripped:
                return stripped
    return None


def _first_picture(audio: Any) -> Optional[bytes]:
    if isinstance(audio, FLAC) and audio.pictures:
        return audio.pictures[0].data

    tags = audio.tags
    if tags is None:
        return None
    if isinstance(tags, ID3):
        frames = tags.getall("APIC")
        return frames[0].data if frames else None
    if isinstance(tags, MP4Tags):
        covers = tags.get("covr")
        return bytes(covers[0]) if covers else None

    # Ogg Vorbis/Opus carry FLAC picture blocks base64-encoded in a comment.
    blocks = tags.get("metadata_block_picture") or []
    for block in blocks:
        try:
            return Picture(base64.b64decode(block)).data
        except (binascii.Error, struct.error, MutagenError, ValueError):
            logger.debug("Skipping malformed picture block in %s", getattr(audio, "filename", "?"))
    return None
