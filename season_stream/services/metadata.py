"""Artist/title resolution with a filename fallback."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple

from .tags import TagReadError, TrackTags, read_tags

logger = logging.getLogger(__name__)

_ARTIST_TITLE_PATTERN = re.compile(r"^\s*(.+?)\s*-\s*(.+)$")


@dataclass(frozen=True)
class TrackMetadata:
    artist: str
    title: str


def split_artist_title(stem: str) -> Tuple[Optional[str], str]:
    """Splits ``"Artist - Title"`` at the first hyphen.

    Returns ``(None, stem)`` untouched when there is no hyphen to split on.
    """
    match = _ARTIST_TITLE_PATTERN.match(stem)
    if not match:
        return None, stem
    return match.group(1).strip(), match.group(2).strip()


class TrackMetadataResolver:
    def __init__(self, tag_reader: Callable[..., TrackTags] = read_tags):
        self._read_tags = tag_reader

    def resolve(self, file_path: Path, file_name: str) -> TrackMetadata:
        artist = ""
        title = ""
        try:
            tags = self._read_tags(file_path)
        except TagReadError as exc:
            logger.debug("Ignoring unreadable tags for %s: %s", file_name, exc)
        else:
            artist = (tags.artist or "").strip()
            title = (tags.title or "").strip()

        if not title:
            stem = os.path.splitext(file_name)[0]
            parsed_artist, title = split_artist_title(stem)
            if parsed_artist is not None:
                artist = artist or parsed_artist

        return TrackMetadata(artist=artist, title=title)
