"""Read-only view over the ``<root>/<year>/<season>/<track>`` music tree."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List
from urllib.parse import quote

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = frozenset({"mp3", "flac", "ogg", "wav"})

_WHITESPACE = re.compile(r"\s+")

# Characters the host filesystem treats as path separators. Anything else,
# a POSIX backslash included, is an ordinary file name character.
PATH_SEPARATORS = tuple(sep for sep in (os.sep, os.altsep) if sep)


class CatalogError(Exception):
    """Raised when the music tree cannot be read."""


class CatalogNotFoundError(CatalogError):
    """Raised when a requested folder or track does not exist."""


@dataclass(frozen=True)
class TrackRef:
    year: str
    season: str
    file_name: str
    extension: str

    @property
    def stem(self) -> str:
        return os.path.splitext(self.file_name)[0]

    @property
    def cache_key(self) -> str:
        """Cover cache key: the stem with whitespace runs replaced by ``_``."""
        return _WHITESPACE.sub("_", self.stem)

    @property
    def stream_url(self) -> str:
        segments = (self.year, self.season, self.file_name)
        return "/stream/" + "/".join(quote(segment, safe="") for segment in segments)


def is_plain_name(name: str) -> bool:
    """True when ``name`` names a single entry inside its parent directory."""
    return name not in ("", ".", "..") and not any(sep in name for sep in PATH_SEPARATORS)


def _sort_key(name: str) -> tuple[str, str]:
    return name.lower(), name


def _extension_of(name: str) -> str:
    return os.path.splitext(name)[1][1:]


class DirectoryCatalog:
    """Lists years, seasons and audio files beneath ``root``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def list_years(self) -> List[str]:
        return self._list_dirs(self.root)

    def list_seasons(self, year: str) -> List[str]:
        return self._list_dirs(self._child(year))

    def list_files(self, year: str, season: str) -> List[TrackRef]:
        season_dir = self._child(year, season)
        entries = self._scan(season_dir)
        names = [
            entry.name
            for entry in entries
            if _extension_of(entry.name).lower() in AUDIO_EXTENSIONS and entry.is_file()
        ]
        return [
            TrackRef(year=year, season=season, file_name=name, extension=_extension_of(name))
            for name in sorted(names, key=_sort_key)
        ]

    def resolve_track(self, year: str, season: str, file_name: str) -> Path:
        path = self._child(year, season, file_name)
        if not path.is_file():
            raise CatalogNotFoundError(f"Track not found: {year}/{season}/{file_name}")
        return path

    # Internal helpers -----------------------------------------------------

    def _child(self, *parts: str) -> Path:
        """Joins ``parts`` under the root, refusing anything that escapes it."""
        label = "/".join(parts)
        if any(not is_plain_name(part) for part in parts):
            raise CatalogNotFoundError(f"Not found: {label}")
        candidate = self.root.joinpath(*parts)
        try:
            candidate.resolve().relative_to(self.root.resolve())
        except ValueError:
            raise CatalogNotFoundError(f"Not found: {label}") from None
        return candidate

    def _list_dirs(self, directory: Path) -> List[str]:
        names = [entry.name for entry in self._scan(directory) if entry.is_dir()]
        return sorted(names, key=_sort_key)

    def _scan(self, directory: Path) -> List[os.DirEntry]:
        label = directory.relative_to(self.root).as_posix() if directory != self.root else str(self.root)
        if not directory.is_dir():
            raise CatalogNotFoundError(f"Directory not found: {label}")
        try:
            with os.scandir(directory) as entries:
                return list(entries)
        except FileNotFoundError:
            raise CatalogNotFoundError(f"Directory not found: {label}") from None
        except OSError as exc:
            logger.exception("Failed to read directory %s", directory)
            raise CatalogError(str(exc)) from exc
