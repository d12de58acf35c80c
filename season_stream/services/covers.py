"""On-disk cover thumbnail cache and the resolver that populates it."""

from __future__ import annotations

import logging
import os
import tempfile
import weakref
from pathlib import Path
from threading import Lock
from typing import Callable, Optional
from urllib.parse import quote

from .catalog import is_plain_name
from .imaging import CoverEncodingError, encode_jpeg
from .tags import TagReadError, TrackTags, read_tags

logger = logging.getLogger(__name__)

TagReader = Callable[..., TrackTags]
ImageEncoder = Callable[[bytes], bytes]


class CoverCache:
    """Process-wide directory of ``<cache_key>.jpg`` thumbnails.

    Entries are written once through an atomic rename and never rewritten or
    removed. Each key owns a lock while generation for it is in flight, so
    one key never waits on another.
    """

    SUFFIX = ".jpg"

    def __init__(self, root: Path, url_prefix: str = "/covers"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        # Entries vanish once no thread holds or waits on the lock.
        self._locks: weakref.WeakValueDictionary[str, Lock] = weakref.WeakValueDictionary()
        self._locks_guard = Lock()

    def ensure_ready(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, cache_key: str) -> Path:
        return self.root / f"{cache_key}{self.SUFFIX}"

    def url_for(self, cache_key: str) -> str:
        return f"{self.url_prefix}/{quote(cache_key, safe='')}{self.SUFFIX}"

    def exists(self, cache_key: str) -> bool:
        return self.path_for(cache_key).is_file()

    def lookup(self, file_name: str) -> Optional[Path]:
        """Maps a requested ``<key>.jpg`` name to a cached file, if any."""
        if not file_name.endswith(self.SUFFIX):
            return None
        cache_key = file_name[: -len(self.SUFFIX)]
        if not is_plain_name(cache_key):
            return None
        path = self.path_for(cache_key)
        return path if path.is_file() else None

    def lock_for(self, cache_key: str) -> Lock:
        with self._locks_guard:
            lock = self._locks.get(cache_key)
            if lock is None:
                lock = self._locks[cache_key] = Lock()
            return lock

    def store(self, cache_key: str, data: bytes) -> Path:
        """Writes ``data`` under ``cache_key``; readers never see a partial file."""
        self.ensure_ready()
        target = self.path_for(cache_key)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=self.SUFFIX)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        return target


class CoverResolver:
    """Returns a cover URL per track, generating thumbnails on first request."""

    def __init__(
        self,
        cache: CoverCache,
        fallback_url: str,
        *,
        tag_reader: TagReader = read_tags,
        encoder: ImageEncoder = encode_jpeg,
        lock_timeout: float = 30.0,
    ):
        self.cache = cache
        self.fallback_url = fallback_url
        self._read_tags = tag_reader
        self._encode = encoder
        self.lock_timeout = lock_timeout

    def resolve(self, file_path: Path, cache_key: str) -> str:
        if self.cache.exists(cache_key):
            return self.cache.url_for(cache_key)

        lock = self.cache.lock_for(cache_key)
        acquired = lock.acquire(timeout=self.lock_timeout)
        if not acquired:
            logger.warning("Timed out waiting for cover generation of %s; generating anyway", cache_key)
        try:
            # Another request may have finished while we waited.
            if self.cache.exists(cache_key):
                return self.cache.url_for(cache_key)
            return self._generate(Path(file_path), cache_key)
        finally:
            if acquired:
                lock.release()

    def _generate(self, file_path: Path, cache_key: str) -> str:
        try:
            tags = self._read_tags(file_path, with_picture=True)
        except TagReadError as exc:
            logger.warning("Cover generation error for %s: %s", file_path.name, exc)
            return self.fallback_url

        if not tags.picture:
            return self.fallback_url

        try:
            jpeg = self._encode(tags.picture)
        except CoverEncodingError as exc:
            logger.warning("Cover generation error for %s: %s", file_path.name, exc)
            return self.fallback_url

        try:
            self.cache.store(cache_key, jpeg)
        except OSError:
            logger.exception("Failed to write cover cache entry %s", cache_key)
            return self.fallback_url

        logger.debug("Cached cover %s for %s", cache_key, file_path.name)
        return self.cache.url_for(cache_key)
