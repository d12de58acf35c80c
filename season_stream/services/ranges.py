"""Parsing of single ``bytes=`` Range headers against a known file size."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

_RANGE_PATTERN = re.compile(r"^bytes=(?P<start>\d+)-(?P<end>\d*)$", re.IGNORECASE)


class InvalidRangeError(ValueError):
    """Raised when a Range header is malformed or cannot be satisfied."""


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte interval inside a file."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, total_size: int) -> str:
        return f"bytes {self.start}-{self.end}/{total_size}"


def parse_range(range_header: Optional[str], total_size: int) -> Optional[ByteRange]:
    """Parse ``range_header`` against ``total_size``.

    Returns ``None`` when no range was requested. An explicit end past the
    last byte is clamped to ``total_size - 1``; an unparsable header, a start
    beyond the file or an end before the start raise ``InvalidRangeError``.
    """
    if range_header is None or not range_header.strip():
        return None

    match = _RANGE_PATTERN.match(range_header.strip())
    if not match:
        raise InvalidRangeError(f"Unsupported Range header: {range_header!r}")

    start = int(match.group("start"))
    end_str = match.group("end")
    end = int(end_str) if end_str else total_size - 1

    if start >= total_size:
        raise InvalidRangeError(f"Range start {start} beyond size {total_size}")
    if end < start:
        raise InvalidRangeError(f"Range end {end} before start {start}")

    return ByteRange(start=start, end=min(end, total_size - 1))
