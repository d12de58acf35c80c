"""Service layer exports for the FastAPI application."""

from .catalog import (
    AUDIO_EXTENSIONS,
    CatalogError,
    CatalogNotFoundError,
    DirectoryCatalog,
    TrackRef,
)
from .covers import CoverCache, CoverResolver
from .imaging import CoverEncodingError, encode_jpeg
from .library import describe_tracks
from .metadata import TrackMetadata, TrackMetadataResolver, split_artist_title
from .ranges import ByteRange, InvalidRangeError, parse_range
from .streaming import build_stream_response, guess_audio_type, iter_file, open_track
from .tags import TagReadError, TrackTags, read_tags

__all__ = [
    "AUDIO_EXTENSIONS",
    "ByteRange",
    "CatalogError",
    "CatalogNotFoundError",
    "CoverCache",
    "CoverEncodingError",
    "CoverResolver",
    "DirectoryCatalog",
    "InvalidRangeError",
    "TagReadError",
    "TrackMetadata",
    "TrackMetadataResolver",
    "TrackRef",
    "TrackTags",
    "build_stream_response",
    "describe_tracks",
    "encode_jpeg",
    "guess_audio_type",
    "iter_file",
    "open_track",
    "parse_range",
    "read_tags",
    "split_artist_title",
]
