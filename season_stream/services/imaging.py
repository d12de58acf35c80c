"""Cover thumbnail encoding with Pillow."""

from __future__ import annotations

from io import BytesIO
from typing import Optional

from PIL import Image


class CoverEncodingError(Exception):
    """Raised when embedded artwork cannot be decoded or re-encoded."""


def encode_jpeg(data: bytes, *, max_size: Optional[int] = None, quality: int = 85) -> bytes:
    """Re-encodes arbitrary image bytes as an RGB JPEG.

    When ``max_size`` is set the image is shrunk (never enlarged) to fit a
    ``max_size`` x ``max_size`` box, keeping its aspect ratio.
    """
    if not data:
        raise CoverEncodingError("Empty image payload")
    try:
        with Image.open(BytesIO(data)) as img:
            rgb = img.convert("RGB")
            if max_size:
                rgb.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
            buffer = BytesIO()
            rgb.save(buffer, format="JPEG", quality=quality, optimize=True)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise CoverEncodingError(str(exc)) from exc
    return buffer.getvalue()
