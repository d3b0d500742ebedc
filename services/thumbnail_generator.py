"""Image processing for uploads.

Provides a small OOP wrapper around Pillow that turns uploaded bytes into
the two blobs the gallery stores: a full-size JPEG re-encoded at maximum
quality and a fixed-size JPEG thumbnail cropped to cover 400x300.

Public class: `ThumbnailGenerator`

Example:
    tg = ThumbnailGenerator(thumbnail_size=(400, 300))
    processed = tg.process(raw_bytes)
"""
from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError


@dataclass
class ProcessedImage:
    """Encoded blobs produced from one upload."""

    full_bytes: bytes
    thumbnail_bytes: bytes
    width: int
    height: int
    content_type: str = "image/jpeg"


class ThumbnailGenerator:
    """Generate the full-size image and thumbnail for an upload.

    Args:
        thumbnail_size: Exact width and height of the thumbnail. The source is
            scaled and centre-cropped to cover it. Defaults to (400, 300).
        full_quality: JPEG quality for the full-size image.
        thumbnail_quality: JPEG quality for the thumbnail.
        background: Colour used when flattening images with alpha to RGB.
    """

    def __init__(
        self,
        thumbnail_size: Tuple[int, int] = (400, 300),
        full_quality: int = 100,
        thumbnail_quality: int = 80,
        background: Tuple[int, int, int] | None = None,
    ):
        self.thumbnail_size = thumbnail_size
        self.full_quality = full_quality
        self.thumbnail_quality = thumbnail_quality
        self.background = background or (255, 255, 255)

    def _open(self, data: bytes) -> Image.Image:
        if not data:
            raise ValueError("Image bytes are required.")
        try:
            src = Image.open(io.BytesIO(data))
            src.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError("Uploaded bytes are not a supported image format") from exc
        # Respect camera orientation before any resizing
        return ImageOps.exif_transpose(src)

    def _flatten(self, src: Image.Image) -> Image.Image:
        """Convert to RGB, flattening alpha against the background colour."""
        if src.mode == "RGB":
            return src
        rgba = src.convert("RGBA")
        background = Image.new("RGB", rgba.size, self.background)
        background.paste(rgba, mask=rgba.split()[3])
        return background

    def process(self, data: bytes) -> ProcessedImage:
        """Create the full-size JPEG and the thumbnail from raw image bytes.

        Args:
            data: Raw bytes of the uploaded image.

        Returns:
            ProcessedImage with both encoded blobs and the source dimensions.

        Raises:
            ValueError: If the bytes are empty or cannot be opened as an image.
        """
        src = self._flatten(self._open(data))

        full_io = io.BytesIO()
        src.save(full_io, format="JPEG", quality=self.full_quality, progressive=True)

        thumb = ImageOps.fit(src, self.thumbnail_size, Image.LANCZOS)
        thumb_io = io.BytesIO()
        thumb.save(thumb_io, format="JPEG", quality=self.thumbnail_quality, optimize=True)

        return ProcessedImage(
            full_bytes=full_io.getvalue(),
            thumbnail_bytes=thumb_io.getvalue(),
            width=src.width,
            height=src.height,
        )
