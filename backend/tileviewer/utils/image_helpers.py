"""Validation of decoded raster tile payloads.

The rendering client hands every resolved raster tile back with a payload
that should be an image handle: a decoded Pillow image, or an image URL it
will load itself. Raw bytes are accepted when Pillow can decode them.
Anything else (None, error objects, JSON bodies served with a 200 status)
must not reach compositing.

Example:
    >>> from PIL import Image
    >>> from tileviewer.utils.image_helpers import coerce_tile_image
    >>> coerce_tile_image(Image.new("RGB", (256, 256))) is not None
    True
    >>> coerce_tile_image({"error": "quota exceeded"}) is None
    True
"""

from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError

TileImage = Image.Image | str


def decode_image_bytes(payload: bytes) -> Image.Image | None:
    """Decode an encoded image (PNG, JPEG, ...) with Pillow.

    Returns:
        The fully loaded image, or None if the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(payload)) as image:
            image.load()
            return image.copy()
    except (UnidentifiedImageError, OSError):
        return None


def is_valid_image(content: object) -> bool:
    """Return True for payloads that can be composited as they are."""
    if isinstance(content, Image.Image):
        return content.width > 0 and content.height > 0
    if isinstance(content, str):
        return bool(content.strip())
    return False


def coerce_tile_image(content: object) -> TileImage | None:
    """Turn a resolved tile payload into a composable image handle.

    Args:
        content: Payload reported by the rendering client for one tile.

    Returns:
        A Pillow image or image URL, or None if the payload is unusable.
    """
    if isinstance(content, bytes | bytearray | memoryview):
        return decode_image_bytes(bytes(content))
    if is_valid_image(content):
        return content  # type: ignore[return-value]
    return None
