"""Pixel re-encoding between container kinds.

The codec never changes pixel data; when a caller wants a different
container kind (PNG to JPEG, say) it re-encodes the pixels with Pillow
first and then writes metadata into the result.  Pillow does not carry
text chunks or EXIF across a save unless asked to, so the output holds no
metadata of its own.
"""

from __future__ import annotations

import io
import logging
from typing import Any

from PIL import Image, UnidentifiedImageError

from sdmeta.container import ContainerKind
from sdmeta.errors import MalformedContainerError

logger = logging.getLogger(__name__)

_PIL_FORMATS = {
    ContainerKind.PNG: "PNG",
    ContainerKind.JPEG: "JPEG",
    ContainerKind.WEBP: "WEBP",
}


def reencode(data: bytes, target_kind: ContainerKind, quality: int = 95) -> bytes:
    """
    Re-encode an image's pixels into another container kind.

    Args:
        data: Complete image file in any format Pillow can read.
        target_kind: Container kind of the result.
        quality: JPEG/WebP quality.

    Returns:
        The re-encoded image, without metadata.

    Raises:
        MalformedContainerError: If Pillow cannot decode *data*.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            image = img.copy()
    except (UnidentifiedImageError, OSError) as exc:
        raise MalformedContainerError(f"cannot decode pixels: {exc}") from exc

    save_kwargs: dict[str, Any] = {"format": _PIL_FORMATS[target_kind]}
    if target_kind is ContainerKind.JPEG:
        if image.mode in ("RGBA", "LA", "P"):
            image = image.convert("RGB")
        save_kwargs["quality"] = quality
    elif target_kind is ContainerKind.WEBP:
        save_kwargs["quality"] = quality

    buffer = io.BytesIO()
    image.save(buffer, **save_kwargs)
    logger.debug("Re-encoded %s image as %s", image.mode, target_kind.value)
    return buffer.getvalue()
