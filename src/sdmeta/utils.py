"""Low-level helpers shared by the front-end modules.

Only file-name based format guessing lives here; the codec itself
identifies containers by their magic bytes.
"""

from __future__ import annotations

from pathlib import Path

from sdmeta.constants import SUPPORTED_FORMATS
from sdmeta.container import ContainerKind

_SUFFIX_KINDS = {
    ".png": ContainerKind.PNG,
    ".jpg": ContainerKind.JPEG,
    ".jpeg": ContainerKind.JPEG,
    ".webp": ContainerKind.WEBP,
}


def is_supported_format(file_path: Path) -> bool:
    """
    Check if the file format is supported.

    Args:
        file_path: Path to the image file.

    Returns:
        True if the suffix names a PNG, JPEG or WebP file.
    """
    return file_path.suffix.lower() in SUPPORTED_FORMATS


def get_image_format(file_path: Path) -> ContainerKind:
    """
    Get the container kind from a file path.

    Args:
        file_path: Path to the image file.

    Returns:
        The container kind; unknown suffixes are treated as PNG.
    """
    return _SUFFIX_KINDS.get(file_path.suffix.lower(), ContainerKind.PNG)
