"""Generation metadata detection and removal.

Thin helpers over ``parse`` and ``write`` for callers that only want to
know whether an image carries generation metadata, or to get rid of it.
Removal keeps every unrelated segment (ICC profiles, physical size,
camera EXIF tags) byte-identical.
"""

from __future__ import annotations

from sdmeta.config import DEFAULT_CONFIG, CodecConfig
from sdmeta.metadata_handler import parse, write
from sdmeta.models import Empty, Strip, WriteOutcome


def has_metadata(data: bytes, config: CodecConfig = DEFAULT_CONFIG) -> bool:
    """
    Check if an image carries any generation metadata.

    Recognized, unrecognized and malformed payloads all count.

    Raises:
        MalformedContainerError: If *data* is not a readable container.
    """
    return not isinstance(parse(data, config), Empty)


def remove_metadata(data: bytes, config: CodecConfig = DEFAULT_CONFIG) -> WriteOutcome:
    """
    Remove every generation metadata carrier from an image.

    Args:
        data: Complete image file.
        config: Codec options.

    Returns:
        ``WriteOk`` with the stripped image, or ``WriteErr``.
    """
    return write(data, Strip(), config=config)
