"""NovelAI "stealth" metadata hidden in the alpha channel.

NovelAI writes its metadata into the least significant bit of every alpha
value, reading pixels column by column.  The bit stream is:

1. magic ``stealth_pngcomp`` (gzip payload) or ``stealth_pnginfo`` (plain)
2. payload length in *bits*, 32-bit big-endian
3. the payload: a JSON object of PNG text chunks (Title, Software, Comment, ...)

This is the only extractor path that decodes pixels; it uses Pillow to
decode and numpy to unpack the bits.
"""

from __future__ import annotations

import gzip
import io
import json
import logging
from typing import Any

import numpy as np
from PIL import Image, UnidentifiedImageError

from sdmeta.constants import STEALTH_MAGIC_COMPRESSED, STEALTH_MAGIC_PLAIN
from sdmeta.models import MetadataEntry

logger = logging.getLogger(__name__)


def byteize(alpha: np.ndarray) -> np.ndarray:
    """Pack the alpha LSBs (column-major) into a flat uint8 array."""
    alpha = alpha.T.reshape((-1,))
    alpha = alpha[: (alpha.shape[0] // 8) * 8]
    alpha = np.bitwise_and(alpha, 1)
    alpha = alpha.reshape((-1, 8))
    return np.packbits(alpha, axis=1).reshape((-1,))


class LSBExtractor:
    """Sequential reader over the packed LSB stream."""

    def __init__(self, alpha: np.ndarray):
        self.data = byteize(alpha)
        self.pos = 0

    def get_next_n_bytes(self, n: int) -> bytes:
        n_bytes = self.data[self.pos : self.pos + n]
        self.pos += n
        return n_bytes.tobytes()

    def read_32bit_integer(self) -> int | None:
        bytes_list = self.get_next_n_bytes(4)
        if len(bytes_list) == 4:
            return int.from_bytes(bytes_list, byteorder="big")
        return None


def _load_alpha(data: bytes) -> np.ndarray | None:
    """Decode *data* and return its alpha plane, or None when it has none."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.mode not in ("RGBA", "LA") and not (
                img.mode == "P" and "transparency" in img.info
            ):
                return None
            rgba = np.array(img.convert("RGBA"))
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.debug("Cannot decode pixels for alpha scan: %s", exc)
        return None
    return rgba[..., -1]


def read_stealth_payload(data: bytes) -> bytes | None:
    """
    Extract the raw JSON payload from the alpha channel of an image.

    Args:
        data: Complete PNG/WebP file contents.

    Returns:
        The UTF-8 JSON bytes, or None when no stealth payload is present.
    """
    alpha = _load_alpha(data)
    if alpha is None:
        return None

    reader = LSBExtractor(alpha)
    magic_length = len(STEALTH_MAGIC_COMPRESSED)
    magic = reader.get_next_n_bytes(magic_length)
    if magic == STEALTH_MAGIC_COMPRESSED.encode("ascii"):
        compressed = True
    elif magic == STEALTH_MAGIC_PLAIN.encode("ascii"):
        compressed = False
    else:
        return None

    bit_length = reader.read_32bit_integer()
    if not bit_length:
        return None
    payload = reader.get_next_n_bytes(bit_length // 8)
    if len(payload) < bit_length // 8:
        logger.debug("Stealth payload truncated: %d of %d bytes", len(payload), bit_length // 8)
        return None

    if not compressed:
        return payload
    try:
        return gzip.decompress(payload)
    except (OSError, EOFError) as exc:
        logger.debug("Stealth payload is not valid gzip: %s", exc)
        return None


def payload_to_entries(payload: bytes) -> list[MetadataEntry]:
    """
    Turn a stealth JSON payload into text-chunk entries.

    Non-string values (an already-decoded ``Comment`` object) are
    re-serialized as compact JSON.
    """
    try:
        parsed: Any = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError):
        return []
    if not isinstance(parsed, dict):
        return []

    entries: list[MetadataEntry] = []
    for key, value in parsed.items():
        if isinstance(value, str):
            entries.append(MetadataEntry(str(key), value))
        elif value is not None:
            entries.append(MetadataEntry(str(key), json.dumps(value, ensure_ascii=False)))
    return entries
