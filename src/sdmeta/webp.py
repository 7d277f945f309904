"""WebP (RIFF) chunk reader/writer.

Layout: ``RIFF | size (4, LE) | WEBP`` followed by chunks of
``FourCC | size (4, LE) | data | pad-to-even``.  The RIFF size is
recomputed on encode; bytes beyond the declared RIFF size are kept as a
trailer.  Metadata lives in the ``EXIF`` chunk, which must be announced by
the ``VP8X`` flag bit 0x08 when a ``VP8X`` header exists (0x04 for ``XMP ``).
"""

from __future__ import annotations

import struct
from dataclasses import replace

from sdmeta.constants import (
    EXIF_HEADER,
    RIFF_SIGNATURE,
    WEBP_EXIF,
    WEBP_MARKER,
    WEBP_VP8,
    WEBP_VP8L,
    WEBP_VP8X,
    WEBP_VP8X_EXIF_FLAG,
    WEBP_VP8X_XMP_FLAG,
    WEBP_XMP,
)
from sdmeta.container import Container, ContainerKind, Segment, SegmentKind
from sdmeta.errors import ContainerEncodeError, MalformedContainerError


def decode_webp(data: bytes) -> Container:
    """
    Split a WebP file into RIFF chunks.

    Raises:
        MalformedContainerError: On a bad RIFF/WEBP header or a chunk whose
            size runs past the RIFF body.
    """
    if len(data) < 12 or data[:4] != RIFF_SIGNATURE or data[8:12] != WEBP_MARKER:
        raise MalformedContainerError("missing RIFF/WEBP header", 0)

    (riff_size,) = struct.unpack("<I", data[4:8])
    body_end = 8 + riff_size
    if body_end > len(data) or riff_size < 4:
        raise MalformedContainerError(f"RIFF size {riff_size} exceeds buffer", 4)

    segments: list[Segment] = []
    offset = 12
    while offset < body_end:
        if offset + 8 > body_end:
            raise MalformedContainerError("truncated chunk header", offset)
        fourcc, size = struct.unpack("<4sI", data[offset : offset + 8])
        data_end = offset + 8 + size
        if data_end > body_end:
            raise MalformedContainerError(f"chunk {fourcc!r} size {size} exceeds RIFF body", offset)
        end = min(data_end + (size & 1), body_end)
        segments.append(_classify(fourcc, data[offset + 8 : data_end], data[offset:end]))
        offset = end

    if body_end < len(data):
        segments.append(Segment(SegmentKind.TRAILER, raw=data[body_end:]))

    return Container(ContainerKind.WEBP, tuple(segments))


def _classify(fourcc: bytes, payload: bytes, raw: bytes) -> Segment:
    identifier = fourcc.decode("latin-1")
    if fourcc == WEBP_EXIF:
        kind = SegmentKind.EXIF_BLOCK
    elif fourcc == WEBP_XMP:
        return Segment(
            SegmentKind.XMP_PACKET,
            identifier=identifier,
            payload=payload,
            raw=raw,
            text=payload.decode("utf-8", errors="replace"),
        )
    elif fourcc == WEBP_VP8X:
        kind = SegmentKind.IMAGE_HEADER
    elif fourcc in (WEBP_VP8, WEBP_VP8L):
        kind = SegmentKind.IMAGE_DATA
    else:
        kind = SegmentKind.RAW_OPAQUE
    return Segment(kind, identifier=identifier, payload=payload, raw=raw)


def encode_webp(container: Container) -> bytes:
    """Serialize a WebP container with a recomputed RIFF size."""
    body: list[bytes] = []
    trailer = b""
    for seg in container.segments:
        if seg.kind is SegmentKind.TRAILER:
            trailer += seg.raw or b""
        else:
            body.append(seg.raw if seg.raw is not None else _frame_chunk(seg))
    joined = b"".join(body)
    return RIFF_SIGNATURE + struct.pack("<I", 4 + len(joined)) + WEBP_MARKER + joined + trailer


def _frame_chunk(seg: Segment) -> bytes:
    if not seg.identifier or len(seg.identifier) != 4:
        raise ContainerEncodeError(f"invalid WebP FourCC {seg.identifier!r}")
    pad = b"\x00" if len(seg.payload) & 1 else b""
    return seg.identifier.encode("latin-1") + struct.pack("<I", len(seg.payload)) + seg.payload + pad


def make_exif_chunk(tiff: bytes) -> Segment:
    """Create an ``EXIF`` chunk from TIFF bytes (any ``Exif\\0\\0`` prefix is dropped)."""
    if tiff.startswith(EXIF_HEADER):
        tiff = tiff[len(EXIF_HEADER) :]
    return Segment(SegmentKind.EXIF_BLOCK, identifier=WEBP_EXIF.decode("latin-1"), payload=tiff)


def exif_insert_index(container: Container) -> int:
    """
    Index for new metadata chunks: after the image data (``VP8 ``/``VP8L``
    or the last ``ANMF`` frame), else after ``VP8X``, else at the end.
    """
    data_chunks = {WEBP_VP8.decode("latin-1"), WEBP_VP8L.decode("latin-1"), "ANMF"}
    last_data = header = None
    for index, seg in enumerate(container.segments):
        if seg.identifier in data_chunks:
            last_data = index
        elif seg.identifier == "VP8X" and header is None:
            header = index
    index = last_data if last_data is not None else header
    return len(container.segments) if index is None else index + 1


def make_xmp_chunk(xmp: str) -> Segment:
    """Create an ``XMP `` chunk holding a UTF-8 XMP packet."""
    return Segment(
        SegmentKind.XMP_PACKET,
        identifier=WEBP_XMP.decode("latin-1"),
        payload=xmp.encode("utf-8"),
        text=xmp,
    )


def sync_feature_flags(container: Container) -> Container:
    """
    Return *container* with the ``VP8X`` EXIF/XMP flags matching its chunks.

    Containers without a ``VP8X`` header (simple lossy/lossless files) are
    returned unchanged.
    """
    has_exif = any(seg.kind is SegmentKind.EXIF_BLOCK for seg in container.segments)
    has_xmp = any(seg.kind is SegmentKind.XMP_PACKET for seg in container.segments)
    for seg in container.segments:
        if seg.identifier == WEBP_VP8X.decode("latin-1") and seg.payload:
            flags = seg.payload[0]
            new_flags = flags & ~(WEBP_VP8X_EXIF_FLAG | WEBP_VP8X_XMP_FLAG)
            if has_exif:
                new_flags |= WEBP_VP8X_EXIF_FLAG
            if has_xmp:
                new_flags |= WEBP_VP8X_XMP_FLAG
            if new_flags == flags:
                return container
            payload = bytes([new_flags]) + seg.payload[1:]
            return container.replaced(seg, replace(seg, payload=payload, raw=None))
    return container


def read_dimensions(container: Container) -> tuple[int, int] | None:
    """Return canvas width/height from ``VP8X``, ``VP8`` or ``VP8L``."""
    for seg in container.segments:
        payload = seg.payload
        if seg.identifier == "VP8X" and len(payload) >= 10:
            width = int.from_bytes(payload[4:7], "little") + 1
            height = int.from_bytes(payload[7:10], "little") + 1
            return width, height
        if seg.identifier == "VP8 " and len(payload) >= 10:
            key_frame = not payload[0] & 1
            if key_frame and payload[3:6] == b"\x9d\x01\x2a":
                width, height = struct.unpack("<HH", payload[6:10])
                return width & 0x3FFF, height & 0x3FFF
        if seg.identifier == "VP8L" and len(payload) >= 5 and payload[0] == 0x2F:
            (bits,) = struct.unpack("<I", payload[1:5])
            return (bits & 0x3FFF) + 1, ((bits >> 14) & 0x3FFF) + 1
    return None
