"""JPEG marker-segment reader/writer.

Layout: ``SOI`` followed by ``FF xx`` marker segments with a 2-byte
big-endian length that includes itself.  Standalone markers (``RSTn``,
``TEM``) and fill bytes may appear between segments.  Everything from the
first ``SOS`` onward (entropy-coded data, later scans, ``EOI``, trailing
bytes) is kept as a single opaque image-data segment.

Metadata carriers are ``APP1`` Exif blocks and ``COM`` segments.
"""

from __future__ import annotations

import logging
import struct

from sdmeta.constants import (
    EXIF_HEADER,
    JPEG_MARKER_APP0,
    JPEG_MARKER_APP1,
    JPEG_MARKER_COM,
    JPEG_MARKER_SOS,
    JPEG_MAX_SEGMENT_PAYLOAD,
    JPEG_SOF_MARKERS,
    JPEG_SOI,
    JPEG_STANDALONE_MARKERS,
    XMP_HEADER,
)
from sdmeta.container import Container, ContainerKind, Segment, SegmentKind
from sdmeta.errors import ContainerEncodeError, MalformedContainerError
from sdmeta.png import decode_text_bytes

logger = logging.getLogger(__name__)


def decode_jpeg(data: bytes) -> Container:
    """
    Split a JPEG file into marker segments.

    Args:
        data: Complete JPEG file contents.

    Returns:
        Container whose segments reproduce *data* exactly when re-encoded.

    Raises:
        MalformedContainerError: On a missing SOI or a segment length running
            past the end of the buffer.
    """
    if not data.startswith(JPEG_SOI):
        raise MalformedContainerError("missing JPEG SOI marker", 0)

    segments: list[Segment] = [Segment(SegmentKind.RAW_OPAQUE, identifier="SOI", raw=JPEG_SOI)]
    offset = 2

    while offset < len(data):
        if data[offset] != 0xFF:
            # Garbage between segments: keep it verbatim up to the next marker.
            next_marker = data.find(b"\xff", offset)
            end = len(data) if next_marker < 0 else next_marker
            segments.append(Segment(SegmentKind.RAW_OPAQUE, raw=data[offset:end]))
            offset = end
            continue

        if offset + 1 >= len(data):
            segments.append(Segment(SegmentKind.TRAILER, raw=data[offset:]))
            break

        marker = data[offset + 1]
        if marker == 0xFF:
            # Fill byte
            segments.append(Segment(SegmentKind.RAW_OPAQUE, identifier="fill", raw=data[offset : offset + 1]))
            offset += 1
            continue

        if marker in JPEG_STANDALONE_MARKERS or marker == 0xD8:
            segments.append(
                Segment(SegmentKind.RAW_OPAQUE, marker=marker, raw=data[offset : offset + 2])
            )
            offset += 2
            continue

        if marker == JPEG_MARKER_SOS or marker == 0xD9:
            segments.append(
                Segment(SegmentKind.IMAGE_DATA, identifier="SOS", marker=marker, raw=data[offset:])
            )
            break

        if offset + 4 > len(data):
            raise MalformedContainerError(f"truncated segment header for marker 0x{marker:02X}", offset)
        (length,) = struct.unpack(">H", data[offset + 2 : offset + 4])
        end = offset + 2 + length
        if length < 2 or end > len(data):
            raise MalformedContainerError(
                f"segment 0x{marker:02X} length {length} exceeds buffer", offset
            )

        payload = data[offset + 4 : end]
        segments.append(_classify(marker, payload, data[offset:end]))
        offset = end

    return Container(ContainerKind.JPEG, tuple(segments))


def _classify(marker: int, payload: bytes, raw: bytes) -> Segment:
    """Turn a length-prefixed marker segment into a typed segment."""
    if marker == JPEG_MARKER_APP1 and payload.startswith(EXIF_HEADER):
        return Segment(SegmentKind.EXIF_BLOCK, identifier="APP1", marker=marker, payload=payload, raw=raw)
    if marker == JPEG_MARKER_APP1 and payload.startswith(XMP_HEADER):
        return Segment(
            SegmentKind.XMP_PACKET,
            identifier="APP1",
            marker=marker,
            payload=payload,
            raw=raw,
            text=payload[len(XMP_HEADER) :].decode("utf-8", errors="replace"),
        )
    if marker == JPEG_MARKER_COM:
        return Segment(
            SegmentKind.COMMENT,
            identifier="COM",
            marker=marker,
            payload=payload,
            raw=raw,
            keyword="Comment",
            text=decode_text_bytes(payload.rstrip(b"\x00")),
        )
    if marker in JPEG_SOF_MARKERS:
        return Segment(SegmentKind.IMAGE_HEADER, identifier=f"SOF{marker - 0xC0}", marker=marker, payload=payload, raw=raw)
    if 0xE0 <= marker <= 0xEF:
        identifier = f"APP{marker - 0xE0}"
    else:
        identifier = f"0x{marker:02X}"
    return Segment(SegmentKind.RAW_OPAQUE, identifier=identifier, marker=marker, payload=payload, raw=raw)


def encode_jpeg(container: Container) -> bytes:
    """Serialize a JPEG container, framing any new segments."""
    return b"".join(seg.raw if seg.raw is not None else _frame_segment(seg) for seg in container.segments)


def _frame_segment(seg: Segment) -> bytes:
    """Build ``FF marker length payload`` for a new segment."""
    if seg.marker is None:
        raise ContainerEncodeError("new JPEG segment has no marker")
    if len(seg.payload) > JPEG_MAX_SEGMENT_PAYLOAD:
        raise ContainerEncodeError(
            f"JPEG segment payload of {len(seg.payload)} bytes exceeds {JPEG_MAX_SEGMENT_PAYLOAD}"
        )
    return bytes([0xFF, seg.marker]) + struct.pack(">H", len(seg.payload) + 2) + seg.payload


def make_exif_segment(exif_payload: bytes) -> Segment:
    """Create an ``APP1`` Exif segment; *exif_payload* starts with ``Exif\\0\\0``."""
    return Segment(
        SegmentKind.EXIF_BLOCK, identifier="APP1", marker=JPEG_MARKER_APP1, payload=exif_payload
    )


def make_xmp_segment(xmp: str) -> Segment:
    """Create an ``APP1`` XMP segment holding a UTF-8 XMP packet."""
    return Segment(
        SegmentKind.XMP_PACKET,
        identifier="APP1",
        marker=JPEG_MARKER_APP1,
        payload=XMP_HEADER + xmp.encode("utf-8"),
        text=xmp,
    )


def make_comment_segment(text: str) -> Segment:
    """Create a ``COM`` segment holding UTF-8 text."""
    return Segment(
        SegmentKind.COMMENT,
        identifier="COM",
        marker=JPEG_MARKER_COM,
        payload=text.encode("utf-8"),
        keyword="Comment",
        text=text,
    )


def exif_insert_index(container: Container) -> int:
    """Index for a new Exif block: after SOI and a leading JFIF ``APP0``."""
    index = 1
    segments = container.segments
    while index < len(segments) and segments[index].marker == JPEG_MARKER_APP0:
        index += 1
    return index


def comment_insert_index(container: Container) -> int:
    """Index for a new ``COM`` segment: right before the scan data."""
    index = container.index_of(lambda seg: seg.kind is SegmentKind.IMAGE_DATA)
    return len(container.segments) if index is None else index


def read_dimensions(container: Container) -> tuple[int, int] | None:
    """Return width/height from the first ``SOFn`` segment."""
    for seg in container.find(SegmentKind.IMAGE_HEADER):
        if len(seg.payload) >= 5:
            height, width = struct.unpack(">HH", seg.payload[1:5])
            return width, height
    return None
