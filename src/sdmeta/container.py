"""Container chunk layer shared by the PNG, JPEG, and WebP readers/writers.

A ``Container`` is an ordered list of ``Segment`` values.  Every segment
read from a file keeps its exact original bytes in ``raw``; encoding an
unmodified container therefore reproduces the input byte-for-byte, and
segment kinds the codec does not understand survive untouched.  Segments
created or replaced by the writer have ``raw=None`` and are serialized
(with fresh length fields and CRCs) by the format module.

Containers are rebuilt, never patched in place: helpers such as
``without`` and ``inserted`` return a new ``Container``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Iterable

from sdmeta.constants import JPEG_SOI, PNG_SIGNATURE, RIFF_SIGNATURE, WEBP_MARKER
from sdmeta.errors import MalformedContainerError


class ContainerKind(str, Enum):
    """Outer file format."""

    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"


class SegmentKind(str, Enum):
    """Role of a segment inside its container."""

    TEXT_KEY_VALUE = "text"  # PNG tEXt
    COMPRESSED_TEXT = "compressed-text"  # PNG zTXt
    INTERNATIONAL_TEXT = "international-text"  # PNG iTXt
    EXIF_BLOCK = "exif"  # PNG eXIf, JPEG APP1 Exif, WebP EXIF
    XMP_PACKET = "xmp"  # JPEG APP1 XMP, WebP XMP
    COMMENT = "comment"  # JPEG COM
    IMAGE_HEADER = "image-header"  # IHDR, SOFn, VP8X
    IMAGE_DATA = "image-data"  # IDAT, SOS..EOI, VP8/VP8L
    ALPHA_CHANNEL = "alpha-channel"  # pixel-embedded payload (never a real segment)
    RAW_OPAQUE = "opaque"  # anything else, copied verbatim
    TRAILER = "trailer"  # bytes after the end of the segment stream


TEXT_SEGMENT_KINDS = frozenset(
    {
        SegmentKind.TEXT_KEY_VALUE,
        SegmentKind.COMPRESSED_TEXT,
        SegmentKind.INTERNATIONAL_TEXT,
    }
)


@dataclass(frozen=True)
class Segment:
    """One structural unit of a container.

    ``identifier`` is the chunk type, FourCC, or marker name.  ``payload``
    is the data portion without length/type/CRC framing.  Text segments
    carry their decoded ``keyword`` and ``text`` plus the iTXt auxiliary
    fields.  ``verified`` is False when the segment's own integrity check
    (CRC, decompression) failed.
    """

    kind: SegmentKind
    identifier: str | None = None
    payload: bytes = b""
    raw: bytes | None = None
    keyword: str | None = None
    text: str | None = None
    compressed: bool = False
    language: str = ""
    translated_keyword: str = ""
    marker: int | None = None
    verified: bool = True

    @property
    def is_text(self) -> bool:
        return self.kind in TEXT_SEGMENT_KINDS


@dataclass(frozen=True)
class Container:
    """Ordered segment list of one PNG/JPEG/WebP file."""

    kind: ContainerKind
    segments: tuple[Segment, ...] = field(default_factory=tuple)

    def find(self, *kinds: SegmentKind) -> list[Segment]:
        """Return segments of any of the given kinds, in file order."""
        return [seg for seg in self.segments if seg.kind in kinds]

    def index_of(self, predicate: Callable[[Segment], bool]) -> int | None:
        """Return the index of the first segment matching *predicate*."""
        for index, seg in enumerate(self.segments):
            if predicate(seg):
                return index
        return None

    def without(self, predicate: Callable[[Segment], bool]) -> Container:
        """Return a copy with every segment matching *predicate* removed."""
        return replace(self, segments=tuple(s for s in self.segments if not predicate(s)))

    def inserted(self, index: int, new_segments: Iterable[Segment]) -> Container:
        """Return a copy with *new_segments* inserted before position *index*."""
        segments = list(self.segments)
        segments[index:index] = list(new_segments)
        return replace(self, segments=tuple(segments))

    def replaced(self, old: Segment, new: Segment | None) -> Container:
        """Return a copy with *old* swapped for *new* (or dropped when *new* is None)."""
        segments: list[Segment] = []
        for seg in self.segments:
            if seg is old:
                if new is not None:
                    segments.append(new)
            else:
                segments.append(seg)
        return replace(self, segments=tuple(segments))


def detect_kind(data: bytes) -> ContainerKind | None:
    """
    Identify the container format from its magic bytes.

    Args:
        data: Complete file contents.

    Returns:
        The container kind, or None if the signature is not recognized.
    """
    if data.startswith(PNG_SIGNATURE):
        return ContainerKind.PNG
    if data.startswith(JPEG_SOI):
        return ContainerKind.JPEG
    if len(data) >= 12 and data[:4] == RIFF_SIGNATURE and data[8:12] == WEBP_MARKER:
        return ContainerKind.WEBP
    return None


def decode(data: bytes) -> Container:
    """
    Split a file into its segments.

    Args:
        data: Complete file contents.

    Returns:
        The decoded container.

    Raises:
        MalformedContainerError: If the signature is unknown or a length
            field points outside the buffer.
    """
    from sdmeta import jpeg, png, webp

    kind = detect_kind(bytes(data))
    if kind is ContainerKind.PNG:
        return png.decode_png(bytes(data))
    if kind is ContainerKind.JPEG:
        return jpeg.decode_jpeg(bytes(data))
    if kind is ContainerKind.WEBP:
        return webp.decode_webp(bytes(data))
    raise MalformedContainerError("unknown image signature", 0)


def encode(container: Container) -> bytes:
    """
    Serialize a container back to bytes.

    Raises:
        ContainerEncodeError: If a new segment cannot be represented.
    """
    from sdmeta import jpeg, png, webp

    if container.kind is ContainerKind.PNG:
        return png.encode_png(container)
    if container.kind is ContainerKind.JPEG:
        return jpeg.encode_jpeg(container)
    return webp.encode_webp(container)


def read_dimensions(container: Container) -> tuple[int, int] | None:
    """Return ``(width, height)`` from the container's image header, if present."""
    from sdmeta import jpeg, png, webp

    if container.kind is ContainerKind.PNG:
        return png.read_dimensions(container)
    if container.kind is ContainerKind.JPEG:
        return jpeg.read_dimensions(container)
    return webp.read_dimensions(container)
