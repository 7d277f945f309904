"""Write metadata into PNG, JPEG and WebP containers.

Every write starts from a stripped copy of the container and then adds the
carrier segments for the requested entries.  Format-specific differences:

- PNG: one text chunk per entry right after ``IHDR`` (``tEXt`` or ``iTXt``
  depending on the text strategy).
- JPEG: entries go into an ``APP1`` Exif block via ``piexif`` (text packed
  into ``UserComment``); XMP packets get their own ``APP1`` segment and
  comment-style vendors a ``COM`` segment before the scan data.
- WebP: ``EXIF`` and ``XMP `` chunks after the first image chunk, with the
  ``VP8X`` feature flags kept consistent.

Unrelated segments, including unrelated EXIF tags, keep their bytes.
"""

from __future__ import annotations

import logging
from typing import Sequence

from sdmeta import jpeg, png, webp
from sdmeta.config import DEFAULT_CONFIG, CodecConfig
from sdmeta.constants import DEFAULT_TEXT_KEYWORD, EXIF_HEADER, SOFTWARE_LABELS
from sdmeta.container import Container, ContainerKind, Segment, SegmentKind, decode, detect_kind, encode
from sdmeta.errors import ContainerEncodeError, MalformedContainerError
from sdmeta.exif import build_exif, has_metadata_tags, load_exif, strip_exif, strip_metadata_tags
from sdmeta.extractor import has_generation_payload, is_carrier_segment
from sdmeta.models import (
    Canonical,
    MetadataEntry,
    PassThrough,
    Strip,
    WriteErr,
    WriteErrorKind,
    WriteOk,
    WriteOutcome,
    WriteRequest,
)
from sdmeta.schema import GenerationMetadata
from sdmeta.vendors import DEFAULT_CODEC, VendorCodec, codec_for
from sdmeta.xmp import XMP_KEYWORD

logger = logging.getLogger(__name__)


# ── Strip ───────────────────────────────────────────────────────────


def _exif_segment(kind: ContainerKind, block: bytes) -> Segment:
    """Wrap a ``piexif.dump`` result (``Exif\\0\\0`` + TIFF) for *kind*."""
    if kind is ContainerKind.PNG:
        return png.make_exif_chunk(block[len(EXIF_HEADER) :] if block.startswith(EXIF_HEADER) else block)
    if kind is ContainerKind.JPEG:
        return jpeg.make_exif_segment(block if block.startswith(EXIF_HEADER) else EXIF_HEADER + block)
    return webp.make_exif_chunk(block)


def _strip_exif_segment(container: Container, seg: Segment) -> Container:
    if not seg.verified:
        return container
    exif_dict = load_exif(seg.payload)
    # Unparseable blocks and blocks without metadata tags keep their bytes
    if exif_dict is None or not has_metadata_tags(exif_dict):
        return container
    cleaned = strip_exif(seg.payload)
    if cleaned is None:
        return container.replaced(seg, None)
    return container.replaced(seg, _exif_segment(container.kind, cleaned))


def strip_container(container: Container) -> Container:
    """
    Remove every metadata carrier from *container*.

    Primary carrier text chunks (including ones that failed their CRC),
    comments and generation XMP packets are dropped.  Companion chunks such
    as ``Software`` or ``Title`` only go when the container holds a
    generation payload.  EXIF blocks lose only the tags this codec owns; a
    block left without tags is dropped.

    Raises:
        ContainerEncodeError: If a cleaned EXIF block cannot be rebuilt.
    """
    has_payload = has_generation_payload(container)
    stripped = container.without(lambda seg: is_carrier_segment(seg, has_payload))
    for seg in stripped.find(SegmentKind.EXIF_BLOCK):
        stripped = _strip_exif_segment(stripped, seg)
    if stripped.kind is ContainerKind.WEBP:
        stripped = webp.sync_feature_flags(stripped)
    return stripped


# ── Entry selection ─────────────────────────────────────────────────


def _converted(metadata: GenerationMetadata, target: str) -> GenerationMetadata:
    if metadata.software == target:
        return metadata
    return metadata.model_copy(update={"software": target})


def _dropped_warning(dropped: Sequence[str], target: str) -> str:
    label = SOFTWARE_LABELS.get(target, target)
    return f"Fields not representable in {label} were dropped: {', '.join(dropped)}"


def resolve_entries(
    request: WriteRequest,
) -> tuple[list[MetadataEntry], VendorCodec | None, tuple[str, ...]]:
    """
    Decide which carrier entries a request writes.

    Returns:
        ``(entries, codec, dropped_fields)``: the codec that produced the
        entries (None for strip and pass-through) and the canonical paths
        the chosen encoding could not represent.

    Raises:
        ValueError: If ``conversion_target`` is not a known software id.
    """
    source = request.source
    if isinstance(source, Strip):
        return [], None, ()

    if isinstance(source, PassThrough):
        if source.entries:
            return list(source.entries), None, ()
        if source.raw:
            text = source.raw.decode("utf-8", errors="replace")
            return [MetadataEntry(DEFAULT_TEXT_KEYWORD, text)], None, ()
        return [], None, ()

    metadata = source.metadata
    target = request.conversion_target
    if target is not None and target not in SOFTWARE_LABELS:
        raise ValueError(f"Unknown conversion target: {target!r}")

    if target is None or target == metadata.software:
        codec = codec_for(metadata.software) or DEFAULT_CODEC
        if source.entries:
            return list(source.entries), codec, ()
        target = metadata.software if codec.handles(metadata.software) else DEFAULT_CODEC.software
    else:
        codec = codec_for(target) or DEFAULT_CODEC

    dropped = tuple(sorted(metadata.populated_fields() - codec.supported_fields))
    return codec.encode(_converted(metadata, target)), codec, dropped


# ── Carrier placement ───────────────────────────────────────────────


def _existing_exif(container: Container) -> tuple[Segment | None, dict | None]:
    """Return the first EXIF segment and its parsed dict, if any."""
    for seg in container.find(SegmentKind.EXIF_BLOCK):
        return seg, load_exif(seg.payload)
    return None, None


def _after_exif(container: Container, default: int) -> int:
    """Index right after the last EXIF block, or *default* without one."""
    indexes = [i for i, seg in enumerate(container.segments) if seg.kind is SegmentKind.EXIF_BLOCK]
    return indexes[-1] + 1 if indexes else default


def _place_exif(container: Container, entries: list[MetadataEntry], insert_index: int) -> Container:
    seg, exif_dict = _existing_exif(container)
    base = strip_metadata_tags(exif_dict) if exif_dict else None
    new_seg = _exif_segment(container.kind, build_exif(entries, base))
    if seg is not None and exif_dict is not None:
        return container.replaced(seg, new_seg)
    return container.inserted(insert_index, [new_seg])


def _split_entries(
    entries: list[MetadataEntry], comment_keywords: Sequence[str]
) -> tuple[list[MetadataEntry], list[MetadataEntry], list[MetadataEntry]]:
    """Split entries into ``(exif, xmp, comment)`` groups."""
    exif_entries: list[MetadataEntry] = []
    xmp_entries: list[MetadataEntry] = []
    comment_entries: list[MetadataEntry] = []
    for entry in entries:
        if entry.keyword == XMP_KEYWORD:
            xmp_entries.append(entry)
        elif entry.keyword in comment_keywords:
            comment_entries.append(entry)
        else:
            exif_entries.append(entry)
    return exif_entries, xmp_entries, comment_entries


def _write_png(container: Container, entries: list[MetadataEntry], strategy: str) -> Container:
    chunks = [png.make_text_chunk(entry.keyword, entry.text, strategy) for entry in entries]
    return container.inserted(png.metadata_insert_index(container), chunks)


def _write_jpeg(container: Container, entries: list[MetadataEntry], codec: VendorCodec | None) -> Container:
    comment_keywords = codec.jpeg_comment_keywords if codec is not None else ()
    exif_entries, xmp_entries, comment_entries = _split_entries(entries, comment_keywords)

    if exif_entries:
        container = _place_exif(container, exif_entries, jpeg.exif_insert_index(container))
    if xmp_entries:
        index = _after_exif(container, jpeg.exif_insert_index(container))
        container = container.inserted(index, [jpeg.make_xmp_segment(e.text) for e in xmp_entries])
    if comment_entries:
        index = jpeg.comment_insert_index(container)
        container = container.inserted(index, [jpeg.make_comment_segment(e.text) for e in comment_entries])
    return container


def _write_webp(container: Container, entries: list[MetadataEntry]) -> Container:
    exif_entries, xmp_entries, _ = _split_entries(entries, ())

    if exif_entries:
        container = _place_exif(container, exif_entries, webp.exif_insert_index(container))
    if xmp_entries:
        index = _after_exif(container, webp.exif_insert_index(container))
        container = container.inserted(index, [webp.make_xmp_chunk(e.text) for e in xmp_entries])
    return webp.sync_feature_flags(container)


def place_entries(
    container: Container,
    entries: list[MetadataEntry],
    codec: VendorCodec | None = None,
    config: CodecConfig = DEFAULT_CONFIG,
) -> Container:
    """
    Add carrier segments for *entries* to an already stripped container.

    Raises:
        ContainerEncodeError: If a segment cannot be represented.
    """
    if not entries:
        return container
    if container.kind is ContainerKind.PNG:
        strategy = (codec.png_text_strategy if codec is not None else None) or config.png_text_strategy
        return _write_png(container, entries, strategy)
    if container.kind is ContainerKind.JPEG:
        return _write_jpeg(container, entries, codec)
    return _write_webp(container, entries)


# ── Public entry point ──────────────────────────────────────────────


def write_metadata(
    data: bytes, request: WriteRequest, config: CodecConfig = DEFAULT_CONFIG
) -> WriteOutcome:
    """
    Apply a write request to an image buffer.

    Args:
        data: Complete image file (PNG, JPEG or WebP).
        request: What to write and, optionally, the vendor to convert to.
        config: Codec options (PNG text strategy).

    Returns:
        ``WriteOk`` with the new bytes (and a warning when a conversion
        dropped fields), or ``WriteErr`` for an unsupported or
        unserializable container.

    Raises:
        ValueError: If ``request.conversion_target`` is not a known software id.
    """
    kind = detect_kind(bytes(data))
    if kind is None:
        return WriteErr(WriteErrorKind.UNSUPPORTED_CONTAINER, "unknown image signature")
    if request.target_kind is not None and request.target_kind is not kind:
        return WriteErr(
            WriteErrorKind.UNSUPPORTED_CONTAINER,
            f"expected a {request.target_kind.value} container, got {kind.value}",
        )

    try:
        container = decode(data)
    except MalformedContainerError as exc:
        return WriteErr(WriteErrorKind.UNSUPPORTED_CONTAINER, str(exc))

    entries, codec, dropped = resolve_entries(request)
    try:
        container = place_entries(strip_container(container), entries, codec, config)
        output = encode(container)
    except ContainerEncodeError as exc:
        logger.debug("Container re-serialization failed: %s", exc)
        return WriteErr(WriteErrorKind.CONTAINER_ENCODE_FAILURE, exc.reason)

    logger.debug(
        "Wrote %d entr%s into %s container",
        len(entries),
        "y" if len(entries) == 1 else "ies",
        kind.value,
    )
    if dropped and isinstance(request.source, Canonical):
        target = request.conversion_target or request.source.metadata.software
        return WriteOk(output, warning=_dropped_warning(dropped, target), dropped_fields=dropped)
    return WriteOk(output)
