"""Payload extraction: find the segments that may carry generation metadata.

Candidates are produced in priority order:

1. **structured** - every entry from the carrier whitelist (PNG text
   chunks named in ``constants.CARRIER_KEYWORDS``, EXIF tags, JPEG
   comments, generation XMP packets), grouped into one candidate so
   multi-chunk conventions (NovelAI, ComfyUI) see all their pieces.  Only
   produced when at least one entry has a primary carrier keyword.
2. **fallback** - the first other, non-standard text chunk on its own.
3. **alpha** - the NovelAI alpha-channel stream, decoded from pixels, and
   only attempted when there is no structured candidate.

Extraction never fails: a container without metadata yields no
candidates.  ``is_carrier_segment`` applies the same rules to decide what
``strip`` removes, so a container that yields no candidate is left as it
is.
"""

from __future__ import annotations

import logging

from sdmeta.config import DEFAULT_CONFIG, CodecConfig
from sdmeta.constants import CARRIER_KEYWORDS, PNG_METADATA_KEYS, PRIMARY_CARRIER_KEYWORDS
from sdmeta.container import Container, ContainerKind, Segment, SegmentKind, encode
from sdmeta.exif import read_exif_entries
from sdmeta.models import MetadataEntry, PayloadCandidate
from sdmeta.stealth import payload_to_entries, read_stealth_payload
from sdmeta.xmp import XMP_KEYWORD, is_generation_packet, read_xmp_entries

logger = logging.getLogger(__name__)

_PRIORITY = {keyword: rank for rank, keyword in enumerate(PRIMARY_CARRIER_KEYWORDS)}


def _is_xmp_segment(seg: Segment) -> bool:
    return seg.kind is SegmentKind.XMP_PACKET or (seg.is_text and seg.keyword == XMP_KEYWORD)


def segment_entries(seg: Segment) -> list[MetadataEntry]:
    """
    Return the metadata entries carried by a single segment.

    Unverified segments (CRC or inflate failure) carry nothing.  An XMP
    packet is one ``XML:com.adobe.xmp`` entry holding the whole packet,
    and only when it carries generation settings.
    """
    if not seg.verified:
        return []
    if _is_xmp_segment(seg):
        if seg.text and is_generation_packet(seg.text):
            return [MetadataEntry(XMP_KEYWORD, seg.text)]
        return []
    if seg.is_text and seg.keyword is not None and seg.text is not None:
        return [MetadataEntry(seg.keyword, seg.text)]
    if seg.kind is SegmentKind.EXIF_BLOCK:
        return read_exif_entries(seg.payload)
    if seg.kind is SegmentKind.COMMENT and seg.text:
        return [MetadataEntry("Comment", seg.text)]
    return []


def is_carrier_segment(seg: Segment, has_payload: bool = True) -> bool:
    """
    True for segments ``strip`` removes.

    Primary carrier chunks go even when their CRC failed.  Companion
    chunks (``Software``, ``Title``, Easy Diffusion fields, ...) only go
    when *has_payload* says the container holds a generation payload.
    XMP packets go only when they carry generation settings.  EXIF blocks
    are cleaned tag by tag elsewhere and never count here.
    """
    if _is_xmp_segment(seg):
        return bool(seg.text) and is_generation_packet(seg.text)
    if seg.is_text:
        if seg.keyword in PRIMARY_CARRIER_KEYWORDS:
            return True
        return has_payload and seg.keyword in CARRIER_KEYWORDS
    if seg.kind is SegmentKind.COMMENT:
        return bool(seg.text)
    return False


def _structured_candidate(container: Container) -> PayloadCandidate | None:
    entries: list[MetadataEntry] = []
    sources: list[SegmentKind] = []
    for seg in container.segments:
        if seg.is_text and seg.keyword not in CARRIER_KEYWORDS:
            continue
        for entry in segment_entries(seg):
            entries.append(entry)
            sources.append(seg.kind)

    ranked = [
        (_PRIORITY[entry.keyword], index)
        for index, entry in enumerate(entries)
        if entry.keyword in _PRIORITY
    ]
    if not ranked:
        return None

    derived: list[MetadataEntry] = []
    for entry in entries:
        if entry.keyword == XMP_KEYWORD:
            derived.extend(read_xmp_entries(entry.text))

    _, primary = min(ranked)
    raw = entries[primary].text.encode("utf-8")
    return PayloadCandidate(
        source=sources[primary],
        raw=raw,
        text=entries[primary].text,
        entries=tuple(entries),
        derived=tuple(derived),
    )


def has_generation_payload(container: Container) -> bool:
    """True if *container* holds a primary carrier entry (a structured candidate)."""
    return _structured_candidate(container) is not None


def _fallback_candidate(container: Container) -> PayloadCandidate | None:
    for seg in container.segments:
        if not seg.is_text or seg.keyword in CARRIER_KEYWORDS or seg.keyword in PNG_METADATA_KEYS:
            continue
        entries = segment_entries(seg)
        if entries:
            entry = entries[0]
            return PayloadCandidate(
                source=seg.kind,
                raw=entry.text.encode("utf-8"),
                text=entry.text,
                entries=(entry,),
            )
    return None


def _alpha_candidate(container: Container) -> PayloadCandidate | None:
    payload = read_stealth_payload(encode(container))
    if payload is None:
        return None
    logger.debug("Found %d-byte alpha-channel payload", len(payload))
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        text = None
    return PayloadCandidate(
        source=SegmentKind.ALPHA_CHANNEL,
        raw=payload,
        text=text,
        entries=tuple(payload_to_entries(payload)),
    )


def extract(container: Container, config: CodecConfig = DEFAULT_CONFIG) -> list[PayloadCandidate]:
    """
    Locate payload candidates in a decoded container.

    Args:
        container: Decoded PNG/JPEG/WebP container.
        config: Codec options (controls the alpha-channel scan).

    Returns:
        Candidates in priority order; empty when nothing was found.
    """
    candidates: list[PayloadCandidate] = []

    structured = _structured_candidate(container)
    if structured is not None:
        candidates.append(structured)

    fallback = _fallback_candidate(container)
    if fallback is not None:
        candidates.append(fallback)

    if (
        structured is None
        and config.scan_alpha_channel
        and container.kind in (ContainerKind.PNG, ContainerKind.WEBP)
    ):
        alpha = _alpha_candidate(container)
        if alpha is not None:
            candidates.append(alpha)

    logger.debug("Extracted %d payload candidate(s)", len(candidates))
    return candidates
