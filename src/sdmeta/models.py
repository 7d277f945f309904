"""Transient values passed between the codec stages.

- ``MetadataEntry``: one keyword/text pair read from a carrier
- ``PayloadCandidate``: what the extractor hands to the recognizer
- ``ParseOutcome``: ``Success | Empty | Unrecognized | Invalid``
- ``WriteRequest`` sources: ``Strip | PassThrough | Canonical``
- ``WriteOutcome``: ``WriteOk | WriteErr``

All are immutable and created fresh per call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional, Union

from sdmeta.container import ContainerKind, SegmentKind
from sdmeta.schema import GenerationMetadata


class MetadataEntry(NamedTuple):
    """Keyword/text pair from a text chunk, EXIF tag, or comment."""

    keyword: str
    text: str


@dataclass(frozen=True)
class PayloadCandidate:
    """
    A payload that may hold generation metadata.

    ``raw`` and ``text`` describe the primary entry (the one that made
    this a candidate); ``entries`` carries every entry of the carrier group
    so decoders for multi-chunk conventions can see their siblings, and is
    what a write puts back.  ``derived`` holds fields read out of a
    structured carrier (the properties of an XMP packet): decoders see
    them, writes never emit them.
    """

    source: SegmentKind
    raw: bytes
    text: Optional[str]
    entries: tuple[MetadataEntry, ...] = ()
    derived: tuple[MetadataEntry, ...] = ()

    @property
    def record(self) -> dict[str, str]:
        """Entries then derived fields as a keyword -> text dict (first occurrence wins)."""
        record: dict[str, str] = {}
        for entry in self.entries + self.derived:
            record.setdefault(entry.keyword, entry.text)
        return record


# ── Parse outcomes ──────────────────────────────────────────────────


@dataclass(frozen=True)
class Success:
    """A payload was recognized and decoded."""

    metadata: GenerationMetadata
    entries: tuple[MetadataEntry, ...] = ()
    source: Optional[SegmentKind] = None


@dataclass(frozen=True)
class Empty:
    """No payload candidate was found."""


@dataclass(frozen=True)
class Unrecognized:
    """Candidates existed but no vendor decoder claimed any of them."""

    raw_payload: bytes
    entries: tuple[MetadataEntry, ...] = ()


@dataclass(frozen=True)
class Invalid:
    """A vendor claimed the payload but it is corrupt or truncated."""

    reason: str
    software: str
    raw_payload: bytes = b""
    entries: tuple[MetadataEntry, ...] = ()


ParseOutcome = Union[Success, Empty, Unrecognized, Invalid]


# ── Write requests and outcomes ─────────────────────────────────────


@dataclass(frozen=True)
class Strip:
    """Remove every metadata carrier; add nothing."""


@dataclass(frozen=True)
class PassThrough:
    """Re-embed raw entries verbatim without understanding them."""

    raw: bytes = b""
    entries: tuple[MetadataEntry, ...] = ()


@dataclass(frozen=True)
class Canonical:
    """
    Embed a canonical record.

    ``entries`` holds the carrier entries the record was parsed from; when
    present (and no conversion is requested) they are re-embedded as-is.
    """

    metadata: GenerationMetadata
    entries: tuple[MetadataEntry, ...] = ()


WriteSource = Union[Strip, PassThrough, Canonical]


@dataclass(frozen=True)
class WriteRequest:
    """What to write and, optionally, which vendor encoding to convert to."""

    source: WriteSource
    target_kind: Optional[ContainerKind] = None
    conversion_target: Optional[str] = None


class WriteErrorKind(str, Enum):
    UNSUPPORTED_CONTAINER = "UnsupportedContainer"
    CONTAINER_ENCODE_FAILURE = "ContainerEncodeFailure"


@dataclass(frozen=True)
class WriteOk:
    """Write succeeded; ``warning`` lists what a lossy conversion dropped."""

    output: bytes
    warning: Optional[str] = None
    dropped_fields: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class WriteErr:
    """Write failed; the input is not returned."""

    kind: WriteErrorKind
    message: str = ""


WriteOutcome = Union[WriteOk, WriteErr]
