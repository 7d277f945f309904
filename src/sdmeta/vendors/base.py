"""Vendor codec interface and shared helpers.

Each supported generation tool is one ``VendorCodec`` instance.  A codec
answers three questions:

- ``claims``: does this candidate carry my marker?  Only cheap checks
  (keyword presence, substring or prefix tests) are allowed here.
- ``decode``: turn a claimed candidate into a canonical record, raising
  ``DecodeError`` when the payload is corrupt.
- ``encode``: turn a canonical record into carrier entries in this
  tool's convention.

``JsonVendor`` covers the tools that store one flat (or shallowly nested)
JSON object: subclasses only declare where the JSON lives and how its keys
map to canonical field paths.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping, Optional, Union

from pydantic import ValidationError

from sdmeta.errors import DecodeError
from sdmeta.models import MetadataEntry, PayloadCandidate
from sdmeta.normalizer import normalize
from sdmeta.schema import GenerationMetadata

logger = logging.getLogger(__name__)


# ── Decode results ──────────────────────────────────────────────────


@dataclass(frozen=True)
class Claimed:
    """The codec recognized its marker; exactly one of the fields is set."""

    metadata: Optional[GenerationMetadata] = None
    malformed: Optional[str] = None


@dataclass(frozen=True)
class NotMine:
    """The codec's marker is absent."""


DecodeResult = Union[Claimed, NotMine]

_DECODE_FAILURES = (
    ValueError,
    KeyError,
    TypeError,
    AttributeError,
    IndexError,
    RecursionError,
    ValidationError,
)


# ── Field helpers ───────────────────────────────────────────────────


def canonical_values(metadata: GenerationMetadata) -> dict[str, Any]:
    """Flatten a record to ``{dotted path: value}`` for every populated field."""
    values: dict[str, Any] = {}
    for path in metadata.populated_fields():
        if path == "character_prompts":
            values[path] = metadata.character_prompts
            continue
        value: Any = metadata
        for part in path.split("."):
            value = getattr(value, part)
        values[path] = value
    return values


def get_path(data: Mapping[str, Any], path: str) -> Any:
    """Look up ``"a.b"`` in nested mappings; None when any step is missing."""
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def set_path(data: dict[str, Any], path: str, value: Any) -> None:
    """Assign ``"a.b"`` in nested dicts, creating intermediate dicts."""
    parts = path.split(".")
    target = data
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def load_json_object(text: str, software: str) -> dict[str, Any]:
    """
    Parse *text* as a JSON object.

    Trailing NUL padding (written by some tools) is ignored.

    Raises:
        DecodeError: If the text is not valid JSON or not an object.
    """
    try:
        parsed = json.loads(text.rstrip("\x00"))
    except (ValueError, RecursionError) as exc:
        raise DecodeError(software, f"invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise DecodeError(software, f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


def dump_json(payload: Mapping[str, Any]) -> str:
    """Serialize a payload the way generation tools write it (UTF-8, no escaping)."""
    return json.dumps(payload, ensure_ascii=False)


def parse_size(value: Any) -> tuple[int, int] | None:
    """Parse ``"832x1216"`` or ``"832 x 1216"`` into ``(width, height)``."""
    if not isinstance(value, str):
        return None
    width, sep, height = value.lower().partition("x")
    if not sep:
        return None
    try:
        return int(width.strip()), int(height.strip())
    except ValueError:
        return None


# ── Codec interface ─────────────────────────────────────────────────


class VendorCodec(ABC):
    """
    Abstract base class for one generation tool's metadata convention.

    Attributes:
        name: Identifier in the decoder chain.
        software: Canonical software id this codec produces by default.
        variants: Further software ids this codec encodes (A1111 forks).
        supported_fields: Canonical field paths the encoding can represent.
        png_text_strategy: PNG text-chunk strategy for this tool's chunks,
            or None to use the configured default.
        jpeg_comment_keywords: Entry keywords written to a JPEG ``COM``
            segment instead of EXIF.
    """

    name: ClassVar[str] = "base"
    software: ClassVar[str] = ""
    variants: ClassVar[tuple[str, ...]] = ()
    supported_fields: ClassVar[frozenset[str]] = frozenset()
    png_text_strategy: ClassVar[Optional[str]] = None
    jpeg_comment_keywords: ClassVar[tuple[str, ...]] = ()

    @abstractmethod
    def claims(self, candidate: PayloadCandidate) -> bool:
        """Check the cheap structural signature of *candidate*."""

    @abstractmethod
    def decode(self, candidate: PayloadCandidate) -> GenerationMetadata:
        """
        Decode a claimed candidate.

        Raises:
            DecodeError: If the payload is corrupt or truncated.
        """

    @abstractmethod
    def encode(self, metadata: GenerationMetadata) -> list[MetadataEntry]:
        """Serialize *metadata* into this tool's carrier entries."""

    def try_decode(self, candidate: PayloadCandidate) -> DecodeResult:
        """
        Claim and decode *candidate* without raising.

        Returns:
            ``NotMine`` when the marker is absent, otherwise ``Claimed``
            with either the record or the reason it is malformed.
        """
        if not self.claims(candidate):
            return NotMine()
        try:
            metadata = self.decode(candidate)
        except DecodeError as exc:
            return Claimed(malformed=exc.reason)
        except _DECODE_FAILURES as exc:
            return Claimed(malformed=f"{type(exc).__name__}: {exc}")
        return Claimed(metadata=metadata)

    def handles(self, software: str) -> bool:
        """True if this codec encodes records labelled *software*."""
        return software == self.software or software in self.variants

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class JsonVendor(VendorCodec):
    """
    Table-driven codec for tools that store a single JSON object.

    Subclasses declare:

    - ``keywords``: entry keywords to look for the JSON in, in order
    - ``carrier_keyword``: entry keyword used when encoding
    - ``fields``: vendor key (dotted for nesting) -> canonical path; when
      several keys map to one path, the first present wins on decode and
      the first listed is written on encode
    - ``fixed``: constant keys written on encode (identity markers)
    """

    keywords: ClassVar[tuple[str, ...]] = ("parameters", "Comment")
    carrier_keyword: ClassVar[str] = "parameters"
    fields: ClassVar[dict[str, str]] = {}
    fixed: ClassVar[dict[str, Any]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.fields and not cls.supported_fields:
            cls.supported_fields = frozenset(cls.fields.values())

    def json_text(self, candidate: PayloadCandidate) -> str | None:
        """Return the first entry text under ``keywords`` that looks like JSON."""
        record = candidate.record
        for keyword in self.keywords:
            text = record.get(keyword)
            if text is not None and text.lstrip().startswith("{"):
                return text
        return None

    def load(self, candidate: PayloadCandidate) -> Mapping[str, Any]:
        """Return the JSON object that holds this tool's fields."""
        text = self.json_text(candidate)
        if text is None:
            raise DecodeError(self.software, "no JSON payload found")
        return load_json_object(text, self.software)

    def extract(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Map vendor keys to canonical paths; missing keys are skipped."""
        extracted: dict[str, Any] = {}
        for key, path in self.fields.items():
            value = data.get(key) if key in data else get_path(data, key)
            if value is not None and path not in extracted:
                extracted[path] = value
        return extracted

    def decode(self, candidate: PayloadCandidate) -> GenerationMetadata:
        data = self.load(candidate)
        fields = self.extract(data)
        logger.debug("%s decoded %d field(s)", self.name, len(fields))
        return normalize(fields, self.software)

    def dump(self, metadata: GenerationMetadata) -> dict[str, Any]:
        """Build the JSON object for *metadata* (inverse of ``extract``)."""
        values = canonical_values(metadata)
        payload: dict[str, Any] = dict(self.fixed)
        written: set[str] = set()
        for key, path in self.fields.items():
            if path in written or path not in values:
                continue
            set_path(payload, key, values[path])
            written.add(path)
        return payload

    def encode(self, metadata: GenerationMetadata) -> list[MetadataEntry]:
        return [MetadataEntry(self.carrier_keyword, dump_json(self.dump(metadata)))]
