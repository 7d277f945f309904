"""EXIF carrier helpers built on ``piexif``.

Generation tools that write JPEG/WebP store their text in a handful of
TIFF tags:

- ``UserComment`` (Exif IFD): the parameter text or JSON, with an 8-byte
  charset prefix (``UNICODE``, ``ASCII``, ``JIS`` or none)
- ``ImageDescription`` / ``Make`` (IFD0): ComfyUI save-image-extended
  writes ``"Workflow: {...}"`` and ``"Prompt: {...}"`` here
- ``Software`` / ``DocumentName`` (IFD0): NovelAI identity and title

Reading returns ``MetadataEntry`` keyword/text pairs; writing merges
entries into an existing EXIF dict so unrelated camera tags survive.
The same tag names are used by cameras and editors, so ownership is
decided per block by ``metadata_tags``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import piexif
import piexif.helper

from sdmeta.constants import (
    EXIF_DESCRIPTION_KEYWORDS,
    EXIF_HEADER,
    EXIF_MAKE_KEYWORDS,
    PRIMARY_CARRIER_KEYWORDS,
    USER_COMMENT_ASCII,
    USER_COMMENT_JIS,
    USER_COMMENT_UNICODE,
)
from sdmeta.errors import ContainerEncodeError
from sdmeta.models import MetadataEntry

logger = logging.getLogger(__name__)

# Tags that may carry generation metadata; companions are only owned next to a payload tag.
_PAYLOAD_TAGS = (
    ("0th", piexif.ImageIFD.ImageDescription),
    ("0th", piexif.ImageIFD.Make),
    ("Exif", piexif.ExifIFD.UserComment),
)
_COMPANION_TAGS = (
    ("0th", piexif.ImageIFD.ImageDescription),
    ("0th", piexif.ImageIFD.Software),
    ("0th", piexif.ImageIFD.DocumentName),
)

# IFD pointers; piexif.dump recreates them for non-empty IFDs.
_POINTER_TAGS = {
    "0th": (piexif.ImageIFD.ExifTag, piexif.ImageIFD.GPSTag),
    "Exif": (piexif.ExifIFD.InteroperabilityTag,),
}

_PREFIX_PATTERN = re.compile(r"^([A-Za-z][A-Za-z ]{0,31}):\s*(?=[{\[])")
_TIFF_MAGICS = (b"II*\x00", b"MM\x00*")


def _empty_exif() -> dict[str, Any]:
    return {"0th": {}, "Exif": {}, "GPS": {}, "Interop": {}, "1st": {}, "thumbnail": None}


def load_exif(payload: bytes) -> dict[str, Any] | None:
    """
    Parse an EXIF block with piexif.

    Args:
        payload: TIFF bytes, optionally prefixed with ``Exif\\0\\0``.

    Returns:
        The piexif dict, or None when the block cannot be parsed.
    """
    if not (payload.startswith(EXIF_HEADER) or payload[:4] in _TIFF_MAGICS):
        # piexif.load treats anything else as a file path
        return None
    try:
        return piexif.load(payload)
    except Exception as exc:
        logger.debug("piexif could not parse EXIF block: %s", exc)
        return None


def decode_user_comment(value: bytes) -> str | None:
    """
    Decode a ``UserComment`` value.

    The EXIF standard says ``UNICODE`` means UTF-16BE, but several tools
    write UTF-16LE; the byte pattern of the first character decides.
    """
    if not value:
        return None

    prefix, body = value[:8], value[8:]
    if prefix == USER_COMMENT_UNICODE:
        if len(body) >= 2 and body[0] != 0 and body[1] == 0:
            text = body.decode("utf-16-le", errors="replace")
        else:
            text = body.decode("utf-16-be", errors="replace")
    elif prefix == USER_COMMENT_ASCII:
        text = body.decode("utf-8", errors="replace")
    elif prefix == USER_COMMENT_JIS:
        text = body.decode("shift_jis", errors="replace")
    elif prefix == b"\x00" * 8:
        text = body.decode("utf-8", errors="replace")
    else:
        text = value.decode("utf-8", errors="replace")

    text = text.rstrip("\x00")
    return text if text.strip() else None


def _ascii_tag(value: Any) -> str | None:
    if isinstance(value, bytes):
        value = value.rstrip(b"\x00")
        try:
            text = value.decode("utf-8")
        except UnicodeDecodeError:
            text = value.decode("latin-1")
    elif isinstance(value, str):
        text = value.rstrip("\x00")
    else:
        return None
    return text or None


def _split_prefix(text: str, default: str) -> MetadataEntry:
    """Split ``"Prompt: {...}"`` into keyword ``Prompt`` and the JSON body."""
    match = _PREFIX_PATTERN.match(text)
    if match:
        return MetadataEntry(match.group(1), text[match.end() :])
    return MetadataEntry(default, text)


def read_exif_entries(payload: bytes) -> list[MetadataEntry]:
    """
    Extract metadata entries from an EXIF block.

    Args:
        payload: TIFF bytes, optionally prefixed with ``Exif\\0\\0``.

    Returns:
        Entries in carrier order: ImageDescription, Make, Software,
        DocumentName, UserComment.  Empty when nothing is present.
    """
    exif_dict = load_exif(payload)
    if exif_dict is None:
        return []

    entries: list[MetadataEntry] = []
    zeroth = exif_dict.get("0th", {})

    description = _ascii_tag(zeroth.get(piexif.ImageIFD.ImageDescription))
    if description:
        entries.append(_split_prefix(description, "Description"))

    make = _ascii_tag(zeroth.get(piexif.ImageIFD.Make))
    if make:
        entries.append(_split_prefix(make, "Make"))

    software = _ascii_tag(zeroth.get(piexif.ImageIFD.Software))
    if software:
        entries.append(MetadataEntry("Software", software))

    document_name = _ascii_tag(zeroth.get(piexif.ImageIFD.DocumentName))
    if document_name:
        entries.append(MetadataEntry("Title", document_name))

    user_comment = exif_dict.get("Exif", {}).get(piexif.ExifIFD.UserComment)
    if isinstance(user_comment, bytes):
        text = decode_user_comment(user_comment)
        if text:
            entries.extend(expand_packed_comment(text))

    return entries


def expand_packed_comment(text: str) -> list[MetadataEntry]:
    """
    Unpack a UserComment that holds several PNG text chunks as one JSON object.

    ``{"Software": "NovelAI", "Comment": "{...}"}`` becomes two entries.
    Anything that is not such an object stays a single ``Comment`` entry.
    """
    if text.startswith("{"):
        try:
            parsed = json.loads(text)
        except (ValueError, RecursionError):
            parsed = None
        if (
            isinstance(parsed, dict)
            and parsed
            and all(isinstance(v, str) for v in parsed.values())
            and any(key in PRIMARY_CARRIER_KEYWORDS for key in parsed)
        ):
            return [MetadataEntry(str(k), v) for k, v in parsed.items()]
    return [MetadataEntry("Comment", text)]


def pack_entries(entries: list[MetadataEntry]) -> str:
    """Inverse of ``expand_packed_comment`` for entries bound for UserComment."""
    if len(entries) == 1 and entries[0].keyword in ("Comment", "parameters"):
        return entries[0].text
    return json.dumps({e.keyword: e.text for e in entries}, ensure_ascii=False)


def _holds_payload(ifd: str, value: Any) -> bool:
    if ifd == "Exif":
        return isinstance(value, bytes) and decode_user_comment(value) is not None
    text = _ascii_tag(value)
    if not text:
        return False
    match = _PREFIX_PATTERN.match(text)
    return match is not None and match.group(1) in PRIMARY_CARRIER_KEYWORDS


def metadata_tags(exif_dict: dict[str, Any]) -> list[tuple[str, int]]:
    """
    Return the ``(ifd, tag)`` pairs of *exif_dict* that this codec owns.

    A tag is owned when it holds generation text: a non-empty
    ``UserComment``, or an ``ImageDescription``/``Make`` value such as
    ``"Prompt: {...}"``.  ``ImageDescription``, ``Software`` and
    ``DocumentName`` are owned too, but only alongside such a tag.  A
    camera block (``Make: Canon``, ``Software: Photoshop``) owns nothing.
    """
    owned = [
        (ifd, tag)
        for ifd, tag in _PAYLOAD_TAGS
        if tag in exif_dict.get(ifd, {}) and _holds_payload(ifd, exif_dict[ifd][tag])
    ]
    if owned:
        for ifd, tag in _COMPANION_TAGS:
            if tag in exif_dict.get(ifd, {}) and (ifd, tag) not in owned:
                owned.append((ifd, tag))
    return owned


def strip_metadata_tags(exif_dict: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *exif_dict* without the tags this codec owns."""
    owned = metadata_tags(exif_dict)
    cleaned = {ifd: dict(tags) if isinstance(tags, dict) else tags for ifd, tags in exif_dict.items()}
    for ifd, tag in owned:
        cleaned[ifd].pop(tag, None)
    for ifd, tags in _POINTER_TAGS.items():
        for tag in tags:
            cleaned.get(ifd, {}).pop(tag, None)
    return cleaned


def has_metadata_tags(exif_dict: dict[str, Any]) -> bool:
    """True if *exif_dict* holds any tag this codec owns."""
    return bool(metadata_tags(exif_dict))


def has_remaining_tags(exif_dict: dict[str, Any]) -> bool:
    """True if any IFD still holds tags worth keeping."""
    ifds = ("0th", "Exif", "GPS", "Interop", "1st")
    return any(exif_dict.get(ifd) for ifd in ifds) or bool(exif_dict.get("thumbnail"))


def build_exif(entries: list[MetadataEntry], base: dict[str, Any] | None = None) -> bytes:
    """
    Build an EXIF block carrying *entries*.

    Description/Workflow entries go to ImageDescription, Make/Prompt to
    Make (with a ``"Keyword: "`` prefix when the keyword is not the tag
    name), Software and Title to their tags, and everything else is
    packed into UserComment as UTF-16 ``UNICODE`` text.

    Args:
        entries: Entries to embed.
        base: Existing EXIF dict whose unrelated tags are kept.

    Returns:
        ``Exif\\0\\0`` followed by the TIFF structure.

    Raises:
        ContainerEncodeError: If piexif cannot serialize the result.
    """
    exif_dict = strip_metadata_tags(base) if base else _empty_exif()
    exif_dict.setdefault("0th", {})
    exif_dict.setdefault("Exif", {})
    if not exif_dict.get("thumbnail"):
        exif_dict.pop("thumbnail", None)

    comment_entries: list[MetadataEntry] = []
    for entry in entries:
        if entry.keyword in EXIF_DESCRIPTION_KEYWORDS:
            text = entry.text if entry.keyword == "Description" else f"{entry.keyword}: {entry.text}"
            exif_dict["0th"][piexif.ImageIFD.ImageDescription] = text.encode("utf-8")
        elif entry.keyword in EXIF_MAKE_KEYWORDS:
            text = entry.text if entry.keyword == "Make" else f"{entry.keyword}: {entry.text}"
            exif_dict["0th"][piexif.ImageIFD.Make] = text.encode("utf-8")
        elif entry.keyword == "Software":
            exif_dict["0th"][piexif.ImageIFD.Software] = entry.text.encode("utf-8")
        elif entry.keyword == "Title":
            exif_dict["0th"][piexif.ImageIFD.DocumentName] = entry.text.encode("utf-8")
        else:
            comment_entries.append(entry)

    if comment_entries:
        exif_dict["Exif"][piexif.ExifIFD.UserComment] = piexif.helper.UserComment.dump(
            pack_entries(comment_entries), encoding="unicode"
        )

    try:
        return piexif.dump(exif_dict)
    except Exception as exc:
        raise ContainerEncodeError(f"piexif could not build EXIF block: {exc}") from exc


def strip_exif(payload: bytes) -> bytes | None:
    """
    Remove metadata tags from an EXIF block.

    Returns:
        The rebuilt block (``Exif\\0\\0`` + TIFF) when unrelated tags remain,
        None when the block should be dropped entirely.

    Raises:
        ContainerEncodeError: If piexif cannot serialize the remaining tags.
    """
    exif_dict = load_exif(payload)
    if exif_dict is None:
        return None
    cleaned = strip_metadata_tags(exif_dict)
    if not has_remaining_tags(cleaned):
        return None
    if not cleaned.get("thumbnail"):
        cleaned.pop("thumbnail", None)
    try:
        return piexif.dump(cleaned)
    except Exception as exc:
        raise ContainerEncodeError(f"piexif could not rebuild EXIF block: {exc}") from exc
