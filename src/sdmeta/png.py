"""PNG chunk reader/writer.

Chunk layout: ``length (4, BE) | type (4) | data | crc (4)`` where the
CRC32 covers type and data.  Text chunks are decoded into keyword/text
pairs:

- ``tEXt``: ``keyword NUL text`` (Latin-1 by the book, UTF-8 in practice)
- ``zTXt``: ``keyword NUL method deflate(text)``
- ``iTXt``: ``keyword NUL flag method language NUL translated NUL text``

Anything after ``IEND`` is kept as a trailer segment.
"""

from __future__ import annotations

import logging
import struct
import zlib

from sdmeta.constants import (
    PNG_EXIF,
    PNG_IEND,
    PNG_IHDR,
    PNG_ITXT,
    PNG_MAX_INFLATED_TEXT,
    PNG_SIGNATURE,
    PNG_TEXT,
    PNG_ZTXT,
)
from sdmeta.container import Container, ContainerKind, Segment, SegmentKind
from sdmeta.errors import ContainerEncodeError, MalformedContainerError

logger = logging.getLogger(__name__)

_TEXT_KINDS = {
    PNG_TEXT: SegmentKind.TEXT_KEY_VALUE,
    PNG_ZTXT: SegmentKind.COMPRESSED_TEXT,
    PNG_ITXT: SegmentKind.INTERNATIONAL_TEXT,
}


def decode_png(data: bytes) -> Container:
    """
    Split a PNG file into chunk segments.

    Args:
        data: Complete PNG file contents.

    Returns:
        Container whose segments reproduce *data* exactly when re-encoded.

    Raises:
        MalformedContainerError: On a bad signature or a chunk running past
            the end of the buffer.
    """
    if not data.startswith(PNG_SIGNATURE):
        raise MalformedContainerError("missing PNG signature", 0)

    segments: list[Segment] = []
    offset = len(PNG_SIGNATURE)

    while offset < len(data):
        if offset + 12 > len(data):
            # Not enough room for a chunk header: keep the bytes as-is.
            segments.append(Segment(SegmentKind.TRAILER, raw=data[offset:]))
            break

        length, chunk_type = struct.unpack(">I4s", data[offset : offset + 8])
        end = offset + 12 + length
        if end > len(data):
            raise MalformedContainerError(
                f"chunk {chunk_type!r} length {length} exceeds buffer", offset
            )

        chunk_data = data[offset + 8 : offset + 8 + length]
        (crc,) = struct.unpack(">I", data[offset + 8 + length : end])
        segments.append(_decode_chunk(chunk_type, chunk_data, crc, data[offset:end]))
        offset = end

        if chunk_type == PNG_IEND:
            if offset < len(data):
                segments.append(Segment(SegmentKind.TRAILER, raw=data[offset:]))
            break

    return Container(ContainerKind.PNG, tuple(segments))


def _decode_chunk(chunk_type: bytes, chunk_data: bytes, crc: int, raw: bytes) -> Segment:
    """Classify one chunk, decoding text payloads."""
    identifier = chunk_type.decode("latin-1")

    if chunk_type in _TEXT_KINDS:
        verified = zlib.crc32(chunk_type + chunk_data) & 0xFFFFFFFF == crc
        if not verified:
            logger.debug("CRC mismatch in %s chunk", identifier)
        return _decode_text_chunk(chunk_type, chunk_data, raw, verified)

    if chunk_type == PNG_IHDR:
        kind = SegmentKind.IMAGE_HEADER
    elif chunk_type == b"IDAT":
        kind = SegmentKind.IMAGE_DATA
    elif chunk_type == PNG_EXIF:
        kind = SegmentKind.EXIF_BLOCK
    else:
        kind = SegmentKind.RAW_OPAQUE

    return Segment(kind, identifier=identifier, payload=chunk_data, raw=raw)


def _decode_text_chunk(chunk_type: bytes, chunk_data: bytes, raw: bytes, verified: bool) -> Segment:
    """Decode tEXt/zTXt/iTXt fields; undecodable chunks are marked unverified."""
    kind = _TEXT_KINDS[chunk_type]
    identifier = chunk_type.decode("latin-1")
    base = Segment(kind, identifier=identifier, payload=chunk_data, raw=raw, verified=False)

    null_index = chunk_data.find(b"\x00")
    if null_index <= 0:
        return base
    keyword = chunk_data[:null_index].decode("latin-1")
    rest = chunk_data[null_index + 1 :]

    try:
        if chunk_type == PNG_TEXT:
            return Segment(
                kind,
                identifier=identifier,
                payload=chunk_data,
                raw=raw,
                keyword=keyword,
                text=decode_text_bytes(rest),
                verified=verified,
            )

        if chunk_type == PNG_ZTXT:
            if not rest:
                return base
            text = decode_text_bytes(inflate_text(rest[1:]))
            return Segment(
                kind,
                identifier=identifier,
                payload=chunk_data,
                raw=raw,
                keyword=keyword,
                text=text,
                compressed=True,
                verified=verified,
            )

        # iTXt
        if len(rest) < 2:
            return base
        compressed = rest[0] == 1
        rest = rest[2:]
        lang_end = rest.find(b"\x00")
        if lang_end < 0:
            return base
        language = rest[:lang_end].decode("latin-1")
        rest = rest[lang_end + 1 :]
        translated_end = rest.find(b"\x00")
        if translated_end < 0:
            return base
        translated = rest[:translated_end].decode("utf-8", errors="replace")
        body = rest[translated_end + 1 :]
        if compressed:
            body = inflate_text(body)
        return Segment(
            kind,
            identifier=identifier,
            payload=chunk_data,
            raw=raw,
            keyword=keyword,
            text=body.decode("utf-8", errors="replace"),
            compressed=compressed,
            language=language,
            translated_keyword=translated,
            verified=verified,
        )
    except zlib.error as exc:
        logger.debug("Cannot inflate %s chunk %r: %s", identifier, keyword, exc)
        return Segment(
            kind, identifier=identifier, payload=chunk_data, raw=raw, keyword=keyword, verified=False
        )


def inflate_text(data: bytes, max_length: int = PNG_MAX_INFLATED_TEXT) -> bytes:
    """
    Inflate a zTXt/iTXt body, refusing to produce more than *max_length* bytes.

    Raises:
        zlib.error: If the stream is corrupt, truncated, or inflates past
            *max_length*.
    """
    inflater = zlib.decompressobj()
    text = inflater.decompress(data, max_length)
    if inflater.unconsumed_tail:
        raise zlib.error(f"inflated text exceeds {max_length} bytes")
    if not inflater.eof:
        raise zlib.error("incomplete or truncated stream")
    return text


def decode_text_bytes(value: bytes) -> str:
    """Decode tEXt bytes: UTF-8 when valid (many tools write it), else Latin-1."""
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return value.decode("latin-1")


def encode_png(container: Container) -> bytes:
    """Serialize a PNG container, framing any new segments."""
    parts = [PNG_SIGNATURE]
    for seg in container.segments:
        parts.append(seg.raw if seg.raw is not None else _frame_chunk(seg))
    return b"".join(parts)


def _frame_chunk(seg: Segment) -> bytes:
    """Build ``length | type | data | crc`` for a new chunk."""
    if not seg.identifier or len(seg.identifier) != 4:
        raise ContainerEncodeError(f"invalid PNG chunk type {seg.identifier!r}")
    chunk_type = seg.identifier.encode("latin-1")
    crc = zlib.crc32(chunk_type + seg.payload) & 0xFFFFFFFF
    return struct.pack(">I", len(seg.payload)) + chunk_type + seg.payload + struct.pack(">I", crc)


def _encode_keyword(keyword: str) -> bytes:
    """Validate and encode a PNG keyword (1-79 Latin-1 characters)."""
    try:
        encoded = keyword.encode("latin-1")
    except UnicodeEncodeError as exc:
        raise ContainerEncodeError(f"PNG keyword {keyword!r} is not Latin-1") from exc
    if not 1 <= len(encoded) <= 79 or b"\x00" in encoded:
        raise ContainerEncodeError(f"PNG keyword {keyword!r} must be 1-79 characters")
    return encoded


def make_text_chunk(keyword: str, text: str, strategy: str = "dynamic") -> Segment:
    """
    Create a new text segment for *keyword*.

    Strategies:
    - ``dynamic``: ``tEXt`` when the text is Latin-1 encodable, else ``iTXt``.
    - ``unicode-escape``: ``tEXt`` with characters beyond Latin-1 written as
      ``\\uXXXX`` escapes (JSON payloads).
    - ``utf8-raw``: ``tEXt`` holding raw UTF-8 bytes.

    Raises:
        ContainerEncodeError: If the keyword is not a valid PNG keyword.
    """
    key = _encode_keyword(keyword)

    if strategy == "unicode-escape":
        body = escape_non_latin1(text).encode("latin-1")
        return _text_segment(keyword, text, key + b"\x00" + body)

    if strategy == "utf8-raw":
        return _text_segment(keyword, text, key + b"\x00" + text.encode("utf-8"))

    try:
        body = text.encode("latin-1")
    except UnicodeEncodeError:
        payload = key + b"\x00\x00\x00\x00\x00" + text.encode("utf-8")
        return Segment(
            SegmentKind.INTERNATIONAL_TEXT,
            identifier=PNG_ITXT.decode("latin-1"),
            payload=payload,
            keyword=keyword,
            text=text,
        )
    return _text_segment(keyword, text, key + b"\x00" + body)


def _text_segment(keyword: str, text: str, payload: bytes) -> Segment:
    return Segment(
        SegmentKind.TEXT_KEY_VALUE,
        identifier=PNG_TEXT.decode("latin-1"),
        payload=payload,
        keyword=keyword,
        text=text,
    )


def escape_non_latin1(text: str) -> str:
    """
    Replace characters beyond Latin-1 with JSON-style ``\\uXXXX`` escapes.

    Latin-1 characters (up to ``0xFF``) stay as they are since ``tEXt``
    can hold them; astral characters become a surrogate pair.
    """
    out: list[str] = []
    for char in text:
        code = ord(char)
        if code < 0x100:
            out.append(char)
        elif code <= 0xFFFF:
            out.append(f"\\u{code:04x}")
        else:
            code -= 0x10000
            out.append(f"\\u{0xD800 + (code >> 10):04x}\\u{0xDC00 + (code & 0x3FF):04x}")
    return "".join(out)


def make_exif_chunk(tiff: bytes) -> Segment:
    """Create a new ``eXIf`` segment from raw TIFF bytes."""
    return Segment(SegmentKind.EXIF_BLOCK, identifier=PNG_EXIF.decode("latin-1"), payload=tiff)


def read_dimensions(container: Container) -> tuple[int, int] | None:
    """Return width/height from ``IHDR``."""
    for seg in container.segments:
        if seg.identifier == "IHDR" and len(seg.payload) >= 8:
            width, height = struct.unpack(">II", seg.payload[:8])
            return width, height
    return None


def metadata_insert_index(container: Container) -> int:
    """Index right after ``IHDR`` where new text chunks go."""
    index = container.index_of(lambda seg: seg.identifier == "IHDR")
    return 0 if index is None else index + 1
