"""Tests for stealth module (alpha-channel payloads)."""

import gzip
import io
import json
import struct
from typing import Any, Callable

import numpy as np
from PIL import Image

from sdmeta.models import MetadataEntry
from sdmeta.stealth import LSBExtractor, byteize, payload_to_entries, read_stealth_payload

from conftest import NOVELAI_COMMENT


def _alpha_png(stream: bytes, size: tuple[int, int] = (32, 32)) -> bytes:
    """RGBA PNG whose alpha LSBs (column by column) spell *stream*."""
    width, height = size
    bits = np.unpackbits(np.frombuffer(stream, dtype=np.uint8))
    alpha = np.full(width * height, 254, dtype=np.uint8)
    alpha[: bits.size] |= bits
    rgba = np.zeros((height, width, 4), dtype=np.uint8)
    rgba[..., 3] = alpha.reshape((width, height)).T
    buffer = io.BytesIO()
    Image.fromarray(rgba).save(buffer, "PNG")
    return buffer.getvalue()


class TestByteize:
    """Tests for the LSB packing helpers."""

    def test_reads_column_major(self) -> None:
        # Column 0 holds the first 8 bits
        alpha = np.full((8, 2), 254, dtype=np.uint8)
        alpha[0, 0] = 255
        alpha[0, 1] = 255
        assert byteize(alpha).tolist() == [0x80, 0x80]

    def test_extractor_reads_sequentially(self) -> None:
        alpha = np.full((8, 8), 254, dtype=np.uint8)
        reader = LSBExtractor(alpha)
        assert reader.get_next_n_bytes(4) == b"\x00\x00\x00\x00"
        assert reader.read_32bit_integer() == 0
        assert reader.read_32bit_integer() is None


class TestReadStealthPayload:
    """Tests for read_stealth_payload function."""

    def test_plain_payload(self, make_stealth_png: Callable[..., bytes]) -> None:
        payload = {"Software": "NovelAI", "Comment": json.dumps(NOVELAI_COMMENT)}
        raw = read_stealth_payload(make_stealth_png(payload))
        assert json.loads(raw) == payload

    def test_compressed_payload(self, make_stealth_png: Callable[..., bytes]) -> None:
        payload = {"Software": "NovelAI", "Comment": json.dumps(NOVELAI_COMMENT)}
        raw = read_stealth_payload(make_stealth_png(payload, magic="stealth_pngcomp"))
        assert json.loads(raw) == payload

    def test_image_without_alpha(self, png_bytes: bytes) -> None:
        assert read_stealth_payload(png_bytes) is None

    def test_alpha_without_magic(self, make_png: Callable[..., bytes]) -> None:
        assert read_stealth_payload(make_png(mode="RGBA")) is None

    def test_truncated_payload(self) -> None:
        stream = b"stealth_pnginfo" + struct.pack(">I", 8 * 4096) + b"{}"
        assert read_stealth_payload(_alpha_png(stream)) is None

    def test_zero_length(self) -> None:
        stream = b"stealth_pnginfo" + struct.pack(">I", 0)
        assert read_stealth_payload(_alpha_png(stream)) is None

    def test_corrupt_gzip(self) -> None:
        body = b"not gzip"
        stream = b"stealth_pngcomp" + struct.pack(">I", 8 * len(body)) + body
        assert read_stealth_payload(_alpha_png(stream)) is None

    def test_gzip_body(self) -> None:
        body = gzip.compress(b'{"Software": "NovelAI"}')
        stream = b"stealth_pngcomp" + struct.pack(">I", 8 * len(body)) + body
        assert read_stealth_payload(_alpha_png(stream)) == b'{"Software": "NovelAI"}'

    def test_undecodable_image(self) -> None:
        assert read_stealth_payload(b"\x89PNG\r\n\x1a\n") is None


class TestPayloadToEntries:
    """Tests for payload_to_entries function."""

    def test_string_values(self) -> None:
        payload = json.dumps({"Title": "NovelAI generated image", "Software": "NovelAI"}).encode()
        assert payload_to_entries(payload) == [
            MetadataEntry("Title", "NovelAI generated image"),
            MetadataEntry("Software", "NovelAI"),
        ]

    def test_object_values_are_serialized(self) -> None:
        comment: dict[str, Any] = {"steps": 28, "prompt": "猫"}
        entries = payload_to_entries(json.dumps({"Comment": comment, "Source": None}).encode())
        assert entries == [MetadataEntry("Comment", '{"steps": 28, "prompt": "猫"}')]

    def test_not_an_object(self) -> None:
        assert payload_to_entries(b"[1, 2]") == []

    def test_not_json(self) -> None:
        assert payload_to_entries(b"\xff\xfe") == []

    def test_deeply_nested_json(self) -> None:
        assert payload_to_entries(b'{"Comment": ' + b"[" * 100_000) == []
