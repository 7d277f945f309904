"""Test configuration and fixtures."""

from __future__ import annotations

import io
import json
import struct
from pathlib import Path
from typing import Any, Callable, Iterable

import numpy as np
import piexif
import piexif.helper
import pytest
from PIL import Image
from PIL.PngImagePlugin import PngInfo

A1111_TEXT = (
    "a castle on a hill, sunset\n"
    "Negative prompt: blurry, lowres\n"
    "Steps: 20, Sampler: Euler a, CFG scale: 7, Seed: 12345, Size: 512x768, "
    "Model hash: 6ce0161689, Model: dreamshaper_8"
)

NOVELAI_COMMENT = {
    "prompt": "1girl, smile",
    "steps": 28,
    "height": 64,
    "width": 64,
    "scale": 5,
    "uncond_scale": 1.0,
    "seed": 42,
    "sampler": "k_euler_ancestral",
    "noise_schedule": "karras",
    "uc": "lowres",
}


def _save(img: Image.Image, fmt: str, **kwargs: Any) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, fmt, **kwargs)
    return buffer.getvalue()


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Temporary directory for file-based tests."""
    return tmp_path


@pytest.fixture
def make_png() -> Callable[..., bytes]:
    """Factory for PNG buffers with optional text chunks."""

    def _make(
        chunks: Iterable[tuple[str, str]] = (),
        size: tuple[int, int] = (64, 48),
        mode: str = "RGB",
    ) -> bytes:
        img = Image.new(mode, size, color="red" if mode == "RGB" else (255, 0, 0, 255))
        info = PngInfo()
        for keyword, text in chunks:
            info.add_text(keyword, text)
        return _save(img, "PNG", pnginfo=info)

    return _make


@pytest.fixture
def make_exif() -> Callable[..., bytes]:
    """Factory for ``Exif\\0\\0`` blocks built with piexif."""

    def _make(user_comment: str | None = None, model: str | None = "EOS 5D", **zeroth: bytes) -> bytes:
        exif_dict: dict[str, Any] = {"0th": {}, "Exif": {}, "GPS": {}, "Interop": {}, "1st": {}}
        if model is not None:
            exif_dict["0th"][piexif.ImageIFD.Model] = model.encode("ascii")
        for name, value in zeroth.items():
            exif_dict["0th"][getattr(piexif.ImageIFD, name)] = value
        if user_comment is not None:
            exif_dict["Exif"][piexif.ExifIFD.UserComment] = piexif.helper.UserComment.dump(
                user_comment, encoding="unicode"
            )
        return piexif.dump(exif_dict)

    return _make


@pytest.fixture
def make_jpeg() -> Callable[..., bytes]:
    """Factory for JPEG buffers, optionally with an EXIF block."""

    def _make(exif: bytes | None = None, size: tuple[int, int] = (64, 48)) -> bytes:
        img = Image.new("RGB", size, color="blue")
        kwargs: dict[str, Any] = {"quality": 90}
        if exif is not None:
            kwargs["exif"] = exif
        return _save(img, "JPEG", **kwargs)

    return _make


@pytest.fixture
def make_webp() -> Callable[..., bytes]:
    """Factory for WebP buffers (lossy ``VP8 `` or, with EXIF, ``VP8X``)."""

    def _make(
        exif: bytes | None = None, size: tuple[int, int] = (64, 48), lossless: bool = False
    ) -> bytes:
        img = Image.new("RGB", size, color="green")
        kwargs: dict[str, Any] = {"lossless": lossless}
        if exif is not None:
            kwargs["exif"] = exif
        return _save(img, "WEBP", **kwargs)

    return _make


@pytest.fixture
def png_bytes(make_png: Callable[..., bytes]) -> bytes:
    """Plain PNG without any text chunk."""
    return make_png()


@pytest.fixture
def jpeg_bytes(make_jpeg: Callable[..., bytes]) -> bytes:
    """Plain JPEG without EXIF."""
    return make_jpeg()


@pytest.fixture
def webp_bytes(make_webp: Callable[..., bytes]) -> bytes:
    """Plain lossy WebP."""
    return make_webp()


@pytest.fixture
def a1111_png(make_png: Callable[..., bytes]) -> bytes:
    """PNG with an A1111 ``parameters`` chunk (steps 20, seed 12345, 512x768)."""
    return make_png([("parameters", A1111_TEXT)])


@pytest.fixture
def novelai_png(make_png: Callable[..., bytes]) -> bytes:
    """PNG with the NovelAI chunk set."""
    return make_png(
        [
            ("Title", "NovelAI generated image"),
            ("Description", NOVELAI_COMMENT["prompt"]),
            ("Software", "NovelAI"),
            ("Source", "Stable Diffusion XL C1E1DE52"),
            ("Comment", json.dumps(NOVELAI_COMMENT)),
        ],
        size=(64, 64),
    )


@pytest.fixture
def make_stealth_png() -> Callable[..., bytes]:
    """Factory for RGBA PNGs carrying a NovelAI alpha-channel payload."""

    def _make(payload: dict[str, Any], size: tuple[int, int] = (64, 64), magic: str = "stealth_pnginfo") -> bytes:
        body = json.dumps(payload).encode("utf-8")
        if magic == "stealth_pngcomp":
            import gzip

            body = gzip.compress(body)
        stream = magic.encode("ascii") + struct.pack(">I", len(body) * 8) + body
        bits = np.unpackbits(np.frombuffer(stream, dtype=np.uint8))

        width, height = size
        assert bits.size <= width * height, "payload does not fit in the alpha channel"
        alpha = np.full(width * height, 254, dtype=np.uint8)
        alpha[: bits.size] |= bits
        # Bits are read column by column
        alpha = alpha.reshape((width, height)).T

        rgba = np.zeros((height, width, 4), dtype=np.uint8)
        rgba[..., :3] = 128
        rgba[..., 3] = alpha
        return _save(Image.fromarray(rgba), "PNG")

    return _make


@pytest.fixture
def sample_png(temp_dir: Path, a1111_png: bytes) -> Path:
    """A1111 PNG written to disk."""
    path = temp_dir / "sample.png"
    path.write_bytes(a1111_png)
    return path


@pytest.fixture
def sample_jpg(temp_dir: Path, jpeg_bytes: bytes) -> Path:
    """Plain JPEG written to disk."""
    path = temp_dir / "sample.jpg"
    path.write_bytes(jpeg_bytes)
    return path
