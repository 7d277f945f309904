"""Tests for utils module."""

from pathlib import Path

from sdmeta.container import ContainerKind
from sdmeta.utils import get_image_format, is_supported_format


class TestIsSupportedFormat:
    """Tests for is_supported_format function."""

    def test_png_lowercase(self) -> None:
        assert is_supported_format(Path("image.png")) is True

    def test_png_uppercase(self) -> None:
        assert is_supported_format(Path("image.PNG")) is True

    def test_jpg_and_jpeg(self) -> None:
        assert is_supported_format(Path("image.jpg")) is True
        assert is_supported_format(Path("image.JPEG")) is True

    def test_webp(self) -> None:
        assert is_supported_format(Path("image.webp")) is True

    def test_unsupported_gif(self) -> None:
        assert is_supported_format(Path("image.gif")) is False

    def test_unsupported_tiff(self) -> None:
        assert is_supported_format(Path("image.tiff")) is False

    def test_no_extension(self) -> None:
        assert is_supported_format(Path("image")) is False

    def test_with_path_object(self) -> None:
        assert is_supported_format(Path("/some/path/image.png")) is True


class TestGetImageFormat:
    """Tests for get_image_format function."""

    def test_png(self) -> None:
        assert get_image_format(Path("image.png")) is ContainerKind.PNG

    def test_jpg_returns_jpeg(self) -> None:
        assert get_image_format(Path("image.jpg")) is ContainerKind.JPEG

    def test_jpeg_uppercase(self) -> None:
        assert get_image_format(Path("image.JPEG")) is ContainerKind.JPEG

    def test_webp(self) -> None:
        assert get_image_format(Path("out/image.webp")) is ContainerKind.WEBP

    def test_unknown_defaults_to_png(self) -> None:
        assert get_image_format(Path("image.bmp")) is ContainerKind.PNG
