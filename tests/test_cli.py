"""Tests for cli module."""

import json
from pathlib import Path

import pytest

from sdmeta.cli import main
from sdmeta.container import ContainerKind, detect_kind
from sdmeta.metadata_handler import parse
from sdmeta.models import Empty, Success


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("SDMETA_SCAN_ALPHA", "SDMETA_PNG_TEXT_STRATEGY", "SDMETA_FILL_DIMENSIONS"):
        monkeypatch.delenv(key, raising=False)


class TestRead:
    """Tests for the read command."""

    def test_prints_parameters(self, sample_png: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["read", str(sample_png)]) == 0
        out = capsys.readouterr().out
        assert "Stable Diffusion WebUI metadata" in out
        assert "Steps: 20" in out

    def test_json_output(self, sample_png: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["read", "--json", str(sample_png)]) == 0
        record = json.loads(capsys.readouterr().out)
        assert record["software"] == "sd-webui"
        assert record["sampling"]["seed"] == 12345

    def test_no_metadata(self, sample_jpg: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["read", str(sample_jpg)]) == 1
        assert "No generation metadata found." in capsys.readouterr().out

    def test_missing_file(self, temp_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["read", str(temp_dir / "missing.png")]) == 1
        assert "does not exist" in capsys.readouterr().err

    def test_not_an_image(self, temp_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = temp_dir / "notes.png"
        path.write_text("hello")
        assert main(["read", str(path)]) == 1
        assert "Malformed container" in capsys.readouterr().err

    def test_unsupported_suffix_warns(self, temp_dir: Path, a1111_png: bytes, capsys: pytest.CaptureFixture[str]) -> None:
        path = temp_dir / "image.bin"
        path.write_bytes(a1111_png)
        assert main(["read", str(path)]) == 0
        assert "may not be a supported format" in capsys.readouterr().err


class TestStrip:
    """Tests for the strip command."""

    def test_strip_to_output(self, sample_png: Path, temp_dir: Path) -> None:
        output = temp_dir / "out" / "clean.png"
        assert main(["strip", str(sample_png), "-o", str(output)]) == 0
        assert isinstance(parse(output.read_bytes()), Empty)
        assert isinstance(parse(sample_png.read_bytes()), Success)

    def test_strip_in_place(self, sample_png: Path) -> None:
        assert main(["strip", str(sample_png)]) == 0
        assert isinstance(parse(sample_png.read_bytes()), Empty)


class TestEmbed:
    """Tests for the embed command."""

    def test_embed_record(self, sample_jpg: Path, temp_dir: Path) -> None:
        record = temp_dir / "record.json"
        record.write_text(
            json.dumps(
                {
                    "software": "comfyui",
                    "prompt": "a cat",
                    "width": 64,
                    "height": 48,
                    "sampling": {"steps": 20, "seed": 3},
                }
            ),
            encoding="utf-8",
        )
        assert main(["embed", str(sample_jpg), str(record)]) == 0

        outcome = parse(sample_jpg.read_bytes())
        assert outcome.metadata.software == "comfyui"
        assert outcome.metadata.sampling.seed == 3

    def test_embed_with_target(self, sample_jpg: Path, temp_dir: Path) -> None:
        record = temp_dir / "record.json"
        record.write_text('{"software": "sd-webui", "prompt": "a cat", "width": 64, "height": 48, "sampling": {"steps": 20}}')
        output = temp_dir / "out.jpg"
        assert main(["embed", str(sample_jpg), str(record), "--to", "novelai", "-o", str(output)]) == 0
        assert parse(output.read_bytes()).metadata.software == "novelai"

    def test_invalid_record(self, sample_png: Path, temp_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        record = temp_dir / "record.json"
        record.write_text('{"software": "midjourney", "width": 1, "height": 1}')
        assert main(["embed", str(sample_png), str(record)]) == 1
        assert "invalid metadata file" in capsys.readouterr().err


class TestConvert:
    """Tests for the convert command."""

    def test_convert_warns_about_dropped_fields(
        self, sample_png: Path, temp_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        output = temp_dir / "comfy.png"
        assert main(["convert", str(sample_png), "--to", "comfyui", "-o", str(output)]) == 0

        assert "Warning: Fields not representable in ComfyUI" in capsys.readouterr().err
        converted = parse(output.read_bytes()).metadata
        assert converted.software == "comfyui"
        assert converted.sampling.seed == 12345

    def test_nothing_to_convert(self, sample_jpg: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["convert", str(sample_jpg), "--to", "novelai"]) == 1
        assert "nothing to convert" in capsys.readouterr().err

    def test_unknown_target(self, sample_png: Path) -> None:
        with pytest.raises(SystemExit):
            main(["convert", str(sample_png), "--to", "midjourney"])


class TestClone:
    """Tests for the clone command."""

    def test_clone_into_target(self, sample_png: Path, sample_jpg: Path) -> None:
        assert main(["clone", str(sample_png), str(sample_jpg)]) == 0
        assert parse(sample_jpg.read_bytes()).metadata.sampling.steps == 20

    def test_output_suffix_picks_format(self, sample_png: Path, sample_jpg: Path, temp_dir: Path) -> None:
        output = temp_dir / "cloned.webp"
        assert main(["clone", str(sample_png), str(sample_jpg), "-o", str(output)]) == 0

        data = output.read_bytes()
        assert detect_kind(data) is ContainerKind.WEBP
        assert parse(data).metadata.software == "sd-webui"


class TestMain:
    """Tests for argument handling."""

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([]) == 0
        assert "usage: sdmeta" in capsys.readouterr().out

    def test_invalid_environment(
        self, sample_png: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("SDMETA_PNG_TEXT_STRATEGY", "latin-1")
        assert main(["read", str(sample_png)]) == 1
        assert "png_text_strategy" in capsys.readouterr().err

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit):
            main(["--version"])
        assert "sdmeta 0.1.0" in capsys.readouterr().out
