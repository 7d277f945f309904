"""Tests for normalizer module and the canonical schema."""

import pytest
from pydantic import ValidationError

from sdmeta.normalizer import format_number, normalize, to_float, to_int, to_text
from sdmeta.schema import CharacterPrompt, GenerationMetadata, Point, SamplingSettings


class TestCoercion:
    """Tests for the scalar coercion helpers."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(20, 20), ("20", 20), (" 20 ", 20), ("7.0", 7), (7.0, 7), ("7.5", None), ("abc", None), (True, None), (-3, None)],
    )
    def test_to_int(self, value: object, expected: object) -> None:
        assert to_int(value) == expected

    def test_to_int_signed(self) -> None:
        assert to_int("-1", signed=True) == -1

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("7.5", 7.5), (7, 7.0), ("nan", None), ("inf", None), (float("nan"), None), ("-1", None), (None, None)],
    )
    def test_to_float(self, value: object, expected: object) -> None:
        assert to_float(value) == expected

    def test_to_float_signed(self) -> None:
        assert to_float("-1.5", signed=True) == -1.5

    def test_to_text_trims(self) -> None:
        assert to_text("  a cat  ") == "a cat"

    def test_to_text_whitespace_is_absent(self) -> None:
        assert to_text(" \n\t ") is None

    def test_to_text_normalizes_line_endings(self) -> None:
        assert to_text("a\r\nb\rc", keep_inner=True) == "a\nb\nc"

    def test_to_text_number(self) -> None:
        assert to_text(7.0) == "7"

    def test_format_number(self) -> None:
        assert format_number(7.0) == "7"
        assert format_number(7.5) == "7.5"
        assert format_number(12345) == "12345"


class TestNormalize:
    """Tests for normalize function."""

    def test_coerces_string_numbers(self) -> None:
        metadata = normalize(
            {"sampling.steps": "20", "sampling.cfg": "7.5", "sampling.seed": "-1", "width": "512", "height": 768},
            "sd-webui",
        )
        assert metadata.sampling == SamplingSettings(steps=20, cfg=7.5, seed=-1)
        assert (metadata.width, metadata.height) == (512, 768)

    def test_resolves_aliases(self) -> None:
        metadata = normalize(
            {"cfg_scale": 5, "sampler_name": "euler", "negativePrompt": "ugly", "model_hash": "abc"},
            "comfyui",
        )
        assert metadata.sampling.cfg == 5.0
        assert metadata.sampling.sampler == "euler"
        assert metadata.negative_prompt == "ugly"
        assert metadata.model.hash == "abc"

    def test_first_occurrence_wins(self) -> None:
        metadata = normalize({"sampling.cfg": 7, "cfg_scale": 5}, "sd-webui")
        assert metadata.sampling.cfg == 7.0

    def test_absent_values_omit_sub_records(self) -> None:
        metadata = normalize({"prompt": "a cat", "sampling.steps": None, "model.name": "   "}, "sd-webui")
        assert metadata.sampling is None
        assert metadata.model is None
        assert metadata.hires is None
        assert metadata.upscale is None

    def test_invalid_values_are_dropped(self) -> None:
        metadata = normalize({"sampling.steps": "-5", "sampling.cfg": "nan", "sampling.seed": 3}, "sd-webui")
        assert metadata.sampling == SamplingSettings(seed=3)

    def test_dimensions_default_to_zero(self) -> None:
        metadata = normalize({"prompt": "a cat"}, "novelai")
        assert (metadata.width, metadata.height) == (0, 0)

    def test_prompt_keeps_inner_whitespace(self) -> None:
        metadata = normalize({"prompt": "  line one\r\n  line two  "}, "sd-webui")
        assert metadata.prompt == "line one\n  line two"

    def test_unknown_keys_ignored(self) -> None:
        metadata = normalize({"prompt": "a cat", "lora": "detail", "Version": "v1.9"}, "sd-webui")
        assert metadata.populated_fields() == {"prompt", "width", "height"}

    def test_character_prompts(self) -> None:
        metadata = normalize(
            {
                "character_prompts": [
                    {"prompt": "girl", "center": {"x": "0.3", "y": 0.5}},
                    {"prompt": "boy", "center": None},
                    {"prompt": "  "},
                    "not a mapping",
                ]
            },
            "novelai",
        )
        assert metadata.character_prompts == (
            CharacterPrompt(prompt="girl", center=Point(x=0.3, y=0.5)),
            CharacterPrompt(prompt="boy"),
        )


class TestGenerationMetadata:
    """Tests for the canonical record model."""

    def test_populated_fields(self) -> None:
        metadata = GenerationMetadata(
            software="sd-webui",
            prompt="a cat",
            width=512,
            height=512,
            sampling=SamplingSettings(steps=20, seed=1),
            character_prompts=(CharacterPrompt(prompt="girl"),),
        )
        assert metadata.populated_fields() == {
            "prompt",
            "width",
            "height",
            "sampling.steps",
            "sampling.seed",
            "character_prompts",
        }

    def test_rejects_unknown_software(self) -> None:
        with pytest.raises(ValidationError):
            GenerationMetadata(software="midjourney", width=1, height=1)

    def test_rejects_non_finite(self) -> None:
        with pytest.raises(ValidationError):
            SamplingSettings(cfg=float("nan"))

    def test_rejects_negative_steps(self) -> None:
        with pytest.raises(ValidationError):
            SamplingSettings(steps=-1)

    def test_rejects_extra_fields(self) -> None:
        with pytest.raises(ValidationError):
            GenerationMetadata(software="sd-webui", width=1, height=1, lora="x")

    def test_is_frozen(self) -> None:
        metadata = GenerationMetadata(software="sd-webui", width=1, height=1)
        with pytest.raises(ValidationError):
            metadata.width = 2

    def test_json_round_trip(self) -> None:
        metadata = GenerationMetadata(
            software="novelai",
            width=832,
            height=1216,
            character_prompts=(CharacterPrompt(prompt="girl", center=Point(x=0.5, y=0.5)),),
        )
        assert GenerationMetadata.model_validate_json(metadata.model_dump_json()) == metadata
