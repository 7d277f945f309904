"""A1111-style parameter text (Stable Diffusion WebUI and its forks).

Format::

    positive prompt
    # Character 1 [0.5, 0.5]:
    character prompt
    Negative prompt: negative prompt
    Steps: 20, Sampler: Euler a, CFG scale: 7, Seed: 1, Size: 512x768, ...

The settings line starts after the last newline before ``Steps:``.  The
fork is identified from the ``Version:`` and ``App:`` settings.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from sdmeta.constants import A1111_FAMILY, STEPS_MARKER
from sdmeta.errors import DecodeError
from sdmeta.models import MetadataEntry, PayloadCandidate
from sdmeta.normalizer import format_number, normalize
from sdmeta.schema import CharacterPrompt, GenerationMetadata
from sdmeta.vendors.base import VendorCodec, canonical_values, parse_size

logger = logging.getLogger(__name__)

NEGATIVE_MARKER = "Negative prompt:"

_SETTING_PATTERN = re.compile(
    r"([A-Za-z][A-Za-z0-9 ]*?):\s*([^,]+?)(?=,\s*[A-Za-z][A-Za-z0-9 ]*?:|$)"
)
_CHARACTER_HEADER = re.compile(r"^# Character (\d+)(?: \[([^,\]]+),\s*([^\]]+)\])?:$")
_FORGE_VERSION = re.compile(r"^f\d")

# Settings key -> canonical path
SETTINGS_FIELDS = {
    "Model": "model.name",
    "Model hash": "model.hash",
    "Sampler": "sampling.sampler",
    "Schedule type": "sampling.scheduler",
    "Steps": "sampling.steps",
    "CFG scale": "sampling.cfg",
    "CFG Scale": "sampling.cfg",
    "Seed": "sampling.seed",
    "Clip skip": "sampling.clip_skip",
    "Hires upscale": "hires.scale",
    "Hires upscaler": "hires.upscaler",
    "Hires steps": "hires.steps",
    "Denoising strength": "hires.denoise",
}

# Serialization order of the settings line
SETTINGS_ORDER = (
    ("Steps", "sampling.steps"),
    ("Sampler", "sampling.sampler"),
    ("Schedule type", "sampling.scheduler"),
    ("CFG scale", "sampling.cfg"),
    ("Seed", "sampling.seed"),
    ("Size", None),
    ("Model hash", "model.hash"),
    ("Model", "model.name"),
    ("Clip skip", "sampling.clip_skip"),
    ("Denoising strength", "hires.denoise"),
    ("Hires upscale", "hires.scale"),
    ("Hires steps", "hires.steps"),
    ("Hires upscaler", "hires.upscaler"),
)

# Version/App settings written so a fork is recognized again on read
VARIANT_SETTINGS = {
    "forge-neo": ("Version", "neo"),
    "forge-classic": ("Version", "classic"),
    "reforge": ("Version", "reforge"),
    "easy-reforge": ("Version", "easy-reforge"),
    "sd-next": ("App", "SD.Next"),
}

A1111_SUPPORTED_FIELDS = frozenset(
    {
        "prompt",
        "negative_prompt",
        "width",
        "height",
        "character_prompts",
        *(path for _, path in SETTINGS_ORDER if path is not None),
    }
)


def parameter_text(candidate: PayloadCandidate) -> str | None:
    """Return the ``parameters`` (PNG) or ``Comment`` (JPEG/WebP) text."""
    record = candidate.record
    return record.get("parameters", record.get("Comment"))


def split_parameters_text(text: str) -> tuple[str, str, str]:
    """
    Split parameter text into prompt, negative prompt and settings line.

    Returns:
        ``(prompt, negative_prompt, settings)``; missing parts are ``""``.
    """
    negative_index = text.find(NEGATIVE_MARKER)
    steps_index = text.find(STEPS_MARKER)

    if steps_index == -1:
        if negative_index == -1:
            return text.strip(), "", ""
        return (
            text[:negative_index].strip(),
            text[negative_index + len(NEGATIVE_MARKER) :].strip(),
            "",
        )

    settings_start = max(text.rfind("\n", 0, steps_index), 0)
    settings = text[settings_start:].strip()
    if negative_index == -1 or negative_index > settings_start:
        return text[:settings_start].strip(), "", settings
    return (
        text[:negative_index].strip(),
        text[negative_index + len(NEGATIVE_MARKER) : settings_start].strip(),
        settings,
    )


def parse_settings(settings: str) -> dict[str, str]:
    """Parse ``"Key: value, Key2: value2"`` into an ordered dict."""
    return {
        match.group(1).strip(): match.group(2).strip()
        for match in _SETTING_PATTERN.finditer(settings)
    }


def split_character_prompts(prompt: str) -> tuple[str, list[dict[str, Any]]]:
    """Separate ``# Character N [x, y]:`` sections from the main prompt."""
    lines = prompt.split("\n")
    main: list[str] = []
    characters: list[dict[str, Any]] = []
    for line in lines:
        match = _CHARACTER_HEADER.match(line.strip())
        if match:
            center = None
            if match.group(2) is not None:
                center = {"x": match.group(2).strip(), "y": match.group(3).strip()}
            characters.append({"prompt": "", "center": center, "lines": []})
        elif characters:
            characters[-1]["lines"].append(line)
        else:
            main.append(line)

    for character in characters:
        character["prompt"] = "\n".join(character.pop("lines"))
    return "\n".join(main), characters


def detect_variant(version: str | None, app: str | None) -> str:
    """Pick the A1111 fork from the ``Version:``/``App:`` settings."""
    if app == "SD.Next":
        return "sd-next"
    if not version:
        return "sd-webui"
    lowered = version.lower()
    if lowered.startswith("neo"):
        return "forge-neo"
    if lowered == "classic":
        return "forge-classic"
    if "easy-reforge" in lowered or "easyreforge" in lowered:
        return "easy-reforge"
    if "reforge" in lowered:
        return "reforge"
    if _FORGE_VERSION.match(version):
        return "forge"
    return "sd-webui"


def decode_parameters_text(text: str, software: str | None = None) -> GenerationMetadata:
    """
    Decode A1111 parameter text into a canonical record.

    Args:
        text: The full parameter text.
        software: Force the software id; detected from ``Version``/``App``
            when None.

    Raises:
        DecodeError: If the settings line carries no ``Steps`` value.
    """
    prompt, negative, settings_line = split_parameters_text(text)
    settings = parse_settings(settings_line)
    if "Steps" not in settings:
        raise DecodeError(software or "sd-webui", "settings line has no Steps value")

    if software is None:
        software = detect_variant(settings.get("Version"), settings.get("App"))

    prompt, characters = split_character_prompts(prompt)
    fields: dict[str, Any] = {
        "prompt": prompt,
        "negative_prompt": negative,
        "character_prompts": characters,
    }
    for key, path in SETTINGS_FIELDS.items():
        if key in settings and path not in fields:
            fields[path] = settings[key]

    size = parse_size(settings.get("Size"))
    width, height = size if size else (0, 0)
    fields["width"], fields["height"] = width, height

    if "Hires upscale" not in settings and width > 0:
        hires_size = parse_size(settings.get("Hires size"))
        if hires_size:
            fields["hires.scale"] = hires_size[0] / width

    return normalize(fields, software)


def build_parameters_text(
    metadata: GenerationMetadata, extra_settings: dict[str, str] | None = None
) -> str:
    """
    Serialize a record as A1111 parameter text.

    Args:
        metadata: Record to serialize.
        extra_settings: Settings appended after the standard ones.
    """
    values = canonical_values(metadata)
    settings: list[str] = []
    for key, path in SETTINGS_ORDER:
        if path is None:
            if metadata.width > 0 and metadata.height > 0:
                settings.append(f"Size: {metadata.width}x{metadata.height}")
            continue
        value = values.get(path)
        if value is not None:
            settings.append(f"{key}: {_format_value(value)}")
    for key, value in (extra_settings or {}).items():
        settings.append(f"{key}: {value}")

    parts = [_lf(metadata.prompt or "")]
    for index, character in enumerate(metadata.character_prompts, start=1):
        parts.append(_character_header(index, character))
        parts.append(_lf(character.prompt))
    if metadata.negative_prompt:
        parts.append(f"{NEGATIVE_MARKER} {_lf(metadata.negative_prompt)}")
    if settings:
        parts.append(", ".join(settings))
    return "\n".join(parts)


def _character_header(index: int, character: CharacterPrompt) -> str:
    if character.center is None:
        return f"# Character {index}:"
    x, y = format_number(character.center.x), format_number(character.center.y)
    return f"# Character {index} [{x}, {y}]:"


def _format_value(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_number(value)
    return str(value)


def _lf(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


class A1111Codec(VendorCodec):
    """Stable Diffusion WebUI, Forge (Classic/Neo), reForge, EasyReforge, SD.Next."""

    name = "a1111"
    software = "sd-webui"
    variants = tuple(s for s in A1111_FAMILY if s != "sd-webui")
    supported_fields = A1111_SUPPORTED_FIELDS

    def claims(self, candidate: PayloadCandidate) -> bool:
        text = parameter_text(candidate)
        return bool(text) and not text.lstrip().startswith("{") and STEPS_MARKER in text

    def decode(self, candidate: PayloadCandidate) -> GenerationMetadata:
        metadata = decode_parameters_text(parameter_text(candidate) or "")
        logger.debug("A1111 parameters recognized as %s", metadata.software)
        return metadata

    def encode(self, metadata: GenerationMetadata) -> list[MetadataEntry]:
        variant = VARIANT_SETTINGS.get(metadata.software)
        extra = {variant[0]: variant[1]} if variant else None
        return [MetadataEntry("parameters", build_parameters_text(metadata, extra))]
