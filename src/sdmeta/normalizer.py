"""Coercion and defaulting rules applied to every decoder's output.

Vendor decoders translate their own field names into canonical dotted
paths (``sampling.steps``, ``model.name`` ...) and hand the flat mapping
to ``normalize``.  The normalizer then:

- resolves the common aliases shared by several tools (``cfg_scale``,
  ``negativePrompt`` ...) to canonical paths
- coerces numbers (``"20"`` -> 20, ``"7.5"`` -> 7.5) and rejects
  non-finite values and negatives where a field cannot be negative
- trims strings and treats whitespace-only strings as absent
- omits sub-records for which no field was provided
"""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, Mapping

from sdmeta.schema import (
    CharacterPrompt,
    GenerationMetadata,
    HiresSettings,
    ModelSettings,
    Point,
    SamplingSettings,
    UpscaleSettings,
)

ALIASES = {
    "negativePrompt": "negative_prompt",
    "negative": "negative_prompt",
    "cfg_scale": "sampling.cfg",
    "cfgScale": "sampling.cfg",
    "guidance_scale": "sampling.cfg",
    "sampler_name": "sampling.sampler",
    "clip_skip": "sampling.clip_skip",
    "clipSkip": "sampling.clip_skip",
    "num_inference_steps": "sampling.steps",
    "steps": "sampling.steps",
    "seed": "sampling.seed",
    "cfg": "sampling.cfg",
    "sampler": "sampling.sampler",
    "scheduler": "sampling.scheduler",
    "model_name": "model.name",
    "model_hash": "model.hash",
}

_INT_FIELDS = {"width", "height", "sampling.steps", "sampling.seed", "sampling.clip_skip", "hires.steps"}
_FLOAT_FIELDS = {"sampling.cfg", "hires.scale", "hires.denoise", "upscale.scale"}
_SIGNED_FIELDS = {"sampling.seed"}
_STRING_FIELDS = {
    "prompt",
    "negative_prompt",
    "model.name",
    "model.hash",
    "sampling.sampler",
    "sampling.scheduler",
    "hires.upscaler",
    "upscale.upscaler",
}
_PROMPT_FIELDS = {"prompt", "negative_prompt"}
_KNOWN_PATHS = _INT_FIELDS | _FLOAT_FIELDS | _STRING_FIELDS | {"character_prompts"}
_INT_PATTERN = re.compile(r"^-?\d+$")

_SUB_RECORDS = {
    "model": ModelSettings,
    "sampling": SamplingSettings,
    "hires": HiresSettings,
    "upscale": UpscaleSettings,
}


def to_number(value: Any) -> float | None:
    """Parse *value* as a finite number, or return None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def to_int(value: Any, signed: bool = False) -> int | None:
    """Parse *value* as an integer; negatives are rejected unless *signed*."""
    if isinstance(value, int) and not isinstance(value, bool):
        number: int | None = value
    elif isinstance(value, str) and _INT_PATTERN.match(value.strip()):
        number = int(value.strip())
    else:
        parsed = to_number(value)
        number = int(parsed) if parsed is not None and parsed.is_integer() else None
    if number is None or (number < 0 and not signed):
        return None
    return number


def to_float(value: Any, signed: bool = False) -> float | None:
    number = to_number(value)
    if number is None or (number < 0 and not signed):
        return None
    return number


def to_text(value: Any, keep_inner: bool = False) -> str | None:
    """Trim a string value; whitespace-only strings become None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = format_number(value)
    if not isinstance(value, str):
        return None
    text = value.replace("\r\n", "\n").replace("\r", "\n") if keep_inner else value
    text = text.strip()
    return text or None


def format_number(value: float | int) -> str:
    """Render ``7.0`` as ``7`` and ``7.5`` as ``7.5``."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _coerce(path: str, value: Any) -> Any:
    if path in _INT_FIELDS:
        return to_int(value, signed=path in _SIGNED_FIELDS)
    if path in _FLOAT_FIELDS:
        return to_float(value, signed=path == "sampling.cfg")
    if path in _STRING_FIELDS:
        return to_text(value, keep_inner=path in _PROMPT_FIELDS)
    return value


def _character_prompts(value: Any) -> tuple[CharacterPrompt, ...]:
    if not isinstance(value, Iterable) or isinstance(value, (str, bytes, Mapping)):
        return ()
    prompts: list[CharacterPrompt] = []
    for item in value:
        if isinstance(item, CharacterPrompt):
            prompts.append(item)
            continue
        if not isinstance(item, Mapping):
            continue
        text = to_text(item.get("prompt"), keep_inner=True)
        if text is None:
            continue
        center = item.get("center")
        point = None
        if isinstance(center, Point):
            point = center
        elif isinstance(center, Mapping):
            x, y = to_float(center.get("x")), to_float(center.get("y"))
            if x is not None and y is not None:
                point = Point(x=x, y=y)
        prompts.append(CharacterPrompt(prompt=text, center=point))
    return tuple(prompts)


def normalize(vendor_fields: Mapping[str, Any], software: str) -> GenerationMetadata:
    """
    Build a canonical record from decoder output.

    Args:
        vendor_fields: Canonical dotted paths (or known aliases) to raw values.
            ``None`` values are treated as absent.
        software: Generation software identifier.

    Returns:
        The normalized record; width/height default to 0 when absent.
    """
    flat: dict[str, Any] = {}
    for key, value in vendor_fields.items():
        path = ALIASES.get(key, key)
        if value is None or path in flat or path not in _KNOWN_PATHS:
            continue
        if path == "character_prompts":
            flat[path] = _character_prompts(value)
            continue
        coerced = _coerce(path, value)
        if coerced is not None:
            flat[path] = coerced

    grouped: dict[str, dict[str, Any]] = {name: {} for name in _SUB_RECORDS}
    top: dict[str, Any] = {}
    for path, value in flat.items():
        head, _, tail = path.partition(".")
        if tail and head in grouped:
            grouped[head][tail] = value
        elif not tail:
            top[path] = value

    record: dict[str, Any] = {
        "software": software,
        "prompt": top.get("prompt"),
        "negative_prompt": top.get("negative_prompt"),
        "width": top.get("width", 0),
        "height": top.get("height", 0),
        "character_prompts": top.get("character_prompts", ()),
    }
    for name, model in _SUB_RECORDS.items():
        record[name] = model(**grouped[name]) if grouped[name] else None

    return GenerationMetadata(**record)
