"""
Canonical generation-metadata schema.

Every vendor decoder funnels into ``GenerationMetadata``.  All models use
Pydantic for validation; a field that was not provided by the source is
``None`` (never a zero or empty-string placeholder).  Only ``width`` and
``height`` are always present.
"""

from __future__ import annotations

import math
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Software = Literal[
    "novelai",
    "comfyui",
    "swarmui",
    "tensorart",
    "stability-matrix",
    "invokeai",
    "sd-webui",
    "forge",
    "forge-classic",
    "forge-neo",
    "reforge",
    "easy-reforge",
    "sd-next",
    "civitai",
    "hf-space",
    "easydiffusion",
    "fooocus",
    "ruined-fooocus",
    "draw-things",
]


class _Record(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("*", mode="before")
    @classmethod
    def reject_non_finite(cls, v: object) -> object:
        """NaN and infinities never reach a canonical record."""
        if isinstance(v, float) and not math.isfinite(v):
            raise ValueError("value must be finite")
        return v

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


class ModelSettings(_Record):
    """Checkpoint identity."""

    name: Optional[str] = None
    hash: Optional[str] = None


class SamplingSettings(_Record):
    """Sampler configuration of the main generation pass."""

    sampler: Optional[str] = None
    scheduler: Optional[str] = None
    steps: Optional[int] = Field(default=None, ge=0)
    cfg: Optional[float] = None
    seed: Optional[int] = None
    clip_skip: Optional[int] = Field(default=None, ge=0)


class HiresSettings(_Record):
    """Second-pass (hires fix) settings."""

    upscaler: Optional[str] = None
    scale: Optional[float] = Field(default=None, ge=0)
    steps: Optional[int] = Field(default=None, ge=0)
    denoise: Optional[float] = Field(default=None, ge=0)


class UpscaleSettings(_Record):
    """Post-generation upscale without a second sampling pass."""

    upscaler: Optional[str] = None
    scale: Optional[float] = Field(default=None, ge=0)


class Point(_Record):
    """Position as a fraction of image width/height."""

    x: float
    y: float


class CharacterPrompt(_Record):
    """Per-character prompt with an optional placement center."""

    prompt: str
    center: Optional[Point] = None


class GenerationMetadata(_Record):
    """
    Unified, vendor-independent generation record.

    ``software`` names the tool the record was recognized as (or the tool
    it is meant to be embedded as).  Sub-records are None when the source
    carried none of their fields.
    """

    software: Software
    prompt: Optional[str] = None
    negative_prompt: Optional[str] = None
    width: int = Field(ge=0)
    height: int = Field(ge=0)
    model: Optional[ModelSettings] = None
    sampling: Optional[SamplingSettings] = None
    hires: Optional[HiresSettings] = None
    upscale: Optional[UpscaleSettings] = None
    character_prompts: tuple[CharacterPrompt, ...] = ()

    def populated_fields(self) -> set[str]:
        """Dotted paths of every populated field, e.g. ``sampling.steps``."""
        fields: set[str] = set()
        for name, value in self:
            if name == "software" or value is None:
                continue
            if name == "character_prompts":
                if value:
                    fields.add(name)
                continue
            if isinstance(value, _Record):
                fields.update(f"{name}.{sub}" for sub, sub_value in value if sub_value is not None)
            else:
                fields.add(name)
        return fields
