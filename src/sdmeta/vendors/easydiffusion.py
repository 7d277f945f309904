"""Easy Diffusion.

PNG: one text chunk per field (``prompt``, ``negative_prompt``, ``seed``,
...; older releases used display names such as ``Negative Prompt``).
JPEG/WebP: the same fields as one JSON object in the EXIF UserComment.
"""

from __future__ import annotations

from typing import Any, Mapping

from sdmeta.models import MetadataEntry, PayloadCandidate
from sdmeta.normalizer import format_number
from sdmeta.schema import GenerationMetadata
from sdmeta.vendors.base import JsonVendor

_KEYWORD_MARKERS = ("negative_prompt", "Negative Prompt")
_JSON_MARKER = '"use_stable_diffusion_model"'


def model_basename(path: Any) -> Any:
    """``C:\\models\\sd-v1-5.safetensors`` -> ``sd-v1-5.safetensors``."""
    if not isinstance(path, str):
        return path
    return path.replace("\\", "/").rsplit("/", 1)[-1]


class EasyDiffusionCodec(JsonVendor):
    name = "easydiffusion"
    software = "easydiffusion"
    keywords = ("parameters", "UserComment", "Comment")
    fields = {
        "prompt": "prompt",
        "Prompt": "prompt",
        "negative_prompt": "negative_prompt",
        "Negative Prompt": "negative_prompt",
        "use_stable_diffusion_model": "model.name",
        "Stable Diffusion model": "model.name",
        "width": "width",
        "Width": "width",
        "height": "height",
        "Height": "height",
        "sampler_name": "sampling.sampler",
        "Sampler": "sampling.sampler",
        "num_inference_steps": "sampling.steps",
        "Steps": "sampling.steps",
        "guidance_scale": "sampling.cfg",
        "Guidance Scale": "sampling.cfg",
        "seed": "sampling.seed",
        "Seed": "sampling.seed",
        "clip_skip": "sampling.clip_skip",
        "Clip Skip": "sampling.clip_skip",
    }

    def claims(self, candidate: PayloadCandidate) -> bool:
        record = candidate.record
        if any(keyword in record for keyword in _KEYWORD_MARKERS):
            return True
        text = self.json_text(candidate)
        return text is not None and _JSON_MARKER in text

    def load(self, candidate: PayloadCandidate) -> Mapping[str, Any]:
        record = candidate.record
        if any(keyword in record for keyword in _KEYWORD_MARKERS):
            return record
        return super().load(candidate)

    def extract(self, data: Mapping[str, Any]) -> dict[str, Any]:
        fields = super().extract(data)
        if "model.name" in fields:
            fields["model.name"] = model_basename(fields["model.name"])
        return fields

    def encode(self, metadata: GenerationMetadata) -> list[MetadataEntry]:
        """
        One entry per field, always including ``negative_prompt`` (possibly
        empty) so the keyword form is recognized again.
        """
        payload = self.dump(metadata)
        payload.setdefault("negative_prompt", "")
        entries = []
        for key, value in payload.items():
            text = format_number(value) if isinstance(value, (int, float)) else str(value)
            entries.append(MetadataEntry(key, text))
        return entries
