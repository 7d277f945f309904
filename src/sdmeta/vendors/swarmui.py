"""SwarmUI: ``{"sui_image_params": {...}}`` in the ``parameters`` chunk.

SwarmUI images usually also carry the ComfyUI ``prompt`` graph of the
backend that rendered them, which is why this codec runs before the
ComfyUI one.
"""

from __future__ import annotations

from typing import Any, Mapping

from sdmeta.errors import DecodeError
from sdmeta.models import PayloadCandidate
from sdmeta.schema import GenerationMetadata
from sdmeta.vendors.base import JsonVendor, load_json_object

PARAMS_KEY = "sui_image_params"
_MARKERS = (PARAMS_KEY, "swarm_version")


class SwarmUICodec(JsonVendor):
    name = "swarmui"
    software = "swarmui"
    keywords = ("parameters", "Comment", "prompt")
    png_text_strategy = "unicode-escape"
    fields = {
        "prompt": "prompt",
        "negativeprompt": "negative_prompt",
        "model": "model.name",
        "seed": "sampling.seed",
        "steps": "sampling.steps",
        "cfgscale": "sampling.cfg",
        "width": "width",
        "height": "height",
        "sampler": "sampling.sampler",
        "scheduler": "sampling.scheduler",
        "refinerupscale": "hires.scale",
        "refinerupscalemethod": "hires.upscaler",
        "refinercontrolpercentage": "hires.denoise",
    }

    def claims(self, candidate: PayloadCandidate) -> bool:
        record = candidate.record
        if PARAMS_KEY in record:
            return True
        for keyword in ("parameters", "Comment", "prompt"):
            text = record.get(keyword)
            if text and any(marker in text for marker in _MARKERS):
                return True
        return False

    def load(self, candidate: PayloadCandidate) -> Mapping[str, Any]:
        split = candidate.record.get(PARAMS_KEY)
        if split is not None:
            return load_json_object(split, self.software)

        data = super().load(candidate)
        params = data.get(PARAMS_KEY)
        if not isinstance(params, Mapping):
            raise DecodeError(self.software, f"parameters JSON has no {PARAMS_KEY} object")
        return params

    def dump(self, metadata: GenerationMetadata) -> dict[str, Any]:
        return {PARAMS_KEY: super().dump(metadata)}
