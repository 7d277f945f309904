"""TensorArt: ``generation_data`` JSON, raw UTF-8 in a ``tEXt`` chunk.

TensorArt pads the chunk with NULs and stores the seed as a string.
"""

from __future__ import annotations

from typing import Any, Mapping

from sdmeta.errors import DecodeError
from sdmeta.models import PayloadCandidate
from sdmeta.schema import GenerationMetadata
from sdmeta.vendors.base import JsonVendor


class TensorArtCodec(JsonVendor):
    name = "tensorart"
    software = "tensorart"
    keywords = ("generation_data",)
    carrier_keyword = "generation_data"
    png_text_strategy = "utf8-raw"
    fields = {
        "prompt": "prompt",
        "negativePrompt": "negative_prompt",
        "width": "width",
        "height": "height",
        "seed": "sampling.seed",
        "steps": "sampling.steps",
        "cfgScale": "sampling.cfg",
        "clipSkip": "sampling.clip_skip",
        "baseModel.modelFileName": "model.name",
        "baseModel.hash": "model.hash",
    }

    def claims(self, candidate: PayloadCandidate) -> bool:
        return "generation_data" in candidate.record

    def load(self, candidate: PayloadCandidate) -> Mapping[str, Any]:
        data = super().load(candidate)
        if not data.get("width") or not data.get("height"):
            raise DecodeError(self.software, "missing width or height in generation_data")
        return data

    def dump(self, metadata: GenerationMetadata) -> dict[str, Any]:
        payload = super().dump(metadata)
        if "seed" in payload:
            payload["seed"] = str(payload["seed"])
        return payload
