"""Hugging Face Spaces built on Gradio + Diffusers (JSON in ``parameters``)."""

from __future__ import annotations

from typing import Any, Mapping

from sdmeta.models import PayloadCandidate
from sdmeta.schema import GenerationMetadata
from sdmeta.vendors.base import JsonVendor, parse_size


class HfSpaceCodec(JsonVendor):
    name = "hf-space"
    software = "hf-space"
    keywords = ("parameters",)
    fields = {
        "prompt": "prompt",
        "negative_prompt": "negative_prompt",
        "guidance_scale": "sampling.cfg",
        "num_inference_steps": "sampling.steps",
        "seed": "sampling.seed",
        "sampler": "sampling.sampler",
        "Model": "model.name",
        "Model hash": "model.hash",
    }
    supported_fields = frozenset({"width", "height", *fields.values()})

    def claims(self, candidate: PayloadCandidate) -> bool:
        text = self.json_text(candidate)
        return text is not None and '"Model"' in text and '"resolution"' in text

    def extract(self, data: Mapping[str, Any]) -> dict[str, Any]:
        fields = super().extract(data)
        size = parse_size(data.get("resolution"))
        if size:
            fields["width"], fields["height"] = size
        return fields

    def dump(self, metadata: GenerationMetadata) -> dict[str, Any]:
        payload = super().dump(metadata)
        payload["resolution"] = f"{metadata.width} x {metadata.height}"
        # Model and resolution together identify this format
        payload.setdefault("Model", None)
        return payload
