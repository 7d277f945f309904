"""InvokeAI: a JSON object in the ``invokeai_metadata`` text chunk."""

from __future__ import annotations

from sdmeta.models import PayloadCandidate
from sdmeta.vendors.base import JsonVendor


class InvokeAICodec(JsonVendor):
    name = "invokeai"
    software = "invokeai"
    keywords = ("invokeai_metadata",)
    carrier_keyword = "invokeai_metadata"
    fields = {
        "positive_prompt": "prompt",
        "negative_prompt": "negative_prompt",
        "width": "width",
        "height": "height",
        "seed": "sampling.seed",
        "steps": "sampling.steps",
        "cfg_scale": "sampling.cfg",
        # InvokeAI names its sampler "scheduler" (euler_a, dpmpp_2m_k, ...)
        "scheduler": "sampling.sampler",
        "model.name": "model.name",
        "model.hash": "model.hash",
    }

    def claims(self, candidate: PayloadCandidate) -> bool:
        return "invokeai_metadata" in candidate.record
