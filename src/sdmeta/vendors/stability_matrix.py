"""Stability Matrix: ``parameters-json`` (and an ``smproj`` project chunk)."""

from __future__ import annotations

from sdmeta.models import PayloadCandidate
from sdmeta.vendors.base import JsonVendor


class StabilityMatrixCodec(JsonVendor):
    name = "stability-matrix"
    software = "stability-matrix"
    keywords = ("parameters-json",)
    carrier_keyword = "parameters-json"
    png_text_strategy = "utf8-raw"
    fields = {
        "PositivePrompt": "prompt",
        "NegativePrompt": "negative_prompt",
        "Width": "width",
        "Height": "height",
        "Seed": "sampling.seed",
        "Steps": "sampling.steps",
        "CfgScale": "sampling.cfg",
        "Sampler": "sampling.sampler",
        "ModelName": "model.name",
        "ModelHash": "model.hash",
    }

    def claims(self, candidate: PayloadCandidate) -> bool:
        record = candidate.record
        return "smproj" in record or "parameters-json" in record
