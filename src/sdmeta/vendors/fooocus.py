"""Fooocus and its Ruined Fooocus fork, both flat JSON objects."""

from __future__ import annotations

import re
from typing import Any

from sdmeta.models import PayloadCandidate
from sdmeta.schema import GenerationMetadata
from sdmeta.vendors.base import JsonVendor

_RUINED_MARKER = re.compile(r'"software"\s*:\s*"RuinedFooocus"')


class FooocusCodec(JsonVendor):
    name = "fooocus"
    software = "fooocus"
    keywords = ("Comment", "parameters")
    carrier_keyword = "Comment"
    jpeg_comment_keywords = ("Comment",)
    fields = {
        "prompt": "prompt",
        "negative_prompt": "negative_prompt",
        "base_model": "model.name",
        "sampler": "sampling.sampler",
        "scheduler": "sampling.scheduler",
        "seed": "sampling.seed",
        "cfg": "sampling.cfg",
        "steps": "sampling.steps",
        "width": "width",
        "height": "height",
    }

    def claims(self, candidate: PayloadCandidate) -> bool:
        text = self.json_text(candidate)
        return text is not None and '"prompt"' in text and '"base_model"' in text

    def dump(self, metadata: GenerationMetadata) -> dict[str, Any]:
        payload = super().dump(metadata)
        # base_model is part of the signature, so it is written even when unknown
        payload.setdefault("base_model", None)
        payload.setdefault("prompt", "")
        return payload


class RuinedFooocusCodec(JsonVendor):
    name = "ruined-fooocus"
    software = "ruined-fooocus"
    keywords = ("parameters",)
    fixed = {"software": "RuinedFooocus"}
    fields = {
        "Prompt": "prompt",
        "Negative": "negative_prompt",
        "steps": "sampling.steps",
        "cfg": "sampling.cfg",
        "width": "width",
        "height": "height",
        "seed": "sampling.seed",
        "sampler_name": "sampling.sampler",
        "scheduler": "sampling.scheduler",
        "base_model_name": "model.name",
        "base_model_hash": "model.hash",
        "clip_skip": "sampling.clip_skip",
    }

    def claims(self, candidate: PayloadCandidate) -> bool:
        text = self.json_text(candidate)
        return text is not None and bool(_RUINED_MARKER.search(text))
