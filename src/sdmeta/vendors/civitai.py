"""Civitai on-site generator.

Civitai writes either A1111 parameter text ending in a
``Civitai resources: [...]`` setting, or a ComfyUI graph that references
its resources with ``civitai:`` URNs and a ``resource-stack`` node.
"""

from __future__ import annotations

from sdmeta.models import MetadataEntry, PayloadCandidate
from sdmeta.schema import GenerationMetadata
from sdmeta.vendors.a1111 import (
    A1111_SUPPORTED_FIELDS,
    build_parameters_text,
    decode_parameters_text,
    parameter_text,
)
from sdmeta.vendors.base import VendorCodec
from sdmeta.vendors.comfyui import decode_graph_candidate

RESOURCES_MARKER = "Civitai resources:"
_JSON_MARKERS = ("civitai:", '"resource-stack"')


class CivitaiCodec(VendorCodec):
    name = "civitai"
    software = "civitai"
    supported_fields = A1111_SUPPORTED_FIELDS

    def claims(self, candidate: PayloadCandidate) -> bool:
        text = parameter_text(candidate)
        if text and not text.lstrip().startswith("{"):
            return RESOURCES_MARKER in text
        graph = text or candidate.record.get("prompt")
        return bool(graph) and any(marker in graph for marker in _JSON_MARKERS)

    def decode(self, candidate: PayloadCandidate) -> GenerationMetadata:
        text = parameter_text(candidate)
        if text and not text.lstrip().startswith("{"):
            return decode_parameters_text(text, software=self.software)

        return decode_graph_candidate(candidate, software=self.software)

    def encode(self, metadata: GenerationMetadata) -> list[MetadataEntry]:
        text = build_parameters_text(metadata, {"Civitai resources": "[]"})
        return [MetadataEntry("parameters", text)]
