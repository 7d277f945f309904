"""Draw Things: an XMP packet naming the app in ``xmp:CreatorTool`` with the
settings as JSON in ``exif:UserComment`` (short keys ``c``, ``uc``, ...).
"""

from __future__ import annotations

from typing import Any, Mapping

from sdmeta.constants import GENERATION_CREATOR_TOOLS
from sdmeta.models import MetadataEntry, PayloadCandidate
from sdmeta.schema import GenerationMetadata
from sdmeta.vendors.base import JsonVendor, dump_json, parse_size
from sdmeta.xmp import XMP_KEYWORD, build_xmp

CREATOR_TOOL = GENERATION_CREATOR_TOOLS[0]


class DrawThingsCodec(JsonVendor):
    name = "draw-things"
    software = "draw-things"
    keywords = ("UserComment", "Comment")
    fields = {
        "c": "prompt",
        "uc": "negative_prompt",
        "model": "model.name",
        "sampler": "sampling.sampler",
        "scale": "sampling.cfg",
        "seed": "sampling.seed",
        "steps": "sampling.steps",
    }
    supported_fields = frozenset({"width", "height", *fields.values()})

    def claims(self, candidate: PayloadCandidate) -> bool:
        return candidate.record.get("CreatorTool", "").startswith(CREATOR_TOOL)

    def extract(self, data: Mapping[str, Any]) -> dict[str, Any]:
        fields = super().extract(data)
        # Draw Things writes 0 for settings that do not apply
        for path in ("sampling.steps", "sampling.cfg", "sampling.seed"):
            if fields.get(path) == 0:
                del fields[path]
        size = parse_size(data.get("size"))
        if size:
            fields["width"], fields["height"] = size
        return fields

    def dump(self, metadata: GenerationMetadata) -> dict[str, Any]:
        payload = super().dump(metadata)
        payload["size"] = f"{metadata.width}x{metadata.height}"
        return payload

    def encode(self, metadata: GenerationMetadata) -> list[MetadataEntry]:
        packet = build_xmp(creator_tool=CREATOR_TOOL, user_comment=dump_json(self.dump(metadata)))
        return [MetadataEntry(XMP_KEYWORD, packet)]
