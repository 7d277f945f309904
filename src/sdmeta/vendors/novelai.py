"""NovelAI.

PNG files carry several text chunks: ``Title``, ``Description`` (the
prompt), ``Software`` (``NovelAI``), ``Source`` (model), ``Generation time``
and ``Comment`` (JSON with every setting).  The same chunks may be hidden
in the alpha channel instead; the extractor turns either form into the
same entries.  V4 models add per-character captions with positions.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from sdmeta.constants import NOVELAI_SOFTWARE, NOVELAI_TITLE
from sdmeta.errors import DecodeError
from sdmeta.models import MetadataEntry, PayloadCandidate
from sdmeta.normalizer import normalize
from sdmeta.schema import GenerationMetadata
from sdmeta.vendors.base import VendorCodec, canonical_values, dump_json, get_path, load_json_object

# Comment keys only NovelAI writes (quotes may be escaped in converted metadata)
_COMMENT_MARKERS = re.compile(r'\\?"(?:v4_prompt|noise_schedule|uncond_scale)\\?"')

COMMENT_FIELDS = {
    "steps": "sampling.steps",
    "scale": "sampling.cfg",
    "seed": "sampling.seed",
    "sampler": "sampling.sampler",
    "noise_schedule": "sampling.scheduler",
}


def _character_prompts(comment: Mapping[str, Any]) -> list[dict[str, Any]]:
    captions = get_path(comment, "v4_prompt.caption.char_captions")
    if not isinstance(captions, list):
        return []
    prompts: list[dict[str, Any]] = []
    for caption in captions:
        if not isinstance(caption, Mapping) or not caption.get("char_caption"):
            continue
        centers = caption.get("centers")
        center = centers[0] if isinstance(centers, list) and centers else None
        prompts.append({"prompt": caption["char_caption"], "center": center})
    return prompts


class NovelAICodec(VendorCodec):
    name = "novelai"
    software = "novelai"
    supported_fields = frozenset(
        {"prompt", "negative_prompt", "width", "height", "character_prompts", *COMMENT_FIELDS.values()}
    )

    def claims(self, candidate: PayloadCandidate) -> bool:
        record = candidate.record
        if record.get("Software", "").startswith(NOVELAI_SOFTWARE):
            return True
        comment = record.get("Comment", "")
        return comment.lstrip().startswith("{") and bool(_COMMENT_MARKERS.search(comment))

    def decode(self, candidate: PayloadCandidate) -> GenerationMetadata:
        record = candidate.record
        text = record.get("Comment")
        if not text:
            raise DecodeError(self.software, "missing Comment entry")
        comment = load_json_object(text, self.software)
        if "width" not in comment or "height" not in comment:
            raise DecodeError(self.software, "missing width or height in Comment")

        fields: dict[str, Any] = {
            "prompt": get_path(comment, "v4_prompt.caption.base_caption") or comment.get("prompt"),
            "negative_prompt": (
                get_path(comment, "v4_negative_prompt.caption.base_caption") or comment.get("uc")
            ),
            "width": comment["width"],
            "height": comment["height"],
            "character_prompts": _character_prompts(comment),
        }
        for key, path in COMMENT_FIELDS.items():
            fields[path] = comment.get(key)
        return normalize(fields, self.software)

    def encode(self, metadata: GenerationMetadata) -> list[MetadataEntry]:
        values = canonical_values(metadata)
        prompt = metadata.prompt or ""
        negative = metadata.negative_prompt or ""

        comment: dict[str, Any] = {"prompt": prompt}
        for key, path in COMMENT_FIELDS.items():
            if path in values:
                comment[key] = values[path]
        comment["width"] = metadata.width
        comment["height"] = metadata.height
        comment["uc"] = negative
        comment["v4_prompt"] = {
            "caption": {
                "base_caption": prompt,
                "char_captions": [
                    {
                        "char_caption": character.prompt,
                        "centers": (
                            [{"x": character.center.x, "y": character.center.y}]
                            if character.center is not None
                            else []
                        ),
                    }
                    for character in metadata.character_prompts
                ],
            },
            "use_coords": any(c.center is not None for c in metadata.character_prompts),
            "use_order": True,
        }
        comment["v4_negative_prompt"] = {"caption": {"base_caption": negative, "char_captions": []}}

        entries = [MetadataEntry("Title", NOVELAI_TITLE)]
        if prompt:
            entries.append(MetadataEntry("Description", prompt))
        entries.append(MetadataEntry("Software", NOVELAI_SOFTWARE))
        entries.append(MetadataEntry("Comment", dump_json(comment)))
        return entries
