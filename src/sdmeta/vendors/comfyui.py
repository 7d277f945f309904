"""ComfyUI prompt graphs.

PNG files carry the API graph in a ``prompt`` text chunk and the editor
graph in ``workflow``.  JPEG/WebP writers put the API graph in EXIF
(``Make: "Prompt: {...}"`` for save-image-extended, or a UserComment
JSON holding ``prompt``/``workflow``).  Only the API graph is decoded.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from sdmeta.errors import DecodeError
from sdmeta.models import MetadataEntry, PayloadCandidate
from sdmeta.normalizer import normalize
from sdmeta.schema import GenerationMetadata
from sdmeta.vendors.base import VendorCodec, canonical_values, dump_json, load_json_object
from sdmeta.vendors.comfyui_graph import is_graph, walk

logger = logging.getLogger(__name__)

# Entries that may hold a JSON document containing the API graph
GRAPH_CONTAINER_KEYWORDS = ("Comment", "Description", "Make", "Prompt", "Workflow")

COMFYUI_SUPPORTED_FIELDS = frozenset(
    {
        "prompt",
        "negative_prompt",
        "width",
        "height",
        "model.name",
        "sampling.sampler",
        "sampling.scheduler",
        "sampling.steps",
        "sampling.cfg",
        "sampling.seed",
        "sampling.clip_skip",
        "hires.upscaler",
        "hires.scale",
        "hires.steps",
        "hires.denoise",
    }
)


def _looks_like_json(text: str | None) -> bool:
    return bool(text) and text.lstrip().startswith("{")


def _graph_from_document(document: Mapping[str, Any]) -> Mapping[str, Any] | None:
    """Return the API graph inside a parsed JSON document, if any."""
    inner = document.get("prompt")
    if isinstance(inner, str) and _looks_like_json(inner):
        try:
            inner = json.loads(inner)
        except (ValueError, RecursionError):
            inner = None
    if is_graph(inner):
        return inner
    if is_graph(document):
        return document
    return None


def find_prompt_graph(record: Mapping[str, str], software: str = "comfyui") -> Mapping[str, Any]:
    """
    Locate and parse the API prompt graph among a candidate's entries.

    Raises:
        DecodeError: If the ``prompt`` entry is corrupt or no graph exists.
    """
    prompt = record.get("prompt")
    if _looks_like_json(prompt):
        graph = _graph_from_document(load_json_object(prompt, software))
        if graph is None:
            raise DecodeError(software, "prompt entry holds no ComfyUI nodes")
        return graph

    for keyword in GRAPH_CONTAINER_KEYWORDS:
        text = record.get(keyword)
        if not _looks_like_json(text):
            continue
        try:
            document = json.loads(text.rstrip("\x00"))
        except (ValueError, RecursionError):
            continue
        if isinstance(document, dict):
            graph = _graph_from_document(document)
            if graph is not None:
                return graph

    raise DecodeError(software, "no ComfyUI API prompt graph found")


def decode_graph_candidate(candidate: PayloadCandidate, software: str = "comfyui") -> GenerationMetadata:
    """Decode the prompt graph carried by *candidate*."""
    graph = find_prompt_graph(candidate.record, software)
    fields = walk(graph)
    logger.debug("Walked ComfyUI graph with %d node(s)", len(graph))
    return normalize(fields, software)


def build_graph(metadata: GenerationMetadata) -> dict[str, Any]:
    """
    Build a minimal API graph that reproduces *metadata* when walked.

    Nodes: checkpoint loader, optional CLIP skip, positive/negative text
    encoders, empty latent, sampler, and for hires settings a
    ``LatentUpscaleBy`` feeding a second sampler.
    """
    values = canonical_values(metadata)
    graph: dict[str, Any] = {}
    model_ref = clip_ref = None

    if "model.name" in values:
        graph["1"] = {"class_type": "CheckpointLoaderSimple", "inputs": {"ckpt_name": values["model.name"]}}
        model_ref, clip_ref = ["1", 0], ["1", 1]
    if "sampling.clip_skip" in values:
        inputs: dict[str, Any] = {"stop_at_clip_layer": -values["sampling.clip_skip"]}
        if clip_ref is not None:
            inputs["clip"] = clip_ref
        graph["2"] = {"class_type": "CLIPSetLastLayer", "inputs": inputs}
        clip_ref = ["2", 0]

    for node_id, text in (("3", metadata.prompt), ("4", metadata.negative_prompt)):
        inputs = {"text": text or ""}
        if clip_ref is not None:
            inputs["clip"] = clip_ref
        graph[node_id] = {"class_type": "CLIPTextEncode", "inputs": inputs}

    graph["5"] = {
        "class_type": "EmptyLatentImage",
        "inputs": {"width": metadata.width, "height": metadata.height, "batch_size": 1},
    }
    graph["6"] = {
        "class_type": "KSampler",
        "inputs": _sampler_inputs(values, model_ref, ["5", 0], values.get("sampling.steps"), 1.0),
    }

    if any(path.startswith("hires.") for path in values):
        upscale_inputs: dict[str, Any] = {"samples": ["6", 0]}
        if "hires.upscaler" in values:
            upscale_inputs["upscale_method"] = values["hires.upscaler"]
        if "hires.scale" in values:
            upscale_inputs["scale_by"] = values["hires.scale"]
        graph["7"] = {"class_type": "LatentUpscaleBy", "inputs": upscale_inputs}
        graph["8"] = {
            "class_type": "KSampler",
            "inputs": _sampler_inputs(
                values, model_ref, ["7", 0], values.get("hires.steps"), values.get("hires.denoise")
            ),
        }
    return graph


def _sampler_inputs(
    values: Mapping[str, Any],
    model_ref: list | None,
    latent_ref: list,
    steps: Any,
    denoise: Any,
) -> dict[str, Any]:
    inputs = {
        "seed": values.get("sampling.seed"),
        "steps": steps,
        "cfg": values.get("sampling.cfg"),
        "sampler_name": values.get("sampling.sampler"),
        "scheduler": values.get("sampling.scheduler"),
        "denoise": denoise,
        "model": model_ref,
        "positive": ["3", 0],
        "negative": ["4", 0],
        "latent_image": latent_ref,
    }
    return {key: value for key, value in inputs.items() if value is not None}


class ComfyUICodec(VendorCodec):
    name = "comfyui"
    software = "comfyui"
    supported_fields = COMFYUI_SUPPORTED_FIELDS
    png_text_strategy = "unicode-escape"

    def claims(self, candidate: PayloadCandidate) -> bool:
        record = candidate.record
        if "workflow" in record:
            return True
        if _looks_like_json(record.get("prompt")) or _looks_like_json(record.get("Prompt")):
            return True
        for keyword in ("Comment", "Description", "Make"):
            text = record.get(keyword)
            if _looks_like_json(text) and (
                "class_type" in text or ('"prompt"' in text and '"workflow"' in text)
            ):
                return True
        return False

    def decode(self, candidate: PayloadCandidate) -> GenerationMetadata:
        return decode_graph_candidate(candidate, self.software)

    def encode(self, metadata: GenerationMetadata) -> list[MetadataEntry]:
        return [MetadataEntry("prompt", dump_json(build_graph(metadata)))]
