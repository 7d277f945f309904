"""Walking ComfyUI API prompt graphs.

A prompt graph maps node ids to ``{"class_type": ..., "inputs": {...}}``.
An input is either a literal or a reference ``[node_id, output_index]``.
Generation settings are recovered by starting at the sampler node and
following its references to the text encoders, the latent image, the
model loader and, for two-pass workflows, the upscale chain that feeds
the second (hires) sampler.
"""

from __future__ import annotations

import json
from typing import Any, Iterator, Mapping

SAMPLER_TYPES = ("KSampler", "KSamplerAdvanced", "SamplerCustomAdvanced")
LATENT_IMAGE_TYPES = ("EmptyLatentImage", "EmptySD3LatentImage")
LATENT_IMAGE_RGTHREE_TYPES = ("SDXL Empty Latent Image (rgthree)",)
CHECKPOINT_TYPES = ("CheckpointLoaderSimple", "CheckpointLoader")
UNET_LOADER_TYPES = ("UNETLoader",)
UPSCALE_MODEL_TYPES = ("UpscaleModelLoader",)
IMAGE_SCALE_TYPES = ("ImageScale", "ImageScaleBy")
LATENT_UPSCALE_TYPES = ("LatentUpscale", "LatentUpscaleBy")
VAE_ENCODE_TYPES = ("VAEEncode", "VAEEncodeTiled")
CLIP_SKIP_TYPES = ("CLIPSetLastLayer",)

MAX_TEXT_DEPTH = 10

Node = Mapping[str, Any]
Graph = Mapping[str, Any]


def is_node(value: Any) -> bool:
    return isinstance(value, Mapping) and isinstance(value.get("class_type"), str)


def is_graph(value: Any) -> bool:
    """True if *value* is a mapping with at least one ComfyUI node."""
    return isinstance(value, Mapping) and any(is_node(node) for node in value.values())


def is_node_reference(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) == 2
        and isinstance(value[0], (str, int))
        and not isinstance(value[0], bool)
        and isinstance(value[1], int)
    )


def inputs_of(node: Node | None) -> Mapping[str, Any]:
    if node is None:
        return {}
    inputs = node.get("inputs")
    return inputs if isinstance(inputs, Mapping) else {}


def resolve(graph: Graph, ref: Any) -> Node | None:
    """Follow a ``[node_id, index]`` reference."""
    if not is_node_reference(ref):
        return None
    node = graph.get(str(ref[0]))
    return node if is_node(node) else None


def iter_nodes(graph: Graph, types: tuple[str, ...]) -> Iterator[Node]:
    """Yield nodes of the given class types in graph order."""
    for node in graph.values():
        if is_node(node) and node["class_type"] in types:
            yield node


def first_node(graph: Graph, types: tuple[str, ...]) -> Node | None:
    return next(iter_nodes(graph, types), None)


def extract_text(graph: Graph, node: Node | None, depth: int = MAX_TEXT_DEPTH) -> str | None:
    """Read prompt text from a text-encoder node, following references."""
    if node is None or depth <= 0:
        return None
    inputs = inputs_of(node)

    for key in ("text", "prompt", "Text"):
        value = inputs.get(key)
        if isinstance(value, str):
            return value
        if is_node_reference(value):
            return extract_text(graph, resolve(graph, value), depth - 1)

    # CLIPTextEncodeSDXL
    text_g, text_l = inputs.get("text_g"), inputs.get("text_l")
    g = text_g if isinstance(text_g, str) else ""
    l = text_l if isinstance(text_l, str) else ""
    if not g and not l:
        return None
    if g == l or not g:
        return l
    if not l:
        return g
    return f"{g},\n{l}"


def _conditioning_source(graph: Graph, sampler: Node) -> Node:
    """SamplerCustomAdvanced takes its conditioning through a guider node."""
    return resolve(graph, inputs_of(sampler).get("guider")) or sampler


def prompt_texts(graph: Graph, sampler: Node) -> tuple[str | None, str | None]:
    source = inputs_of(_conditioning_source(graph, sampler))
    positive = resolve(graph, source.get("positive"))
    negative = resolve(graph, source.get("negative"))
    return extract_text(graph, positive), extract_text(graph, negative)


def _seed(graph: Graph, value: Any) -> Any:
    if is_node_reference(value):
        return inputs_of(resolve(graph, value)).get("seed")
    return value


def sampling_fields(graph: Graph, sampler: Node) -> dict[str, Any]:
    """Sampler settings of *sampler* as canonical ``sampling.*`` paths."""
    inputs = inputs_of(sampler)
    if sampler["class_type"] == "SamplerCustomAdvanced":
        noise = inputs_of(resolve(graph, inputs.get("noise")))
        guider = inputs_of(resolve(graph, inputs.get("guider")))
        select = inputs_of(resolve(graph, inputs.get("sampler")))
        sigmas = inputs_of(resolve(graph, inputs.get("sigmas")))
        return {
            "sampling.seed": noise.get("noise_seed"),
            "sampling.steps": sigmas.get("steps"),
            "sampling.cfg": guider.get("cfg"),
            "sampling.sampler": select.get("sampler_name"),
            "sampling.scheduler": sigmas.get("scheduler"),
        }
    return {
        "sampling.seed": _seed(graph, inputs.get("seed", inputs.get("noise_seed"))),
        "sampling.steps": inputs.get("steps"),
        "sampling.cfg": inputs.get("cfg"),
        "sampling.sampler": inputs.get("sampler_name"),
        "sampling.scheduler": inputs.get("scheduler"),
    }


def _literal(value: Any) -> Any:
    return None if is_node_reference(value) else value


def dimensions(graph: Graph) -> tuple[Any, Any]:
    """Width/height of the first empty latent image."""
    latent = inputs_of(first_node(graph, LATENT_IMAGE_TYPES))
    width, height = _literal(latent.get("width")), _literal(latent.get("height"))
    if width and height:
        return width, height

    rgthree = inputs_of(first_node(graph, LATENT_IMAGE_RGTHREE_TYPES))
    value = rgthree.get("dimensions")
    if isinstance(value, str):
        size = value.split("(")[0].lower().replace(" ", "")
        width_text, sep, height_text = size.partition("x")
        if sep and width_text.isdigit() and height_text.isdigit():
            return int(width_text), int(height_text)
    return None, None


def model_name(graph: Graph) -> Any:
    checkpoint = inputs_of(first_node(graph, CHECKPOINT_TYPES)).get("ckpt_name")
    if checkpoint:
        return checkpoint
    return inputs_of(first_node(graph, UNET_LOADER_TYPES)).get("unet_name")


def clip_skip(graph: Graph) -> int | None:
    value = inputs_of(first_node(graph, CLIP_SKIP_TYPES)).get("stop_at_clip_layer")
    if isinstance(value, int) and not isinstance(value, bool):
        return abs(value)
    return None


def _upscale_source(graph: Graph, sampler: Node) -> Node | None:
    """Return the LatentUpscale*/ImageScale* node feeding *sampler*, if any."""
    latent = resolve(graph, inputs_of(sampler).get("latent_image"))
    if latent is None:
        return None
    if latent["class_type"] in LATENT_UPSCALE_TYPES:
        return latent
    if latent["class_type"] not in VAE_ENCODE_TYPES:
        return None
    pixels = resolve(graph, inputs_of(latent).get("pixels"))
    if pixels is not None and pixels["class_type"] in IMAGE_SCALE_TYPES:
        return pixels
    return None


def is_hires_sampler(graph: Graph, sampler: Node) -> bool:
    return _upscale_source(graph, sampler) is not None


def _ratio(target: Any, base: Any) -> float | None:
    if not isinstance(target, (int, float)) or not isinstance(base, (int, float)):
        return None
    if target <= 0 or base <= 0:
        return None
    return round(target / base, 2)


def hires_fields(graph: Graph, sampler: Node, base_width: Any) -> dict[str, Any]:
    """Second-pass settings from a hires sampler and its upscale chain."""
    source = _upscale_source(graph, sampler)
    source_inputs = inputs_of(source)
    scale = source_inputs.get("scale_by")
    if scale is None:
        scale = _ratio(source_inputs.get("width"), base_width)

    upscaler = inputs_of(first_node(graph, UPSCALE_MODEL_TYPES)).get("model_name")
    if upscaler is None:
        upscaler = source_inputs.get("upscale_method")

    inputs = inputs_of(sampler)
    return {
        "hires.scale": scale,
        "hires.upscaler": upscaler,
        "hires.steps": inputs.get("steps"),
        "hires.denoise": inputs.get("denoise"),
    }


def extra_metadata(graph: Graph) -> dict[str, Any]:
    """Civitai's ``extraMetadata`` JSON string, stored next to the nodes."""
    value = graph.get("extraMetadata")
    if not isinstance(value, str):
        return {}
    try:
        parsed = json.loads(value)
    except (ValueError, RecursionError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def extra_metadata_fields(extra: Mapping[str, Any]) -> dict[str, Any]:
    """Canonical fields from Civitai ``extraMetadata``."""
    fields: dict[str, Any] = {
        "prompt": extra.get("prompt"),
        "negative_prompt": extra.get("negativePrompt"),
        "width": extra.get("width"),
        "height": extra.get("height"),
        "model.name": extra.get("baseModel"),
        "sampling.seed": extra.get("seed"),
        "sampling.steps": extra.get("steps"),
        "sampling.cfg": extra.get("cfgScale"),
        "sampling.sampler": extra.get("sampler"),
        "sampling.clip_skip": extra.get("clipSkip"),
    }
    transformations = extra.get("transformations")
    if isinstance(transformations, list):
        for transform in transformations:
            if isinstance(transform, Mapping) and transform.get("type") == "upscale":
                fields["upscale.scale"] = _ratio(transform.get("upscaleWidth"), extra.get("width"))
                break
    return fields


def walk(graph: Graph) -> dict[str, Any]:
    """
    Recover canonical fields from a prompt graph.

    Civitai ``extraMetadata`` only fills fields the nodes did not provide.
    """
    samplers = list(iter_nodes(graph, SAMPLER_TYPES))
    hires = [node for node in samplers if is_hires_sampler(graph, node)]
    hires_ids = {id(node) for node in hires}
    main = next(
        (node for node in samplers if id(node) not in hires_ids),
        samplers[0] if samplers else None,
    )

    fields: dict[str, Any] = {}
    width, height = dimensions(graph)
    fields["width"], fields["height"] = width, height
    fields["model.name"] = model_name(graph)
    fields["sampling.clip_skip"] = clip_skip(graph)

    if main is not None:
        fields["prompt"], fields["negative_prompt"] = prompt_texts(graph, main)
        fields.update(sampling_fields(graph, main))
        hires_sampler = next((node for node in hires if node is not main), None)
        if hires_sampler is not None:
            fields.update(hires_fields(graph, hires_sampler, width))

    for path, value in extra_metadata_fields(extra_metadata(graph)).items():
        if fields.get(path) in (None, "") and value is not None:
            fields[path] = value

    return {path: _literal(value) for path, value in fields.items()}
