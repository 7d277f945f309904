"""Vendor codecs and the ordered decoder chain.

Order matters: codecs keyed on a unique marker run before the generic
JSON and text codecs that would otherwise mis-claim their payloads.
"""

from __future__ import annotations

from sdmeta.vendors.a1111 import A1111Codec
from sdmeta.vendors.base import Claimed, DecodeResult, JsonVendor, NotMine, VendorCodec
from sdmeta.vendors.civitai import CivitaiCodec
from sdmeta.vendors.comfyui import ComfyUICodec
from sdmeta.vendors.draw_things import DrawThingsCodec
from sdmeta.vendors.easydiffusion import EasyDiffusionCodec
from sdmeta.vendors.fooocus import FooocusCodec, RuinedFooocusCodec
from sdmeta.vendors.hf_space import HfSpaceCodec
from sdmeta.vendors.invokeai import InvokeAICodec
from sdmeta.vendors.novelai import NovelAICodec
from sdmeta.vendors.stability_matrix import StabilityMatrixCodec
from sdmeta.vendors.swarmui import SwarmUICodec
from sdmeta.vendors.tensorart import TensorArtCodec

DECODERS: tuple[VendorCodec, ...] = (
    NovelAICodec(),
    InvokeAICodec(),
    TensorArtCodec(),
    StabilityMatrixCodec(),
    SwarmUICodec(),
    EasyDiffusionCodec(),
    RuinedFooocusCodec(),
    CivitaiCodec(),
    HfSpaceCodec(),
    FooocusCodec(),
    DrawThingsCodec(),
    ComfyUICodec(),
    A1111Codec(),
)

DECODER_ORDER = tuple(codec.name for codec in DECODERS)

DEFAULT_CODEC = DECODERS[-1]


def codec_for(software: str) -> VendorCodec | None:
    """Return the codec that encodes records labelled *software*."""
    for codec in DECODERS:
        if codec.handles(software):
            return codec
    return None


__all__ = [
    "Claimed",
    "DECODERS",
    "DECODER_ORDER",
    "DEFAULT_CODEC",
    "DecodeResult",
    "JsonVendor",
    "NotMine",
    "VendorCodec",
    "codec_for",
]
