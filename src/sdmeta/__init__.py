"""sdmeta - AI image-generation metadata codec.

Reads, strips, re-embeds and converts the generation parameters that
Stable Diffusion front ends, NovelAI, ComfyUI and friends store in PNG,
JPEG and WebP files.
"""

__version__ = "0.1.0"

from sdmeta.cleaner import has_metadata, remove_metadata
from sdmeta.cloner import clone_metadata
from sdmeta.config import CodecConfig, load_config
from sdmeta.container import ContainerKind, SegmentKind
from sdmeta.errors import ContainerEncodeError, DecodeError, MalformedContainerError, MetadataError
from sdmeta.metadata_handler import embed, parse, write
from sdmeta.models import (
    Canonical,
    Empty,
    Invalid,
    PassThrough,
    Strip,
    Success,
    Unrecognized,
    WriteErr,
    WriteErrorKind,
    WriteOk,
    WriteRequest,
)
from sdmeta.reencode import reencode
from sdmeta.schema import (
    CharacterPrompt,
    GenerationMetadata,
    HiresSettings,
    ModelSettings,
    Point,
    SamplingSettings,
    UpscaleSettings,
)
from sdmeta.vendors import DECODER_ORDER

__all__ = [
    # Entry points
    "parse",
    "write",
    "embed",
    # Outcomes and requests
    "Success",
    "Empty",
    "Unrecognized",
    "Invalid",
    "Strip",
    "PassThrough",
    "Canonical",
    "WriteRequest",
    "WriteOk",
    "WriteErr",
    "WriteErrorKind",
    # Canonical schema
    "GenerationMetadata",
    "ModelSettings",
    "SamplingSettings",
    "HiresSettings",
    "UpscaleSettings",
    "CharacterPrompt",
    "Point",
    # Containers
    "ContainerKind",
    "SegmentKind",
    # Errors
    "MetadataError",
    "MalformedContainerError",
    "ContainerEncodeError",
    "DecodeError",
    # Configuration
    "CodecConfig",
    "load_config",
    # Collaborators
    "clone_metadata",
    "has_metadata",
    "remove_metadata",
    "reencode",
    "DECODER_ORDER",
]
