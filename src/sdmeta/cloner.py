"""High-level metadata cloning between images.

Orchestrates the parse -> (re-encode) -> write pipeline in one call.
"""

from __future__ import annotations

import logging
from typing import Optional

from sdmeta.config import DEFAULT_CONFIG, CodecConfig
from sdmeta.container import ContainerKind, detect_kind
from sdmeta.metadata_handler import parse, write
from sdmeta.models import Empty, WriteErr, WriteErrorKind, WriteOutcome
from sdmeta.reencode import reencode

logger = logging.getLogger(__name__)


def clone_metadata(
    source: bytes,
    target: bytes,
    output_kind: Optional[ContainerKind] = None,
    config: CodecConfig = DEFAULT_CONFIG,
) -> WriteOutcome:
    """
    Copy generation metadata from one image into another.

    Args:
        source: Image whose metadata is copied (metadata donor).
        target: Image whose pixels are kept (image donor).
        output_kind: Container kind of the result; the target's pixels are
            re-encoded when it differs from the target's own kind.
        config: Codec options.

    Returns:
        ``WriteOk`` with the new image, or ``WriteErr``.  When the source
        has no metadata the target is returned stripped.

    Raises:
        MalformedContainerError: If *source* is not a readable container.
    """
    outcome = parse(source, config)
    if isinstance(outcome, Empty):
        logger.debug("Source carries no generation metadata")

    target_kind = detect_kind(bytes(target))
    if target_kind is None:
        return WriteErr(WriteErrorKind.UNSUPPORTED_CONTAINER, "unknown image signature")
    if output_kind is not None and output_kind is not target_kind:
        target = reencode(target, output_kind)

    return write(target, outcome, target_kind=output_kind, config=config)
