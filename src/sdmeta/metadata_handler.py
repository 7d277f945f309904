"""Public entry points of the metadata codec.

- ``parse``: image bytes -> ``ParseOutcome``
- ``write``: re-embed a parse outcome (or strip) into image bytes
- ``embed``: embed a canonical record, optionally converted to another
  vendor's convention

The pipeline behind them:

- ``container``  - PNG/JPEG/WebP chunk layer
- ``extractor``  - payload candidates from carrier segments and pixels
- ``recognizer`` - ordered vendor decoder chain
- ``injector``   - strip and re-embed carrier segments

All three functions work on in-memory buffers and keep no state between
calls.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from sdmeta.config import DEFAULT_CONFIG, CodecConfig
from sdmeta.container import Container, ContainerKind, decode, read_dimensions
from sdmeta.extractor import extract
from sdmeta.injector import write_metadata
from sdmeta.models import (
    Canonical,
    Empty,
    Invalid,
    ParseOutcome,
    PassThrough,
    Strip,
    Success,
    Unrecognized,
    WriteOutcome,
    WriteRequest,
)
from sdmeta.recognizer import recognize
from sdmeta.schema import GenerationMetadata

logger = logging.getLogger(__name__)


def _fill_dimensions(outcome: Success, container: Container) -> Success:
    """Take width/height the payload did not provide from the image header."""
    metadata = outcome.metadata
    if metadata.width and metadata.height:
        return outcome
    size = read_dimensions(container)
    if size is None:
        return outcome
    update = {}
    if not metadata.width:
        update["width"] = size[0]
    if not metadata.height:
        update["height"] = size[1]
    logger.debug("Filled %s from the image header", ", ".join(update))
    return Success(
        metadata=metadata.model_copy(update=update),
        entries=outcome.entries,
        source=outcome.source,
    )


def parse(data: bytes, config: CodecConfig = DEFAULT_CONFIG) -> ParseOutcome:
    """
    Read generation metadata from an image.

    Args:
        data: Complete PNG, JPEG or WebP file.
        config: Codec options.

    Returns:
        Exactly one of ``Success``, ``Empty``, ``Unrecognized`` or ``Invalid``.

    Raises:
        MalformedContainerError: If the signature is unknown or the chunk
            structure is broken.
    """
    container = decode(data)
    outcome = recognize(extract(container, config))
    if isinstance(outcome, Success) and config.fill_dimensions_from_container:
        outcome = _fill_dimensions(outcome, container)
    return outcome


def request_for(
    outcome: Union[ParseOutcome, Strip],
    target_kind: Optional[ContainerKind] = None,
) -> WriteRequest:
    """
    Map a parse outcome to the write request that re-embeds it.

    ``Empty`` strips, ``Unrecognized`` and ``Invalid`` pass their entries
    through untouched, and ``Success`` re-embeds its record.
    """
    if isinstance(outcome, Success):
        source = Canonical(metadata=outcome.metadata, entries=outcome.entries)
    elif isinstance(outcome, (Unrecognized, Invalid)):
        source = PassThrough(raw=outcome.raw_payload, entries=outcome.entries)
    elif isinstance(outcome, (Empty, Strip)):
        source = Strip()
    else:
        raise TypeError(f"Cannot write {type(outcome).__name__}")
    return WriteRequest(source=source, target_kind=target_kind)


def write(
    data: bytes,
    outcome: Union[ParseOutcome, Strip],
    target_kind: Optional[ContainerKind] = None,
    config: CodecConfig = DEFAULT_CONFIG,
) -> WriteOutcome:
    """
    Re-embed exactly what was parsed, or nothing.

    Args:
        data: Image to write into (usually the output of a pixel re-encode).
        outcome: A ``ParseOutcome`` or ``Strip()``.
        target_kind: Container kind the caller expects *data* to be.
        config: Codec options.

    Returns:
        ``WriteOk`` or ``WriteErr``.
    """
    return write_metadata(data, request_for(outcome, target_kind), config)


def embed(
    data: bytes,
    metadata: GenerationMetadata,
    conversion_target: Optional[str] = None,
    config: CodecConfig = DEFAULT_CONFIG,
) -> WriteOutcome:
    """
    Embed a canonical record in its own vendor's convention or another one.

    Args:
        data: Image to write into.
        metadata: Record to embed.
        conversion_target: Software id whose convention to use; fields it
            cannot represent are dropped and listed in the warning.
        config: Codec options.

    Returns:
        ``WriteOk`` (with ``warning`` when fields were dropped) or ``WriteErr``.

    Raises:
        ValueError: If *conversion_target* is not a known software id.
    """
    request = WriteRequest(source=Canonical(metadata=metadata), conversion_target=conversion_target)
    return write_metadata(data, request, config)
