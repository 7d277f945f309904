"""Recognizer: run payload candidates through the vendor decoder chain."""

from __future__ import annotations

import logging
from typing import Sequence

from sdmeta.models import Empty, Invalid, ParseOutcome, PayloadCandidate, Success, Unrecognized
from sdmeta.vendors import DECODERS, Claimed, VendorCodec

logger = logging.getLogger(__name__)


def recognize(
    candidates: Sequence[PayloadCandidate],
    decoders: Sequence[VendorCodec] = DECODERS,
) -> ParseOutcome:
    """
    Classify extracted candidates.

    Candidates are tried in extraction order and, for each, decoders in
    chain order.  The first decoder that claims a candidate decides the
    outcome: ``Success`` when it decodes, ``Invalid`` when it reports the
    payload as malformed (no further candidates or decoders are tried).

    Args:
        candidates: Output of the payload extractor.
        decoders: Decoder chain (defaults to the built-in order).

    Returns:
        ``Empty`` without candidates, ``Unrecognized`` (keeping the first
        candidate's payload) when nothing claims any of them.
    """
    if not candidates:
        return Empty()

    for candidate in candidates:
        for codec in decoders:
            result = codec.try_decode(candidate)
            if not isinstance(result, Claimed):
                continue
            if result.metadata is not None:
                logger.debug("%s decoded %s payload", codec.name, candidate.source.value)
                return Success(
                    metadata=result.metadata,
                    entries=candidate.entries,
                    source=candidate.source,
                )
            logger.debug("%s claimed a malformed payload: %s", codec.name, result.malformed)
            return Invalid(
                reason=result.malformed or "malformed payload",
                software=codec.software,
                raw_payload=candidate.raw,
                entries=candidate.entries,
            )

    first = candidates[0]
    logger.debug("No decoder claimed %d candidate(s)", len(candidates))
    return Unrecognized(raw_payload=first.raw, entries=first.entries)
