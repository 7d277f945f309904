"""Human-readable rendering of parse outcomes.

Used by the CLI; the codec itself never formats text for people.
"""

from __future__ import annotations

from typing import Union

from sdmeta.constants import SOFTWARE_LABELS
from sdmeta.models import Empty, Invalid, ParseOutcome, Success, Unrecognized
from sdmeta.schema import GenerationMetadata
from sdmeta.vendors.a1111 import build_parameters_text

MAX_RAW_PREVIEW = 200


def software_label(software: str) -> str:
    return SOFTWARE_LABELS.get(software, software)


def stringify(value: Union[ParseOutcome, GenerationMetadata]) -> str:
    """
    Render a record (or a successful outcome) as A1111-style parameter text.

    Non-success outcomes render as an empty string.
    """
    if isinstance(value, Success):
        value = value.metadata
    if not isinstance(value, GenerationMetadata):
        return ""
    return build_parameters_text(value)


def _preview(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace")
    if len(text) > MAX_RAW_PREVIEW:
        return f"{text[:MAX_RAW_PREVIEW]}..."
    return text


def summarize(outcome: ParseOutcome) -> str:
    """
    Describe a parse outcome in a few lines.

    Args:
        outcome: Result of ``parse``.

    Returns:
        A heading naming the outcome (and software) followed by the
        parameter text or a raw preview.
    """
    if isinstance(outcome, Success):
        source = f" ({outcome.source.value})" if outcome.source is not None else ""
        heading = f"{software_label(outcome.metadata.software)} metadata{source}"
        return f"{heading}\n{stringify(outcome)}"
    if isinstance(outcome, Empty):
        return "No generation metadata found."
    if isinstance(outcome, Unrecognized):
        return f"Unrecognized metadata ({len(outcome.raw_payload)} bytes):\n{_preview(outcome.raw_payload)}"
    if isinstance(outcome, Invalid):
        return f"{software_label(outcome.software)} metadata is malformed: {outcome.reason}"
    raise TypeError(f"Unknown outcome {type(outcome).__name__}")
