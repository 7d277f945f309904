"""Codec configuration.

The codec itself never reads the process environment: every public
function accepts an optional ``CodecConfig``.  Front ends (the CLI) call
``load_config()`` which layers environment variables over defaults:

    SDMETA_SCAN_ALPHA=0            disable the alpha-channel carrier scan
    SDMETA_PNG_TEXT_STRATEGY=...   dynamic | unicode-escape | utf8-raw
    SDMETA_FILL_DIMENSIONS=0       keep width/height at 0 when the payload omits them
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

PNG_TEXT_STRATEGIES = ("dynamic", "unicode-escape", "utf8-raw")


@dataclass(frozen=True)
class CodecConfig:
    """Options shared by parse, write, and embed."""

    scan_alpha_channel: bool = True
    png_text_strategy: str = "dynamic"
    fill_dimensions_from_container: bool = True

    def __post_init__(self) -> None:
        if self.png_text_strategy not in PNG_TEXT_STRATEGIES:
            raise ValueError(
                f"png_text_strategy must be one of {', '.join(PNG_TEXT_STRATEGIES)}, "
                f"got {self.png_text_strategy!r}"
            )


DEFAULT_CONFIG = CodecConfig()


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with SDMETA_ prefix."""
    return os.environ.get(f"SDMETA_{key}", default)


def _parse_bool(value: str | None) -> bool | None:
    """Parse boolean from string."""
    if value is None:
        return None
    return value.lower() in ("true", "1", "yes", "on")


def load_config() -> CodecConfig:
    """Build a configuration from ``SDMETA_*`` environment variables and defaults."""
    scan_alpha = _parse_bool(_get_env("SCAN_ALPHA"))
    fill_dimensions = _parse_bool(_get_env("FILL_DIMENSIONS"))

    return CodecConfig(
        scan_alpha_channel=DEFAULT_CONFIG.scan_alpha_channel if scan_alpha is None else scan_alpha,
        png_text_strategy=_get_env("PNG_TEXT_STRATEGY", DEFAULT_CONFIG.png_text_strategy),
        fill_dimensions_from_container=(
            DEFAULT_CONFIG.fill_dimensions_from_container
            if fill_dimensions is None
            else fill_dimensions
        ),
    )
