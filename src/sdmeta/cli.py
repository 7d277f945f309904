"""Command-line interface for sdmeta.

Provides the ``sdmeta`` entry point with five commands:

- ``read``     - show the generation metadata of an image
- ``strip``    - remove generation metadata
- ``embed``    - embed a canonical record given as JSON
- ``convert``  - rewrite recognized metadata in another tool's convention
- ``clone``    - copy metadata from one image into another

This is the only module that touches the filesystem, the process
environment (through ``load_config``) or logging handlers.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from sdmeta import __version__
from sdmeta.cloner import clone_metadata
from sdmeta.config import CodecConfig, load_config
from sdmeta.constants import SOFTWARE_LABELS, SUPPORTED_FORMATS
from sdmeta.errors import MetadataError
from sdmeta.formatting import summarize
from sdmeta.metadata_handler import embed, parse, write
from sdmeta.models import Empty, Strip, Success, WriteErr, WriteOutcome
from sdmeta.schema import GenerationMetadata
from sdmeta.utils import get_image_format, is_supported_format

logger = logging.getLogger(__name__)


# ── Argument parser construction ────────────────────────────────────

def _build_parser() -> argparse.ArgumentParser:
    """Construct and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="sdmeta",
        description="Read, strip, and convert AI image-generation metadata in PNG, JPEG, and WebP files.",
        epilog="Example: sdmeta convert image.png --to comfyui -o converted.png",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    commands = parser.add_subparsers(dest="command", metavar="command")

    read = commands.add_parser("read", help="Show the generation metadata of an image")
    read.add_argument("source", type=Path, help=f"Image file ({', '.join(sorted(SUPPORTED_FORMATS))})")
    read.add_argument(
        "--json", action="store_true",
        help="Print the canonical record as JSON instead of parameter text",
    )

    strip = commands.add_parser("strip", help="Remove generation metadata")
    strip.add_argument("source", type=Path, help="Image file")
    strip.add_argument("-o", "--output", type=Path, help="Output file (default: overwrite source)")

    embed_cmd = commands.add_parser("embed", help="Embed a canonical record given as JSON")
    embed_cmd.add_argument("source", type=Path, help="Image file")
    embed_cmd.add_argument("metadata", type=Path, help="JSON file holding a canonical record")
    embed_cmd.add_argument("-o", "--output", type=Path, help="Output file (default: overwrite source)")
    embed_cmd.add_argument(
        "--to", dest="target", choices=sorted(SOFTWARE_LABELS),
        help="Write in this tool's convention (default: the record's own software)",
    )

    convert = commands.add_parser("convert", help="Rewrite metadata in another tool's convention")
    convert.add_argument("source", type=Path, help="Image file")
    convert.add_argument("--to", dest="target", required=True, choices=sorted(SOFTWARE_LABELS))
    convert.add_argument("-o", "--output", type=Path, help="Output file (default: overwrite source)")

    clone = commands.add_parser("clone", help="Copy metadata from one image into another")
    clone.add_argument("source", type=Path, help="Image whose metadata is copied")
    clone.add_argument("target", type=Path, help="Image whose pixels are kept")
    clone.add_argument(
        "-o", "--output", type=Path,
        help="Output file; its suffix picks the format (default: overwrite target)",
    )

    return parser


# ── Helpers ─────────────────────────────────────────────────────────

def _save(outcome: WriteOutcome, output_path: Path) -> int:
    """Write a successful outcome to disk and report; return an exit code."""
    if isinstance(outcome, WriteErr):
        print(f"Error: {outcome.kind.value}: {outcome.message}", file=sys.stderr)
        return 1
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(outcome.output)
    if outcome.warning:
        print(f"Warning: {outcome.warning}", file=sys.stderr)
    print(f"Wrote: {output_path}")
    return 0


# ── Command handlers ────────────────────────────────────────────────

def _handle_read(args: argparse.Namespace, config: CodecConfig) -> int:
    """Print the parse outcome of the source image."""
    outcome = parse(args.source.read_bytes(), config)
    if args.json and isinstance(outcome, Success):
        print(outcome.metadata.model_dump_json(indent=2, exclude_none=True))
    else:
        print(summarize(outcome))
    return 1 if isinstance(outcome, Empty) else 0


def _handle_strip(args: argparse.Namespace, config: CodecConfig) -> int:
    """Strip generation metadata from the source image."""
    outcome = write(args.source.read_bytes(), Strip(), config=config)
    return _save(outcome, args.output or args.source)


def _handle_embed(args: argparse.Namespace, config: CodecConfig) -> int:
    """Embed a canonical record read from a JSON file."""
    try:
        metadata = GenerationMetadata.model_validate_json(args.metadata.read_text(encoding="utf-8"))
    except ValidationError as e:
        print(f"Error: invalid metadata file '{args.metadata}':\n{e}", file=sys.stderr)
        return 1
    outcome = embed(args.source.read_bytes(), metadata, args.target, config)
    return _save(outcome, args.output or args.source)


def _handle_convert(args: argparse.Namespace, config: CodecConfig) -> int:
    """Re-embed recognized metadata in another tool's convention."""
    data = args.source.read_bytes()
    outcome = parse(data, config)
    if not isinstance(outcome, Success):
        print(f"Error: nothing to convert.\n{summarize(outcome)}", file=sys.stderr)
        return 1
    return _save(embed(data, outcome.metadata, args.target, config), args.output or args.source)


def _handle_clone(args: argparse.Namespace, config: CodecConfig) -> int:
    """Clone metadata from source to target image."""
    output_path = args.output or args.target
    outcome = clone_metadata(
        args.source.read_bytes(),
        args.target.read_bytes(),
        output_kind=get_image_format(output_path),
        config=config,
    )
    return _save(outcome, output_path)


_HANDLERS = {
    "read": _handle_read,
    "strip": _handle_strip,
    "embed": _handle_embed,
    "convert": _handle_convert,
    "clone": _handle_clone,
}


# ── Entry point ─────────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch to the appropriate command handler."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    for path in (args.source, getattr(args, "target", None)):
        if not isinstance(path, Path):
            continue
        if not path.exists():
            print(f"Error: File '{path}' does not exist.", file=sys.stderr)
            return 1
        if not is_supported_format(path):
            print(
                f"Warning: File '{path}' may not be a supported format "
                f"({', '.join(sorted(SUPPORTED_FORMATS))}).",
                file=sys.stderr,
            )

    try:
        config = load_config()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        return _HANDLERS[args.command](args, config)
    except (MetadataError, ValueError, OSError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
