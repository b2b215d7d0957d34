"""
Command-Line Interface for Isotile

Usage:
    isotile tiles.png -o tileset.txt
    isotile tiles.png --tile-width 64 --tile-height 32 --threshold 20
    isotile floor.png --layer-tileset object=props.png --layer-tileset npc=people.png

"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional, Tuple

from . import __version__
from .editor import MapEditor
from .exporters import FlareExporter
from .layers import LayerType


def parse_layer_tileset(value: str) -> Tuple[str, str]:
    """Parse a TYPE=PATH pair."""
    layer, sep, path = value.partition("=")
    if not sep or not layer or not path:
        raise argparse.ArgumentTypeError(f"Expected TYPE=PATH, got {value!r}")
    choices = [t.value for t in LayerType]
    if layer.strip().lower() not in choices:
        raise argparse.ArgumentTypeError(
            f"Unknown layer type {layer!r} (choose from {', '.join(choices)})"
        )
    return layer.strip().lower(), path


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="isotile",
        description="Isotile - Detect brush regions in isometric tilesets and export Flare tilesets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  isotile tiles.png -o tileset.txt
      Detect regions in tiles.png and write a Flare tileset definition

  isotile tiles.png --threshold 40 --min-size 12 --json
      Print the detected regions as JSON

  isotile floor.png --layer-tileset object=props.png --layer-tileset npc=people.png
      Bind one tileset per layer; global IDs are allocated across all of them

Layer Types (global ID allocation order):
  collision, background, object, event, enemy, npc
        """
    )

    # Input
    parser.add_argument(
        "input",
        nargs="?",
        help="Tileset image (PNG recommended)"
    )

    parser.add_argument(
        "--layer",
        choices=[t.value for t in LayerType],
        default="background",
        help="Layer the input tileset is bound to (default: background)"
    )

    parser.add_argument(
        "--layer-tileset",
        action="append",
        type=parse_layer_tileset,
        default=[],
        metavar="TYPE=PATH",
        help="Bind an additional tileset to a layer type (repeatable)"
    )

    # Detection settings
    parser.add_argument(
        "--tile-width",
        type=int,
        default=64,
        help="Base tile width in pixels (default: 64)"
    )

    parser.add_argument(
        "--tile-height",
        type=int,
        default=32,
        help="Base tile height in pixels (default: 32)"
    )

    parser.add_argument(
        "-t", "--threshold",
        type=int,
        default=10,
        help="Alpha threshold; pixels at or below it are transparent (0-255, default: 10)"
    )

    parser.add_argument(
        "--min-size",
        type=int,
        default=8,
        help="Smallest accepted region side in pixels (default: 8)"
    )

    # Output settings
    parser.add_argument(
        "-o", "--output",
        help="Tileset definition output path (default: tileset.txt next to the input)"
    )

    parser.add_argument(
        "--image-prefix",
        default="../maps/",
        help="Prefix for img= lines (default: ../maps/)"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print detected regions as JSON instead of a summary"
    )

    # Misc
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s"
    )


def build_editor(args) -> MapEditor:
    """Create an editor with every requested tileset bound."""
    editor = MapEditor(
        tile_width=args.tile_width,
        tile_height=args.tile_height,
        threshold=args.threshold,
        min_size=args.min_size
    )

    if args.input:
        editor.bind_tileset(args.layer, args.input)
    for layer, path in args.layer_tileset:
        editor.bind_tileset(layer, path)

    return editor


def summarize(editor: MapEditor) -> dict:
    """JSON-ready description of the allocated tilesets."""
    table = editor.allocation_table()
    tilesets = []
    for entry in table:
        binding = entry.binding
        tilesets.append({
            "layer": binding.layer_type.value,
            "file": binding.file_name,
            "size": list(binding.bitmap.size),
            "first_id": entry.first_id,
            "last_id": entry.last_id,
            "regions": [
                dict(row, global_id=entry.offset + row["gid"] - 1)
                for row in binding.palette.info()
            ],
        })
    return {"total_ids": table.total_count, "tilesets": tilesets}


def print_summary(summary: dict):
    print(f"Allocated {summary['total_ids']} global IDs")
    for tileset in summary["tilesets"]:
        width, height = tileset["size"]
        print(f"\n[{tileset['layer']}] {tileset['file'] or '<array>'} ({width}x{height})")
        if not tileset["regions"]:
            print("  no regions detected")
            continue
        print(f"  IDs {tileset['first_id']}..{tileset['last_id']}")
        for row in tileset["regions"]:
            print(
                f"  {row['global_id']:4d}: {row['width']}x{row['height']} "
                f"at ({row['source_x']}, {row['source_y']}) "
                f"origin ({row['origin_x']}, {row['origin_y']})"
            )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if not args.input and not args.layer_tileset:
        print("Error: No tileset specified", file=sys.stderr)
        return 1

    if args.input and not Path(args.input).exists():
        print(f"Error: Input file not found: {args.input}", file=sys.stderr)
        return 1

    start_time = time.time()

    try:
        editor = build_editor(args)
        summary = summarize(editor)

        if args.json:
            print(json.dumps(summary, indent=2))
        else:
            print_summary(summary)

        if summary["total_ids"] == 0:
            print("Error: No regions detected; nothing to export", file=sys.stderr)
            return 1

        if args.output:
            output_path = Path(args.output)
        elif args.input:
            output_path = Path(args.input).with_name("tileset.txt")
        else:
            output_path = Path("tileset.txt")

        exporter = FlareExporter(image_prefix=args.image_prefix)
        exporter.export_tileset(editor.allocation_table(), output_path)

        elapsed = time.time() - start_time
        if not args.json:
            print(f"\nWrote {output_path} in {elapsed:.2f}s")

        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
