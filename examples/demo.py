#!/usr/bin/env python3
"""
Isotile Demo Script

This script demonstrates the full tileset-to-map pipeline by:
1. Creating synthetic tilesets (no external images needed)
2. Detecting brush regions per layer tileset
3. Editing a palette and painting a small map
4. Exporting Flare tileset and map files

Run with: python examples/demo.py
"""

import logging
import sys
from pathlib import Path
import numpy as np
import time

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from isotile import MapEditor
from isotile.components import ComponentDetector
from isotile.ingestion import Bitmap


def diamond(width: int, height: int, color) -> np.ndarray:
    """Filled 2:1 floor diamond of the given size."""
    tile = np.zeros((height, width, 4), dtype=np.uint8)
    ys, xs = np.mgrid[0:height, 0:width]
    dx = np.abs(xs + 0.5 - width / 2) / (width / 2)
    dy = np.abs(ys + 0.5 - height / 2) / (height / 2)
    tile[dx + dy <= 1] = [*color, 255]
    return tile


def create_floor_tileset() -> np.ndarray:
    """
    Four floor diamonds plus one long floor strip.

    The strip is wide enough to be cut into tile-sized brushes.
    """
    rgba = np.zeros((96, 320, 4), dtype=np.uint8)
    colors = [(90, 160, 70), (150, 120, 80), (120, 120, 130), (200, 190, 140)]
    for i, color in enumerate(colors):
        rgba[4:36, 4 + i * 72:68 + i * 72] = diamond(64, 32, color)

    # Strip of three joined tiles
    rgba[52:70, 5:195] = [110, 150, 90, 255]
    return rgba


def create_object_tileset() -> np.ndarray:
    """
    A wall, a tree and a gapped fence.
    """
    rgba = np.zeros((200, 256, 4), dtype=np.uint8)

    # Upright wall
    rgba[8:136, 8:40] = [140, 110, 90, 255]

    # Tree: crown on top of a trunk
    rgba[20:74, 70:130] = [34, 139, 34, 255]
    rgba[70:130, 94:106] = [101, 67, 33, 255]

    # Fence posts on a shared rail
    rgba[160:164, 140:250] = [170, 140, 100, 255]
    for i in range(4):
        rgba[150:190, 140 + i * 30:150 + i * 30] = [170, 140, 100, 255]

    return rgba


def run_demo():
    """Run the demonstration."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("Isotile - Demo")
    print("=" * 60)
    print()

    # Create output directory
    output_dir = Path(__file__).parent / "output"
    output_dir.mkdir(exist_ok=True)

    total_start = time.time()

    editor = MapEditor(map_width=12, map_height=10)

    print("\n--- Detecting regions ---")
    floor = editor.bind_tileset("background", create_floor_tileset(), source_path="floor.png")
    objects = editor.bind_tileset("object", create_object_tileset(), source_path="objects.png")

    for binding in (floor, objects):
        print(f"\n  {binding.layer_type.value}: {binding.count} regions")
        for row in binding.palette.info():
            print(f"    GID {row['gid']}: {row['width']}x{row['height']} at "
                  f"({row['source_x']}, {row['source_y']})")

    # Palette edits
    print("\n--- Editing the object palette ---")
    if len(objects.palette) >= 2:
        result = editor.reorder("object", len(objects.palette) - 1, 0)
        print(f"  {result.message}")

    # Paint
    print("\n--- Painting ---")
    filled = editor.bucket_fill("background", 0, 0, gid=1)
    print(f"  Bucket fill changed {filled} cells")
    for x in range(2, 10):
        editor.paint("background", x, 5, gid=min(5, len(floor.palette)))
    editor.paint("object", 3, 3, gid=1)
    editor.paint("object", 8, 2, gid=min(2, len(objects.palette)))

    # Tile picking round trip
    print("\n--- Picking ---")
    editor.projector.set_viewport(800)
    editor.set_zoom(1.5)
    for cell in [(0, 0), (3, 3), (11, 9)]:
        sx, sy = editor.map_to_screen(*cell)
        print(f"  cell {cell} -> screen ({sx:.1f}, {sy:.1f}) -> {editor.pick_tile(sx, sy)}")

    # Export
    print("\n--- Exporting ---")
    export_start = time.time()
    tileset_path, map_path = editor.export_flare(output_dir, "demo", title="Demo Map")
    print(f"    Saved: {tileset_path}")
    print(f"    Saved: {map_path}")
    print(f"    Export time: {(time.time() - export_start)*1000:.1f}ms")

    stats = editor.get_stats()
    print(f"\n  Global IDs: {stats['total_ids']}")
    for layer, info in stats["tilesets"].items():
        print(f"    {layer}: {info['first_id']}..{info['last_id']} ({info['file']})")

    total_time = time.time() - total_start

    print("\n" + "=" * 60)
    print(f"Demo complete! Total time: {total_time:.2f}s")
    print(f"Output files in: {output_dir}")
    print("=" * 60)

    return 0


def benchmark_detection():
    """Benchmark connected component labelling."""
    print("\n--- Detection Benchmark ---\n")

    rng = np.random.default_rng(0)
    sizes = [256, 512, 1024, 2048]

    for size in sizes:
        # Scatter of opaque blocks
        rgba = np.zeros((size, size, 4), dtype=np.uint8)
        for _ in range(size // 4):
            x, y = rng.integers(0, size - 24, size=2)
            rgba[y:y + 20, x:x + 20, 3] = 255
        bitmap = Bitmap(rgba)

        detector = ComponentDetector()
        start = time.time()
        components = detector.detect(bitmap)
        elapsed = time.time() - start

        print(f"Bitmap size: {size}x{size}")
        print(f"  {len(components)} components in {elapsed*1000:.1f}ms")
        print()


if __name__ == "__main__":
    run_demo()

    # Uncomment to run benchmark
    # benchmark_detection()
