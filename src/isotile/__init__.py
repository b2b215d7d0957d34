"""
Isotile
=======

Brush detection and map export for isometric tilesets.

This package turns a packed isometric tileset image into a palette of
paintable brush regions, paints multi-layer maps with them, and exports
the result to Flare's plain text map format.

Key Features:
- Alpha-threshold connected component detection with Numba JIT compilation
- Rule-based shape classification (floors, walls, gapped strips, sprawl)
- Splitting oversized components into tile-sized brushes
- Editable brush palettes with contiguous GIDs (merge, separate, remove, reorder)
- Per-layer tilesets sharing one global ID namespace
- 2:1 isometric projection with pixel-accurate tile picking
- Selections, stamps and shape tools for painting maps

Example Usage:
    from isotile import MapEditor

    editor = MapEditor(map_width=20, map_height=15)
    editor.bind_tileset("background", "tiles.png")
    editor.paint("background", 0, 0, gid=1)
    editor.export_flare("out/", "level1")
"""

__version__ = "1.0.0"
__author__ = "Isotile Team"

from .errors import IsotileError, InvalidInputError, NotFoundError, IndexOutOfRangeError
from .ingestion import Bitmap, TilesetLoader, is_transparent
from .components import Rect, Component, ComponentDetector, detect_components
from .classifier import ShapeClassifier, SplitDecision, SplitKind
from .splitter import RegionSplitter
from .palette import BrushPalette, DetectionSettings, EditResult, Region
from .layers import LayerType, TileLayer, LayerTilesetBinding
from .allocation import GlobalAllocationTable
from .projection import IsometricCamera, IsometricProjector, ProjectionMatrix
from .selection import Selection, Stamp
from .editor import MapEditor
from .exporters import FlareExporter

__all__ = [
    "IsotileError",
    "InvalidInputError",
    "NotFoundError",
    "IndexOutOfRangeError",
    "Bitmap",
    "TilesetLoader",
    "is_transparent",
    "Rect",
    "Component",
    "ComponentDetector",
    "detect_components",
    "ShapeClassifier",
    "SplitDecision",
    "SplitKind",
    "RegionSplitter",
    "BrushPalette",
    "DetectionSettings",
    "EditResult",
    "Region",
    "LayerType",
    "TileLayer",
    "LayerTilesetBinding",
    "GlobalAllocationTable",
    "IsometricCamera",
    "IsometricProjector",
    "ProjectionMatrix",
    "Selection",
    "Stamp",
    "MapEditor",
    "FlareExporter",
]
