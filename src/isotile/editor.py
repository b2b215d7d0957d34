"""
Main MapEditor Class

This is the primary interface for building an isometric map.
It orchestrates:
1. Tileset loading and region detection per layer type
2. Brush palette edits (merge, separate, remove, reorder)
3. Painting layers (brush, eraser, bucket fill, shapes, eyedropper)
4. Selections and stamps
5. View state (zoom, pan, tile picking)
6. Global ID allocation and Flare export

Example Usage:
    editor = MapEditor(map_width=20, map_height=15)
    editor.bind_tileset("background", "grass.png")
    editor.paint("background", 3, 4, gid=1)
    editor.export_flare("out/", "level1")
"""

import itertools
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union
import numpy as np

from .allocation import GlobalAllocationTable
from .errors import InvalidInputError, NotFoundError
from .exporters import FlareExporter
from .ingestion import Bitmap, TilesetLoader, validate_threshold
from .layers import LayerTilesetBinding, LayerType, TileLayer
from .palette import BrushPalette, DetectionSettings, EditResult
from .projection import IsometricCamera, IsometricProjector
from .selection import Selection, Stamp, circle_outline, line_cells, rectangle_outline

logger = logging.getLogger(__name__)

LayerKey = Union[str, LayerType]


class MapEditor:
    """
    High-level interface for editing a multi-layer isometric map.

    Attributes:
        camera: Zoom/pan of the map view
        projector: Map <-> screen transforms
        loader: Tileset image loader
    """

    def __init__(
        self,
        map_width: int = 20,
        map_height: int = 15,
        tile_width: int = 64,
        tile_height: int = 32,
        threshold: int = 10,
        min_size: int = 8
    ):
        """
        Initialize the editor with a single empty background layer.

        Args:
            map_width, map_height: Map size in tiles
            tile_width, tile_height: Base tile size in pixels
            threshold: Alpha threshold for region detection
            min_size: Smallest accepted region side in pixels
        """
        if map_width <= 0 or map_height <= 0:
            raise InvalidInputError(f"Map size must be positive, got {map_width}x{map_height}")

        self.map_width = map_width
        self.map_height = map_height
        self.settings = DetectionSettings(
            tile_width=tile_width,
            tile_height=tile_height,
            threshold=threshold,
            min_size=min_size
        )

        self.loader = TilesetLoader()
        self.camera = IsometricCamera()
        self.projector = IsometricProjector(tile_width, tile_height)

        self._layers: List[TileLayer] = []
        self._bindings: Dict[LayerType, LayerTilesetBinding] = {}
        self.selection: Optional[Selection] = None
        self._stamps: Dict[int, Stamp] = {}
        self._stamp_ids = itertools.count(1)

        self.add_layer(LayerType.BACKGROUND)

    @property
    def tile_width(self) -> int:
        return self.settings.tile_width

    @property
    def tile_height(self) -> int:
        return self.settings.tile_height

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    @property
    def layers(self) -> List[TileLayer]:
        """Layers in draw order (top first)."""
        return list(self._layers)

    def has_layer(self, layer_type: LayerKey) -> bool:
        layer_type = LayerType.parse(layer_type)
        return any(layer.layer_type == layer_type for layer in self._layers)

    def layer(self, layer_type: LayerKey) -> TileLayer:
        """Get the layer of a type."""
        layer_type = LayerType.parse(layer_type)
        for layer in self._layers:
            if layer.layer_type == layer_type:
                return layer
        raise NotFoundError(f"No {layer_type.value} layer in the map")

    def add_layer(self, layer_type: LayerKey, name: str = "") -> Optional[TileLayer]:
        """
        Add an empty layer.

        Only one layer per type is allowed.

        Args:
            layer_type: Kind of layer
            name: Display name (defaults to the capitalized type)

        Returns:
            The new layer, or None if a layer of that type already exists
        """
        layer_type = LayerType.parse(layer_type)
        if self.has_layer(layer_type):
            logger.warning("A %s layer already exists", layer_type.value)
            return None

        layer = TileLayer(layer_type, self.map_width, self.map_height, name=name)
        self._layers.append(layer)
        self._layers.sort(key=lambda l: l.layer_type.draw_order)
        return layer

    def remove_layer(self, layer_type: LayerKey) -> bool:
        """
        Delete a layer.

        The last remaining layer is never removed.

        Returns:
            True if the layer was removed
        """
        layer = self.layer(layer_type)
        if len(self._layers) <= 1:
            logger.warning("Cannot remove the last layer (%s)", layer.layer_type.value)
            return False
        self._layers.remove(layer)
        self._drop_selection_on(layer.layer_type)
        return True

    def clear_layer(self, layer_type: LayerKey) -> "MapEditor":
        self.layer(layer_type).clear()
        return self

    def set_layer_visible(self, layer_type: LayerKey, visible: bool) -> "MapEditor":
        self.layer(layer_type).visible = bool(visible)
        return self

    def set_layer_transparency(self, layer_type: LayerKey, transparency: float) -> float:
        """Set drawing opacity, clamped to [0, 1]; returns the stored value."""
        layer = self.layer(layer_type)
        layer.transparency = max(0.0, min(1.0, float(transparency)))
        return layer.transparency

    def rename_layer(self, layer_type: LayerKey, name: str) -> "MapEditor":
        name = str(name).strip()
        if not name:
            raise InvalidInputError("Layer name must not be empty")
        self.layer(layer_type).name = name
        return self

    def change_layer_type(
        self,
        layer_type: LayerKey,
        new_type: LayerKey,
        name: Optional[str] = None
    ) -> bool:
        """
        Turn a layer into another type, keeping its cells.

        The tileset bound to the new type paints the layer from then on.

        Args:
            layer_type: Current type of the layer
            new_type: Type to change to
            name: New display name (defaults to the capitalized new type)

        Returns:
            False if a layer of the new type already exists
        """
        layer = self.layer(layer_type)
        new_type = LayerType.parse(new_type)
        if new_type != layer.layer_type and self.has_layer(new_type):
            logger.warning("A %s layer already exists", new_type.value)
            return False

        self._drop_selection_on(layer.layer_type)
        layer.layer_type = new_type
        layer.name = name.strip() if name and name.strip() else new_type.value.capitalize()
        self._layers.sort(key=lambda l: l.layer_type.draw_order)
        return True

    # ------------------------------------------------------------------
    # Tilesets
    # ------------------------------------------------------------------

    def bind_tileset(
        self,
        layer_type: LayerKey,
        source: Union[str, Path, np.ndarray, Bitmap],
        spacing: int = 0,
        margin: int = 0,
        source_path: Optional[Union[str, Path]] = None
    ) -> LayerTilesetBinding:
        """
        Load a tileset for a layer type and detect its brush palette.

        Any previous binding of the layer type is replaced. A missing layer
        of that type is created.

        Args:
            layer_type: Layer the tileset paints
            source: Image path, pixel array or Bitmap
            spacing, margin: Fixed-grid spacing/margin of the image
            source_path: File name to export under when source is an array

        Returns:
            The new binding
        """
        layer_type = LayerType.parse(layer_type)

        if isinstance(source, Bitmap):
            bitmap = source
        elif isinstance(source, np.ndarray):
            bitmap = self.loader.load_from_array(source, source_path)
        else:
            bitmap = self.loader.load(source)

        binding = LayerTilesetBinding.create(
            layer_type, bitmap, self.settings,
            spacing=spacing, margin=margin, source_path=source_path
        )
        if layer_type in self._bindings:
            logger.info("Replacing %s tileset", layer_type.value)
        self._bindings[layer_type] = binding

        if not self.has_layer(layer_type):
            self.add_layer(layer_type)

        logger.info(
            "Bound %s to the %s layer (%d regions)",
            binding.file_name or "<array>", layer_type.value, binding.count
        )
        return binding

    def unbind_tileset(self, layer_type: LayerKey) -> "MapEditor":
        layer_type = LayerType.parse(layer_type)
        if self._bindings.pop(layer_type, None) is None:
            raise NotFoundError(f"No tileset bound to the {layer_type.value} layer")
        return self

    @property
    def bindings(self) -> List[LayerTilesetBinding]:
        return list(self._bindings.values())

    def binding(self, layer_type: LayerKey) -> LayerTilesetBinding:
        layer_type = LayerType.parse(layer_type)
        try:
            return self._bindings[layer_type]
        except KeyError:
            raise NotFoundError(f"No tileset bound to the {layer_type.value} layer") from None

    def palette(self, layer_type: LayerKey) -> BrushPalette:
        return self.binding(layer_type).palette

    def set_threshold(self, threshold: int) -> "MapEditor":
        """
        Change the alpha threshold and re-detect every bound tileset.

        Painted cells are not rewritten.
        """
        validate_threshold(threshold)
        self.settings = DetectionSettings(
            tile_width=self.settings.tile_width,
            tile_height=self.settings.tile_height,
            threshold=threshold,
            min_size=self.settings.min_size,
            padding=self.settings.padding
        )
        for binding in self._bindings.values():
            binding.palette.set_threshold(threshold)
        return self

    # ------------------------------------------------------------------
    # Palette edits
    # ------------------------------------------------------------------

    def _apply_edit(self, layer_type: LayerType, result: EditResult, retarget: bool) -> EditResult:
        if result.applied and retarget and self.has_layer(layer_type):
            changed = self.layer(layer_type).retarget(result.gid_map)
            logger.debug("Retargeted %d painted cells on the %s layer", changed, layer_type.value)
        return result

    def merge(self, layer_type: LayerKey, gids: Sequence[int], retarget: bool = False) -> EditResult:
        """
        Merge palette regions of a layer's tileset.

        Args:
            layer_type: Layer whose palette is edited
            gids: GIDs to merge
            retarget: Rewrite painted cells to follow the renumbering
        """
        layer_type = LayerType.parse(layer_type)
        return self._apply_edit(layer_type, self.palette(layer_type).merge(gids), retarget)

    def separate(self, layer_type: LayerKey, gid: int, retarget: bool = False) -> EditResult:
        layer_type = LayerType.parse(layer_type)
        return self._apply_edit(layer_type, self.palette(layer_type).separate(gid), retarget)

    def remove_region(self, layer_type: LayerKey, gid: int, retarget: bool = False) -> EditResult:
        layer_type = LayerType.parse(layer_type)
        return self._apply_edit(layer_type, self.palette(layer_type).remove(gid), retarget)

    def reorder(
        self,
        layer_type: LayerKey,
        from_index: int,
        to_index: int,
        retarget: bool = False
    ) -> EditResult:
        layer_type = LayerType.parse(layer_type)
        result = self.palette(layer_type).reorder(from_index, to_index)
        return self._apply_edit(layer_type, result, retarget)

    # ------------------------------------------------------------------
    # Painting
    # ------------------------------------------------------------------

    def _check_gid(self, layer_type: LayerType, gid: int):
        if gid == 0:
            return
        if gid not in self.palette(layer_type):
            raise NotFoundError(f"GID {gid} not in the {layer_type.value} palette")

    def paint(self, layer_type: LayerKey, x: int, y: int, gid: int) -> bool:
        """
        Paint one cell.

        Returns:
            True if the cell changed
        """
        layer_type = LayerType.parse(layer_type)
        self._check_gid(layer_type, gid)
        layer = self.layer(layer_type)
        if layer.get(x, y) == gid:
            return False
        layer.set(x, y, gid)
        return True

    def erase(self, layer_type: LayerKey, x: int, y: int) -> bool:
        layer = self.layer(layer_type)
        if layer.get(x, y) == 0:
            return False
        layer.set(x, y, 0)
        return True

    def bucket_fill(self, layer_type: LayerKey, x: int, y: int, gid: int) -> int:
        """
        Fill the 4-connected area of equal cells at (x, y).

        Returns:
            Number of cells changed
        """
        layer_type = LayerType.parse(layer_type)
        self._check_gid(layer_type, gid)
        return self.layer(layer_type).fill(x, y, gid)

    def resize_map(self, map_width: int, map_height: int) -> "MapEditor":
        """Resize every layer, keeping the overlapping area."""
        if map_width <= 0 or map_height <= 0:
            raise InvalidInputError(f"Map size must be positive, got {map_width}x{map_height}")
        for layer in self._layers:
            layer.resize(map_width, map_height)
        self.selection = None
        self.map_width = map_width
        self.map_height = map_height
        return self

    # ------------------------------------------------------------------
    # Shapes and eyedropper
    # ------------------------------------------------------------------

    def _paint_cells(self, layer_type: LayerKey, cells: List[Tuple[int, int]], gid: int) -> int:
        layer_type = LayerType.parse(layer_type)
        self._check_gid(layer_type, gid)
        layer = self.layer(layer_type)
        changed = 0
        for x, y in cells:
            if layer.data[y, x] != gid:
                layer.data[y, x] = gid
                changed += 1
        return changed

    def draw_rectangle(self, layer_type: LayerKey, x0: int, y0: int, x1: int, y1: int, gid: int) -> int:
        """
        Paint the outline of a rectangle.

        Returns:
            Number of cells changed
        """
        cells = rectangle_outline(x0, y0, x1, y1, self.map_width, self.map_height)
        return self._paint_cells(layer_type, cells, gid)

    def draw_circle(self, layer_type: LayerKey, cx: int, cy: int, ex: int, ey: int, gid: int) -> int:
        """Paint a circle outline centred on (cx, cy) passing near (ex, ey)."""
        cells = circle_outline(cx, cy, ex, ey, self.map_width, self.map_height)
        return self._paint_cells(layer_type, cells, gid)

    def draw_line(self, layer_type: LayerKey, x0: int, y0: int, x1: int, y1: int, gid: int) -> int:
        cells = line_cells(x0, y0, x1, y1, self.map_width, self.map_height)
        return self._paint_cells(layer_type, cells, gid)

    def eyedropper(self, layer_type: LayerKey, x: int, y: int) -> Optional[int]:
        """GID painted at (x, y), or None for an empty or off-map cell."""
        layer = self.layer(layer_type)
        if not layer.in_bounds(x, y):
            return None
        gid = layer.get(x, y)
        return gid if gid > 0 else None

    # ------------------------------------------------------------------
    # Selections
    # ------------------------------------------------------------------

    def _select(self, selection: Selection) -> Selection:
        self.selection = selection
        logger.debug("Selected %d cells on the %s layer", len(selection), selection.layer_type.value)
        return selection

    def _drop_selection_on(self, layer_type: LayerType):
        if self.selection is not None and self.selection.layer_type == layer_type:
            self.selection = None

    def select_rectangle(self, layer_type: LayerKey, x0: int, y0: int, x1: int, y1: int) -> Selection:
        return self._select(Selection.rectangle(self.layer(layer_type), x0, y0, x1, y1))

    def select_circle(self, layer_type: LayerKey, cx: int, cy: int, ex: int, ey: int) -> Selection:
        return self._select(Selection.circle(self.layer(layer_type), cx, cy, ex, ey))

    def select_magic_wand(self, layer_type: LayerKey, x: int, y: int) -> Selection:
        return self._select(Selection.magic_wand(self.layer(layer_type), x, y))

    def select_same_tile(self, layer_type: LayerKey, x: int, y: int) -> Selection:
        return self._select(Selection.same_tile(self.layer(layer_type), x, y))

    def select_all(self, layer_type: LayerKey) -> Selection:
        return self._select(Selection.everything(self.layer(layer_type)))

    def clear_selection(self) -> "MapEditor":
        self.selection = None
        return self

    @property
    def has_selection(self) -> bool:
        return self.selection is not None and len(self.selection) > 0

    def delete_selection(self) -> int:
        """
        Erase the selected cells and drop the selection.

        Returns:
            Number of cells that held a tile
        """
        if not self.has_selection:
            return 0
        layer = self.layer(self.selection.layer_type)
        cleared = int(np.count_nonzero(layer.data[self.selection.mask]))
        layer.data[self.selection.mask] = 0
        self.selection = None
        return cleared

    def fill_selection(self, gid: int) -> int:
        """
        Paint every selected cell with a GID; the selection stays active.

        Returns:
            Number of cells changed
        """
        if not self.has_selection:
            return 0
        layer_type = self.selection.layer_type
        self._check_gid(layer_type, gid)
        layer = self.layer(layer_type)
        changed = int(np.count_nonzero(layer.data[self.selection.mask] != gid))
        layer.data[self.selection.mask] = gid
        return changed

    # ------------------------------------------------------------------
    # Stamps
    # ------------------------------------------------------------------

    def create_stamp(self, name: str) -> Optional[Stamp]:
        """
        Turn the current selection into a stamp and drop the selection.

        Returns:
            The new stamp, or None without an active selection
        """
        if not self.has_selection:
            return None
        layer = self.layer(self.selection.layer_type)
        stamp = Stamp.from_selection(next(self._stamp_ids), name, self.selection, layer)
        self._stamps[stamp.stamp_id] = stamp
        self.selection = None
        logger.info("Created stamp %r (%dx%d, %d tiles)", name, stamp.width, stamp.height, stamp.tile_count)
        return stamp

    @property
    def stamps(self) -> List[Stamp]:
        return list(self._stamps.values())

    def stamp(self, stamp_id: int) -> Stamp:
        try:
            return self._stamps[stamp_id]
        except KeyError:
            raise NotFoundError(f"No stamp with id {stamp_id}") from None

    def delete_stamp(self, stamp_id: int) -> bool:
        return self._stamps.pop(stamp_id, None) is not None

    def place_stamp(
        self,
        stamp_id: int,
        x: int,
        y: int,
        layer_type: Optional[LayerKey] = None
    ) -> bool:
        """
        Place a stamp with its top-left corner at (x, y).

        Args:
            stamp_id: Stamp to place
            x, y: Target cell of the stamp's top-left corner
            layer_type: Target layer (defaults to the layer the stamp came from)

        Returns:
            False if the stamp does not fit inside the map
        """
        stamp = self.stamp(stamp_id)
        layer = self.layer(stamp.layer_type if layer_type is None else layer_type)
        if not stamp.fits(layer, x, y):
            logger.debug("Stamp %r does not fit at (%d, %d)", stamp.name, x, y)
            return False
        stamp.place(layer, x, y)
        return True

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def pick_tile(self, screen_x: float, screen_y: float) -> Optional[Tuple[int, int]]:
        """Map cell under a screen point, or None."""
        return self.projector.pick_tile(
            screen_x, screen_y, self.camera, self.map_width, self.map_height
        )

    def map_to_screen(self, map_x: float, map_y: float) -> Tuple[float, float]:
        return self.projector.map_to_screen(map_x, map_y, self.camera)

    def zoom_in(self) -> float:
        return self.camera.zoom_in()

    def zoom_out(self) -> float:
        return self.camera.zoom_out()

    def set_zoom(self, zoom: float) -> float:
        return self.camera.set_zoom(zoom)

    def pan_by(self, dx: float, dy: float) -> "MapEditor":
        self.camera.pan_by(dx, dy)
        return self

    def reset_view(self) -> "MapEditor":
        self.camera.reset()
        return self

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def allocation_table(self) -> GlobalAllocationTable:
        """Fresh global ID allocation of the current bindings."""
        return GlobalAllocationTable.allocate(self._bindings.values())

    def export_flare(
        self,
        output_dir: Union[str, Path],
        map_name: str = "map",
        title: Optional[str] = None,
        image_prefix: str = "../maps/"
    ) -> Tuple[Path, Path]:
        """
        Write `tileset.txt` and `<map_name>.txt` into a directory.

        Args:
            output_dir: Target directory (created if missing)
            map_name: Map file stem
            title: Optional map title
            image_prefix: Prepended to image names in the tileset file

        Returns:
            (tileset_path, map_path)
        """
        exporter = FlareExporter(image_prefix=image_prefix)
        return exporter.export(
            self._layers, self.allocation_table(), output_dir, map_name,
            self.tile_width, self.tile_height, title=title
        )

    def get_stats(self) -> dict:
        """
        Summary of the current map.

        Returns:
            Dictionary with map and tileset statistics
        """
        table = self.allocation_table()
        return {
            "map_size": (self.map_width, self.map_height),
            "tile_size": (self.tile_width, self.tile_height),
            "layers": [layer.layer_type.value for layer in self._layers],
            "tilesets": {
                entry.binding.layer_type.value: {
                    "file": entry.binding.file_name,
                    "regions": entry.count,
                    "first_id": entry.first_id,
                    "last_id": entry.last_id,
                }
                for entry in table
            },
            "total_ids": table.total_count,
            "painted_cells": int(sum(np.count_nonzero(l.data) for l in self._layers)),
            "stamps": len(self._stamps),
        }
