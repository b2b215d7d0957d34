"""
Selections, Stamps and Shape Tools

Grid operations the map editor builds on:
- Selection: boolean cell mask on one layer, built by the rectangle, circle,
  magic wand, same-tile and select-all tools
- Stamp: block of GIDs cut from a selection and placed elsewhere
- rectangle_outline, circle_outline, line_cells: cells covered by the shape
  tools, clipped to the map

Shapes use integer map cells; the circle and line follow Bresenham's
midpoint algorithms so no floating point drift reaches the grid.
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import numpy as np

from .errors import InvalidInputError
from .layers import LayerType, TileLayer

Cell = Tuple[int, int]


@dataclass
class Selection:
    """
    Selected cells of one layer.

    Attributes:
        layer_type: Layer the selection was made on
        mask: bool array of shape (height, width)
    """
    layer_type: LayerType
    mask: np.ndarray = field(repr=False)

    def __len__(self) -> int:
        return int(np.count_nonzero(self.mask))

    @property
    def cells(self) -> List[Cell]:
        """Selected (x, y) cells in row-major order."""
        ys, xs = np.nonzero(self.mask)
        return [(int(x), int(y)) for x, y in zip(xs, ys)]

    @property
    def bounds(self) -> Optional[Tuple[int, int, int, int]]:
        """(x, y, width, height) around the selected cells, None if empty."""
        ys, xs = np.nonzero(self.mask)
        if len(xs) == 0:
            return None
        x, y = int(xs.min()), int(ys.min())
        return x, y, int(xs.max()) - x + 1, int(ys.max()) - y + 1

    @classmethod
    def rectangle(cls, layer: TileLayer, x0: int, y0: int, x1: int, y1: int) -> "Selection":
        """Cells between two corners (inclusive), clipped to the layer."""
        left, right = sorted((x0, x1))
        top, bottom = sorted((y0, y1))
        left, top = max(left, 0), max(top, 0)
        right, bottom = min(right, layer.width - 1), min(bottom, layer.height - 1)

        mask = np.zeros(layer.data.shape, dtype=bool)
        if left <= right and top <= bottom:
            mask[top:bottom + 1, left:right + 1] = True
        return cls(layer.layer_type, mask)

    @classmethod
    def circle(cls, layer: TileLayer, cx: int, cy: int, ex: int, ey: int) -> "Selection":
        """Cells within the distance from the centre to the drag end."""
        radius = math.hypot(ex - cx, ey - cy)
        ys, xs = np.mgrid[0:layer.height, 0:layer.width]
        return cls(layer.layer_type, np.hypot(xs - cx, ys - cy) <= radius)

    @classmethod
    def magic_wand(cls, layer: TileLayer, x: int, y: int) -> "Selection":
        """The 4-connected area of cells equal to (x, y)."""
        return cls(layer.layer_type, layer.region_mask(x, y))

    @classmethod
    def same_tile(cls, layer: TileLayer, x: int, y: int) -> "Selection":
        """Every cell holding the same GID as (x, y), connected or not."""
        return cls(layer.layer_type, layer.data == layer.get(x, y))

    @classmethod
    def everything(cls, layer: TileLayer) -> "Selection":
        return cls(layer.layer_type, np.ones(layer.data.shape, dtype=bool))


@dataclass
class Stamp:
    """
    Reusable block of GIDs.

    Attributes:
        stamp_id: Key in the editor's stamp list
        name: Display name
        layer_type: Layer the stamp was cut from (default placement target)
        data: int32 array of shape (height, width); 0 leaves a cell untouched
    """
    stamp_id: int
    name: str
    layer_type: LayerType
    data: np.ndarray = field(repr=False)

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def tile_count(self) -> int:
        return int(np.count_nonzero(self.data))

    @classmethod
    def from_selection(
        cls,
        stamp_id: int,
        name: str,
        selection: Selection,
        layer: TileLayer
    ) -> "Stamp":
        """Cut the selected cells of a layer, relative to their bounding box."""
        bounds = selection.bounds
        if bounds is None:
            raise InvalidInputError("Cannot create a stamp from an empty selection")
        x, y, w, h = bounds
        window = selection.mask[y:y + h, x:x + w]
        data = np.where(window, layer.data[y:y + h, x:x + w], 0).astype(np.int32)
        return cls(stamp_id, name, selection.layer_type, data)

    def fits(self, layer: TileLayer, x: int, y: int) -> bool:
        return x >= 0 and y >= 0 and x + self.width <= layer.width and y + self.height <= layer.height

    def place(self, layer: TileLayer, x: int, y: int) -> int:
        """
        Write the stamp's tiles with its top-left corner at (x, y).

        Returns:
            Number of cells written
        """
        if not self.fits(layer, x, y):
            raise InvalidInputError(
                f"Stamp {self.name!r} ({self.width}x{self.height}) does not fit at ({x}, {y})"
            )
        target = layer.data[y:y + self.height, x:x + self.width]
        tiles = self.data > 0
        target[tiles] = self.data[tiles]
        return int(np.count_nonzero(tiles))


def _clip(cells: List[Cell], width: int, height: int) -> List[Cell]:
    return [(x, y) for x, y in cells if 0 <= x < width and 0 <= y < height]


def rectangle_outline(x0: int, y0: int, x1: int, y1: int, width: int, height: int) -> List[Cell]:
    """Border cells of the rectangle between two corners, row-major."""
    left, right = sorted((x0, x1))
    top, bottom = sorted((y0, y1))
    cells = []
    for y in range(top, bottom + 1):
        if y in (top, bottom):
            cells.extend((x, y) for x in range(left, right + 1))
        else:
            cells.append((left, y))
            if right != left:
                cells.append((right, y))
    return _clip(cells, width, height)


def circle_outline(cx: int, cy: int, ex: int, ey: int, width: int, height: int) -> List[Cell]:
    """
    Midpoint circle through the drag end, row-major.

    The radius is the distance from the centre to (ex, ey), rounded half up.
    """
    radius = int(math.floor(math.hypot(ex - cx, ey - cy) + 0.5))
    x, y = radius, 0
    err = 1 - radius
    cells = set()
    while x >= y:
        for dx, dy in ((x, y), (y, x), (-y, x), (-x, y), (-x, -y), (-y, -x), (y, -x), (x, -y)):
            cells.add((cx + dx, cy + dy))
        y += 1
        if err < 0:
            err += 2 * y + 1
        else:
            x -= 1
            err += 2 * (y - x) + 1
    return _clip(sorted(cells, key=lambda c: (c[1], c[0])), width, height)


def line_cells(x0: int, y0: int, x1: int, y1: int, width: int, height: int) -> List[Cell]:
    """Bresenham line from (x0, y0) to (x1, y1), both ends included."""
    dx = abs(x1 - x0)
    dy = abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx - dy

    cells = []
    x, y = x0, y0
    while True:
        cells.append((x, y))
        if x == x1 and y == y1:
            break
        e2 = 2 * err
        if e2 > -dy:
            err -= dy
            x += sx
        if e2 < dx:
            err += dx
            y += sy
    return _clip(cells, width, height)
