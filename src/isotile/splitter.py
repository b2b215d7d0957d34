"""
Region Splitting Strategies

Executes the split chosen by the ShapeClassifier:
- Grid: tile-sized strips along an axis
- Gaps: cuts at sparse columns/rows that bridge two non-empty neighbours
- Density: a min(tile_width, tile_height) cell grid over the bounds

Every piece is the tight bounding box of the component's own pixels inside
that strip/segment/cell, padded by 1px and clamped to the bitmap. If a split
yields nothing usable the original bounds are kept.
"""

import logging
from typing import List, Tuple
import numpy as np

from .classifier import Axis, SplitDecision, SplitKind, SPARSE_FACTOR
from .components import Component, Rect, DEFAULT_MIN_SIZE, DEFAULT_PADDING, content_rect
from .errors import InvalidInputError

logger = logging.getLogger(__name__)


class RegionSplitter:
    """
    Turns one component plus a SplitDecision into sprite rectangles.
    """

    def __init__(
        self,
        tile_width: int = 64,
        tile_height: int = 32,
        min_size: int = DEFAULT_MIN_SIZE,
        padding: int = DEFAULT_PADDING
    ):
        """
        Initialize the splitter.

        Args:
            tile_width, tile_height: Strip and cell sizes
            min_size: Pieces with a side smaller than this are discarded
            padding: Padding around each piece
        """
        if tile_width <= 0 or tile_height <= 0:
            raise InvalidInputError(f"Tile size must be positive, got {tile_width}x{tile_height}")
        self.tile_width = tile_width
        self.tile_height = tile_height
        self.min_size = min_size
        self.padding = padding

    def split(
        self,
        component: Component,
        decision: SplitDecision,
        bitmap_size: Tuple[int, int]
    ) -> List[Rect]:
        """
        Apply a decision.

        Args:
            component: Component to split
            decision: Output of ShapeClassifier.classify()
            bitmap_size: (width, height) of the source bitmap for clamping

        Returns:
            List of rectangles (at least one)
        """
        if decision.kind == SplitKind.KEEP:
            return [component.bounds]

        if decision.kind == SplitKind.SPLIT_GRID:
            pieces = self.split_grid(component, decision.axis or Axis.HORIZONTAL, bitmap_size)
            minimum = 1
        elif decision.kind == SplitKind.SPLIT_AT_GAPS:
            pieces = self.split_at_gaps(component, decision.axis or Axis.HORIZONTAL, bitmap_size)
            # A single segment would only trim the bridge away
            minimum = 2
        elif decision.kind == SplitKind.SPLIT_BY_DENSITY:
            pieces = self.split_by_density(component, bitmap_size)
            minimum = 1
        else:
            raise InvalidInputError(f"Unknown split kind: {decision.kind}")

        usable = [r for r in pieces if r.width >= self.min_size and r.height >= self.min_size]
        if len(usable) < minimum:
            logger.debug(
                "Degenerate %s split of %s (%d usable pieces), keeping original",
                decision.kind.value, component.bounds, len(usable)
            )
            return [component.bounds]
        return usable

    def _piece(self, component: Component, keep: np.ndarray, bitmap_size: Tuple[int, int]):
        return content_rect(component.xs[keep], component.ys[keep], bitmap_size, self.padding)

    def split_grid(
        self,
        component: Component,
        axis: Axis,
        bitmap_size: Tuple[int, int]
    ) -> List[Rect]:
        """
        Partition the bounds into tile-sized strips.

        Horizontal walks x in tile_width steps (side-by-side pieces);
        vertical walks y in tile_height steps (stacked pieces).
        """
        b = component.bounds
        if axis == Axis.HORIZONTAL:
            coords, start, stop, step = component.xs, b.x, b.right, self.tile_width
        else:
            coords, start, stop, step = component.ys, b.y, b.bottom, self.tile_height

        results = []
        for lo in range(start, stop, step):
            keep = (coords >= lo) & (coords < min(lo + step, stop))
            piece = self._piece(component, keep, bitmap_size)
            if piece is not None:
                results.append(piece)
        return results

    def find_gap_cuts(self, component: Component, axis: Axis) -> Tuple[np.ndarray, int]:
        """
        Locate cut indices along an axis.

        A column (row) is a cut when its pixel count is below 30% of the
        average and both neighbours contain pixels.

        Returns:
            (cut indices relative to the content start, content start)
        """
        coords = component.xs if axis == Axis.HORIZONTAL else component.ys
        origin = int(coords.min())
        counts = np.bincount(coords - origin)
        if len(counts) < 3:
            return np.zeros(0, dtype=np.int64), origin

        avg = float(counts.mean())
        inner = np.arange(1, len(counts) - 1)
        is_cut = ((counts[inner] < SPARSE_FACTOR * avg) &
                  (counts[inner - 1] > 0) &
                  (counts[inner + 1] > 0))
        return inner[is_cut], origin

    def split_at_gaps(
        self,
        component: Component,
        axis: Axis,
        bitmap_size: Tuple[int, int]
    ) -> List[Rect]:
        """Cut at sparse bridges; one piece per run between cuts."""
        cuts, origin = self.find_gap_cuts(component, axis)
        coords = (component.xs if axis == Axis.HORIZONTAL else component.ys) - origin
        length = int(coords.max()) + 1

        separators = np.zeros(length, dtype=bool)
        separators[cuts] = True

        results = []
        run_start = None
        for index in range(length + 1):
            if index < length and not separators[index]:
                if run_start is None:
                    run_start = index
                continue
            if run_start is not None:
                keep = (coords >= run_start) & (coords < index)
                piece = self._piece(component, keep, bitmap_size)
                if piece is not None:
                    results.append(piece)
                run_start = None
        return results

    def split_by_density(self, component: Component, bitmap_size: Tuple[int, int]) -> List[Rect]:
        """One piece per non-empty cell of a square grid over the bounds."""
        b = component.bounds
        cell = min(self.tile_width, self.tile_height)
        results = []
        for y in range(b.y, b.bottom, cell):
            in_row = (component.ys >= y) & (component.ys < min(y + cell, b.bottom))
            for x in range(b.x, b.right, cell):
                keep = in_row & (component.xs >= x) & (component.xs < min(x + cell, b.right))
                piece = self._piece(component, keep, bitmap_size)
                if piece is not None:
                    results.append(piece)
        return results
