"""
Connected Component Detection with Numba JIT Compilation

This module finds the individual sprites of a tileset by flood filling the
opaque pixels of its bitmap.

Algorithm Overview:
1. Opacity: classify every pixel against the alpha threshold
2. Labelling: row-major scan; each unvisited opaque pixel seeds an
   8-connected flood fill driven by an explicit stack (no recursion, so large
   bitmaps cannot exhaust the call stack)
3. Bounds: tight bounding box plus 1px padding, clamped to the bitmap
4. Noise filter: components with a side below min_size or an area below
   min_size**2 are dropped
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import numpy as np
from numba import njit

from .errors import InvalidInputError
from .ingestion import Bitmap, DEFAULT_THRESHOLD, validate_threshold

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIZE = 8
DEFAULT_PADDING = 1


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in bitmap pixel space."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        """Exclusive right edge."""
        return self.x + self.width

    @property
    def bottom(self) -> int:
        """Exclusive bottom edge."""
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    def union(self, other: "Rect") -> "Rect":
        """Smallest rectangle covering both."""
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        return Rect(x, y, max(self.right, other.right) - x, max(self.bottom, other.bottom) - y)

    def contains_rect(self, other: "Rect") -> bool:
        return (other.x >= self.x and other.y >= self.y and
                other.right <= self.right and other.bottom <= self.bottom)


def validate_min_size(min_size: int) -> int:
    """Check a minimum region size."""
    if isinstance(min_size, bool) or not isinstance(min_size, (int, np.integer)):
        raise InvalidInputError(f"Minimum size must be an integer, got {min_size!r}")
    if min_size < 1:
        raise InvalidInputError(f"Minimum size must be positive, got {min_size}")
    return int(min_size)


def padded_rect(
    min_x: int, min_y: int,
    max_x: int, max_y: int,
    bitmap_size: Tuple[int, int],
    padding: int = DEFAULT_PADDING
) -> Rect:
    """
    Build a padded rectangle from inclusive pixel extents.

    Args:
        min_x, min_y, max_x, max_y: Inclusive extents of the content
        bitmap_size: (width, height) to clamp against
        padding: Pixels added on every side

    Returns:
        Rect clamped to the bitmap
    """
    width, height = bitmap_size
    x0 = max(0, int(min_x) - padding)
    y0 = max(0, int(min_y) - padding)
    x1 = min(width - 1, int(max_x) + padding)
    y1 = min(height - 1, int(max_y) + padding)
    return Rect(x0, y0, x1 - x0 + 1, y1 - y0 + 1)


def content_rect(
    xs: np.ndarray,
    ys: np.ndarray,
    bitmap_size: Tuple[int, int],
    padding: int = DEFAULT_PADDING
) -> Optional[Rect]:
    """
    Padded tight bounding box of a pixel set, or None when it is empty.
    """
    if len(xs) == 0:
        return None
    return padded_rect(xs.min(), ys.min(), xs.max(), ys.max(), bitmap_size, padding)


@dataclass
class Component:
    """
    One connected group of opaque pixels.

    Attributes:
        bounds: Padded bounding box in bitmap space
        xs, ys: Pixel coordinates (bitmap space) in row-major order
    """
    bounds: Rect
    xs: np.ndarray = field(repr=False)
    ys: np.ndarray = field(repr=False)

    @property
    def pixel_count(self) -> int:
        return len(self.xs)

    @property
    def density(self) -> float:
        """Opaque pixels per pixel of the padded bounds."""
        if self.bounds.area == 0:
            return 0.0
        return self.pixel_count / self.bounds.area

    @classmethod
    def from_pixels(
        cls,
        xs: np.ndarray,
        ys: np.ndarray,
        bitmap_size: Tuple[int, int],
        padding: int = DEFAULT_PADDING
    ) -> "Component":
        """Build a component from raw coordinate arrays."""
        xs = np.asarray(xs, dtype=np.int64)
        ys = np.asarray(ys, dtype=np.int64)
        if len(xs) == 0:
            raise InvalidInputError("A component needs at least one pixel")
        return cls(content_rect(xs, ys, bitmap_size, padding), xs, ys)


@njit(cache=True)
def _label_components(opaque: np.ndarray) -> Tuple[np.ndarray, int]:
    """
    Label 8-connected opaque regions.

    Labels are assigned in row-major order of each region's first pixel.
    Pixels are marked when pushed, so the stack never holds more than
    height*width entries.

    Returns:
        (labels, count) where labels is int32 (H, W), 0 = background
    """
    height, width = opaque.shape
    labels = np.zeros((height, width), dtype=np.int32)
    stack_y = np.empty(height * width, dtype=np.int32)
    stack_x = np.empty(height * width, dtype=np.int32)
    count = 0

    for y in range(height):
        for x in range(width):
            if not opaque[y, x] or labels[y, x] != 0:
                continue

            count += 1
            labels[y, x] = count
            stack_y[0] = y
            stack_x[0] = x
            top = 1

            while top > 0:
                top -= 1
                cy = stack_y[top]
                cx = stack_x[top]

                for dy in range(-1, 2):
                    ny = cy + dy
                    if ny < 0 or ny >= height:
                        continue
                    for dx in range(-1, 2):
                        nx = cx + dx
                        if nx < 0 or nx >= width:
                            continue
                        if opaque[ny, nx] and labels[ny, nx] == 0:
                            labels[ny, nx] = count
                            stack_y[top] = ny
                            stack_x[top] = nx
                            top += 1

    return labels, count


def label_components(opaque: np.ndarray) -> Tuple[np.ndarray, int]:
    """
    Label connected opaque regions of a boolean mask.

    Args:
        opaque: Bool array (H, W), True = opaque

    Returns:
        (labels, count)
    """
    return _label_components(np.ascontiguousarray(opaque, dtype=np.bool_))


def _components_from_labels(
    labels: np.ndarray,
    count: int,
    bitmap_size: Tuple[int, int],
    padding: int = DEFAULT_PADDING
) -> List[Component]:
    """Group labelled pixels into Components, ordered by label."""
    if count == 0:
        return []

    ys, xs = np.nonzero(labels)
    pixel_labels = labels[ys, xs]
    order = np.argsort(pixel_labels, kind="stable")
    ys = ys[order]
    xs = xs[order]
    splits = np.cumsum(np.bincount(pixel_labels, minlength=count + 1)[1:])[:-1]

    return [
        Component.from_pixels(cx, cy, bitmap_size, padding)
        for cx, cy in zip(np.split(xs, splits), np.split(ys, splits))
    ]


def is_valid_component_size(bounds: Rect, min_size: int, bitmap_size: Tuple[int, int]) -> bool:
    """Filter out noise: sides at least min_size and area at least min_size**2."""
    max_side = max(bitmap_size)
    return (bounds.width >= min_size and
            bounds.height >= min_size and
            bounds.width <= max_side and
            bounds.height <= max_side and
            bounds.area >= min_size * min_size)


class ComponentDetector:
    """
    Finds sprite candidates in a bitmap.

    Results are cached for the last bitmap seen; changing the threshold or
    the minimum size drops the cache.
    """

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        min_size: int = DEFAULT_MIN_SIZE,
        padding: int = DEFAULT_PADDING
    ):
        """
        Initialize the detector.

        Args:
            threshold: Pixels with alpha <= threshold are transparent (0-255)
            min_size: Smallest accepted side length in pixels
            padding: Pixels of padding around each detected bounding box
        """
        if padding < 0:
            raise InvalidInputError(f"Padding must not be negative, got {padding}")
        self._threshold = validate_threshold(threshold)
        self._min_size = validate_min_size(min_size)
        self.padding = padding
        self._cache: Dict[int, Tuple[Bitmap, List[Component]]] = {}

    @property
    def threshold(self) -> int:
        return self._threshold

    @threshold.setter
    def threshold(self, value: int):
        value = validate_threshold(value)
        if value != self._threshold:
            self._threshold = value
            self.invalidate()

    @property
    def min_size(self) -> int:
        return self._min_size

    @min_size.setter
    def min_size(self, value: int):
        value = validate_min_size(value)
        if value != self._min_size:
            self._min_size = value
            self.invalidate()

    def invalidate(self, bitmap: Optional[Bitmap] = None):
        """Drop cached detections (for one bitmap, or all)."""
        if bitmap is None:
            self._cache.clear()
        else:
            self._cache.pop(id(bitmap), None)

    def detect(self, bitmap: Bitmap) -> List[Component]:
        """
        Detect all sprite components in a bitmap.

        Args:
            bitmap: Source bitmap

        Returns:
            Components in row-major scan order of their first pixel
        """
        cached = self._cache.get(id(bitmap))
        if cached is not None and cached[0] is bitmap:
            return list(cached[1])

        mask = bitmap.opaque_mask(self._threshold)
        labels, count = label_components(mask)
        found = _components_from_labels(labels, count, bitmap.size, padding=self.padding)
        components = [
            c for c in found
            if is_valid_component_size(c.bounds, self._min_size, bitmap.size)
        ]

        logger.debug(
            "Detected %d components in %r (%d dropped as noise, threshold=%d)",
            len(components), bitmap, len(found) - len(components), self._threshold
        )

        # Keep only the latest bitmap
        self._cache = {id(bitmap): (bitmap, components)}
        return list(components)

    def detect_in_region(self, bitmap: Bitmap, region: Rect) -> List[Component]:
        """
        Run detection on a sub-rectangle of a bitmap.

        Connectivity is limited to the rectangle and padding is clamped to
        it. Coordinates are reported in bitmap space.

        Args:
            bitmap: Source bitmap
            region: Rectangle to analyse

        Returns:
            Components found inside the rectangle
        """
        full = Rect(0, 0, bitmap.width, bitmap.height)
        if region.width <= 0 or region.height <= 0 or not full.contains_rect(region):
            raise InvalidInputError(f"Region {region} lies outside {bitmap!r}")

        mask = bitmap.opaque_mask(self._threshold)[region.y:region.bottom, region.x:region.right]
        labels, count = label_components(mask)

        # Clamp padding to the sub-rectangle, then shift back into bitmap space
        local = _components_from_labels(labels, count, (region.width, region.height), padding=self.padding)
        components = []
        for c in local:
            if not is_valid_component_size(c.bounds, self._min_size, bitmap.size):
                continue
            bounds = Rect(c.bounds.x + region.x, c.bounds.y + region.y, c.bounds.width, c.bounds.height)
            components.append(Component(bounds, c.xs + region.x, c.ys + region.y))

        return components


def detect_components(
    bitmap: Bitmap,
    threshold: int = DEFAULT_THRESHOLD,
    min_size: int = DEFAULT_MIN_SIZE
) -> List[Component]:
    """Convenience wrapper around ComponentDetector.detect()."""
    return ComponentDetector(threshold, min_size).detect(bitmap)
