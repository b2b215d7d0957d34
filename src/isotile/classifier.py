"""
Shape Classification Heuristics

Decides whether a detected component is one sprite or several sprites that
happen to touch. The decision is made by an ordered list of rules; the first
rule that returns a decision wins:

1. Floor pattern     - thin, uniform or diamond-profiled wide strips -> grid split
2. Vertical wall     - tall, dense, consistent width                 -> keep
3. Horizontal wall   - wide, dense, consistent height                -> keep
4. Periodic gaps     - dense blocks separated by sparse bridges      -> gap split
5. Sparse large      - low density over a large area                 -> density split
6. Oversized         - much larger than a tile, not solid            -> grid split
7. Default                                                           -> keep
"""

import logging
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Callable, List, Optional, Sequence, Tuple
import numpy as np

from .components import Component
from .errors import InvalidInputError

logger = logging.getLogger(__name__)

# Number of bands used by the wall consistency checks
WALL_SEGMENTS = 5
# Relative standard deviation allowed across wall bands
WALL_MAX_REL_STD = 0.3
# Fraction of bands that must contain pixels
WALL_MIN_POPULATED = 0.7
# Relative standard deviation allowed across floor columns
FLOOR_MAX_REL_STD = 0.15
# Columns inside one tile-width chunk must vary at least this much
FLOOR_MIN_CHUNK_REL_STD = 0.1
# Middle-third row density must exceed outer-fifth density by this factor
DIAMOND_PROFILE_RATIO = 1.2
DENSE_FACTOR = 0.7
SPARSE_FACTOR = 0.3


class SplitKind(Enum):
    """What to do with a component."""
    KEEP = "keep"
    SPLIT_GRID = "split_grid"
    SPLIT_AT_GAPS = "split_at_gaps"
    SPLIT_BY_DENSITY = "split_by_density"


class Axis(Enum):
    """Direction along which a split walks."""
    HORIZONTAL = "horizontal"   # Cuts across x, yields side-by-side pieces
    VERTICAL = "vertical"       # Cuts across y, yields stacked pieces


@dataclass(frozen=True)
class SplitDecision:
    """Outcome of classification."""
    kind: SplitKind
    axis: Optional[Axis] = None
    rule: str = "default"

    @property
    def is_split(self) -> bool:
        return self.kind != SplitKind.KEEP


def _rel_std(values: np.ndarray) -> float:
    """Relative standard deviation; infinite when undefined."""
    if len(values) == 0:
        return float("inf")
    mean = float(np.mean(values))
    if mean <= 0:
        return float("inf")
    return float(np.std(values)) / mean


def _chunk_sums(counts: np.ndarray, step: int) -> np.ndarray:
    """Sum consecutive runs of `step` entries (last run may be short)."""
    starts = np.arange(0, len(counts), step)
    return np.add.reduceat(counts, starts) if len(starts) else np.zeros(0)


class ShapeProfile:
    """
    Geometry and density features of one component, computed lazily.

    Density and aspect use the padded bounds; the row/column profiles use the
    tight extent of the pixels.
    """

    def __init__(self, component: Component, tile_width: int, tile_height: int):
        self.component = component
        self.tile_width = tile_width
        self.tile_height = tile_height

        self.width = component.bounds.width
        self.height = component.bounds.height
        self.pixel_count = component.pixel_count
        self.bounding_area = component.bounds.area
        self.density = component.density

        xs, ys = component.xs, component.ys
        self.min_x, self.min_y = int(xs.min()), int(ys.min())
        self.content_width = int(xs.max()) - self.min_x + 1
        self.content_height = int(ys.max()) - self.min_y + 1
        self._local_x = xs - self.min_x
        self._local_y = ys - self.min_y

    @property
    def longer_axis(self) -> Axis:
        return Axis.HORIZONTAL if self.width >= self.height else Axis.VERTICAL

    @cached_property
    def column_counts(self) -> np.ndarray:
        """Opaque pixels per content column."""
        return np.bincount(self._local_x, minlength=self.content_width)

    @cached_property
    def row_counts(self) -> np.ndarray:
        """Opaque pixels per content row."""
        return np.bincount(self._local_y, minlength=self.content_height)

    def _extents(self, along: np.ndarray, across: np.ndarray, length: int) -> Tuple[np.ndarray, np.ndarray]:
        """Min/max of `across` for every index of `along`."""
        lo = np.full(length, np.iinfo(np.int64).max, dtype=np.int64)
        hi = np.full(length, -1, dtype=np.int64)
        np.minimum.at(lo, along, across)
        np.maximum.at(hi, along, across)
        return lo, hi

    def _segment_spans(self, along: np.ndarray, across: np.ndarray, length: int) -> Tuple[np.ndarray, float]:
        """
        Span of `across` within each of WALL_SEGMENTS bands of `along`.

        Returns:
            (spans of populated bands, populated fraction)
        """
        lo, hi = self._extents(along, across, length)
        spans = []
        for band in np.array_split(np.arange(length), WALL_SEGMENTS):
            populated = band[hi[band] >= 0] if len(band) else band
            if len(populated) == 0:
                continue
            spans.append(hi[populated].max() - lo[populated].min() + 1)
        return np.array(spans, dtype=np.float64), len(spans) / WALL_SEGMENTS

    @cached_property
    def width_segments(self) -> Tuple[np.ndarray, float]:
        """Content width in each height band."""
        return self._segment_spans(self._local_y, self._local_x, self.content_height)

    @cached_property
    def height_segments(self) -> Tuple[np.ndarray, float]:
        """Content height in each width band."""
        return self._segment_spans(self._local_x, self._local_y, self.content_width)

    @cached_property
    def has_uniform_columns(self) -> bool:
        """
        Tile-width columns repeat one non-flat pixel pattern.

        A solid block has equal column sums too, so every chunk must also
        vary across its own columns and match the average chunk.
        """
        full_columns = self.content_width // self.tile_width
        if full_columns < 2:
            return False
        chunks = self.column_counts[:full_columns * self.tile_width]
        chunks = chunks.reshape(full_columns, self.tile_width).astype(np.float64)
        if _rel_std(chunks.sum(axis=1)) > FLOOR_MAX_REL_STD:
            return False
        if min(_rel_std(chunk) for chunk in chunks) < FLOOR_MIN_CHUNK_REL_STD:
            return False
        pattern = chunks.mean(axis=0)
        deviation = np.abs(chunks - pattern).sum(axis=1) / pattern.sum()
        return bool(deviation.max() <= FLOOR_MAX_REL_STD)

    @cached_property
    def has_diamond_profile(self) -> bool:
        """Rows in the middle third are denser than the outer fifths."""
        rows = self.row_counts / self.content_width
        h = len(rows)
        if h < 5:
            return False
        fifth = max(1, h // 5)
        middle = rows[h // 3:(2 * h) // 3]
        outer = np.concatenate([rows[:fifth], rows[h - fifth:]])
        if len(middle) == 0:
            return False
        return float(middle.mean()) > DIAMOND_PROFILE_RATIO * float(outer.mean())

    @cached_property
    def is_vertical_wall(self) -> bool:
        if self.height / self.width < 1.5 or self.density < 0.5:
            return False
        spans, populated = self.width_segments
        consistent = _rel_std(spans) <= WALL_MAX_REL_STD and populated >= WALL_MIN_POPULATED
        narrow_column = (self.height > 1.5 * self.tile_height and
                         self.width <= 1.2 * self.tile_width and
                         self.density > 0.6)
        return consistent or narrow_column

    @cached_property
    def is_horizontal_wall(self) -> bool:
        if self.width / self.height < 2 or self.density < 0.6:
            return False
        if self.height < 0.7 * self.tile_height:
            return False
        spans, populated = self.height_segments
        return _rel_std(spans) <= WALL_MAX_REL_STD and populated >= WALL_MIN_POPULATED

    @property
    def is_wall(self) -> bool:
        return self.is_vertical_wall or self.is_horizontal_wall

    def step_counts(self, axis: Axis) -> np.ndarray:
        """Pixel counts in tile-sized steps along an axis."""
        if axis == Axis.HORIZONTAL:
            return _chunk_sums(self.column_counts, self.tile_width)
        return _chunk_sums(self.row_counts, self.tile_height)

    @cached_property
    def has_periodic_gaps(self) -> bool:
        """Two dense steps with a sparse step between them."""
        counts = self.step_counts(self.longer_axis)
        if len(counts) < 3:
            return False
        avg = float(counts.mean())
        dense = np.flatnonzero(counts > DENSE_FACTOR * avg)
        sparse = np.flatnonzero(counts < SPARSE_FACTOR * avg)
        if len(dense) < 2 or len(sparse) < 1:
            return False
        return bool(np.any((sparse > dense.min()) & (sparse < dense.max())))


Rule = Callable[[ShapeProfile], Optional[SplitDecision]]


def floor_pattern_rule(p: ShapeProfile) -> Optional[SplitDecision]:
    """Rows of floor tiles: wide and either thin, uniform or diamond shaped."""
    if p.width <= 1.3 * p.tile_width:
        return None
    thin = p.content_height <= 0.6 * p.tile_height
    if thin or p.has_uniform_columns or p.has_diamond_profile:
        return SplitDecision(SplitKind.SPLIT_GRID, Axis.HORIZONTAL, "floor_pattern")
    return None


def vertical_wall_rule(p: ShapeProfile) -> Optional[SplitDecision]:
    if p.is_vertical_wall:
        return SplitDecision(SplitKind.KEEP, None, "vertical_wall")
    return None


def horizontal_wall_rule(p: ShapeProfile) -> Optional[SplitDecision]:
    if p.is_horizontal_wall:
        return SplitDecision(SplitKind.KEEP, None, "horizontal_wall")
    return None


def periodic_gaps_rule(p: ShapeProfile) -> Optional[SplitDecision]:
    """Dense blocks joined by thin bridges along the longer axis."""
    if p.is_wall:
        return None
    axis = p.longer_axis
    if axis == Axis.HORIZONTAL:
        long_enough = p.width > 1.5 * p.tile_width
    else:
        long_enough = p.height > 1.5 * p.tile_height
    if long_enough and p.has_periodic_gaps:
        return SplitDecision(SplitKind.SPLIT_AT_GAPS, axis, "periodic_gaps")
    return None


def sparse_large_rule(p: ShapeProfile) -> Optional[SplitDecision]:
    if p.density < 0.4 and p.bounding_area > 2 * p.tile_width * p.tile_height:
        return SplitDecision(SplitKind.SPLIT_BY_DENSITY, None, "sparse_large")
    return None


def oversized_rule(p: ShapeProfile) -> Optional[SplitDecision]:
    if p.is_wall or p.density >= 0.8:
        return None
    if p.width > 1.8 * p.tile_width or p.height > 1.8 * p.tile_height:
        return SplitDecision(SplitKind.SPLIT_GRID, p.longer_axis, "oversized")
    return None


DEFAULT_RULES: Tuple[Rule, ...] = (
    floor_pattern_rule,
    vertical_wall_rule,
    horizontal_wall_rule,
    periodic_gaps_rule,
    sparse_large_rule,
    oversized_rule,
)

KEEP = SplitDecision(SplitKind.KEEP)


class ShapeClassifier:
    """
    Applies the rule list to components.

    Attributes:
        tile_width, tile_height: Base tile size the heuristics compare against
        rules: Ordered rules; the first non-None decision wins
    """

    def __init__(
        self,
        tile_width: int = 64,
        tile_height: int = 32,
        rules: Optional[Sequence[Rule]] = None
    ):
        if tile_width <= 0 or tile_height <= 0:
            raise InvalidInputError(f"Tile size must be positive, got {tile_width}x{tile_height}")
        self.tile_width = tile_width
        self.tile_height = tile_height
        self.rules: List[Rule] = list(DEFAULT_RULES if rules is None else rules)

    def profile(self, component: Component) -> ShapeProfile:
        return ShapeProfile(component, self.tile_width, self.tile_height)

    def classify(self, component: Component) -> SplitDecision:
        """
        Classify a component.

        Args:
            component: Detected component

        Returns:
            SplitDecision from the first matching rule, or KEEP
        """
        profile = self.profile(component)
        for rule in self.rules:
            decision = rule(profile)
            if decision is not None:
                break
        else:
            decision = KEEP

        logger.debug(
            "Component %s (density %.2f) -> %s %s [%s]",
            component.bounds, profile.density, decision.kind.value,
            decision.axis.value if decision.axis else "-", decision.rule
        )
        return decision
