"""
Brush Palette

The palette is the ordered list of sprite regions detected in one tileset
bitmap. A region's GID is its 1-based position, so the GID space is always
exactly 1..N; every edit renumbers by rebuilding the list.

Pipeline for detection:
    ComponentDetector -> ShapeClassifier -> RegionSplitter

Edits (merge, separate, remove, reorder) build a new list and swap it in
only when the whole edit succeeded, and report an EditResult carrying the
old -> new GID map so callers can retarget painted cells.
"""

import logging
import numbers
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .classifier import ShapeClassifier
from .components import (
    ComponentDetector, Rect,
    DEFAULT_MIN_SIZE, DEFAULT_PADDING, validate_min_size,
)
from .errors import InvalidInputError, NotFoundError, IndexOutOfRangeError
from .ingestion import Bitmap, DEFAULT_THRESHOLD, validate_threshold
from .splitter import RegionSplitter

logger = logging.getLogger(__name__)

DEFAULT_TILE_WIDTH = 64
DEFAULT_TILE_HEIGHT = 32


@dataclass(frozen=True)
class Region:
    """
    A sprite rectangle in bitmap space plus its ground anchor.

    The origin is relative to the region's top-left corner and marks the
    point that sits on the centre of the tile's base.
    """
    source_x: int
    source_y: int
    width: int
    height: int
    origin_x: int
    origin_y: int

    @classmethod
    def from_rect(cls, rect: Rect, tile_height: int = DEFAULT_TILE_HEIGHT) -> "Region":
        """Create a region anchored at bottom-centre, half a tile above the base."""
        return cls(
            rect.x, rect.y, rect.width, rect.height,
            rect.width // 2,
            max(0, rect.height - tile_height // 2)
        )

    @property
    def rect(self) -> Rect:
        return Rect(self.source_x, self.source_y, self.width, self.height)

    def to_tuple(self) -> Tuple[int, int, int, int, int, int]:
        """(source_x, source_y, width, height, origin_x, origin_y)"""
        return (self.source_x, self.source_y, self.width, self.height, self.origin_x, self.origin_y)


@dataclass(frozen=True)
class DetectionSettings:
    """
    Knobs shared by detection and splitting.

    Attributes:
        tile_width, tile_height: Base isometric tile size in pixels
        threshold: Alpha at or below which a pixel is transparent (0-255)
        min_size: Smallest accepted sprite side in pixels
        padding: Padding around each detected bounding box
    """
    tile_width: int = DEFAULT_TILE_WIDTH
    tile_height: int = DEFAULT_TILE_HEIGHT
    threshold: int = DEFAULT_THRESHOLD
    min_size: int = DEFAULT_MIN_SIZE
    padding: int = DEFAULT_PADDING

    def __post_init__(self):
        validate_threshold(self.threshold)
        validate_min_size(self.min_size)
        if self.tile_width <= 0 or self.tile_height <= 0:
            raise InvalidInputError(
                f"Tile size must be positive, got {self.tile_width}x{self.tile_height}"
            )
        if self.padding < 0:
            raise InvalidInputError(f"Padding must not be negative, got {self.padding}")


@dataclass
class EditResult:
    """
    Outcome of a palette edit.

    Attributes:
        applied: False when the edit was a no-op
        message: Human readable summary
        gid_map: Old GID -> new GID (0 when the entry disappeared)
    """
    applied: bool
    message: str
    gid_map: Dict[int, int] = field(default_factory=dict)


class BrushPalette:
    """
    Ordered GID -> Region map for one tileset bitmap.

    Example:
        palette = BrushPalette(bitmap, DetectionSettings(tile_width=64, tile_height=32))
        palette.merge([2, 3])
        for gid, region in palette:
            ...
    """

    def __init__(
        self,
        bitmap: Bitmap,
        settings: Optional[DetectionSettings] = None,
        detect: bool = True
    ):
        """
        Initialize the palette.

        Args:
            bitmap: Source bitmap (read only)
            settings: Detection settings (defaults if None)
            detect: Run detection immediately
        """
        self.bitmap = bitmap
        self._settings = settings or DetectionSettings()
        self._build_pipeline()
        self._entries: List[Region] = []

        if detect:
            self.detect()

    def _build_pipeline(self):
        s = self._settings
        self.detector = ComponentDetector(s.threshold, s.min_size, s.padding)
        self.classifier = ShapeClassifier(s.tile_width, s.tile_height)
        self.splitter = RegionSplitter(s.tile_width, s.tile_height, s.min_size, s.padding)

    @property
    def settings(self) -> DetectionSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self) -> int:
        """
        Replace all entries with a fresh detection over the whole bitmap.

        Returns:
            Number of regions
        """
        entries = []
        for component in self.detector.detect(self.bitmap):
            decision = self.classifier.classify(component)
            for rect in self.splitter.split(component, decision, self.bitmap.size):
                entries.append(Region.from_rect(rect, self._settings.tile_height))

        self._entries = entries
        logger.info("Detected %d regions in %r", len(entries), self.bitmap)
        return len(entries)

    def configure(self, **changes) -> int:
        """
        Change detection settings and re-detect.

        Args:
            **changes: DetectionSettings fields to replace

        Returns:
            Number of regions after re-detection
        """
        fields = {
            "tile_width": self._settings.tile_width,
            "tile_height": self._settings.tile_height,
            "threshold": self._settings.threshold,
            "min_size": self._settings.min_size,
            "padding": self._settings.padding,
        }
        unknown = set(changes) - set(fields)
        if unknown:
            raise InvalidInputError(f"Unknown detection settings: {sorted(unknown)}")
        fields.update(changes)

        # Validates before anything is touched
        self._settings = DetectionSettings(**fields)
        self.detector.invalidate(self.bitmap)
        self._build_pipeline()
        return self.detect()

    def set_threshold(self, threshold: int) -> int:
        """Change the alpha threshold; invalidates cached detection."""
        return self.configure(threshold=threshold)

    def set_min_size(self, min_size: int) -> int:
        return self.configure(min_size=min_size)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Tuple[int, Region]]:
        """Iterate (gid, region) in GID order."""
        return iter(list(enumerate(self._entries, start=1)))

    def __contains__(self, gid: int) -> bool:
        return isinstance(gid, numbers.Integral) and 1 <= gid <= len(self._entries)

    @property
    def gids(self) -> List[int]:
        return list(range(1, len(self._entries) + 1))

    @property
    def regions(self) -> Dict[int, Region]:
        """Copy of the GID -> Region map."""
        return dict(enumerate(self._entries, start=1))

    def region(self, gid: int) -> Region:
        """Get the region for a GID."""
        self._check_gid(gid)
        return self._entries[gid - 1]

    def info(self) -> List[dict]:
        """Rows for a swatch list / debugging."""
        return [
            {
                "gid": gid,
                "source_x": r.source_x,
                "source_y": r.source_y,
                "width": r.width,
                "height": r.height,
                "origin_x": r.origin_x,
                "origin_y": r.origin_y,
            }
            for gid, r in self
        ]

    def _check_gid(self, gid: int):
        if gid not in self:
            raise NotFoundError(f"GID {gid} not in palette (1..{len(self._entries)})")

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def _commit(self, entries: List[Region], gid_map: Dict[int, int], message: str) -> EditResult:
        self._entries = entries
        logger.debug("Palette edit: %s (%d regions)", message, len(entries))
        return EditResult(True, message, gid_map)

    def merge(self, gids: Sequence[int]) -> EditResult:
        """
        Merge several regions into their union bounding box.

        The merged region takes the place of the first selected entry (by
        current order); the others are removed.

        Args:
            gids: GIDs to merge (at least two)

        Returns:
            EditResult; applied=False when fewer than two distinct GIDs given
        """
        gids = list(gids)
        for gid in gids:
            if not isinstance(gid, numbers.Integral):
                raise InvalidInputError(f"GIDs must be integers, got {gid!r}")
        selected = sorted(set(int(gid) for gid in gids))
        if len(selected) < 2:
            return EditResult(False, "Select at least two regions to merge")
        for gid in selected:
            self._check_gid(gid)

        union = self._entries[selected[0] - 1].rect
        for gid in selected[1:]:
            union = union.union(self._entries[gid - 1].rect)
        merged = Region.from_rect(union, self._settings.tile_height)

        absorbed = set(selected[1:])
        entries: List[Region] = []
        gid_map: Dict[int, int] = {}
        for gid, region in enumerate(self._entries, start=1):
            if gid in absorbed:
                continue
            entries.append(merged if gid == selected[0] else region)
            gid_map[gid] = len(entries)
        for gid in absorbed:
            gid_map[gid] = gid_map[selected[0]]

        return self._commit(entries, gid_map, f"Merged {len(selected)} regions into GID {gid_map[selected[0]]}")

    def separate(self, gid: int) -> EditResult:
        """
        Split a region back into the connected components inside it.

        Args:
            gid: Region to separate

        Returns:
            EditResult; applied=False when there is nothing to separate
        """
        self._check_gid(gid)
        region = self._entries[gid - 1]
        components = self.detector.detect_in_region(self.bitmap, region.rect)
        if len(components) <= 1:
            return EditResult(False, "Nothing to separate")

        pieces = [Region.from_rect(c.bounds, self._settings.tile_height) for c in components]
        entries = self._entries[:gid - 1] + pieces + self._entries[gid:]

        extra = len(pieces) - 1
        gid_map = {}
        for old in range(1, len(self._entries) + 1):
            gid_map[old] = old if old <= gid else old + extra

        return self._commit(entries, gid_map, f"Separated GID {gid} into {len(pieces)} regions")

    def remove(self, gid: int) -> EditResult:
        """
        Delete a region and renumber the rest.

        Args:
            gid: Region to delete
        """
        self._check_gid(gid)
        entries = self._entries[:gid - 1] + self._entries[gid:]

        gid_map = {}
        for old in range(1, len(self._entries) + 1):
            if old < gid:
                gid_map[old] = old
            elif old == gid:
                gid_map[old] = 0
            else:
                gid_map[old] = old - 1

        return self._commit(entries, gid_map, f"Removed GID {gid}")

    def reorder(self, from_index: int, to_index: int) -> EditResult:
        """
        Move one entry to a new position.

        Args:
            from_index: Current 0-based position
            to_index: Target 0-based position

        Returns:
            EditResult
        """
        n = len(self._entries)
        for name, index in (("from_index", from_index), ("to_index", to_index)):
            if isinstance(index, bool) or not isinstance(index, numbers.Integral) or not 0 <= index < n:
                raise IndexOutOfRangeError(f"{name} {index!r} out of range [0, {n})")

        if from_index == to_index:
            return EditResult(False, "Region already at that position",
                              {gid: gid for gid in range(1, n + 1)})

        order = list(range(n))
        order.insert(to_index, order.pop(from_index))
        entries = [self._entries[i] for i in order]
        gid_map = {old + 1: new + 1 for new, old in enumerate(order)}

        return self._commit(entries, gid_map, f"Moved GID {from_index + 1} to {to_index + 1}")

    def set_origin(self, gid: int, origin_x: int, origin_y: int) -> EditResult:
        """
        Move a region's ground anchor.

        Args:
            gid: Region to edit
            origin_x, origin_y: Anchor relative to the region's top-left
        """
        self._check_gid(gid)
        region = self._entries[gid - 1]
        if not (0 <= origin_x <= region.width and 0 <= origin_y <= region.height):
            raise InvalidInputError(
                f"Origin ({origin_x}, {origin_y}) outside {region.width}x{region.height} region"
            )

        entries = list(self._entries)
        entries[gid - 1] = Region(region.source_x, region.source_y, region.width, region.height,
                                  origin_x, origin_y)
        gid_map = {g: g for g in range(1, len(entries) + 1)}
        return self._commit(entries, gid_map, f"Moved origin of GID {gid}")

    def replace_regions(self, regions: Iterable[Region]):
        """
        Load regions from a saved project instead of detecting.

        Args:
            regions: Regions in GID order; each must lie inside the bitmap
        """
        bounds = Rect(0, 0, self.bitmap.width, self.bitmap.height)
        entries = list(regions)
        for region in entries:
            if region.width <= 0 or region.height <= 0 or not bounds.contains_rect(region.rect):
                raise InvalidInputError(f"{region} lies outside {self.bitmap!r}")
        self._entries = entries
