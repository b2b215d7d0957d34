"""
Map Layers and Tileset Bindings

- LayerType: closed set of layer kinds with one explicit priority order
- TileLayer: grid of local GIDs (0 = empty) for one layer type
- LayerTilesetBinding: one layer type paired with a bitmap and its palette
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union
import numpy as np

from .errors import InvalidInputError
from .ingestion import Bitmap
from .palette import BrushPalette, DetectionSettings


class LayerType(Enum):
    """Kinds of map layers."""
    BACKGROUND = "background"
    OBJECT = "object"
    COLLISION = "collision"
    EVENT = "event"
    ENEMY = "enemy"
    NPC = "npc"

    @property
    def priority(self) -> int:
        """Position in the global ID allocation order (lower first)."""
        return ALLOCATION_ORDER.index(self)

    @property
    def draw_order(self) -> int:
        """Position in the layer list; lower is drawn on top."""
        return DRAW_ORDER.index(self)

    @classmethod
    def parse(cls, value: Union[str, "LayerType"]) -> "LayerType":
        """Accept an enum member or its name/value in any case."""
        if isinstance(value, LayerType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(t.value for t in cls)
            raise InvalidInputError(f"Unknown layer type {value!r} (expected one of: {choices})") from None


# Global ID ranges are handed out in this order
ALLOCATION_ORDER: Tuple[LayerType, ...] = (
    LayerType.COLLISION,
    LayerType.BACKGROUND,
    LayerType.OBJECT,
    LayerType.EVENT,
    LayerType.ENEMY,
    LayerType.NPC,
)

# Layer panel order (top first)
DRAW_ORDER: Tuple[LayerType, ...] = (
    LayerType.NPC,
    LayerType.ENEMY,
    LayerType.EVENT,
    LayerType.COLLISION,
    LayerType.OBJECT,
    LayerType.BACKGROUND,
)


@dataclass
class TileLayer:
    """
    Grid of local GIDs for one layer.

    Attributes:
        layer_type: Kind of layer
        width, height: Map size in tiles
        name: Display name
        visible: Exported and drawn only when True
        transparency: Drawing opacity in [0, 1] (1 = opaque)
        data: int32 array of shape (height, width), 0 = empty
    """
    layer_type: LayerType
    width: int
    height: int
    name: str = ""
    visible: bool = True
    transparency: float = 1.0
    data: np.ndarray = field(default=None, repr=False)

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise InvalidInputError(f"Layer size must be positive, got {self.width}x{self.height}")
        if not self.name:
            self.name = self.layer_type.value.capitalize()
        self.transparency = max(0.0, min(1.0, float(self.transparency)))
        if self.data is None:
            self.data = np.zeros((self.height, self.width), dtype=np.int32)
        else:
            data = np.asarray(self.data)
            if data.size != self.width * self.height:
                raise InvalidInputError(
                    f"Layer data has {data.size} cells, expected {self.width}x{self.height}"
                )
            if data.size and data.min() < 0:
                raise InvalidInputError("Layer data must not contain negative GIDs")
            self.data = data.reshape(self.height, self.width).astype(np.int32)

    @classmethod
    def from_flat(
        cls,
        layer_type: LayerType,
        width: int,
        height: int,
        values: Iterable[int],
        **kwargs
    ) -> "TileLayer":
        """Build from a row-major flat list."""
        return cls(layer_type, width, height, data=np.array(list(values), dtype=np.int64), **kwargs)

    def to_flat(self) -> List[int]:
        """Row-major flat list of GIDs."""
        return [int(v) for v in self.data.ravel()]

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def _check(self, x: int, y: int):
        if not self.in_bounds(x, y):
            raise InvalidInputError(f"Cell ({x}, {y}) outside {self.width}x{self.height} layer")

    def get(self, x: int, y: int) -> int:
        self._check(x, y)
        return int(self.data[y, x])

    def set(self, x: int, y: int, gid: int):
        self._check(x, y)
        if gid < 0:
            raise InvalidInputError(f"GID must not be negative, got {gid}")
        self.data[y, x] = gid

    def clear(self):
        self.data.fill(0)

    def region_mask(self, x: int, y: int) -> np.ndarray:
        """4-connected cells holding the same GID as (x, y)."""
        self._check(x, y)
        target = self.data[y, x]
        mask = np.zeros(self.data.shape, dtype=bool)
        stack = [(x, y)]
        while stack:
            cx, cy = stack.pop()
            if not self.in_bounds(cx, cy) or mask[cy, cx] or self.data[cy, cx] != target:
                continue
            mask[cy, cx] = True
            stack.extend(((cx + 1, cy), (cx - 1, cy), (cx, cy + 1), (cx, cy - 1)))
        return mask

    def fill(self, x: int, y: int, gid: int) -> int:
        """
        Bucket fill the 4-connected area of equal GIDs starting at (x, y).

        Returns:
            Number of cells changed
        """
        self._check(x, y)
        if gid < 0:
            raise InvalidInputError(f"GID must not be negative, got {gid}")
        if int(self.data[y, x]) == gid:
            return 0

        mask = self.region_mask(x, y)
        self.data[mask] = gid
        return int(np.count_nonzero(mask))

    def resize(self, width: int, height: int):
        """Resize, keeping the overlapping top-left area."""
        if width <= 0 or height <= 0:
            raise InvalidInputError(f"Layer size must be positive, got {width}x{height}")
        data = np.zeros((height, width), dtype=np.int32)
        h = min(height, self.height)
        w = min(width, self.width)
        data[:h, :w] = self.data[:h, :w]
        self.data = data
        self.width = width
        self.height = height

    def retarget(self, gid_map: Dict[int, int]) -> int:
        """
        Rewrite painted GIDs after a palette renumbering.

        Args:
            gid_map: Old GID -> new GID (0 clears the cell)

        Returns:
            Number of cells whose value changed
        """
        if not gid_map:
            return 0
        lookup = np.arange(max(int(self.data.max()), max(gid_map)) + 1, dtype=np.int32)
        for old, new in gid_map.items():
            lookup[old] = new
        remapped = lookup[self.data]
        changed = int(np.count_nonzero(remapped != self.data))
        self.data = remapped
        return changed

    @property
    def used_gids(self) -> List[int]:
        """Distinct non-zero GIDs present."""
        values = np.unique(self.data)
        return [int(v) for v in values if v != 0]


@dataclass
class LayerTilesetBinding:
    """
    A layer type paired with a tileset bitmap and its brush palette.

    Attributes:
        layer_type: Layer this tileset paints
        bitmap: Shared read-only pixels
        palette: Regions detected in the bitmap
        tile_width, tile_height: Base tile size
        spacing, margin: Fixed-grid spacing/margin of the tileset image
        source_path: Where the bitmap came from (export reference)
    """
    layer_type: LayerType
    bitmap: Bitmap
    palette: BrushPalette
    tile_width: int
    tile_height: int
    spacing: int = 0
    margin: int = 0
    source_path: Optional[Path] = None

    def __post_init__(self):
        if self.spacing < 0 or self.margin < 0:
            raise InvalidInputError("Spacing and margin must not be negative")
        if self.source_path is None:
            self.source_path = self.bitmap.source_path
        elif not isinstance(self.source_path, Path):
            self.source_path = Path(self.source_path)

    @classmethod
    def create(
        cls,
        layer_type: Union[str, LayerType],
        bitmap: Bitmap,
        settings: Optional[DetectionSettings] = None,
        spacing: int = 0,
        margin: int = 0,
        source_path: Optional[Union[str, Path]] = None
    ) -> "LayerTilesetBinding":
        """Detect a palette for the bitmap and bind it to a layer type."""
        settings = settings or DetectionSettings()
        palette = BrushPalette(bitmap, settings)
        return cls(
            LayerType.parse(layer_type), bitmap, palette,
            settings.tile_width, settings.tile_height,
            spacing, margin,
            Path(source_path) if source_path is not None else None
        )

    @property
    def columns(self) -> int:
        """Fixed-grid columns the image holds."""
        usable = self.bitmap.width - 2 * self.margin + self.spacing
        return max(0, usable // (self.tile_width + self.spacing))

    @property
    def rows(self) -> int:
        usable = self.bitmap.height - 2 * self.margin + self.spacing
        return max(0, usable // (self.tile_height + self.spacing))

    @property
    def file_name(self) -> str:
        """Sort key and export name of the tileset image."""
        if self.source_path is None:
            return ""
        return self.source_path.name

    @property
    def count(self) -> int:
        """Number of regions (local GIDs) in the palette."""
        return len(self.palette)
