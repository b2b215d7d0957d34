"""
Tileset Ingestion and Pixel Classification

This module handles:
- Loading tileset images into immutable RGBA bitmaps
- Per-pixel transparency classification against an alpha threshold
- Vectorised opacity masks used by component detection
"""

from pathlib import Path
from typing import Optional, Tuple, Union
import numpy as np
from PIL import Image

from .errors import InvalidInputError

DEFAULT_THRESHOLD = 10


def validate_threshold(threshold: int) -> int:
    """
    Check an alpha threshold.

    Args:
        threshold: Alpha value (0-255); pixels at or below it are transparent

    Returns:
        The threshold as int
    """
    if isinstance(threshold, bool) or not isinstance(threshold, (int, np.integer)):
        raise InvalidInputError(f"Threshold must be an integer, got {threshold!r}")
    if threshold < 0 or threshold > 255:
        raise InvalidInputError(f"Threshold must be in [0, 255], got {threshold}")
    return int(threshold)


class Bitmap:
    """
    Immutable RGBA pixel buffer.

    The underlying array has shape (H, W, 4) and is flagged read-only, so one
    bitmap can back several layer bindings without copying.
    """

    def __init__(self, rgba: np.ndarray, source_path: Optional[Union[str, Path]] = None):
        """
        Wrap an RGBA array.

        Args:
            rgba: uint8 array of shape (H, W, 4)
            source_path: File the pixels were read from, if any
        """
        if rgba.ndim != 3 or rgba.shape[2] != 4:
            raise InvalidInputError("Bitmap array must have shape (H, W, 4)")

        self._rgba = np.array(rgba, dtype=np.uint8, copy=True)
        self._rgba.flags.writeable = False
        self.source_path = Path(source_path) if source_path is not None else None

        # Last mask computed, keyed by threshold
        self._mask_threshold: Optional[int] = None
        self._mask: Optional[np.ndarray] = None

    @property
    def rgba(self) -> np.ndarray:
        """Get the read-only RGBA array."""
        return self._rgba

    @property
    def alpha(self) -> np.ndarray:
        """Get the alpha channel."""
        return self._rgba[:, :, 3]

    @property
    def width(self) -> int:
        return self._rgba.shape[1]

    @property
    def height(self) -> int:
        return self._rgba.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        """Get bitmap size as (width, height)."""
        return (self.width, self.height)

    @property
    def name(self) -> str:
        """File name used in exports and as allocation tiebreak."""
        if self.source_path is None:
            return ""
        return self.source_path.name

    def is_transparent(self, x: int, y: int, threshold: int = DEFAULT_THRESHOLD) -> bool:
        """
        Classify a single pixel.

        Args:
            x, y: Pixel coordinates
            threshold: Alpha threshold (0-255)

        Returns:
            True if alpha(x, y) <= threshold
        """
        threshold = validate_threshold(threshold)
        if x < 0 or x >= self.width or y < 0 or y >= self.height:
            raise InvalidInputError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} bitmap")
        return bool(self._rgba[y, x, 3] <= threshold)

    def opaque_mask(self, threshold: int = DEFAULT_THRESHOLD) -> np.ndarray:
        """
        Get the boolean opacity mask (True = opaque).

        The mask for the most recent threshold is cached; asking for another
        threshold replaces it.

        Args:
            threshold: Alpha threshold (0-255)

        Returns:
            Read-only bool array of shape (H, W)
        """
        threshold = validate_threshold(threshold)
        if self._mask is None or self._mask_threshold != threshold:
            mask = self._rgba[:, :, 3] > threshold
            mask.flags.writeable = False
            self._mask = mask
            self._mask_threshold = threshold
        return self._mask

    def count_opaque(self, threshold: int = DEFAULT_THRESHOLD) -> int:
        """Get the number of opaque pixels."""
        return int(np.count_nonzero(self.opaque_mask(threshold)))

    def __repr__(self):
        return f"Bitmap({self.width}x{self.height}, source={self.name or None!r})"


def is_transparent(bitmap: Bitmap, x: int, y: int, threshold: int = DEFAULT_THRESHOLD) -> bool:
    """True iff the alpha of pixel (x, y) is at or below threshold."""
    return bitmap.is_transparent(x, y, threshold)


class TilesetLoader:
    """
    Tileset image loader.

    Key features:
    - Any Pillow-readable image is converted to RGBA
    - RGB arrays get a fully opaque alpha channel
    - Produces read-only Bitmap instances
    """

    def load(self, image_path: Union[str, Path]) -> Bitmap:
        """
        Load a tileset image.

        Args:
            image_path: Path to the tileset (PNG recommended)

        Returns:
            Bitmap with source_path set
        """
        image_path = Path(image_path)
        if not image_path.exists():
            raise FileNotFoundError(f"Tileset not found: {image_path}")

        with Image.open(image_path) as img:
            # Ensure RGBA format
            if img.mode != "RGBA":
                img = img.convert("RGBA")
            rgba = np.array(img, dtype=np.uint8)

        return Bitmap(rgba, source_path=image_path)

    def load_from_array(
        self,
        pixels: np.ndarray,
        source_path: Optional[Union[str, Path]] = None
    ) -> Bitmap:
        """
        Load from a numpy array instead of a file.

        Args:
            pixels: RGBA (H, W, 4) or RGB (H, W, 3) array
            source_path: Optional name to associate with the pixels

        Returns:
            Bitmap
        """
        if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
            raise InvalidInputError("Pixel array must have shape (H, W, 3) or (H, W, 4)")

        if pixels.shape[2] == 3:
            # RGB - add alpha
            alpha = np.full((*pixels.shape[:2], 1), 255, dtype=np.uint8)
            pixels = np.concatenate([pixels.astype(np.uint8), alpha], axis=-1)

        return Bitmap(pixels.astype(np.uint8), source_path=source_path)
