"""
Projection Mathematics for Isometric Tile Maps

This module implements the 2:1 diamond projection used by the map view,
along with its exact inverse and pixel-accurate tile picking.

Map coordinates (x, y) project to screen space as:
    iso_x = (x - y) * W/2
    iso_y = (x + y) * H/2
    screen = (iso + anchor + pan) * zoom

Where:
    - W, H = tile width/height in pixels (typically W = 2H)
    - anchor = fixed offset placing map (0, 0) on the canvas
    - pan, zoom = camera state (zoom clamped to [0.1, 5.0])

Screen coordinates are y-down image space.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple
import numpy as np

from .errors import InvalidInputError

MIN_ZOOM = 0.1
MAX_ZOOM = 5.0
ZOOM_STEP = 1.2
# Diamond test threshold; below 1.0 so points on shared edges do not tie
PICK_TOLERANCE = 0.90


class IsometricCamera:
    """
    Zoom and pan of one map view.

    Attributes:
        zoom: Scale factor, clamped to [MIN_ZOOM, MAX_ZOOM] on every assignment
        pan_x, pan_y: Offset in unzoomed screen pixels
    """

    def __init__(self, zoom: float = 1.0, pan_x: float = 0.0, pan_y: float = 0.0):
        self.zoom = zoom
        self.pan_x = pan_x
        self.pan_y = pan_y

    def __repr__(self):
        return f"IsometricCamera(zoom={self.zoom}, pan_x={self.pan_x}, pan_y={self.pan_y})"

    @property
    def zoom(self) -> float:
        return self._zoom

    @zoom.setter
    def zoom(self, value: float):
        self._zoom = self.clamp_zoom(value)

    @staticmethod
    def clamp_zoom(zoom: float) -> float:
        if not zoom > 0:
            raise InvalidInputError(f"Zoom must be positive, got {zoom}")
        return max(MIN_ZOOM, min(MAX_ZOOM, float(zoom)))

    def set_zoom(self, zoom: float) -> float:
        self.zoom = zoom
        return self.zoom

    def zoom_in(self) -> float:
        return self.set_zoom(self.zoom * ZOOM_STEP)

    def zoom_out(self) -> float:
        return self.set_zoom(self.zoom / ZOOM_STEP)

    def pan_by(self, dx: float, dy: float):
        self.pan_x += dx
        self.pan_y += dy

    def reset(self):
        """Back to 1x with no pan (new map loaded)."""
        self.zoom = 1.0
        self.pan_x = 0.0
        self.pan_y = 0.0


@dataclass
class ProjectionMatrix:
    """
    2:1 diamond projection matrix.

    The projection transforms from Map Space (x, y) to unzoomed, unanchored
    Screen Space (u, v):
        | W/2   -W/2 |
        | H/2    H/2 |
    """

    tile_width: float = 64.0
    tile_height: float = 32.0

    def __post_init__(self):
        """Precompute projection constants."""
        if self.tile_width <= 0 or self.tile_height <= 0:
            raise InvalidInputError(
                f"Tile size must be positive, got {self.tile_width}x{self.tile_height}"
            )
        self.w = float(self.tile_width)
        self.h = float(self.tile_height)
        self._build_matrix()

    def _build_matrix(self):
        """Construct the projection matrix and its inverse."""
        self.proj_xy = np.array([
            [self.w / 2, -self.w / 2],
            [self.h / 2, self.h / 2]
        ], dtype=np.float64)

        self.inv_proj_xy = np.linalg.inv(self.proj_xy)

    def map_to_iso(self, x: float, y: float) -> Tuple[float, float]:
        """Project a map coordinate to iso space."""
        return ((x - y) * self.w / 2, (x + y) * self.h / 2)

    def iso_to_map(self, u: float, v: float) -> Tuple[float, float]:
        """Inverse of map_to_iso."""
        x = (u / (self.w / 2) + v / (self.h / 2)) / 2
        y = (v / (self.h / 2) - u / (self.w / 2)) / 2
        return (x, y)

    def map_to_iso_batch(self, xy: np.ndarray) -> np.ndarray:
        """
        Batch projection.

        Args:
            xy: Array of shape (N, 2) with map coordinates

        Returns:
            Array of shape (N, 2) with iso coordinates
        """
        return (self.proj_xy @ xy.T).T

    def iso_to_map_batch(self, uv: np.ndarray) -> np.ndarray:
        """Batch inverse projection for (N, 2) iso coordinates."""
        return (self.inv_proj_xy @ uv.T).T


class IsometricProjector:
    """
    Map <-> screen transforms and tile picking for an isometric map view.
    """

    def __init__(
        self,
        tile_width: float = 64.0,
        tile_height: float = 32.0,
        anchor_x: float = 0.0,
        anchor_y: float = 100.0
    ):
        """
        Initialize the projector.

        Args:
            tile_width: Width of a map tile's diamond in pixels
            tile_height: Height of a map tile's diamond in pixels
            anchor_x: Screen x of map (0, 0) before pan/zoom
            anchor_y: Screen y of map (0, 0) before pan/zoom
        """
        self.proj = ProjectionMatrix(tile_width, tile_height)
        self.tile_width = float(tile_width)
        self.tile_height = float(tile_height)
        self.anchor_x = anchor_x
        self.anchor_y = anchor_y

    def set_viewport(self, width: float, top_margin: float = 100.0):
        """
        Centre map (0, 0) horizontally in a canvas.

        Args:
            width: Canvas width in pixels
            top_margin: Distance of map (0, 0) from the canvas top
        """
        self.anchor_x = width / 2.0
        self.anchor_y = top_margin

    def map_to_screen(self, map_x: float, map_y: float, camera: IsometricCamera) -> Tuple[float, float]:
        """
        Project a map coordinate to the centre of its diamond on screen.

        Args:
            map_x, map_y: Map coordinates (tile units)
            camera: Current zoom/pan

        Returns:
            (screen_x, screen_y)
        """
        u, v = self.proj.map_to_iso(map_x, map_y)
        return (
            (u + self.anchor_x + camera.pan_x) * camera.zoom,
            (v + self.anchor_y + camera.pan_y) * camera.zoom
        )

    def screen_to_world(self, screen_x: float, screen_y: float, camera: IsometricCamera) -> Tuple[float, float]:
        """
        Exact inverse of map_to_screen (fractional map coordinates).
        """
        u = screen_x / camera.zoom - self.anchor_x - camera.pan_x
        v = screen_y / camera.zoom - self.anchor_y - camera.pan_y
        return self.proj.iso_to_map(u, v)

    def screen_to_map(self, screen_x: float, screen_y: float, camera: IsometricCamera) -> Tuple[int, int]:
        """Floor of screen_to_world."""
        x, y = self.screen_to_world(screen_x, screen_y, camera)
        return (int(np.floor(x)), int(np.floor(y)))

    def tile_diamond(self, map_x: int, map_y: int, camera: IsometricCamera) -> List[Tuple[float, float]]:
        """
        Screen corners of a tile's diamond (top, right, bottom, left).
        """
        cx, cy = self.map_to_screen(map_x, map_y, camera)
        hw = self.tile_width / 2 * camera.zoom
        hh = self.tile_height / 2 * camera.zoom
        return [(cx, cy - hh), (cx + hw, cy), (cx, cy + hh), (cx - hw, cy)]

    def cell_centers(self, map_width: int, map_height: int, camera: IsometricCamera) -> np.ndarray:
        """
        Screen centres of every cell.

        Returns:
            Array of shape (map_height * map_width, 2), row-major
        """
        ys, xs = np.mgrid[0:map_height, 0:map_width]
        xy = np.column_stack([xs.ravel(), ys.ravel()]).astype(np.float64)
        iso = self.proj.map_to_iso_batch(xy)
        iso[:, 0] += self.anchor_x + camera.pan_x
        iso[:, 1] += self.anchor_y + camera.pan_y
        return iso * camera.zoom

    def pick_tile(
        self,
        screen_x: float,
        screen_y: float,
        camera: IsometricCamera,
        map_width: int,
        map_height: int,
        tolerance: float = PICK_TOLERANCE
    ) -> Optional[Tuple[int, int]]:
        """
        Find the map cell under a screen point.

        Every cell's diamond is tested with |dx/half_w| + |dy/half_h| <=
        tolerance; of all matches the one with the nearest centre wins. When
        the point falls in the thin band the tolerance leaves between
        diamonds, the cell containing it under the exact inverse is used.

        Args:
            screen_x, screen_y: Point in screen pixels
            camera: Current zoom/pan
            map_width, map_height: Map size in tiles
            tolerance: Diamond test threshold

        Returns:
            (x, y) or None when the point is outside the map
        """
        if map_width <= 0 or map_height <= 0:
            return None

        centers = self.cell_centers(map_width, map_height, camera)
        half_w = self.tile_width / 2 * camera.zoom
        half_h = self.tile_height / 2 * camera.zoom
        dx = screen_x - centers[:, 0]
        dy = screen_y - centers[:, 1]

        inside = np.abs(dx / half_w) + np.abs(dy / half_h) <= tolerance
        candidates = np.flatnonzero(inside)
        if len(candidates):
            dist = dx[candidates] ** 2 + dy[candidates] ** 2
            best = int(candidates[np.argmin(dist)])
            return (best % map_width, best // map_width)

        # Edge band: nearest centre under the exact inverse
        fx, fy = self.screen_to_world(screen_x, screen_y, camera)
        x, y = int(np.floor(fx + 0.5)), int(np.floor(fy + 0.5))
        if 0 <= x < map_width and 0 <= y < map_height:
            return (x, y)
        return None
