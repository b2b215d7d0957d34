"""
Unit tests for shape classification and region splitting.
"""

import sys
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from isotile.classifier import (
    Axis, ShapeClassifier, ShapeProfile, SplitDecision, SplitKind,
    floor_pattern_rule, horizontal_wall_rule, oversized_rule,
    periodic_gaps_rule, sparse_large_rule, vertical_wall_rule,
)
from isotile.components import Component, Rect, detect_components
from isotile.ingestion import Bitmap
from isotile.splitter import RegionSplitter


def component_from_mask(mask, bitmap_size=None):
    """Component built straight from a boolean mask."""
    ys, xs = np.nonzero(mask)
    size = bitmap_size or (mask.shape[1], mask.shape[0])
    return Component.from_pixels(xs, ys, size)


def only_component(rgba):
    components = detect_components(Bitmap(rgba))
    assert len(components) == 1
    return components[0]


def wall_component():
    """30x158 solid block -> 32x160 padded bounds."""
    rgba = np.zeros((200, 64, 4), dtype=np.uint8)
    rgba[10:168, 10:40, 3] = 255
    return only_component(rgba)


def floor_strip_component():
    """190x18 strip at (1, 1) -> 192x20 padded bounds."""
    rgba = np.zeros((64, 256, 4), dtype=np.uint8)
    rgba[1:19, 1:191, 3] = 255
    return only_component(rgba)


def gapped_component():
    """Two 64x30 blocks joined by a 2px bridge, 192 content columns."""
    rgba = np.zeros((40, 220, 4), dtype=np.uint8)
    rgba[1:31, 1:65, 3] = 255
    rgba[1:31, 129:193, 3] = 255
    rgba[15:17, 65:129, 3] = 255
    return only_component(rgba)


def diamond_mask(width=64, height=32):
    ys, xs = np.mgrid[0:height, 0:width]
    dx = np.abs(xs + 0.5 - width / 2) / (width / 2)
    dy = np.abs(ys + 0.5 - height / 2) / (height / 2)
    return dx + dy <= 1


class TestShapeClassifier(unittest.TestCase):
    """Tests for the classification rules."""

    def setUp(self):
        self.classifier = ShapeClassifier(64, 32)

    def test_wall_is_kept(self):
        """A tall dense column stays a single region."""
        component = wall_component()
        assert component.bounds == Rect(9, 9, 32, 160)
        assert component.density > 0.9

        decision = self.classifier.classify(component)
        assert decision.kind == SplitKind.KEEP
        assert decision.rule == "vertical_wall"
        assert not decision.is_split

    def test_floor_strip_is_split(self):
        component = floor_strip_component()
        assert component.bounds == Rect(0, 0, 192, 20)

        decision = self.classifier.classify(component)
        assert decision.kind == SplitKind.SPLIT_GRID
        assert decision.axis == Axis.HORIZONTAL
        assert decision.rule == "floor_pattern"

    def test_small_square_default_keep(self):
        rgba = np.zeros((64, 64, 4), dtype=np.uint8)
        rgba[10:50, 10:50, 3] = 255
        decision = self.classifier.classify(only_component(rgba))

        assert decision.kind == SplitKind.KEEP
        assert decision.rule == "default"

    def test_periodic_gaps(self):
        component = gapped_component()
        profile = self.classifier.profile(component)

        assert not profile.is_wall
        assert profile.has_periodic_gaps
        assert floor_pattern_rule(profile) is None

        decision = self.classifier.classify(component)
        assert decision.kind == SplitKind.SPLIT_AT_GAPS
        assert decision.axis == Axis.HORIZONTAL

    def test_horizontal_wall_rule(self):
        rgba = np.zeros((40, 200, 4), dtype=np.uint8)
        rgba[1:31, 1:151, 3] = 255
        profile = self.classifier.profile(only_component(rgba))

        decision = horizontal_wall_rule(profile)
        assert decision is not None
        assert decision.kind == SplitKind.KEEP
        assert vertical_wall_rule(profile) is None

    def test_wide_solid_wall_is_kept(self):
        """A 150x30 block (152x32 padded) is a wall, not a row of floor tiles."""
        rgba = np.zeros((40, 200, 4), dtype=np.uint8)
        rgba[1:31, 1:151, 3] = 255
        component = only_component(rgba)
        assert component.bounds == Rect(0, 0, 152, 32)

        profile = self.classifier.profile(component)
        assert not profile.has_uniform_columns
        assert floor_pattern_rule(profile) is None

        decision = self.classifier.classify(component)
        assert decision.kind == SplitKind.KEEP
        assert decision.rule == "horizontal_wall"

    def test_row_of_diamonds_has_uniform_columns(self):
        mask = np.zeros((40, 200), dtype=bool)
        mask[2:34, 0:192] = np.tile(diamond_mask(), (1, 3))
        profile = self.classifier.profile(component_from_mask(mask))

        assert profile.has_uniform_columns
        decision = floor_pattern_rule(profile)
        assert decision is not None
        assert decision.kind == SplitKind.SPLIT_GRID

    def test_sparse_large_rule(self):
        """A thin hollow frame has low density over a large area."""
        mask = np.zeros((110, 110), dtype=bool)
        mask[1:101, 1:101] = True
        mask[3:99, 3:99] = False
        profile = self.classifier.profile(component_from_mask(mask))

        assert profile.density < 0.4
        decision = sparse_large_rule(profile)
        assert decision is not None
        assert decision.kind == SplitKind.SPLIT_BY_DENSITY
        assert self.classifier.classify(profile.component).kind == SplitKind.SPLIT_BY_DENSITY

    def test_oversized_rule(self):
        """An L shape taller than 1.8 tiles is cut along its longer axis."""
        mask = np.zeros((110, 110), dtype=bool)
        mask[1:101, 1:21] = True
        mask[81:101, 1:101] = True
        profile = self.classifier.profile(component_from_mask(mask))

        decision = oversized_rule(profile)
        assert decision is not None
        assert decision.kind == SplitKind.SPLIT_GRID
        assert decision.rule == "oversized"

    def test_solid_block_not_oversized(self):
        mask = np.zeros((120, 160), dtype=bool)
        mask[1:101, 1:151] = True
        profile = self.classifier.profile(component_from_mask(mask))
        assert oversized_rule(profile) is None

    def test_diamond_profile(self):
        profile = self.classifier.profile(component_from_mask(diamond_mask()))
        assert profile.has_diamond_profile
        # A single tile is too narrow to be a floor row
        assert floor_pattern_rule(profile) is None

    def test_custom_rules(self):
        always_split = lambda p: SplitDecision(SplitKind.SPLIT_BY_DENSITY, None, "always")
        classifier = ShapeClassifier(64, 32, rules=[always_split])
        decision = classifier.classify(wall_component())
        assert decision.rule == "always"

    def test_no_rules_keeps(self):
        classifier = ShapeClassifier(64, 32, rules=[])
        assert classifier.classify(floor_strip_component()).kind == SplitKind.KEEP


class TestRegionSplitter(unittest.TestCase):
    """Tests for the split strategies."""

    def setUp(self):
        self.splitter = RegionSplitter(64, 32, min_size=8)

    def test_floor_strip_yields_three_tiles(self):
        component = floor_strip_component()
        decision = SplitDecision(SplitKind.SPLIT_GRID, Axis.HORIZONTAL)
        pieces = self.splitter.split(component, decision, (256, 64))

        assert len(pieces) == 3
        assert [p.width for p in pieces] == [65, 66, 65]
        assert all(p.height == 20 for p in pieces)
        assert pieces[0].x == 0
        assert pieces[2].right == 192

    def test_keep_returns_bounds(self):
        component = wall_component()
        pieces = self.splitter.split(component, SplitDecision(SplitKind.KEEP), (64, 200))
        assert pieces == [component.bounds]

    def test_vertical_grid(self):
        component = wall_component()
        decision = SplitDecision(SplitKind.SPLIT_GRID, Axis.VERTICAL)
        pieces = self.splitter.split(component, decision, (64, 200))

        assert len(pieces) == 5
        assert all(p.width == 32 for p in pieces)
        assert pieces[0].y == 9

    def test_split_at_gaps(self):
        component = gapped_component()
        cuts, origin = self.splitter.find_gap_cuts(component, Axis.HORIZONTAL)
        assert origin == 1
        assert list(cuts) == list(range(64, 128))

        decision = SplitDecision(SplitKind.SPLIT_AT_GAPS, Axis.HORIZONTAL)
        pieces = self.splitter.split(component, decision, (220, 40))
        assert pieces == [Rect(0, 0, 66, 32), Rect(128, 0, 66, 32)]

    def test_gap_split_without_gaps_keeps_original(self):
        """A single segment is not a split."""
        mask = np.zeros((30, 120), dtype=bool)
        mask[1:21, 1:101] = True
        component = component_from_mask(mask)
        decision = SplitDecision(SplitKind.SPLIT_AT_GAPS, Axis.HORIZONTAL)

        assert self.splitter.split(component, decision, (120, 30)) == [component.bounds]

    def test_tiny_pieces_fall_back(self):
        """Pieces thinner than min_size are discarded."""
        mask = np.zeros((10, 200), dtype=bool)
        mask[1:4, 1:191] = True
        component = component_from_mask(mask)
        decision = SplitDecision(SplitKind.SPLIT_GRID, Axis.HORIZONTAL)

        assert self.splitter.split(component, decision, (200, 10)) == [component.bounds]

    def test_split_by_density(self):
        """Only occupied cells become pieces."""
        mask = np.zeros((100, 100), dtype=bool)
        mask[0:10, 0:10] = True
        mask[40:50, 40:50] = True
        component = component_from_mask(mask)

        pieces = self.splitter.split_by_density(component, (100, 100))
        assert pieces == [Rect(0, 0, 11, 11), Rect(39, 39, 12, 12)]

    def test_pieces_stay_inside_bitmap(self):
        component = floor_strip_component()
        for kind in SplitKind:
            decision = SplitDecision(kind, Axis.HORIZONTAL)
            for piece in self.splitter.split(component, decision, (256, 64)):
                assert piece.x >= 0 and piece.y >= 0
                assert piece.right <= 256 and piece.bottom <= 64


if __name__ == "__main__":
    unittest.main()
