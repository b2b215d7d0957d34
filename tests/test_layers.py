"""
Unit tests for map layers, tileset bindings and global ID allocation.
"""

import sys
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from isotile.allocation import GlobalAllocationTable
from isotile.errors import InvalidInputError, NotFoundError
from isotile.ingestion import Bitmap
from isotile.layers import ALLOCATION_ORDER, LayerTilesetBinding, LayerType, TileLayer


def squares_bitmap(count, name):
    """Bitmap holding `count` separate 20x20 squares."""
    rgba = np.zeros((30, 30 * count + 10, 4), dtype=np.uint8)
    for i in range(count):
        rgba[5:25, 5 + i * 30:25 + i * 30] = [120, 80, 40, 255]
    return Bitmap(rgba, source_path=name)


def binding(layer, count, name):
    return LayerTilesetBinding.create(layer, squares_bitmap(count, name))


class TestLayerType(unittest.TestCase):
    """Tests for LayerType."""

    def test_parse(self):
        assert LayerType.parse("NPC") == LayerType.NPC
        assert LayerType.parse(" object ") == LayerType.OBJECT
        assert LayerType.parse(LayerType.EVENT) == LayerType.EVENT
        with self.assertRaises(InvalidInputError):
            LayerType.parse("water")

    def test_priority(self):
        ordered = sorted(LayerType, key=lambda t: t.priority)
        assert tuple(ordered) == ALLOCATION_ORDER
        assert ordered[0] == LayerType.COLLISION
        assert ordered[-1] == LayerType.NPC

    def test_draw_order(self):
        assert LayerType.NPC.draw_order < LayerType.BACKGROUND.draw_order


class TestTileLayer(unittest.TestCase):
    """Tests for TileLayer grids."""

    def test_create(self):
        layer = TileLayer(LayerType.OBJECT, 4, 3)
        assert layer.data.shape == (3, 4)
        assert layer.name == "Object"
        assert layer.used_gids == []

    def test_invalid_size(self):
        with self.assertRaises(InvalidInputError):
            TileLayer(LayerType.OBJECT, 0, 3)

    def test_flat_round_trip(self):
        values = [0, 1, 2, 3, 0, 5]
        layer = TileLayer.from_flat(LayerType.BACKGROUND, 3, 2, values)
        assert layer.get(2, 0) == 2
        assert layer.get(0, 1) == 3
        assert layer.to_flat() == values

        with self.assertRaises(InvalidInputError):
            TileLayer.from_flat(LayerType.BACKGROUND, 3, 2, [1, 2])

    def test_set_get(self):
        layer = TileLayer(LayerType.BACKGROUND, 5, 5)
        layer.set(4, 2, 7)
        assert layer.get(4, 2) == 7
        with self.assertRaises(InvalidInputError):
            layer.set(5, 0, 1)
        with self.assertRaises(InvalidInputError):
            layer.set(0, 0, -1)

    def test_bucket_fill(self):
        """Fill stops at cells of another value (4-connected)."""
        layer = TileLayer(LayerType.BACKGROUND, 5, 5)
        for y in range(5):
            layer.set(2, y, 1)

        assert layer.fill(0, 0, 3) == 10
        assert layer.get(1, 4) == 3
        assert layer.get(2, 2) == 1
        assert layer.get(3, 0) == 0
        assert layer.fill(0, 0, 3) == 0

    def test_fill_does_not_leak_diagonally(self):
        layer = TileLayer.from_flat(LayerType.BACKGROUND, 2, 2, [0, 1, 1, 0])
        assert layer.fill(0, 0, 2) == 1
        assert layer.get(1, 1) == 0

    def test_region_mask(self):
        layer = TileLayer.from_flat(LayerType.BACKGROUND, 3, 3, [
            1, 1, 0,
            0, 1, 0,
            1, 0, 1,
        ])
        mask = layer.region_mask(0, 0)
        assert mask.tolist() == [
            [True, True, False],
            [False, True, False],
            [False, False, False],
        ]
        # Reading the mask does not paint anything
        assert layer.to_flat() == [1, 1, 0, 0, 1, 0, 1, 0, 1]

    def test_transparency_clamped(self):
        assert TileLayer(LayerType.OBJECT, 2, 2).transparency == 1.0
        assert TileLayer(LayerType.OBJECT, 2, 2, transparency=1.5).transparency == 1.0
        assert TileLayer(LayerType.OBJECT, 2, 2, transparency=-0.2).transparency == 0.0

    def test_resize(self):
        layer = TileLayer.from_flat(LayerType.BACKGROUND, 3, 2, [1, 2, 3, 4, 5, 6])
        layer.resize(2, 3)
        assert layer.to_flat() == [1, 2, 4, 5, 0, 0]
        assert (layer.width, layer.height) == (2, 3)

    def test_retarget(self):
        layer = TileLayer.from_flat(LayerType.BACKGROUND, 4, 1, [1, 2, 3, 0])
        changed = layer.retarget({1: 1, 2: 0, 3: 2})
        assert changed == 2
        assert layer.to_flat() == [1, 0, 2, 0]
        assert layer.used_gids == [1, 2]


class TestLayerTilesetBinding(unittest.TestCase):

    def test_create(self):
        b = binding("object", 3, "props.png")
        assert b.layer_type == LayerType.OBJECT
        assert b.count == 3
        assert b.file_name == "props.png"

    def test_grid_size(self):
        bitmap = Bitmap(np.zeros((70, 140, 4), dtype=np.uint8))
        b = LayerTilesetBinding.create("background", bitmap, spacing=2, margin=2)
        # (140 - 4 + 2) // 66 and (70 - 4 + 2) // 34
        assert (b.columns, b.rows) == (2, 2)
        assert b.count == 0
        assert b.file_name == ""

    def test_shared_bitmap(self):
        bitmap = squares_bitmap(2, "shared.png")
        a = LayerTilesetBinding.create("background", bitmap)
        b = LayerTilesetBinding.create("object", bitmap)
        assert a.bitmap is b.bitmap
        assert a.palette is not b.palette


class TestGlobalAllocationTable(unittest.TestCase):
    """Tests for global ID allocation."""

    def setUp(self):
        self.npc = binding("npc", 1, "people.png")
        self.background = binding("background", 3, "floor.png")
        self.collision = binding("collision", 2, "walls.png")
        self.table = GlobalAllocationTable.allocate([self.npc, self.background, self.collision])

    def test_priority_order(self):
        entries = self.table.entries
        assert [e.binding for e in entries] == [self.collision, self.background, self.npc]
        assert [(e.first_id, e.last_id) for e in entries] == [(1, 2), (3, 5), (6, 6)]
        assert self.table.total_count == 6

    def test_coverage(self):
        """Ranges cover 1..total exactly once."""
        ids = []
        for entry in self.table:
            ids.extend(range(entry.first_id, entry.last_id + 1))
        assert ids == list(range(1, self.table.total_count + 1))

    def test_global_id(self):
        assert self.table.global_id("background", 2) == 4
        assert self.table.global_id(self.npc, 1) == 6
        assert self.table.global_id("collision", 0) == 0
        with self.assertRaises(InvalidInputError):
            self.table.global_id("background", 4)
        with self.assertRaises(NotFoundError):
            self.table.global_id("enemy", 1)

    def test_resolve(self):
        for entry in self.table:
            for local in range(1, entry.count + 1):
                found, gid = self.table.resolve(entry.offset + local - 1)
                assert found is entry.binding
                assert gid == local
        with self.assertRaises(NotFoundError):
            self.table.resolve(7)

    def test_file_name_tiebreak(self):
        b = binding("object", 1, "b.png")
        a = binding("object", 1, "a.png")
        table = GlobalAllocationTable.allocate([b, a])
        assert [e.binding for e in table] == [a, b]

    def test_deterministic(self):
        again = GlobalAllocationTable.allocate([self.collision, self.npc, self.background])
        assert [(e.binding, e.offset) for e in again] == [(e.binding, e.offset) for e in self.table]

    def test_empty_palette_takes_no_ids(self):
        empty = LayerTilesetBinding.create("object", Bitmap(np.zeros((10, 10, 4), dtype=np.uint8)))
        table = GlobalAllocationTable.allocate([self.npc, empty, self.background])
        assert [(e.first_id, e.count) for e in table] == [(1, 3), (4, 0), (4, 1)]

    def test_translate_layer(self):
        layer = TileLayer.from_flat(LayerType.BACKGROUND, 4, 1, [0, 1, 3, 5])
        translated = self.table.translate_layer(layer)
        # GID 5 is beyond the 3-region palette
        assert translated.tolist() == [[0, 3, 5, 0]]

    def test_translate_unbound_layer(self):
        layer = TileLayer.from_flat(LayerType.ENEMY, 2, 1, [1, 0])
        assert self.table.translate_layer(layer).tolist() == [[0, 0]]


if __name__ == "__main__":
    unittest.main()
