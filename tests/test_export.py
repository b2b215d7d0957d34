"""
Unit tests for Flare export, the map editor and the command-line interface.
"""

import io
import json
import sys
import tempfile
from contextlib import redirect_stdout
from pathlib import Path
import numpy as np
import unittest
from PIL import Image

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from isotile import MapEditor
from isotile.allocation import GlobalAllocationTable
from isotile.cli import create_parser, main, parse_layer_tileset
from isotile.errors import InvalidInputError, NotFoundError
from isotile.exporters import FlareExporter
from isotile.ingestion import Bitmap
from isotile.layers import LayerTilesetBinding, LayerType, TileLayer


def square_rgba(size, x, y, w, h):
    rgba = np.zeros((size, size, 4), dtype=np.uint8)
    rgba[y:y + h, x:x + w] = [90, 160, 70, 255]
    return rgba


def three_squares_rgba():
    rgba = np.zeros((40, 120, 4), dtype=np.uint8)
    for x in (5, 45, 85):
        rgba[5:25, x:x + 20] = [200, 200, 200, 255]
    return rgba


class TestFlareExporter(unittest.TestCase):
    """Tests for the Flare text format."""

    def setUp(self):
        self.floor = LayerTilesetBinding.create(
            "background", Bitmap(square_rgba(40, 5, 5, 20, 20), source_path="floor.png"))
        self.props = LayerTilesetBinding.create(
            "object", Bitmap(square_rgba(50, 10, 10, 30, 30), source_path="props.png"))
        self.table = GlobalAllocationTable.allocate([self.props, self.floor])
        self.exporter = FlareExporter()

    def test_tileset_definition(self):
        text = self.exporter.tileset_definition(self.table)
        assert text == (
            "img=../maps/floor.png\n"
            "\n"
            "tile=1,4,4,22,22,11,6\n"
            "\n"
            "img=../maps/props.png\n"
            "\n"
            "tile=2,9,9,32,32,16,16\n"
        )

    def test_shared_bitmap_single_img_line(self):
        bitmap = Bitmap(square_rgba(40, 5, 5, 20, 20), source_path="shared.png")
        table = GlobalAllocationTable.allocate([
            LayerTilesetBinding.create("background", bitmap),
            LayerTilesetBinding.create("object", bitmap),
        ])
        text = self.exporter.tileset_definition(table)
        assert text.count("img=") == 1
        assert "tile=1," in text and "tile=2," in text

    def test_map_text(self):
        background = TileLayer.from_flat(LayerType.BACKGROUND, 3, 2, [1, 0, 1, 0, 0, 0])
        objects = TileLayer.from_flat(LayerType.OBJECT, 3, 2, [0, 1, 0, 0, 0, 0])
        text = self.exporter.map_text([background, objects], self.table, 64, 32)

        assert text == "\n".join([
            "[header]",
            "width=3",
            "height=2",
            "tilewidth=64",
            "tileheight=32",
            "orientation=isometric",
            "tileset=tileset.txt",
            "",
            "[layer]",
            "type=background",
            "data=",
            "1,0,1",
            "0,0,0",
            "",
            "[layer]",
            "type=object",
            "data=",
            "0,2,0",
            "0,0,0",
            "",
        ])

    def test_invisible_layer_skipped(self):
        background = TileLayer(LayerType.BACKGROUND, 2, 2)
        hidden = TileLayer(LayerType.OBJECT, 2, 2, visible=False)
        text = self.exporter.map_text([background, hidden], self.table, 64, 32, title="Town")

        assert "title=Town" in text
        assert text.count("[layer]") == 1

    def test_size_mismatch(self):
        with self.assertRaises(InvalidInputError):
            self.exporter.map_text(
                [TileLayer(LayerType.BACKGROUND, 2, 2), TileLayer(LayerType.OBJECT, 3, 2)],
                self.table, 64, 32
            )
        with self.assertRaises(InvalidInputError):
            self.exporter.map_text([], self.table, 64, 32)

    def test_export_files(self):
        with tempfile.TemporaryDirectory() as tmp:
            tileset_path = Path(tmp) / "tileset.txt"
            map_path = Path(tmp) / "map.txt"
            self.exporter.export_tileset(self.table, tileset_path)
            self.exporter.export_map([TileLayer(LayerType.BACKGROUND, 2, 2)], self.table,
                                     map_path, 64, 32)

            assert tileset_path.read_text().startswith("img=")
            assert map_path.read_text().startswith("[header]")

    def test_export_empty_tileset(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(InvalidInputError):
                self.exporter.export_tileset(GlobalAllocationTable([]), Path(tmp) / "t.txt")


class TestMapEditor(unittest.TestCase):
    """Tests for the MapEditor facade."""

    def setUp(self):
        self.editor = MapEditor(map_width=6, map_height=4)

    def test_defaults(self):
        assert [l.layer_type for l in self.editor.layers] == [LayerType.BACKGROUND]
        assert (self.editor.tile_width, self.editor.tile_height) == (64, 32)
        assert self.editor.settings.threshold == 10

    def test_add_layer(self):
        assert self.editor.add_layer("object") is not None
        assert self.editor.add_layer("npc") is not None
        assert self.editor.add_layer("object") is None

        types = [l.layer_type for l in self.editor.layers]
        assert types == [LayerType.NPC, LayerType.OBJECT, LayerType.BACKGROUND]

    def test_bind_tileset(self):
        b = self.editor.bind_tileset("object", three_squares_rgba(), source_path="props.png")

        assert b.count == 3
        assert b.file_name == "props.png"
        assert self.editor.has_layer("object")
        assert self.editor.palette("object") is b.palette

    def test_bind_replaces(self):
        first = self.editor.bind_tileset("background", three_squares_rgba(), source_path="a.png")
        second = self.editor.bind_tileset("background", square_rgba(40, 5, 5, 20, 20), source_path="b.png")

        assert self.editor.binding("background") is second
        assert second is not first
        assert len(self.editor.bindings) == 1

    def test_unbind(self):
        self.editor.bind_tileset("background", three_squares_rgba())
        self.editor.unbind_tileset("background")
        with self.assertRaises(NotFoundError):
            self.editor.binding("background")
        with self.assertRaises(NotFoundError):
            self.editor.unbind_tileset("background")

    def test_paint_and_erase(self):
        self.editor.bind_tileset("background", three_squares_rgba())

        assert self.editor.paint("background", 1, 2, 3)
        assert not self.editor.paint("background", 1, 2, 3)
        assert self.editor.layer("background").get(1, 2) == 3

        with self.assertRaises(NotFoundError):
            self.editor.paint("background", 0, 0, 4)
        with self.assertRaises(InvalidInputError):
            self.editor.paint("background", 6, 0, 1)

        assert self.editor.erase("background", 1, 2)
        assert not self.editor.erase("background", 1, 2)

    def test_paint_without_tileset(self):
        with self.assertRaises(NotFoundError):
            self.editor.paint("background", 0, 0, 1)

    def test_bucket_fill(self):
        self.editor.bind_tileset("background", three_squares_rgba())
        assert self.editor.bucket_fill("background", 0, 0, 2) == 24
        assert self.editor.get_stats()["painted_cells"] == 24

    def test_merge_keeps_painted_cells_by_default(self):
        self.editor.bind_tileset("background", three_squares_rgba())
        self.editor.paint("background", 0, 0, 3)

        self.editor.merge("background", [1, 2])
        assert self.editor.layer("background").get(0, 0) == 3

        # Stale GID exports as empty
        translated = self.editor.allocation_table().translate_layer(self.editor.layer("background"))
        assert translated[0, 0] == 0

    def test_merge_with_retarget(self):
        self.editor.bind_tileset("background", three_squares_rgba())
        self.editor.paint("background", 0, 0, 3)
        self.editor.paint("background", 1, 0, 2)

        result = self.editor.merge("background", [1, 2], retarget=True)
        assert result.applied
        assert self.editor.layer("background").get(0, 0) == 2
        assert self.editor.layer("background").get(1, 0) == 1

    def test_remove_and_reorder_with_retarget(self):
        self.editor.bind_tileset("background", three_squares_rgba())
        self.editor.paint("background", 0, 0, 1)
        self.editor.paint("background", 1, 0, 3)

        self.editor.reorder("background", 2, 0, retarget=True)
        assert self.editor.layer("background").get(0, 0) == 2
        assert self.editor.layer("background").get(1, 0) == 1

        self.editor.remove_region("background", 1, retarget=True)
        assert self.editor.layer("background").get(1, 0) == 0
        assert self.editor.layer("background").get(0, 0) == 1

    def test_set_threshold(self):
        rgba = three_squares_rgba()
        rgba[5:25, 85:105, 3] = 40
        self.editor.bind_tileset("background", rgba)
        assert len(self.editor.palette("background")) == 3

        self.editor.set_threshold(50)
        assert self.editor.settings.threshold == 50
        assert len(self.editor.palette("background")) == 2

        with self.assertRaises(InvalidInputError):
            self.editor.set_threshold(300)

    def test_resize_map(self):
        self.editor.add_layer("object")
        self.editor.bind_tileset("background", three_squares_rgba())
        self.editor.paint("background", 5, 3, 1)
        self.editor.paint("background", 1, 1, 1)

        self.editor.resize_map(3, 3)
        assert (self.editor.map_width, self.editor.map_height) == (3, 3)
        assert all(l.data.shape == (3, 3) for l in self.editor.layers)
        assert self.editor.layer("background").get(1, 1) == 1

    def test_pick_tile(self):
        self.editor.projector.set_viewport(640)
        self.editor.set_zoom(2)
        self.editor.pan_by(-30, 12)
        for x, y in [(0, 0), (5, 3), (2, 1)]:
            sx, sy = self.editor.map_to_screen(x, y)
            assert self.editor.pick_tile(sx, sy) == (x, y)

        self.editor.reset_view()
        assert self.editor.camera.zoom == 1.0

    def test_export_flare(self):
        self.editor.bind_tileset("collision", square_rgba(40, 5, 5, 20, 20), source_path="walls.png")
        self.editor.bind_tileset("background", three_squares_rgba(), source_path="floor.png")
        self.editor.paint("background", 0, 0, 2)
        self.editor.paint("collision", 1, 0, 1)

        with tempfile.TemporaryDirectory() as tmp:
            tileset_path, map_path = self.editor.export_flare(Path(tmp) / "out", "level1")
            tileset_text = tileset_path.read_text()
            map_text = map_path.read_text()

        assert map_path.name == "level1.txt"
        # Collision allocates first
        assert tileset_text.index("walls.png") < tileset_text.index("floor.png")
        assert "tile=1,4,4,22,22,11,6" in tileset_text
        assert "type=collision\ndata=\n0,1,0,0,0,0" in map_text
        assert "type=background\ndata=\n3,0,0,0,0,0" in map_text

    def test_last_layer_not_removed(self):
        self.editor.add_layer("object")
        assert self.editor.remove_layer("object")
        assert not self.editor.remove_layer("background")
        assert [l.layer_type for l in self.editor.layers] == [LayerType.BACKGROUND]

        with self.assertRaises(NotFoundError):
            self.editor.remove_layer("object")

    def test_rejected_export_writes_nothing(self):
        self.editor.bind_tileset("background", three_squares_rgba(), source_path="floor.png")
        self.editor.add_layer("object")
        self.editor.layer("object").resize(2, 2)

        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / "out"
            with self.assertRaises(InvalidInputError):
                self.editor.export_flare(out, "level1")
            assert not out.exists() or list(out.iterdir()) == []

    def test_export_without_tilesets_writes_nothing(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(InvalidInputError):
                self.editor.export_flare(tmp, "level1")
            assert list(Path(tmp).iterdir()) == []

    def test_stats(self):
        self.editor.bind_tileset("object", three_squares_rgba(), source_path="props.png")
        stats = self.editor.get_stats()
        assert stats["map_size"] == (6, 4)
        assert stats["total_ids"] == 3
        assert stats["tilesets"]["object"]["first_id"] == 1


class TestCommandLine(unittest.TestCase):
    """Tests for the isotile command."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)
        self.tileset = self.dir / "tiles.png"
        Image.fromarray(three_squares_rgba()).save(self.tileset)

    def tearDown(self):
        self.tmp.cleanup()

    def test_writes_tileset(self):
        output = self.dir / "out.txt"
        with redirect_stdout(io.StringIO()):
            code = main([str(self.tileset), "-o", str(output)])

        assert code == 0
        text = output.read_text()
        assert text.startswith("img=../maps/tiles.png")
        assert text.count("tile=") == 3

    def test_default_output_next_to_input(self):
        with redirect_stdout(io.StringIO()):
            assert main([str(self.tileset)]) == 0
        assert (self.dir / "tileset.txt").exists()

    def test_json(self):
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            code = main([str(self.tileset), "--json", "--layer", "object",
                         "-o", str(self.dir / "t.txt")])

        assert code == 0
        summary = json.loads(buffer.getvalue())
        assert summary["total_ids"] == 3
        assert summary["tilesets"][0]["layer"] == "object"
        assert [r["global_id"] for r in summary["tilesets"][0]["regions"]] == [1, 2, 3]

    def test_layer_tilesets(self):
        walls = self.dir / "walls.png"
        Image.fromarray(square_rgba(40, 5, 5, 20, 20)).save(walls)
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            code = main([str(self.tileset), "--layer-tileset", f"collision={walls}",
                         "--json", "-o", str(self.dir / "t.txt")])

        assert code == 0
        summary = json.loads(buffer.getvalue())
        assert [t["layer"] for t in summary["tilesets"]] == ["collision", "background"]
        assert summary["tilesets"][1]["first_id"] == 2

    def test_no_input(self):
        assert main([]) == 1

    def test_missing_input(self):
        assert main([str(self.dir / "missing.png")]) == 1

    def test_nothing_detected(self):
        empty = self.dir / "empty.png"
        Image.fromarray(np.zeros((16, 16, 4), dtype=np.uint8)).save(empty)
        with redirect_stdout(io.StringIO()):
            assert main([str(empty)]) == 1

    def test_parse_layer_tileset(self):
        assert parse_layer_tileset("NPC=people.png") == ("npc", "people.png")

    def test_bad_layer_tileset(self):
        parser = create_parser()
        with self.assertRaises(SystemExit):
            parser.parse_args(["x.png", "--layer-tileset", "water=a.png"])


if __name__ == "__main__":
    unittest.main()
