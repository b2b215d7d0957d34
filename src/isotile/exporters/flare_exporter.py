"""
Flare Text Format Exporter

Flare maps are two plain text files:
- Tileset definition: one `img=<path>` line per tileset image, each followed
  by `tile=id,left,top,width,height,originX,originY` records
- Map: a `[header]` section plus one `[layer]` section per layer whose
  `data=` block holds comma-separated global IDs

Global IDs come from a GlobalAllocationTable, so several per-layer tilesets
share one namespace.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..allocation import GlobalAllocationTable
from ..errors import InvalidInputError
from ..ingestion import Bitmap
from ..layers import TileLayer

logger = logging.getLogger(__name__)


class FlareExporter:
    """
    Export allocated tilesets and layers to Flare text files.
    """

    def __init__(
        self,
        image_prefix: str = "../maps/",
        tileset_ref: str = "tileset.txt",
        orientation: str = "isometric"
    ):
        """
        Initialize the exporter.

        Args:
            image_prefix: Prepended to tileset file names in `img=` lines
            tileset_ref: Value of `tileset=` in the map header
            orientation: Value of `orientation=` in the map header
        """
        self.image_prefix = image_prefix
        self.tileset_ref = tileset_ref
        self.orientation = orientation

    def _image_path(self, bitmap: Bitmap, fallback: str) -> str:
        name = bitmap.name or fallback
        return f"{self.image_prefix}{name}"

    def tileset_definition(self, table: GlobalAllocationTable) -> str:
        """
        Build the tileset definition text.

        Tiles are grouped under the image they are cut from, one `img=`
        header per distinct bitmap, in allocation order.

        Args:
            table: Allocation of all bound tilesets

        Returns:
            Tileset definition text
        """
        groups: Dict[int, List[str]] = {}
        headers: Dict[int, str] = {}

        for entry in table:
            binding = entry.binding
            key = id(binding.bitmap)
            if key not in groups:
                fallback = binding.file_name or f"{binding.layer_type.value}.png"
                headers[key] = self._image_path(binding.bitmap, fallback)
                groups[key] = []

            for gid, region in binding.palette:
                global_id = entry.offset + gid - 1
                groups[key].append(
                    f"tile={global_id},{region.source_x},{region.source_y},"
                    f"{region.width},{region.height},{region.origin_x},{region.origin_y}"
                )

        lines = []
        for key, records in groups.items():
            if lines:
                lines.append("")
            lines.append(f"img={headers[key]}")
            lines.append("")
            lines.extend(records)

        return "\n".join(lines) + "\n"

    def map_text(
        self,
        layers: Iterable[TileLayer],
        table: GlobalAllocationTable,
        tile_width: int,
        tile_height: int,
        title: Optional[str] = None
    ) -> str:
        """
        Build the map text.

        Args:
            layers: Layers to export (invisible layers are skipped)
            table: Allocation used to translate local GIDs
            tile_width, tile_height: Map tile size
            title: Optional map title

        Returns:
            Map text
        """
        layers = list(layers)
        if not layers:
            raise InvalidInputError("Cannot export a map without layers")

        width, height = layers[0].width, layers[0].height

        lines = ["[header]"]
        lines.append(f"width={width}")
        lines.append(f"height={height}")
        lines.append(f"tilewidth={tile_width}")
        lines.append(f"tileheight={tile_height}")
        lines.append(f"orientation={self.orientation}")
        lines.append(f"tileset={self.tileset_ref}")
        if title:
            lines.append(f"title={title}")
        lines.append("")

        for layer in layers:
            if not layer.visible:
                continue
            if (layer.width, layer.height) != (width, height):
                raise InvalidInputError(
                    f"Layer {layer.name!r} is {layer.width}x{layer.height}, map is {width}x{height}"
                )

            global_ids = table.translate_layer(layer)
            lines.append("[layer]")
            lines.append(f"type={layer.layer_type.value}")
            lines.append("data=")
            for row in global_ids:
                lines.append(",".join(str(int(v)) for v in row))
            lines.append("")

        return "\n".join(lines)

    def export_tileset(self, table: GlobalAllocationTable, output_path: Union[str, Path]):
        """
        Write the tileset definition file.

        Args:
            table: Allocation of all bound tilesets
            output_path: Output file path (.txt)
        """
        output_path = Path(output_path)
        if table.total_count == 0:
            raise InvalidInputError("Cannot export an empty tileset")

        with open(output_path, "w") as f:
            f.write(self.tileset_definition(table))
        logger.info("Wrote %d tile definitions to %s", table.total_count, output_path)

    def export_map(
        self,
        layers: Iterable[TileLayer],
        table: GlobalAllocationTable,
        output_path: Union[str, Path],
        tile_width: int,
        tile_height: int,
        title: Optional[str] = None
    ):
        """
        Write the map file.

        Args:
            layers: Layers to export
            table: Allocation used to translate local GIDs
            output_path: Output file path (.txt)
            tile_width, tile_height: Map tile size
            title: Optional map title
        """
        output_path = Path(output_path)
        text = self.map_text(layers, table, tile_width, tile_height, title)
        with open(output_path, "w") as f:
            f.write(text)
        logger.info("Wrote map to %s", output_path)

    def export(
        self,
        layers: Iterable[TileLayer],
        table: GlobalAllocationTable,
        output_dir: Union[str, Path],
        map_name: str,
        tile_width: int,
        tile_height: int,
        title: Optional[str] = None
    ) -> Tuple[Path, Path]:
        """
        Write the tileset definition and the map into one directory.

        Both texts are built before either file is opened, so a rejected
        export writes nothing.

        Returns:
            (tileset_path, map_path)
        """
        if table.total_count == 0:
            raise InvalidInputError("Cannot export an empty tileset")
        tileset_text = self.tileset_definition(table)
        map_text = self.map_text(layers, table, tile_width, tile_height, title)

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        tileset_path = output_dir / self.tileset_ref
        map_path = output_dir / f"{map_name}.txt"

        with open(tileset_path, "w") as f:
            f.write(tileset_text)
        with open(map_path, "w") as f:
            f.write(map_text)

        logger.info("Wrote %d tile definitions to %s and map to %s",
                    table.total_count, tileset_path, map_path)
        return tileset_path, map_path
