#!/usr/bin/env python3
"""
Isotile Web Interface

A simple Gradio-based web UI for previewing brush detection on isometric tilesets.

Run with: python app.py
Then open http://localhost:7860 in your browser
"""

import sys
from pathlib import Path
import tempfile
import numpy as np
from PIL import Image, ImageDraw

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

import gradio as gr
from isotile import BrushPalette, DetectionSettings, FlareExporter, GlobalAllocationTable, TilesetLoader
from isotile.errors import IsotileError
from isotile.layers import LayerTilesetBinding

REGION_COLORS = [
    (255, 80, 80),
    (80, 200, 255),
    (120, 230, 90),
    (255, 200, 60),
    (200, 120, 255),
]

TABLE_HEADERS = ["GID", "X", "Y", "Width", "Height", "Origin X", "Origin Y"]


def draw_regions(rgba: np.ndarray, palette: BrushPalette) -> Image.Image:
    """Outline every region over a checkerboard-backed copy of the tileset."""
    height, width = rgba.shape[:2]
    ys, xs = np.mgrid[0:height, 0:width]
    checker = np.where(((xs // 8) + (ys // 8)) % 2 == 0, 200, 160).astype(np.uint8)
    background = Image.fromarray(np.stack([checker] * 3 + [np.full_like(checker, 255)], axis=-1))
    image = Image.alpha_composite(background, Image.fromarray(rgba.copy()))

    draw = ImageDraw.Draw(image)
    for gid, region in palette:
        color = REGION_COLORS[(gid - 1) % len(REGION_COLORS)]
        right = region.source_x + region.width - 1
        bottom = region.source_y + region.height - 1
        draw.rectangle([region.source_x, region.source_y, right, bottom], outline=color)
        ox = region.source_x + region.origin_x
        oy = region.source_y + region.origin_y
        draw.ellipse([ox - 2, oy - 2, ox + 2, oy + 2], fill=color)
        draw.text((region.source_x + 2, region.source_y + 1), str(gid), fill=color)
    return image


def process_tileset(
    image,
    tile_width: int,
    tile_height: int,
    threshold: int,
    min_size: int
):
    """
    Detect regions in an uploaded tileset.

    Returns overlay image, stats text, region rows, tileset text and download path.
    """
    if image is None:
        return None, "Please upload a tileset first.", [], "", None

    if not isinstance(image, np.ndarray) or image.ndim != 3:
        return None, "Invalid image format.", [], "", None

    try:
        settings = DetectionSettings(
            tile_width=int(tile_width),
            tile_height=int(tile_height),
            threshold=int(threshold),
            min_size=int(min_size)
        )
        bitmap = TilesetLoader().load_from_array(image, source_path="tileset.png")
        binding = LayerTilesetBinding.create("background", bitmap, settings)
    except IsotileError as e:
        return None, f"**Error:** {e}", [], "", None

    palette = binding.palette
    overlay = draw_regions(bitmap.rgba, palette)
    rows = [[row[key] for key in ("gid", "source_x", "source_y", "width", "height", "origin_x", "origin_y")]
            for row in palette.info()]

    stats_text = f"""## Detection Complete!

| Metric | Value |
|--------|-------|
| Input Size | {bitmap.width} x {bitmap.height} pixels |
| Opaque Pixels | {bitmap.count_opaque(settings.threshold):,} |
| Regions | {len(palette)} |
| Tile Grid | {binding.columns} x {binding.rows} |

**Settings:** Tile={settings.tile_width}x{settings.tile_height}, Threshold={settings.threshold}, Min Size={settings.min_size}
"""

    if len(palette) == 0:
        return overlay, stats_text + "\nNo regions detected.", rows, "", None

    table = GlobalAllocationTable.allocate([binding])
    exporter = FlareExporter()
    tileset_text = exporter.tileset_definition(table)

    export_dir = tempfile.mkdtemp(prefix="isotile_")
    tileset_path = str(Path(export_dir) / "tileset.txt")
    exporter.export_tileset(table, tileset_path)

    return overlay, stats_text, rows, tileset_text, tileset_path


def diamond(width: int, height: int, color) -> np.ndarray:
    """A filled 2:1 floor diamond."""
    tile = np.zeros((height, width, 4), dtype=np.uint8)
    ys, xs = np.mgrid[0:height, 0:width]
    inside = np.abs(xs + 0.5 - width / 2) / (width / 2) + np.abs(ys + 0.5 - height / 2) / (height / 2) <= 1
    tile[inside] = [*color, 255]
    return tile


def create_demo_tileset(style: str):
    """Create a demo tileset for testing."""
    if not style:
        return None

    rgba = np.zeros((256, 384, 4), dtype=np.uint8)

    if style == "Floor Tiles":
        colors = [(90, 160, 70), (150, 120, 80), (120, 120, 130), (200, 190, 140)]
        for i, color in enumerate(colors):
            rgba[8:40, 8 + i * 80:72 + i * 80] = diamond(64, 32, color)
        for i, color in enumerate(colors):
            rgba[64:96, 8 + i * 80:72 + i * 80] = diamond(64, 32, color[::-1])

    elif style == "Walls":
        # Upright wall pieces
        for i in range(4):
            rgba[16:144, 16 + i * 48:48 + i * 48] = [140, 110, 90, 255]
        # Long horizontal wall run
        rgba[180:200, 16:208] = [110, 110, 120, 255]

    elif style == "Mixed":
        rgba[8:40, 8:72] = diamond(64, 32, (90, 160, 70))
        rgba[8:40, 88:152] = diamond(64, 32, (150, 120, 80))
        rgba[60:188, 16:48] = [140, 110, 90, 255]
        # Tree: trunk and crown
        rgba[120:180, 110:122] = [101, 67, 33, 255]
        rgba[70:124, 86:146] = [34, 139, 34, 255]
        # Fence with regular gaps
        for i in range(6):
            rgba[210:240, 180 + i * 28:200 + i * 28] = [170, 140, 100, 255]

    return rgba


# Build the Gradio interface
with gr.Blocks(title="Isotile") as app:

    gr.Markdown("""
    # Isotile
    ### Detect Brush Regions in Isometric Tilesets

    Upload a tileset or try a demo, adjust the settings, and download a Flare tileset definition!
    """)

    with gr.Row():
        # Left column - Input
        with gr.Column(scale=1):
            gr.Markdown("### Tileset")

            image_input = gr.Image(
                label="Upload Tileset (PNG recommended)",
                type="numpy",
                image_mode="RGBA"
            )

            with gr.Row():
                demo_dropdown = gr.Dropdown(
                    choices=["Floor Tiles", "Walls", "Mixed"],
                    label="Or try a demo"
                )
                demo_btn = gr.Button("Load Demo")

            gr.Markdown("### Settings")

            tile_width = gr.Slider(minimum=16, maximum=256, value=64, step=2, label="Tile Width")
            tile_height = gr.Slider(minimum=8, maximum=128, value=32, step=1, label="Tile Height")

            threshold = gr.Slider(
                minimum=0,
                maximum=255,
                value=10,
                step=1,
                label="Alpha Threshold"
            )

            min_size = gr.Slider(
                minimum=1,
                maximum=64,
                value=8,
                step=1,
                label="Min Region Size"
            )

            detect_btn = gr.Button("Detect Regions", variant="primary")

        # Middle column - Overlay
        with gr.Column(scale=2):
            gr.Markdown("### Detected Regions")

            overlay_output = gr.Image(label="Regions", type="pil")

            stats_output = gr.Markdown(
                value="Upload a tileset and click 'Detect Regions' to see results."
            )

            regions_output = gr.Dataframe(headers=TABLE_HEADERS, label="Regions")

        # Right column - Export
        with gr.Column(scale=1):
            gr.Markdown("### Flare Tileset")

            tileset_text = gr.Textbox(label="tileset.txt", lines=20)
            tileset_file = gr.File(label="Download tileset.txt")

            gr.Markdown("""
            ---
            **Tips:**
            - **Threshold** = alpha at or below it is transparent
            - **Min Size** = drops specks and stray pixels
            - Wide floor strips are cut into tile-sized brushes
            - Upright walls stay whole
            """)

    # Wire up events
    demo_btn.click(
        fn=create_demo_tileset,
        inputs=[demo_dropdown],
        outputs=[image_input]
    )

    detect_btn.click(
        fn=process_tileset,
        inputs=[image_input, tile_width, tile_height, threshold, min_size],
        outputs=[overlay_output, stats_output, regions_output, tileset_text, tileset_file]
    )


if __name__ == "__main__":
    print("\n" + "="*60)
    print("Isotile Web Interface")
    print("="*60)
    print("\nStarting server...")
    print("Open http://localhost:7860 in your browser\n")

    app.launch(
        server_name="0.0.0.0",
        server_port=7860,
        share=False
    )
