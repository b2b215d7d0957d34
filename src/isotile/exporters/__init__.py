"""
Export modules for map text formats.

Supported formats:
- Flare (.txt) - tileset definition and map files
"""

from .flare_exporter import FlareExporter

__all__ = ["FlareExporter"]
