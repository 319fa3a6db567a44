"""
Canvas model.

Grid value types, the tile codec (delta / full WebP tiles) and the
canvas-state cache with its incremental sync.
"""

from ghostpixel.canvas.cache import CanvasStateCache
from ghostpixel.canvas.grid import GridCoordinate, PixelSample, tile_origin, tiles_covering
from ghostpixel.canvas.state import CanvasState, SyncReport
from ghostpixel.canvas.tiles import decode_tile, decode_tile_async, parse_tile_key

__all__ = [
    "CanvasState",
    "CanvasStateCache",
    "GridCoordinate",
    "PixelSample",
    "SyncReport",
    "decode_tile",
    "decode_tile_async",
    "parse_tile_key",
    "tile_origin",
    "tiles_covering",
]
