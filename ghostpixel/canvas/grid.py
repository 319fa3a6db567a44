"""Grid value types -- coordinates, pixel samples, tile arithmetic.

Grid coordinates are absolute canvas positions with **Y growing upward**.
Source images (ghost images and full tiles) index rows downward, so a
pixel at buffer index ``i`` of a ``width``-wide image anchored at
``top_left`` lands on ``(top_left.x + i % width, top_left.y - i // width)``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ghostpixel.colors.codec import Color


@dataclass(frozen=True, slots=True)
class GridCoordinate:
    """Absolute integer position on the shared canvas."""

    x: int
    y: int

    @property
    def key(self) -> tuple[int, int]:
        """Hashable cache key."""
        return (self.x, self.y)


@dataclass(frozen=True, slots=True)
class PixelSample:
    """One colored grid cell -- the unit of target and canvas data."""

    coord: GridCoordinate
    color: Color


def pixel_to_grid(index: int, top_left: GridCoordinate, width: int) -> GridCoordinate:
    """Map a row-major buffer index to its grid coordinate."""
    return GridCoordinate(
        top_left.x + index % width,
        top_left.y - index // width,
    )


def tile_origin(coord: GridCoordinate, tile_size: int) -> GridCoordinate:
    """Floor *coord* to the origin of the tile that contains it."""
    return GridCoordinate(
        (coord.x // tile_size) * tile_size,
        (coord.y // tile_size) * tile_size,
    )


def bounding_box(
    coords: Iterable[GridCoordinate],
) -> tuple[GridCoordinate, GridCoordinate] | None:
    """Return ``(min_corner, max_corner)`` or ``None`` for no coordinates."""
    xs: list[int] = []
    ys: list[int] = []
    for c in coords:
        xs.append(c.x)
        ys.append(c.y)
    if not xs:
        return None
    return GridCoordinate(min(xs), min(ys)), GridCoordinate(max(xs), max(ys))


def tiles_covering(
    lo: GridCoordinate, hi: GridCoordinate, tile_size: int,
) -> list[GridCoordinate]:
    """Origins of every tile intersecting the box ``lo..hi`` (inclusive).

    Ordered column by column (X outer, Y inner), ascending.
    """
    first = tile_origin(lo, tile_size)
    last = tile_origin(hi, tile_size)
    return [
        GridCoordinate(x, y)
        for x in range(first.x, last.x + 1, tile_size)
        for y in range(first.y, last.y + 1, tile_size)
    ]
