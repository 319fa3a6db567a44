"""Canvas state -- cache, sync cursor and incremental tile sync.

``CanvasState.sync`` refreshes the cache for the area covered by the
target pixels:

    1. Bounding box of the target set -> origins of the covering tiles.
    2. Tiles requested in batches of ``tiles_per_request`` with the cursor
       snapshot taken when the sync started.
    3. Every returned tile decoded (delta and full tiles may be mixed;
       full bitmaps decode in a worker thread).
       A tile that fails to decode is logged and skipped.
    4. Cursor advanced to the largest ``ServerTimestamp`` observed.

Calling ``sync`` twice with no server-side change leaves the cache
unchanged: empty deltas are no-ops and full tiles decode to the same ids.

A ``reload`` between steps 2 and 4 bumps ``generation``; the late sync
may still fill the fresh cache but does not advance its cursor.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ghostpixel.canvas.cache import CanvasStateCache
from ghostpixel.canvas.grid import GridCoordinate, PixelSample, bounding_box, tiles_covering
from ghostpixel.canvas.tiles import decode_tile_async
from ghostpixel.errors import TileDecodeError

logger = logging.getLogger(__name__)

DEFAULT_TILE_SIZE = 1000
DEFAULT_TILES_PER_REQUEST = 9


@dataclass
class SyncReport:
    """Outcome of one ``sync`` pass."""

    tiles_requested: int = 0
    tiles_decoded: int = 0
    pixels_written: int = 0
    failed_tiles: list[str] = field(default_factory=list)
    server_timestamp: int | float = 0


class CanvasState:
    """Last-known server canvas around the target image.

    Parameters
    ----------
    tile_size : int
        Edge length of a server tile in grid units.
    tiles_per_request : int
        Upper bound on tiles per ``GetPixelsCached`` request.
    """

    def __init__(
        self,
        tile_size: int = DEFAULT_TILE_SIZE,
        tiles_per_request: int = DEFAULT_TILES_PER_REQUEST,
    ) -> None:
        if tile_size <= 0:
            raise ValueError(f"tile_size must be positive, got {tile_size}")
        if tiles_per_request <= 0:
            raise ValueError(
                f"tiles_per_request must be positive, got {tiles_per_request}"
            )
        self.tile_size = tile_size
        self.tiles_per_request = tiles_per_request
        self.cache = CanvasStateCache()
        self._cursor: int | float = 0
        self._generation = 0

    @property
    def cursor(self) -> int | float:
        """Server timestamp up to which the cache is known fresh."""
        return self._cursor

    @property
    def generation(self) -> int:
        return self._generation

    def reset(self) -> None:
        """Drop all cached pixels and rewind the cursor (operator reload)."""
        self.cache.clear()
        self._cursor = 0
        self._generation += 1

    def tiles_for(self, target: Sequence[PixelSample]) -> list[GridCoordinate]:
        """Origins of the tiles covering the bounding box of *target*."""
        box = bounding_box(p.coord for p in target)
        if box is None:
            return []
        return tiles_covering(box[0], box[1], self.tile_size)

    async def sync(self, target: Sequence[PixelSample], fetcher: Any) -> SyncReport:
        """Refresh the cache for every tile covering *target*.

        Parameters
        ----------
        target : Sequence[PixelSample]
            Target pixels; only their bounding box matters.
        fetcher
            Object with ``async fetch_tiles(origins, timestamp)``
            returning a :class:`~ghostpixel.client.schemas.TilesResponse`.

        Raises
        ------
        NetworkError
            If a tile request fails; the cursor is left untouched.
        """
        report = SyncReport()
        origins = self.tiles_for(target)
        if not origins:
            logger.debug("Nothing to sync (empty target set)")
            return report

        generation = self._generation
        since = self._cursor
        newest = since

        for start in range(0, len(origins), self.tiles_per_request):
            batch = origins[start:start + self.tiles_per_request]
            report.tiles_requested += len(batch)
            response = await fetcher.fetch_tiles(batch, since)
            if response.server_timestamp and response.server_timestamp > newest:
                newest = response.server_timestamp

            for key, record in response.tiles.items():
                try:
                    report.pixels_written += await decode_tile_async(
                        key, record, self.tile_size, self.cache,
                    )
                    report.tiles_decoded += 1
                except TileDecodeError as exc:
                    logger.error("Skipping tile %s: %s", key, exc)
                    report.failed_tiles.append(key)

        if generation == self._generation:
            self._cursor = max(self._cursor, newest)
        else:
            logger.debug("Reload during sync; cursor not advanced")
        report.server_timestamp = self._cursor

        logger.debug(
            "Synced %d tiles (%d decoded, %d failed), cursor=%s",
            report.tiles_requested,
            report.tiles_decoded,
            len(report.failed_tiles),
            self._cursor,
        )
        return report

    def outstanding(self, target: Sequence[PixelSample]) -> list[PixelSample]:
        """Target pixels the cache does not show in the wanted color."""
        return [
            p for p in target
            if self.cache.color_id(p.coord) != p.color.to_id()
        ]
