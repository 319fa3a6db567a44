"""Tile codec -- decode server tiles into the canvas-state cache.

The canvas is split into square tiles of ``tile_size`` grid units.  For
each requested tile the server answers with either:

delta
    ``Pixels``: ``[x, y, colorId, placerId]`` tuples changed since the
    requested timestamp (absolute grid coordinates).
full
    ``ColorWebP``: base64 WebP of the whole tile.  The bitmap is stored
    bottom-row-first, so it is flipped before being mapped with the
    usual downward-row rule anchored at the tile's top row
    ``origin.y + tile_size - 1``.  Net effect: bitmap row ``r``, column
    ``c`` lands on grid ``(origin.x + c, origin.y + r)``.

Decoders only write into the cache, they never read from it.
:func:`decode_tile_async` is the entry point used during sync; it keeps
bitmap decoding off the event loop.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging

import numpy as np
from PIL import Image, UnidentifiedImageError

from ghostpixel.canvas.cache import CanvasStateCache
from ghostpixel.canvas.grid import GridCoordinate
from ghostpixel.client.schemas import TileRecord
from ghostpixel.colors.codec import Color, rgba_to_ids
from ghostpixel.errors import TileDecodeError

logger = logging.getLogger(__name__)

TILE_DELTA = "delta"
TILE_FULL = "full"

# Cells written per event-loop step when storing a decoded full tile
WRITE_CHUNK = 65536


def parse_tile_key(key: str) -> GridCoordinate:
    """Extract the tile origin from a response key.

    Keys look like ``"1000_2000"`` or ``"tile_1000_-2000"``; non-numeric
    parts are ignored and the first two integers are the origin.

    Raises
    ------
    TileDecodeError
        If fewer than two integers are present.
    """
    numbers: list[int] = []
    for part in str(key).split("_"):
        try:
            numbers.append(int(part))
        except ValueError:
            continue
    if len(numbers) < 2:
        raise TileDecodeError(f"Tile key {key!r} does not contain an origin")
    return GridCoordinate(numbers[0], numbers[1])


def decode_delta(record: TileRecord, cache: CanvasStateCache) -> int:
    """Write every changed pixel of a delta tile.

    Returns
    -------
    int
        Number of pixels written (``0`` for an unchanged tile).
    """
    written = 0
    for entry in record.pixels:
        if len(entry) < 3:
            raise TileDecodeError(f"Malformed delta pixel: {entry!r}")
        x, y, color_id = entry[0], entry[1], entry[2]
        cache.set_id(x, y, Color.from_id(color_id).to_id())
        written += 1
    return written


def webp_to_grid_rows(payload: str, tile_size: int) -> np.ndarray:
    """Decode a base64 tile bitmap into grid-ordered RGBA rows.

    Parameters
    ----------
    payload : str
        Base64 bitmap (WebP in practice; any Pillow-readable format
        works).  A ``data:...;base64,`` prefix is tolerated.
    tile_size : int
        Edge length of the tile in grid units.

    Returns
    -------
    np.ndarray
        ``(tile_size, tile_size, 4)`` uint8 array whose row 0 is the
        tile's top grid row (``origin.y + tile_size - 1``).  Cells the
        bitmap does not cover are transparent.

    Raises
    ------
    TileDecodeError
        On malformed base64 or an undecodable bitmap.
    """
    if payload.startswith("data:"):
        payload = payload.partition(",")[2]
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise TileDecodeError(f"Tile bitmap is not valid base64: {exc}") from exc
    if not raw:
        raise TileDecodeError("Tile bitmap is empty")

    try:
        with Image.open(io.BytesIO(raw)) as img:
            rgba = np.asarray(img.convert("RGBA"), dtype=np.uint8)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise TileDecodeError(f"Tile bitmap could not be decoded: {exc}") from exc

    # Bottom-row-first bitmap drawn into a tile-sized buffer, then flipped
    h = min(rgba.shape[0], tile_size)
    w = min(rgba.shape[1], tile_size)
    rows = np.zeros((tile_size, tile_size, 4), dtype=np.uint8)
    rows[tile_size - h:, :w] = rgba[:h, :w][::-1]
    return rows


def full_tile_cells(
    record: TileRecord,
    origin: GridCoordinate,
    tile_size: int,
) -> tuple[list[tuple[int, int]], list[int]]:
    """Decode a full tile into parallel cell-key and color-id lists.

    Touches no shared state, so it can run in a worker thread.

    Raises
    ------
    TileDecodeError
        If the record has no bitmap or the bitmap cannot be decoded.
    """
    if not record.color_webp:
        raise TileDecodeError(f"Full tile at {origin} has no bitmap")

    rows = webp_to_grid_rows(record.color_webp, tile_size)
    ids = rgba_to_ids(rows)

    top = origin.y + tile_size - 1
    row_idx, col_idx = np.indices(ids.shape)
    xs = (origin.x + col_idx).ravel().tolist()
    ys = (top - row_idx).ravel().tolist()
    return list(zip(xs, ys)), ids.ravel().tolist()


def decode_full(
    record: TileRecord,
    origin: GridCoordinate,
    tile_size: int,
    cache: CanvasStateCache,
) -> int:
    """Decode a full tile and overwrite all of its cells in the cache.

    Returns
    -------
    int
        Number of cells written (``tile_size ** 2``).
    """
    keys, ids = full_tile_cells(record, origin, tile_size)
    cache.update_ids(keys, ids)
    return len(ids)


def decode_tile(
    key: str,
    record: TileRecord,
    tile_size: int,
    cache: CanvasStateCache,
) -> int:
    """Dispatch on the record type and decode into *cache*.

    Raises
    ------
    TileDecodeError
        For unknown record types or any payload decode failure.
    """
    if record.type == TILE_DELTA:
        written = decode_delta(record, cache)
        if written:
            logger.debug("Tile %s: %d changed pixels", key, written)
        return written
    if record.type == TILE_FULL:
        origin = parse_tile_key(key)
        written = decode_full(record, origin, tile_size, cache)
        logger.debug("Tile %s: full refresh at %s", key, origin)
        return written
    raise TileDecodeError(f"Unknown tile type {record.type!r} for tile {key}")


async def decode_tile_async(
    key: str,
    record: TileRecord,
    tile_size: int,
    cache: CanvasStateCache,
) -> int:
    """:func:`decode_tile` for use on the event loop.

    Bitmap decoding of full tiles runs in a worker thread and the cells
    are written back in chunks, yielding between them, so other tasks
    (stop requests, signal handlers) keep running.  Delta tiles are small
    and decode inline.
    """
    if record.type != TILE_FULL:
        return decode_tile(key, record, tile_size, cache)

    origin = parse_tile_key(key)
    keys, ids = await asyncio.to_thread(full_tile_cells, record, origin, tile_size)
    for start in range(0, len(ids), WRITE_CHUNK):
        cache.update_ids(
            keys[start:start + WRITE_CHUNK], ids[start:start + WRITE_CHUNK],
        )
        await asyncio.sleep(0)
    logger.debug("Tile %s: full refresh at %s", key, origin)
    return len(ids)
