"""Fakes for the GeoPixels collaborators.

``FakeServer`` keeps an authoritative canvas, answers tile requests with
delta tiles (every change newer than the requested timestamp) and applies
successful placements to its canvas, so an engine run against it behaves
like a run against the real service.
"""

from __future__ import annotations

import base64
import io
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from PIL import Image

from ghostpixel.canvas.grid import GridCoordinate, PixelSample, tile_origin
from ghostpixel.client.geopixels import PlacementResult
from ghostpixel.client.schemas import TilesResponse
from ghostpixel.client.session import Session
from ghostpixel.colors.codec import Color


RED = Color(255, 0, 0)
GREEN = Color(0, 255, 0)
BLUE = Color(0, 0, 255)
WHITE = Color(255, 255, 255)
BLACK = Color(0, 0, 0)


def sample(x: int, y: int, color: Color) -> PixelSample:
    return PixelSample(GridCoordinate(x, y), color)


def encode_bitmap(rgba: np.ndarray, fmt: str = "WEBP") -> str:
    """Base64 of a lossless bitmap built from an ``(H, W, 4)`` array."""
    buf = io.BytesIO()
    img = Image.fromarray(np.asarray(rgba, dtype=np.uint8))
    if fmt == "WEBP":
        img.save(buf, format="WEBP", lossless=True)
    else:
        img.save(buf, format=fmt)
    return base64.b64encode(buf.getvalue()).decode("ascii")


@dataclass
class FakeEnergy:
    """Fixed energy budget (no regeneration, no consumption)."""

    current: int = 1
    maximum: int = 1
    seconds_per_pixel: float = 0.0


class FakeServer:
    """In-memory GeoPixels service.

    Parameters
    ----------
    tile_size : int
        Tile edge used to group changes per requested tile.
    statuses : iterable of int
        HTTP statuses returned by successive placements (then 200).
    """

    def __init__(self, tile_size: int = 1000, statuses: Iterable[int] = ()) -> None:
        self.tile_size = tile_size
        self.timestamp = 0
        self.canvas: dict[tuple[int, int], int] = {}
        self.changes: list[tuple[int, int, int, int]] = []  # (ts, x, y, id)
        self.statuses: deque[int] = deque(statuses)
        self.tile_requests: list[tuple[list[GridCoordinate], int | float]] = []
        self.placements: list[list[PixelSample]] = []
        self.tokens_seen: list[str] = []
        self.session: Session | None = None

    def paint(self, x: int, y: int, color: Color) -> None:
        """Change the canvas as another player would."""
        self.timestamp += 1
        self.canvas[(x, y)] = color.to_id()
        self.changes.append((self.timestamp, x, y, color.to_id()))

    async def fetch_tiles(
        self, origins: Sequence[GridCoordinate], timestamp: int | float,
    ) -> TilesResponse:
        self.tile_requests.append((list(origins), timestamp))
        tiles: dict[str, Any] = {}
        for origin in origins:
            pixels = [
                [x, y, cid, 7]
                for ts, x, y, cid in self.changes
                if ts > timestamp
                and tile_origin(GridCoordinate(x, y), self.tile_size) == origin
            ]
            tiles[f"{origin.x}_{origin.y}"] = {"Type": "delta", "Pixels": pixels}
        return TilesResponse.model_validate(
            {"ServerTimestamp": self.timestamp, "Tiles": tiles}
        )

    async def place_pixels(self, pixels: Sequence[PixelSample]) -> PlacementResult:
        self.placements.append(list(pixels))
        if self.session is not None:
            self.tokens_seen.append(self.session.token)
        status = self.statuses.popleft() if self.statuses else 200
        if status != 200:
            return PlacementResult(status=status, body=f"error {status}")
        for p in pixels:
            self.paint(p.coord.x, p.coord.y, p.color)
        return PlacementResult(status=200, body="ok", placed=len(pixels))


@dataclass
class FakeRelogin:
    """Relogin collaborator handing out scripted tokens."""

    session: Session
    tokens: list[str] = field(default_factory=list)
    calls: int = 0

    async def __call__(self) -> bool:
        self.calls += 1
        token = self.tokens.pop(0) if self.tokens else ""
        self.session.token = token
        return bool(token)


