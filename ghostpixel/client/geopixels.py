"""GeoPixels HTTP client.

Handles:
    - Tile sync via ``POST /GetPixelsCached`` (validated with pydantic)
    - Pixel placement via ``POST /PlacePixel`` with session credentials
    - Retry of tile requests on transport errors
    - Energy bookkeeping after successful placements

Blocking ``requests`` calls run in a worker thread (``asyncio.to_thread``)
so the engine's event loop stays responsive while a request is in flight.

Placement never raises on an HTTP error status: the caller inspects the
returned :class:`PlacementResult` (``auth_expired`` drives the relogin
path).  Transport failures raise :class:`~ghostpixel.errors.NetworkError`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import requests
from pydantic import ValidationError

from ghostpixel.canvas.grid import GridCoordinate, PixelSample
from ghostpixel.client.account import EnergyTracker
from ghostpixel.client.schemas import PlacedPixel, PlacePixelRequest, TilesResponse
from ghostpixel.client.session import Session
from ghostpixel.errors import NetworkError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://geopixels.net"
HTTP_UNAUTHORIZED = 401


@dataclass
class PlacementResult:
    """Outcome of one ``PlacePixel`` request."""

    status: int
    body: str = ""
    placed: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def auth_expired(self) -> bool:
        return self.status == HTTP_UNAUTHORIZED


class GeoPixelsClient:
    """GeoPixels API client.

    Parameters
    ----------
    session : Session
        Shared credentials used for placement.
    base_url : str
        Server root, e.g. ``https://geopixels.net``.
    tiles_endpoint, place_endpoint : str
        Endpoint paths relative to *base_url*.
    timeout : float
        Per-request timeout in seconds.
    retry_attempts : int
        Tries per tile request before giving up.
    retry_interval : float
        Seconds to wait between tile-request tries.
    energy : EnergyTracker | None
        Debited by the number of pixels after each successful placement.
    http : requests.Session | None
        Pre-built HTTP session (tests inject a mock).

    Examples
    --------
    >>> with GeoPixelsClient(Session(token="...")) as client:
    ...     tiles = asyncio.run(client.fetch_tiles([GridCoordinate(0, 0)], 0))
    """

    def __init__(
        self,
        session: Session,
        base_url: str = DEFAULT_BASE_URL,
        tiles_endpoint: str = "/GetPixelsCached",
        place_endpoint: str = "/PlacePixel",
        timeout: float = 15.0,
        retry_attempts: int = 3,
        retry_interval: float = 2.0,
        energy: EnergyTracker | None = None,
        user_agent: str | None = None,
        http: requests.Session | None = None,
    ) -> None:
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.tiles_url = self.base_url + tiles_endpoint
        self.place_url = self.base_url + place_endpoint
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_interval = retry_interval
        self.energy = energy

        self._http = http or requests.Session()
        self._http.headers.update({"Content-Type": "application/json"})
        if user_agent:
            self._http.headers["User-Agent"] = user_agent

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _post(self, url: str, payload: dict[str, Any]) -> requests.Response:
        try:
            return self._http.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NetworkError(f"POST {url} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Tile sync
    # ------------------------------------------------------------------

    async def fetch_tiles(
        self,
        origins: Sequence[GridCoordinate],
        timestamp: int | float,
    ) -> TilesResponse:
        """Request the given tiles, each with freshness *timestamp*.

        Raises
        ------
        NetworkError
            After ``retry_attempts`` transport failures or error statuses,
            or when the response does not match the tile schema.
        """
        payload = {
            "Tiles": [
                {"x": o.x, "y": o.y, "timestamp": timestamp} for o in origins
            ],
        }

        last_error: Exception | None = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                resp = await asyncio.to_thread(self._post, self.tiles_url, payload)
                if not resp.ok:
                    raise NetworkError(
                        f"Tile request returned HTTP {resp.status_code}: "
                        f"{resp.text[:200]}"
                    )
                return TilesResponse.model_validate(resp.json())
            except NetworkError as exc:
                last_error = exc
                logger.warning(
                    "Tile request attempt %d/%d failed: %s",
                    attempt, self.retry_attempts, exc,
                )
            except (ValueError, ValidationError) as exc:
                raise NetworkError(f"Malformed tile response: {exc}") from exc

            if attempt < self.retry_attempts:
                await asyncio.sleep(self.retry_interval)

        raise NetworkError(
            f"Tile sync failed after {self.retry_attempts} attempts: {last_error}"
        )

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def build_place_request(self, pixels: Sequence[PixelSample]) -> PlacePixelRequest:
        user_id = self.session.user_id
        return PlacePixelRequest(
            token=self.session.token,
            subject=self.session.subject,
            user_id=user_id,
            pixels=[
                PlacedPixel(
                    grid_x=p.coord.x,
                    grid_y=p.coord.y,
                    color=p.color.to_id(),
                    user_id=user_id,
                )
                for p in pixels
            ],
        )

    async def place_pixels(self, pixels: Sequence[PixelSample]) -> PlacementResult:
        """Submit one batch of pixels with the current credentials.

        Raises
        ------
        NetworkError
            On transport failure (no HTTP status available).
        """
        body = self.build_place_request(pixels).to_wire()
        resp = await asyncio.to_thread(self._post, self.place_url, body)
        result = PlacementResult(status=resp.status_code, body=resp.text)
        if result.ok:
            result.placed = len(pixels)
            if self.energy is not None:
                self.energy.consume(len(pixels))
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> GeoPixelsClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
