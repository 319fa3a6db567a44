"""Reconciliation loop -- diff the canvas against the ghost image and place.

One pass of the loop:

    1. Stop check.
    2. Sync the canvas cache for the tiles under the target set.
    3. Outstanding = target pixels the cache does not show correctly.
       None left -> done.
    4. Order outstanding pixels by ascending color frequency (rare colors
       first, stable within a color).
    5. Batch = as many pixels as the energy budget allows; an empty batch
       only waits for energy.
    6. Submit.  A rejected session (HTTP 401) triggers one relogin and one
       resubmission of the same batch.
    7. Logged out -> stop.  Whole backlog submitted -> stop.
    8. Sleep until enough energy has regenerated (interruptible by
       :meth:`Reconciler.request_stop`).

Submitted pixels are never written to the cache locally; the next sync is
the only source of truth, so pixels overwritten by other players are
picked up again.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Protocol

from ghostpixel.canvas.grid import PixelSample
from ghostpixel.canvas.state import CanvasState
from ghostpixel.client.geopixels import PlacementResult
from ghostpixel.client.session import Session
from ghostpixel.errors import GhostPixelError

logger = logging.getLogger(__name__)

DEFAULT_ENERGY_RESERVE = 2


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class TileFetcher(Protocol):
    async def fetch_tiles(self, origins: Sequence[Any], timestamp: int | float) -> Any: ...


class PixelPlacer(TileFetcher, Protocol):
    async def place_pixels(self, pixels: Sequence[PixelSample]) -> PlacementResult: ...


class EnergyBudget(Protocol):
    @property
    def current(self) -> int: ...

    @property
    def maximum(self) -> int: ...

    @property
    def seconds_per_pixel(self) -> float: ...


Relogin = Callable[[], Awaitable[bool]]


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class EngineState(Enum):
    """Current engine state."""

    IDLE = auto()
    RUNNING = auto()


class RunOutcome(Enum):
    """Why the last run ended."""

    COMPLETE = auto()
    STOPPED = auto()
    LOGGED_OUT = auto()
    FAILED = auto()


@dataclass
class PassReport:
    """Counters of the most recent loop pass."""

    outstanding: int = 0
    submitted: int = 0
    placed: int = 0
    wait_s: float = 0.0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def order_by_color_rarity(pixels: Sequence[PixelSample]) -> list[PixelSample]:
    """Sort *pixels* so the least frequent colors come first.

    Frequencies are counted within *pixels* itself.  The sort is stable,
    so pixels sharing a frequency keep their relative order.
    """
    counts = Counter(p.color.to_id() for p in pixels)
    return sorted(pixels, key=lambda p: counts[p.color.to_id()])


def wait_seconds(
    outstanding: int,
    maximum: int,
    seconds_per_pixel: float,
    reserve: int = DEFAULT_ENERGY_RESERVE,
) -> float:
    """Delay before the next pass.

    Waits long enough to regenerate the whole backlog when it fits under
    the energy ceiling, otherwise a nearly full bar (``maximum - reserve``).
    """
    if maximum > outstanding:
        pixels = outstanding
    else:
        pixels = max(0, maximum - max(0, reserve))
    return pixels * seconds_per_pixel


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class Reconciler:
    """Budgeted placement loop over a :class:`CanvasState`.

    Parameters
    ----------
    canvas : CanvasState
        Cache, cursor and tile sync.
    client : PixelPlacer
        Provides ``fetch_tiles`` and ``place_pixels``.
    session : Session
        Shared credentials; an empty token means "logged out".
    energy : EnergyBudget
        Read-only energy view (``current``, ``maximum``,
        ``seconds_per_pixel``).
    relogin : callable
        ``async () -> bool`` that refreshes *session*.
    energy_reserve : int
        Energy held back when the backlog exceeds ``maximum``.
    """

    def __init__(
        self,
        canvas: CanvasState,
        client: PixelPlacer,
        session: Session,
        energy: EnergyBudget,
        relogin: Relogin,
        energy_reserve: int = DEFAULT_ENERGY_RESERVE,
    ) -> None:
        self.canvas = canvas
        self._client = client
        self._session = session
        self._energy = energy
        self._relogin = relogin
        self.energy_reserve = max(0, int(energy_reserve))

        self._state = EngineState.IDLE
        self._stop = asyncio.Event()
        self.last_pass = PassReport()
        self.last_outcome: RunOutcome | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        """Ask the loop to stop at the next pass boundary.

        Wakes the inter-batch sleep immediately.
        """
        self._stop.set()

    def start(
        self, target: Callable[[], Sequence[PixelSample]],
    ) -> asyncio.Task[RunOutcome]:
        """Clear any pending stop and schedule :meth:`run` as a task.

        The stop event is recreated for every start so the engine can be
        run again under a new event loop.

        Raises
        ------
        RuntimeError
            If no event loop is running.
        """
        loop = asyncio.get_running_loop()
        self._stop = asyncio.Event()
        self._state = EngineState.RUNNING
        return loop.create_task(self.run(target), name="ghostpixel-reconciler")

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, batch: Sequence[PixelSample]) -> PlacementResult:
        """Place *batch*, recovering once from an expired session.

        On HTTP 401 the token is cleared and the relogin collaborator is
        called; when it succeeds the same batch is sent exactly once more.
        A failed relogin or a failed resubmission leaves the token empty.
        Any other error status drops the batch for this pass.
        """
        result = await self._client.place_pixels(batch)
        if result.ok:
            logger.info("Placed %d pixels!", len(batch))
            return result

        logger.warning("Placement failed (HTTP %d): %s", result.status, result.body)
        if not result.auth_expired:
            return result

        self._session.clear_token()
        if not await self._relogin():
            return result

        retry = await self._client.place_pixels(batch)
        if retry.ok:
            logger.info("Placed %d pixels!", len(batch))
        else:
            logger.warning(
                "Placement retry failed (HTTP %d): %s", retry.status, retry.body,
            )
            self._session.clear_token()
        return retry

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _sleep(self, seconds: float) -> None:
        if seconds <= 0:
            # Still yield so stop requests and other tasks get a turn
            await asyncio.sleep(0)
            return
        logger.debug("Waiting %.1fs for energy", seconds)
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_pass(self, target: Sequence[PixelSample]) -> RunOutcome | None:
        """Run one sync/diff/submit pass.

        Returns
        -------
        RunOutcome | None
            Why the loop should end, or ``None`` to keep going.
        """
        report = PassReport()
        self.last_pass = report

        await self.canvas.sync(target, self._client)
        if self._stop.is_set():
            return RunOutcome.STOPPED

        outstanding = order_by_color_rarity(self.canvas.outstanding(target))
        report.outstanding = len(outstanding)
        if not outstanding:
            logger.info("All pixels are correctly placed.")
            return RunOutcome.COMPLETE

        batch = outstanding[:max(0, self._energy.current)]
        report.submitted = len(batch)
        if batch:
            logger.info("Placing %d/%d pixels...", len(batch), len(outstanding))
            result = await self.submit(batch)
            report.placed = result.placed if result.ok else 0
        else:
            logger.debug("No energy available (%d pixels outstanding)", len(outstanding))

        if not self._session.logged_in:
            logger.warning("logged out => stopping the bot")
            return RunOutcome.LOGGED_OUT
        if len(batch) == len(outstanding):
            logger.info("All pixels are correctly placed.")
            return RunOutcome.COMPLETE

        report.wait_s = wait_seconds(
            len(outstanding),
            self._energy.maximum,
            self._energy.seconds_per_pixel,
            self.energy_reserve,
        )
        if not batch:
            # Nothing placed: wait for at least one unit of energy
            report.wait_s = max(report.wait_s, self._energy.seconds_per_pixel)
        await self._sleep(report.wait_s)
        return None

    async def run(
        self, target: Callable[[], Sequence[PixelSample]],
    ) -> RunOutcome:
        """Loop until done, logged out, stopped or failed.

        Parameters
        ----------
        target : callable
            Returns the current target set; read at the start of every
            pass so a reload takes effect on the next one.

        Never raises for engine errors: they are logged and end the run.
        A stop requested before the call ends it without a pass; use
        :meth:`start` to begin a fresh run after a stop.
        """
        self._state = EngineState.RUNNING
        outcome = RunOutcome.STOPPED
        try:
            while not self._stop.is_set():
                ended = await self.run_pass(target())
                if ended is not None:
                    outcome = ended
                    break
        except GhostPixelError as exc:
            logger.error("Ghost bot error: %s", exc)
            outcome = RunOutcome.FAILED
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error in ghost bot loop: %s", exc)
            outcome = RunOutcome.FAILED
        finally:
            self._state = EngineState.IDLE
            self.last_outcome = outcome
            logger.info("Ghost bot stopped")
        return outcome
