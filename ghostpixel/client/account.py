"""Account state -- allowed palette and energy budget.

Energy is the server's rate-limit currency: one unit per placed pixel,
regenerating one unit every ``seconds_per_pixel`` up to ``maximum``.
The tracker models regeneration locally from the last known value so the
engine can read a current budget without polling the server.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from ghostpixel.colors.codec import Color
from ghostpixel.colors.palette import palette_ids

logger = logging.getLogger(__name__)


class EnergyTracker:
    """Locally regenerated energy budget.

    Parameters
    ----------
    current : float
        Energy available now.
    maximum : int
        Regeneration ceiling.
    seconds_per_pixel : float
        Seconds to regenerate one unit.  ``0`` means "always full".
    clock : callable
        Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        current: float,
        maximum: int,
        seconds_per_pixel: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if maximum < 0:
            raise ValueError(f"maximum must be >= 0, got {maximum}")
        if seconds_per_pixel < 0:
            raise ValueError(
                f"seconds_per_pixel must be >= 0, got {seconds_per_pixel}"
            )
        self._clock = clock
        self._maximum = int(maximum)
        self._rate = float(seconds_per_pixel)
        self._stored = min(float(current), float(maximum))
        self._stamp = clock()

    @property
    def maximum(self) -> int:
        return self._maximum

    @property
    def seconds_per_pixel(self) -> float:
        return self._rate

    def _level(self) -> float:
        if self._rate == 0:
            return float(self._maximum)
        elapsed = self._clock() - self._stamp
        return min(float(self._maximum), self._stored + elapsed / self._rate)

    @property
    def current(self) -> int:
        """Whole energy units available right now."""
        return max(0, math.floor(self._level()))

    def consume(self, pixels: int) -> None:
        """Deduct *pixels* units after a successful placement."""
        self._stored = max(0.0, self._level() - pixels)
        self._stamp = self._clock()

    def reset(
        self,
        current: float,
        maximum: int | None = None,
        seconds_per_pixel: float | None = None,
    ) -> None:
        """Overwrite the model with server-reported values."""
        if maximum is not None:
            self._maximum = int(maximum)
        if seconds_per_pixel is not None:
            self._rate = float(seconds_per_pixel)
        self._stored = min(float(current), float(self._maximum))
        self._stamp = self._clock()
        logger.debug(
            "Energy reset to %.1f/%d (%.2fs per pixel)",
            self._stored, self._maximum, self._rate,
        )


@dataclass
class AccountState:
    """Palette and energy the engine reads before every pass."""

    palette: tuple[Color, ...]
    energy: EnergyTracker

    @classmethod
    def from_colors(
        cls, colors: Iterable[str | int | Color], energy: EnergyTracker,
    ) -> AccountState:
        return cls(tuple(Color.parse(c) for c in colors), energy)

    @property
    def allowed_ids(self) -> frozenset[int]:
        return palette_ids(self.palette)
