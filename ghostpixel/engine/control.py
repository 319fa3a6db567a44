"""Operator control surface -- one bot instance owning all engine state.

``GhostBot`` wires the canvas state, the reconciliation loop and the
GeoPixels collaborators together and exposes the operator commands:

    configure / ignore_colors   placement policy (applied at next rebuild)
    set_image / load_image      ghost image and its anchor
    start / stop                run or interrupt the placement loop
    reload                      forget the canvas, rebuild the target set
    status                      snapshot for display

``start``, ``stop``, ``reload``, ``configure`` and ``ignore_colors`` never
raise: problems are logged and the previous state is kept.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ghostpixel.canvas.grid import GridCoordinate, PixelSample
from ghostpixel.canvas.state import CanvasState
from ghostpixel.client.account import AccountState, EnergyTracker
from ghostpixel.client.geopixels import GeoPixelsClient
from ghostpixel.client.session import CredentialFileRelogin, Session
from ghostpixel.colors.codec import Color
from ghostpixel.colors.palette import parse_color_list
from ghostpixel.configs.loader import BotConfig
from ghostpixel.engine.reconciler import (
    EngineState,
    PixelPlacer,
    Reconciler,
    Relogin,
    RunOutcome,
)
from ghostpixel.errors import ConfigError, GhostPixelError, ImageNotLoaded
from ghostpixel.target.extractor import (
    TargetImage,
    TargetPolicy,
    build_target_set,
    load_target_image,
)

logger = logging.getLogger(__name__)


@dataclass
class BotStatus:
    """Point-in-time view of the bot for display."""

    state: EngineState
    image: str | None
    target_pixels: int
    cached_pixels: int
    cursor: int | float
    outstanding: int
    energy: int
    ignored_colors: list[str]
    last_outcome: RunOutcome | None = None

    def summary(self) -> str:
        return (
            f"{self.state.name.lower()}: {self.outstanding}/{self.target_pixels} "
            f"outstanding, energy {self.energy}, cache {self.cached_pixels} px"
        )


class GhostBot:
    """GhostPixel bot instance.

    Parameters
    ----------
    client : PixelPlacer
        Provides ``fetch_tiles`` and ``place_pixels``.
    session : Session
        Shared credentials.
    account : AccountState
        Allowed palette and energy tracker.
    relogin : callable
        ``async () -> bool`` refreshing *session*.
    canvas : CanvasState | None
        Canvas model; a default-sized one is created when omitted.
    policy : TargetPolicy
        Initial placement policy.
    energy_reserve : int
        Energy kept back when the backlog exceeds the energy ceiling.
    """

    def __init__(
        self,
        client: PixelPlacer,
        session: Session,
        account: AccountState,
        relogin: Relogin,
        canvas: CanvasState | None = None,
        policy: TargetPolicy = TargetPolicy(),
        energy_reserve: int = 2,
    ) -> None:
        self.client = client
        self.session = session
        self.account = account
        self.canvas = canvas or CanvasState()
        self.engine = Reconciler(
            self.canvas, client, session, account.energy, relogin, energy_reserve,
        )
        self._policy = policy
        self._image: TargetImage | None = None
        self._target: tuple[PixelSample, ...] = ()
        self._task: asyncio.Task[RunOutcome] | None = None

    @classmethod
    def from_config(
        cls,
        cfg: BotConfig,
        session: Session | None = None,
        client: PixelPlacer | None = None,
    ) -> GhostBot:
        """Build a bot with the collaborators described by *cfg*.

        The session is read from ``cfg.session.credentials_file`` unless
        given.  A missing or unreadable credentials file yields a logged-out
        session (the first placement then goes through relogin).
        """
        creds = Path(cfg.session.credentials_file).expanduser()
        if session is None:
            try:
                session = Session.from_file(creds)
            except (FileNotFoundError, ConfigError) as exc:
                logger.warning("No usable credentials (%s); starting logged out", exc)
                session = Session()

        energy = EnergyTracker(
            cfg.energy.current, cfg.energy.maximum, cfg.energy.seconds_per_pixel,
        )
        account = AccountState(cfg.palette_colors(), energy)
        if client is None:
            client = GeoPixelsClient(
                session,
                base_url=cfg.server.base_url,
                tiles_endpoint=cfg.server.tiles_endpoint,
                place_endpoint=cfg.server.place_endpoint,
                timeout=cfg.server.timeout_s,
                retry_attempts=cfg.server.retry_attempts,
                retry_interval=cfg.server.retry_interval_s,
                energy=energy,
                user_agent=cfg.server.user_agent or None,
            )

        bot = cls(
            client,
            session,
            account,
            CredentialFileRelogin(session, creds),
            canvas=CanvasState(cfg.sync.tile_size, cfg.sync.tiles_per_request),
            policy=TargetPolicy(
                include_transparent=cfg.placement.include_transparent,
                include_free_colors=cfg.placement.include_free_colors,
            ),
            energy_reserve=cfg.placement.energy_reserve,
        )
        if cfg.placement.ignored_colors:
            bot.ignore_colors(list(cfg.placement.ignored_colors))
        return bot

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    @property
    def policy(self) -> TargetPolicy:
        return self._policy

    @property
    def target(self) -> tuple[PixelSample, ...]:
        return self._target

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def configure(
        self,
        include_transparent: bool | None = None,
        include_free_colors: bool | None = None,
    ) -> None:
        """Update the inclusion flags; takes effect at the next reload."""
        changes: dict[str, Any] = {}
        if include_transparent is not None:
            changes["include_transparent"] = bool(include_transparent)
        if include_free_colors is not None:
            changes["include_free_colors"] = bool(include_free_colors)
        if changes:
            self._policy = dataclasses.replace(self._policy, **changes)
            logger.info(
                "Placement policy: transparent=%s, free colors=%s",
                self._policy.include_transparent,
                self._policy.include_free_colors,
            )

    def ignore_colors(
        self,
        values: str | Iterable[str | int | Color] | None = None,
        sep: str = ",",
    ) -> None:
        """Replace the ignored-color set; takes effect at the next reload.

        Accepts a list or a *sep*-joined string of hex colors, packed ids
        or color names.  ``None`` or an empty list clears the set.  On an
        unreadable token the previous set is kept.
        """
        try:
            ids = parse_color_list(values, sep)
        except GhostPixelError as exc:
            logger.error("Ignored colors unchanged: %s", exc)
            return
        self._policy = dataclasses.replace(self._policy, ignored_ids=frozenset(ids))
        logger.info("New ignored colors: %s", _describe_ids(ids))

    # ------------------------------------------------------------------
    # Image
    # ------------------------------------------------------------------

    def set_image(self, image: TargetImage) -> None:
        """Use *image* as the ghost image and rebuild the target set."""
        self._image = image
        self._rebuild_target()

    def load_image(self, source: str | Path, x: int, y: int) -> TargetImage:
        """Load a ghost image from a path or URL, anchored at ``(x, y)``.

        Raises
        ------
        ImageNotLoaded
            If the image cannot be read.
        """
        image = load_target_image(source, GridCoordinate(int(x), int(y)))
        self.set_image(image)
        return image

    def _rebuild_target(self) -> None:
        if self._image is None:
            self._target = ()
            return
        self._target = build_target_set(
            self._image, self.account.allowed_ids, self._policy,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task[RunOutcome] | None:
        """Start the placement loop (must be called inside an event loop).

        Returns the running task.  Calling it while the loop is running
        returns the existing task; without a ghost image nothing starts.
        """
        if self.running:
            logger.info("Ghost bot already running")
            return self._task
        if self._image is None:
            logger.error("Cannot start: %s", ImageNotLoaded("no ghost image loaded"))
            return None
        try:
            self._task = self.engine.start(lambda: self._target)
        except RuntimeError as exc:
            logger.error("Cannot start outside an event loop: %s", exc)
            return None
        logger.info("Ghost bot started (%d target pixels)", len(self._target))
        return self._task

    async def run(self) -> RunOutcome | None:
        """Start the loop and wait for it to end."""
        task = self.start()
        if task is None:
            return None
        return await task

    def stop(self) -> None:
        """Interrupt the loop at its next boundary, waking any energy wait."""
        if not self.running:
            logger.info("Ghost bot is not running")
            return
        self.engine.request_stop()

    def reload(self) -> None:
        """Forget the canvas model and rebuild the target set.

        The cache and sync cursor are cleared at once; the next pass
        re-syncs from scratch with the current policy and ignore list.
        """
        self.canvas.reset()
        try:
            self._rebuild_target()
        except GhostPixelError as exc:
            logger.error("Reload failed: %s", exc)
            return
        logger.info("Reloaded: %d target pixels", len(self._target))

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def status(self) -> BotStatus:
        return BotStatus(
            state=self.engine.state,
            image=self._image.source if self._image is not None else None,
            target_pixels=len(self._target),
            cached_pixels=len(self.canvas.cache),
            cursor=self.canvas.cursor,
            outstanding=self.engine.last_pass.outstanding,
            energy=self.account.energy.current,
            ignored_colors=_describe_ids(self._policy.ignored_ids),
            last_outcome=self.engine.last_outcome,
        )


def _describe_ids(ids: Iterable[int]) -> list[str]:
    return [Color.from_id(i).to_hex() for i in sorted(ids)]
