"""Configuration loader for the GhostPixel bot.

Loads and validates ``bot.yaml`` into typed, frozen dataclasses.  Server
endpoints, sync batching, placement policy, the energy model and the
allowed palette all come from the config.

Energy regeneration is stored in **seconds per pixel** throughout Python,
the unit the placement loop waits in.

Usage::

    from ghostpixel.configs.loader import load_config
    cfg = load_config()                    # default path
    cfg = load_config("/custom/bot.yaml")  # explicit path
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ghostpixel.colors.codec import Color
from ghostpixel.errors import ConfigError, InvalidColorFormat
from ghostpixel.utils.fs import load_yaml

logger = logging.getLogger(__name__)

__all__ = [
    "BotConfig",
    "ConfigError",
    "EnergyConfig",
    "LoggingConfig",
    "PlacementConfig",
    "ServerConfig",
    "SessionConfig",
    "SyncConfig",
    "load_config",
]


# ---------------------------------------------------------------------------
# Dataclasses -- mirror the YAML structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerConfig:
    """GeoPixels API connection settings."""

    base_url: str
    tiles_endpoint: str
    place_endpoint: str
    timeout_s: float
    retry_attempts: int = 3
    retry_interval_s: float = 2.0
    user_agent: str = ""


@dataclass(frozen=True)
class SyncConfig:
    """Tile sync geometry and batching."""

    tile_size: int
    tiles_per_request: int


@dataclass(frozen=True)
class PlacementConfig:
    """Which ghost pixels are placed and how much energy is held back."""

    energy_reserve: int
    include_transparent: bool
    include_free_colors: bool
    ignored_colors: tuple[str, ...] = ()


@dataclass(frozen=True)
class EnergyConfig:
    """Starting energy budget and regeneration rate."""

    current: float
    maximum: int
    seconds_per_pixel: float


@dataclass(frozen=True)
class SessionConfig:
    """Where the session credentials live."""

    credentials_file: str


@dataclass(frozen=True)
class LoggingConfig:
    """Arguments forwarded to ``setup_logging``."""

    level: str = "INFO"
    file: str | None = None
    json: bool = False
    color: bool = True
    max_bytes: int = 0
    backup_count: int = 3


@dataclass(frozen=True)
class BotConfig:
    """Top-level bot configuration.  Frozen after load."""

    server: ServerConfig
    sync: SyncConfig
    placement: PlacementConfig
    energy: EnergyConfig
    palette: tuple[str, ...]
    session: SessionConfig
    logging: LoggingConfig

    def palette_colors(self) -> tuple[Color, ...]:
        """Allowed palette as :class:`Color` values."""
        return tuple(Color.parse(c) for c in self.palette)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _validate_config(cfg: BotConfig) -> None:
    """Validate cross-field consistency.

    Raises
    ------
    ConfigError
        On any invalid combination.
    """
    # -- Server ---------------------------------------------------------------
    s = cfg.server
    if not s.base_url.startswith(("http://", "https://")):
        raise ConfigError(f"server.base_url must be an http(s) URL, got {s.base_url!r}")
    for name in ("tiles_endpoint", "place_endpoint"):
        if not getattr(s, name).startswith("/"):
            raise ConfigError(f"server.{name} must start with '/', got {getattr(s, name)!r}")
    if s.timeout_s <= 0:
        raise ConfigError(f"timeout_s must be > 0, got {s.timeout_s}")
    if s.retry_attempts < 1:
        raise ConfigError(f"retry_attempts must be >= 1, got {s.retry_attempts}")
    if s.retry_interval_s < 0:
        raise ConfigError(f"retry_interval_s must be >= 0, got {s.retry_interval_s}")

    # -- Sync geometry --------------------------------------------------------
    if cfg.sync.tile_size <= 0:
        raise ConfigError(f"sync.tile_size must be > 0, got {cfg.sync.tile_size}")
    if cfg.sync.tiles_per_request < 1:
        raise ConfigError(
            f"sync.tiles_per_request must be >= 1, got {cfg.sync.tiles_per_request}"
        )

    # -- Energy ---------------------------------------------------------------
    e = cfg.energy
    if e.maximum < 0:
        raise ConfigError(f"energy.maximum must be >= 0, got {e.maximum}")
    if e.current < 0:
        raise ConfigError(f"energy.current must be >= 0, got {e.current}")
    if e.seconds_per_pixel < 0:
        raise ConfigError(
            f"energy.seconds_per_pixel must be >= 0, got {e.seconds_per_pixel}"
        )
    if e.current > e.maximum:
        logger.warning(
            "energy.current (%s) exceeds energy.maximum (%d); it will be capped",
            e.current, e.maximum,
        )
    if cfg.placement.energy_reserve < 0:
        raise ConfigError(
            f"placement.energy_reserve must be >= 0, got {cfg.placement.energy_reserve}"
        )

    # -- Palette --------------------------------------------------------------
    if not cfg.palette:
        raise ConfigError("palette must list at least one color")
    try:
        cfg.palette_colors()
    except InvalidColorFormat as exc:
        raise ConfigError(f"Invalid palette entry: {exc}") from exc

    # -- Logging --------------------------------------------------------------
    if cfg.logging.level.upper() not in _LOG_LEVELS:
        raise ConfigError(
            f"logging.level must be one of {_LOG_LEVELS}, got {cfg.logging.level!r}"
        )
    if cfg.logging.max_bytes < 0 or cfg.logging.backup_count < 0:
        raise ConfigError("logging.max_bytes and logging.backup_count must be >= 0")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _str_tuple(raw: Any, field_name: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigError(f"{field_name} must be a list, got {type(raw).__name__}")
    return tuple(str(item) for item in raw)


def load_config(path: str | Path | None = None) -> BotConfig:
    """Load and validate bot configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to ``bot.yaml``.  ``None`` loads the default shipped
        alongside this module.

    Returns
    -------
    BotConfig
        Fully validated, frozen configuration object.

    Raises
    ------
    ConfigError
        If any field is missing or fails validation.
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        path = Path(__file__).parent / "bot.yaml"
    else:
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.info("Loading configuration from %s", path)

    data: dict[str, Any] = load_yaml(path)
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")

    try:
        # -- server ---------------------------------------------------------
        srv = data["server"]
        server = ServerConfig(
            base_url=str(srv["base_url"]).rstrip("/"),
            tiles_endpoint=str(srv.get("tiles_endpoint", "/GetPixelsCached")),
            place_endpoint=str(srv.get("place_endpoint", "/PlacePixel")),
            timeout_s=float(srv["timeout_s"]),
            retry_attempts=int(srv.get("retry_attempts", 3)),
            retry_interval_s=float(srv.get("retry_interval_s", 2.0)),
            user_agent=str(srv.get("user_agent") or ""),
        )

        # -- sync -----------------------------------------------------------
        sy = data.get("sync", {})
        sync = SyncConfig(
            tile_size=int(sy.get("tile_size", 1000)),
            tiles_per_request=int(sy.get("tiles_per_request", 9)),
        )

        # -- placement ------------------------------------------------------
        pl = data.get("placement", {})
        placement = PlacementConfig(
            energy_reserve=int(pl.get("energy_reserve", 2)),
            include_transparent=bool(pl.get("include_transparent", False)),
            include_free_colors=bool(pl.get("include_free_colors", True)),
            ignored_colors=_str_tuple(
                pl.get("ignored_colors"), "placement.ignored_colors",
            ),
        )

        # -- energy ---------------------------------------------------------
        en = data["energy"]
        energy = EnergyConfig(
            current=float(en.get("current", en["maximum"])),
            maximum=int(en["maximum"]),
            seconds_per_pixel=float(en["seconds_per_pixel"]),
        )

        # -- session / logging ----------------------------------------------
        session = SessionConfig(
            credentials_file=str(data["session"]["credentials_file"]),
        )
        lg = data.get("logging", {})
        log_cfg = LoggingConfig(
            level=str(lg.get("level", "INFO")),
            file=lg.get("file"),
            json=bool(lg.get("json", False)),
            color=bool(lg.get("color", True)),
            max_bytes=int(lg.get("max_bytes", 0)),
            backup_count=int(lg.get("backup_count", 3)),
        )

        config = BotConfig(
            server=server,
            sync=sync,
            placement=placement,
            energy=energy,
            palette=_str_tuple(data["palette"], "palette"),
            session=session,
            logging=log_cfg,
        )
        _validate_config(config)

        logger.info(
            "Configuration loaded: %s, %d palette colors, tile size %d",
            server.base_url, len(config.palette), sync.tile_size,
        )
        return config

    except KeyError as exc:
        raise ConfigError(
            f"Missing required configuration key: {exc}"
        ) from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"Invalid configuration value: {exc}"
        ) from exc
