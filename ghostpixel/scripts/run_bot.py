#!/usr/bin/env python3
"""
Run Bot Script.

Reproduce a ghost image on the GeoPixels canvas.

Usage:
    python -m ghostpixel.scripts.run_bot ghost.png --x 1200 --y -340
    python -m ghostpixel.scripts.run_bot https://example.com/art.png --x 0 --y 0 \\
        --ignore "#ffffff,black" --no-free-colors
    python -m ghostpixel.scripts.run_bot ghost.png --x 0 --y 0 --config my_bot.yaml

Ctrl+C (or SIGTERM) stops the bot at the next loop boundary.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ghostpixel.client.session import Session
from ghostpixel.configs.loader import load_config
from ghostpixel.engine.control import GhostBot
from ghostpixel.engine.reconciler import RunOutcome
from ghostpixel.errors import ConfigError, GhostPixelError
from ghostpixel.utils import logging_config

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Place a ghost image on the GeoPixels canvas",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Coordinates are grid cells; Y grows upward.",
    )
    parser.add_argument(
        "image",
        type=str,
        help="Ghost image file path or http(s) URL",
    )
    parser.add_argument(
        "--x",
        type=int,
        required=True,
        help="Grid X of the image's top-left pixel",
    )
    parser.add_argument(
        "--y",
        type=int,
        required=True,
        help="Grid Y of the image's top-left pixel",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Configuration file path",
    )
    parser.add_argument(
        "--credentials",
        type=str,
        help="Credentials YAML (overrides session.credentials_file)",
    )

    # Placement policy
    parser.add_argument(
        "--ignore",
        type=str,
        help="Comma-separated colors to skip (hex, ids or names)",
    )
    parser.add_argument(
        "--transparent",
        action="store_true",
        help="Also place transparent ghost pixels",
    )
    parser.add_argument(
        "--no-free-colors",
        action="store_true",
        help="Skip pixels whose color is a free color",
    )
    parser.add_argument(
        "--energy",
        type=float,
        help="Energy available right now (defaults to the config value)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (overrides logging.level)",
    )
    return parser


def _install_signal_handlers(bot: GhostBot) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, bot.stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handler support
            logger.debug("Signal handler for %s not installed", sig)


async def run(bot: GhostBot) -> RunOutcome | None:
    _install_signal_handlers(bot)
    outcome = await bot.run()
    logger.info("Final status: %s", bot.status.summary())
    return outcome


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except (ConfigError, FileNotFoundError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    logging_config.setup_logging(
        log_level=args.log_level or config.logging.level,
        log_file=config.logging.file,
        json=config.logging.json,
        color=config.logging.color,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
        quiet_libs=["urllib3", "PIL"],
        context={"app": "ghostpixel"},
    )
    logging_config.install_excepthook()

    session = None
    if args.credentials:
        try:
            session = Session.from_file(args.credentials)
        except (ConfigError, FileNotFoundError) as e:
            logger.error("Cannot read credentials: %s", e)
            return 1

    bot = GhostBot.from_config(config, session=session)
    if args.energy is not None:
        bot.account.energy.reset(args.energy)
    # Flags only override the config when given
    bot.configure(
        include_transparent=True if args.transparent else None,
        include_free_colors=False if args.no_free_colors else None,
    )
    if args.ignore:
        bot.ignore_colors(args.ignore)

    try:
        bot.load_image(args.image, args.x, args.y)
    except GhostPixelError as e:
        logger.error("%s", e)
        return 1
    logging_config.push_context(image=Path(args.image).name)

    try:
        outcome = asyncio.run(run(bot))
    finally:
        close = getattr(bot.client, "close", None)
        if close is not None:
            close()
        logging_config.shutdown()

    return 0 if outcome in (RunOutcome.COMPLETE, RunOutcome.STOPPED) else 1


if __name__ == "__main__":
    sys.exit(main())
