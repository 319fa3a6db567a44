"""
Reconciliation engine.

The budgeted placement loop and the operator-facing bot instance.
"""

from ghostpixel.engine.control import BotStatus, GhostBot
from ghostpixel.engine.reconciler import (
    EngineState,
    PassReport,
    Reconciler,
    RunOutcome,
    order_by_color_rarity,
    wait_seconds,
)

__all__ = [
    "BotStatus",
    "EngineState",
    "GhostBot",
    "PassReport",
    "Reconciler",
    "RunOutcome",
    "order_by_color_rarity",
    "wait_seconds",
]
