"""
GhostPixel Bot.

Reproduces a ghost (target) image on the shared GeoPixels canvas.  The bot
keeps a local model of the canvas fed by incremental tile sync, diffs it
against the target pixels, and places the missing pixels in batches sized
by the account's energy budget.

Subpackages:
    colors: Packed color identifiers, hex parsing, free-color palette
    canvas: Grid value types, tile codec, canvas-state cache and sync
    target: Ghost image loading and target pixel extraction
    client: GeoPixels HTTP client, session credentials, energy tracking
    engine: Reconciliation loop and operator control surface
    configs: Bot configuration loading and validation
"""

__all__ = ["colors", "canvas", "target", "client", "engine", "configs"]
