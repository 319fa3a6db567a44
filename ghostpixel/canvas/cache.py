"""Canvas-state cache -- last known server color per grid cell.

Stores packed color ids keyed by ``(x, y)``; a :class:`PixelSample` is
only materialised on lookup so a fully decoded 1000x1000 tile stays
cheap.  The cache never evicts: entries are added or overwritten until
:meth:`CanvasStateCache.clear` (operator reload).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from ghostpixel.canvas.grid import GridCoordinate, PixelSample
from ghostpixel.colors.codec import Color


class CanvasStateCache:
    """Mutable coordinate -> color-id store owned by the engine."""

    def __init__(self) -> None:
        self._ids: dict[tuple[int, int], int] = {}

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, coord: GridCoordinate) -> bool:
        return coord.key in self._ids

    def __iter__(self) -> Iterator[PixelSample]:
        for (x, y), color_id in self._ids.items():
            yield PixelSample(GridCoordinate(x, y), Color.from_id(color_id))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def color_id(self, coord: GridCoordinate) -> int | None:
        """Packed id at *coord*, or ``None`` when never observed."""
        return self._ids.get(coord.key)

    def get(self, coord: GridCoordinate) -> PixelSample | None:
        color_id = self._ids.get(coord.key)
        if color_id is None:
            return None
        return PixelSample(coord, Color.from_id(color_id))

    def snapshot(self) -> dict[tuple[int, int], int]:
        """Shallow copy of the raw id map (for comparisons and tests)."""
        return dict(self._ids)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, coord: GridCoordinate, color: Color) -> None:
        self._ids[coord.key] = color.to_id()

    def set_id(self, x: int, y: int, color_id: int) -> None:
        self._ids[(x, y)] = color_id

    def update_ids(
        self, keys: Iterable[tuple[int, int]], color_ids: Iterable[int],
    ) -> None:
        """Bulk write, pairing *keys* with *color_ids* positionally."""
        self._ids.update(zip(keys, color_ids))

    def clear(self) -> None:
        self._ids.clear()
