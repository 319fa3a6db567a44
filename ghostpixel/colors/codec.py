"""Color codec -- packed identifiers, hex text and CSS strings.

The GeoPixels API identifies a color by a packed 24-bit integer
``(r << 16) | (g << 8) | b``.  Fully transparent colors always map to the
sentinel ``-1`` regardless of their RGB channels.

Known simplification
--------------------
Alpha is not part of the identifier: any color with ``0 < a < 255``
collapses onto the id of its opaque RGB counterpart.  The canvas only
holds opaque or fully transparent pixels, so this is kept as-is.

Usage::

    from ghostpixel.colors.codec import Color
    red = Color.from_hex("#f00")          # -> Color(255, 0, 0, 255)
    red.to_id()                           # -> 16711680
    Color.from_id(-1).to_hex()            # -> "#00000000"
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from ghostpixel.errors import InvalidColorFormat

# Identifier reserved for fully transparent pixels
TRANSPARENT_ID = -1

_HEX_RE = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)


def normalize_hex(text: str) -> str:
    """Expand 3/4/6-digit hex text to lowercase ``#rrggbbaa``.

    Shorthand digits are doubled and a missing alpha defaults to ``ff``.
    The result is not validated; :meth:`Color.from_hex` does that.
    """
    h = text.strip().lower()
    if not h.startswith("#"):
        h = f"#{h}"
    if len(h) in (4, 5):
        h = "#" + "".join(c + c for c in h[1:])
    if len(h) == 7:
        h += "ff"
    return h


@dataclass(frozen=True, slots=True)
class Color:
    """RGBA color with 8-bit channels.

    Parameters
    ----------
    r, g, b : int
        Color channels in ``[0, 255]``.
    a : int
        Alpha channel in ``[0, 255]``; ``0`` is fully transparent.
    """

    r: int
    g: int
    b: int
    a: int = 255

    def __post_init__(self) -> None:
        for name in ("r", "g", "b", "a"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidColorFormat(
                    f"Channel {name} must be an int, got {value!r}"
                )
            if not 0 <= value <= 255:
                raise InvalidColorFormat(
                    f"Channel {name} out of range [0, 255]: {value}"
                )

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_rgba(cls, r: int, g: int, b: int, a: int = 255) -> Color:
        """Build from explicit channels (alpha defaults to opaque)."""
        return cls(int(r), int(g), int(b), int(a))

    @classmethod
    def from_hex(cls, text: str) -> Color:
        """Parse ``#rgb``, ``#rgba``, ``#rrggbb`` or ``#rrggbbaa``.

        The leading ``#`` is optional and case is ignored.

        Raises
        ------
        InvalidColorFormat
            If the normalised text is not 8 hex digits.
        """
        if not isinstance(text, str):
            raise InvalidColorFormat(f"Hex color must be a string, got {text!r}")
        full = normalize_hex(text)
        match = _HEX_RE.match(full)
        if match is None:
            raise InvalidColorFormat(f"Invalid hex color: {full}")
        r, g, b, a = (int(part, 16) for part in match.groups())
        return cls(r, g, b, a)

    @classmethod
    def from_id(cls, color_id: int) -> Color:
        """Unpack a server color identifier.

        ``-1`` yields transparent black; anything else is opaque.
        """
        color_id = int(color_id)
        if color_id == TRANSPARENT_ID:
            return cls(0, 0, 0, 0)
        return cls(
            (color_id >> 16) & 0xFF,
            (color_id >> 8) & 0xFF,
            color_id & 0xFF,
            255,
        )

    @classmethod
    def parse(cls, value: Any) -> Color:
        """Build a color from whatever the operator or server hands over.

        Accepts an existing :class:`Color`, hex text, a packed id, a
        mapping with ``r``/``g``/``b`` (and optional ``a``) keys, or an
        ``(r, g, b[, a])`` sequence.
        """
        if isinstance(value, Color):
            return value
        if isinstance(value, str):
            return cls.from_hex(value)
        if isinstance(value, int) and not isinstance(value, bool):
            return cls.from_id(value)
        if isinstance(value, Mapping):
            try:
                return cls.from_rgba(
                    value["r"], value["g"], value["b"], value.get("a", 255),
                )
            except KeyError as exc:
                raise InvalidColorFormat(
                    f"Color mapping is missing channel {exc}"
                ) from exc
        if isinstance(value, Sequence) and len(value) in (3, 4):
            return cls.from_rgba(*value)
        raise InvalidColorFormat(f"Cannot interpret {value!r} as a color")

    # ------------------------------------------------------------------
    # Encoders
    # ------------------------------------------------------------------

    def to_id(self) -> int:
        """Packed 24-bit identifier, or ``-1`` when fully transparent."""
        if self.a == 0:
            return TRANSPARENT_ID
        return (self.r << 16) | (self.g << 8) | self.b

    def to_hex(self) -> str:
        """Lowercase ``#rrggbbaa``."""
        return "#" + "".join(f"{c:02x}" for c in (self.r, self.g, self.b, self.a))

    def to_css_rgba(self) -> str:
        """CSS ``rgba(r,g,b,a)`` string with the raw 0-255 alpha."""
        return f"rgba({self.r},{self.g},{self.b},{self.a})"

    @property
    def is_transparent(self) -> bool:
        return self.a == 0


# ---------------------------------------------------------------------------
# Free colors (placeable without restriction on GeoPixels)
# ---------------------------------------------------------------------------

FREE_COLORS: tuple[Color, ...] = tuple(
    Color.from_hex(h)
    for h in (
        "#FFFFFF", "#FFCA3A", "#FF595E", "#F3BBC2",
        "#BD637D", "#6A4C93", "#A8D0DC", "#1A535C",
        "#1982C4", "#8AC926", "#6B4226", "#CFD078",
        "#8B1D24", "#C49A6C", "#000000", "#00000000",
    )
)

FREE_COLOR_IDS: frozenset[int] = frozenset(c.to_id() for c in FREE_COLORS)


def rgba_to_ids(rgba: np.ndarray) -> np.ndarray:
    """Vectorised :meth:`Color.to_id` over an ``(..., 4)`` uint8 buffer.

    Returns an ``int64`` array of the leading shape.
    """
    rgba = np.asarray(rgba)
    if rgba.shape[-1] != 4:
        raise InvalidColorFormat(
            f"Expected an RGBA buffer with 4 channels, got shape {rgba.shape}"
        )
    r = rgba[..., 0].astype(np.int64)
    g = rgba[..., 1].astype(np.int64)
    b = rgba[..., 2].astype(np.int64)
    ids = (r << 16) | (g << 8) | b
    return np.where(rgba[..., 3] == 0, TRANSPARENT_ID, ids)
