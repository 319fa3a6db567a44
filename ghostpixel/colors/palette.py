"""Operator color lists -- ignore lists and allowed palettes.

Operators type colors in many shapes: ``"#ff0000, 00ff00"``, packed ids
such as ``16711680``, a pasted ``[...]`` list, or CSS names like ``red``.
Everything is reduced to packed color ids here.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from PIL import ImageColor

from ghostpixel.colors.codec import Color
from ghostpixel.errors import InvalidColorFormat

_BARE_HEX_RE = re.compile(r"^[0-9a-fA-F]{6,8}$")


def parse_color_token(token: str | int | Color) -> int:
    """Resolve one operator token to a packed color id.

    Resolution order: ``#``-prefixed or 6-8 digit hex, then a decimal
    color id, then a CSS color name.

    Raises
    ------
    InvalidColorFormat
        If the token matches none of the accepted forms.
    """
    if not isinstance(token, str):
        return Color.parse(token).to_id()

    text = token.strip()
    if not text:
        raise InvalidColorFormat("Empty color token")
    if text.startswith("#") or _BARE_HEX_RE.match(text):
        return Color.from_hex(text).to_id()
    try:
        return Color.from_id(int(text)).to_id()
    except ValueError:
        pass
    try:
        rgb = ImageColor.getrgb(text)
    except ValueError as exc:
        raise InvalidColorFormat(f"Unknown color: {text!r}") from exc
    return Color.from_rgba(rgb[0], rgb[1], rgb[2], 255).to_id()


def parse_color_list(
    values: str | Iterable[str | int | Color] | None,
    sep: str = ",",
) -> set[int]:
    """Resolve a separator-joined string or an iterable of tokens.

    ``None`` and empty input yield an empty set.  Surrounding brackets of
    a pasted list are stripped.
    """
    if values is None:
        return set()
    if isinstance(values, str):
        text = values.strip()
        if text.startswith("[") and text.endswith("]"):
            text = text[1:-1]
        tokens: list[str | int | Color] = [
            part.strip().strip("'\"") for part in text.split(sep) if part.strip()
        ]
    else:
        tokens = list(values)
    return {parse_color_token(token) for token in tokens}


def palette_ids(colors: Iterable[str | int | Color]) -> frozenset[int]:
    """Packed ids of an allowed-palette listing (hex, ids or Colors)."""
    return frozenset(Color.parse(c).to_id() for c in colors)
