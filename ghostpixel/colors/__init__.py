"""
Color handling.

Packed GeoPixels color identifiers, hex / CSS conversions, the free-color
reference palette and operator color-list parsing.
"""

from ghostpixel.colors.codec import (
    FREE_COLOR_IDS,
    FREE_COLORS,
    TRANSPARENT_ID,
    Color,
    normalize_hex,
    rgba_to_ids,
)
from ghostpixel.colors.palette import parse_color_list, parse_color_token, palette_ids

__all__ = [
    "Color",
    "FREE_COLORS",
    "FREE_COLOR_IDS",
    "TRANSPARENT_ID",
    "normalize_hex",
    "palette_ids",
    "parse_color_list",
    "parse_color_token",
    "rgba_to_ids",
]
