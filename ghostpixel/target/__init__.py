"""
Ghost image handling.

Loads the target image and turns it into the filtered, ordered set of
pixels the bot tries to reproduce.
"""

from ghostpixel.target.extractor import (
    TargetImage,
    TargetPolicy,
    build_target_set,
    extract_pixels,
    load_target_image,
)

__all__ = [
    "TargetImage",
    "TargetPolicy",
    "build_target_set",
    "extract_pixels",
    "load_target_image",
]
