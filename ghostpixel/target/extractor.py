"""Target-image extraction -- ghost image -> filtered target pixels.

The ghost image is an RGBA buffer anchored at a grid top-left corner.
Every pixel is mapped to the grid (rows go *down*, i.e. decreasing Y)
and kept only if it passes the placement policy:

    (alpha > 0            or include_transparent)
    and (not a free color or include_free_colors)
    and color in the server's allowed palette
    and color id not ignored by the operator

Order is row-major over the source buffer and filtering preserves it.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import requests
from PIL import Image, UnidentifiedImageError

from ghostpixel.canvas.grid import GridCoordinate, PixelSample, pixel_to_grid
from ghostpixel.colors.codec import FREE_COLOR_IDS, Color, rgba_to_ids
from ghostpixel.errors import ImageNotLoaded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetImage:
    """Decoded ghost image placed on the grid.

    Parameters
    ----------
    pixels : np.ndarray
        ``(height, width, 4)`` uint8 RGBA buffer, row 0 at the top.
    top_left : GridCoordinate
        Grid position of the buffer's top-left pixel.
    source : str
        Where the image came from (for log messages).
    """

    pixels: np.ndarray
    top_left: GridCoordinate
    source: str = ""

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ImageNotLoaded(
                f"Ghost image must be an (H, W, 4) RGBA buffer, "
                f"got shape {self.pixels.shape}"
            )

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @classmethod
    def from_pil(
        cls, img: Image.Image, top_left: GridCoordinate, source: str = "",
    ) -> TargetImage:
        """Wrap a Pillow image (any mode; converted to RGBA)."""
        return cls(
            pixels=np.asarray(img.convert("RGBA"), dtype=np.uint8).copy(),
            top_left=top_left,
            source=source,
        )


@dataclass(frozen=True)
class TargetPolicy:
    """Inclusion flags applied when the target set is built."""

    include_transparent: bool = False
    include_free_colors: bool = True
    ignored_ids: frozenset[int] = field(default_factory=frozenset)


def load_target_image(
    source: str | Path,
    top_left: GridCoordinate,
    timeout_s: float = 15.0,
) -> TargetImage:
    """Load a ghost image from a file path or an ``http(s)`` URL.

    Raises
    ------
    ImageNotLoaded
        If the image cannot be fetched or decoded.
    """
    src = str(source)
    try:
        if src.startswith(("http://", "https://")):
            resp = requests.get(src, timeout=timeout_s)
            resp.raise_for_status()
            img = Image.open(io.BytesIO(resp.content))
        else:
            img = Image.open(Path(src).expanduser())
        with img:
            image = TargetImage.from_pil(img, top_left, source=src)
    except requests.RequestException as exc:
        raise ImageNotLoaded(f"Could not download ghost image {src}: {exc}") from exc
    except (FileNotFoundError, UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageNotLoaded(f"Could not load ghost image {src}: {exc}") from exc

    logger.info(
        "Loaded ghost image %s (%dx%d) at (%d, %d)",
        src, image.width, image.height, top_left.x, top_left.y,
    )
    return image


def extract_pixels(
    image: TargetImage, indices: Iterable[int] | None = None,
) -> list[PixelSample]:
    """Pixels of *image* on the grid, in row-major order.

    Parameters
    ----------
    image : TargetImage
        Ghost image on the grid.
    indices : Iterable[int], optional
        Flat row-major indices to keep; every pixel when omitted.
    """
    flat = image.pixels.reshape(-1, 4)
    if indices is None:
        indices = range(flat.shape[0])
    return [
        PixelSample(
            pixel_to_grid(int(i), image.top_left, image.width),
            Color.from_rgba(*flat[i]),
        )
        for i in indices
    ]


def build_target_set(
    image: TargetImage,
    allowed_ids: Iterable[int],
    policy: TargetPolicy = TargetPolicy(),
) -> tuple[PixelSample, ...]:
    """Filter *image* down to the pixels the bot should place.

    Parameters
    ----------
    image : TargetImage
        Ghost image on the grid.
    allowed_ids : Iterable[int]
        Packed ids of the colors the server currently accepts.
    policy : TargetPolicy
        Transparency / free-color / ignore rules.

    Returns
    -------
    tuple[PixelSample, ...]
        Kept pixels in row-major source order.
    """
    flat = image.pixels.reshape(-1, 4)
    ids = rgba_to_ids(flat)

    keep = np.isin(ids, np.fromiter(set(allowed_ids), dtype=np.int64))
    if not policy.include_transparent:
        keep &= flat[:, 3] > 0
    if not policy.include_free_colors:
        keep &= ~np.isin(ids, np.fromiter(FREE_COLOR_IDS, dtype=np.int64))
    if policy.ignored_ids:
        keep &= ~np.isin(ids, np.fromiter(policy.ignored_ids, dtype=np.int64))

    target = tuple(extract_pixels(image, np.flatnonzero(keep)))
    logger.info(
        "Target set: %d of %d ghost pixels kept", len(target), flat.shape[0],
    )
    return target
