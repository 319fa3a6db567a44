"""Tests for ghost-image loading and target-set extraction."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import requests
from PIL import Image

from ghostpixel.canvas.grid import GridCoordinate
from ghostpixel.colors.codec import FREE_COLOR_IDS, Color
from ghostpixel.errors import ImageNotLoaded
from ghostpixel.target.extractor import (
    TargetImage,
    TargetPolicy,
    build_target_set,
    extract_pixels,
    load_target_image,
)

PURPLE = (0x80, 0x00, 0x80, 255)   # not a free color
WHITE = (255, 255, 255, 255)       # free color
CLEAR = (10, 20, 30, 0)


@pytest.fixture
def image() -> TargetImage:
    # Row 0: purple, white / Row 1: clear, purple
    pixels = np.array([[PURPLE, WHITE], [CLEAR, PURPLE]], dtype=np.uint8)
    return TargetImage(pixels, GridCoordinate(100, 50), source="test")


ALL_IDS = {Color(*PURPLE).to_id(), Color(*WHITE).to_id(), -1}


class TestExtractPixels:
    def test_row_major_with_downward_rows(self, image: TargetImage) -> None:
        pixels = extract_pixels(image)
        assert [p.coord for p in pixels] == [
            GridCoordinate(100, 50),
            GridCoordinate(101, 50),
            GridCoordinate(100, 49),
            GridCoordinate(101, 49),
        ]
        assert pixels[1].color == Color(*WHITE)
        assert pixels[2].color.is_transparent

    def test_selected_indices(self, image: TargetImage) -> None:
        pixels = extract_pixels(image, np.array([3, 0]))
        assert [p.coord for p in pixels] == [GridCoordinate(101, 49), GridCoordinate(100, 50)]

    def test_target_set_is_a_subset_in_order(self, image: TargetImage) -> None:
        everything = extract_pixels(image)
        target = build_target_set(image, ALL_IDS)
        assert list(target) == [everything[0], everything[1], everything[3]]

    def test_rejects_rgb_buffer(self) -> None:
        with pytest.raises(ImageNotLoaded):
            TargetImage(np.zeros((2, 2, 3), dtype=np.uint8), GridCoordinate(0, 0))


class TestBuildTargetSet:
    def test_default_policy_drops_transparent(self, image: TargetImage) -> None:
        target = build_target_set(image, ALL_IDS)
        assert [p.coord for p in target] == [
            GridCoordinate(100, 50),
            GridCoordinate(101, 50),
            GridCoordinate(101, 49),
        ]

    def test_include_transparent(self, image: TargetImage) -> None:
        target = build_target_set(image, ALL_IDS, TargetPolicy(include_transparent=True))
        assert len(target) == 4

    def test_exclude_free_colors(self, image: TargetImage) -> None:
        target = build_target_set(
            image, ALL_IDS, TargetPolicy(include_free_colors=False),
        )
        assert all(p.color.to_id() not in FREE_COLOR_IDS for p in target)
        assert len(target) == 2

    def test_palette_restricts(self, image: TargetImage) -> None:
        target = build_target_set(image, {Color(*WHITE).to_id()})
        assert [p.color for p in target] == [Color(*WHITE)]

    def test_ignored_ids(self, image: TargetImage) -> None:
        policy = TargetPolicy(ignored_ids=frozenset({Color(*PURPLE).to_id()}))
        target = build_target_set(image, ALL_IDS, policy)
        assert [p.coord for p in target] == [GridCoordinate(101, 50)]

    def test_order_preserved(self) -> None:
        pixels = np.zeros((1, 5, 4), dtype=np.uint8)
        pixels[0, :, 3] = 255
        pixels[0, :, 0] = [5, 4, 3, 2, 1]
        image = TargetImage(pixels, GridCoordinate(0, 0))
        allowed = {Color(v, 0, 0).to_id() for v in range(1, 6)}
        target = build_target_set(image, allowed)
        assert [p.color.r for p in target] == [5, 4, 3, 2, 1]

    def test_empty_palette(self, image: TargetImage) -> None:
        assert build_target_set(image, set()) == ()


class TestLoadTargetImage:
    def test_load_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "ghost.png"
        Image.new("RGB", (3, 2), (255, 0, 0)).save(path)
        image = load_target_image(path, GridCoordinate(7, 8))
        assert (image.width, image.height) == (3, 2)
        assert image.pixels[0, 0].tolist() == [255, 0, 0, 255]
        assert image.top_left == GridCoordinate(7, 8)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ImageNotLoaded):
            load_target_image(tmp_path / "nope.png", GridCoordinate(0, 0))

    def test_not_an_image(self, tmp_path: Path) -> None:
        path = tmp_path / "ghost.png"
        path.write_text("hello")
        with pytest.raises(ImageNotLoaded):
            load_target_image(path, GridCoordinate(0, 0))

    def test_download_error(self) -> None:
        with patch(
            "ghostpixel.target.extractor.requests.get",
            side_effect=requests.ConnectionError("down"),
        ):
            with pytest.raises(ImageNotLoaded, match="download"):
                load_target_image("https://example.com/a.png", GridCoordinate(0, 0))

    def test_download(self, tmp_path: Path) -> None:
        path = tmp_path / "ghost.png"
        Image.new("RGBA", (1, 1), (0, 0, 255, 255)).save(path)
        resp = MagicMock()
        resp.content = path.read_bytes()
        resp.raise_for_status.return_value = None
        with patch("ghostpixel.target.extractor.requests.get", return_value=resp):
            image = load_target_image("https://example.com/a.png", GridCoordinate(0, 0))
        assert image.pixels[0, 0].tolist() == [0, 0, 255, 255]
        assert image.source == "https://example.com/a.png"
