"""Shared fixtures: isolated settings and small synthetic images."""

import os

import numpy as np
import pytest
from PIL import Image

from settings import get_settings

RED = (255, 0, 0)
BLUE = (0, 0, 255)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Run every test without PALETTE_* variables or a stray .env file."""
    for name in list(os.environ):
        if name.startswith("PALETTE_") or name == "LOG_LEVEL":
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def rgba_buffer(rows) -> np.ndarray:
    """Flat RGBA buffer from a list of rows of (r, g, b) tuples."""
    array = np.array(rows, dtype=np.uint8)
    alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([array, alpha], axis=2).reshape(-1)


@pytest.fixture
def red_blue_2x2():
    """2x2 image: top row red, bottom row blue. Returns (pixels, width, height)."""
    return rgba_buffer([[RED, RED], [BLUE, BLUE]]), 2, 2


@pytest.fixture
def quadrant_image():
    """
    40x40 image of four flat color blocks.

    Block areas give ratios 0.75 (green), 0.125 (red), 0.0625 (yellow, blue).
    Returns (pixels, width, height).
    """
    rows = np.zeros((40, 40, 3), dtype=np.uint8)
    rows[:, :] = (30, 160, 60)  # green, most of the image
    rows[:10, :20] = (200, 40, 40)  # red block
    rows[30:, 30:] = (40, 40, 200)  # blue block
    rows[:10, 30:] = (240, 220, 60)  # yellow block
    return rgba_buffer(rows), 40, 40


@pytest.fixture
def png_path(tmp_path):
    """PNG file with the red/blue 2x2 pattern."""
    img = Image.new("RGB", (2, 2))
    img.putdata([RED, RED, BLUE, BLUE])
    path = tmp_path / "red_blue.png"
    img.save(path)
    return path


@pytest.fixture
def noisy_image():
    """60x60 image of uniformly random colors. Returns (pixels, width, height)."""
    rng = np.random.default_rng(0)
    rows = rng.integers(0, 256, size=(60, 60, 3), dtype=np.uint8)
    return rgba_buffer(rows), 60, 60
