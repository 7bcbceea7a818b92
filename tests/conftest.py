"""Shared fixtures for the color pipeline tests."""
from __future__ import annotations

import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import numpy as np
import pytest

from extract_colors import PixelBuffer


def make_buffer(colors, width=None, alpha=255) -> PixelBuffer:
    """Build a one-row buffer from a list of RGB triples."""
    rgba = np.array([[*c, alpha] for c in colors], dtype=np.uint8).reshape(1, -1, 4)
    if width is not None:
        rgba = rgba.reshape(-1, width, 4)
    return PixelBuffer.from_array(rgba)


@pytest.fixture
def two_color_buffer():
    """Saturated blue and green, 50 pixels each, interleaved."""
    colors = [(0, 0, 255), (0, 255, 0)] * 50
    return make_buffer(colors, width=10)


@pytest.fixture
def transparent_buffer():
    rgba = np.zeros((8, 8, 4), dtype=np.uint8)
    rgba[..., :3] = (200, 30, 30)
    return PixelBuffer.from_array(rgba)


@pytest.fixture
def skin_buffer():
    """All pixels a mid skin tone."""
    rgba = np.zeros((10, 10, 4), dtype=np.uint8)
    rgba[...] = (120, 80, 60, 255)
    return PixelBuffer.from_array(rgba)
