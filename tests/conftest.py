from __future__ import annotations

import cv2
import numpy as np
import pytest


def make_textured(size: int = 160, cells: int = 20, seed: int = 0) -> np.ndarray:
    """Blocky random texture: plenty of corners for BRISK."""
    rng = np.random.default_rng(seed)
    small = rng.integers(0, 256, (cells, cells), dtype=np.uint8)
    img = cv2.resize(small, (size, size), interpolation=cv2.INTER_NEAREST)
    return cv2.GaussianBlur(img, (0, 0), 1.0)


@pytest.fixture
def textured_image() -> np.ndarray:
    return make_textured()


@pytest.fixture
def square_image() -> np.ndarray:
    """100x100 black image with one bright square."""
    img = np.zeros((100, 100), dtype=np.uint8)
    img[30:70, 30:70] = 255
    return img
