from __future__ import annotations
"""
Affine sampling grid: the (tilt, phi) pairs simulated for each image.

Tilt levels 1..5 give t = sqrt(2) ** (level - 1); rotations are sampled every
72 / t degrees over [0, 180), so higher tilts get a finer rotation step.
"""

from typing import List

from common.types import AffineParams


TILT_LEVELS = (1, 2, 3, 4, 5)
ROTATION_STEP_DEG = 72.0
ROTATION_SPAN_DEG = 180.0


def tilt_for_level(level: int) -> float:
    # 2 ** (n / 2) keeps even exponents exact, unlike sqrt(2) ** n
    return 2.0 ** ((level - 1) / 2.0)


def samples_for_level(level: int, *, oversample_untilted: bool = True) -> List[AffineParams]:
    """
    Samples of a single tilt level, in rotation order.

    With `oversample_untilted=False` level 1 yields only the untransformed image
    instead of three rotations of it.
    """
    if level not in TILT_LEVELS:
        raise ValueError(f"tilt level must be in 1..5, got {level}")
    t = tilt_for_level(level)
    if level == 1 and not oversample_untilted:
        return [AffineParams(level=1, tilt=t, phi=0.0)]

    out: List[AffineParams] = []
    k = 0
    while True:
        phi = k * ROTATION_STEP_DEG / t
        if phi >= ROTATION_SPAN_DEG:
            break
        out.append(AffineParams(level=level, tilt=t, phi=phi))
        k += 1
    return out


def affine_params(*, oversample_untilted: bool = True) -> List[AffineParams]:
    """Full grid, level by level (3 + 4 + 5 + 8 + 10 = 30 samples by default)."""
    grid: List[AffineParams] = []
    for level in TILT_LEVELS:
        grid.extend(samples_for_level(level, oversample_untilted=oversample_untilted))
    return grid
