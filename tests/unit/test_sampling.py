"""
Unit tests for the affine sampling grid
"""

import pytest
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from abrisk.sampling import affine_params, samples_for_level, tilt_for_level
from common.types import AffineParams


class TestSamplingGrid:
    """Test cases for the (tilt, phi) generator"""

    def test_samples_per_level(self):
        """Rotation count grows with tilt: 3, 4, 5, 8, 10"""
        counts = [len(samples_for_level(level)) for level in range(1, 6)]
        assert counts == [3, 4, 5, 8, 10]
        assert len(affine_params()) == 30

    def test_level_one_rotations(self):
        """Untilted level is sampled at 0, 72 and 144 degrees"""
        phis = [p.phi for p in samples_for_level(1)]
        assert phis == [0.0, 72.0, 144.0]

    def test_tilts_are_exact_powers(self):
        """Even levels land exactly on 2 and 4"""
        assert tilt_for_level(1) == 1.0
        assert tilt_for_level(3) == 2.0
        assert tilt_for_level(5) == 4.0
        assert tilt_for_level(2) == pytest.approx(2 ** 0.5)

    def test_rotation_step(self):
        """Consecutive rotations are 72 / t degrees apart and stay below 180"""
        for level in range(1, 6):
            samples = samples_for_level(level)
            t = tilt_for_level(level)
            assert samples[0].phi == 0.0
            for a, b in zip(samples, samples[1:]):
                assert b.phi - a.phi == pytest.approx(72.0 / t)
            assert all(0.0 <= p.phi < 180.0 for p in samples)
            assert all(p.tilt == t and p.level == level for p in samples)

    def test_grid_is_ordered_and_deterministic(self):
        """Same grid on every call, level by level"""
        grid = affine_params()
        assert grid == affine_params()
        levels = [p.level for p in grid]
        assert levels == sorted(levels)

    def test_without_untilted_oversampling(self):
        """Level 1 collapses to the untransformed image"""
        grid = affine_params(oversample_untilted=False)
        assert len(grid) == 28
        level1 = [p for p in grid if p.level == 1]
        assert len(level1) == 1
        assert level1[0].is_identity

    def test_invalid_level(self):
        """Levels outside 1..5 are rejected"""
        with pytest.raises(ValueError):
            samples_for_level(0)
        with pytest.raises(ValueError):
            samples_for_level(6)


class TestAffineParams:
    """Test cases for the AffineParams dataclass"""

    def test_identity_flag(self):
        assert AffineParams(level=1, tilt=1.0, phi=0.0).is_identity
        assert not AffineParams(level=1, tilt=1.0, phi=72.0).is_identity

    def test_frozen(self):
        p = AffineParams(level=2, tilt=2 ** 0.5, phi=0.0)
        with pytest.raises(Exception):
            p.phi = 10.0  # type: ignore[misc]

    def test_validation(self):
        with pytest.raises(ValueError):
            AffineParams(level=1, tilt=0.5, phi=0.0)
        with pytest.raises(ValueError):
            AffineParams(level=1, tilt=1.0, phi=180.0)
        with pytest.raises(ValueError):
            AffineParams(level=7, tilt=1.0, phi=0.0)
