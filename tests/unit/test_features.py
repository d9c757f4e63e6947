"""
Unit tests for feature extraction and keypoint back-projection
"""

import pytest
import numpy as np
import cv2
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from abrisk.features import FeatureExtractor, back_project
from abrisk.skew import affine_skew


class TestFeatureExtractor:
    """Test cases for FeatureExtractor"""

    def test_brisk_on_texture(self, textured_image):
        """BRISK finds row-aligned binary descriptors"""
        fx = FeatureExtractor()
        kps, des = fx.detect_and_compute(textured_image)

        assert fx.descriptor_kind == "binary"
        assert len(kps) > 0
        assert len(kps) == des.shape[0]
        assert des.dtype == np.uint8

    def test_blank_image_gives_empty_descriptors(self):
        """No keypoints still yields a typed (0, D) matrix"""
        fx = FeatureExtractor()
        kps, des = fx.detect_and_compute(np.zeros((100, 100), dtype=np.uint8))

        assert kps == []
        assert des.shape == (0, 64)
        assert des.dtype == np.uint8

    def test_zero_mask_blocks_detection(self, textured_image):
        """Nothing is detected outside the mask"""
        fx = FeatureExtractor()
        mask = np.zeros_like(textured_image)
        kps, des = fx.detect_and_compute(textured_image, mask)

        assert kps == []
        assert des.shape[0] == 0

    def test_sift_is_float(self):
        fx = FeatureExtractor(method="sift")
        assert fx.descriptor_kind == "float"
        empty = fx.empty_descriptors()
        assert empty.shape == (0, 128)
        assert empty.dtype == np.float32

    @pytest.mark.parametrize("method", ["orb", "akaze"])
    def test_other_binary_methods(self, method):
        fx = FeatureExtractor(method=method)
        assert fx.descriptor_kind == "binary"
        assert fx.empty_descriptors().dtype == np.uint8

    def test_unsupported_method(self):
        with pytest.raises(ValueError, match="Unsupported method"):
            FeatureExtractor(method="surf")


class TestBackProject:
    """Test cases for back_project"""

    def test_identity_keeps_coordinates(self):
        kps = [cv2.KeyPoint(10.5, 20.25, 8.0, 45.0, 0.9, 2, 3), cv2.KeyPoint(1.0, 2.0, 4.0)]
        out = back_project(kps, np.eye(2, 3, dtype=np.float32))

        assert [k.pt for k in out] == [k.pt for k in kps]

    def test_affine_rewrite_preserves_metadata(self):
        """Only the location changes"""
        kp = cv2.KeyPoint(1.0, 1.0, 8.0, 45.0, 0.9, 2, 3)
        Ai = np.array([[2.0, 0.0, 5.0], [0.0, 1.0, -3.0]])
        (out,) = back_project([kp], Ai)

        assert out.pt == pytest.approx((7.0, -2.0))
        assert out.size == pytest.approx(kp.size)
        assert out.angle == pytest.approx(kp.angle)
        assert out.response == pytest.approx(kp.response)
        assert out.octave == kp.octave
        assert out.class_id == kp.class_id
        # input untouched
        assert kp.pt == pytest.approx((1.0, 1.0))

    def test_empty(self):
        assert back_project([], np.eye(2, 3)) == []

    def test_bad_matrix_shape(self):
        with pytest.raises(ValueError):
            back_project([cv2.KeyPoint(1.0, 1.0, 2.0)], np.eye(3))

    def test_round_trip_through_skew(self, textured_image):
        """A point pushed through A is pulled back to where it started"""
        sk = affine_skew(textured_image, 2 ** 1.5, 50.0)
        src = np.array([[40.0, 60.0], [120.0, 30.0]])
        A = np.asarray(sk.A, dtype=np.float64)
        fwd = src @ A[:, :2].T + A[:, 2]
        kps = [cv2.KeyPoint(float(x), float(y), 5.0) for x, y in fwd]

        back = np.array([k.pt for k in back_project(kps, sk.Ai)])
        assert np.allclose(back, src, atol=1e-2)


class TestBaseSampleScenario:
    """Bright square, tilt level 1 without rotation"""

    def test_full_mask_and_unchanged_coordinates(self, square_image):
        sk = affine_skew(square_image, 1.0, 0.0)
        assert (sk.mask == 255).all()

        kps, des = FeatureExtractor().detect_and_compute(sk.image, sk.mask)
        out = back_project(kps, sk.Ai)

        assert len(out) == len(kps) == des.shape[0]
        for a, b in zip(kps, out):
            assert b.pt == pytest.approx(a.pt)
