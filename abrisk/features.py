from __future__ import annotations
"""
Feature extraction helpers for ABRISK.

- FeatureExtractor(method='brisk'|'orb'|'akaze'|'sift') with .detect_and_compute(gray, mask)
- back_project(): rewrite keypoint locations through a 2x3 affine
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np


# -----------------------------
# Extractors
# -----------------------------

@dataclass
class FeatureExtractor:
    method: str = "brisk"
    brisk_threshold: int = 30
    brisk_octaves: int = 3
    brisk_pattern_scale: float = 1.0
    nfeatures: int = 2000

    def __post_init__(self):
        m = self.method.lower()
        if m == "brisk":
            self._det = cv2.BRISK_create(
                thresh=int(self.brisk_threshold),
                octaves=int(self.brisk_octaves),
                patternScale=float(self.brisk_pattern_scale),
            )
            self.descriptor_kind = "binary"
        elif m == "orb":
            self._det = cv2.ORB_create(
                nfeatures=int(self.nfeatures),
                scoreType=cv2.ORB_HARRIS_SCORE,
            )
            self.descriptor_kind = "binary"
        elif m == "akaze":
            self._det = cv2.AKAZE_create(
                descriptor_type=cv2.AKAZE_DESCRIPTOR_MLDB,
                threshold=0.001,
            )
            self.descriptor_kind = "binary"
        elif m == "sift":
            self._det = cv2.SIFT_create(nfeatures=int(self.nfeatures))
            self.descriptor_kind = "float"
        else:
            raise ValueError(f"Unsupported method: {self.method}")

    def empty_descriptors(self) -> np.ndarray:
        dtype = np.uint8 if self.descriptor_kind == "binary" else np.float32
        return np.zeros((0, int(self._det.descriptorSize())), dtype=dtype)

    def detect_and_compute(
        self, gray_u8: np.ndarray, mask: Optional[np.ndarray] = None
    ) -> Tuple[List[cv2.KeyPoint], np.ndarray]:
        kps, des = self._det.detectAndCompute(gray_u8, mask)
        if des is None or len(kps) == 0:
            return [], self.empty_descriptors()
        return list(kps), des


# -----------------------------
# Coordinate mapping
# -----------------------------

def back_project(keypoints: Sequence[cv2.KeyPoint], Ai: np.ndarray) -> List[cv2.KeyPoint]:
    """
    Map keypoints from a transformed image back to the source frame.

    Each location becomes Ai @ [x, y, 1]; size, angle, response, octave and
    class_id are carried over. Returns new KeyPoint objects.
    """
    if len(keypoints) == 0:
        return []
    Ai = np.asarray(Ai, dtype=np.float64)
    if Ai.shape != (2, 3):
        raise ValueError("Ai must be 2x3")

    pts = np.float64([kp.pt for kp in keypoints])
    mapped = pts @ Ai[:, :2].T + Ai[:, 2]
    return [
        cv2.KeyPoint(float(x), float(y), kp.size, kp.angle, kp.response, kp.octave, kp.class_id)
        for kp, (x, y) in zip(keypoints, mapped)
    ]
