"""
ABRISK — Affine-invariant BRISK keypoints

This package provides:
- The affine sampling grid of simulated (tilt, phi) viewpoints
- The affine skew (rotate, blur, compress) with its validity mask and inverse
- A thread-pooled detector that runs a stock OpenCV detector on every viewpoint
  and maps the keypoints back into the source image
- Brute-force / FLANN matching with Lowe's ratio test and match rendering

Entry point:
    python -m abrisk.pipeline --config config/params.yaml
"""
from .detector import AffineDetector, detect_plain

__all__ = ["AffineDetector", "detect_plain"]
