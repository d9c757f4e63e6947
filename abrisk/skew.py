from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np


@dataclass(slots=True)
class SkewResult:
    """
    One simulated viewpoint of a source image.

    Attributes:
        image: transformed grayscale image (uint8).
        mask: uint8, 255 where pixels come from the source, 0 on border fill.
        A: 2x3 forward affine, source -> transformed image.
        Ai: 2x3 inverse affine, transformed image -> source.
    """
    image: np.ndarray
    mask: np.ndarray
    A: np.ndarray
    Ai: np.ndarray


def check_gray_u8(img: np.ndarray) -> None:
    if not isinstance(img, np.ndarray):
        raise TypeError("image must be a numpy ndarray")
    if img.ndim != 2 or img.dtype != np.uint8:
        raise ValueError("image must be single-channel uint8")


def affine_skew(image: np.ndarray, tilt: float, phi: float) -> SkewResult:
    """
    Simulate a camera viewpoint: rotate by `phi` degrees, then compress the
    x axis by `tilt` after an anti-aliasing blur.

    The source array is never modified. tilt == 1 and phi == 0 returns a copy
    of the image, a full mask and identity transforms.
    """
    check_gray_u8(image)
    if tilt < 1.0:
        raise ValueError(f"tilt must be >= 1, got {tilt}")

    h, w = image.shape
    img = image.copy()
    mask = np.full((h, w), 255, dtype=np.uint8)
    A = np.eye(2, 3, dtype=np.float32)

    if phi != 0.0:
        rad = np.deg2rad(phi)
        s, c = float(np.sin(rad)), float(np.cos(rad))
        R = np.float32([[c, -s], [s, c]])

        corners = np.float32([[0, 0], [w, 0], [w, h], [0, h]])
        tcorners = corners @ R.T
        x, y, rw, rh = cv2.boundingRect(tcorners.reshape(-1, 1, 2))

        A = np.float32([[c, -s, -x], [s, c, -y]])
        img = cv2.warpAffine(img, A, (rw, rh), flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_REPLICATE)

    if tilt != 1.0:
        sigma = 0.8 * np.sqrt(tilt * tilt - 1.0)
        img = cv2.GaussianBlur(img, (0, 0), sigmaX=sigma, sigmaY=0.01)
        img = cv2.resize(img, (0, 0), fx=1.0 / tilt, fy=1.0, interpolation=cv2.INTER_NEAREST)
        A[0] /= tilt

    if tilt != 1.0 or phi != 0.0:
        th, tw = img.shape[:2]
        mask = cv2.warpAffine(mask, A, (tw, th), flags=cv2.INTER_NEAREST)

    Ai = cv2.invertAffineTransform(A)
    return SkewResult(image=img, mask=mask, A=A, Ai=Ai)
