from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Optional, List, Any, Dict

import cv2
import numpy as np


@dataclass(frozen=True, slots=True)
class AffineParams:
    """
    One simulated viewpoint of the affine sampling grid.

    Attributes:
        level: tilt level in [1, 5].
        tilt: tilt magnitude t = sqrt(2) ** (level - 1), always >= 1.
        phi: in-plane rotation in degrees, in [0, 180).
    """
    level: int
    tilt: float
    phi: float

    def __post_init__(self) -> None:
        if not 1 <= self.level <= 5:
            raise ValueError("level must be in [1, 5]")
        if self.tilt < 1.0:
            raise ValueError("tilt must be >= 1")
        if not 0.0 <= self.phi < 180.0:
            raise ValueError("phi must be in [0, 180)")

    @property
    def is_identity(self) -> bool:
        return self.tilt == 1.0 and self.phi == 0.0


@dataclass(slots=True)
class FeatureSet:
    """
    Keypoints and their row-aligned descriptor matrix.

    Attributes:
        keypoints: cv2.KeyPoint list, in source-image coordinates.
        descriptors: (N, D) matrix, row i describes keypoints[i].
        samples: number of affine samples that ran.
        failed: number of samples whose detection raised.
    """
    keypoints: List[cv2.KeyPoint]
    descriptors: np.ndarray = field(repr=False)
    samples: int = 1
    failed: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.descriptors, np.ndarray):
            raise TypeError("descriptors must be a numpy ndarray")
        if self.descriptors.ndim != 2:
            raise ValueError("descriptors must be 2D")
        if len(self.keypoints) != self.descriptors.shape[0]:
            raise ValueError(
                f"{len(self.keypoints)} keypoints vs {self.descriptors.shape[0]} descriptor rows"
            )

    def __len__(self) -> int:
        return len(self.keypoints)

    def to_meta(self) -> Dict[str, Any]:
        """Summary without the arrays (safe to log/serialize)."""
        return {
            "keypoints": len(self.keypoints),
            "descriptor_shape": list(self.descriptors.shape),
            "descriptor_dtype": str(self.descriptors.dtype),
            "samples": self.samples,
            "failed": self.failed,
        }


@dataclass(slots=True)
class MatchReport:
    """
    Outcome of one detect → match → draw run over an image pair.

    Attributes:
        name: run label, also the stem of the written image.
        keypoints1, keypoints2: keypoints found in each image.
        knn_matches: query descriptors that got a k-NN answer.
        good_matches: matches that passed the ratio test.
        average_ratio: mean best/second distance ratio of good matches, None when there are none.
        timings_ms: per-stage wall time.
        output_path: where the rendered matches were written (None if not written).
    """
    name: str
    keypoints1: int
    keypoints2: int
    knn_matches: int
    good_matches: int
    average_ratio: Optional[float]
    timings_ms: Dict[str, float] = field(default_factory=dict)
    output_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
