from __future__ import annotations
"""
Descriptor matching for ABRISK:

- knn_match(): k-NN via brute force (Hamming / L2) or a FLANN KD-tree
- ratio_test(): Lowe's best / second-best distance filter
- trim_best(): keep the strongest matches for display
- draw_matches(): side-by-side rendering
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import cv2
import numpy as np


DISTANCE_RATIO_THRESHOLD = 0.7
BEST_MATCHES_TO_DISPLAY = 75

FLANN_INDEX_KDTREE = 1


# -----------------------------
# Matching
# -----------------------------

def _bf_matcher(des: np.ndarray) -> cv2.BFMatcher:
    norm = cv2.NORM_HAMMING if des.dtype == np.uint8 else cv2.NORM_L2
    return cv2.BFMatcher(norm, crossCheck=False)


def _flann_matcher(trees: int = 5, checks: int = 50) -> cv2.FlannBasedMatcher:
    index_params = dict(algorithm=FLANN_INDEX_KDTREE, trees=trees)
    search_params = dict(checks=checks)
    return cv2.FlannBasedMatcher(index_params, search_params)


def knn_match(
    des1: np.ndarray,
    des2: np.ndarray,
    *,
    method: str = "bf",
    k: int = 2,
) -> List[List[cv2.DMatch]]:
    """
    k best train candidates for every query descriptor.

    method:
        "bf"    exact brute force; Hamming for uint8 descriptors, L2 otherwise
        "flann" approximate KD-tree search; descriptors are converted to float32

    With fewer than k train rows both methods return shorter candidate lists.
    """
    if des1 is None or des2 is None or len(des1) == 0 or len(des2) == 0:
        return []
    m = method.lower()
    if m == "bf":
        knn = _bf_matcher(des1).knnMatch(des1, des2, k=k)
    elif m == "flann":
        # the KD-tree search asserts on more neighbours than train rows
        knn = _flann_matcher().knnMatch(
            np.ascontiguousarray(des1, dtype=np.float32),
            np.ascontiguousarray(des2, dtype=np.float32),
            k=min(k, len(des2)),
        )
    else:
        raise ValueError(f"Unsupported matcher: {method}")
    return [list(pair) for pair in knn]


# -----------------------------
# Filtering
# -----------------------------

@dataclass
class RatioTestResult:
    matches: List[cv2.DMatch] = field(default_factory=list)
    ratio_sum: float = 0.0

    @property
    def average_ratio(self) -> Optional[float]:
        """Mean accepted ratio, None when nothing passed."""
        if not self.matches:
            return None
        return self.ratio_sum / len(self.matches)


def ratio_test(
    knn: Sequence[Sequence[cv2.DMatch]],
    threshold: float = DISTANCE_RATIO_THRESHOLD,
) -> RatioTestResult:
    """
    Keep best matches with best / second-best <= threshold.

    Lists with fewer than two candidates, or a zero second distance, are rejected.
    """
    out = RatioTestResult()
    for cands in knn:
        if len(cands) < 2:
            continue
        m, n = cands[0], cands[1]
        if n.distance <= 0.0:
            continue
        ratio = m.distance / n.distance
        if ratio <= threshold:
            out.matches.append(m)
            out.ratio_sum += ratio
    return out


def trim_best(matches: Sequence[cv2.DMatch], limit: int = BEST_MATCHES_TO_DISPLAY) -> List[cv2.DMatch]:
    """Shortest-distance matches first, at most `limit` of them."""
    return sorted(matches, key=lambda d: d.distance)[: max(0, int(limit))]


# -----------------------------
# Visualization
# -----------------------------

def draw_matches(
    img1: np.ndarray,
    kps1: Sequence[cv2.KeyPoint],
    img2: np.ndarray,
    kps2: Sequence[cv2.KeyPoint],
    matches: Sequence[cv2.DMatch],
) -> np.ndarray:
    """
    Convenience wrapper over cv2.drawMatches; one random colour per match.
    """
    return cv2.drawMatches(
        img1, list(kps1), img2, list(kps2),
        list(matches),
        None,
        flags=cv2.DrawMatchesFlags_NOT_DRAW_SINGLE_POINTS,
    )
