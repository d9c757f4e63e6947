from __future__ import annotations
"""
ABRISK: affine-invariant detection around a stock OpenCV detector.

Every (tilt, phi) sample of the affine grid is an independent task on a
thread pool: warp a copy of the image, detect inside the valid mask, map the
keypoints back to source coordinates and append the batch to a shared result.
"""

import os
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np
from concurrent.futures import ThreadPoolExecutor

from common.logging_setup import get_logger
from common.types import AffineParams, FeatureSet
from abrisk.features import FeatureExtractor, back_project
from abrisk.sampling import affine_params
from abrisk.skew import affine_skew, check_gray_u8


log = get_logger("abrisk.detector")

ExtractorFactory = Callable[[], FeatureExtractor]


class _Aggregator:
    """Collects per-sample batches; one lock covers keypoints and descriptors together."""

    def __init__(self, empty_descriptors: np.ndarray) -> None:
        self._lock = threading.Lock()
        self._keypoints: List[cv2.KeyPoint] = []
        self._descriptors: List[np.ndarray] = []
        self._empty = empty_descriptors
        self.samples = 0
        self.failed = 0

    def add(self, kps: List[cv2.KeyPoint], des: np.ndarray) -> None:
        if len(kps) != des.shape[0]:
            raise ValueError(f"batch of {len(kps)} keypoints with {des.shape[0]} descriptor rows")
        with self._lock:
            self.samples += 1
            if kps:
                self._keypoints.extend(kps)
                self._descriptors.append(des)

    def fail(self) -> None:
        with self._lock:
            self.samples += 1
            self.failed += 1

    def result(self) -> FeatureSet:
        with self._lock:
            des = np.vstack(self._descriptors) if self._descriptors else self._empty.copy()
            return FeatureSet(
                keypoints=list(self._keypoints),
                descriptors=des,
                samples=self.samples,
                failed=self.failed,
            )


@dataclass
class AffineDetector:
    """
    Args:
        extractor_factory: returns a fresh FeatureExtractor; called once per sample
            so no detector object is shared between threads.
        parallel: run samples on a thread pool (False runs them in grid order).
        workers: pool size, defaults to os.cpu_count().
        oversample_untilted: keep the three rotations of tilt level 1.
    """
    extractor_factory: ExtractorFactory = FeatureExtractor
    parallel: bool = True
    workers: Optional[int] = None
    oversample_untilted: bool = True

    def __post_init__(self):
        if self.workers is not None and self.workers < 1:
            raise ValueError("workers must be >= 1")
        self.params: List[AffineParams] = affine_params(oversample_untilted=self.oversample_untilted)

    @property
    def pool_size(self) -> int:
        return int(self.workers or os.cpu_count() or 1)

    def _run_sample(self, gray: np.ndarray, p: AffineParams) -> Tuple[List[cv2.KeyPoint], np.ndarray]:
        sk = affine_skew(gray, p.tilt, p.phi)
        kps, des = self.extractor_factory().detect_and_compute(sk.image, sk.mask)
        if len(kps) != des.shape[0]:
            raise ValueError(f"{len(kps)} keypoints with {des.shape[0]} descriptor rows")
        return back_project(kps, sk.Ai), des

    def _task(self, gray: np.ndarray, p: AffineParams, agg: _Aggregator) -> None:
        sample = {"level": p.level, "tilt": round(p.tilt, 4), "phi": round(p.phi, 2)}
        try:
            kps, des = self._run_sample(gray, p)
            agg.add(kps, des)
        except Exception:
            # a failed sample contributes nothing
            log.exception("Affine sample failed", extra={"extra": sample})
            agg.fail()
            return
        log.debug("Affine sample done", extra={"extra": {**sample, "keypoints": len(kps)}})

    def detect_and_compute(self, gray: np.ndarray) -> FeatureSet:
        """
        Detect over the whole affine grid.

        Returns a FeatureSet in source-image coordinates. Keypoint order across
        samples depends on scheduling; the count does not.
        """
        check_gray_u8(gray)
        agg = _Aggregator(self.extractor_factory().empty_descriptors())

        if self.parallel:
            with ThreadPoolExecutor(max_workers=self.pool_size, thread_name_prefix="abrisk") as pool:
                futures = [pool.submit(self._task, gray, p, agg) for p in self.params]
            for f in futures:
                f.result()
        else:
            for p in self.params:
                self._task(gray, p, agg)

        fs = agg.result()
        log.info("Affine detection finished", extra={"extra": {**fs.to_meta(), "parallel": self.parallel}})
        return fs


def detect_plain(gray: np.ndarray, extractor_factory: ExtractorFactory = FeatureExtractor) -> FeatureSet:
    """Single pass of the underlying detector on the untransformed image."""
    check_gray_u8(gray)
    kps, des = extractor_factory().detect_and_compute(gray, None)
    return FeatureSet(keypoints=list(kps), descriptors=des, samples=1, failed=0)
