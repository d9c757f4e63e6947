from __future__ import annotations

"""
ABRISK demo / benchmark driver.

Loads grayscale image pairs, finds keypoints (ABRISK or plain BRISK), matches
them (brute-force KNN or FLANN KD-tree), applies the ratio test and writes the
drawn matches to the output directory. One JSON row per run is appended to the
metrics file.

Examples:
  # The five comparison sets from config (ABRISK vs BRISK, FLANN matching)
  python -m abrisk.pipeline --config config/params.yaml --mode demo

  # ABRISK/BRISK x KNN/KD-tree on the configured perf pair, single-threaded ABRISK
  python -m abrisk.pipeline --mode perf --sequential

  # One pair
  python -m abrisk.pipeline --mode pair --image1 a.png --image2 b.png --matcher bf
"""

import argparse
import copy
import functools
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np
import yaml

from common.logging_setup import get_logger, setup_logging, silence_opencv
from common.types import FeatureSet, MatchReport
from common.utils import append_jsonl, iso_now_ms, timer_ms
from abrisk.detector import AffineDetector, ExtractorFactory, detect_plain
from abrisk.features import FeatureExtractor
from abrisk.matching import (
    BEST_MATCHES_TO_DISPLAY,
    DISTANCE_RATIO_THRESHOLD,
    draw_matches,
    knn_match,
    ratio_test,
    trim_best,
)


log = get_logger("abrisk")


DEFAULTS: Dict[str, Dict[str, Any]] = {
    "logging": {"level": "INFO", "metrics_file": "logs/metrics.jsonl"},
    "detector": {
        "method": "brisk",
        "brisk_threshold": 30,
        "brisk_octaves": 3,
        "brisk_pattern_scale": 1.0,
        "nfeatures": 2000,
    },
    "affine": {"parallel": True, "workers": None, "oversample_untilted": True},
    "matching": {
        "method": "flann",
        "ratio": DISTANCE_RATIO_THRESHOLD,
        "best_to_display": BEST_MATCHES_TO_DISPLAY,
    },
    "io": {
        "input_dir": "Input",
        "output_dir": "Output",
        "sets": [[f"image{2 * i + 1}.png", f"image{2 * i + 2}.png"] for i in range(5)],
        "perf_pair": ["image1.png", "image2.png"],
    },
}


# -----------------------------
# Config
# -----------------------------

def load_config(path: Optional[str]) -> Dict[str, Dict[str, Any]]:
    """
    Read the YAML config and fill missing keys from DEFAULTS.
    `path=None` returns the defaults.
    """
    cfg = copy.deepcopy(DEFAULTS)
    if path is None:
        return cfg
    with open(path, "r") as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config root must be a mapping: {path}")
    for section, values in loaded.items():
        if isinstance(values, dict) and isinstance(cfg.get(section), dict):
            cfg[section].update(values)
        else:
            cfg[section] = values
    return cfg


def extractor_factory(det_cfg: Dict[str, Any]) -> ExtractorFactory:
    return functools.partial(
        FeatureExtractor,
        method=str(det_cfg.get("method", "brisk")),
        brisk_threshold=int(det_cfg.get("brisk_threshold", 30)),
        brisk_octaves=int(det_cfg.get("brisk_octaves", 3)),
        brisk_pattern_scale=float(det_cfg.get("brisk_pattern_scale", 1.0)),
        nfeatures=int(det_cfg.get("nfeatures", 2000)),
    )


def affine_detector(cfg: Dict[str, Dict[str, Any]]) -> AffineDetector:
    a = cfg["affine"]
    workers = a.get("workers")
    return AffineDetector(
        extractor_factory=extractor_factory(cfg["detector"]),
        parallel=bool(a.get("parallel", True)),
        workers=None if workers is None else int(workers),
        oversample_untilted=bool(a.get("oversample_untilted", True)),
    )


# -----------------------------
# I/O
# -----------------------------

def load_pair(path1: Path, path2: Path) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """Both images as 8-bit grayscale, or None if either cannot be read."""
    img1 = cv2.imread(str(path1), cv2.IMREAD_GRAYSCALE)
    img2 = cv2.imread(str(path2), cv2.IMREAD_GRAYSCALE)
    if img1 is None or img2 is None:
        return None
    return img1, img2


# -----------------------------
# Runs
# -----------------------------

def find_keypoints(gray: np.ndarray, affine: bool, cfg: Dict[str, Dict[str, Any]]) -> FeatureSet:
    if affine:
        return affine_detector(cfg).detect_and_compute(gray)
    return detect_plain(gray, extractor_factory(cfg["detector"]))


def find_and_match(
    img1: np.ndarray,
    img2: np.ndarray,
    *,
    affine: bool,
    matcher: str,
    name: str,
    cfg: Dict[str, Dict[str, Any]],
) -> MatchReport:
    """
    Detect on both images, match, ratio-test, keep the best and save the drawing
    as <output_dir>/<name>.png.
    """
    mcfg = cfg["matching"]
    timed_find = timer_ms(find_keypoints)

    fs1, t_kp1 = timed_find(img1, affine, cfg)
    log.info("Keypoints for first image found", extra={"extra": {"run": name, **fs1.to_meta(), "ms": round(t_kp1, 1)}})
    fs2, t_kp2 = timed_find(img2, affine, cfg)
    log.info("Keypoints for second image found", extra={"extra": {"run": name, **fs2.to_meta(), "ms": round(t_kp2, 1)}})

    knn, t_match = timer_ms(knn_match)(fs1.descriptors, fs2.descriptors, method=matcher)
    log.info("Matching done", extra={"extra": {"run": name, "matcher": matcher, "knn": len(knn), "ms": round(t_match, 1)}})

    rt, t_ratio = timer_ms(ratio_test)(knn, float(mcfg.get("ratio", DISTANCE_RATIO_THRESHOLD)))
    if rt.average_ratio is None:
        log.warning("No matches passed the ratio test", extra={"extra": {"run": name}})
    else:
        log.info(
            "Good matches found",
            extra={"extra": {"run": name, "good": len(rt.matches), "avg_ratio": round(rt.average_ratio, 4), "ms": round(t_ratio, 1)}},
        )

    best = trim_best(rt.matches, int(mcfg.get("best_to_display", BEST_MATCHES_TO_DISPLAY)))
    canvas = draw_matches(img1, fs1.keypoints, img2, fs2.keypoints, best)

    out_dir = Path(cfg["io"]["output_dir"])
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / f"{name}.png"
    if not cv2.imwrite(str(out_path), canvas):
        raise RuntimeError(f"Failed to write {out_path}")

    report = MatchReport(
        name=name,
        keypoints1=len(fs1),
        keypoints2=len(fs2),
        knn_matches=len(knn),
        good_matches=len(rt.matches),
        average_ratio=rt.average_ratio,
        timings_ms={
            "keypoints1": round(t_kp1, 3),
            "keypoints2": round(t_kp2, 3),
            "match": round(t_match, 3),
            "ratio_test": round(t_ratio, 3),
        },
        output_path=str(out_path),
    )
    append_jsonl(Path(cfg["logging"]["metrics_file"]), {"ts": iso_now_ms(), "affine": affine, **report.to_dict()})
    return report


def run_demo(cfg: Dict[str, Dict[str, Any]]) -> List[MatchReport]:
    """ABRISK vs BRISK, both with FLANN, over every configured image set."""
    input_dir = Path(cfg["io"]["input_dir"])
    reports: List[MatchReport] = []
    for i, (name1, name2) in enumerate(cfg["io"]["sets"], start=1):
        pair = load_pair(input_dir / name1, input_dir / name2)
        if pair is None:
            log.error("Could not load image set", extra={"extra": {"set": i, "image1": name1, "image2": name2}})
            continue
        img1, img2 = pair
        log.info(f"===== Set {i} =====")
        reports.append(find_and_match(img1, img2, affine=True, matcher="flann", name=f"Set {i} ABRISK", cfg=cfg))
        reports.append(find_and_match(img1, img2, affine=False, matcher="flann", name=f"Set {i} BRISK", cfg=cfg))
    return reports


def run_performance_tests(cfg: Dict[str, Dict[str, Any]]) -> List[MatchReport]:
    """ABRISK / BRISK x brute-force KNN / KD-tree on the perf pair."""
    input_dir = Path(cfg["io"]["input_dir"])
    name1, name2 = cfg["io"]["perf_pair"]
    pair = load_pair(input_dir / name1, input_dir / name2)
    if pair is None:
        log.error("One of the two images is invalid or missing", extra={"extra": {"image1": name1, "image2": name2}})
        return []
    img1, img2 = pair

    mode = "Parallel" if cfg["affine"].get("parallel", True) else "Sequential"
    runs = [
        (f"ABRISK-KNN-{mode}", True, "bf"),
        (f"ABRISK-KD-{mode}", True, "flann"),
        ("BRISK-KNN", False, "bf"),
        ("BRISK-KD", False, "flann"),
    ]
    reports = []
    for name, affine, matcher in runs:
        log.info(f"===== {name} =====")
        reports.append(find_and_match(img1, img2, affine=affine, matcher=matcher, name=name, cfg=cfg))
    return reports


# -----------------------------
# CLI
# -----------------------------

def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="ABRISK — affine-invariant keypoint matching")
    ap.add_argument("--config", default="config/params.yaml")
    ap.add_argument("--mode", choices=["demo", "perf", "pair"], default="demo")
    ap.add_argument("--image1", help="First image (pair mode)")
    ap.add_argument("--image2", help="Second image (pair mode)")
    ap.add_argument("--name", default=None, help="Output name for pair mode")
    ap.add_argument("--matcher", choices=["bf", "flann"], default=None, help="Override matching.method (pair mode)")
    ap.add_argument("--no-affine", action="store_true", help="Plain detector only (pair mode)")
    ap.add_argument("--sequential", action="store_true", help="Run affine samples on the calling thread")
    ap.add_argument("--workers", type=int, default=None, help="Thread pool size for affine samples")
    ap.add_argument("--input-dir", default=None)
    ap.add_argument("--output-dir", default=None)
    ap.add_argument("--log-level", default=None)
    args = ap.parse_args(argv)

    if not Path(args.config).exists():
        raise SystemExit(f"Config not found: {args.config}")
    cfg = load_config(args.config)
    setup_logging(args.log_level or cfg["logging"].get("level", "INFO"), force=True)
    silence_opencv()

    if args.sequential:
        cfg["affine"]["parallel"] = False
    if args.workers is not None:
        cfg["affine"]["workers"] = args.workers
    if args.input_dir:
        cfg["io"]["input_dir"] = args.input_dir
    if args.output_dir:
        cfg["io"]["output_dir"] = args.output_dir

    if args.mode == "demo":
        run_demo(cfg)
        return 0
    if args.mode == "perf":
        run_performance_tests(cfg)
        return 0

    if not args.image1 or not args.image2:
        ap.error("--image1 and --image2 are required in pair mode")
    pair = load_pair(Path(args.image1), Path(args.image2))
    if pair is None:
        log.error("Could not load image pair", extra={"extra": {"image1": args.image1, "image2": args.image2}})
        return 1
    affine = not args.no_affine
    matcher = args.matcher or str(cfg["matching"].get("method", "flann"))
    name = args.name or f"{'ABRISK' if affine else 'BRISK'}-{matcher.upper()}"
    report = find_and_match(pair[0], pair[1], affine=affine, matcher=matcher, name=name, cfg=cfg)
    log.info("Run finished", extra={"extra": report.to_dict()})
    return 0


if __name__ == "__main__":
    sys.exit(main())
