from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..core.matrix import InverseCache
from ..core.types import (
    CoordinateSystemValidation,
    CourtDimensions,
    Point2D,
    ValidationResult,
    VideoDimensions,
)
from ..transform.coordinates import image_to_world, world_to_image


logger = logging.getLogger(__name__)

WEIGHTS: Dict[str, float] = {"round_trip": 0.4, "boundary": 0.3, "scale": 0.3}

# image-fraction centers of the scale samples: center + 4 quadrants
SCALE_REGIONS = [(0.5, 0.5), (0.25, 0.25), (0.75, 0.25), (0.25, 0.75), (0.75, 0.75)]


def generate_test_points(video: VideoDimensions) -> List[Point2D]:
    """5x5 grid at 10..90% of the frame, the center, and 4 corners inset by 5% of min(w, h)."""
    w, h = float(video.width), float(video.height)
    pts = [Point2D(fx * w, fy * h) for fx in (0.1, 0.3, 0.5, 0.7, 0.9) for fy in (0.1, 0.3, 0.5, 0.7, 0.9)]
    pts.append(Point2D(w / 2.0, h / 2.0))
    m = min(w, h) * 0.05
    pts.extend([Point2D(m, m), Point2D(w - m, m), Point2D(m, h - m), Point2D(w - m, h - m)])
    return pts


def validate_round_trip_accuracy(
    points: Sequence[Point2D],
    H: Any,
    tolerance_px: float = 2.0,
    cache: InverseCache | None = None,
) -> ValidationResult:
    errors: List[float] = []
    for p in points:
        w = image_to_world(p, H, z=0.0, cache=cache)
        if w is None:
            continue
        back = world_to_image(w, H)
        if back is None:
            continue
        errors.append(math.hypot(p.x - back.x, p.y - back.y))

    if not errors:
        return ValidationResult(False, float("inf"), 0.0, "No valid transformations found")

    avg = float(np.mean(errors))
    mx = float(np.max(errors))
    ok = avg <= tolerance_px and mx <= tolerance_px * 2.0
    return ValidationResult(
        is_valid=bool(ok),
        error=avg,
        confidence=max(0.0, 1.0 - avg / tolerance_px),
        details=(
            f"Average error: {avg:.2f}px, Max error: {mx:.2f}px, "
            f"Valid transforms: {len(errors)}/{len(points)}"
        ),
    )


def validate_coordinate_bounds(
    points: Sequence[Point2D],
    video: VideoDimensions,
    H: Any,
    court: CourtDimensions | None = None,
    margin: float = 2.0,
    cache: InverseCache | None = None,
) -> ValidationResult:
    """Share of in-frame test points whose world position lies beyond ``margin`` x the court half-extents."""
    court = court or CourtDimensions()
    max_x = margin * court.width / 2.0
    max_y = margin * court.length / 2.0
    valid = 0
    out_of_bounds = 0
    for p in points:
        if p.x < 0 or p.x > video.width or p.y < 0 or p.y > video.height:
            continue
        w = image_to_world(p, H, z=0.0, cache=cache)
        if w is None:
            continue
        valid += 1
        if abs(w.x) > max_x or abs(w.y) > max_y:
            out_of_bounds += 1

    if valid == 0:
        return ValidationResult(False, 1.0, 0.0, "No valid coordinate transformations")

    ratio = out_of_bounds / valid
    return ValidationResult(
        is_valid=ratio < 0.1,
        error=float(ratio),
        confidence=max(0.0, 1.0 - ratio),
        details=f"{out_of_bounds}/{valid} points out of court bounds ({ratio * 100:.1f}%)",
    )


def meters_per_pixel(
    H: Any, x: float, y: float, half_segment_px: float = 50.0, cache: InverseCache | None = None
) -> Optional[float]:
    """World distance covered by a horizontal +-half_segment_px segment, divided by its pixel length."""
    a = image_to_world(Point2D(x - half_segment_px, y), H, z=0.0, cache=cache)
    b = image_to_world(Point2D(x + half_segment_px, y), H, z=0.0, cache=cache)
    if a is None or b is None:
        return None
    return math.hypot(b.x - a.x, b.y - a.y) / (2.0 * half_segment_px)


def validate_scale_consistency(
    H: Any,
    video: VideoDimensions,
    court: CourtDimensions | None = None,
    half_segment_px: float = 50.0,
    cache: InverseCache | None = None,
) -> ValidationResult:
    scales: List[float] = []
    for fx, fy in SCALE_REGIONS:
        s = meters_per_pixel(H, video.width * fx, video.height * fy, half_segment_px, cache=cache)
        if s is not None and np.isfinite(s):
            scales.append(s)

    if len(scales) < 2:
        return ValidationResult(False, 1.0, 0.0, "Insufficient scale measurements")

    mean = float(np.mean(scales))
    if mean <= 0.0:
        return ValidationResult(False, 1.0, 0.0, "Degenerate scale measurements")
    dev = [abs(s - mean) / mean for s in scales]
    max_dev = float(max(dev))
    avg_dev = float(np.mean(dev))
    return ValidationResult(
        is_valid=max_dev < 0.2 and avg_dev < 0.1,
        error=avg_dev,
        confidence=max(0.0, 1.0 - avg_dev * 5.0),
        details=f"Scale variation: avg {avg_dev * 100:.1f}%, max {max_dev * 100:.1f}%",
    )


def validate_coordinate_system(
    H: Any,
    video: VideoDimensions,
    court: CourtDimensions | None = None,
    test_points: Sequence[Point2D] | None = None,
    tolerance_px: float = 2.0,
    bounds_margin: float = 2.0,
    half_segment_px: float = 50.0,
    cache: InverseCache | None = None,
) -> CoordinateSystemValidation:
    """Round-trip, bounds and scale checks combined with weights 0.4/0.3/0.3.

    Computes the score only; rejecting a calibration is the caller's call.
    """
    pts = list(test_points) if test_points is not None else generate_test_points(video)
    rt = validate_round_trip_accuracy(pts, H, tolerance_px, cache=cache)
    bd = validate_coordinate_bounds(pts, video, H, court, bounds_margin, cache=cache)
    sc = validate_scale_consistency(H, video, court, half_segment_px, cache=cache)
    overall = (
        rt.confidence * WEIGHTS["round_trip"]
        + bd.confidence * WEIGHTS["boundary"]
        + sc.confidence * WEIGHTS["scale"]
    )
    logger.debug(
        "Coordinate validation: round-trip %.3f, bounds %.3f, scale %.3f -> %.3f",
        rt.confidence,
        bd.confidence,
        sc.confidence,
        overall,
    )
    return CoordinateSystemValidation(rt, bd, sc, float(overall))


def validate_transformation_between_systems(
    source: Sequence[Optional[Point2D]],
    target: Sequence[Optional[Point2D]],
    tolerance: float = 2.0,
) -> ValidationResult:
    """Pointwise agreement of two point lists that should coincide."""
    if len(source) != len(target):
        return ValidationResult(False, float("inf"), 0.0, "Mismatched point count between coordinate systems")
    errors = [math.hypot(s.x - t.x, s.y - t.y) for s, t in zip(source, target) if s is not None and t is not None]
    if not errors:
        return ValidationResult(False, float("inf"), 0.0, "No comparable point pairs")
    avg = float(np.mean(errors))
    mx = float(np.max(errors))
    return ValidationResult(
        is_valid=avg <= tolerance,
        error=avg,
        confidence=max(0.0, 1.0 - avg / tolerance),
        details=f"Average error: {avg:.2f}px, Max error: {mx:.2f}px",
    )
