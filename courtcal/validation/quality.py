from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..calibration.homography import apply_homography
from ..calibration.lines import LineCorrespondence, correspondence_points
from ..core.matrix import as_matrix3
from ..core.types import CoordinateSystemValidation, CourtDimensions, VideoDimensions
from ..transform.coordinates import is_valid_homography
from .coordinate_validation import meters_per_pixel, validate_coordinate_system


logger = logging.getLogger(__name__)

CONDITION_CAP = 1e6
WEIGHTS: Dict[str, float] = {
    "reprojection": 0.3,
    "condition": 0.2,
    "perspective": 0.2,
    "line_alignment": 0.2,
    "coordinate_validation": 0.1,
}
DISTORTION_REGIONS = [(0.2, 0.2), (0.8, 0.2), (0.2, 0.8), (0.8, 0.8)]


@dataclass
class CalibrationQualityMetrics:
    reprojection_error: float
    condition_number: float
    perspective_distortion: float
    line_alignment_scores: List[float]
    coordinate_system_validation: Optional[CoordinateSystemValidation]
    overall_confidence: float
    quality_grade: str
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reprojection_error": float(self.reprojection_error),
            "condition_number": float(self.condition_number),
            "perspective_distortion": float(self.perspective_distortion),
            "line_alignment_scores": [float(s) for s in self.line_alignment_scores],
            "coordinate_system_validation": (
                self.coordinate_system_validation.to_dict() if self.coordinate_system_validation else None
            ),
            "overall_confidence": float(self.overall_confidence),
            "quality_grade": self.quality_grade,
            "recommendations": list(self.recommendations),
        }


def reprojection_error(H: Any, world: np.ndarray, image: np.ndarray) -> float:
    """Mean pixel distance between projected world points and their image points."""
    if len(world) == 0:
        return float("inf")
    pred = apply_homography(as_matrix3(H), world)
    err = np.linalg.norm(pred - np.asarray(image, dtype=np.float64), axis=1)
    err = err[np.isfinite(err)]
    return float(err.mean()) if err.size else float("inf")


def condition_number(
    H: Any, video: VideoDimensions | None = None, court: CourtDimensions | None = None
) -> float:
    """2-norm condition number of H, capped at CONDITION_CAP.

    With ``video`` and ``court`` the matrix is first conditioned so both
    planes span roughly [-1, 1]; otherwise pixel/meter scale differences
    dominate the figure.
    """
    if not is_valid_homography(H):
        return float("inf")
    M = as_matrix3(H)
    if video is not None and court is not None and video.width > 0 and video.height > 0:
        Ni = np.array([[2.0 / video.width, 0.0, -1.0], [0.0, 2.0 / video.height, -1.0], [0.0, 0.0, 1.0]])
        Nw_inv = np.diag([court.width / 2.0, court.length / 2.0, 1.0])
        M = Ni @ M @ Nw_inv
    s = np.linalg.svd(M, compute_uv=False)
    if s[-1] < 1e-12:
        return CONDITION_CAP
    return float(min(s[0] / s[-1], CONDITION_CAP))


def perspective_distortion(H: Any, video: VideoDimensions, half_segment_px: float = 50.0) -> float:
    """Coefficient of variation of meters-per-pixel over four off-center regions (1.0 if unmeasurable)."""
    if not is_valid_homography(H):
        return 1.0
    scales = []
    for fx, fy in DISTORTION_REGIONS:
        s = meters_per_pixel(H, video.width * fx, video.height * fy, half_segment_px)
        if s is not None and np.isfinite(s):
            scales.append(s)
    if len(scales) < 2:
        return 1.0
    mean = float(np.mean(scales))
    return float(np.std(scales) / mean) if mean > 0 else 1.0


def line_alignment_scores(
    H: Any,
    lines: Sequence[LineCorrespondence],
    scale_px: float = 50.0,
    video: VideoDimensions | None = None,
) -> List[float]:
    """Per-line score max(0, 1 - mean endpoint error / scale_px); drawn direction is ignored."""
    scores: List[float] = []
    for c in lines:
        proj = apply_homography(as_matrix3(H), c.world_endpoints())
        drawn = c.video_line.pixel_endpoints(video)
        if not np.all(np.isfinite(proj)):
            scores.append(0.0)
            continue
        fwd = np.linalg.norm(proj - drawn, axis=1).mean()
        rev = np.linalg.norm(proj - drawn[::-1], axis=1).mean()
        scores.append(max(0.0, 1.0 - float(min(fwd, rev)) / scale_px))
    return scores


def quality_grade(confidence: float) -> str:
    if confidence >= 0.9:
        return "excellent"
    if confidence >= 0.7:
        return "good"
    if confidence >= 0.5:
        return "fair"
    return "poor"


def overall_confidence(
    reproj: float,
    cond: float,
    distortion: float,
    line_scores: Sequence[float],
    coord: Optional[CoordinateSystemValidation],
) -> float:
    reproj_score = max(0.0, 1.0 - reproj / 100.0) if math.isfinite(reproj) else 0.0
    cond_score = max(0.0, 1.0 - math.log10(max(1.0, cond)) / 6.0) if math.isfinite(cond) else 0.0
    persp_score = max(0.0, 1.0 - distortion)
    line_score = float(np.mean(line_scores)) if line_scores else 0.0
    coord_score = coord.overall_score if coord is not None else 0.0
    total = (
        reproj_score * WEIGHTS["reprojection"]
        + cond_score * WEIGHTS["condition"]
        + persp_score * WEIGHTS["perspective"]
        + line_score * WEIGHTS["line_alignment"]
        + coord_score * WEIGHTS["coordinate_validation"]
    )
    return max(0.0, min(1.0, total))


def recommendations(m: CalibrationQualityMetrics) -> List[str]:
    out: List[str] = []
    if m.reprojection_error > 50:
        out.append("High reprojection error: check that lines are drawn precisely on the court boundaries.")
    if m.condition_number > 1000:
        out.append("Matrix instability: draw lines with a better geometric spread across the image.")
    if m.perspective_distortion > 0.3:
        out.append("High perspective distortion: recalibrate with lines spread more evenly over the court.")
    if m.line_alignment_scores and float(np.mean(m.line_alignment_scores)) < 0.7:
        out.append("Poor line alignment: redraw lines so they follow the actual court lines in the video.")
    cv = m.coordinate_system_validation
    if cv is not None and cv.overall_score < 0.6:
        out.append("Coordinate system validation failed: check the camera position and the line assignments.")
    if not out:
        out.append("Calibration quality is good. No specific improvements needed.")
    return out


def assess_calibration_quality(
    H: Any,
    lines: Sequence[LineCorrespondence],
    video: VideoDimensions,
    court: CourtDimensions | None = None,
    world_points: np.ndarray | None = None,
    image_points: np.ndarray | None = None,
) -> CalibrationQualityMetrics:
    """Score a homography against its line correspondences and the frame geometry.

    Point pairs default to the line endpoints.
    """
    court = court or CourtDimensions()
    if world_points is None or image_points is None:
        if lines:
            world_points, image_points = correspondence_points(lines, video=video)
        else:
            world_points, image_points = np.zeros((0, 2)), np.zeros((0, 2))

    if not is_valid_homography(H):
        m = CalibrationQualityMetrics(
            reprojection_error=float("inf"),
            condition_number=float("inf"),
            perspective_distortion=1.0,
            line_alignment_scores=[0.0] * len(lines),
            coordinate_system_validation=None,
            overall_confidence=0.0,
            quality_grade="poor",
        )
        m.recommendations = ["Invalid homography: calibration must be redone."]
        logger.warning("Quality: invalid homography")
        return m

    reproj = reprojection_error(H, world_points, image_points)
    cond = condition_number(H, video, court)
    dist = perspective_distortion(H, video)
    scores = line_alignment_scores(H, lines, video=video)
    coord = validate_coordinate_system(H, video, court)
    conf = overall_confidence(reproj, cond, dist, scores, coord)
    m = CalibrationQualityMetrics(
        reprojection_error=reproj,
        condition_number=cond,
        perspective_distortion=dist,
        line_alignment_scores=scores,
        coordinate_system_validation=coord,
        overall_confidence=conf,
        quality_grade=quality_grade(conf),
    )
    m.recommendations = recommendations(m)
    return m
