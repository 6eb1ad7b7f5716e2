from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..core.errors import DegenerateGeometryError, InsufficientCorrespondencesError
from ..core.types import Point2D, VideoDimensions
from .court import CourtLine


# Two directions closer than this (degrees) count as parallel
PARALLEL_TOL_DEG = 2.0
MIN_CORRESPONDENCES = 3


@dataclass
class DrawnLine:
    """User-drawn image line; endpoints normalized against ``video`` at draw time."""

    start: Point2D
    end: Point2D
    video: VideoDimensions

    def pixel_endpoints(self, video: VideoDimensions | None = None) -> np.ndarray:
        """(2,2) pixel endpoints [[x0, y0], [x1, y1]] in ``video`` (default: the draw-time frame)."""
        video = video or self.video
        w, h = float(video.width), float(video.height)
        return np.array(
            [[self.start.x * w, self.start.y * h], [self.end.x * w, self.end.y * h]],
            dtype=np.float64,
        )


@dataclass
class LineCorrespondence:
    court_line: CourtLine
    video_line: DrawnLine

    @property
    def name(self) -> str:
        return self.court_line.name

    def world_endpoints(self) -> np.ndarray:
        s, e = self.court_line.start, self.court_line.end
        return np.array([[s.x, s.y], [e.x, e.y]], dtype=np.float64)


def _direction_deg(p: np.ndarray) -> float:
    d = p[1] - p[0]
    # undirected line: fold into [0, 180)
    return math.degrees(math.atan2(d[1], d[0])) % 180.0


def _angle_between(a: float, b: float) -> float:
    diff = abs(a - b) % 180.0
    return min(diff, 180.0 - diff)


def all_parallel(segments: Sequence[np.ndarray], tol_deg: float = PARALLEL_TOL_DEG) -> bool:
    if len(segments) < 2:
        return True
    dirs = [_direction_deg(s) for s in segments]
    return all(_angle_between(dirs[0], d) <= tol_deg for d in dirs[1:])


def calibration_video(
    correspondences: Sequence[LineCorrespondence], video: VideoDimensions | None = None
) -> Optional[VideoDimensions]:
    """The one pixel space every drawn line is resolved in: ``video``, else the first line's frame.

    Endpoints are stored normalized, so a line drawn on a differently sized
    copy of the frame lands on the same pixels once resolved here.
    """
    if video is not None:
        return video
    return correspondences[0].video_line.video if correspondences else None


def _is_usable(c: LineCorrespondence, min_len_px: float, video: VideoDimensions | None) -> bool:
    v = video or c.video_line.video
    if v.width <= 0 or v.height <= 0:
        return False
    w = c.world_endpoints()
    p = c.video_line.pixel_endpoints(v)
    if not (np.all(np.isfinite(w)) and np.all(np.isfinite(p))):
        return False
    return np.linalg.norm(w[1] - w[0]) > 1e-9 and np.linalg.norm(p[1] - p[0]) >= min_len_px


def usable_correspondences(
    correspondences: Sequence[LineCorrespondence],
    min_len_px: float = 1.0,
    video: VideoDimensions | None = None,
) -> List[LineCorrespondence]:
    """Drop lines with non-finite or zero-length endpoints in either space."""
    return [c for c in correspondences if _is_usable(c, min_len_px, video)]


def check_line_geometry(
    correspondences: Sequence[LineCorrespondence],
    tol_deg: float = PARALLEL_TOL_DEG,
    video: VideoDimensions | None = None,
) -> None:
    """Reject configurations that cannot constrain a homography, before any solve.

    Raises InsufficientCorrespondencesError or DegenerateGeometryError.
    """
    if len(correspondences) < MIN_CORRESPONDENCES:
        raise InsufficientCorrespondencesError(len(correspondences), MIN_CORRESPONDENCES)
    video = calibration_video(correspondences, video)
    world = [c.world_endpoints() for c in correspondences]
    image = [c.video_line.pixel_endpoints(video) for c in correspondences]
    if all_parallel(world, tol_deg) and all_parallel(image, tol_deg):
        raise DegenerateGeometryError("insufficient geometric diversity: all lines are mutually parallel")

    pts = np.unique(np.round(np.concatenate(world, axis=0), 9), axis=0)
    if len(pts) < 4:
        raise DegenerateGeometryError(
            f"insufficient geometric diversity: only {len(pts)} distinct court points"
        )
    centered = pts - pts.mean(axis=0)
    s = np.linalg.svd(centered, compute_uv=False)
    if s[0] <= 0 or s[1] / s[0] < 1e-6:
        raise DegenerateGeometryError("insufficient geometric diversity: all court points are collinear")


def correspondence_points(
    correspondences: Sequence[LineCorrespondence],
    flips: Sequence[bool] | None = None,
    video: VideoDimensions | None = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Stack line endpoints into point pairs.

    Returns (world (2N,2), image (2N,2)), image points in ``video`` pixels
    (see calibration_video). ``flips[i]`` swaps the drawn endpoints of line i.
    """
    video = calibration_video(correspondences, video)
    W: List[np.ndarray] = []
    U: List[np.ndarray] = []
    for i, c in enumerate(correspondences):
        p = c.video_line.pixel_endpoints(video)
        if flips is not None and flips[i]:
            p = p[::-1]
        W.append(c.world_endpoints())
        U.append(p)
    return np.concatenate(W, axis=0), np.concatenate(U, axis=0)
