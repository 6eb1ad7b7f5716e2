from __future__ import annotations

from typing import Any

import numpy as np

from ..core.matrix import as_matrix3
from ..core.types import Point2D, VideoDimensions


def normalized_to_pixel(point: Point2D, video: VideoDimensions) -> Point2D:
    return Point2D(point.x * float(video.width), point.y * float(video.height))


def pixel_to_normalized(point: Point2D, video: VideoDimensions) -> Point2D:
    if video.width <= 0 or video.height <= 0:
        raise ValueError(f"pixel_to_normalized: invalid video dimensions {video.width}x{video.height}")
    return Point2D(point.x / float(video.width), point.y / float(video.height))


def scale_homography_for_dimensions(H: Any, src: VideoDimensions, dst: VideoDimensions) -> np.ndarray:
    """Re-target a world -> image homography from ``src`` to ``dst`` pixel dimensions.

    H' = S H with S = diag(dst.w / src.w, dst.h / src.h, 1), renormalized so H'[2,2] == 1.
    """
    if src.width <= 0 or src.height <= 0 or dst.width <= 0 or dst.height <= 0:
        raise ValueError("scale_homography_for_dimensions: video dimensions must be positive")
    S = np.diag([float(dst.width) / src.width, float(dst.height) / src.height, 1.0])
    Hs = S @ as_matrix3(H)
    if abs(Hs[2, 2]) > 1e-12:
        Hs = Hs / Hs[2, 2]
    return Hs
