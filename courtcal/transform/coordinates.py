from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

import numpy as np

from ..calibration.camera import estimate_subject_height, resolve_camera_position
from ..core.matrix import SINGULAR_EPS, InverseCache, as_matrix3, determinant, invert, inverse_cache
from ..core.types import (
    CameraPositionConfig,
    CourtDimensions,
    Point2D,
    Point3D,
    PoseLandmark,
    VideoDimensions,
    WorldLandmark,
)


logger = logging.getLogger(__name__)


def _xy(point: Any) -> tuple[float, float]:
    if isinstance(point, (Point2D, Point3D, PoseLandmark)):
        return float(point.x), float(point.y)
    if isinstance(point, dict):
        return float(point["x"]), float(point["y"])
    x, y = list(point)[:2]
    return float(x), float(y)


def is_valid_homography(H: Any) -> bool:
    """3x3, all finite, invertible (|det| >= 1e-10) and |H[2][2]| >= 1e-10."""
    if H is None:
        return False
    try:
        a = as_matrix3(H)
    except ValueError:
        return False
    if not np.all(np.isfinite(a)):
        return False
    if abs(determinant(a)) < SINGULAR_EPS:
        return False
    return abs(a[2, 2]) >= SINGULAR_EPS


def _ground_point(H_inv: np.ndarray, x: float, y: float) -> Optional[tuple[float, float]]:
    v = H_inv @ np.array([x, y, 1.0], dtype=np.float64)
    if not np.all(np.isfinite(v)) or abs(v[2]) < SINGULAR_EPS:
        return None
    return float(v[0] / v[2]), float(v[1] / v[2])


def correct_for_camera(ground: Point3D, z: float, camera_pos: Point3D) -> Point3D:
    """Move a ground-plane hit toward the camera to where the ray is at height z.

    The image ray through a point at height z meets the plane behind it, so
    P = G + (C - G) * z / C.z. Returns G unchanged when the camera is not
    above z.
    """
    if z <= 0.0 or camera_pos.z <= z:
        return Point3D(ground.x, ground.y, z)
    t = z / camera_pos.z
    return Point3D(
        ground.x + (camera_pos.x - ground.x) * t,
        ground.y + (camera_pos.y - ground.y) * t,
        z,
    )


def image_to_world(
    point: Any,
    H: Any,
    z: Optional[float] = None,
    camera: CameraPositionConfig | None = None,
    height_prior: Any = None,
    court: CourtDimensions | None = None,
    cache: InverseCache | None = None,
) -> Optional[Point3D]:
    """Image point -> world point through the cached H^-1.

    Returns None when H is singular or the point maps to infinity. When ``z``
    is None and a camera with known edge is given, the height is estimated
    heuristically and the ground hit is pulled toward the camera.
    """
    H_inv = (cache if cache is not None else inverse_cache).inverse(H)
    if H_inv is None:
        logger.debug("image_to_world: homography is singular (det=%.3e)", determinant(H))
        return None
    x, y = _xy(point)
    g = _ground_point(H_inv, x, y)
    if g is None:
        return None

    if z is None:
        if camera is None or not camera.has_known_edge:
            return Point3D(g[0], g[1], 0.0)
        z = estimate_subject_height(camera, height_prior, court)

    ground = Point3D(g[0], g[1], 0.0)
    if camera is not None and z > 0.0:
        pos = resolve_camera_position(camera, court)
        if pos is not None:
            return correct_for_camera(ground, float(z), pos)
    return Point3D(g[0], g[1], float(z))


def world_to_image(point: Any, H: Any) -> Optional[Point2D]:
    """Forward projection H [x, y, 1]^T; None when w ~ 0."""
    a = as_matrix3(H)
    x, y = _xy(point)
    v = a @ np.array([x, y, 1.0], dtype=np.float64)
    if not np.all(np.isfinite(v)) or abs(v[2]) < SINGULAR_EPS:
        return None
    return Point2D(float(v[0] / v[2]), float(v[1] / v[2]))


def batch_image_to_world(points: Sequence[Any], H: Any, z: float = 0.0) -> List[Optional[Point3D]]:
    """Image -> world for many points with a single inversion."""
    H_inv = invert(H)
    if H_inv is None:
        logger.debug("batch_image_to_world: homography is singular; %d points dropped", len(points))
        return [None] * len(points)
    if len(points) == 0:
        return []
    xy = np.asarray([_xy(p) for p in points], dtype=np.float64)
    hom = np.hstack([xy, np.ones((xy.shape[0], 1))]) @ H_inv.T
    out: List[Optional[Point3D]] = []
    for X, Y, W in hom:
        if not np.isfinite(W) or abs(W) < SINGULAR_EPS:
            out.append(None)
        else:
            out.append(Point3D(float(X / W), float(Y / W), float(z)))
    return out


def _lm_field(lm: Any, name: str) -> Optional[float]:
    v = lm.get(name) if isinstance(lm, dict) else getattr(lm, name, None)
    return None if v is None else float(v)


def transform_pose_landmarks(
    landmarks: Sequence[Any],
    H: Any,
    world_z: float = 0.0,
    depth_scale: float = 2.0,
    video: VideoDimensions | None = None,
) -> List[Optional[WorldLandmark]]:
    """Per-landmark image -> world, keeping visibility and relative depth.

    Landmark x, y must be in the unit H expects; pass ``video`` to scale
    normalized landmarks to pixels first. The landmark's own z is kept as
    ``world_z + z * depth_scale``. Landmarks that cannot be mapped are None.
    """
    H_inv = invert(H)
    if H_inv is None:
        logger.warning("transform_pose_landmarks: homography is singular; skipping %d landmarks", len(landmarks))
        return [None] * len(landmarks)
    sx = float(video.width) if video is not None else 1.0
    sy = float(video.height) if video is not None else 1.0

    out: List[Optional[WorldLandmark]] = []
    for lm in landmarks:
        x, y = _xy(lm)
        g = _ground_point(H_inv, x * sx, y * sy)
        if g is None:
            out.append(None)
            continue
        rel_z = _lm_field(lm, "z")
        wz = world_z + rel_z * depth_scale if rel_z is not None else world_z
        out.append(
            WorldLandmark(
                x=g[0],
                y=g[1],
                z=float(wz),
                visibility=_lm_field(lm, "visibility"),
                original_z=rel_z,
            )
        )
    return out
