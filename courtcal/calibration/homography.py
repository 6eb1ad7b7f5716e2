from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import cv2

from ..core.errors import DegenerateGeometryError
from ..core.matrix import InverseCache, inverse_cache, invert
from ..core.types import CameraParameters, CameraPositionConfig, CourtDimensions, VideoDimensions
from ..transform.coordinates import is_valid_homography
from .camera import camera_side_points
from .lines import (
    LineCorrespondence,
    calibration_video,
    check_line_geometry,
    correspondence_points,
    usable_correspondences,
)


logger = logging.getLogger(__name__)


@dataclass
class HomographyEstimate:
    H: np.ndarray
    reprojection_error_px: float
    confidence: float
    num_points: int
    flipped_lines: List[str] = field(default_factory=list)
    method: str = "dlt"
    camera_consistent: Optional[bool] = None
    residuals: Optional[np.ndarray] = None


def hartley_normalization(pts: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Similarity T moving the centroid to 0 and mean distance to sqrt(2).

    pts: (N,2) -> (T (3,3), normalized pts (N,2))
    """
    pts = np.asarray(pts, dtype=np.float64)
    c = pts.mean(axis=0)
    d = np.linalg.norm(pts - c, axis=1).mean()
    s = np.sqrt(2.0) / d if d > 1e-12 else 1.0
    T = np.array([[s, 0.0, -s * c[0]], [0.0, s, -s * c[1]], [0.0, 0.0, 1.0]], dtype=np.float64)
    return T, (pts - c) * s


def apply_homography(H: np.ndarray, pts: np.ndarray) -> np.ndarray:
    """pts: (N,2) -> (N,2); rows mapping to infinity become nan."""
    pts = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    hom = np.hstack([pts, np.ones((pts.shape[0], 1))])
    prj = (np.asarray(H, dtype=np.float64) @ hom.T).T
    w = prj[:, 2:3]
    out = np.full((pts.shape[0], 2), np.nan)
    ok = np.abs(w[:, 0]) >= 1e-10
    out[ok] = prj[ok, :2] / w[ok]
    return out


def reprojection_rmse(H: np.ndarray, world: np.ndarray, image: np.ndarray) -> float:
    pred = apply_homography(H, world)
    err = np.linalg.norm(pred - np.asarray(image, dtype=np.float64), axis=1)
    if not np.all(np.isfinite(err)):
        return float("inf")
    return float(np.sqrt(np.mean(err**2)))


def dlt_homography(world: np.ndarray, image: np.ndarray, rank_tol: float = 1e-8) -> np.ndarray:
    """Normalized DLT for a plane-to-image homography.

    world: (N,2) court-plane meters, image: (N,2) pixels, N >= 4.
    Returns H (3,3) with H[2,2] == 1. Raises DegenerateGeometryError when
    the design matrix has more than a one-dimensional null space.
    """
    world = np.asarray(world, dtype=np.float64)
    image = np.asarray(image, dtype=np.float64)
    if world.shape[0] < 4 or world.shape != image.shape:
        raise DegenerateGeometryError(f"need >= 4 point pairs for DLT, got {world.shape[0]}")

    Tw, wn = hartley_normalization(world)
    Ti, un = hartley_normalization(image)
    rows = []
    for (X, Y), (u, v) in zip(wn, un):
        rows.append([X, Y, 1.0, 0.0, 0.0, 0.0, -u * X, -u * Y, -u])
        rows.append([0.0, 0.0, 0.0, X, Y, 1.0, -v * X, -v * Y, -v])
    A = np.asarray(rows, dtype=np.float64)

    _U, s, Vt = np.linalg.svd(A)
    # 2N >= 8 rows, so s has 8 or 9 entries; the null space must be exactly one-dimensional
    if s.shape[0] < 9:
        s = np.concatenate([s, np.zeros(9 - s.shape[0])])
    if s[0] <= 0 or s[-2] / s[0] < rank_tol:
        raise DegenerateGeometryError(
            f"insufficient geometric diversity: rank-deficient system (sigma ratio {s[-2] / max(s[0], 1e-300):.2e})"
        )
    Hn = Vt[-1].reshape(3, 3)

    Ti_inv = invert(Ti)
    H = Ti_inv @ Hn @ Tw
    if abs(H[2, 2]) < 1e-10:
        raise DegenerateGeometryError("insufficient geometric diversity: degenerate normalization term H[2][2]")
    return H / H[2, 2]


def _flip_candidates(n: int, max_flip_search: int):
    k = min(n, max(0, int(max_flip_search)))
    for combo in itertools.product((False, True), repeat=k):
        yield list(combo) + [False] * (n - k)


def _check_camera_side(H: np.ndarray, camera: CameraPositionConfig, court: CourtDimensions | None) -> Optional[bool]:
    pts = camera_side_points(camera.edge, court)
    if pts is None:
        return None
    near, far = pts
    proj = apply_homography(H, np.array([[near.x, near.y], [far.x, far.y]]))
    if not np.all(np.isfinite(proj)):
        return False
    # camera-side court appears lower in the frame (larger v)
    return bool(proj[0, 1] > proj[1, 1])


def estimate_homography_from_lines(
    correspondences: Sequence[LineCorrespondence],
    camera: CameraPositionConfig | None = None,
    court: CourtDimensions | None = None,
    resolve_endpoint_order: bool = True,
    max_flip_search: int = 8,
    confidence_scale_px: float = 20.0,
    camera_penalty: float = 0.25,
    rank_tol: float = 1e-8,
    video: VideoDimensions | None = None,
) -> HomographyEstimate:
    """Estimate the world-plane -> image homography from >= 3 line correspondences.

    Each line contributes its two endpoints. Drawn lines have no intrinsic
    direction, so by default every flip combination of the drawn endpoints
    is solved and the lowest-RMSE combination is kept (ties keep the drawn
    order).

    All drawn endpoints are resolved in one pixel space, ``video`` or else
    the first line's draw-time frame, so H maps into that frame.
    """
    video = calibration_video(correspondences, video)
    usable = usable_correspondences(correspondences, video=video)
    if len(usable) < len(correspondences):
        logger.warning(
            "Homography: dropped %d unusable line correspondence(s)", len(correspondences) - len(usable)
        )
    check_line_geometry(usable, video=video)

    n = len(usable)
    candidates = _flip_candidates(n, max_flip_search if resolve_endpoint_order else 0)
    best: Optional[Tuple[float, np.ndarray, List[bool]]] = None
    last_err: Optional[DegenerateGeometryError] = None
    for flips in candidates:
        world, image = correspondence_points(usable, flips, video=video)
        try:
            H = dlt_homography(world, image, rank_tol=rank_tol)
        except DegenerateGeometryError as e:
            last_err = e
            continue
        rmse = reprojection_rmse(H, world, image)
        if best is None or rmse < best[0] - 1e-9:
            best = (rmse, H, flips)

    if best is None:
        raise last_err or DegenerateGeometryError("insufficient geometric diversity")

    rmse, H, flips = best
    if invert(H) is None or not is_valid_homography(H):
        raise DegenerateGeometryError("insufficient geometric diversity: solved homography is not invertible")

    world, image = correspondence_points(usable, flips, video=video)
    residuals = apply_homography(H, world) - image
    confidence = max(0.0, 1.0 - rmse / float(confidence_scale_px))

    camera_ok = None
    if camera is not None and camera.has_known_edge:
        camera_ok = _check_camera_side(H, camera, court)
        if camera_ok is False:
            logger.warning(
                "Homography: camera-side court edge does not project nearer the frame bottom (edge=%s)",
                camera.edge,
            )
            confidence = max(0.0, confidence - float(camera_penalty))

    flipped = [c.name for c, f in zip(usable, flips) if f]
    if flipped:
        logger.debug("Homography: resolved reversed endpoints for %s", flipped)
    return HomographyEstimate(
        H=H,
        reprojection_error_px=float(rmse),
        confidence=float(confidence),
        num_points=int(world.shape[0]),
        flipped_lines=flipped,
        method="dlt",
        camera_consistent=camera_ok,
        residuals=residuals,
    )


def refine_homography(
    H0: np.ndarray,
    world: np.ndarray,
    image: np.ndarray,
    backend: str = "scipy",
    loss: str = "linear",
    f_scale: float = 1.0,
) -> Tuple[np.ndarray, Dict[str, Any]]:
    """Minimize pixel reprojection error starting from H0 (H[2,2] held at 1).

    Returns (H, info) where info carries rmse before/after and the backend.
    """
    world = np.asarray(world, dtype=np.float64)
    image = np.asarray(image, dtype=np.float64)
    H0 = np.asarray(H0, dtype=np.float64) / H0[2, 2]
    rmse_before = reprojection_rmse(H0, world, image)

    if backend == "opencv":
        # method=0: all points, least squares followed by LM refinement
        H, _mask = cv2.findHomography(world.astype(np.float64), image.astype(np.float64), 0)
        if H is None:
            raise DegenerateGeometryError("insufficient geometric diversity: OpenCV refinement failed")
        H = np.asarray(H, dtype=np.float64) / H[2, 2]
    elif backend == "scipy":
        from scipy.optimize import least_squares

        def _residuals(h: np.ndarray) -> np.ndarray:
            Hh = np.append(h, 1.0).reshape(3, 3)
            hom = np.hstack([world, np.ones((world.shape[0], 1))]) @ Hh.T
            w = hom[:, 2:3]
            w = np.where(np.abs(w) < 1e-10, 1e-10, w)
            return (hom[:, :2] / w - image).ravel()

        method = "lm" if (loss == "linear" and 2 * world.shape[0] >= 8) else "trf"
        res = least_squares(_residuals, H0.ravel()[:8], method=method, loss=loss, f_scale=float(f_scale))
        H = np.append(res.x, 1.0).reshape(3, 3)
    else:
        raise ValueError(f"refine_homography: unknown backend '{backend}'")

    rmse_after = reprojection_rmse(H, world, image)
    if not is_valid_homography(H) or rmse_after > rmse_before:
        # keep the starting estimate when refinement did not help
        H, rmse_after = H0, rmse_before
    return H, {"rmse_px_before": rmse_before, "rmse_px_after": rmse_after, "backend": backend}


def calculate_camera_parameters(
    correspondences: Sequence[LineCorrespondence],
    camera: CameraPositionConfig | None = None,
    court: CourtDimensions | None = None,
    cache: InverseCache | None = None,
    video: VideoDimensions | None = None,
    **estimate_kwargs,
) -> CameraParameters:
    """Estimate H and its inverse from drawn lines; the inverse goes through ``cache``."""
    video = calibration_video(correspondences, video)
    est = estimate_homography_from_lines(correspondences, camera=camera, court=court, video=video, **estimate_kwargs)
    cache = cache if cache is not None else inverse_cache
    H_inv = cache.inverse(est.H)
    if H_inv is None:
        raise DegenerateGeometryError("insufficient geometric diversity: homography is singular")
    logger.info(
        "Calibration: %d points, reprojection %.3f px, confidence %.3f",
        est.num_points,
        est.reprojection_error_px,
        est.confidence,
    )
    return CameraParameters(
        homography=est.H,
        inverse_homography=H_inv,
        reprojection_error_px=est.reprojection_error_px,
        confidence=est.confidence,
        camera=camera,
        video_dimensions=video,
        meta={
            "num_points": est.num_points,
            "flipped_lines": list(est.flipped_lines),
            "camera_consistent": est.camera_consistent,
            "method": est.method,
        },
    )
