from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..core.errors import CalibrationError
from ..core.matrix import InverseCache
from ..core.types import (
    CameraParameters,
    CameraPositionConfig,
    CourtDimensions,
    Point2D,
    Point3D,
    PoseLandmark,
    VideoDimensions,
    WorldLandmark,
)
from ..transform.coordinates import image_to_world, is_valid_homography, transform_pose_landmarks, world_to_image
from ..transform.dimensions import scale_homography_for_dimensions
from .camera import HeightPrior
from .homography import calculate_camera_parameters
from .lines import LineCorrespondence


logger = logging.getLogger(__name__)

BLOB_VERSION = 1


class CalibrationSession:
    """The one active homography for a video, plus its private inverse cache.

    Every replacement of H goes through ``calibrate``/``set_homography``/
    ``reset``, which clear the cache, so a stale inverse can never be served.
    """

    def __init__(
        self,
        video: VideoDimensions | None = None,
        court: CourtDimensions | None = None,
        height_prior: HeightPrior | None = None,
    ):
        self.video = video
        self.court = court or CourtDimensions()
        self.height_prior = height_prior or HeightPrior()
        self.cache = InverseCache()
        self.camera: Optional[CameraPositionConfig] = None
        self.parameters: Optional[CameraParameters] = None
        self.calibrated_at: Optional[float] = None

    @property
    def is_calibrated(self) -> bool:
        return self.parameters is not None

    @property
    def homography(self) -> Optional[np.ndarray]:
        return None if self.parameters is None else self.parameters.homography

    def _require(self) -> np.ndarray:
        if self.parameters is None:
            raise CalibrationError("session is not calibrated")
        return self.parameters.homography

    def calibrate(
        self,
        correspondences: Sequence[LineCorrespondence],
        camera: CameraPositionConfig | None = None,
        **estimate_kwargs,
    ) -> CameraParameters:
        """Estimate a new homography; on failure the previous calibration is kept."""
        self.cache.clear()
        params = calculate_camera_parameters(
            correspondences, camera=camera, court=self.court, cache=self.cache, **estimate_kwargs
        )
        self.parameters = params
        self.camera = camera
        if params.video_dimensions is not None:
            self.video = params.video_dimensions
        self.calibrated_at = time.time()
        return params

    def set_homography(
        self,
        H: Any,
        camera: CameraPositionConfig | None = None,
        reprojection_error_px: float = 0.0,
        confidence: float = 1.0,
    ) -> CameraParameters:
        if not is_valid_homography(H):
            raise CalibrationError("invalid homography: calibration must be redone")
        H = np.asarray(H, dtype=np.float64)
        self.cache.clear()
        H_inv = self.cache.inverse(H)
        self.parameters = CameraParameters(
            homography=H,
            inverse_homography=H_inv,
            reprojection_error_px=float(reprojection_error_px),
            confidence=float(confidence),
            camera=camera,
            video_dimensions=self.video,
        )
        self.camera = camera
        self.calibrated_at = time.time()
        return self.parameters

    def rescale(self, video: VideoDimensions) -> None:
        """Re-target the homography after the video resolution changed."""
        H = self._require()
        if self.video is None:
            raise CalibrationError("session has no source video dimensions to rescale from")
        Hs = scale_homography_for_dimensions(H, self.video, video)
        self.video = video
        p = self.parameters
        self.set_homography(Hs, p.camera, p.reprojection_error_px, p.confidence)

    def reset(self) -> None:
        self.cache.clear()
        self.parameters = None
        self.camera = None
        self.calibrated_at = None

    def image_to_world(self, point: Point2D, z: Optional[float] = None) -> Optional[Point3D]:
        return image_to_world(
            point,
            self._require(),
            z=z,
            camera=self.camera,
            height_prior=self.height_prior,
            court=self.court,
            cache=self.cache,
        )

    def world_to_image(self, point: Point3D) -> Optional[Point2D]:
        return world_to_image(point, self._require())

    def transform_landmarks(
        self, landmarks: Sequence[PoseLandmark], world_z: float = 0.0, depth_scale: float = 2.0
    ) -> List[Optional[WorldLandmark]]:
        """Full-frame-normalized landmarks -> world landmarks (needs video dimensions)."""
        if self.video is None:
            raise CalibrationError("session has no video dimensions for normalized landmarks")
        return transform_pose_landmarks(landmarks, self._require(), world_z, depth_scale, video=self.video)

    # ------------------------------------------------------------ persistence
    def to_dict(self) -> Dict[str, Any]:
        p = self.parameters
        cam = self.camera
        return {
            "version": BLOB_VERSION,
            "homography": None if p is None else np.asarray(p.homography, dtype=float).tolist(),
            "reprojection_error_px": None if p is None else float(p.reprojection_error_px),
            "confidence": None if p is None else float(p.confidence),
            "video": None if self.video is None else {"width": int(self.video.width), "height": int(self.video.height)},
            "court": {"width": float(self.court.width), "length": float(self.court.length)},
            "camera": None
            if cam is None
            else {
                "edge": cam.edge,
                "distance": float(cam.distance),
                "height": float(cam.height),
                "position3d": None
                if cam.position3d is None
                else [cam.position3d.x, cam.position3d.y, cam.position3d.z],
            },
            "calibrated_at": self.calibrated_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any], height_prior: HeightPrior | None = None) -> "CalibrationSession":
        if int(d.get("version", BLOB_VERSION)) != BLOB_VERSION:
            raise CalibrationError(f"unsupported calibration blob version {d.get('version')}")
        video = VideoDimensions.from_dict(d["video"]) if d.get("video") else None
        s = cls(video=video, court=CourtDimensions.from_dict(d.get("court")), height_prior=height_prior)
        if d.get("homography") is not None:
            s.set_homography(
                d["homography"],
                camera=CameraPositionConfig.from_dict(d.get("camera")),
                reprojection_error_px=float(d.get("reprojection_error_px") or 0.0),
                confidence=float(d.get("confidence") if d.get("confidence") is not None else 1.0),
            )
            s.calibrated_at = d.get("calibrated_at")
        return s
