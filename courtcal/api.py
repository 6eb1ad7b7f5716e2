from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .calibration.court import court_dimensions_from_cfg, court_lines_from_cfg
from .calibration.session import CalibrationSession
from .core.types import ROI, CameraPositionConfig, PoseLandmark, WorldLandmark
from .io.annotations import load_line_annotations
from .pipeline.base import CalibrationBundle
from .pipeline.executor import run_pipeline
from .speed.calculator import SpeedCalculator, SpeedMetrics
from .tracking.roi import CroppedFrameData, crop_video_frame, transform_landmarks_to_full_frame
from .tracking.tracker import RoiTracker, TrackerUpdate
from .utils.hydra_tools import instantiate_stages


logger = logging.getLogger(__name__)


def build_bundle(
    annotations_path: str | Path,
    court_cfg: Dict[str, Any],
    camera_cfg: Dict[str, Any] | None = None,
    bundle_id: Optional[str] = None,
) -> CalibrationBundle:
    """Court lines + drawn annotations -> a bundle ready for the stage pipeline.

    A camera block in ``camera_cfg`` with a known edge overrides the one in
    the annotations file.
    """
    lines = court_lines_from_cfg(court_cfg)
    correspondences, video, camera = load_line_annotations(annotations_path, lines)
    cam_override = CameraPositionConfig.from_dict(camera_cfg)
    if cam_override is not None and cam_override.has_known_edge:
        camera = cam_override
    return CalibrationBundle(
        bundle_id=bundle_id,
        correspondences=correspondences,
        court_lines=lines,
        camera=camera,
        video=video,
        court=court_dimensions_from_cfg(court_cfg),
    )


def run_calibration(
    annotations_path: str | Path,
    court_cfg: Dict[str, Any],
    pipeline_stage_cfgs: List[Dict[str, Any]],
    camera_cfg: Dict[str, Any] | None = None,
    bundle_id: Optional[str] = None,
) -> CalibrationBundle:
    """Run annotations -> homography -> validation -> export and return the bundle (see B.report)."""
    B = build_bundle(annotations_path, court_cfg, camera_cfg, bundle_id)
    stages = instantiate_stages(pipeline_stage_cfgs)
    B = run_pipeline(B, stages)
    if B.report.get("errors"):
        logger.warning("Calibration finished with errors: %s", B.report["errors"])
    return B


@dataclass
class FrameResult:
    frame: int
    timestamp: float
    landmarks: List[PoseLandmark]
    world_landmarks: List[Optional[WorldLandmark]]
    tracker: Optional[TrackerUpdate]
    speed: SpeedMetrics


class LandmarkProjector:
    """Per-frame glue: ROI crop for the pose model, then landmarks back to court meters.

    Owns one tracker and one speed calculator; create one per video stream.
    """

    def __init__(
        self,
        session: CalibrationSession,
        tracker: RoiTracker | None = None,
        speed: SpeedCalculator | None = None,
        min_crop_size: int = 64,
        model_input_size: Optional[tuple[int, int]] = None,
    ):
        self.session = session
        self.tracker = tracker
        self.speed = speed or SpeedCalculator()
        self.min_crop_size = int(min_crop_size)
        self.model_input_size = model_input_size
        self._scratch: Optional[np.ndarray] = None

    def crop(self, frame: np.ndarray) -> CroppedFrameData:
        roi = self.tracker.roi if self.tracker is not None else ROI.full_frame()
        data = crop_video_frame(
            frame, roi, self.min_crop_size, scratch=self._scratch, output_size=self.model_input_size
        )
        if self.model_input_size is None:
            self._scratch = data.image
        return data

    def process(
        self,
        frame: int,
        timestamp: float,
        landmarks: Sequence[PoseLandmark],
        crop: CroppedFrameData | None = None,
    ) -> FrameResult:
        """``landmarks`` are crop-normalized when ``crop`` is given, else full-frame-normalized."""
        if crop is not None:
            full, _ = transform_landmarks_to_full_frame(landmarks, [], crop)
        else:
            full = list(landmarks)
        upd = self.tracker.update(full, timestamp) if self.tracker is not None else None
        world: List[Optional[WorldLandmark]] = []
        if full and self.session.is_calibrated:
            world = self.session.transform_landmarks(full)
        metrics = self.speed.update(frame, timestamp, world)
        return FrameResult(frame, float(timestamp), full, world, upd, metrics)
