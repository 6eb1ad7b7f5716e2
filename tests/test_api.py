from __future__ import annotations

import logging

import numpy as np
import pytest
from omegaconf import OmegaConf

from courtcal.api import LandmarkProjector, build_bundle, run_calibration
from courtcal.calibration.session import CalibrationSession
from courtcal.tracking.tracker import RoiTracker, TrackerState
from courtcal.utils.logging_setup import setup_logging
from synthetic_court import annotation_dict, pose_cluster


NAMES = ["baseline_near", "baseline_far", "sideline_left", "sideline_right", "net"]


def _write_annotations(tmp_path, H, camera=None):
    path = tmp_path / "annotations.yaml"
    OmegaConf.save(config=OmegaConf.create(annotation_dict(H, NAMES, camera=camera)), f=path)
    return path


def _stage_cfgs(out_dir):
    return [
        {"_target_": "courtcal.pipeline.stages.s10_estimate_homography.EstimateHomography"},
        {"_target_": "courtcal.pipeline.stages.s30_validate.ValidateCalibration"},
        {"_target_": "courtcal.pipeline.stages.s50_export.Export", "out_dir": str(out_dir)},
    ]


def test_run_calibration(tmp_path, oblique_H):
    path = _write_annotations(tmp_path, oblique_H)
    B = run_calibration(path, {"preset": "badminton"}, _stage_cfgs(tmp_path / "out"))
    assert np.allclose(B.H, oblique_H, atol=1e-5)
    assert (tmp_path / "out" / "calibration.yaml").exists()


def test_camera_override(tmp_path, oblique_H):
    path = _write_annotations(tmp_path, oblique_H, camera={"edge": "bottom", "distance": 7.3, "height": 9.0})
    B = build_bundle(path, {"preset": "badminton"}, camera_cfg={"edge": "none"})
    assert B.camera.edge == "bottom"
    B = build_bundle(path, {"preset": "badminton"}, camera_cfg={"edge": "left", "distance": 2.0, "height": 3.0})
    assert B.camera.edge == "left"


def test_projector_crops_and_projects(oblique_H, video):
    session = CalibrationSession(video=video)
    session.set_homography(oblique_H)
    proj = LandmarkProjector(session, tracker=RoiTracker(), min_crop_size=64)
    frame = np.zeros((video.height, video.width, 3), dtype=np.uint8)

    crop = proj.crop(frame)
    assert crop.image.shape == frame.shape
    res = proj.process(0, 0.0, pose_cluster(cx=0.5, cy=0.65), crop=crop)
    assert res.tracker.state == TrackerState.TRACKING
    assert len(res.world_landmarks) == 33
    assert all(w is not None for w in res.world_landmarks)

    crop = proj.crop(frame)
    assert crop.cropped_width < video.width
    lms = pose_cluster(cx=0.5, cy=0.5)
    res = proj.process(1, 1.0 / 30.0, lms, crop=crop)
    assert res.landmarks[0].x == pytest.approx((lms[0].x * crop.cropped_width + crop.offset_x) / video.width)
    assert res.landmarks[0].y == pytest.approx((lms[0].y * crop.cropped_height + crop.offset_y) / video.height)
    assert res.speed.is_valid
    assert res.speed.samples == 2


def test_setup_logging_file(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    root = logging.getLogger()
    before = list(root.handlers)
    root_level = root.level
    homography_log = logging.getLogger("courtcal.calibration.homography")
    try:
        setup_logging("INFO", str(log_file), levels={"courtcal.calibration.homography": "DEBUG"})
        setup_logging("INFO", str(log_file))
        added = [h for h in root.handlers if h not in before]
        assert len(added) == 1
        assert homography_log.level == logging.DEBUG
        logging.getLogger("courtcal.test").info("hello")
        added[0].flush()
        assert "courtcal.test - hello" in log_file.read_text(encoding="utf-8")
    finally:
        for h in root.handlers[:]:
            if h not in before:
                root.removeHandler(h)
                h.close()
        root.setLevel(root_level)
        homography_log.setLevel(logging.NOTSET)
