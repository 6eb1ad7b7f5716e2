from __future__ import annotations

import numpy as np
import pytest

from courtcal.calibration.session import CalibrationSession
from courtcal.core.errors import CalibrationError, InsufficientCorrespondencesError
from courtcal.core.types import CameraPositionConfig, Point2D, PoseLandmark, VideoDimensions
from synthetic_court import drawn_correspondences


BOX = ["baseline_near", "baseline_far", "sideline_left", "sideline_right", "net"]


def _make_session(H):
    s = CalibrationSession()
    s.calibrate(drawn_correspondences(H, BOX), camera=CameraPositionConfig("bottom", 7.3, 9.0))
    return s


def test_calibrate_and_transform(oblique_H, video):
    s = _make_session(oblique_H)
    assert s.is_calibrated
    assert s.video == video
    assert np.allclose(s.homography, oblique_H, atol=1e-5)
    w = s.image_to_world(Point2D(960.0, 700.0), z=0.0)
    back = s.world_to_image(w)
    assert (back.x, back.y) == pytest.approx((960.0, 700.0))
    lifted = s.image_to_world(Point2D(960.0, 700.0))
    assert lifted.z > 0.0


def test_uncalibrated_session_raises():
    s = CalibrationSession()
    assert not s.is_calibrated
    with pytest.raises(CalibrationError):
        s.image_to_world(Point2D(1.0, 1.0))


def test_recalibration_invalidates_cache(oblique_H, overhead_H):
    s = _make_session(oblique_H)
    s.image_to_world(Point2D(960.0, 700.0))
    gen = s.cache.generation
    s.calibrate(drawn_correspondences(overhead_H, BOX))
    assert s.cache.generation > gen
    w = s.image_to_world(Point2D(960.0, 540.0))
    assert (w.x, w.y) == pytest.approx((0.0, 0.0), abs=1e-6)


def test_failed_calibration_keeps_previous(oblique_H):
    s = _make_session(oblique_H)
    H_before = s.homography.copy()
    with pytest.raises(InsufficientCorrespondencesError):
        s.calibrate(drawn_correspondences(oblique_H, ["net"]))
    assert np.array_equal(s.homography, H_before)


def test_set_invalid_homography_rejected(oblique_H):
    s = _make_session(oblique_H)
    bad = np.eye(3)
    bad[2, 2] = 0.0
    with pytest.raises(CalibrationError):
        s.set_homography(bad)
    assert np.allclose(s.homography, oblique_H, atol=1e-5)


def test_rescale_follows_resolution(oblique_H):
    s = _make_session(oblique_H)
    w = s.image_to_world(Point2D(960.0, 700.0), z=0.0)
    s.rescale(VideoDimensions(960, 540))
    w2 = s.image_to_world(Point2D(480.0, 350.0), z=0.0)
    assert (w2.x, w2.y) == pytest.approx((w.x, w.y))


def test_transform_landmarks_uses_video(oblique_H):
    s = _make_session(oblique_H)
    out = s.transform_landmarks([PoseLandmark(0.5, 700.0 / 1080.0, z=0.0, visibility=1.0)])
    w = s.image_to_world(Point2D(960.0, 700.0), z=0.0)
    assert (out[0].x, out[0].y) == pytest.approx((w.x, w.y))


def test_dict_round_trip(oblique_H):
    s = _make_session(oblique_H)
    d = s.to_dict()
    assert d["version"] == 1
    r = CalibrationSession.from_dict(d)
    assert np.allclose(r.homography, s.homography)
    assert r.camera.edge == "bottom"
    assert r.video == s.video
    with pytest.raises(CalibrationError):
        CalibrationSession.from_dict({**d, "version": 99})


def test_reset(oblique_H):
    s = _make_session(oblique_H)
    s.reset()
    assert not s.is_calibrated
    assert s.camera is None
