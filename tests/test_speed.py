from __future__ import annotations

import pytest

from courtcal.core.types import WorldLandmark
from courtcal.speed.calculator import (
    SpeedCalculator,
    SpeedCalibrationSettings,
    center_of_gravity_height,
    center_of_mass,
)
from synthetic_court import world_pose


FPS = 30.0


def test_constant_walk_speed():
    calc = SpeedCalculator(smoothing_window=5)
    first = calc.update(0, 0.0, world_pose(x=0.0))
    assert not first.is_valid
    assert first.speed == 0.0
    m = None
    for i in range(1, 10):
        m = calc.update(i, i / FPS, world_pose(x=i / FPS))
    assert m.is_valid
    assert m.horizontal_speed == pytest.approx(1.0)
    assert m.current_speed == pytest.approx(1.0)
    assert m.average_speed == pytest.approx(1.0)
    assert m.velocity == pytest.approx((1.0, 0.0, 0.0))
    assert m.samples == 5


def test_vertical_motion_is_not_horizontal():
    calc = SpeedCalculator()
    calc.update(0, 0.0, world_pose(z=1.0))
    m = calc.update(1, 0.5, world_pose(z=1.5))
    assert m.speed == pytest.approx(1.0)
    assert m.horizontal_speed == pytest.approx(0.0)


def test_failed_frame_keeps_last_metrics():
    calc = SpeedCalculator()
    calc.update(0, 0.0, world_pose(x=0.0))
    m = calc.update(1, 0.1, world_pose(x=0.1))
    assert calc.update(2, 0.2, None) is m
    assert calc.update(3, 0.3, [None] * 33) is m
    assert calc.update(4, 0.4, world_pose(visibility=0.1)) is m


def test_non_increasing_timestamp_gives_zero():
    calc = SpeedCalculator()
    calc.update(0, 1.0, world_pose(x=0.0))
    m = calc.update(1, 1.0, world_pose(x=1.0))
    assert m.speed == 0.0
    assert m.samples == 1


def test_sample_after_timestamp_glitch_uses_frame_interval():
    calc = SpeedCalculator()
    calc.update(0, 0.0, world_pose(x=0.0))
    calc.update(1, 0.1, world_pose(x=0.1))
    # out-of-order timestamp: no sample, but it becomes the reference frame
    calc.update(2, 0.05, world_pose(x=0.15))
    m = calc.update(3, 0.15, world_pose(x=0.25))
    assert m.horizontal_speed == pytest.approx(1.0)
    assert m.current_speed == pytest.approx(1.0)
    assert [s.value for s in calc.samples] == pytest.approx([0.0, 1.0, 1.0])


def test_right_foot_speed():
    calc = SpeedCalculator()
    a = world_pose()
    b = world_pose()
    b[32] = WorldLandmark(0.0, 2.0, 0.0, 0.9)
    calc.update(0, 0.0, a)
    m = calc.update(1, 1.0, b)
    assert m.right_foot_speed == pytest.approx(2.0)


def test_push_sample_clamps_dt():
    calc = SpeedCalculator()
    assert calc.push_sample(0, 1.0, 5.0) == 0.0
    assert calc.push_sample(1, 1.0, 1e-6) == pytest.approx(1.0)
    calc.reset()
    assert calc.average_speed == 0.0


def test_center_of_mass_falls_back_to_visible():
    lms = world_pose(x=5.0, visibility=0.9)
    for i in (11, 12, 23, 24):
        lms[i] = WorldLandmark(0.0, 0.0, 0.0, 0.1)
    com = center_of_mass(lms)
    assert com.x == pytest.approx(5.0)
    lms[11] = WorldLandmark(1.0, 1.0, 1.0, 0.9)
    com = center_of_mass(lms)
    assert (com.x, com.y, com.z) == pytest.approx((1.0, 1.0, 1.0))
    assert center_of_mass([None, None]) is None


def test_center_of_gravity_height():
    lms = world_pose(z=0.0)
    for i, z in ((23, 1.0), (24, 1.0), (25, 0.5), (26, 0.5), (27, 0.1), (28, 0.1)):
        lms[i] = WorldLandmark(0.0, 0.0, z, 0.9)
    assert center_of_gravity_height(lms) == pytest.approx(0.67)
    assert center_of_gravity_height(lms[:20]) == 0.0


def test_speed_settings_from_dict():
    s = SpeedCalibrationSettings.from_dict({"player_height_cm": 180, "reference_points": [{"x": 1.0, "y": 2.0}]})
    assert s.player_height_cm == 180.0
    assert s.court_length_m == 13.4
    assert s.reference_points == [{"x": 1.0, "y": 2.0}]
    calc = SpeedCalculator(settings=s)
    calc.update(0, 0.0, world_pose(x=0.0))
    calc.reset()
    assert calc.settings is s
