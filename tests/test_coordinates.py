from __future__ import annotations

import numpy as np
import pytest

from courtcal.calibration.camera import HeightPrior, estimate_subject_height, resolve_camera_position
from courtcal.core.matrix import InverseCache
from courtcal.core.types import CameraPositionConfig, Point2D, Point3D, PoseLandmark, VideoDimensions
from courtcal.transform.coordinates import (
    batch_image_to_world,
    correct_for_camera,
    image_to_world,
    is_valid_homography,
    transform_pose_landmarks,
    world_to_image,
)
from courtcal.transform.dimensions import (
    normalized_to_pixel,
    pixel_to_normalized,
    scale_homography_for_dimensions,
)


def test_round_trip_through_homography(oblique_H):
    cache = InverseCache()
    rng = np.random.default_rng(42)
    for u, v in rng.uniform([100.0, 300.0], [1800.0, 1000.0], size=(20, 2)):
        w = image_to_world(Point2D(u, v), oblique_H, cache=cache)
        back = world_to_image(w, oblique_H)
        assert abs(back.x - u) < 1e-6 and abs(back.y - v) < 1e-6
    # one inversion serves every call
    assert cache.misses == 1


def test_invalid_homographies():
    swapped = np.array([[0.0, 0.0, 1.0], [0.0, 1.0, 0.0], [1.0, 0.0, 0.0]])
    assert abs(np.linalg.det(swapped)) > 0.5
    assert not is_valid_homography(swapped)
    nan_H = np.eye(3)
    nan_H[0, 1] = np.nan
    assert not is_valid_homography(nan_H)
    assert not is_valid_homography(np.zeros((3, 3)))
    assert not is_valid_homography(np.eye(2))
    assert not is_valid_homography(None)
    assert is_valid_homography(np.eye(3))


def test_singular_homography_gives_none():
    assert image_to_world((1.0, 2.0), np.zeros((3, 3)), cache=InverseCache()) is None
    assert batch_image_to_world([(1.0, 2.0), (3.0, 4.0)], np.zeros((3, 3))) == [None, None]


def test_point_at_infinity_gives_none():
    # the image line y = 1 is the horizon of this homography
    H_inv_horizon = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 1.0, -1.0]])
    H = np.linalg.inv(H_inv_horizon)
    assert image_to_world((5.0, 1.0), H, cache=InverseCache()) is None
    assert world_to_image(Point3D(0.0, 0.0), np.array([[1.0, 0, 0], [0, 1.0, 0], [0, 0, 0.0]])) is None


def test_batch_matches_single(oblique_H):
    pts = [Point2D(960.0, 700.0), (500.0, 600.0), {"x": 1400.0, "y": 900.0}]
    batch = batch_image_to_world(pts, oblique_H, z=0.0)
    for p, b in zip(pts, batch):
        s = image_to_world(p, oblique_H, cache=InverseCache())
        assert b.x == pytest.approx(s.x) and b.y == pytest.approx(s.y)
    assert batch_image_to_world([], oblique_H) == []


def test_pose_landmarks_keep_depth_and_visibility(overhead_H, video):
    lms = [
        PoseLandmark(0.5, 0.5, z=-0.1, visibility=0.9),
        {"x": 0.5, "y": 0.5},
    ]
    out = transform_pose_landmarks(lms, overhead_H, world_z=1.0, depth_scale=2.0, video=video)
    assert out[0].x == pytest.approx(0.0, abs=1e-9) and out[0].y == pytest.approx(0.0, abs=1e-9)
    assert out[0].z == pytest.approx(0.8)
    assert out[0].visibility == pytest.approx(0.9)
    assert out[0].original_z == pytest.approx(-0.1)
    assert out[1].z == pytest.approx(1.0) and out[1].visibility is None
    assert transform_pose_landmarks(lms, np.zeros((3, 3))) == [None, None]


def test_correct_for_camera_pulls_toward_camera():
    p = correct_for_camera(Point3D(0.0, 0.0, 0.0), 1.0, Point3D(0.0, 10.0, 5.0))
    assert (p.x, p.y, p.z) == pytest.approx((0.0, 2.0, 1.0))
    # camera below the requested height: no correction
    q = correct_for_camera(Point3D(1.0, 1.0, 0.0), 6.0, Point3D(0.0, 10.0, 5.0))
    assert (q.x, q.y, q.z) == pytest.approx((1.0, 1.0, 6.0))


def test_camera_height_estimate_applied(oblique_H):
    cam = CameraPositionConfig("bottom", distance=7.3, height=9.0)
    cache = InverseCache()
    ground = image_to_world((960.0, 700.0), oblique_H, z=0.0, camera=cam, cache=cache)
    lifted = image_to_world((960.0, 700.0), oblique_H, camera=cam, cache=cache)
    z = estimate_subject_height(cam, HeightPrior())
    assert ground.z == 0.0
    assert lifted.z == pytest.approx(z) and z > 0.0
    pos = resolve_camera_position(cam)
    assert (pos.x, pos.y, pos.z) == pytest.approx((0.0, 14.0, 9.0))
    # the point moves along the ray toward the camera
    assert lifted.y > ground.y
    back = world_to_image(Point3D(ground.x, ground.y), oblique_H)
    assert back.y == pytest.approx(700.0)


def test_unknown_edge_means_ground_plane(oblique_H):
    w = image_to_world((960.0, 700.0), oblique_H, camera=CameraPositionConfig("none"), cache=InverseCache())
    assert w.z == 0.0


def test_sideline_camera_estimates_more_height():
    prior = HeightPrior()
    side = estimate_subject_height(CameraPositionConfig("left", 5.0, 3.0), prior)
    base = estimate_subject_height(CameraPositionConfig("bottom", 5.0, 3.0), prior)
    assert side > base > 0.0
    assert estimate_subject_height(CameraPositionConfig("none"), prior) == 0.0


def test_invalid_camera_edge():
    with pytest.raises(ValueError):
        CameraPositionConfig("behind")


def test_normalized_pixel_conversions(video):
    p = normalized_to_pixel(Point2D(0.25, 0.5), video)
    assert (p.x, p.y) == (480.0, 540.0)
    n = pixel_to_normalized(p, video)
    assert (n.x, n.y) == (0.25, 0.5)
    with pytest.raises(ValueError):
        pixel_to_normalized(p, VideoDimensions(0, 0))


def test_scale_homography_for_new_resolution(oblique_H, video):
    half = VideoDimensions(960, 540)
    Hs = scale_homography_for_dimensions(oblique_H, video, half)
    a = world_to_image(Point3D(1.0, 2.0), oblique_H)
    b = world_to_image(Point3D(1.0, 2.0), Hs)
    assert b.x == pytest.approx(a.x / 2.0) and b.y == pytest.approx(a.y / 2.0)
    assert Hs[2, 2] == pytest.approx(1.0)
