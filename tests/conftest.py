from __future__ import annotations

import numpy as np
import pytest

from synthetic_court import VIDEO, look_at_homography


@pytest.fixture
def video():
    return VIDEO


@pytest.fixture
def oblique_H():
    # behind the near baseline, 7.3 m back and 9 m up
    return look_at_homography((0.0, 14.0, 9.0))


@pytest.fixture
def overhead_H():
    return look_at_homography((0.0, 0.0, 20.0), f=1000.0)


@pytest.fixture
def affine_H():
    # court fills the frame with no perspective: x across the width, y along the length
    sx, sy = 1920 / 6.1, 1080 / 13.4
    return np.array([[sx, 0.0, 960.0], [0.0, sy, 540.0], [0.0, 0.0, 1.0]])
