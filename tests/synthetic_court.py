from __future__ import annotations

import numpy as np

from courtcal.calibration.court import badminton_court_lines
from courtcal.calibration.lines import DrawnLine, LineCorrespondence
from courtcal.core.types import Point2D, PoseLandmark, VideoDimensions, WorldLandmark


VIDEO = VideoDimensions(1920, 1080)


def look_at_homography(C, target=(0.0, 0.0, 0.0), f=800.0, cx=960.0, cy=540.0) -> np.ndarray:
    """Court plane (z=0) -> image homography K [r1 r2 t] for a pinhole camera at C looking at target."""
    C = np.asarray(C, dtype=float)
    fwd = np.asarray(target, dtype=float) - C
    fwd /= np.linalg.norm(fwd)
    up = np.array([0.0, 0.0, 1.0])
    if abs(fwd @ up) > 0.999:
        # straight down: world +x to the image right, world +y to the image top
        x_c = np.array([1.0, 0.0, 0.0])
    else:
        x_c = np.cross(fwd, up)
        x_c /= np.linalg.norm(x_c)
    y_c = np.cross(fwd, x_c)
    R = np.stack([x_c, y_c, fwd], axis=0)
    t = -R @ C
    K = np.array([[f, 0.0, cx], [0.0, f, cy], [0.0, 0.0, 1.0]])
    H = K @ np.column_stack([R[:, 0], R[:, 1], t])
    return H / H[2, 2]


def project(H, x, y):
    v = H @ np.array([x, y, 1.0])
    return float(v[0] / v[2]), float(v[1] / v[2])


def drawn_correspondences(H, names, video=VIDEO, flip=(), noise_px=0.0, seed=42):
    """Project named court lines through H and 'draw' them as normalized image lines."""
    lines = badminton_court_lines()
    rng = np.random.default_rng(seed)
    out = []
    for name in names:
        cl = lines[name]
        (u0, v0), (u1, v1) = project(H, cl.start.x, cl.start.y), project(H, cl.end.x, cl.end.y)
        if noise_px:
            u0, v0, u1, v1 = np.array([u0, v0, u1, v1]) + rng.normal(scale=noise_px, size=4)
        a = Point2D(u0 / video.width, v0 / video.height)
        b = Point2D(u1 / video.width, v1 / video.height)
        if name in flip:
            a, b = b, a
        out.append(LineCorrespondence(cl, DrawnLine(a, b, video)))
    return out


def annotation_dict(H, names, video=VIDEO, camera=None):
    """Same drawing as drawn_correspondences, in the on-disk annotation layout."""
    items = []
    for c in drawn_correspondences(H, names, video):
        v = c.video_line
        items.append({"line": c.name, "start": [v.start.x, v.start.y], "end": [v.end.x, v.end.y]})
    d = {"video": {"width": video.width, "height": video.height}, "lines": items}
    if camera is not None:
        d["camera"] = camera
    return d


def pose_cluster(cx=0.5, cy=0.5, spread=0.1, visibility=0.9, n=33, seed=42):
    """33 normalized landmarks scattered around (cx, cy)."""
    rng = np.random.default_rng(seed)
    offs = rng.uniform(-spread, spread, size=(n, 2))
    # nose and left shoulder pin the corners so the key-landmark box spans the whole cluster
    offs[0] = (-spread, -spread)
    offs[11] = (spread, spread)
    return [PoseLandmark(cx + dx, cy + dy, z=0.0, visibility=visibility) for dx, dy in offs]


def world_pose(x=0.0, y=0.0, z=1.0, visibility=0.9, n=33):
    return [WorldLandmark(x, y, z, visibility) for _ in range(n)]
