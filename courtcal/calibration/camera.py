from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ..core.types import CameraPositionConfig, CourtDimensions, Point3D


@dataclass
class HeightPrior:
    """Tunable constants for heuristic subject-height estimation.

    These are sport-specific guesses, not measured physics; override them
    from config (``camera.height_prior``) when a better estimate exists.
    """

    subject_height_m: float = 1.7
    # fraction of body height at which the tracked point sits (hip/center of mass)
    height_fraction: float = 0.55
    sideline_sensitivity: float = 0.6
    baseline_sensitivity: float = 0.3

    @classmethod
    def from_dict(cls, d: Dict[str, Any] | None) -> "HeightPrior":
        if not d:
            return cls()
        base = cls()
        return cls(
            subject_height_m=float(d.get("subject_height_m", base.subject_height_m)),
            height_fraction=float(d.get("height_fraction", base.height_fraction)),
            sideline_sensitivity=float(d.get("sideline_sensitivity", base.sideline_sensitivity)),
            baseline_sensitivity=float(d.get("baseline_sensitivity", base.baseline_sensitivity)),
        )


def resolve_camera_position(camera: CameraPositionConfig, court: CourtDimensions | None = None) -> Optional[Point3D]:
    """Camera center in court meters, from position3d or edge/distance/height."""
    if camera.position3d is not None:
        return camera.position3d
    court = court or CourtDimensions()
    hw, hl = court.width / 2.0, court.length / 2.0
    d, h = float(camera.distance), float(camera.height)
    if camera.edge == "bottom":
        return Point3D(0.0, hl + d, h)
    if camera.edge == "top":
        return Point3D(0.0, -(hl + d), h)
    if camera.edge == "left":
        return Point3D(-(hw + d), 0.0, h)
    if camera.edge == "right":
        return Point3D(hw + d, 0.0, h)
    return None


def camera_elevation(camera: CameraPositionConfig, court: CourtDimensions | None = None) -> float:
    """Angle (rad) between the court plane and the ray from court center to the camera."""
    pos = resolve_camera_position(camera, court)
    if pos is None:
        return math.pi / 2.0
    ground = math.hypot(pos.x, pos.y)
    return math.atan2(max(pos.z, 0.0), ground)


def height_sensitivity(edge: str, prior: HeightPrior) -> float:
    if edge in ("left", "right"):
        return prior.sideline_sensitivity
    if edge in ("top", "bottom"):
        return prior.baseline_sensitivity
    return 0.0


def estimate_subject_height(
    camera: CameraPositionConfig, prior: HeightPrior | None = None, court: CourtDimensions | None = None
) -> float:
    """Heuristic height (m) of the tracked point above the court plane.

    Sideline cameras keep more vertical information than baseline cameras,
    and a steep (overhead) view keeps none, hence the cos(elevation) falloff.
    """
    prior = prior or HeightPrior()
    if not camera.has_known_edge:
        return 0.0
    elev = camera_elevation(camera, court)
    z = prior.subject_height_m * prior.height_fraction * height_sensitivity(camera.edge, prior) * math.cos(elev)
    return max(0.0, float(z))


def camera_side_points(edge: str, court: CourtDimensions | None = None) -> Optional[Tuple[Point3D, Point3D]]:
    """(near, far) court points along the camera's viewing axis, or None for unknown edge."""
    court = court or CourtDimensions()
    hw, hl = court.width / 2.0, court.length / 2.0
    if edge == "bottom":
        return Point3D(0.0, hl), Point3D(0.0, -hl)
    if edge == "top":
        return Point3D(0.0, -hl), Point3D(0.0, hl)
    if edge == "left":
        return Point3D(-hw, 0.0), Point3D(hw, 0.0)
    if edge == "right":
        return Point3D(hw, 0.0), Point3D(-hw, 0.0)
    return None
