from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np


CAMERA_EDGES = ("top", "bottom", "left", "right", "none")


@dataclass
class Point2D:
    x: float
    y: float

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=np.float64)


@dataclass
class Point3D:
    x: float
    y: float
    z: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)


@dataclass
class VideoDimensions:
    width: int
    height: int

    @property
    def aspect_ratio(self) -> float:
        return float(self.width) / float(self.height) if self.height else 0.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "VideoDimensions":
        return cls(width=int(d.get("width", 0)), height=int(d.get("height", 0)))


@dataclass
class CourtDimensions:
    """Court extents in meters; x spans the width, y spans the length."""

    width: float = 6.1
    length: float = 13.4

    @classmethod
    def from_dict(cls, d: Dict[str, Any] | None) -> "CourtDimensions":
        if not d:
            return cls()
        return cls(width=float(d.get("width", 6.1)), length=float(d.get("length", 13.4)))


@dataclass
class CameraPositionConfig:
    """Coarse camera prior: which court edge the camera sits behind and how far/high.

    ``position3d`` is the camera center in court meters; when absent it is
    derived from edge/distance/height and the court dimensions.
    """

    edge: str = "none"
    distance: float = 0.0
    height: float = 0.0
    position3d: Optional[Point3D] = None

    def __post_init__(self):
        if self.edge not in CAMERA_EDGES:
            raise ValueError(f"CameraPositionConfig: edge must be one of {CAMERA_EDGES}, got {self.edge!r}")

    @property
    def has_known_edge(self) -> bool:
        return self.edge != "none"

    @classmethod
    def from_dict(cls, d: Dict[str, Any] | None) -> Optional["CameraPositionConfig"]:
        if not d:
            return None
        pos = d.get("position3d")
        return cls(
            edge=str(d.get("edge", "none")),
            distance=float(d.get("distance", 0.0) or 0.0),
            height=float(d.get("height", 0.0) or 0.0),
            position3d=Point3D(*[float(v) for v in pos]) if pos is not None else None,
        )


@dataclass
class PoseLandmark:
    """Landmark as returned by the pose model; x, y normalized, z relative depth."""

    x: float
    y: float
    z: Optional[float] = None
    visibility: Optional[float] = None


@dataclass
class WorldLandmark:
    x: float
    y: float
    z: float
    visibility: Optional[float] = None
    original_z: Optional[float] = None


@dataclass
class ROI:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @classmethod
    def full_frame(cls) -> "ROI":
        return cls(0.0, 0.0, 1.0, 1.0)


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: float
    confidence: float
    details: str = ""


@dataclass(frozen=True)
class CoordinateSystemValidation:
    round_trip_accuracy: ValidationResult
    boundary_validation: ValidationResult
    scale_consistency: ValidationResult
    overall_score: float

    def to_dict(self) -> Dict[str, Any]:
        def _vr(v: ValidationResult) -> Dict[str, Any]:
            return {
                "is_valid": bool(v.is_valid),
                "error": float(v.error),
                "confidence": float(v.confidence),
                "details": v.details,
            }

        return {
            "round_trip_accuracy": _vr(self.round_trip_accuracy),
            "boundary_validation": _vr(self.boundary_validation),
            "scale_consistency": _vr(self.scale_consistency),
            "overall_score": float(self.overall_score),
        }


@dataclass
class CameraParameters:
    homography: np.ndarray
    inverse_homography: np.ndarray
    reprojection_error_px: float
    confidence: float
    camera: Optional[CameraPositionConfig] = None
    video_dimensions: Optional[VideoDimensions] = None
    meta: Dict[str, Any] = field(default_factory=dict)
