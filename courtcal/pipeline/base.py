from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type

import numpy as np

from ..calibration.court import CourtLine
from ..calibration.lines import LineCorrespondence
from ..core.types import CameraPositionConfig, CourtDimensions, VideoDimensions


@dataclass
class CalibrationBundle:
    bundle_id: Optional[str] = None
    correspondences: List[LineCorrespondence] = field(default_factory=list)
    court_lines: Dict[str, CourtLine] = field(default_factory=dict)
    camera: Optional[CameraPositionConfig] = None
    video: Optional[VideoDimensions] = None
    court: CourtDimensions = field(default_factory=CourtDimensions)
    H: Optional[np.ndarray] = None
    report: Dict[str, Any] = field(default_factory=dict)


class Stage:
    """Base class for calibration stages with contract enforcement.

    Each stage may declare:
      - required_inputs: logical inputs (e.g. "correspondences", "min_lines_3", "H", "video")
      - produces: outputs expected after run (e.g. "H", "report.homography")
      - STAGE_VERSION: semantic version string
      - STAGE_NAME: set via @register or defaults to class name
    """

    required_inputs: List[str] = []
    produces: List[str] = []
    STAGE_VERSION: str = "1.0.0"
    STAGE_NAME: str = ""

    def __init__(self, **cfg):
        self.cfg = cfg

    def __call__(self, B: CalibrationBundle) -> CalibrationBundle:
        from .contract import add_stage_version, ensure_versions, validate_produces, validate_required_inputs

        ensure_versions(B)
        validate_required_inputs(self, B)
        B = self.run(B)
        validate_produces(self, B)
        add_stage_version(self, B)
        return B

    def run(self, B: CalibrationBundle) -> CalibrationBundle:  # pragma: no cover - interface
        raise NotImplementedError

    def should_skip(self, B: CalibrationBundle) -> bool:
        return False


def register(name: str) -> Callable[[Type[Stage]], Type[Stage]]:
    def _wrap(cls: Type[Stage]) -> Type[Stage]:
        cls.STAGE_NAME = name
        return cls

    return _wrap
