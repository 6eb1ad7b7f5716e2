from __future__ import annotations

from ...validation.quality import assess_calibration_quality
from ..base import CalibrationBundle, Stage
from ..base import register


@register("s40_quality")
class AssessQuality(Stage):
    required_inputs = ["H", "video", "correspondences"]
    produces = ["report.quality"]
    STAGE_VERSION = "1.0.0"

    def run(self, B: CalibrationBundle) -> CalibrationBundle:
        m = assess_calibration_quality(B.H, B.correspondences, B.video, B.court)
        B.report["quality"] = m.to_dict()
        return B
