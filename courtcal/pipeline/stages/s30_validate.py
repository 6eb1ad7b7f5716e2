from __future__ import annotations

from ...validation.coordinate_validation import validate_coordinate_system
from ..base import CalibrationBundle, Stage
from ..base import register


@register("s30_validate")
class ValidateCalibration(Stage):
    required_inputs = ["H", "video"]
    produces = ["report.validation"]
    STAGE_VERSION = "1.0.0"

    def run(self, B: CalibrationBundle) -> CalibrationBundle:
        res = validate_coordinate_system(
            B.H,
            B.video,
            B.court,
            tolerance_px=float(self.cfg.get("tolerance_px", 2.0)),
            bounds_margin=float(self.cfg.get("bounds_margin", 2.0)),
            half_segment_px=float(self.cfg.get("half_segment_px", 50.0)),
        )
        out = res.to_dict()
        min_score = self.cfg.get("min_score")
        if min_score is not None:
            out["accepted"] = bool(res.overall_score >= float(min_score))
            if not out["accepted"]:
                B.report.setdefault("warnings", {}).setdefault("validation", []).append(
                    f"Calibration score {res.overall_score:.2f} below {float(min_score):.2f}; re-calibration advised"
                )
        B.report["validation"] = out
        return B
