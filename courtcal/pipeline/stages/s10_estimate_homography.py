from __future__ import annotations

import logging

from ...calibration.homography import estimate_homography_from_lines
from ...calibration.lines import calibration_video
from ...core.errors import CalibrationError
from ..base import CalibrationBundle, Stage
from ..base import register


@register("s10_estimate_homography")
class EstimateHomography(Stage):
    required_inputs = ["correspondences", "min_lines_3"]
    produces = ["H", "report.homography"]
    STAGE_VERSION = "1.0.0"

    def run(self, B: CalibrationBundle) -> CalibrationBundle:
        try:
            est = estimate_homography_from_lines(
                B.correspondences,
                camera=B.camera,
                court=B.court,
                resolve_endpoint_order=bool(self.cfg.get("resolve_endpoint_order", True)),
                max_flip_search=int(self.cfg.get("max_flip_search", 8)),
                confidence_scale_px=float(self.cfg.get("confidence_scale_px", 20.0)),
                video=B.video,
            )
        except CalibrationError as e:
            # record the failure; the missing H then fails the postcondition
            logging.getLogger(__name__).warning("EstimateHomography: %s", e)
            B.H = None
            B.report.setdefault("homography", {}).update({
                "success": False,
                "total": len(B.correspondences),
                "reason": str(e),
            })
            B.report.setdefault("warnings", {}).setdefault("homography", []).append(
                f"EstimateHomography: calibration rejected ({e})"
            )
            return B

        B.H = est.H
        B.video = calibration_video(B.correspondences, B.video)
        B.report.setdefault("homography", {}).update({
            "success": True,
            "total": len(B.correspondences),
            "num_points": est.num_points,
            "rmse_px": est.reprojection_error_px,
            "confidence": est.confidence,
            "flipped_lines": list(est.flipped_lines),
            "camera_consistent": est.camera_consistent,
            "method": est.method,
        })
        return B
