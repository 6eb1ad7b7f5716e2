from __future__ import annotations

from ...calibration.homography import refine_homography
from ...calibration.lines import correspondence_points
from ..base import CalibrationBundle, Stage
from ..base import register


@register("s20_refine_homography")
class RefineHomography(Stage):
    """Nonlinear reprojection-error refinement of the DLT estimate.

    Reuses the endpoint order chosen by s10 (report.homography.flipped_lines).
    """

    required_inputs = ["H", "correspondences", "report.homography"]
    produces = ["H", "report.refine"]
    STAGE_VERSION = "1.0.0"

    def run(self, B: CalibrationBundle) -> CalibrationBundle:
        flipped = set(B.report["homography"].get("flipped_lines") or [])
        flips = [c.name in flipped for c in B.correspondences]
        world, image = correspondence_points(B.correspondences, flips, video=B.video)

        robust = self.cfg.get("robust", {}) or {}
        H, info = refine_homography(
            B.H,
            world,
            image,
            backend=str(self.cfg.get("backend", "scipy")),
            loss=str(robust.get("loss", "linear")),
            f_scale=float(robust.get("f_scale", 1.0)),
        )
        B.H = H
        B.report.setdefault("refine", {}).update(info)
        return B
