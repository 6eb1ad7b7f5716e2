from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict

import numpy as np
from omegaconf import OmegaConf

from ...calibration.session import CalibrationSession
from ...io.calibration_store import save_calibration
from ..base import CalibrationBundle, Stage
from ..base import register


def _round_list(arr, nd=6):
    if arr is None:
        return None
    return np.round(np.asarray(arr, dtype=float), nd).tolist()


@register("s50_export")
class Export(Stage):
    """Save the calibration blob and a report summary under out_dir[/bundle_id].

    Requires "report.validation" so it runs after validation.
    """

    required_inputs = ["H", "report.validation"]
    produces = ["report.export"]
    STAGE_VERSION = "1.0.0"

    def __init__(self, out_dir: str, save_yaml: bool = True, save_npz: bool = False, **cfg):
        super().__init__(**cfg)
        self.out_dir = out_dir
        self.save_yaml = bool(save_yaml)
        self.save_npz = bool(save_npz)

    def run(self, B: CalibrationBundle) -> CalibrationBundle:
        out_dir = Path(self.out_dir) / (str(B.bundle_id) if B.bundle_id else "")
        out_dir.mkdir(parents=True, exist_ok=True)

        session = CalibrationSession(video=B.video, court=B.court)
        hom = B.report.get("homography", {})
        session.set_homography(
            B.H,
            camera=B.camera,
            reprojection_error_px=float(B.report.get("refine", {}).get("rmse_px_after", hom.get("rmse_px", 0.0))),
            confidence=float(B.report["validation"].get("overall_score", 0.0)),
        )
        written = {}
        if self.save_yaml:
            written["calibration"] = str(save_calibration(session, out_dir / "calibration.yaml"))
            vers = B.report.get("versions", {})
            summary: Dict[str, Any] = {
                "bundle_id": B.bundle_id,
                "n_lines": len(B.correspondences),
                "H": _round_list(B.H),
                "report": {k: v for k, v in deepcopy(B.report).items() if k != "versions"},
                "schema_version": vers.get("schema_version", {}),
                "pipeline_version": vers.get("pipeline_version", ""),
                "stage_versions": vers.get("stage_versions", []),
            }
            OmegaConf.save(config=OmegaConf.create(summary), f=out_dir / "report.yaml")
            written["report"] = str(out_dir / "report.yaml")
        if self.save_npz:
            np.savez(out_dir / "calibration.npz", H=np.asarray(B.H, dtype=float), H_inv=session.parameters.inverse_homography)
            written["npz"] = str(out_dir / "calibration.npz")
        B.report["export"] = written
        return B
