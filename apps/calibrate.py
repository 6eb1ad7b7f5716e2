from __future__ import annotations

import logging

import hydra
from hydra.utils import to_absolute_path
from omegaconf import DictConfig, OmegaConf

from courtcal.api import run_calibration
from courtcal.utils.logging_setup import setup_logging


@hydra.main(config_path="../configs", config_name="config", version_base=None)
def main(cfg: DictConfig):
    setup_logging(cfg.logging.level, cfg.logging.get("file"), cfg.logging.get("levels"))
    log = logging.getLogger(__name__)

    court_cfg = OmegaConf.to_container(cfg.court, resolve=True)
    camera_cfg = OmegaConf.to_container(cfg.camera, resolve=True) if cfg.get("camera") else None
    stage_cfgs = list(cfg.pipeline.stages)

    B = run_calibration(to_absolute_path(cfg.annotations), court_cfg, stage_cfgs, camera_cfg, cfg.get("bundle_id"))

    hom = B.report.get("homography", {})
    val = B.report.get("validation", {})
    if B.H is None:
        log.error("Calibration failed: %s", hom.get("reason", B.report.get("errors")))
        return
    log.info(
        "Calibration: rmse %.3f px, score %.1f%%, grade %s",
        float(B.report.get("refine", {}).get("rmse_px_after", hom.get("rmse_px", float("nan")))),
        100.0 * float(val.get("overall_score", 0.0)),
        B.report.get("quality", {}).get("quality_grade", "n/a"),
    )
    for rec in B.report.get("quality", {}).get("recommendations", []):
        log.info("  - %s", rec)


if __name__ == "__main__":
    main()
