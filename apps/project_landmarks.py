from __future__ import annotations

import logging
from pathlib import Path

import hydra
from hydra.utils import to_absolute_path
from omegaconf import DictConfig, OmegaConf

from courtcal.api import LandmarkProjector
from courtcal.calibration.camera import HeightPrior
from courtcal.core.types import PoseLandmark
from courtcal.io.calibration_store import load_calibration
from courtcal.speed.calculator import SpeedCalculator, SpeedCalibrationSettings
from courtcal.tracking.tracker import RoiSettings, RoiTracker
from courtcal.utils.logging_setup import setup_logging


def _landmarks(rows) -> list[PoseLandmark]:
    out = []
    for r in rows:
        r = list(r) + [None] * (4 - len(r))
        out.append(PoseLandmark(float(r[0]), float(r[1]), r[2], r[3]))
    return out


@hydra.main(config_path="../configs", config_name="project", version_base=None)
def main(cfg: DictConfig):
    setup_logging(cfg.logging.level, cfg.logging.get("file"), cfg.logging.get("levels"))
    log = logging.getLogger(__name__)

    prior = HeightPrior.from_dict(OmegaConf.to_container(cfg.camera.height_prior, resolve=True))
    session = load_calibration(to_absolute_path(cfg.calibration), height_prior=prior)
    if not session.is_calibrated:
        raise ValueError(f"{cfg.calibration} holds no homography; run apps/calibrate.py first")

    tracker = RoiTracker(RoiSettings.from_dict(OmegaConf.to_container(cfg.roi, resolve=True))) if cfg.track_roi else None
    speed_cfg = OmegaConf.to_container(cfg.speed, resolve=True)
    speed = SpeedCalculator(int(speed_cfg.pop("smoothing_window", 5)), SpeedCalibrationSettings.from_dict(speed_cfg))
    projector = LandmarkProjector(session, tracker=tracker, speed=speed)

    data = OmegaConf.to_container(OmegaConf.load(to_absolute_path(cfg.landmarks)), resolve=True)
    frames_out = []
    for fr in data.get("frames", []):
        res = projector.process(int(fr["frame"]), float(fr["time"]), _landmarks(fr.get("landmarks", [])))
        frames_out.append({
            "frame": res.frame,
            "time": res.timestamp,
            "world": [None if w is None else [w.x, w.y, w.z, w.visibility] for w in res.world_landmarks],
            "speed": res.speed.speed,
            "horizontal_speed": res.speed.horizontal_speed,
            "cog_height": res.speed.center_of_gravity_height,
            "roi_state": None if res.tracker is None else res.tracker.state.value,
        })

    out = Path(to_absolute_path(cfg.out))
    out.parent.mkdir(parents=True, exist_ok=True)
    OmegaConf.save(config=OmegaConf.create({"frames": frames_out}), f=out)
    log.info("Projected %d frames; average speed %.2f m/s -> %s", len(frames_out), speed.average_speed, out)


if __name__ == "__main__":
    main()
