from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from omegaconf import OmegaConf

from ..calibration.camera import HeightPrior
from ..calibration.session import CalibrationSession
from ..core.errors import CalibrationError
from ..transform.coordinates import is_valid_homography


logger = logging.getLogger(__name__)


def save_calibration(calibration: Union[CalibrationSession, Dict[str, Any]], path: str | Path) -> Path:
    """Write the calibration blob as YAML (or JSON for a .json suffix)."""
    blob = calibration.to_dict() if isinstance(calibration, CalibrationSession) else dict(calibration)
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    if p.suffix.lower() == ".json":
        with open(p, "w", encoding="utf-8") as f:
            json.dump(blob, f, ensure_ascii=False, indent=2)
    else:
        OmegaConf.save(config=OmegaConf.create(blob), f=p)
    logger.info("Saved calibration to %s", p)
    return p


def load_calibration(path: str | Path, height_prior: HeightPrior | None = None) -> CalibrationSession:
    """Load a blob written by save_calibration; invalid homographies raise CalibrationError."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"calibration file not found: {p}")
    if p.suffix.lower() == ".json":
        with open(p, "r", encoding="utf-8") as f:
            blob = json.load(f)
    else:
        blob = OmegaConf.to_container(OmegaConf.load(p), resolve=True)
    if not isinstance(blob, dict):
        raise CalibrationError(f"calibration file {p} does not contain a mapping")
    H = blob.get("homography")
    if H is not None and not is_valid_homography(H):
        raise CalibrationError(f"calibration file {p} holds an invalid homography")
    return CalibrationSession.from_dict(blob, height_prior=height_prior)
