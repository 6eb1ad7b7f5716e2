from __future__ import annotations

from typing import Any, Dict, List, Tuple

from ..calibration.lines import MIN_CORRESPONDENCES
from ..transform.coordinates import is_valid_homography


SCHEMA_VERSIONS: Dict[str, str] = {
    "bundle": "calibration_bundle@1.0.0",
    "result": "calibration_result@1.0.0",
}

PIPELINE_VERSION: str = "courtcal@1.0.0"


def stage_name(stage) -> str:
    return getattr(stage, "STAGE_NAME", "") or stage.__class__.__name__


def ensure_versions(B) -> None:
    """Ensure version stamps exist in B.report["versions"]."""
    vers = B.report.get("versions") or {}
    vers.setdefault("schema_version", dict(SCHEMA_VERSIONS))
    vers.setdefault("pipeline_version", PIPELINE_VERSION)
    vers.setdefault("stage_versions", [])
    B.report["versions"] = vers


def _has_attr_path(obj: Any, path: str) -> bool:
    cur: Any = obj
    for p in path.split("."):
        if isinstance(cur, dict):
            if p not in cur:
                return False
            cur = cur[p]
        else:
            if not hasattr(cur, p):
                return False
            cur = getattr(cur, p)
    return cur is not None


def can_run(stage, B) -> Tuple[bool, List[str]]:
    """Non-raising readiness check. Returns (ok, advice)."""
    reqs = getattr(stage, "required_inputs", []) or []
    advice: List[str] = []
    for r in reqs:
        if r == "correspondences":
            if not B.correspondences:
                advice.append("Provide line correspondences (io.annotations.load_line_annotations)")
        elif r == "min_lines_3":
            if len(B.correspondences) < MIN_CORRESPONDENCES:
                advice.append(f"Need >= {MIN_CORRESPONDENCES} line correspondences, got {len(B.correspondences)}")
        elif r == "H":
            if B.H is None or not is_valid_homography(B.H):
                advice.append("Run s10_estimate_homography or load a valid homography")
        elif r == "video":
            if B.video is None or B.video.width <= 0 or B.video.height <= 0:
                advice.append("Video dimensions missing; set video.width/height")
        else:
            if not _has_attr_path(B, r):
                advice.append(f"Bundle missing attribute '{r}'")
    return (len(advice) == 0, advice)


def validate_required_inputs(stage, B) -> None:
    ok, advice = can_run(stage, B)
    if not ok:
        raise ValueError(f"Stage '{stage_name(stage)}' precondition failed. Guidance: " + "; ".join(advice))


def validate_produces(stage, B) -> None:
    missing = [p for p in (getattr(stage, "produces", []) or []) if not _has_attr_path(B, p)]
    if missing:
        raise ValueError(f"Stage '{stage_name(stage)}' postcondition failed: did not produce {missing}")


def add_stage_version(stage, B) -> None:
    ensure_versions(B)
    B.report["versions"]["stage_versions"].append(
        {"name": stage_name(stage), "version": getattr(stage, "STAGE_VERSION", "0.0.0")}
    )
