from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from omegaconf import OmegaConf

from ..calibration.court import CourtLine
from ..calibration.lines import DrawnLine, LineCorrespondence
from ..core.types import CameraPositionConfig, Point2D, VideoDimensions


def annotations_from_dict(
    d: Dict[str, Any], court_lines: Dict[str, CourtLine]
) -> Tuple[List[LineCorrespondence], VideoDimensions, Optional[CameraPositionConfig]]:
    """Parse ``{video: {width, height}, camera: {...}, lines: [{line, start, end}]}``.

    Drawn endpoints are normalized [0, 1]; a line may override ``video`` with
    its own draw-time dimensions. Calibration resolves every line against the
    top-level ``video``, which build_bundle carries on the bundle.
    """
    if "video" not in d:
        raise ValueError("annotations: 'video' dimensions are required")
    video = VideoDimensions.from_dict(d["video"])
    if video.width <= 0 or video.height <= 0:
        raise ValueError(f"annotations: invalid video dimensions {video.width}x{video.height}")
    camera = CameraPositionConfig.from_dict(d.get("camera"))

    out: List[LineCorrespondence] = []
    for i, item in enumerate(d.get("lines", []) or []):
        name = str(item.get("line", ""))
        if name not in court_lines:
            raise ValueError(f"annotations: line #{i} refers to unknown court line '{name}'")
        sx, sy = [float(v) for v in item["start"]]
        ex, ey = [float(v) for v in item["end"]]
        v = VideoDimensions.from_dict(item["video"]) if item.get("video") else video
        out.append(LineCorrespondence(court_lines[name], DrawnLine(Point2D(sx, sy), Point2D(ex, ey), v)))
    return out, video, camera


def load_line_annotations(
    path: str | Path, court_lines: Dict[str, CourtLine]
) -> Tuple[List[LineCorrespondence], VideoDimensions, Optional[CameraPositionConfig]]:
    """Read drawn-line annotations from a YAML (or JSON) file."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"annotations file not found: {p}")
    d = OmegaConf.to_container(OmegaConf.load(p), resolve=True)
    if not isinstance(d, dict):
        raise ValueError(f"annotations: expected a mapping at top level in {p}")
    return annotations_from_dict(d, court_lines)
