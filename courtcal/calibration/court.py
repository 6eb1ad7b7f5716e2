from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from ..core.types import CourtDimensions, Point3D


# Badminton doubles court, meters. Origin at net center, +y toward the "near" baseline.
BADMINTON = {
    "width": 6.1,
    "length": 13.4,
    "singles_width": 5.18,
    "short_service_from_net": 1.98,
    "long_service_from_baseline": 0.76,
}


@dataclass
class CourtLine:
    name: str
    line_type: str
    start: Point3D
    end: Point3D

    def __post_init__(self):
        if abs(self.start.z) > 1e-9 or abs(self.end.z) > 1e-9:
            raise ValueError(f"CourtLine '{self.name}': endpoints must lie on the court plane (z=0)")

    @property
    def length(self) -> float:
        return float(((self.end.x - self.start.x) ** 2 + (self.end.y - self.start.y) ** 2) ** 0.5)


def badminton_court_lines(overrides: Dict[str, float] | None = None) -> Dict[str, CourtLine]:
    """Named court lines for a badminton doubles court in court-centered meters."""
    s = dict(BADMINTON)
    s.update(overrides or {})
    hw = s["width"] / 2.0
    hl = s["length"] / 2.0
    sw = s["singles_width"] / 2.0
    ss = s["short_service_from_net"]
    ls = hl - s["long_service_from_baseline"]

    def _line(name, line_type, x0, y0, x1, y1):
        return CourtLine(name, line_type, Point3D(x0, y0, 0.0), Point3D(x1, y1, 0.0))

    lines = [
        _line("net", "net", -hw, 0.0, hw, 0.0),
        _line("baseline_near", "baseline", -hw, hl, hw, hl),
        _line("baseline_far", "baseline", -hw, -hl, hw, -hl),
        _line("sideline_left", "sideline", -hw, -hl, -hw, hl),
        _line("sideline_right", "sideline", hw, -hl, hw, hl),
        _line("singles_sideline_left", "singles-sideline", -sw, -hl, -sw, hl),
        _line("singles_sideline_right", "singles-sideline", sw, -hl, sw, hl),
        _line("service_short_near", "service-short", -hw, ss, hw, ss),
        _line("service_short_far", "service-short", -hw, -ss, hw, -ss),
        _line("service_long_near", "service-long", -hw, ls, hw, ls),
        _line("service_long_far", "service-long", -hw, -ls, hw, -ls),
        _line("center_line_near", "center-line", 0.0, ss, 0.0, hl),
        _line("center_line_far", "center-line", 0.0, -ss, 0.0, -hl),
    ]
    return {ln.name: ln for ln in lines}


def court_lines_from_cfg(court_cfg: Dict[str, Any]) -> Dict[str, CourtLine]:
    """Build named court lines from a court config.

    Accepts either ``{"preset": "badminton", ...overrides}`` or an explicit
    ``{"lines": {name: {"type": str, "start": [x, y], "end": [x, y]}}}``.
    """
    if "lines" in court_cfg:
        out: Dict[str, CourtLine] = {}
        for name, d in court_cfg["lines"].items():
            sx, sy = [float(v) for v in list(d["start"])[:2]]
            ex, ey = [float(v) for v in list(d["end"])[:2]]
            out[str(name)] = CourtLine(
                str(name), str(d.get("type", name)), Point3D(sx, sy, 0.0), Point3D(ex, ey, 0.0)
            )
        return out
    preset = str(court_cfg.get("preset", "")).lower()
    if preset == "badminton":
        overrides = {k: float(court_cfg[k]) for k in BADMINTON if k in court_cfg}
        return badminton_court_lines(overrides)
    raise ValueError("court_lines_from_cfg: unknown court config schema")


def court_dimensions_from_cfg(court_cfg: Dict[str, Any]) -> CourtDimensions:
    """Court size for bounds checks; explicit line sets without ``dimensions`` use their extent."""
    if str(court_cfg.get("preset", "")).lower() == "badminton":
        return CourtDimensions(
            width=float(court_cfg.get("width", BADMINTON["width"])),
            length=float(court_cfg.get("length", BADMINTON["length"])),
        )
    if "lines" in court_cfg and not court_cfg.get("dimensions"):
        return court_extent(list(court_lines_from_cfg(court_cfg).values()))
    return CourtDimensions.from_dict(court_cfg.get("dimensions"))


def court_extent(lines: List[CourtLine]) -> CourtDimensions:
    xs = [p.x for ln in lines for p in (ln.start, ln.end)]
    ys = [p.y for ln in lines for p in (ln.start, ln.end)]
    return CourtDimensions(width=max(xs) - min(xs), length=max(ys) - min(ys))
