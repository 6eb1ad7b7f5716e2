from __future__ import annotations


class CalibrationError(ValueError):
    """Calibration could not produce a usable homography."""


class InsufficientCorrespondencesError(CalibrationError):
    def __init__(self, got: int, need: int = 3):
        self.got = int(got)
        self.need = int(need)
        super().__init__(f"need >= {need} usable line correspondences, got {got}")


class DegenerateGeometryError(CalibrationError):
    """Line configuration is rank deficient (parallel lines, collinear points, singular H)."""
