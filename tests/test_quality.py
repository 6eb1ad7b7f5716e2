from __future__ import annotations

import numpy as np
import pytest

from courtcal.validation.quality import (
    CalibrationQualityMetrics,
    assess_calibration_quality,
    condition_number,
    line_alignment_scores,
    overall_confidence,
    quality_grade,
    recommendations,
)
from synthetic_court import drawn_correspondences


def _make_metrics(**kw):
    base = dict(
        reprojection_error=1.0,
        condition_number=10.0,
        perspective_distortion=0.1,
        line_alignment_scores=[0.95, 0.9],
        coordinate_system_validation=None,
        overall_confidence=0.9,
        quality_grade="excellent",
    )
    base.update(kw)
    return CalibrationQualityMetrics(**base)


def test_exact_lines_assess_well(oblique_H, video):
    corr = drawn_correspondences(oblique_H, ["baseline_near", "baseline_far", "sideline_left", "sideline_right"])
    m = assess_calibration_quality(oblique_H, corr, video)
    assert m.reprojection_error < 1e-6
    assert m.line_alignment_scores == pytest.approx([1.0] * 4)
    assert 1.0 <= m.condition_number < 1e6
    assert 0.0 <= m.overall_confidence <= 1.0
    assert m.quality_grade == quality_grade(m.overall_confidence)
    assert m.coordinate_system_validation is not None
    assert m.to_dict()["quality_grade"] == m.quality_grade


def test_invalid_homography_is_poor(video):
    m = assess_calibration_quality(np.zeros((3, 3)), [], video)
    assert m.quality_grade == "poor"
    assert m.overall_confidence == 0.0
    assert m.recommendations == ["Invalid homography: calibration must be redone."]


def test_line_alignment_ignores_drawn_direction(oblique_H):
    names = ["net", "sideline_left"]
    fwd = line_alignment_scores(oblique_H, drawn_correspondences(oblique_H, names))
    rev = line_alignment_scores(oblique_H, drawn_correspondences(oblique_H, names, flip=("net",)))
    assert fwd == pytest.approx(rev)


def test_condition_number():
    assert condition_number(np.eye(3)) == pytest.approx(1.0)
    assert condition_number(np.diag([1e4, 1.0, 1.0])) == pytest.approx(1e4)
    assert condition_number(np.zeros((3, 3))) == float("inf")


def test_quality_grades():
    assert quality_grade(0.95) == "excellent"
    assert quality_grade(0.7) == "good"
    assert quality_grade(0.5) == "fair"
    assert quality_grade(0.49) == "poor"


def test_overall_confidence_bounds():
    assert overall_confidence(0.0, 1.0, 0.0, [1.0], None) == pytest.approx(0.9)
    assert overall_confidence(float("inf"), float("inf"), 5.0, [], None) == 0.0


def test_recommendations():
    assert recommendations(_make_metrics()) == ["Calibration quality is good. No specific improvements needed."]
    recs = recommendations(
        _make_metrics(reprojection_error=80.0, condition_number=5e3, perspective_distortion=0.5, line_alignment_scores=[0.2])
    )
    assert len(recs) == 4
    assert recs[0].startswith("High reprojection error")
