from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple

from ..core.types import ROI, PoseLandmark
from .roi import calculate_roi_coverage, is_point_in_roi, validate_roi


logger = logging.getLogger(__name__)

# nose, shoulders, elbows, wrists, hips, knees
ROI_KEY_LANDMARKS: Tuple[int, ...] = (0, 11, 12, 13, 14, 15, 16, 23, 24, 25, 26)


class TrackerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    TRACKING = "tracking"
    EXPANDED = "expanded"
    LOST = "lost"


@dataclass
class RoiSettings:
    smoothing_factor: float = 0.7
    history_length: int = 10
    expansion_factor: float = 1.2
    min_size: Tuple[float, float] = (0.1, 0.1)
    max_size: Tuple[float, float] = (0.8, 0.8)
    key_visibility: float = 0.3
    min_key_landmarks: int = 3
    coverage_threshold: float = 0.7
    adaptive_expansion_rate: float = 0.05
    adaptive_shrink_rate: float = 0.02
    use_motion_prediction: bool = True
    motion_prediction_weight: float = 0.3
    max_prediction_distance: float = 0.1
    frame_rate: float = 60.0
    validation_min_landmarks: int = 5
    validation_min_confidence: float = 0.4
    validation_min_ratio: float = 0.6
    fallback_frame_count: int = 5
    recovery_frame_count: int = 10

    @classmethod
    def from_dict(cls, d: Dict[str, Any] | None) -> "RoiSettings":
        if not d:
            return cls()
        kw: Dict[str, Any] = {}
        for k, v in d.items():
            if k not in cls.__dataclass_fields__:
                raise ValueError(f"RoiSettings: unknown key '{k}'")
            kw[k] = tuple(float(x) for x in v) if k in ("min_size", "max_size") else v
        return cls(**kw)


@dataclass
class RoiStability:
    average_size: Tuple[float, float] = (0.0, 0.0)
    average_position: Tuple[float, float] = (0.0, 0.0)
    velocity: Tuple[float, float] = (0.0, 0.0)
    size_velocity: Tuple[float, float] = (0.0, 0.0)
    stability_score: float = 0.0


@dataclass
class RoiValidation:
    is_valid: bool
    landmarks_in_roi: int = 0
    total_landmarks: int = 0
    average_confidence: float = 0.0
    landmark_ratio: float = 0.0
    reason: str = ""


@dataclass
class TrackerUpdate:
    state: TrackerState
    roi: ROI
    coverage: float
    validation: Optional[RoiValidation] = None
    prediction: Optional[ROI] = None
    history: List[ROI] = field(default_factory=list)


def _visible(lm: Optional[PoseLandmark], threshold: float) -> bool:
    return lm is not None and (lm.visibility or 0.0) > threshold


class RoiTracker:
    """Adaptive ROI for one tracked subject.

    States: UNINITIALIZED -> TRACKING -> (EXPANDED | LOST) -> TRACKING.
    Each instance owns its own history; run one tracker per video stream.
    """

    def __init__(self, settings: RoiSettings | None = None, initial_roi: ROI | None = None):
        self.settings = settings or RoiSettings()
        self._initial = validate_roi(initial_roi) if initial_roi is not None else None
        self.reset()

    def reset(self) -> None:
        self.state = TrackerState.UNINITIALIZED
        self.roi: ROI = self._initial or ROI.full_frame()
        self.history: Deque[Tuple[ROI, float]] = deque(maxlen=int(self.settings.history_length))
        self.stability = RoiStability()
        self.prediction: Optional[ROI] = None
        self.missed_frames = 0
        self.good_frames = 0

    # ------------------------------------------------------------------ ROI math
    def enhanced_roi(self, landmarks: Sequence[Optional[PoseLandmark]], previous: ROI | None = None) -> Optional[ROI]:
        """Expanded, size-clamped, temporally smoothed box around the visible key landmarks."""
        s = self.settings
        pts = [
            landmarks[i]
            for i in ROI_KEY_LANDMARKS
            if i < len(landmarks) and _visible(landmarks[i], s.key_visibility)
        ]
        if len(pts) < s.min_key_landmarks:
            return None
        xs = [p.x for p in pts]
        ys = [p.y for p in pts]
        cx, cy = (min(xs) + max(xs)) / 2.0, (min(ys) + max(ys)) / 2.0
        w = (max(xs) - min(xs)) * s.expansion_factor
        h = (max(ys) - min(ys)) * s.expansion_factor
        w = max(s.min_size[0], min(s.max_size[0], w))
        h = max(s.min_size[1], min(s.max_size[1], h))
        x = max(0.0, min(1.0 - w, cx - w / 2.0))
        y = max(0.0, min(1.0 - h, cy - h / 2.0))
        roi = ROI(x, y, w, h)

        if previous is not None and s.smoothing_factor > 0:
            a = s.smoothing_factor
            roi = ROI(
                previous.x * a + roi.x * (1 - a),
                previous.y * a + roi.y * (1 - a),
                previous.width * a + roi.width * (1 - a),
                previous.height * a + roi.height * (1 - a),
            )
        return validate_roi(roi)

    def _push_history(self, roi: ROI, timestamp: float) -> None:
        self.history.append((roi, float(timestamp)))
        if len(self.history) < 2:
            return
        recent = list(self.history)[-5:]
        n = float(len(recent))
        avg_w = sum(r.width for r, _ in recent) / n
        avg_h = sum(r.height for r, _ in recent) / n
        avg_x = sum(r.x for r, _ in recent) / n
        avg_y = sum(r.y for r, _ in recent) / n
        velocity = self.stability.velocity
        size_velocity = self.stability.size_velocity
        (prev, t0), (cur, t1) = recent[-2], recent[-1]
        dt = t1 - t0
        if dt > 0:
            velocity = ((cur.x - prev.x) / dt, (cur.y - prev.y) / dt)
            size_velocity = ((cur.width - prev.width) / dt, (cur.height - prev.height) / dt)
        variance = sum((r.x - avg_x) ** 2 + (r.y - avg_y) ** 2 for r, _ in recent) / n
        self.stability = RoiStability(
            average_size=(avg_w, avg_h),
            average_position=(avg_x, avg_y),
            velocity=velocity,
            size_velocity=size_velocity,
            stability_score=max(0.0, 1.0 - variance * 10.0),
        )

    def predict_next_roi(self, current: ROI | None = None) -> Optional[ROI]:
        """Extrapolate one frame ahead with the velocity estimate, capped in distance."""
        s = self.settings
        current = current or self.roi
        if current is None or not s.use_motion_prediction or len(self.history) < 2:
            return current
        k = s.motion_prediction_weight / s.frame_rate
        vx, vy = self.stability.velocity
        vw, vh = self.stability.size_velocity
        dx, dy = vx * k, vy * k
        dist = math.hypot(dx, dy)
        if dist > s.max_prediction_distance:
            scale = s.max_prediction_distance / dist
            dx, dy = dx * scale, dy * scale
        w = current.width + vw * k
        h = current.height + vh * k
        x = max(0.0, min(1.0 - w, current.x + dx))
        y = max(0.0, min(1.0 - h, current.y + dy))
        return validate_roi(ROI(x, y, w, h))

    def validate_landmarks(self, landmarks: Sequence[Optional[PoseLandmark]], roi: ROI | None = None) -> RoiValidation:
        """Does this pose belong to the tracked ROI? Checks count, confidence and ratio of key landmarks inside."""
        s = self.settings
        roi = roi or self.roi
        inside = 0
        valid = 0
        conf = 0.0
        for i in ROI_KEY_LANDMARKS:
            lm = landmarks[i] if i < len(landmarks) else None
            if not _visible(lm, s.key_visibility):
                continue
            valid += 1
            conf += lm.visibility or 0.0
            if is_point_in_roi(lm.x, lm.y, roi):
                inside += 1
        avg_conf = conf / valid if valid else 0.0
        ratio = inside / valid if valid else 0.0
        ok = inside >= s.validation_min_landmarks and avg_conf >= s.validation_min_confidence and ratio >= s.validation_min_ratio
        return RoiValidation(
            is_valid=bool(ok),
            landmarks_in_roi=inside,
            total_landmarks=valid,
            average_confidence=avg_conf,
            landmark_ratio=ratio,
            reason="valid" if ok else "insufficient_landmarks_or_confidence",
        )

    def _grow(self, roi: ROI, amount: float) -> ROI:
        cx, cy = roi.center
        w = min(1.0, roi.width + 2 * amount)
        h = min(1.0, roi.height + 2 * amount)
        return validate_roi(ROI(max(0.0, min(1.0 - w, cx - w / 2)), max(0.0, min(1.0 - h, cy - h / 2)), w, h))

    # ---------------------------------------------------------------- per frame
    def update(self, landmarks: Sequence[Optional[PoseLandmark]] | None, timestamp: float) -> TrackerUpdate:
        """Advance the tracker with one frame's full-frame-normalized landmarks (None/empty = no detection)."""
        s = self.settings
        landmarks = list(landmarks or [])
        previous = self.roi if self.state in (TrackerState.TRACKING, TrackerState.EXPANDED) else None
        new_roi = self.enhanced_roi(landmarks, previous) if landmarks else None
        coverage = calculate_roi_coverage(landmarks, self.roi).coverage if landmarks else 0.0
        validation = self.validate_landmarks(landmarks) if landmarks else None

        if new_roi is None:
            self.missed_frames += 1
            self.good_frames = 0
            if self.state == TrackerState.UNINITIALIZED:
                pass
            elif self.missed_frames >= s.fallback_frame_count:
                if self.state != TrackerState.LOST:
                    logger.debug("ROI tracker lost subject after %d frames; full frame", self.missed_frames)
                self.state = TrackerState.LOST
                self.roi = ROI.full_frame()
            else:
                self.state = TrackerState.EXPANDED
                self.roi = self._grow(self.roi, s.adaptive_expansion_rate)
        else:
            self.missed_frames = 0
            self.good_frames += 1
            if self.state == TrackerState.LOST and self.good_frames < s.recovery_frame_count:
                # keep the full frame until detections have been stable for a while
                self._push_history(new_roi, timestamp)
            elif coverage < s.coverage_threshold and self.state != TrackerState.UNINITIALIZED:
                self.state = TrackerState.EXPANDED
                self.roi = self._grow(new_roi, s.adaptive_expansion_rate)
                self._push_history(self.roi, timestamp)
            else:
                if self.state == TrackerState.EXPANDED and coverage >= s.coverage_threshold:
                    new_roi = self._grow(new_roi, -s.adaptive_shrink_rate)
                self.state = TrackerState.TRACKING
                self.roi = new_roi
                self._push_history(self.roi, timestamp)

        self.prediction = self.predict_next_roi(self.roi) if self.state == TrackerState.TRACKING else None
        return TrackerUpdate(
            state=self.state,
            roi=self.roi,
            coverage=coverage,
            validation=validation,
            prediction=self.prediction,
            history=[r for r, _ in self.history],
        )
