from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple

from ..core.types import Point3D, WorldLandmark


logger = logging.getLogger(__name__)

LEFT_SHOULDER, RIGHT_SHOULDER = 11, 12
LEFT_HIP, RIGHT_HIP = 23, 24
LEFT_KNEE, RIGHT_KNEE = 25, 26
LEFT_ANKLE, RIGHT_ANKLE = 27, 28
RIGHT_FOOT_INDEX = 32
TORSO = (LEFT_SHOULDER, RIGHT_SHOULDER, LEFT_HIP, RIGHT_HIP)
COG_WEIGHTS = ((LEFT_HIP, RIGHT_HIP, 0.5), (LEFT_KNEE, RIGHT_KNEE, 0.3), (LEFT_ANKLE, RIGHT_ANKLE, 0.2))


@dataclass
class SpeedCalibrationSettings:
    """UI-supplied speed calibration inputs, stored as plain config.

    SpeedCalculator carries them for the caller; speeds come from world
    landmarks, which are already metric, so no field feeds the computation.
    """

    player_height_cm: float = 165.0
    court_length_m: float = 13.4
    reference_points: List[Dict[str, float]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Dict[str, Any] | None) -> "SpeedCalibrationSettings":
        if not d:
            return cls()
        return cls(
            player_height_cm=float(d.get("player_height_cm", 165.0)),
            court_length_m=float(d.get("court_length_m", 13.4)),
            reference_points=[dict(p) for p in d.get("reference_points", []) or []],
        )


@dataclass
class SpeedSample:
    frame: int
    time: float
    value: float


@dataclass
class SpeedMetrics:
    is_valid: bool = False
    speed: float = 0.0
    horizontal_speed: float = 0.0
    right_foot_speed: float = 0.0
    center_of_gravity_height: float = 0.0
    velocity: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    center_of_mass: Point3D = field(default_factory=lambda: Point3D(0.0, 0.0, 0.0))
    current_speed: float = 0.0
    average_speed: float = 0.0
    samples: int = 0


def _usable(lm: Optional[WorldLandmark], min_visibility: float) -> bool:
    return lm is not None and (lm.visibility is None or lm.visibility > min_visibility)


def center_of_mass(landmarks: Sequence[Optional[WorldLandmark]], min_visibility: float = 0.5) -> Optional[Point3D]:
    """Mean of the visible torso landmarks, else of all visible landmarks; None if nothing is visible."""
    pts = [landmarks[i] for i in TORSO if i < len(landmarks) and _usable(landmarks[i], min_visibility)]
    if not pts:
        pts = [lm for lm in landmarks if _usable(lm, min_visibility)]
    if not pts:
        return None
    n = float(len(pts))
    return Point3D(sum(p.x for p in pts) / n, sum(p.y for p in pts) / n, sum(p.z for p in pts) / n)


def center_of_gravity_height(landmarks: Sequence[Optional[WorldLandmark]]) -> float:
    """Weighted hip/knee/ankle height (0.5/0.3/0.2); 0 when any of them is missing."""
    total = 0.0
    for left, right, w in COG_WEIGHTS:
        if max(left, right) >= len(landmarks):
            return 0.0
        a, b = landmarks[left], landmarks[right]
        if a is None or b is None or not (math.isfinite(a.z) and math.isfinite(b.z)):
            return 0.0
        total += w * (a.z + b.z) / 2.0
    return abs(total)


class SpeedCalculator:
    """Speed from a stream of world-space landmarks (meters, z up), one call per processed frame.

    Frames whose world transform failed (None or no visible landmarks) leave
    the last metrics untouched.
    """

    def __init__(self, smoothing_window: int = 5, settings: SpeedCalibrationSettings | None = None):
        self.smoothing_window = max(1, int(smoothing_window))
        self.settings = settings or SpeedCalibrationSettings()
        self.reset()

    def reset(self) -> None:
        self.samples: Deque[SpeedSample] = deque(maxlen=self.smoothing_window)
        self.current_speed = 0.0
        self.metrics = SpeedMetrics()
        self._prev: Optional[Tuple[float, Point3D, Optional[WorldLandmark]]] = None

    @property
    def average_speed(self) -> float:
        if not self.samples:
            return 0.0
        return sum(s.value for s in self.samples) / len(self.samples)

    def push_sample(self, frame: int, time_s: float, distance_delta: float, dt: float | None = None) -> float:
        """Record a distance travelled over ``dt`` seconds; returns the instantaneous speed.

        ``dt`` defaults to the time since the previous sample.
        """
        if self.samples:
            if dt is None:
                dt = float(time_s) - self.samples[-1].time
            speed = float(distance_delta) / max(1e-6, float(dt))
        else:
            speed = 0.0
        self.samples.append(SpeedSample(int(frame), float(time_s), speed))
        self.current_speed = speed
        return speed

    def update(self, frame: int, time_s: float, landmarks: Sequence[Optional[WorldLandmark]] | None) -> SpeedMetrics:
        lms = list(landmarks or [])
        com = center_of_mass(lms)
        if com is None:
            logger.debug("SpeedCalculator: frame %d has no usable world landmarks; keeping last value", frame)
            return self.metrics

        foot = lms[RIGHT_FOOT_INDEX] if RIGHT_FOOT_INDEX < len(lms) else None
        if foot is not None and not _usable(foot, 0.5):
            foot = None

        velocity = (0.0, 0.0, 0.0)
        speed = horizontal = foot_speed = 0.0
        if self._prev is not None:
            t0, prev_com, prev_foot = self._prev
            dt = float(time_s) - t0
            if dt > 0:
                velocity = ((com.x - prev_com.x) / dt, (com.y - prev_com.y) / dt, (com.z - prev_com.z) / dt)
                speed = math.sqrt(sum(v * v for v in velocity))
                horizontal = math.hypot(velocity[0], velocity[1])
                if foot is not None and prev_foot is not None:
                    foot_speed = math.hypot(foot.x - prev_foot.x, foot.y - prev_foot.y) / dt
                self.push_sample(frame, time_s, horizontal * dt, dt)
            else:
                logger.debug("SpeedCalculator: non-increasing timestamp at frame %d", frame)
        else:
            self.push_sample(frame, time_s, 0.0)

        self._prev = (float(time_s), com, foot)
        self.metrics = SpeedMetrics(
            is_valid=len(self.samples) >= 2,
            speed=speed,
            horizontal_speed=horizontal,
            right_foot_speed=foot_speed,
            center_of_gravity_height=center_of_gravity_height(lms),
            velocity=velocity,
            center_of_mass=com,
            current_speed=self.current_speed,
            average_speed=self.average_speed,
            samples=len(self.samples),
        )
        return self.metrics
