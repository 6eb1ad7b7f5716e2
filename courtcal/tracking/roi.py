from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
import cv2

from ..core.types import ROI, PoseLandmark


logger = logging.getLogger(__name__)

MIN_ROI_SIZE = 0.05
MIN_CROP_PX = 64
COVERAGE_VISIBILITY = 0.3


@dataclass
class PixelROI:
    x: int
    y: int
    width: int
    height: int


@dataclass
class CroppedFrameData:
    """One frame's crop plus what is needed to map crop-space landmarks back."""

    image: np.ndarray
    offset_x: int
    offset_y: int
    cropped_width: int
    cropped_height: int
    scale_x: float
    scale_y: float
    frame_width: int
    frame_height: int


@dataclass
class RoiCoverage:
    coverage: float
    landmarks_in_roi: int
    total_valid_landmarks: int


def _finite(v: Any, default: float) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return default
    return f if math.isfinite(f) else default


def validate_roi(roi: ROI | None) -> ROI:
    """Clamp an ROI into the unit frame with a 5% minimum size.

    Never raises; a missing or malformed box becomes a usable one. Boxes that
    start within 5% of the far edge are shifted back so the minimum fits.
    The result is a fixed point: validate_roi(validate_roi(r)) == validate_roi(r).
    """
    if roi is None:
        return ROI.full_frame()
    x = min(max(_finite(roi.x, 0.0), 0.0), 1.0 - MIN_ROI_SIZE)
    y = min(max(_finite(roi.y, 0.0), 0.0), 1.0 - MIN_ROI_SIZE)
    w = max(MIN_ROI_SIZE, min(1.0 - x, _finite(roi.width, 1.0)))
    h = max(MIN_ROI_SIZE, min(1.0 - y, _finite(roi.height, 1.0)))
    return ROI(x, y, w, h)


def roi_to_pixel_coordinates(roi: ROI, width: int, height: int) -> PixelROI:
    r = validate_roi(roi)
    return PixelROI(
        x=int(round(r.x * width)),
        y=int(round(r.y * height)),
        width=int(round(r.width * width)),
        height=int(round(r.height * height)),
    )


def _expand_axis(start: int, size: int, min_size: int, limit: int) -> Tuple[int, int]:
    if size >= min_size:
        return start, size
    size_new = min(min_size, limit)
    center = start + size / 2.0
    s = int(round(center - size_new / 2.0))
    s = max(0, min(s, limit - size_new))
    return s, size_new


def crop_video_frame(
    frame: np.ndarray,
    roi: ROI,
    min_crop_size: int = MIN_CROP_PX,
    scratch: Optional[np.ndarray] = None,
    output_size: Optional[Tuple[int, int]] = None,
) -> CroppedFrameData:
    """Cut the ROI out of ``frame`` (H x W [x C]) for the pose model.

    Crops smaller than ``min_crop_size`` in either axis are grown around
    their center and clamped back into the frame. ``scratch`` is reused as
    the crop buffer when its shape and dtype match. ``output_size`` (w, h)
    resizes the crop with OpenCV; the returned geometry always refers to the
    un-resized crop.
    """
    if frame is None:
        raise ValueError("crop_video_frame: frame is None")
    frame = np.asarray(frame)
    if frame.ndim < 2 or frame.shape[0] == 0 or frame.shape[1] == 0:
        raise ValueError(f"crop_video_frame: invalid frame shape {frame.shape}")
    H, W = int(frame.shape[0]), int(frame.shape[1])

    px = roi_to_pixel_coordinates(roi, W, H)
    if px.width < min_crop_size or px.height < min_crop_size:
        logger.debug("ROI %dx%d px below %d px; expanding", px.width, px.height, min_crop_size)
        if W < min_crop_size or H < min_crop_size:
            logger.warning("Frame %dx%d is smaller than the %d px minimum crop", W, H, min_crop_size)
    x, cw = _expand_axis(px.x, px.width, min_crop_size, W)
    y, ch = _expand_axis(px.y, px.height, min_crop_size, H)
    # rounding may push the box past the frame edge
    cw = min(cw, W - x)
    ch = min(ch, H - y)

    view = frame[y : y + ch, x : x + cw]
    if scratch is not None and scratch.shape == view.shape and scratch.dtype == view.dtype:
        np.copyto(scratch, view)
        crop = scratch
    else:
        crop = view.copy()
    if output_size is not None:
        crop = cv2.resize(crop, (int(output_size[0]), int(output_size[1])), interpolation=cv2.INTER_LINEAR)

    return CroppedFrameData(
        image=crop,
        offset_x=x,
        offset_y=y,
        cropped_width=cw,
        cropped_height=ch,
        scale_x=W / float(cw),
        scale_y=H / float(ch),
        frame_width=W,
        frame_height=H,
    )


def transform_landmarks_to_full_frame(
    landmarks: Sequence[PoseLandmark],
    world_landmarks: Sequence[Any],
    crop: CroppedFrameData,
) -> Tuple[List[PoseLandmark], List[Any]]:
    """Crop-normalized landmarks -> full-frame-normalized landmarks.

    full = (crop_norm * crop_px + offset) / frame_px. The pose model's own
    3-D landmarks live in model space and are passed through unchanged.
    """
    if not landmarks:
        return [], []
    W, H = float(crop.frame_width), float(crop.frame_height)
    out = [
        PoseLandmark(
            x=(lm.x * crop.cropped_width + crop.offset_x) / W,
            y=(lm.y * crop.cropped_height + crop.offset_y) / H,
            z=lm.z,
            visibility=lm.visibility,
        )
        for lm in landmarks
    ]
    return out, list(world_landmarks or [])


def is_point_in_roi(x: float, y: float, roi: ROI) -> bool:
    return roi.x <= x <= roi.x + roi.width and roi.y <= y <= roi.y + roi.height


def calculate_roi_coverage(
    landmarks: Sequence[Optional[PoseLandmark]],
    roi: ROI,
    visibility_threshold: float = COVERAGE_VISIBILITY,
) -> RoiCoverage:
    valid = [lm for lm in (landmarks or []) if lm is not None and (lm.visibility or 0.0) > visibility_threshold]
    if not valid:
        return RoiCoverage(0.0, 0, 0)
    inside = sum(1 for lm in valid if is_point_in_roi(lm.x, lm.y, roi))
    return RoiCoverage(inside / len(valid), inside, len(valid))
